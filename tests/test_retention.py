from datetime import datetime, timedelta, timezone

from conftest import FakeStore, record

from rss_sync.retention import RetentionPolicy, is_expired

NOW = datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc)
CUTOFF = NOW - timedelta(days=30)


def test_select_expired_uses_strict_cutoff_and_skips_starred():
    store = FakeStore(
        records=[
            record(1, CUTOFF - timedelta(seconds=1)),
            record(2, CUTOFF),
            record(3, CUTOFF + timedelta(days=1)),
            record(4, CUTOFF - timedelta(days=90), starred=True),
            record(5, CUTOFF - timedelta(days=90)),
        ]
    )

    assert RetentionPolicy(store).select_expired(CUTOFF) == [1, 5]


def test_is_expired_treats_naive_created_as_utc():
    naive = (CUTOFF - timedelta(minutes=1)).replace(tzinfo=None)

    assert is_expired(record(1, naive), CUTOFF)
    assert not is_expired(record(1, CUTOFF.replace(tzinfo=None)), CUTOFF)


def test_select_expired_returns_nothing_when_query_fails():
    store = FakeStore(records=[record(1, CUTOFF - timedelta(days=1))])
    store.fail_queries = True

    assert RetentionPolicy(store).select_expired(CUTOFF) == []


def test_archive_continues_after_a_failure():
    store = FakeStore()
    store.fail_archive_for = {2}

    result = RetentionPolicy(store).archive([1, 2, 3])

    assert store.archived == [1, 3]
    assert result.attempted == 3
    assert result.succeeded == 2
    assert result.failed == 1
    assert not result.ok
    assert "record 2" in result.failures[0]


def test_archive_with_no_ids_succeeds():
    result = RetentionPolicy(FakeStore()).archive([])

    assert result.ok
    assert result.attempted == 0


def test_select_and_archive_against_sql_store(store, add_content):
    old = add_content(CUTOFF - timedelta(days=2), title="old")
    starred = add_content(CUTOFF - timedelta(days=2), starred=True, title="starred")
    at_cutoff = add_content(CUTOFF, title="exact")
    recent = add_content(NOW, title="recent")

    policy = RetentionPolicy(store)
    expired = policy.select_expired(CUTOFF)
    result = policy.archive(expired)

    assert expired == [old]
    assert result.ok
    remaining = {r.id for r in store.query_all_content_records()}
    assert remaining == {starred, at_cutoff, recent}
