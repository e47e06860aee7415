import logging

import pytest

from rss_sync import cli
from rss_sync.config import AppConfig, DatabaseConfig, LoggingConfig
from rss_sync.models import TaskResult
from rss_sync.runner import RunResult


@pytest.fixture
def restore_root_handlers():
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
    yield
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        logging.getLogger().addHandler(handler)


@pytest.fixture
def app_config(monkeypatch):
    config = AppConfig(
        feeds_file="feeds.xml",
        database=DatabaseConfig(connection_string="sqlite:///secret.db"),
        max_age_hours=24,
    )
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    monkeypatch.setattr(cli, "parse_app_config", lambda path: config)
    monkeypatch.setattr(cli, "parse_env_config", lambda path: {})
    return config


def _capture_execute(monkeypatch, results=()):
    captured = {}

    def fake_execute(config):
        captured["config"] = config
        return RunResult(results=list(results))

    monkeypatch.setattr(cli, "execute", fake_execute)
    return captured


def test_configure_logging_defaults_to_console_only(restore_root_handlers):
    cli.configure_logging("INFO")

    handlers = logging.getLogger().handlers
    assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
    assert not any(isinstance(handler, logging.FileHandler) for handler in handlers)


def test_configure_logging_with_log_file_creates_file_handler(
    restore_root_handlers, tmp_path
):
    log_path = tmp_path / "nested" / "custom.log"
    cli.configure_logging("DEBUG", str(log_path))

    assert log_path.exists()
    assert any(
        isinstance(handler, logging.FileHandler) for handler in logging.getLogger().handlers
    )


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        cli.configure_logging("LOUD")


def test_main_builds_run_config(monkeypatch, app_config):
    captured = _capture_execute(monkeypatch, [TaskResult("archive"), TaskResult("ingest")])

    exit_code = cli.main(["--config", "configs/test.xml"])

    assert exit_code == 0
    config = captured["config"]
    assert config.database_connection_string == "sqlite:///secret.db"
    assert config.max_age_hours == 24
    assert config.import_feeds_path == "feeds.xml"
    assert config.archive is True
    assert config.ingest is True


def test_main_flags_override_config(monkeypatch, app_config):
    captured = _capture_execute(monkeypatch)

    cli.main(["--import-feeds", "other.xml", "--skip-archive", "--skip-ingest"])

    config = captured["config"]
    assert config.import_feeds_path == "other.xml"
    assert config.archive is False
    assert config.ingest is False


def test_main_cli_overrides_logging(monkeypatch, app_config):
    app_config.logging = LoggingConfig(level="INFO", file="config.log")
    captured_log_config = {}

    def fake_configure(level, log_file=None):
        captured_log_config["level"] = level
        captured_log_config["file"] = log_file

    monkeypatch.setattr(cli, "configure_logging", fake_configure)
    _capture_execute(monkeypatch)

    cli.main(["--log-level", "DEBUG", "--log-file", "cli.log"])

    assert captured_log_config == {"level": "DEBUG", "file": "cli.log"}


def test_main_returns_failure_when_a_task_failed(monkeypatch, app_config, capsys):
    failed = TaskResult("archive")
    failed.record_success()
    failed.record_failure("record 2: boom")
    _capture_execute(monkeypatch, [failed, TaskResult("ingest")])

    exit_code = cli.main([])

    assert exit_code == 1
    output = capsys.readouterr().out
    assert "archive: 1 of 2 failed" in output
    assert "ingest: 0/0 succeeded" in output


def test_main_masks_connection_string_in_logs(monkeypatch, app_config, caplog):
    _capture_execute(monkeypatch)

    with caplog.at_level(logging.INFO, logger="rss_sync.cli"):
        cli.main([])

    assert "secret.db" not in caplog.text
    assert "***MASKED***" in caplog.text


def test_main_exits_on_configuration_error(monkeypatch, app_config):
    app_config.database = DatabaseConfig()
    monkeypatch.delenv("RSS_SYNC_DATABASE_URL", raising=False)
    _capture_execute(monkeypatch)

    with pytest.raises(SystemExit) as excinfo:
        cli.main([])

    assert excinfo.value.code == 2


def test_main_missing_config_file_returns_error(tmp_path):
    assert cli.main(["--config", str(tmp_path / "missing.xml")]) == 1
