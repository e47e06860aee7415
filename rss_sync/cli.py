"""Command-line interface for the rss_sync application."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import pprint
from pathlib import Path
from typing import List, Optional

from .config import parse_app_config, parse_env_config, resolve_connection_string
from .errors import AggregateFailure
from .runner import RunConfig, execute
from .tasks import raise_on_failures

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Sync RSS feeds into the content store and archive stale items."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument(
        "--import-feeds",
        metavar="PATH",
        help="Register the feeds of an OPML file before running. Overrides config.",
    )
    parser.add_argument(
        "--skip-archive",
        action="store_true",
        help="Do not archive old unstarred content.",
    )
    parser.add_argument(
        "--skip-ingest",
        action="store_true",
        help="Do not fetch feeds.",
    )
    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        if app_config.env_file:
            env_vars = parse_env_config(app_config.env_file)
            os.environ.update(env_vars)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        config = RunConfig(
            database_connection_string=resolve_connection_string(app_config),
            retention_days=app_config.retention_days,
            max_age_hours=app_config.max_age_hours,
            concurrency=app_config.concurrency,
            fetch_timeout=app_config.fetch_timeout,
            deadline=app_config.deadline,
            import_feeds_path=args.import_feeds or app_config.feeds_file,
            archive=not args.skip_archive,
            ingest=not args.skip_ingest,
        )

        config_dict = dataclasses.asdict(config)
        config_dict["database_connection_string"] = "***MASKED***"
        logger.info("Active Configuration:\n%s", pprint.pformat(config_dict))

        result = execute(config)
        for task_result in result.results:
            print(task_result.summary())
        raise_on_failures(result.results)
    except ValueError as exc:
        parser.error(str(exc))
    except AggregateFailure as exc:
        logger.error("Run finished with failures: %s", exc)
        return 1
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    return 0
