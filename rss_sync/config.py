"""Configuration loading for rss_sync."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from .errors import ConfigurationError
from .models import FeedConfig

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = "RSS_SYNC_DATABASE_URL"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class DatabaseConfig:
    connection_string: Optional[str] = None


@dataclass
class AppConfig:
    feeds_file: Optional[str] = None
    env_file: Optional[str] = None
    retention_days: float = 30.0
    max_age_hours: Optional[float] = None
    concurrency: int = 10
    fetch_timeout: float = 10.0
    deadline: Optional[float] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def parse_feeds_config(path: str) -> List[FeedConfig]:
    """Parse an OPML file and return feed definitions."""
    logger.info("Loading feed configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    feeds: List[FeedConfig] = []

    def walk(outline: ET.Element, current_category: Optional[str]) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")
        outline_type = outline.attrib.get("type")

        if outline_type == "rss" and feed_url:
            feeds.append(
                FeedConfig(
                    category=current_category or title or "Uncategorized",
                    title=title or feed_url,
                    url=feed_url,
                )
            )
            logger.debug(
                "Registered feed '%s' (category='%s')", feed_url, feeds[-1].category
            )
            return

        next_category = title if title else current_category
        for child in outline.findall("outline"):
            walk(child, next_category)

    if body is None:
        raise ConfigurationError(f"{path} is missing the <body> section.")

    for outline in body.findall("outline"):
        walk(outline, outline.attrib.get("title") or outline.attrib.get("text"))

    logger.info("Loaded %d feed endpoints from %s", len(feeds), path)
    return feeds


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _optional_float(root: ET.Element, tag: str) -> Optional[float]:
    node = root.find(tag)
    if node is None or not node.text or not node.text.strip():
        return None
    try:
        return float(node.text)
    except ValueError:
        raise ConfigurationError(f"<{tag}> must be a number, got {node.text!r}")


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    try:
        tree = ET.parse(path)
        root = tree.getroot()
        for var in root.findall("variable"):
            name = var.attrib.get("name")
            value = var.text
            if name and value:
                env_vars[name] = value.strip()
    except Exception as exc:
        logger.warning("Failed to load environment config: %s", exc)
        raise

    return env_vars


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    feeds_text = root.findtext("feeds")
    feeds_file = (
        _resolve_path(config_path, feeds_text.strip())
        if feeds_text and feeds_text.strip()
        else None
    )

    env_text = root.findtext("env")
    env_file = (
        _resolve_path(config_path, env_text.strip())
        if env_text and env_text.strip()
        else None
    )

    retention_days = _optional_float(root, "retention-days")
    if retention_days is None:
        retention_days = 30.0
    if retention_days <= 0:
        raise ConfigurationError("<retention-days> must be positive.")

    max_age_hours = _optional_float(root, "max-age-hours")
    if max_age_hours is not None and max_age_hours <= 0:
        raise ConfigurationError("<max-age-hours> must be positive.")

    concurrency = int(root.findtext("concurrency", "10"))
    if concurrency < 1:
        raise ConfigurationError("<concurrency> must be at least 1.")

    fetch_timeout = _optional_float(root, "fetch-timeout") or 10.0
    deadline = _optional_float(root, "deadline")

    # Logging
    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    # Database
    db_node = root.find("database")
    db_config = DatabaseConfig()
    if db_node is not None:
        connection_string = db_node.findtext("connection-string")
        if connection_string and connection_string.strip():
            db_config.connection_string = connection_string.strip()

    return AppConfig(
        feeds_file=feeds_file,
        env_file=env_file,
        retention_days=retention_days,
        max_age_hours=max_age_hours,
        concurrency=concurrency,
        fetch_timeout=fetch_timeout,
        deadline=deadline,
        logging=logging_config,
        database=db_config,
    )


def resolve_connection_string(config: AppConfig) -> str:
    """Return the configured connection string, falling back to the environment."""
    connection_string = config.database.connection_string or os.environ.get(
        DATABASE_URL_ENV
    )
    if not connection_string:
        raise ConfigurationError(
            f"No database configured. Set <database><connection-string> or {DATABASE_URL_ENV}."
        )
    return connection_string
