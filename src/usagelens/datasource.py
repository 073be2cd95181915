"""Data-source selection — which corpus root the stats are read from.

"live" is the assistant's own data directory. "imported" is a copy unpacked
under import_dir/claude-data, recognised by its meta.json. Choosing "imported"
when no import exists falls back to live.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from usagelens.config import DATA_SOURCES, UsageLensConfig, save_config_value

IMPORT_DATA_DIRNAME = "claude-data"
IMPORT_META_FILENAME = "meta.json"

logger = logging.getLogger(__name__)


def has_imported_data(config: UsageLensConfig) -> bool:
    return (config.import_dir / IMPORT_META_FILENAME).is_file()


def get_import_meta(config: UsageLensConfig) -> dict | None:
    """Contents of the import's meta.json, or None without a readable import."""
    meta_path = config.import_dir / IMPORT_META_FILENAME
    if not meta_path.is_file():
        return None
    try:
        with open(meta_path, encoding="utf-8") as f:
            meta = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable import metadata %s: %s", meta_path, exc)
        return None
    return meta if isinstance(meta, dict) else None


def active_data_source(config: UsageLensConfig) -> str:
    if config.data_source == "imported" and has_imported_data(config):
        return "imported"
    return "live"


def active_data_root(config: UsageLensConfig) -> Path:
    """Directory holding projects/ and stats-cache.json for the active source."""
    if active_data_source(config) == "imported":
        return config.import_dir / IMPORT_DATA_DIRNAME
    return config.claude_dir


def set_data_source(
    config: UsageLensConfig, source: str, config_path: Path | None = None,
) -> None:
    """Persist the selected source and apply it to config."""
    if source not in DATA_SOURCES:
        raise ValueError(f"Unknown data source {source!r}; expected one of {DATA_SOURCES}")
    save_config_value("data_source", source, config_path)
    config.data_source = source
