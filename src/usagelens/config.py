"""Configuration loader — optional YAML settings layered over DEFAULTS."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

CONFIG_PATH = Path("~/.config/usagelens/config.yaml")

DATA_SOURCES = ("live", "imported")

DEFAULTS = {
    "claude_dir": "~/.claude",
    "import_dir": "~/.local/share/usagelens/imported",
    "data_source": "live",
    "port": 8787,
    "cache_ttl_seconds": 30,
    "recent_sessions_limit": 10,
}


@dataclass
class UsageLensConfig:
    claude_dir: Path
    import_dir: Path
    data_source: str
    port: int
    cache_ttl_seconds: float
    recent_sessions_limit: int


def _resolve(config_path: Path | None) -> Path:
    return (config_path if config_path is not None else CONFIG_PATH).expanduser()


def _read_settings(path: Path) -> dict:
    """Mapping stored at path; empty when the file is absent or not a mapping."""
    if not path.is_file():
        return {}
    with open(path) as f:
        loaded = yaml.safe_load(f)
    return loaded if isinstance(loaded, dict) else {}


def save_config_value(key: str, value: object, config_path: Path | None = None) -> None:
    """Set one key in the config file; other settings are kept as written."""
    path = _resolve(config_path)
    settings = _read_settings(path)
    settings[key] = value

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(settings, f, default_flow_style=False)


def load_config(config_path: Path | None = None) -> UsageLensConfig:
    """Load ~/.config/usagelens/config.yaml over DEFAULTS.

    A missing file yields the defaults. Keys not in DEFAULTS are ignored, ~ is
    expanded in paths, and an unrecognised data_source reads as "live".
    """
    stored = _read_settings(_resolve(config_path))
    settings = {key: stored.get(key, default) for key, default in DEFAULTS.items()}

    data_source = str(settings["data_source"])
    if data_source not in DATA_SOURCES:
        data_source = "live"

    return UsageLensConfig(
        claude_dir=Path(settings["claude_dir"]).expanduser(),
        import_dir=Path(settings["import_dir"]).expanduser(),
        data_source=data_source,
        port=int(settings["port"]),
        cache_ttl_seconds=float(settings["cache_ttl_seconds"]),
        recent_sessions_limit=int(settings["recent_sessions_limit"]),
    )
