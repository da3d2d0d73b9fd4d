"""Configuration loading from environment variables and jot.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from jot.expiration import DEFAULT_TTL_DAYS

_CONFIG_FILENAME = "jot.toml"
_DB_FILENAME = "jots.sqlite"


def storage_dir() -> Path:
    """Per-user storage directory (XDG on Linux/macOS, APPDATA on Windows)."""
    if sys.platform == "win32":
        app_data = os.getenv("APPDATA")
        if not app_data:
            raise RuntimeError("APPDATA environment variable not found")
        return Path(app_data) / "jot"
    xdg_config_home = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(xdg_config_home) / "jot"


def _parse_bool(value: str | bool) -> bool:
    if isinstance(value, bool):
        return value
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class JotConfig:
    """Top-level jot configuration."""

    db_path: Path
    default_ttl_days: float = DEFAULT_TTL_DAYS
    expiring_soon_days: float = 3
    auto_cleanup: bool = True
    sweep_interval: float = 300
    default_context: str = "general"
    log_level: str = "WARNING"


def load_config(config_path: Path | None = None) -> JotConfig:
    """Load configuration from environment variables and optional jot.toml.

    Priority: environment variables > jot.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        for candidate in [Path.cwd() / _CONFIG_FILENAME, storage_dir() / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    storage_data = file_data.get("storage", {})
    expiration_data = file_data.get("expiration", {})

    default_db = storage_data.get("db_path") or str(storage_dir() / _DB_FILENAME)

    return JotConfig(
        db_path=Path(os.getenv("JOT_DB_PATH", default_db)).expanduser(),
        default_ttl_days=float(
            os.getenv(
                "JOT_DEFAULT_TTL_DAYS",
                expiration_data.get("default_ttl_days", DEFAULT_TTL_DAYS),
            )
        ),
        expiring_soon_days=float(expiration_data.get("expiring_soon_days", 3)),
        auto_cleanup=_parse_bool(
            os.getenv("JOT_AUTO_CLEANUP", expiration_data.get("auto_cleanup", True))
        ),
        sweep_interval=float(expiration_data.get("sweep_interval", 300)),
        default_context=file_data.get("default_context", "general"),
        log_level=os.getenv("JOT_LOG_LEVEL", file_data.get("log_level", "WARNING")),
    )
