"""Configuration loading from environment variables and garden.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".garden"
_CONFIG_FILENAME = "garden.toml"


@dataclass
class BackupConfig:
    """Where exported backup files are written by default."""

    export_dir: Path = _DEFAULT_DATA_DIR / "backups"


@dataclass
class GardenConfig:
    """Top-level garden configuration."""

    data_dir: Path = _DEFAULT_DATA_DIR
    db_path: Path = _DEFAULT_DATA_DIR / "garden.db"
    photos_dir: Path = _DEFAULT_DATA_DIR / "photos"
    default_config: Path | None = None
    log_level: str = "INFO"
    backup: BackupConfig = field(default_factory=BackupConfig)


def _path(value) -> Path | None:
    return Path(value).expanduser() if value else None


def load_config(config_path: Path | None = None) -> GardenConfig:
    """Load configuration from environment variables and optional garden.toml.

    Priority: environment variables > garden.toml > defaults. Paths that are
    not set explicitly live under the data directory.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.garden/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _DEFAULT_DATA_DIR / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    backup_data = file_data.get("backup", {})

    data_dir = _path(os.getenv("GARDEN_DATA_DIR", file_data.get("data_dir"))) or _DEFAULT_DATA_DIR
    db_path = _path(os.getenv("GARDEN_DB", file_data.get("db_path"))) or data_dir / "garden.db"
    photos_dir = (
        _path(os.getenv("GARDEN_PHOTOS_DIR", file_data.get("photos_dir"))) or data_dir / "photos"
    )
    export_dir = (
        _path(os.getenv("GARDEN_EXPORT_DIR", backup_data.get("export_dir"))) or data_dir / "backups"
    )

    config = GardenConfig(
        data_dir=data_dir,
        db_path=db_path,
        photos_dir=photos_dir,
        default_config=_path(os.getenv("GARDEN_DEFAULT_CONFIG", file_data.get("default_config"))),
        log_level=os.getenv("GARDEN_LOG_LEVEL", file_data.get("log_level", "INFO")),
        backup=BackupConfig(export_dir=export_dir),
    )
    return config
