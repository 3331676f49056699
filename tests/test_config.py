"""Tests for configuration loading."""

import pytest
from pathlib import Path

from garden.config import load_config

ENV_KEYS = [
    "GARDEN_DATA_DIR",
    "GARDEN_DB",
    "GARDEN_PHOTOS_DIR",
    "GARDEN_DEFAULT_CONFIG",
    "GARDEN_LOG_LEVEL",
    "GARDEN_EXPORT_DIR",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.toml")
        assert config.data_dir.name == ".garden"
        assert config.db_path == config.data_dir / "garden.db"
        assert config.photos_dir == config.data_dir / "photos"
        assert config.backup.export_dir == config.data_dir / "backups"
        assert config.default_config is None
        assert config.log_level == "INFO"

    def test_env_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("GARDEN_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.setenv("GARDEN_LOG_LEVEL", "DEBUG")

        config = load_config()
        assert config.data_dir == tmp_path / "data"
        assert config.db_path == tmp_path / "data" / "garden.db"
        assert config.photos_dir == tmp_path / "data" / "photos"
        assert config.log_level == "DEBUG"

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "garden.toml"
        toml_path.write_text(f"""
data_dir = "{tmp_path / 'data'}"
db_path = "{tmp_path / 'elsewhere.db'}"
default_config = "{tmp_path / 'defaults.yaml'}"

[backup]
export_dir = "{tmp_path / 'exports'}"
""")
        config = load_config(toml_path)
        assert config.data_dir == tmp_path / "data"
        assert config.db_path == tmp_path / "elsewhere.db"
        assert config.photos_dir == tmp_path / "data" / "photos"
        assert config.default_config == tmp_path / "defaults.yaml"
        assert config.backup.export_dir == tmp_path / "exports"

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("GARDEN_DB", str(tmp_path / "env.db"))

        toml_path = tmp_path / "garden.toml"
        toml_path.write_text(f"""
db_path = "{tmp_path / 'toml.db'}"
log_level = "WARNING"
""")
        config = load_config(toml_path)
        assert config.db_path == tmp_path / "env.db"  # env wins
        assert config.log_level == "WARNING"

    def test_finds_toml_in_cwd(self, tmp_path: Path):
        (tmp_path / "garden.toml").write_text('log_level = "ERROR"\n')
        assert load_config().log_level == "ERROR"
