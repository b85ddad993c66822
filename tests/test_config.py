"""Tests for the configuration file."""

import json
from pathlib import Path

import pytest

from seven_sync.config import (
    SyncConfig,
    get_log_file,
    load_config,
    read_config,
    save_config,
    validate_config,
    validate_config_file,
)
from seven_sync.services.exceptions import FriendlyError


@pytest.fixture
def config_file(tmp_path: Path, source_dir: Path, destination_dir: Path) -> Path:
    path = tmp_path / "backup.cfg"
    path.write_text(
        json.dumps({"source": "source", "destination": "destination", "password_hash": "x:y"}),
        encoding="utf-8",
    )
    return path


def test_load_config(config_file: Path, source_dir: Path, destination_dir: Path):
    """Test that relative paths are resolved against the config file."""
    config = load_config(config_file)

    assert config.source == source_dir.resolve()
    assert config.destination == destination_dir.resolve()
    assert config.password_hash == "x:y"
    assert config.seven_zip == "7z"
    assert config.index_save_interval == 60


def test_save_and_load(tmp_path: Path, config_file: Path):
    """Test that a saved configuration loads unchanged."""
    config = load_config(config_file).model_copy(update={"seven_zip": "/usr/bin/7za"})
    target = tmp_path / "copy.cfg"

    save_config(config, target)

    assert load_config(target) == config
    assert not target.with_suffix(".tmp").exists()


def test_read_config_keeps_relative_paths(config_file: Path):
    """Test that reading without resolving returns the paths as written."""
    config = read_config(config_file)

    assert config.source == Path("source")
    assert config.destination == Path("destination")


def test_missing_config_file(tmp_path: Path):
    """Test that a missing file is reported."""
    with pytest.raises(FriendlyError, match="does not exist"):
        load_config(tmp_path / "missing.cfg")


def test_invalid_json(tmp_path: Path):
    """Test that malformed content is reported."""
    path = tmp_path / "broken.cfg"
    path.write_text("{", encoding="utf-8")

    with pytest.raises(FriendlyError, match="is invalid"):
        load_config(path)


def test_missing_field(tmp_path: Path):
    """Test that a configuration without destination is rejected."""
    path = tmp_path / "partial.cfg"
    path.write_text(json.dumps({"source": "."}), encoding="utf-8")

    with pytest.raises(FriendlyError, match="destination"):
        load_config(path)


def test_blank_executable_falls_back():
    """Test that a blank 7-Zip executable means the default one."""
    assert SyncConfig(source=Path("a"), destination=Path("b"), seven_zip="  ").seven_zip == "7z"


def test_config_file_suffix(tmp_path: Path):
    """Test that configuration files must end with .cfg."""
    assert validate_config_file(tmp_path / "backup.json", must_exist=False) == (
        f"{tmp_path / 'backup.json'} does not end with .cfg"
    )
    assert validate_config_file(tmp_path / "backup.cfg", must_exist=False) is None


def test_get_log_file():
    """Test that the log file is named after the configuration file."""
    assert get_log_file(Path("/backups/photos.cfg")) == Path("/backups/photos.log")
    assert get_log_file(Path("/backups/photos")) == Path("/backups/photos.log")


@pytest.mark.parametrize(
    "source,destination,message",
    [
        ("missing", "destination", "does not exist"),
        ("source", "source", "can't be the same as the source directory"),
        ("source", "source/inner", "must not be inside the source directory"),
        ("destination/inner", "destination", "must not be inside the destination directory"),
        (".", "destination", "must not contain the configuration file"),
    ],
)
def test_validate_config(tmp_path: Path, source_dir: Path, destination_dir: Path, source: str, destination: str, message: str):
    """Test the checks of source and destination."""
    (source_dir / "inner").mkdir()
    (destination_dir / "inner").mkdir()
    config_file = tmp_path / "backup.cfg"
    config = SyncConfig(source=Path(source), destination=Path(destination)).resolve(config_file)

    assert message in validate_config(config, config_file)
