"""Tests for YAML configuration."""

from pathlib import Path

import pytest
import yaml

from club_data.config import Config


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home_dir)
    for var in ("DYNAMODB_TABLE_NAME", "AWS_REGION", "DYNAMODB_ENDPOINT"):
        monkeypatch.delenv(var, raising=False)
    return home_dir


def test_set_persists_to_yaml(tmp_path: Path, home: Path) -> None:
    """Test that set writes the config file."""
    config = Config(config_dir=tmp_path / "local")
    config.set("dynamodb.table", "members")

    saved = yaml.safe_load((tmp_path / "local" / "config.yaml").read_text())
    assert saved == {"dynamodb.table": "members"}
    assert Config(config_dir=tmp_path / "local").get("dynamodb.table") == "members"


def test_unset_removes_key(tmp_path: Path, home: Path) -> None:
    """Test unsetting a stored and a missing key."""
    config = Config(config_dir=tmp_path)
    config.set("user.id", "u1")
    config.unset("user.id")
    config.unset("never.set")
    assert config.get("user.id") is None
    assert config.list() == {}


def test_builtin_defaults(tmp_path: Path, home: Path) -> None:
    """Test values used when nothing is configured."""
    config = Config(config_dir=tmp_path)
    assert config.get("dynamodb.table") == "club-entities"
    assert config.get_int("assign.max_candidates") == 100
    assert config.get_float("dynamodb.timeout") == 5.0
    assert config.get("dynamodb.table", "override") == "override"
    assert config.get("unknown.key") is None


def test_environment_fallback(tmp_path: Path, home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that the environment sits between config files and defaults."""
    monkeypatch.setenv("DYNAMODB_TABLE_NAME", "from-env")
    monkeypatch.setenv("DYNAMODB_ENDPOINT", "http://localhost:8000")
    config = Config(config_dir=tmp_path)
    assert config.get("dynamodb.table") == "from-env"
    assert config.get("dynamodb.endpoint") == "http://localhost:8000"

    config.set("dynamodb.table", "from-file")
    assert config.get("dynamodb.table") == "from-file"


def test_local_overrides_global(tmp_path: Path, home: Path) -> None:
    """Test the merge of global and local config files."""
    Config(use_global=True).set("dynamodb.region", "eu-west-1")
    Config(use_global=True).set("user.id", "global-user")

    local = Config(config_dir=tmp_path / "repo")
    local.set("user.id", "local-user")

    assert local.get("dynamodb.region") == "eu-west-1"
    assert local.get("user.id") == "local-user"
    assert local.list() == {"dynamodb.region": "eu-west-1", "user.id": "local-user"}
    assert Config(use_global=True).list() == {"dynamodb.region": "eu-west-1", "user.id": "global-user"}


def test_typed_getters_reject_garbage(tmp_path: Path, home: Path) -> None:
    """Test get_int and get_float on non-numeric values."""
    config = Config(config_dir=tmp_path)
    config.set("assign.max_rounds", "three")
    config.set("dynamodb.timeout", "soon")
    with pytest.raises(ValueError, match="not an integer"):
        config.get_int("assign.max_rounds")
    with pytest.raises(ValueError, match="not a number"):
        config.get_float("dynamodb.timeout")


def test_string_numbers_are_converted(tmp_path: Path, home: Path) -> None:
    """Test that values stored as text by the CLI parse as numbers."""
    config = Config(config_dir=tmp_path)
    config.set("assign.max_rounds", "5")
    assert config.get_int("assign.max_rounds") == 5


def test_broken_yaml_is_reported(tmp_path: Path, home: Path) -> None:
    """Test loading an unreadable config file."""
    (tmp_path / "config.yaml").write_text("key: [unclosed")
    with pytest.raises(ValueError, match="Failed to load config"):
        Config(config_dir=tmp_path)
