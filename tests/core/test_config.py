"""Tests for core configuration classes."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from edusync.core.config import (
    DEFAULT_SYNC_INTERVAL,
    AppConfig,
    ServerConfig,
    SyncConfig,
    config_from_dict,
    load_config,
    save_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ignore EDUSYNC_* variables from the surrounding environment."""
    for key in list(os.environ):
        if key.startswith("EDUSYNC_"):
            monkeypatch.delenv(key)


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = ServerConfig(server_url="https://example.com", token="test-token")
        assert config.server_url == "https://example.com"
        assert config.token == "test-token"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from server URL."""
        config = ServerConfig(server_url="https://example.com/", token="test-token")
        assert config.server_url == "https://example.com"

    def test_is_secure(self) -> None:
        assert ServerConfig(server_url="https://example.com").is_secure is True
        assert ServerConfig(server_url="http://localhost:8000").is_secure is False


class TestSyncConfig:
    """Tests for SyncConfig validation."""

    def test_defaults(self) -> None:
        config = SyncConfig()
        assert config.sync_interval == DEFAULT_SYNC_INTERVAL
        assert config.max_attempts is None
        assert config.batch_size is None
        assert config.retention_days is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"sync_interval": 0},
            {"probe_interval": -1},
            {"max_attempts": 0},
            {"batch_size": 0},
            {"remote_timeout": 0},
            {"retention_days": -1},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            SyncConfig(**kwargs)  # type: ignore[arg-type]


class TestAppConfig:
    """Tests for AppConfig paths."""

    def test_paths(self, tmp_path: Path) -> None:
        config = AppConfig(data_dir=tmp_path)
        assert config.db_path == tmp_path / "edusync.db"
        assert config.content_dir == tmp_path / "content"
        assert config.server is None
        assert config.user_id == "default_user"


class TestLoadConfig:
    """Tests for reading configuration files."""

    def test_from_dict(self, tmp_path: Path) -> None:
        config = config_from_dict({
            "data_dir": str(tmp_path),
            "server_url": "https://api.example.com/",
            "token": "secret",
            "max_attempts": 5,
            "batch_size": "20",
            "user_id": "u1",
        })

        assert config.server is not None
        assert config.server.server_url == "https://api.example.com"
        assert config.server.token == "secret"
        assert config.sync.max_attempts == 5
        assert config.sync.batch_size == 20
        assert config.user_id == "u1"

    def test_no_server_url(self, tmp_path: Path) -> None:
        assert config_from_dict({"data_dir": str(tmp_path)}).server is None

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "missing.json")
        assert config.data_dir == Path.home() / ".edusync"
        assert config.sync.sync_interval == DEFAULT_SYNC_INTERVAL

    def test_save_and_load(self, tmp_path: Path) -> None:
        path = tmp_path / "conf" / "config.json"
        save_config(path, {"data_dir": str(tmp_path), "retention_days": 30})

        assert json.loads(path.read_text())["retention_days"] == 30
        assert load_config(path).sync.retention_days == 30

    def test_environment_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """EDUSYNC_* variables should win over the file."""
        path = tmp_path / "config.json"
        save_config(path, {"data_dir": str(tmp_path), "server_url": "http://file"})
        monkeypatch.setenv("EDUSYNC_SERVER_URL", "http://env")
        monkeypatch.setenv("EDUSYNC_VERIFY_SSL", "false")
        monkeypatch.setenv("EDUSYNC_MAX_ATTEMPTS", "3")

        config = load_config(path)

        assert config.server is not None
        assert config.server.server_url == "http://env"
        assert config.server.verify_ssl is False
        assert config.sync.max_attempts == 3

    def test_invalid_value(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            config_from_dict({"data_dir": str(tmp_path), "sync_interval": "-5"})
