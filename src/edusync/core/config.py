"""Configuration classes for edusync.

This module defines the configuration consumed by the remote API client,
the sync driver and the application glue, and loads it from a JSON file
with environment overrides.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_SYNC_INTERVAL = 300.0  # seconds
DEFAULT_PROBE_INTERVAL = 300.0  # seconds
DEFAULT_REMOTE_TIMEOUT = 30.0  # seconds

ENV_PREFIX = "EDUSYNC_"


@dataclass
class ServerConfig:
    """Configuration for connecting to the remote backend.

    Attributes:
        server_url: Base URL of the backend (e.g., "https://api.example.com").
        token: Bearer token sent with every request.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str = ""
    timeout: float = DEFAULT_REMOTE_TIMEOUT
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.server_url.startswith("https://")


@dataclass
class SyncConfig:
    """Tuning knobs for the outbox and the sync driver.

    Attributes:
        sync_interval: Seconds between periodic background sweeps.
        probe_interval: Seconds between reachability probes.
        max_attempts: Failed attempts before an entry is abandoned
            (None = retry forever).
        batch_size: Maximum entries processed per drain (None = all pending).
        remote_timeout: Upper bound in seconds for a single remote call.
        retention_days: Synced entries older than this are purged
            (None = keep forever).
    """

    sync_interval: float = DEFAULT_SYNC_INTERVAL
    probe_interval: float = DEFAULT_PROBE_INTERVAL
    max_attempts: int | None = None
    batch_size: int | None = None
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT
    retention_days: int | None = None

    def __post_init__(self) -> None:
        """Validate values."""
        if self.sync_interval <= 0:
            raise ValueError("sync_interval must be positive")
        if self.probe_interval <= 0:
            raise ValueError("probe_interval must be positive")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.batch_size is not None and self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.remote_timeout <= 0:
            raise ValueError("remote_timeout must be positive")
        if self.retention_days is not None and self.retention_days < 0:
            raise ValueError("retention_days must not be negative")


@dataclass
class AppConfig:
    """Top-level configuration for a SyncApp.

    Attributes:
        data_dir: Directory holding the database and downloaded content.
        server: Remote backend settings (None = no remote configured).
        sync: Sync driver settings.
        user_id: Identifier of the local user owning personal records.
    """

    data_dir: Path
    server: ServerConfig | None = None
    sync: SyncConfig = field(default_factory=SyncConfig)
    user_id: str = "default_user"

    def __post_init__(self) -> None:
        """Normalize data directory."""
        self.data_dir = Path(self.data_dir).expanduser()

    @property
    def db_path(self) -> Path:
        """Path to the local SQLite database."""
        return self.data_dir / "edusync.db"

    @property
    def content_dir(self) -> Path:
        """Directory for downloaded offline content."""
        return self.data_dir / "content"


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _env_overrides() -> dict[str, Any]:
    """Collect EDUSYNC_* environment variables as config keys."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            overrides[key[len(ENV_PREFIX):].lower()] = value
    return overrides


def config_from_dict(data: dict[str, Any]) -> AppConfig:
    """Build an AppConfig from a flat dictionary.

    Recognized keys: data_dir, server_url, token, timeout, verify_ssl,
    user_id, sync_interval, probe_interval, max_attempts, batch_size,
    remote_timeout, retention_days.
    """
    server = None
    if data.get("server_url"):
        verify = data.get("verify_ssl", True)
        if isinstance(verify, str):
            verify = verify.lower() not in ("0", "false", "no")
        server = ServerConfig(
            server_url=str(data["server_url"]),
            token=str(data.get("token", "")),
            timeout=float(data.get("timeout", DEFAULT_REMOTE_TIMEOUT)),
            verify_ssl=bool(verify),
        )

    sync = SyncConfig(
        sync_interval=float(data.get("sync_interval", DEFAULT_SYNC_INTERVAL)),
        probe_interval=float(data.get("probe_interval", DEFAULT_PROBE_INTERVAL)),
        max_attempts=_optional_int(data.get("max_attempts")),
        batch_size=_optional_int(data.get("batch_size")),
        remote_timeout=float(data.get("remote_timeout", DEFAULT_REMOTE_TIMEOUT)),
        retention_days=_optional_int(data.get("retention_days")),
    )

    return AppConfig(
        data_dir=Path(data.get("data_dir") or Path.home() / ".edusync"),
        server=server,
        sync=sync,
        user_id=str(data.get("user_id", "default_user")),
    )


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a JSON file, then apply environment overrides.

    Args:
        path: JSON config file. A missing file is treated as empty.

    Returns:
        The resulting AppConfig.
    """
    data: dict[str, Any] = {}
    if path is not None and path.exists():
        data.update(json.loads(path.read_text(encoding="utf-8")))
    data.update(_env_overrides())
    return config_from_dict(data)


def save_config(path: Path, data: dict[str, Any]) -> None:
    """Save a flat configuration dictionary as JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
