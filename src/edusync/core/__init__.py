"""Core module - Shared configuration and types."""

from edusync.core.config import (
    AppConfig,
    ServerConfig,
    SyncConfig,
    config_from_dict,
    load_config,
    save_config,
)
from edusync.core.types import (
    ConnectivityState,
    EntryStatus,
    SyncAction,
    SyncState,
    parse_timestamp,
    utc_now,
    utc_now_iso,
)

__all__ = [
    # Config
    "AppConfig",
    "ServerConfig",
    "SyncConfig",
    "config_from_dict",
    "load_config",
    "save_config",
    # Types
    "ConnectivityState",
    "EntryStatus",
    "SyncAction",
    "SyncState",
    "parse_timestamp",
    "utc_now",
    "utc_now_iso",
]
