"""Configuration utilities for the edusync CLI.

This module provides shared configuration and logging helpers used across
CLI commands.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from edusync.core.config import AppConfig, load_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the configuration directory for edusync.

    Returns:
        Path to ~/.edusync or equivalent.
    """
    return Path.home() / ".edusync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_app_config(path: Path | None) -> AppConfig:
    """Load the application config from ``path`` or the default config file."""
    return load_config(path if path is not None else get_config_file())


def setup_logging(verbose: bool = False) -> None:
    """Configure the edusync logger to write to stderr.

    Args:
        verbose: Log at DEBUG level instead of INFO.
    """
    root_logger = logging.getLogger("edusync")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Replace handlers from a previous invocation in the same process
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
