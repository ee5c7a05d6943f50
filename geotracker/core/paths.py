"""Centralized path constants for the geotracker package."""

from __future__ import annotations

import os
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_ROOT.parent

# Configuration
CONFIG_PATH = PACKAGE_ROOT / "config.txt"

# User-specific state (allows running from read-only install directories)
_USER_STATE_ENV = os.environ.get("GEOTRACKER_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".config" / "geotracker")
USER_CONFIG_OVERRIDES_DIR = USER_STATE_DIR / "overrides"
LOGS_DIR = USER_STATE_DIR / "logs"
DEFAULT_LOG_FILE = LOGS_DIR / "geotracker.log"


def ensure_directories() -> None:
    """Create necessary directories if they don't exist."""

    USER_STATE_DIR.mkdir(parents=True, exist_ok=True)
    USER_CONFIG_OVERRIDES_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    'PACKAGE_ROOT',
    'PROJECT_ROOT',
    'CONFIG_PATH',
    'USER_STATE_DIR',
    'USER_CONFIG_OVERRIDES_DIR',
    'LOGS_DIR',
    'DEFAULT_LOG_FILE',
    'ensure_directories',
]
