"""Configuration management for the bucket dashboard.

This module centralizes all configuration values including paths,
defaults, and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

# Base project root - assumes this file is in bucket_dashboard/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("BUCKETS_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("BUCKETS_DB_PATH", DATA_DIR / "buckets.db")
).resolve()

# The Streamlit app is single-user; the owner id scopes every query.
DEFAULT_OWNER_ID = os.getenv("BUCKETS_OWNER_ID", "local-user")

LOG_LEVEL = os.getenv("BUCKETS_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Seconds a connection waits on a locked database before giving up
DB_TIMEOUT = float(os.getenv("BUCKETS_DB_TIMEOUT", "5.0"))


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)


def get_db_path() -> str:
    """Get the database path as a string."""
    return str(DB_PATH)


def configure_logging(level: Optional[Union[int, str]] = None) -> None:
    """Configure root logging once for scripts and the Streamlit app.

    Library modules only create named loggers; the entry points call this.
    """
    resolved = level if level is not None else LOG_LEVEL
    if isinstance(resolved, str):
        resolved = getattr(logging, resolved.upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
