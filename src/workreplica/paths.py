"""Path utilities for workreplica data directories.

Environment variables:
    WORKREPLICA_DATA_DIR: Override the default data directory location.

Default location: $XDG_CACHE_HOME/workreplica, falling back to
~/.cache/workreplica.
"""

from __future__ import annotations

import os
from pathlib import Path

ENV_DATA_DIR = "WORKREPLICA_DATA_DIR"

DB_FILE_NAME = "replica.db"


def get_xdg_cache_home() -> Path:
    xdg_cache = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache:
        return Path(xdg_cache)
    return Path.home() / ".cache"


def get_data_dir() -> Path:
    """Get the data directory, honoring WORKREPLICA_DATA_DIR."""
    env_dir = os.environ.get(ENV_DATA_DIR)
    if env_dir:
        return Path(env_dir).expanduser()
    return get_xdg_cache_home() / "workreplica"


def get_db_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / DB_FILE_NAME
