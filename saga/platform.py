"""
Saga Platform Helpers
---------------------
Data directory resolution for the default SQLite and Qdrant locations.

Priority: SAGA_DATA_DIR env var > platformdirs user data dir.
Docker override: /data when SAGA_DOCKER=1 or /.dockerenv exists.
"""

import os
import logging
from pathlib import Path

import platformdirs

logger = logging.getLogger("Saga.Platform")

_APP_NAME = "saga"
_APP_AUTHOR = "SagaLabs"


def is_running_in_docker() -> bool:
    """Detect if we're running inside a Docker container."""
    if os.environ.get("SAGA_DOCKER") == "1":
        return True
    return Path("/.dockerenv").exists()


def get_data_dir() -> Path:
    """
    Get the Saga data directory.

    Contains: context.db (SQLite + FTS5), qdrant/ (message embeddings)
    """
    env_val = os.environ.get("SAGA_DATA_DIR")
    if env_val:
        return Path(env_val)
    if is_running_in_docker():
        return Path("/data")
    return Path(platformdirs.user_data_dir(_APP_NAME, _APP_AUTHOR))
