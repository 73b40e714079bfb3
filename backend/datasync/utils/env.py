"""Environment variable helpers.

WHAT:
    Import-time settings (DATABASE_URL, JWT_SECRET) are read before the
    pydantic Settings object exists. These helpers read them from os.environ
    and fall back to a local .env file once.
WHY:
    Developers keep GCP project, OAuth client ids and DATABASE_URL in a
    local .env without touching production variables.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_file_loaded = False


def load_env_file() -> bool:
    """Load a local .env into os.environ once. Existing variables are never overwritten."""
    global _env_file_loaded
    if _env_file_loaded:
        return False
    _env_file_loaded = True

    loaded = load_dotenv(override=False)
    if loaded:
        logger.info("[ENV] Loaded local .env file (existing variables were NOT overwritten)")
    else:
        logger.debug("[ENV] No local .env file found")
    return loaded


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return `name` from the environment, consulting .env when it is unset."""
    value = os.getenv(name)
    if not value:
        load_env_file()
        value = os.getenv(name)
    return value or default


def require_env(name: str, hint: str = "Ensure backend/.env is created or env var is exported.") -> str:
    """Return a mandatory variable or raise RuntimeError (fail fast at startup)."""
    value = get_env(name)
    if not value:
        raise RuntimeError(f"{name} is not set. {hint}")
    return value
