"""
Centralized configuration module for application-wide settings.

Every setting is read from the environment (optionally populated from a
``.env`` file by ``main.py``) through a small getter, so tests can override a
value by setting the variable before the getter is called.
"""

import logging
import os
from typing import FrozenSet

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid integer '{raw}' in {name}. Falling back to {default}.",
            extra={"context": {"variable": name, "value": raw}},
        )
        return default


# ===========================
# Catalog Configuration
# ===========================


def get_catalog_api_url() -> str:
    """
    Get the base URL of the inventory catalog service.

    Environment Variables:
        CATALOG_API_URL: Base URL, the client appends ``/almacenes``.
            Default: 'http://localhost:3000'
    """
    return os.getenv("CATALOG_API_URL", "http://localhost:3000").rstrip("/")


def get_catalog_timeout() -> int:
    """Seconds to wait for the catalog service before giving up."""
    return _get_int("CATALOG_TIMEOUT_SECONDS", 30)


# ===========================
# Assignment Rules
# ===========================

# Every warehouse holds the same number of users. Not read from the environment.
WAREHOUSE_CAPACITY = 3


def get_default_excluded_ids() -> FrozenSet[int]:
    """
    Get the exclusion set seeded into the configuration document on first run.

    Environment Variables:
        DEFAULT_EXCLUDED_WAREHOUSE_IDS: Comma separated warehouse ids.
            Default: '1' (the main store, which never leaves as a van)
    """
    raw = os.getenv("DEFAULT_EXCLUDED_WAREHOUSE_IDS", "1")
    ids = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            logger.warning(
                f"Ignoring non-numeric warehouse id '{part}' in DEFAULT_EXCLUDED_WAREHOUSE_IDS"
            )
    return frozenset(ids)


def get_reset_confirmation_phrase() -> str:
    """Phrase the operator must type before a system-wide reset."""
    return os.getenv("RESET_CONFIRMATION_PHRASE", "RESTABLECER")


def get_clear_stale_assignments() -> bool:
    """
    Whether reconciliation writes back a null for users whose stored warehouse
    is unknown or excluded.

    Environment Variables:
        CLEAR_STALE_ASSIGNMENTS: Default 'false' (stale values are only logged)
    """
    return _get_bool("CLEAR_STALE_ASSIGNMENTS", "false")


# ===========================
# Sync Configuration
# ===========================


def get_sync_writes_inline() -> bool:
    """
    Run remote writes on the calling thread instead of the background worker.

    Forced on while TESTING is set so test runs stay deterministic.
    """
    return _get_bool("SYNC_WRITES_INLINE", "false") or _get_bool("TESTING", "false")


def get_sync_max_workers() -> int:
    return max(1, _get_int("SYNC_MAX_WORKERS", 4))


# ===========================
# Runtime Configuration
# ===========================


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./app.db")


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO")


def get_log_json() -> bool:
    return _get_bool("LOG_JSON", "false")


def log_assignment_config():
    """
    Log the active assignment configuration.

    Should be called during application startup to provide visibility
    into the rules the engine enforces.
    """
    logger.info(
        "Assignment configuration initialized",
        extra={
            "context": {
                "catalog_api_url": get_catalog_api_url(),
                "warehouse_capacity": WAREHOUSE_CAPACITY,
                "default_excluded_ids": sorted(get_default_excluded_ids()),
                "clear_stale_assignments": get_clear_stale_assignments(),
                "sync_writes_inline": get_sync_writes_inline(),
            }
        },
    )
