from __future__ import annotations

import logging
import os

from patchkit.constants import CLI_BACKUPS_DIR

logger = logging.getLogger(__name__)


def _env_str(name: str) -> str:
    return str(os.environ.get(name) or "").strip()


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %d", name, raw, default)
        return int(default)


def backups_dir() -> str:
    """Backup root, relative to the project root unless absolute."""
    return _env_str("PATCHKIT_BACKUPS_DIR") or CLI_BACKUPS_DIR


def doctor_preview_limit() -> int:
    # Number of issues listed in a doctor finding's fix hint.
    return max(1, _env_int("PATCHKIT_DOCTOR_PREVIEW_LIMIT", 5))


def plugins_dir() -> str | None:
    return _env_str("PATCHKIT_PLUGINS_DIR") or None
