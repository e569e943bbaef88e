"""Single-step manifest schema migrations.

A manifest at version V is migratable when following registered steps from V
reaches the current version. Anything else (unknown, newer, missing) is not.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from patchkit.manifest.models import CURRENT_SCHEMA_VERSION, WORKSPACE_MODEL

logger = logging.getLogger(__name__)

MigrationStep = Callable[[dict[str, Any]], dict[str, Any]]

# from_version -> (to_version, step)
_MIGRATIONS: dict[str, tuple[str, MigrationStep]] = {}


def register_migration(from_version: str, to_version: str, step: MigrationStep) -> None:
    if from_version == to_version:
        raise ValueError("migration must change the schema version")
    _MIGRATIONS[from_version] = (to_version, step)


def migration_path(from_version: str | None) -> list[str] | None:
    """Versions visited from `from_version` to current, or None when unreachable."""
    if not from_version:
        return None
    path = [from_version]
    current = from_version
    while current != CURRENT_SCHEMA_VERSION:
        nxt = _MIGRATIONS.get(current)
        if nxt is None or nxt[0] in path:
            return None
        current = nxt[0]
        path.append(current)
    return path


def can_migrate(from_version: str | None) -> bool:
    return migration_path(from_version) is not None


def migrate_manifest_data(data: dict[str, Any]) -> dict[str, Any] | None:
    """Return a migrated copy of raw manifest data, or None when unmigratable.

    Data already at the current version is returned unchanged (as a copy).
    """
    version = data.get("schemaVersion")
    path = migration_path(version if isinstance(version, str) else None)
    if path is None:
        return None
    out = copy.deepcopy(data)
    for v in path[:-1]:
        to_version, step = _MIGRATIONS[v]
        out = step(out)
        out["schemaVersion"] = to_version
        logger.info("Migrated manifest schema %s -> %s", v, to_version)
    return out


def _from_0_9_0(data: dict[str, Any]) -> dict[str, Any]:
    # 0.9.0 stored plugins as a {id: record} map and had no installedAt.
    fallback = data.get("createdAt") or datetime.now(UTC).isoformat()
    plugins = data.get("plugins")
    if isinstance(plugins, dict):
        plugins = [{"id": pid, **(rec if isinstance(rec, dict) else {})} for pid, rec in plugins.items()]
    records = []
    for rec in plugins or []:
        if isinstance(rec, dict):
            rec = dict(rec)
            rec.setdefault("installedAt", fallback)
        records.append(rec)
    data["plugins"] = records
    data.setdefault("workspaceModel", WORKSPACE_MODEL)
    data.setdefault("createdAt", fallback)
    return data


register_migration("0.9.0", CURRENT_SCHEMA_VERSION, _from_0_9_0)
