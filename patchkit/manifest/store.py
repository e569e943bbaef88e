"""Read/write the project manifest and keep its plugin bookkeeping consistent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from patchkit.constants import PROJECT_STATE_FILE
from patchkit.errors import ManifestError, ManifestNotFoundError
from patchkit.manifest.migrations import can_migrate, migrate_manifest_data
from patchkit.manifest.models import (
    CURRENT_SCHEMA_VERSION,
    WORKSPACE_MODEL,
    AggregatedPermissions,
    InstalledPluginRecord,
    PluginPermissions,
    ProjectIdentity,
    ProjectManifest,
)
from patchkit.project_files.fs import is_file, read_json, write_json

_log = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def manifest_path(project_root: str | Path) -> Path:
    return Path(project_root) / PROJECT_STATE_FILE


@dataclass(frozen=True)
class ManifestValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    needs_migration: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "needsMigration": self.needs_migration,
        }


def _format_validation_error(e: ValidationError) -> list[str]:
    out: list[str] = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = str(err.get("msg") or "invalid")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def validate_manifest(data: Any) -> ManifestValidationResult:
    """Validate raw manifest data.

    An older schema version that has a migration path is a warning; a missing,
    unknown or newer version is an error.
    """
    if not isinstance(data, dict):
        return ManifestValidationResult(valid=False, errors=["Manifest must be a JSON object"])

    errors: list[str] = []
    warnings: list[str] = []
    needs_migration = False
    version = data.get("schemaVersion")
    candidate = data

    if not version:
        errors.append("Missing schemaVersion")
    elif version != CURRENT_SCHEMA_VERSION:
        if can_migrate(str(version)):
            needs_migration = True
            warnings.append(f"Schema version {version} is not current ({CURRENT_SCHEMA_VERSION})")
            candidate = migrate_manifest_data(data) or data
        else:
            errors.append(f"Unsupported schemaVersion {version} (current is {CURRENT_SCHEMA_VERSION})")

    try:
        ProjectManifest.model_validate({**candidate, "schemaVersion": CURRENT_SCHEMA_VERSION})
    except ValidationError as e:
        errors.extend(_format_validation_error(e))

    return ManifestValidationResult(
        valid=not errors, errors=errors, warnings=warnings, needs_migration=needs_migration and not errors
    )


def _load_raw(project_root: str | Path) -> Any:
    path = manifest_path(project_root)
    try:
        return read_json(path)
    except (OSError, ValueError) as e:
        raise ManifestError(f"Failed to read project manifest from {PROJECT_STATE_FILE}: {e}") from e


def read_manifest(project_root: str | Path) -> ProjectManifest | None:
    """Load the manifest; None when absent.

    Raises ManifestError when the file is unreadable, invalid or unmigratable.
    An older but migratable manifest is migrated and written back.
    """
    if not is_file(manifest_path(project_root)):
        return None
    data = _load_raw(project_root)
    result = validate_manifest(data)
    if not result.valid:
        raise ManifestError(f"Invalid project manifest: {', '.join(result.errors)}", result.errors)
    if result.needs_migration:
        migrated = migrate_manifest_data(data)
        if migrated is None:
            raise ManifestError(f"Cannot migrate manifest from schema {data.get('schemaVersion')}")
        manifest = ProjectManifest.model_validate(migrated)
        write_manifest(project_root, manifest)
        return manifest
    return ProjectManifest.model_validate(data)


def peek_manifest(project_root: str | Path) -> ProjectManifest | None:
    """Like read_manifest, but an older schema is migrated in memory only."""
    if not is_file(manifest_path(project_root)):
        return None
    data = _load_raw(project_root)
    result = validate_manifest(data)
    if not result.valid:
        raise ManifestError(f"Invalid project manifest: {', '.join(result.errors)}", result.errors)
    if result.needs_migration:
        data = migrate_manifest_data(data) or data
    return ProjectManifest.model_validate(data)


def write_manifest(project_root: str | Path, manifest: ProjectManifest) -> None:
    manifest.updated_at = _now_iso()
    manifest.schema_version = CURRENT_SCHEMA_VERSION
    data = manifest.to_dict()
    result = validate_manifest(data)
    if not result.valid:
        raise ManifestError(f"Cannot write invalid manifest: {', '.join(result.errors)}", result.errors)
    write_json(manifest_path(project_root), data)
    _log.debug("Wrote manifest %s", manifest_path(project_root))


def migrate_manifest_file(project_root: str | Path) -> bool:
    """Migrate the on-disk manifest in place; True when it ends up current and valid."""
    if not is_file(manifest_path(project_root)):
        return False
    try:
        data = _load_raw(project_root)
    except ManifestError:
        _log.warning("Manifest migration skipped: file unreadable")
        return False
    if not isinstance(data, dict):
        return False
    migrated = migrate_manifest_data(data)
    if migrated is None:
        return False
    try:
        manifest = ProjectManifest.model_validate(migrated)
        write_manifest(project_root, manifest)
    except (ValidationError, ManifestError) as e:
        _log.warning("Manifest migration produced an invalid manifest: %s", e)
        return False
    return True


def create_manifest(
    project_root: str | Path,
    *,
    name: str,
    target: str,
    language: str,
    package_manager: str,
    cli_version: str = "",
    display_name: str | None = None,
    core_toggles: dict[str, bool] | None = None,
) -> ProjectManifest:
    manifest = ProjectManifest(
        schema_version=CURRENT_SCHEMA_VERSION,
        cli_version=cli_version,
        workspace_model=WORKSPACE_MODEL,
        identity=ProjectIdentity(name=name, display_name=display_name or name),
        target=target,
        language=language,
        package_manager=package_manager,
        core_toggles=core_toggles,
        plugins=[],
        modules=[],
        created_at=_now_iso(),
    )
    write_manifest(project_root, manifest)
    return manifest


def require_manifest(project_root: str | Path) -> ProjectManifest:
    manifest = read_manifest(project_root)
    if manifest is None:
        raise ManifestNotFoundError(
            f"Project is not initialized. Missing {PROJECT_STATE_FILE}.\n"
            "Run 'rns init' to initialize the project."
        )
    return manifest


def aggregate_permissions(plugins: list[InstalledPluginRecord]) -> AggregatedPermissions:
    agg = AggregatedPermissions()
    for plugin in plugins:
        if not plugin.permissions:
            continue
        agg.by_plugin[plugin.id] = PluginPermissions(
            plugin_id=plugin.id, permissions=[p.model_copy() for p in plugin.permissions]
        )
        for perm in plugin.permissions:
            if perm.permission_id not in agg.permission_ids:
                agg.permission_ids.append(perm.permission_id)
            bucket = agg.mandatory if perm.mandatory else agg.optional
            if perm.permission_id not in bucket:
                bucket.append(perm.permission_id)
    return agg


def _upsert(records: list[InstalledPluginRecord], record: InstalledPluginRecord) -> list[InstalledPluginRecord]:
    out = list(records)
    for i, existing in enumerate(out):
        if existing.id == record.id:
            merged = existing.model_dump(exclude_none=True)
            merged.update(record.model_dump(exclude_none=True))
            merged["updated_at"] = _now_iso()
            out[i] = InstalledPluginRecord.model_validate(merged)
            return out
    out.append(record)
    return out


def add_plugin(project_root: str | Path, record: InstalledPluginRecord) -> ProjectManifest:
    """Insert or update a plugin record (unique by id) and refresh permissions."""
    manifest = require_manifest(project_root)
    manifest.plugins = _upsert(manifest.plugins, record)
    manifest.permissions = aggregate_permissions(manifest.plugins)
    write_manifest(project_root, manifest)
    _log.info("Recorded plugin %s@%s in manifest", record.id, record.version)
    return manifest


def remove_plugin(project_root: str | Path, plugin_id: str) -> bool:
    manifest = require_manifest(project_root)
    kept = [p for p in manifest.plugins if p.id != plugin_id]
    if len(kept) == len(manifest.plugins):
        return False
    manifest.plugins = kept
    manifest.permissions = aggregate_permissions(manifest.plugins)
    write_manifest(project_root, manifest)
    _log.info("Removed plugin %s from manifest", plugin_id)
    return True


def get_plugin(project_root: str | Path, plugin_id: str) -> InstalledPluginRecord | None:
    return require_manifest(project_root).get_plugin(plugin_id)


def add_module(project_root: str | Path, record: InstalledPluginRecord) -> ProjectManifest:
    manifest = require_manifest(project_root)
    manifest.modules = _upsert(manifest.modules or [], record)
    write_manifest(project_root, manifest)
    return manifest
