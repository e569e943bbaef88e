from __future__ import annotations

import json
from pathlib import Path

import pytest

from patchkit.errors import ManifestError, ManifestNotFoundError
from patchkit.manifest.migrations import can_migrate, migrate_manifest_data, migration_path
from patchkit.manifest.models import CURRENT_SCHEMA_VERSION, InstalledPluginRecord, PermissionRequirement
from patchkit.manifest.store import (
    add_module,
    add_plugin,
    create_manifest,
    get_plugin,
    manifest_path,
    migrate_manifest_file,
    peek_manifest,
    read_manifest,
    remove_plugin,
    require_manifest,
    validate_manifest,
)

LEGACY_MANIFEST = {
    "schemaVersion": "0.9.0",
    "identity": {"name": "demo"},
    "target": "expo",
    "language": "ts",
    "packageManager": "pnpm",
    "createdAt": "2025-01-01T00:00:00+00:00",
    "plugins": {"auth.clerk": {"version": "1.2.0"}},
}


def _init(root: Path):
    return create_manifest(root, name="demo", target="expo", language="ts", package_manager="pnpm", cli_version="0.4.0")


def _write_raw(root: Path, data: dict) -> Path:
    path = manifest_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _record(plugin_id: str, *perms: tuple[str, bool]) -> InstalledPluginRecord:
    return InstalledPluginRecord(
        id=plugin_id,
        version="1.0.0",
        installed_at="2026-01-01T00:00:00+00:00",
        permissions=[PermissionRequirement(permission_id=p, mandatory=m) for p, m in perms] or None,
    )


def test_create_then_read(tmp_path: Path) -> None:
    created = _init(tmp_path)
    raw = json.loads(manifest_path(tmp_path).read_text(encoding="utf-8"))
    assert raw["schemaVersion"] == CURRENT_SCHEMA_VERSION
    assert raw["workspaceModel"] == "Option A"
    assert raw["identity"] == {"name": "demo", "displayName": "demo"}
    assert raw["packageManager"] == "pnpm"
    assert raw["plugins"] == []
    assert "updatedAt" in raw

    loaded = read_manifest(tmp_path)
    assert loaded is not None
    assert loaded.identity.name == "demo"
    assert loaded.cli_version == "0.4.0"
    assert loaded.created_at == created.created_at


def test_read_missing_returns_none(tmp_path: Path) -> None:
    assert read_manifest(tmp_path) is None
    assert peek_manifest(tmp_path) is None


def test_require_manifest_raises_when_missing(tmp_path: Path) -> None:
    with pytest.raises(ManifestNotFoundError, match="rns init"):
        require_manifest(tmp_path)


def test_validate_missing_schema_version() -> None:
    result = validate_manifest({"identity": {"name": "x"}})
    assert not result.valid
    assert "Missing schemaVersion" in result.errors


def test_validate_rejects_unknown_and_newer_versions() -> None:
    for version in ("0.1.0", "2.0.0"):
        result = validate_manifest({**LEGACY_MANIFEST, "schemaVersion": version})
        assert not result.valid
        assert any("Unsupported schemaVersion" in e for e in result.errors)
        assert not result.needs_migration


def test_validate_reports_field_errors() -> None:
    result = validate_manifest(
        {
            "schemaVersion": CURRENT_SCHEMA_VERSION,
            "workspaceModel": "Option A",
            "identity": {"name": "demo"},
            "target": "cordova",
            "language": "ts",
            "packageManager": "npm",
            "createdAt": "2026-01-01",
        }
    )
    assert not result.valid
    assert any(e.startswith("target:") for e in result.errors)


def test_validate_non_object() -> None:
    assert validate_manifest([]).errors == ["Manifest must be a JSON object"]


def test_legacy_manifest_needs_migration() -> None:
    result = validate_manifest(LEGACY_MANIFEST)
    assert result.valid
    assert result.needs_migration
    assert result.warnings
    assert result.to_dict()["needsMigration"] is True


def test_migration_chain() -> None:
    assert migration_path("0.9.0") == ["0.9.0", CURRENT_SCHEMA_VERSION]
    assert can_migrate(CURRENT_SCHEMA_VERSION)
    assert not can_migrate("0.8.0")
    assert not can_migrate(None)

    migrated = migrate_manifest_data(LEGACY_MANIFEST)
    assert migrated is not None
    assert migrated["schemaVersion"] == CURRENT_SCHEMA_VERSION
    assert migrated["plugins"] == [
        {"id": "auth.clerk", "version": "1.2.0", "installedAt": "2025-01-01T00:00:00+00:00"}
    ]
    # Input is left alone.
    assert isinstance(LEGACY_MANIFEST["plugins"], dict)


def test_peek_does_not_write_but_read_migrates_in_place(tmp_path: Path) -> None:
    path = _write_raw(tmp_path, LEGACY_MANIFEST)
    before = path.read_bytes()

    peeked = peek_manifest(tmp_path)
    assert peeked is not None and peeked.get_plugin("auth.clerk") is not None
    assert path.read_bytes() == before

    loaded = read_manifest(tmp_path)
    assert loaded is not None
    assert json.loads(path.read_text(encoding="utf-8"))["schemaVersion"] == CURRENT_SCHEMA_VERSION


def test_migrate_manifest_file(tmp_path: Path) -> None:
    assert migrate_manifest_file(tmp_path) is False
    _write_raw(tmp_path, LEGACY_MANIFEST)
    assert migrate_manifest_file(tmp_path) is True
    assert validate_manifest(json.loads(manifest_path(tmp_path).read_text(encoding="utf-8"))).needs_migration is False


def test_unmigratable_manifest_raises(tmp_path: Path) -> None:
    _write_raw(tmp_path, {**LEGACY_MANIFEST, "schemaVersion": "0.1.0"})
    with pytest.raises(ManifestError) as exc:
        read_manifest(tmp_path)
    assert exc.value.errors
    assert migrate_manifest_file(tmp_path) is False


def test_corrupt_manifest_raises(tmp_path: Path) -> None:
    path = manifest_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ManifestError, match="Failed to read"):
        read_manifest(tmp_path)


def test_add_get_remove_plugin(tmp_path: Path) -> None:
    _init(tmp_path)
    add_plugin(tmp_path, _record("auth.clerk", ("camera", True)))
    add_plugin(tmp_path, _record("auth.clerk", ("camera", True)).model_copy(update={"version": "1.1.0"}))

    manifest = require_manifest(tmp_path)
    assert [p.id for p in manifest.plugins] == ["auth.clerk"]
    record = get_plugin(tmp_path, "auth.clerk")
    assert record is not None and record.version == "1.1.0"
    assert record.updated_at is not None

    assert remove_plugin(tmp_path, "auth.clerk") is True
    assert remove_plugin(tmp_path, "auth.clerk") is False
    assert get_plugin(tmp_path, "auth.clerk") is None


def test_permissions_are_aggregated(tmp_path: Path) -> None:
    _init(tmp_path)
    add_plugin(tmp_path, _record("media.camera", ("camera", True), ("microphone", False)))
    manifest = add_plugin(tmp_path, _record("media.scanner", ("camera", False)))

    perms = manifest.permissions
    assert perms is not None
    assert perms.permission_ids == ["camera", "microphone"]
    assert perms.mandatory == ["camera"]
    assert perms.optional == ["microphone", "camera"]
    assert set(perms.by_plugin) == {"media.camera", "media.scanner"}

    raw = json.loads(manifest_path(tmp_path).read_text(encoding="utf-8"))
    assert raw["permissions"]["byPlugin"]["media.camera"]["pluginId"] == "media.camera"


def test_duplicate_plugin_ids_are_invalid() -> None:
    entry = {"id": "auth.clerk", "version": "1.0.0", "installedAt": "2026-01-01"}
    result = validate_manifest(
        {
            "schemaVersion": CURRENT_SCHEMA_VERSION,
            "workspaceModel": "Option A",
            "identity": {"name": "demo"},
            "target": "bare",
            "language": "js",
            "packageManager": "yarn",
            "createdAt": "2026-01-01",
            "plugins": [entry, entry],
        }
    )
    assert not result.valid
    assert any("duplicate plugin id" in e for e in result.errors)


def test_add_module(tmp_path: Path) -> None:
    _init(tmp_path)
    manifest = add_module(tmp_path, _record("feature.auth"))
    assert [m.id for m in manifest.modules or []] == ["feature.auth"]
    assert require_manifest(tmp_path).modules is not None
