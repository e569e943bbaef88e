from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from patchkit.errors import ProjectRootError
from patchkit.patch_ops import (
    AnchoredTextPatch,
    ManifestXmlPatch,
    StructuredConfigPatch,
    apply_patch_op,
    apply_patch_ops,
    parse_patch_ops,
)

FIXTURES = {
    "app.json": '{\n  "expo": {\n    "name": "App"\n  }\n}\n',
    "ios/App/Info.plist": '<plist version="1.0">\n<dict>\n\t<key>CFBundleName</key>\n\t<string>App</string>\n</dict>\n</plist>\n',
    "ios/App/App.entitlements": '<plist version="1.0">\n<dict>\n</dict>\n</plist>\n',
    "android/app/src/main/AndroidManifest.xml": (
        '<manifest xmlns:android="http://schemas.android.com/apk/res/android">\n'
        '    <application android:name=".MainApplication">\n'
        "    </application>\n"
        "</manifest>\n"
    ),
    "android/app/build.gradle": "dependencies {\n    implementation 'a'\n}\n",
    "ios/Podfile": "target 'App' do\nend\n",
    "metro.config.js": "module.exports = config;\n",
}

RAW_OPS = [
    {"type": "expo-config", "file": "app.json", "capabilityId": "camera", "operationId": "camera-plugin",
     "path": "expo.plugins", "value": ["expo-camera"], "mode": "append"},
    {"type": "plist", "file": "ios/App/Info.plist", "capabilityId": "camera", "operationId": "camera-usage",
     "key": "NSCameraUsageDescription", "value": "Scan"},
    {"type": "entitlements", "file": "ios/App/App.entitlements", "capabilityId": "push", "operationId": "push-env",
     "key": "aps-environment", "value": "development"},
    {"type": "android-manifest", "file": "android/app/src/main/AndroidManifest.xml", "capabilityId": "camera",
     "operationId": "camera-permission", "action": "add", "manifestOp": "permission",
     "name": "android.permission.CAMERA"},
    {"type": "gradle", "file": "android/app/build.gradle", "capabilityId": "camera", "operationId": "camera-dep",
     "anchor": "dependencies {", "content": "implementation 'camera'", "mode": "after"},
    {"type": "podfile", "file": "ios/Podfile", "capabilityId": "camera", "operationId": "camera-pod",
     "anchor": "end", "content": "  pod 'Camera'", "mode": "before"},
    {"type": "text-anchor", "file": "metro.config.js", "capabilityId": "svg", "operationId": "svg-transformer",
     "anchor": "module.exports", "content": "config.transformer.svg = true;", "mode": "before", "ensureUnique": True},
]


@pytest.fixture
def project(tmp_path: Path) -> Path:
    for rel, content in FIXTURES.items():
        p = tmp_path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    return tmp_path


def _snapshot(root: Path) -> dict[str, str]:
    return {rel: (root / rel).read_text(encoding="utf-8") for rel in FIXTURES}


def test_parse_patch_ops_builds_every_variant() -> None:
    ops = parse_patch_ops(RAW_OPS)
    assert [op.type for op in ops] == [
        "expo-config", "plist", "entitlements", "android-manifest", "gradle", "podfile", "text-anchor"
    ]
    assert ops[3].manifest_op == "permission"
    assert ops[6].ensure_unique is True
    assert ops[0].to_dict()["operationId"] == "camera-plugin"


def test_parse_patch_ops_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_patch_ops([{"type": "yaml", "file": "x", "capabilityId": "c", "operationId": "o"}])


def test_every_op_type_is_idempotent(project: Path) -> None:
    ops = parse_patch_ops(RAW_OPS)
    first = apply_patch_ops(project, ops)
    assert [r.action for r in first] == ["applied"] * len(ops)
    after_first = _snapshot(project)

    second = apply_patch_ops(project, ops)

    assert [r.action for r in second] == ["skipped"] * len(ops)
    assert all(r.backup_path is None for r in second)
    assert _snapshot(project) == after_first


def test_backup_holds_pre_mutation_content(project: Path) -> None:
    before = _snapshot(project)
    for result in apply_patch_ops(project, parse_patch_ops(RAW_OPS)):
        assert result.backup_path is not None
        backup = Path(result.backup_path)
        assert backup.is_file()
        assert backup.read_text(encoding="utf-8") == before[result.file]


def test_dry_run_never_touches_disk(project: Path) -> None:
    before = _snapshot(project)
    results = apply_patch_ops(project, parse_patch_ops(RAW_OPS), dry_run=True)
    assert all(r.dry_run and r.action == "applied" for r in results)
    assert all(r.backup_path is None for r in results)
    assert _snapshot(project) == before
    assert not (project / ".rns").exists()


def test_dry_run_reports_missing_anchor(project: Path) -> None:
    op = AnchoredTextPatch(
        type="gradle", file="android/app/build.gradle", capability_id="c", operation_id="o",
        anchor="android {", content="x", mode="after",
    )
    result = apply_patch_op(project, op, dry_run=True)
    assert result.action == "error"
    assert "Anchor not found" in (result.error or "")


def test_missing_anchor_is_error_with_restorable_backup(project: Path) -> None:
    before = _snapshot(project)
    op = AnchoredTextPatch(
        type="text-anchor", file="metro.config.js", capability_id="c", operation_id="o",
        anchor="export default", content="x", mode="before", ensure_unique=True,
    )
    result = apply_patch_op(project, op)
    assert result.action == "error" and not result.success
    assert result.backup_path is not None
    assert Path(result.backup_path).read_text(encoding="utf-8") == before["metro.config.js"]
    assert _snapshot(project) == before


def test_missing_file_is_error(project: Path) -> None:
    op = StructuredConfigPatch(file="app.config.json", capability_id="c", operation_id="o", path="a", value=1)
    result = apply_patch_op(project, op)
    assert result.action == "error"
    assert result.error == "File not found: app.config.json"


def test_malformed_json_is_error(project: Path) -> None:
    (project / "app.json").write_text("{broken", encoding="utf-8")
    op = StructuredConfigPatch(file="app.json", capability_id="c", operation_id="o", path="a", value=1)
    result = apply_patch_op(project, op)
    assert result.action == "error"
    assert "Invalid JSON" in (result.error or "")


def test_batch_continues_after_failure(project: Path) -> None:
    ops = [
        StructuredConfigPatch(file="missing.json", capability_id="c", operation_id="o1", path="a", value=1),
        StructuredConfigPatch(file="app.json", capability_id="c", operation_id="o2", path="expo.slug", value="app"),
    ]
    results = apply_patch_ops(project, ops)
    assert [r.action for r in results] == ["error", "applied"]
    assert json.loads((project / "app.json").read_text(encoding="utf-8"))["expo"]["slug"] == "app"


def test_missing_project_root_raises(tmp_path: Path) -> None:
    with pytest.raises(ProjectRootError):
        apply_patch_ops(tmp_path / "nope", [])


def test_merge_scenario_then_rerun_is_byte_identical(project: Path) -> None:
    (project / "app.json").write_text('{"extra": {"feature": {"name": "x"}}}', encoding="utf-8")
    op = StructuredConfigPatch(
        file="app.json", capability_id="feature", operation_id="feature-enable",
        path="extra.feature", value={"enabled": True}, mode="merge",
    )
    first = apply_patch_op(project, op)
    after_first = (project / "app.json").read_bytes()
    second = apply_patch_op(project, op)

    assert first.action == "applied"
    data = json.loads(after_first)
    assert data["extra"] == {"feature": {"name": "x", "enabled": True}}
    assert second.action == "skipped"
    assert (project / "app.json").read_bytes() == after_first


def test_camera_permission_with_two_ids_is_noop_second_time(project: Path) -> None:
    manifest = project / "android/app/src/main/AndroidManifest.xml"

    def op(operation_id: str) -> ManifestXmlPatch:
        return ManifestXmlPatch(
            file="android/app/src/main/AndroidManifest.xml", capability_id="camera", operation_id=operation_id,
            manifest_op="permission", name="CAMERA",
        )

    first = apply_patch_op(project, op("camera-a"))
    after_first = manifest.read_text(encoding="utf-8")
    second = apply_patch_op(project, op("camera-b"))

    assert first.action == "applied"
    assert second.action == "skipped" and second.success
    assert manifest.read_text(encoding="utf-8") == after_first
    assert after_first.count('android:name="CAMERA"') == 1


def test_manifest_remove_uses_same_operation_id(project: Path) -> None:
    manifest = project / "android/app/src/main/AndroidManifest.xml"
    original = manifest.read_text(encoding="utf-8")
    add = ManifestXmlPatch(
        file="android/app/src/main/AndroidManifest.xml", capability_id="camera", operation_id="camera-perm",
        manifest_op="permission", name="android.permission.CAMERA",
    )
    remove = add.model_copy(update={"action": "remove"})

    assert apply_patch_op(project, add).action == "applied"
    assert apply_patch_op(project, remove).action == "applied"
    assert manifest.read_text(encoding="utf-8") == original
    assert apply_patch_op(project, remove).action == "skipped"


def test_result_to_dict_uses_wire_names(project: Path) -> None:
    op = StructuredConfigPatch(file="app.json", capability_id="c", operation_id="o", path="a", value=1)
    d = apply_patch_op(project, op).to_dict()
    assert d["success"] is True
    assert d["capabilityId"] == "c"
    assert d["operationId"] == "o"
    assert d["patchType"] == "expo-config"
    assert d["action"] == "applied"
    assert "backupPath" in d
    assert "error" not in d
