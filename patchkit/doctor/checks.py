"""Individual project doctor checks.

Each check returns findings for its own check id and does not look at the
results of the others.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from patchkit.constants import (
    PLUGIN_PACKAGE_PREFIX,
    PROJECT_STATE_FILE,
    REGION_MARKER_PREFIX,
    RUNTIME_ENTRY_FILES,
    SOURCE_FILE_SUFFIXES,
    WORKSPACE_PACKAGES_DIR,
)
from patchkit.doctor.types import DoctorContext, DoctorFinding, format_issue_list
from patchkit.errors import ManifestError
from patchkit.manifest.models import ProjectManifest
from patchkit.manifest.store import manifest_path, peek_manifest, validate_manifest
from patchkit.markers.ledger import INJECTION_MARKER_PATTERN, count_marker_ids
from patchkit.markers.regions import scan_marker_issues, validate_all_markers
from patchkit.plugins.registry import PluginRegistry, plugin_dir_name
from patchkit.project_files.fs import is_directory, is_file, read_json, read_text_or_none, relative_posix, walk_files
from patchkit.project_files.zones import OwnershipZone, classify_path, zone_roots

logger = logging.getLogger(__name__)

MIGRATION_FIX_HINT = 'Manifest needs migration. Run "rns doctor --fix" to migrate it in place'


def check_manifest_exists(project_root: Path) -> DoctorFinding:
    if not is_file(manifest_path(project_root)):
        return DoctorFinding(
            check_id="manifest.exists",
            name="Manifest exists",
            severity="error",
            passed=False,
            message=f"Project manifest ({PROJECT_STATE_FILE}) not found",
            fix='Run "rns init" to initialize the project',
            target=PROJECT_STATE_FILE,
        )
    return DoctorFinding("manifest.exists", "Manifest exists", "error", True, target=PROJECT_STATE_FILE)


def check_manifest_valid(project_root: Path) -> DoctorFinding:
    base = DoctorFinding("manifest.valid", "Manifest valid", "error", False, target=PROJECT_STATE_FILE)
    try:
        data = read_json(manifest_path(project_root))
    except (OSError, ValueError) as e:
        return replace(base, message=f"Failed to read manifest: {e}", fix="Check manifest file format and permissions")

    result = validate_manifest(data)
    if result.valid and not result.needs_migration:
        return replace(base, passed=True)
    if result.valid:
        return replace(base, message="; ".join(result.warnings), fix=MIGRATION_FIX_HINT)
    return replace(
        base,
        message=f"Manifest validation failed: {', '.join(result.errors)}",
        fix=f"Correct the listed fields in {PROJECT_STATE_FILE}",
    )


def check_markers(project_root: Path, ctx: DoctorContext, limit: int) -> DoctorFinding:
    problems: list[str] = list(validate_all_markers(project_root))
    first_file: str | None = None
    for root in zone_roots(ctx.zone_policy.system_patterns):
        for path in walk_files(project_root / root, suffixes=SOURCE_FILE_SUFFIXES):
            text = read_text_or_none(path)
            if not text or REGION_MARKER_PREFIX not in text:
                continue
            rel = relative_posix(path, project_root) or str(path)
            issues = scan_marker_issues(text, rel)
            if issues and first_file is None:
                first_file = rel
            problems.extend(i.describe() for i in issues)

    if not problems:
        return DoctorFinding("markers.intact", "Markers intact", "error", True)
    return DoctorFinding(
        check_id="markers.intact",
        name="Markers intact",
        severity="error",
        passed=False,
        message=f"Marker validation failed: {len(problems)} error(s)",
        fix=format_issue_list("Fix marker issues", problems, limit),
        target=first_file or RUNTIME_ENTRY_FILES[0],
    )


def _has_cli_marker(text: str) -> bool:
    return REGION_MARKER_PREFIX in text or INJECTION_MARKER_PATTERN.search(text) is not None


def check_ownership_zones(project_root: Path, ctx: DoctorContext, limit: int) -> DoctorFinding:
    violations: list[str] = []
    policy = ctx.zone_policy

    for root in zone_roots(policy.system_patterns):
        for path in walk_files(project_root / root, suffixes=SOURCE_FILE_SUFFIXES):
            if classify_path(path, project_root, policy=policy) is not OwnershipZone.SYSTEM:
                violations.append(f"{relative_posix(path, project_root) or path}: outside the CLI-managed zone")

    for root in zone_roots(policy.user_patterns):
        for path in walk_files(project_root / root, suffixes=SOURCE_FILE_SUFFIXES):
            text = read_text_or_none(path)
            if text and _has_cli_marker(text):
                violations.append(f"{relative_posix(path, project_root) or path}: CLI marker in user-owned file")

    if not violations:
        return DoctorFinding("ownership.zones", "Ownership zones intact", "error", True)
    return DoctorFinding(
        check_id="ownership.zones",
        name="Ownership zones intact",
        severity="error",
        passed=False,
        message=f"Ownership zone violations detected: {len(violations)} file(s)",
        fix=format_issue_list("Review and fix ownership violations", violations, limit),
        target=violations[0].split(":", 1)[0],
    )


def check_duplicate_injections(project_root: Path, limit: int) -> DoctorFinding:
    duplicates: list[str] = []
    first_file: str | None = None
    for rel in RUNTIME_ENTRY_FILES:
        text = read_text_or_none(project_root / rel)
        if not text:
            continue
        for operation_id, count in sorted(count_marker_ids(text).items()):
            if count > 1:
                duplicates.append(f"{rel}: {operation_id} ({count} times)")
                first_file = first_file or rel

    if not duplicates:
        return DoctorFinding("injections.duplicates", "No duplicate injections", "error", True)
    return DoctorFinding(
        check_id="injections.duplicates",
        name="No duplicate injections",
        severity="error",
        passed=False,
        message=f"Duplicate injections detected: {len(duplicates)} occurrence(s)",
        fix=format_issue_list("Remove duplicate injection markers", duplicates, limit),
        target=first_file,
    )


def _workspace_plugin_packages(project_root: Path) -> list[str]:
    base = project_root / WORKSPACE_PACKAGES_DIR
    if not is_directory(base):
        return []
    return sorted(p.name for p in base.iterdir() if p.is_dir() and p.name.startswith(PLUGIN_PACKAGE_PREFIX))


async def check_plugin_consistency(
    project_root: Path, manifest: ProjectManifest, ctx: DoctorContext, limit: int
) -> DoctorFinding:
    registry = ctx.registry if ctx.registry is not None else PluginRegistry()
    await registry.initialize()

    inconsistencies: list[str] = []
    installed = {p.id for p in manifest.plugins}
    packages = _workspace_plugin_packages(project_root)
    package_names = set(packages)

    for plugin in manifest.plugins:
        candidates = {f"{PLUGIN_PACKAGE_PREFIX}{plugin.id}", f"{PLUGIN_PACKAGE_PREFIX}{plugin_dir_name(plugin.id)}"}
        if not candidates & package_names:
            inconsistencies.append(
                f"Plugin {plugin.id} is in manifest but package not found at "
                f"{WORKSPACE_PACKAGES_DIR}/{PLUGIN_PACKAGE_PREFIX}{plugin.id}"
            )
        if not registry.has_plugin(plugin.id):
            inconsistencies.append(f"Plugin {plugin.id} is installed but not found in plugin registry")

    known_dirs = {f"{PLUGIN_PACKAGE_PREFIX}{i}" for i in installed} | {
        f"{PLUGIN_PACKAGE_PREFIX}{plugin_dir_name(i)}" for i in installed
    }
    for name in packages:
        if name not in known_dirs:
            inconsistencies.append(f"Plugin package {name} exists but not in manifest")

    if not inconsistencies:
        return DoctorFinding("plugins.consistent", "Plugins consistent", "warning", True)
    return DoctorFinding(
        check_id="plugins.consistent",
        name="Plugins consistent",
        severity="warning",
        passed=False,
        message=f"Plugin inconsistencies detected: {len(inconsistencies)} issue(s)",
        fix=format_issue_list("Fix plugin inconsistencies", inconsistencies, limit),
        target=WORKSPACE_PACKAGES_DIR,
    )


def load_manifest_for_checks(project_root: Path) -> ProjectManifest | None:
    """Manifest as seen by the doctor: migrated in memory, never written.

    None when the manifest is absent or unusable; `manifest.valid` already
    reports why.
    """
    try:
        return peek_manifest(project_root)
    except ManifestError as e:
        logger.info("Manifest unusable, skipping manifest-dependent checks: %s", e)
        return None
