"""Project doctor: verify a generated project and optionally repair safe drift."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from patchkit import config
from patchkit.doctor.checks import (
    check_duplicate_injections,
    check_manifest_exists,
    check_manifest_valid,
    check_markers,
    check_ownership_zones,
    check_plugin_consistency,
    load_manifest_for_checks,
)
from patchkit.doctor.types import CheckId, DoctorContext, DoctorFinding, ProjectDoctorReport, Severity
from patchkit.manifest.store import migrate_manifest_file
from patchkit.project_files.zones import DEFAULT_ZONE_POLICY, ZonePolicy, is_cli_managed

logger = logging.getLogger(__name__)


def _crashed(check_id: CheckId, name: str, severity: Severity, e: Exception) -> DoctorFinding:
    return DoctorFinding(check_id, name, severity, False, message=f"Check crashed: {e}")


def _guard(check_id: CheckId, name: str, severity: Severity, fn: Callable[[], DoctorFinding]) -> DoctorFinding:
    try:
        return fn()
    except Exception as e:
        logger.exception("Doctor check %s crashed", check_id)
        return _crashed(check_id, name, severity, e)


async def _guard_async(
    check_id: CheckId, name: str, severity: Severity, fn: Callable[[], Awaitable[DoctorFinding]]
) -> DoctorFinding:
    try:
        return await fn()
    except Exception as e:
        logger.exception("Doctor check %s crashed", check_id)
        return _crashed(check_id, name, severity, e)


def is_fixable(finding: DoctorFinding, project_root: str | Path, policy: ZonePolicy = DEFAULT_ZONE_POLICY) -> bool:
    """Unpassed, carries a fix hint, and targets a SYSTEM-zone path."""
    if finding.passed or not finding.fix or not finding.target:
        return False
    return is_cli_managed(Path(project_root) / finding.target, project_root, policy=policy)


def apply_safe_fixes(
    project_root: str | Path,
    fixable: list[DoctorFinding],
    *,
    policy: ZonePolicy = DEFAULT_ZONE_POLICY,
) -> list[DoctorFinding]:
    """Run whitelisted repairs; returns the findings that are now resolved.

    Only manifest migration is automated. Everything else stays reported.
    """
    fixed: list[DoctorFinding] = []
    for finding in fixable:
        if not is_fixable(finding, project_root, policy):
            logger.info("Not auto-fixing %s: target %r is not CLI-managed", finding.check_id, finding.target)
            continue
        if finding.check_id == "manifest.valid":
            if migrate_manifest_file(project_root) and check_manifest_valid(Path(project_root)).passed:
                logger.info("Migrated project manifest")
                fixed.append(finding.resolved("Manifest migrated successfully"))
            else:
                logger.warning("Manifest migration did not produce a valid manifest")
            continue
        logger.debug("No automatic repair for %s", finding.check_id)
    return fixed


async def run_project_doctor(
    project_root: str | Path,
    fix: bool = False,
    context: DoctorContext | None = None,
) -> ProjectDoctorReport:
    """Run every project check and aggregate a report. Never raises."""
    root = Path(project_root)
    ctx = context or DoctorContext()
    limit = max(1, ctx.preview_limit or config.doctor_preview_limit())
    findings: list[DoctorFinding] = []

    exists = _guard("manifest.exists", "Manifest exists", "error", lambda: check_manifest_exists(root))
    findings.append(exists)
    if exists.passed:
        findings.append(_guard("manifest.valid", "Manifest valid", "error", lambda: check_manifest_valid(root)))

    findings.append(_guard("markers.intact", "Markers intact", "error", lambda: check_markers(root, ctx, limit)))
    findings.append(
        _guard("ownership.zones", "Ownership zones intact", "error", lambda: check_ownership_zones(root, ctx, limit))
    )
    findings.append(
        _guard(
            "injections.duplicates",
            "No duplicate injections",
            "error",
            lambda: check_duplicate_injections(root, limit),
        )
    )

    manifest = load_manifest_for_checks(root) if exists.passed else None
    if manifest is not None:
        findings.append(
            await _guard_async(
                "plugins.consistent",
                "Plugins consistent",
                "warning",
                lambda: check_plugin_consistency(root, manifest, ctx, limit),
            )
        )

    if not fix:
        return ProjectDoctorReport.from_findings(findings)

    fixable = [f for f in findings if is_fixable(f, root, ctx.zone_policy)]
    fixed = apply_safe_fixes(root, fixable, policy=ctx.zone_policy)
    resolved = {f.check_id: f for f in fixed}
    findings = [resolved.get(f.check_id, f) for f in findings]
    return ProjectDoctorReport.from_findings(findings, fixable=fixable, fixed=fixed)
