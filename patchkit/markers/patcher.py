"""Inject plugin code into canonical marker regions.

Each injection is stamped with `// @rns-inject:<capability>-<marker>:<ts>` so a
second run for the same capability and region is skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from patchkit.errors import PatchKitError, PatchTargetNotFoundError
from patchkit.markers.ledger import LedgerKind, has_marker, injection_marker_comment
from patchkit.markers.regions import (
    MarkerDefinition,
    find_marker_in_text,
    format_marker_error,
    get_marker_definition,
    validate_marker,
)
from patchkit.project_files.backup import backup_file, create_backup_directory
from patchkit.project_files.fs import atomic_write_text, read_text, require_file

logger = logging.getLogger(__name__)

InsertMode = Literal["append", "prepend", "replace"]
MarkerAction = Literal["injected", "skipped", "error"]


@dataclass(frozen=True)
class MarkerPatch:
    marker_type: str
    file: str
    content: str
    capability_id: str
    insert_mode: InsertMode = "append"

    @property
    def operation_id(self) -> str:
        return f"{self.capability_id}-{self.marker_type}"


@dataclass(frozen=True)
class MarkerPatchResult:
    success: bool
    file: str
    marker_type: str
    capability_id: str
    action: MarkerAction
    error: str | None = None
    backup_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "file": self.file,
            "markerType": self.marker_type,
            "capabilityId": self.capability_id,
            "action": self.action,
        }
        if self.error:
            out["error"] = self.error
        if self.backup_path:
            out["backupPath"] = self.backup_path
        return out


def _result(patch: MarkerPatch, action: MarkerAction, **kw: Any) -> MarkerPatchResult:
    return MarkerPatchResult(
        success=action != "error",
        file=patch.file,
        marker_type=patch.marker_type,
        capability_id=patch.capability_id,
        action=action,
        **kw,
    )


def _splice(lines: list[str], start: int, end: int, block: str, mode: InsertMode) -> list[str]:
    # start/end are 1-based marker line numbers.
    if mode == "replace":
        return lines[:start] + [block] + lines[end - 1 :]
    if mode == "prepend":
        return lines[:start] + [block] + lines[start:]
    return lines[: end - 1] + [block] + lines[end - 1 :]


def _wrong_target(patch: MarkerPatch, definition: MarkerDefinition) -> str | None:
    if Path(patch.file).as_posix() == definition.file:
        return None
    return f'Marker "@rns-marker:{definition.type}" lives in {definition.file}, not {patch.file}'


def patch_marker(project_root: str | Path, patch: MarkerPatch, dry_run: bool = False) -> MarkerPatchResult:
    try:
        file_path = require_file(project_root, patch.file)
    except PatchTargetNotFoundError as e:
        return _result(patch, "error", error=str(e))

    definition = get_marker_definition(patch.marker_type)
    if definition is None:
        return _result(patch, "error", error=f"Unknown marker type: {patch.marker_type}")
    wrong_target = _wrong_target(patch, definition)
    if wrong_target:
        return _result(patch, "error", error=wrong_target)
    problem = validate_marker(project_root, definition)
    if problem:
        return _result(patch, "error", error=format_marker_error(definition, file_path, problem))

    if has_marker(file_path, patch.operation_id, LedgerKind.INJECTION):
        logger.debug("Injection %s already present in %s", patch.operation_id, patch.file)
        return _result(patch, "skipped")

    original = read_text(file_path)
    loc = find_marker_in_text(original, patch.marker_type)
    if loc is None:
        return _result(patch, "error", error=f"Marker not found: @rns-marker:{patch.marker_type}")

    stamp = injection_marker_comment(patch.operation_id)
    body = patch.content.strip("\n")
    block = f"{body}\n{stamp}" if patch.insert_mode == "prepend" else f"{stamp}\n{body}"
    updated = "\n".join(_splice(original.split("\n"), loc.start_line, loc.end_line, block, patch.insert_mode))

    if dry_run:
        return _result(patch, "injected")

    try:
        backup_dir = create_backup_directory(project_root, f"patch-{patch.capability_id}")
        backup_path = backup_file(project_root, file_path, backup_dir)
        atomic_write_text(file_path, updated)
    except (OSError, PatchKitError) as e:
        logger.exception("Marker injection %s failed", patch.operation_id)
        return _result(patch, "error", error=str(e))

    logger.info("Injected %s into %s (%s)", patch.operation_id, patch.file, patch.insert_mode)
    return _result(patch, "injected", backup_path=str(backup_path))


def patch_markers(
    project_root: str | Path, patches: list[MarkerPatch], dry_run: bool = False
) -> list[MarkerPatchResult]:
    return [patch_marker(project_root, p, dry_run) for p in patches]


def validate_patches(project_root: str | Path, patches: list[MarkerPatch]) -> list[str]:
    """Pre-flight check that every targeted region exists; returns error messages."""
    errors: list[str] = []
    for p in patches:
        definition = get_marker_definition(p.marker_type)
        if definition is None:
            errors.append(f"Unknown marker type: {p.marker_type} (capability: {p.capability_id})")
            continue
        problem = _wrong_target(p, definition) or validate_marker(project_root, definition)
        if problem:
            errors.append(f"Marker validation failed for {p.capability_id}: {problem}")
    return errors
