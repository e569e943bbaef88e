"""Patch operation dispatcher.

Each operation runs `pending -> skipped | applied | error`:

1. target file must exist (no backup otherwise)
2. marker ledger says already applied -> skipped
3. backup the target; a failed backup stops the operation
4. the applier renders the new text in memory; no change -> skipped
5. atomic write -> applied

Failures after step 3 carry the backup path so the caller can restore.
Dry runs skip the backup, still render (so anchor errors surface) and never
touch the file system.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, assert_never

from patchkit.errors import PatchKitError, PatchTargetNotFoundError, ProjectRootError
from patchkit.markers.ledger import has_marker, ledger_kind_for
from patchkit.patch_ops.manifest_xml import apply_manifest_xml
from patchkit.patch_ops.plist import apply_property_list
from patchkit.patch_ops.structured_config import apply_structured_config
from patchkit.patch_ops.text_anchor import apply_anchored_text
from patchkit.patch_ops.types import (
    AnchoredTextPatch,
    EntitlementsPatch,
    ManifestXmlPatch,
    PatchOperation,
    PatchOpResult,
    PropertyListPatch,
    StructuredConfigPatch,
)
from patchkit.project_files.backup import backup_file, create_backup_directory
from patchkit.project_files.fs import atomic_write_text, is_directory, read_text, require_file

logger = logging.getLogger(__name__)


def render_patch(content: str, op: PatchOperation) -> str:
    """Pure text transform for one operation."""
    if isinstance(op, StructuredConfigPatch):
        return apply_structured_config(content, op)
    if isinstance(op, (PropertyListPatch, EntitlementsPatch)):
        return apply_property_list(content, op)
    if isinstance(op, ManifestXmlPatch):
        return apply_manifest_xml(content, op)
    if isinstance(op, AnchoredTextPatch):
        return apply_anchored_text(content, op)
    assert_never(op)


def _uses_ledger_skip(op: PatchOperation) -> bool:
    # A removal targets the element its own marker introduced; the marker's
    # presence is what makes it actionable.
    return not (isinstance(op, ManifestXmlPatch) and op.action == "remove")


def apply_patch_op(project_root: str | Path, op: PatchOperation, dry_run: bool = False) -> PatchOpResult:
    try:
        file_path = require_file(project_root, op.file)
    except PatchTargetNotFoundError as e:
        logger.warning("Patch %s failed: %s", op.operation_id, e)
        return PatchOpResult.for_op(op, "error", error=str(e), dry_run=dry_run)

    if _uses_ledger_skip(op) and has_marker(file_path, op.operation_id, ledger_kind_for(op)):
        logger.debug("Skipping %s on %s: already applied", op.operation_id, op.file)
        return PatchOpResult.for_op(op, "skipped", dry_run=dry_run)

    backup_path: str | None = None
    if not dry_run:
        try:
            backup_dir = create_backup_directory(project_root, f"patch-{op.capability_id}")
            backup_path = str(backup_file(project_root, file_path, backup_dir))
        except PatchKitError as e:
            logger.warning("Backup failed for %s, leaving %s untouched: %s", op.operation_id, op.file, e)
            return PatchOpResult.for_op(op, "error", error=str(e))

    try:
        original = read_text(file_path)
        updated = render_patch(original, op)
    except (OSError, UnicodeDecodeError, PatchKitError) as e:
        logger.warning("Patch %s failed on %s: %s", op.operation_id, op.file, e)
        return PatchOpResult.for_op(op, "error", error=str(e), backup_path=backup_path, dry_run=dry_run)
    except Exception as e:
        logger.exception("Unexpected failure applying %s to %s", op.operation_id, op.file)
        return PatchOpResult.for_op(
            op, "error", error=str(e) or type(e).__name__, backup_path=backup_path, dry_run=dry_run
        )

    if updated == original:
        logger.debug("Patch %s is a no-op on %s", op.operation_id, op.file)
        return PatchOpResult.for_op(op, "skipped", backup_path=backup_path, dry_run=dry_run)

    if dry_run:
        return PatchOpResult.for_op(op, "applied", dry_run=True)

    try:
        atomic_write_text(file_path, updated)
    except OSError as e:
        logger.exception("Write failed for %s (backup at %s)", op.file, backup_path)
        return PatchOpResult.for_op(op, "error", error=str(e), backup_path=backup_path)

    logger.info("Applied %s (%s) to %s", op.operation_id, op.type, op.file)
    return PatchOpResult.for_op(op, "applied", backup_path=backup_path)


def apply_patch_ops(
    project_root: str | Path, ops: Iterable[PatchOperation], dry_run: bool = False
) -> list[PatchOpResult]:
    """Apply operations strictly in order; a failed op never stops the batch."""
    if not is_directory(project_root):
        raise ProjectRootError(f"Project root not found or not a directory: {project_root}")
    results = [apply_patch_op(project_root, op, dry_run) for op in ops]
    failed = sum(1 for r in results if not r.success)
    if failed:
        logger.warning("%d of %d patch operations failed", failed, len(results))
    return results
