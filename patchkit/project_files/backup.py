"""Pre-mutation backups under `.rns/backups/<timestamp>-<label>/`.

Backups are additive: a directory is never reused or overwritten, and nothing
here prunes old runs.
"""

from __future__ import annotations

import logging
import re
import shutil
from datetime import UTC, datetime
from pathlib import Path

from patchkit import config
from patchkit.errors import BackupError
from patchkit.project_files.fs import ensure_dir, is_directory, relative_posix

logger = logging.getLogger(__name__)

_SAFE_LABEL_RE = re.compile(r"[^a-zA-Z0-9_.@-]+")


def _timestamp() -> str:
    # 2026-10-18_15-19-02-123456
    return datetime.now(UTC).strftime("%Y-%m-%d_%H-%M-%S-%f")


def _safe_label(label: str) -> str:
    s = _SAFE_LABEL_RE.sub("_", (label or "").strip()).strip("_")
    return s or "backup"


def backups_root(project_root: str | Path) -> Path:
    configured = Path(config.backups_dir())
    if configured.is_absolute():
        return configured
    return Path(project_root) / configured


def create_backup_directory(project_root: str | Path, label: str) -> Path:
    """Create a fresh run/capability-scoped backup directory."""
    root = backups_root(project_root)
    base = f"{_timestamp()}-{_safe_label(label)}"
    candidate = root / base
    n = 1
    try:
        ensure_dir(root)
        while True:
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                n += 1
                candidate = root / f"{base}-{n}"
    except OSError as e:
        raise BackupError(f"Failed to create backup directory under {root}: {e}") from e


def backup_file(project_root: str | Path, file_path: str | Path, backup_dir: str | Path) -> Path:
    """Copy `file_path` into `backup_dir`, keeping its project-relative layout.

    Returns the absolute backup path.
    """
    src = Path(file_path)
    if not src.is_file():
        raise BackupError(f"Cannot back up missing file: {src}")
    rel = relative_posix(src, project_root) or src.name
    dest = Path(backup_dir).resolve() / rel
    if dest.exists():
        raise BackupError(f"Refusing to overwrite existing backup: {dest}")
    try:
        ensure_dir(dest.parent)
        shutil.copy2(src, dest)
    except OSError as e:
        raise BackupError(f"Failed to backup file {src}: {e}") from e
    logger.debug("Backed up %s -> %s", src, dest)
    return dest


def backup_files(
    project_root: str | Path, file_paths: list[str | Path], backup_dir: str | Path
) -> dict[str, Path]:
    """Back up every existing file; missing files are skipped."""
    out: dict[str, Path] = {}
    for fp in file_paths:
        if not Path(fp).is_file():
            continue
        out[str(fp)] = backup_file(project_root, fp, backup_dir)
    return out


def restore_from_backup(backup_path: str | Path, target_path: str | Path) -> None:
    src = Path(backup_path)
    if not src.is_file():
        raise BackupError(f"Backup file not found: {src}")
    dest = Path(target_path)
    ensure_dir(dest.parent)
    shutil.copy2(src, dest)
    logger.info("Restored %s from %s", dest, src)


def list_backup_directories(project_root: str | Path) -> list[Path]:
    """Backup run directories, newest first."""
    root = backups_root(project_root)
    if not is_directory(root):
        return []
    dirs = [p for p in root.iterdir() if p.is_dir()]
    return sorted(dirs, key=lambda p: p.name, reverse=True)
