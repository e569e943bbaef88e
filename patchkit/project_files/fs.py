from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from patchkit.errors import PatchTargetNotFoundError


def is_directory(path: str | Path) -> bool:
    try:
        return Path(path).is_dir()
    except OSError:
        return False


def is_file(path: str | Path) -> bool:
    try:
        return Path(path).is_file()
    except OSError:
        return False


def require_file(project_root: str | Path, rel_path: str) -> Path:
    """`project_root / rel_path`, raising when it is not an existing file."""
    path = Path(project_root) / rel_path
    if not is_file(path):
        raise PatchTargetNotFoundError(rel_path)
    return path


def ensure_dir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def read_text(path: str | Path) -> str:
    return Path(path).read_text(encoding="utf-8")


def read_text_or_none(path: str | Path) -> str | None:
    try:
        return read_text(path)
    except (OSError, UnicodeDecodeError):
        return None


def atomic_write_text(path: str | Path, content: str) -> None:
    """Write via a temp file in the same directory, then rename over the target.

    Readers never observe a partially written file.
    """
    target = Path(path)
    ensure_dir(target.parent)
    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(content or "")
        if target.exists():
            os.chmod(tmp, target.stat().st_mode & 0o777)
        os.replace(tmp, target)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def read_json(path: str | Path) -> Any:
    return json.loads(read_text(path))


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_json(path: str | Path, data: Any) -> None:
    atomic_write_text(path, dump_json(data))


def relative_posix(path: str | Path, project_root: str | Path) -> str | None:
    """Project-relative POSIX path, or None when `path` escapes the root."""
    root = Path(project_root).resolve()
    p = Path(path)
    if not p.is_absolute():
        p = root / p
    try:
        rel = p.resolve().relative_to(root)
    except ValueError:
        return None
    return rel.as_posix()


def walk_files(root: str | Path, *, suffixes: tuple[str, ...] | None = None) -> list[Path]:
    """Sorted list of regular files below `root`; unreadable directories are skipped."""
    base = Path(root)
    if not is_directory(base):
        return []
    out: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(base, onerror=lambda _e: None):
        dirnames.sort()
        for name in sorted(filenames):
            if suffixes and not name.endswith(suffixes):
                continue
            out.append(Path(dirpath) / name)
    return out
