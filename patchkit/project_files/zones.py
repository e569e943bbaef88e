from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path

from patchkit.project_files.fs import relative_posix


class OwnershipZone(str, Enum):
    SYSTEM = "SYSTEM"
    USER = "USER"


SYSTEM_ZONE_PATTERNS = ("packages/@rns/**", ".rns/**")
USER_ZONE_PATTERNS = ("src/**", "assets/**")


@dataclass(frozen=True)
class ZonePolicy:
    system_patterns: tuple[str, ...]
    user_patterns: tuple[str, ...]


DEFAULT_ZONE_POLICY = ZonePolicy(
    system_patterns=SYSTEM_ZONE_PATTERNS,
    user_patterns=USER_ZONE_PATTERNS,
)


@lru_cache(maxsize=256)
def compile_zone_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob to an anchored regex.

    `**` matches any sequence including `/`; `*` matches within one segment.
    Everything else is literal.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def matches_pattern(rel_path: str, pattern: str) -> bool:
    return compile_zone_pattern(pattern).match(rel_path) is not None


def _rel(path: str | Path, project_root: str | Path) -> str | None:
    rel = relative_posix(path, project_root)
    if rel in (None, "", "."):
        return None
    return rel


def classify_path(
    path: str | Path,
    project_root: str | Path,
    *,
    policy: ZonePolicy = DEFAULT_ZONE_POLICY,
) -> OwnershipZone:
    """SYSTEM only when the path matches a SYSTEM pattern; anything else is USER."""
    rel = _rel(path, project_root)
    if rel is None:
        return OwnershipZone.USER
    if any(matches_pattern(rel, p) for p in policy.system_patterns):
        return OwnershipZone.SYSTEM
    return OwnershipZone.USER


def is_cli_managed(
    path: str | Path,
    project_root: str | Path,
    *,
    policy: ZonePolicy = DEFAULT_ZONE_POLICY,
) -> bool:
    return classify_path(path, project_root, policy=policy) is OwnershipZone.SYSTEM


def is_declared_user_path(
    path: str | Path,
    project_root: str | Path,
    *,
    policy: ZonePolicy = DEFAULT_ZONE_POLICY,
) -> bool:
    """True when the path falls under an explicit USER pattern (src/**, assets/**)."""
    rel = _rel(path, project_root)
    if rel is None:
        return False
    return any(matches_pattern(rel, p) for p in policy.user_patterns)


def zone_roots(patterns: tuple[str, ...]) -> list[str]:
    """Literal directory prefixes of glob patterns (`packages/@rns/**` -> `packages/@rns`)."""
    roots: list[str] = []
    for pattern in patterns:
        head: list[str] = []
        for seg in pattern.split("/"):
            if "*" in seg:
                break
            head.append(seg)
        root = "/".join(head)
        if root and root not in roots:
            roots.append(root)
    return roots


def require_system_zone(
    path: str | Path,
    project_root: str | Path,
    *,
    policy: ZonePolicy = DEFAULT_ZONE_POLICY,
) -> None:
    if not is_cli_managed(path, project_root, policy=policy):
        raise PermissionError(f"refusing to auto-modify user-owned path '{path}'")
