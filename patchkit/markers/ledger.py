"""Embedded-marker idempotency ledger.

"Has operation X already been applied to file Y" is answered from a marker
stored inside Y itself, one strategy per file syntax:

- structured config (JSON): operation ids collected in an internal array field
- XML (property lists, entitlements, manifests): `<!-- @rns-patch:<id> -->`
- anchored text (build scripts, generic text): `// @rns-operation:<id>`
- marker-region injections: `// @rns-inject:<id>:<timestamp>`
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from patchkit.constants import (
    INJECTION_MARKER_PREFIX,
    OPERATION_MARKER_PREFIX,
    PATCH_MARKER_PREFIX,
    STRUCTURED_LEDGER_FIELD,
)
from patchkit.errors import IdempotencyViolationError
from patchkit.project_files.fs import is_file, read_text_or_none

logger = logging.getLogger(__name__)


class LedgerKind(str, Enum):
    STRUCTURED = "structured"
    XML_COMMENT = "xml-comment"
    LINE_COMMENT = "line-comment"
    INJECTION = "injection"


INJECTION_MARKER_PATTERN = re.compile(
    r"(?://|#)\s*" + re.escape(INJECTION_MARKER_PREFIX) + r"([^:\s]+):(\S+)"
)
OPERATION_MARKER_PATTERN = re.compile(re.escape(OPERATION_MARKER_PREFIX) + r"(\S+)")
PATCH_MARKER_PATTERN = re.compile(
    r"<!--\s*" + re.escape(PATCH_MARKER_PREFIX) + r"(\S+?)\s*-->"
)

_XML_SUFFIXES = (".plist", ".entitlements", ".xml")


def patch_marker_comment(operation_id: str) -> str:
    return f"<!-- {PATCH_MARKER_PREFIX}{operation_id} -->"


def operation_marker_comment(operation_id: str, *, comment_prefix: str = "//") -> str:
    return f"{comment_prefix} {OPERATION_MARKER_PREFIX}{operation_id}"


def injection_marker_comment(operation_id: str, timestamp: str | None = None) -> str:
    ts = timestamp or datetime.now(UTC).isoformat()
    return f"// {INJECTION_MARKER_PREFIX}{operation_id}:{ts}"


def infer_ledger_kind(file_path: str | Path) -> LedgerKind:
    name = str(file_path).lower()
    if name.endswith(".json"):
        return LedgerKind.STRUCTURED
    if name.endswith(_XML_SUFFIXES):
        return LedgerKind.XML_COMMENT
    return LedgerKind.LINE_COMMENT


def structured_ledger_ids(document: Any) -> list[str]:
    if not isinstance(document, dict):
        return []
    raw = document.get(STRUCTURED_LEDGER_FIELD)
    if not isinstance(raw, list):
        return []
    return [x for x in raw if isinstance(x, str)]


def register_structured_operation(document: dict[str, Any], operation_id: str) -> None:
    ids = structured_ledger_ids(document)
    if operation_id not in ids:
        ids.append(operation_id)
    document[STRUCTURED_LEDGER_FIELD] = ids


def _text_has_marker(text: str, operation_id: str, kind: LedgerKind) -> bool:
    oid = re.escape(operation_id)
    if kind is LedgerKind.XML_COMMENT:
        pattern = r"<!--\s*" + re.escape(PATCH_MARKER_PREFIX) + oid + r"\s*-->"
    elif kind is LedgerKind.LINE_COMMENT:
        pattern = re.escape(OPERATION_MARKER_PREFIX) + oid + r"(?=\s|$)"
    elif kind is LedgerKind.INJECTION:
        pattern = re.escape(INJECTION_MARKER_PREFIX) + oid + ":"
    else:
        raise ValueError(f"not a text ledger kind: {kind}")
    return re.search(pattern, text) is not None


def content_has_marker(text: str, operation_id: str, kind: LedgerKind) -> bool:
    """Marker lookup on already-loaded content."""
    if kind is LedgerKind.STRUCTURED:
        try:
            document = json.loads(text)
        except ValueError:
            return False
        return operation_id in structured_ledger_ids(document)
    return _text_has_marker(text, operation_id, kind)


def has_marker(
    file_path: str | Path, operation_id: str, kind: LedgerKind | None = None
) -> bool:
    """True when the file records `operation_id` as applied.

    Missing or unreadable files (and unparsable JSON) are reported as False.
    """
    if not operation_id or not is_file(file_path):
        return False
    text = read_text_or_none(file_path)
    if text is None:
        return False
    return content_has_marker(text, operation_id, kind or infer_ledger_kind(file_path))


def is_already_applied(
    file_path: str | Path,
    operation_id: str,
    kind: LedgerKind | None = None,
    *,
    expected_content: str | None = None,
) -> bool:
    """Marker lookup, falling back to an exact content snapshot comparison.

    The snapshot check covers files that were pre-populated by something other
    than this engine and therefore carry no marker.
    """
    if not is_file(file_path):
        return False
    if has_marker(file_path, operation_id, kind):
        return True
    if expected_content is not None:
        current = read_text_or_none(file_path)
        if current is not None and current == expected_content:
            logger.debug("%s already matches expected content for %s", file_path, operation_id)
            return True
    return False


def assert_not_yet_applied(
    file_path: str | Path,
    operation_id: str,
    kind: LedgerKind | None = None,
    *,
    operation_type: str = "operation",
) -> None:
    """Strict one-shot mode: raise instead of silently skipping a replay."""
    if has_marker(file_path, operation_id, kind):
        raise IdempotencyViolationError(operation_id, str(file_path), operation_type)


def count_marker_ids(text: str) -> dict[str, int]:
    """Occurrences of every operation id embedded in `text`, across marker kinds."""
    counts: dict[str, int] = {}
    for pattern in (INJECTION_MARKER_PATTERN, OPERATION_MARKER_PATTERN, PATCH_MARKER_PATTERN):
        for m in pattern.finditer(text or ""):
            oid = m.group(1)
            counts[oid] = counts.get(oid, 0) + 1
    return counts


_KIND_BY_PATCH_TYPE = {
    "expo-config": LedgerKind.STRUCTURED,
    "plist": LedgerKind.XML_COMMENT,
    "entitlements": LedgerKind.XML_COMMENT,
    "android-manifest": LedgerKind.XML_COMMENT,
    "gradle": LedgerKind.LINE_COMMENT,
    "podfile": LedgerKind.LINE_COMMENT,
    "text-anchor": LedgerKind.LINE_COMMENT,
}


def ledger_kind_for(op: Any) -> LedgerKind:
    """Marker strategy for a patch operation, keyed on its `type` discriminant."""
    patch_type = getattr(op, "type", op)
    try:
        return _KIND_BY_PATCH_TYPE[str(patch_type)]
    except KeyError:
        raise ValueError(f"unknown patch type: {patch_type!r}") from None
