from __future__ import annotations

import copy
import json
from typing import Any

from patchkit.errors import PatchFormatError
from patchkit.markers.ledger import register_structured_operation
from patchkit.patch_ops.types import StructuredConfigPatch
from patchkit.project_files.fs import dump_json


def deep_merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge mappings; anything that is not mapping-on-mapping is replaced."""
    result = dict(target)
    for key, source_value in source.items():
        target_value = result.get(key)
        if isinstance(target_value, dict) and isinstance(source_value, dict):
            result[key] = deep_merge(target_value, source_value)
        else:
            result[key] = copy.deepcopy(source_value)
    return result


def json_equal(a: Any, b: Any) -> bool:
    """Deep equality of JSON values; `true` never equals `1`."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(json_equal(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(json_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        return False
    return a == b


def _parent_for_path(document: dict[str, Any], parts: list[str]) -> dict[str, Any]:
    current = document
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    return current


def apply_structured_value(document: dict[str, Any], op: StructuredConfigPatch) -> None:
    parts = op.path.split(".")
    if any(not p for p in parts):
        raise PatchFormatError(f"Invalid config path: {op.path!r}")
    parent = _parent_for_path(document, parts)
    last = parts[-1]
    value = copy.deepcopy(op.value)

    if op.mode == "set":
        parent[last] = value
    elif op.mode == "merge":
        existing = parent.get(last)
        if isinstance(existing, dict) and isinstance(value, dict):
            parent[last] = deep_merge(existing, value)
        else:
            # Lists and scalars are replaced, never merged.
            parent[last] = value
    elif op.mode == "append":
        existing = parent.get(last)
        seq = existing if isinstance(existing, list) else []
        for item in value if isinstance(value, list) else [value]:
            if not any(json_equal(item, existing_item) for existing_item in seq):
                seq.append(item)
        parent[last] = seq
    else:
        raise PatchFormatError(f"Unknown structured config mode: {op.mode}")


def apply_structured_config(content: str, op: StructuredConfigPatch) -> str:
    """Apply the op to JSON text and record its id in the document's ledger field."""
    try:
        document = json.loads(content)
    except ValueError as e:
        raise PatchFormatError(f"Invalid JSON: {e}") from e
    if not isinstance(document, dict):
        raise PatchFormatError("Invalid JSON: top-level value must be an object")
    apply_structured_value(document, op)
    register_structured_operation(document, op.operation_id)
    return dump_json(document)
