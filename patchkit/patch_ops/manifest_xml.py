"""Android-manifest element edits (regex/anchor based, not a DOM)."""

from __future__ import annotations

import re

from patchkit.constants import PATCH_MARKER_PREFIX
from patchkit.errors import PatchFormatError
from patchkit.markers.ledger import patch_marker_comment
from patchkit.patch_ops.plist import escape_xml
from patchkit.patch_ops.types import ManifestXmlPatch

_DEFAULT_INDENT = "    "

_TAG_BY_OP = {
    "permission": "uses-permission",
    "feature": "uses-feature",
    "meta-data": "meta-data",
    "activity": "activity",
    "service": "service",
    "receiver": "receiver",
}
# Components live inside <application>; everything else is a direct child of <manifest>.
_APPLICATION_CHILDREN = frozenset({"activity", "service", "receiver"})


def element_tag(manifest_op: str) -> str:
    try:
        return _TAG_BY_OP[manifest_op]
    except KeyError:
        raise PatchFormatError(f"Unknown manifest operation: {manifest_op}") from None


def build_manifest_element(op: ManifestXmlPatch) -> str:
    tag = element_tag(op.manifest_op)
    name = escape_xml(op.name)
    attrs = dict(op.attributes or {})
    if op.manifest_op == "permission":
        return f'<{tag} android:name="{name}" />'
    if op.manifest_op == "feature":
        return f'<{tag} android:name="{name}" android:required="false" />'
    if op.manifest_op == "meta-data":
        return f'<{tag} android:name="{name}" android:value="{escape_xml(attrs.get("value", ""))}" />'
    parts = [f'android:name="{name}"']
    parts.extend(f'android:{k}="{escape_xml(v)}"' for k, v in attrs.items())
    return f"<{tag} {' '.join(parts)} />"


def _normalize_ws(s: str) -> str:
    return " ".join(s.split())


def contains_element(content: str, element: str) -> bool:
    """Whitespace-normalized substring containment (not semantic XML equality)."""
    return _normalize_ws(element) in _normalize_ws(content)


def _line_indent_before(content: str, idx: int) -> str:
    line_start = content.rfind("\n", 0, idx) + 1
    prefix = content[line_start:idx]
    return prefix if prefix.strip() == "" else ""


def _insert_before_close(content: str, closing_tag: str, block_lines: list[str], indent: str) -> str:
    idx = content.rfind(closing_tag)
    if idx == -1:
        raise PatchFormatError(f"No {closing_tag} found in manifest")
    ws_start = idx
    while ws_start > 0 and content[ws_start - 1] in " \t\r\n":
        ws_start -= 1
    block = "".join(f"\n{indent}{line}" for line in block_lines)
    return content[:ws_start] + block + content[ws_start:]


def _add_element(content: str, op: ManifestXmlPatch) -> str:
    element = build_manifest_element(op)
    if contains_element(content, element):
        return content
    lines = [patch_marker_comment(op.operation_id), element]
    if op.manifest_op in _APPLICATION_CHILDREN and "</application>" in content:
        close_indent = _line_indent_before(content, content.rfind("</application>"))
        return _insert_before_close(content, "</application>", lines, close_indent + _DEFAULT_INDENT)
    close_indent = _line_indent_before(content, content.rfind("</manifest>"))
    return _insert_before_close(content, "</manifest>", lines, close_indent + _DEFAULT_INDENT)


def _remove_element(content: str, op: ManifestXmlPatch) -> str:
    tag = element_tag(op.manifest_op)
    pattern = re.compile(
        r"\s*<!--\s*"
        + re.escape(PATCH_MARKER_PREFIX + op.operation_id)
        + r"\s*-->\s*<"
        + re.escape(tag)
        + r"\b[^>]*android:name=\""
        + re.escape(escape_xml(op.name))
        + r"\"[^>]*/>"
    )
    return pattern.sub("", content)


def apply_manifest_xml(content: str, op: ManifestXmlPatch) -> str:
    if "</manifest>" not in content:
        raise PatchFormatError("Not an Android manifest: no closing </manifest>")
    if op.action == "remove":
        return _remove_element(content, op)
    return _add_element(content, op)
