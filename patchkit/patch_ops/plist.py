"""Property-list / entitlements edits.

Edits are anchored string operations on the XML text, not a parsed tree, so
untouched parts of the file keep their exact bytes.
"""

from __future__ import annotations

import re
from typing import Union

from patchkit.errors import PatchFormatError
from patchkit.markers.ledger import patch_marker_comment
from patchkit.patch_ops.types import EntitlementsPatch, PlistValue, PropertyListPatch

_DEFAULT_INDENT = "    "
_KEY_LINE_RE = re.compile(r"^([ \t]*)<key>", re.MULTILINE)

PlistPatch = Union[PropertyListPatch, EntitlementsPatch]


def escape_xml(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def format_plist_value(value: PlistValue, *, indent: str = _DEFAULT_INDENT) -> str:
    # bool first: bool is an int subclass.
    if isinstance(value, bool):
        return "<true/>" if value else "<false/>"
    if isinstance(value, int):
        return f"<integer>{value}</integer>"
    if isinstance(value, float):
        return f"<real>{value!r}</real>"
    if isinstance(value, list):
        items = "".join(f"\n{indent}{indent}<string>{escape_xml(str(v))}</string>" for v in value)
        return f"<array>{items}\n{indent}</array>"
    return f"<string>{escape_xml(str(value))}</string>"


def _key_re(key: str) -> str:
    return r"<key>" + re.escape(escape_xml(key)) + r"</key>"


def has_plist_key(content: str, key: str) -> bool:
    return re.search(_key_re(key) + r"\s*<[^>]+>", content) is not None


def _child_indent(content: str) -> str:
    m = _KEY_LINE_RE.search(content)
    return m.group(1) if m and m.group(1) else _DEFAULT_INDENT


def _root_close_index(content: str) -> int:
    """Offset of the root `</dict>` (the last one before `</plist>`), else `</plist>`."""
    plist_end = content.rfind("</plist>")
    search_end = plist_end if plist_end != -1 else len(content)
    idx = content.rfind("</dict>", 0, search_end)
    if idx != -1:
        return idx
    if plist_end != -1:
        return plist_end
    raise PatchFormatError("No closing </dict> or </plist> found")


def _insert_entry(content: str, op: PlistPatch) -> str:
    indent = _child_indent(content)
    value_xml = format_plist_value(op.value, indent=indent)
    entry = (
        f"\n{indent}{patch_marker_comment(op.operation_id)}"
        f"\n{indent}<key>{escape_xml(op.key)}</key>"
        f"\n{indent}{value_xml}"
    )
    idx = _root_close_index(content)
    # Keep the whitespace that preceded the closing tag after the new entry.
    ws_start = idx
    while ws_start > 0 and content[ws_start - 1] in " \t\r\n":
        ws_start -= 1
    return content[:ws_start] + entry + content[ws_start:]


def _record_marker_before_key(content: str, op: PlistPatch) -> str:
    m = re.search(r"^([ \t]*)" + _key_re(op.key), content, re.MULTILINE)
    if m is None:
        m = re.search(_key_re(op.key), content)
        if m is None:
            return content
        return content[: m.start()] + patch_marker_comment(op.operation_id) + content[m.start() :]
    indent = m.group(1)
    return content[: m.start()] + f"{indent}{patch_marker_comment(op.operation_id)}\n" + content[m.start() :]


def _append_array_items(content: str, op: PlistPatch) -> str:
    values = [str(v) for v in op.value] if isinstance(op.value, list) else []
    key = _key_re(op.key)

    empty = re.search(key + r"\s*(<array\s*/>)", content)
    if empty is not None:
        array_xml = format_plist_value(values, indent=_child_indent(content))
        return content[: empty.start(1)] + array_xml + content[empty.end(1) :]

    m = re.search(key + r"(\s*)<array>([\s\S]*?)([ \t]*)</array>", content)
    if m is None:
        return content
    existing = m.group(2)
    indent = _child_indent(content)
    new_items = "".join(
        f"{indent}{indent}<string>{escape_xml(v)}</string>\n"
        for v in values
        if f"<string>{escape_xml(v)}</string>" not in existing
    )
    if not new_items:
        return content
    if existing and not existing.endswith("\n"):
        new_items = "\n" + new_items
    insert_at = m.start(3)
    return content[:insert_at] + new_items + content[insert_at:]


def apply_property_list(content: str, op: PlistPatch) -> str:
    """Return the patched plist text.

    Key absent: insert marker, key and value before the root dict closes.
    Key present with append mode and an array value: add missing string items.
    Key present otherwise: value untouched. In both key-present cases the
    marker comment is recorded in front of the key so reruns are skipped.
    """
    if "<plist" not in content and "<dict" not in content:
        raise PatchFormatError("Not a property list: no <plist> or <dict> element")
    if not has_plist_key(content, op.key):
        if "</dict>" not in content:
            content = re.sub(r"<dict\s*/>", "<dict>\n</dict>", content, count=1)
        return _insert_entry(content, op)
    updated = content
    if op.mode == "append" and isinstance(op.value, list):
        updated = _append_array_items(updated, op)
    return _record_marker_before_key(updated, op)
