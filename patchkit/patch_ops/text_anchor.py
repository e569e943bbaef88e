from __future__ import annotations

from patchkit.errors import AnchorNotFoundError
from patchkit.markers.ledger import operation_marker_comment
from patchkit.patch_ops.types import AnchoredTextPatch

_MARKER_INDENT = "    "


def comment_prefix_for(op: AnchoredTextPatch) -> str:
    # Podfiles are Ruby.
    return "#" if op.type == "podfile" else "//"


def apply_anchored_text(content: str, op: AnchoredTextPatch) -> str:
    """Splice `op.content` plus its operation marker next to the first anchor occurrence.

    A missing anchor always raises, even when the block is already present.
    With `ensure_unique` an already-present block (trimmed) leaves the text
    unchanged.
    """
    idx = content.find(op.anchor)
    if idx == -1:
        raise AnchorNotFoundError(op.anchor, op.file)
    if op.ensure_unique and op.content.strip() and op.content.strip() in content:
        return content

    marker = operation_marker_comment(op.operation_id, comment_prefix=comment_prefix_for(op))
    if op.mode == "before":
        block = f"{op.content}\n{_MARKER_INDENT}{marker}\n"
        pos = idx
    else:
        block = f"\n{_MARKER_INDENT}{marker}\n{_MARKER_INDENT}{op.content}"
        pos = idx + len(op.anchor)
    return content[:pos] + block + content[pos:]
