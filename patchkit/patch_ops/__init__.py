from patchkit.patch_ops.engine import apply_patch_op, apply_patch_ops, render_patch
from patchkit.patch_ops.types import (
    AnchoredTextPatch,
    EntitlementsPatch,
    ManifestXmlPatch,
    PatchOperation,
    PatchOpResult,
    PropertyListPatch,
    StructuredConfigPatch,
    parse_patch_op,
    parse_patch_ops,
)

__all__ = [
    "AnchoredTextPatch",
    "EntitlementsPatch",
    "ManifestXmlPatch",
    "PatchOpResult",
    "PatchOperation",
    "PropertyListPatch",
    "StructuredConfigPatch",
    "apply_patch_op",
    "apply_patch_ops",
    "parse_patch_op",
    "parse_patch_ops",
    "render_patch",
]
