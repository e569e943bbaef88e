"""Patch operation models.

Generators emit lists of JSON-ish dicts with camelCase keys; `parse_patch_ops`
turns them into the tagged union below (discriminant: `type`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _PatchOpBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    file: str = Field(min_length=1)
    capability_id: str = Field(min_length=1)
    operation_id: str = Field(min_length=1)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StructuredConfigPatch(_PatchOpBase):
    type: Literal["expo-config"] = "expo-config"
    path: str = Field(min_length=1)
    value: Any = None
    mode: Literal["set", "merge", "append"] = "set"


PlistValue = Union[bool, int, float, str, list[str]]


class PropertyListPatch(_PatchOpBase):
    type: Literal["plist"] = "plist"
    key: str = Field(min_length=1)
    value: PlistValue
    mode: Literal["set", "append"] = "set"


class EntitlementsPatch(_PatchOpBase):
    type: Literal["entitlements"] = "entitlements"
    key: str = Field(min_length=1)
    value: PlistValue
    mode: Literal["set", "append"] = "set"


ManifestOp = Literal["permission", "feature", "meta-data", "activity", "service", "receiver"]


class ManifestXmlPatch(_PatchOpBase):
    type: Literal["android-manifest"] = "android-manifest"
    action: Literal["add", "remove"] = "add"
    manifest_op: ManifestOp
    name: str = Field(min_length=1)
    attributes: dict[str, str] | None = None


class AnchoredTextPatch(_PatchOpBase):
    type: Literal["gradle", "podfile", "text-anchor"] = "text-anchor"
    anchor: str = Field(min_length=1)
    content: str
    mode: Literal["before", "after"]
    ensure_unique: bool = False


PatchOperation = Annotated[
    Union[
        StructuredConfigPatch,
        PropertyListPatch,
        EntitlementsPatch,
        ManifestXmlPatch,
        AnchoredTextPatch,
    ],
    Field(discriminator="type"),
]

_PATCH_OPS_ADAPTER: TypeAdapter[list[PatchOperation]] = TypeAdapter(list[PatchOperation])
_PATCH_OP_ADAPTER: TypeAdapter[PatchOperation] = TypeAdapter(PatchOperation)


def parse_patch_op(data: dict[str, Any]) -> PatchOperation:
    return _PATCH_OP_ADAPTER.validate_python(data)


def parse_patch_ops(items: list[dict[str, Any]]) -> list[PatchOperation]:
    """Validate generator output; raises pydantic.ValidationError on bad input."""
    return _PATCH_OPS_ADAPTER.validate_python(items)


PatchAction = Literal["applied", "skipped", "error"]


@dataclass(frozen=True)
class PatchOpResult:
    file: str
    capability_id: str
    operation_id: str
    patch_type: str
    action: PatchAction
    error: str | None = None
    backup_path: str | None = None
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return self.action != "error"

    @classmethod
    def for_op(cls, op: PatchOperation, action: PatchAction, **kw: Any) -> "PatchOpResult":
        return cls(
            file=op.file,
            capability_id=op.capability_id,
            operation_id=op.operation_id,
            patch_type=op.type,
            action=action,
            **kw,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "file": self.file,
            "capabilityId": self.capability_id,
            "operationId": self.operation_id,
            "patchType": self.patch_type,
            "action": self.action,
            "dryRun": self.dry_run,
        }
        if self.error is not None:
            out["error"] = self.error
        if self.backup_path is not None:
            out["backupPath"] = self.backup_path
        return out
