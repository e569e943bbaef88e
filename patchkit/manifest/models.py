"""Schema of the project manifest (`.rns/rn-init.json`)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CURRENT_SCHEMA_VERSION = "1.0.0"
WORKSPACE_MODEL = "Option A"


class _ManifestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")


class ProjectIdentity(_ManifestModel):
    name: str = Field(min_length=1)
    display_name: str | None = None
    bundle_id: str | None = None
    package_name: str | None = None
    version: str | None = None
    build: str | None = None


class PermissionRequirement(_ManifestModel):
    permission_id: str = Field(min_length=1)
    mandatory: bool = False


class InstalledPluginRecord(_ManifestModel):
    id: str = Field(min_length=1)
    version: str = Field(min_length=1)
    installed_at: str = Field(min_length=1)
    options: dict[str, Any] | None = None
    owned_files: list[str] | None = None
    owned_dirs: list[str] | None = None
    permissions: list[PermissionRequirement] | None = None
    updated_at: str | None = None


class PluginPermissions(_ManifestModel):
    plugin_id: str
    permissions: list[PermissionRequirement] = Field(default_factory=list)


class AggregatedPermissions(_ManifestModel):
    permission_ids: list[str] = Field(default_factory=list)
    mandatory: list[str] = Field(default_factory=list)
    optional: list[str] = Field(default_factory=list)
    by_plugin: dict[str, PluginPermissions] = Field(default_factory=dict)


def _ensure_unique_ids(records: list[InstalledPluginRecord], what: str) -> list[InstalledPluginRecord]:
    seen: set[str] = set()
    for r in records:
        if r.id in seen:
            raise ValueError(f"duplicate {what} id: {r.id}")
        seen.add(r.id)
    return records


class ProjectManifest(_ManifestModel):
    schema_version: str
    cli_version: str = ""
    workspace_model: Literal["Option A"]
    identity: ProjectIdentity
    target: Literal["expo", "bare"]
    language: Literal["ts", "js"]
    package_manager: Literal["npm", "pnpm", "yarn"]
    core_toggles: dict[str, bool] | None = None
    plugins: list[InstalledPluginRecord] = Field(default_factory=list)
    modules: list[InstalledPluginRecord] | None = None
    permissions: AggregatedPermissions | None = None
    created_at: str = Field(min_length=1)
    updated_at: str | None = None

    @field_validator("plugins")
    @classmethod
    def _unique_plugins(cls, v: list[InstalledPluginRecord]) -> list[InstalledPluginRecord]:
        return _ensure_unique_ids(v, "plugin")

    @field_validator("modules")
    @classmethod
    def _unique_modules(cls, v: list[InstalledPluginRecord] | None) -> list[InstalledPluginRecord] | None:
        return _ensure_unique_ids(v, "module") if v is not None else v

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def get_plugin(self, plugin_id: str) -> InstalledPluginRecord | None:
        for p in self.plugins:
            if p.id == plugin_id:
                return p
        return None
