"""Registry of available plugins, loaded from `<plugins_dir>/<dir>/plugin.json`.

Directory names are filesystem-safe (`state-zustand`); descriptor ids are the
canonical dotted form (`state.zustand`).
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from patchkit import config
from patchkit.errors import PluginRegistryError
from patchkit.project_files.fs import is_directory, is_file, read_json

logger = logging.getLogger(__name__)

PLUGIN_DESCRIPTOR_FILE = "plugin.json"

PluginCategory = Literal[
    "auth",
    "storage",
    "network",
    "ui",
    "navigation",
    "analytics",
    "notifications",
    "camera",
    "location",
    "media",
    "hardware",
    "data",
    "state",
    "other",
]


class PluginSupport(BaseModel):
    model_config = ConfigDict(extra="allow")

    targets: list[Literal["expo", "bare"]]
    platforms: list[Literal["ios", "android", "web"]] | None = None


class PluginDescriptor(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    category: PluginCategory
    support: PluginSupport


def plugin_dir_name(plugin_id: str) -> str:
    return plugin_id.replace(".", "-")


class PluginRegistry:
    def __init__(self, plugins_dir: str | Path | None = None) -> None:
        configured = plugins_dir if plugins_dir is not None else config.plugins_dir()
        self._plugins_dir = Path(configured) if configured else None
        self._plugins: dict[str, PluginDescriptor] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Load descriptors once; later calls are no-ops.

        A missing plugins directory yields an empty registry. A malformed or
        misnamed descriptor raises PluginRegistryError.
        """
        if self._initialized:
            return
        if self._plugins_dir is not None and is_directory(self._plugins_dir):
            loaded = await asyncio.to_thread(self._scan, self._plugins_dir)
            self._plugins.update(loaded)
        else:
            logger.debug("No plugins directory configured or present: %s", self._plugins_dir)
        self._initialized = True

    @staticmethod
    def _scan(plugins_dir: Path) -> dict[str, PluginDescriptor]:
        out: dict[str, PluginDescriptor] = {}
        for entry in sorted(plugins_dir.iterdir()):
            descriptor_path = entry / PLUGIN_DESCRIPTOR_FILE
            if not entry.is_dir() or not is_file(descriptor_path):
                continue
            descriptor = load_plugin_descriptor(descriptor_path)
            if plugin_dir_name(descriptor.id) != entry.name:
                raise PluginRegistryError(
                    f'Plugin descriptor id "{descriptor.id}" does not match directory name "{entry.name}"'
                )
            if descriptor.id in out:
                raise PluginRegistryError(f'Duplicate plugin ID "{descriptor.id}" found at {entry}')
            out[descriptor.id] = descriptor
        return out

    def register(self, descriptor: PluginDescriptor) -> None:
        if descriptor.id in self._plugins:
            raise PluginRegistryError(f'Duplicate plugin ID "{descriptor.id}"')
        self._plugins[descriptor.id] = descriptor

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise PluginRegistryError("Plugin registry not initialized; await initialize() first")

    def has_plugin(self, plugin_id: str) -> bool:
        self._require_initialized()
        return plugin_id in self._plugins

    def get_plugin(self, plugin_id: str) -> PluginDescriptor | None:
        self._require_initialized()
        return self._plugins.get(plugin_id)

    def list_plugins(self) -> list[PluginDescriptor]:
        self._require_initialized()
        return [self._plugins[k] for k in sorted(self._plugins)]


def load_plugin_descriptor(descriptor_path: str | Path) -> PluginDescriptor:
    try:
        raw: Any = read_json(descriptor_path)
    except (OSError, ValueError) as e:
        raise PluginRegistryError(f"Failed to load plugin descriptor from {descriptor_path}: {e}") from e
    try:
        return PluginDescriptor.model_validate(raw)
    except ValidationError as e:
        raise PluginRegistryError(f"Invalid plugin descriptor {descriptor_path}: {e}") from e
