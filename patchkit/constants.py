from __future__ import annotations

# All paths are relative to the project root.
CLI_BACKUPS_DIR = ".rns/backups"
PROJECT_STATE_FILE = ".rns/rn-init.json"

WORKSPACE_PACKAGES_DIR = "packages/@rns"
PLUGIN_PACKAGE_PREFIX = "plugin-"

RUNTIME_ENTRY_FILES = (
    "packages/@rns/runtime/index.ts",
    "packages/@rns/runtime/core-init.ts",
)

# Marker tokens embedded in patched files.
MARKER_NAMESPACE = "rns"
STRUCTURED_LEDGER_FIELD = f"_{MARKER_NAMESPACE}_patches"
PATCH_MARKER_PREFIX = f"@{MARKER_NAMESPACE}-patch:"
OPERATION_MARKER_PREFIX = f"@{MARKER_NAMESPACE}-operation:"
INJECTION_MARKER_PREFIX = f"@{MARKER_NAMESPACE}-inject:"
REGION_MARKER_PREFIX = f"@{MARKER_NAMESPACE}-marker:"

SOURCE_FILE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx")
