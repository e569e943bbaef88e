import sys
from pathlib import Path

import pytest

# Ensure the repo root is on sys.path so tests can import the local `patchkit` package.
ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture(autouse=True)
def _isolate_patchkit_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep developer shell settings from leaking into tests; set per test when needed.
    for name in ("PATCHKIT_BACKUPS_DIR", "PATCHKIT_DOCTOR_PREVIEW_LIMIT", "PATCHKIT_PLUGINS_DIR"):
        monkeypatch.delenv(name, raising=False)


RUNTIME_INDEX_TS = """import React from 'react';
// @rns-marker:imports:start
// @rns-marker:imports:end

export function Root() {
  return (
    // @rns-marker:providers:start
    // @rns-marker:providers:end
    // @rns-marker:root:start
    <MinimalUI />
    // @rns-marker:root:end
  );
}
"""

RUNTIME_CORE_INIT_TS = """export async function coreInit() {
  // @rns-marker:init-steps:start
  // @rns-marker:init-steps:end
}
"""


@pytest.fixture
def runtime_index_ts() -> str:
    return RUNTIME_INDEX_TS


@pytest.fixture
def write_runtime():
    """Write the CLI-owned runtime entry files with canonical marker regions."""

    def _write(root: Path, index: str | None = None, core_init: str | None = None) -> None:
        runtime = root / "packages" / "@rns" / "runtime"
        runtime.mkdir(parents=True, exist_ok=True)
        (runtime / "index.ts").write_text(RUNTIME_INDEX_TS if index is None else index, encoding="utf-8")
        (runtime / "core-init.ts").write_text(
            RUNTIME_CORE_INIT_TS if core_init is None else core_init, encoding="utf-8"
        )

    return _write
