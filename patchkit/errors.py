from __future__ import annotations


class PatchKitError(RuntimeError):
    pass


class ProjectRootError(PatchKitError):
    """The project root itself is missing or unreadable; aborts a whole batch."""


class PatchTargetNotFoundError(PatchKitError):
    def __init__(self, file: str) -> None:
        super().__init__(f"File not found: {file}")
        self.file = file


class AnchorNotFoundError(PatchKitError):
    def __init__(self, anchor: str, file: str | None = None) -> None:
        where = f" in {file}" if file else ""
        super().__init__(f'Anchor not found{where}: "{anchor}"')
        self.anchor = anchor
        self.file = file


class BackupError(PatchKitError):
    pass


class PatchFormatError(PatchKitError):
    """Target file could not be parsed in its expected format."""


class IdempotencyViolationError(PatchKitError):
    def __init__(self, operation_id: str, file: str, operation_type: str = "operation") -> None:
        super().__init__(
            f'{operation_type} "{operation_id}" has already been applied to {file}. '
            "Re-running would create duplicates."
        )
        self.operation_id = operation_id
        self.file = file


class ManifestError(PatchKitError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class ManifestNotFoundError(ManifestError):
    pass


class PluginRegistryError(PatchKitError):
    pass
