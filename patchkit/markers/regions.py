"""Canonical `// @rns-marker:<type>:start|end` regions in CLI-owned runtime files."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from patchkit.constants import REGION_MARKER_PREFIX, RUNTIME_ENTRY_FILES
from patchkit.project_files.fs import is_file, read_text_or_none

RUNTIME_INDEX_FILE, RUNTIME_CORE_INIT_FILE = RUNTIME_ENTRY_FILES

MARKER_START_PATTERN = re.compile(r"//\s*" + re.escape(REGION_MARKER_PREFIX) + r"([^:\s]+):start")
MARKER_END_PATTERN = re.compile(r"//\s*" + re.escape(REGION_MARKER_PREFIX) + r"([^:\s]+):end")
# Anything that looks like a region marker, used to catch typos like `:begin`.
MARKER_ANY_PATTERN = re.compile(r"//\s*" + re.escape(REGION_MARKER_PREFIX) + r"(\S*)")


@dataclass(frozen=True)
class MarkerDefinition:
    type: str
    file: str
    description: str
    required: bool = True


CANONICAL_MARKERS: tuple[MarkerDefinition, ...] = (
    MarkerDefinition("imports", RUNTIME_INDEX_FILE, "Import statements region for plugin providers/hooks"),
    MarkerDefinition("providers", RUNTIME_INDEX_FILE, "Provider wrappers region for plugin providers"),
    MarkerDefinition("init-steps", RUNTIME_CORE_INIT_FILE, "Initialization steps region for plugin init code"),
    MarkerDefinition("root", RUNTIME_INDEX_FILE, "Root component region for replacing MinimalUI"),
    MarkerDefinition(
        "registrations",
        RUNTIME_CORE_INIT_FILE,
        "Registration calls region for plugin registrations",
        required=False,
    ),
)


def get_marker_definition(marker_type: str) -> MarkerDefinition | None:
    for m in CANONICAL_MARKERS:
        if m.type == marker_type:
            return m
    return None


@dataclass(frozen=True)
class MarkerLocation:
    # 1-based line numbers of the start/end marker lines.
    start_line: int
    end_line: int
    start_content: str
    end_content: str


@dataclass(frozen=True)
class MarkerIssue:
    file: str
    line: int
    marker_type: str
    problem: str

    def describe(self) -> str:
        return f"{self.file}:{self.line} @rns-marker:{self.marker_type} {self.problem}"


def create_marker_comment(marker_type: str, position: str) -> str:
    if position not in ("start", "end"):
        raise ValueError(f"position must be 'start' or 'end', got {position!r}")
    return f"// {REGION_MARKER_PREFIX}{marker_type}:{position}"


def find_marker_in_text(text: str, marker_type: str) -> MarkerLocation | None:
    start: tuple[int, str] | None = None
    for i, line in enumerate(text.split("\n"), start=1):
        m = MARKER_START_PATTERN.search(line)
        if m and m.group(1) == marker_type and start is None:
            start = (i, line)
            continue
        m = MARKER_END_PATTERN.search(line)
        if m and m.group(1) == marker_type:
            if start is None:
                return None
            return MarkerLocation(start[0], i, start[1], line)
    return None


def find_marker(file_path: str | Path, marker_type: str) -> MarkerLocation | None:
    """Locate a well-formed region (start strictly before end); None otherwise."""
    if not is_file(file_path):
        return None
    text = read_text_or_none(file_path)
    if text is None:
        return None
    return find_marker_in_text(text, marker_type)


def validate_marker(project_root: str | Path, marker: MarkerDefinition) -> str | None:
    """Error message for a missing or broken canonical marker, or None when valid."""
    file_path = Path(project_root) / marker.file
    if not is_file(file_path):
        return f"Marker file not found: {marker.file}"
    if find_marker(file_path, marker.type) is None:
        if marker.required:
            return f'Required marker "{REGION_MARKER_PREFIX}{marker.type}" not found in {marker.file}'
    return None


def validate_all_markers(project_root: str | Path) -> list[str]:
    errors: list[str] = []
    for marker in CANONICAL_MARKERS:
        err = validate_marker(project_root, marker)
        if err:
            errors.append(err)
    return errors


def get_marker_content(file_path: str | Path, marker_type: str) -> str | None:
    """Lines strictly between the start and end marker lines."""
    text = read_text_or_none(file_path) if is_file(file_path) else None
    if text is None:
        return None
    loc = find_marker_in_text(text, marker_type)
    if loc is None:
        return None
    lines = text.split("\n")
    return "\n".join(lines[loc.start_line : loc.end_line - 1])


def scan_marker_issues(text: str, file_label: str) -> list[MarkerIssue]:
    """Orphaned or malformed start/end markers in one file's content."""
    issues: list[MarkerIssue] = []
    open_regions: dict[str, int] = {}
    for i, line in enumerate(text.split("\n"), start=1):
        any_m = MARKER_ANY_PATTERN.search(line)
        if any_m is None:
            continue
        start_m = MARKER_START_PATTERN.search(line)
        end_m = MARKER_END_PATTERN.search(line)
        if start_m:
            t = start_m.group(1)
            if t in open_regions:
                issues.append(MarkerIssue(file_label, i, t, "start repeated before end"))
            open_regions[t] = i
        elif end_m:
            t = end_m.group(1)
            if t not in open_regions:
                issues.append(MarkerIssue(file_label, i, t, "end without matching start"))
            else:
                del open_regions[t]
        else:
            issues.append(MarkerIssue(file_label, i, any_m.group(1) or "?", "malformed marker"))
    for t, line_no in sorted(open_regions.items(), key=lambda kv: kv[1]):
        issues.append(MarkerIssue(file_label, line_no, t, "start without matching end"))
    return issues


def format_marker_error(marker: MarkerDefinition, file_path: str | Path, error: str) -> str:
    return (
        f"Marker validation failed: {error}\n\n"
        f"Marker: {REGION_MARKER_PREFIX}{marker.type}\n"
        f"File: {marker.file}\n"
        f"Description: {marker.description}\n\n"
        "To restore this marker:\n"
        f"1. Ensure the file exists at: {file_path}\n"
        "2. Add the marker pair:\n"
        f"   {create_marker_comment(marker.type, 'start')}\n"
        "   // ... your code here ...\n"
        f"   {create_marker_comment(marker.type, 'end')}\n"
    )
