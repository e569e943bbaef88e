from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal

from patchkit.plugins.registry import PluginRegistry
from patchkit.project_files.zones import DEFAULT_ZONE_POLICY, ZonePolicy

CheckId = Literal[
    "manifest.exists",
    "manifest.valid",
    "markers.intact",
    "ownership.zones",
    "injections.duplicates",
    "plugins.consistent",
]
Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class DoctorFinding:
    check_id: CheckId
    name: str
    severity: Severity
    passed: bool
    message: str | None = None
    fix: str | None = None
    # Project-relative path the finding is about; drives the auto-repair zone gate.
    target: str | None = None

    def resolved(self, message: str) -> "DoctorFinding":
        return replace(self, passed=True, message=message, fix=None)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "checkId": self.check_id,
            "name": self.name,
            "severity": self.severity,
            "passed": self.passed,
        }
        for k, v in (("message", self.message), ("fix", self.fix), ("target", self.target)):
            if v is not None:
                out[k] = v
        return out


@dataclass(frozen=True)
class ProjectDoctorReport:
    findings: list[DoctorFinding]
    passed: bool
    errors: list[DoctorFinding]
    warnings: list[DoctorFinding]
    fixable: list[DoctorFinding] = field(default_factory=list)
    fixed: list[DoctorFinding] = field(default_factory=list)

    @classmethod
    def from_findings(
        cls,
        findings: list[DoctorFinding],
        *,
        fixable: list[DoctorFinding] | None = None,
        fixed: list[DoctorFinding] | None = None,
    ) -> "ProjectDoctorReport":
        errors = [f for f in findings if f.severity == "error" and not f.passed]
        warnings = [f for f in findings if f.severity == "warning" and not f.passed]
        return cls(
            findings=list(findings),
            passed=not errors,
            errors=errors,
            warnings=warnings,
            fixable=list(fixable or []),
            fixed=list(fixed or []),
        )

    def get(self, check_id: str) -> DoctorFinding | None:
        for f in self.findings:
            if f.check_id == check_id:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "findings": [f.to_dict() for f in self.findings],
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
            "fixable": [f.to_dict() for f in self.fixable],
            "fixed": [f.to_dict() for f in self.fixed],
        }


@dataclass
class DoctorContext:
    """Collaborators for a doctor run; a default registry is built when omitted."""

    registry: PluginRegistry | None = None
    zone_policy: ZonePolicy = DEFAULT_ZONE_POLICY
    preview_limit: int | None = None


def format_issue_list(title: str, issues: list[str], limit: int) -> str:
    shown = "\n".join(f"  - {i}" for i in issues[:limit])
    more = f"\n  ... and {len(issues) - limit} more" if len(issues) > limit else ""
    return f"{title}:\n{shown}{more}"
