"""Project doctor.

Checks a generated project for manifest, marker, ownership-zone, injection and
plugin drift. Fix mode only ever repairs CLI-managed (SYSTEM zone) targets.
"""
from patchkit.doctor.runner import apply_safe_fixes, is_fixable, run_project_doctor
from patchkit.doctor.types import DoctorContext, DoctorFinding, ProjectDoctorReport

__all__ = [
    "DoctorContext",
    "DoctorFinding",
    "ProjectDoctorReport",
    "apply_safe_fixes",
    "is_fixable",
    "run_project_doctor",
]
