from __future__ import annotations

from dataclasses import dataclass

from timegrid.schemas.timetable import SubjectPayload

# Placement priority among mandatory subjects follows this order.
MANDATORY_KEYWORDS = ("library", "counseling", "seminar", "sports")
MANDATORY_FACULTY_TAGS = frozenset({"general", "all"})


@dataclass(frozen=True)
class MandatorySubjectTemplate:
    name: str
    code: str
    subject_type: str
    hours_per_week: int
    years: tuple[int, ...]


MANDATORY_SUBJECTS: tuple[MandatorySubjectTemplate, ...] = tuple(
    MandatorySubjectTemplate(name=name, code=f"{prefix}{year}01", subject_type=kind, hours_per_week=hours, years=(year,))
    for year in (1, 2, 3, 4)
    for name, prefix, kind, hours in (
        ("Library", "LIB", "theory", 1),
        ("Counseling", "CNS", "theory", 1),
        ("Seminar", "SEM", "theory", 2),
        ("Sports", "SPT", "practical", 1),
    )
    # Final-year sections carry no sports slot.
    if not (year == 4 and prefix == "SPT")
)

_CODES = {template.code.lower() for template in MANDATORY_SUBJECTS}
_CODE_PREFIXES = {"lib": 0, "cns": 1, "sem": 2, "spt": 3}


def mandatory_rank(name: str | None, code: str | None) -> int | None:
    """Position of a subject in the mandatory order, or None when not mandatory."""
    lowered_name = (name or "").strip().lower()
    lowered_code = (code or "").strip().lower()
    for rank, keyword in enumerate(MANDATORY_KEYWORDS):
        if keyword in lowered_name:
            return rank
    if "counsel" in lowered_name:
        return MANDATORY_KEYWORDS.index("counseling")
    if lowered_code in _CODES:
        return _CODE_PREFIXES[lowered_code[:3]]
    return None


def mandatory_subjects_for_year(year: int) -> list[MandatorySubjectTemplate]:
    return [template for template in MANDATORY_SUBJECTS if year in template.years]


def create_mandatory_subjects(department: str | None, year: int) -> list[SubjectPayload]:
    return [
        SubjectPayload(
            id=f"{(department or 'general').strip().lower().replace(' ', '-')}-{template.code.lower()}",
            code=template.code,
            name=template.name,
            type=template.subject_type,
            hours_per_week=template.hours_per_week,
            is_mandatory=True,
            department=department,
            year=year,
        )
        for template in mandatory_subjects_for_year(year)
    ]
