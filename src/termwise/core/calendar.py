from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional, Tuple

from termwise.core.errors import InvalidAcademicYear, InvalidTerm
from termwise.core.models import AcademicYear, Term
from termwise.core.weeks import check_term_boundaries


TERMS_PER_YEAR = 4
TERMS_PER_SEMESTER = 2


@dataclass(frozen=True)
class OverviewRow:
    term_id: str
    term_name: str
    term_number: int
    semester_group: int
    lecturing_starts: Optional[date]
    classes_commence: Optional[date]
    lectures_end_exam_start: Optional[date]
    college_closes: Optional[date]
    lecturing_staff_days: int
    total_staff_service_days: int
    weeks_configured: int
    is_current: bool


@dataclass(frozen=True)
class CalendarOverview:
    year: AcademicYear
    rows: Tuple[OverviewRow, ...]
    total_lecturing_days: int
    total_staff_service_days: int


@dataclass(frozen=True)
class CurrentContext:
    year: AcademicYear
    term: Term


def semester_group_for(term_number: int) -> int:
    return (term_number + TERMS_PER_SEMESTER - 1) // TERMS_PER_SEMESTER


def check_academic_year(year: AcademicYear) -> None:
    if not year.year_code.strip():
        raise InvalidAcademicYear("Year code is required")
    if year.start_date >= year.end_date:
        raise InvalidAcademicYear(
            f"Academic year {year.year_code} must start before it ends "
            f"({year.start_date.isoformat()} / {year.end_date.isoformat()})"
        )


def check_term(term: Term) -> None:
    if not 1 <= term.term_number <= TERMS_PER_YEAR:
        raise InvalidTerm(f"Term number must be between 1 and {TERMS_PER_YEAR}, got {term.term_number}")
    expected_group = semester_group_for(term.term_number)
    if term.semester_group != expected_group:
        raise InvalidTerm(f"Term {term.term_number} belongs to semester group {expected_group}")
    if term.lecturing_staff_days < 0 or term.total_staff_service_days < 0:
        raise InvalidTerm("Staff day counts cannot be negative")
    if term.total_staff_service_days < term.lecturing_staff_days:
        raise InvalidTerm("Total staff service days cannot be fewer than lecturing staff days")
    check_term_boundaries(term)


def pick_current_term(terms: Iterable[Term]) -> Optional[Term]:
    ordered = sorted((t for t in terms if t.is_active), key=lambda t: t.term_number)
    for term in ordered:
        if term.is_current:
            return term
    return ordered[0] if ordered else None


def build_overview(
    year: AcademicYear,
    terms: Iterable[Term],
    week_counts: Mapping[str, int],
) -> CalendarOverview:
    rows = tuple(
        OverviewRow(
            term_id=term.id,
            term_name=term.name,
            term_number=term.term_number,
            semester_group=term.semester_group,
            lecturing_starts=term.lecturing_starts,
            classes_commence=term.classes_commence,
            lectures_end_exam_start=term.lectures_end_exam_start,
            college_closes=term.college_closes,
            lecturing_staff_days=term.lecturing_staff_days,
            total_staff_service_days=term.total_staff_service_days,
            weeks_configured=week_counts.get(term.id, 0),
            is_current=term.is_current,
        )
        for term in sorted(terms, key=lambda t: t.term_number)
        if term.is_active
    )
    return CalendarOverview(
        year=year,
        rows=rows,
        total_lecturing_days=sum(row.lecturing_staff_days for row in rows),
        total_staff_service_days=sum(row.total_staff_service_days for row in rows),
    )
