from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Tuple

from termwise.core.errors import InvalidPeriodRange, InvalidTermBoundaries
from termwise.core.models import Term, TermWeek, WeekKind


WEEK_LENGTH_DAYS = 7

MILESTONE_NAMES: Tuple[str, ...] = (
    "lecturing_starts",
    "classes_commence",
    "lectures_end_exam_start",
    "college_closes",
)

DateRange = Tuple[date, date]


@dataclass(frozen=True)
class WeekSummary:
    total_weeks: int
    weeks_by_kind: Dict[str, int] = field(default_factory=dict)
    lecturing_days: int = 0
    staff_service_days: int = 0


def check_term_boundaries(term: Term) -> None:
    milestones = term.milestones
    missing = [name for name, value in zip(MILESTONE_NAMES, milestones) if value is None]
    if missing:
        raise InvalidTermBoundaries(f"Term {term.id} is missing {', '.join(missing)}")

    for index in range(len(milestones) - 1):
        earlier, later = milestones[index], milestones[index + 1]
        if earlier > later:
            raise InvalidTermBoundaries(
                f"{MILESTONE_NAMES[index]} ({earlier.isoformat()}) is after "
                f"{MILESTONE_NAMES[index + 1]} ({later.isoformat()})"
            )


def count_weekdays(start: date, end: date) -> int:
    return sum(1 for offset in range((end - start).days + 1) if (start + timedelta(days=offset)).weekday() < 5)


def _kind_for_start(term: Term, week_start: date) -> WeekKind:
    # Half-open intervals checked in calendar order; the closed exam interval catches the rest.
    intervals = (
        (term.lecturing_starts, term.classes_commence, WeekKind.LECTURING),
        (term.classes_commence, term.lectures_end_exam_start, WeekKind.LECTURING),
    )
    for low, high, kind in intervals:
        if low <= week_start < high:
            return kind
    return WeekKind.EXAM


def _check_recesses(recesses: Iterable[DateRange]) -> List[DateRange]:
    checked = []
    for start, end in recesses:
        if start > end:
            raise InvalidPeriodRange(f"Recess starting {start.isoformat()} ends before it starts")
        checked.append((start, end))
    return checked


def generate_term_weeks(term: Term, recesses: Iterable[DateRange] = ()) -> List[TermWeek]:
    """
    Split [lecturing_starts, college_closes] into consecutive 7-day weeks.

    The last week is cut short at college_closes. A week's kind comes from the
    milestone interval holding its start date; weeks lying wholly inside one of
    the recess ranges are tagged as recess instead.
    """
    check_term_boundaries(term)
    recess_ranges = _check_recesses(recesses)

    weeks: List[TermWeek] = []
    week_start = term.lecturing_starts
    sequence = 1
    while week_start <= term.college_closes:
        week_end = min(week_start + timedelta(days=WEEK_LENGTH_DAYS - 1), term.college_closes)

        kind = _kind_for_start(term, week_start)
        if any(low <= week_start and week_end <= high for low, high in recess_ranges):
            kind = WeekKind.RECESS

        staff_days = count_weekdays(week_start, week_end)
        weeks.append(
            TermWeek(
                term_id=term.id,
                sequence=sequence,
                start_date=week_start,
                end_date=week_end,
                kind=kind,
                lecturing_days=staff_days if kind is WeekKind.LECTURING else 0,
                staff_service_days=staff_days,
            )
        )
        week_start += timedelta(days=WEEK_LENGTH_DAYS)
        sequence += 1

    return weeks


def summarize_weeks(weeks: Iterable[TermWeek]) -> WeekSummary:
    by_kind: Dict[str, int] = {}
    total = 0
    lecturing_days = 0
    staff_days = 0
    for week in weeks:
        total += 1
        by_kind[week.kind.value] = by_kind.get(week.kind.value, 0) + 1
        lecturing_days += week.lecturing_days
        staff_days += week.staff_service_days

    return WeekSummary(
        total_weeks=total,
        weeks_by_kind=by_kind,
        lecturing_days=lecturing_days,
        staff_service_days=staff_days,
    )
