from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Tuple

from termwise.core.errors import InvalidPeriodRange
from termwise.core.models import SupplementaryPeriod, TermWeek, WeekKind


@dataclass(frozen=True)
class WeekRef:
    term_id: str
    sequence: int
    start_date: date
    end_date: date
    kind: WeekKind


@dataclass(frozen=True)
class ResolvedSupplementaryPeriod:
    period: SupplementaryPeriod
    overlapping_weeks: Tuple[WeekRef, ...]

    @property
    def overlaps_exam(self) -> bool:
        return any(ref.kind is WeekKind.EXAM for ref in self.overlapping_weeks)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and b_start <= a_end


def check_period(period: SupplementaryPeriod) -> None:
    if period.start_date > period.end_date:
        raise InvalidPeriodRange(f"Supplementary period '{period.label}' ends before it starts")

    exam_start, exam_end = period.exam_period_start, period.exam_period_end
    if (exam_start is None) != (exam_end is None):
        raise InvalidPeriodRange(f"Supplementary period '{period.label}' has a half-open exam window")
    if exam_start is not None and exam_start > exam_end:
        raise InvalidPeriodRange(f"Exam window of '{period.label}' ends before it starts")


def resolve_supplementary_overlaps(
    periods: Iterable[SupplementaryPeriod],
    weeks: Iterable[TermWeek],
) -> List[ResolvedSupplementaryPeriod]:
    """Attach every week that shares at least one day with each period. Weeks are only referenced."""
    week_list = sorted(weeks, key=lambda week: (week.start_date, week.term_id, week.sequence))

    resolved: List[ResolvedSupplementaryPeriod] = []
    for period in sorted(periods, key=lambda p: (p.start_date, p.label)):
        check_period(period)
        refs = tuple(
            WeekRef(
                term_id=week.term_id,
                sequence=week.sequence,
                start_date=week.start_date,
                end_date=week.end_date,
                kind=week.kind,
            )
            for week in week_list
            if ranges_overlap(period.start_date, period.end_date, week.start_date, week.end_date)
        )
        resolved.append(ResolvedSupplementaryPeriod(period=period, overlapping_weeks=refs))

    return resolved
