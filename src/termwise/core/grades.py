from functools import lru_cache
from typing import Tuple

from termwise.core.errors import PercentageOutOfRange
from termwise.core.models import AssessmentConfig, GradeBand, GradeScale, Standing


@lru_cache(maxsize=64)
def grade_scale_problems(scale: GradeScale) -> Tuple[str, ...]:
    """
    Problems that stop a scale from partitioning [0, 100].

    Bands only carry lower bounds, so a scale is a partition when the bounds are
    distinct, lie inside [0, 100] and the lowest one is 0. Scales are immutable,
    which lets the answer be cached per scale.
    """
    if not scale.bands:
        return (f"Grade scale '{scale.name}' has no bands",)

    problems = []
    bounds = [band.min_percentage for band in scale.bands]
    for band in scale.bands:
        if not 0 <= band.min_percentage <= 100:
            problems.append(f"Band '{band.label}' starts at {band.min_percentage}, outside [0, 100]")
    if len(set(bounds)) != len(bounds):
        problems.append(f"Grade scale '{scale.name}' has overlapping bands")
    labels = [band.label for band in scale.bands]
    if len(set(labels)) != len(labels):
        problems.append(f"Grade scale '{scale.name}' repeats a grade label")
    if min(bounds) != 0:
        problems.append(f"Grade scale '{scale.name}' leaves [0, {min(bounds)}) ungraded")
    return tuple(problems)


def _band_for(scale: GradeScale, percentage: float) -> GradeBand:
    if not 0 <= percentage <= 100:
        raise PercentageOutOfRange(percentage)
    for band in scale.ordered_bands():
        if percentage >= band.min_percentage:
            return band
    raise ValueError(f"Grade scale '{scale.name}' has no band covering {percentage}")


def resolve_grade(scale: GradeScale, percentage: float) -> str:
    return _band_for(scale, percentage).label


def grade_point(scale: GradeScale, percentage: float) -> float:
    return _band_for(scale, percentage).grade_point


def grade_rank(scale: GradeScale, label: str) -> int:
    """Position of a grade in the scale, 0 being the best grade."""
    for rank, band in enumerate(scale.ordered_bands()):
        if band.label == label:
            return rank
    raise ValueError(f"Grade '{label}' is not part of scale '{scale.name}'")


def classify(config: AssessmentConfig, percentage: float) -> Standing:
    if not 0 <= percentage <= 100:
        raise PercentageOutOfRange(percentage)
    if percentage >= config.honor_threshold:
        return Standing.HONOR
    if percentage >= config.pass_threshold:
        return Standing.PASS
    return Standing.FAIL
