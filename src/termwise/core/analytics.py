from dataclasses import dataclass
import logging
import statistics
from typing import Dict, Iterable

from termwise.core.grades import classify, grade_point, resolve_grade
from termwise.core.models import (
    AssessmentConfig,
    CourseAnalytics,
    GradeScale,
    Standing,
    StudentResult,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentStanding:
    student_id: str
    percentage: float
    grade: str
    grade_point: float
    passed: bool
    honor: bool


def _rate(count: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return round((count / total) * 100, 2)


def _completion_rates(config: AssessmentConfig, results: list) -> Dict[str, float]:
    expected: Dict[str, int] = {}
    for weighting in config.active_weightings:
        type_id = weighting.assessment_type_id
        expected[type_id] = expected.get(type_id, 0) + len(results) * weighting.number_of_assessments

    rates: Dict[str, float] = {}
    for type_id, expected_count in expected.items():
        recorded = sum(result.submissions.get(type_id, 0) for result in results)
        if expected_count and recorded > expected_count:
            logger.warning(
                "Course %s has %d submissions for assessment type %s but only %d were expected",
                config.course_id,
                recorded,
                type_id,
                expected_count,
            )
        rates[type_id] = min(100.0, _rate(recorded, expected_count))
    return rates


def aggregate_course_analytics(
    config: AssessmentConfig,
    scale: GradeScale,
    results: Iterable[StudentResult],
) -> CourseAnalytics:
    results = list(results)
    scores = [result.percentage for result in results]
    total_students = len(results)

    distribution: Dict[str, int] = {}
    passed = 0
    honors = 0
    for score in scores:
        grade = resolve_grade(scale, score)
        distribution[grade] = distribution.get(grade, 0) + 1
        standing = classify(config, score)
        if standing is not Standing.FAIL:
            passed += 1
        if standing is Standing.HONOR:
            honors += 1

    return CourseAnalytics(
        total_students=total_students,
        average_score=round(statistics.fmean(scores), 2) if scores else 0.0,
        median_score=round(statistics.median(scores), 2) if scores else 0.0,
        standard_deviation=round(statistics.pstdev(scores), 2) if scores else 0.0,
        pass_rate=_rate(passed, total_students),
        honor_rate=_rate(honors, total_students),
        submitted_assessments=sum(sum(result.submissions.values()) for result in results),
        graded_assessments=sum(result.graded for result in results),
        grade_distribution=distribution,
        assessment_completion_rates=_completion_rates(config, results),
    )


def summarize_student(config: AssessmentConfig, scale: GradeScale, result: StudentResult) -> StudentStanding:
    standing = classify(config, result.percentage)
    return StudentStanding(
        student_id=result.student_id,
        percentage=result.percentage,
        grade=resolve_grade(scale, result.percentage),
        grade_point=grade_point(scale, result.percentage),
        passed=standing is not Standing.FAIL,
        honor=standing is Standing.HONOR,
    )
