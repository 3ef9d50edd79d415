from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from termwise.config.settings import settings
from termwise.core.grades import grade_scale_problems
from termwise.core.models import (
    AssessmentConfig,
    AssessmentType,
    AssessmentWeighting,
    GradeScale,
)


TOTAL_WEIGHT = 100.0
DEFAULT_PASS_THRESHOLD = 50.0
DEFAULT_HONOR_THRESHOLD = 80.0
DEFAULT_WEIGHTING_COUNT = 4


class IssueKind(str, Enum):
    TOTAL_WEIGHT_MISMATCH = "TotalWeightMismatch"
    WEIGHT_OUT_OF_RANGE = "WeightOutOfRange"
    DUPLICATE_ASSESSMENT_TYPE = "DuplicateAssessmentType"
    INVALID_THRESHOLD_ORDER = "InvalidThresholdOrder"
    INVALID_MARKS = "InvalidMarks"
    MISSING_GRADE_SCALE = "MissingGradeScale"
    UNKNOWN_ASSESSMENT_TYPE = "UnknownAssessmentType"
    TOO_FEW_ASSESSMENTS = "TooFewAssessments"


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    message: str
    field: str = ""


@dataclass(frozen=True)
class ValidationResult:
    errors: Tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def kinds(self) -> List[IssueKind]:
        return [issue.kind for issue in self.errors]


@dataclass(frozen=True)
class ValidationPolicy:
    """Institution-level knobs. The optional rules are off unless configured."""

    weight_tolerance: float = 0.01
    min_assessments: Optional[int] = None
    max_marks_cap: Optional[float] = None
    min_pass_threshold: Optional[float] = None

    @classmethod
    def from_settings(cls) -> "ValidationPolicy":
        return cls(
            weight_tolerance=settings.weight_tolerance,
            min_assessments=settings.min_assessments,
            max_marks_cap=settings.max_marks_cap,
            min_pass_threshold=settings.min_pass_threshold,
        )


def _check_total_weight(config: AssessmentConfig, policy: ValidationPolicy) -> List[ValidationIssue]:
    total = sum(w.weight_percentage for w in config.active_weightings)
    # Rounded so a decimal total exactly at the tolerance edge is accepted.
    if round(abs(total - TOTAL_WEIGHT), 6) > policy.weight_tolerance:
        return [
            ValidationIssue(
                IssueKind.TOTAL_WEIGHT_MISMATCH,
                f"Active weightings add up to {round(total, 2)}%, expected {TOTAL_WEIGHT:g}%",
                "weightings",
            )
        ]
    return []


def _check_weight_bounds(config: AssessmentConfig, types_by_id: Dict[str, AssessmentType]) -> List[ValidationIssue]:
    issues = []
    for index, weighting in enumerate(config.weightings):
        if not weighting.is_active:
            continue
        field = f"weightings[{index}].weight_percentage"
        assessment_type = types_by_id.get(weighting.assessment_type_id)
        if assessment_type is None:
            issues.append(
                ValidationIssue(
                    IssueKind.UNKNOWN_ASSESSMENT_TYPE,
                    f"Assessment type {weighting.assessment_type_id} does not exist",
                    f"weightings[{index}].assessment_type_id",
                )
            )
            continue
        if not assessment_type.min_weight <= weighting.weight_percentage <= assessment_type.max_weight:
            issues.append(
                ValidationIssue(
                    IssueKind.WEIGHT_OUT_OF_RANGE,
                    f"{assessment_type.name} weight {weighting.weight_percentage}% must be between "
                    f"{assessment_type.min_weight}% and {assessment_type.max_weight}%",
                    field,
                )
            )
    return issues


def _check_duplicates(config: AssessmentConfig, types_by_id: Dict[str, AssessmentType]) -> List[ValidationIssue]:
    seen = set()
    reported = set()
    issues = []
    for index, weighting in enumerate(config.weightings):
        if not weighting.is_active:
            continue
        type_id = weighting.assessment_type_id
        if type_id in seen and type_id not in reported:
            name = types_by_id[type_id].name if type_id in types_by_id else type_id
            issues.append(
                ValidationIssue(
                    IssueKind.DUPLICATE_ASSESSMENT_TYPE,
                    f"{name} appears in more than one active weighting",
                    f"weightings[{index}].assessment_type_id",
                )
            )
            reported.add(type_id)
        seen.add(type_id)
    return issues


def _check_thresholds(config: AssessmentConfig, policy: ValidationPolicy) -> List[ValidationIssue]:
    issues = []
    pass_threshold, honor_threshold = config.pass_threshold, config.honor_threshold
    if not (0 <= pass_threshold <= 100 and 0 <= honor_threshold <= 100):
        issues.append(
            ValidationIssue(
                IssueKind.INVALID_THRESHOLD_ORDER,
                "Pass and honor thresholds must lie between 0% and 100%",
                "pass_threshold",
            )
        )
    elif pass_threshold >= honor_threshold:
        issues.append(
            ValidationIssue(
                IssueKind.INVALID_THRESHOLD_ORDER,
                f"Pass threshold {pass_threshold}% must be below honor threshold {honor_threshold}%",
                "honor_threshold",
            )
        )

    if policy.min_pass_threshold is not None and pass_threshold < policy.min_pass_threshold:
        issues.append(
            ValidationIssue(
                IssueKind.INVALID_THRESHOLD_ORDER,
                f"Pass threshold must be at least {policy.min_pass_threshold}%",
                "pass_threshold",
            )
        )
    return issues


def _check_marks(config: AssessmentConfig, policy: ValidationPolicy) -> List[ValidationIssue]:
    issues = []
    if config.total_marks <= 0:
        issues.append(ValidationIssue(IssueKind.INVALID_MARKS, "Total marks must be greater than 0", "total_marks"))

    for index, weighting in enumerate(config.weightings):
        if weighting.max_marks <= 0:
            issues.append(
                ValidationIssue(
                    IssueKind.INVALID_MARKS,
                    "Maximum marks must be greater than 0",
                    f"weightings[{index}].max_marks",
                )
            )
        elif policy.max_marks_cap is not None and weighting.max_marks > policy.max_marks_cap:
            issues.append(
                ValidationIssue(
                    IssueKind.INVALID_MARKS,
                    f"Maximum marks cannot exceed {policy.max_marks_cap:g}",
                    f"weightings[{index}].max_marks",
                )
            )
        if weighting.number_of_assessments < 1:
            issues.append(
                ValidationIssue(
                    IssueKind.INVALID_MARKS,
                    "Each weighting needs at least one assessment",
                    f"weightings[{index}].number_of_assessments",
                )
            )
    return issues


def _check_grade_scale(config: AssessmentConfig, scales_by_id: Dict[str, GradeScale]) -> List[ValidationIssue]:
    scale = scales_by_id.get(config.grade_scale_id)
    if scale is None:
        return [
            ValidationIssue(
                IssueKind.MISSING_GRADE_SCALE,
                f"Grade scale {config.grade_scale_id or '(none)'} does not exist",
                "grade_scale_id",
            )
        ]
    return [
        ValidationIssue(IssueKind.MISSING_GRADE_SCALE, problem, "grade_scale_id")
        for problem in grade_scale_problems(scale)
    ]


def _check_assessment_count(config: AssessmentConfig, policy: ValidationPolicy) -> List[ValidationIssue]:
    if policy.min_assessments is None:
        return []
    if len(config.active_weightings) < policy.min_assessments:
        return [
            ValidationIssue(
                IssueKind.TOO_FEW_ASSESSMENTS,
                f"Course must have at least {policy.min_assessments} assessments",
                "weightings",
            )
        ]
    return []


def validate_assessment_config(
    config: AssessmentConfig,
    assessment_types: Iterable[AssessmentType],
    grade_scales: Iterable[GradeScale],
    policy: Optional[ValidationPolicy] = None,
) -> ValidationResult:
    """Run every rule and collect all of the problems so they can be fixed in one pass."""
    policy = policy or ValidationPolicy()
    types_by_id = {t.id: t for t in assessment_types}
    scales_by_id = {s.id: s for s in grade_scales}

    errors: List[ValidationIssue] = []
    errors += _check_total_weight(config, policy)
    errors += _check_weight_bounds(config, types_by_id)
    errors += _check_duplicates(config, types_by_id)
    errors += _check_thresholds(config, policy)
    errors += _check_marks(config, policy)
    errors += _check_grade_scale(config, scales_by_id)
    errors += _check_assessment_count(config, policy)
    return ValidationResult(errors=tuple(errors))


def assessment_type_problems(assessment_type: AssessmentType) -> List[str]:
    t = assessment_type
    problems = []
    if not t.code.strip():
        problems.append("Assessment type code is required")
    if not 0 <= t.min_weight <= t.default_weight <= t.max_weight <= 100:
        problems.append(
            f"Weights for {t.name or t.code} must satisfy 0 <= min ({t.min_weight}) <= "
            f"default ({t.default_weight}) <= max ({t.max_weight}) <= 100"
        )
    return problems


def default_assessment_config(
    course_id: str,
    academic_year_id: str,
    term_id: str,
    assessment_types: Iterable[AssessmentType],
    grade_scales: Iterable[GradeScale],
) -> AssessmentConfig:
    active_types = sorted((t for t in assessment_types if t.is_active), key=lambda t: (t.sort_order, t.code))
    scales = list(grade_scales)
    return AssessmentConfig(
        course_id=course_id,
        academic_year_id=academic_year_id,
        term_id=term_id,
        total_marks=100.0,
        pass_threshold=DEFAULT_PASS_THRESHOLD,
        honor_threshold=DEFAULT_HONOR_THRESHOLD,
        grade_scale_id=scales[0].id if scales else "",
        weightings=tuple(
            AssessmentWeighting(
                assessment_type_id=t.id,
                weight_percentage=t.default_weight,
                max_marks=100.0,
                number_of_assessments=1,
            )
            for t in active_types[:DEFAULT_WEIGHTING_COUNT]
        ),
    )


def _scale_to_weight(obtained: float, weighting: AssessmentWeighting) -> float:
    possible = weighting.max_marks * weighting.number_of_assessments
    if possible <= 0:
        raise ValueError("max_marks and number_of_assessments must be positive")
    clamped = max(0.0, min(obtained, possible))
    return (clamped / possible) * weighting.weight_percentage


def weighted_percentage(config: AssessmentConfig, marks: Mapping[str, float], *, round_to: int = 2) -> float:
    """
    marks: assessment type id -> marks obtained across all of that type's assessments.
    Missing types count as zero.
    """
    total = 0.0
    for weighting in config.active_weightings:
        total += _scale_to_weight(float(marks.get(weighting.assessment_type_id, 0.0)), weighting)
    return round(max(0.0, min(total, 100.0)), round_to)
