import logging
from typing import List, Optional

from termwise.core.analytics import StudentStanding, aggregate_course_analytics, summarize_student
from termwise.core.assessment import (
    ValidationPolicy,
    ValidationResult,
    assessment_type_problems,
    default_assessment_config,
    validate_assessment_config,
)
from termwise.core.errors import (
    AssessmentConfigRejected,
    InvalidAssessmentType,
    InvalidGradeScale,
    RecordNotFound,
)
from termwise.core.grades import grade_scale_problems, resolve_grade
from termwise.core.models import AssessmentConfig, AssessmentType, CourseAnalytics, GradeScale
from termwise.services.appwrite_service import AppwriteService


logger = logging.getLogger(__name__)


class AssessmentService:
    def __init__(self, store, policy: Optional[ValidationPolicy] = None) -> None:
        self.store = store
        self.policy = policy or ValidationPolicy()

    @classmethod
    def from_settings(cls) -> "AssessmentService":
        return cls(AppwriteService.from_settings(), ValidationPolicy.from_settings())

    def _grade_scale(self, scale_id: str) -> GradeScale:
        for scale in self.store.load_grade_scales():
            if scale.id != scale_id:
                continue
            problems = grade_scale_problems(scale)
            if problems:
                logger.warning("Grade scale %s cannot be used: %s", scale_id, "; ".join(problems))
                raise InvalidGradeScale("; ".join(problems))
            return scale
        raise RecordNotFound(f"Grade scale {scale_id} not found")

    def _config(self, course_id: str, year_id: str, term_id: str) -> AssessmentConfig:
        config = self.store.load_assessment_config(course_id, year_id, term_id)
        if config is None:
            raise RecordNotFound(f"No assessment configuration for course {course_id} in term {term_id}")
        return config

    def validate_assessment_config(self, config: AssessmentConfig) -> ValidationResult:
        return validate_assessment_config(
            config,
            self.store.load_assessment_types(),
            self.store.load_grade_scales(),
            self.policy,
        )

    def save_assessment_config(self, config: AssessmentConfig) -> AssessmentConfig:
        result = self.validate_assessment_config(config)
        if not result.is_valid:
            raise AssessmentConfigRejected(result.errors)
        saved = self.store.save_assessment_config(config)
        logger.info("Saved assessment configuration for course %s, term %s", saved.course_id, saved.term_id)
        return saved

    def default_assessment_config(self, course_id: str, year_id: str, term_id: str) -> AssessmentConfig:
        return default_assessment_config(
            course_id,
            year_id,
            term_id,
            self.store.load_assessment_types(),
            self.store.load_grade_scales(),
        )

    def save_assessment_type(self, assessment_type: AssessmentType) -> AssessmentType:
        problems = assessment_type_problems(assessment_type)
        if problems:
            raise InvalidAssessmentType("; ".join(problems))
        return self.store.save_assessment_type(assessment_type)

    def compute_course_analytics(self, course_id: str, year_id: str, term_id: str) -> CourseAnalytics:
        config = self._config(course_id, year_id, term_id)
        scale = self._grade_scale(config.grade_scale_id)
        results = self.store.load_results(course_id, year_id, term_id)
        return aggregate_course_analytics(config, scale, results)

    def student_standings(self, course_id: str, year_id: str, term_id: str) -> List[StudentStanding]:
        config = self._config(course_id, year_id, term_id)
        scale = self._grade_scale(config.grade_scale_id)
        results = self.store.load_results(course_id, year_id, term_id)
        return [summarize_student(config, scale, result) for result in results]

    def resolve_grade(self, scale_id: str, percentage: float) -> str:
        return resolve_grade(self._grade_scale(scale_id), percentage)
