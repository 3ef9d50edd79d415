from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from termwise.core.calendar import semester_group_for
from termwise.core.errors import (
    AssessmentConfigRejected,
    DuplicateYearCode,
    RecordNotFound,
    TermwiseError,
    Unavailable,
)
from termwise.core.models import (
    AcademicYear,
    AssessmentConfig,
    AssessmentType,
    AssessmentWeighting,
    SupplementaryCategory,
    SupplementaryPeriod,
    Term,
)
from termwise.core.supplementary import ResolvedSupplementaryPeriod
from termwise.core.weeks import DateRange


class RecessPayload(BaseModel):
    start_date: date
    end_date: date


class GenerateWeeksPayload(BaseModel):
    recesses: List[RecessPayload] = Field(default_factory=list)

    def to_ranges(self) -> List[DateRange]:
        return [(recess.start_date, recess.end_date) for recess in self.recesses]


class AcademicYearPayload(BaseModel):
    year_code: str
    label: str
    start_date: date
    end_date: date
    program_type_id: str = ""

    def to_year(self) -> AcademicYear:
        return AcademicYear(id="", **self.model_dump())


class TermPayload(BaseModel):
    code: str
    name: str
    term_number: int
    semester_group: Optional[int] = None
    lecturing_starts: date
    classes_commence: date
    lectures_end_exam_start: date
    college_closes: date
    lecturing_staff_days: int = 0
    total_staff_service_days: int = 0

    def to_term(self, year_id: str) -> Term:
        data = self.model_dump()
        if data["semester_group"] is None:
            data["semester_group"] = semester_group_for(self.term_number)
        return Term(id="", academic_year_id=year_id, **data)


class SupplementaryPayload(BaseModel):
    label: str
    category: SupplementaryCategory
    start_date: date
    end_date: date
    term_id: Optional[str] = None
    exam_period_start: Optional[date] = None
    exam_period_end: Optional[date] = None

    def to_period(self, year_id: str) -> SupplementaryPeriod:
        return SupplementaryPeriod(id="", academic_year_id=year_id, **self.model_dump())


class WeightingPayload(BaseModel):
    assessment_type_id: str
    weight_percentage: float
    max_marks: float = 100
    number_of_assessments: int = 1
    is_active: bool = True


class AssessmentConfigPayload(BaseModel):
    course_id: str
    academic_year_id: str
    term_id: str
    total_marks: float = 100
    pass_threshold: float = 50
    honor_threshold: float = 80
    grade_scale_id: str = ""
    weightings: List[WeightingPayload] = Field(default_factory=list)

    def to_config(self) -> AssessmentConfig:
        data = self.model_dump()
        data["weightings"] = tuple(AssessmentWeighting(**row) for row in data["weightings"])
        return AssessmentConfig(**data)


class AssessmentTypePayload(BaseModel):
    id: str = ""
    code: str
    name: str
    default_weight: float
    min_weight: float = 0
    max_weight: float = 100
    is_active: bool = True
    sort_order: int = 0

    def to_type(self) -> AssessmentType:
        return AssessmentType(**self.model_dump())


def error_response(exc: TermwiseError) -> Tuple[int, Any]:
    """Status code and detail body for a domain error."""
    if isinstance(exc, RecordNotFound):
        return 404, str(exc)
    if isinstance(exc, DuplicateYearCode):
        return 409, str(exc)
    if isinstance(exc, Unavailable):
        return 503, str(exc)
    if isinstance(exc, AssessmentConfigRejected):
        return 422, {"errors": jsonable_encoder(exc.issues)}
    return 422, str(exc)


def resolved_period_payload(resolved: ResolvedSupplementaryPeriod) -> Dict[str, Any]:
    return {
        **jsonable_encoder(resolved.period),
        "overlapping_weeks": jsonable_encoder(resolved.overlapping_weeks),
        "overlaps_exam": resolved.overlaps_exam,
    }
