from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Optional, Tuple


class WeekKind(str, Enum):
    LECTURING = "lecturing"
    RECESS = "recess"
    EXAM = "exam"
    CLOSED = "closed"


class SupplementaryCategory(str, Enum):
    SUPPLEMENTARY_EXAM = "supplementary_exam"
    REMEDIAL_COURSE = "remedial_course"
    LIFE_SKILLS = "life_skills"
    COMPUTER_LITERACY = "computer_literacy"


class Standing(str, Enum):
    HONOR = "honor"
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class ProgramType:
    id: str
    code: str
    name: str
    default_lecturing_days: int
    default_staff_service_days: int
    is_active: bool = True


@dataclass(frozen=True)
class AcademicYear:
    id: str
    year_code: str
    label: str
    start_date: date
    end_date: date
    program_type_id: str = ""
    is_current: bool = False
    is_active: bool = True
    total_lecturing_days: int = 0
    total_staff_service_days: int = 0
    total_terms: int = 4
    terms_per_semester: int = 2


@dataclass(frozen=True)
class Term:
    id: str
    academic_year_id: str
    code: str
    name: str
    term_number: int
    semester_group: int
    lecturing_starts: Optional[date]
    classes_commence: Optional[date]
    lectures_end_exam_start: Optional[date]
    college_closes: Optional[date]
    lecturing_staff_days: int = 0
    total_staff_service_days: int = 0
    is_current: bool = False
    is_active: bool = True

    @property
    def milestones(self) -> Tuple[Optional[date], ...]:
        return (
            self.lecturing_starts,
            self.classes_commence,
            self.lectures_end_exam_start,
            self.college_closes,
        )


@dataclass(frozen=True)
class TermWeek:
    term_id: str
    sequence: int
    start_date: date
    end_date: date
    kind: WeekKind
    lecturing_days: int = 0
    staff_service_days: int = 0

    @property
    def length_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


@dataclass(frozen=True)
class SupplementaryPeriod:
    id: str
    academic_year_id: str
    label: str
    category: SupplementaryCategory
    start_date: date
    end_date: date
    term_id: Optional[str] = None
    exam_period_start: Optional[date] = None
    exam_period_end: Optional[date] = None


@dataclass(frozen=True)
class AssessmentType:
    id: str
    code: str
    name: str
    default_weight: float
    min_weight: float
    max_weight: float
    is_active: bool = True
    sort_order: int = 0


@dataclass(frozen=True)
class GradeBand:
    label: str
    min_percentage: float
    grade_point: float = 0.0


@dataclass(frozen=True)
class GradeScale:
    id: str
    name: str
    bands: Tuple[GradeBand, ...]

    def ordered_bands(self) -> Tuple[GradeBand, ...]:
        return tuple(sorted(self.bands, key=lambda band: band.min_percentage, reverse=True))


@dataclass(frozen=True)
class AssessmentWeighting:
    assessment_type_id: str
    weight_percentage: float
    max_marks: float = 100.0
    number_of_assessments: int = 1
    is_active: bool = True


@dataclass(frozen=True)
class AssessmentConfig:
    course_id: str
    academic_year_id: str
    term_id: str
    total_marks: float
    pass_threshold: float
    honor_threshold: float
    grade_scale_id: str
    weightings: Tuple[AssessmentWeighting, ...] = ()
    id: Optional[str] = None

    @property
    def active_weightings(self) -> Tuple[AssessmentWeighting, ...]:
        return tuple(w for w in self.weightings if w.is_active)


@dataclass(frozen=True)
class StudentResult:
    student_id: str
    percentage: float
    submissions: Dict[str, int] = field(default_factory=dict)
    graded: int = 0


@dataclass(frozen=True)
class CourseAnalytics:
    total_students: int
    average_score: float
    median_score: float
    standard_deviation: float
    pass_rate: float
    honor_rate: float
    submitted_assessments: int
    graded_assessments: int
    grade_distribution: Dict[str, int] = field(default_factory=dict)
    assessment_completion_rates: Dict[str, float] = field(default_factory=dict)
