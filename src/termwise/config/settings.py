from dataclasses import dataclass
import os
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name, "").strip()
    return float(value) if value else None


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value else None


@dataclass(frozen=True)
class Settings:
    appwrite_endpoint: str = os.getenv("APPWRITE_ENDPOINT", "")
    appwrite_project_id: str = os.getenv("APPWRITE_PROJECT_ID", "")
    appwrite_api_key: str = os.getenv("APPWRITE_API_KEY") or os.getenv("APPWRITE_FUNCTION_API_KEY", "")
    appwrite_database_id: str = os.getenv("APPWRITE_DATABASE_ID", "")

    appwrite_program_types_collection_id: str = os.getenv("APPWRITE_PROGRAM_TYPES_COLLECTION_ID", "program_types")
    appwrite_years_collection_id: str = os.getenv("APPWRITE_YEARS_COLLECTION_ID", "academic_years")
    appwrite_terms_collection_id: str = os.getenv("APPWRITE_TERMS_COLLECTION_ID", "terms")
    appwrite_weeks_collection_id: str = os.getenv("APPWRITE_WEEKS_COLLECTION_ID", "term_weeks")
    appwrite_supplementary_collection_id: str = os.getenv(
        "APPWRITE_SUPPLEMENTARY_COLLECTION_ID", "supplementary_periods"
    )
    appwrite_context_collection_id: str = os.getenv("APPWRITE_CONTEXT_COLLECTION_ID", "calendar_context")
    appwrite_assessment_types_collection_id: str = os.getenv(
        "APPWRITE_ASSESSMENT_TYPES_COLLECTION_ID", "assessment_types"
    )
    appwrite_grade_scales_collection_id: str = os.getenv("APPWRITE_GRADE_SCALES_COLLECTION_ID", "grade_scales")
    appwrite_configs_collection_id: str = os.getenv("APPWRITE_CONFIGS_COLLECTION_ID", "assessment_configs")
    appwrite_results_collection_id: str = os.getenv("APPWRITE_RESULTS_COLLECTION_ID", "course_results")

    weight_tolerance: float = float(os.getenv("TERMWISE_WEIGHT_TOLERANCE", "0.01"))
    min_assessments: Optional[int] = _optional_int("TERMWISE_MIN_ASSESSMENTS")
    max_marks_cap: Optional[float] = _optional_float("TERMWISE_MAX_MARKS_CAP")
    min_pass_threshold: Optional[float] = _optional_float("TERMWISE_MIN_PASS_THRESHOLD")

    log_level: str = os.getenv("TERMWISE_LOG_LEVEL", "INFO").upper()

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )
    cors_allow_origin_regex: str = os.getenv(
        "CORS_ALLOW_ORIGIN_REGEX",
        r"^https?:\/\/(localhost|127\.0\.0\.1)(:\d+)?$",
    )


settings = Settings()
