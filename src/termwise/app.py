import logging
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware

from termwise.config.settings import settings
from termwise.core.errors import TermwiseError, Unavailable
from termwise.schemas import (
    AcademicYearPayload,
    AssessmentConfigPayload,
    AssessmentTypePayload,
    GenerateWeeksPayload,
    SupplementaryPayload,
    TermPayload,
    error_response,
    resolved_period_payload,
)
from termwise.services.assessment_service import AssessmentService
from termwise.services.calendar_service import CalendarService


logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Termwise API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(exc: TermwiseError) -> HTTPException:
    if isinstance(exc, Unavailable):
        logger.error("Data store unavailable: %s", exc)
    status_code, detail = error_response(exc)
    return HTTPException(status_code=status_code, detail=detail)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/terms/{term_id}/weeks")
def generate_weeks(term_id: str, payload: Optional[GenerateWeeksPayload] = None) -> List[Dict]:
    recesses = payload.to_ranges() if payload else []
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.generate_weeks_for_term(term_id, recesses))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/terms/{term_id}/weeks")
def list_weeks(term_id: str) -> List[Dict]:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.list_term_weeks(term_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.post("/terms/{term_id}/current")
def set_current_term(term_id: str) -> Dict:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.set_current_term(term_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.post("/terms/{term_id}/deactivate")
def deactivate_term(term_id: str) -> Dict:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.deactivate_term(term_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.post("/years")
def create_year(payload: AcademicYearPayload) -> Dict:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.create_academic_year(payload.to_year()))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.post("/years/{year_id}/terms")
def create_term(year_id: str, payload: TermPayload) -> Dict:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.create_term(payload.to_term(year_id)))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.post("/years/{year_id}/current")
def set_current_year(year_id: str) -> Dict:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.set_current_year(year_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/years/{year_id}/overview")
def calendar_overview(year_id: str) -> Dict:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.calendar_overview(year_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/years/{year_id}/supplementary")
def supplementary_overlaps(year_id: str) -> List[Dict]:
    try:
        calendar = CalendarService.from_settings()
        return [resolved_period_payload(item) for item in calendar.resolve_supplementary_overlaps(year_id)]
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.post("/years/{year_id}/supplementary")
def create_supplementary_period(year_id: str, payload: SupplementaryPayload) -> Dict:
    try:
        calendar = CalendarService.from_settings()
        return jsonable_encoder(calendar.create_supplementary_period(payload.to_period(year_id)))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/calendar/context")
def current_context() -> Dict:
    try:
        calendar = CalendarService.from_settings()
        context = calendar.current_context()
    except TermwiseError as exc:
        raise _http_error(exc) from exc
    return {"context": jsonable_encoder(context) if context else None}


@app.post("/assessment-configs/validate")
def validate_config(payload: AssessmentConfigPayload) -> Dict:
    try:
        assessments = AssessmentService.from_settings()
        result = assessments.validate_assessment_config(payload.to_config())
    except TermwiseError as exc:
        raise _http_error(exc) from exc
    return {"is_valid": result.is_valid, "errors": jsonable_encoder(result.errors)}


@app.put("/assessment-configs")
def save_config(payload: AssessmentConfigPayload) -> Dict:
    try:
        assessments = AssessmentService.from_settings()
        return jsonable_encoder(assessments.save_assessment_config(payload.to_config()))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/assessment-configs/default")
def default_config(course_id: str, year_id: str, term_id: str) -> Dict:
    try:
        assessments = AssessmentService.from_settings()
        return jsonable_encoder(assessments.default_assessment_config(course_id, year_id, term_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.put("/assessment-types")
def save_assessment_type(payload: AssessmentTypePayload) -> Dict:
    try:
        assessments = AssessmentService.from_settings()
        return jsonable_encoder(assessments.save_assessment_type(payload.to_type()))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/courses/{course_id}/analytics")
def course_analytics(course_id: str, year_id: str, term_id: str) -> Dict:
    try:
        assessments = AssessmentService.from_settings()
        return jsonable_encoder(assessments.compute_course_analytics(course_id, year_id, term_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/courses/{course_id}/standings")
def course_standings(course_id: str, year_id: str, term_id: str) -> List[Dict]:
    try:
        assessments = AssessmentService.from_settings()
        return jsonable_encoder(assessments.student_standings(course_id, year_id, term_id))
    except TermwiseError as exc:
        raise _http_error(exc) from exc


@app.get("/grade-scales/{scale_id}/grade")
def resolve_grade(scale_id: str, percentage: float) -> Dict:
    try:
        assessments = AssessmentService.from_settings()
        grade = assessments.resolve_grade(scale_id, percentage)
    except TermwiseError as exc:
        raise _http_error(exc) from exc
    return {"scale_id": scale_id, "percentage": percentage, "grade": grade}
