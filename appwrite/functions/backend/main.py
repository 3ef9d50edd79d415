import json
import logging
import os
import re
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ValidationError

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


logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class HttpError(Exception):
    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


def _headers(req: Any) -> Dict[str, str]:
    raw_headers = getattr(req, "headers", {}) or {}
    return {str(key).lower(): str(value) for key, value in raw_headers.items()}


def _query(req: Any) -> Dict[str, str]:
    return dict(getattr(req, "query", {}) or {})


def _normalize_path(req: Any) -> str:
    path = str(getattr(req, "path", "") or "/")
    if not path.startswith("/"):
        path = f"/{path}"
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def _cors_headers(req: Any) -> Dict[str, str]:
    origin = _headers(req).get("origin", "")
    if not origin:
        return {}

    if origin in settings.cors_allowed_origins:
        allowed_origin = origin
    else:
        allowed_origin = origin if re.match(settings.cors_allow_origin_regex, origin) else ""

    if not allowed_origin:
        return {}

    return {
        "access-control-allow-origin": allowed_origin,
        "access-control-allow-credentials": "true",
        "access-control-allow-methods": "GET,POST,PUT,OPTIONS",
        "access-control-allow-headers": "Content-Type,Authorization",
        "vary": "Origin",
    }


def _json_response(context: Any, payload: Any, status_code: int = 200, req: Any = None):
    headers = _cors_headers(req) if req is not None else {}
    return context.res.json(jsonable_encoder(payload), status_code, headers)


def _empty_response(context: Any, status_code: int = 204, req: Any = None):
    headers = _cors_headers(req) if req is not None else {}
    return context.res.empty(status_code, headers)


def _parse_body(req: Any) -> Dict[str, Any]:
    body_json = getattr(req, "bodyJson", None)
    if isinstance(body_json, dict):
        return body_json

    for attr in ("bodyText", "body"):
        candidate = getattr(req, attr, None)
        if isinstance(candidate, (bytes, bytearray)):
            candidate = candidate.decode("utf-8", errors="ignore")
        if isinstance(candidate, dict):
            return candidate
        if isinstance(candidate, str) and candidate.strip():
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError as exc:
                raise HttpError(400, "Request body must be JSON") from exc
            if not isinstance(parsed, dict):
                raise HttpError(400, "Request body must be a JSON object")
            return parsed

    return {}


def _payload(model: Type[PayloadT], req: Any) -> PayloadT:
    try:
        return model.model_validate(_parse_body(req))
    except ValidationError as exc:
        raise HttpError(400, jsonable_encoder(exc.errors(include_url=False, include_context=False))) from exc


def _require_query(req: Any, *names: str) -> Dict[str, str]:
    query = _query(req)
    missing = [name for name in names if not str(query.get(name, "")).strip()]
    if missing:
        raise HttpError(400, f"Missing query parameter(s): {', '.join(missing)}")
    return {name: str(query[name]).strip() for name in names}


def _percentage(req: Any) -> float:
    raw = _require_query(req, "percentage")["percentage"]
    try:
        return float(raw)
    except ValueError as exc:
        raise HttpError(400, "percentage must be a number") from exc


def _calendar() -> CalendarService:
    return CalendarService.from_settings()


def _assessments() -> AssessmentService:
    return AssessmentService.from_settings()


def _term_route(method: str, path: str, req: Any) -> Optional[Any]:
    match = re.fullmatch(r"/terms/([^/]+)/(weeks|current|deactivate)", path)
    if not match:
        return None
    term_id, action = match.groups()

    if action == "weeks" and method == "POST":
        payload = _payload(GenerateWeeksPayload, req)
        return _calendar().generate_weeks_for_term(term_id, payload.to_ranges())
    if action == "weeks" and method == "GET":
        return _calendar().list_term_weeks(term_id)
    if action == "current" and method == "POST":
        return _calendar().set_current_term(term_id)
    if action == "deactivate" and method == "POST":
        return _calendar().deactivate_term(term_id)
    return None


def _year_route(method: str, path: str, req: Any) -> Optional[Any]:
    if method == "POST" and path == "/years":
        return _calendar().create_academic_year(_payload(AcademicYearPayload, req).to_year())

    match = re.fullmatch(r"/years/([^/]+)/(terms|current|overview|supplementary)", path)
    if not match:
        return None
    year_id, action = match.groups()

    if action == "terms" and method == "POST":
        return _calendar().create_term(_payload(TermPayload, req).to_term(year_id))
    if action == "current" and method == "POST":
        return _calendar().set_current_year(year_id)
    if action == "overview" and method == "GET":
        return _calendar().calendar_overview(year_id)
    if action == "supplementary" and method == "GET":
        return [resolved_period_payload(item) for item in _calendar().resolve_supplementary_overlaps(year_id)]
    if action == "supplementary" and method == "POST":
        return _calendar().create_supplementary_period(_payload(SupplementaryPayload, req).to_period(year_id))
    return None


def _assessment_route(method: str, path: str, req: Any) -> Optional[Any]:
    if method == "POST" and path == "/assessment-configs/validate":
        result = _assessments().validate_assessment_config(_payload(AssessmentConfigPayload, req).to_config())
        return {"is_valid": result.is_valid, "errors": result.errors}

    if method == "PUT" and path == "/assessment-configs":
        return _assessments().save_assessment_config(_payload(AssessmentConfigPayload, req).to_config())

    if method == "GET" and path == "/assessment-configs/default":
        query = _require_query(req, "course_id", "year_id", "term_id")
        return _assessments().default_assessment_config(query["course_id"], query["year_id"], query["term_id"])

    if method == "PUT" and path == "/assessment-types":
        return _assessments().save_assessment_type(_payload(AssessmentTypePayload, req).to_type())

    course_match = re.fullmatch(r"/courses/([^/]+)/(analytics|standings)", path)
    if method == "GET" and course_match:
        course_id, action = course_match.groups()
        query = _require_query(req, "year_id", "term_id")
        if action == "analytics":
            return _assessments().compute_course_analytics(course_id, query["year_id"], query["term_id"])
        return _assessments().student_standings(course_id, query["year_id"], query["term_id"])

    grade_match = re.fullmatch(r"/grade-scales/([^/]+)/grade", path)
    if method == "GET" and grade_match:
        scale_id = grade_match.group(1)
        percentage = _percentage(req)
        grade = _assessments().resolve_grade(scale_id, percentage)
        return {"scale_id": scale_id, "percentage": percentage, "grade": grade}

    return None


def _route(context: Any, req: Any):
    method = str(getattr(req, "method", "GET") or "GET").upper()
    path = _normalize_path(req)

    if method == "OPTIONS":
        return _empty_response(context, 204, req=req)

    if method == "GET" and path == "/health":
        return _json_response(context, {"status": "ok"}, req=req)

    if method == "GET" and path == "/calendar/context":
        current = _calendar().current_context()
        return _json_response(context, {"context": current}, req=req)

    for handler in (_term_route, _year_route, _assessment_route):
        result = handler(method, path, req)
        if result is not None:
            return _json_response(context, result, req=req)

    raise HttpError(404, "Not found")


def main(context: Any):
    req = context.req

    try:
        return _route(context, req)
    except HttpError as exc:
        return _json_response(context, {"detail": exc.detail}, status_code=exc.status_code, req=req)
    except TermwiseError as exc:
        if isinstance(exc, Unavailable):
            logger.error("Data store unavailable: %s", exc)
            context.error(f"Data store unavailable: {exc}")
        status_code, detail = error_response(exc)
        return _json_response(context, {"detail": detail}, status_code=status_code, req=req)
    except Exception as exc:
        logger.exception("Unhandled exception in backend function")
        if os.getenv("APPWRITE_FUNCTION_DEBUG", "false").lower() == "true":
            context.error(str(exc))
            return _json_response(context, {"detail": str(exc)}, status_code=500, req=req)

        context.error("Unhandled exception in backend function")
        return _json_response(context, {"detail": "INTERNAL_SERVER_ERROR"}, status_code=500, req=req)
