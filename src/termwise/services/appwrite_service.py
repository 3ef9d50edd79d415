from datetime import date, datetime
import json
import logging
from typing import Dict, List, Optional

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.query import Query
from appwrite.services.databases import Databases
from requests import RequestException

from termwise.config.settings import settings
from termwise.core.errors import DuplicateYearCode, RecordNotFound, TermwiseError, Unavailable
from termwise.core.models import (
    AcademicYear,
    AssessmentConfig,
    AssessmentType,
    AssessmentWeighting,
    GradeBand,
    GradeScale,
    ProgramType,
    StudentResult,
    SupplementaryCategory,
    SupplementaryPeriod,
    Term,
    TermWeek,
    WeekKind,
)


logger = logging.getLogger(__name__)

CONTEXT_DOCUMENT_ID = "current"
PAGE_SIZE = 100


class AppwriteService:
    """Calendar and assessment records kept in Appwrite Databases."""

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        program_types_collection_id: str,
        years_collection_id: str,
        terms_collection_id: str,
        weeks_collection_id: str,
        supplementary_collection_id: str,
        context_collection_id: str,
        assessment_types_collection_id: str,
        grade_scales_collection_id: str,
        configs_collection_id: str,
        results_collection_id: str,
    ) -> None:
        if not endpoint:
            raise Unavailable("Missing APPWRITE_ENDPOINT in environment")
        if not project_id:
            raise Unavailable("Missing APPWRITE_PROJECT_ID in environment")
        if not api_key:
            raise Unavailable("Missing APPWRITE_API_KEY in environment")
        if not database_id:
            raise Unavailable("Missing APPWRITE_DATABASE_ID in environment")

        self.database_id = database_id
        self.program_types_collection_id = program_types_collection_id
        self.years_collection_id = years_collection_id
        self.terms_collection_id = terms_collection_id
        self.weeks_collection_id = weeks_collection_id
        self.supplementary_collection_id = supplementary_collection_id
        self.context_collection_id = context_collection_id
        self.assessment_types_collection_id = assessment_types_collection_id
        self.grade_scales_collection_id = grade_scales_collection_id
        self.configs_collection_id = configs_collection_id
        self.results_collection_id = results_collection_id

        client = Client()
        client.set_endpoint(endpoint.rstrip("/"))
        client.set_project(project_id)
        client.set_key(api_key)

        self.db = Databases(client)

    @classmethod
    def from_settings(cls) -> "AppwriteService":
        return cls(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            api_key=settings.appwrite_api_key,
            database_id=settings.appwrite_database_id,
            program_types_collection_id=settings.appwrite_program_types_collection_id,
            years_collection_id=settings.appwrite_years_collection_id,
            terms_collection_id=settings.appwrite_terms_collection_id,
            weeks_collection_id=settings.appwrite_weeks_collection_id,
            supplementary_collection_id=settings.appwrite_supplementary_collection_id,
            context_collection_id=settings.appwrite_context_collection_id,
            assessment_types_collection_id=settings.appwrite_assessment_types_collection_id,
            grade_scales_collection_id=settings.appwrite_grade_scales_collection_id,
            configs_collection_id=settings.appwrite_configs_collection_id,
            results_collection_id=settings.appwrite_results_collection_id,
        )

    @staticmethod
    def _to_iso(value: Optional[date]) -> Optional[str]:
        if value is None:
            return None
        return value.isoformat()

    @staticmethod
    def _from_iso(value: Optional[str]) -> Optional[date]:
        if not value:
            return None
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None

    @staticmethod
    def _is_missing(exc: AppwriteException) -> bool:
        return getattr(exc, "code", None) == 404

    @staticmethod
    def _is_conflict(exc: AppwriteException) -> bool:
        return getattr(exc, "code", None) == 409

    @staticmethod
    def _load_json(value, default):
        if isinstance(value, str) and value:
            try:
                value = json.loads(value)
            except ValueError:
                return default
        # A payload of the wrong shape is treated like a missing one.
        if isinstance(value, type(default)):
            return value
        return default

    def _list_documents(self, collection_id: str, queries: List[str]) -> List[Dict]:
        try:
            result = self.db.list_documents(self.database_id, collection_id, queries=queries)
            return list(result.get("documents", []))
        except (AppwriteException, RequestException) as exc:
            raise Unavailable(str(exc)) from exc

    def _list_all(self, collection_id: str, queries: List[str]) -> List[Dict]:
        documents: List[Dict] = []
        offset = 0
        while True:
            page = self._list_documents(collection_id, [*queries, Query.limit(PAGE_SIZE), Query.offset(offset)])
            documents.extend(page)
            if len(page) < PAGE_SIZE:
                return documents
            offset += PAGE_SIZE

    def _create_document(
        self,
        collection_id: str,
        data: Dict,
        document_id: Optional[str] = None,
        on_conflict: Optional[TermwiseError] = None,
    ) -> Dict:
        try:
            return self.db.create_document(
                self.database_id,
                collection_id,
                document_id or ID.unique(),
                data,
            )
        except AppwriteException as exc:
            if on_conflict is not None and self._is_conflict(exc):
                raise on_conflict from exc
            raise Unavailable(str(exc)) from exc
        except RequestException as exc:
            raise Unavailable(str(exc)) from exc

    def _get_document(self, collection_id: str, document_id: str) -> Dict:
        try:
            return self.db.get_document(self.database_id, collection_id, document_id)
        except AppwriteException as exc:
            if self._is_missing(exc):
                raise RecordNotFound(f"{collection_id}/{document_id} not found") from exc
            raise Unavailable(str(exc)) from exc
        except RequestException as exc:
            raise Unavailable(str(exc)) from exc

    def _update_document(self, collection_id: str, document_id: str, data: Dict) -> Dict:
        try:
            return self.db.update_document(self.database_id, collection_id, document_id, data)
        except AppwriteException as exc:
            if self._is_missing(exc):
                raise RecordNotFound(f"{collection_id}/{document_id} not found") from exc
            raise Unavailable(str(exc)) from exc
        except RequestException as exc:
            raise Unavailable(str(exc)) from exc

    def _upsert_document(self, collection_id: str, document_id: str, data: Dict) -> Dict:
        try:
            return self._update_document(collection_id, document_id, data)
        except RecordNotFound:
            return self._create_document(collection_id, data, document_id=document_id)

    def _delete_document(self, collection_id: str, document_id: str) -> None:
        try:
            self.db.delete_document(self.database_id, collection_id, document_id)
        except (AppwriteException, RequestException) as exc:
            raise Unavailable(str(exc)) from exc

    def _find_first(self, collection_id: str, queries: List[str]) -> Optional[Dict]:
        docs = self._list_documents(collection_id, [*queries, Query.limit(1)])
        if not docs:
            return None
        return docs[0]

    # Program types and academic years

    def load_program_type(self, program_type_id: str) -> ProgramType:
        doc = self._get_document(self.program_types_collection_id, program_type_id)
        return ProgramType(
            id=doc["$id"],
            code=doc.get("code", ""),
            name=doc.get("name", ""),
            default_lecturing_days=int(doc.get("default_lecturing_days") or 0),
            default_staff_service_days=int(doc.get("default_staff_service_days") or 0),
            is_active=bool(doc.get("is_active", True)),
        )

    def load_current_year_id(self) -> Optional[str]:
        try:
            doc = self._get_document(self.context_collection_id, CONTEXT_DOCUMENT_ID)
        except RecordNotFound:
            return None
        return doc.get("current_year_id") or None

    def _year_from_doc(self, doc: Dict, current_year_id: Optional[str]) -> AcademicYear:
        return AcademicYear(
            id=doc["$id"],
            year_code=doc.get("year_code", ""),
            label=doc.get("label", doc["$id"]),
            start_date=self._from_iso(doc.get("start_date")),
            end_date=self._from_iso(doc.get("end_date")),
            program_type_id=doc.get("program_type_id") or "",
            is_current=doc["$id"] == current_year_id,
            is_active=bool(doc.get("is_active", True)),
            total_lecturing_days=int(doc.get("total_lecturing_days") or 0),
            total_staff_service_days=int(doc.get("total_staff_service_days") or 0),
            total_terms=int(doc.get("total_terms") or 4),
            terms_per_semester=int(doc.get("terms_per_semester") or 2),
        )

    def load_academic_year(self, year_id: str) -> AcademicYear:
        doc = self._get_document(self.years_collection_id, year_id)
        return self._year_from_doc(doc, self.load_current_year_id())

    def list_academic_years(self) -> List[AcademicYear]:
        current_year_id = self.load_current_year_id()
        docs = self._list_all(self.years_collection_id, [Query.order_desc("year_code")])
        return [self._year_from_doc(doc, current_year_id) for doc in docs]

    def find_year_by_code(self, year_code: str) -> Optional[AcademicYear]:
        doc = self._find_first(self.years_collection_id, [Query.equal("year_code", [year_code])])
        if not doc:
            return None
        return self._year_from_doc(doc, self.load_current_year_id())

    def create_academic_year(self, year: AcademicYear) -> AcademicYear:
        doc = self._create_document(
            self.years_collection_id,
            {
                "year_code": year.year_code,
                "label": year.label,
                "start_date": self._to_iso(year.start_date),
                "end_date": self._to_iso(year.end_date),
                "program_type_id": year.program_type_id,
                "is_active": year.is_active,
                "total_lecturing_days": year.total_lecturing_days,
                "total_staff_service_days": year.total_staff_service_days,
                "total_terms": year.total_terms,
                "terms_per_semester": year.terms_per_semester,
                "current_term_id": None,
            },
            # The unique index on year_code settles concurrent creates.
            on_conflict=DuplicateYearCode(f"Academic year {year.year_code} already exists"),
        )
        return self._year_from_doc(doc, self.load_current_year_id())

    def set_current_year(self, year_id: str) -> None:
        # One document holds the pointer, so the switch is a single write.
        self._upsert_document(
            self.context_collection_id,
            CONTEXT_DOCUMENT_ID,
            {"current_year_id": year_id},
        )

    # Terms and weeks

    def _term_from_doc(self, doc: Dict, current_term_id: Optional[str]) -> Term:
        return Term(
            id=doc["$id"],
            academic_year_id=doc.get("academic_year_id", ""),
            code=doc.get("code", ""),
            name=doc.get("name", doc["$id"]),
            term_number=int(doc.get("term_number") or 0),
            semester_group=int(doc.get("semester_group") or 0),
            lecturing_starts=self._from_iso(doc.get("lecturing_starts")),
            classes_commence=self._from_iso(doc.get("classes_commence")),
            lectures_end_exam_start=self._from_iso(doc.get("lectures_end_exam_start")),
            college_closes=self._from_iso(doc.get("college_closes")),
            lecturing_staff_days=int(doc.get("lecturing_staff_days") or 0),
            total_staff_service_days=int(doc.get("total_staff_service_days") or 0),
            is_current=doc["$id"] == current_term_id,
            is_active=bool(doc.get("is_active", True)),
        )

    def _term_payload(self, term: Term) -> Dict:
        return {
            "academic_year_id": term.academic_year_id,
            "code": term.code,
            "name": term.name,
            "term_number": term.term_number,
            "semester_group": term.semester_group,
            "lecturing_starts": self._to_iso(term.lecturing_starts),
            "classes_commence": self._to_iso(term.classes_commence),
            "lectures_end_exam_start": self._to_iso(term.lectures_end_exam_start),
            "college_closes": self._to_iso(term.college_closes),
            "lecturing_staff_days": term.lecturing_staff_days,
            "total_staff_service_days": term.total_staff_service_days,
            "is_active": term.is_active,
        }

    def load_term(self, term_id: str) -> Term:
        doc = self._get_document(self.terms_collection_id, term_id)
        year = self._get_document(self.years_collection_id, doc.get("academic_year_id", ""))
        return self._term_from_doc(doc, year.get("current_term_id"))

    def list_terms(self, year_id: str) -> List[Term]:
        year = self._get_document(self.years_collection_id, year_id)
        docs = self._list_all(
            self.terms_collection_id,
            [
                Query.equal("academic_year_id", [year_id]),
                Query.order_asc("term_number"),
            ],
        )
        return [self._term_from_doc(doc, year.get("current_term_id")) for doc in docs]

    def create_term(self, term: Term) -> Term:
        doc = self._create_document(
            self.terms_collection_id,
            {**self._term_payload(term), "week_set_id": None},
        )
        return self._term_from_doc(doc, None)

    def update_term(self, term: Term) -> Term:
        doc = self._update_document(self.terms_collection_id, term.id, self._term_payload(term))
        return self._term_from_doc(doc, term.id if term.is_current else None)

    def set_current_term(self, year_id: str, term_id: str) -> None:
        # The year document owns the pointer: one write clears the old term and sets the new one.
        self._update_document(self.years_collection_id, year_id, {"current_term_id": term_id})

    def _week_from_doc(self, doc: Dict) -> TermWeek:
        return TermWeek(
            term_id=doc.get("term_id", ""),
            sequence=int(doc.get("sequence") or 0),
            start_date=self._from_iso(doc.get("start_date")),
            end_date=self._from_iso(doc.get("end_date")),
            kind=WeekKind(doc.get("kind", WeekKind.LECTURING.value)),
            lecturing_days=int(doc.get("lecturing_days") or 0),
            staff_service_days=int(doc.get("staff_service_days") or 0),
        )

    def load_term_weeks(self, term_id: str) -> List[TermWeek]:
        term_doc = self._get_document(self.terms_collection_id, term_id)
        week_set_id = term_doc.get("week_set_id")
        if not week_set_id:
            return []
        docs = self._list_all(
            self.weeks_collection_id,
            [
                Query.equal("term_id", [term_id]),
                Query.equal("week_set_id", [week_set_id]),
                Query.order_asc("sequence"),
            ],
        )
        return [self._week_from_doc(doc) for doc in docs]

    def _discard_weeks(self, document_ids: List[str]) -> None:
        for document_id in document_ids:
            try:
                self._delete_document(self.weeks_collection_id, document_id)
            except Unavailable as exc:
                logger.warning("Could not remove unreferenced week %s: %s", document_id, exc)

    def save_term_weeks(self, term_id: str, weeks: List[TermWeek]) -> List[TermWeek]:
        """
        Replace a term's weeks.

        The new weeks are written under a fresh set id and only become visible
        when the term's week_set_id is switched, which is a single update. A
        failure before the switch leaves the previous set in place.
        """
        term_doc = self._get_document(self.terms_collection_id, term_id)
        previous_set_id = term_doc.get("week_set_id")
        week_set_id = ID.unique()

        created: List[str] = []
        try:
            for week in weeks:
                doc = self._create_document(
                    self.weeks_collection_id,
                    {
                        "term_id": term_id,
                        "week_set_id": week_set_id,
                        "sequence": week.sequence,
                        "start_date": self._to_iso(week.start_date),
                        "end_date": self._to_iso(week.end_date),
                        "kind": week.kind.value,
                        "lecturing_days": week.lecturing_days,
                        "staff_service_days": week.staff_service_days,
                    },
                )
                created.append(doc["$id"])
            self._update_document(self.terms_collection_id, term_id, {"week_set_id": week_set_id})
        except (Unavailable, RecordNotFound):
            self._discard_weeks(created)
            raise

        if previous_set_id:
            stale = self._list_all(
                self.weeks_collection_id,
                [
                    Query.equal("term_id", [term_id]),
                    Query.equal("week_set_id", [previous_set_id]),
                ],
            )
            self._discard_weeks([doc["$id"] for doc in stale])

        return list(weeks)

    # Supplementary periods

    def _period_from_doc(self, doc: Dict) -> SupplementaryPeriod:
        return SupplementaryPeriod(
            id=doc["$id"],
            academic_year_id=doc.get("academic_year_id", ""),
            label=doc.get("label", ""),
            category=SupplementaryCategory(doc.get("category", SupplementaryCategory.SUPPLEMENTARY_EXAM.value)),
            start_date=self._from_iso(doc.get("start_date")),
            end_date=self._from_iso(doc.get("end_date")),
            term_id=doc.get("term_id") or None,
            exam_period_start=self._from_iso(doc.get("exam_period_start")),
            exam_period_end=self._from_iso(doc.get("exam_period_end")),
        )

    def load_supplementary_periods(self, year_id: str) -> List[SupplementaryPeriod]:
        docs = self._list_all(
            self.supplementary_collection_id,
            [
                Query.equal("academic_year_id", [year_id]),
                Query.order_asc("start_date"),
            ],
        )
        return [self._period_from_doc(doc) for doc in docs]

    def create_supplementary_period(self, period: SupplementaryPeriod) -> SupplementaryPeriod:
        doc = self._create_document(
            self.supplementary_collection_id,
            {
                "academic_year_id": period.academic_year_id,
                "term_id": period.term_id,
                "label": period.label,
                "category": period.category.value,
                "start_date": self._to_iso(period.start_date),
                "end_date": self._to_iso(period.end_date),
                "exam_period_start": self._to_iso(period.exam_period_start),
                "exam_period_end": self._to_iso(period.exam_period_end),
            },
        )
        return self._period_from_doc(doc)

    # Assessment catalog

    def _assessment_type_from_doc(self, doc: Dict) -> AssessmentType:
        return AssessmentType(
            id=doc["$id"],
            code=doc.get("code", ""),
            name=doc.get("name", ""),
            default_weight=float(doc.get("default_weight") or 0),
            min_weight=float(doc.get("min_weight") or 0),
            max_weight=float(doc.get("max_weight") if doc.get("max_weight") is not None else 100),
            is_active=bool(doc.get("is_active", True)),
            sort_order=int(doc.get("sort_order") or 0),
        )

    def load_assessment_types(self) -> List[AssessmentType]:
        docs = self._list_all(self.assessment_types_collection_id, [Query.order_asc("sort_order")])
        return [self._assessment_type_from_doc(doc) for doc in docs]

    def save_assessment_type(self, assessment_type: AssessmentType) -> AssessmentType:
        payload = {
            "code": assessment_type.code,
            "name": assessment_type.name,
            "default_weight": assessment_type.default_weight,
            "min_weight": assessment_type.min_weight,
            "max_weight": assessment_type.max_weight,
            "is_active": assessment_type.is_active,
            "sort_order": assessment_type.sort_order,
        }
        if assessment_type.id:
            doc = self._upsert_document(self.assessment_types_collection_id, assessment_type.id, payload)
        else:
            doc = self._create_document(self.assessment_types_collection_id, payload)
        return self._assessment_type_from_doc(doc)

    def load_grade_scales(self) -> List[GradeScale]:
        docs = self._list_all(
            self.grade_scales_collection_id,
            [
                Query.equal("is_active", [True]),
                Query.order_asc("name"),
            ],
        )
        results: List[GradeScale] = []
        for doc in docs:
            bands = self._load_json(doc.get("bands"), [])
            results.append(
                GradeScale(
                    id=doc["$id"],
                    name=doc.get("name", doc["$id"]),
                    bands=tuple(
                        GradeBand(
                            label=str(band.get("label", "")),
                            min_percentage=float(band.get("min_percentage", 0)),
                            grade_point=float(band.get("grade_point", 0)),
                        )
                        for band in bands
                        if isinstance(band, dict)
                    ),
                )
            )
        return results

    # Assessment configurations and results

    def _config_from_doc(self, doc: Dict) -> AssessmentConfig:
        weightings = self._load_json(doc.get("weightings"), [])
        return AssessmentConfig(
            id=doc["$id"],
            course_id=doc.get("course_id", ""),
            academic_year_id=doc.get("academic_year_id", ""),
            term_id=doc.get("term_id", ""),
            total_marks=float(doc.get("total_marks") or 0),
            pass_threshold=float(doc.get("pass_threshold") or 0),
            honor_threshold=float(doc.get("honor_threshold") or 0),
            grade_scale_id=doc.get("grade_scale_id") or "",
            weightings=tuple(
                AssessmentWeighting(
                    assessment_type_id=str(row.get("assessment_type_id", "")),
                    weight_percentage=float(row.get("weight_percentage", 0)),
                    max_marks=float(row.get("max_marks", 0)),
                    number_of_assessments=int(row.get("number_of_assessments", 0)),
                    is_active=bool(row.get("is_active", True)),
                )
                for row in weightings
                if isinstance(row, dict)
            ),
        )

    def load_assessment_config(self, course_id: str, year_id: str, term_id: str) -> Optional[AssessmentConfig]:
        doc = self._find_first(
            self.configs_collection_id,
            [
                Query.equal("course_id", [course_id]),
                Query.equal("academic_year_id", [year_id]),
                Query.equal("term_id", [term_id]),
            ],
        )
        if not doc:
            return None
        return self._config_from_doc(doc)

    def save_assessment_config(self, config: AssessmentConfig) -> AssessmentConfig:
        payload = {
            "course_id": config.course_id,
            "academic_year_id": config.academic_year_id,
            "term_id": config.term_id,
            "total_marks": config.total_marks,
            "pass_threshold": config.pass_threshold,
            "honor_threshold": config.honor_threshold,
            "grade_scale_id": config.grade_scale_id,
            "weightings": json.dumps(
                [
                    {
                        "assessment_type_id": w.assessment_type_id,
                        "weight_percentage": w.weight_percentage,
                        "max_marks": w.max_marks,
                        "number_of_assessments": w.number_of_assessments,
                        "is_active": w.is_active,
                    }
                    for w in config.weightings
                ]
            ),
        }

        existing = self.load_assessment_config(config.course_id, config.academic_year_id, config.term_id)
        if existing:
            doc = self._update_document(self.configs_collection_id, existing.id, payload)
        else:
            doc = self._create_document(self.configs_collection_id, payload)
        return self._config_from_doc(doc)

    def load_results(self, course_id: str, year_id: str, term_id: str) -> List[StudentResult]:
        docs = self._list_all(
            self.results_collection_id,
            [
                Query.equal("course_id", [course_id]),
                Query.equal("academic_year_id", [year_id]),
                Query.equal("term_id", [term_id]),
            ],
        )

        results: List[StudentResult] = []
        for doc in docs:
            submissions = self._load_json(doc.get("submissions"), {})
            results.append(
                StudentResult(
                    student_id=str(doc.get("student_id", "")),
                    percentage=float(doc.get("percentage") or 0),
                    submissions={str(key): int(value) for key, value in submissions.items()},
                    graded=int(doc.get("graded") or 0),
                )
            )
        return results
