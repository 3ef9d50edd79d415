from datetime import date
import itertools
import json
import unittest
from unittest.mock import patch

from appwrite.exception import AppwriteException
from requests import ConnectionError as RequestsConnectionError

from termwise.core.errors import DuplicateYearCode, RecordNotFound, Unavailable
from termwise.core.models import AcademicYear
from termwise.core.weeks import generate_term_weeks
from termwise.services.appwrite_service import CONTEXT_DOCUMENT_ID, AppwriteService

from fakes import make_term, sample_config


def _service(**overrides) -> AppwriteService:
    values = dict(
        endpoint="https://appwrite.example.test/v1/",
        project_id="project",
        api_key="secret",
        database_id="termwise",
        program_types_collection_id="program_types",
        years_collection_id="academic_years",
        terms_collection_id="terms",
        weeks_collection_id="term_weeks",
        supplementary_collection_id="supplementary_periods",
        context_collection_id="calendar_context",
        assessment_types_collection_id="assessment_types",
        grade_scales_collection_id="grade_scales",
        configs_collection_id="assessment_configs",
        results_collection_id="course_results",
    )
    values.update(overrides)
    return AppwriteService(**values)


class AppwriteServiceTestCase(unittest.TestCase):
    def setUp(self):
        client_patch = patch("termwise.services.appwrite_service.Client")
        databases_patch = patch("termwise.services.appwrite_service.Databases")
        self.client_cls = client_patch.start()
        databases_cls = databases_patch.start()
        self.addCleanup(client_patch.stop)
        self.addCleanup(databases_patch.stop)

        self.service = _service()
        self.db = databases_cls.return_value


class ConnectionTests(AppwriteServiceTestCase):
    def test_client_is_configured(self):
        client = self.client_cls.return_value
        client.set_endpoint.assert_called_once_with("https://appwrite.example.test/v1")
        client.set_project.assert_called_once_with("project")
        client.set_key.assert_called_once_with("secret")

    def test_missing_configuration(self):
        with self.assertRaises(Unavailable):
            _service(endpoint="")
        with self.assertRaises(Unavailable):
            _service(database_id="")

    def test_missing_document(self):
        self.db.get_document.side_effect = AppwriteException("Document not found", 404)
        with self.assertRaises(RecordNotFound):
            self.service.load_term("term-1")

    def test_server_error_is_unavailable(self):
        self.db.get_document.side_effect = AppwriteException("Internal error", 500)
        with self.assertRaises(Unavailable):
            self.service.load_term("term-1")

    def test_network_error_is_unavailable(self):
        self.db.list_documents.side_effect = RequestsConnectionError("connection refused")
        with self.assertRaises(Unavailable):
            self.service.load_assessment_types()


class DocumentMappingTests(AppwriteServiceTestCase):
    def test_load_term_marks_current_term(self):
        self.db.get_document.side_effect = [
            {
                "$id": "term-1",
                "academic_year_id": "year-2025",
                "code": "T1",
                "name": "Term 1",
                "term_number": 1,
                "semester_group": 1,
                "lecturing_starts": "2025-01-06T00:00:00.000+00:00",
                "classes_commence": "2025-01-13",
                "lectures_end_exam_start": "2025-04-07",
                "college_closes": "2025-04-11",
            },
            {"$id": "year-2025", "current_term_id": "term-1"},
        ]

        term = self.service.load_term("term-1")

        self.assertTrue(term.is_current)
        self.assertEqual(term.lecturing_starts, date(2025, 1, 6))
        self.assertEqual(term.college_closes, date(2025, 4, 11))

    def test_load_term_weeks_without_set(self):
        self.db.get_document.return_value = {"$id": "term-1", "week_set_id": None}
        self.assertEqual(self.service.load_term_weeks("term-1"), [])
        self.db.list_documents.assert_not_called()

    def test_load_grade_scales_parses_bands(self):
        self.db.list_documents.return_value = {
            "documents": [
                {
                    "$id": "standard",
                    "name": "Standard",
                    "bands": json.dumps(
                        [
                            {"label": "P", "min_percentage": 50, "grade_point": 1},
                            {"label": "F", "min_percentage": 0, "grade_point": 0},
                        ]
                    ),
                }
            ]
        }

        scales = self.service.load_grade_scales()

        self.assertEqual(len(scales), 1)
        self.assertEqual([band.label for band in scales[0].bands], ["P", "F"])
        self.assertEqual(scales[0].bands[0].min_percentage, 50.0)

    def test_save_assessment_config_stores_weightings_as_json(self):
        self.db.list_documents.return_value = {"documents": []}
        self.db.create_document.side_effect = lambda database_id, collection_id, document_id, data: {
            "$id": "config-1",
            **data,
        }

        saved = self.service.save_assessment_config(sample_config())

        data = self.db.create_document.call_args[0][3]
        rows = json.loads(data["weightings"])
        self.assertEqual([row["assessment_type_id"] for row in rows], ["assignments", "midterm", "final"])
        self.assertEqual(saved.id, "config-1")
        self.assertEqual(saved.weightings, sample_config().weightings)

    def test_create_academic_year_serializes_dates(self):
        self.db.create_document.side_effect = lambda database_id, collection_id, document_id, data: {
            "$id": "year-1",
            **data,
        }
        self.db.get_document.side_effect = AppwriteException("Document not found", 404)

        year = self.service.create_academic_year(
            AcademicYear(id="", year_code="2025", label="2025", start_date=date(2025, 1, 6), end_date=date(2025, 12, 12))
        )

        data = self.db.create_document.call_args[0][3]
        self.assertEqual(data["start_date"], "2025-01-06")
        self.assertEqual(year.id, "year-1")
        self.assertFalse(year.is_current)

    def test_create_academic_year_conflict_is_duplicate(self):
        self.db.create_document.side_effect = AppwriteException("Document with the requested ID already exists", 409)

        with self.assertRaises(DuplicateYearCode):
            self.service.create_academic_year(
                AcademicYear(id="", year_code="2025", label="2025", start_date=date(2025, 1, 6), end_date=date(2025, 12, 12))
            )

    def test_load_results_ignores_malformed_submissions(self):
        self.db.list_documents.return_value = {
            "documents": [
                {"$id": "r1", "student_id": "s1", "percentage": 72, "submissions": json.dumps(["final"]), "graded": 1},
                {"$id": "r2", "student_id": "s2", "percentage": 64, "submissions": json.dumps({"final": 1})},
            ]
        }

        results = self.service.load_results("course-eng101", "year-2025", "term-1")

        self.assertEqual([result.submissions for result in results], [{}, {"final": 1}])


class CurrentPointerTests(AppwriteServiceTestCase):
    def test_set_current_year_creates_context_document(self):
        self.db.update_document.side_effect = AppwriteException("Document not found", 404)
        self.db.create_document.return_value = {"$id": CONTEXT_DOCUMENT_ID, "current_year_id": "year-2025"}

        self.service.set_current_year("year-2025")

        args = self.db.create_document.call_args[0]
        self.assertEqual(args[1:], ("calendar_context", CONTEXT_DOCUMENT_ID, {"current_year_id": "year-2025"}))

    def test_set_current_term_is_one_write(self):
        self.service.set_current_term("year-2025", "term-2")
        self.db.update_document.assert_called_once_with(
            "termwise", "academic_years", "year-2025", {"current_term_id": "term-2"}
        )


class SaveTermWeeksTests(AppwriteServiceTestCase):
    def setUp(self):
        super().setUp()
        self.weeks = generate_term_weeks(make_term())
        ids = itertools.count(1)
        self.db.get_document.return_value = {"$id": "term-1", "week_set_id": "old-set"}
        self.db.create_document.side_effect = lambda *args, **kwargs: {"$id": f"new-{next(ids)}"}

    def test_switches_week_set_then_removes_old_weeks(self):
        self.db.list_documents.return_value = {"documents": [{"$id": "old-1"}, {"$id": "old-2"}]}

        saved = self.service.save_term_weeks("term-1", self.weeks)

        self.assertEqual(saved, self.weeks)
        self.assertEqual(self.db.create_document.call_count, 14)
        update_args = self.db.update_document.call_args[0]
        self.assertEqual(update_args[1:3], ("terms", "term-1"))
        new_set_id = update_args[3]["week_set_id"]
        self.assertNotEqual(new_set_id, "old-set")
        self.assertTrue(all(call[0][3]["week_set_id"] == new_set_id for call in self.db.create_document.call_args_list))
        deleted = [call[0][2] for call in self.db.delete_document.call_args_list]
        self.assertEqual(deleted, ["old-1", "old-2"])

    def test_failed_switch_keeps_previous_set(self):
        self.db.update_document.side_effect = AppwriteException("Internal error", 500)

        with self.assertRaises(Unavailable):
            self.service.save_term_weeks("term-1", self.weeks)

        deleted = [call[0][2] for call in self.db.delete_document.call_args_list]
        self.assertEqual(deleted, [f"new-{n}" for n in range(1, 15)])
        self.db.list_documents.assert_not_called()

    def test_cleanup_failure_is_logged(self):
        self.db.list_documents.return_value = {"documents": [{"$id": "old-1"}]}
        self.db.delete_document.side_effect = AppwriteException("Internal error", 500)

        with self.assertLogs("termwise.services.appwrite_service", level="WARNING"):
            saved = self.service.save_term_weeks("term-1", self.weeks)

        self.assertEqual(len(saved), 14)


if __name__ == "__main__":
    unittest.main()
