from datetime import date
import unittest

from termwise.core.errors import (
    DuplicateYearCode,
    InactiveTerm,
    InvalidPeriodRange,
    InvalidTerm,
    InvalidTermBoundaries,
    RecordNotFound,
    Unavailable,
)
from termwise.core.models import ProgramType, WeekKind
from termwise.services.calendar_service import CalendarService

from fakes import InMemoryStore, make_period, make_term, make_year


class CalendarServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.store.add_year(make_year())
        self.store.add_term(make_term())
        self.service = CalendarService(self.store)


class WeekGenerationTests(CalendarServiceTestCase):
    def test_generate_and_list_weeks(self):
        weeks = self.service.generate_weeks_for_term("term-1")

        self.assertEqual(len(weeks), 14)
        self.assertEqual(self.service.list_term_weeks("term-1"), weeks)

    def test_regenerating_replaces_weeks(self):
        self.service.generate_weeks_for_term("term-1")
        weeks = self.service.generate_weeks_for_term("term-1", [(date(2025, 2, 17), date(2025, 2, 23))])

        stored = self.service.list_term_weeks("term-1")
        self.assertEqual(len(stored), 14)
        self.assertEqual(stored, weeks)
        self.assertEqual(stored[6].kind, WeekKind.RECESS)

    def test_inactive_term(self):
        self.store.add_term(make_term(id="term-2", term_number=2, is_active=False))

        with self.assertRaises(InactiveTerm):
            self.service.generate_weeks_for_term("term-2")
        self.assertEqual(self.store.weeks, {})

    def test_invalid_boundaries_keep_previous_weeks(self):
        previous = self.service.generate_weeks_for_term("term-1")
        self.store.terms["term-1"] = make_term(classes_commence=date(2025, 5, 1))

        with self.assertRaises(InvalidTermBoundaries):
            self.service.generate_weeks_for_term("term-1")
        self.assertEqual(self.service.list_term_weeks("term-1"), previous)

    def test_store_failure_keeps_previous_weeks(self):
        previous = self.service.generate_weeks_for_term("term-1")
        self.store.fail_week_saves = True

        with self.assertRaises(Unavailable):
            self.service.generate_weeks_for_term("term-1", [(date(2025, 2, 17), date(2025, 2, 23))])
        self.assertEqual(self.service.list_term_weeks("term-1"), previous)

    def test_unknown_term(self):
        with self.assertRaises(RecordNotFound):
            self.service.generate_weeks_for_term("missing")


class YearAndTermTests(CalendarServiceTestCase):
    def test_duplicate_year_code(self):
        with self.assertRaises(DuplicateYearCode):
            self.service.create_academic_year(make_year(id=""))

    def test_program_type_fills_day_totals(self):
        self.store.program_types["nated"] = ProgramType("nated", "NATED", "NATED", 180, 200)

        year = self.service.create_academic_year(
            make_year(id="", year_code="2026", program_type_id="nated", is_current=True)
        )

        self.assertEqual(year.total_lecturing_days, 180)
        self.assertEqual(year.total_staff_service_days, 200)
        self.assertFalse(year.is_current)
        self.assertEqual(self.store.find_year_by_code("2026").id, year.id)

    def test_explicit_day_totals_are_kept(self):
        self.store.program_types["nated"] = ProgramType("nated", "NATED", "NATED", 180, 200)
        year = self.service.create_academic_year(
            make_year(id="", year_code="2026", program_type_id="nated", total_lecturing_days=170)
        )
        self.assertEqual(year.total_lecturing_days, 170)
        self.assertEqual(year.total_staff_service_days, 200)

    def test_create_term_needs_existing_year(self):
        with self.assertRaises(RecordNotFound):
            self.service.create_term(make_term(id="", academic_year_id="year-1999"))

    def test_create_term_is_checked(self):
        with self.assertRaises(InvalidTerm):
            self.service.create_term(make_term(id="", term_number=2, semester_group=2))

    def test_create_term(self):
        term = self.service.create_term(make_term(id="", term_number=2, is_current=True))
        self.assertTrue(term.is_active)
        self.assertFalse(term.is_current)
        self.assertIn(term.id, self.store.terms)


class CurrentContextTests(CalendarServiceTestCase):
    def test_only_one_current_year(self):
        self.store.add_year(make_year(id="year-2026", year_code="2026"))

        self.service.set_current_year("year-2025")
        self.service.set_current_year("year-2026")

        current = [year.id for year in self.store.list_academic_years() if year.is_current]
        self.assertEqual(current, ["year-2026"])

    def test_only_one_current_term(self):
        self.store.add_term(make_term(id="term-2", term_number=2))

        self.service.set_current_term("term-1")
        self.service.set_current_term("term-2")

        current = [term.id for term in self.store.list_terms("year-2025") if term.is_current]
        self.assertEqual(current, ["term-2"])

    def test_inactive_term_cannot_be_current(self):
        self.store.add_term(make_term(id="term-2", term_number=2, is_active=False))
        with self.assertRaises(InactiveTerm):
            self.service.set_current_term("term-2")

    def test_context_follows_current_pointers(self):
        self.store.add_term(make_term(id="term-2", term_number=2))
        self.service.set_current_year("year-2025")
        self.service.set_current_term("term-2")

        context = self.service.current_context()

        self.assertEqual(context.year.id, "year-2025")
        self.assertTrue(context.year.is_current)
        self.assertEqual(context.term.id, "term-2")

    def test_context_falls_back_to_active_year_and_first_term(self):
        context = self.service.current_context()
        self.assertEqual(context.year.id, "year-2025")
        self.assertEqual(context.term.id, "term-1")

    def test_no_context_without_terms(self):
        store = InMemoryStore()
        store.add_year(make_year())
        self.assertIsNone(CalendarService(store).current_context())

    def test_deactivated_term_leaves_context(self):
        self.store.add_term(make_term(id="term-2", term_number=2))
        self.service.deactivate_term("term-1")

        self.assertFalse(self.store.load_term("term-1").is_active)
        self.assertEqual(self.service.current_context().term.id, "term-2")


class OverviewAndSupplementaryTests(CalendarServiceTestCase):
    def test_overview_counts_weeks(self):
        self.service.generate_weeks_for_term("term-1")
        self.store.add_term(make_term(id="term-2", term_number=2, lecturing_staff_days=50, total_staff_service_days=55))

        overview = self.service.calendar_overview("year-2025")

        self.assertEqual([row.weeks_configured for row in overview.rows], [14, 0])
        self.assertEqual(overview.total_lecturing_days, 110)
        self.assertEqual(overview.total_staff_service_days, 125)

    def test_supplementary_overlaps_use_active_terms(self):
        self.service.generate_weeks_for_term("term-1")
        self.store.add_term(make_term(id="term-9", term_number=2, is_active=False))
        self.store.weeks["term-9"] = list(self.store.weeks["term-1"])
        self.store.periods["sp-1"] = make_period()

        resolved = self.service.resolve_supplementary_overlaps("year-2025")

        self.assertEqual(len(resolved), 1)
        self.assertEqual([(ref.term_id, ref.sequence) for ref in resolved[0].overlapping_weeks], [("term-1", 14)])
        self.assertTrue(resolved[0].overlaps_exam)

    def test_create_supplementary_period(self):
        created = self.service.create_supplementary_period(make_period(id="", term_id="term-1"))
        self.assertIn(created.id, self.store.periods)

    def test_supplementary_term_must_belong_to_year(self):
        self.store.add_year(make_year(id="year-2026", year_code="2026"))
        self.store.add_term(make_term(id="term-2026", academic_year_id="year-2026"))

        with self.assertRaises(InvalidTerm):
            self.service.create_supplementary_period(make_period(id="", term_id="term-2026"))

    def test_reversed_supplementary_period(self):
        with self.assertRaises(InvalidPeriodRange):
            self.service.create_supplementary_period(
                make_period(id="", start_date=date(2025, 4, 20), end_date=date(2025, 4, 9))
            )


if __name__ == "__main__":
    unittest.main()
