from dataclasses import replace
import logging
from typing import Iterable, List, Optional

from termwise.core.calendar import (
    CalendarOverview,
    CurrentContext,
    build_overview,
    check_academic_year,
    check_term,
    pick_current_term,
)
from termwise.core.errors import DuplicateYearCode, InactiveTerm, InvalidTerm
from termwise.core.models import AcademicYear, SupplementaryPeriod, Term, TermWeek
from termwise.core.supplementary import (
    ResolvedSupplementaryPeriod,
    check_period,
    resolve_supplementary_overlaps,
)
from termwise.core.weeks import DateRange, generate_term_weeks
from termwise.services.appwrite_service import AppwriteService


logger = logging.getLogger(__name__)


class CalendarService:
    """
    Calendar operations used by the admin screens.

    `store` is the data-access collaborator (AppwriteService in production). Its
    errors, Unavailable included, reach the caller untouched.
    """

    def __init__(self, store) -> None:
        self.store = store

    @classmethod
    def from_settings(cls) -> "CalendarService":
        return cls(AppwriteService.from_settings())

    def generate_weeks_for_term(self, term_id: str, recesses: Iterable[DateRange] = ()) -> List[TermWeek]:
        term = self.store.load_term(term_id)
        if not term.is_active:
            raise InactiveTerm(f"Term {term.name} is deactivated")

        # Nothing is written unless the whole set was generated.
        weeks = generate_term_weeks(term, recesses)
        saved = self.store.save_term_weeks(term.id, weeks)
        logger.info("Generated %d weeks for term %s", len(saved), term.id)
        return saved

    def list_term_weeks(self, term_id: str) -> List[TermWeek]:
        return self.store.load_term_weeks(term_id)

    def resolve_supplementary_overlaps(self, year_id: str) -> List[ResolvedSupplementaryPeriod]:
        periods = self.store.load_supplementary_periods(year_id)
        weeks: List[TermWeek] = []
        for term in self.store.list_terms(year_id):
            if term.is_active:
                weeks.extend(self.store.load_term_weeks(term.id))
        return resolve_supplementary_overlaps(periods, weeks)

    def create_supplementary_period(self, period: SupplementaryPeriod) -> SupplementaryPeriod:
        check_period(period)
        self.store.load_academic_year(period.academic_year_id)
        if period.term_id:
            term = self.store.load_term(period.term_id)
            if term.academic_year_id != period.academic_year_id:
                raise InvalidTerm(f"Term {term.name} does not belong to academic year {period.academic_year_id}")
        return self.store.create_supplementary_period(period)

    def create_academic_year(self, year: AcademicYear) -> AcademicYear:
        check_academic_year(year)
        if self.store.find_year_by_code(year.year_code):
            raise DuplicateYearCode(f"Academic year {year.year_code} already exists")

        if year.program_type_id:
            program_type = self.store.load_program_type(year.program_type_id)
            year = replace(
                year,
                total_lecturing_days=year.total_lecturing_days or program_type.default_lecturing_days,
                total_staff_service_days=year.total_staff_service_days or program_type.default_staff_service_days,
            )

        created = self.store.create_academic_year(replace(year, is_current=False))
        logger.info("Created academic year %s", created.year_code)
        return created

    def create_term(self, term: Term) -> Term:
        check_term(term)
        self.store.load_academic_year(term.academic_year_id)
        created = self.store.create_term(replace(term, is_current=False, is_active=True))
        logger.info("Created term %s in academic year %s", created.name, created.academic_year_id)
        return created

    def set_current_year(self, year_id: str) -> AcademicYear:
        year = self.store.load_academic_year(year_id)
        self.store.set_current_year(year.id)
        logger.info("Academic year %s is now current", year.year_code)
        return replace(year, is_current=True)

    def set_current_term(self, term_id: str) -> Term:
        term = self.store.load_term(term_id)
        if not term.is_active:
            raise InactiveTerm(f"Term {term.name} is deactivated")
        self.store.set_current_term(term.academic_year_id, term.id)
        logger.info("Term %s is now current for academic year %s", term.id, term.academic_year_id)
        return replace(term, is_current=True)

    def deactivate_term(self, term_id: str) -> Term:
        term = self.store.load_term(term_id)
        if not term.is_active:
            return term
        updated = self.store.update_term(replace(term, is_active=False))
        logger.info("Deactivated term %s", term.id)
        return updated

    def _current_year(self) -> Optional[AcademicYear]:
        year_id = self.store.load_current_year_id()
        if year_id:
            return self.store.load_academic_year(year_id)
        for year in self.store.list_academic_years():
            if year.is_active:
                return year
        return None

    def current_context(self) -> Optional[CurrentContext]:
        year = self._current_year()
        if year is None:
            return None
        term = pick_current_term(self.store.list_terms(year.id))
        if term is None:
            return None
        return CurrentContext(year=year, term=term)

    def calendar_overview(self, year_id: str) -> CalendarOverview:
        year = self.store.load_academic_year(year_id)
        terms = self.store.list_terms(year_id)
        week_counts = {term.id: len(self.store.load_term_weeks(term.id)) for term in terms if term.is_active}
        return build_overview(year, terms, week_counts)
