from typing import Sequence


class TermwiseError(Exception):
    pass


class InvalidTermBoundaries(TermwiseError):
    pass


class InvalidTerm(TermwiseError):
    pass


class InvalidAcademicYear(TermwiseError):
    pass


class DuplicateYearCode(TermwiseError):
    pass


class InactiveTerm(TermwiseError):
    pass


class InvalidPeriodRange(TermwiseError):
    pass


class PercentageOutOfRange(TermwiseError):
    def __init__(self, percentage: float) -> None:
        super().__init__(f"Percentage {percentage} is outside [0, 100]")
        self.percentage = percentage


class RecordNotFound(TermwiseError):
    pass


class Unavailable(TermwiseError):
    """The backing data store could not be reached or rejected the call."""


class AssessmentConfigRejected(TermwiseError):
    def __init__(self, issues: Sequence) -> None:
        super().__init__("; ".join(issue.message for issue in issues) or "Assessment configuration rejected")
        self.issues = list(issues)


class InvalidAssessmentType(TermwiseError):
    pass


class InvalidGradeScale(TermwiseError):
    """A stored grade scale does not cover [0, 100] and cannot grade results."""
