"""Exceptions raised by the recurrence engine."""

from typing import Optional


class EventSeriesError(Exception):
    """Base exception for all eventseries errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(EventSeriesError):
    """Exception raised when a parent event does not exist."""

    def __init__(self, message: str, event_id: Optional[str] = None):
        super().__init__(message)
        self.event_id = event_id


class RuleNotFoundError(NotFoundError):
    """Exception raised when an event exists but owns no recurrence rule."""


class InvalidRuleError(EventSeriesError):
    """Exception raised when a recurrence rule is structurally invalid."""


class RRuleParseError(InvalidRuleError):
    """Exception raised when an RRULE string cannot be parsed."""


class PersistenceError(EventSeriesError):
    """Exception raised when the event store fails during materialization."""


class PartialMaterializationError(PersistenceError):
    """Exception raised when some instances of a best-effort batch failed.

    Instances that were created successfully stay in the store.
    """

    def __init__(self, message: str, created_count: int, failures: list[Exception]) -> None:
        """Initialize PartialMaterializationError.

        Args:
            message: Error message
            created_count: Number of instances that were created
            failures: Exceptions raised by the instances that failed
        """
        super().__init__(message)
        self.created_count = created_count
        self.failures = failures


class GenerationCapWarning(UserWarning):
    """Warning issued when occurrence generation stops at the safety cap."""
