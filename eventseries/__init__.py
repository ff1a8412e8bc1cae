"""eventseries - recurring calendar event expansion and materialization.

Expands recurrence rules (DAILY, WEEKLY, MONTHLY, YEARLY with BYDAY,
BYMONTHDAY, BYMONTH, COUNT, UNTIL and exception dates) into concrete
occurrences, and stores the occurrences of a series as child events.
"""

from .exceptions import (
    EventSeriesError,
    GenerationCapWarning,
    InvalidRuleError,
    NotFoundError,
    PartialMaterializationError,
    PersistenceError,
    RRuleParseError,
    RuleNotFoundError,
)
from .service import RecurrenceService

__version__ = "1.0.0"
__author__ = "EventSeries Team"
__email__ = "support@eventseries.local"
__description__ = "Recurring calendar event expansion and materialization engine"

__all__ = [
    "EventSeriesError",
    "GenerationCapWarning",
    "InvalidRuleError",
    "NotFoundError",
    "PartialMaterializationError",
    "PersistenceError",
    "RRuleParseError",
    "RecurrenceService",
    "RuleNotFoundError",
    "__author__",
    "__description__",
    "__email__",
    "__version__",
]
