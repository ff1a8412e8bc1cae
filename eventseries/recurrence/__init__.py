"""Recurrence rules and their expansion into occurrences."""

from .formatter import describe
from .matcher import PatternMatcher, matches
from .models import (
    DailyRule,
    Frequency,
    MonthlyRule,
    RecurrenceRule,
    WeeklyRule,
    YearlyRule,
    parse_rule,
)
from .rrule_string import format_rrule_string, parse_rrule_string
from .scanner import Occurrence, OccurrenceScanner

__all__ = [
    "DailyRule",
    "Frequency",
    "MonthlyRule",
    "Occurrence",
    "OccurrenceScanner",
    "PatternMatcher",
    "RecurrenceRule",
    "WeeklyRule",
    "YearlyRule",
    "describe",
    "format_rrule_string",
    "matches",
    "parse_rrule_string",
    "parse_rule",
]
