"""Date pattern matching for recurrence rules."""

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Union

from .models import DailyRule, MonthlyRule, RecurrenceRule, WeeklyRule, YearlyRule

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def sunday_weekday(day: date) -> int:
    """Return the weekday of ``day`` with 0 = Sunday .. 6 = Saturday."""
    return day.isoweekday() % 7


class PatternMatcher:
    """Decides whether a candidate date is an occurrence of a rule.

    All checks use naive calendar-date arithmetic; the time of day of the
    candidate and of the series start is ignored.
    """

    def __init__(self) -> None:
        self._dispatch: dict[type, Callable[[date, date, RecurrenceRule], bool]] = {
            DailyRule: self._matches_daily,
            WeeklyRule: self._matches_weekly,
            MonthlyRule: self._matches_monthly,
            YearlyRule: self._matches_yearly,
        }

    def matches(self, candidate: DateLike, series_start: DateLike, rule: RecurrenceRule) -> bool:
        """Check whether ``candidate`` is an occurrence of ``rule``.

        Args:
            candidate: Date (or datetime) being tested
            series_start: Start of the series root event
            rule: Recurrence rule owned by the series

        Returns:
            True if the candidate date matches the rule's pattern
        """
        handler = self._dispatch.get(type(rule))
        if handler is None:
            return False
        if rule.interval < 1:
            return False

        candidate_day = _as_date(candidate)
        start_day = _as_date(series_start)
        # Nothing precedes the series root
        if candidate_day < start_day:
            return False
        return handler(candidate_day, start_day, rule)

    def _matches_daily(self, candidate: date, start: date, rule: DailyRule) -> bool:
        days = (candidate - start).days
        return days >= 0 and days % rule.interval == 0

    def _matches_weekly(self, candidate: date, start: date, rule: WeeklyRule) -> bool:
        weekdays = rule.by_day or {sunday_weekday(start)}
        if sunday_weekday(candidate) not in weekdays:
            return False

        weeks = (candidate - start).days // 7
        return weeks >= 0 and weeks % rule.interval == 0

    def _matches_monthly(self, candidate: date, start: date, rule: MonthlyRule) -> bool:
        if rule.by_month_day and candidate.day not in rule.by_month_day:
            return False

        months = (candidate.year - start.year) * 12 + (candidate.month - start.month)
        return months >= 0 and months % rule.interval == 0

    def _matches_yearly(self, candidate: date, start: date, rule: YearlyRule) -> bool:
        # Empty month and day sets do not filter
        if rule.by_month and candidate.month not in rule.by_month:
            return False
        if rule.by_month_day and candidate.day not in rule.by_month_day:
            return False

        years = candidate.year - start.year
        return years >= 0 and years % rule.interval == 0


_default_matcher = PatternMatcher()


def matches(candidate: DateLike, series_start: DateLike, rule: RecurrenceRule) -> bool:
    """Module-level shortcut for ``PatternMatcher().matches``."""
    return _default_matcher.matches(candidate, series_start, rule)
