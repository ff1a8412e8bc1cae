"""Occurrence scanning: walk calendar time and collect rule matches."""

import logging
import warnings
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from ..exceptions import GenerationCapWarning, InvalidRuleError
from .matcher import PatternMatcher
from .models import DailyRule, RecurrenceRule

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 1000
ONE_DAY = timedelta(days=1)


class Occurrence(BaseModel):
    """One concrete time span produced by expanding a rule."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        """Length of the occurrence."""
        return self.end - self.start


class OccurrenceScanner:
    """Expands a recurrence rule into occurrences inside a window.

    WEEKLY, MONTHLY and YEARLY rules are scanned one calendar day at a time
    because their matches are sparse within the frequency unit. DAILY rules
    step ``interval`` days at a time since every match is an exact multiple
    of the interval from the series start.
    """

    def __init__(self, settings: Optional[Any] = None, matcher: Optional[PatternMatcher] = None):
        """Initialize OccurrenceScanner.

        Args:
            settings: Optional settings object; ``max_occurrences`` is read from it
            matcher: Pattern matcher to use (a fresh PatternMatcher by default)
        """
        self.settings = settings
        self.max_occurrences = getattr(settings, "max_occurrences", DEFAULT_MAX_OCCURRENCES)
        self.matcher = matcher or PatternMatcher()

    def generate(
        self,
        series_start: datetime,
        series_end: datetime,
        rule: RecurrenceRule,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Occurrence]:
        """Generate the occurrences of a series that fall inside a window.

        Args:
            series_start: Start of the series root event
            series_end: End of the series root event; the duration is kept per occurrence
            rule: Recurrence rule of the series
            window_start: First instant of the generation window (inclusive)
            window_end: Last instant of the generation window (inclusive)

        Returns:
            Occurrences ordered by start time. When the safety cap is hit a
            GenerationCapWarning is issued and the occurrences found so far
            are returned.

        Raises:
            InvalidRuleError: If the series ends before it starts
        """
        if series_end < series_start:
            raise InvalidRuleError(
                f"Series end {series_end.isoformat()} is before its start {series_start.isoformat()}"
            )
        if rule.interval < 1:
            # Validation normally rejects this; treat as a rule with no matches
            logger.warning("Recurrence rule has non-positive interval %s; no occurrences", rule.interval)
            return []
        if window_end < window_start:
            return []

        logger.debug(
            "Scanning %s rule: series_start=%s window_start=%s window_end=%s",
            rule.frequency,
            series_start.isoformat(),
            window_start.isoformat(),
            window_end.isoformat(),
        )

        is_daily = isinstance(rule, DailyRule)
        step = timedelta(days=rule.interval) if is_daily else ONE_DAY
        duration = series_end - series_start

        cursor = self._first_cursor(series_start, rule, window_start, is_daily)
        occurrence_count = 0
        occurrences: list[Occurrence] = []

        while cursor <= window_end:
            if rule.count is not None and occurrence_count >= rule.count:
                break
            if rule.until is not None and cursor.date() > rule.until:
                break

            if cursor.date() not in rule.exceptions and self.matcher.matches(
                cursor, series_start, rule
            ):
                if cursor >= window_start:
                    if len(occurrences) >= self.max_occurrences:
                        self._warn_cap_reached(series_start, window_start, window_end)
                        break
                    occurrences.append(Occurrence(start=cursor, end=cursor + duration))
                occurrence_count += 1

            cursor += step

        logger.debug("Scan produced %d occurrences", len(occurrences))
        return occurrences

    def _first_cursor(
        self,
        series_start: datetime,
        rule: RecurrenceRule,
        window_start: datetime,
        is_daily: bool,
    ) -> datetime:
        """Return the first candidate worth testing.

        With a ``count`` every earlier match must be counted, so scanning
        starts at the series start. Otherwise days before the window cannot
        affect the result and are skipped, keeping the time of day and the
        DAILY interval alignment.
        """
        if rule.count is not None or window_start <= series_start:
            return series_start

        days_to_window = (window_start.date() - series_start.date()).days
        if is_daily:
            days_to_window -= days_to_window % rule.interval
            cursor = series_start + timedelta(days=days_to_window)
            if cursor < window_start:
                cursor += timedelta(days=rule.interval)
            return cursor

        cursor = series_start + timedelta(days=days_to_window)
        if cursor < window_start:
            cursor += ONE_DAY
        return cursor

    def _warn_cap_reached(
        self, series_start: datetime, window_start: datetime, window_end: datetime
    ) -> None:
        message = (
            f"Recurrence generation reached the cap of {self.max_occurrences} occurrences "
            f"for series starting {series_start.isoformat()} "
            f"(window {window_start.isoformat()} .. {window_end.isoformat()})"
        )
        logger.warning(message)
        warnings.warn(message, GenerationCapWarning, stacklevel=3)
