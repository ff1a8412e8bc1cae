"""Tests for recurrence rule validation and storage encoding."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from eventseries.exceptions import InvalidRuleError
from eventseries.recurrence.models import (
    DailyRule,
    Frequency,
    MonthlyRule,
    WeeklyRule,
    YearlyRule,
    parse_rule,
    rule_from_json,
    rule_to_json,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestParseRule:
    """Tests for parse_rule."""

    def test_parse_rule_when_camel_case_keys_then_weekly_rule(self) -> None:
        """camelCase keys from API payloads populate the snake_case fields."""
        rule = parse_rule({"frequency": "WEEKLY", "interval": 2, "byDay": [1, 3], "count": 10})

        assert isinstance(rule, WeeklyRule)
        assert rule.interval == 2
        assert rule.by_day == frozenset({1, 3})
        assert rule.count == 10

    def test_parse_rule_when_lowercase_frequency_then_accepted(self) -> None:
        rule = parse_rule({"frequency": "monthly", "by_month_day": [15]})

        assert isinstance(rule, MonthlyRule)
        assert rule.by_month_day == frozenset({15})

    def test_parse_rule_when_frequency_enum_then_accepted(self) -> None:
        rule = parse_rule({"frequency": Frequency.YEARLY, "byMonth": [3], "byMonthDay": [3]})

        assert isinstance(rule, YearlyRule)
        assert rule.by_month == frozenset({3})

    def test_parse_rule_when_rule_instance_then_returned_unchanged(self) -> None:
        original = DailyRule(interval=4)

        assert parse_rule(original) is original

    @pytest.mark.parametrize(
        "data",
        [
            {"frequency": "DAILY", "interval": 0},
            {"frequency": "DAILY", "interval": -2},
            {"frequency": "DAILY", "count": 0},
            {"frequency": "WEEKLY", "by_day": [7]},
            {"frequency": "MONTHLY", "by_month_day": [0]},
            {"frequency": "MONTHLY", "by_month_day": [32]},
            {"frequency": "YEARLY", "by_month": [13]},
            {"frequency": "HOURLY"},
            {"interval": 1},
        ],
    )
    def test_parse_rule_when_invalid_then_raises_invalid_rule_error(self, data: dict) -> None:
        with pytest.raises(InvalidRuleError):
            parse_rule(data)

    def test_parse_rule_when_field_belongs_to_other_frequency_then_rejected(self) -> None:
        """A DAILY rule cannot carry weekday selectors."""
        with pytest.raises(InvalidRuleError) as exc_info:
            parse_rule({"frequency": "DAILY", "by_day": [1]})

        assert "by_day" in exc_info.value.message


class TestRuleFields:
    """Tests for field coercion and helpers on the rule variants."""

    def test_until_when_datetime_then_keeps_date(self) -> None:
        rule = DailyRule(until=datetime(2025, 12, 31, 23, 59))

        assert rule.until == date(2025, 12, 31)

    def test_exceptions_when_datetimes_then_stored_as_dates(self) -> None:
        rule = DailyRule(exceptions=[datetime(2025, 1, 3, 9, 0), date(2025, 1, 4)])

        assert rule.exceptions == frozenset({date(2025, 1, 3), date(2025, 1, 4)})

    def test_exceptions_when_none_then_empty(self) -> None:
        assert DailyRule(exceptions=None).exceptions == frozenset()

    def test_is_bounded_when_count_or_until_then_true(self) -> None:
        assert DailyRule(count=3).is_bounded
        assert DailyRule(until=date(2025, 1, 1)).is_bounded
        assert not DailyRule().is_bounded

    def test_rule_when_assigned_then_frozen(self) -> None:
        rule = WeeklyRule(by_day={1})

        with pytest.raises(ValidationError):
            rule.interval = 3  # type: ignore[misc]


class TestRuleJson:
    """Tests for the JSON form used by the event store."""

    def test_rule_json_when_reloaded_then_equal(self) -> None:
        rule = YearlyRule(
            interval=2,
            by_month={3, 6},
            by_month_day={3},
            until=date(2030, 1, 1),
            exceptions={date(2027, 3, 3)},
        )

        restored = rule_from_json(rule_to_json(rule))

        assert isinstance(restored, YearlyRule)
        assert restored.model_dump() == rule.model_dump()

    def test_rule_from_json_when_corrupt_then_raises_invalid_rule_error(self) -> None:
        with pytest.raises(InvalidRuleError):
            rule_from_json('{"frequency": "WEEKLY", "interval": 0}')
