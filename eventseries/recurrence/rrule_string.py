"""RRULE string parsing and formatting for the supported rule subset."""

import logging
from datetime import date

from dateutil.parser import isoparse

from ..exceptions import InvalidRuleError, RRuleParseError
from .models import MonthlyRule, RecurrenceRule, WeeklyRule, YearlyRule, parse_rule

logger = logging.getLogger(__name__)

# RRULE weekday codes mapped to 0 = Sunday numbering
WEEKDAY_CODES = {"SU": 0, "MO": 1, "TU": 2, "WE": 3, "TH": 4, "FR": 5, "SA": 6}
WEEKDAY_BY_NUMBER = {number: code for code, number in WEEKDAY_CODES.items()}

SUPPORTED_KEYS = {"freq", "interval", "byday", "bymonthday", "bymonth", "count", "until"}


def _parse_int_list(key: str, value: str) -> list[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as e:
        raise RRuleParseError(f"Invalid {key.upper()} value: {value}") from e


def _parse_single_int(key: str, value: str) -> int:
    values = _parse_int_list(key, value)
    if len(values) != 1:
        raise RRuleParseError(f"{key.upper()} takes a single value, got: {value}")
    return values[0]


def _parse_until(value: str) -> date:
    """Parse an UNTIL value (20251231, 20251231T235959Z or ISO form)."""
    try:
        return isoparse(value).date()
    except ValueError as e:
        raise RRuleParseError(f"Invalid UNTIL value: {value}") from e


def _parse_byday(value: str) -> list[int]:
    days = []
    for code in value.split(","):
        code = code.strip().upper()
        if not code:
            continue
        if code not in WEEKDAY_CODES:
            # Covers ordinal forms like 1MO or -1FR which are not supported
            raise RRuleParseError(f"Unsupported BYDAY value: {code}")
        days.append(WEEKDAY_CODES[code])
    return days


def parse_rrule_string(rrule_string: str) -> RecurrenceRule:
    """Parse an RRULE string into a recurrence rule.

    Args:
        rrule_string: RRULE string (e.g. "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;COUNT=10"),
            optionally prefixed with "RRULE:"

    Returns:
        The rule variant described by the string

    Raises:
        RRuleParseError: If the string is empty, malformed or uses unsupported parts
    """
    if not rrule_string or not rrule_string.strip():
        raise RRuleParseError("Empty RRULE string")

    text = rrule_string.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:") :]

    rule_data: dict = {}
    for part in text.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise RRuleParseError(f"Invalid RRULE component: {part}")

        key, value = part.split("=", 1)
        key = key.strip().lower()
        value = value.strip()

        if key not in SUPPORTED_KEYS:
            raise RRuleParseError(f"Unsupported RRULE component: {key.upper()}")
        if not value:
            raise RRuleParseError(f"Empty value for RRULE component: {key.upper()}")

        if key == "freq":
            rule_data["frequency"] = value.upper()
        elif key == "interval":
            rule_data["interval"] = _parse_single_int(key, value)
        elif key == "count":
            rule_data["count"] = _parse_single_int(key, value)
        elif key == "until":
            rule_data["until"] = _parse_until(value)
        elif key == "byday":
            rule_data["by_day"] = _parse_byday(value)
        elif key == "bymonthday":
            rule_data["by_month_day"] = _parse_int_list(key, value)
        elif key == "bymonth":
            rule_data["by_month"] = _parse_int_list(key, value)

    if "frequency" not in rule_data:
        raise RRuleParseError("RRULE missing required FREQ parameter")

    try:
        return parse_rule(rule_data)
    except InvalidRuleError as e:
        raise RRuleParseError(f"Invalid RRULE {rrule_string!r}: {e.message}") from e


def format_rrule_string(rule: RecurrenceRule) -> str:
    """Format a rule as an RRULE string.

    Exceptions are not part of an RRULE line and are left out.
    """
    parts = [f"FREQ={rule.frequency}"]
    if rule.interval != 1:
        parts.append(f"INTERVAL={rule.interval}")
    if isinstance(rule, YearlyRule) and rule.by_month:
        parts.append("BYMONTH=" + ",".join(str(m) for m in sorted(rule.by_month)))
    if isinstance(rule, (MonthlyRule, YearlyRule)) and rule.by_month_day:
        parts.append("BYMONTHDAY=" + ",".join(str(d) for d in sorted(rule.by_month_day)))
    if isinstance(rule, WeeklyRule) and rule.by_day:
        parts.append("BYDAY=" + ",".join(WEEKDAY_BY_NUMBER[d] for d in sorted(rule.by_day)))
    if rule.count is not None:
        parts.append(f"COUNT={rule.count}")
    if rule.until is not None:
        parts.append(f"UNTIL={rule.until.strftime('%Y%m%d')}")
    return ";".join(parts)
