"""Human-readable descriptions of recurrence rules."""

from datetime import date
from typing import Optional

from .models import DailyRule, MonthlyRule, RecurrenceRule, WeeklyRule, YearlyRule

DOES_NOT_REPEAT = "Does not repeat"

# 0 = Sunday
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# 1 = January
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_UNITS = {
    DailyRule: ("Daily", "days"),
    WeeklyRule: ("Weekly", "weeks"),
    MonthlyRule: ("Monthly", "months"),
    YearlyRule: ("Yearly", "years"),
}


def get_day_name(day: int) -> str:
    """Get day name from day number (0 = Sunday); empty for unknown numbers."""
    return DAY_NAMES[day] if 0 <= day < len(DAY_NAMES) else ""


def get_month_name(month: int) -> str:
    """Get month name from month number (1 = January); empty for unknown numbers."""
    return MONTH_NAMES[month - 1] if 1 <= month <= len(MONTH_NAMES) else ""


def format_date(value: date) -> str:
    """Format a date as e.g. ``December 31, 2025``."""
    return f"{get_month_name(value.month)} {value.day}, {value.year}"


def describe(rule: Optional[RecurrenceRule]) -> str:
    """Render a rule as a sentence such as ``Every 2 weeks on Monday, 5 times``.

    Purely presentational: the rule is neither validated nor modified.
    """
    if rule is None:
        return DOES_NOT_REPEAT

    single, plural = _UNITS.get(type(rule), ("", ""))
    interval = rule.interval or 1
    description = single if interval == 1 else f"Every {interval} {plural}"

    if isinstance(rule, WeeklyRule) and rule.by_day:
        description += " on " + ", ".join(get_day_name(d) for d in sorted(rule.by_day))
    elif isinstance(rule, MonthlyRule) and rule.by_month_day:
        description += " on day " + ", ".join(str(d) for d in sorted(rule.by_month_day))
    elif isinstance(rule, YearlyRule):
        if rule.by_month:
            description += " in " + ", ".join(get_month_name(m) for m in sorted(rule.by_month))
        if rule.by_month_day:
            description += " on day " + ", ".join(str(d) for d in sorted(rule.by_month_day))

    if rule.count:
        description += f", {rule.count} times"
    elif rule.until:
        description += f", until {format_date(rule.until)}"

    return description
