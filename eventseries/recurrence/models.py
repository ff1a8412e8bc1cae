"""Recurrence rule models.

A recurrence rule is a tagged union over the four supported frequencies.
Each variant carries only the fields meaningful to it, so a WEEKLY rule
cannot hold a ``by_month`` set and a DAILY rule cannot hold ``by_day``.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ..exceptions import InvalidRuleError


class Frequency(str, Enum):
    """Supported recurrence frequencies."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


def _to_date(value: Any) -> Any:
    # Only the calendar day of a datetime is meaningful for until/exceptions
    if isinstance(value, datetime):
        return value.date()
    return value


def _check_members(values: Iterable[int], low: int, high: int, field_name: str) -> None:
    out_of_range = sorted(v for v in values if not low <= v <= high)
    if out_of_range:
        raise ValueError(f"{field_name} values must be within {low}..{high}, got {out_of_range}")


class _BaseRule(BaseModel):
    """Fields shared by every frequency."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    interval: int = Field(default=1, description="Repeat every N frequency units")
    count: Optional[int] = Field(
        default=None, description="Absolute cap on occurrences ever generated for the series"
    )
    until: Optional[date] = Field(
        default=None, description="No occurrence may fall after this date (inclusive)"
    )
    exceptions: frozenset[date] = Field(
        default_factory=frozenset, description="Calendar days excluded from the series"
    )

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        """Reject non-positive intervals."""
        if value < 1:
            raise ValueError(f"interval must be a positive integer, got {value}")
        return value

    @field_validator("count")
    @classmethod
    def validate_count(cls, value: Optional[int]) -> Optional[int]:
        """Reject non-positive counts."""
        if value is not None and value < 1:
            raise ValueError(f"count must be a positive integer, got {value}")
        return value

    @field_validator("until", mode="before")
    @classmethod
    def coerce_until(cls, value: Any) -> Any:
        """Accept a datetime for ``until`` and keep its date."""
        return _to_date(value)

    @field_validator("exceptions", mode="before")
    @classmethod
    def coerce_exceptions(cls, value: Any) -> Any:
        """Accept datetimes in ``exceptions`` and keep their dates."""
        if value is None:
            return frozenset()
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(_to_date(v) for v in value)
        return value

    @property
    def is_bounded(self) -> bool:
        """Whether the series ends on its own (count or until)."""
        return self.count is not None or self.until is not None


class DailyRule(_BaseRule):
    """Every N days."""

    frequency: Literal["DAILY"] = "DAILY"


class WeeklyRule(_BaseRule):
    """Every N weeks on a set of weekdays (0 = Sunday)."""

    frequency: Literal["WEEKLY"] = "WEEKLY"
    by_day: frozenset[int] = Field(
        default_factory=frozenset,
        alias="byDay",
        description="Weekdays 0-6 (0 = Sunday); empty means the series start weekday",
    )

    @field_validator("by_day")
    @classmethod
    def validate_by_day(cls, value: frozenset[int]) -> frozenset[int]:
        """Weekdays must be 0..6."""
        _check_members(value, 0, 6, "by_day")
        return value


class MonthlyRule(_BaseRule):
    """Every N months on a set of days of the month."""

    frequency: Literal["MONTHLY"] = "MONTHLY"
    by_month_day: frozenset[int] = Field(
        default_factory=frozenset,
        alias="byMonthDay",
        description="Days of month 1-31; empty means the series start day",
    )

    @field_validator("by_month_day")
    @classmethod
    def validate_by_month_day(cls, value: frozenset[int]) -> frozenset[int]:
        """Days of month must be 1..31."""
        _check_members(value, 1, 31, "by_month_day")
        return value


class YearlyRule(_BaseRule):
    """Every N years in a set of months, on a set of days of the month."""

    frequency: Literal["YEARLY"] = "YEARLY"
    by_month: frozenset[int] = Field(
        default_factory=frozenset,
        alias="byMonth",
        description="Months 1-12; empty means the series start month",
    )
    by_month_day: frozenset[int] = Field(
        default_factory=frozenset,
        alias="byMonthDay",
        description="Days of month 1-31; empty means the series start day",
    )

    @field_validator("by_month")
    @classmethod
    def validate_by_month(cls, value: frozenset[int]) -> frozenset[int]:
        """Months must be 1..12."""
        _check_members(value, 1, 12, "by_month")
        return value

    @field_validator("by_month_day")
    @classmethod
    def validate_by_month_day(cls, value: frozenset[int]) -> frozenset[int]:
        """Days of month must be 1..31."""
        _check_members(value, 1, 31, "by_month_day")
        return value


RecurrenceRule = Annotated[
    Union[DailyRule, WeeklyRule, MonthlyRule, YearlyRule],
    Field(discriminator="frequency"),
]

_rule_adapter: TypeAdapter[Any] = TypeAdapter(RecurrenceRule)


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def parse_rule(data: Union[Mapping[str, Any], _BaseRule]) -> RecurrenceRule:
    """Validate a mapping into one of the rule variants.

    Args:
        data: Plain mapping (snake_case or camelCase keys) or an existing rule

    Returns:
        The DailyRule, WeeklyRule, MonthlyRule or YearlyRule described by ``data``

    Raises:
        InvalidRuleError: If the mapping does not describe a valid rule
    """
    if isinstance(data, _BaseRule):
        return data  # type: ignore[return-value]

    payload = dict(data)
    frequency = payload.get("frequency")
    if isinstance(frequency, Frequency):
        payload["frequency"] = frequency.value
    elif isinstance(frequency, str):
        payload["frequency"] = frequency.strip().upper()

    try:
        return _rule_adapter.validate_python(payload)
    except ValidationError as e:
        raise InvalidRuleError(f"Invalid recurrence rule: {_format_errors(e)}") from e


def rule_from_json(text: str) -> RecurrenceRule:
    """Load a rule previously serialized with ``rule_to_json``."""
    try:
        return _rule_adapter.validate_json(text)
    except ValidationError as e:
        raise InvalidRuleError(f"Stored recurrence rule is invalid: {_format_errors(e)}") from e


def rule_to_json(rule: RecurrenceRule) -> str:
    """Serialize a rule to JSON for storage."""
    return rule.model_dump_json()
