"""Shared validation utilities"""

import math
import re
from dataclasses import dataclass
from datetime import time
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

TIME_OF_DAY_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


@dataclass(frozen=True)
class FieldError:
    """Inline validation error for a single form field.

    Returned as a value instead of raised so a form can show it next to the
    field without aborting the rest of the submission.
    """

    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "error": self.message}


def parse_time_of_day(value: Union[str, time]) -> time:
    """
    Parse an ``HH:MM`` (or ``HH:MM:SS``) string into a time.

    Args:
        value: Time string as typed in the scheduling form, or a time

    Returns:
        The parsed time

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if isinstance(value, time):
        return value

    match = TIME_OF_DAY_PATTERN.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")

    hours, minutes, seconds = match.groups()
    return time(int(hours), int(minutes), int(seconds or 0))


def validate_time_of_day(value: Optional[str]) -> Optional[str]:
    """Validate and normalize a time string to zero-padded ``HH:MM``"""
    if not value:
        return value
    parsed = parse_time_of_day(value)
    return parsed.strftime("%H:%M")


def parse_amount(value) -> Optional[Decimal]:
    """
    Parse a currency amount coming from a form or a JSON body.

    Empty values (None, "") mean "not set" and return None, as does anything
    that is not a finite number.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None

    if not amount.is_finite():
        return None
    return amount
