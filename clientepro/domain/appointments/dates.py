"""
Calendar date helpers for appointment scheduling.

Every date field exchanged with the core backend is a zero-padded
``YYYY-MM-DD`` string of the *local* calendar day. These helpers convert
between that wire format and ``datetime.date`` without ever shifting through
UTC, and validate the separate year/month/day pickers of the create form.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from ...shared.validators import FieldError

logger = logging.getLogger(__name__)


def to_canonical_date(value: Union[date, datetime]) -> str:
    """Format a calendar date (or the local day of a datetime) as YYYY-MM-DD"""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def from_canonical_date(value: str) -> date:
    """
    Parse a YYYY-MM-DD string into a local calendar date.

    A time component (``2024-03-05T12:00:00.000Z``) is cut off at the date
    boundary. Strings that are not ``YYYY-MM-DD`` fall back to generic ISO
    parsing. An empty value returns today.

    Raises:
        ValueError: If the value cannot be parsed at all
    """
    if not value:
        return date.today()

    normalized = value.split("T")[0] if "T" in value else value
    parts = normalized.split("-")
    if len(parts) == 3 and all(part.strip().isdigit() for part in parts):
        year, month, day = (int(part) for part in parts)
        return date(year, month, day)

    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        logger.warning(f"⚠️ Could not parse date value: {value!r}")
        raise


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


@dataclass(frozen=True)
class DateParts:
    """Year, month and day as picked separately in the create form"""

    year: int
    month: int
    day: int

    @classmethod
    def from_fields(
        cls, year: Union[int, str], month: Union[int, str], day: Union[int, str]
    ) -> Union["DateParts", FieldError]:
        """Build from form values (ints or zero-padded text like "02")"""
        parsed = {}
        for field, raw in (("year", year), ("month", month), ("day", day)):
            try:
                parsed[field] = int(str(raw).strip())
            except (TypeError, ValueError):
                return FieldError(field, f"Invalid {field}: {raw!r}")
        return cls(**parsed)

    def validate(self) -> Optional[FieldError]:
        if not 1 <= self.year <= 9999:
            return FieldError("year", f"Invalid year: {self.year}")
        if not 1 <= self.month <= 12:
            return FieldError("month", "Month must be between 1 and 12")

        last_day = days_in_month(self.year, self.month)
        if not 1 <= self.day <= last_day:
            return FieldError("day", f"Day must be between 1 and {last_day} for this month")
        return None

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)


def compose_date(
    year: Union[int, str], month: Union[int, str], day: Union[int, str]
) -> Union[str, FieldError]:
    """
    Combine separately edited year/month/day values into a canonical date.

    Returns the YYYY-MM-DD string, or a FieldError naming the offending field.
    """
    parts = DateParts.from_fields(year, month, day)
    if isinstance(parts, FieldError):
        return parts

    error = parts.validate()
    if error:
        return error
    return to_canonical_date(parts.to_date())
