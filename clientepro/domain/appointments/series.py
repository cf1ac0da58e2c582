"""
Recurring series identity

Decides whether two appointments are occurrences of the same recurring
booking, and knows the small fixed set of recurrence rules the scheduling
forms offer.
"""

import logging
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from .dates import days_in_month
from .schemas import Appointment

logger = logging.getLogger(__name__)

# The backend materializes this many follow-up occurrences for a new recurring booking
RECURRENCE_MAX_OCCURRENCES = 4


class RecurrenceRule(str, Enum):
    WEEKLY = "FREQ=WEEKLY"
    BIWEEKLY = "FREQ=WEEKLY;INTERVAL=2"
    EVERY_3_WEEKS = "FREQ=WEEKLY;INTERVAL=3"
    MONTHLY = "FREQ=MONTHLY"

    @property
    def label(self) -> str:
        return RECURRENCE_LABELS[self]

    @property
    def interval_days(self) -> Optional[int]:
        """Fixed day interval, None for calendar-month recurrence"""
        return {
            RecurrenceRule.WEEKLY: 7,
            RecurrenceRule.BIWEEKLY: 14,
            RecurrenceRule.EVERY_3_WEEKS: 21,
        }.get(self)


RECURRENCE_LABELS = {
    RecurrenceRule.WEEKLY: "Semanal",
    RecurrenceRule.BIWEEKLY: "Quinzenal",
    RecurrenceRule.EVERY_3_WEEKS: "A cada 3 semanas",
    RecurrenceRule.MONTHLY: "Mensal",
}


def parse_recurrence_rule(value: Optional[str]) -> Optional[RecurrenceRule]:
    """Map rule text to the enum; empty text means "not recurring" """
    if not value:
        return None
    try:
        return RecurrenceRule(value.strip())
    except ValueError:
        logger.warning(f"⚠️ Unsupported recurrence rule: {value!r}")
        raise ValueError(f"Unsupported recurrence rule: {value}") from None


def is_same_series(a: Appointment, b: Appointment) -> bool:
    """
    Decide whether two appointments belong to one recurring booking.

    Rules are checked in order of trust and the first one that applies wins:
    different customers never match; explicit series ids from the backend are
    authoritative; then identical rule text; and only as a last resort the
    same start time and price with at least one side flagged recurring.
    """
    if a.customer_id != b.customer_id:
        return False

    if a.recurrence_series_id and b.recurrence_series_id:
        return a.recurrence_series_id == b.recurrence_series_id

    if a.recurrence_rule and b.recurrence_rule:
        return a.recurrence_rule == b.recurrence_rule

    # Heuristic: can merge two one-off bookings with equal time and price,
    # and misses a series whose price changed mid-run
    return a.start_time == b.start_time and a.price == b.price and (a.is_recurring or b.is_recurring)


def belongs_to_series(appointment: Appointment) -> bool:
    """True when the appointment carries any recurrence marker"""
    return bool(
        appointment.is_recurring
        or appointment.recurrence_rule
        or appointment.recurrence_series_id
    )


def select_series(anchor: Appointment, candidates: Iterable[Appointment]) -> List[Appointment]:
    """Return the anchor plus every candidate in the anchor's series"""
    matches = [anchor]
    for candidate in candidates:
        if candidate.id == anchor.id:
            continue
        if is_same_series(candidate, anchor):
            matches.append(candidate)
    return matches


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(start.day, days_in_month(year, month)))


def next_occurrence_dates(
    first_date: date, rule: RecurrenceRule, count: int = RECURRENCE_MAX_OCCURRENCES
) -> List[date]:
    """Dates of the follow-up occurrences after ``first_date``"""
    if rule.interval_days:
        return [first_date + timedelta(days=rule.interval_days * i) for i in range(1, count + 1)]
    return [_add_months(first_date, i) for i in range(1, count + 1)]
