"""
Helper payout and work-time derivations for appointments
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from ...shared.validators import FieldError, parse_amount, parse_time_of_day
from .schemas import AppointmentPayload, Customer, Helper, PayoutMode

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def round_currency(value) -> Decimal:
    """Round to 2 decimal places, half-up"""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def elapsed_minutes(start: Union[str, time], end: Union[str, time]) -> int:
    """
    Minutes between two times of day on the same nominal day.

    An end before the start (entry crossing midnight, or a typo) is a display
    anomaly: it is logged and reported as 0.
    """
    start_time = parse_time_of_day(start)
    end_time = parse_time_of_day(end)

    start_minutes = start_time.hour * 60 + start_time.minute
    end_minutes = end_time.hour * 60 + end_time.minute
    minutes = end_minutes - start_minutes

    if minutes < 0:
        logger.warning(f"⚠️ End time {end_time} is before start time {start_time}; clamping to 0")
        return 0
    return minutes


def elapsed_seconds(started_at: datetime, now: Optional[datetime] = None) -> int:
    """Live timer value for an appointment in progress"""
    now = now or datetime.now(started_at.tzinfo)
    return max(0, int((now - started_at).total_seconds()))


def total_seconds(started_at: datetime, finished_at: datetime) -> int:
    """Fixed duration of a completed appointment"""
    return max(0, int((finished_at - started_at).total_seconds()))


def format_duration(seconds: int) -> str:
    """Format seconds as HH:MM:SS"""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def resolve_helper_fee(price, payout_mode: Union[PayoutMode, str], payout_value) -> Optional[Decimal]:
    """
    Derive the helper's fee for one appointment from their payout policy.

    FIXED pays ``payout_value`` whatever the price; PERCENTAGE pays
    ``price * payout_value / 100`` rounded half-up to cents.

    Returns None when the price is missing, not a finite number, or not
    positive: an unpriced appointment has no fee yet (which is not a zero fee).
    """
    amount = parse_amount(price)
    if amount is None or amount <= 0:
        return None

    value = parse_amount(payout_value) or Decimal("0")
    if PayoutMode(payout_mode) == PayoutMode.PERCENTAGE:
        fee = amount * value / 100
    else:
        fee = value

    return max(Decimal("0.00"), round_currency(fee))


def validate_helper_fee(helper_fee, price, max_percentage: int = 100) -> Optional[FieldError]:
    """Check a manually typed fee against the appointment price"""
    fee = parse_amount(helper_fee)
    if fee is None or fee < 0:
        return FieldError("helperFee", "Helper fee must be a non-negative number")

    amount = parse_amount(price)
    if amount is None or amount <= 0:
        return FieldError("price", "Invalid appointment price")

    if fee / amount * 100 > max_percentage:
        return FieldError(
            "helperFee", f"Helper fee cannot exceed {max_percentage}% of appointment price"
        )
    return None


def format_fee_explanation(fee, price, payout_mode: Union[PayoutMode, str], payout_value) -> str:
    if PayoutMode(payout_mode) == PayoutMode.PERCENTAGE:
        return f"{payout_value}% de ${round_currency(price)} = ${round_currency(fee)}"
    return f"Valor fixo: ${round_currency(fee)}"


@dataclass
class FeeEditSession:
    """
    Price and helper fee of an appointment being edited in a form.

    The fee follows the price and the assigned helper's policy until the user
    types a fee. From then on it is pinned (``fee_overridden``) and price or
    helper changes leave it alone until the override is cleared.
    """

    price: Optional[Decimal] = None
    helper: Optional[Helper] = None
    helper_fee: Optional[Decimal] = None
    fee_overridden: bool = False

    @classmethod
    def start(
        cls,
        customer: Optional[Customer] = None,
        helper: Optional[Helper] = None,
        price=None,
        helper_fee=None,
    ) -> "FeeEditSession":
        """Open a session, pre-filling the price from the customer's default"""
        amount = parse_amount(price)
        if amount is None and customer is not None:
            amount = customer.default_price

        session = cls(price=amount, helper=helper)
        typed_fee = parse_amount(helper_fee)
        if typed_fee is not None:
            session.override_fee(typed_fee)
        else:
            session._rederive()
        return session

    def set_price(self, price) -> None:
        self.price = parse_amount(price)
        self._rederive()

    def set_helper(self, helper: Optional[Helper]) -> None:
        self.helper = helper
        self._rederive()

    def override_fee(self, helper_fee) -> None:
        self.helper_fee = parse_amount(helper_fee)
        self.fee_overridden = True

    def clear_override(self) -> None:
        self.fee_overridden = False
        self._rederive()

    def payload_fields(self) -> dict:
        """Financial fields of the create/update payload"""
        return {
            "price": self.price,
            "helper_fee": self.helper_fee,
            "assigned_helper_id": self.helper.id if self.helper else None,
        }

    def _rederive(self) -> None:
        if self.fee_overridden:
            return
        if self.helper is None:
            self.helper_fee = None
            return
        self.helper_fee = resolve_helper_fee(
            self.price, self.helper.payout_mode, self.helper.payout_value
        )


def build_payload(
    payload: AppointmentPayload,
    customer: Optional[Customer] = None,
    helper: Optional[Helper] = None,
) -> AppointmentPayload:
    """
    Complete a create/update body before it goes to the backend.

    The price falls back to the customer's default, a fee is derived from the
    helper's policy unless one was typed, and a non-recurring booking gets an
    empty recurrence rule.
    """
    session = FeeEditSession.start(
        customer=customer, helper=helper, price=payload.price, helper_fee=payload.helper_fee
    )
    updates = session.payload_fields()
    if helper is None:
        # Unknown policy: keep the assignment, leave the fee to the caller
        del updates["assigned_helper_id"]
    if payload.is_recurring is False:
        updates["recurrence_rule"] = ""
    return payload.model_copy(update=updates)
