"""Appointment domain schemas - Pydantic models for the core backend's records"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, PlainSerializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ...shared.validators import parse_amount, validate_time_of_day

# Amounts are Decimals in Python and plain numbers on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class AppointmentStatus(str, Enum):
    AGENDADO = "AGENDADO"  # scheduled
    EM_ANDAMENTO = "EM_ANDAMENTO"  # in progress
    CONCLUIDO = "CONCLUIDO"  # completed
    CANCELADO = "CANCELADO"  # cancelled

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.CONCLUIDO, AppointmentStatus.CANCELADO)


class PayoutMode(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON (both accepted on input)"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Customer(CamelModel):
    id: str
    user_id: Optional[str] = None
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    default_price: Optional[Money] = None

    @field_validator("default_price", mode="before")
    @classmethod
    def validate_default_price(cls, v):
        return parse_amount(v)


class Helper(CamelModel):
    """A team member who can be assigned to appointments"""

    id: str
    name: str = ""
    payout_mode: PayoutMode = PayoutMode.FIXED
    payout_value: Money = Decimal("0")

    @field_validator("payout_value", mode="before")
    @classmethod
    def validate_payout_value(cls, v):
        return parse_amount(v) or Decimal("0")

    @model_validator(mode="after")
    def check_percentage_range(self):
        if self.payout_mode == PayoutMode.PERCENTAGE and not (0 <= self.payout_value <= 100):
            raise ValueError("Percentage payout must be between 0 and 100")
        return self


class Appointment(CamelModel):
    """An appointment as returned by the core backend"""

    id: str
    user_id: Optional[str] = None
    customer_id: str
    assigned_helper_id: Optional[str] = None

    date: str
    start_time: str
    end_time: Optional[str] = None
    estimated_duration_minutes: Optional[int] = None

    status: AppointmentStatus = AppointmentStatus.AGENDADO
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    price: Optional[Money] = None
    helper_fee: Optional[Money] = None

    is_recurring: bool = False
    recurrence_rule: Optional[str] = None
    recurrence_series_id: Optional[str] = None

    notes: Optional[str] = None
    invoice_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def lift_nested_customer(cls, data):
        # The helper view nests the customer instead of sending customerId
        if isinstance(data, dict) and not data.get("customerId") and not data.get("customer_id"):
            customer = data.get("customer")
            if isinstance(customer, dict) and customer.get("id"):
                data = {**data, "customerId": customer["id"]}
        return data

    @field_validator("price", "helper_fee", mode="before")
    @classmethod
    def validate_amounts(cls, v):
        return parse_amount(v)

    @field_validator("date", mode="before")
    @classmethod
    def truncate_date(cls, v):
        # Backend stores dates as timestamps at UTC noon; only the calendar day matters
        if isinstance(v, str) and "T" in v:
            return v.split("T")[0]
        return v


class AppointmentPayload(CamelModel):
    """Create/update body sent to the core backend"""

    customer_id: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    price: Optional[Money] = None
    helper_fee: Optional[Money] = None
    status: Optional[AppointmentStatus] = None
    is_recurring: Optional[bool] = None
    recurrence_rule: Optional[str] = None
    notes: Optional[str] = None
    estimated_duration_minutes: Optional[int] = None
    assigned_helper_id: Optional[str] = None

    @field_validator("price", "helper_fee", mode="before")
    @classmethod
    def validate_amounts(cls, v):
        return parse_amount(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v):
        return validate_time_of_day(v)

    @model_validator(mode="after")
    def clear_rule_when_not_recurring(self):
        # Empty string, not None: the backend keeps the stored rule when the field is absent
        if self.is_recurring is False:
            self.recurrence_rule = ""
        return self

    def to_wire(self) -> dict:
        """JSON body for the backend: camelCase, unset fields omitted"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class NewAppointment(AppointmentPayload):
    """Payload for a brand new appointment"""

    customer_id: str
    date: str
    start_time: str
    is_recurring: bool = False

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, v):
        # Appointments start scheduled unless they are logged as already done
        if v not in (None, AppointmentStatus.AGENDADO, AppointmentStatus.CONCLUIDO):
            raise ValueError("New appointments must be AGENDADO or CONCLUIDO")
        return v


class HelperFeeQuote(CamelModel):
    """Response of the backend fee calculator"""

    helper_fee: Money
    explanation: str = ""

    @field_validator("helper_fee", mode="before")
    @classmethod
    def validate_fee(cls, v):
        parsed = parse_amount(v)
        if parsed is None:
            raise ValueError("helperFee must be a number")
        return parsed
