from datetime import datetime, timezone
from decimal import Decimal

import pytest

from clientepro.domain.appointments.exceptions import CollaboratorError
from clientepro.domain.appointments.schemas import (
    Appointment,
    AppointmentStatus,
    HelperFeeQuote,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_appointment(**overrides) -> Appointment:
    data = {
        "id": "a1",
        "user_id": "owner-1",
        "customer_id": "c1",
        "date": "2024-03-04",
        "start_time": "09:00",
        "price": Decimal("100"),
        "status": AppointmentStatus.AGENDADO,
    }
    data.update(overrides)
    return Appointment(**data)


class FakeBackend:
    """In-memory stand-in for the core backend, recording every call"""

    def __init__(self, appointments=(), fail=(), fail_ids=(), fee_quotes=None, customers=()):
        self.appointments = {a.id: a for a in appointments}
        self.customers = {c.id: c for c in customers}
        self.fail = set(fail)
        self.fail_ids = set(fail_ids)
        self.fee_quotes = fee_quotes or {}
        self.calls = []
        self.created_payloads = []

    def _record(self, operation, appointment_id=None):
        self.calls.append((operation, appointment_id))
        if operation in self.fail or appointment_id in self.fail_ids:
            raise CollaboratorError(operation, 500, "backend exploded")

    def operations(self):
        return [operation for operation, _ in self.calls]

    def _save(self, appointment_id, **changes):
        updated = self.appointments[appointment_id].model_copy(update=changes)
        self.appointments[appointment_id] = updated
        return updated

    async def get_appointment(self, appointment_id):
        self._record("get_appointment", appointment_id)
        if appointment_id not in self.appointments:
            raise CollaboratorError("get_appointment", 404, "Agendamento não encontrado.")
        return self.appointments[appointment_id]

    async def get_customer(self, customer_id):
        self._record("get_customer", customer_id)
        if customer_id not in self.customers:
            raise CollaboratorError("get_customer", 404, "Cliente não encontrado.")
        return self.customers[customer_id]

    async def create_appointment(self, payload):
        self._record("create_appointment")
        self.created_payloads.append(payload)
        appointment = Appointment(
            id=f"new-{len(self.appointments) + 1}", **payload.model_dump(exclude_none=True)
        )
        self.appointments[appointment.id] = appointment
        return appointment

    async def update_appointment(self, appointment_id, payload):
        self._record("update_appointment", appointment_id)
        return self._save(appointment_id, **payload.model_dump(exclude_none=True))

    async def change_appointment_status(self, appointment_id, status, send_invoice=None):
        self._record("change_appointment_status", appointment_id)
        current = self.appointments[appointment_id]
        now = datetime.now(timezone.utc)
        changes = {"status": AppointmentStatus(status)}
        if status == AppointmentStatus.EM_ANDAMENTO and not current.started_at:
            changes["started_at"] = now
        if status == AppointmentStatus.CONCLUIDO and not current.finished_at:
            changes["finished_at"] = now
        if send_invoice:
            changes["invoice_url"] = f"https://app.test/invoice/{appointment_id}"
        return self._save(appointment_id, **changes)

    async def start_appointment(self, appointment_id):
        self._record("start_appointment", appointment_id)
        current = self.appointments[appointment_id]
        return self._save(
            appointment_id,
            status=AppointmentStatus.EM_ANDAMENTO,
            started_at=current.started_at or datetime.now(timezone.utc),
        )

    async def finish_appointment(self, appointment_id):
        self._record("finish_appointment", appointment_id)
        current = self.appointments[appointment_id]
        now = datetime.now(timezone.utc)
        return self._save(
            appointment_id,
            status=AppointmentStatus.CONCLUIDO,
            started_at=current.started_at or now,
            finished_at=current.finished_at or now,
        )

    async def delete_appointment(self, appointment_id):
        self._record("delete_appointment", appointment_id)
        del self.appointments[appointment_id]

    def _series_of(self, anchor_id):
        # Series ids are only unique within one customer's bookings
        anchor = self.appointments[anchor_id]
        return [
            a
            for a in self.appointments.values()
            if anchor.recurrence_series_id
            and a.customer_id == anchor.customer_id
            and a.recurrence_series_id == anchor.recurrence_series_id
        ]

    async def delete_appointment_series(self, anchor_id):
        self._record("delete_appointment_series", anchor_id)
        for appointment in self._series_of(anchor_id):
            del self.appointments[appointment.id]

    async def cancel_appointment_series(self, anchor_id):
        self._record("cancel_appointment_series", anchor_id)
        for appointment in self._series_of(anchor_id):
            self._save(appointment.id, status=AppointmentStatus.CANCELADO)

    async def list_appointments_by_customer(self, customer_id):
        self._record("list_appointments_by_customer", customer_id)
        return [a for a in self.appointments.values() if a.customer_id == customer_id]

    async def calculate_helper_fee(self, helper_id, price):
        self._record("calculate_helper_fee", helper_id)
        return HelperFeeQuote(helper_fee=self.fee_quotes[helper_id], explanation="quoted")


@pytest.fixture
def series_appointments():
    """Four occurrences of series S1, one of S2 and one of another customer"""
    occurrences = [
        make_appointment(
            id=f"s1-{i}",
            date=f"2024-03-{4 + 7 * i:02d}",
            is_recurring=(i == 0),
            recurrence_rule="FREQ=WEEKLY",
            recurrence_series_id="S1",
        )
        for i in range(4)
    ]
    other_series = make_appointment(
        id="s2-0", recurrence_rule="FREQ=WEEKLY", recurrence_series_id="S2", is_recurring=True
    )
    other_customer = make_appointment(
        id="x-0", customer_id="c2", recurrence_series_id="S1", is_recurring=True
    )
    return occurrences + [other_series, other_customer]
