"""
Appointment lifecycle
Handles status transitions, helper fee capture at completion, and invoice issuance

Status workflow: AGENDADO → EM_ANDAMENTO → CONCLUIDO, with CANCELADO reachable
from any non-terminal status. CONCLUIDO and CANCELADO are terminal.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .cascade import CascadeAction, CascadeResult, CascadeStatus, SeriesCascade
from .exceptions import CollaboratorError, IllegalTransitionError
from .financials import build_payload, resolve_helper_fee
from .schemas import Appointment, AppointmentPayload, AppointmentStatus, Helper
from .series import belongs_to_series

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.AGENDADO: {AppointmentStatus.EM_ANDAMENTO, AppointmentStatus.CANCELADO},
    AppointmentStatus.EM_ANDAMENTO: {AppointmentStatus.CONCLUIDO, AppointmentStatus.CANCELADO},
    AppointmentStatus.CONCLUIDO: set(),  # Terminal state
    AppointmentStatus.CANCELADO: set(),  # Terminal state
}

# Helpers work from the mobile view: they can start and finish jobs, never cancel
HELPER_TARGETS = {AppointmentStatus.EM_ANDAMENTO, AppointmentStatus.CONCLUIDO}


class Actor(str, Enum):
    OWNER = "owner"
    HELPER = "helper"


@dataclass(frozen=True)
class StartJob:
    status = AppointmentStatus.EM_ANDAMENTO


@dataclass(frozen=True)
class CompleteJob:
    send_invoice: bool = False
    status = AppointmentStatus.CONCLUIDO


@dataclass(frozen=True)
class CancelJob:
    # False only when the user declined cancelling the whole series
    cancel_series: bool = True
    confirm_fallback: bool = False
    status = AppointmentStatus.CANCELADO


TransitionTarget = Union[StartJob, CompleteJob, CancelJob]


@dataclass
class TransitionOutcome:
    appointment: Appointment
    changed: bool
    invoice_url: Optional[str] = None
    invoice_error: Optional[str] = None
    cascade: Optional[CascadeResult] = None
    messages: list[str] = field(default_factory=list)


def check_transition(
    current: AppointmentStatus, target: AppointmentStatus, actor: Actor = Actor.OWNER
) -> bool:
    """
    Validate a status change.

    Returns:
        bool: True if the status has to change, False for a same-status no-op

    Raises:
        IllegalTransitionError: If the transition is not allowed
    """
    current = AppointmentStatus(current)
    target = AppointmentStatus(target)

    if actor == Actor.HELPER and target not in HELPER_TARGETS:
        raise IllegalTransitionError(current.value, target.value, "not allowed for helpers")

    if current == target:
        return False

    if target not in ALLOWED_TRANSITIONS[current]:
        reason = "status is final" if current.is_terminal else None
        raise IllegalTransitionError(current.value, target.value, reason)
    return True


def target_for_status(
    status: AppointmentStatus,
    send_invoice: bool = False,
    cancel_series: bool = True,
    confirm_fallback: bool = False,
) -> TransitionTarget:
    """Map a status picked in the UI to a transition target"""
    status = AppointmentStatus(status)
    if status == AppointmentStatus.EM_ANDAMENTO:
        return StartJob()
    if status == AppointmentStatus.CONCLUIDO:
        return CompleteJob(send_invoice=send_invoice)
    if status == AppointmentStatus.CANCELADO:
        return CancelJob(cancel_series=cancel_series, confirm_fallback=confirm_fallback)
    raise IllegalTransitionError("*", status.value, "appointments cannot be moved back to scheduled")


class AppointmentLifecycle:
    """Single entry point for every appointment status change"""

    def __init__(
        self,
        backend,
        helpers: Optional[dict[str, Helper]] = None,
        actor: Actor = Actor.OWNER,
    ):
        self.backend = backend
        self.helpers = helpers or {}
        self.actor = actor
        self.cascade = SeriesCascade(self)

    async def transition(
        self, appointment: Appointment, target: TransitionTarget
    ) -> TransitionOutcome:
        """Apply a transition target, enforcing the transition table"""
        try:
            if self.actor == Actor.HELPER and isinstance(target, CompleteJob) and target.send_invoice:
                raise IllegalTransitionError(
                    appointment.status.value, target.status.value, "helpers cannot send invoices"
                )
            needs_change = check_transition(appointment.status, target.status, self.actor)
        except IllegalTransitionError as e:
            logger.warning(f"⚠️ Rejected transition for appointment {appointment.id}: {e}")
            raise

        if isinstance(target, CompleteJob):
            outcome = (
                await self._complete(appointment)
                if needs_change
                else TransitionOutcome(appointment=appointment, changed=False)
            )
            if target.send_invoice:
                await self._issue_invoice(outcome)
            return outcome

        if not needs_change:
            logger.debug(f"ℹ️ Appointment {appointment.id} already {appointment.status.value}")
            return TransitionOutcome(appointment=appointment, changed=False)

        if isinstance(target, StartJob):
            updated = await self.backend.start_appointment(appointment.id)
            logger.info(f"✅ Appointment {appointment.id} started")
            return TransitionOutcome(appointment=updated, changed=True)

        return await self._cancel(appointment, target)

    async def start(self, appointment: Appointment) -> TransitionOutcome:
        return await self.transition(appointment, StartJob())

    async def finish(self, appointment: Appointment, send_invoice: bool = False) -> TransitionOutcome:
        return await self.transition(appointment, CompleteJob(send_invoice=send_invoice))

    async def change_status(
        self,
        appointment: Appointment,
        target_status: AppointmentStatus,
        send_invoice: bool = False,
        cancel_series: bool = True,
        confirm_fallback: bool = False,
    ) -> TransitionOutcome:
        """Generic transition used by the status pickers"""
        if AppointmentStatus(target_status) == appointment.status == AppointmentStatus.AGENDADO:
            return TransitionOutcome(appointment=appointment, changed=False)

        target = target_for_status(target_status, send_invoice, cancel_series, confirm_fallback)
        return await self.transition(appointment, target)

    async def cancel_occurrence(self, appointment: Appointment) -> Appointment:
        """Cancel one occurrence only, leaving the rest of its series alone"""
        if not check_transition(appointment.status, AppointmentStatus.CANCELADO, self.actor):
            return appointment
        updated = await self.backend.change_appointment_status(
            appointment.id, AppointmentStatus.CANCELADO
        )
        logger.info(f"✅ Appointment {appointment.id} cancelled")
        return updated

    async def delete_occurrence(self, appointment: Appointment) -> None:
        await self.backend.delete_appointment(appointment.id)
        logger.info(f"🗑️ Appointment {appointment.id} deleted")

    async def delete_series(
        self, anchor: Appointment, confirm_fallback: bool = False
    ) -> CascadeResult:
        return await self.cascade.run(anchor, CascadeAction.DELETE, confirm_fallback)

    async def create(self, payload: AppointmentPayload) -> Appointment:
        """Fill price, helper fee and recurrence fields, then create the appointment"""
        customer = None
        if payload.price is None:
            try:
                customer = await self.backend.get_customer(payload.customer_id)
            except CollaboratorError as e:
                logger.warning(f"⚠️ No default price for customer {payload.customer_id}: {e}")

        helper = self.helpers.get(payload.assigned_helper_id) if payload.assigned_helper_id else None
        payload = build_payload(payload, customer=customer, helper=helper)

        if payload.helper_fee is None and payload.assigned_helper_id and helper is None:
            try:
                fee = await self._derive_helper_fee(payload.assigned_helper_id, payload.price)
                payload = payload.model_copy(update={"helper_fee": fee})
            except CollaboratorError as e:
                logger.warning(f"⚠️ Helper fee not derived for new appointment: {e}")

        return await self.backend.create_appointment(payload)

    async def _cancel(self, appointment: Appointment, target: CancelJob) -> TransitionOutcome:
        if not (target.cancel_series and belongs_to_series(appointment)):
            updated = await self.cancel_occurrence(appointment)
            return TransitionOutcome(appointment=updated, changed=True)

        result = await self.cascade.run(appointment, CascadeAction.CANCEL, target.confirm_fallback)
        anchor_cancelled = (
            result.status in (CascadeStatus.COMPLETED, CascadeStatus.PARTIAL)
            and appointment.id not in result.failed_ids
        )
        updated = (
            appointment.model_copy(update={"status": AppointmentStatus.CANCELADO})
            if anchor_cancelled
            else appointment
        )
        outcome = TransitionOutcome(appointment=updated, changed=anchor_cancelled, cascade=result)
        if result.message:
            outcome.messages.append(result.message)
        return outcome

    async def _complete(self, appointment: Appointment) -> TransitionOutcome:
        outcome = TransitionOutcome(appointment=appointment, changed=True)

        # Financial fields are the owner's; a helper finishing a job leaves them alone
        if (
            self.actor == Actor.OWNER
            and appointment.helper_fee is None
            and appointment.assigned_helper_id
        ):
            try:
                fee = await self._derive_helper_fee(appointment.assigned_helper_id, appointment.price)
                if fee is not None:
                    await self.backend.update_appointment(
                        appointment.id, AppointmentPayload(helper_fee=fee)
                    )
                    logger.info(f"💵 Helper fee {fee} recorded for appointment {appointment.id}")
            except CollaboratorError as e:
                logger.warning(f"⚠️ Helper fee not recorded for appointment {appointment.id}: {e}")
                outcome.messages.append("Helper fee could not be calculated")

        outcome.appointment = await self.backend.finish_appointment(appointment.id)
        logger.info(f"✅ Appointment {appointment.id} completed")
        return outcome

    async def _derive_helper_fee(self, helper_id: str, price):
        helper = self.helpers.get(helper_id)
        if helper is not None:
            return resolve_helper_fee(price, helper.payout_mode, helper.payout_value)

        if price is None or price <= 0:
            return None
        quote = await self.backend.calculate_helper_fee(helper_id, price)
        return quote.helper_fee

    async def _issue_invoice(self, outcome: TransitionOutcome) -> None:
        """Ask the backend to issue the invoice; a failure never undoes the completion"""
        appointment = outcome.appointment
        try:
            invoiced = await self.backend.change_appointment_status(
                appointment.id, AppointmentStatus.CONCLUIDO, send_invoice=True
            )
        except CollaboratorError as e:
            logger.warning(f"⚠️ Invoice not issued for appointment {appointment.id}: {e}")
            outcome.invoice_error = str(e)
            outcome.messages.append("Appointment completed, but the invoice could not be sent")
            return

        outcome.invoice_url = invoiced.invoice_url
        outcome.appointment = invoiced
        logger.info(f"🧾 Invoice issued for appointment {appointment.id}")
