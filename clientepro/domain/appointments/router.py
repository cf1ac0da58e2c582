"""Appointment router - FastAPI endpoints for the appointment lifecycle"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from ...services.core_api import CoreApiClient
from ...shared.validators import FieldError
from .cascade import CascadeResult, CascadeStatus
from .dates import compose_date, from_canonical_date, to_canonical_date
from .exceptions import CollaboratorError, IllegalTransitionError
from .financials import FeeEditSession, format_fee_explanation, validate_helper_fee
from .lifecycle import AppointmentLifecycle, TransitionOutcome
from .schemas import (
    Appointment,
    AppointmentStatus,
    CamelModel,
    Customer,
    Helper,
    Money,
    NewAppointment,
    PayoutMode,
)
from .series import RecurrenceRule, next_occurrence_dates, parse_recurrence_rule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

security = HTTPBearer()


def get_core_api(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CoreApiClient:
    """Backend client acting with the caller's own token"""
    return CoreApiClient(token=credentials.credentials)


def get_lifecycle(api: CoreApiClient = Depends(get_core_api)) -> AppointmentLifecycle:
    """Dependency injection for AppointmentLifecycle"""
    return AppointmentLifecycle(api)


# Schemas
class FinishRequest(CamelModel):
    send_invoice: bool = False


class StatusChangeRequest(CamelModel):
    status: AppointmentStatus
    send_invoice: bool = False
    cancel_series: bool = True
    confirm_fallback: bool = False


class TransitionResponse(CamelModel):
    appointment: Appointment
    changed: bool
    invoice_url: Optional[str] = None
    invoice_error: Optional[str] = None
    cascade: Optional[dict] = None
    messages: list[str] = []


class HelperFeePreviewRequest(CamelModel):
    price: Optional[Money] = None
    default_price: Optional[Money] = None
    payout_mode: PayoutMode
    payout_value: Money
    helper_fee: Optional[Money] = None


class HelperFeePreviewResponse(CamelModel):
    price: Optional[Money] = None
    helper_fee: Optional[Money] = None
    fee_overridden: bool = False
    explanation: Optional[str] = None
    error: Optional[dict] = None


class ComposeDateRequest(CamelModel):
    year: Union[int, str]
    month: Union[int, str]
    day: Union[int, str]


class RecurrencePreviewRequest(CamelModel):
    date: str
    recurrence_rule: RecurrenceRule
    count: int = 4


def _collaborator_http_error(e: CollaboratorError) -> HTTPException:
    logger.error(f"❌ Core API call failed: {e}")
    if e.status_code == 404:
        return HTTPException(status_code=404, detail="Appointment not found")
    return HTTPException(status_code=502, detail=f"Core API error: {e.detail or e.operation}")


def _cascade_status_code(result: CascadeResult) -> int:
    return {
        CascadeStatus.COMPLETED: 200,
        CascadeStatus.PARTIAL: 207,
        CascadeStatus.NEEDS_CONFIRMATION: 409,
        CascadeStatus.FAILED: 502,
    }[result.status]


def _transition_response(outcome: TransitionOutcome) -> JSONResponse:
    body = TransitionResponse(
        appointment=outcome.appointment,
        changed=outcome.changed,
        invoice_url=outcome.invoice_url,
        invoice_error=outcome.invoice_error,
        cascade=outcome.cascade.to_dict() if outcome.cascade else None,
        messages=outcome.messages,
    )
    status_code = _cascade_status_code(outcome.cascade) if outcome.cascade else 200
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


async def _load_appointment(api: CoreApiClient, appointment_id: str) -> Appointment:
    try:
        return await api.get_appointment(appointment_id)
    except CollaboratorError as e:
        raise _collaborator_http_error(e)


# Routes
@router.post("", response_model=Appointment, status_code=201)
async def create_appointment(
    data: NewAppointment,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    """Create an appointment (recurring bookings must use one of the supported rules)"""
    try:
        if data.is_recurring:
            rule = parse_recurrence_rule(data.recurrence_rule)
            if rule is None:
                raise ValueError("Recurring appointments need a recurrence rule")
        data.date = to_canonical_date(from_canonical_date(data.date))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return await lifecycle.create(data)
    except CollaboratorError as e:
        raise _collaborator_http_error(e)


@router.post("/{appointment_id}/start", response_model=TransitionResponse)
async def start_appointment(
    appointment_id: str,
    api: CoreApiClient = Depends(get_core_api),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    """Start a job (mark as in progress)"""
    appointment = await _load_appointment(api, appointment_id)
    try:
        outcome = await lifecycle.start(appointment)
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CollaboratorError as e:
        raise _collaborator_http_error(e)
    return _transition_response(outcome)


@router.post("/{appointment_id}/finish", response_model=TransitionResponse)
async def finish_appointment(
    appointment_id: str,
    data: Optional[FinishRequest] = None,
    api: CoreApiClient = Depends(get_core_api),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    """Finish a job in progress, optionally sending the invoice"""
    appointment = await _load_appointment(api, appointment_id)
    send_invoice = data.send_invoice if data else False
    try:
        outcome = await lifecycle.finish(appointment, send_invoice=send_invoice)
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CollaboratorError as e:
        raise _collaborator_http_error(e)
    return _transition_response(outcome)


@router.patch("/{appointment_id}/status", response_model=TransitionResponse)
async def change_appointment_status(
    appointment_id: str,
    data: StatusChangeRequest,
    api: CoreApiClient = Depends(get_core_api),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    """Change status from a status picker; cancelling a recurring job cancels its series"""
    appointment = await _load_appointment(api, appointment_id)
    try:
        outcome = await lifecycle.change_status(
            appointment,
            data.status,
            send_invoice=data.send_invoice,
            cancel_series=data.cancel_series,
            confirm_fallback=data.confirm_fallback,
        )
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CollaboratorError as e:
        raise _collaborator_http_error(e)
    return _transition_response(outcome)


@router.delete("/{appointment_id}/series")
async def delete_appointment_series(
    appointment_id: str,
    confirm_fallback: bool = Query(False, alias="confirmFallback"),
    api: CoreApiClient = Depends(get_core_api),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    """Delete every occurrence of the appointment's recurring series"""
    appointment = await _load_appointment(api, appointment_id)
    result = await lifecycle.delete_series(appointment, confirm_fallback=confirm_fallback)
    return JSONResponse(status_code=_cascade_status_code(result), content=result.to_dict())


@router.post("/helper-fee/preview", response_model=HelperFeePreviewResponse)
async def preview_helper_fee(data: HelperFeePreviewRequest):
    """Derive the helper fee shown in the create/edit form"""
    try:
        helper = Helper(id="preview", payout_mode=data.payout_mode, payout_value=data.payout_value)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])
    customer = (
        Customer(id="preview", default_price=data.default_price)
        if data.default_price is not None
        else None
    )
    session = FeeEditSession.start(
        customer=customer, helper=helper, price=data.price, helper_fee=data.helper_fee
    )

    response = HelperFeePreviewResponse(
        price=session.price,
        helper_fee=session.helper_fee,
        fee_overridden=session.fee_overridden,
    )
    if session.fee_overridden:
        error = validate_helper_fee(session.helper_fee, session.price)
        response.error = error.to_dict() if error else None
    elif session.helper_fee is not None:
        response.explanation = format_fee_explanation(
            session.helper_fee, session.price, data.payout_mode, data.payout_value
        )
    return response


@router.post("/dates/compose")
async def compose_appointment_date(data: ComposeDateRequest):
    """Validate the month/day pickers; errors come back inline, not as HTTP errors"""
    result = compose_date(data.year, data.month, data.day)
    if isinstance(result, FieldError):
        return result.to_dict()
    return {"date": result}


@router.post("/recurrence/preview")
async def preview_recurrence(data: RecurrencePreviewRequest):
    """Dates of the follow-up occurrences a recurring booking will get"""
    try:
        first = from_canonical_date(data.date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    count = max(1, min(data.count, 12))
    dates = next_occurrence_dates(first, data.recurrence_rule, count)
    return {
        "rule": data.recurrence_rule.value,
        "label": data.recurrence_rule.label,
        "dates": [to_canonical_date(d) for d in dates],
    }
