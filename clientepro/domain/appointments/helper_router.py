"""Helper router - the mobile view where helpers start and finish their own jobs"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from ...services.core_api import HelperCoreApiClient
from .exceptions import CollaboratorError, IllegalTransitionError
from .lifecycle import HELPER_TARGETS, Actor, AppointmentLifecycle
from .router import (
    TransitionResponse,
    _collaborator_http_error,
    _load_appointment,
    _transition_response,
    security,
)
from .schemas import AppointmentStatus, CamelModel

router = APIRouter(prefix="/helper", tags=["Helper"])


def get_helper_api(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> HelperCoreApiClient:
    """Backend client scoped to the appointments assigned to the calling helper"""
    return HelperCoreApiClient(token=credentials.credentials)


def get_helper_lifecycle(
    api: HelperCoreApiClient = Depends(get_helper_api),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(api, actor=Actor.HELPER)


class HelperStatusRequest(CamelModel):
    status: AppointmentStatus


@router.post("/appointments/{appointment_id}/status", response_model=TransitionResponse)
async def change_helper_appointment_status(
    appointment_id: str,
    data: HelperStatusRequest,
    api: HelperCoreApiClient = Depends(get_helper_api),
    lifecycle: AppointmentLifecycle = Depends(get_helper_lifecycle),
):
    """Start or finish an assigned job; helpers cannot cancel or send invoices"""
    if data.status not in HELPER_TARGETS:
        raise HTTPException(status_code=400, detail="Invalid status for helper")

    # Appointments not assigned to this helper come back as 404
    appointment = await _load_appointment(api, appointment_id)
    try:
        outcome = await lifecycle.change_status(appointment, data.status)
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CollaboratorError as e:
        raise _collaborator_http_error(e)
    return _transition_response(outcome)
