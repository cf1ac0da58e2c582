"""
Core API client
Talks to the Clientepro core backend (appointments, customers, team) over JSON/HTTP
"""

import logging
from decimal import Decimal
from typing import Any, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import APP_URL, CORE_API_TIMEOUT, CORE_API_URL
from ..domain.appointments.exceptions import CollaboratorError
from ..domain.appointments.schemas import (
    Appointment,
    AppointmentPayload,
    AppointmentStatus,
    Customer,
    HelperFeeQuote,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(operation: str, model: Type[ModelT], data: Any) -> ModelT:
    """Validate a response body; a malformed body is a backend failure"""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"❌ {operation} returned an unexpected body: {e.error_count()} error(s)")
        raise CollaboratorError(operation, detail=f"Invalid response body: {e.errors()[0]['msg']}") from e


class CoreApiClient:
    """Client for the appointment operations of the core backend"""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = CORE_API_URL,
        timeout: float = CORE_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.RequestError as e:
                logger.error(f"❌ {operation} failed: {e}")
                raise CollaboratorError(operation, detail=str(e)) from e

            if response.status_code >= 400:
                detail = _error_detail(response)
                logger.error(f"❌ {operation} failed: HTTP {response.status_code} {detail}")
                raise CollaboratorError(operation, response.status_code, detail)

            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                logger.error(f"❌ {operation} returned a non-JSON body")
                raise CollaboratorError(operation, response.status_code, "Invalid JSON body") from e

    async def get_appointment(self, appointment_id: str) -> Appointment:
        data = await self._request("get_appointment", "GET", f"/appointments/{appointment_id}")
        return _parse("get_appointment", Appointment, data)

    async def get_customer(self, customer_id: str) -> Customer:
        data = await self._request("get_customer", "GET", f"/customers/{customer_id}")
        return _parse("get_customer", Customer, data)

    async def create_appointment(self, payload: AppointmentPayload) -> Appointment:
        data = await self._request(
            "create_appointment", "POST", "/appointments", json=payload.to_wire()
        )
        appointment = _parse("create_appointment", Appointment, data)
        logger.info(f"✅ Appointment {appointment.id} created")
        return appointment

    async def update_appointment(
        self, appointment_id: str, payload: AppointmentPayload
    ) -> Appointment:
        data = await self._request(
            "update_appointment", "PUT", f"/appointments/{appointment_id}", json=payload.to_wire()
        )
        return _parse("update_appointment", Appointment, data)

    async def change_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        send_invoice: Optional[bool] = None,
    ) -> Appointment:
        body: dict[str, Any] = {"status": AppointmentStatus(status).value}
        if send_invoice is not None:
            body["sendInvoice"] = send_invoice

        data = await self._request(
            "change_appointment_status",
            "PATCH",
            f"/appointments/{appointment_id}/status",
            json=body,
        )
        appointment = _parse("change_appointment_status", Appointment, data)
        if send_invoice and not appointment.invoice_url:
            # Backend issued the invoice but did not echo the public link
            appointment.invoice_url = f"{APP_URL}/invoice/{appointment.id}"
        return appointment

    async def start_appointment(self, appointment_id: str) -> Appointment:
        data = await self._request(
            "start_appointment", "PATCH", f"/appointments/{appointment_id}/start"
        )
        return _parse("start_appointment", Appointment, data)

    async def finish_appointment(self, appointment_id: str) -> Appointment:
        data = await self._request(
            "finish_appointment", "PATCH", f"/appointments/{appointment_id}/finish"
        )
        return _parse("finish_appointment", Appointment, data)

    async def delete_appointment(self, appointment_id: str) -> None:
        await self._request("delete_appointment", "DELETE", f"/appointments/{appointment_id}")

    async def delete_appointment_series(self, anchor_id: str) -> None:
        await self._request(
            "delete_appointment_series", "DELETE", f"/appointments/{anchor_id}/series"
        )

    async def cancel_appointment_series(self, anchor_id: str) -> None:
        await self._request(
            "cancel_appointment_series",
            "PATCH",
            f"/appointments/{anchor_id}/series/status",
            json={"status": AppointmentStatus.CANCELADO.value},
        )

    async def list_appointments_by_customer(self, customer_id: str) -> list[Appointment]:
        data = await self._request(
            "list_appointments_by_customer",
            "GET",
            "/appointments",
            params={"customerId": customer_id},
        )
        return [_parse("list_appointments_by_customer", Appointment, item) for item in data or []]

    async def calculate_helper_fee(self, helper_id: str, price: Decimal) -> HelperFeeQuote:
        data = await self._request(
            "calculate_helper_fee",
            "POST",
            f"/team/helpers/{helper_id}/calculate-fee",
            json={"price": float(price)},
        )
        return _parse("calculate_helper_fee", HelperFeeQuote, data)


class HelperCoreApiClient(CoreApiClient):
    """
    The helper's view of the backend.

    Helpers only see appointments assigned to them (anything else is a 404)
    and move them through a single status endpoint.
    """

    async def get_appointment(self, appointment_id: str) -> Appointment:
        data = await self._request(
            "get_helper_appointment", "GET", f"/helper/appointments/{appointment_id}"
        )
        return _parse("get_helper_appointment", Appointment, data)

    async def change_appointment_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        send_invoice: Optional[bool] = None,
    ) -> Appointment:
        if send_invoice:
            raise CollaboratorError("change_helper_appointment_status", 403, "Helpers cannot send invoices")

        data = await self._request(
            "change_helper_appointment_status",
            "POST",
            f"/helper/appointments/{appointment_id}/status",
            json={"status": AppointmentStatus(status).value},
        )
        return _parse("change_helper_appointment_status", Appointment, data)

    async def start_appointment(self, appointment_id: str) -> Appointment:
        return await self.change_appointment_status(appointment_id, AppointmentStatus.EM_ANDAMENTO)

    async def finish_appointment(self, appointment_id: str) -> Appointment:
        return await self.change_appointment_status(appointment_id, AppointmentStatus.CONCLUIDO)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)
