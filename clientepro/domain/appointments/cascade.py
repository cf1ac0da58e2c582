"""
Recurring series cascade
Cancels or deletes every occurrence of the series an appointment belongs to
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List

from .exceptions import CollaboratorError
from .schemas import Appointment
from .series import select_series

if TYPE_CHECKING:
    from .lifecycle import AppointmentLifecycle

logger = logging.getLogger(__name__)


class CascadeAction(str, Enum):
    CANCEL = "cancel"
    DELETE = "delete"


class CascadeStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"  # some occurrences may remain, manual cleanup needed
    FAILED = "failed"
    NEEDS_CONFIRMATION = "needs_confirmation"  # bulk call failed, fallback not confirmed yet


@dataclass
class CascadeResult:
    action: CascadeAction
    anchor_id: str
    status: CascadeStatus
    used_fallback: bool = False
    affected_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    skipped_ids: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == CascadeStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "anchorId": self.anchor_id,
            "status": self.status.value,
            "usedFallback": self.used_fallback,
            "affectedIds": self.affected_ids,
            "failedIds": self.failed_ids,
            "skippedIds": self.skipped_ids,
            "message": self.message,
        }


class SeriesCascade:
    """
    Applies a cancel or delete to a whole recurring series.

    The backend's own series operation is always tried first. If it fails,
    the occurrences are matched locally with the series resolver and handled
    one by one, but only once the user has confirmed: the time/price
    heuristic can pull in bookings that are not part of the series.
    """

    def __init__(self, lifecycle: "AppointmentLifecycle"):
        self.lifecycle = lifecycle
        self.backend = lifecycle.backend

    async def run(
        self, anchor: Appointment, action: CascadeAction, confirm_fallback: bool = False
    ) -> CascadeResult:
        try:
            if action == CascadeAction.DELETE:
                await self.backend.delete_appointment_series(anchor.id)
            else:
                await self.backend.cancel_appointment_series(anchor.id)
            logger.info(f"✅ Series of appointment {anchor.id}: {action.value} done by backend")
            return CascadeResult(
                action=action,
                anchor_id=anchor.id,
                status=CascadeStatus.COMPLETED,
                affected_ids=[anchor.id],
                message="Series updated",
            )
        except CollaboratorError as e:
            reason = "not available" if e.is_unavailable else "failed"
            logger.warning(f"⚠️ Bulk series {action.value} {reason} for {anchor.id}: {e}")

        if not confirm_fallback:
            return CascadeResult(
                action=action,
                anchor_id=anchor.id,
                status=CascadeStatus.NEEDS_CONFIRMATION,
                message=(
                    "The series could not be updated in one step. Confirm to update "
                    "each matching occurrence individually."
                ),
            )

        return await self._run_per_occurrence(anchor, action)

    async def _run_per_occurrence(self, anchor: Appointment, action: CascadeAction) -> CascadeResult:
        result = CascadeResult(
            action=action, anchor_id=anchor.id, status=CascadeStatus.FAILED, used_fallback=True
        )

        try:
            candidates = await self.backend.list_appointments_by_customer(anchor.customer_id)
        except CollaboratorError as e:
            logger.error(f"❌ Could not list appointments of customer {anchor.customer_id}: {e}")
            result.message = "Could not load the series occurrences"
            return result

        targets = []
        for occurrence in select_series(anchor, candidates):
            if action == CascadeAction.CANCEL and occurrence.status.is_terminal:
                result.skipped_ids.append(occurrence.id)
            else:
                targets.append(occurrence)

        outcomes = await asyncio.gather(
            *(self._apply(action, occurrence) for occurrence in targets),
            return_exceptions=True,
        )

        for occurrence, outcome in zip(targets, outcomes):
            if isinstance(outcome, CollaboratorError):
                logger.warning(f"⚠️ {action.value} failed for occurrence {occurrence.id}: {outcome}")
                result.failed_ids.append(occurrence.id)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.affected_ids.append(occurrence.id)

        if not result.failed_ids:
            result.status = CascadeStatus.COMPLETED
            result.message = f"{len(result.affected_ids)} occurrence(s) updated"
        elif result.affected_ids:
            result.status = CascadeStatus.PARTIAL
            result.message = (
                f"Series not fully updated: {len(result.failed_ids)} occurrence(s) remain "
                "and may need manual cleanup"
            )
        else:
            result.message = "No occurrence could be updated"

        logger.info(
            f"📊 Series {action.value} fallback for {anchor.id}: {result.status.value} "
            f"(affected={len(result.affected_ids)}, failed={len(result.failed_ids)}, "
            f"skipped={len(result.skipped_ids)})"
        )
        return result

    async def _apply(self, action: CascadeAction, occurrence: Appointment) -> None:
        if action == CascadeAction.DELETE:
            await self.lifecycle.delete_occurrence(occurrence)
        else:
            await self.lifecycle.cancel_occurrence(occurrence)
