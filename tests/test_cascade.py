import pytest

from clientepro.domain.appointments.cascade import CascadeAction, CascadeStatus
from clientepro.domain.appointments.lifecycle import AppointmentLifecycle
from clientepro.domain.appointments.schemas import AppointmentStatus

from .conftest import FakeBackend

pytestmark = pytest.mark.anyio


def _run_setup(appointments, **backend_options):
    backend = FakeBackend(appointments, **backend_options)
    return AppointmentLifecycle(backend), backend


async def test_bulk_delete(series_appointments):
    lifecycle, backend = _run_setup(series_appointments)

    result = await lifecycle.delete_series(series_appointments[0])

    assert result.status == CascadeStatus.COMPLETED
    assert not result.used_fallback
    assert backend.operations() == ["delete_appointment_series"]
    assert sorted(backend.appointments) == ["s2-0", "x-0"]


async def test_bulk_failure_asks_for_confirmation(series_appointments):
    lifecycle, backend = _run_setup(series_appointments, fail={"delete_appointment_series"})

    result = await lifecycle.delete_series(series_appointments[0])

    assert result.status == CascadeStatus.NEEDS_CONFIRMATION
    assert not result.succeeded
    assert backend.operations() == ["delete_appointment_series"]
    assert len(backend.appointments) == 6


@pytest.mark.parametrize("anchor_index", [0, 1, 2, 3])
async def test_confirmed_fallback_deletes_only_the_series(series_appointments, anchor_index):
    lifecycle, backend = _run_setup(series_appointments, fail={"delete_appointment_series"})
    anchor = series_appointments[anchor_index]

    result = await lifecycle.delete_series(anchor, confirm_fallback=True)

    assert result.status == CascadeStatus.COMPLETED
    assert result.used_fallback
    assert result.affected_ids[0] == anchor.id
    assert sorted(result.affected_ids) == ["s1-0", "s1-1", "s1-2", "s1-3"]
    assert sorted(backend.appointments) == ["s2-0", "x-0"]
    assert backend.operations().count("delete_appointment") == 4


async def test_partial_failure_is_reported(series_appointments):
    lifecycle, backend = _run_setup(
        series_appointments, fail={"delete_appointment_series"}, fail_ids={"s1-2"}
    )

    result = await lifecycle.delete_series(series_appointments[0], confirm_fallback=True)

    assert result.status == CascadeStatus.PARTIAL
    assert result.failed_ids == ["s1-2"]
    assert sorted(result.affected_ids) == ["s1-0", "s1-1", "s1-3"]
    assert "manual cleanup" in result.message
    assert "s1-2" in backend.appointments


async def test_every_occurrence_failing(series_appointments):
    lifecycle, _ = _run_setup(
        series_appointments,
        fail={"delete_appointment_series", "delete_appointment"},
    )

    result = await lifecycle.delete_series(series_appointments[0], confirm_fallback=True)

    assert result.status == CascadeStatus.FAILED
    assert result.affected_ids == []
    assert len(result.failed_ids) == 4


async def test_listing_failure(series_appointments):
    lifecycle, backend = _run_setup(
        series_appointments,
        fail={"delete_appointment_series", "list_appointments_by_customer"},
    )

    result = await lifecycle.delete_series(series_appointments[0], confirm_fallback=True)

    assert result.status == CascadeStatus.FAILED
    assert result.used_fallback
    assert "delete_appointment" not in backend.operations()


async def test_cancel_fallback_skips_finished_occurrences(series_appointments):
    finished = series_appointments[3].model_copy(update={"status": AppointmentStatus.CONCLUIDO})
    appointments = series_appointments[:3] + [finished] + series_appointments[4:]
    lifecycle, backend = _run_setup(appointments, fail={"cancel_appointment_series"})

    result = await lifecycle.cascade.run(
        appointments[0], CascadeAction.CANCEL, confirm_fallback=True
    )

    assert result.status == CascadeStatus.COMPLETED
    assert result.skipped_ids == ["s1-3"]
    assert sorted(result.affected_ids) == ["s1-0", "s1-1", "s1-2"]
    assert backend.appointments["s1-3"].status == AppointmentStatus.CONCLUIDO
    assert backend.appointments["s2-0"].status == AppointmentStatus.AGENDADO


async def test_result_to_dict(series_appointments):
    lifecycle, _ = _run_setup(series_appointments, fail={"delete_appointment_series"})

    result = await lifecycle.delete_series(series_appointments[0])

    assert result.to_dict() == {
        "action": "delete",
        "anchorId": "s1-0",
        "status": "needs_confirmation",
        "usedFallback": False,
        "affectedIds": [],
        "failedIds": [],
        "skippedIds": [],
        "message": result.message,
    }


@pytest.mark.parametrize("anchor_index", [0, 1, 2, 3])
async def test_confirmed_cancel_from_any_occurrence(series_appointments, anchor_index):
    lifecycle, backend = _run_setup(series_appointments, fail={"cancel_appointment_series"})

    result = await lifecycle.cascade.run(
        series_appointments[anchor_index], CascadeAction.CANCEL, confirm_fallback=True
    )

    assert sorted(result.affected_ids) == ["s1-0", "s1-1", "s1-2", "s1-3"]
    cancelled = sorted(a.id for a in backend.appointments.values() if a.status == AppointmentStatus.CANCELADO)
    assert cancelled == ["s1-0", "s1-1", "s1-2", "s1-3"]
