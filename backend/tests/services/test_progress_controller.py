"""Tests for ProgressController: optimistic mutations, rollback and batch save.

Uses GatewayFake scenarios so every test runs in-process with deterministic
server behavior.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from flightdesk.core.auth import Session
from flightdesk.core.exceptions import (
    DuplicateNameError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    ProtectedEntityError,
    RemoteError,
)
from flightdesk.domain.metrics import find_total
from flightdesk.integrations.gateway_fake import GatewayFake
from flightdesk.schemas.progress import StudentRecord
from flightdesk.services.edit_session import ViewState
from flightdesk.services.progress_controller import ProgressController

pytestmark = pytest.mark.unit


@pytest.fixture
def controller_for(sample_record, fixed_now):
    """Factory: a loaded controller over a GatewayFake running the given scenario."""

    async def _build(scenario: str, session) -> tuple[ProgressController, GatewayFake]:
        gateway = GatewayFake(scenario=scenario)
        gateway.add_student(sample_record)
        controller = ProgressController(gateway, session, "student-001", clock=lambda: fixed_now)
        await controller.load()
        return controller, gateway

    return _build


def _total(controller: ProgressController) -> tuple[float, float]:
    total = find_total(controller.progress.requirements)
    return total.total_hours, total.completed_hours


def _milestone(controller: ProgressController, milestone_id: str):
    return next(m for m in controller.progress.milestones if m.id == milestone_id)


# ============================================================================
# Load and read side
# ============================================================================


async def test_load_populates_summary(controller):
    summary = controller.summary
    assert summary.overall_percent == 50
    assert summary.current_stage == "Solo"
    assert summary.next_milestone == "Solo Cross-Country"
    assert controller.state == ViewState.VIEWING
    assert controller.can_edit is True


async def test_progress_defaults_before_load(gateway_fake, admin_session):
    controller = ProgressController(gateway_fake, admin_session, "student-001")
    assert controller.progress.requirements == []
    assert controller.summary.overall_percent == 0


async def test_mutation_before_load(gateway_fake, admin_session):
    controller = ProgressController(gateway_fake, admin_session, "student-001")
    with pytest.raises(PreconditionError):
        await controller.toggle_milestone("ms-2")
    assert gateway_fake.write_count == 0


async def test_load_failure_propagates(admin_session):
    gateway = AsyncMock()
    gateway.read_student.side_effect = RemoteError("Student not found", status_code=404)
    controller = ProgressController(gateway, admin_session, "student-001")
    with pytest.raises(RemoteError):
        await controller.load()
    assert controller.student is None


# ============================================================================
# Authorization
# ============================================================================


async def test_non_admin_cannot_mutate(controller_for, instructor_session):
    """Unauthorized calls fail before any write and leave state untouched."""
    controller, gateway = await controller_for("happy_path", instructor_session)
    before = controller.student

    assert controller.can_edit is False
    with pytest.raises(PermissionDeniedError):
        await controller.toggle_milestone("ms-2")
    with pytest.raises(PermissionDeniedError):
        await controller.add_requirement("Night Flight", 3)
    with pytest.raises(PermissionDeniedError):
        controller.begin_edit()

    assert gateway.write_count == 0
    assert controller.student is before


# ============================================================================
# Single-entity mutations
# ============================================================================


async def test_toggle_milestone_commits(controller, gateway_fake, fixed_now):
    await controller.toggle_milestone("ms-2")

    assert _milestone(controller, "ms-2").completed is True
    assert controller.progress.last_updated == fixed_now
    assert controller.summary.next_milestone is None
    stored = gateway_fake.students["student-001"]["progress"]["milestones"]
    assert stored[1]["completed"] is True
    assert controller.busy == frozenset()


async def test_add_then_remove_requirement_keeps_total_derived(controller, gateway_fake):
    await controller.add_requirement("Night Flight", 3)

    added = next(r for r in controller.progress.requirements if r.name == "Night Flight")
    assert _total(controller) == (43, 20)
    assert not added.id.startswith("temp-")
    assert added.category == "Custom"
    assert added.is_custom is True

    await controller.remove_requirement(added.id)

    assert _total(controller) == (40, 20)
    assert [r.name for r in controller.progress.requirements] == ["Total Flight Time", "Dual Instruction"]
    assert gateway_fake.write_count == 2


async def test_invalid_changes_never_write(controller, gateway_fake):
    with pytest.raises(DuplicateNameError):
        await controller.add_requirement("Dual Instruction", 5)
    with pytest.raises(InvalidInputError):
        await controller.add_requirement("Aerobatics", 0)
    with pytest.raises(InvalidInputError):
        await controller.add_requirement("Aerobatics", float("nan"))
    with pytest.raises(ProtectedEntityError):
        await controller.remove_requirement("req-total")
    with pytest.raises(NotFoundError):
        await controller.toggle_stage("st-missing")
    with pytest.raises(InvalidInputError):
        await controller.add_milestone("Night Solo", "   ")

    assert gateway_fake.write_count == 0
    assert controller.busy == frozenset()


async def test_milestone_lifecycle(controller):
    await controller.add_milestone("Knowledge Test Passed", "Written exam passed")
    added = controller.progress.milestones[-1]
    assert added.order == 3
    assert not added.id.startswith("temp-")

    await controller.edit_milestone(added.id, "Knowledge Test", "Written exam with endorsement")
    assert controller.progress.milestones[-1].name == "Knowledge Test"
    assert controller.progress.milestones[-1].order == 3

    await controller.remove_milestone("ms-2")
    assert [m.order for m in controller.progress.milestones] == [1, 3]


async def test_stage_lifecycle(controller):
    await controller.toggle_stage("st-2")
    assert controller.summary.current_stage == "Cross-Country"

    await controller.add_stage("Checkride", "Practical test")
    await controller.edit_stage("st-3", "Cross-Country Nav", "Dual and solo navigation")
    await controller.remove_stage("st-1")

    assert [(s.name, s.order) for s in controller.progress.stages] == [
        ("Solo", 2),
        ("Cross-Country Nav", 3),
        ("Checkride", 4),
    ]
    assert controller.summary.stages_completed == 1


async def test_remote_failure_rolls_back(controller_for, admin_session):
    controller, gateway = await controller_for("remote_failure", admin_session)
    before = controller.student

    with pytest.raises(RemoteError):
        await controller.toggle_milestone("ms-2")

    assert controller.student is before
    assert _milestone(controller, "ms-2").completed is False
    assert controller.busy == frozenset()
    assert gateway.write_count == 1


async def test_change_is_visible_while_in_flight(controller, gateway_fake):
    gateway_fake.write_gate = asyncio.Event()

    pending = asyncio.create_task(controller.toggle_milestone("ms-2"))
    await asyncio.sleep(0)

    assert _milestone(controller, "ms-2").completed is True
    assert controller.is_busy("milestone:ms-2")

    # A second request for the same entity is ignored while the first is in flight
    await controller.toggle_milestone("ms-2")
    assert gateway_fake.write_count == 1

    gateway_fake.write_gate.set()
    await pending

    assert _milestone(controller, "ms-2").completed is True
    assert not controller.is_busy("milestone:ms-2")


async def test_mutations_on_different_entities_run_together(controller, gateway_fake):
    gateway_fake.write_gate = asyncio.Event()

    first = asyncio.create_task(controller.toggle_milestone("ms-2"))
    second = asyncio.create_task(controller.toggle_stage("st-2"))
    await asyncio.sleep(0)
    assert controller.busy == frozenset({"milestone:ms-2", "stage:st-2"})

    gateway_fake.write_gate.set()
    await asyncio.gather(first, second)

    assert _milestone(controller, "ms-2").completed is True
    assert controller.summary.current_stage == "Cross-Country"
    assert gateway_fake.write_count == 2


async def test_shape_drift_keeps_local_progress(controller_for, admin_session):
    controller, gateway = await controller_for("shape_drift", admin_session)

    await controller.toggle_milestone("ms-2")

    assert _milestone(controller, "ms-2").completed is True
    assert gateway.students["student-001"]["progress"]["milestones"][1]["completed"] is True


async def test_partial_echo_merges_with_local(controller_for, admin_session):
    controller, _ = await controller_for("partial_echo", admin_session)

    await controller.add_requirement("Night Flight", 3)

    assert not controller.progress.requirements[-1].id.startswith("temp-")
    assert [m.id for m in controller.progress.milestones] == ["ms-1", "ms-2"]
    assert len(controller.progress.stages) == 3


# ============================================================================
# Batch hours edit
# ============================================================================


async def test_save_commits_hours_notes_and_stage(controller, gateway_fake):
    controller.begin_edit()
    controller.set_hours("Dual Instruction", 25)
    controller.set_notes("Solo endorsed")
    controller.set_stage_label("Solo")

    with capture_logs() as logs:
        await controller.save()

    assert controller.state == ViewState.VIEWING
    assert controller.edit_session is None
    assert controller.student.notes == "Solo endorsed"
    assert controller.student.stage == "Solo"
    dual = next(r for r in controller.progress.requirements if r.name == "Dual Instruction")
    assert dual.completed_hours == 25

    patch = gateway_fake.patches[-1]
    assert (patch["notes"], patch["stage"]) == ("Solo endorsed", "Solo")

    # Hours-only edits leave Total Flight Time as it was
    assert _total(controller) == (40, 20)
    assert controller.summary.total_is_consistent is False
    assert any(entry["event"] == "total_flight_time_stale" for entry in logs)


async def test_save_recomputes_total_after_add_during_edit(controller):
    controller.begin_edit()
    controller.set_hours("Dual Instruction", 25)
    await controller.add_requirement("Night Flight", 3)
    controller.set_hours("Night Flight", 1.5)

    await controller.save()

    assert _total(controller) == (43, 26.5)
    assert controller.summary.total_is_consistent is True


async def test_save_failure_returns_to_editing(controller_for, admin_session):
    controller, _ = await controller_for("remote_failure", admin_session)
    controller.begin_edit()
    controller.set_hours("Dual Instruction", 25)

    with pytest.raises(RemoteError):
        await controller.save()

    assert controller.state == ViewState.EDITING
    assert controller.edit_session.hours["Dual Instruction"] == 25
    dual = next(r for r in controller.progress.requirements if r.name == "Dual Instruction")
    assert dual.completed_hours == 20


async def test_cancel_discards_working_copy(controller, gateway_fake):
    controller.begin_edit()
    controller.set_hours("Dual Instruction", 35)
    controller.cancel_edit()

    assert controller.state == ViewState.VIEWING
    assert controller.edit_session is None
    assert gateway_fake.write_count == 0
    with pytest.raises(PreconditionError):
        controller.set_hours("Dual Instruction", 1)


async def test_edit_state_guards(controller):
    with pytest.raises(PreconditionError):
        await controller.save()
    with pytest.raises(InvalidTransitionError):
        controller.cancel_edit()

    controller.begin_edit()
    with pytest.raises(InvalidTransitionError):
        controller.begin_edit()


async def test_lost_school_scope_rolls_back(controller, gateway_fake, admin_session):
    """A precondition failure at write time restores the pre-mutation record."""
    before = controller.student
    controller.session = Session(token=admin_session.token, school_id=None, role="school_admin")

    with pytest.raises(PreconditionError):
        await controller.toggle_milestone("ms-2")

    assert controller.student is before
    assert gateway_fake.write_count == 0


async def test_unauthorized_toggle_never_calls_gateway(sample_record, instructor_session):
    gateway = AsyncMock()
    gateway.read_student.return_value = sample_record
    controller = ProgressController(gateway, instructor_session, "student-001")
    await controller.load()

    with pytest.raises(PermissionDeniedError):
        await controller.toggle_stage("st-2")

    gateway.write_student_partial.assert_not_awaited()


async def test_failed_toggle_keeps_hours_saved_meanwhile(sample_record, admin_session):
    """A rollback after a concurrent save only reverts the failed change's collection."""
    release = asyncio.Event()

    async def write(session, student_id, patch):
        if patch.notes is None:
            await release.wait()
            raise RemoteError("Failed to update student", status_code=500)
        return StudentRecord.model_validate({**sample_record.to_wire(), **patch.to_wire()})

    gateway = AsyncMock()
    gateway.read_student.return_value = sample_record
    gateway.write_student_partial.side_effect = write
    controller = ProgressController(gateway, admin_session, "student-001")
    await controller.load()

    controller.begin_edit()
    controller.set_hours("Dual Instruction", 25)
    controller.set_notes("Solo endorsed")

    pending = asyncio.create_task(controller.toggle_milestone("ms-2"))
    await asyncio.sleep(0)
    await controller.save()

    release.set()
    with pytest.raises(RemoteError):
        await pending

    dual = next(r for r in controller.progress.requirements if r.name == "Dual Instruction")
    assert dual.completed_hours == 25
    assert controller.student.notes == "Solo endorsed"
    assert _milestone(controller, "ms-2").completed is False
    assert controller.busy == frozenset()
