"""ProgressController: orchestrates changes to one student's training progress.

Every change follows the same two-phase commit:
1. compose the next progress from current local state plus the change
2. persist it through the gateway
3. adopt the server echo (falling back to the composed value for anything the
   echo leaves out), or restore the pre-change record on failure

Single-entity mutations (add/remove a requirement, add/edit/remove/toggle a
milestone or stage) commit immediately. Completed hours are edited as a batch
in an edit session and committed with ``save()``.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from flightdesk.core.auth import Session, is_admin, require_admin
from flightdesk.core.exceptions import FlightDeskError, PreconditionError, ShapeError
from flightdesk.domain.metrics import is_total_consistent, progress_summary, total_drift
from flightdesk.domain.reconcile import echoed_progress, merge_progress, merge_record
from flightdesk.domain.requirements import (
    add_requirement,
    apply_completed_hours,
    recompute_total,
    remove_requirement,
)
from flightdesk.domain.sequences import milestone_sequence, stage_sequence
from flightdesk.integrations.gateway import ProgressSyncGateway
from flightdesk.schemas.progress import ProgressPatch, ProgressSummary, StudentProgress, StudentRecord
from flightdesk.services.edit_session import EditSession, ViewState, ViewStateMachine

logger = structlog.get_logger(__name__)


class ProgressController:
    """Holds the single mutable copy of a student's progress that the view renders.

    Mutations on different entities may be in flight at the same time; a
    repeated request for an entity that already has one in flight is ignored.
    There is no concurrency token: the last write to reach the store wins.
    """

    def __init__(
        self,
        gateway: ProgressSyncGateway,
        session: Session,
        student_id: str,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize with dependency injection.

        Args:
            gateway: Student record store
            session: Caller credentials and role, passed to every gateway call
            student_id: Student whose progress this controller manages
            clock: Source of ``lastUpdated`` timestamps (for deterministic testing)
        """
        self.gateway = gateway
        self.session = session
        self.student_id = student_id
        self._clock = clock or (lambda: datetime.now(UTC))
        self.student: StudentRecord | None = None
        self.view = ViewStateMachine()
        self.edit_session: EditSession | None = None
        self._busy: set[str] = set()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> ViewState:
        return self.view.state

    @property
    def progress(self) -> StudentProgress:
        if self.student is None or self.student.progress is None:
            return StudentProgress()
        return self.student.progress

    @property
    def summary(self) -> ProgressSummary:
        return progress_summary(self.progress)

    @property
    def can_edit(self) -> bool:
        return is_admin(self.session)

    @property
    def busy(self) -> frozenset[str]:
        return frozenset(self._busy)

    def is_busy(self, key: str) -> bool:
        return key in self._busy

    async def load(self) -> StudentRecord:
        """Fetch the student record and make it the local copy."""
        student = await self.gateway.read_student(self.session, self.student_id)
        if student.progress is None:
            logger.warning("student_progress_missing", student_id=self.student_id)
        self.student = student
        logger.info(
            "student_progress_loaded",
            student_id=self.student_id,
            requirements=len(self.progress.requirements),
            milestones=len(self.progress.milestones),
            stages=len(self.progress.stages),
        )
        return student

    def _require_loaded(self) -> StudentRecord:
        if self.student is None:
            raise PreconditionError("Student record has not been loaded")
        return self.student

    # ------------------------------------------------------------------
    # Batch hours edit
    # ------------------------------------------------------------------

    def begin_edit(self) -> EditSession:
        require_admin(self.session)
        student = self._require_loaded()
        self.view.transition(ViewState.EDITING)
        self.edit_session = EditSession.capture(student)
        return self.edit_session

    def _require_editing(self) -> EditSession:
        if self.edit_session is None or self.view.state != ViewState.EDITING:
            raise PreconditionError("Progress is not being edited")
        return self.edit_session

    def set_hours(self, requirement_name: str, hours: float) -> None:
        self._require_editing().set_hours(requirement_name, hours)

    def set_notes(self, notes: str) -> None:
        self._require_editing().notes = notes

    def set_stage_label(self, stage_label: str) -> None:
        self._require_editing().stage_label = stage_label

    def cancel_edit(self) -> None:
        """Discard the working copy without writing anything."""
        self.view.transition(ViewState.VIEWING)
        self.edit_session = None

    async def save(self) -> StudentRecord:
        """Commit the edit session.

        Total Flight Time is written exactly as it stands in the working copy
        unless requirements were added or removed during the session; editing
        hours alone can therefore leave it stale (see ``total_drift``).

        On failure the view returns to EDITING with the working copy intact and
        the error propagates.
        """
        require_admin(self.session)
        edit = self._require_editing()
        self._require_loaded()

        requirements = apply_completed_hours(self.progress.requirements, edit.hours)
        if edit.requirements_changed:
            requirements = recompute_total(requirements)
        progress = self.progress.model_copy(
            update={"requirements": requirements, "last_updated": self._clock()}
        )
        local_update: dict = {"progress": progress}
        if edit.notes is not None:
            local_update["notes"] = edit.notes
        if edit.stage_label is not None:
            local_update["stage"] = edit.stage_label
        patch = ProgressPatch(stage=edit.stage_label, notes=edit.notes, progress=progress)

        self.view.transition(ViewState.SAVING)
        with structlog.contextvars.bound_contextvars(student_id=self.student_id, mutation="save_hours"):
            try:
                echo = await self.gateway.write_student_partial(self.session, self.student_id, patch)
            except ShapeError as exc:
                logger.warning("student_echo_unusable", error=str(exc))
                echo = None
            except FlightDeskError as exc:
                self.view.transition(ViewState.EDITING)
                logger.warning("progress_save_failed", error=str(exc))
                raise

            self.student = self._adopt(local_update, echo)
            self.view.transition(ViewState.VIEWING)
            self.edit_session = None

            if not is_total_consistent(self.progress.requirements):
                total_delta, completed_delta = total_drift(self.progress.requirements)
                logger.warning(
                    "total_flight_time_stale",
                    total_hours_drift=total_delta,
                    completed_hours_drift=completed_delta,
                )
            logger.info("progress_saved")
        return self.student

    # ------------------------------------------------------------------
    # Single-entity mutations
    # ------------------------------------------------------------------

    def _adopt(self, local_update: dict, echo: StudentRecord | None) -> StudentRecord:
        """Merge the echo over the locally composed record; echo wins where present."""
        composed = self._require_loaded().model_copy(update=local_update)
        if echo is None:
            return composed

        merged = merge_record(composed, echo)
        try:
            progress = merge_progress(local_update["progress"], echoed_progress(echo))
        except ShapeError as exc:
            logger.warning("student_echo_missing_progress", error=str(exc))
            progress = local_update["progress"]
        return merged.model_copy(update={"progress": progress})

    def _rollback(self, before: StudentRecord, optimistic: StudentRecord, collection: str) -> StudentRecord:
        """Undo a failed change.

        When nothing else was adopted while the write was in flight the exact
        pre-change record comes back. Otherwise only the collection this change
        touched is reverted.
        """
        if self.student is optimistic:
            return before
        previous = before.progress or StudentProgress()
        progress = self.progress.model_copy(update={collection: getattr(previous, collection)})
        return self._require_loaded().model_copy(update={"progress": progress})

    async def _mutate(
        self,
        key: str,
        collection: str,
        change: Callable[[list], list],
    ) -> StudentRecord:
        """Compose, persist and adopt a single change to one collection, or roll it back."""
        require_admin(self.session)
        before = self._require_loaded()
        if key in self._busy:
            logger.info("progress_mutation_skipped", student_id=self.student_id, mutation=key)
            return before

        next_progress = self.progress.model_copy(
            update={collection: change(getattr(self.progress, collection)), "last_updated": self._clock()}
        )
        patch = ProgressPatch(progress=next_progress)

        self._busy.add(key)
        optimistic = before.model_copy(update={"progress": next_progress})
        self.student = optimistic
        with structlog.contextvars.bound_contextvars(student_id=self.student_id, mutation=key):
            try:
                echo = await self.gateway.write_student_partial(self.session, self.student_id, patch)
            except ShapeError as exc:
                logger.warning("student_echo_unusable", error=str(exc))
                echo = None
            except FlightDeskError as exc:
                self.student = self._rollback(before, optimistic, collection)
                logger.warning("progress_mutation_failed", error=str(exc))
                raise
            finally:
                self._busy.discard(key)

            self.student = self._adopt({"progress": next_progress}, echo)
            if collection == "requirements" and self.edit_session is not None:
                self.edit_session.sync_requirements(self.progress.requirements)
            logger.info("progress_mutation_committed")
        return self.student

    async def add_requirement(self, name: str, total_hours: float) -> StudentRecord:
        """Add a custom requirement; Total Flight Time grows by its hours."""
        return await self._mutate(
            "requirement:add",
            "requirements",
            lambda items: add_requirement(items, name, total_hours),
        )

    async def remove_requirement(self, requirement_id: str) -> StudentRecord:
        return await self._mutate(
            f"requirement:{requirement_id}",
            "requirements",
            lambda items: remove_requirement(items, requirement_id),
        )

    async def add_milestone(self, name: str, description: str) -> StudentRecord:
        return await self._mutate(
            "milestone:add",
            "milestones",
            lambda items: milestone_sequence.add(items, name, description),
        )

    async def edit_milestone(self, milestone_id: str, name: str, description: str) -> StudentRecord:
        return await self._mutate(
            f"milestone:{milestone_id}",
            "milestones",
            lambda items: milestone_sequence.edit(items, milestone_id, name, description),
        )

    async def remove_milestone(self, milestone_id: str) -> StudentRecord:
        return await self._mutate(
            f"milestone:{milestone_id}",
            "milestones",
            lambda items: milestone_sequence.remove(items, milestone_id),
        )

    async def toggle_milestone(self, milestone_id: str) -> StudentRecord:
        return await self._mutate(
            f"milestone:{milestone_id}",
            "milestones",
            lambda items: milestone_sequence.toggle(items, milestone_id),
        )

    async def add_stage(self, name: str, description: str) -> StudentRecord:
        return await self._mutate(
            "stage:add",
            "stages",
            lambda items: stage_sequence.add(items, name, description),
        )

    async def edit_stage(self, stage_id: str, name: str, description: str) -> StudentRecord:
        return await self._mutate(
            f"stage:{stage_id}",
            "stages",
            lambda items: stage_sequence.edit(items, stage_id, name, description),
        )

    async def remove_stage(self, stage_id: str) -> StudentRecord:
        return await self._mutate(
            f"stage:{stage_id}",
            "stages",
            lambda items: stage_sequence.remove(items, stage_id),
        )

    async def toggle_stage(self, stage_id: str) -> StudentRecord:
        return await self._mutate(
            f"stage:{stage_id}",
            "stages",
            lambda items: stage_sequence.toggle(items, stage_id),
        )
