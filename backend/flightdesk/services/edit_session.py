"""View state machine and working copy for a batch hours edit."""

import math
from dataclasses import dataclass, field
from enum import Enum

from flightdesk.core.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError
from flightdesk.schemas.progress import Requirement, StudentRecord


class ViewState(str, Enum):
    """Progress view lifecycle, orthogonal to single-entity mutations."""

    VIEWING = "viewing"
    EDITING = "editing"
    SAVING = "saving"


class ViewStateMachine:
    """Tracks the view state and rejects transitions the view cannot make."""

    TRANSITIONS = {
        ViewState.VIEWING: [ViewState.EDITING],
        ViewState.EDITING: [ViewState.SAVING, ViewState.VIEWING],
        ViewState.SAVING: [ViewState.VIEWING, ViewState.EDITING],  # EDITING again on failure
    }

    def __init__(self, state: ViewState = ViewState.VIEWING):
        self.state = state

    def can_transition(self, target: ViewState) -> bool:
        return target in self.TRANSITIONS.get(self.state, [])

    def transition(self, target: ViewState) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.state.value, target.value)
        self.state = target


@dataclass
class EditSession:
    """Working copy captured when a batch edit starts.

    Hours are keyed by requirement name. ``requirements_changed`` records that
    requirements were added or removed while the session was open, in which
    case Total Flight Time is recomputed before the session commits.
    """

    hours: dict[str, float] = field(default_factory=dict)
    notes: str | None = None
    stage_label: str | None = None
    requirements_changed: bool = False

    @classmethod
    def capture(cls, student: StudentRecord) -> "EditSession":
        requirements = student.progress.requirements if student.progress else []
        return cls(
            hours={r.name: r.completed_hours for r in requirements},
            notes=student.notes,
            stage_label=student.stage,
        )

    def set_hours(self, name: str, hours: float) -> None:
        if name not in self.hours:
            raise NotFoundError("requirement", name)
        try:
            value = float(hours)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"Hours for '{name}' must be a number") from exc
        if not math.isfinite(value) or value < 0:
            raise InvalidInputError(f"Hours for '{name}' must be zero or more")
        self.hours[name] = value

    def sync_requirements(self, requirements: list[Requirement]) -> None:
        """Follow an add or remove that was committed while editing."""
        names = {r.name for r in requirements}
        for name in list(self.hours):
            if name not in names:
                del self.hours[name]
        for requirement in requirements:
            self.hours.setdefault(requirement.name, requirement.completed_hours)
        self.requirements_changed = True
