"""Deterministic progress metrics.

Pure functions with no external dependencies. Inputs are never mutated.
"""

import math
from collections.abc import Iterable, Sequence
from typing import TypeVar

from flightdesk.schemas.progress import (
    Milestone,
    ProgressSummary,
    Requirement,
    RequirementProgress,
    SequenceItem,
    Stage,
    StudentProgress,
)

TOTAL_FLIGHT_TIME = "Total Flight Time"

ItemT = TypeVar("ItemT", bound=SequenceItem)


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; percentages round .5 up
    return int(math.floor(value + 0.5))


def progress_percent(requirement: Requirement) -> int:
    """Completion percentage (0-100) of a single requirement.

    A zero or negative target yields 0 rather than a division error, and
    negative completed hours count as zero.
    """
    if requirement.total_hours <= 0:
        return 0
    completed = max(requirement.completed_hours, 0)
    return min(_round_half_up(completed / requirement.total_hours * 100), 100)


def remaining_hours(requirement: Requirement, completed: float | None = None) -> float:
    """Hours still to fly, never negative.

    ``completed`` overrides the stored value (used while hours are being edited).
    """
    done = requirement.completed_hours if completed is None else completed
    return max(requirement.total_hours - done, 0)


def find_total(requirements: Iterable[Requirement]) -> Requirement | None:
    """Return the Total Flight Time requirement, if present."""
    return next((r for r in requirements if r.name == TOTAL_FLIGHT_TIME), None)


def total_drift(requirements: Sequence[Requirement]) -> tuple[float, float]:
    """Difference between Total Flight Time and the sum of the other requirements.

    Returns:
        (total_hours drift, completed_hours drift); (0, 0) when consistent or
        when there is no Total Flight Time entry.
    """
    total = find_total(requirements)
    if total is None:
        return (0, 0)
    others = [r for r in requirements if r.name != TOTAL_FLIGHT_TIME]
    return (
        total.total_hours - sum(r.total_hours for r in others),
        total.completed_hours - sum(r.completed_hours for r in others),
    )


def is_total_consistent(requirements: Sequence[Requirement], tolerance: float = 1e-9) -> bool:
    total_delta, completed_delta = total_drift(requirements)
    return abs(total_delta) <= tolerance and abs(completed_delta) <= tolerance


def overall_progress(requirements: Sequence[Requirement]) -> int:
    """Overall percentage, read from the Total Flight Time entry (0 if absent)."""
    total = find_total(requirements)
    if total is None:
        return 0
    return progress_percent(total)


def flight_hours(requirements: Sequence[Requirement]) -> float:
    total = find_total(requirements)
    return total.completed_hours if total else 0


def key_requirements(requirements: Sequence[Requirement]) -> list[Requirement]:
    """Requirements flagged "Key", in display order."""
    return sorted((r for r in requirements if r.category == "Key"), key=lambda r: r.order)


def _by_order(items: Sequence[ItemT]) -> list[ItemT]:
    return sorted(items, key=lambda item: item.order)


def current_stage(stages: Sequence[Stage]) -> Stage | None:
    """First incomplete stage by order; the last stage once all are complete."""
    ordered = _by_order(stages)
    if not ordered:
        return None
    return next((s for s in ordered if not s.completed), ordered[-1])


def next_milestone(milestones: Sequence[Milestone]) -> Milestone | None:
    """First incomplete milestone by order; None means every milestone is done."""
    return next((m for m in _by_order(milestones) if not m.completed), None)


def completion_counts(items: Sequence[SequenceItem]) -> tuple[int, int]:
    """(completed, total) for a milestone or stage list."""
    return (sum(1 for item in items if item.completed), len(items))


def requirement_progress(requirement: Requirement) -> RequirementProgress:
    return RequirementProgress(
        name=requirement.name,
        completed_hours=requirement.completed_hours,
        total_hours=requirement.total_hours,
        remaining_hours=remaining_hours(requirement),
        percent=progress_percent(requirement),
    )


def progress_summary(progress: StudentProgress | None) -> ProgressSummary:
    """Compute every derived value the progress view displays."""
    if progress is None:
        return ProgressSummary(overall_percent=0)

    total = find_total(progress.requirements)
    stage = current_stage(progress.stages)
    milestone = next_milestone(progress.milestones)
    milestones_done, milestones_total = completion_counts(progress.milestones)
    stages_done, stages_total = completion_counts(progress.stages)

    return ProgressSummary(
        overall_percent=overall_progress(progress.requirements),
        flight_hours=total.completed_hours if total else 0,
        required_hours=total.total_hours if total else 0,
        current_stage=stage.name if stage else None,
        next_milestone=milestone.name if milestone else None,
        key_requirements=[requirement_progress(r) for r in key_requirements(progress.requirements)],
        milestones_completed=milestones_done,
        milestones_total=milestones_total,
        stages_completed=stages_done,
        stages_total=stages_total,
        total_is_consistent=is_total_consistent(progress.requirements),
    )
