"""Requirement set operations that keep Total Flight Time derived.

Total Flight Time (T) always equals the sum of every other requirement, both
for target hours and completed hours, after any add or remove. Functions take
and return lists; the input list and its models are never modified.
"""

import math
import uuid
from collections.abc import Sequence

from flightdesk.core.exceptions import (
    DuplicateNameError,
    InvalidInputError,
    NotFoundError,
    ProtectedEntityError,
)
from flightdesk.domain.metrics import TOTAL_FLIGHT_TIME, find_total
from flightdesk.schemas.progress import Requirement


def new_temp_id() -> str:
    """Placeholder id for an entity the API has not assigned an id to yet."""
    return f"temp-{uuid.uuid4().hex}"


def recompute_total(requirements: Sequence[Requirement]) -> list[Requirement]:
    """Recalculate Total Flight Time from the other requirements.

    Idempotent. Returns the input unchanged (as a new list) when there is no
    Total Flight Time entry.
    """
    if find_total(requirements) is None:
        return list(requirements)

    others = [r for r in requirements if r.name != TOTAL_FLIGHT_TIME]
    total_hours = sum(r.total_hours for r in others)
    completed_hours = sum(r.completed_hours for r in others)

    return [
        r.model_copy(update={"total_hours": total_hours, "completed_hours": completed_hours})
        if r.name == TOTAL_FLIGHT_TIME
        else r
        for r in requirements
    ]


def add_requirement(
    requirements: Sequence[Requirement],
    name: str,
    total_hours: float,
    requirement_id: str | None = None,
) -> list[Requirement]:
    """Append a custom requirement with no hours flown, then recompute T.

    Raises:
        InvalidInputError: name is blank or total_hours is not a positive finite number
        DuplicateNameError: a requirement with exactly this name exists
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInputError("Requirement name is required")
    if total_hours is None or not math.isfinite(total_hours) or total_hours <= 0:
        raise InvalidInputError("Requirement hours must be greater than zero")
    if any(r.name == cleaned for r in requirements):
        raise DuplicateNameError(cleaned)

    next_order = max((r.order for r in requirements), default=0) + 1
    added = Requirement(
        id=requirement_id or new_temp_id(),
        name=cleaned,
        total_hours=total_hours,
        completed_hours=0,
        is_custom=True,
        category="Custom",
        order=next_order,
    )
    return recompute_total([*requirements, added])


def remove_requirement(requirements: Sequence[Requirement], requirement_id: str) -> list[Requirement]:
    """Remove a requirement by id, then recompute T.

    Raises:
        NotFoundError: no requirement has this id
        ProtectedEntityError: the id belongs to Total Flight Time
    """
    target = next((r for r in requirements if r.id == requirement_id), None)
    if target is None:
        raise NotFoundError("requirement", requirement_id)
    if target.name == TOTAL_FLIGHT_TIME:
        raise ProtectedEntityError(f"{TOTAL_FLIGHT_TIME} is derived and cannot be removed")

    return recompute_total([r for r in requirements if r.id != requirement_id])


def apply_completed_hours(
    requirements: Sequence[Requirement],
    hours_by_name: dict[str, float],
) -> list[Requirement]:
    """Overwrite completed hours by requirement name.

    Names missing from ``hours_by_name`` keep their stored value. Total Flight
    Time is treated like any other entry here and is not recomputed.
    """
    return [
        r.model_copy(update={"completed_hours": hours_by_name[r.name]}) if r.name in hours_by_name else r
        for r in requirements
    ]
