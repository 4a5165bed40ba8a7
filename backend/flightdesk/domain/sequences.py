"""Ordered completion sequences (milestones and stages).

Both sequences share one implementation, generic over the item model. Every
operation is pure: it returns a new list and leaves the input untouched.
Orders are never renumbered, so removing an item can leave gaps.
"""

from collections.abc import Sequence
from typing import Generic, TypeVar

from flightdesk.core.exceptions import InvalidInputError, NotFoundError
from flightdesk.domain.requirements import new_temp_id
from flightdesk.schemas.progress import Milestone, SequenceItem, Stage

ItemT = TypeVar("ItemT", bound=SequenceItem)


def _clean_fields(name: str, description: str) -> tuple[str, str]:
    cleaned_name = (name or "").strip()
    cleaned_description = (description or "").strip()
    if not cleaned_name or not cleaned_description:
        raise InvalidInputError("Please fill in both name and description")
    return cleaned_name, cleaned_description


class OrderedSequence(Generic[ItemT]):
    """Toggle/add/edit/remove for one kind of ordered, completion-flagged item."""

    def __init__(self, item_type: type[ItemT], kind: str):
        self.item_type = item_type
        self.kind = kind

    def _index_of(self, items: Sequence[ItemT], item_id: str) -> int:
        for index, item in enumerate(items):
            if item.id == item_id:
                return index
        raise NotFoundError(self.kind, item_id)

    def toggle(self, items: Sequence[ItemT], item_id: str) -> list[ItemT]:
        """Flip ``completed`` on the matching item only."""
        index = self._index_of(items, item_id)
        updated = list(items)
        updated[index] = items[index].model_copy(update={"completed": not items[index].completed})
        return updated

    def add(
        self,
        items: Sequence[ItemT],
        name: str,
        description: str,
        item_id: str | None = None,
    ) -> list[ItemT]:
        """Append an incomplete item after the highest existing order."""
        cleaned_name, cleaned_description = _clean_fields(name, description)
        next_order = max((item.order for item in items), default=0) + 1
        added = self.item_type(
            id=item_id or new_temp_id(),
            name=cleaned_name,
            description=cleaned_description,
            order=next_order,
            completed=False,
        )
        return [*items, added]

    def edit(self, items: Sequence[ItemT], item_id: str, name: str, description: str) -> list[ItemT]:
        """Replace name and description; order and completion are preserved."""
        index = self._index_of(items, item_id)
        cleaned_name, cleaned_description = _clean_fields(name, description)
        updated = list(items)
        updated[index] = items[index].model_copy(
            update={"name": cleaned_name, "description": cleaned_description}
        )
        return updated

    def remove(self, items: Sequence[ItemT], item_id: str) -> list[ItemT]:
        self._index_of(items, item_id)
        return [item for item in items if item.id != item_id]


milestone_sequence: OrderedSequence[Milestone] = OrderedSequence(Milestone, "milestone")
stage_sequence: OrderedSequence[Stage] = OrderedSequence(Stage, "stage")
