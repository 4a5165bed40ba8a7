"""Merge a server echo with locally composed state.

The server is the system of record: any field it echoes replaces the local
value. Fields it leaves out fall back to what was composed locally.
"""

from flightdesk.core.exceptions import ShapeError
from flightdesk.schemas.progress import StudentProgress, StudentRecord


def merge_progress(local: StudentProgress, echoed: StudentProgress | None) -> StudentProgress:
    """Overlay the echoed progress on the local one, field by field.

    Raises:
        ShapeError: the echo carries no progress at all
    """
    if echoed is None:
        raise ShapeError("Response did not include progress")
    update = {name: getattr(echoed, name) for name in echoed.model_fields_set}
    return local.model_copy(update=update)


def merge_record(composed: StudentRecord, echo: StudentRecord) -> StudentRecord:
    """Overlay every top-level field of ``echo`` except progress onto ``composed``."""
    update = {name: getattr(echo, name) for name in echo.model_fields_set if name != "progress"}
    update.update(echo.model_extra or {})
    return composed.model_copy(update=update)


def echoed_progress(echo: StudentRecord) -> StudentProgress | None:
    """The progress the server actually sent back, or None if it omitted it."""
    if "progress" not in echo.model_fields_set:
        return None
    return echo.progress
