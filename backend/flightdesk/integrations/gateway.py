"""ProgressSyncGateway Protocol: the contract with the student record store.

The store is the durable copy of every student. This package never talks to
it except through these calls:
- read_student: fetch one full student record
- write_student_partial: top-level merge of a ProgressPatch; ``progress`` is replaced whole
- list_students: one page of the school's roster

Every call takes the caller's Session explicitly. A session without a bearer
token or school scope fails with PreconditionError before any request is made.
"""

from typing import Protocol, runtime_checkable

from flightdesk.core.auth import Session
from flightdesk.schemas.progress import ProgressPatch, StudentPage, StudentRecord


@runtime_checkable
class ProgressSyncGateway(Protocol):
    """Protocol for the remote student record store."""

    async def read_student(self, session: Session, student_id: str) -> StudentRecord:
        """Fetch the full student record, including progress.

        Raises:
            PreconditionError: session lacks token or school scope
            RemoteError: non-success response or network failure
            ShapeError: response is not a student record
        """
        ...

    async def write_student_partial(
        self, session: Session, student_id: str, patch: ProgressPatch
    ) -> StudentRecord:
        """Persist a partial update and return the updated record.

        Raises:
            PreconditionError: session lacks token or school scope
            RemoteError: non-success response or network failure
            ShapeError: the write succeeded but the echo is not a student record
        """
        ...

    async def list_students(
        self, session: Session, page: int = 1, limit: int = 10, search: str = ""
    ) -> StudentPage:
        """Fetch one page of students, optionally filtered by a search term."""
        ...
