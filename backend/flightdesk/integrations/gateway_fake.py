"""GatewayFake: Scenario-based in-memory student record store.

Provides deterministic, instant responses for named scenarios:
- happy_path: writes persist and the full record is echoed back
- remote_failure: reads work, every write is rejected with a 500
- shape_drift: writes persist but the echo leaves out progress
- partial_echo: writes persist but the echoed progress only carries requirements

Like the real API, the fake replaces ``temp-`` ids with server ids on write.
"""

import asyncio
import math
import uuid
from copy import deepcopy
from datetime import UTC, datetime

from flightdesk.core.auth import Session
from flightdesk.core.exceptions import RemoteError
from flightdesk.integrations.gateway_http import parse_student
from flightdesk.schemas.progress import Pagination, ProgressPatch, StudentPage, StudentRecord


def _server_id() -> str:
    return uuid.uuid4().hex[:24]


class GatewayFake:
    """Scenario-based test double for the ProgressSyncGateway protocol."""

    VALID_SCENARIOS = {"happy_path", "remote_failure", "shape_drift", "partial_echo"}

    def __init__(self, scenario: str = "happy_path"):
        """Initialize GatewayFake with a named scenario.

        Raises:
            ValueError: If scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(
                f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}"
            )
        self.scenario = scenario
        self.students: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.patches: list[dict] = []
        # When set, writes wait on this event before completing
        self.write_gate: asyncio.Event | None = None

    def add_student(self, record: StudentRecord | dict) -> str:
        """Seed the store and return the student id."""
        data = record.to_wire() if isinstance(record, StudentRecord) else deepcopy(record)
        data.setdefault("_id", _server_id())
        self.students[data["_id"]] = data
        return data["_id"]

    @property
    def write_count(self) -> int:
        return sum(1 for method, _ in self.calls if method == "write")

    def _get(self, student_id: str) -> dict:
        if student_id not in self.students:
            raise RemoteError("Student not found", status_code=404)
        return self.students[student_id]

    async def read_student(self, session: Session, student_id: str) -> StudentRecord:
        session.require_credentials()
        self.calls.append(("read", student_id))
        return parse_student(deepcopy(self._get(student_id)))

    async def write_student_partial(
        self, session: Session, student_id: str, patch: ProgressPatch
    ) -> StudentRecord:
        session.require_credentials()
        self.calls.append(("write", student_id))
        payload = patch.to_wire()
        self.patches.append(payload)

        if self.write_gate is not None:
            await self.write_gate.wait()

        if self.scenario == "remote_failure":
            raise RemoteError("Failed to update student", status_code=500)

        stored = self._get(student_id)
        for key, value in payload.items():
            if key == "progress":
                value = self._assign_ids(value)
            stored[key] = value
        stored["updated_at"] = datetime.now(UTC).isoformat()

        echo = deepcopy(stored)
        if self.scenario == "shape_drift":
            echo.pop("progress", None)
        elif self.scenario == "partial_echo" and "progress" in echo:
            echo["progress"] = {"requirements": echo["progress"].get("requirements", [])}

        return parse_student(echo)

    async def list_students(
        self, session: Session, page: int = 1, limit: int = 10, search: str = ""
    ) -> StudentPage:
        session.require_credentials()
        self.calls.append(("list", search))

        records = list(self.students.values())
        term = search.strip().lower()
        if term:
            records = [
                r for r in records
                if term in str(r.get("contact_email", "")).lower() or term in str(r.get("program", "")).lower()
            ]

        start = (page - 1) * limit
        window = records[start:start + limit]
        total_pages = max(math.ceil(len(records) / limit), 1) if limit > 0 else 1
        return StudentPage(
            students=[parse_student(deepcopy(r)) for r in window],
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_students=len(records),
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )

    @staticmethod
    def _assign_ids(progress: dict) -> dict:
        progress = deepcopy(progress)
        for collection in ("requirements", "milestones", "stages"):
            for item in progress.get(collection, []):
                if str(item.get("_id", "")).startswith("temp-"):
                    item["_id"] = _server_id()
        return progress
