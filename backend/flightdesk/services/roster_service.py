"""RosterService: one page of students with their headline progress numbers."""

import structlog

from flightdesk.core.auth import Session
from flightdesk.domain.metrics import flight_hours, next_milestone, overall_progress
from flightdesk.integrations.gateway import ProgressSyncGateway
from flightdesk.schemas.progress import StudentRecord
from flightdesk.schemas.roster import RosterPage, RosterRow

logger = structlog.get_logger(__name__)


def _display_name(student: StudentRecord) -> tuple[str, str]:
    user = (student.model_extra or {}).get("user_id")
    if isinstance(user, dict) and (user.get("first_name") or user.get("last_name")):
        first = user.get("first_name") or ""
        last = user.get("last_name") or ""
        return f"{first} {last}".strip(), f"{first[:1]}{last[:1]}".upper() or "?"

    email = (student.model_extra or {}).get("contact_email") or ""
    return email or "Unknown student", email[:1].upper() or "?"


def roster_row(student: StudentRecord) -> RosterRow:
    name, initials = _display_name(student)
    requirements = student.progress.requirements if student.progress else []
    milestone = next_milestone(student.progress.milestones) if student.progress else None
    return RosterRow(
        student_id=student.id,
        display_name=name,
        initials=initials,
        program=student.program,
        status=student.status,
        overall_percent=overall_progress(requirements),
        flight_hours=flight_hours(requirements),
        next_milestone=milestone.name if milestone else None,
    )


class RosterService:
    """Service layer for the roster list. Read-only, so no role check."""

    def __init__(self, gateway: ProgressSyncGateway, session: Session, per_page: int = 10):
        self.gateway = gateway
        self.session = session
        self.per_page = per_page

    async def fetch_page(self, page: int = 1, search: str = "") -> RosterPage:
        result = await self.gateway.list_students(self.session, page=page, limit=self.per_page, search=search)
        logger.info(
            "roster_page_loaded",
            page=page,
            students=len(result.students),
            total_students=result.pagination.total_students,
        )
        return RosterPage(
            rows=[roster_row(student) for student in result.students],
            pagination=result.pagination,
        )
