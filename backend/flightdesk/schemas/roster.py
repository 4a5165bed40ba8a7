"""Pydantic schemas for the student roster view."""

from pydantic import BaseModel, Field

from flightdesk.schemas.progress import Pagination


class RosterRow(BaseModel):
    """One student line on the roster."""

    student_id: str | None = None
    display_name: str = Field(..., description="Full name, or contact email when the user is not linked")
    initials: str = Field("?", description="Avatar initials")
    program: str | None = None
    status: str | None = None
    overall_percent: int = Field(0, ge=0, le=100)
    flight_hours: float = 0
    next_milestone: str | None = None


class RosterPage(BaseModel):
    rows: list[RosterRow] = Field(default_factory=list, description="Roster rows, empty array when none exist")
    pagination: Pagination
