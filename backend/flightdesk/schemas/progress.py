"""Pydantic schemas for student training progress and the student record.

Field names follow Python conventions; wire names used by the student record
API (``_id``, ``type``, ``lastUpdated``, ``studentNotes``) are kept as aliases
so records round-trip without translation tables.
"""

import math
from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

RequirementCategory = Literal["Key", "Custom", "Standard"]


class WireModel(BaseModel):
    """Base for models exchanged with the student record API."""

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Requirement(WireModel):
    """A named flight-hour target and the hours flown against it."""

    id: str = Field(..., alias="_id")
    name: str
    total_hours: float = 0
    # Not range-checked: stored negatives are kept as-is and clamped for display
    completed_hours: float = 0
    is_custom: bool = False
    category: RequirementCategory | None = Field(None, alias="type")
    order: int = 0


class SequenceItem(WireModel):
    """An orderable training item with a completion flag."""

    id: str = Field(..., alias="_id")
    name: str
    description: str = ""
    order: int = 0
    completed: bool = False


class Milestone(SequenceItem):
    """A discrete training achievement (e.g. first solo)."""


class Stage(SequenceItem):
    """A training phase; the first incomplete one is the current stage."""


class StudentProgress(WireModel):
    requirements: list[Requirement] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    stages: list[Stage] = Field(default_factory=list)
    last_updated: datetime | None = Field(None, alias="lastUpdated")


class StudentRecord(WireModel):
    """A student as returned by the API.

    Only the fields this package reads are declared; everything else the API
    returns is kept in ``model_extra`` and survives copies.
    """

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False, extra="allow")

    id: str | None = Field(None, alias="_id")
    school_id: str | None = None
    program: str | None = None
    status: str | None = None
    stage: str | None = None
    notes: str | None = None
    progress: StudentProgress | None = None
    student_notes: list[dict] = Field(default_factory=list, alias="studentNotes")


class ProgressPatch(WireModel):
    """Partial write for a student record.

    The API deep-merges top-level fields and fully replaces ``progress``, so a
    patch that carries progress must carry the complete requirement,
    milestone and stage arrays.
    """

    stage: str | None = None
    notes: str | None = None
    progress: StudentProgress | None = None
    student_notes: list[dict] | None = Field(None, alias="studentNotes")

    @model_validator(mode="after")
    def _check_contents(self) -> "ProgressPatch":
        if self.stage is None and self.notes is None and self.progress is None and self.student_notes is None:
            raise ValueError("Patch must set at least one field")

        if self.progress is not None:
            names = [r.name for r in self.progress.requirements]
            if len(names) != len(set(names)):
                raise ValueError("Requirement names must be unique")
            for label, items in (
                ("requirement", self.progress.requirements),
                ("milestone", self.progress.milestones),
                ("stage", self.progress.stages),
            ):
                ids = [item.id for item in items]
                if len(ids) != len(set(ids)):
                    raise ValueError(f"Duplicate {label} ids in progress")
        return self


class Pagination(WireModel):
    current_page: int = Field(1, alias="currentPage")
    total_pages: int = Field(1, alias="totalPages")
    total_students: int = Field(0, alias="totalStudents")
    has_next: bool = Field(False, validation_alias=AliasChoices("hasNext", "hasNextPage", "has_next"))
    has_prev: bool = Field(False, validation_alias=AliasChoices("hasPrev", "hasPrevPage", "has_prev"))

    @classmethod
    def fallback(cls, page: int, limit: int, count: int) -> "Pagination":
        """Pagination for a response that did not include any."""
        total_pages = max(math.ceil(count / limit), 1) if limit > 0 else 1
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_students=count,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class StudentPage(BaseModel):
    students: list[StudentRecord] = Field(default_factory=list)
    pagination: Pagination


class RequirementProgress(BaseModel):
    """Display values for one requirement."""

    name: str
    completed_hours: float
    total_hours: float
    remaining_hours: float
    percent: int = Field(..., ge=0, le=100)


class ProgressSummary(BaseModel):
    """Derived view of a student's progress, recomputed after every change."""

    overall_percent: int = Field(..., ge=0, le=100, description="Total Flight Time completion (0-100)")
    flight_hours: float = Field(0, description="Completed hours on Total Flight Time")
    required_hours: float = Field(0, description="Target hours on Total Flight Time")
    current_stage: str | None = Field(None, description="First incomplete stage, or the last stage")
    next_milestone: str | None = Field(None, description="First incomplete milestone; None when all are done")
    key_requirements: list[RequirementProgress] = Field(default_factory=list)
    milestones_completed: int = 0
    milestones_total: int = 0
    stages_completed: int = 0
    stages_total: int = 0
    total_is_consistent: bool = Field(True, description="Whether Total Flight Time equals the sum of the rest")
