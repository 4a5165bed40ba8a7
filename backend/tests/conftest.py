"""Shared test fixtures for all test groups."""

from datetime import UTC, datetime

import jwt as pyjwt
import pytest

from flightdesk.core.auth import Session
from flightdesk.integrations.gateway_fake import GatewayFake
from flightdesk.schemas.progress import Milestone, Requirement, Stage, StudentProgress, StudentRecord
from flightdesk.services.progress_controller import ProgressController

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_token(**claims) -> str:
    """Unsigned-for-our-purposes JWT carrying the given claims."""
    return pyjwt.encode(claims, "test-secret-key-with-enough-length", algorithm="HS256")


def make_requirement(
    name: str,
    total: float,
    completed: float = 0,
    req_id: str | None = None,
    **fields,
) -> Requirement:
    return Requirement(
        id=req_id or f"req-{name.lower().replace(' ', '-')}",
        name=name,
        total_hours=total,
        completed_hours=completed,
        **fields,
    )


@pytest.fixture
def admin_session():
    """School admin with full credentials."""
    return Session(token=make_token(sub="admin-001", role="school_admin"), school_id="school-001", role="school_admin")


@pytest.fixture
def instructor_session():
    """Authenticated user without the admin capability."""
    return Session(token=make_token(sub="cfi-001", role="instructor"), school_id="school-001", role="instructor")


@pytest.fixture
def sample_progress():
    """Total Flight Time 40/20 over a single Dual Instruction requirement."""
    return StudentProgress(
        requirements=[
            make_requirement("Total Flight Time", 40, 20, req_id="req-total", order=1, category="Standard"),
            make_requirement("Dual Instruction", 40, 20, req_id="req-dual", order=2, category="Key"),
        ],
        milestones=[
            Milestone(id="ms-1", name="First Solo Flight", description="Solo in the pattern", order=1, completed=True),
            Milestone(id="ms-2", name="Solo Cross-Country", description="50 nm solo", order=2),
        ],
        stages=[
            Stage(id="st-1", name="Pre-Solo", description="Pattern work", order=1, completed=True),
            Stage(id="st-2", name="Solo", description="Local solo", order=2),
            Stage(id="st-3", name="Cross-Country", description="Navigation", order=3),
        ],
        last_updated=datetime(2024, 4, 1, tzinfo=UTC),
    )


@pytest.fixture
def sample_record(sample_progress):
    return StudentRecord(
        id="student-001",
        school_id="school-001",
        program="Private Pilot",
        status="Active",
        stage="Pre-Solo",
        notes="Ready for first solo soon.",
        progress=sample_progress,
        user_id={"first_name": "Alex", "last_name": "Johnson"},
        contact_email="alex.johnson@example.com",
    )


@pytest.fixture
def gateway_fake(sample_record):
    """happy_path GatewayFake seeded with the sample student."""
    gateway = GatewayFake(scenario="happy_path")
    gateway.add_student(sample_record)
    return gateway


@pytest.fixture
async def controller(gateway_fake, admin_session):
    """Admin controller with the sample student loaded."""
    ctrl = ProgressController(gateway_fake, admin_session, "student-001", clock=lambda: FIXED_NOW)
    await ctrl.load()
    return ctrl


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def fixed_now():
    return FIXED_NOW
