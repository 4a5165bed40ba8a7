"""Wiring for callers embedding the progress core.

Builds the HTTP gateway, the caller's session and the services on top of
them. Logging is configured from settings the first time anything is built.
"""

import httpx

from flightdesk.core.auth import session_from_token
from flightdesk.core.logging import configure_from_settings
from flightdesk.integrations.gateway_http import HttpProgressGateway
from flightdesk.services.progress_controller import ProgressController
from flightdesk.services.roster_service import RosterService

_logging_configured = False


def init_logging() -> None:
    """Configure structlog once per process."""
    global _logging_configured
    if _logging_configured:
        return
    configure_from_settings()
    _logging_configured = True


def create_gateway(client: httpx.AsyncClient | None = None) -> HttpProgressGateway:
    init_logging()
    return HttpProgressGateway(client=client)


def create_progress_controller(
    token: str,
    school_id: str,
    student_id: str,
    csrf_token: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> ProgressController:
    """Controller for one student, authenticated with the caller's bearer token.

    Raises:
        PreconditionError: token is empty or unreadable
    """
    session = session_from_token(token, school_id, csrf_token=csrf_token)
    return ProgressController(create_gateway(client), session, student_id)


def create_roster_service(
    token: str,
    school_id: str,
    csrf_token: str | None = None,
    client: httpx.AsyncClient | None = None,
    per_page: int = 10,
) -> RosterService:
    session = session_from_token(token, school_id, csrf_token=csrf_token)
    return RosterService(create_gateway(client), session, per_page=per_page)
