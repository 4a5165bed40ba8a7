"""HTTP implementation of the ProgressSyncGateway.

Talks to the school's student record API:
- GET  {api_url}/schools/{school_id}/students/{student_id}
- PUT  {api_url}/schools/{school_id}/students/{student_id}
- GET  {api_url}/schools/{school_id}/students?page=&limit=&search=

Reads are retried on transport failures. Writes are sent exactly once.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from flightdesk.core.auth import Session
from flightdesk.core.config import get_settings
from flightdesk.core.exceptions import RemoteError, ShapeError
from flightdesk.schemas.progress import Pagination, ProgressPatch, StudentPage, StudentRecord

logger = structlog.get_logger(__name__)


def _error_message(response: httpx.Response) -> str | None:
    """Server-provided error message, if the body carries one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("message") or body.get("error")
    return None


def _json_body(response: httpx.Response, action: str) -> object:
    try:
        return response.json()
    except ValueError as exc:
        raise ShapeError(f"Response to '{action}' was not JSON") from exc


def parse_student(data: object) -> StudentRecord:
    """Parse a student record, dropping a malformed progress sub-document.

    A record whose progress does not validate is still usable: the caller
    falls back to its locally computed progress.

    Raises:
        ShapeError: the payload is not a student record at all
    """
    if not isinstance(data, dict):
        raise ShapeError("Student record must be a JSON object")
    try:
        return StudentRecord.model_validate(data)
    except ValidationError as exc:
        if "progress" not in data:
            raise ShapeError(f"Invalid student record: {exc.error_count()} errors") from exc
        logger.warning(
            "student_progress_shape_invalid",
            student_id=data.get("_id"),
            error_count=exc.error_count(),
        )
    stripped = {key: value for key, value in data.items() if key != "progress"}
    try:
        return StudentRecord.model_validate(stripped)
    except ValidationError as exc:
        raise ShapeError(f"Invalid student record: {exc.error_count()} errors") from exc


class HttpProgressGateway:
    """Client for the student record API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the gateway.

        Args:
            base_url: API root; defaults to ``Settings.api_url``
            api_key: value for the ``x-api-key`` header; defaults to ``Settings.api_key``
            client: shared AsyncClient; when omitted a client is opened per call
        """
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.api_key
        self.timeout = settings.request_timeout
        self.read_attempts = max(settings.read_retry_attempts, 1)
        self.read_wait = wait_exponential(multiplier=0.5, min=0.5, max=5)
        self._client = client

    @asynccontextmanager
    async def _open_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    def _headers(self, session: Session) -> dict[str, str]:
        session.require_credentials()
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "Authorization": f"Bearer {session.token}",
        }
        if session.csrf_token:
            headers["X-CSRF-Token"] = session.csrf_token
        return headers

    def _students_url(self, session: Session) -> str:
        return f"{self.base_url}/schools/{session.school_id}/students"

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        action: str,
        retry_transport: bool,
        **kwargs,
    ) -> httpx.Response:
        """Send one request, mapping failures onto RemoteError."""
        attempts = self.read_attempts if retry_transport else 1
        try:
            async with self._open_client() as client:
                async for attempt in AsyncRetrying(
                    retry=retry_if_exception_type(httpx.TransportError),
                    stop=stop_after_attempt(attempts),
                    wait=self.read_wait,
                    reraise=True,
                    before_sleep=lambda rs: logger.warning(
                        "student_api_retrying",
                        action=action,
                        attempt=rs.attempt_number,
                    ),
                ):
                    with attempt:
                        response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("student_api_unreachable", action=action, error=str(exc))
            raise RemoteError(f"Failed to {action}: {exc}") from exc

        if not response.is_success:
            message = _error_message(response)
            logger.warning(
                "student_api_rejected",
                action=action,
                status_code=response.status_code,
                message=message,
            )
            raise RemoteError(message or f"Failed to {action}", status_code=response.status_code)

        return response

    async def read_student(self, session: Session, student_id: str) -> StudentRecord:
        headers = self._headers(session)
        response = await self._send(
            "GET",
            f"{self._students_url(session)}/{student_id}",
            headers,
            action="fetch student",
            retry_transport=True,
        )
        return parse_student(_json_body(response, "fetch student"))

    async def write_student_partial(
        self, session: Session, student_id: str, patch: ProgressPatch
    ) -> StudentRecord:
        headers = self._headers(session)
        response = await self._send(
            "PUT",
            f"{self._students_url(session)}/{student_id}",
            headers,
            action="update student",
            retry_transport=False,
            json=patch.to_wire(),
        )
        return parse_student(_json_body(response, "update student"))

    async def list_students(
        self, session: Session, page: int = 1, limit: int = 10, search: str = ""
    ) -> StudentPage:
        headers = self._headers(session)
        params: dict[str, str] = {"page": str(page), "limit": str(limit)}
        if search.strip():
            params["search"] = search.strip()

        response = await self._send(
            "GET",
            self._students_url(session),
            headers,
            action="fetch students",
            retry_transport=True,
            params=params,
        )
        data = _json_body(response, "fetch students")
        if not isinstance(data, dict):
            raise ShapeError("Student list must be a JSON object")

        students = [parse_student(item) for item in data.get("students") or []]
        if data.get("pagination"):
            try:
                pagination = Pagination.model_validate({**data["pagination"], "currentPage": page})
            except ValidationError as exc:
                raise ShapeError(f"Invalid pagination: {exc.error_count()} errors") from exc
        else:
            pagination = Pagination.fallback(page, limit, len(students))

        return StudentPage(students=students, pagination=pagination)
