"""Caller session and administrative capability checks.

The session is passed explicitly into every gateway call; nothing here reads
ambient browser or process state.
"""

from dataclasses import dataclass, field

import jwt as pyjwt

from flightdesk.core.config import get_settings
from flightdesk.core.exceptions import PermissionDeniedError, PreconditionError

# Claim names the API has used for the user id, in lookup order
_USER_ID_CLAIMS = ("user_id", "id", "sub", "userId")


@dataclass(frozen=True)
class Session:
    """Credentials and identity of the back-office user driving the view."""

    token: str | None
    school_id: str | None
    role: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    csrf_token: str | None = None
    claims: dict = field(default_factory=dict, compare=False, repr=False)

    def require_credentials(self) -> None:
        """Raise ``PreconditionError`` unless both bearer token and school scope are present."""
        if not self.token or not self.school_id:
            raise PreconditionError("School ID or authentication token not found")


def session_from_token(
    token: str,
    school_id: str | None,
    csrf_token: str | None = None,
) -> Session:
    """Build a Session from a bearer token issued by the student record API.

    The signature is not verified here: the API verifies it on every request.
    The claims are only read to decide which controls to offer.

    Raises:
        PreconditionError: token is empty or not a decodable JWT
    """
    if not token:
        raise PreconditionError("Authentication token not found")

    try:
        claims = pyjwt.decode(token, options={"verify_signature": False})
    except pyjwt.DecodeError as exc:
        raise PreconditionError(f"Authentication token is not readable: {exc}") from exc

    user_id = next((str(claims[c]) for c in _USER_ID_CLAIMS if claims.get(c)), None)
    if claims.get("first_name") and claims.get("last_name"):
        user_name = f"{claims['first_name']} {claims['last_name']}"
    else:
        user_name = claims.get("name") or claims.get("userName")

    return Session(
        token=token,
        school_id=school_id,
        role=claims.get("role"),
        user_id=user_id,
        user_name=user_name,
        csrf_token=csrf_token,
        claims=claims,
    )


def is_admin(session: Session) -> bool:
    """Check whether the session holds a school or system admin role."""
    return session.role is not None and session.role in get_settings().admin_roles


def require_admin(session: Session) -> None:
    """Raise ``PermissionDeniedError`` unless the session may mutate training progress."""
    if not is_admin(session):
        raise PermissionDeniedError(
            f"Role '{session.role or 'anonymous'}' cannot change training progress"
        )
