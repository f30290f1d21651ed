"""Signed, expiring consent session links and staff bearer tokens."""

import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import ExpiredSignatureError, JWTError, jwt

from econsent.core.config import Settings, settings as default_settings


class ErrorReason(str, Enum):
    """Reasons a consent link leads to the error stage."""

    EXPIRED = "expired"
    INVALID = "invalid"
    ALREADY_COMPLETED = "already-completed"
    GENERIC = "generic"

    @property
    def title(self) -> str:
        return ERROR_MESSAGES[self]["title"]

    @property
    def description(self) -> str:
        return ERROR_MESSAGES[self]["description"]

    @property
    def action(self) -> str:
        return ERROR_MESSAGES[self]["action"]


ERROR_MESSAGES: dict[ErrorReason, dict[str, str]] = {
    ErrorReason.EXPIRED: {
        "title": "Link Expired",
        "description": "This consent link has expired and is no longer valid.",
        "action": "Request a new link from your study coordinator.",
    },
    ErrorReason.INVALID: {
        "title": "Invalid Link",
        "description": "This consent link is invalid or has been revoked.",
        "action": "Please contact your study coordinator for assistance.",
    },
    ErrorReason.ALREADY_COMPLETED: {
        "title": "Already Completed",
        "description": "You have already completed this consent process.",
        "action": "Contact your study coordinator if you need a new copy.",
    },
    ErrorReason.GENERIC: {
        "title": "Something Went Wrong",
        "description": "An unexpected error occurred.",
        "action": "Please try again or contact support.",
    },
}


class SessionLinkError(Exception):
    """Raised when a consent link cannot be resolved to a live session."""

    def __init__(self, reason: ErrorReason, message: str | None = None) -> None:
        super().__init__(message or reason.description)
        self.reason = reason


def generate_session_id() -> str:
    """Generate a cryptographically secure session identifier."""
    return secrets.token_urlsafe(24)


def create_session_token(
    session_id: str,
    opened_at: datetime,
    settings: Settings | None = None,
) -> tuple[str, datetime]:
    """Create the opaque token carried in a patient's consent link.

    Args:
        session_id: Identifier of the consent session
        opened_at: When the session was created
        settings: Optional settings override

    Returns:
        Tuple of (encoded token, link expiry)
    """
    settings = settings or default_settings
    expires_at = opened_at + timedelta(days=settings.consent_link_ttl_days)

    to_encode = {
        "sub": session_id,
        "type": "consent_link",
        "iat": opened_at,
        "exp": expires_at,
    }
    token = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return token, expires_at


def decode_session_token(token: str, settings: Settings | None = None) -> str:
    """Decode a consent link token and return its session id.

    Raises:
        SessionLinkError: EXPIRED when the link is past its expiry,
            INVALID for any other decoding failure
    """
    settings = settings or default_settings
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except ExpiredSignatureError as exc:
        raise SessionLinkError(ErrorReason.EXPIRED) from exc
    except JWTError as exc:
        raise SessionLinkError(ErrorReason.INVALID) from exc

    if payload.get("type") != "consent_link" or not payload.get("sub"):
        raise SessionLinkError(ErrorReason.INVALID)
    return payload["sub"]


def create_staff_token(
    subject: str,
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a bearer token for a study staff member.

    Args:
        subject: Staff identifier (e.g. coordinator e-mail)
        settings: Optional settings override
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    settings = settings or default_settings
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.staff_token_expire_minutes)

    issued_at = datetime.now(timezone.utc)
    to_encode = {
        "sub": subject,
        "type": "staff_access",
        "iat": issued_at,
        "exp": issued_at + expires_delta,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_staff_token(token: str, settings: Settings | None = None) -> str | None:
    """Decode a staff bearer token.

    Returns:
        Staff identifier, or None if the token is invalid or expired
    """
    settings = settings or default_settings
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if payload.get("type") != "staff_access":
        return None
    return payload.get("sub")
