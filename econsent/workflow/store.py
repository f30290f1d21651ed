"""Session State Store.

The store is the single owner of every consent session. Components read the
slice they need, compute an updated copy and write it back with update();
no component keeps its own copy of session state between calls.
"""

import logging
from dataclasses import replace
from datetime import datetime

from econsent.protocols.loader import ProtocolDefinition
from econsent.workflow.models import (
    AuditTrail,
    AuthState,
    ChecklistProgress,
    DeviceInfo,
    DocumentProgress,
    PatientProfile,
    Session,
    SignatureRecord,
    StudyInfo,
)

logger = logging.getLogger(__name__)

SLICES = frozenset({"auth", "document", "checklist", "signature", "audit"})


class SessionNotFoundError(LookupError):
    """Raised when a session is no longer held by the store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Consent session not found: {session_id}")
        self.session_id = session_id


def create_session(
    session_id: str,
    patient: PatientProfile,
    protocol: ProtocolDefinition,
    opened_at: datetime,
    study: StudyInfo | None = None,
    max_attempts: int = 3,
    link_expires_at: datetime | None = None,
    device_info: DeviceInfo | None = None,
    ip_address: str | None = None,
) -> Session:
    """Build the initial state of a consent session.

    Args:
        session_id: Opaque session identifier
        patient: Patient reference data
        protocol: Study protocol supplying document pages and checklist
        opened_at: When the consent link was opened
        study: Study reference data (defaults to the protocol's)
        max_attempts: Maximum one-time-code attempts per challenge
        link_expires_at: Expiry of the consent link
        device_info: Patient device description
        ip_address: Patient IP address

    Returns:
        New Session with every stage at its starting state
    """
    return Session(
        session_id=session_id,
        patient=patient,
        study=study or protocol.study,
        auth=AuthState(max_attempts=max_attempts),
        document=DocumentProgress(total_pages=protocol.total_pages),
        checklist=ChecklistProgress.from_items(protocol.checklist),
        signature=SignatureRecord(signer_name=patient.name),
        audit=AuditTrail(
            opened_at=opened_at,
            device_info=device_info or DeviceInfo(),
            ip_address=ip_address,
        ),
        link_expires_at=link_expires_at,
        protocol_hash=protocol.content_hash,
    )


class SessionStore:
    """In-memory owner of consent sessions keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: Session) -> Session:
        self._sessions[session.session_id] = session
        logger.info(f"Consent session opened: {session.session_id[:8]}...")
        return session

    def get(self, session_id: str) -> Session:
        """Return the current session record.

        Raises:
            SessionNotFoundError: If the store no longer holds the session
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def update(self, session_id: str, **slices: object) -> Session:
        """Replace one or more slices of a session.

        Args:
            session_id: Session to update
            **slices: New values for auth, document, checklist, signature or audit

        Returns:
            The updated session record
        """
        unknown = set(slices) - SLICES
        if unknown:
            raise ValueError(f"Unknown session slices: {sorted(unknown)}")

        session = replace(self.get(session_id), **slices)
        self._sessions[session_id] = session
        return session

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
