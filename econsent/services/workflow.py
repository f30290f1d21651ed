"""Workflow registry.

Wires the stage components of each live consent session to the shared
store, clock and backends, and resolves consent link tokens to them.
"""

import logging
import re
from dataclasses import dataclass

from econsent.core.config import Settings, settings as default_settings
from econsent.core.security import (
    ErrorReason,
    SessionLinkError,
    create_session_token,
    decode_session_token,
    generate_session_id,
)
from econsent.protocols.loader import ProtocolDefinition
from econsent.workflow.audit import AuditRecorder
from econsent.workflow.backends import (
    CodeDelivery,
    LoggingCodeDelivery,
    MediaPlayer,
    SimulatedMediaPlayer,
    SimulatedSubmission,
    SubmissionBackend,
)
from econsent.workflow.checklist import ChecklistEngine
from econsent.workflow.clock import Clock
from econsent.workflow.document import DocumentGate
from econsent.workflow.identity import IdentityVerifier
from econsent.workflow.models import DeviceInfo, PatientProfile, Session, StudyInfo
from econsent.workflow.sequencer import ConsentSequencer, Stage
from econsent.workflow.signature import SignatureCapture
from econsent.workflow.store import SessionStore, create_session

logger = logging.getLogger(__name__)

_MOBILE_PATTERN = re.compile(r"mobile", re.IGNORECASE)


def parse_device_info(user_agent: str | None) -> DeviceInfo:
    """Derive a coarse device description from a User-Agent header."""
    if not user_agent:
        return DeviceInfo()

    if "Edg/" in user_agent:
        browser = "Edge"
    elif "Firefox/" in user_agent:
        browser = "Firefox"
    elif "Chrome/" in user_agent:
        browser = "Chrome"
    elif "Safari/" in user_agent:
        browser = "Safari"
    else:
        browser = "Other"

    if "Android" in user_agent:
        os_name = "Android"
    elif "iPhone" in user_agent or "iPad" in user_agent:
        os_name = "iOS"
    elif "Windows" in user_agent:
        os_name = "Windows"
    elif "Mac OS X" in user_agent:
        os_name = "macOS"
    elif "Linux" in user_agent:
        os_name = "Linux"
    else:
        os_name = "Unknown"

    device = "Mobile" if _MOBILE_PATTERN.search(user_agent) else "Desktop"
    return DeviceInfo(browser=browser, os=os_name, device=device)


@dataclass
class ConsentWorkflow:
    """Stage components of one live consent session."""

    session_id: str
    store: SessionStore
    audit: AuditRecorder
    identity: IdentityVerifier
    document: DocumentGate
    checklist: ChecklistEngine
    signature: SignatureCapture
    sequencer: ConsentSequencer

    @property
    def session(self) -> Session:
        return self.store.get(self.session_id)

    def close(self) -> None:
        self.sequencer.close()


class WorkflowRegistry:
    """Creates consent sessions and resolves their links."""

    def __init__(
        self,
        clock: Clock,
        protocol: ProtocolDefinition,
        settings: Settings | None = None,
        store: SessionStore | None = None,
        delivery: CodeDelivery | None = None,
        player: MediaPlayer | None = None,
        submission: SubmissionBackend | None = None,
    ) -> None:
        self.clock = clock
        self.protocol = protocol
        self.settings = settings or default_settings
        self.store = store or SessionStore()
        self.delivery = delivery or LoggingCodeDelivery(reveal_code=self.settings.is_dev)
        self.player = player or SimulatedMediaPlayer(
            clock,
            mode=self.settings.audio_playback_mode,
            fixed_seconds=self.settings.audio_fixed_playback_seconds,
        )
        self.submission = submission or SimulatedSubmission(
            clock, latency_seconds=self.settings.submission_latency_seconds
        )
        self._workflows: dict[str, ConsentWorkflow] = {}
        # Sessions released from memory, with the error their link now leads to
        self._closed: dict[str, ErrorReason] = {}

    def __len__(self) -> int:
        return len(self._workflows)

    def open_session(
        self,
        patient: PatientProfile,
        study: StudyInfo | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> tuple[ConsentWorkflow, str]:
        """Create a consent session and its link token.

        Returns:
            Tuple of (workflow, consent link token)
        """
        session_id = generate_session_id()
        opened_at = self.clock.now()
        token, expires_at = create_session_token(session_id, opened_at, self.settings)

        self.store.add(
            create_session(
                session_id=session_id,
                patient=patient,
                protocol=self.protocol,
                opened_at=opened_at,
                study=study,
                max_attempts=self.settings.otp_max_attempts,
                link_expires_at=expires_at,
                device_info=parse_device_info(user_agent),
                ip_address=ip_address,
            )
        )
        workflow = self._build(session_id)
        self._workflows[session_id] = workflow
        return workflow, token

    def get(self, session_id: str) -> ConsentWorkflow:
        """Return the live workflow for a session.

        A session found past its link expiry is closed on the spot.

        Raises:
            SessionLinkError: INVALID if the session is unknown, EXPIRED if
                its link has passed expiry, ALREADY_COMPLETED once it has
                been archived
        """
        closed_reason = self._closed.get(session_id)
        if closed_reason is not None:
            raise SessionLinkError(closed_reason)

        workflow = self._workflows.get(session_id)
        if workflow is None or session_id not in self.store:
            raise SessionLinkError(ErrorReason.INVALID)

        expires_at = workflow.session.link_expires_at
        if expires_at is not None and self.clock.now() > expires_at:
            logger.info(f"Closing expired session {session_id[:8]}...")
            self.close_session(session_id, ErrorReason.EXPIRED)
            raise SessionLinkError(ErrorReason.EXPIRED)
        return workflow

    def resolve(self, token: str) -> ConsentWorkflow:
        """Resolve a consent link token to its live workflow."""
        return self.get(decode_session_token(token, self.settings))

    def close_session(self, session_id: str, reason: ErrorReason | None = None) -> None:
        """Cancel a session's timers and forget it.

        With a reason, later lookups of the session raise that reason
        instead of INVALID.
        """
        workflow = self._workflows.pop(session_id, None)
        if workflow is not None:
            workflow.close()
        self.store.remove(session_id)
        if reason is not None:
            self._closed[session_id] = reason

    def complete_session(self, session_id: str) -> None:
        """Release a session whose completion export has been archived."""
        self.close_session(session_id, ErrorReason.ALREADY_COMPLETED)

    def close_all(self) -> None:
        for session_id in list(self._workflows):
            self.close_session(session_id)

    def _build(self, session_id: str) -> ConsentWorkflow:
        audit = AuditRecorder(self.store, session_id, self.clock)
        identity = IdentityVerifier(
            self.store, session_id, self.clock, audit, self.delivery, self.settings
        )
        document = DocumentGate(
            self.store, session_id, self.clock, audit, self.protocol, self.settings
        )
        checklist = ChecklistEngine(
            self.store, session_id, self.clock, audit, self.player, self.settings
        )
        signature = SignatureCapture(
            self.store, session_id, self.clock, audit, self.submission
        )
        sequencer = ConsentSequencer(
            self.store,
            session_id,
            {
                Stage.VERIFY_IDENTITY: identity,
                Stage.READ_DOCUMENT: document,
                Stage.COMPREHENSION_CHECKLIST: checklist,
                Stage.SIGN: signature,
            },
        )
        return ConsentWorkflow(
            session_id=session_id,
            store=self.store,
            audit=audit,
            identity=identity,
            document=document,
            checklist=checklist,
            signature=signature,
            sequencer=sequencer,
        )
