"""Identity Verifier: e-mail one-time-code challenge and response.

States: no_challenge -> challenge_sent -> verified (terminal). A challenge
whose attempts are used up becomes locked; only a fresh challenge (after
the resend cooldown) unlocks verification again, up to a per-session limit
on challenges.
"""

import logging
import re
import secrets
import string
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable

from econsent.core.config import Settings, settings as default_settings
from econsent.utils.time import seconds_between
from econsent.workflow.audit import AuditRecorder
from econsent.workflow.backends import CodeDelivery
from econsent.workflow.clock import Clock, Countdown
from econsent.workflow.models import AuthState
from econsent.workflow.outcomes import Outcome, Reason
from econsent.workflow.store import SessionStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

AUDIT_STEP = "email_verification"


def is_valid_email(email: str) -> bool:
    """Check the standard local@domain.tld shape."""
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def is_well_formed_code(code: str, length: int = 6) -> bool:
    """Check that code is exactly `length` ASCII digits."""
    return len(code) == length and all(c in string.digits for c in code)


def generate_code(length: int = 6) -> str:
    """Generate a random numeric one-time code."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def code_matches(auth: AuthState, code: str, settings: Settings) -> bool:
    """Compare a submitted code with the issued challenge.

    In simulated mode no code reaches the patient, so any well-formed code
    except the reserved sentinel is accepted.
    """
    if settings.otp_verification_mode == "strict":
        return secrets.compare_digest(code, auth.code)
    return code != settings.otp_reject_sentinel


def _cooldown_remaining(auth: AuthState, now: datetime, settings: Settings) -> int:
    if auth.sent_at is None:
        return 0
    return settings.otp_resend_cooldown_seconds - seconds_between(auth.sent_at, now)


def send_challenge(
    auth: AuthState,
    email: str,
    code: str,
    now: datetime,
    settings: Settings,
) -> tuple[AuthState, Outcome]:
    """Issue a fresh challenge to email.

    Returns:
        Tuple of (updated auth state, outcome)
    """
    email = email.strip()

    if auth.verified:
        return auth, Outcome.ok("Identity already verified", already_verified=True)

    if not is_valid_email(email):
        return auth, Outcome.refuse(
            Reason.INVALID_EMAIL,
            "Please enter a valid email address.",
        )

    remaining = _cooldown_remaining(auth, now, settings)
    if remaining > 0:
        return auth, Outcome.refuse(
            Reason.COOLDOWN_ACTIVE,
            f"You can request a new code in {remaining} seconds.",
            seconds_remaining=remaining,
        )

    if auth.challenges_sent >= settings.otp_max_challenges:
        return auth, Outcome.refuse(
            Reason.CHALLENGE_LIMIT_REACHED,
            "Too many verification codes have been requested. "
            "Please contact your study coordinator.",
            max_challenges=settings.otp_max_challenges,
        )

    expiry = now + timedelta(seconds=settings.otp_expiry_seconds)
    updated = replace(
        auth,
        email=email,
        challenge_sent=True,
        code=code,
        attempts=0,
        sent_at=now,
        expiry=expiry,
        challenges_sent=auth.challenges_sent + 1,
        max_attempts=settings.otp_max_attempts,
    )
    return updated, Outcome.ok(
        f"We've sent a {settings.otp_code_length}-digit code to {email}",
        expires_at=expiry.isoformat(),
    )


def can_resend(auth: AuthState, now: datetime, settings: Settings) -> Outcome:
    """Check whether another code may be requested yet."""
    if not auth.challenge_sent or auth.sent_at is None:
        return Outcome.refuse(
            Reason.NO_CHALLENGE,
            "Request a verification code first.",
        )
    remaining = _cooldown_remaining(auth, now, settings)
    if remaining > 0:
        return Outcome.refuse(
            Reason.COOLDOWN_ACTIVE,
            f"You can request a new code in {remaining} seconds.",
            seconds_remaining=remaining,
        )
    return Outcome.ok()


def verify_code(
    auth: AuthState,
    code: str,
    now: datetime,
    settings: Settings,
) -> tuple[AuthState, Outcome]:
    """Check a submitted code against the current challenge.

    Malformed and expired codes are refused without consuming an attempt.
    A mismatch consumes one; the mismatch that uses up the last attempt is
    reported as ATTEMPTS_EXHAUSTED and every later call is refused the same
    way until a new challenge is issued.
    """
    if auth.verified:
        return auth, Outcome.ok("Identity already verified", already_verified=True)

    if not auth.challenge_sent:
        return auth, Outcome.refuse(
            Reason.NO_CHALLENGE,
            "Request a verification code first.",
        )

    if not is_well_formed_code(code, settings.otp_code_length):
        return auth, Outcome.refuse(
            Reason.MALFORMED_CODE,
            f"Enter the {settings.otp_code_length}-digit code from your email.",
        )

    if auth.attempts >= auth.max_attempts:
        return auth, Outcome.refuse(
            Reason.ATTEMPTS_EXHAUSTED,
            "Too many incorrect attempts. Request a new code to continue.",
            attempts_remaining=0,
        )

    if auth.is_expired(now):
        return auth, Outcome.refuse(
            Reason.CODE_EXPIRED,
            "This code has expired. Request a new code to continue.",
        )

    if not code_matches(auth, code, settings):
        updated = replace(auth, attempts=auth.attempts + 1)
        remaining = updated.attempts_remaining
        if remaining == 0:
            return updated, Outcome.refuse(
                Reason.ATTEMPTS_EXHAUSTED,
                "Too many incorrect attempts. Request a new code to continue.",
                attempts_remaining=0,
            )
        return updated, Outcome.refuse(
            Reason.WRONG_CODE,
            f"Invalid code. Please try again. {remaining} attempts remaining.",
            attempts_remaining=remaining,
        )

    return replace(auth, verified=True, verified_at=now), Outcome.ok(
        "Your identity has been verified."
    )


class IdentityVerifier:
    """Identity verification stage bound to one session."""

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        clock: Clock,
        audit: AuditRecorder,
        delivery: CodeDelivery,
        settings: Settings | None = None,
        code_generator: Callable[[int], str] = generate_code,
    ) -> None:
        self.store = store
        self.session_id = session_id
        self.clock = clock
        self.audit = audit
        self.delivery = delivery
        self.settings = settings or default_settings
        self.code_generator = code_generator
        self._cooldown = Countdown(
            clock, self.settings.otp_resend_cooldown_seconds, name="resend-cooldown"
        )
        self._expiry = Countdown(
            clock,
            self.settings.otp_expiry_seconds,
            on_expire=self._on_code_expired,
            name="otp-expiry",
        )

    @property
    def state(self) -> AuthState:
        return self.store.get(self.session_id).auth

    @property
    def resend_cooldown(self) -> int:
        """Seconds until another code may be requested."""
        return self._cooldown.remaining

    @property
    def expires_in(self) -> int:
        """Seconds until the current code expires."""
        return self._expiry.remaining

    def open(self) -> None:
        """Re-arm the countdowns for an outstanding challenge."""
        auth = self.state
        if auth.verified or auth.sent_at is None:
            return
        now = self.clock.now()
        elapsed = seconds_between(auth.sent_at, now)
        self._cooldown.start(self.settings.otp_resend_cooldown_seconds - elapsed)
        if auth.expiry is not None:
            self._expiry.start(seconds_between(now, auth.expiry))

    def close(self) -> None:
        """Cancel this stage's timers."""
        self._cooldown.cancel()
        self._expiry.cancel()

    def send_challenge(self, email: str) -> Outcome:
        code = self.code_generator(self.settings.otp_code_length)
        auth, outcome = send_challenge(self.state, email, code, self.clock.now(), self.settings)
        if not outcome.allowed or outcome.details.get("already_verified"):
            return outcome

        self.delivery.deliver(auth.email, code)
        self.store.update(self.session_id, auth=auth)
        self._cooldown.start()
        self._expiry.start()
        self.audit.ensure_step(AUDIT_STEP)
        logger.info(
            f"Verification code issued for session {self.session_id[:8]}... "
            f"(challenge {auth.challenges_sent}/{self.settings.otp_max_challenges})"
        )
        return outcome

    def resend(self) -> Outcome:
        outcome = can_resend(self.state, self.clock.now(), self.settings)
        if not outcome.allowed:
            return outcome
        return self.send_challenge(self.state.email)

    def verify_code(self, code: str) -> Outcome:
        before = self.state
        auth, outcome = verify_code(before, code, self.clock.now(), self.settings)
        if auth is not before:
            self.store.update(self.session_id, auth=auth)

        if outcome.allowed and not outcome.details.get("already_verified"):
            self.close()
            self.audit.end_step(AUDIT_STEP)
            logger.info(f"Identity verified for session {self.session_id[:8]}...")
        elif outcome.reason == Reason.ATTEMPTS_EXHAUSTED and auth is not before:
            logger.warning(
                f"Verification attempts exhausted for session {self.session_id[:8]}..."
            )
        return outcome

    def _on_code_expired(self) -> None:
        logger.info(f"Verification code expired for session {self.session_id[:8]}...")
