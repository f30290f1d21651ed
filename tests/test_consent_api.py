"""Tests for the consent HTTP API."""

import re
from datetime import timedelta

from fastapi.testclient import TestClient

from econsent.core.config import Settings
from econsent.core.security import create_staff_token
from econsent.workflow.backends import LoggingCodeDelivery
from econsent.workflow.clock import VirtualClock

API = "/api/v1"

PATIENT = {
    "patient_id": "P-2024-001234",
    "name": "Sarah Johnson",
    "email": "sarah.johnson@email.com",
}

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def open_session(client: TestClient) -> str:
    response = client.post(
        f"{API}/consent/sessions",
        json=PATIENT,
        headers={"User-Agent": IPHONE_UA},
    )
    assert response.status_code == 201
    return response.json()["token"]


def verify_identity(client: TestClient, token: str) -> None:
    response = client.post(
        f"{API}/consent/{token}/identity/challenge",
        json={"email": PATIENT["email"]},
    )
    assert response.status_code == 200
    response = client.post(f"{API}/consent/{token}/identity/verify", json={"code": "123456"})
    assert response.status_code == 200


def read_document(client: TestClient, token: str, clock: VirtualClock) -> None:
    base = f"{API}/consent/{token}/document"
    page = client.get(base).json()
    while not page["completed"]:
        clock.advance(page["minimum_seconds"])
        client.post(f"{base}/scroll", json={"depth_percent": 100})
        assert client.post(f"{base}/advance").status_code == 200
        page = client.get(base).json()


def complete_checklist(client: TestClient, token: str, clock: VirtualClock) -> None:
    base = f"{API}/consent/{token}/checklist"
    for item in client.get(base).json()["items"]:
        assert client.post(f"{base}/{item['id']}/play").status_code == 200
        clock.advance(item["audio_duration_seconds"])
        assert client.post(f"{base}/{item['id']}/recording/start").status_code == 200
        clock.advance(6)
        assert client.post(f"{base}/{item['id']}/recording/stop").status_code == 200
        assert client.post(f"{base}/{item['id']}/accept").status_code == 200


def sign(client: TestClient, token: str, clock: VirtualClock) -> None:
    base = f"{API}/consent/{token}/signature"
    client.post(f"{base}/strokes", json={"points": [[1, 2], [3, 4]]})
    client.post(f"{base}/acknowledgements", json={"kind": "consent", "value": True})
    client.post(f"{base}/acknowledgements", json={"kind": "terms", "value": True})
    assert client.post(f"{base}/submit").status_code == 202
    clock.advance(2)


class TestSessionLinks:
    """Tests for consent link issue and resolution."""

    def test_create_session(self, client: TestClient) -> None:
        """Test that a new session starts on the landing stage."""
        response = client.post(f"{API}/consent/sessions", json=PATIENT)

        assert response.status_code == 201
        data = response.json()
        assert data["token"]
        assert data["stage"] == "landing"
        assert data["link_expires_at"]

    def test_create_session_rejects_bad_email(self, client: TestClient) -> None:
        response = client.post(
            f"{API}/consent/sessions",
            json={**PATIENT, "email": "not-an-email"},
        )

        assert response.status_code == 422

    def test_session_status(self, client: TestClient) -> None:
        token = open_session(client)

        response = client.get(f"{API}/consent/{token}")

        assert response.status_code == 200
        data = response.json()
        assert data["patient_name"] == "Sarah Johnson"
        assert data["study"]["protocol_id"] == "TEST-2024-01"
        assert data["current_stage"] == "landing"
        assert data["furthest_stage"] == "verify-identity"
        assert data["identity"]["status"] == "no_challenge"
        assert data["document"]["total_pages"] == 3
        assert data["checklist"]["total_items"] == 2

    def test_device_info_recorded(self, client: TestClient, registry) -> None:
        """Test that the opening request's device is captured for the audit trail."""
        token = open_session(client)

        workflow = registry.resolve(token)

        device = workflow.session.audit.device_info
        assert device.os == "iOS"
        assert device.browser == "Safari"
        assert device.device == "Mobile"

    def test_invalid_link(self, client: TestClient) -> None:
        response = client.get(f"{API}/consent/not-a-real-token")

        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["error_reason"] == "invalid"
        assert detail["title"] == "Invalid Link"
        assert detail["redirect"] == "error"

    def test_expired_link(self, client: TestClient, api_clock: VirtualClock) -> None:
        """Test that a link past its expiry leads to the expired error."""
        token = open_session(client)
        api_clock.advance(timedelta(days=31).total_seconds())

        response = client.get(f"{API}/consent/{token}")

        assert response.status_code == 410
        assert response.json()["detail"]["error_reason"] == "expired"

    def test_navigate_locked_stage(self, client: TestClient) -> None:
        token = open_session(client)

        response = client.post(
            f"{API}/consent/{token}/navigate",
            json={"stage": "comprehension-checklist"},
        )

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["reason"] == "stage_locked"
        assert detail["details"]["redirect"] == "verify-identity"

    def test_navigate_open_stage(self, client: TestClient) -> None:
        token = open_session(client)

        response = client.post(
            f"{API}/consent/{token}/navigate",
            json={"stage": "verify-identity"},
        )

        assert response.status_code == 200
        assert client.get(f"{API}/consent/{token}").json()["current_stage"] == "verify-identity"


class TestIdentityEndpoints:
    """Tests for identity verification over HTTP."""

    def test_invalid_email(self, client: TestClient) -> None:
        token = open_session(client)

        response = client.post(
            f"{API}/consent/{token}/identity/challenge",
            json={"email": "sarah.johnson"},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "invalid_email"

    def test_code_delivered(self, client: TestClient, delivery: LoggingCodeDelivery) -> None:
        token = open_session(client)

        client.post(
            f"{API}/consent/{token}/identity/challenge",
            json={"email": PATIENT["email"]},
        )

        assert delivery.sent[-1][0] == PATIENT["email"]
        assert len(delivery.last_code) == 6

    def test_wrong_code(self, client: TestClient) -> None:
        """Test that a rejected code is an auth error with attempts left."""
        token = open_session(client)
        client.post(
            f"{API}/consent/{token}/identity/challenge",
            json={"email": PATIENT["email"]},
        )

        response = client.post(
            f"{API}/consent/{token}/identity/verify",
            json={"code": "000000"},
        )

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["reason"] == "wrong_code"
        assert detail["details"]["attempts_remaining"] == 2

    def test_resend_cooldown(self, client: TestClient, api_clock: VirtualClock) -> None:
        token = open_session(client)
        client.post(
            f"{API}/consent/{token}/identity/challenge",
            json={"email": PATIENT["email"]},
        )

        early = client.post(f"{API}/consent/{token}/identity/resend")
        api_clock.advance(60)
        later = client.post(f"{API}/consent/{token}/identity/resend")

        assert early.status_code == 409
        assert early.json()["detail"]["reason"] == "cooldown_active"
        assert later.status_code == 200

    def test_verified(self, client: TestClient) -> None:
        token = open_session(client)

        verify_identity(client, token)

        data = client.get(f"{API}/consent/{token}").json()
        assert data["identity"]["status"] == "verified"
        assert data["furthest_stage"] == "read-document"


class TestDocumentEndpoints:
    """Tests for document reading over HTTP."""

    def test_document_locked_before_verification(self, client: TestClient) -> None:
        token = open_session(client)

        response = client.get(f"{API}/consent/{token}/document")

        assert response.status_code == 409
        assert response.json()["detail"]["details"]["redirect"] == "verify-identity"

    def test_dwell_gate(self, client: TestClient, api_clock: VirtualClock) -> None:
        """Test that the first page cannot be advanced past early."""
        token = open_session(client)
        verify_identity(client, token)
        base = f"{API}/consent/{token}/document"

        page = client.get(base).json()
        assert page["page"] == 1
        assert page["can_advance"] is False

        api_clock.advance(10)
        client.post(f"{base}/scroll", json={"depth_percent": 100})
        early = client.post(f"{base}/advance")

        assert early.status_code == 409
        detail = early.json()["detail"]
        assert detail["reason"] == "insufficient_dwell"
        assert detail["details"]["seconds_remaining"] == 5

        api_clock.advance(5)
        assert client.post(f"{base}/advance").status_code == 200
        assert client.get(base).json()["page"] == 2

    def test_scroll_out_of_range(self, client: TestClient) -> None:
        token = open_session(client)
        verify_identity(client, token)

        response = client.post(
            f"{API}/consent/{token}/document/scroll",
            json={"depth_percent": 120},
        )

        assert response.status_code == 422

    def test_read_whole_document(self, client: TestClient, api_clock: VirtualClock) -> None:
        token = open_session(client)
        verify_identity(client, token)

        read_document(client, token, api_clock)

        data = client.get(f"{API}/consent/{token}").json()
        assert data["document"]["completed"] is True
        assert data["document"]["pages_read"] == [1, 2, 3]
        assert data["document"]["percent_complete"] == 100.0


class TestChecklistEndpoints:
    """Tests for the comprehension checklist over HTTP."""

    def test_record_before_listening(self, client: TestClient, api_clock: VirtualClock) -> None:
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)

        response = client.post(f"{API}/consent/{token}/checklist/1/recording/start")

        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "audio_incomplete"

    def test_unknown_item(self, client: TestClient, api_clock: VirtualClock) -> None:
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)

        response = client.post(f"{API}/consent/{token}/checklist/42/play")

        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "unknown_item"

    def test_complete_checklist(self, client: TestClient, api_clock: VirtualClock) -> None:
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)

        complete_checklist(client, token, api_clock)

        checklist = client.get(f"{API}/consent/{token}/checklist").json()
        assert checklist["all_completed"] is True
        assert all(item["completed"] for item in checklist["items"])


class TestSignatureEndpoints:
    """Tests for signing over HTTP."""

    def test_submit_requires_preconditions(
        self, client: TestClient, api_clock: VirtualClock
    ) -> None:
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)
        complete_checklist(client, token, api_clock)

        response = client.post(f"{API}/consent/{token}/signature/submit")

        assert response.status_code == 409
        assert response.json()["detail"]["details"]["missing"] == [
            "signature",
            "consent",
            "terms",
        ]

    def test_unknown_acknowledgement(self, client: TestClient, api_clock: VirtualClock) -> None:
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)
        complete_checklist(client, token, api_clock)

        response = client.post(
            f"{API}/consent/{token}/signature/acknowledgements",
            json={"kind": "marketing", "value": True},
        )

        assert response.status_code == 422


class TestConsentWalkthrough:
    """End-to-end consent over HTTP."""

    def test_full_consent(
        self, client: TestClient, api_clock: VirtualClock, staff_headers: dict[str, str]
    ) -> None:
        """Test a full consent from link to archived record."""
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)
        complete_checklist(client, token, api_clock)
        sign(client, token, api_clock)

        status_data = client.get(f"{API}/consent/{token}").json()
        assert status_data["signature"]["submitted"] is True
        assert status_data["furthest_stage"] == "complete"

        completion = client.get(f"{API}/consent/{token}/completion")
        assert completion.status_code == 200
        data = completion.json()
        assert data["archived"] is True
        assert re.fullmatch(r"ICF-\d{4}-[0-9A-F]{8}", data["reference_number"])
        assert data["export"]["patient"]["patient_id"] == PATIENT["patient_id"]
        assert len(data["export"]["audit"]["steps"]) == 4

        again = client.get(f"{API}/consent/{token}/completion").json()
        assert again["archived"] is False
        assert again["content_hash"] == data["content_hash"]

        record = client.get(
            f"{API}/records/{data['reference_number']}", headers=staff_headers
        )
        assert record.status_code == 200
        assert record.json()["integrity_verified"] is True
        assert record.json()["session_id"] == data["export"]["session_id"]

    def test_completed_session_cannot_reenter(
        self, client: TestClient, api_clock: VirtualClock
    ) -> None:
        """Test that a submitted session is sent to the already-completed error."""
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)
        complete_checklist(client, token, api_clock)
        sign(client, token, api_clock)

        response = client.post(f"{API}/consent/{token}/signature/clear")

        assert response.status_code == 409
        assert response.json()["detail"]["error_reason"] == "already-completed"

    def test_completion_before_signing(self, client: TestClient) -> None:
        token = open_session(client)

        response = client.get(f"{API}/consent/{token}/completion")

        assert response.status_code == 409

    def test_unknown_record(self, client: TestClient, staff_headers: dict[str, str]) -> None:
        response = client.get(f"{API}/records/ICF-2024-00000000", headers=staff_headers)

        assert response.status_code == 404

    def test_completion_releases_session(
        self, client: TestClient, api_clock: VirtualClock, registry
    ) -> None:
        """Test that archiving frees the live session and the link reports completion."""
        token = open_session(client)
        verify_identity(client, token)
        read_document(client, token, api_clock)
        complete_checklist(client, token, api_clock)
        sign(client, token, api_clock)

        assert client.get(f"{API}/consent/{token}/completion").status_code == 200

        assert len(registry) == 0
        assert api_clock.pending == 0
        response = client.get(f"{API}/consent/{token}")
        assert response.status_code == 409
        assert response.json()["detail"]["error_reason"] == "already-completed"

    def test_completion_with_invalid_link(self, client: TestClient) -> None:
        response = client.get(f"{API}/consent/not-a-real-token/completion")

        assert response.status_code == 404


class TestRecordAccess:
    """Tests for staff access to archived records."""

    def test_record_requires_staff_token(self, client: TestClient) -> None:
        response = client.get(f"{API}/records/ICF-2024-00000000")

        assert response.status_code == 401

    def test_record_rejects_link_token(self, client: TestClient) -> None:
        """Test that a patient's consent link cannot be used as a staff token."""
        token = open_session(client)

        response = client.get(
            f"{API}/records/ICF-2024-00000000",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401

    def test_record_rejects_foreign_secret(self, client: TestClient) -> None:
        other = Settings(_env_file=None, env="test", secret_key="another-secret")
        token = create_staff_token("coordinator@example.org", other)

        response = client.get(
            f"{API}/records/ICF-2024-00000000",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401
