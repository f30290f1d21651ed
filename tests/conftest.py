"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("INIT_DB_ON_STARTUP", "false")

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from econsent.api.deps import get_registry
from econsent.core.config import Settings
from econsent.core.security import create_staff_token
from econsent.db.base import Base
from econsent.db.session import get_db
from econsent.main import app
from econsent.models import ConsentRecord  # noqa: F401
from econsent.protocols.loader import ProtocolDefinition, load_protocol
from econsent.services.workflow import WorkflowRegistry
from econsent.utils.time import utc_now
from econsent.workflow.audit import AuditRecorder
from econsent.workflow.backends import (
    LoggingCodeDelivery,
    SimulatedMediaPlayer,
    SimulatedSubmission,
)
from econsent.workflow.checklist import ChecklistEngine
from econsent.workflow.clock import VirtualClock
from econsent.workflow.document import DocumentGate
from econsent.workflow.identity import IdentityVerifier
from econsent.workflow.models import PatientProfile
from econsent.workflow.signature import SignatureCapture
from econsent.workflow.store import SessionStore, create_session

TEST_PROTOCOLS_DIR = Path(__file__).parent / "protocols"
TEST_PROTOCOL_FILE = "test-protocol.yaml"

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SESSION_ID = "test-session-0001-abcdefgh"


@pytest.fixture
def session_id() -> str:
    return SESSION_ID


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults, isolated from any local .env file."""
    return Settings(_env_file=None, env="test", secret_key="test-secret-key")


@pytest.fixture
def clock() -> VirtualClock:
    """Deterministic clock starting 2024-01-01 09:00 UTC."""
    return VirtualClock()


@pytest.fixture
def protocol() -> ProtocolDefinition:
    """Three-page, two-statement test protocol."""
    return load_protocol(TEST_PROTOCOL_FILE, TEST_PROTOCOLS_DIR)


@pytest.fixture
def patient() -> PatientProfile:
    return PatientProfile(
        patient_id="P-2024-001234",
        name="Sarah Johnson",
        email="sarah.johnson@email.com",
    )


@pytest.fixture
def store(
    clock: VirtualClock,
    protocol: ProtocolDefinition,
    patient: PatientProfile,
) -> SessionStore:
    """Store holding one freshly opened session (SESSION_ID)."""
    session_store = SessionStore()
    session_store.add(create_session(SESSION_ID, patient, protocol, clock.now()))
    return session_store


@pytest.fixture
def audit(store: SessionStore, clock: VirtualClock) -> AuditRecorder:
    return AuditRecorder(store, SESSION_ID, clock)


@pytest.fixture
def delivery() -> LoggingCodeDelivery:
    return LoggingCodeDelivery()


@pytest.fixture
def identity(
    store: SessionStore,
    clock: VirtualClock,
    audit: AuditRecorder,
    delivery: LoggingCodeDelivery,
    test_settings: Settings,
) -> IdentityVerifier:
    return IdentityVerifier(store, SESSION_ID, clock, audit, delivery, test_settings)


@pytest.fixture
def document_gate(
    store: SessionStore,
    clock: VirtualClock,
    audit: AuditRecorder,
    protocol: ProtocolDefinition,
    test_settings: Settings,
) -> DocumentGate:
    return DocumentGate(store, SESSION_ID, clock, audit, protocol, test_settings)


@pytest.fixture
def checklist_engine(
    store: SessionStore,
    clock: VirtualClock,
    audit: AuditRecorder,
    test_settings: Settings,
) -> ChecklistEngine:
    """Checklist engine whose playback honors each item's declared duration."""
    player = SimulatedMediaPlayer(clock, mode="declared")
    return ChecklistEngine(store, SESSION_ID, clock, audit, player, test_settings)


@pytest.fixture
def signature_capture(
    store: SessionStore,
    clock: VirtualClock,
    audit: AuditRecorder,
) -> SignatureCapture:
    """Signature capture with a 2 second simulated submission."""
    return SignatureCapture(
        store, SESSION_ID, clock, audit, SimulatedSubmission(clock, latency_seconds=2.0)
    )


@pytest.fixture
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def api_clock() -> VirtualClock:
    """Virtual clock starting now, so issued link tokens are not expired."""
    return VirtualClock(start=utc_now())


@pytest.fixture
def registry(
    api_clock: VirtualClock,
    protocol: ProtocolDefinition,
    delivery: LoggingCodeDelivery,
    test_settings: Settings,
) -> WorkflowRegistry:
    return WorkflowRegistry(api_clock, protocol, test_settings, delivery=delivery)


@pytest.fixture
def client(tmp_path: Path, registry: WorkflowRegistry) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with overridden dependencies.

    The database is a file so that it can be used from the client's own
    event loop.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    async def create_tables() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry

    with TestClient(app) as test_client:
        test_client.portal.call(create_tables)
        yield test_client
        test_client.portal.call(engine.dispose)

    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers(test_settings: Settings) -> dict[str, str]:
    """Bearer header for a study coordinator."""
    token = create_staff_token("coordinator@example.org", test_settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def submitted_store(
    store: SessionStore,
    clock: VirtualClock,
    identity: IdentityVerifier,
    document_gate: DocumentGate,
    checklist_engine: ChecklistEngine,
    signature_capture: SignatureCapture,
) -> SessionStore:
    """Store whose session has been walked through to a submitted signature."""
    identity.open()
    identity.send_challenge("sarah.johnson@email.com")
    clock.advance(20)
    identity.verify_code("123456")
    identity.close()

    document_gate.open()
    while not document_gate.state.completed:
        clock.advance(15)
        document_gate.report_scroll(100)
        document_gate.advance()
    document_gate.close()

    checklist_engine.open()
    for item in checklist_engine.state.items:
        checklist_engine.play_audio(item.id)
        clock.advance(item.audio_duration_seconds)
        checklist_engine.start_recording(item.id)
        clock.advance(6)
        checklist_engine.stop_recording(item.id)
        checklist_engine.accept_clip(item.id)
    checklist_engine.close()

    signature_capture.open()
    signature_capture.mark_stroke([(0.0, 0.0), (10.0, 5.0)])
    signature_capture.set_acknowledgement("consent", True)
    signature_capture.set_acknowledgement("terms", True)
    signature_capture.submit()
    clock.advance(2)
    return store
