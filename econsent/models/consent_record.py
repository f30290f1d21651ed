"""Archived consent records."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from econsent.db.base import Base, TimestampMixin


class ConsentRecord(Base, TimestampMixin):
    """Completed consent session, stored as its sealed completion export.

    Records are immutable once written; one record per consent session.
    """

    __tablename__ = "consent_records"

    session_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
    )
    reference_number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
    )
    patient_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    protocol_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    # SHA-256 of the protocol definition the patient read
    protocol_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    export: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
    )
    content_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ConsentRecord {self.reference_number} patient={self.patient_id[:8]}...>"
