"""Completed-record archive service."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from econsent.core.logging import audit_logger
from econsent.models.consent_record import ConsentRecord
from econsent.schemas.export import ConsentExport
from econsent.services.export import reissue_reference

logger = logging.getLogger(__name__)

# Reference numbers tried before giving up on a session
MAX_REFERENCE_ATTEMPTS = 5


class ReferenceAllocationError(Exception):
    """Raised when no free reference number could be found for a session."""


class ConsentRecordService:
    """Stores sealed completion exports."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_session(self, session_id: str) -> ConsentRecord | None:
        result = await self.session.execute(
            select(ConsentRecord).where(ConsentRecord.session_id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_by_reference(self, reference_number: str) -> ConsentRecord | None:
        result = await self.session.execute(
            select(ConsentRecord).where(ConsentRecord.reference_number == reference_number)
        )
        return result.scalar_one_or_none()

    async def archive(self, export: ConsentExport) -> tuple[ConsentRecord, bool]:
        """Archive a completion export.

        Archiving the same session twice returns the existing record. If
        another session already holds the export's reference number, the
        export is reissued under the next one before it is stored.

        Returns:
            Tuple of (record, created)

        Raises:
            ReferenceAllocationError: If every reference attempt is taken
        """
        existing = await self.get_by_session(export.session_id)
        if existing:
            return existing, False

        attempt = 0
        while await self.get_by_reference(export.reference_number) is not None:
            attempt += 1
            if attempt >= MAX_REFERENCE_ATTEMPTS:
                raise ReferenceAllocationError(
                    f"No free reference number for session {export.session_id[:8]}..."
                )
            logger.warning(
                f"Reference {export.reference_number} already archived, "
                f"reissuing (attempt {attempt})"
            )
            export = reissue_reference(export, attempt)

        record = ConsentRecord(
            session_id=export.session_id,
            reference_number=export.reference_number,
            patient_id=export.patient.patient_id,
            protocol_id=export.study.protocol_id,
            protocol_hash=export.study.protocol_hash,
            submitted_at=export.signature.submitted_at,
            export=export.model_dump(mode="json"),
            content_hash=export.content_hash,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)

        audit_logger.log(
            action="consent_archived",
            session_id=export.session_id,
            metadata={
                "reference_number": export.reference_number,
                "content_hash": export.content_hash,
            },
        )
        return record, True
