"""SQLAlchemy models."""

from econsent.models.consent_record import ConsentRecord

__all__ = ["ConsentRecord"]
