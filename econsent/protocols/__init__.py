"""Study protocol definitions (consent document and comprehension checklist)."""

from econsent.protocols.loader import (
    DocumentPage,
    ProtocolDefinition,
    compute_protocol_hash,
    load_protocol,
)

__all__ = [
    "DocumentPage",
    "ProtocolDefinition",
    "compute_protocol_hash",
    "load_protocol",
]
