"""YAML study protocol loader with integrity hashing.

A protocol file describes the consent document (pages and their minimum
reading time) and the comprehension checklist (statements and audio).
The SHA-256 of the raw YAML is carried into the completion export so the
exact document version a patient read can be identified later.
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from econsent.workflow.models import ChecklistItem, StudyInfo

# Bundled protocol definitions live next to this module
PROTOCOLS_DIR = Path(__file__).parent


@dataclass(frozen=True)
class DocumentPage:
    """One page of the consent document."""

    page: int
    title: str
    content: str
    minimum_seconds: int | None = None


@dataclass(frozen=True)
class ProtocolDefinition:
    """Parsed protocol file."""

    id: str
    study: StudyInfo
    pages: tuple[DocumentPage, ...]
    checklist: tuple[ChecklistItem, ...]
    content_hash: str

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def page(self, number: int) -> DocumentPage:
        return self.pages[number - 1]


def compute_protocol_hash(content: str) -> str:
    """Compute SHA256 hash of protocol content.

    Args:
        content: Raw YAML content string

    Returns:
        SHA256 hex digest
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def parse_protocol(data: dict[str, Any], content_hash: str) -> ProtocolDefinition:
    """Build a ProtocolDefinition from parsed YAML.

    Raises:
        ValueError: If the document or checklist section is missing or empty
    """
    study = data.get("study") or {}
    pages_data = (data.get("document") or {}).get("pages") or []
    items_data = (data.get("checklist") or {}).get("items") or []

    if not pages_data:
        raise ValueError(f"Protocol {data.get('id', 'unknown')} has no document pages")
    if not items_data:
        raise ValueError(f"Protocol {data.get('id', 'unknown')} has no checklist items")

    pages = tuple(
        DocumentPage(
            page=index,
            title=page["title"],
            content=page.get("content", ""),
            minimum_seconds=page.get("minimum_seconds"),
        )
        for index, page in enumerate(pages_data, start=1)
    )
    items = tuple(
        ChecklistItem(
            id=item.get("id", index),
            statement=item["statement"],
            audio_duration_seconds=int(item.get("audio_duration", 0)),
            audio_url=item.get("audio_url", ""),
        )
        for index, item in enumerate(items_data, start=1)
    )

    return ProtocolDefinition(
        id=data.get("id", study.get("protocol_id", "unknown")),
        study=StudyInfo(
            protocol_id=study.get("protocol_id", data.get("id", "unknown")),
            protocol_name=study.get("protocol_name", ""),
            version=str(study.get("version", "")),
            site_code=study.get("site_code", ""),
            site_name=study.get("site_name", ""),
            investigator_name=study.get("investigator_name", ""),
        ),
        pages=pages,
        checklist=items,
        content_hash=content_hash,
    )


def load_protocol(
    filename: str,
    protocols_dir: Path | None = None,
) -> ProtocolDefinition:
    """Load a protocol YAML file.

    Args:
        filename: Name of the protocol file (e.g., "cardio-2024-01.yaml")
        protocols_dir: Directory containing protocols (defaults to bundled)

    Returns:
        Parsed ProtocolDefinition including the content hash

    Raises:
        FileNotFoundError: If protocol file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    if protocols_dir is None:
        protocols_dir = PROTOCOLS_DIR

    filepath = protocols_dir / filename

    if not filepath.exists():
        raise FileNotFoundError(f"Protocol not found: {filepath}")

    content = filepath.read_text(encoding="utf-8")
    return parse_protocol(yaml.safe_load(content), compute_protocol_hash(content))
