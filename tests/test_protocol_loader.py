"""Tests for the study protocol loader."""

from pathlib import Path

import pytest

from econsent.protocols import compute_protocol_hash, load_protocol
from econsent.protocols.loader import parse_protocol


class TestLoadProtocol:
    """Tests for loading protocol YAML files."""

    def test_bundled_protocol(self) -> None:
        """Test that the bundled cardiovascular protocol loads."""
        protocol = load_protocol("cardio-2024-01.yaml")

        assert protocol.id == "cardio-2024-01"
        assert protocol.study.protocol_id == "CARDIO-2024-01"
        assert protocol.total_pages == 24
        assert len(protocol.checklist) == 8
        assert [item.id for item in protocol.checklist] == list(range(1, 9))
        assert all(page.minimum_seconds == 15 for page in protocol.pages)

    def test_test_protocol(self, protocol) -> None:
        assert protocol.total_pages == 3
        assert protocol.page(2).title == "Risks and Benefits"
        assert protocol.checklist[1].audio_duration_seconds == 8
        assert protocol.checklist[0].audio_url == "/audio/item1.mp3"

    def test_content_hash_matches_file(self, protocol) -> None:
        """Test that the hash covers the raw YAML text."""
        path = Path(__file__).parent / "protocols" / "test-protocol.yaml"

        assert protocol.content_hash == compute_protocol_hash(path.read_text(encoding="utf-8"))
        assert len(protocol.content_hash) == 64

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_protocol("missing.yaml", tmp_path)

    def test_protocol_without_pages(self) -> None:
        with pytest.raises(ValueError, match="no document pages"):
            parse_protocol({"id": "empty", "checklist": {"items": [{"statement": "x"}]}}, "")

    def test_protocol_without_checklist(self) -> None:
        data = {"id": "empty", "document": {"pages": [{"title": "Only page"}]}}

        with pytest.raises(ValueError, match="no checklist items"):
            parse_protocol(data, "")

    def test_missing_ids_default_to_position(self) -> None:
        data = {
            "id": "minimal",
            "document": {"pages": [{"title": "One"}, {"title": "Two"}]},
            "checklist": {"items": [{"statement": "a"}, {"statement": "b"}]},
        }

        protocol = parse_protocol(data, "hash")

        assert [page.page for page in protocol.pages] == [1, 2]
        assert [item.id for item in protocol.checklist] == [1, 2]
        assert protocol.pages[0].minimum_seconds is None
