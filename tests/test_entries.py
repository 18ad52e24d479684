from __future__ import annotations

import json
import logging

import pytest

from casebundle_api.composition import (
    CoverPageEntry,
    DividerEntry,
    DocumentEntry,
    SectionBreakEntry,
    create_cover_page,
    create_divider,
    create_document_entry,
    create_section_break,
    entry_page_count,
    is_editable_entry,
    is_evidence_entry,
)
from casebundle_api.composition.entries import (
    entry_config,
    entry_config_json,
    entry_from_artifact,
    persisted_row_type,
)
from casebundle_api.schemas import ArtifactEntry
from casebundle_api.services import FileMetadata


def _artifact(**overrides) -> ArtifactEntry:
    payload = {
        "id": "row-1",
        "container_id": "bundle-1",
        "sequence_order": 0,
        "row_type": "component",
        "file_id": None,
        "config_json": None,
    }
    payload.update(overrides)
    return ArtifactEntry(**payload)


def test_factories_apply_defaults() -> None:
    document = create_document_entry(file_id="f1", description="lease.pdf", page_count=7)
    cover = create_cover_page()
    divider = create_divider("Blank Page 1", "Reserved")
    section = create_section_break("TAB A", entry_id="fixed-id")

    assert (document.page_start, document.page_end) == (1, 7)
    assert cover.description == "Cover Page"
    assert cover.generated_page_count == 1
    assert divider.content == "Reserved"
    assert section.id == "fixed-id"
    assert document.id != cover.id


def test_document_factory_rejects_empty_files() -> None:
    with pytest.raises(ValueError):
        create_document_entry(file_id="f1", description="empty.pdf", page_count=0)


def test_entry_page_count_per_variant() -> None:
    assert entry_page_count(DocumentEntry(id="d", file_id="f", description="", page_start=4, page_end=9)) == 6
    assert entry_page_count(SectionBreakEntry(id="s", section_label="TAB A", page_start=3, page_end=3)) == 1
    assert entry_page_count(CoverPageEntry(id="c", description="Cover Page", generated_page_count=2)) == 2
    assert entry_page_count(DividerEntry(id="b", description="Blank Page 1", generated_page_count=4)) == 4


def test_entry_classification_helpers() -> None:
    document = create_document_entry(file_id="f1", description="a.pdf", page_count=1)
    cover = create_cover_page()

    assert is_evidence_entry(document) is True
    assert is_evidence_entry(cover) is False
    assert is_editable_entry(cover) is True
    assert is_editable_entry(create_divider("Blank Page 1")) is True
    assert is_editable_entry(document) is False
    assert is_editable_entry(create_section_break("TAB A")) is False


def test_persisted_row_type_maps_documents_to_files() -> None:
    assert persisted_row_type(create_document_entry(file_id="f", description="", page_count=1)) == "file"
    assert persisted_row_type(create_section_break("TAB A")) == "component"
    assert persisted_row_type(create_cover_page()) == "component"
    assert persisted_row_type(create_divider("Blank Page 1")) == "component"


def test_entry_config_carries_template_and_fields() -> None:
    divider = DividerEntry(id="b", description="Blank Page 2", generated_page_count=3, content="Intentionally blank")

    assert entry_config(create_section_break("TAB C")) == {
        "template": "section-break",
        "section_label": "TAB C",
    }
    assert json.loads(entry_config_json(divider)) == {
        "template": "divider",
        "description": "Blank Page 2",
        "generated_page_count": 3,
        "date": "",
        "content": "Intentionally blank",
    }


def test_component_rows_rebuild_their_variant() -> None:
    cover = create_cover_page("Applicant's record", entry_id="cover-1")
    section = create_section_break("TAB B", entry_id="tab-b")

    rebuilt_cover = entry_from_artifact(
        _artifact(id="cover-1", config_json=entry_config_json(cover))
    )
    rebuilt_section = entry_from_artifact(
        _artifact(id="tab-b", config_json=entry_config_json(section))
    )

    assert rebuilt_cover == cover
    assert rebuilt_section == section


def test_file_rows_prefer_file_metadata_for_page_count() -> None:
    file = FileMetadata(file_id="f1", path="/uploads/f1.pdf", original_name="lease.pdf", page_count=12)
    artifact = _artifact(
        row_type="file",
        file_id="f1",
        config_json=json.dumps({"description": "", "page_count": 3, "disputed": True}),
    )

    rebuilt = entry_from_artifact(artifact, file=file)

    assert isinstance(rebuilt, DocumentEntry)
    assert entry_page_count(rebuilt) == 12
    assert rebuilt.description == "lease.pdf"
    assert rebuilt.file_path == "/uploads/f1.pdf"
    assert rebuilt.disputed is True


def test_file_rows_fall_back_to_stored_page_count() -> None:
    artifact = _artifact(
        row_type="file",
        file_id="f1",
        config_json=json.dumps({"description": "Tenancy agreement", "page_count": 3}),
    )

    rebuilt = entry_from_artifact(artifact)

    assert entry_page_count(rebuilt) == 3
    assert rebuilt.description == "Tenancy agreement"


def test_unknown_rows_load_as_placeholder_documents(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING)

    rebuilt = entry_from_artifact(_artifact(config_json=json.dumps({"template": "signature-page"})))

    assert isinstance(rebuilt, DocumentEntry)
    assert rebuilt.description == "Unknown"
    assert entry_page_count(rebuilt) == 1
    assert "placeholder" in caplog.text


def test_unreadable_config_is_ignored() -> None:
    rebuilt = entry_from_artifact(
        _artifact(row_type="file", file_id="f1", config_json="{not json")
    )

    assert isinstance(rebuilt, DocumentEntry)
    assert rebuilt.description == "Unknown"
    assert entry_page_count(rebuilt) == 1
