from __future__ import annotations

import pytest

from casebundle_api.composition import (
    CoverPageEntry,
    DocumentEntry,
    SectionBreakEntry,
    assign_exhibit_labels,
    exhibit_label,
)


def _doc(entry_id: str) -> DocumentEntry:
    return DocumentEntry(
        id=entry_id,
        file_id=f"file-{entry_id}",
        description=f"{entry_id}.pdf",
        page_start=1,
        page_end=1,
    )


def test_exhibit_label_styles() -> None:
    assert exhibit_label(0) == "Exhibit A"
    assert exhibit_label(26) == "Exhibit AA"
    assert exhibit_label(0, style="tab") == "Tab 1"
    assert exhibit_label(4, style="initials", prefix="JS") == "JS-5"


def test_initials_style_requires_a_prefix() -> None:
    with pytest.raises(ValueError):
        exhibit_label(0, style="initials", prefix="  ")


def test_assign_exhibit_labels_numbers_documents_only() -> None:
    entries = [
        CoverPageEntry(id="cover", description="Cover Page"),
        _doc("a"),
        SectionBreakEntry(id="s", section_label="TAB A"),
        _doc("b"),
    ]

    labelled = assign_exhibit_labels(entries, style="alphabetical")

    assert labelled[0] is entries[0]
    assert labelled[2] is entries[2]
    assert [entry.exhibit_label for entry in labelled if isinstance(entry, DocumentEntry)] == [
        "Exhibit A",
        "Exhibit B",
    ]
    assert entries[1].exhibit_label is None


def test_assign_exhibit_labels_follows_document_order() -> None:
    labelled = assign_exhibit_labels([_doc("b"), _doc("a")], style="tab")

    assert [(entry.id, entry.exhibit_label) for entry in labelled] == [
        ("b", "Tab 1"),
        ("a", "Tab 2"),
    ]
