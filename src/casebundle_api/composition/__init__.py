from casebundle_api.composition.entries import (
    CoverPageEntry,
    DividerEntry,
    DocumentEntry,
    Entry,
    FileMetadata,
    SectionBreakEntry,
    create_cover_page,
    create_divider,
    create_document_entry,
    create_section_break,
    entry_page_count,
    is_editable_entry,
    is_evidence_entry,
)
from casebundle_api.composition.labels import (
    assign_exhibit_labels,
    display_number,
    display_numbers,
    exhibit_label,
    section_label,
)
from casebundle_api.composition.notices import Notice, NoticeLog
from casebundle_api.composition.pagination import (
    assert_contiguous,
    document_count,
    recalculate_page_ranges,
    reorder_array,
    total_pages,
)
from casebundle_api.composition.reorder import (
    ReorderOrchestrator,
    ReorderOutcome,
    ReorderPhase,
    UndoWindow,
)
from casebundle_api.composition.store import CompositionStore, MutationOutcome

__all__ = [
    "CompositionStore",
    "CoverPageEntry",
    "DividerEntry",
    "DocumentEntry",
    "Entry",
    "FileMetadata",
    "MutationOutcome",
    "Notice",
    "NoticeLog",
    "ReorderOrchestrator",
    "ReorderOutcome",
    "ReorderPhase",
    "SectionBreakEntry",
    "UndoWindow",
    "assert_contiguous",
    "assign_exhibit_labels",
    "create_cover_page",
    "create_divider",
    "create_document_entry",
    "create_section_break",
    "display_number",
    "display_numbers",
    "document_count",
    "entry_page_count",
    "exhibit_label",
    "is_editable_entry",
    "is_evidence_entry",
    "recalculate_page_ranges",
    "reorder_array",
    "section_label",
    "total_pages",
]
