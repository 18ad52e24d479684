"""Entry model for one row of a bundle or affidavit composition.

An entry is one of four closed variants. Page ranges on every variant are
derived by :func:`casebundle_api.composition.pagination.recalculate_page_ranges`
and are never authored directly; the page *count* is authored (documents carry
it from file metadata, generated pages carry ``generated_page_count``).
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, ClassVar, TypeAlias, assert_never
import uuid

from casebundle_api.schemas import ArtifactEntry, PersistedRowType, RowType
from casebundle_api.services.file_metadata import FileMetadata


LOGGER = logging.getLogger(__name__)

SECTION_BREAK_TEMPLATE = "section-break"
COVER_PAGE_TEMPLATE = "cover-page"
DIVIDER_TEMPLATE = "divider"


@dataclass(frozen=True)
class DocumentEntry:
    id: str
    file_id: str
    description: str
    page_start: int
    page_end: int
    file_path: str = ""
    date: str = ""
    disputed: bool = False
    exhibit_label: str | None = None

    row_type: ClassVar[RowType] = "document"


@dataclass(frozen=True)
class SectionBreakEntry:
    id: str
    section_label: str
    page_start: int = 1
    page_end: int = 1
    description: str = ""
    disputed: bool = False

    row_type: ClassVar[RowType] = "section-break"


@dataclass(frozen=True)
class CoverPageEntry:
    id: str
    description: str
    generated_page_count: int = 1
    content: str | None = None
    page_start: int = 1
    page_end: int = 1
    date: str = ""
    disputed: bool = False

    row_type: ClassVar[RowType] = "cover-page"


@dataclass(frozen=True)
class DividerEntry:
    id: str
    description: str
    generated_page_count: int = 1
    content: str | None = None
    page_start: int = 1
    page_end: int = 1
    date: str = ""
    disputed: bool = False

    row_type: ClassVar[RowType] = "divider"


Entry: TypeAlias = DocumentEntry | SectionBreakEntry | CoverPageEntry | DividerEntry
GeneratedPageEntry: TypeAlias = CoverPageEntry | DividerEntry


def new_entry_id() -> str:
    return str(uuid.uuid4())


def entry_page_count(entry: Entry) -> int:
    """Number of pages the entry occupies, independent of where it sits."""
    if isinstance(entry, SectionBreakEntry):
        return 1
    if isinstance(entry, (CoverPageEntry, DividerEntry)):
        return max(int(entry.generated_page_count), 1)
    if isinstance(entry, DocumentEntry):
        return entry.page_end - entry.page_start + 1
    assert_never(entry)


def is_ordinal_bearing(entry: Entry) -> bool:
    return not isinstance(entry, SectionBreakEntry)


def is_editable_entry(entry: Entry) -> bool:
    return isinstance(entry, (CoverPageEntry, DividerEntry))


def is_evidence_entry(entry: Entry) -> bool:
    return isinstance(entry, DocumentEntry)


def create_document_entry(
    *,
    file_id: str,
    description: str,
    page_count: int,
    file_path: str = "",
    date: str = "",
    entry_id: str | None = None,
) -> DocumentEntry:
    if page_count < 1:
        raise ValueError(f"page_count must be >= 1 for file_id='{file_id}', got {page_count}")
    return DocumentEntry(
        id=entry_id or new_entry_id(),
        file_id=file_id,
        description=description,
        file_path=file_path,
        date=date,
        page_start=1,
        page_end=page_count,
    )


def create_section_break(section_label: str, *, entry_id: str | None = None) -> SectionBreakEntry:
    return SectionBreakEntry(id=entry_id or new_entry_id(), section_label=section_label)


def create_cover_page(
    content: str | None = None,
    description: str = "Cover Page",
    *,
    entry_id: str | None = None,
) -> CoverPageEntry:
    return CoverPageEntry(
        id=entry_id or new_entry_id(),
        description=description,
        content=content,
    )


def create_divider(
    title: str,
    content: str | None = None,
    *,
    entry_id: str | None = None,
) -> DividerEntry:
    return DividerEntry(id=entry_id or new_entry_id(), description=title, content=content)


def persisted_row_type(entry: Entry) -> PersistedRowType:
    if isinstance(entry, DocumentEntry):
        return "file"
    if isinstance(entry, (SectionBreakEntry, CoverPageEntry, DividerEntry)):
        return "component"
    assert_never(entry)


def entry_config(entry: Entry) -> dict[str, Any]:
    """Variant fields stored in the persisted ``config_json`` payload."""
    if isinstance(entry, DocumentEntry):
        return {
            "description": entry.description,
            "date": entry.date,
            "disputed": entry.disputed,
            "page_count": entry_page_count(entry),
        }
    if isinstance(entry, SectionBreakEntry):
        return {
            "template": SECTION_BREAK_TEMPLATE,
            "section_label": entry.section_label,
        }
    if isinstance(entry, CoverPageEntry):
        template = COVER_PAGE_TEMPLATE
    elif isinstance(entry, DividerEntry):
        template = DIVIDER_TEMPLATE
    else:
        assert_never(entry)
    payload: dict[str, Any] = {
        "template": template,
        "description": entry.description,
        "generated_page_count": entry.generated_page_count,
        "date": entry.date,
    }
    if entry.content is not None:
        payload["content"] = entry.content
    return payload


def entry_config_json(entry: Entry) -> str:
    return json.dumps(entry_config(entry), sort_keys=True)


def _parse_config(artifact: ArtifactEntry) -> dict[str, Any]:
    if not artifact.config_json:
        return {}
    try:
        parsed = json.loads(artifact.config_json)
    except ValueError:
        LOGGER.warning(
            "Ignoring unreadable entry config payload",
            extra={"entry_id": artifact.id, "container_id": artifact.container_id},
        )
        return {}
    if not isinstance(parsed, dict):
        return {}
    return parsed


def _positive_int(value: Any, default: int = 1) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 1 else default


def entry_from_artifact(
    artifact: ArtifactEntry,
    *,
    file: FileMetadata | None = None,
) -> Entry:
    """Rebuild an entry from its persisted shadow.

    Page ranges come back as placeholders carrying the right size; callers
    must recalculate the whole list afterwards.
    """
    config = _parse_config(artifact)

    if artifact.row_type == "file" and artifact.file_id:
        page_count = file.page_count if file else _positive_int(config.get("page_count"))
        description = str(config.get("description") or "") or (
            file.original_name if file else "Unknown"
        )
        return DocumentEntry(
            id=artifact.id,
            file_id=artifact.file_id,
            file_path=file.path if file else "",
            description=description,
            date=str(config.get("date") or ""),
            disputed=bool(config.get("disputed", False)),
            page_start=1,
            page_end=max(page_count, 1),
        )

    if artifact.row_type == "component":
        template = str(config.get("template") or "")
        if template == SECTION_BREAK_TEMPLATE:
            return SectionBreakEntry(
                id=artifact.id,
                section_label=str(config.get("section_label") or "Section"),
            )
        if template == COVER_PAGE_TEMPLATE:
            return CoverPageEntry(
                id=artifact.id,
                description=str(config.get("description") or "Cover Page"),
                content=config.get("content"),
                generated_page_count=_positive_int(config.get("generated_page_count")),
                date=str(config.get("date") or ""),
            )
        if template == DIVIDER_TEMPLATE:
            return DividerEntry(
                id=artifact.id,
                description=str(config.get("description") or "Blank Page"),
                content=config.get("content"),
                generated_page_count=_positive_int(config.get("generated_page_count")),
                date=str(config.get("date") or ""),
            )

    LOGGER.warning(
        "Unrecognised persisted entry; loading as placeholder document",
        extra={
            "entry_id": artifact.id,
            "container_id": artifact.container_id,
            "row_type": artifact.row_type,
        },
    )
    return DocumentEntry(
        id=artifact.id,
        file_id=artifact.file_id or "",
        description="Unknown",
        page_start=1,
        page_end=1,
    )


__all__ = [
    "CoverPageEntry",
    "DividerEntry",
    "DocumentEntry",
    "Entry",
    "FileMetadata",
    "GeneratedPageEntry",
    "SectionBreakEntry",
    "create_cover_page",
    "create_divider",
    "create_document_entry",
    "create_section_break",
    "entry_config",
    "entry_config_json",
    "entry_from_artifact",
    "entry_page_count",
    "is_editable_entry",
    "is_evidence_entry",
    "is_ordinal_bearing",
    "new_entry_id",
    "persisted_row_type",
]
