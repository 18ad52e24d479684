from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


RowType = Literal["document", "section-break", "cover-page", "divider"]
PersistedRowType = Literal["file", "component", "artifact"]
CompositionMode = Literal["bundle", "affidavit"]
ExhibitLabelStyle = Literal["alphabetical", "tab", "initials"]
NoticeLevel = Literal["success", "info", "warning", "error"]
MutationStatus = Literal["committed", "rolled_back", "kept_locally", "undone"]
EditableField = Literal[
    "description",
    "section_label",
    "date",
    "disputed",
    "content",
    "generated_page_count",
]


class ArtifactEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    container_id: str
    sequence_order: int
    row_type: PersistedRowType
    file_id: str | None = None
    config_json: str | None = None
    label_override: str | None = None
    created_at: str = ""


class EntryView(BaseModel):
    id: str
    row_type: RowType
    display_number: str
    description: str
    page_start: int
    page_end: int
    page_count: int
    disputed: bool = False
    section_label: str | None = None
    file_id: str | None = None
    file_path: str | None = None
    date: str | None = None
    exhibit_label: str | None = None
    generated_page_count: int | None = None


class NoticeView(BaseModel):
    level: NoticeLevel
    message: str
    description: str | None = None
    action: Literal["undo"] | None = None


class CompositionResponse(BaseModel):
    container_id: str
    mode: CompositionMode
    entries: list[EntryView]
    total_pages: int
    document_count: int
    reorder_phase: str
    undo_available: bool
    notices: list[NoticeView] = Field(default_factory=list)


class CompositionMutationResponse(CompositionResponse):
    status: MutationStatus
    entry_id: str | None = None
    persisted: bool = True


class ReorderRequest(BaseModel):
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


class DocumentInsertRequest(BaseModel):
    file_id: str = Field(min_length=1, max_length=256)
    original_name: str = Field(min_length=1, max_length=512)
    page_count: int = Field(ge=1, le=100_000)
    path: str = Field(default="", max_length=4096)
    date: str = Field(default="", max_length=64)
    position: int | None = Field(default=None, ge=0)


class SectionBreakInsertRequest(BaseModel):
    section_label: str | None = Field(default=None, max_length=128)
    position: int | None = Field(default=None, ge=0)


class GeneratedPageInsertRequest(BaseModel):
    description: str | None = Field(default=None, max_length=512)
    content: str | None = None
    position: int | None = Field(default=None, ge=0)


class EntryFieldUpdateRequest(BaseModel):
    field: EditableField
    value: str | bool | int


class ErrorBody(BaseModel):
    code: Literal[
        "VALIDATION_ERROR",
        "PERSISTENCE_REJECTED",
        "INVARIANT_VIOLATION",
        "CONCURRENT_REORDER",
        "UNDO_UNAVAILABLE",
        "ENTRY_NOT_FOUND",
        "INTERNAL_ERROR",
    ]
    message: str
    trace_id: str
    policy_reason: str | None = None


class ErrorEnvelope(BaseModel):
    error: ErrorBody
