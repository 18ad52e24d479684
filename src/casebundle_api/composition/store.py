from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Any, Callable, Collection, Sequence

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
    entry_config_json,
    entry_from_artifact,
    persisted_row_type,
)
from casebundle_api.composition.labels import (
    assign_exhibit_labels,
    default_section_break_label,
)
from casebundle_api.composition.notices import Notice, NoticeLog, Notifier
from casebundle_api.composition.pagination import (
    document_count,
    find_invariant_violations,
    recalculate_page_ranges,
    total_pages,
)
from casebundle_api.composition.reorder import (
    DEFAULT_TRACKED_ROW_TYPES,
    DEFAULT_UNDO_WINDOW_SECONDS,
    ReorderOrchestrator,
    ReorderOutcome,
    ReorderPhase,
    UndoWindow,
)
from casebundle_api.errors import (
    EntryNotFoundError,
    InvalidEntryFieldError,
    InvariantViolationError,
    PersistenceRejectedError,
)
from casebundle_api.schemas import (
    CompositionMode,
    ExhibitLabelStyle,
    MutationStatus,
    NoticeLevel,
    PersistedRowType,
)
from casebundle_api.services.entry_persistence import EntryPersistence, call_persistence
from casebundle_api.services.file_metadata import FileMetadataProvider
from casebundle_api.telemetry import CompositionMetrics


LOGGER = logging.getLogger(__name__)

_REMOVED_LABELS = {
    "document": "Document removed from bundle",
    "section-break": "Section break removed",
    "cover-page": "Cover page removed",
    "divider": "Blank page removed",
}


@dataclass(frozen=True)
class MutationOutcome:
    status: MutationStatus
    entries: tuple[Entry, ...]
    entry: Entry | None
    notice: Notice
    error: PersistenceRejectedError | None = None

    @property
    def persisted(self) -> bool:
        return self.error is None


class CompositionStore:
    """Owns the ordered entry list of one composition.

    Every mutation republishes a fully recalculated list before the
    persistence call returns. Reorders roll back on failure; inserts,
    deletes and edits keep the local change and report the failure.
    """

    def __init__(
        self,
        *,
        container_id: str,
        persistence: EntryPersistence,
        file_catalog: FileMetadataProvider | None = None,
        mode: CompositionMode = "bundle",
        exhibit_style: ExhibitLabelStyle = "alphabetical",
        exhibit_prefix: str = "",
        undo_window_seconds: float = DEFAULT_UNDO_WINDOW_SECONDS,
        tracked_row_types: Collection[PersistedRowType] = DEFAULT_TRACKED_ROW_TYPES,
        strict_invariants: bool = True,
        notifier: Notifier | None = None,
        max_notices: int = 50,
        metrics: CompositionMetrics | None = None,
        time_fn: Callable[[], float] | None = None,
    ) -> None:
        normalized_container_id = str(container_id).strip()
        if not normalized_container_id:
            raise ValueError("container_id is required")
        if exhibit_style == "initials" and not exhibit_prefix.strip():
            raise ValueError("exhibit_prefix is required for the initials exhibit style")
        self._container_id = normalized_container_id
        self._persistence = persistence
        self._file_catalog = file_catalog
        self._mode: CompositionMode = mode
        self._exhibit_style: ExhibitLabelStyle = exhibit_style
        self._exhibit_prefix = exhibit_prefix
        self._strict_invariants = strict_invariants
        self._metrics = metrics
        self._entries: tuple[Entry, ...] = ()
        # ids the adapter has confirmed storing
        self._persisted_ids: set[str] = set()
        self._notices = NoticeLog(max_notices=max_notices, notifier=notifier)
        self._orchestrator = ReorderOrchestrator(
            container_id=self._container_id,
            persistence=persistence,
            publish=self._publish,
            notices=self._notices,
            project=self._project,
            undo_window_seconds=undo_window_seconds,
            tracked_row_types=tracked_row_types,
            metrics=metrics,
            time_fn=time_fn,
            is_persisted=self.is_persisted,
        )

    @property
    def container_id(self) -> str:
        return self._container_id

    @property
    def mode(self) -> CompositionMode:
        return self._mode

    @property
    def entries(self) -> tuple[Entry, ...]:
        return self._entries

    def get_entries(self) -> tuple[Entry, ...]:
        return self._entries

    @property
    def total_pages(self) -> int:
        return total_pages(self._entries)

    @property
    def document_count(self) -> int:
        return document_count(self._entries)

    @property
    def reorder_phase(self) -> ReorderPhase:
        return self._orchestrator.phase

    @property
    def undo_window(self) -> UndoWindow | None:
        return self._orchestrator.undo_window

    def notices(self, limit: int | None = None) -> tuple[Notice, ...]:
        return self._notices.recent(limit)

    def is_persisted(self, entry_id: str) -> bool:
        return entry_id in self._persisted_ids

    def _project(self, entries: Sequence[Entry]) -> tuple[Entry, ...]:
        projected = recalculate_page_ranges(entries)
        if self._mode == "affidavit":
            projected = assign_exhibit_labels(
                projected,
                style=self._exhibit_style,
                prefix=self._exhibit_prefix,
            )
        return projected

    def _publish(self, entries: tuple[Entry, ...]) -> None:
        violations = find_invariant_violations(entries)
        if violations:
            if self._metrics is not None:
                self._metrics.record_invariant_violation()
            if self._strict_invariants:
                raise InvariantViolationError("; ".join(violations))
            LOGGER.error(
                "Composition page ranges are inconsistent",
                extra={"container_id": self._container_id, "violations": list(violations)},
            )
        self._entries = entries

    def _index_of(self, entry_id: str) -> int:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        raise EntryNotFoundError(entry_id)

    def _find(self, entry_id: str) -> Entry:
        return self._entries[self._index_of(entry_id)]

    def _notice(
        self,
        level: NoticeLevel,
        message: str,
        description: str | None = None,
    ) -> Notice:
        return self._notices.publish(
            Notice(
                level=level,
                message=message,
                description=description,
                container_id=self._container_id,
            )
        )

    def _record(self, operation: str, *, persisted: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_mutation(operation=operation, persisted=persisted)

    async def _before_mutation(self) -> None:
        await self._orchestrator.wait_until_settled()
        self._orchestrator.discard_undo()

    async def _resequence(self) -> bool:
        ordered_ids = self._orchestrator.tracked_ids(self._entries)
        if not ordered_ids:
            return True
        result = await call_persistence(
            self._persistence.reorder,
            self._container_id,
            ordered_ids,
            operation="resequence",
            container_id=self._container_id,
        )
        return bool(result)

    async def load(self) -> tuple[Entry, ...]:
        """Rebuild the composition from the persisted rows, in ``sequence_order``."""
        await self._before_mutation()
        artifacts = await call_persistence(
            self._persistence.list_entries,
            self._container_id,
            operation="list_entries",
            container_id=self._container_id,
        )
        if artifacts is None:
            if self._metrics is not None:
                self._metrics.record_persistence_failure(operation="list_entries")
            self._notice("error", "Failed to load entries")
            return self._entries
        rows = sorted(artifacts, key=lambda row: (row.sequence_order, row.created_at, row.id))
        entries: list[Entry] = []
        for row in rows:
            file = None
            if row.file_id and self._file_catalog is not None:
                file = self._file_catalog.get(row.file_id)
            entries.append(entry_from_artifact(row, file=file))
        self._publish(self._project(entries))
        self._persisted_ids = {entry.id for entry in entries}
        LOGGER.info(
            "Loaded composition",
            extra={"container_id": self._container_id, "entry_count": len(entries)},
        )
        return self._entries

    def clear(self) -> None:
        self._orchestrator.discard_undo()
        self._publish(())
        self._persisted_ids.clear()
        self._notices.clear()

    async def reorder(self, from_index: int, to_index: int) -> ReorderOutcome:
        return await self._orchestrator.reorder(self._entries, from_index, to_index)

    async def undo_last_reorder(self) -> ReorderOutcome:
        return await self._orchestrator.undo()

    async def _insert(
        self,
        entry: Entry,
        *,
        position: int | None,
        operation: str,
        success_message: str,
        failure_message: str,
        ref_id: str | None = None,
    ) -> MutationOutcome:
        await self._before_mutation()
        current = self._entries
        index = len(current) if position is None else max(0, min(position, len(current)))
        self._publish(self._project(current[:index] + (entry,) + current[index:]))
        placed = self._find(entry.id)

        created = await call_persistence(
            self._persistence.create_entry,
            self._container_id,
            index,
            persisted_row_type(entry),
            ref_id,
            entry_config_json(entry),
            entry_id=entry.id,
            operation=operation,
            container_id=self._container_id,
        )
        if created is None:
            self._record(operation, persisted=False)
            LOGGER.warning(
                "Entry kept locally after persistence rejected it",
                extra={"container_id": self._container_id, "entry_id": entry.id},
            )
            return MutationOutcome(
                status="kept_locally",
                entries=self._entries,
                entry=placed,
                notice=self._notice("warning", failure_message, "The entry was kept but not saved."),
                error=PersistenceRejectedError(
                    failure_message,
                    operation=operation,
                    container_id=self._container_id,
                    entry_id=entry.id,
                ),
            )
        self._persisted_ids.add(entry.id)

        if index < len(self._entries) - 1 and not await self._resequence():
            self._record(operation, persisted=False)
            message = "Entry added but its position could not be saved"
            return MutationOutcome(
                status="kept_locally",
                entries=self._entries,
                entry=placed,
                notice=self._notice("warning", message),
                error=PersistenceRejectedError(
                    message,
                    operation="resequence",
                    container_id=self._container_id,
                    entry_id=entry.id,
                ),
            )

        self._record(operation, persisted=True)
        return MutationOutcome(
            status="committed",
            entries=self._entries,
            entry=placed,
            notice=self._notice("success", success_message),
        )

    async def insert_document(
        self,
        file: FileMetadata,
        *,
        date: str = "",
        position: int | None = None,
    ) -> MutationOutcome:
        entry = create_document_entry(
            file_id=file.file_id,
            description=file.original_name,
            page_count=file.page_count,
            file_path=file.path,
            date=date,
        )
        return await self._insert(
            entry,
            position=position,
            operation="insert_document",
            success_message=f'Added "{file.original_name}" to bundle',
            failure_message="Failed to add document to index",
            ref_id=file.file_id,
        )

    async def insert_section_break(
        self,
        section_label: str | None = None,
        *,
        position: int | None = None,
    ) -> MutationOutcome:
        label = (section_label or "").strip() or default_section_break_label(self._entries)
        return await self._insert(
            create_section_break(label),
            position=position,
            operation="insert_section_break",
            success_message=f"Added section break: {label}",
            failure_message="Failed to add section break",
        )

    async def insert_cover_page(
        self,
        content: str | None = None,
        description: str | None = None,
        *,
        position: int | None = 0,
    ) -> MutationOutcome:
        entry = create_cover_page(content, (description or "").strip() or "Cover Page")
        return await self._insert(
            entry,
            position=position,
            operation="insert_cover_page",
            success_message="Added cover page",
            failure_message="Failed to add cover page",
        )

    async def insert_divider(
        self,
        title: str | None = None,
        content: str | None = None,
        *,
        position: int | None = None,
    ) -> MutationOutcome:
        divider_count = sum(1 for entry in self._entries if isinstance(entry, DividerEntry))
        resolved_title = (title or "").strip() or f"Blank Page {divider_count + 1}"
        return await self._insert(
            create_divider(resolved_title, content),
            position=position,
            operation="insert_divider",
            success_message=f"Added blank page: {resolved_title}",
            failure_message="Failed to add blank page",
        )

    async def delete(self, entry_id: str) -> MutationOutcome:
        await self._before_mutation()
        index = self._index_of(entry_id)
        removed = self._entries[index]
        was_last = index == len(self._entries) - 1
        self._publish(self._project(self._entries[:index] + self._entries[index + 1 :]))

        deleted = True
        if self.is_persisted(entry_id):
            deleted = await call_persistence(
                self._persistence.delete_entry,
                entry_id,
                operation="delete_entry",
                container_id=self._container_id,
            )
        self._persisted_ids.discard(entry_id)
        if not deleted:
            self._record("delete", persisted=False)
            message = f"Failed to remove {removed.row_type.replace('-', ' ')} from the stored bundle"
            LOGGER.warning(
                "Entry removed locally after persistence rejected the delete",
                extra={"container_id": self._container_id, "entry_id": entry_id},
            )
            return MutationOutcome(
                status="kept_locally",
                entries=self._entries,
                entry=removed,
                notice=self._notice("warning", message, "The entry was removed locally only."),
                error=PersistenceRejectedError(
                    message,
                    operation="delete",
                    container_id=self._container_id,
                    entry_id=entry_id,
                ),
            )

        if not was_last and not await self._resequence():
            self._record("delete", persisted=False)
            message = "Entry removed but the remaining order could not be saved"
            return MutationOutcome(
                status="kept_locally",
                entries=self._entries,
                entry=removed,
                notice=self._notice("warning", message),
                error=PersistenceRejectedError(
                    message,
                    operation="resequence",
                    container_id=self._container_id,
                    entry_id=entry_id,
                ),
            )

        self._record("delete", persisted=True)
        return MutationOutcome(
            status="committed",
            entries=self._entries,
            entry=removed,
            notice=self._notice("success", _REMOVED_LABELS[removed.row_type]),
        )

    async def edit_field(self, entry_id: str, field: str, value: Any) -> MutationOutcome:
        await self._before_mutation()
        index = self._index_of(entry_id)
        updated = apply_field(self._entries[index], field, value)
        entries = self._entries[:index] + (updated,) + self._entries[index + 1 :]
        if field == "generated_page_count":
            entries = self._project(entries)
        self._publish(entries)
        placed = self._entries[index]

        saved = await call_persistence(
            self._persistence.update_entry,
            entry_id,
            config_json=entry_config_json(placed),
            operation="update_entry",
            container_id=self._container_id,
        )
        if saved is None:
            self._record("edit", persisted=False)
            message = "Change kept locally but could not be saved"
            return MutationOutcome(
                status="kept_locally",
                entries=self._entries,
                entry=placed,
                notice=self._notice("warning", message),
                error=PersistenceRejectedError(
                    message,
                    operation="edit",
                    container_id=self._container_id,
                    entry_id=entry_id,
                ),
            )

        self._record("edit", persisted=True)
        return MutationOutcome(
            status="committed",
            entries=self._entries,
            entry=placed,
            notice=self._notice("success", f"Updated {field.replace('_', ' ')}"),
        )


def _require_text(field: str, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidEntryFieldError(f"{field} must be a string")
    return value


def apply_field(entry: Entry, field: str, value: Any) -> Entry:
    """Return ``entry`` with one user-editable field changed."""
    if field == "description":
        text = _require_text(field, value)
        if isinstance(entry, SectionBreakEntry):
            return replace(entry, section_label=text)
        return replace(entry, description=text)

    if field == "section_label":
        if not isinstance(entry, SectionBreakEntry):
            raise InvalidEntryFieldError("section_label only applies to section breaks")
        return replace(entry, section_label=_require_text(field, value))

    if field == "date":
        if isinstance(entry, SectionBreakEntry):
            raise InvalidEntryFieldError("date does not apply to section breaks")
        return replace(entry, date=_require_text(field, value))

    if field == "disputed":
        if not isinstance(entry, DocumentEntry):
            raise InvalidEntryFieldError("disputed only applies to documents")
        if not isinstance(value, bool):
            raise InvalidEntryFieldError("disputed must be a boolean")
        return replace(entry, disputed=value)

    if field == "content":
        if not isinstance(entry, (CoverPageEntry, DividerEntry)):
            raise InvalidEntryFieldError("content only applies to cover pages and dividers")
        return replace(entry, content=_require_text(field, value))

    if field == "generated_page_count":
        if not isinstance(entry, (CoverPageEntry, DividerEntry)):
            raise InvalidEntryFieldError(
                "generated_page_count only applies to cover pages and dividers"
            )
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidEntryFieldError("generated_page_count must be an integer >= 1")
        return replace(entry, generated_page_count=value)

    raise InvalidEntryFieldError(f"Unknown entry field: {field!r}")


__all__ = ["CompositionStore", "MutationOutcome", "apply_field"]
