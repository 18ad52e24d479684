from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from casebundle_api.composition import (
    CompositionStore,
    CoverPageEntry,
    DividerEntry,
    DocumentEntry,
    Entry,
    MutationOutcome,
    Notice,
    ReorderOutcome,
    SectionBreakEntry,
    display_numbers,
    entry_page_count,
)
from casebundle_api.errors import ApiError
from casebundle_api.schemas import (
    CompositionMutationResponse,
    CompositionResponse,
    DocumentInsertRequest,
    EntryFieldUpdateRequest,
    EntryView,
    ErrorEnvelope,
    GeneratedPageInsertRequest,
    NoticeView,
    ReorderRequest,
    SectionBreakInsertRequest,
)
from casebundle_api.services.composition_registry import CompositionRegistry
from casebundle_api.services.file_metadata import FileCatalog, FileMetadata


_RECENT_NOTICE_LIMIT = 5

T = TypeVar("T")


def entry_view(entry: Entry, display_number: str) -> EntryView:
    view = EntryView(
        id=entry.id,
        row_type=entry.row_type,
        display_number=display_number,
        description=entry.description,
        page_start=entry.page_start,
        page_end=entry.page_end,
        page_count=entry_page_count(entry),
        disputed=entry.disputed,
    )
    if isinstance(entry, DocumentEntry):
        view.file_id = entry.file_id
        view.file_path = entry.file_path
        view.date = entry.date
        view.exhibit_label = entry.exhibit_label
    elif isinstance(entry, SectionBreakEntry):
        view.description = entry.section_label
        view.section_label = entry.section_label
    elif isinstance(entry, (CoverPageEntry, DividerEntry)):
        view.date = entry.date
        view.generated_page_count = entry.generated_page_count
    return view


def notice_view(notice: Notice) -> NoticeView:
    return NoticeView(
        level=notice.level,
        message=notice.message,
        description=notice.description,
        action=notice.action,
    )


def composition_response(store: CompositionStore) -> CompositionResponse:
    entries = store.entries
    numbers = display_numbers(entries)
    return CompositionResponse(
        container_id=store.container_id,
        mode=store.mode,
        entries=[entry_view(entry, number) for entry, number in zip(entries, numbers)],
        total_pages=store.total_pages,
        document_count=store.document_count,
        reorder_phase=store.reorder_phase.value,
        undo_available=store.undo_window is not None,
        notices=[notice_view(notice) for notice in store.notices(_RECENT_NOTICE_LIMIT)],
    )


def mutation_response(
    store: CompositionStore,
    outcome: MutationOutcome | ReorderOutcome,
    *,
    entry_id: str | None = None,
) -> CompositionMutationResponse:
    snapshot = composition_response(store)
    return CompositionMutationResponse(
        **snapshot.model_dump(),
        status=outcome.status,
        entry_id=entry_id,
        persisted=outcome.persisted,
    )


def build_compositions_router(
    *,
    registry: CompositionRegistry,
    file_catalog: FileCatalog | None = None,
) -> APIRouter:
    router = APIRouter(prefix="/api/compositions", tags=["compositions"])

    def _error_response(
        *,
        status_code: int,
        trace_id: str,
        code: str,
        message: str,
        policy_reason: str | None = None,
    ) -> JSONResponse:
        payload = ErrorEnvelope(
            error={
                "code": code,
                "message": message,
                "trace_id": trace_id,
                "policy_reason": policy_reason,
            }
        )
        return JSONResponse(
            status_code=status_code,
            content=payload.model_dump(mode="json"),
            headers={"x-trace-id": trace_id},
        )

    async def _run(
        request: Request,
        response: Response,
        action: Callable[[], Awaitable[T]],
    ) -> T | JSONResponse:
        trace_id = getattr(request.state, "trace_id", "")
        response.headers["x-trace-id"] = trace_id
        try:
            return await action()
        except ApiError as exc:
            return _error_response(
                status_code=exc.status_code,
                trace_id=trace_id,
                code=exc.code,
                message=exc.message,
            )

    @router.get("/{container_id}/entries", response_model=CompositionResponse)
    async def list_entries(
        container_id: str, request: Request, response: Response
    ) -> CompositionResponse | JSONResponse:
        async def action() -> CompositionResponse:
            return composition_response(await registry.get(container_id))

        return await _run(request, response, action)

    @router.post("/{container_id}/reload", response_model=CompositionResponse)
    async def reload_entries(
        container_id: str, request: Request, response: Response
    ) -> CompositionResponse | JSONResponse:
        async def action() -> CompositionResponse:
            return composition_response(await registry.reload(container_id))

        return await _run(request, response, action)

    @router.post("/{container_id}/reorder", response_model=CompositionMutationResponse)
    async def reorder_entries(
        container_id: str,
        payload: ReorderRequest,
        request: Request,
        response: Response,
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            store = await registry.get(container_id)
            entry_id = (
                store.entries[payload.from_index].id
                if payload.from_index < len(store.entries)
                else None
            )
            outcome = await store.reorder(payload.from_index, payload.to_index)
            return mutation_response(store, outcome, entry_id=entry_id)

        return await _run(request, response, action)

    @router.post("/{container_id}/undo", response_model=CompositionMutationResponse)
    async def undo_reorder(
        container_id: str, request: Request, response: Response
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            store = await registry.get(container_id)
            outcome = await store.undo_last_reorder()
            return mutation_response(store, outcome)

        return await _run(request, response, action)

    @router.post(
        "/{container_id}/entries/documents",
        response_model=CompositionMutationResponse,
        status_code=201,
    )
    async def insert_document(
        container_id: str,
        payload: DocumentInsertRequest,
        request: Request,
        response: Response,
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            file = FileMetadata(
                file_id=payload.file_id,
                path=payload.path,
                original_name=payload.original_name,
                page_count=payload.page_count,
            )
            if file_catalog is not None:
                file_catalog.register(file)
            store = await registry.get(container_id)
            outcome = await store.insert_document(
                file, date=payload.date, position=payload.position
            )
            return mutation_response(store, outcome, entry_id=_outcome_entry_id(outcome))

        return await _run(request, response, action)

    @router.post(
        "/{container_id}/entries/section-breaks",
        response_model=CompositionMutationResponse,
        status_code=201,
    )
    async def insert_section_break(
        container_id: str,
        payload: SectionBreakInsertRequest,
        request: Request,
        response: Response,
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            store = await registry.get(container_id)
            outcome = await store.insert_section_break(
                payload.section_label, position=payload.position
            )
            return mutation_response(store, outcome, entry_id=_outcome_entry_id(outcome))

        return await _run(request, response, action)

    @router.post(
        "/{container_id}/entries/cover-pages",
        response_model=CompositionMutationResponse,
        status_code=201,
    )
    async def insert_cover_page(
        container_id: str,
        payload: GeneratedPageInsertRequest,
        request: Request,
        response: Response,
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            store = await registry.get(container_id)
            outcome = await store.insert_cover_page(
                payload.content,
                payload.description,
                position=0 if payload.position is None else payload.position,
            )
            return mutation_response(store, outcome, entry_id=_outcome_entry_id(outcome))

        return await _run(request, response, action)

    @router.post(
        "/{container_id}/entries/dividers",
        response_model=CompositionMutationResponse,
        status_code=201,
    )
    async def insert_divider(
        container_id: str,
        payload: GeneratedPageInsertRequest,
        request: Request,
        response: Response,
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            store = await registry.get(container_id)
            outcome = await store.insert_divider(
                payload.description, payload.content, position=payload.position
            )
            return mutation_response(store, outcome, entry_id=_outcome_entry_id(outcome))

        return await _run(request, response, action)

    @router.patch(
        "/{container_id}/entries/{entry_id}",
        response_model=CompositionMutationResponse,
    )
    async def update_entry(
        container_id: str,
        entry_id: str,
        payload: EntryFieldUpdateRequest,
        request: Request,
        response: Response,
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            store = await registry.get(container_id)
            outcome = await store.edit_field(entry_id, payload.field, payload.value)
            return mutation_response(store, outcome, entry_id=entry_id)

        return await _run(request, response, action)

    @router.delete(
        "/{container_id}/entries/{entry_id}",
        response_model=CompositionMutationResponse,
    )
    async def delete_entry(
        container_id: str,
        entry_id: str,
        request: Request,
        response: Response,
    ) -> CompositionMutationResponse | JSONResponse:
        async def action() -> CompositionMutationResponse:
            store = await registry.get(container_id)
            outcome = await store.delete(entry_id)
            return mutation_response(store, outcome, entry_id=entry_id)

        return await _run(request, response, action)

    return router


def _outcome_entry_id(outcome: MutationOutcome) -> str | None:
    return outcome.entry.id if outcome.entry is not None else None
