from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)


class PersistenceRejectedError(ApiError):
    def __init__(
        self,
        message: str = "Persistence adapter rejected the change",
        *,
        operation: str = "unknown",
        container_id: str | None = None,
        entry_id: str | None = None,
    ) -> None:
        super().__init__(code="PERSISTENCE_REJECTED", message=message, status_code=502)
        self.operation = operation
        self.container_id = container_id
        self.entry_id = entry_id


class InvariantViolationError(ApiError):
    def __init__(self, message: str = "Composition page ranges are inconsistent") -> None:
        super().__init__(code="INVARIANT_VIOLATION", message=message, status_code=500)


class ConcurrentReorderRejectedError(ApiError):
    def __init__(self, message: str = "A reorder is already in flight") -> None:
        super().__init__(code="CONCURRENT_REORDER", message=message, status_code=409)


class UndoUnavailableError(ApiError):
    def __init__(self, message: str = "No reorder is available to undo") -> None:
        super().__init__(code="UNDO_UNAVAILABLE", message=message, status_code=409)


class EntryNotFoundError(ApiError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(
            code="ENTRY_NOT_FOUND",
            message=f"Entry '{entry_id}' is not part of this composition",
            status_code=404,
        )
        self.entry_id = entry_id


class InvalidEntryFieldError(ApiError):
    def __init__(self, message: str = "Field cannot be edited on this entry") -> None:
        super().__init__(code="VALIDATION_ERROR", message=message, status_code=422)


class InvalidReorderIndexError(ApiError):
    def __init__(self, message: str = "Reorder index is out of range") -> None:
        super().__init__(code="VALIDATION_ERROR", message=message, status_code=422)
