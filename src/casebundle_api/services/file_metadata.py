from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Protocol


@dataclass(frozen=True)
class FileMetadata:
    file_id: str
    path: str
    original_name: str
    page_count: int


class FileMetadataProvider(Protocol):
    def get(self, file_id: str) -> FileMetadata | None: ...


class FileCatalog(FileMetadataProvider, Protocol):
    def register(self, file: FileMetadata) -> FileMetadata: ...


class InMemoryFileCatalog:
    def __init__(self, files: list[FileMetadata] | tuple[FileMetadata, ...] = ()) -> None:
        self._lock = Lock()
        self._files: dict[str, FileMetadata] = {}
        for file in files:
            self.register(file)

    def register(self, file: FileMetadata) -> FileMetadata:
        file_id = str(file.file_id).strip()
        if not file_id:
            raise ValueError("file_id is required")
        if int(file.page_count) < 1:
            raise ValueError(
                f"page_count must be >= 1 for file_id='{file_id}', got {file.page_count}"
            )
        with self._lock:
            self._files[file_id] = file
        return file

    def get(self, file_id: str) -> FileMetadata | None:
        with self._lock:
            return self._files.get(file_id)


__all__ = ["FileCatalog", "FileMetadata", "FileMetadataProvider", "InMemoryFileCatalog"]
