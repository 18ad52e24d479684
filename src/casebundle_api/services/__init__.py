from casebundle_api.services.entry_persistence import (
    EntryPersistence,
    InMemoryEntryPersistence,
    RedisEntryPersistence,
    build_entry_persistence,
    call_persistence,
)
from casebundle_api.services.file_metadata import (
    FileCatalog,
    FileMetadata,
    FileMetadataProvider,
    InMemoryFileCatalog,
)

__all__ = [
    "EntryPersistence",
    "FileCatalog",
    "FileMetadata",
    "FileMetadataProvider",
    "InMemoryEntryPersistence",
    "InMemoryFileCatalog",
    "RedisEntryPersistence",
    "build_entry_persistence",
    "call_persistence",
]
