"""SQLite-backed durable storage for the conversation registry."""

from branchchat.storage.base import Database, utcnow
from branchchat.storage.exceptions import (
    CorruptStateError,
    DatabaseError,
    MigrationError,
    StorageError,
)
from branchchat.storage.migrations import Migration, get_all_migrations
from branchchat.storage.registry_store import (
    SCHEMA_VERSION,
    STORAGE_KEY,
    RegistryState,
    RegistryStore,
    conversation_from_dict,
    conversation_to_dict,
)
from branchchat.storage.slot import KeyValueSlot

__all__ = [
    # Base
    "Database",
    "utcnow",
    # Exceptions
    "CorruptStateError",
    "DatabaseError",
    "MigrationError",
    "StorageError",
    # Migrations
    "Migration",
    "get_all_migrations",
    # Slots
    "KeyValueSlot",
    # Registry persistence
    "SCHEMA_VERSION",
    "STORAGE_KEY",
    "RegistryState",
    "RegistryStore",
    "conversation_from_dict",
    "conversation_to_dict",
]
