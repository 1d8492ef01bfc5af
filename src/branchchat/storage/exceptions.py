"""Storage-specific exceptions."""


class StorageError(Exception):
    """Base exception for storage operations."""


class DatabaseError(StorageError):
    """Database connection or query failure."""


class MigrationError(StorageError):
    """Schema migration failure."""


class CorruptStateError(StorageError):
    """Stored registry state failed to parse or validate."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Stored state '{key}' is unusable: {reason}")
