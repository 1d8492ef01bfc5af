"""Schema migrations for the branchchat database."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Migration:
    """A single schema migration."""

    version: int
    name: str
    statements: list[str]


MIGRATION_001_KV_SLOT = Migration(
    version=1,
    name="kv_slot",
    statements=[
        """
        CREATE TABLE schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """,
        # One row per durable slot; the registry lives in a single key
        """
        CREATE TABLE kv_slot (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX idx_kv_slot_updated ON kv_slot(updated_at)",
    ],
)

ALL_MIGRATIONS: list[Migration] = [
    MIGRATION_001_KV_SLOT,
]


def get_all_migrations() -> list[Migration]:
    """Return all migrations in version order."""
    return ALL_MIGRATIONS
