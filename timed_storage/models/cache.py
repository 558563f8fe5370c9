"""SQLite tables backing the timed key-value store.

Values and their expiration timestamps live in parallel tables keyed by
the same encoded key, so a non-expiring entry simply has no timestamp row.
"""

from typing import Optional
from sqlmodel import SQLModel, Field


class StorageEntry(SQLModel, table=True):
    """Stored value with an explicit representation tag."""

    __tablename__ = "cache_entries"

    key: str = Field(primary_key=True, max_length=1024)
    value: str
    kind: Optional[str] = Field(default=None, max_length=16)  # ValueKind, NULL for legacy rows


class EntryTimestamp(SQLModel, table=True):
    """Expiration bookkeeping for a single entry (Unix timestamps)."""

    __tablename__ = "entry_timestamps"

    key: str = Field(primary_key=True, max_length=1024)
    created: float = Field(index=True)
    updated: float = Field(index=True)
