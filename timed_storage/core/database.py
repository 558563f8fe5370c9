"""Async SQLite backing store with SQLModel and SQLAlchemy 2.0.

Behaves as an ordered key -> text map with bounded range scans, plus the
parallel timestamp index used by the expiration engine. Callers pass keys
as segment tuples; the on-disk encoding stays private to this module.
"""

from contextlib import asynccontextmanager
from typing import Any, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, select

from timed_storage.core.config import Settings
from timed_storage.core.exceptions import StoreError
from timed_storage.core.keys import Key, decode_key, encode_key, prefix_bounds
from timed_storage.core.logging import get_logger
from timed_storage.models.cache import EntryTimestamp, StorageEntry

logger = get_logger(__name__)

# Stay well below SQLite's bound-parameter limit for IN (...) clauses
_IN_CHUNK = 500


def _chunks(items: Sequence[Any], size: int = _IN_CHUNK):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _bounded(column, lower: Optional[str], upper: Optional[str],
             inclusive_lower: bool, inclusive_upper: bool) -> list:
    clauses = []
    if lower is not None:
        clauses.append(column >= lower if inclusive_lower else column > lower)
    if upper is not None:
        clauses.append(column <= upper if inclusive_upper else column < upper)
    return clauses


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs = {"echo": self.settings.database_echo, "future": True}
            if self.settings.is_memory_database:
                # One shared connection, otherwise every checkout sees a fresh empty database
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully", url=self.settings.database_url)

        except SQLAlchemyError as e:
            logger.error("Database startup failed", error=str(e))
            raise StoreError("startup", str(e)) from e

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self, operation: str = "session"):
        """Get async database session.

        SQLAlchemy failures are rolled back and re-raised as StoreError.
        """
        if not self.async_session:
            raise StoreError(operation, "Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Store operation failed", operation=operation, error=str(e))
                raise StoreError(operation, str(e)) from e
            except Exception:
                await session.rollback()
                raise

    # ============================================================================
    # Entries
    # ============================================================================

    async def get_entry(self, key: Key) -> Optional[StorageEntry]:
        """Get the stored row for a key, or None."""
        async with self.get_session("get") as session:
            stmt = select(StorageEntry).where(StorageEntry.key == encode_key(key))
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def put_entry(self, key: Key, value: str, kind: Optional[str]) -> None:
        """Insert or replace the value stored under a key."""
        stored = encode_key(key)
        async with self.get_session("put") as session:
            stmt = select(StorageEntry).where(StorageEntry.key == stored)
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                existing.value = value
                existing.kind = kind
            else:
                session.add(StorageEntry(key=stored, value=value, kind=kind))

            await session.commit()

    async def delete_entry(self, key: Key) -> bool:
        """Delete a value and its timestamps. Returns True if a value existed."""
        stored = encode_key(key)
        async with self.get_session("delete") as session:
            result = await session.execute(delete(StorageEntry).where(StorageEntry.key == stored))
            await session.execute(delete(EntryTimestamp).where(EntryTimestamp.key == stored))
            await session.commit()
            return result.rowcount > 0

    async def delete_entries(self, keys: Sequence[Key]) -> int:
        """Delete many values and their timestamps in a single transaction."""
        if not keys:
            return 0

        stored = [encode_key(k) for k in keys]
        count = 0
        async with self.get_session("delete_many") as session:
            for chunk in _chunks(stored):
                result = await session.execute(delete(StorageEntry).where(StorageEntry.key.in_(chunk)))
                await session.execute(delete(EntryTimestamp).where(EntryTimestamp.key.in_(chunk)))
                count += result.rowcount
            await session.commit()
        return count

    async def scan(self, lower: Optional[Key] = None, upper: Optional[Key] = None,
                   inclusive_lower: bool = True, inclusive_upper: bool = True) -> List[StorageEntry]:
        """Entries between two keys in ascending key order.

        A missing (or root) bound leaves that side open.
        """
        return await self._scan(
            encode_key(lower) if lower else None,
            encode_key(upper) if upper else None,
            inclusive_lower,
            inclusive_upper,
        )

    async def scan_prefix(self, prefix: Key) -> List[StorageEntry]:
        """Entries equal to or nested under ``prefix``."""
        lower, upper = prefix_bounds(prefix)
        return await self._scan(lower, upper, True, False)

    async def delete_scan(self, lower: Optional[Key] = None, upper: Optional[Key] = None,
                          inclusive_lower: bool = True, inclusive_upper: bool = True) -> int:
        return await self._delete_scan(
            encode_key(lower) if lower else None,
            encode_key(upper) if upper else None,
            inclusive_lower,
            inclusive_upper,
        )

    async def delete_prefix(self, prefix: Key) -> int:
        lower, upper = prefix_bounds(prefix)
        return await self._delete_scan(lower, upper, True, False)

    async def _scan(self, lower: Optional[str], upper: Optional[str],
                    inclusive_lower: bool, inclusive_upper: bool) -> List[StorageEntry]:
        async with self.get_session("scan") as session:
            stmt = select(StorageEntry).order_by(StorageEntry.key)
            clauses = _bounded(StorageEntry.key, lower, upper, inclusive_lower, inclusive_upper)
            if clauses:
                stmt = stmt.where(*clauses)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _delete_scan(self, lower: Optional[str], upper: Optional[str],
                           inclusive_lower: bool, inclusive_upper: bool) -> int:
        async with self.get_session("delete_scan") as session:
            entry_stmt = delete(StorageEntry)
            stamp_stmt = delete(EntryTimestamp)
            entry_clauses = _bounded(StorageEntry.key, lower, upper, inclusive_lower, inclusive_upper)
            if entry_clauses:
                entry_stmt = entry_stmt.where(*entry_clauses)
                stamp_stmt = stamp_stmt.where(
                    *_bounded(EntryTimestamp.key, lower, upper, inclusive_lower, inclusive_upper)
                )
            result = await session.execute(entry_stmt)
            await session.execute(stamp_stmt)
            await session.commit()
            return result.rowcount

    # ============================================================================
    # Timestamp index
    # ============================================================================

    async def get_timestamps(self, key: Key) -> Optional[EntryTimestamp]:
        async with self.get_session("get_timestamps") as session:
            stmt = select(EntryTimestamp).where(EntryTimestamp.key == encode_key(key))
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def save_timestamps(self, key: Key, created: float, updated: float) -> None:
        stored = encode_key(key)
        async with self.get_session("save_timestamps") as session:
            stmt = select(EntryTimestamp).where(EntryTimestamp.key == stored)
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                existing.created = created
                existing.updated = updated
            else:
                session.add(EntryTimestamp(key=stored, created=created, updated=updated))

            await session.commit()

    async def delete_timestamps(self, key: Key) -> bool:
        async with self.get_session("delete_timestamps") as session:
            result = await session.execute(
                delete(EntryTimestamp).where(EntryTimestamp.key == encode_key(key))
            )
            await session.commit()
            return result.rowcount > 0

    async def get_tracked_keys(self, keys: Sequence[Key]) -> Set[Key]:
        """Subset of ``keys`` that currently carry timestamps."""
        if not keys:
            return set()

        stored = [encode_key(k) for k in keys]
        tracked: Set[Key] = set()
        async with self.get_session("get_tracked_keys") as session:
            for chunk in _chunks(stored):
                result = await session.execute(
                    select(EntryTimestamp.key).where(EntryTimestamp.key.in_(chunk))
                )
                tracked.update(decode_key(k) for k in result.scalars().all())
        return tracked

    async def get_min_timestamps(self) -> Tuple[Optional[float], Optional[float]]:
        """Smallest ``created`` and smallest ``updated`` across the whole index."""
        async with self.get_session("get_min_timestamps") as session:
            stmt = select(func.min(EntryTimestamp.created), func.min(EntryTimestamp.updated))
            result = await session.execute(stmt)
            min_created, min_updated = result.one()
            return min_created, min_updated

    async def get_expired_keys(self, updated_before: Optional[float] = None,
                               created_before: Optional[float] = None) -> List[Key]:
        """Keys whose ``updated`` or ``created`` is at or before the given cutoffs."""
        conditions = []
        if updated_before is not None:
            conditions.append(EntryTimestamp.updated <= updated_before)
        if created_before is not None:
            conditions.append(EntryTimestamp.created <= created_before)
        if not conditions:
            return []

        async with self.get_session("get_expired_keys") as session:
            stmt = select(EntryTimestamp.key).where(or_(*conditions)).order_by(EntryTimestamp.key)
            result = await session.execute(stmt)
            return [decode_key(k) for k in result.scalars().all()]
