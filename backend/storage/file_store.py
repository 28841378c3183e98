"""Quota-enforcing file store with time-based eviction.

The store owns the running total of stored bytes and decides whether a new
file may be admitted. Each public operation opens its own session and leaves
it either committed or rolled back, then closed.

Usage:
    from storage.file_store import file_store

    await file_store.open()
    result = await file_store.admit(FileRecord(name="a.txt", content=data))
    if result.admitted:
        record = await file_store.lookup(result.file_id)
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import defer
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import Settings, settings
from models.base import Base
from models.file_record import FileRecord
from storage.errors import (
    AdmissionResult,
    AdmissionStatus,
    ConfigurationError,
    LookupResult,
    LookupStatus,
    StorageUnavailable,
    SweepResult,
)
from storage.ids import INVALID_ID, to_external_id, to_internal_id

logger = logging.getLogger(__name__)

# Errors worth retrying on write and reporting as "storage unavailable" on read
TRANSIENT_ERRORS = (SQLAlchemyError, OSError)

MAX_RETRY_WAIT_SECONDS = 30


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FileStore:
    """Admits, looks up and evicts uploaded files.

    ``total_bytes_stored`` is recomputed from the database on open() and kept
    in step with every successful insert and delete afterwards.
    """

    def __init__(
        self,
        database_url: str,
        *,
        id_offset: int = 1234,
        max_file_size: int = 100_000_000,
        max_total_capacity: int = 300_000_000,
        retention_days: float = 1,
        write_attempts: int = 5,
        retry_backoff_seconds: float = 0.5,
    ):
        if id_offset <= 0:
            raise ValueError(f"id_offset must be positive, got {id_offset}")
        if max_file_size <= 0 or max_total_capacity <= 0:
            raise ValueError("Storage limits must be positive")
        if write_attempts < 1:
            raise ValueError(f"write_attempts must be at least 1, got {write_attempts}")

        self.database_url = database_url
        self.id_offset = id_offset
        self.max_file_size = max_file_size
        self.max_total_capacity = max_total_capacity
        self.retention = timedelta(days=retention_days)
        self.write_attempts = write_attempts
        self.retry_backoff_seconds = retry_backoff_seconds

        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._total_bytes_stored = 0
        # Held from the capacity check until the new total is recorded
        self._admission_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, config: Settings) -> "FileStore":
        return cls(
            config.database_url,
            id_offset=config.file_id_offset,
            max_file_size=config.max_file_size,
            max_total_capacity=config.max_total_capacity,
            retention_days=config.retention_days,
            write_attempts=config.store_write_attempts,
            retry_backoff_seconds=config.store_retry_backoff_seconds,
        )

    # ── lifecycle ────────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._session_factory is not None

    @property
    def total_bytes_stored(self) -> int:
        return self._total_bytes_stored

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.max_total_capacity - self._total_bytes_stored)

    async def open(self) -> None:
        """Connect to the database and rebuild the running total from stored sizes."""
        if self.is_open:
            return

        engine = create_async_engine(self.database_url, echo=False, pool_pre_ping=True)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=[FileRecord.__table__])
            async with session_factory() as session:
                total = await session.scalar(
                    select(func.coalesce(func.sum(FileRecord.size_bytes), 0))
                )
        except TRANSIENT_ERRORS:
            await engine.dispose()
            raise

        self._engine = engine
        self._session_factory = session_factory
        self._total_bytes_stored = int(total or 0)
        logger.info(
            "File store open: %d bytes stored, capacity %d bytes",
            self._total_bytes_stored,
            self.max_total_capacity,
        )

    async def close(self) -> None:
        if self._engine is None:
            return
        engine = self._engine
        self._engine = None
        self._session_factory = None
        await engine.dispose()
        logger.info("File store closed")

    def _require_open(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise ConfigurationError("File store is not open")
        return self._session_factory

    # ── admission ────────────────────────────────────────────────────

    async def admit(self, record: FileRecord) -> AdmissionResult:
        """Validate and store a new file.

        Checks run in order and the first failure wins: file size, then
        remaining capacity, then file name. Rejections are returned, not
        raised.

        Returns:
            AdmissionResult carrying the external file ID when admitted.

        Raises:
            StorageUnavailable: If every write attempt failed.
            ConfigurationError: If the store is not open.
            ValueError: If the record has already been stored.
        """
        self._require_open()
        if inspect(record).has_identity:
            raise ValueError(f"File {record.id} has already been stored")
        size = record.size_bytes

        async with self._admission_lock:
            if size > self.max_file_size:
                logger.info(f"Rejected {record.name!r}: {size} bytes exceeds file limit")
                return AdmissionResult(AdmissionStatus.FILE_TOO_LARGE)
            if size + self._total_bytes_stored > self.max_total_capacity:
                logger.info(f"Rejected {record.name!r}: {size} bytes would exceed capacity")
                return AdmissionResult(AdmissionStatus.CAPACITY_EXCEEDED)
            if not record.name:
                return AdmissionResult(AdmissionStatus.NO_FILE_SELECTED)

            internal_id = await self._persist_with_retry(record)
            self._total_bytes_stored += size

        file_id = to_external_id(internal_id, self.id_offset)
        logger.info(
            "Stored %r as file %d (%d bytes, %d/%d used)",
            record.name,
            file_id,
            size,
            self._total_bytes_stored,
            self.max_total_capacity,
        )
        return AdmissionResult(AdmissionStatus.ADMITTED, file_id=file_id)

    async def _persist_with_retry(self, record: FileRecord) -> int:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.write_attempts),
                wait=wait_exponential(
                    multiplier=self.retry_backoff_seconds, max=MAX_RETRY_WAIT_SECONDS
                ),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    return await self._persist(record)
        except TRANSIENT_ERRORS as e:
            logger.error(f"Giving up on {record.name!r} after {self.write_attempts} attempts: {e}")
            raise StorageUnavailable(
                f"Could not store {record.name!r} after {self.write_attempts} attempts"
            ) from e

    async def _persist(self, record: FileRecord) -> int:
        """Insert the record in a single transaction and return its database ID."""
        session_factory = self._require_open()
        async with session_factory() as session:
            async with session.begin():
                session.add(record)
            return record.id

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            "Storing file failed (attempt %d/%d), retrying in %.1fs: %s",
            retry_state.attempt_number,
            self.write_attempts,
            retry_state.next_action.sleep,
            retry_state.outcome.exception(),
        )

    # ── lookups ──────────────────────────────────────────────────────

    async def _lookup(self, external_id: str | int, column) -> LookupResult:
        session_factory = self._require_open()
        internal_id = to_internal_id(external_id, self.id_offset)
        if internal_id == INVALID_ID:
            return LookupResult(LookupStatus.NOT_FOUND)

        try:
            async with session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(column).where(FileRecord.id == internal_id)
                    )
                    value = result.scalars().first()
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Lookup of file {external_id} failed: {e}")
            return LookupResult(LookupStatus.STORAGE_UNAVAILABLE)

        if value is None:
            return LookupResult(LookupStatus.NOT_FOUND)
        return LookupResult(LookupStatus.FOUND, value)

    async def fetch(self, external_id: str | int) -> LookupResult:
        """Load the full record, content included."""
        return await self._lookup(external_id, FileRecord)

    async def fetch_name(self, external_id: str | int) -> LookupResult:
        return await self._lookup(external_id, FileRecord.name)

    async def fetch_exists(self, external_id: str | int) -> LookupResult:
        result = await self._lookup(external_id, FileRecord.id)
        if result.found:
            return LookupResult(LookupStatus.FOUND, True)
        return result

    async def lookup(self, external_id: str | int) -> FileRecord | None:
        """Return the stored record, or None on a miss or storage failure."""
        result = await self.fetch(external_id)
        return result.value if result.found else None

    async def name_of(self, external_id: str | int) -> str:
        """Return the file name, or "" on a miss or storage failure."""
        result = await self.fetch_name(external_id)
        return result.value if result.found else ""

    async def exists(self, external_id: str | int) -> bool:
        return (await self.fetch_exists(external_id)).found

    # ── eviction ─────────────────────────────────────────────────────

    async def evict_expired(
        self, now: datetime | None = None, retention: timedelta | None = None
    ) -> SweepResult:
        """Delete every file older than the retention period.

        Each delete runs in its own transaction; a failed delete is logged and
        counted, and the sweep moves on. Does nothing if the store is closed.

        Args:
            now: Reference time (defaults to the current UTC time).
            retention: Age threshold (defaults to the configured retention).

        Returns:
            SweepResult with counts of scanned, evicted and failed records.

        Raises:
            StorageUnavailable: If the records could not be listed.
        """
        sweep = SweepResult()
        session_factory = self._session_factory
        if session_factory is None:
            logger.debug("File store is not open, skipping sweep")
            return sweep

        now = _as_utc(now or datetime.now(timezone.utc))
        retention = self.retention if retention is None else retention

        try:
            async with session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(FileRecord).options(defer(FileRecord.content))
                    )
                    records = list(result.scalars().all())
        except TRANSIENT_ERRORS as e:
            raise StorageUnavailable(f"Could not list stored files: {e}") from e

        sweep.scanned = len(records)
        for record in records:
            if now - _as_utc(record.uploaded_at) <= retention:
                continue
            try:
                deleted = await self._delete(session_factory, record.id)
            except TRANSIENT_ERRORS as e:
                sweep.failures += 1
                logger.error(f"Failed to evict file {record.id} ({record.name!r}): {e}")
                continue
            if deleted:
                self._total_bytes_stored -= record.size_bytes
                sweep.evicted += 1
                sweep.freed_bytes += record.size_bytes

        if sweep.evicted or sweep.failures:
            logger.info(
                "Sweep complete: %d scanned, %d evicted (%d bytes freed), %d failed",
                sweep.scanned,
                sweep.evicted,
                sweep.freed_bytes,
                sweep.failures,
            )
        return sweep

    async def _delete(self, session_factory: async_sessionmaker[AsyncSession], internal_id: int) -> bool:
        async with session_factory() as session:
            async with session.begin():
                result = await session.execute(delete(FileRecord).where(FileRecord.id == internal_id))
        return result.rowcount == 1


file_store = FileStore.from_settings(settings)
