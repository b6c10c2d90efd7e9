"""Blob store interfaces and implementations.

The blob store holds raw file payloads tagged with their owning form and field.
Records get a store-assigned ``file_id``. Deletes are grouped in a
:class:`BlobTransaction` and applied atomically when the transaction scope
exits without an error.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional, TypeVar

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError

from form_persistence.config import DEFAULT_CHUNK_SIZE
from form_persistence.errors import StorageUnavailableError, TransactionError
from form_persistence.models.files import FileRecord, IncomingFile
from form_persistence.observability.logging import get_logger
from form_persistence.storage.db import (
    DEFAULT_SQLITE_URL,
    make_engine,
    make_session_factory,
)
from form_persistence.storage.models import Base, StoredFile

logger = get_logger(__name__)

T = TypeVar("T")

ChunkCallback = Callable[[int, int], None]


class BlobTransaction:
    """A unit of work collecting deletes against the blob store."""

    def __init__(self):
        self.file_ids: list[int] = []
        self.fields: list[tuple[str, str]] = []

    def delete(self, file_id: int) -> None:
        """Queues the deletion of one record."""
        self.file_ids.append(file_id)

    def delete_field(self, form_id: str, field_name: str) -> None:
        """Queues the deletion of every record of ``(form_id, field_name)``."""
        self.fields.append((form_id, field_name))

    @property
    def empty(self) -> bool:
        return not self.file_ids and not self.fields


class BlobStore(ABC):
    """Abstract interface for the binary payload store."""

    def __init__(self):
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        """Opens the store. A second call is a no-op."""
        if self._initialized:
            return
        await self._open()
        self._initialized = True
        logger.debug(f"Blob store {type(self).__name__} initialized.")

    def _require_init(self) -> None:
        if not self._initialized:
            raise StorageUnavailableError("Blob store is not initialized")

    async def save_file(
        self,
        file: IncomingFile,
        form_id: str,
        field_name: str,
        on_chunk: Optional[ChunkCallback] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> FileRecord:
        """Reads ``file`` completely and stores it as a new record.

        Args:
            file: The file to store.
            form_id: The owning form.
            field_name: The owning file field.
            on_chunk: Called as ``on_chunk(loaded, total)`` with the bytes of
                this file read so far after every chunk.
            chunk_size: Read granularity in bytes.

        Returns:
            The stored record, including its assigned ``file_id``.

        Raises:
            StorageUnavailableError: If ``init()`` has not completed.
            TransactionError: If the write fails.
        """
        self._require_init()
        buffer = bytearray()
        for chunk in file.iter_chunks(chunk_size):
            buffer.extend(chunk)
            if on_chunk is not None:
                on_chunk(len(buffer), file.size)

        return await self._insert(
            form_id=form_id,
            field_name=field_name,
            file_name=file.file_name,
            file_type=file.file_type,
            file_size=file.size,
            last_modified=file.last_modified,
            payload=bytes(buffer),
            saved_time=datetime.now(timezone.utc),
        )

    async def get_files(self, form_id: str, field_name: str) -> list[FileRecord]:
        """Returns every record of ``(form_id, field_name)`` in insertion order."""
        self._require_init()
        return await self._select(form_id, field_name)

    async def list_files(self, form_id: str) -> list[FileRecord]:
        """Returns every record of ``form_id`` across all fields."""
        self._require_init()
        return await self._select(form_id, None)

    async def clear_files(self, form_id: str) -> None:
        """Removes every record of ``form_id`` across all fields."""
        self._require_init()
        await self._delete_form(form_id)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[BlobTransaction]:
        """Scoped transaction for delete-then-insert sequences.

        Queued deletes are applied together when the block exits normally and
        discarded when it raises.
        """
        self._require_init()
        txn = BlobTransaction()
        yield txn
        if not txn.empty:
            await self._apply(txn)

    @abstractmethod
    async def _open(self) -> None:
        pass  # pragma: no cover

    @abstractmethod
    async def _insert(self, **values) -> FileRecord:
        pass  # pragma: no cover

    @abstractmethod
    async def _select(self, form_id: str, field_name: Optional[str]) -> list[FileRecord]:
        pass  # pragma: no cover

    @abstractmethod
    async def _delete_form(self, form_id: str) -> None:
        pass  # pragma: no cover

    @abstractmethod
    async def _apply(self, txn: BlobTransaction) -> None:
        pass  # pragma: no cover


class InMemoryBlobStore(BlobStore):
    """Blob store kept in a dictionary.

    Useful for unit tests and for hosts that only need crash tolerance within
    one process.
    """

    def __init__(self):
        super().__init__()
        self._records: dict[int, FileRecord] = {}
        self._next_id = 1

    async def _open(self) -> None:
        pass

    async def _insert(self, **values) -> FileRecord:
        record = FileRecord(file_id=self._next_id, **values)
        self._next_id += 1
        self._records[record.file_id] = record
        return record

    async def _select(self, form_id: str, field_name: Optional[str]) -> list[FileRecord]:
        return [
            r
            for r in self._records.values()
            if r.form_id == form_id and (field_name is None or r.field_name == field_name)
        ]

    async def _delete_form(self, form_id: str) -> None:
        self._records = {k: r for k, r in self._records.items() if r.form_id != form_id}

    async def _apply(self, txn: BlobTransaction) -> None:
        doomed_ids = set(txn.file_ids)
        doomed_fields = set(txn.fields)
        self._records = {
            k: r
            for k, r in self._records.items()
            if k not in doomed_ids and (r.form_id, r.field_name) not in doomed_fields
        }


def _to_record(row: StoredFile) -> FileRecord:
    saved_time = row.saved_time
    if saved_time.tzinfo is None:
        saved_time = saved_time.replace(tzinfo=timezone.utc)
    return FileRecord(
        file_id=row.file_id,
        form_id=row.form_id,
        field_name=row.field_name,
        file_name=row.file_name,
        file_type=row.file_type,
        file_size=row.file_size,
        last_modified=row.last_modified,
        payload=row.payload,
        saved_time=saved_time,
    )


class SQLBlobStore(BlobStore):
    """Blob store backed by the ``form_files`` table."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine=None,
        lock: Optional[threading.Lock] = None,
    ):
        """Initialize the store. No connection is made before ``init()``.

        Args:
            database_url: SQLAlchemy connection string. Ignored when
                ``engine`` is given.
            engine: An existing engine to share with the durable tier.
            lock: Lock shared with other stores on the same engine.
        """
        super().__init__()
        self._database_url = database_url or DEFAULT_SQLITE_URL
        self.engine = engine
        self.SessionLocal = None
        self._lock = lock or threading.Lock()

    async def _run(self, fn: Callable[[], T], failure: str) -> T:
        def guarded() -> T:
            with self._lock:
                return fn()

        try:
            return await asyncio.to_thread(guarded)
        except SQLAlchemyError as e:
            raise TransactionError(f"{failure}: {e}") from e

    async def _open(self) -> None:
        def op() -> None:
            if self.engine is None:
                self.engine = make_engine(self._database_url)
            Base.metadata.create_all(self.engine)
            self.SessionLocal = make_session_factory(self.engine)

        try:
            await asyncio.to_thread(op)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Could not open blob store: {e}") from e

    async def _insert(self, **values) -> FileRecord:
        def op() -> FileRecord:
            with self.SessionLocal() as session:
                row = StoredFile(**values)
                session.add(row)
                session.commit()
                return _to_record(row)

        return await self._run(op, "Failed to add file")

    async def _select(self, form_id: str, field_name: Optional[str]) -> list[FileRecord]:
        def op() -> list[FileRecord]:
            with self.SessionLocal() as session:
                stmt = (
                    select(StoredFile)
                    .where(StoredFile.form_id == form_id)
                    .order_by(StoredFile.file_id)
                )
                if field_name is not None:
                    stmt = stmt.where(StoredFile.field_name == field_name)
                rows = session.execute(stmt).scalars().all()
                return [_to_record(r) for r in rows]

        return await self._run(op, "Failed to read files")

    async def _delete_form(self, form_id: str) -> None:
        def op() -> None:
            with self.SessionLocal() as session:
                session.execute(delete(StoredFile).where(StoredFile.form_id == form_id))
                session.commit()

        await self._run(op, "Failed to clear files")

    async def _apply(self, txn: BlobTransaction) -> None:
        def op() -> None:
            conditions = []
            if txn.file_ids:
                conditions.append(StoredFile.file_id.in_(txn.file_ids))
            for form_id, field_name in txn.fields:
                conditions.append(
                    (StoredFile.form_id == form_id)
                    & (StoredFile.field_name == field_name)
                )
            with self.SessionLocal() as session:
                with session.begin():
                    session.execute(delete(StoredFile).where(or_(*conditions)))

        await self._run(op, "Transaction failed")
