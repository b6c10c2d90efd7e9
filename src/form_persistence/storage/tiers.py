"""Text tier interfaces and implementations.

A tier is an asynchronous string key/value store. The session tier lives only
as long as the current process; the durable tier survives restarts.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from form_persistence.errors import StorageUnavailableError
from form_persistence.storage.db import (
    DEFAULT_SQLITE_URL,
    make_engine,
    make_session_factory,
)
from form_persistence.storage.models import Base, TierEntry

T = TypeVar("T")


class KeyValueTier(ABC):
    """Abstract interface for a text storage tier."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Returns the value stored under ``key``, or None."""
        pass  # pragma: no cover

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Stores ``value`` under ``key``, replacing any previous value."""
        pass  # pragma: no cover

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Removes ``key``. Removing a missing key is a no-op."""
        pass  # pragma: no cover

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """Lists the stored keys starting with ``prefix``, sorted."""
        pass  # pragma: no cover


class InMemoryTier(KeyValueTier):
    """Process-local tier. Used as the session tier.

    A new instance models a new process: nothing written to a previous
    instance is visible.
    """

    def __init__(self):
        self._items: dict[str, str] = {}

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._items if k.startswith(prefix))


class SQLTier(KeyValueTier):
    """Durable tier backed by a SQL table."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine=None,
        lock: Optional[threading.Lock] = None,
    ):
        """Initialize the tier.

        Args:
            database_url: SQLAlchemy connection string. Ignored when
                ``engine`` is given.
            engine: An existing engine to share with other stores.
            lock: Lock shared with other stores on the same engine.
        """
        if engine is None:
            engine = make_engine(database_url or DEFAULT_SQLITE_URL)
        self.engine = engine
        Base.metadata.create_all(self.engine)
        self.SessionLocal = make_session_factory(self.engine)
        self._lock = lock or threading.Lock()

    async def _run(self, fn: Callable[[], T]) -> T:
        def guarded() -> T:
            with self._lock:
                return fn()

        try:
            return await asyncio.to_thread(guarded)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Durable tier unavailable: {e}") from e

    async def get_item(self, key: str) -> Optional[str]:
        def op() -> Optional[str]:
            with self.SessionLocal() as session:
                row = session.get(TierEntry, key)
                return row.value if row is not None else None

        return await self._run(op)

    async def set_item(self, key: str, value: str) -> None:
        def op() -> None:
            with self.SessionLocal() as session:
                row = session.get(TierEntry, key)
                now = datetime.now(timezone.utc)
                if row is None:
                    session.add(TierEntry(key=key, value=value, updated_at=now))
                else:
                    row.value = value
                    row.updated_at = now
                session.commit()

        await self._run(op)

    async def remove_item(self, key: str) -> None:
        def op() -> None:
            with self.SessionLocal() as session:
                session.execute(delete(TierEntry).where(TierEntry.key == key))
                session.commit()

        await self._run(op)

    async def keys(self, prefix: str = "") -> list[str]:
        def op() -> list[str]:
            with self.SessionLocal() as session:
                stmt = select(TierEntry.key).order_by(TierEntry.key)
                if prefix:
                    stmt = stmt.where(TierEntry.key.startswith(prefix, autoescape=True))
                return list(session.execute(stmt).scalars().all())

        return await self._run(op)
