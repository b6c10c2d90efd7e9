"""Bundles the session tier, the durable tier and the blob store of a form."""

import threading
from dataclasses import dataclass, replace
from typing import Optional

from form_persistence.storage.blob_store import (
    BlobStore,
    InMemoryBlobStore,
    SQLBlobStore,
)
from form_persistence.storage.db import DEFAULT_SQLITE_URL, make_engine
from form_persistence.storage.tiers import InMemoryTier, KeyValueTier, SQLTier


@dataclass
class FormStorage:
    """The three stores a form persists into.

    One instance may be shared by any number of forms; each form only touches
    keys and records of its own ``form_id``.
    """

    session: KeyValueTier
    durable: KeyValueTier
    blobs: BlobStore

    @classmethod
    def in_memory(cls) -> "FormStorage":
        return cls(
            session=InMemoryTier(),
            durable=InMemoryTier(),
            blobs=InMemoryBlobStore(),
        )

    @classmethod
    def from_url(
        cls,
        database_url: str = DEFAULT_SQLITE_URL,
        session: Optional[KeyValueTier] = None,
    ) -> "FormStorage":
        """Durable tier and blob store on one database, session tier in memory."""
        engine = make_engine(database_url)
        lock = threading.Lock()
        return cls(
            session=session or InMemoryTier(),
            durable=SQLTier(engine=engine, lock=lock),
            blobs=SQLBlobStore(engine=engine, lock=lock),
        )

    def with_new_session(self) -> "FormStorage":
        """Same durable stores, empty session tier: what a restarted process sees."""
        return replace(self, session=InMemoryTier())
