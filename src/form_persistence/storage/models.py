"""SQLAlchemy models for the durable storage backends.

This module defines the schema for the durable text tier (a key/value table)
and the blob store (one row per stored file) using SQLAlchemy ORM.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, LargeBinary, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TierEntry(Base):
    """A single key/value entry of the durable text tier.

    Attributes:
        key: Storage key, e.g. ``form_persistence_<form_id>``.
        value: The stored string (a JSON snapshot or a marker flag).
        updated_at: Timestamp of the last write.
    """

    __tablename__ = "tier_entries"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class StoredFile(Base):
    """A file payload attached to a form field.

    Attributes:
        file_id: Auto-assigned primary key.
        form_id: The owning form.
        field_name: The owning file field.
        file_name: Original file name.
        file_type: MIME type.
        file_size: Payload size in bytes.
        last_modified: Modification time in epoch milliseconds.
        payload: Raw file contents.
        saved_time: When the record was written.
    """

    __tablename__ = "form_files"

    file_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    form_id: Mapped[str] = mapped_column(String)
    field_name: Mapped[str] = mapped_column(String)
    file_name: Mapped[str] = mapped_column(String)
    file_type: Mapped[str] = mapped_column(String, default="")
    file_size: Mapped[int] = mapped_column(BigInteger, default=0)
    last_modified: Mapped[int] = mapped_column(BigInteger, default=0)
    payload: Mapped[bytes] = mapped_column(LargeBinary)
    saved_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("ix_form_files_form_field", "form_id", "field_name"),)
