"""Configuration for form persistence.

Options are plain pydantic models. ``PersistenceOptions.from_env`` overlays
environment variables on top of explicitly passed values, so a host can tune
expiry or verbosity without code changes.
"""

import os
from typing import Any, Callable, Optional

from pydantic import Field, field_validator

from form_persistence.models.base import ModelBase
from form_persistence.models.enums import ErrorLevel
from form_persistence.models.files import UploadProgress
from form_persistence.models.transforms import FieldTransforms, TransformHooks
from form_persistence.storage.db import DEFAULT_SQLITE_URL

DEFAULT_STORAGE_PREFIX = "form_persistence_"
DEFAULT_EXPIRY_MS = 24 * 60 * 60 * 1000
DEFAULT_CHUNK_SIZE = 64 * 1024

_TRUE_VALUES = {"1", "true", "yes", "on"}


class PersistenceOptions(ModelBase):
    """Per-form persistence options.

    Attributes:
        file_fields: Names of the fields whose values live in the blob store.
        clear_on_close: Erase everything on the first startup after a clean
            close instead of keeping it for a later session.
        data_expiry_ms: Snapshots older than this are discarded on restore.
        error_level: Diagnostic verbosity for recovered errors.
        storage_prefix: Prefix of every tier key.
        chunk_size: Read granularity for file payloads, in bytes.
        on_error: Called as ``on_error(exc, context)`` for every reported error.
        on_progress: Called with each published ``UploadProgress`` and with
            None when progress is cleared.
        transform_middleware: Global hook pair.
        field_transforms: Field-scoped hook pairs.
    """

    file_fields: list[str] = Field(default_factory=list)
    clear_on_close: bool = False
    data_expiry_ms: int = Field(default=DEFAULT_EXPIRY_MS, gt=0)
    error_level: ErrorLevel = ErrorLevel.BASIC
    storage_prefix: str = DEFAULT_STORAGE_PREFIX
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    on_error: Optional[Callable[[Exception, str], Any]] = None
    on_progress: Optional[Callable[[Optional[UploadProgress]], Any]] = None
    transform_middleware: Optional[TransformHooks] = None
    field_transforms: FieldTransforms = Field(default_factory=dict)

    @field_validator("file_fields")
    @classmethod
    def _no_blank_fields(cls, v: list[str]) -> list[str]:
        if any(not name for name in v):
            raise ValueError("file field names must be non-empty")
        return v

    @classmethod
    def from_env(cls, **overrides: Any) -> "PersistenceOptions":
        """Builds options from keyword arguments and environment variables.

        Environment variables win over keyword arguments:
        FORM_PERSISTENCE_CLEAR_ON_CLOSE, FORM_PERSISTENCE_EXPIRY_MS,
        FORM_PERSISTENCE_ERROR_LEVEL and FORM_PERSISTENCE_PREFIX.
        """
        values = dict(overrides)
        if "FORM_PERSISTENCE_CLEAR_ON_CLOSE" in os.environ:
            values["clear_on_close"] = (
                os.environ["FORM_PERSISTENCE_CLEAR_ON_CLOSE"].strip().lower()
                in _TRUE_VALUES
            )
        if "FORM_PERSISTENCE_EXPIRY_MS" in os.environ:
            values["data_expiry_ms"] = int(os.environ["FORM_PERSISTENCE_EXPIRY_MS"])
        if "FORM_PERSISTENCE_ERROR_LEVEL" in os.environ:
            values["error_level"] = os.environ["FORM_PERSISTENCE_ERROR_LEVEL"].lower()
        if "FORM_PERSISTENCE_PREFIX" in os.environ:
            values["storage_prefix"] = os.environ["FORM_PERSISTENCE_PREFIX"]
        return cls(**values)


def get_database_url() -> str:
    """The durable database URL (FORM_PERSISTENCE_DATABASE_URL or SQLite file)."""
    return os.environ.get("FORM_PERSISTENCE_DATABASE_URL", DEFAULT_SQLITE_URL)
