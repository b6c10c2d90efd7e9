"""Error taxonomy for form persistence.

Every error raised by the stores, the transform pipeline or the orchestrator
derives from :class:`FormPersistenceError` and carries a machine-readable
``code``.
"""

import json
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError


class FormPersistenceError(Exception):
    code = "form_persistence.error"

    def __init__(self, detail: str, context: Optional[str] = None):
        self.detail = detail
        self.context = context
        super().__init__(detail)


class StorageUnavailableError(FormPersistenceError):
    """A tier or the blob store is not initialized or not accessible."""

    code = "storage.unavailable"


class SerializationError(FormPersistenceError):
    """Stored data is malformed or cannot be serialized."""

    code = "storage.serialization"


class TransformError(FormPersistenceError):
    """A registered transform hook raised."""

    code = "transform.failed"


class ValidationError(FormPersistenceError):
    """Invalid call arguments, e.g. an empty file list."""

    code = "request.invalid"


class TransactionError(FormPersistenceError):
    """A blob-store or tier write/delete failed mid-operation."""

    code = "storage.transaction"


def classify_error(exc: BaseException, context: Optional[str] = None) -> FormPersistenceError:
    """Maps an arbitrary exception onto the taxonomy.

    Args:
        exc: The exception to classify.
        context: Where it happened (e.g. ``"restore"``).

    Returns:
        ``exc`` itself when it already belongs to the taxonomy, otherwise a
        wrapping instance chained to ``exc``.
    """
    if isinstance(exc, FormPersistenceError):
        if exc.context is None:
            exc.context = context
        return exc
    if isinstance(exc, (json.JSONDecodeError, UnicodeDecodeError)):
        wrapped: FormPersistenceError = SerializationError(str(exc), context)
    elif isinstance(exc, SQLAlchemyError):
        wrapped = TransactionError(str(exc), context)
    elif isinstance(exc, OSError):
        wrapped = StorageUnavailableError(str(exc), context)
    else:
        wrapped = FormPersistenceError(str(exc), context)
    wrapped.__cause__ = exc
    return wrapped
