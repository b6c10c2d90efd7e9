"""Data model for serialized form snapshots.

A snapshot is the caller's field mapping plus the moment it was written. On
disk it is a single JSON object whose ``savedAt`` key carries the timestamp.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import Field

from form_persistence.errors import SerializationError
from form_persistence.models.base import ModelBase

SAVED_AT_KEY = "savedAt"


def format_timestamp(moment: datetime) -> str:
    """Formats a datetime as an ISO-8601 UTC string with millisecond precision.

    Args:
        moment: The datetime to format. Naive values are taken as UTC.

    Returns:
        A string such as ``2024-01-01T12:00:00.000Z``.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parses an ISO-8601 timestamp written by :func:`format_timestamp`.

    Raises:
        SerializationError: If the value is not a valid timestamp.
    """
    if not isinstance(value, str):
        raise SerializationError(f"Invalid {SAVED_AT_KEY} value: {value!r}")
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as e:
        raise SerializationError(f"Invalid {SAVED_AT_KEY} value: {value!r}") from e
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class FormSnapshot(ModelBase):
    """The persisted state of one form.

    Attributes:
        fields: Mapping from field name to its (already transformed) value.
        saved_at: When the snapshot was written. ``None`` for legacy payloads
            that carry no timestamp.
    """

    fields: dict[str, Any] = Field(
        default_factory=dict, description="Field name to value mapping."
    )
    saved_at: Optional[datetime] = Field(
        default=None, description="When the snapshot was written."
    )

    def to_json(self) -> str:
        """Serializes the snapshot with an injected ``savedAt`` key."""
        payload = dict(self.fields)
        if self.saved_at is not None:
            payload[SAVED_AT_KEY] = format_timestamp(self.saved_at)
        try:
            return json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Form data is not JSON serializable: {e}") from e

    @classmethod
    def from_json(cls, text: str) -> "FormSnapshot":
        """Parses a stored payload, stripping the ``savedAt`` key.

        Raises:
            SerializationError: If the payload is not a JSON object or its
                timestamp is malformed.
        """
        try:
            parsed = json.loads(text)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Stored form data is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise SerializationError("Stored form data is not a JSON object")

        raw_saved_at = parsed.pop(SAVED_AT_KEY, None)
        saved_at = parse_timestamp(raw_saved_at) if raw_saved_at is not None else None
        return cls(fields=parsed, saved_at=saved_at)
