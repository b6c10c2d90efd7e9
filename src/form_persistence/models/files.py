"""Data models for files attached to form fields."""

import mimetypes
from datetime import datetime
from pathlib import Path
from typing import Iterator, Union

from pydantic import Field

from form_persistence.models.base import ModelBase


class IncomingFile(ModelBase):
    """A file handed to ``save_files`` by the presentation layer.

    Attributes:
        file_name: Original file name.
        file_type: MIME type, empty when unknown.
        last_modified: Modification time in epoch milliseconds.
        data: Raw file contents.
    """

    file_name: str = Field(..., description="Original file name.")
    file_type: str = Field(default="", description="MIME type, empty when unknown.")
    last_modified: int = Field(
        default=0, description="Modification time in epoch milliseconds."
    )
    data: bytes = Field(default=b"", description="Raw file contents.")

    @property
    def size(self) -> int:
        return len(self.data)

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        """Yields the payload in slices of at most ``chunk_size`` bytes.

        An empty file yields a single empty chunk so callers still observe
        one read boundary.
        """
        if not self.data:
            yield b""
            return
        for offset in range(0, len(self.data), chunk_size):
            yield self.data[offset : offset + chunk_size]

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "IncomingFile":
        """Reads a file from disk, guessing its MIME type from the name."""
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            file_name=path.name,
            file_type=mime_type or "",
            last_modified=int(path.stat().st_mtime * 1000),
            data=path.read_bytes(),
        )


class FileRecord(ModelBase):
    """A file stored in the blob store.

    Attributes:
        file_id: Store-assigned unique identifier.
        form_id: The owning form.
        field_name: The owning file field.
        file_name: Original file name.
        file_type: MIME type.
        file_size: Payload size in bytes.
        last_modified: Modification time in epoch milliseconds.
        payload: Raw file contents.
        saved_time: When the record was written.
    """

    file_id: int = Field(..., description="Store-assigned unique identifier.")
    form_id: str = Field(..., description="The owning form.")
    field_name: str = Field(..., description="The owning file field.")
    file_name: str
    file_type: str = ""
    file_size: int = 0
    last_modified: int = 0
    payload: bytes = Field(default=b"", repr=False)
    saved_time: datetime

    def public_metadata(self) -> dict[str, object]:
        """The payload-free view exposed by ``get_file_data_json``."""
        return {
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "fileType": self.file_type,
            "lastModified": self.last_modified,
        }


class UploadProgress(ModelBase):
    """Progress of an in-flight ``save_files`` call.

    Attributes:
        field_name: The file field being written.
        total: Total bytes across all files of the call.
        loaded: Bytes read so far, cumulative across files.
        percent: ``round(loaded / total * 100)``; 100 when ``total`` is 0.
    """

    field_name: str
    total: int
    loaded: int
    percent: int

    @classmethod
    def compute(cls, field_name: str, total: int, loaded: int) -> "UploadProgress":
        percent = 100 if total == 0 else round(loaded / total * 100)
        return cls(field_name=field_name, total=total, loaded=loaded, percent=percent)
