"""
Blob-like payload values and their transfer descriptors.

This module provides:
- Blob: raw bytes with a declared content type
- File: a named Blob, usually loaded from disk
- PayloadDescriptor: what a chunk envelope says about the value it carries
"""

import mimetypes
from pydantic import BaseModel, ConfigDict
from enum import Enum, auto
from pathlib import Path
from typing import Any, Optional

DEFAULT_MIME_TYPE = "application/octet-stream"

mimetypes.init()


def detect_mime_type(file_path: Path) -> str:
    """
    Detect MIME type from file path.

    Args:
        file_path: Path to the file

    Returns:
        MIME type string (e.g., 'image/jpeg')
    """
    mime_type, _ = mimetypes.guess_type(str(file_path))
    return mime_type or DEFAULT_MIME_TYPE


class Blob(BaseModel):
    """Opaque binary value with a declared content type."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def size(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"Blob({self.size} bytes, {self.mime_type})"


class File(Blob):
    """A Blob that also carries a file name."""

    name: str

    @classmethod
    def from_path(cls, path: Path | str) -> "File":
        """Load a file from disk, guessing its MIME type from the extension."""
        path = Path(path)
        return cls(
            data=path.read_bytes(),
            name=path.name,
            mime_type=detect_mime_type(path),
        )

    def save(self, directory: Path | str) -> Path:
        """Write the file into ``directory`` and return its path."""
        # Only the final component of a remote-supplied name is trusted.
        target = Path(directory) / Path(self.name).name
        target.write_bytes(self.data)
        return target

    def __repr__(self) -> str:
        return f"File({self.name!r}, {self.size} bytes, {self.mime_type})"


class PayloadKind(Enum):
    """Capabilities a value exposes to the chunk envelope."""

    PLAIN = auto()  # no extra metadata
    NAMED = auto()  # file-like: name and content type
    TYPED = auto()  # blob-like: content type only


class PayloadDescriptor(BaseModel):
    """Metadata attached to every chunk of one transfer."""

    kind: PayloadKind
    type_name: str
    name: Optional[str] = None
    mime_type: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


def describe_payload(value: Any) -> PayloadDescriptor:
    """
    Build the descriptor for a value about to be sent.

    Args:
        value: Application value

    Returns:
        PayloadDescriptor with name/mime_type set according to the value's kind
    """
    type_name = type(value).__name__

    if isinstance(value, File):
        return PayloadDescriptor(
            kind=PayloadKind.NAMED,
            type_name=type_name,
            name=value.name,
            mime_type=value.mime_type,
        )
    if isinstance(value, Blob):
        return PayloadDescriptor(
            kind=PayloadKind.TYPED,
            type_name=type_name,
            mime_type=value.mime_type,
        )
    return PayloadDescriptor(kind=PayloadKind.PLAIN, type_name=type_name)
