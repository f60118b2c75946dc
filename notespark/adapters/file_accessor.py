"""
File access boundary for page images.

The pipeline never touches the filesystem directly; it goes through a
FileAccessor so that the application layer can supply its own storage
(local disk, app sandbox, in-memory fixtures in tests).
"""

import base64
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

FILE_URI_PREFIX = "file://"


def strip_file_uri(image_ref: str) -> str:
    """Remove a leading file:// scheme from an image reference."""
    if image_ref.startswith(FILE_URI_PREFIX):
        return image_ref[len(FILE_URI_PREFIX):]
    return image_ref


class FileAccessor(ABC):
    """
    Abstract access to image references.

    Implementations must be safe to call from worker threads; the clients
    invoke them through the event loop's default executor.
    """

    @abstractmethod
    def exists(self, image_ref: str) -> bool:
        """Whether the reference points at a readable file."""
        pass

    @abstractmethod
    def stat(self, image_ref: str) -> int:
        """Size of the referenced file in bytes."""
        pass

    @abstractmethod
    def read_bytes(self, image_ref: str) -> bytes:
        """Raw file content."""
        pass

    def read_as_base64(self, image_ref: str) -> str:
        """File content encoded for inline provider payloads."""
        encoded = base64.b64encode(self.read_bytes(image_ref)).decode("ascii")
        if not encoded:
            raise IOError(f"Failed to read image file: empty result for {image_ref}")
        return encoded


class LocalFileAccessor(FileAccessor):
    """FileAccessor backed by the local filesystem."""

    def exists(self, image_ref: str) -> bool:
        path = Path(strip_file_uri(image_ref))
        return path.is_file()

    def stat(self, image_ref: str) -> int:
        return Path(strip_file_uri(image_ref)).stat().st_size

    def read_bytes(self, image_ref: str) -> bytes:
        with open(strip_file_uri(image_ref), "rb") as f:
            return f.read()


class InMemoryFileAccessor(FileAccessor):
    """FileAccessor over a dict of reference to bytes, for embedding and tests."""

    def __init__(self, files: Dict[str, bytes] = None):
        self.files: Dict[str, bytes] = dict(files or {})

    def add(self, image_ref: str, content: bytes) -> None:
        self.files[image_ref] = content

    def exists(self, image_ref: str) -> bool:
        return strip_file_uri(image_ref) in self.files or image_ref in self.files

    def stat(self, image_ref: str) -> int:
        return len(self.read_bytes(image_ref))

    def read_bytes(self, image_ref: str) -> bytes:
        if image_ref in self.files:
            return self.files[image_ref]
        key = strip_file_uri(image_ref)
        if key not in self.files:
            raise FileNotFoundError(f"File not found: {image_ref}")
        return self.files[key]
