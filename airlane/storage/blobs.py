"""
Airlane Blob Store — Write-once binary payload storage on the local filesystem.

Blobs are addressed by (namespace, path):
    {root}/{namespace}/{path}

Generated paths are scoped per user and collision resistant:
    users/{user_id}/{uuid4}.{ext}
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

logger = logging.getLogger("airlane.storage.blobs")

CHUNK_SIZE = 8192


@dataclass
class UploadedFile:
    """An incoming upload: client filename, readable stream, optional declared size."""

    filename: str
    stream: BinaryIO
    mime_type: Optional[str] = None
    size: Optional[int] = None

    @property
    def extension(self) -> str:
        return os.path.splitext(os.path.basename(self.filename))[1].lstrip(".").lower()

    def resolved_mime_type(self) -> str:
        if self.mime_type:
            return self.mime_type
        mime, _ = mimetypes.guess_type(self.filename)
        return mime or "application/octet-stream"

    def determine_size(self) -> int:
        """Declared size when positive, else measured by seeking the stream."""
        if self.size is not None and self.size > 0:
            return int(self.size)
        try:
            position = self.stream.tell()
            self.stream.seek(0, os.SEEK_END)
            size = self.stream.tell() - position
            self.stream.seek(position)
        except (AttributeError, OSError, ValueError):
            return 0
        return max(0, size)


@dataclass
class StoredBlob:
    namespace: str
    path: str
    size_bytes: int
    checksum: str


class LocalBlobStore:
    """Filesystem blob store rooted at a directory."""

    def __init__(self, root: str):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    @staticmethod
    def generate_path(user_id: int, extension: str = "") -> str:
        filename = uuid.uuid4().hex
        if extension:
            filename = f"{filename}.{extension}"
        return f"users/{user_id}/{filename}"

    def _physical(self, namespace: str, path: str) -> Path:
        base = (self._root / namespace).resolve()
        physical = (base / path).resolve()
        if base != physical and base not in physical.parents:
            raise ValueError(f"Blob path escapes namespace: {path}")
        return physical

    def exists(self, namespace: str, path: str) -> bool:
        return self._physical(namespace, path).is_file()

    def write(self, namespace: str, path: str, stream: BinaryIO) -> StoredBlob:
        """
        Stream a payload to (namespace, path), hashing as it is written.

        Raises FileExistsError if the path is already occupied.
        """
        physical = self._physical(namespace, path)
        physical.parent.mkdir(parents=True, exist_ok=True)

        bytes_written = 0
        file_hash = hashlib.sha256()
        with open(physical, "xb") as f:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
                file_hash.update(chunk)
                bytes_written += len(chunk)

        checksum = file_hash.hexdigest()
        logger.info(f"Stored blob: {namespace}/{path} ({bytes_written} bytes, sha256={checksum[:12]})")
        return StoredBlob(namespace, path, bytes_written, checksum)

    def open(self, namespace: str, path: str) -> Iterator[bytes]:
        """Yield the payload in chunks."""
        with open(self._physical(namespace, path), "rb") as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    def delete(self, namespace: str, path: str) -> bool:
        physical = self._physical(namespace, path)
        try:
            physical.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted blob: {namespace}/{path}")
        return True
