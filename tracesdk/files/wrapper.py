# tracesdk/files/wrapper.py
"""
File wrappers: transient, lazily-read sources of bytes that can be
placed anywhere in link data and get uploaded before the link is built.

Every variant exposes the same capabilities: ``info()``,
``encrypted_data()`` and ``decrypted_data()``. Encryption is enabled by
default and uses a fresh AES-256-GCM key per file.
"""

import asyncio
import mimetypes
import os
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union
from uuid import uuid4

from tracesdk.core.types import FileInfo
from tracesdk.crypto.cipher import SymmetricKey
from tracesdk.files.record import FileRecord


class FileWrapper(ABC):
    """A file representation on the platform, identified by a unique id."""

    def __init__(self, disable_encryption: bool = False, key: Optional[SymmetricKey] = None):
        self.id = str(uuid4())
        self._key: Optional[SymmetricKey] = None if disable_encryption else (key or SymmetricKey())

    @abstractmethod
    async def _file_info(self) -> FileInfo:
        """Name, size and mimetype of the clear file."""

    @abstractmethod
    async def _read(self) -> bytes:
        """Clear bytes of the file."""

    async def info(self) -> FileInfo:
        info = await self._file_info()
        if self._key is not None:
            info = replace(info, key=self._key.export())
        return info

    async def decrypted_data(self) -> bytes:
        return await self._read()

    async def encrypted_data(self) -> bytes:
        data = await self._read()
        if self._key is None:
            return data
        return self._key.encrypt(data)

    # ── constructors ─────────────────────────────────────────────────

    @staticmethod
    def from_file_path(path: Union[str, Path], disable_encryption: bool = False) -> "FileWrapper":
        return FilePathWrapper(path, disable_encryption)

    @staticmethod
    def from_file_blob(blob: bytes, info: FileInfo, disable_encryption: bool = False) -> "FileWrapper":
        return FileBlobWrapper(blob, info, disable_encryption)

    @staticmethod
    def from_file_object(
        fileobj: BinaryIO, name: Optional[str] = None, mimetype: Optional[str] = None,
        disable_encryption: bool = False,
    ) -> "FileWrapper":
        return FileObjectWrapper(fileobj, name, mimetype, disable_encryption)

    @staticmethod
    def is_file_wrapper(obj: Any) -> bool:
        return isinstance(obj, FileWrapper)


def _guess_mimetype(name: str) -> str:
    return mimetypes.guess_type(name)[0] or "Unknown"


class FilePathWrapper(FileWrapper):
    """A file on disk. Stat and read run in a worker thread."""

    def __init__(self, path: Union[str, Path], disable_encryption: bool = False):
        super().__init__(disable_encryption)
        self.path = Path(path)

    async def _file_info(self) -> FileInfo:
        try:
            st = await asyncio.to_thread(os.stat, self.path)
        except OSError as e:
            raise FileNotFoundError(f"Error while loading file {self.path}") from e
        if not self.path.is_file():
            raise ValueError(f"{self.path} is not a valid file")
        return FileInfo(
            mimetype=_guess_mimetype(self.path.name),
            size=st.st_size,
            name=self.path.name,
        )

    async def _read(self) -> bytes:
        return await asyncio.to_thread(self.path.read_bytes)


class FileBlobWrapper(FileWrapper):
    """In-memory bytes together with their file info."""

    def __init__(self, blob: bytes, info: FileInfo, disable_encryption: bool = False):
        key = SymmetricKey.from_b64(info.key) if info.key and not disable_encryption else None
        super().__init__(disable_encryption, key)
        self.blob = blob
        self.file_info = info

    async def _file_info(self) -> FileInfo:
        return self.file_info

    async def _read(self) -> bytes:
        return self.blob


class FileObjectWrapper(FileWrapper):
    """An open binary file object, e.g. a multipart upload handed over by a web framework."""

    def __init__(
        self, fileobj: BinaryIO, name: Optional[str] = None, mimetype: Optional[str] = None,
        disable_encryption: bool = False,
    ):
        super().__init__(disable_encryption)
        self.fileobj = fileobj
        self.name = name or os.path.basename(getattr(fileobj, "name", "") or "") or "blob"
        self.mimetype = mimetype or _guess_mimetype(self.name)
        self._content: Optional[bytes] = None

    async def _read(self) -> bytes:
        # file objects are read once; info() and the upload share the bytes
        if self._content is None:
            if hasattr(self.fileobj, "seek"):
                self.fileobj.seek(0)
            self._content = await asyncio.to_thread(self.fileobj.read)
        return self._content

    async def _file_info(self) -> FileInfo:
        data = await self._read()
        return FileInfo(mimetype=self.mimetype, size=len(data), name=self.name)


class EncryptedBlobWrapper(FileWrapper):
    """
    A downloaded file. Holds the stored bytes as returned by the media
    service and decrypts them on demand with the key carried by the record.
    """

    def __init__(self, blob: bytes, record: FileRecord):
        key = SymmetricKey.from_b64(record.key) if record.key else None
        super().__init__(disable_encryption=key is None, key=key)
        self.blob = blob
        self.record = record

    async def _file_info(self) -> FileInfo:
        return FileInfo(
            mimetype=self.record.mimetype,
            size=self.record.size,
            name=self.record.name,
            created_at=self.record.created_at,
        )

    async def _read(self) -> bytes:
        if self._key is None:
            return self.blob
        return self._key.decrypt(self.blob)

    async def encrypted_data(self) -> bytes:
        return self.blob
