"""
Random-Access Byte Sources
===========================

Read-only, offset-addressed access to the bytes of a candidate PE image.

Every sub-parser receives a source explicitly and asks for a fixed number
of bytes at an absolute offset.  A read that cannot be satisfied in full
raises :class:`~pelens.core.errors.PEIOError`; no cursor position is
exposed, so parsers never depend on where a previous read left off.

Two implementations are provided:

    - :class:`BufferSource` over an in-memory ``bytes`` object.
    - :class:`FileSource` over an open binary file handle (seek + read).
"""

from __future__ import annotations

import os
import struct
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, BinaryIO

from pelens.core.errors import PEIOError


_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

# Chunk size used when scanning a file for a NUL terminator
_STRING_CHUNK: int = 64


class ByteSource(ABC):
    """Abstract random-access byte source."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Total number of bytes available."""
        ...

    @abstractmethod
    def _read_raw(self, offset: int, size: int) -> bytes:
        """Return up to *size* bytes at *offset* (may be short at EOF)."""
        ...

    def read(self, offset: int, size: int, phase: str | None = None) -> bytes:
        """Read exactly *size* bytes at *offset*.

        Raises:
            PEIOError: If *offset* is negative or fewer than *size* bytes
                are available.
        """
        if offset < 0 or size < 0:
            raise PEIOError(
                f"Invalid read of {size} bytes at offset {offset}",
                phase=phase,
                offset=offset,
            )
        data = self._read_raw(offset, size)
        if len(data) != size:
            raise PEIOError(
                f"Unexpected end of file: wanted {size} bytes at 0x{offset:X}, "
                f"got {len(data)}",
                phase=phase,
                offset=offset,
            )
        return data

    def read_u16(self, offset: int, phase: str | None = None) -> int:
        return _U16.unpack(self.read(offset, 2, phase))[0]

    def read_u32(self, offset: int, phase: str | None = None) -> int:
        return _U32.unpack(self.read(offset, 4, phase))[0]

    def read_u64(self, offset: int, phase: str | None = None) -> int:
        return _U64.unpack(self.read(offset, 8, phase))[0]

    def read_cstring(
        self,
        offset: int,
        limit: int = 4096,
        phase: str | None = None,
    ) -> str:
        """Read a NUL-terminated byte string and decode it lossily.

        The string is truncated at *limit* bytes if no terminator is found
        before then.  Reaching end-of-file before a terminator or the limit
        is an I/O error.

        Args:
            offset: File offset of the first character.
            limit: Maximum number of bytes to return.
            phase: Parsing phase for error context.

        Returns:
            The decoded string (invalid UTF-8 replaced with U+FFFD).
        """
        if offset < 0:
            raise PEIOError(
                f"Invalid string offset {offset}", phase=phase, offset=offset
            )
        collected = bytearray()
        pos = offset
        while len(collected) < limit:
            want = min(_STRING_CHUNK, limit - len(collected))
            chunk = self._read_raw(pos, want)
            if not chunk:
                raise PEIOError(
                    f"Unterminated string at 0x{offset:X}",
                    phase=phase,
                    offset=offset,
                )
            nul = chunk.find(b"\x00")
            if nul != -1:
                collected += chunk[:nul]
                break
            collected += chunk
            pos += len(chunk)
        return bytes(collected).decode("utf-8", errors="replace")

    def remaining(self, offset: int) -> int:
        """Bytes available from *offset* to end-of-source (0 if past it)."""
        return max(self.size - offset, 0)


class BufferSource(ByteSource):
    """Byte source over an in-memory buffer."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)

    @property
    def size(self) -> int:
        return len(self._data)

    def _read_raw(self, offset: int, size: int) -> bytes:
        return self._data[offset:offset + size]


class FileSource(ByteSource):
    """Byte source over a binary file handle.

    Usage::

        with FileSource.open("sample.dll") as source:
            headers = validate_headers(source)
    """

    def __init__(self, handle: BinaryIO, size: int | None = None) -> None:
        self._handle = handle
        if size is None:
            size = os.fstat(handle.fileno()).st_size
        self._size = size

    @classmethod
    def open(cls, path: str | Path) -> FileSource:
        """Open *path* for binary reading.

        Raises:
            PEIOError: If the file cannot be opened.
        """
        try:
            handle = open(path, "rb")
        except OSError as exc:
            raise PEIOError(f"Cannot open file: {exc}", phase="open") from exc
        return cls(handle)

    @property
    def size(self) -> int:
        return self._size

    def _read_raw(self, offset: int, size: int) -> bytes:
        try:
            self._handle.seek(offset)
            return self._handle.read(size)
        except (OSError, ValueError) as exc:
            raise PEIOError(f"Read failed: {exc}", offset=offset) from exc

    def close(self) -> None:
        self._handle.close()

    def __enter__(self) -> FileSource:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
