"""
PELens Error Hierarchy
=======================

Classified exceptions raised when an analysis cannot complete.  Each error
carries an :class:`ErrorKind` so that callers (the CLI, a batch runner, a
UI) can branch on the classification instead of parsing messages.

Only failures that make the image untrustworthy are raised: a missing file,
an I/O failure, a bad signature, an unknown optional-header magic, or a
mandatory directory pointer that maps to no section.  Failures on
individual table entries are recorded on the result instead.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Classification of an analysis failure."""
    NOT_FOUND = "NotFound"
    IO_ERROR = "IoError"
    NOT_A_PE_FILE = "NotAPeFile"
    UNKNOWN_IMAGE_FORMAT = "UnknownImageFormat"
    DIRECTORY_UNRESOLVED = "DirectoryUnresolved"


class AnalysisError(Exception):
    """Base class for all PELens analysis failures."""

    kind: ErrorKind = ErrorKind.IO_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AnalysisError):
    """Raised when the path to analyse does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"File not found: {path}")


class PEIOError(AnalysisError):
    """Raised on open, seek or read failure, including short reads.

    Attributes:
        phase: Parsing phase in progress when the failure happened.
        offset: File offset of the failed read, if known.
    """

    kind = ErrorKind.IO_ERROR

    def __init__(
        self,
        message: str,
        *,
        phase: str | None = None,
        offset: int | None = None,
    ) -> None:
        self.phase = phase
        self.offset = offset
        text = message
        if phase:
            text = f"{message} (while reading {phase})"
        super().__init__(text)


class NotAPeFileError(AnalysisError):
    """Raised when the DOS or PE signature does not match."""

    kind = ErrorKind.NOT_A_PE_FILE


class UnknownImageFormatError(AnalysisError):
    """Raised when the optional-header magic is neither PE32 nor PE32+."""

    kind = ErrorKind.UNKNOWN_IMAGE_FORMAT

    def __init__(self, magic: int) -> None:
        self.magic = magic
        super().__init__(f"Unknown PE image format: optional header magic 0x{magic:04X}")


class DirectoryUnresolvedError(AnalysisError):
    """Raised when a mandatory RVA cannot be mapped to a file offset.

    Attributes:
        directory: Name of the structure whose RVA failed, such as
            ``"export directory"`` or ``"export address table"``.
        rva: The RVA that maps to no section.
    """

    kind = ErrorKind.DIRECTORY_UNRESOLVED

    def __init__(self, directory: str, rva: int) -> None:
        self.directory = directory
        self.rva = rva
        super().__init__(
            f"Cannot resolve {directory} RVA 0x{rva:08X} to a file offset"
        )
