"""
PE Header Validation
=====================

Confirms that a byte source holds a PE image and establishes the facts
every later stage depends on: where the COFF header lives, how many
sections follow, how large the optional header is, and whether the image
is PE32 (32-bit) or PE32+ (64-bit).

Layout (offsets relative to the ``PE\\0\\0`` signature)::

    +0x00  "PE\\0\\0"
    +0x04  Machine               (u16)
    +0x06  NumberOfSections      (u16)
    +0x14  SizeOfOptionalHeader  (u16)
    +0x18  Optional header magic (u16): 0x10B PE32, 0x20B PE32+

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
    - Pietrek, M. (1994). Peering Inside the PE: A Tour of the Win32
      Portable Executable File Format. Microsoft Systems Journal.
"""

from __future__ import annotations

from pelens.core.errors import NotAPeFileError, PEIOError, UnknownImageFormatError
from pelens.core.models import DataDirectory, ImageHeaders
from pelens.parsers.source import ByteSource


# ---------------------------------------------------------------------------
# PE Constants
# ---------------------------------------------------------------------------

MZ_MAGIC: bytes = b"MZ"
PE_MAGIC: bytes = b"PE\x00\x00"

E_LFANEW_OFFSET: int = 0x3C

PE32_MAGIC: int = 0x10B      # PE32 (32-bit)
PE32PLUS_MAGIC: int = 0x20B  # PE32+ (64-bit)

# Data directory indices
IMAGE_DIRECTORY_ENTRY_EXPORT: int = 0
IMAGE_DIRECTORY_ENTRY_IMPORT: int = 1

_DATA_DIRECTORY_ENTRY_SIZE: int = 8

IMAGE_FILE_MACHINE_UNKNOWN: int = 0x0
IMAGE_FILE_MACHINE_I386: int = 0x14C
IMAGE_FILE_MACHINE_ARM: int = 0x1C0
IMAGE_FILE_MACHINE_ARMNT: int = 0x1C4
IMAGE_FILE_MACHINE_AMD64: int = 0x8664
IMAGE_FILE_MACHINE_ARM64: int = 0xAA64
IMAGE_FILE_MACHINE_IA64: int = 0x200

_MACHINE_NAMES: dict[int, str] = {
    IMAGE_FILE_MACHINE_UNKNOWN: "Unknown",
    IMAGE_FILE_MACHINE_I386: "x86",
    IMAGE_FILE_MACHINE_ARM: "ARM",
    IMAGE_FILE_MACHINE_ARMNT: "ARM Thumb-2",
    IMAGE_FILE_MACHINE_AMD64: "x86_64",
    IMAGE_FILE_MACHINE_ARM64: "AArch64",
    IMAGE_FILE_MACHINE_IA64: "IA-64",
}


def machine_name(machine: int) -> str:
    """Return a readable architecture name for a COFF ``Machine`` value."""
    return _MACHINE_NAMES.get(machine, f"unknown(0x{machine:x})")


def validate_headers(source: ByteSource) -> ImageHeaders:
    """Validate the DOS and PE signatures and read the COFF basics.

    Args:
        source: Byte source positioned anywhere; no cursor is assumed.

    Returns:
        The validated :class:`ImageHeaders`.

    Raises:
        NotAPeFileError: The MZ or ``PE\\0\\0`` signature is missing.
        UnknownImageFormatError: The optional-header magic is not PE32/PE32+.
        PEIOError: A header field lies beyond end-of-file.
    """
    if source.size < len(MZ_MAGIC) or source.read(0, 2, "DOS header") != MZ_MAGIC:
        raise NotAPeFileError("Not a valid PE file: missing MZ signature")

    coff_header_offset = source.read_u32(E_LFANEW_OFFSET, "DOS header")

    try:
        signature = source.read(coff_header_offset, 4, "PE signature")
    except PEIOError as exc:
        raise NotAPeFileError(
            f"Not a valid PE file: PE signature offset 0x{coff_header_offset:X} "
            f"is beyond end of file"
        ) from exc
    if signature != PE_MAGIC:
        raise NotAPeFileError("Not a valid PE file: missing PE signature")

    machine = source.read_u16(coff_header_offset + 0x04, "COFF header")
    section_count = source.read_u16(coff_header_offset + 0x06, "COFF header")
    optional_header_size = source.read_u16(coff_header_offset + 0x14, "COFF header")

    magic = source.read_u16(coff_header_offset + 0x18, "optional header")
    if magic == PE32_MAGIC:
        is_64bit = False
    elif magic == PE32PLUS_MAGIC:
        is_64bit = True
    else:
        raise UnknownImageFormatError(magic)

    return ImageHeaders(
        coff_header_offset=coff_header_offset,
        is_64bit=is_64bit,
        optional_header_size=optional_header_size,
        section_count=section_count,
        machine=machine,
    )


def read_data_directory(
    source: ByteSource,
    headers: ImageHeaders,
    index: int,
) -> DataDirectory:
    """Read data directory slot *index* (RVA then size).

    Slots start at optional header + 0x60 (PE32) or + 0x70 (PE32+).
    """
    offset = headers.data_directory_offset + index * _DATA_DIRECTORY_ENTRY_SIZE
    rva = source.read_u32(offset, "data directory")
    size = source.read_u32(offset + 4, "data directory")
    return DataDirectory(rva=rva, size=size)
