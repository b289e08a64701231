"""
Section Table and RVA Translation
==================================

Reads the section table that follows the optional header and maps
Relative Virtual Addresses to file offsets through it.

Each ``IMAGE_SECTION_HEADER`` is 40 bytes::

    [0, 8)    Name (NUL-padded)
    [8, 12)   VirtualSize
    [12, 16)  VirtualAddress
    [16, 20)  SizeOfRawData
    [20, 24)  PointerToRawData
    [36, 40)  Characteristics

Sections are kept in file order.  Translation scans them linearly and the
first section whose ``[virtual_address, virtual_end)`` range holds the RVA
wins, so overlapping or unsorted tables resolve the same way every time.
"""

from __future__ import annotations

import struct
from typing import Optional, Sequence

from pelens.core.models import ImageHeaders, Section
from pelens.parsers.source import ByteSource


SECTION_HEADER_SIZE: int = 40  # IMAGE_SECTION_HEADER is always 40 bytes

_SECTION_FIELDS = struct.Struct("<8sIIII12xI")


def read_section_table(source: ByteSource, headers: ImageHeaders) -> list[Section]:
    """Parse ``headers.section_count`` section headers in file order.

    Raises:
        PEIOError: If any entry lies beyond end-of-file.
    """
    offset = headers.section_table_offset
    sections: list[Section] = []

    for i in range(headers.section_count):
        raw = source.read(
            offset + i * SECTION_HEADER_SIZE, SECTION_HEADER_SIZE, "section table"
        )
        (
            raw_name,
            virtual_size,
            virtual_address,
            raw_size,
            raw_pointer,
            characteristics,
        ) = _SECTION_FIELDS.unpack(raw)

        sections.append(Section(
            name=raw_name.rstrip(b"\x00").decode("utf-8", errors="replace"),
            virtual_address=virtual_address,
            raw_pointer=raw_pointer,
            # Not masked to 32 bits: a wrapped end would sit below the start
            # and make the section contain nothing
            virtual_end=virtual_address + virtual_size,
            virtual_size=virtual_size,
            raw_size=raw_size,
            characteristics=characteristics,
        ))

    return sections


class RvaTranslator:
    """Map RVAs to file offsets using a section list.

    Usage::

        rva_map = RvaTranslator(sections)
        offset = rva_map.translate(0x2010)
        if offset is None:
            ...  # address not backed by any section
    """

    __slots__ = ("_sections",)

    def __init__(self, sections: Sequence[Section]) -> None:
        self._sections: tuple[Section, ...] = tuple(sections)

    def translate(self, rva: int) -> Optional[int]:
        """Return the file offset for *rva*, or ``None`` if unmapped."""
        for section in self._sections:
            if section.contains(rva):
                return section.raw_pointer + (rva - section.virtual_address)
        return None

    def __call__(self, rva: int) -> Optional[int]:
        return self.translate(rva)

    @property
    def sections(self) -> tuple[Section, ...]:
        return self._sections
