"""
PELens Data Models
===================

Pydantic-based data models for the structural views PELens extracts from a
Portable Executable image: the section table, the export table and the
import table, plus the diagnostics recorded when individual entries could
not be resolved.

The field names of these models are the wire contract consumed by any
presentation layer: ``AnalysisResult.model_dump(mode="json")`` is what the
CLI prints and what reports embed.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Section characteristics used for the flags string
# ---------------------------------------------------------------------------

IMAGE_SCN_CNT_CODE: int = 0x00000020
IMAGE_SCN_CNT_INITIALIZED_DATA: int = 0x00000040
IMAGE_SCN_CNT_UNINITIALIZED_DATA: int = 0x00000080
IMAGE_SCN_MEM_EXECUTE: int = 0x20000000
IMAGE_SCN_MEM_READ: int = 0x40000000
IMAGE_SCN_MEM_WRITE: int = 0x80000000


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class TableKind(str, enum.Enum):
    """Which table a skipped entry belongs to."""
    EXPORT = "export"
    IMPORT = "import"


class SkipReason(str, enum.Enum):
    """Why an individual table entry was skipped or degraded."""
    EXPORT_NAME = "export_name"
    EXPORT_ORDINAL_INDEX = "export_ordinal_index"
    IMPORT_DESCRIPTOR = "import_descriptor"
    IMPORT_HINT_NAME = "import_hint_name"
    COUNT_CAPPED = "count_capped"


# ---------------------------------------------------------------------------
# Header-level structures (internal to the parsing pipeline)
# ---------------------------------------------------------------------------

class DataDirectory(BaseModel):
    """One optional-header data directory slot (RVA then size)."""
    model_config = ConfigDict(frozen=True)

    rva: int = 0
    size: int = 0

    @property
    def is_empty(self) -> bool:
        return self.size == 0


class ImageHeaders(BaseModel):
    """Facts established by header validation.

    Attributes:
        coff_header_offset: File offset of the ``PE\\0\\0`` signature
            (``e_lfanew``); COFF fields are addressed relative to it.
        is_64bit: ``True`` for PE32+ images, ``False`` for PE32.
        optional_header_size: ``SizeOfOptionalHeader`` from the COFF header.
        section_count: ``NumberOfSections`` from the COFF header.
        machine: ``Machine`` field from the COFF header.
    """
    model_config = ConfigDict(frozen=True)

    coff_header_offset: int
    is_64bit: bool
    optional_header_size: int
    section_count: int
    machine: int = 0

    @property
    def optional_header_offset(self) -> int:
        return self.coff_header_offset + 0x18

    @property
    def section_table_offset(self) -> int:
        return self.optional_header_offset + self.optional_header_size

    @property
    def data_directory_offset(self) -> int:
        return self.optional_header_offset + (0x70 if self.is_64bit else 0x60)


# ---------------------------------------------------------------------------
# Section information
# ---------------------------------------------------------------------------

class Section(BaseModel):
    """A single entry of the section table.

    Attributes:
        name: Section name (up to 8 bytes, NUL-trimmed).
        virtual_address: RVA at which the section is mapped.
        raw_pointer: File offset of the section's raw data.
        virtual_end: ``virtual_address + virtual_size`` (exclusive).  Computed
            without 32-bit wrap-around, so it may reach up to 2**33 - 2.
        virtual_size: Size of the section once mapped.
        raw_size: Size of the section's raw data on disk.
        characteristics: Section flags bitmask.
    """
    model_config = ConfigDict(frozen=True)

    name: str = ""
    virtual_address: int = 0
    raw_pointer: int = 0
    virtual_end: int = 0
    virtual_size: int = 0
    raw_size: int = 0
    characteristics: int = 0

    def contains(self, rva: int) -> bool:
        """Return ``True`` if *rva* falls in ``[virtual_address, virtual_end)``."""
        return self.virtual_address <= rva < self.virtual_end

    @property
    def flags(self) -> str:
        """Characteristics rendered as a short string like ``"R X CODE"``."""
        parts: list[str] = []
        if self.characteristics & IMAGE_SCN_MEM_READ:
            parts.append("R")
        if self.characteristics & IMAGE_SCN_MEM_WRITE:
            parts.append("W")
        if self.characteristics & IMAGE_SCN_MEM_EXECUTE:
            parts.append("X")
        if self.characteristics & IMAGE_SCN_CNT_CODE:
            parts.append("CODE")
        if self.characteristics & IMAGE_SCN_CNT_INITIALIZED_DATA:
            parts.append("IDATA")
        if self.characteristics & IMAGE_SCN_CNT_UNINITIALIZED_DATA:
            parts.append("UDATA")
        return " ".join(parts) if parts else "-"


# ---------------------------------------------------------------------------
# Export information
# ---------------------------------------------------------------------------

class ExportFunction(BaseModel):
    """A function published through the export address table.

    Entries that no name-ordinal pair refers to keep ``ordinal == 0`` and
    an empty name; only their address is known.

    Attributes:
        name: Exported name, empty for ordinal-only exports.
        ordinal: Biased ordinal (``index + ordinal_base``), or 0 if unresolved.
        address_rva: RVA taken from the export address table.
    """
    model_config = ConfigDict(frozen=True)

    name: str = ""
    ordinal: int = 0
    address_rva: int = 0

    @property
    def address(self) -> int:
        return self.address_rva


# ---------------------------------------------------------------------------
# Import information
# ---------------------------------------------------------------------------

class ImportFunction(BaseModel):
    """A single entry of an import lookup table.

    Attributes:
        name: Imported function name; empty when imported by ordinal.
        is_ordinal: ``True`` if the lookup entry had its ordinal flag set.
        ordinal: Low 16 bits of the lookup entry for ordinal imports, else 0.
        hint: Export name table hint for name imports, else 0.
    """
    model_config = ConfigDict(frozen=True)

    name: str = ""
    is_ordinal: bool = False
    ordinal: int = 0
    hint: int = 0


class ImportTableEntry(BaseModel):
    """All functions imported from one library.

    Attributes:
        library_name: Name of the DLL, as stored in the descriptor.
        functions: Imported functions ordered by ascending hint.
    """
    model_config = ConfigDict(frozen=True)

    library_name: str = ""
    functions: list[ImportFunction] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

class SkippedEntry(BaseModel):
    """An entry that could not be resolved and was skipped or degraded.

    Attributes:
        table: Table the entry belongs to.
        reason: Classification of the failure.
        index: Index of the entry within its table.
        rva: The RVA (or raw count, for ``count_capped``) that failed.
        detail: Human-readable description.
    """
    model_config = ConfigDict(frozen=True)

    table: TableKind
    reason: SkipReason
    index: int = 0
    rva: int = 0
    detail: str = ""


# ---------------------------------------------------------------------------
# Aggregate analysis result
# ---------------------------------------------------------------------------

class AnalysisResult(BaseModel):
    """Complete structural analysis of a single PE image.

    Attributes:
        path: Path of the analysed file (``"<memory>"`` for buffers).
        size: Size of the analysed data in bytes.
        is_64bit: ``True`` for PE32+ images.
        sections: Section table in on-disk order.
        exports: Exported functions sorted by ordinal.
        imports: One entry per resolvable import descriptor.
        skipped: Entries that were skipped or degraded during parsing.
    """
    model_config = ConfigDict(frozen=True)

    path: str = ""
    size: int = 0
    is_64bit: bool = False
    sections: list[Section] = Field(default_factory=list)
    exports: list[ExportFunction] = Field(default_factory=list)
    imports: list[ImportTableEntry] = Field(default_factory=list)
    skipped: list[SkippedEntry] = Field(default_factory=list)

    @property
    def import_function_count(self) -> int:
        return sum(len(entry.functions) for entry in self.imports)


class AnalysisOutcome(BaseModel):
    """Result of one file in a batch run: either a result or an error.

    Attributes:
        path: Path that was analysed.
        result: The analysis result, when the analysis succeeded.
        error_kind: Error classification (e.g. ``"NotAPeFile"``) on failure.
        error: Human-readable error message on failure.
    """
    model_config = ConfigDict(frozen=True)

    path: str
    result: Optional[AnalysisResult] = None
    error_kind: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.result is not None
