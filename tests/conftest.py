"""
Shared fixtures for the PELens test-suite.

:class:`PEBuilder` lays out small but structurally valid PE32 / PE32+
images in memory: DOS stub, COFF and optional headers, a section table,
and one ``.rdata`` data section that holds every export and import
structure placed with :meth:`PEBuilder.put`.

Image layout::

    0x000  DOS header (e_lfanew = 0x80)
    0x080  "PE\\0\\0", COFF header, optional header, section table
    0x400  .rdata raw data, mapped at RVA 0x2000
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import Callable, NamedTuple, Sequence, Union

import pytest

from shared.config import LensConfig
from shared.logger import LensLogger

from pelens.core.engine import PELensEngine
from pelens.parsers.context import TableContext
from pelens.parsers.headers import validate_headers
from pelens.parsers.sections import RvaTranslator, read_section_table
from pelens.parsers.source import BufferSource


PE_OFFSET = 0x80
DATA_RVA = 0x2000
DATA_RAW = 0x400
FILE_ALIGNMENT = 0x200

SCN_RDATA = 0x40000040   # IDATA | R
SCN_TEXT = 0x60000020    # CODE | X | R


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


class RawThunk(NamedTuple):
    """Lookup table entry written verbatim."""
    value: int


ImportEntry = Union[int, tuple[int, str], RawThunk]


class PEBuilder:
    """Build synthetic PE images for tests.

    Usage::

        pe = PEBuilder(is_64bit=True)
        pe.add_imports([("KERNEL32.dll", [(1, "ExitProcess"), 42])])
        data = pe.build()
    """

    Raw = RawThunk

    def __init__(
        self,
        *,
        is_64bit: bool = False,
        machine: int | None = None,
        magic: int | None = None,
    ) -> None:
        self.is_64bit = is_64bit
        self.machine = machine if machine is not None else (0x8664 if is_64bit else 0x14C)
        self.magic = magic if magic is not None else (0x20B if is_64bit else 0x10B)
        self.payload = bytearray()
        self.directories: dict[int, tuple[int, int]] = {}
        self.extra_sections: list[tuple[str, int, int, int, int, int]] = []

    # ------------------------------------------------------------------ #
    #  Geometry
    # ------------------------------------------------------------------ #

    @property
    def optional_header_size(self) -> int:
        # Standard fields plus 16 data directories
        return 0xF0 if self.is_64bit else 0xE0

    @property
    def section_table_offset(self) -> int:
        return PE_OFFSET + 0x18 + self.optional_header_size

    @property
    def ordinal_flag(self) -> int:
        return 1 << 63 if self.is_64bit else 1 << 31

    # ------------------------------------------------------------------ #
    #  Raw placement
    # ------------------------------------------------------------------ #

    def put(self, data: bytes) -> int:
        """Append *data* to ``.rdata`` (4-byte aligned) and return its RVA."""
        while len(self.payload) % 4:
            self.payload.append(0)
        rva = DATA_RVA + len(self.payload)
        self.payload += data
        return rva

    def put_string(self, text: str) -> int:
        return self.put(text.encode("utf-8") + b"\x00")

    def set_directory(self, index: int, rva: int, size: int) -> None:
        self.directories[index] = (rva, size)

    def add_section(
        self,
        name: str,
        virtual_address: int,
        virtual_size: int,
        raw_pointer: int = 0,
        raw_size: int = 0,
        characteristics: int = SCN_TEXT,
    ) -> None:
        """Add a header-only section after ``.rdata``."""
        self.extra_sections.append(
            (name, virtual_address, virtual_size, raw_pointer, raw_size, characteristics)
        )

    # ------------------------------------------------------------------ #
    #  Directories
    # ------------------------------------------------------------------ #

    def add_exports(
        self,
        addresses: Sequence[int],
        names: Sequence[tuple[str, int]] = (),
        *,
        base: int = 1,
        dll_name: str = "sample.dll",
        number_of_functions: int | None = None,
        number_of_names: int | None = None,
        address_table_rva: int | None = None,
        name_rvas: Sequence[int] | None = None,
    ) -> int:
        """Write an export directory.

        Args:
            addresses: Export address table entries.
            names: ``(name, address_index)`` pairs in name-pointer order.
            name_rvas: Replace the name pointer table with these RVAs.
        """
        dll_rva = self.put_string(dll_name)
        if name_rvas is None:
            name_rvas = [self.put_string(name) for name, _ in names]
        eat_rva = self.put(struct.pack(f"<{len(addresses)}I", *addresses))
        npt_rva = self.put(struct.pack(f"<{len(name_rvas)}I", *name_rvas))
        ot_rva = self.put(struct.pack(f"<{len(names)}H", *(index for _, index in names)))
        directory = struct.pack(
            "<IIHHIIIIIII",
            0, 0, 0, 0,
            dll_rva,
            base,
            len(addresses) if number_of_functions is None else number_of_functions,
            len(names) if number_of_names is None else number_of_names,
            eat_rva if address_table_rva is None else address_table_rva,
            npt_rva,
            ot_rva,
        )
        directory_rva = self.put(directory)
        self.set_directory(0, directory_rva, len(directory))
        return directory_rva

    def add_imports(
        self,
        libraries: Sequence[tuple[str, Sequence[ImportEntry]]],
        *,
        extra_descriptors: Sequence[tuple[int, int, int, int, int]] = (),
        terminator: bool = True,
    ) -> int:
        """Write import descriptors, lookup tables and hint/name entries.

        Each library entry is an ``int`` (import by ordinal), a
        ``(hint, name)`` pair, or a :class:`RawThunk`.  *extra_descriptors*
        are raw 5-field records appended after the generated ones.
        """
        fmt = "Q" if self.is_64bit else "I"
        descriptors: list[tuple[int, int, int, int, int]] = []
        for dll_name, entries in libraries:
            name_rva = self.put_string(dll_name)
            thunks: list[int] = []
            for entry in entries:
                if isinstance(entry, RawThunk):
                    thunks.append(entry.value)
                elif isinstance(entry, int):
                    thunks.append(self.ordinal_flag | entry)
                else:
                    hint, name = entry
                    thunks.append(self.put(
                        struct.pack("<H", hint) + name.encode("utf-8") + b"\x00"
                    ))
            thunks.append(0)
            ilt_rva = self.put(struct.pack(f"<{len(thunks)}{fmt}", *thunks))
            descriptors.append((ilt_rva, 0, 0, name_rva, ilt_rva))

        descriptors.extend(extra_descriptors)
        if terminator:
            descriptors.append((0, 0, 0, 0, 0))
        raw = b"".join(struct.pack("<5I", *d) for d in descriptors)
        directory_rva = self.put(raw)
        self.set_directory(1, directory_rva, len(raw))
        return directory_rva

    # ------------------------------------------------------------------ #
    #  Output
    # ------------------------------------------------------------------ #

    def build(self) -> bytes:
        raw_size = _align(max(len(self.payload), 1), FILE_ALIGNMENT)
        sections = [(".rdata", DATA_RVA, raw_size, DATA_RAW, raw_size, SCN_RDATA)]
        sections.extend(self.extra_sections)

        image = bytearray(DATA_RAW)
        image[0:2] = b"MZ"
        struct.pack_into("<I", image, 0x3C, PE_OFFSET)
        image[PE_OFFSET:PE_OFFSET + 4] = b"PE\x00\x00"
        struct.pack_into("<HH", image, PE_OFFSET + 0x04, self.machine, len(sections))
        struct.pack_into("<H", image, PE_OFFSET + 0x14, self.optional_header_size)
        struct.pack_into("<H", image, PE_OFFSET + 0x18, self.magic)

        directory_offset = PE_OFFSET + 0x18 + (0x70 if self.is_64bit else 0x60)
        for index, (rva, size) in self.directories.items():
            struct.pack_into("<II", image, directory_offset + index * 8, rva, size)

        for i, (name, va, vsize, raw_ptr, rsize, chars) in enumerate(sections):
            struct.pack_into(
                "<8sIIII12xI",
                image,
                self.section_table_offset + i * 40,
                name.encode("utf-8"),
                vsize,
                va,
                rsize,
                raw_ptr,
                chars,
            )

        image += self.payload
        image += b"\x00" * (raw_size - len(self.payload))
        return bytes(image)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def pe_builder() -> type[PEBuilder]:
    return PEBuilder


@pytest.fixture
def quiet_logger() -> LensLogger:
    return LensLogger("test", log_level="DEBUG", console_output=False)


@pytest.fixture
def engine(quiet_logger: LensLogger) -> PELensEngine:
    return PELensEngine(config=LensConfig(), logger=quiet_logger)


@pytest.fixture
def write_pe(tmp_path: Path) -> Callable[[bytes, str], Path]:
    """Write image bytes to a temporary file and return its path."""

    def _write(data: bytes, name: str = "sample.dll") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def sample_pe() -> bytes:
    """A PE32 DLL with three exports and two imported libraries."""
    pe = PEBuilder()
    pe.add_exports(
        [0x1010, 0x1020, 0x1030],
        [("Alpha", 0), ("Gamma", 2)],
        base=5,
    )
    pe.add_imports([
        ("KERNEL32.dll", [(5, "ExitProcess"), (1, "GetProcAddress"), 17]),
        ("USER32.dll", [(0, "MessageBoxA")]),
    ])
    return pe.build()


@pytest.fixture
def make_context(quiet_logger: LensLogger) -> Callable[..., TableContext]:
    """Validate headers and read sections of *data*, returning a TableContext."""

    def _make(data: bytes, **limits: int) -> TableContext:
        source = BufferSource(data)
        headers = validate_headers(source)
        sections = read_section_table(source, headers)
        return TableContext(
            source=source,
            headers=headers,
            rva_map=RvaTranslator(sections),
            logger=quiet_logger,
            **limits,
        )

    return _make
