"""Tests for PE header validation and data directory access."""

from __future__ import annotations

import struct

import pytest

from pelens.core.errors import (
    ErrorKind,
    NotAPeFileError,
    PEIOError,
    UnknownImageFormatError,
)
from pelens.parsers.headers import (
    IMAGE_DIRECTORY_ENTRY_EXPORT,
    IMAGE_DIRECTORY_ENTRY_IMPORT,
    machine_name,
    read_data_directory,
    validate_headers,
)
from pelens.parsers.source import BufferSource


def test_pe32_headers(pe_builder) -> None:
    headers = validate_headers(BufferSource(pe_builder().build()))
    assert headers.is_64bit is False
    assert headers.coff_header_offset == 0x80
    assert headers.section_count == 1
    assert headers.optional_header_size == 0xE0
    assert headers.machine == 0x14C
    assert headers.section_table_offset == 0x80 + 0x18 + 0xE0
    assert headers.data_directory_offset == 0x80 + 0x18 + 0x60


def test_pe32plus_headers(pe_builder) -> None:
    headers = validate_headers(BufferSource(pe_builder(is_64bit=True).build()))
    assert headers.is_64bit is True
    assert headers.optional_header_size == 0xF0
    assert headers.machine == 0x8664
    assert headers.data_directory_offset == 0x80 + 0x18 + 0x70


@pytest.mark.parametrize("data", [b"", b"M", b"ZM" + b"\x00" * 100, b"hello world" * 10])
def test_missing_mz_signature(data: bytes) -> None:
    with pytest.raises(NotAPeFileError) as info:
        validate_headers(BufferSource(data))
    assert info.value.kind is ErrorKind.NOT_A_PE_FILE


def test_missing_pe_signature(pe_builder) -> None:
    data = bytearray(pe_builder().build())
    data[0x80:0x84] = b"NE\x00\x00"
    with pytest.raises(NotAPeFileError):
        validate_headers(BufferSource(bytes(data)))


def test_pe_offset_beyond_end_of_file() -> None:
    data = bytearray(0x40)
    data[0:2] = b"MZ"
    struct.pack_into("<I", data, 0x3C, 0x1000)
    with pytest.raises(NotAPeFileError):
        validate_headers(BufferSource(bytes(data)))


def test_dos_header_too_short_is_io_error() -> None:
    with pytest.raises(PEIOError):
        validate_headers(BufferSource(b"MZ"))


def test_unknown_optional_header_magic(pe_builder) -> None:
    data = pe_builder(magic=0x107).build()
    with pytest.raises(UnknownImageFormatError) as info:
        validate_headers(BufferSource(data))
    assert info.value.magic == 0x107
    assert info.value.kind is ErrorKind.UNKNOWN_IMAGE_FORMAT
    assert "0x0107" in str(info.value)


@pytest.mark.parametrize("is_64bit", [False, True])
def test_read_data_directory(pe_builder, is_64bit: bool) -> None:
    pe = pe_builder(is_64bit=is_64bit)
    pe.set_directory(IMAGE_DIRECTORY_ENTRY_IMPORT, 0x3000, 0x64)
    source = BufferSource(pe.build())
    headers = validate_headers(source)

    imports = read_data_directory(source, headers, IMAGE_DIRECTORY_ENTRY_IMPORT)
    assert (imports.rva, imports.size) == (0x3000, 0x64)
    assert not imports.is_empty
    assert read_data_directory(source, headers, IMAGE_DIRECTORY_ENTRY_EXPORT).is_empty


def test_machine_name() -> None:
    assert machine_name(0x14C) == "x86"
    assert machine_name(0x8664) == "x86_64"
    assert machine_name(0xAA64) == "AArch64"
    assert machine_name(0x1234) == "unknown(0x1234)"
