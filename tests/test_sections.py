"""Tests for the section table reader and RVA translation."""

from __future__ import annotations

import pytest

from pelens.core.errors import PEIOError
from pelens.core.models import Section
from pelens.parsers.headers import validate_headers
from pelens.parsers.sections import RvaTranslator, read_section_table
from pelens.parsers.source import BufferSource


def _sections(data: bytes) -> list[Section]:
    source = BufferSource(data)
    return read_section_table(source, validate_headers(source))


def test_reads_sections_in_file_order(pe_builder) -> None:
    pe = pe_builder()
    pe.add_section(".textbss", 0x1000, 0x800, 0x0, 0x0)
    pe.add_section("INIT", 0x8000, 0x100, 0x600, 0x200, characteristics=0xC0000040)
    sections = _sections(pe.build())

    assert [s.name for s in sections] == [".rdata", ".textbss", "INIT"]
    text = sections[1]
    assert text.virtual_address == 0x1000
    assert text.virtual_size == 0x800
    assert text.virtual_end == 0x1800
    assert text.flags == "R X CODE"

    init = sections[2]
    assert init.raw_pointer == 0x600
    assert init.raw_size == 0x200
    assert init.characteristics == 0xC0000040
    assert init.flags == "R W IDATA"


def test_data_section_geometry(pe_builder) -> None:
    rdata = _sections(pe_builder().build())[0]
    assert rdata.virtual_address == 0x2000
    assert rdata.raw_pointer == 0x400
    assert rdata.virtual_end == rdata.virtual_address + rdata.virtual_size
    assert rdata.flags == "R IDATA"


def test_truncated_section_table(pe_builder) -> None:
    pe = pe_builder()
    data = pe.build()[:pe.section_table_offset + 20]
    with pytest.raises(PEIOError) as info:
        _sections(data)
    assert info.value.phase == "section table"


def test_section_count_beyond_file(pe_builder) -> None:
    data = bytearray(pe_builder().build())
    data[0x86:0x88] = (200).to_bytes(2, "little")
    with pytest.raises(PEIOError):
        _sections(bytes(data))


class TestRvaTranslator:

    @pytest.fixture
    def translator(self) -> RvaTranslator:
        return RvaTranslator([
            Section(name=".text", virtual_address=0x1000, virtual_end=0x1800,
                    virtual_size=0x800, raw_pointer=0x400),
            Section(name=".data", virtual_address=0x3000, virtual_end=0x3100,
                    virtual_size=0x100, raw_pointer=0xC00),
        ])

    def test_lower_bound_inclusive(self, translator: RvaTranslator) -> None:
        assert translator.translate(0x1000) == 0x400
        assert translator.translate(0x3000) == 0xC00

    def test_inside_section(self, translator: RvaTranslator) -> None:
        assert translator.translate(0x1234) == 0x634
        assert translator(0x17FF) == 0xBFF

    def test_upper_bound_exclusive(self, translator: RvaTranslator) -> None:
        assert translator.translate(0x1800) is None
        assert translator.translate(0x3100) is None

    def test_unmapped(self, translator: RvaTranslator) -> None:
        assert translator.translate(0) is None
        assert translator.translate(0x2000) is None
        assert translator.translate(0xFFFFFFFF) is None

    def test_first_match_wins_on_overlap(self) -> None:
        translator = RvaTranslator([
            Section(name="a", virtual_address=0x1000, virtual_end=0x2000, raw_pointer=0x400),
            Section(name="b", virtual_address=0x1800, virtual_end=0x2800, raw_pointer=0x2000),
        ])
        assert translator.translate(0x1900) == 0x400 + 0x900
        assert translator.translate(0x2100) == 0x2000 + 0x900

    def test_no_sections(self) -> None:
        assert RvaTranslator([]).translate(0x1000) is None


def test_section_ending_past_4gib_keeps_its_range(pe_builder) -> None:
    pe = pe_builder()
    pe.add_section("HIGH", 0xFFFFF000, 0x2000, 0x600, 0x200)
    high = _sections(pe.build())[1]

    assert high.virtual_end == 0x100001000
    translator = RvaTranslator([high])
    assert translator.translate(0xFFFFF000) == 0x600
    assert translator.translate(0xFFFFFFFF) == 0x600 + 0xFFF
    assert translator.translate(0x1000) is None
