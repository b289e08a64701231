"""PELens parsers: byte sources, header validation and table readers."""

from pelens.parsers.headers import validate_headers
from pelens.parsers.sections import RvaTranslator, read_section_table
from pelens.parsers.source import BufferSource, ByteSource, FileSource

__all__ = [
    "validate_headers",
    "read_section_table",
    "RvaTranslator",
    "ByteSource",
    "BufferSource",
    "FileSource",
]
