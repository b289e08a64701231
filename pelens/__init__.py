"""
PELens -- PE Structure Analyzer
================================

PELens reads Windows Portable Executable images (PE32 and PE32+) and
extracts three structural views:

    - the section table, used to translate RVAs to file offsets
    - the export table, sorted by ordinal
    - the import table, grouped by library and sorted by hint

Usage::

    from pelens import analyze

    result = analyze("sample.dll")
    print(result.model_dump_json(indent=2))

References:
    - Microsoft. (2024). PE Format.
    - Pietrek, M. (1994). Peering Inside the PE.
"""

from pelens.core.engine import PELensEngine, analyze
from pelens.core.errors import (
    AnalysisError,
    DirectoryUnresolvedError,
    ErrorKind,
    NotAPeFileError,
    NotFoundError,
    PEIOError,
    UnknownImageFormatError,
)
from pelens.core.models import (
    AnalysisResult,
    ExportFunction,
    ImportFunction,
    ImportTableEntry,
    Section,
    SkippedEntry,
)

__version__ = "1.0.0"
__all__ = [
    "analyze",
    "PELensEngine",
    "AnalysisResult",
    "Section",
    "ExportFunction",
    "ImportFunction",
    "ImportTableEntry",
    "SkippedEntry",
    "AnalysisError",
    "ErrorKind",
    "NotFoundError",
    "PEIOError",
    "NotAPeFileError",
    "UnknownImageFormatError",
    "DirectoryUnresolvedError",
]
