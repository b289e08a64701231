"""
Table Parsing Context
======================

Bundles what the export and import readers share for one analysis: the
byte source, the RVA translator, the header facts, the configured limits
and the list that collects skipped-entry diagnostics.

A context is created per analysis and discarded with it; nothing here
outlives a single call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from shared.logger import LensLogger

from pelens.core.errors import DirectoryUnresolvedError
from pelens.core.models import ImageHeaders, SkippedEntry, SkipReason, TableKind
from pelens.parsers.sections import RvaTranslator
from pelens.parsers.source import ByteSource


@dataclass(slots=True)
class TableContext:
    """Per-analysis state shared by the table readers."""

    source: ByteSource
    headers: ImageHeaders
    rva_map: RvaTranslator
    logger: LensLogger
    max_table_entries: int = 65_536
    max_name_length: int = 4_096
    skipped: list[SkippedEntry] = field(default_factory=list)

    def translate(self, rva: int) -> Optional[int]:
        return self.rva_map.translate(rva)

    def require(self, rva: int, directory: str) -> int:
        """Translate a mandatory RVA.

        Raises:
            DirectoryUnresolvedError: If *rva* maps to no section.
        """
        offset = self.rva_map.translate(rva)
        if offset is None:
            raise DirectoryUnresolvedError(directory, rva)
        return offset

    def skip(
        self,
        table: TableKind,
        reason: SkipReason,
        *,
        index: int = 0,
        rva: int = 0,
        detail: str = "",
    ) -> None:
        """Record a skipped or degraded entry and log it."""
        self.skipped.append(SkippedEntry(
            table=table, reason=reason, index=index, rva=rva, detail=detail,
        ))
        self.logger.warning(
            "Skipped %s entry %d (%s): %s", table.value, index, reason.value, detail,
            table=table.value, reason=reason.value, index=index, rva=rva,
        )

    def bounded_count(
        self,
        table: TableKind,
        label: str,
        count: int,
        offset: int,
        entry_size: int,
    ) -> int:
        """Cap a count read from the file to what the source can hold.

        The count may not exceed the number of *entry_size* records that
        fit between *offset* and end-of-source, nor ``max_table_entries``.
        """
        fits = self.source.remaining(offset) // entry_size
        bounded = min(count, fits, self.max_table_entries)
        if bounded != count:
            self.skip(
                table,
                SkipReason.COUNT_CAPPED,
                rva=count,
                detail=f"{label} count {count} capped to {bounded}",
            )
        return bounded

    def read_name(self, offset: int, phase: str) -> str:
        return self.source.read_cstring(offset, self.max_name_length, phase)
