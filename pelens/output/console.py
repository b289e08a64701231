"""
PELens Console Output
======================

Rich-powered terminal display for PE structure analysis results: a header
panel, the section table, the export table, one table per imported
library, and the list of entries that were skipped while parsing.

Names come straight from the analysed file, so every one of them is
escaped before it reaches Rich markup.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from shared.console import LensConsole

from pelens.core.models import (
    AnalysisResult,
    ExportFunction,
    ImportTableEntry,
    Section,
    SkippedEntry,
)


def _table() -> Table:
    return Table(
        border_style="bright_cyan",
        header_style="bold bright_magenta",
        show_lines=False,
        padding=(0, 1),
    )


class PELensConsoleOutput:
    """Rich terminal display for :class:`AnalysisResult`.

    Usage::

        output = PELensConsoleOutput()
        output.display(result)
    """

    def __init__(
        self,
        console: LensConsole | None = None,
        max_rows: int = 50,
    ) -> None:
        """Initialise the output renderer.

        Args:
            console: Optional LensConsole instance.  A new one is
                     created if not provided.
            max_rows: Maximum rows printed per table (0 for no limit).
        """
        self._console: LensConsole = console or LensConsole()
        # Negative limits (e.g. from a config file) mean no limit, like 0
        self._max_rows = max(max_rows, 0)

    def display(self, result: AnalysisResult) -> None:
        """Display the complete analysis result."""
        self.display_header(result)
        self.display_sections(result.sections)
        self.display_exports(result.exports)
        self.display_imports(result.imports)
        if result.skipped:
            self.display_skipped(result.skipped)
        self._console.divider()

    def display_header(self, result: AnalysisResult) -> None:
        """Display file metadata panel."""
        lines: list[str] = [
            f"[bold]File:[/bold]      {escape(result.path)}",
            f"[bold]Size:[/bold]      {result.size:,} bytes ({result.size / 1024:.1f} KiB)",
            f"[bold]Format:[/bold]    {'PE32+ (64-bit)' if result.is_64bit else 'PE32 (32-bit)'}",
            f"[bold]Sections:[/bold]  {len(result.sections)}",
            f"[bold]Exports:[/bold]   {len(result.exports)}",
            f"[bold]Imports:[/bold]   {len(result.imports)} libraries, "
            f"{result.import_function_count} functions",
        ]
        panel = Panel(
            "\n".join(lines),
            title="[bold bright_cyan]PE Image[/bold bright_cyan]",
            border_style="bright_cyan",
            padding=(1, 2),
        )
        self._console.rich.print(panel)
        self._console.blank()

    def display_sections(self, sections: list[Section]) -> None:
        self._console.section("Sections")
        if not sections:
            self._console.info("Image has no sections.")
            self._console.blank()
            return

        tbl = _table()
        tbl.add_column("#", style="dim", width=4, justify="right")
        tbl.add_column("Name", style="bold", min_width=10)
        tbl.add_column("RVA", justify="right")
        tbl.add_column("RV End", justify="right")
        tbl.add_column("Raw Pointer", justify="right")
        tbl.add_column("Raw Size", justify="right")
        tbl.add_column("Flags")

        for i, sec in enumerate(sections, 1):
            tbl.add_row(
                str(i),
                escape(sec.name) or "<unnamed>",
                f"0x{sec.virtual_address:08X}",
                f"0x{sec.virtual_end:08X}",
                f"0x{sec.raw_pointer:08X}",
                f"{sec.raw_size:,}",
                sec.flags,
            )

        self._console.rich.print(tbl)
        self._console.blank()

    def display_exports(self, exports: list[ExportFunction]) -> None:
        self._console.section("Exports")
        if not exports:
            self._console.info("No exported functions.")
            self._console.blank()
            return

        tbl = _table()
        tbl.add_column("Ordinal", justify="right", width=8)
        tbl.add_column("Address", justify="right", width=12)
        tbl.add_column("Name", min_width=24)

        for func in self._limit(exports):
            tbl.add_row(
                str(func.ordinal) if func.ordinal else "[dim]-[/dim]",
                f"0x{func.address_rva:08X}",
                escape(func.name) if func.name else "[dim]<unnamed>[/dim]",
            )

        self._console.rich.print(tbl)
        self._note_truncated(len(exports), "exports")
        self._console.blank()

    def display_imports(self, imports: list[ImportTableEntry]) -> None:
        self._console.section("Imports")
        if not imports:
            self._console.info("No imported libraries.")
            self._console.blank()
            return

        for entry in imports:
            tbl = _table()
            tbl.title = f"[bold]{escape(entry.library_name)}[/bold] ({len(entry.functions)})"
            tbl.add_column("Hint", justify="right", width=8)
            tbl.add_column("Ordinal", justify="right", width=8)
            tbl.add_column("Name", min_width=24)

            for func in self._limit(entry.functions):
                if func.is_ordinal:
                    tbl.add_row("-", str(func.ordinal), "[dim]<by ordinal>[/dim]")
                else:
                    tbl.add_row(str(func.hint), "-", escape(func.name))

            self._console.rich.print(tbl)
            self._note_truncated(len(entry.functions), "functions")
            self._console.blank()

    def display_skipped(self, skipped: list[SkippedEntry]) -> None:
        self._console.section("Skipped Entries")
        self._console.table(
            f"{len(skipped)} entries could not be resolved",
            ["Table", "Reason", "Index", "Value", "Detail"],
            [
                (
                    entry.table.value,
                    entry.reason.value,
                    entry.index,
                    f"0x{entry.rva:X}",
                    escape(entry.detail),
                )
                for entry in self._limit(skipped)
            ],
            styles=["", "yellow", "", "", ""],
        )
        self._note_truncated(len(skipped), "skipped entries")
        self._console.blank()

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    def _limit(self, items: list) -> list:
        if self._max_rows and len(items) > self._max_rows:
            return items[:self._max_rows]
        return items

    def _note_truncated(self, total: int, label: str) -> None:
        if self._max_rows and total > self._max_rows:
            self._console.info(
                f"Showing {self._max_rows} of {total} {label}. "
                f"Use --json or --output to see all of them."
            )
