"""
PELens Analysis Engine
=======================

Orchestrates structural analysis of a Portable Executable image:

Analysis Pipeline:
    1. Open the file (or wrap an in-memory buffer) as a byte source
    2. Validate the MZ / PE signatures and read the COFF basics
    3. Read the section table and build the RVA translator
    4. Read the export table (data directory slot 0)
    5. Read the import table (data directory slot 1)
    6. Assemble the immutable :class:`AnalysisResult`

Each call is sequential and self-contained: no state is shared between
analyses, so independent files may be analysed concurrently.
:meth:`PELensEngine.analyze_many` does exactly that in a thread pool.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
    - Pietrek, M. (1994). Peering Inside the PE. Microsoft Systems Journal.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable

from shared.config import LensConfig
from shared.logger import LensLogger

from pelens.core.errors import AnalysisError, NotFoundError, PEIOError
from pelens.core.models import AnalysisOutcome, AnalysisResult
from pelens.parsers.context import TableContext
from pelens.parsers.exports import read_export_table
from pelens.parsers.headers import machine_name, validate_headers
from pelens.parsers.imports import read_import_table
from pelens.parsers.sections import RvaTranslator, read_section_table
from pelens.parsers.source import BufferSource, ByteSource, FileSource


class PELensEngine:
    """Runs the PE structure analysis pipeline.

    Usage::

        engine = PELensEngine()
        result = engine.analyze("C:/Windows/System32/kernel32.dll")
        for entry in result.imports:
            print(entry.library_name, len(entry.functions))

    Or for several files at once::

        outcomes = asyncio.run(engine.analyze_many(paths))
    """

    def __init__(
        self,
        config: LensConfig | None = None,
        logger: LensLogger | None = None,
    ) -> None:
        """Initialise the analysis engine.

        Args:
            config: PELens configuration.  Defaults are used if not provided.
            logger: Logger instance.  A new one is created if not provided.
        """
        self._config: LensConfig = config or LensConfig()
        self._logger: LensLogger = logger or LensLogger("engine")

    @property
    def config(self) -> LensConfig:
        return self._config

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def analyze(self, file_path: str | Path) -> AnalysisResult:
        """Analyse the PE file at *file_path*.

        Args:
            file_path: Filesystem path of the candidate PE image.

        Returns:
            The immutable analysis result.

        Raises:
            NotFoundError: The path does not exist.
            PEIOError: The file cannot be opened or read, or is larger
                than ``config.pelens.max_file_size``.
            NotAPeFileError: DOS or PE signature mismatch.
            UnknownImageFormatError: Unrecognised optional-header magic.
            DirectoryUnresolvedError: A mandatory directory RVA is unmapped.
        """
        path = Path(file_path)
        if not path.exists():
            raise NotFoundError(str(file_path))

        with self._logger.timed(f"analysis of {path.name}"):
            with FileSource.open(path) as source:
                max_size = self._config.pelens.max_file_size
                if source.size > max_size:
                    raise PEIOError(
                        f"File too large: {source.size:,} bytes "
                        f"(max: {max_size:,} bytes)",
                        phase="open",
                    )
                return self._run_pipeline(source, str(file_path))

    def analyze_bytes(
        self,
        data: bytes,
        file_path: str = "<memory>",
    ) -> AnalysisResult:
        """Analyse an in-memory PE image.

        Useful for testing or for data already read from elsewhere.

        Args:
            data: Raw image bytes.
            file_path: Display path recorded on the result.

        Returns:
            The immutable analysis result, with ``size == len(data)``.
        """
        return self._run_pipeline(BufferSource(data), file_path)

    async def analyze_many(
        self,
        file_paths: Iterable[str | Path],
    ) -> list[AnalysisOutcome]:
        """Analyse several files concurrently in the default executor.

        Errors are captured per file; one bad file does not stop the batch.

        Args:
            file_paths: Paths to analyse.

        Returns:
            One :class:`AnalysisOutcome` per path, in input order.
        """
        loop = asyncio.get_running_loop()
        paths = [str(p) for p in file_paths]
        tasks = [
            loop.run_in_executor(None, self.analyze_outcome, p) for p in paths
        ]
        return list(await asyncio.gather(*tasks))

    def analyze_outcome(self, file_path: str) -> AnalysisOutcome:
        """Analyse *file_path*, capturing a classified error as an outcome."""
        try:
            return AnalysisOutcome(path=file_path, result=self.analyze(file_path))
        except AnalysisError as exc:
            self._logger.debug("Analysis of %s failed: %s", file_path, exc)
            return AnalysisOutcome(
                path=file_path, error_kind=exc.kind.value, error=str(exc),
            )

    # ------------------------------------------------------------------ #
    #  Pipeline implementation
    # ------------------------------------------------------------------ #

    def _run_pipeline(self, source: ByteSource, file_path: str) -> AnalysisResult:
        """Execute the header, section, export and import stages."""
        logger = self._logger
        limits = self._config.pelens

        with logger.stage("headers"):
            headers = validate_headers(source)
            logger.debug(
                "PE header at 0x%X: %s, %d-bit, %d sections, optional header %d bytes",
                headers.coff_header_offset,
                machine_name(headers.machine),
                64 if headers.is_64bit else 32,
                headers.section_count,
                headers.optional_header_size,
            )

        with logger.stage("section_table"):
            sections = read_section_table(source, headers)

        ctx = TableContext(
            source=source,
            headers=headers,
            rva_map=RvaTranslator(sections),
            logger=logger,
            max_table_entries=limits.max_table_entries,
            max_name_length=limits.max_name_length,
        )

        with logger.stage("export_table"):
            exports = read_export_table(ctx)

        with logger.stage("import_table"):
            imports = read_import_table(ctx)

        result = AnalysisResult(
            path=file_path,
            size=source.size,
            is_64bit=headers.is_64bit,
            sections=sections,
            exports=exports,
            imports=imports,
            skipped=ctx.skipped,
        )

        logger.info(
            "Analysis complete: %s | %s | Sections: %d | Exports: %d | "
            "Imports: %d libraries, %d functions | Skipped: %d",
            file_path,
            "PE32+" if result.is_64bit else "PE32",
            len(result.sections),
            len(result.exports),
            len(result.imports),
            result.import_function_count,
            len(result.skipped),
        )
        return result


# ---------------------------------------------------------------------------
# Module-level convenience
# ---------------------------------------------------------------------------

def analyze(file_path: str | Path) -> AnalysisResult:
    """Analyse *file_path* with a default-configured engine.

    See :meth:`PELensEngine.analyze` for the errors raised.
    """
    return PELensEngine().analyze(file_path)
