"""
PELens Structured Logger
=========================

Provides :class:`LensLogger`, a logging facade that emits human-friendly
Rich console output on stderr and, optionally, machine-parseable JSON lines
to a rotating log file.

Every record carries the component name and the parsing stage active in
the calling thread (for example ``"export_table"``), so a log file from a
batch run can be grouped by stage.  The stage lives in a
:class:`contextvars.ContextVar`: analyses running in parallel worker
threads each see only their own stage, even when they share one logger.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - PEP 567 -- Context Variables. https://peps.python.org/pep-0567/
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import contextlib
import json
import logging
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
    }
)

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(stage)s | %(message)s"

# Parsing stage of the current thread / task; None outside any stage
_current_stage: ContextVar[str | None] = ContextVar("pelens_stage", default=None)


# ========================== Record enrichment ==============================


class _StageFilter(logging.Filter):
    """Stamp every record with the component name and the active stage."""

    def __init__(self, component: str) -> None:
        super().__init__()
        self._component = component

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = self._component
        record.stage = _current_stage.get() or "-"
        return True


class _JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Output fields::

        {"timestamp": "...", "level": "WARNING", "logger": "pelens.engine",
         "component": "engine", "stage": "import_table",
         "message": "...", "fields": {...}}

    ``stage`` is omitted outside a stage and ``fields`` when the call
    passed no keyword fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": getattr(record, "component", None),
            "message": record.getMessage(),
        }
        stage = getattr(record, "stage", "-")
        if stage != "-":
            entry["stage"] = stage
        fields = getattr(record, "fields", None)
        if fields:
            entry["fields"] = fields
        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _console_handler(level: int) -> RichHandler:
    # stderr keeps stdout clean for --json; markup off because messages
    # quote names taken from the analysed file
    return RichHandler(
        level=level,
        console=Console(theme=_LOG_THEME, stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )


def _file_handler(
    log_file: str | Path,
    level: int,
    json_logs: bool,
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_logs:
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    return handler


# ========================== LensLogger =====================================


class LensLogger:
    """Logger for one PELens component (``"engine"``, ``"cli"``, ...).

    Usage::

        log = LensLogger("engine", log_file="pelens.log", json_logs=True)
        with log.stage("section_table"):
            log.debug("Reading %d sections", count)
        log.warning("Count capped", table="export", count=count)

    Keyword arguments other than ``exc_info`` / ``stack_info`` /
    ``stacklevel`` passed to a log call are collected into the record's
    ``fields`` and written to JSON log files.

    Args:
        tool_name:       Component name; the stdlib logger is ``pelens.<tool_name>``.
        log_level:       Minimum severity (DEBUG, INFO, WARNING, ERROR).
        log_file:        Rotating log file path; ``None`` or ``""`` disables it.
        json_logs:       Write JSON lines instead of plain text to the file.
        max_bytes:       Log-file size before rotation (default 10 MiB).
        backup_count:    Number of rotated files to keep.
        console_output:  Attach the Rich stderr handler.
    """

    _STANDARD_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel"})

    def __init__(
        self,
        tool_name: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
        console_output: bool = True,
    ) -> None:
        self._tool_name = tool_name
        level = getattr(logging, log_level.upper(), logging.INFO)

        self._logger = logging.getLogger(f"pelens.{tool_name}")
        self._logger.setLevel(level)
        self._logger.propagate = False

        # Re-instantiation replaces, never stacks, handlers
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()
        self._logger.filters.clear()
        self._logger.addFilter(_StageFilter(tool_name))

        if console_output:
            self._logger.addHandler(_console_handler(level))
        if log_file:
            self._logger.addHandler(
                _file_handler(log_file, level, json_logs, max_bytes, backup_count)
            )

    # ------------------------------------------------------------------ #
    #  Stage scope
    # ------------------------------------------------------------------ #

    @contextlib.contextmanager
    def stage(self, name: str) -> Iterator[LensLogger]:
        """Tag records logged by this thread with *name* until exit.

        Stages nest; leaving one restores whatever was active before it.
        """
        token = _current_stage.set(name)
        try:
            yield self
        finally:
            _current_stage.reset(token)

    @property
    def current_stage(self) -> str | None:
        """Stage active in the calling thread, or ``None``."""
        return _current_stage.get()

    # ------------------------------------------------------------------ #
    #  Log methods
    # ------------------------------------------------------------------ #

    def _log(self, level: int, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in self._STANDARD_KWARGS}
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, extra={"fields": fields}, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    # ------------------------------------------------------------------ #
    #  Timing helper
    # ------------------------------------------------------------------ #

    class _Timer:
        """Context manager logging the wall-clock duration of a block."""

        def __init__(self, owner: LensLogger, label: str) -> None:
            self._owner = owner
            self._label = label
            self._start = 0.0
            self.elapsed = 0.0

        def __enter__(self) -> LensLogger._Timer:
            self._start = time.perf_counter()
            self._owner.debug("Started: %s", self._label)
            return self

        def __exit__(self, exc_type: Any, *exc: Any) -> None:
            self.elapsed = time.perf_counter() - self._start
            outcome = "Completed" if exc_type is None else "Aborted"
            self._owner.info(
                "%s: %s (%.3f sec)", outcome, self._label, self.elapsed,
                seconds=round(self.elapsed, 6),
            )

    def timed(self, label: str) -> _Timer:
        """Log start, finish and elapsed seconds of the enclosed block.

        Usage::

            with log.timed("analysis of sample.dll") as timer:
                result = engine.analyze("sample.dll")
            print(timer.elapsed)
        """
        return self._Timer(self, label)

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def tool_name(self) -> str:
        return self._tool_name

    @property
    def underlying(self) -> logging.Logger:
        """The stdlib :class:`logging.Logger` this facade writes to."""
        return self._logger
