"""
PELens CLI -- PE Structure Analyzer
====================================

Click-based command-line interface for PELens.  Analyses one or more PE
images and renders their section, export and import tables.

Usage::

    # Rich tables for one file
    pelens C:/Windows/System32/kernel32.dll

    # Wire-format JSON on stdout
    pelens sample.dll --json

    # Several files at once, JSON report on disk
    pelens a.exe b.dll --output report.json

    # Debug logging and a custom configuration file
    pelens sample.exe --verbose --config pelens.toml

Exit codes: 0 on success, 1 if any analysis failed, 130 when interrupted.

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.markup import escape

from shared.config import LensConfig, get_config
from shared.console import LensConsole
from shared.logger import LensLogger

from pelens.core.engine import PELensEngine
from pelens.output.console import PELensConsoleOutput
from pelens.output.report import PELensReportGenerator


@click.command("pelens")
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Output results as JSON to stdout.",
)
@click.option(
    "--output", "-o",
    "output_path",
    type=click.Path(),
    default=None,
    help="Write a JSON report to this path.",
)
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(),
    default=None,
    help="Path to a TOML configuration file.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=0),
    default=None,
    help="Maximum rows per table in console output (0 for all).",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose/debug output.",
)
def pelens_cli(
    paths: tuple[str, ...],
    json_output: bool,
    output_path: str | None,
    config_path: str | None,
    limit: int | None,
    verbose: bool,
) -> None:
    """PELens -- PE Structure Analyzer.

    Validate each PATH as a Windows PE image and list its sections,
    exported functions and imported functions grouped by library.
    """
    console = LensConsole()
    err_console = LensConsole(stderr=True)

    try:
        config = LensConfig.load(config_path) if config_path else get_config()
    except (OSError, ValueError) as exc:
        err_console.error(escape(f"Cannot load configuration: {exc}"))
        sys.exit(1)

    settings = config.global_settings
    if verbose or settings.debug:
        log_level = "DEBUG"
    elif json_output:
        # Keep stdout/stderr quiet apart from problems when emitting JSON
        log_level = "WARNING"
    else:
        log_level = settings.log_level
    logger = LensLogger(
        "cli",
        log_level=log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )

    engine = PELensEngine(config=config, logger=logger)

    try:
        if len(paths) == 1:
            outcomes = [engine.analyze_outcome(paths[0])]
        else:
            outcomes = asyncio.run(engine.analyze_many(paths))
    except KeyboardInterrupt:
        err_console.warning("Analysis interrupted by user.")
        sys.exit(130)

    failures = [o for o in outcomes if not o.ok]
    report_gen = PELensReportGenerator()

    if json_output:
        if len(outcomes) == 1 and outcomes[0].result is not None:
            payload = outcomes[0].result.model_dump(mode="json")
        else:
            payload = [o.model_dump(mode="json") for o in outcomes]
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        max_rows = limit if limit is not None else config.pelens.table_row_limit
        display = PELensConsoleOutput(console=console, max_rows=max_rows)
        for outcome in outcomes:
            if outcome.result is not None:
                display.display(outcome.result)

    for outcome in failures:
        err_console.error(escape(f"{outcome.path}: [{outcome.error_kind}] {outcome.error}"))

    if output_path:
        successes = [o.result for o in outcomes if o.result is not None]
        if len(outcomes) == 1 and successes:
            report_path = report_gen.generate_json(successes[0], output_path)
        else:
            report_path = report_gen.generate_json(outcomes, output_path)
        err_console.success(escape(f"JSON report saved: {report_path}"))

    if failures:
        sys.exit(1)


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for the ``pelens`` console script."""
    pelens_cli()


if __name__ == "__main__":
    main()
