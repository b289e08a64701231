"""PELens output: Rich console rendering and JSON reports."""

from pelens.output.console import PELensConsoleOutput
from pelens.output.report import PELensReportGenerator

__all__ = ["PELensConsoleOutput", "PELensReportGenerator"]
