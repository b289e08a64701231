"""
PELens Report Generator
========================

Writes analysis results as structured JSON reports for machine
consumption.  The ``analysis`` member of a report is exactly the wire
contract of :class:`~pelens.core.models.AnalysisResult`.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from pelens.core.models import AnalysisOutcome, AnalysisResult

REPORT_TYPE: str = "pelens_pe_structure"
REPORT_VERSION: str = "1.0.0"


class PELensReportGenerator:
    """Generate JSON reports from PE structure analysis results.

    Usage::

        generator = PELensReportGenerator()
        generator.generate_json(result, "report.json")
    """

    def build_report(self, result: AnalysisResult) -> dict[str, Any]:
        """Return the report for a single result as a plain dictionary."""
        return {
            "report_type": REPORT_TYPE,
            "version": REPORT_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "analysis": result.model_dump(mode="json"),
        }

    def build_batch_report(self, outcomes: Sequence[AnalysisOutcome]) -> dict[str, Any]:
        """Return one report covering several analysed files."""
        return {
            "report_type": REPORT_TYPE,
            "version": REPORT_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "files": [outcome.model_dump(mode="json") for outcome in outcomes],
        }

    def generate_json(
        self,
        result: AnalysisResult | Sequence[AnalysisOutcome],
        output_path: str | Path,
    ) -> str:
        """Write a JSON report and return its absolute path.

        Args:
            result: A single analysis result, or batch outcomes.
            output_path: Filesystem path for the output JSON file.
        """
        if isinstance(result, AnalysisResult):
            report_data = self.build_report(result)
        else:
            report_data = self.build_batch_report(result)

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(report_data, f, indent=2, ensure_ascii=False, default=str)

        return str(path.resolve())
