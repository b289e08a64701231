"""PELens core: data models, error hierarchy and the analysis engine."""

from pelens.core.engine import PELensEngine, analyze
from pelens.core.models import AnalysisResult

__all__ = ["PELensEngine", "analyze", "AnalysisResult"]
