"""Architecture analysis module for ArchLens.

Runs the full pipeline over a source tree: component classification,
pattern detection, cross-file architecture checks, scorer predictions
and optimization suggestions.
"""

from .analyzer import ArchitecturalAnalyzer, AnalysisResult, CancellationToken, classify_component
from .models import (
    AnalysisRun,
    AnalysisType,
    Component,
    ComponentType,
    ComponentUpgrade,
    Issue,
    IssueStatus,
    IssueType,
    OptimizationOpportunity,
    Pattern,
    PatternType,
    RunStatus,
)

__all__ = [
    'ArchitecturalAnalyzer',
    'AnalysisResult',
    'CancellationToken',
    'classify_component',
    'AnalysisRun',
    'AnalysisType',
    'Component',
    'ComponentType',
    'ComponentUpgrade',
    'Issue',
    'IssueStatus',
    'IssueType',
    'OptimizationOpportunity',
    'Pattern',
    'PatternType',
    'RunStatus',
]
