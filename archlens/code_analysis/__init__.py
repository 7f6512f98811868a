"""Code analysis module for ArchLens.

Provides file scanning, lexical parsing, per-file metrics and
project-wide metrics.
"""

from .scanner import FileScanner
from .parser import CodeParser
from .project_metrics import MetricsEngine, ProjectMetrics
from .models import (
    FileRecord,
    CodeAnalysisResult,
    CodeIssue,
    CodeMetrics,
    Severity,
    IssueCategory,
)

__all__ = [
    'FileScanner',
    'CodeParser',
    'MetricsEngine',
    'ProjectMetrics',
    'FileRecord',
    'CodeAnalysisResult',
    'CodeIssue',
    'CodeMetrics',
    'Severity',
    'IssueCategory',
]
