"""
ArchLens: architectural static analysis for source trees.

Scans a project, measures per-file and project-wide quality, detects
patterns and structural issues, and refines its scoring from user
feedback.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .architecture.analyzer import ArchitecturalAnalyzer, AnalysisResult
from .config import Config
from .cli import main

__all__ = ["ArchitecturalAnalyzer", "AnalysisResult", "Config", "main"]
