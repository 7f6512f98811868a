"""Exception hierarchy for ArchLens."""

from typing import Dict, Optional


class ArchLensError(Exception):
    """Base exception for all ArchLens errors."""

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ScanError(ArchLensError, OSError):
    """Raised when the scan root cannot be read."""

    def __init__(self, root: str, reason: str):
        super().__init__(f"Cannot scan {root}", {"reason": reason})
        self.root = root


class MissingContentError(ArchLensError):
    """Raised when a file is parsed without captured content."""

    def __init__(self, path: str):
        super().__init__("File content was not captured", {"path": path})
        self.path = path


class PersistenceError(ArchLensError):
    """A single persistence write failed."""


class FeedbackPersistenceError(PersistenceError):
    """A feedback record could not be stored."""


class ScorerError(ArchLensError):
    """The scorer worker failed, crashed or returned an error."""


class ScorerTimeoutError(ScorerError):
    """The scorer did not answer within the configured timeout."""

    def __init__(self, timeout: float):
        super().__init__("Scorer round-trip timed out", {"timeout": f"{timeout}s"})
        self.timeout = timeout


class AnalysisCancelledError(ArchLensError):
    """The analysis run was cancelled cooperatively."""
