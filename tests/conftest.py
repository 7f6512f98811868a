"""Shared fixtures for the ArchLens test suite."""

import shutil
import tempfile
from datetime import datetime
from pathlib import Path

import pytest

from archlens.code_analysis.models import FileRecord
from archlens.code_analysis.scanner import is_config_path, is_test_path
from archlens.storage import AnalysisStore
from archlens.utils import sha256_text


EMPTY_PREDICTIONS = {
    'new_issues': [],
    'pattern_suggestions': [],
    'optimization_suggestions': [],
    'upgrade_suggestions': [],
}


class FakeScorer:
    """Scorer double recording calls; optionally fails on ``score``."""

    def __init__(self, predictions=None, error=None):
        self.predictions = predictions if predictions is not None else dict(EMPTY_PREDICTIONS)
        self.error = error
        self.payloads = []
        self.cleaned_up = False

    def score(self, payload, timeout=None):
        self.payloads.append(payload)
        if self.error:
            raise self.error
        return self.predictions

    def cleanup(self):
        self.cleaned_up = True


def make_file(relative_path: str, content: str, size: int = None) -> FileRecord:
    """Build a FileRecord without touching the filesystem."""
    ext = Path(relative_path).suffix
    return FileRecord(
        path=f"/project/{relative_path}",
        relative_path=relative_path,
        extension=ext,
        size=len(content.encode()) if size is None else size,
        last_modified=datetime.now(),
        content_hash=sha256_text(content),
        line_count=len(content.split('\n')),
        is_test_file=is_test_path(relative_path),
        is_config_file=is_config_path(relative_path),
        content=content,
    )


def write_project(root: Path, files: dict) -> Path:
    for relative_path, content in files.items():
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def temp_dir():
    """Create a temporary directory removed after the test."""
    path = tempfile.mkdtemp()
    yield Path(path)
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def store(temp_dir):
    """Fresh SQLite store in a temporary directory."""
    return AnalysisStore(temp_dir / "archlens.db")
