"""Recursive file discovery and file-level reports."""

import os
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Iterable, Set

from .models import FileRecord
from ..config import ScannerConfig
from ..constants import (
    TEXT_EXTENSIONS,
    TEST_PATH_PATTERNS,
    CONFIG_NAME_PATTERNS,
    ENTRY_POINT_NAMES,
    CODE_EXTENSIONS,
    RESOLVE_EXTENSIONS,
)
from ..exceptions import ScanError
from ..utils import logger, sha256_text, sha256_stat


REFERENCE_REGEX = re.compile(r'''(?:\bfrom|\bimport|\brequire)\s*\(?\s*['"`]([^'"`]+)['"`]''')

_TEST_REGEXES = [re.compile(p) for p in TEST_PATH_PATTERNS]
_CONFIG_REGEXES = [re.compile(p, re.IGNORECASE) for p in CONFIG_NAME_PATTERNS]


def is_test_path(relative_path: str) -> bool:
    """Whether a path follows one of the test-location conventions."""
    normalized = relative_path.replace(os.sep, '/')
    return any(regex.search(normalized) for regex in _TEST_REGEXES)


def is_config_path(relative_path: str) -> bool:
    """Whether a file's basename matches a well-known config filename."""
    name = os.path.basename(relative_path)
    return any(regex.search(name) for regex in _CONFIG_REGEXES)


def file_extension(name: str) -> str:
    """Lowercase extension, keeping compound ``.min.js``-style suffixes."""
    lowered = name.lower()
    for compound in ('.min.js', '.min.css', '.d.ts'):
        if lowered.endswith(compound):
            return compound
    return os.path.splitext(lowered)[1]


@dataclass
class DirectoryStats:
    """Counts and sizes of a scan, grouped by extension and directory."""
    total_files: int = 0
    total_size: int = 0
    files_by_extension: Dict[str, int] = field(default_factory=dict)
    size_by_extension: Dict[str, int] = field(default_factory=dict)
    files_by_directory: Dict[str, int] = field(default_factory=dict)
    largest_files: List[Dict[str, int]] = field(default_factory=list)


class FileScanner:
    """Walk a source tree and produce FileRecords for eligible files."""

    def __init__(self, config: Optional[ScannerConfig] = None, include_content: bool = True):
        self.config = config or ScannerConfig()
        self.include_content = include_content
        self.skipped: List[str] = []

    def scan(self, root: Path) -> List[FileRecord]:
        """Enumerate eligible files under ``root``.

        Args:
            root: Directory to scan

        Returns:
            File records sorted by relative path

        Raises:
            ScanError: If the root itself cannot be read
        """
        root = Path(root)
        if not root.is_dir():
            raise ScanError(str(root), "not a directory")
        if not os.access(root, os.R_OK | os.X_OK):
            raise ScanError(str(root), "permission denied")
        try:
            os.listdir(root)
        except OSError as e:
            raise ScanError(str(root), str(e))

        self.skipped = []
        records = []
        excluded = set(self.config.excluded_dirs)

        def on_error(error: OSError):
            logger.warning(f"Skipping unreadable entry {error.filename}: {error.strerror}")
            self.skipped.append(str(error.filename))

        for dirpath, dirnames, filenames in os.walk(
            root, onerror=on_error, followlinks=self.config.follow_symlinks
        ):
            dirnames[:] = sorted(d for d in dirnames if d not in excluded)
            for name in sorted(filenames):
                file_path = Path(dirpath) / name
                if not self._should_include(name):
                    continue
                record = self._build_record(root, file_path)
                if record is not None:
                    records.append(record)

        records.sort(key=lambda r: r.relative_path)
        logger.debug(f"Scanned {len(records)} files under {root}")
        return records

    def _should_include(self, name: str) -> bool:
        extension = file_extension(name)
        if extension in self.config.exclude_extensions:
            return False
        if self.config.include_extensions:
            return extension in self.config.include_extensions
        return True

    def _build_record(self, root: Path, file_path: Path) -> Optional[FileRecord]:
        try:
            if file_path.is_symlink() and not self.config.follow_symlinks:
                return None
            stat = file_path.stat()
        except OSError as e:
            logger.warning(f"Failed to stat file {file_path}: {e}")
            self.skipped.append(str(file_path))
            return None

        relative_path = file_path.relative_to(root).as_posix()
        extension = file_extension(file_path.name)
        modified = datetime.fromtimestamp(stat.st_mtime)

        content = None
        if (
            self.include_content
            and extension in TEXT_EXTENSIONS
            and stat.st_size <= self.config.max_file_size
        ):
            try:
                content = file_path.read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Content of {relative_path} not captured: {e}")
                content = None

        if content is not None:
            content_hash = sha256_text(content)
            line_count = len(content.split('\n'))
        else:
            content_hash = sha256_stat(modified, stat.st_size)
            line_count = 0

        return FileRecord(
            path=str(file_path),
            relative_path=relative_path,
            extension=extension,
            size=stat.st_size,
            last_modified=modified,
            content_hash=content_hash,
            line_count=line_count,
            is_test_file=is_test_path(relative_path),
            is_config_file=is_config_path(relative_path),
            content=content,
        )

    def get_directory_stats(self, files: Iterable[FileRecord]) -> DirectoryStats:
        """Group file counts and sizes by extension and directory."""
        files = list(files)
        stats = DirectoryStats(
            total_files=len(files),
            total_size=sum(f.size for f in files),
        )
        by_ext: Dict[str, int] = defaultdict(int)
        size_by_ext: Dict[str, int] = defaultdict(int)
        by_dir: Dict[str, int] = defaultdict(int)

        for record in files:
            by_ext[record.extension] += 1
            size_by_ext[record.extension] += record.size
            by_dir[os.path.dirname(record.relative_path) or '.'] += 1

        stats.files_by_extension = dict(by_ext)
        stats.size_by_extension = dict(size_by_ext)
        stats.files_by_directory = dict(by_dir)
        stats.largest_files = [
            {'path': f.relative_path, 'size': f.size}
            for f in sorted(files, key=lambda f: f.size, reverse=True)[:10]
        ]
        return stats

    def find_duplicate_files(self, files: Iterable[FileRecord]) -> Dict[str, List[FileRecord]]:
        """Group files sharing a content hash.

        Files without captured content are hashed by mtime and size, so two
        of them can collide without being identical.
        """
        groups: Dict[str, List[FileRecord]] = defaultdict(list)
        for record in files:
            if record.content_hash:
                groups[record.content_hash].append(record)
        return {h: group for h, group in groups.items() if len(group) > 1}

    def find_large_files(self, files: Iterable[FileRecord],
                         threshold: Optional[int] = None) -> List[FileRecord]:
        """Files above the size threshold, largest first."""
        limit = self.config.large_file_threshold if threshold is None else threshold
        return sorted((f for f in files if f.size > limit), key=lambda f: f.size, reverse=True)

    def find_unused_files(self, files: Iterable[FileRecord]) -> List[FileRecord]:
        """Code files never referenced by a relative import.

        Entry-point basenames and anything under ``pages/`` or ``app/`` are
        never reported.
        """
        code_files = [
            f for f in files
            if f.extension in CODE_EXTENSIONS and not f.is_test_file
        ]
        referenced: Set[str] = set()

        for record in code_files:
            if not record.content:
                continue
            base_dir = os.path.dirname(record.relative_path)
            for match in REFERENCE_REGEX.finditer(record.content):
                specifier = match.group(1)
                if not specifier.startswith('.'):
                    continue
                referenced.update(resolve_candidates(base_dir, specifier))

        unused = []
        for record in code_files:
            stem = os.path.basename(record.relative_path)[:-len(record.extension) or None]
            is_entry = (
                stem in ENTRY_POINT_NAMES
                or 'pages/' in record.relative_path
                or 'app/' in record.relative_path
            )
            if not is_entry and record.relative_path not in referenced:
                unused.append(record)
        return unused


def resolve_candidates(base_dir: str, specifier: str) -> Set[str]:
    """Relative paths a relative import specifier may point at."""
    resolved = os.path.normpath(os.path.join(base_dir, specifier)).replace(os.sep, '/')
    candidates = set()
    for ext in RESOLVE_EXTENSIONS:
        candidates.add(resolved + ext)
        if ext:
            candidates.add(f"{resolved}/index{ext}")
    return candidates
