"""
Utility functions for ArchLens.
"""

import hashlib
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union
from datetime import datetime
import colorama
from rich.logging import RichHandler

# Initialize colorama for cross-platform color support
colorama.init()


# Configure logging with Rich handler
def setup_logger(name: str = "archlens", level: str = "INFO") -> logging.Logger:
    """Set up a logger with Rich formatting."""
    logger = logging.getLogger(name)

    # Clear existing handlers
    logger.handlers = []

    handler = RichHandler(
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger


def add_file_handler(path: Union[str, Path], level: str = "INFO") -> None:
    """Mirror log output into a plain-text file."""
    path = ensure_directory(Path(path).parent) / Path(path).name
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.addHandler(handler)


# Global logger instance
logger = setup_logger()


def sha256_text(content: str) -> str:
    """Hash text content with SHA-256."""
    return hashlib.sha256(content.encode("utf-8", errors="replace")).hexdigest()


def sha256_stat(modified: datetime, size: int) -> str:
    """Hash a file's modification time and size when its content is unavailable."""
    return hashlib.sha256(f"{modified.isoformat()}-{size}".encode("utf-8")).hexdigest()


def merge_dicts(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def format_size(size: float) -> str:
    """Format file size in human-readable format."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


def format_duration(start: Optional[datetime], end: Optional[datetime]) -> str:
    """Format the time between two timestamps as ``1m 5s``."""
    if not start or not end:
        return "n/a"
    seconds = int((end - start).total_seconds())
    minutes = seconds // 60
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp a value into ``[low, high]``."""
    return max(low, min(high, value))


def line_number_at(content: str, offset: int) -> int:
    """Return the 1-based line number of a character offset."""
    return content[:offset].count('\n') + 1
