"""Data models for file scanning and per-file code analysis."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Optional, Any
from datetime import datetime
import math


class Severity(Enum):
    """Issue severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return SEVERITY_ORDER[self]


SEVERITY_ORDER = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class IssueCategory(Enum):
    """Categories of code issues."""
    COMPLEXITY = "complexity"
    DUPLICATION = "duplication"
    SMELL = "smell"
    ANTI_PATTERN = "anti-pattern"
    PERFORMANCE = "performance"
    SECURITY = "security"
    MAINTAINABILITY = "maintainability"


@dataclass(frozen=True)
class FileRecord:
    """A scanned file. Immutable once produced by the scanner."""
    path: str
    relative_path: str
    extension: str
    size: int
    last_modified: datetime
    content_hash: str
    line_count: int = 0
    is_test_file: bool = False
    is_config_file: bool = False
    content: Optional[str] = None

    @property
    def has_content(self) -> bool:
        return self.content is not None


@dataclass
class ImportRecord:
    """A module import found in a file."""
    source: str
    line: int
    specifiers: List[str] = field(default_factory=list)
    is_default: bool = False
    is_namespace: bool = False
    is_dynamic: bool = False
    is_external: bool = False


@dataclass
class ExportRecord:
    """A name exported by a file."""
    name: str
    line: int
    is_default: bool = False
    kind: str = "named"


@dataclass
class FunctionRecord:
    """A function declaration or arrow-function binding."""
    name: str
    line_start: int
    line_end: int
    parameter_count: int = 0
    is_exported: bool = False
    is_async: bool = False
    is_arrow: bool = False
    complexity: int = 1


@dataclass
class MethodRecord:
    name: str
    line: int
    is_static: bool = False
    is_async: bool = False


@dataclass
class PropertyRecord:
    name: str
    line: int
    is_static: bool = False
    visibility: str = "public"


@dataclass
class ClassRecord:
    """A class declaration."""
    name: str
    line_start: int
    line_end: int
    superclass: Optional[str] = None
    interfaces: List[str] = field(default_factory=list)
    methods: List[MethodRecord] = field(default_factory=list)
    properties: List[PropertyRecord] = field(default_factory=list)
    is_exported: bool = False
    is_abstract: bool = False


@dataclass
class ComponentRecord:
    """A UI component declared in a view file."""
    name: str
    line_start: int
    line_end: int
    kind: str = "function"
    props: List[str] = field(default_factory=list)
    state: List[str] = field(default_factory=list)
    hooks: List[str] = field(default_factory=list)
    effects: int = 0
    is_memoized: bool = False
    complexity: int = 1


@dataclass
class HalsteadMetrics:
    """Halstead complexity metrics."""
    n1: int  # Number of distinct operators
    n2: int  # Number of distinct operands
    N1: int  # Total number of operators
    N2: int  # Total number of operands

    @property
    def vocabulary(self) -> int:
        """Program vocabulary (n)."""
        return self.n1 + self.n2

    @property
    def length(self) -> int:
        """Program length (N)."""
        return self.N1 + self.N2

    @property
    def volume(self) -> float:
        """Program volume (V)."""
        if self.vocabulary == 0:
            return 0.0
        return _finite(self.length * math.log2(self.vocabulary))

    @property
    def difficulty(self) -> float:
        """Program difficulty (D)."""
        if self.n2 == 0 or self.N2 == 0:
            return 0.0
        return _finite((self.n1 / 2) * (self.N2 / self.n2))

    @property
    def effort(self) -> float:
        """Program effort (E)."""
        return _finite(self.difficulty * self.volume)

    @property
    def bugs(self) -> float:
        """Estimated number of bugs (B)."""
        return _finite(self.volume / 3000)

    def to_dict(self) -> Dict[str, float]:
        return {
            'vocabulary': self.vocabulary,
            'length': self.length,
            'volume': self.volume,
            'difficulty': self.difficulty,
            'effort': self.effort,
            'bugs': self.bugs,
        }


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


@dataclass
class CodeMetrics:
    """Code complexity and quality metrics for one file."""
    lines_of_code: int = 0
    comment_lines: int = 0
    blank_lines: int = 0
    cyclomatic_complexity: int = 1
    cognitive_complexity: int = 0
    nesting_depth: int = 0
    halstead: HalsteadMetrics = field(default_factory=lambda: HalsteadMetrics(0, 0, 0, 0))
    maintainability_index: float = 100.0
    function_count: int = 0
    class_count: int = 0
    duplication_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['halstead'] = self.halstead.to_dict()
        return data


@dataclass
class CodeLocation:
    """Location in source code."""
    file_path: str
    line_start: int
    line_end: int
    column_start: Optional[int] = None
    column_end: Optional[int] = None


@dataclass
class CodeIssue:
    """A localized finding inside one file."""
    severity: Severity
    category: IssueCategory
    message: str
    rule_id: str
    location: CodeLocation
    suggestion: Optional[str] = None
    auto_fixable: bool = False
    confidence: int = 80  # 0 to 100


@dataclass
class CodeAnalysisResult:
    """Everything the parser extracted from one file."""
    file: FileRecord
    imports: List[ImportRecord] = field(default_factory=list)
    exports: List[ExportRecord] = field(default_factory=list)
    functions: List[FunctionRecord] = field(default_factory=list)
    classes: List[ClassRecord] = field(default_factory=list)
    components: List[ComponentRecord] = field(default_factory=list)
    metrics: CodeMetrics = field(default_factory=CodeMetrics)
    issues: List[CodeIssue] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.file.relative_path

    @property
    def degraded(self) -> bool:
        """True when nothing structural was extracted from non-empty content."""
        return bool(self.file.content and self.file.content.strip()) and not (
            self.imports or self.exports or self.functions
            or self.classes or self.components
        )
