"""Data models for architectural analysis runs."""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..code_analysis.models import Severity, IssueCategory
from ..utils import clamp


class RunStatus(Enum):
    """Lifecycle of an analysis run."""
    CREATED = "created"
    SCANNING = "scanning"
    ANALYZING = "analyzing"
    ML_PROCESSING = "ml_processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


RUN_TRANSITIONS = {
    RunStatus.CREATED: {RunStatus.SCANNING, RunStatus.FAILED},
    RunStatus.SCANNING: {RunStatus.ANALYZING, RunStatus.FAILED},
    RunStatus.ANALYZING: {RunStatus.ML_PROCESSING, RunStatus.FAILED},
    RunStatus.ML_PROCESSING: {RunStatus.COMPLETED, RunStatus.FAILED},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
}


class AnalysisType(Enum):
    FULL = "full"
    PARTIAL = "partial"
    UI = "ui"
    BACKEND = "backend"
    SECURITY = "security"
    PERFORMANCE = "performance"


class ComponentType(Enum):
    API = "api"
    UI = "ui"
    LIBRARY = "library"
    MIDDLEWARE = "middleware"
    CONFIGURATION = "configuration"
    DATABASE = "database"
    INFRASTRUCTURE = "infrastructure"
    SERVICE = "service"


class IssueType(Enum):
    HOLE = "hole"
    GAP = "gap"
    REDUNDANCY = "redundancy"
    INEFFICIENCY = "inefficiency"
    SECURITY_VULNERABILITY = "security_vulnerability"
    PERFORMANCE_BOTTLENECK = "performance_bottleneck"
    TECHNICAL_DEBT = "technical_debt"
    COMPATIBILITY = "compatibility"
    SCALABILITY = "scalability"


class IssueStatus(Enum):
    OPEN = "open"
    FALSE_POSITIVE = "false_positive"
    RESOLVED = "resolved"


class PatternType(Enum):
    DESIGN_PATTERN = "design_pattern"
    ANTI_PATTERN = "anti_pattern"
    CODE_SMELL = "code_smell"
    SECURITY_PATTERN = "security_pattern"
    PERFORMANCE_PATTERN = "performance_pattern"
    UI_PATTERN = "ui_pattern"


class ImplementationComplexity(Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Component:
    """A scanned file classified into an architectural component."""
    path: str
    name: str
    type: ComponentType
    metrics: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)
    size: int = 0
    last_modified: Optional[datetime] = None
    content: Optional[str] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': self.path,
            'name': self.name,
            'type': self.type.value,
            'metrics': self.metrics,
            'dependencies': list(self.dependencies),
            'dependents': list(self.dependents),
            'size': self.size,
            'last_modified': self.last_modified.isoformat() if self.last_modified else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Component':
        modified = data.get('last_modified')
        return cls(
            path=data['path'],
            name=data['name'],
            type=ComponentType(data['type']),
            metrics=data.get('metrics') or {},
            dependencies=list(data.get('dependencies') or []),
            dependents=list(data.get('dependents') or []),
            size=data.get('size', 0),
            last_modified=datetime.fromisoformat(modified) if modified else None,
        )


@dataclass
class Issue:
    """A finding owned by one analysis run."""
    issue_type: IssueType
    category: IssueCategory
    severity: Severity
    title: str
    description: str
    file_path: Optional[str] = None
    line: Optional[int] = None
    affected_components: List[str] = field(default_factory=list)
    impact_score: int = 50
    detection_confidence: float = 80.0
    suggested_fix: Optional[str] = None
    auto_fixable: bool = False
    status: IssueStatus = IssueStatus.OPEN
    priority: Optional[int] = None
    source: str = "detector"
    run_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.detection_confidence = clamp(self.detection_confidence)

    def adjust_confidence(self, delta: float) -> float:
        self.detection_confidence = clamp(self.detection_confidence + delta)
        return self.detection_confidence

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['issue_type'] = self.issue_type.value
        data['category'] = self.category.value
        data['severity'] = self.severity.value
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Issue':
        data = dict(data)
        data['issue_type'] = IssueType(data['issue_type'])
        data['category'] = IssueCategory(data['category'])
        data['severity'] = Severity(data['severity'])
        data['status'] = IssueStatus(data.get('status', 'open'))
        return cls(**data)


@dataclass
class Pattern:
    """A detected pattern; several may apply to the same file."""
    pattern_type: PatternType
    name: str
    description: str
    locations: List[str] = field(default_factory=list)
    occurrences: int = 1
    confidence: float = 80.0
    is_beneficial: bool = False
    status: str = "active"
    priority: Optional[int] = None
    run_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.confidence = clamp(self.confidence)

    def adjust_confidence(self, delta: float) -> float:
        self.confidence = clamp(self.confidence + delta)
        return self.confidence

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['pattern_type'] = self.pattern_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Pattern':
        data = dict(data)
        data['pattern_type'] = PatternType(data['pattern_type'])
        return cls(**data)


@dataclass
class OptimizationOpportunity:
    """A suggested improvement with its expected effect."""
    type: str
    title: str
    description: str
    affected_component: Optional[str] = None
    current_state: Dict[str, Any] = field(default_factory=dict)
    proposed_state: Dict[str, Any] = field(default_factory=dict)
    expected_improvements: List[Dict[str, Any]] = field(default_factory=list)
    implementation_complexity: ImplementationComplexity = ImplementationComplexity.MODERATE
    priority: int = 5
    estimated_impact: int = 50
    ml_confidence: float = 50.0
    status: str = "open"
    run_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.priority = int(clamp(self.priority, 0, 10))
        self.ml_confidence = clamp(self.ml_confidence)

    def adjust_confidence(self, delta: float) -> float:
        self.ml_confidence = clamp(self.ml_confidence + delta)
        return self.ml_confidence

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['implementation_complexity'] = self.implementation_complexity.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OptimizationOpportunity':
        data = dict(data)
        data['implementation_complexity'] = ImplementationComplexity(data['implementation_complexity'])
        return cls(**data)


@dataclass
class ComponentUpgrade:
    """An upgrade recommendation suggested by the scorer."""
    component: str
    upgrade_type: str
    title: str
    description: str = ""
    confidence: float = 50.0
    priority: int = 5
    run_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.confidence = clamp(self.confidence)

    def adjust_confidence(self, delta: float) -> float:
        self.confidence = clamp(self.confidence + delta)
        return self.confidence

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComponentUpgrade':
        return cls(**data)


@dataclass
class AnalysisRun:
    """One analysis run; history is append-only apart from status fields."""
    analysis_type: AnalysisType = AnalysisType.FULL
    root: str = "."
    deep_scan: bool = False
    status: RunStatus = RunStatus.CREATED
    run_number: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    total_components_analyzed: int = 0
    total_issues_found: int = 0
    total_opportunities_found: int = 0
    total_patterns_found: int = 0
    overall_health_score: Optional[int] = None
    ml_model_version: str = "v1.0.0"
    failure_reason: Optional[str] = None
    id: str = field(default_factory=new_id)

    def transition(self, status: RunStatus):
        """Advance the state machine; terminal states stamp the end time."""
        if status not in RUN_TRANSITIONS[self.status]:
            raise ValueError(f"Invalid run transition {self.status.value} -> {status.value}")
        self.status = status
        if status.is_terminal:
            self.end_time = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['analysis_type'] = self.analysis_type.value
        data['status'] = self.status.value
        data['start_time'] = self.start_time.isoformat()
        data['end_time'] = self.end_time.isoformat() if self.end_time else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalysisRun':
        data = dict(data)
        data['analysis_type'] = AnalysisType(data['analysis_type'])
        data['status'] = RunStatus(data['status'])
        data['start_time'] = datetime.fromisoformat(data['start_time'])
        data['end_time'] = datetime.fromisoformat(data['end_time']) if data.get('end_time') else None
        return cls(**data)
