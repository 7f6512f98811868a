"""Architecture-level issue detectors.

Each detector looks at the whole set of components for a run and
returns a list of ``Issue`` objects. Detectors never mutate shared
state; the analyzer merges their results.
"""

import re
from typing import Dict, List, Optional

from .models import Component, ComponentType, Issue, IssueType
from ..code_analysis.graph import DependencyGraph
from ..code_analysis.models import Severity, IssueCategory
from ..code_analysis.security import SecurityScanner
from ..config import PolicyConfig


SIGNATURE_REGEX = re.compile(r'(?:function|const|let|var)\s+(\w+)\s*=?\s*(?:\([^)]*\)|\w+\s*=>)')

ERROR_HANDLING_REGEX = re.compile(r'try\s*\{[\s\S]*?\}\s*catch')
LOGGING_REGEX = re.compile(r'console\.(log|error|warn|info)|logger\.')
VALIDATION_REGEX = re.compile(r'validate|validation|schema\.', re.IGNORECASE)
AUTH_REGEX = re.compile(r'auth|authenticated|isLoggedIn', re.IGNORECASE)

SYNC_FILE_OPS_REGEX = re.compile(r'readFileSync|writeFileSync|existsSync')
N_PLUS_ONE_REGEX = re.compile(r'for\s*\([^)]*\)[\s\S]*?await\s+.*\.(find|query|fetch)')

BACKEND_TYPES = (ComponentType.API, ComponentType.SERVICE)


class ArchitectureDetector:
    """Base class for detectors that inspect every component of a run."""

    family = "architecture"

    def __init__(self, policy: Optional[PolicyConfig] = None):
        self.policy = policy or PolicyConfig()

    def detect(self, components: List[Component], graph: DependencyGraph) -> List[Issue]:
        raise NotImplementedError


class CircularDependencyDetector(ArchitectureDetector):
    """One issue per dependency cycle."""

    def detect(self, components: List[Component], graph: DependencyGraph) -> List[Issue]:
        issues = []
        for cycle in graph.find_cycles():
            chain = ' -> '.join(cycle + [cycle[0]])
            issues.append(Issue(
                issue_type=IssueType.HOLE,
                category=IssueCategory.MAINTAINABILITY,
                severity=Severity.HIGH,
                title="Circular Dependency",
                description=f"Circular dependency detected: {chain}",
                file_path=cycle[0],
                affected_components=list(cycle),
                impact_score=75,
                detection_confidence=90,
                suggested_fix="Extract the shared code into a separate module or invert one of the dependencies",
            ))
        return issues


class OrphanedComponentDetector(ArchitectureDetector):
    """Components nothing imports, excluding entry points."""

    def detect(self, components: List[Component], graph: DependencyGraph) -> List[Issue]:
        return [
            Issue(
                issue_type=IssueType.TECHNICAL_DEBT,
                category=IssueCategory.MAINTAINABILITY,
                severity=Severity.LOW,
                title="Orphaned Component",
                description=f"Component {path} is not imported by any other component",
                file_path=path,
                affected_components=[path],
                impact_score=20,
                detection_confidence=85,
                suggested_fix="Remove the component or wire it into the application",
            )
            for path in graph.find_orphans()
        ]


class DuplicateImplementationDetector(ArchitectureDetector):
    """Function signatures declared in more than one file."""

    def detect(self, components: List[Component], graph: DependencyGraph) -> List[Issue]:
        locations: Dict[str, List[str]] = {}
        for component in components:
            if not component.content:
                continue
            for match in SIGNATURE_REGEX.finditer(component.content):
                files = locations.setdefault(match.group(0), [])
                if component.path not in files:
                    files.append(component.path)

        issues = []
        for signature, files in locations.items():
            if len(files) < 2:
                continue
            issues.append(Issue(
                issue_type=IssueType.REDUNDANCY,
                category=IssueCategory.DUPLICATION,
                severity=Severity.MEDIUM,
                title="Duplicate Function Implementation",
                description=f"Function signature '{signature}' found in {len(files)} files",
                file_path=files[0],
                affected_components=files,
                impact_score=40,
                detection_confidence=75,
                suggested_fix="Extract the shared implementation into a common utility module",
            ))
        return issues


class MissingSafeguardsDetector(ArchitectureDetector):
    """Backend components missing error handling, logging, validation or auth."""

    CHECKS = [
        (ERROR_HANDLING_REGEX, "Missing Error Handling",
         "lacks try/catch error handling",
         "Wrap request handling in try/catch and return meaningful errors"),
        (LOGGING_REGEX, "Missing Logging",
         "does not log anything",
         "Add structured logging for requests and failures"),
        (VALIDATION_REGEX, "Missing Input Validation",
         "does not validate its input",
         "Validate incoming data with a schema before using it"),
        (AUTH_REGEX, "Missing Authentication Check",
         "does not check authentication",
         "Verify the caller is authenticated before serving the request"),
    ]

    def detect(self, components: List[Component], graph: DependencyGraph) -> List[Issue]:
        issues = []
        for component in components:
            if component.type not in BACKEND_TYPES or not component.content:
                continue
            for regex, title, problem, fix in self.CHECKS:
                if regex.search(component.content):
                    continue
                issues.append(Issue(
                    issue_type=IssueType.GAP,
                    category=IssueCategory.MAINTAINABILITY,
                    severity=Severity.MEDIUM,
                    title=title,
                    description=f"{component.name} {problem}",
                    file_path=component.path,
                    affected_components=[component.path],
                    impact_score=50,
                    detection_confidence=70,
                    suggested_fix=fix,
                ))
        return issues


class SecuritySweepDetector(ArchitectureDetector):
    """Runs the shared security scanner over every component."""

    family = "security"

    def __init__(self, policy: Optional[PolicyConfig] = None,
                 scanner: Optional[SecurityScanner] = None):
        super().__init__(policy)
        self.scanner = scanner or SecurityScanner()

    def detect(self, components: List[Component], graph: DependencyGraph) -> List[Issue]:
        issues = []
        for component in components:
            if not component.content:
                continue
            for vulnerability in self.scanner.scan(component.content, component.path):
                issues.append(Issue(
                    issue_type=IssueType.SECURITY_VULNERABILITY,
                    category=IssueCategory.SECURITY,
                    severity=vulnerability.severity,
                    title=vulnerability.title,
                    description=f"{vulnerability.description} in {component.path}",
                    file_path=component.path,
                    line=vulnerability.location.line_start,
                    affected_components=[component.path],
                    impact_score=vulnerability.impact,
                    detection_confidence=vulnerability.confidence,
                    suggested_fix=vulnerability.fix_suggestion,
                    auto_fixable=vulnerability.auto_fixable,
                ))
        return issues


class PerformanceSweepDetector(ArchitectureDetector):
    """Synchronous file I/O and N+1 query loops."""

    family = "performance"

    def detect(self, components: List[Component], graph: DependencyGraph) -> List[Issue]:
        issues = []
        for component in components:
            if not component.content:
                continue
            if SYNC_FILE_OPS_REGEX.search(component.content):
                issues.append(Issue(
                    issue_type=IssueType.PERFORMANCE_BOTTLENECK,
                    category=IssueCategory.PERFORMANCE,
                    severity=Severity.MEDIUM,
                    title="Synchronous File Operations",
                    description=f"{component.name} blocks the event loop with synchronous file I/O",
                    file_path=component.path,
                    affected_components=[component.path],
                    impact_score=60,
                    detection_confidence=95,
                    suggested_fix="Use the asynchronous fs.promises API",
                    auto_fixable=True,
                ))
            if N_PLUS_ONE_REGEX.search(component.content):
                issues.append(Issue(
                    issue_type=IssueType.PERFORMANCE_BOTTLENECK,
                    category=IssueCategory.PERFORMANCE,
                    severity=Severity.HIGH,
                    title="N+1 Query Problem",
                    description=f"{component.name} issues a query inside a loop",
                    file_path=component.path,
                    affected_components=[component.path],
                    impact_score=80,
                    detection_confidence=85,
                    suggested_fix="Batch the lookups into a single query or use eager loading",
                ))
        return issues


def default_detectors(policy: Optional[PolicyConfig] = None,
                      scanner: Optional[SecurityScanner] = None) -> List[ArchitectureDetector]:
    policy = policy or PolicyConfig()
    return [
        CircularDependencyDetector(policy),
        OrphanedComponentDetector(policy),
        DuplicateImplementationDetector(policy),
        MissingSafeguardsDetector(policy),
        SecuritySweepDetector(policy, scanner),
        PerformanceSweepDetector(policy),
    ]
