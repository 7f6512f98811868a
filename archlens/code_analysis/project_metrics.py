"""Project-wide metrics aggregated from per-file analyses."""

import threading
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any, Optional

import numpy as np

from .graph import DependencyGraph
from .health import HealthBreakdown, quality_score
from .models import CodeAnalysisResult, CodeIssue, IssueCategory, SEVERITY_ORDER
from .security import SecurityScanner, Vulnerability, security_score, risk_level
from ..config import PolicyConfig
from ..utils import logger


@dataclass
class OverviewMetrics:
    total_files: int = 0
    total_lines_of_code: int = 0
    total_components: int = 0
    total_functions: int = 0
    total_classes: int = 0
    test_coverage: float = 0.0  # share of test files, as a proxy
    tech_debt_ratio: float = 0.0


@dataclass
class QualityMetrics:
    average_complexity: float = 0.0
    average_maintainability: float = 100.0
    code_smells: int = 0
    technical_debt_minutes: int = 0
    duplication_percentage: float = 0.0


@dataclass
class DuplicateBlock:
    files: List[str]
    duplicated_lines: int
    line_start: int = 1
    similarity: int = 100


@dataclass
class BundleSizeMetrics:
    total_size: int = 0
    gzipped_size: int = 0
    largest_files: List[Dict[str, Any]] = field(default_factory=list)
    unused_exports: List[str] = field(default_factory=list)
    duplicate_code: List[DuplicateBlock] = field(default_factory=list)


@dataclass
class PerformanceBottleneck:
    type: str  # render, bundle, memory
    severity: str
    location: str
    description: str
    impact: int
    suggestion: str


@dataclass
class PerformanceMetrics:
    bundle_size: BundleSizeMetrics = field(default_factory=BundleSizeMetrics)
    performance_score: int = 100
    bottlenecks: List[PerformanceBottleneck] = field(default_factory=list)


@dataclass
class SecurityMetrics:
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    security_score: int = 100
    risk_level: str = "low"


@dataclass
class ComponentTypeBreakdown:
    type: str
    count: int
    average_complexity: float
    average_size: float
    health_score: float


@dataclass
class CouplingMetrics:
    afferent_coupling: float = 0.0
    efferent_coupling: float = 0.0
    instability: float = 0.0
    abstractness: float = 0.0
    distance: float = 1.0


@dataclass
class CohesionMetrics:
    lack_of_cohesion: float = 0.0
    cohesion_score: float = 100.0


@dataclass
class ArchitectureMetrics:
    component_types: List[ComponentTypeBreakdown] = field(default_factory=list)
    dependency_depth: int = 0
    circular_dependencies: List[List[str]] = field(default_factory=list)
    orphaned_files: List[str] = field(default_factory=list)
    coupling: CouplingMetrics = field(default_factory=CouplingMetrics)
    cohesion: CohesionMetrics = field(default_factory=CohesionMetrics)


@dataclass
class ProjectMetrics:
    """A full snapshot of project metrics."""
    overview: OverviewMetrics
    quality: QualityMetrics
    performance: PerformanceMetrics
    security: SecurityMetrics
    architecture: ArchitectureMetrics

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['security']['vulnerabilities'] = [v.to_dict() for v in self.security.vulnerabilities]
        return data


@dataclass
class ProjectOpportunity:
    type: str
    title: str
    impact: int
    effort: str
    description: str


def classify_file(analysis: CodeAnalysisResult) -> str:
    """Coarse file type used for the per-type health breakdown."""
    path = '/' + analysis.path
    if '/api/' in path:
        return 'api'
    if '/components/' in path:
        return 'ui'
    if '/services/' in path:
        return 'service'
    if analysis.file.is_config_file:
        return 'config'
    if analysis.file.is_test_file:
        return 'test'
    return 'utility'


class MetricsEngine:
    """Accumulate per-file analyses and compute project metrics on demand."""

    def __init__(self, policy: Optional[PolicyConfig] = None,
                 security_scanner: Optional[SecurityScanner] = None):
        self.policy = policy or PolicyConfig()
        self.security_scanner = security_scanner or SecurityScanner()
        self._analyses: Dict[str, CodeAnalysisResult] = {}
        self._lock = threading.Lock()

    def add_analysis(self, analysis: CodeAnalysisResult):
        """Add or replace the analysis for a file path."""
        with self._lock:
            self._analyses[analysis.path] = analysis

    def remove_analysis(self, path: str):
        with self._lock:
            self._analyses.pop(path, None)

    def clear(self):
        with self._lock:
            self._analyses.clear()

    @property
    def analyses(self) -> List[CodeAnalysisResult]:
        with self._lock:
            return list(self._analyses.values())

    def calculate_project_metrics(self) -> ProjectMetrics:
        analyses = self.analyses
        logger.debug(f"Calculating project metrics over {len(analyses)} files")
        return ProjectMetrics(
            overview=self._overview(analyses),
            quality=self._quality(analyses),
            performance=self._performance(analyses),
            security=self._security(analyses),
            architecture=self._architecture(analyses),
        )

    def get_health_score(self, metrics: Optional[ProjectMetrics] = None) -> int:
        metrics = metrics or self.calculate_project_metrics()
        breakdown = HealthBreakdown(
            quality=quality_score(
                metrics.quality.average_maintainability,
                metrics.quality.average_complexity,
                metrics.quality.code_smells,
            ),
            security=metrics.security.security_score,
            performance=metrics.performance.performance_score,
            architecture=100 - metrics.overview.tech_debt_ratio,
        )
        return breakdown.blend(self.policy)

    def get_issues_prioritized(self) -> List[CodeIssue]:
        issues = [issue for a in self.analyses for issue in a.issues]
        return sorted(issues, key=lambda i: SEVERITY_ORDER[i.severity], reverse=True)

    def get_optimization_opportunities(self, metrics: Optional[ProjectMetrics] = None) -> List[ProjectOpportunity]:
        metrics = metrics or self.calculate_project_metrics()
        policy = self.policy
        opportunities = []

        total_size = metrics.performance.bundle_size.total_size
        if total_size > policy.bundle_warning_bytes:
            opportunities.append(ProjectOpportunity(
                type='bundle_size',
                title='Reduce bundle size through code splitting',
                impact=round((total_size - policy.bundle_warning_bytes) / 10000),
                effort='medium',
                description='Large bundle size affects loading performance',
            ))

        if metrics.quality.duplication_percentage > policy.duplication_warning_percent:
            opportunities.append(ProjectOpportunity(
                type='duplication',
                title='Extract common code to reduce duplication',
                impact=round(metrics.quality.duplication_percentage),
                effort='high',
                description='High code duplication affects maintainability',
            ))

        if metrics.overview.tech_debt_ratio > policy.debt_ratio_warning:
            opportunities.append(ProjectOpportunity(
                type='technical_debt',
                title='Address technical debt backlog',
                impact=round(metrics.quality.technical_debt_minutes / 60),
                effort='high',
                description='High technical debt slows development',
            ))

        return sorted(opportunities, key=lambda o: o.impact, reverse=True)

    # Overview and quality

    def _overview(self, analyses: List[CodeAnalysisResult]) -> OverviewMetrics:
        total = len(analyses)
        tests = sum(1 for a in analyses if a.file.is_test_file)
        return OverviewMetrics(
            total_files=total,
            total_lines_of_code=sum(a.metrics.lines_of_code for a in analyses),
            total_components=sum(len(a.components) for a in analyses),
            total_functions=sum(len(a.functions) for a in analyses),
            total_classes=sum(len(a.classes) for a in analyses),
            test_coverage=tests / max(total, 1) * 100,
            tech_debt_ratio=self.technical_debt_ratio(analyses),
        )

    def _quality(self, analyses: List[CodeAnalysisResult]) -> QualityMetrics:
        if not analyses:
            return QualityMetrics()
        return QualityMetrics(
            average_complexity=_weighted_mean(analyses, lambda a: a.metrics.cyclomatic_complexity),
            average_maintainability=_weighted_mean(analyses, lambda a: a.metrics.maintainability_index),
            code_smells=sum(
                1 for a in analyses for issue in a.issues
                if issue.category in (IssueCategory.SMELL, IssueCategory.ANTI_PATTERN)
            ),
            technical_debt_minutes=self.technical_debt_minutes(analyses),
            duplication_percentage=float(np.mean([a.metrics.duplication_ratio for a in analyses])),
        )

    def technical_debt_ratio(self, analyses: List[CodeAnalysisResult]) -> float:
        """Debt points against a fixed per-file baseline, capped at 100."""
        threshold = self.policy.function_complexity_medium
        debt = 0.0
        baseline = 0.0
        for analysis in analyses:
            metrics = analysis.metrics
            if metrics.cyclomatic_complexity > threshold:
                debt += (metrics.cyclomatic_complexity - threshold) * 2
            if metrics.maintainability_index < self.policy.refactor_max_maintainability:
                debt += self.policy.refactor_max_maintainability - metrics.maintainability_index
            debt += len(analysis.issues)
            debt += metrics.duplication_ratio
            baseline += self.policy.debt_baseline_per_file
        return min(debt / max(baseline, 1) * 100, 100.0)

    def technical_debt_minutes(self, analyses: List[CodeAnalysisResult]) -> int:
        """Rough remediation-time estimate in minutes."""
        policy = self.policy
        minutes = 0
        for analysis in analyses:
            for func in analysis.functions:
                if func.complexity > policy.function_complexity_medium:
                    minutes += (func.complexity - policy.function_complexity_medium) * policy.debt_minutes_per_complexity
            for issue in analysis.issues:
                minutes += policy.debt_minutes_by_issue.get(issue.category.value, policy.debt_minutes_default)
            loc = analysis.metrics.lines_of_code
            if loc > policy.debt_loc_threshold:
                minutes += (loc - policy.debt_loc_threshold) // policy.debt_loc_step * policy.debt_minutes_per_loc_step
        return minutes

    # Performance

    def _performance(self, analyses: List[CodeAnalysisResult]) -> PerformanceMetrics:
        return PerformanceMetrics(
            bundle_size=self._bundle_size(analyses),
            performance_score=self.performance_score(analyses),
            bottlenecks=self._bottlenecks(analyses),
        )

    def _bundle_size(self, analyses: List[CodeAnalysisResult]) -> BundleSizeMetrics:
        total = sum(a.file.size for a in analyses)
        largest = sorted(analyses, key=lambda a: a.file.size, reverse=True)[:10]
        return BundleSizeMetrics(
            total_size=total,
            gzipped_size=round(total * self.policy.gzip_ratio),
            largest_files=[{'path': a.path, 'size': a.file.size} for a in largest],
            unused_exports=self.find_unused_exports(analyses),
            duplicate_code=self.find_duplicate_blocks(analyses),
        )

    def find_unused_exports(self, analyses: List[CodeAnalysisResult]) -> List[str]:
        exported = []
        imported = set()
        for analysis in analyses:
            for export in analysis.exports:
                if export.name not in exported:
                    exported.append(export.name)
            for record in analysis.imports:
                imported.update(record.specifiers)
        return [name for name in exported if name not in imported]

    def find_duplicate_blocks(self, analyses: List[CodeAnalysisResult]) -> List[DuplicateBlock]:
        """Sliding windows of lines that appear verbatim in more than one file."""
        window = self.policy.bundle_window_lines
        blocks: Dict[str, List[str]] = defaultdict(list)
        first_line: Dict[str, int] = {}

        for analysis in analyses:
            if not analysis.file.content:
                continue
            lines = analysis.file.content.split('\n')
            for i in range(len(lines) - window + 1):
                block = '\n'.join(lines[i:i + window])
                if len(block.strip()) <= self.policy.bundle_window_min_chars:
                    continue
                if analysis.path not in blocks[block]:
                    blocks[block].append(analysis.path)
                    first_line.setdefault(block, i + 1)

        return [
            DuplicateBlock(files=files, duplicated_lines=window, line_start=first_line[block])
            for block, files in blocks.items()
            if len(files) > 1
        ]

    def performance_score(self, analyses: List[CodeAnalysisResult]) -> int:
        score = 100
        for analysis in analyses:
            metrics = analysis.metrics
            if metrics.cyclomatic_complexity > self.policy.function_complexity_high:
                score -= 5
            if metrics.lines_of_code > 1000:
                score -= 3
            score -= 2 * sum(1 for i in analysis.issues if i.category == IssueCategory.PERFORMANCE)
            if metrics.nesting_depth > 6:
                score -= 2
        return max(score, 0)

    def _bottlenecks(self, analyses: List[CodeAnalysisResult]) -> List[PerformanceBottleneck]:
        bottlenecks = []
        for analysis in analyses:
            for comp in analysis.components:
                if comp.complexity > self.policy.function_complexity_critical:
                    bottlenecks.append(PerformanceBottleneck(
                        type='render',
                        severity='high',
                        location=f"{analysis.path}:{comp.line_start}",
                        description=f"Component '{comp.name}' has high complexity ({comp.complexity})",
                        impact=comp.complexity,
                        suggestion='Break down into smaller components or optimize rendering logic',
                    ))

            if analysis.file.size > self.policy.large_file_bytes:
                bottlenecks.append(PerformanceBottleneck(
                    type='bundle',
                    severity='medium',
                    location=analysis.path,
                    description=f"Large file size ({round(analysis.file.size / 1024)}KB)",
                    impact=round(analysis.file.size / 1024),
                    suggestion='Consider code splitting or lazy loading',
                ))

            content = analysis.file.content or ''
            if 'setInterval' in content and 'clearInterval' not in content:
                bottlenecks.append(PerformanceBottleneck(
                    type='memory',
                    severity='high',
                    location=analysis.path,
                    description='Potential memory leak: setInterval without clearInterval',
                    impact=80,
                    suggestion='Always clear intervals in cleanup functions',
                ))
        return bottlenecks

    # Security

    def _security(self, analyses: List[CodeAnalysisResult]) -> SecurityMetrics:
        vulnerabilities = []
        for analysis in analyses:
            if analysis.file.content:
                vulnerabilities.extend(self.security_scanner.scan(analysis.file.content, analysis.path))
        severities = [v.severity for v in vulnerabilities]
        return SecurityMetrics(
            vulnerabilities=vulnerabilities,
            security_score=security_score(severities),
            risk_level=risk_level(severities).value,
        )

    # Architecture

    def _architecture(self, analyses: List[CodeAnalysisResult]) -> ArchitectureMetrics:
        graph = DependencyGraph.from_analyses(analyses)
        return ArchitectureMetrics(
            component_types=self._component_types(analyses),
            dependency_depth=graph.dependency_depth(),
            circular_dependencies=graph.find_cycles(),
            orphaned_files=graph.find_orphans(),
            coupling=self._coupling(analyses),
            cohesion=self._cohesion(analyses),
        )

    def _component_types(self, analyses: List[CodeAnalysisResult]) -> List[ComponentTypeBreakdown]:
        groups: Dict[str, List[CodeAnalysisResult]] = defaultdict(list)
        for analysis in analyses:
            groups[classify_file(analysis)].append(analysis)

        breakdown = []
        for type_name, files in groups.items():
            breakdown.append(ComponentTypeBreakdown(
                type=type_name,
                count=len(files),
                average_complexity=float(np.mean([f.metrics.cyclomatic_complexity for f in files])),
                average_size=float(np.mean([f.metrics.lines_of_code for f in files])),
                health_score=self._type_health(files),
            ))
        return breakdown

    def _type_health(self, files: List[CodeAnalysisResult]) -> float:
        score = 100
        for analysis in files:
            if analysis.metrics.cyclomatic_complexity > self.policy.function_complexity_medium:
                score -= 2
            if analysis.metrics.maintainability_index < self.policy.refactor_max_maintainability:
                score -= 3
            if len(analysis.issues) > 5:
                score -= 5
        return max(score / len(files), 0)

    def _coupling(self, analyses: List[CodeAnalysisResult]) -> CouplingMetrics:
        """Import counts per file stand in for both afferent and efferent coupling."""
        total_imports = sum(len(a.imports) for a in analyses)
        files = max(len(analyses), 1)
        afferent = total_imports / files
        efferent = total_imports / files
        instability = efferent / max(afferent + efferent, 1)

        classes = [cls for a in analyses for cls in a.classes]
        abstract = sum(
            1 for cls in classes
            if cls.is_abstract or 'Abstract' in cls.name or 'Base' in cls.name
        )
        abstractness = abstract / max(len(classes), 1)

        return CouplingMetrics(
            afferent_coupling=afferent,
            efferent_coupling=efferent,
            instability=instability,
            abstractness=abstractness,
            distance=abs(abstractness + instability - 1),
        )

    def _cohesion(self, analyses: List[CodeAnalysisResult]) -> CohesionMetrics:
        ratios = []
        for analysis in analyses:
            for cls in analysis.classes:
                methods = len(cls.methods)
                ratios.append(min(len(cls.properties) / methods, 1) if methods else 0)
        score = float(np.mean(ratios)) * 100 if ratios else 100.0
        return CohesionMetrics(lack_of_cohesion=100 - score, cohesion_score=score)


def _weighted_mean(analyses: List[CodeAnalysisResult], value) -> float:
    """LOC-weighted mean, falling back to a plain mean when there is no code."""
    values = np.array([value(a) for a in analyses], dtype=float)
    weights = np.array([a.metrics.lines_of_code for a in analyses], dtype=float)
    if weights.sum() == 0:
        return float(values.mean())
    return float(np.average(values, weights=weights))
