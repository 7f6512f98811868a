"""Architectural analyzer: runs the full analysis pipeline for a source tree."""

import os
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .detectors import ArchitectureDetector, default_detectors
from .health import calculate_health_score
from .models import (
    AnalysisRun,
    AnalysisType,
    Component,
    ComponentType,
    ComponentUpgrade,
    ImplementationComplexity,
    Issue,
    IssueType,
    OptimizationOpportunity,
    Pattern,
    PatternType,
    RunStatus,
)
from .optimizations import OptimizationGenerator
from .patterns import PatternDetectorRegistry
from ..code_analysis.graph import DependencyGraph
from ..code_analysis.models import CodeAnalysisResult, CodeIssue, FileRecord, IssueCategory, Severity
from ..code_analysis.parser import CodeParser
from ..code_analysis.project_metrics import MetricsEngine, ProjectMetrics
from ..code_analysis.scanner import FileScanner
from ..code_analysis.security import SecurityScanner, security_score
from ..config import Config
from ..constants import CODE_EXTENSIONS
from ..exceptions import (
    AnalysisCancelledError,
    ArchLensError,
    PersistenceError,
    ScanError,
    ScorerError,
)
from ..scoring.worker import create_scorer
from ..utils import logger


UI_TYPES = {ComponentType.UI}
BACKEND_TYPES = {ComponentType.API, ComponentType.SERVICE, ComponentType.DATABASE, ComponentType.MIDDLEWARE}

ISSUE_TYPE_BY_CATEGORY = {
    IssueCategory.COMPLEXITY: IssueType.TECHNICAL_DEBT,
    IssueCategory.DUPLICATION: IssueType.REDUNDANCY,
    IssueCategory.SMELL: IssueType.TECHNICAL_DEBT,
    IssueCategory.ANTI_PATTERN: IssueType.TECHNICAL_DEBT,
    IssueCategory.PERFORMANCE: IssueType.INEFFICIENCY,
    IssueCategory.SECURITY: IssueType.SECURITY_VULNERABILITY,
    IssueCategory.MAINTAINABILITY: IssueType.TECHNICAL_DEBT,
}

RULE_TITLES = {
    'CC001': "Complex Function",
    'CC002': "Complex Component",
    'CC003': "Large File",
    'SM001': "Long Parameter List",
    'PF001': "Missing List Keys",
    'PF002': "Excessive Inline Styles",
}

SEVERITY_IMPACT = {
    Severity.LOW: 20,
    Severity.MEDIUM: 40,
    Severity.HIGH: 60,
    Severity.CRITICAL: 80,
}

DEBT_MARKER_REGEX = re.compile(r'\b(TODO|FIXME|HACK|XXX)\b')
LONG_FUNCTION_LINES = 50
DEEP_NESTING_LEVEL = 4


class CancellationToken:
    """Cooperative cancellation flag checked between files and detectors."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise AnalysisCancelledError("Analysis cancelled")


@dataclass
class RunContext:
    """Everything one run accumulates. Discarded when the run ends."""
    run: AnalysisRun
    root: Path
    token: CancellationToken
    components: Dict[str, Component] = field(default_factory=dict)
    analyses: Dict[str, CodeAnalysisResult] = field(default_factory=dict)
    patterns: Dict[str, Pattern] = field(default_factory=dict)
    issues: List[Issue] = field(default_factory=list)
    opportunities: List[OptimizationOpportunity] = field(default_factory=list)
    upgrades: List[ComponentUpgrade] = field(default_factory=list)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    project_metrics: Optional[ProjectMetrics] = None
    skipped_files: List[str] = field(default_factory=list)

    def add_pattern(self, pattern: Pattern):
        """Merge repeated detections of the same pattern name."""
        existing = self.patterns.get(pattern.name)
        if existing is None:
            pattern.run_id = self.run.id
            self.patterns[pattern.name] = pattern
            return
        existing.occurrences += pattern.occurrences
        existing.locations.extend(pattern.locations)
        existing.confidence = max(existing.confidence, pattern.confidence)

    def add_issues(self, issues: List[Issue]):
        for issue in issues:
            issue.run_id = self.run.id
            self.issues.append(issue)


@dataclass
class AnalysisResult:
    """Outcome of one run, completed or failed."""
    run: AnalysisRun
    components: List[Component]
    issues: List[Issue]
    patterns: List[Pattern]
    opportunities: List[OptimizationOpportunity]
    upgrades: List[ComponentUpgrade]
    project_metrics: Optional[ProjectMetrics] = None
    skipped_files: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.run.status == RunStatus.COMPLETED

    @property
    def health_score(self) -> Optional[int]:
        return self.run.overall_health_score


def classify_component(path: str) -> ComponentType:
    """Component type by path convention."""
    path = '/' + path.replace('\\', '/')
    if '/api/' in path or '/services/' in path:
        return ComponentType.API
    if '/components/' in path or '/pages/' in path:
        return ComponentType.UI
    if '/lib/' in path or '/utils/' in path:
        return ComponentType.LIBRARY
    if '/middleware' in path:
        return ComponentType.MIDDLEWARE
    if '.config.' in path or '/config/' in path:
        return ComponentType.CONFIGURATION
    if '/db/' in path or '/models/' in path:
        return ComponentType.DATABASE
    if '/infrastructure/' in path or 'docker' in path.lower():
        return ComponentType.INFRASTRUCTURE
    return ComponentType.SERVICE


def component_technical_debt(content: str, analysis: CodeAnalysisResult) -> int:
    """Debt points for one file: markers, long functions and deep nesting, capped at 100."""
    markers = len(DEBT_MARKER_REGEX.findall(content))
    long_functions = sum(
        1 for f in analysis.functions if f.line_end - f.line_start > LONG_FUNCTION_LINES
    )
    deep_nesting = max(analysis.metrics.nesting_depth - DEEP_NESTING_LEVEL, 0)
    return min(markers * 2 + long_functions * 5 + deep_nesting * 3, 100)


class ArchitecturalAnalyzer:
    """Orchestrates scanning, detection, scoring and optimization for a run.

    Each call to ``analyze`` owns a fresh ``RunContext`` and a fresh scorer
    worker, so runs never share mutable state.
    """

    def __init__(self, config: Optional[Config] = None, store: Any = None,
                 scorer_factory: Optional[Callable[[], Any]] = None,
                 detectors: Optional[List[ArchitectureDetector]] = None):
        """Initialize the analyzer.

        Args:
            config: Configuration; defaults are used when omitted
            store: Optional ``AnalysisStore`` for best-effort persistence
            scorer_factory: Builds the scorer for a run; it must provide
                ``score(payload, timeout)`` and ``cleanup()``
            detectors: Architecture detectors to run instead of the defaults
        """
        self.config = config or Config()
        self.policy = self.config.policy
        self.store = store
        self.scanner_config = self.config.scanner
        self.parser = CodeParser(self.policy)
        self.security_scanner = SecurityScanner()
        self.pattern_registry = PatternDetectorRegistry(self.policy)
        self.detectors = detectors or default_detectors(self.policy, self.security_scanner)
        self.optimizer = OptimizationGenerator(self.policy)
        self.scorer_factory = scorer_factory or self._default_scorer
        self.max_workers = self.config.analysis.max_workers or min(32, (os.cpu_count() or 1) + 4)
        self._run_counter = 0

    def _default_scorer(self):
        analysis = self.config.analysis
        return create_scorer(
            model_path=analysis.model_path,
            feature_width=self.policy.feature_width,
            timeout=self.policy.scorer_timeout,
            respawn_backoff=self.policy.respawn_backoff,
        )

    def analyze(self, root: Union[str, Path],
                analysis_type: Union[AnalysisType, str] = AnalysisType.FULL,
                deep_scan: bool = False,
                token: Optional[CancellationToken] = None) -> AnalysisResult:
        """Run the full pipeline over ``root``.

        A failed run is returned like a completed one, with
        ``run.status == RunStatus.FAILED`` and ``run.failure_reason`` set.
        """
        run = AnalysisRun(
            analysis_type=AnalysisType(analysis_type),
            root=str(root),
            deep_scan=deep_scan,
            run_number=self._next_run_number(),
            ml_model_version=self.config.analysis.ml_model_version,
        )
        ctx = RunContext(run=run, root=Path(root), token=token or CancellationToken())
        logger.info(f"Starting {run.analysis_type.value} analysis #{run.run_number} of {root}")
        self._persist("save run", "save_run", run)

        scorer = None
        started = time.time()
        try:
            self._advance(ctx, RunStatus.SCANNING)
            self.scan_components(ctx)

            self._advance(ctx, RunStatus.ANALYZING)
            self.detect_patterns(ctx)
            self.analyze_architecture(ctx)
            if deep_scan:
                ctx.project_metrics = self.compute_project_metrics(ctx)
            ctx.token.raise_if_cancelled()

            self._advance(ctx, RunStatus.ML_PROCESSING)
            scorer = self.scorer_factory()
            self.run_ml_analysis(ctx, scorer)
            self.generate_optimizations(ctx)
            ctx.token.raise_if_cancelled()

            self._finalize(ctx)
            self._advance(ctx, RunStatus.COMPLETED)
        except AnalysisCancelledError:
            self._fail(ctx, "cancelled")
        except ScanError as e:
            self._fail(ctx, f"scan: {e}")
        except ScorerError as e:
            self._fail(ctx, f"scorer: {e}")
        except ArchLensError as e:
            self._fail(ctx, str(e))
        except Exception as e:
            self._fail(ctx, f"unexpected: {e}")
            raise
        finally:
            if scorer is not None:
                scorer.cleanup()
            if run.status == RunStatus.FAILED:
                self._finalize(ctx)
            self.save_results(ctx)

        logger.info(
            f"Analysis #{run.run_number} {run.status.value} in {time.time() - started:.2f}s "
            f"(health {run.overall_health_score})"
        )
        return AnalysisResult(
            run=run,
            components=list(ctx.components.values()),
            issues=list(ctx.issues),
            patterns=list(ctx.patterns.values()),
            opportunities=list(ctx.opportunities),
            upgrades=list(ctx.upgrades),
            project_metrics=ctx.project_metrics,
            skipped_files=list(ctx.skipped_files),
        )

    # Step 1: scan and parse

    def scan_components(self, ctx: RunContext):
        """Scan, parse and classify every eligible file in parallel."""
        scanner = FileScanner(self.scanner_config)
        files = [
            f for f in scanner.scan(ctx.root)
            if f.extension in CODE_EXTENSIONS and f.has_content
        ]
        ctx.skipped_files.extend(scanner.skipped)
        logger.info(f"Parsing {len(files)} source files")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._analyze_file, f): f for f in files}
            for future in as_completed(futures):
                if ctx.token.cancelled:
                    for pending in futures:
                        pending.cancel()
                    ctx.token.raise_if_cancelled()
                file = futures[future]
                try:
                    analysis, component = future.result()
                except Exception as e:
                    logger.warning(f"Skipping {file.relative_path}: {e}")
                    ctx.skipped_files.append(file.relative_path)
                    continue
                if not self._in_scope(ctx.run.analysis_type, component.type):
                    continue
                ctx.analyses[component.path] = analysis
                ctx.components[component.path] = component

        ctx.graph = DependencyGraph.from_analyses(ctx.analyses.values())
        for path, component in ctx.components.items():
            component.dependencies = sorted(ctx.graph.dependencies(path))
            component.dependents = sorted(ctx.graph.dependents(path))
            self._persist("save component", "upsert_component", component)

        ctx.run.total_components_analyzed = len(ctx.components)

    def _analyze_file(self, file: FileRecord) -> Tuple[CodeAnalysisResult, Component]:
        analysis = self.parser.analyze(file)
        if analysis.degraded:
            logger.debug(f"Nothing extracted from {file.relative_path}")

        content = file.content or ''
        metrics = analysis.metrics.to_dict()
        metrics['technical_debt'] = component_technical_debt(content, analysis)
        metrics['security_score'] = security_score(
            v.severity for v in self.security_scanner.scan(content, file.relative_path)
        )
        metrics['issue_count'] = len(analysis.issues)

        component = Component(
            path=file.relative_path,
            name=os.path.splitext(os.path.basename(file.relative_path))[0],
            type=classify_component(file.relative_path),
            metrics=metrics,
            size=file.size,
            last_modified=file.last_modified,
            content=content,
        )
        return analysis, component

    @staticmethod
    def _in_scope(analysis_type: AnalysisType, component_type: ComponentType) -> bool:
        if analysis_type == AnalysisType.UI:
            return component_type in UI_TYPES
        if analysis_type == AnalysisType.BACKEND:
            return component_type in BACKEND_TYPES
        return True

    # Step 2: patterns

    def detect_patterns(self, ctx: RunContext):
        families = self._families(ctx.run.analysis_type)
        for component in ctx.components.values():
            ctx.token.raise_if_cancelled()
            for pattern in self.pattern_registry.detect_patterns(component, component.content or '', families):
                ctx.add_pattern(pattern)
        ctx.run.total_patterns_found = len(ctx.patterns)
        logger.debug(f"Detected {len(ctx.patterns)} distinct patterns")

    @staticmethod
    def _families(analysis_type: AnalysisType) -> Optional[List[str]]:
        if analysis_type == AnalysisType.SECURITY:
            return ['security']
        if analysis_type == AnalysisType.PERFORMANCE:
            return ['performance']
        return None

    # Step 3: cross-file analysis

    def analyze_architecture(self, ctx: RunContext):
        """Run the architecture detectors in parallel and merge their issues."""
        families = self._families(ctx.run.analysis_type)
        detectors = [d for d in self.detectors if families is None or d.family in families]
        components = list(ctx.components.values())

        with ThreadPoolExecutor(max_workers=max(len(detectors), 1)) as executor:
            futures = {executor.submit(d.detect, components, ctx.graph): d for d in detectors}
            for future in as_completed(futures):
                if ctx.token.cancelled:
                    for pending in futures:
                        pending.cancel()
                    ctx.token.raise_if_cancelled()
                detector = futures[future]
                try:
                    ctx.add_issues(future.result())
                except Exception as e:
                    logger.error(f"{type(detector).__name__} failed: {e}")

        ctx.add_issues(self._file_issues(ctx))
        logger.debug(f"Collected {len(ctx.issues)} issues")

    def _file_issues(self, ctx: RunContext) -> List[Issue]:
        analysis_type = ctx.run.analysis_type
        issues = []
        for path, analysis in ctx.analyses.items():
            for code_issue in analysis.issues:
                if analysis_type == AnalysisType.SECURITY and code_issue.category != IssueCategory.SECURITY:
                    continue
                if analysis_type == AnalysisType.PERFORMANCE and code_issue.category != IssueCategory.PERFORMANCE:
                    continue
                issues.append(self._convert_code_issue(path, code_issue))
        return issues

    @staticmethod
    def _convert_code_issue(path: str, code_issue: CodeIssue) -> Issue:
        return Issue(
            issue_type=ISSUE_TYPE_BY_CATEGORY[code_issue.category],
            category=code_issue.category,
            severity=code_issue.severity,
            title=RULE_TITLES.get(code_issue.rule_id, code_issue.rule_id),
            description=code_issue.message,
            file_path=path,
            line=code_issue.location.line_start,
            affected_components=[path],
            impact_score=SEVERITY_IMPACT[code_issue.severity],
            detection_confidence=code_issue.confidence,
            suggested_fix=code_issue.suggestion,
            auto_fixable=code_issue.auto_fixable,
            source="parser",
        )

    def compute_project_metrics(self, ctx: RunContext) -> ProjectMetrics:
        engine = MetricsEngine(self.policy, self.security_scanner)
        for analysis in ctx.analyses.values():
            engine.add_analysis(analysis)
        return engine.calculate_project_metrics()

    # Step 4: scorer

    def run_ml_analysis(self, ctx: RunContext, scorer: Any):
        """Send the run to the scorer and merge its predictions.

        Raises:
            ScorerError: On failure, timeout or malformed predictions
        """
        payload = {
            'components': [c.to_dict() for c in ctx.components.values()],
            'patterns': [p.to_dict() for p in ctx.patterns.values()],
            'issues': [i.to_dict() for i in ctx.issues],
        }
        predictions = scorer.score(payload, timeout=self.policy.scorer_timeout)

        try:
            new_issues = [self._issue_from_prediction(d) for d in predictions.get('new_issues', [])]
            patterns = [self._pattern_from_prediction(d) for d in predictions.get('pattern_suggestions', [])]
            opportunities = [
                self._opportunity_from_prediction(d)
                for d in predictions.get('optimization_suggestions', [])
            ]
            upgrades = [self._upgrade_from_prediction(d) for d in predictions.get('upgrade_suggestions', [])]
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise ScorerError("Malformed scorer predictions", {'reason': str(e)}) from e

        ctx.add_issues(new_issues)
        for pattern in patterns:
            ctx.add_pattern(pattern)
        for opportunity in opportunities:
            opportunity.run_id = ctx.run.id
            ctx.opportunities.append(opportunity)
        for upgrade in upgrades:
            upgrade.run_id = ctx.run.id
            ctx.upgrades.append(upgrade)
        logger.info(
            f"Scorer added {len(new_issues)} issues, {len(patterns)} patterns, "
            f"{len(opportunities)} opportunities, {len(upgrades)} upgrades"
        )

    @staticmethod
    def _issue_from_prediction(data: Dict[str, Any]) -> Issue:
        return Issue(
            issue_type=IssueType(data.get('issue_type', IssueType.TECHNICAL_DEBT.value)),
            category=IssueCategory(data.get('category', IssueCategory.MAINTAINABILITY.value)),
            severity=Severity(data.get('severity', Severity.MEDIUM.value)),
            title=data['title'],
            description=data.get('description', ''),
            file_path=data.get('file_path'),
            affected_components=list(data.get('affected_components') or []),
            impact_score=int(data.get('impact_score', 50)),
            detection_confidence=float(data['confidence']),
            suggested_fix=data.get('suggested_fix'),
            source="scorer",
        )

    @staticmethod
    def _pattern_from_prediction(data: Dict[str, Any]) -> Pattern:
        return Pattern(
            pattern_type=PatternType(data.get('pattern_type', PatternType.DESIGN_PATTERN.value)),
            name=data['name'],
            description=data.get('description', ''),
            locations=list(data.get('locations') or []),
            confidence=float(data['confidence']),
            is_beneficial=bool(data.get('is_beneficial', False)),
        )

    @staticmethod
    def _opportunity_from_prediction(data: Dict[str, Any]) -> OptimizationOpportunity:
        return OptimizationOpportunity(
            type=data['type'],
            title=data['title'],
            description=data.get('description', ''),
            affected_component=data.get('affected_component'),
            current_state=dict(data.get('current_state') or {}),
            proposed_state=dict(data.get('proposed_state') or {}),
            expected_improvements=list(data.get('expected_improvements') or []),
            implementation_complexity=ImplementationComplexity(
                data.get('implementation_complexity', ImplementationComplexity.MODERATE.value)
            ),
            priority=int(data.get('priority', 5)),
            estimated_impact=int(data.get('estimated_impact', 50)),
            ml_confidence=float(data['confidence']),
        )

    @staticmethod
    def _upgrade_from_prediction(data: Dict[str, Any]) -> ComponentUpgrade:
        return ComponentUpgrade(
            component=data['component'],
            upgrade_type=data.get('upgrade_type', 'upgrade'),
            title=data['title'],
            description=data.get('description', ''),
            confidence=float(data['confidence']),
            priority=int(data.get('priority', 5)),
        )

    # Step 5: optimizations

    def generate_optimizations(self, ctx: RunContext):
        if ctx.run.analysis_type == AnalysisType.SECURITY:
            return
        for opportunity in self.optimizer.generate(list(ctx.components.values())):
            opportunity.run_id = ctx.run.id
            ctx.opportunities.append(opportunity)

    # Step 6: results and status

    def _finalize(self, ctx: RunContext):
        run = ctx.run
        run.total_components_analyzed = len(ctx.components)
        run.total_issues_found = len(ctx.issues)
        run.total_opportunities_found = len(ctx.opportunities)
        run.total_patterns_found = len(ctx.patterns)
        run.overall_health_score = calculate_health_score(
            list(ctx.components.values()), ctx.issues, self.policy
        )

    def save_results(self, ctx: RunContext):
        """Persist every finding and the run. Each write is independent."""
        for issue in ctx.issues:
            self._persist("save issue", "save_issue", issue)
        for pattern in ctx.patterns.values():
            self._persist("save pattern", "save_pattern", pattern)
        for opportunity in ctx.opportunities:
            self._persist("save opportunity", "save_opportunity", opportunity)
        for upgrade in ctx.upgrades:
            self._persist("save upgrade", "save_upgrade", upgrade)
        self._persist("save run", "save_run", ctx.run)

    def _advance(self, ctx: RunContext, status: RunStatus):
        ctx.run.transition(status)
        logger.info(f"Run #{ctx.run.run_number}: {status.value}")
        self._persist("update run status", "save_run", ctx.run)

    def _fail(self, ctx: RunContext, reason: str):
        if ctx.run.status.is_terminal:
            return
        ctx.run.failure_reason = reason
        ctx.run.transition(RunStatus.FAILED)
        logger.error(f"Run #{ctx.run.run_number} failed: {reason}")

    def _persist(self, action: str, method: str, entity: Any):
        if self.store is None:
            return
        try:
            getattr(self.store, method)(entity)
        except PersistenceError as e:
            logger.error(f"Failed to {action}: {e}")

    def _next_run_number(self) -> int:
        if self.store is not None:
            try:
                return self.store.next_run_number()
            except PersistenceError as e:
                logger.error(f"Failed to read run number: {e}")
        self._run_counter += 1
        return self._run_counter
