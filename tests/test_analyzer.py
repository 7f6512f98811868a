"""End-to-end tests for the architectural analyzer."""

import threading

import pytest

from archlens.architecture.analyzer import (
    ArchitecturalAnalyzer,
    CancellationToken,
    classify_component,
)
from archlens.architecture.models import AnalysisType, ComponentType, RunStatus
from archlens.code_analysis.models import Severity
from archlens.code_analysis.scanner import FileScanner
from archlens.config import Config
from archlens.exceptions import ScorerError
from archlens.scoring.model import ScorerModel
from archlens.scoring.worker import ScorerClient

from conftest import FakeScorer, EMPTY_PREDICTIONS, write_project


def nested_ifs(depth):
    lines = ["function deep(a) {"]
    for level in range(depth):
        lines.append("  " * (level + 1) + f"if (a > {level}) {{")
    lines.append("  " * (depth + 1) + "return a;")
    for level in reversed(range(depth)):
        lines.append("  " * (level + 1) + "}")
    lines.append("  return 0;")
    lines.append("}")
    return "\n".join(lines) + "\n"


CYCLE_PROJECT = {
    'src/a.js': "import { b } from './b';\nexport const a = () => b();\n",
    'src/b.js': "import { c } from './c';\nexport const b = () => c();\n",
    'src/c.js': "import { a } from './a';\nexport const c = () => a();\n",
}

MIXED_PROJECT = {
    'src/components/Button.jsx': "export function Button({ label }) {\n  return <button>{label}</button>;\n}\n",
    'src/api/users.js': "export function list(req, res) {\n  res.send([]);\n}\n",
    'src/config/keys.js': "export const apiKey = \"abcdefghij1234567890\";\n",
    'src/lib/loops.js': (
        "export function pairs(items) {\n"
        "  for (let i = 0; i < items.length; i++) {\n"
        "    for (let j = 0; j < items.length; j++) {}\n"
        "  }\n}\n"
    ),
}


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def fake_scorer():
    return FakeScorer()


@pytest.fixture
def analyzer(config, fake_scorer):
    return ArchitecturalAnalyzer(config, scorer_factory=lambda: fake_scorer)


class TestClassification:
    """Test path-based component classification."""

    @pytest.mark.parametrize("path,expected", [
        ('src/api/users.js', ComponentType.API),
        ('src/services/mail.js', ComponentType.API),
        ('src/components/Button.jsx', ComponentType.UI),
        ('src/pages/index.jsx', ComponentType.UI),
        ('src/utils/format.js', ComponentType.LIBRARY),
        ('src/middleware/auth.js', ComponentType.MIDDLEWARE),
        ('webpack.config.js', ComponentType.CONFIGURATION),
        ('src/db/pool.js', ComponentType.DATABASE),
        ('infrastructure/deploy.js', ComponentType.INFRASTRUCTURE),
        ('src/main.js', ComponentType.SERVICE),
    ])
    def test_classify(self, path, expected):
        assert classify_component(path) == expected


class TestAnalysisRun:
    """Test complete runs."""

    def test_circular_dependency(self, analyzer, temp_dir, fake_scorer):
        result = analyzer.analyze(write_project(temp_dir, CYCLE_PROJECT))

        assert result.succeeded
        assert result.run.status == RunStatus.COMPLETED
        assert result.run.end_time is not None
        cycles = [i for i in result.issues if i.title == "Circular Dependency"]
        assert len(cycles) == 1
        assert set(cycles[0].affected_components) == {'src/a.js', 'src/b.js', 'src/c.js'}
        assert fake_scorer.cleaned_up

    def test_dependencies_are_recorded(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, CYCLE_PROJECT))
        components = {c.path: c for c in result.components}
        assert components['src/a.js'].dependencies == ['src/b.js']
        assert components['src/a.js'].dependents == ['src/c.js']

    def test_complex_function(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, {'src/lib/deep.js': nested_ifs(12)}))
        complex_issues = [i for i in result.issues if i.title == "Complex Function"]
        assert len(complex_issues) == 1
        assert complex_issues[0].source == "parser"
        assert complex_issues[0].severity != Severity.LOW
        component = result.components[0]
        assert component.metrics['cyclomatic_complexity'] >= 12

    def test_hardcoded_secret(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, {
            'src/config/keys.js': "export const apiKey = \"abcdefghij1234567890\";\n",
        }))
        secrets = [i for i in result.issues if i.title == "Hardcoded Secrets"]
        assert len(secrets) == 1
        assert secrets[0].severity == Severity.CRITICAL
        assert secrets[0].auto_fixable
        assert result.components[0].metrics['security_score'] == 80

    def test_counters_and_health(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, MIXED_PROJECT))
        run = result.run
        assert run.total_components_analyzed == 4
        assert run.total_issues_found == len(result.issues)
        assert run.total_opportunities_found == len(result.opportunities)
        assert run.total_patterns_found == len(result.patterns)
        assert 0 <= run.overall_health_score <= 100
        assert all(i.run_id == run.id for i in result.issues)

    def test_scorer_receives_run(self, analyzer, temp_dir, fake_scorer):
        analyzer.analyze(write_project(temp_dir, MIXED_PROJECT))
        payload = fake_scorer.payloads[0]
        assert len(payload['components']) == 4
        assert {'components', 'patterns', 'issues'} <= set(payload)

    def test_scorer_predictions_are_merged(self, config, temp_dir):
        predictions = dict(EMPTY_PREDICTIONS, new_issues=[{
            'title': "Predicted Issue",
            'severity': 'low',
            'file_path': 'src/a.js',
            'confidence': 65,
        }], upgrade_suggestions=[{
            'component': 'src/a.js',
            'title': "Upgrade a",
            'confidence': 55,
        }])
        analyzer = ArchitecturalAnalyzer(config, scorer_factory=lambda: FakeScorer(predictions))
        result = analyzer.analyze(write_project(temp_dir, CYCLE_PROJECT))

        predicted = [i for i in result.issues if i.source == "scorer"]
        assert [i.title for i in predicted] == ["Predicted Issue"]
        assert predicted[0].detection_confidence == 65
        assert result.upgrades[0].run_id == result.run.id

    def test_with_real_scorer_worker(self, config, temp_dir):
        analyzer = ArchitecturalAnalyzer(
            config,
            scorer_factory=lambda: ScorerClient(lambda: ScorerModel(), timeout=10),
        )
        result = analyzer.analyze(write_project(temp_dir, MIXED_PROJECT))
        assert result.succeeded

    def test_deep_scan(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, CYCLE_PROJECT), deep_scan=True)
        assert result.project_metrics is not None
        assert result.project_metrics.overview.total_files == 3
        assert len(result.project_metrics.architecture.circular_dependencies) == 1

    def test_run_numbers_increment(self, analyzer, temp_dir):
        root = write_project(temp_dir, CYCLE_PROJECT)
        assert analyzer.analyze(root).run.run_number == 1
        assert analyzer.analyze(root).run.run_number == 2


class TestAnalysisTypes:
    """Test scoping by analysis type."""

    def test_ui(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, MIXED_PROJECT), AnalysisType.UI)
        assert [c.path for c in result.components] == ['src/components/Button.jsx']

    def test_backend(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, MIXED_PROJECT), "backend")
        assert [c.path for c in result.components] == ['src/api/users.js']

    def test_security(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, MIXED_PROJECT), AnalysisType.SECURITY)
        assert result.succeeded
        assert result.opportunities == []
        assert {i.title for i in result.issues} == {"Hardcoded Secrets"}
        assert {p.name for p in result.patterns} == {"Hardcoded Secrets"}

    def test_performance(self, analyzer, temp_dir):
        result = analyzer.analyze(write_project(temp_dir, MIXED_PROJECT), AnalysisType.PERFORMANCE)
        assert {p.name for p in result.patterns} == {"Nested Loops"}
        assert all(i.category.value == 'performance' for i in result.issues)


class TestFailures:
    """Test failed and cancelled runs."""

    def test_scorer_failure(self, config, temp_dir):
        scorer = FakeScorer(error=ScorerError("boom"))
        analyzer = ArchitecturalAnalyzer(config, scorer_factory=lambda: scorer)
        result = analyzer.analyze(write_project(temp_dir, CYCLE_PROJECT))

        assert not result.succeeded
        assert result.run.status == RunStatus.FAILED
        assert result.run.failure_reason.startswith("scorer:")
        assert result.run.end_time is not None
        assert result.run.overall_health_score is not None
        assert scorer.cleaned_up

    def test_malformed_predictions(self, config, temp_dir):
        scorer = FakeScorer(dict(EMPTY_PREDICTIONS, new_issues=[{'confidence': 50}]))
        analyzer = ArchitecturalAnalyzer(config, scorer_factory=lambda: scorer)
        result = analyzer.analyze(write_project(temp_dir, CYCLE_PROJECT))
        assert result.run.failure_reason.startswith("scorer:")
        assert scorer.cleaned_up

    def test_missing_root(self, analyzer, temp_dir, fake_scorer):
        result = analyzer.analyze(temp_dir / "missing")
        assert result.run.status == RunStatus.FAILED
        assert result.run.failure_reason.startswith("scan:")
        assert fake_scorer.payloads == []

    def test_cancelled(self, analyzer, temp_dir, fake_scorer):
        token = CancellationToken()
        token.cancel()
        result = analyzer.analyze(write_project(temp_dir, CYCLE_PROJECT), token=token)
        assert result.run.status == RunStatus.FAILED
        assert result.run.failure_reason == "cancelled"
        assert fake_scorer.payloads == []


class TestPersistence:
    """Test best-effort persistence of a run."""

    def test_run_is_persisted(self, config, store, temp_dir):
        project = write_project(temp_dir / "project", CYCLE_PROJECT)
        analyzer = ArchitecturalAnalyzer(config, store=store, scorer_factory=FakeScorer)
        result = analyzer.analyze(project)

        saved = store.get_run(result.run.id)
        assert saved.status == RunStatus.COMPLETED
        assert saved.overall_health_score == result.run.overall_health_score
        assert len(store.get_issues(result.run.id)) == result.run.total_issues_found
        assert len(store.get_opportunities(result.run.id)) == result.run.total_opportunities_found
        assert {c.path for c in store.get_components()} == {'src/a.js', 'src/b.js', 'src/c.js'}

    def test_run_numbers_come_from_store(self, config, store, temp_dir):
        project = write_project(temp_dir / "project", CYCLE_PROJECT)
        ArchitecturalAnalyzer(config, store=store, scorer_factory=FakeScorer).analyze(project)
        second = ArchitecturalAnalyzer(config, store=store, scorer_factory=FakeScorer).analyze(project)
        assert second.run.run_number == 2
        assert [r.run_number for r in store.list_runs()] == [2, 1]

    def test_failed_run_is_persisted(self, config, store, temp_dir):
        project = write_project(temp_dir / "project", CYCLE_PROJECT)
        analyzer = ArchitecturalAnalyzer(
            config, store=store, scorer_factory=lambda: FakeScorer(error=ScorerError("boom")),
        )
        result = analyzer.analyze(project)
        saved = store.get_run(result.run.id)
        assert saved.status == RunStatus.FAILED
        assert saved.failure_reason == result.run.failure_reason


class TestConcurrentRuns:
    """Test that concurrent runs on one analyzer keep separate state."""

    def test_skipped_files_are_per_run(self, config, temp_dir, monkeypatch):
        config.scanner.follow_symlinks = True
        broken = write_project(temp_dir / "broken", CYCLE_PROJECT)
        (broken / "src" / "dangling.js").symlink_to(broken / "src" / "gone.js")
        clean = write_project(temp_dir / "clean", CYCLE_PROJECT)

        barrier = threading.Barrier(2, timeout=10)
        original_scan = FileScanner.scan

        def scan_then_wait(self, root):
            records = original_scan(self, root)
            barrier.wait()
            return records

        monkeypatch.setattr(FileScanner, 'scan', scan_then_wait)
        analyzer = ArchitecturalAnalyzer(config, scorer_factory=FakeScorer)

        results = {}

        def run(name, root):
            results[name] = analyzer.analyze(root)

        threads = [
            threading.Thread(target=run, args=("broken", broken)),
            threading.Thread(target=run, args=("clean", clean)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert results["broken"].succeeded
        assert results["clean"].succeeded
        assert [p.endswith("dangling.js") for p in results["broken"].skipped_files] == [True]
        assert results["clean"].skipped_files == []
