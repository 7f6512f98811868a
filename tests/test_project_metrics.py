"""Tests for project-wide metrics."""

import json

import pytest

from archlens.code_analysis.parser import CodeParser
from archlens.code_analysis.project_metrics import MetricsEngine
from archlens.code_analysis.models import Severity
from archlens.config import PolicyConfig

from conftest import make_file


SHARED_BLOCK = "\n".join(
    f"  const value{i} = computeSomethingExpensive(input, {i}, options);" for i in range(6)
)


def analyze(parser, files):
    return [parser.analyze(make_file(path, content)) for path, content in files.items()]


class TestMetricsEngine:
    """Test MetricsEngine aggregation."""

    @pytest.fixture
    def parser(self):
        return CodeParser()

    @pytest.fixture
    def engine(self, parser):
        engine = MetricsEngine()
        for analysis in analyze(parser, {
            'src/index.js': "import { format } from './utils/format';\nformat(1);\n",
            'src/utils/format.js': (
                "export function format(a) {\n  return a;\n}\n"
                "export function unusedHelper() {\n  return 2;\n}\n"
            ),
            'src/api/users.js': f"function list() {{\n{SHARED_BLOCK}\n}}\nconst apiKey = \"abcdefghij1234567890\";\n",
            'src/api/orders.js': f"function all() {{\n{SHARED_BLOCK}\n}}\nsetInterval(poll, 1000);\n",
            'src/app.test.js': "test('works', () => {});\n",
        }):
            engine.add_analysis(analysis)
        return engine

    def test_overview(self, engine):
        metrics = engine.calculate_project_metrics()
        assert metrics.overview.total_files == 5
        assert metrics.overview.total_functions >= 4
        assert metrics.overview.test_coverage == pytest.approx(20.0)
        assert 0 <= metrics.overview.tech_debt_ratio <= 100

    def test_add_analysis_replaces_by_path(self, engine, parser):
        engine.add_analysis(parser.analyze(make_file('src/index.js', "const a = 1;\n")))
        assert len(engine.analyses) == 5
        engine.remove_analysis('src/index.js')
        assert len(engine.analyses) == 4
        engine.clear()
        assert engine.analyses == []

    def test_bundle_size(self, engine):
        bundle = engine.calculate_project_metrics().performance.bundle_size
        assert bundle.gzipped_size == round(bundle.total_size * 0.3)
        assert bundle.largest_files[0]['size'] >= bundle.largest_files[-1]['size']
        assert 'unusedHelper' in bundle.unused_exports
        assert 'format' not in bundle.unused_exports

    def test_gzip_ratio_is_configurable(self, parser):
        engine = MetricsEngine(PolicyConfig(gzip_ratio=0.5))
        engine.add_analysis(parser.analyze(make_file('src/a.js', "x" * 100)))
        assert engine.calculate_project_metrics().performance.bundle_size.gzipped_size == 50

    def test_duplicate_blocks_across_files(self, engine):
        blocks = engine.calculate_project_metrics().performance.bundle_size.duplicate_code
        assert blocks
        assert sorted(blocks[0].files) == ['src/api/orders.js', 'src/api/users.js']
        assert blocks[0].duplicated_lines == 6

    def test_memory_bottleneck(self, engine):
        bottlenecks = engine.calculate_project_metrics().performance.bottlenecks
        assert any(b.type == 'memory' and b.location == 'src/api/orders.js' for b in bottlenecks)

    def test_security(self, engine):
        security = engine.calculate_project_metrics().security
        assert [v.title for v in security.vulnerabilities] == ["Hardcoded Secrets"]
        assert security.security_score == 80
        assert security.risk_level == Severity.CRITICAL.value

    def test_architecture(self, engine):
        architecture = engine.calculate_project_metrics().architecture
        types = {t.type: t.count for t in architecture.component_types}
        assert types['api'] == 2
        assert types['test'] == 1
        assert architecture.circular_dependencies == []
        assert architecture.dependency_depth == 1
        assert 'src/api/users.js' in architecture.orphaned_files
        assert 'src/utils/format.js' not in architecture.orphaned_files

    def test_health_score_range(self, engine):
        assert 0 <= engine.get_health_score() <= 100

    def test_prioritized_issues(self, parser):
        engine = MetricsEngine()
        source = "function many(a, b, c, d, e, f) {\n  return a;\n}\n"
        engine.add_analysis(parser.analyze(make_file('src/many.js', source)))
        engine.add_analysis(parser.analyze(make_file('src/big.js', "const a = 1;\n", size=200 * 1024)))
        issues = engine.get_issues_prioritized()
        weights = [i.severity.weight for i in issues]
        assert weights == sorted(weights, reverse=True)

    def test_optimization_opportunities(self, parser):
        engine = MetricsEngine(PolicyConfig(bundle_warning_bytes=10))
        engine.add_analysis(parser.analyze(make_file('src/a.js', "const a = 1;\n" * 20)))
        types = [o.type for o in engine.get_optimization_opportunities()]
        assert 'bundle_size' in types
        assert 'duplication' in types

    def test_empty_project(self):
        metrics = MetricsEngine().calculate_project_metrics()
        assert metrics.overview.total_files == 0
        assert metrics.overview.tech_debt_ratio == 0
        assert metrics.quality.average_maintainability == 100.0
        assert metrics.architecture.dependency_depth == 0

    def test_to_dict_is_json_serializable(self, engine):
        data = engine.calculate_project_metrics().to_dict()
        encoded = json.loads(json.dumps(data, default=str))
        assert encoded['security']['vulnerabilities'][0]['severity'] == 'critical'
        assert encoded['overview']['total_files'] == 5
