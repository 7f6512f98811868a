"""Tests for report generation."""

import json

import pytest

from archlens.architecture.analyzer import ArchitecturalAnalyzer
from archlens.architecture.models import IssueStatus
from archlens.config import Config
from archlens.report_generator import (
    ReportGenerator,
    load_report,
    recompute_health,
    top_issues,
)

from conftest import FakeScorer, write_project


PROJECT = {
    'src/a.js': "import { b } from './b';\nexport const a = () => b();\n",
    'src/b.js': "import { a } from './a';\nexport const b = () => a();\n",
    'src/config/keys.js': "export const apiKey = \"abcdefghij1234567890\";\n",
    'src/api/users.js': "export function list(req, res) {\n  res.send([]);\n}\n",
}


@pytest.fixture
def result(temp_dir):
    analyzer = ArchitecturalAnalyzer(Config(), scorer_factory=FakeScorer)
    return analyzer.analyze(write_project(temp_dir / "project", PROJECT), deep_scan=True)


class TestReportGenerator:
    """Test ReportGenerator."""

    def test_export_round_trip(self, result, temp_dir):
        json_path, md_path = ReportGenerator().export(result, temp_dir / "reports")

        assert json_path.name == f"analysis-report-{result.run.run_number}.json"
        assert md_path.suffix == ".md"
        report = load_report(json_path)
        summary = report['summary']
        assert summary['total_issues_found'] == len(report['issues'])
        assert summary['total_opportunities_found'] == len(report['opportunities'])
        assert summary['total_patterns_found'] == len(report['patterns'])
        assert summary['total_components_analyzed'] == len(report['components'])
        assert 'project_metrics' in report

    def test_health_recomputes_from_report(self, result, temp_dir):
        json_path, _ = ReportGenerator().export(result, temp_dir / "reports")
        report = load_report(json_path)
        assert recompute_health(report) == report['summary']['overall_health_score']

    def test_markdown_sections(self, result):
        generator = ReportGenerator()
        markdown = generator.generate_markdown(generator.build_report(result))
        for heading in (
            "# Architecture Analysis Report",
            "## Summary",
            "## Critical Issues",
            "## Top Optimization Opportunities",
            "## Patterns",
            "## Components Needing Attention",
        ):
            assert heading in markdown
        assert "### Hardcoded Secrets" in markdown
        assert f"| Overall Health Score | {result.run.overall_health_score}/100 |" in markdown

    def test_false_positives_hidden_from_markdown(self, result):
        for issue in result.issues:
            if issue.title == "Hardcoded Secrets":
                issue.status = IssueStatus.FALSE_POSITIVE
        generator = ReportGenerator()
        markdown = generator.generate_markdown(generator.build_report(result))
        assert "### Hardcoded Secrets" not in markdown
        assert "No critical issues found." in markdown

    def test_json_is_valid(self, result):
        data = json.loads(ReportGenerator().generate_json(result))
        assert data['metadata']['run_id'] == result.run.id
        assert data['metadata']['status'] == 'completed'

    def test_top_issues_ordering(self, result):
        ordered = top_issues(result.issues, limit=3)
        assert len(ordered) <= 3
        assert ordered[0].title == "Hardcoded Secrets"
