"""Report generation for analysis runs."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from jinja2 import Template

from .architecture.analyzer import AnalysisResult
from .architecture.health import calculate_health_score
from .architecture.models import Component, Issue, IssueStatus
from .code_analysis.models import SEVERITY_ORDER, Severity
from .utils import logger, ensure_directory, format_duration


MARKDOWN_TEMPLATE = """# Architecture Analysis Report

**Run:** #{{ metadata.run_number }} ({{ metadata.analysis_type }})
**Started:** {{ metadata.start_time }}
**Finished:** {{ metadata.end_time or "n/a" }}
**Status:** {{ metadata.status }}{% if metadata.failure_reason %} ({{ metadata.failure_reason }}){% endif %}
**Model:** {{ metadata.ml_model_version }}

## Summary

| Metric | Value |
|--------|-------|
| Overall Health Score | {{ summary.overall_health_score }}/100 |
| Components Analyzed | {{ summary.total_components_analyzed }} |
| Issues Found | {{ summary.total_issues_found }} |
| Opportunities Found | {{ summary.total_opportunities_found }} |
| Patterns Found | {{ summary.total_patterns_found }} |
| Duration | {{ duration }} |

## Critical Issues
{% if critical_issues %}
{% for issue in critical_issues %}
### {{ issue.title }}
- **Location:** {{ issue.file_path or "project" }}{% if issue.line %}:{{ issue.line }}{% endif %}
- **Impact:** {{ issue.impact_score }} | **Confidence:** {{ issue.detection_confidence }}%
- {{ issue.description }}
{% if issue.suggested_fix %}- **Fix:** {{ issue.suggested_fix }}
{% endif %}
{% endfor %}
{% else %}
No critical issues found.
{% endif %}

## Top Optimization Opportunities
{% if top_opportunities %}
{% for opp in top_opportunities %}
{{ loop.index }}. **{{ opp.title }}** (priority {{ opp.priority }}, impact {{ opp.estimated_impact }}, {{ opp.implementation_complexity }})
   {{ opp.description }}
{% endfor %}
{% else %}
No optimization opportunities found.
{% endif %}

## Patterns

### Beneficial
{% for pattern in beneficial_patterns %}
- {{ pattern.name }} ({{ pattern.occurrences }}x, confidence {{ pattern.confidence }}%)
{% else %}
- None detected
{% endfor %}

### Anti-patterns and Smells
{% for pattern in anti_patterns %}
- {{ pattern.name }} ({{ pattern.occurrences }}x, confidence {{ pattern.confidence }}%)
{% else %}
- None detected
{% endfor %}

## Components Needing Attention
{% if attention %}
| Component | Type | Maintainability | Complexity |
|-----------|------|-----------------|------------|
{% for comp in attention %}
| {{ comp.path }} | {{ comp.type }} | {{ comp.metrics.maintainability_index }} | {{ comp.metrics.cyclomatic_complexity }} |
{% endfor %}
{% else %}
All components are above the maintainability threshold.
{% endif %}
"""


class ReportGenerator:
    """Generate JSON and Markdown reports from an analysis result."""

    def __init__(self, maintainability_threshold: float = 50.0):
        self.maintainability_threshold = maintainability_threshold
        self.markdown_template = Template(MARKDOWN_TEMPLATE, trim_blocks=True, lstrip_blocks=True)

    def build_report(self, result: AnalysisResult) -> Dict[str, Any]:
        """Build the JSON-ready report structure."""
        run = result.run
        report = {
            'metadata': {
                'run_id': run.id,
                'run_number': run.run_number,
                'analysis_type': run.analysis_type.value,
                'root': run.root,
                'deep_scan': run.deep_scan,
                'status': run.status.value,
                'failure_reason': run.failure_reason,
                'start_time': run.start_time.isoformat(),
                'end_time': run.end_time.isoformat() if run.end_time else None,
                'ml_model_version': run.ml_model_version,
            },
            'summary': {
                'overall_health_score': run.overall_health_score,
                'total_components_analyzed': run.total_components_analyzed,
                'total_issues_found': run.total_issues_found,
                'total_opportunities_found': run.total_opportunities_found,
                'total_patterns_found': run.total_patterns_found,
            },
            'issues': [issue.to_dict() for issue in result.issues],
            'opportunities': [opp.to_dict() for opp in result.opportunities],
            'patterns': [pattern.to_dict() for pattern in result.patterns],
            'upgrades': [upgrade.to_dict() for upgrade in result.upgrades],
            'components': [component.to_dict() for component in result.components],
        }
        if result.project_metrics is not None:
            report['project_metrics'] = result.project_metrics.to_dict()
        return report

    def generate_json(self, result: AnalysisResult) -> str:
        return json.dumps(self.build_report(result), indent=2, default=str)

    def generate_markdown(self, report: Dict[str, Any]) -> str:
        """Render the Markdown summary from a report structure."""
        issues = [i for i in report['issues'] if i.get('status') != IssueStatus.FALSE_POSITIVE.value]
        critical = [i for i in issues if i['severity'] == Severity.CRITICAL.value]
        opportunities = sorted(
            report['opportunities'],
            key=lambda o: (o['priority'], o['estimated_impact']),
            reverse=True,
        )
        patterns = sorted(report['patterns'], key=lambda p: p['occurrences'], reverse=True)
        attention = [
            c for c in report['components']
            if c['metrics'].get('maintainability_index', 100) < self.maintainability_threshold
        ]
        metadata = report['metadata']

        return self.markdown_template.render(
            metadata=metadata,
            summary=report['summary'],
            duration=_duration(metadata),
            critical_issues=critical,
            top_opportunities=opportunities[:10],
            beneficial_patterns=[p for p in patterns if p['is_beneficial']][:5],
            anti_patterns=[p for p in patterns if not p['is_beneficial']][:5],
            attention=attention,
        )

    def export(self, result: AnalysisResult, output_dir: Union[str, Path] = ".") -> Tuple[Path, Path]:
        """Write ``analysis-report-N.json`` and ``analysis-report-N.md``.

        Returns:
            Paths of the JSON and Markdown files
        """
        output_dir = ensure_directory(Path(output_dir))
        report = self.build_report(result)
        stem = f"analysis-report-{result.run.run_number}"

        json_path = output_dir / f"{stem}.json"
        json_path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")

        md_path = output_dir / f"{stem}.md"
        md_path.write_text(self.generate_markdown(report), encoding="utf-8")

        logger.info(f"Report written to {json_path} and {md_path}")
        return json_path, md_path


def load_report(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a JSON report written by ``ReportGenerator.export``."""
    with open(path, 'r', encoding="utf-8") as f:
        return json.load(f)


def top_issues(issues, limit: int = 5):
    """Issues ordered by severity, then impact."""
    return sorted(
        issues,
        key=lambda i: (SEVERITY_ORDER[i.severity], i.impact_score),
        reverse=True,
    )[:limit]


def _duration(metadata: Dict[str, Any]) -> str:
    start = metadata.get('start_time')
    end = metadata.get('end_time')
    return format_duration(
        datetime.fromisoformat(start) if start else None,
        datetime.fromisoformat(end) if end else None,
    )


def recompute_health(report: Dict[str, Any], policy=None) -> int:
    """Health score recomputed from the components and issues stored in a report."""
    components = [Component.from_dict(c) for c in report['components']]
    issues = [Issue.from_dict(i) for i in report['issues']]
    return calculate_health_score(components, issues, policy)
