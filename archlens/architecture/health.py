"""Health score for an analysis run.

The score depends only on the run's components and issues, so
recomputing it from stored data gives the same value.
"""

from typing import Iterable, List, Optional

from .models import Component, Issue, IssueStatus
from ..code_analysis.health import HealthBreakdown, quality_score
from ..code_analysis.models import IssueCategory
from ..code_analysis.security import SEVERITY_DEDUCTIONS
from ..config import PolicyConfig
from ..utils import clamp

SMELL_CATEGORIES = (
    IssueCategory.SMELL,
    IssueCategory.ANTI_PATTERN,
    IssueCategory.DUPLICATION,
    IssueCategory.COMPLEXITY,
)

ARCHITECTURE_WEIGHTS = {'critical': 10, 'high': 7, 'medium': 4, 'low': 2}


def run_health_breakdown(components: Iterable[Component], issues: Iterable[Issue]) -> HealthBreakdown:
    components = list(components)
    issues = [i for i in issues if i.status != IssueStatus.FALSE_POSITIVE]

    if components:
        avg_mi = sum(c.metrics.get('maintainability_index', 100) for c in components) / len(components)
        avg_cc = sum(c.metrics.get('cyclomatic_complexity', 1) for c in components) / len(components)
    else:
        avg_mi, avg_cc = 100.0, 1.0
    smells = sum(1 for i in issues if i.category in SMELL_CATEGORIES)

    security = 100 - sum(
        SEVERITY_DEDUCTIONS[i.severity] for i in issues if i.category == IssueCategory.SECURITY
    )
    performance = 100 - sum(
        SEVERITY_DEDUCTIONS[i.severity] for i in issues if i.category == IssueCategory.PERFORMANCE
    )
    architecture = 100 - sum(
        ARCHITECTURE_WEIGHTS[i.severity.value] * i.impact_score / 100 for i in issues
    )

    return HealthBreakdown(
        quality=quality_score(avg_mi, avg_cc, smells),
        security=clamp(security),
        performance=clamp(performance),
        architecture=clamp(architecture),
    )


def calculate_health_score(components: List[Component], issues: List[Issue],
                           policy: Optional[PolicyConfig] = None) -> int:
    """Overall health in [0, 100] for a run."""
    return run_health_breakdown(components, issues).blend(policy or PolicyConfig())
