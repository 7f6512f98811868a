"""Deterministic optimization heuristics over a run's components."""

from typing import List, Optional

from .models import (
    Component,
    ComponentType,
    ImplementationComplexity,
    OptimizationOpportunity,
)
from ..config import PolicyConfig


class OptimizationGenerator:
    """Derive optimization opportunities from component metrics.

    Every heuristic carries a fixed priority and confidence baseline so the
    output is reproducible for the same set of components.
    """

    def __init__(self, policy: Optional[PolicyConfig] = None):
        self.policy = policy or PolicyConfig()

    def generate(self, components: List[Component]) -> List[OptimizationOpportunity]:
        opportunities: List[OptimizationOpportunity] = []
        for component in components:
            opportunities.extend(self._code_splitting(component))
            opportunities.extend(self._caching(component))
            opportunities.extend(self._refactoring(component))
            opportunities.extend(self._database(component))
        opportunities.extend(self._api_consolidation(components))
        return opportunities

    def _code_splitting(self, component: Component) -> List[OptimizationOpportunity]:
        loc = component.metrics.get('lines_of_code', 0)
        if loc <= self.policy.code_split_min_loc:
            return []
        return [OptimizationOpportunity(
            type="bundle_size",
            title=f"Code split {component.name}",
            description=f"{component.name} has {loc} lines and could be split or lazy loaded",
            affected_component=component.path,
            current_state={'lines_of_code': loc, 'size': component.size},
            proposed_state={'size': round(component.size * 0.3)},
            expected_improvements=[{
                'metric': 'bundle_size',
                'current_value': component.size,
                'expected_value': round(component.size * 0.3),
                'improvement_percentage': 70,
            }],
            implementation_complexity=ImplementationComplexity.SIMPLE,
            priority=7,
            estimated_impact=65,
            ml_confidence=80,
        )]

    def _caching(self, component: Component) -> List[OptimizationOpportunity]:
        if component.type != ComponentType.API:
            return []
        return [OptimizationOpportunity(
            type="caching",
            title=f"Add caching to {component.name}",
            description="Cache responses to reduce repeated work per request",
            affected_component=component.path,
            current_state={'caching': False, 'response_time_ms': 200},
            proposed_state={'caching': True, 'response_time_ms': 50},
            expected_improvements=[{
                'metric': 'response_time',
                'current_value': 200,
                'expected_value': 50,
                'improvement_percentage': 75,
            }],
            implementation_complexity=ImplementationComplexity.MODERATE,
            priority=8,
            estimated_impact=70,
            ml_confidence=85,
        )]

    def _refactoring(self, component: Component) -> List[OptimizationOpportunity]:
        mi = component.metrics.get('maintainability_index', 100)
        if mi >= self.policy.refactor_max_maintainability:
            return []
        return [OptimizationOpportunity(
            type="code_refactor",
            title=f"Refactor {component.name}",
            description=f"Maintainability index is {mi}; simplify and split responsibilities",
            affected_component=component.path,
            current_state={'maintainability_index': mi},
            proposed_state={'maintainability_index': 75},
            expected_improvements=[{
                'metric': 'maintainability_index',
                'current_value': mi,
                'expected_value': 75,
                'improvement_percentage': round((75 - mi) / max(mi, 1) * 100),
            }],
            implementation_complexity=ImplementationComplexity.COMPLEX,
            priority=6,
            estimated_impact=60,
            ml_confidence=75,
        )]

    def _database(self, component: Component) -> List[OptimizationOpportunity]:
        if component.type != ComponentType.DATABASE:
            return []
        return [OptimizationOpportunity(
            type="database_optimization",
            title=f"Optimize queries in {component.name}",
            description="Add indexes and batch queries to cut query latency",
            affected_component=component.path,
            current_state={'query_time_ms': 100},
            proposed_state={'query_time_ms': 25},
            expected_improvements=[{
                'metric': 'query_time',
                'current_value': 100,
                'expected_value': 25,
                'improvement_percentage': 75,
            }],
            implementation_complexity=ImplementationComplexity.SIMPLE,
            priority=9,
            estimated_impact=80,
            ml_confidence=90,
        )]

    def _api_consolidation(self, components: List[Component]) -> List[OptimizationOpportunity]:
        api_count = sum(1 for c in components if c.type == ComponentType.API)
        if api_count <= self.policy.api_consolidation_min_count:
            return []
        target = round(api_count * 0.6)
        return [OptimizationOpportunity(
            type="api_consolidation",
            title="Consolidate API endpoints",
            description=f"{api_count} API components could be merged into fewer endpoints",
            current_state={'endpoint_count': api_count},
            proposed_state={'endpoint_count': target},
            expected_improvements=[{
                'metric': 'endpoint_count',
                'current_value': api_count,
                'expected_value': target,
                'improvement_percentage': 40,
            }],
            implementation_complexity=ImplementationComplexity.MODERATE,
            priority=5,
            estimated_impact=55,
            ml_confidence=70,
        )]
