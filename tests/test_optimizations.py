"""Tests for optimization heuristics."""

from archlens.architecture.models import Component, ComponentType, ImplementationComplexity
from archlens.architecture.optimizations import OptimizationGenerator
from archlens.config import PolicyConfig


def component(path, type=ComponentType.LIBRARY, **metrics):
    return Component(path=path, name=path.rsplit('/', 1)[-1], type=type, metrics=metrics, size=1000)


class TestOptimizationGenerator:
    """Test OptimizationGenerator."""

    def test_healthy_library_has_no_opportunities(self):
        generator = OptimizationGenerator()
        assert generator.generate([component('src/lib/a.js', lines_of_code=20, maintainability_index=90)]) == []

    def test_code_splitting(self):
        opportunities = OptimizationGenerator().generate([component('src/big.js', lines_of_code=400)])
        assert [o.type for o in opportunities] == ['bundle_size']
        assert opportunities[0].proposed_state == {'size': 300}
        assert opportunities[0].implementation_complexity == ImplementationComplexity.SIMPLE

    def test_caching_for_api(self):
        opportunities = OptimizationGenerator().generate([component('src/api/users.js', ComponentType.API)])
        assert [o.type for o in opportunities] == ['caching']
        assert opportunities[0].priority == 8

    def test_refactoring_low_maintainability(self):
        opportunities = OptimizationGenerator().generate([component('src/a.js', maintainability_index=30)])
        assert [o.type for o in opportunities] == ['code_refactor']
        assert opportunities[0].affected_component == 'src/a.js'

    def test_database(self):
        opportunities = OptimizationGenerator().generate([component('src/db/models.js', ComponentType.DATABASE)])
        assert [o.type for o in opportunities] == ['database_optimization']

    def test_api_consolidation(self):
        policy = PolicyConfig(api_consolidation_min_count=2)
        components = [component(f'src/api/e{i}.js', ComponentType.API) for i in range(3)]
        opportunities = OptimizationGenerator(policy).generate(components)
        consolidation = [o for o in opportunities if o.type == 'api_consolidation']
        assert len(consolidation) == 1
        assert consolidation[0].proposed_state == {'endpoint_count': 2}

    def test_deterministic(self):
        components = [
            component('src/api/users.js', ComponentType.API, lines_of_code=500, maintainability_index=20),
        ]
        first = [(o.type, o.priority, o.ml_confidence) for o in OptimizationGenerator().generate(components)]
        second = [(o.type, o.priority, o.ml_confidence) for o in OptimizationGenerator().generate(components)]
        assert first == second
        assert [t for t, _, _ in first] == ['bundle_size', 'caching', 'code_refactor']
