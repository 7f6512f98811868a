"""Project dependency graph built from relative imports."""

import os
from typing import Iterable, List, Optional, Set

import networkx as nx

from .models import CodeAnalysisResult
from .scanner import resolve_candidates


ENTRY_POINT_MARKERS = ('index', 'main', 'app')


class DependencyGraph:
    """Directed graph of file paths; an edge ``a -> b`` means a imports b."""

    def __init__(self):
        self.graph = nx.DiGraph()

    @classmethod
    def from_analyses(cls, analyses: Iterable[CodeAnalysisResult]) -> 'DependencyGraph':
        analyses = list(analyses)
        graph = cls()
        known = {a.path for a in analyses}
        for analysis in analyses:
            graph.add_node(analysis.path)
        for analysis in analyses:
            for target in resolve_imports(analysis, known):
                graph.add_edge(analysis.path, target)
        return graph

    def add_node(self, node: str):
        self.graph.add_node(node)

    def add_edge(self, source: str, target: str):
        if source != target:
            self.graph.add_edge(source, target)

    @property
    def nodes(self) -> List[str]:
        return list(self.graph.nodes)

    def dependencies(self, node: str) -> List[str]:
        return list(self.graph.successors(node))

    def dependents(self, node: str) -> List[str]:
        return list(self.graph.predecessors(node))

    def find_cycles(self) -> List[List[str]]:
        """Depth-first search with a recursion stack.

        Every edge back to a node still on the stack yields one cycle: the
        slice of the current path starting at that node. Each node is
        expanded once, so a cycle is reported once per back edge.
        """
        cycles: List[List[str]] = []
        visited: Set[str] = set()

        for root in self.graph.nodes:
            if root in visited:
                continue
            path: List[str] = [root]
            on_stack: Set[str] = {root}
            visited.add(root)
            pending = [iter(self.graph.successors(root))]

            while pending:
                dep = next(pending[-1], None)
                if dep is None:
                    pending.pop()
                    on_stack.discard(path.pop())
                    continue
                if dep in on_stack:
                    cycles.append(path[path.index(dep):])
                    continue
                if dep in visited:
                    continue
                visited.add(dep)
                on_stack.add(dep)
                path.append(dep)
                pending.append(iter(self.graph.successors(dep)))

        return cycles

    def find_orphans(self, markers: Iterable[str] = ENTRY_POINT_MARKERS) -> List[str]:
        """Nodes nobody depends on, excluding entry-point-looking paths."""
        markers = tuple(markers)
        return [
            node for node in self.graph.nodes
            if self.graph.in_degree(node) == 0
            and not any(marker in node for marker in markers)
        ]

    def dependency_depth(self) -> int:
        """Longest import chain, with each cycle collapsed to one node."""
        if self.graph.number_of_nodes() == 0:
            return 0
        condensed = nx.condensation(self.graph)
        return nx.dag_longest_path_length(condensed)


def resolve_imports(analysis: CodeAnalysisResult, known: Set[str]) -> List[str]:
    """Project paths that a file's relative imports resolve to."""
    base_dir = os.path.dirname(analysis.path)
    targets = []
    for record in analysis.imports:
        if record.is_external:
            continue
        target = resolve_specifier(base_dir, record.source, known)
        if target and target not in targets:
            targets.append(target)
    return targets


def resolve_specifier(base_dir: str, specifier: str, known: Set[str]) -> Optional[str]:
    if specifier.startswith('/'):
        specifier = '.' + specifier
        base_dir = ''
    candidates = resolve_candidates(base_dir, specifier)
    # Shortest candidate first, so an exact name wins over an index file
    for candidate in sorted(candidates, key=lambda c: (len(c), c)):
        if candidate in known:
            return candidate
    return None
