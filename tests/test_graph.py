"""
Dependency graph (loom/graph.py)

Tests DependencyGraph: nodes, edges, cycle detection, topological order
and exports.
"""

import pytest

from loom.errors import DependencyCycleError
from loom.graph import COMPONENT, REGISTRY_PACKAGE, DependencyGraph


def build(edges, nodes=()):
    """Graph from (source, target) pairs; keys are the target names."""
    graph = DependencyGraph()
    for name in nodes:
        graph.add_node(name)
    for source, target in edges:
        graph.add_node(source)
        graph.add_node(target)
    for source, target in edges:
        graph.add_edge(source, f"ns:{target}", target)
    return graph


# ============================================================================
# Construction
# ============================================================================

class TestGraphConstruction:

    def test_add_node_idempotent(self):
        graph = DependencyGraph()
        first = graph.add_node("api")
        second = graph.add_node("api", REGISTRY_PACKAGE)
        assert first is second
        assert first.kind == COMPONENT
        assert len(graph) == 1

    def test_contains(self):
        graph = build([("a", "b")])
        assert "a" in graph
        assert "c" not in graph

    def test_self_edge_is_cycle(self):
        graph = DependencyGraph()
        graph.add_node("a")
        with pytest.raises(DependencyCycleError) as exc_info:
            graph.add_edge("a", "ns:a", "a")
        assert exc_info.value.cycle == ["a"]

    def test_edge_to_unknown_node(self):
        graph = DependencyGraph()
        graph.add_node("a")
        with pytest.raises(KeyError):
            graph.add_edge("a", "ns:b", "b")


# ============================================================================
# Cycles
# ============================================================================

class TestCycleDetection:

    def test_acyclic(self):
        assert build([("a", "b"), ("b", "c"), ("a", "c")]).find_cycle() is None

    def test_two_node_cycle(self):
        cycle = build([("x", "y"), ("y", "x")]).find_cycle()
        assert sorted(cycle) == ["x", "y"]

    def test_three_node_cycle_reported_deterministically(self):
        graph = build([("c", "a"), ("a", "b"), ("b", "c")])
        assert graph.find_cycle() == ["a", "b", "c"]
        assert graph.find_cycle() == ["a", "b", "c"]

    def test_cycle_not_through_root(self):
        cycle = build([("a", "b"), ("b", "c"), ("c", "b")]).find_cycle()
        assert cycle == ["b", "c"]

    def test_topological_sort_raises_on_cycle(self):
        with pytest.raises(DependencyCycleError) as exc_info:
            build([("x", "y"), ("y", "x")]).topological_sort()
        assert set(exc_info.value.cycle) == {"x", "y"}
        assert "→" in exc_info.value.message

    def test_long_chain_has_no_recursion_limit(self):
        edges = [(f"n{i:05d}", f"n{i + 1:05d}") for i in range(5000)]
        graph = build(edges)
        assert graph.find_cycle() is None
        assert graph.topological_sort()[0] == "n05000"


# ============================================================================
# Ordering
# ============================================================================

class TestTopologicalSort:

    def test_dependencies_first(self):
        graph = build([("app", "auth"), ("auth", "db"), ("app", "db")])
        order = graph.topological_sort()
        for source, targets in graph.to_dict().items():
            for target in targets.values():
                assert order.index(target) < order.index(source)

    def test_ties_broken_by_name(self):
        graph = build([], nodes=["zeta", "alpha", "mid"])
        assert graph.topological_sort() == ["alpha", "mid", "zeta"]

    def test_deterministic_across_insertion_order(self):
        edges = [("a", "c"), ("b", "c"), ("c", "d")]
        assert build(edges).topological_sort() == build(list(reversed(edges))).topological_sort()

    def test_parallel_edges_counted_once(self):
        graph = DependencyGraph()
        for name in ("a", "b"):
            graph.add_node(name)
        graph.add_edge("a", "x:one", "b")
        graph.add_edge("a", "x:two", "b")
        assert graph.topological_sort() == ["b", "a"]


# ============================================================================
# Export
# ============================================================================

class TestGraphExport:

    def test_to_dict(self):
        graph = build([("b", "a")])
        assert graph.to_dict() == {"a": {}, "b": {"ns:a": "a"}}

    def test_to_dot(self):
        graph = DependencyGraph()
        graph.add_node("api")
        graph.add_node("fizz:buzz@1.0.0", REGISTRY_PACKAGE)
        graph.add_edge("api", "fizz:buzz", "fizz:buzz@1.0.0")
        dot = graph.to_dot()
        assert dot.startswith("digraph dependencies {")
        assert '"api" -> "fizz:buzz@1.0.0" [label="fizz:buzz"];' in dot
        assert '"fizz:buzz@1.0.0" [style=dashed];' in dot
