"""
Dependency graph with cycle detection and deterministic topological sorting.

Nodes live in an arena and edges refer to them by index.
"""

from typing import Dict, List, Optional, Set, Tuple
from dataclasses import dataclass
import heapq

from .errors import DependencyCycleError


COMPONENT = "component"
REGISTRY_PACKAGE = "registry"
PATH_PACKAGE = "path"


@dataclass(frozen=True)
class GraphNode:
    """Dependency graph node."""

    index: int
    name: str
    kind: str = COMPONENT


@dataclass(frozen=True)
class GraphEdge:
    """Edge from a dependent to the node its dependency key resolved to."""

    source: int
    key: str
    target: int


class DependencyGraph:
    """
    Dependency graph with cycle detection and topological sorting.

    Cycle detection is a depth-first walk that tracks the active recursion
    path; topological order is Kahn's algorithm with a name-ordered heap.
    """

    def __init__(self):
        self._nodes: List[GraphNode] = []
        self._index: Dict[str, int] = {}
        self._edges: List[List[GraphEdge]] = []

    def add_node(self, name: str, kind: str = COMPONENT) -> GraphNode:
        """
        Add node to graph (idempotent).

        Args:
            name: Node identity
            kind: component, registry or path

        Returns:
            The node
        """
        if name in self._index:
            return self._nodes[self._index[name]]
        node = GraphNode(index=len(self._nodes), name=name, kind=kind)
        self._nodes.append(node)
        self._index[name] = node.index
        self._edges.append([])
        return node

    def add_edge(self, source: str, key: str, target: str) -> GraphEdge:
        """
        Add a dependency edge; both ends must already be nodes.

        Raises:
            DependencyCycleError: If ``source`` depends on itself
            KeyError: If either end is unknown
        """
        if source == target:
            raise DependencyCycleError(cycle=[source])
        edge = GraphEdge(self._index[source], key, self._index[target])
        self._edges[edge.source].append(edge)
        return edge

    def node(self, name: str) -> GraphNode:
        return self._nodes[self._index[name]]

    @property
    def nodes(self) -> List[GraphNode]:
        return list(self._nodes)

    def edges(self, name: str) -> List[GraphEdge]:
        return list(self._edges[self._index[name]])

    def find_cycle(self) -> Optional[List[str]]:
        """
        Find a cycle by depth-first search over the active path.

        Roots and neighbours are visited in name order, so the reported
        cycle is the same on every run.

        Returns:
            Node names forming the cycle (first node not repeated), or None
        """
        visited: Set[int] = set()

        for root in self._sorted(range(len(self._nodes))):
            if root in visited:
                continue

            path: List[int] = [root]
            on_path: Set[int] = {root}
            stack: List[Tuple[int, List[int]]] = [(root, self._successors(root))]
            visited.add(root)

            while stack:
                current, pending = stack[-1]
                if not pending:
                    stack.pop()
                    path.pop()
                    on_path.discard(current)
                    continue

                nxt = pending.pop(0)
                if nxt in on_path:
                    start = path.index(nxt)
                    return [self._nodes[i].name for i in path[start:]]
                if nxt in visited:
                    continue

                visited.add(nxt)
                path.append(nxt)
                on_path.add(nxt)
                stack.append((nxt, self._successors(nxt)))

        return None

    def topological_sort(self) -> List[str]:
        """
        Compute topological sort of graph (dependency order).

        Among nodes that are ready at the same time, the lexically smallest
        name comes first.

        Returns:
            List of node names in dependency order (dependencies first)

        Raises:
            DependencyCycleError: If cycle detected
        """
        cycle = self.find_cycle()
        if cycle:
            raise DependencyCycleError(cycle=cycle)

        remaining: List[int] = [0] * len(self._nodes)
        dependents: List[List[int]] = [[] for _ in self._nodes]
        for source, edges in enumerate(self._edges):
            targets = {edge.target for edge in edges}
            remaining[source] = len(targets)
            for target in targets:
                dependents[target].append(source)

        ready = [(node.name, node.index) for node in self._nodes if remaining[node.index] == 0]
        heapq.heapify(ready)
        result: List[str] = []

        while ready:
            name, index = heapq.heappop(ready)
            result.append(name)
            for dependent in dependents[index]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (self._nodes[dependent].name, dependent))

        return result

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        """
        Export graph as adjacency dict.

        Returns:
            Dict mapping node name -> {dependency key: target name}
        """
        return {
            node.name: {
                edge.key: self._nodes[edge.target].name
                for edge in sorted(self._edges[node.index], key=lambda e: e.key)
            }
            for node in sorted(self._nodes, key=lambda n: n.name)
        }

    def to_dot(self) -> str:
        """
        Export graph as DOT format for visualization.

        Returns:
            DOT graph string
        """
        lines = ["digraph dependencies {"]
        lines.append("  rankdir=LR;")
        lines.append("  node [shape=box, style=rounded];")

        for node in sorted(self._nodes, key=lambda n: n.name):
            shape = "" if node.kind == COMPONENT else " [style=dashed]"
            lines.append(f'  "{node.name}"{shape};')

        for source, targets in self.to_dict().items():
            for key, target in targets.items():
                lines.append(f'  "{source}" -> "{target}" [label="{key}"];')

        lines.append("}")
        return "\n".join(lines)

    def _successors(self, index: int) -> List[int]:
        return self._sorted({edge.target for edge in self._edges[index]})

    def _sorted(self, indices) -> List[int]:
        return sorted(indices, key=lambda i: self._nodes[i].name)

    def __len__(self) -> int:
        """Get number of nodes in graph."""
        return len(self._nodes)

    def __contains__(self, name: str) -> bool:
        """Check if node exists in graph."""
        return name in self._index

    def __repr__(self) -> str:
        return f"DependencyGraph({len(self._nodes)} nodes)"
