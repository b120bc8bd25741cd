from collections import deque
from typing import Iterable


class CallGraph:
    """
    Directed caller -> callee graph keyed by method identifier
    ('<fqcn>.<method>'). Callees are sets, so repeated call sites collapse to
    one edge. Cycles are fine; every traversal keeps a visited set.
    """

    def __init__(self):
        self._graph: dict[str, set[str]] = {}

    def add_edge(self, caller: str, callee: str):
        self._graph.setdefault(caller, set()).add(callee)

    def get_callees(self, method: str) -> frozenset[str]:
        """Callees of `method`; an unknown method is a leaf and yields an empty set."""
        return frozenset(self._graph.get(method, ()))

    def get_callers(self, method: str) -> set[str]:
        """Reverse lookup. Scans the whole graph, so keep it off hot paths."""
        return {caller for caller, callees in self._graph.items() if method in callees}

    def all_methods(self) -> list[str]:
        """Every method with at least one recorded outgoing edge."""
        return list(self._graph)

    def edges(self) -> Iterable[tuple[str, str]]:
        for caller, callees in self._graph.items():
            for callee in callees:
                yield caller, callee

    def replace_edges(self, edges: dict[str, set[str]]):
        """Swaps the whole adjacency map in one go (used by interface resolution)."""
        self._graph = {caller: set(callees) for caller, callees in edges.items()}

    def reachable_from(self, entry: str) -> set[str]:
        """Every method reachable from `entry`, including `entry` itself."""
        visited: set[str] = set()
        queue = deque([entry])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            queue.extend(c for c in self._graph.get(current, ()) if c not in visited)
        return visited

    def subgraph_from(self, entry: str) -> dict[str, set[str]]:
        """
        Breadth-first restriction of the graph to what `entry` can reach.
        Only visited nodes that have callees become keys.
        """
        return {
            method: set(self._graph[method])
            for method in self.reachable_from(entry)
            if self._graph.get(method)
        }

    def as_dict(self) -> dict[str, list[str]]:
        """JSON-ready copy with sorted keys and callee lists."""
        return to_json_graph(self._graph)

    def __len__(self) -> int:
        return len(self._graph)

    def __contains__(self, method: str) -> bool:
        return method in self._graph


def to_json_graph(graph: dict[str, set[str]]) -> dict[str, list[str]]:
    return {caller: sorted(callees) for caller, callees in sorted(graph.items())}
