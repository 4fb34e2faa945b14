"""Cycle detection over the directed relationship graph."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..sync.models import GraphEdge


EdgeLike = Union[GraphEdge, Tuple[str, str]]


@dataclass
class CycleCheckResult:
    """Outcome of a cycle check."""
    is_cyclic: bool
    path: List[str] = field(default_factory=list)

    def describe(self) -> str:
        return " -> ".join(self.path)


def _as_pair(edge: EdgeLike) -> Tuple[str, str]:
    if isinstance(edge, GraphEdge):
        return edge.source_table_id, edge.target_table_id
    source, target = edge
    return source, target


def _build_adjacency(edges: Iterable[EdgeLike]) -> Dict[str, List[str]]:
    """Adjacency lists in first-seen order, duplicate edges collapsed."""
    adjacency: Dict[str, Dict[str, None]] = {}
    for edge in edges:
        source, target = _as_pair(edge)
        adjacency.setdefault(source, {})[target] = None
        adjacency.setdefault(target, {})
    return {node: list(targets) for node, targets in adjacency.items()}


def _find_cycle(adjacency: Dict[str, List[str]]) -> Optional[List[str]]:
    """Iterative depth-first search with an explicit recursion stack.

    Returns the active path at the moment a back-edge is found, terminated by
    the repeated node, or None for an acyclic graph.
    """
    visited = set()

    for root in adjacency:
        if root in visited:
            continue

        path: List[str] = [root]
        on_path = {root}
        iterators = [iter(adjacency[root])]
        visited.add(root)

        while iterators:
            neighbor = next(iterators[-1], None)
            if neighbor is None:
                iterators.pop()
                on_path.discard(path.pop())
                continue

            if neighbor in on_path:
                return path + [neighbor]
            if neighbor in visited:
                continue

            visited.add(neighbor)
            on_path.add(neighbor)
            path.append(neighbor)
            iterators.append(iter(adjacency[neighbor]))

    return None


def would_create_cycle(existing_edges: Iterable[EdgeLike], candidate_edge: EdgeLike) -> CycleCheckResult:
    """Check whether adding ``candidate_edge`` to ``existing_edges`` creates a cycle.

    Safe to call speculatively: the caller's edge collection is only iterated.

    Args:
        existing_edges: Edges already in the graph, as GraphEdge or (source, target)
        candidate_edge: Edge about to be added

    Returns:
        CycleCheckResult with the offending path when cyclic
    """
    source, target = _as_pair(candidate_edge)
    if source == target:
        return CycleCheckResult(is_cyclic=True, path=[source, target])

    edges = list(existing_edges)
    edges.append((source, target))
    return detect_cycle(edges)


def find_path(edges: Iterable[EdgeLike], start: str, goal: str) -> Optional[List[str]]:
    """Return a directed path from ``start`` to ``goal``, or None when unreachable."""
    adjacency = _build_adjacency(edges)
    parents: Dict[str, Optional[str]] = {start: None}
    stack = [start]

    while stack:
        node = stack.pop()
        if node == goal:
            path = []
            while node is not None:
                path.append(node)
                node = parents[node]
            return path[::-1]

        for neighbor in adjacency.get(node, ()):
            if neighbor not in parents:
                parents[neighbor] = node
                stack.append(neighbor)

    return None


def closes_cycle(existing_edges: Iterable[EdgeLike], candidate_edge: EdgeLike) -> CycleCheckResult:
    """Check whether ``candidate_edge`` itself closes a cycle.

    Cycles already present among ``existing_edges`` that the candidate is not
    part of are ignored. The reported path starts and ends at the candidate's
    source, e.g. ``C -> A -> B -> C`` for candidate ``(C, A)``.
    """
    source, target = _as_pair(candidate_edge)
    if source == target:
        return CycleCheckResult(is_cyclic=True, path=[source, target])

    path = find_path(existing_edges, target, source)
    if path is None:
        return CycleCheckResult(is_cyclic=False)
    return CycleCheckResult(is_cyclic=True, path=[source] + path)


def detect_cycle(edges: Iterable[EdgeLike]) -> CycleCheckResult:
    """Check a whole edge set for any cycle."""
    cycle = _find_cycle(_build_adjacency(edges))
    if cycle is None:
        return CycleCheckResult(is_cyclic=False)
    return CycleCheckResult(is_cyclic=True, path=cycle)


def edges_from_relationships(relationships: Iterable[Mapping[str, Any]],
                             exclude_id: Optional[str] = None) -> List[GraphEdge]:
    """Derive graph edges from relationship records.

    Relationships missing either endpoint are skipped.
    """
    edges = []
    for relationship in relationships:
        if exclude_id is not None and relationship.get("id") == exclude_id:
            continue
        source = relationship.get("source_table_id")
        target = relationship.get("target_table_id")
        if source and target:
            edges.append(GraphEdge(source_table_id=source, target_table_id=target))
    return edges
