# packetgen/generation/utils/reference_graph.py
"""
Cross-reference graph over a tossup set.

Edge i -> j means question i's text (lower-cased, whitespace collapsed) contains the
normalized main answer of tossup j, i.e. hearing question i can give away tossup j. Self
edges are never added and an empty normalized answer contributes no edges.

A "cycle" here is only a reciprocal pair (i -> j and j -> i). Longer loops are not
reported as cycles; topo_sort() still notices them by returning a partial order.

Usage Example:
```python
graph = analyze_cross_references(tossups)
if graph.has_reciprocal_edge():
    print(graph.reciprocal_pairs())
order = graph.topo_sort()
```
"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Sequence, Set, Tuple

from packetgen.shared.answer_line import WHITESPACE_RE, normalize_answer
from packetgen.shared.schemas import Tossup


@dataclass(frozen=True)
class ReferenceEdge:
    from_index: int
    to_index: int


class ReferenceGraph:
    """
    Adjacency-list digraph over tossup indices 0..size-1.
    """

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError(f"graph size must be >= 0, got {size}")
        self.size = size
        self._out: List[Set[int]] = [set() for _ in range(size)]

    def add_edge(self, from_index: int, to_index: int) -> None:
        for idx in (from_index, to_index):
            if not 0 <= idx < self.size:
                raise IndexError(f"node {idx} outside 0..{self.size - 1}")
        if from_index == to_index:
            return
        self._out[from_index].add(to_index)

    def has_edge(self, from_index: int, to_index: int) -> bool:
        return to_index in self._out[from_index]

    def edges(self) -> List[ReferenceEdge]:
        return [ReferenceEdge(i, j) for i in range(self.size) for j in sorted(self._out[i])]

    def edge_count(self) -> int:
        return sum(len(s) for s in self._out)

    # ------------------------------------------------------------------ #
    # Reciprocal pairs
    # ------------------------------------------------------------------ #
    def reciprocal_pairs(self) -> List[Tuple[int, int]]:
        """
        Mutual pairs (i, j) with i < j, in index order.
        """
        pairs = []
        for i in range(self.size):
            for j in sorted(self._out[i]):
                if i < j and self.has_edge(j, i):
                    pairs.append((i, j))
        return pairs

    def has_reciprocal_edge(self) -> bool:
        return bool(self.reciprocal_pairs())

    def reciprocal_nodes(self) -> List[int]:
        nodes: Set[int] = set()
        for i, j in self.reciprocal_pairs():
            nodes.update((i, j))
        return sorted(nodes)

    # ------------------------------------------------------------------ #
    # Ordering
    # ------------------------------------------------------------------ #
    def topo_sort(self) -> List[int]:
        """
        Kahn's algorithm on the reversed edges (a referenced tossup comes before the
        tossup whose question mentions it).

        FIFO queue seeded with zero in-degree nodes in index order, so independent
        tossups keep their original relative order.

        Returns:
            The order found. Shorter than size when a loop blocks the sort.
        """
        # Dependency j -> i for every reference edge i -> j
        in_degree = [len(self._out[i]) for i in range(self.size)]
        dependents: List[List[int]] = [[] for _ in range(self.size)]
        for i in range(self.size):
            for j in sorted(self._out[i]):
                dependents[j].append(i)

        queue: Deque[int] = deque(i for i in range(self.size) if in_degree[i] == 0)
        order: List[int] = []
        while queue:
            node = queue.popleft()
            order.append(node)
            for dependent in dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)
        return order


def analyze_cross_references(tossups: Sequence[Tossup]) -> ReferenceGraph:
    graph = ReferenceGraph(len(tossups))
    keys = [normalize_answer(t.answer_text) for t in tossups]
    questions = [WHITESPACE_RE.sub(" ", t.question_text or "").lower() for t in tossups]
    for i, question in enumerate(questions):
        for j, key in enumerate(keys):
            if i != j and key and key in question:
                graph.add_edge(i, j)
    return graph


class CrossReferenceAnalyzer:
    """
    Thin object wrapper so the resolver and the assembler can share one analyzer.
    """

    def analyze(self, tossups: Sequence[Tossup]) -> ReferenceGraph:
        return analyze_cross_references(tossups)


__all__ = [
    "ReferenceEdge",
    "ReferenceGraph",
    "CrossReferenceAnalyzer",
    "analyze_cross_references",
]
