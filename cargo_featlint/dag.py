"""
dag.py - Directed graph over hashable nodes with shortest-path search.

Nodes are interned to integer indices. Adjacency lists keep insertion order so
that a search explores edges in the order they were added, which keeps lint
output reproducible between runs. Cycles are allowed.
"""

from __future__ import annotations

from collections import deque
from typing import Callable, Generic, Hashable, Iterator, Optional, TypeVar

T = TypeVar('T', bound=Hashable)


class NodePath(Generic[T]):
    """An ordered walk through a Dag, first node to last."""

    def __init__(self, nodes: list):
        self.nodes = list(nodes)

    def __iter__(self) -> Iterator[T]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return f"NodePath({self.nodes!r})"

    @property
    def first(self) -> T:
        return self.nodes[0]

    @property
    def last(self) -> T:
        return self.nodes[-1]

    def for_each(self, callback: Callable[[T], None]):
        for node in self.nodes:
            callback(node)

    def render(self, fmt: Callable[[T], str] = str, delimiter: str = ' -> ') -> str:
        return delimiter.join(fmt(node) for node in self.nodes)


class Dag(Generic[T]):
    """Edge-ordered directed graph."""

    def __init__(self):
        self._index: dict = {}  # node -> idx
        self._nodes: list = []  # idx -> node
        self._out: list = []  # idx -> [idx] in insertion order
        self._out_set: list = []  # idx -> {idx}
        self._lhs: list = []  # idx of nodes with outgoing edges, first-edge order

    def _intern(self, node: T) -> int:
        idx = self._index.get(node)
        if idx is None:
            idx = len(self._nodes)
            self._index[node] = idx
            self._nodes.append(node)
            self._out.append([])
            self._out_set.append(set())
        return idx

    def add_node(self, node: T):
        self._intern(node)

    def add_edge(self, src: T, dst: T):
        """Insert `src -> dst`. Adding an existing edge is a no-op."""
        a = self._intern(src)
        b = self._intern(dst)
        if b in self._out_set[a]:
            return
        if not self._out[a]:
            self._lhs.append(a)
        self._out[a].append(b)
        self._out_set[a].add(b)

    def __contains__(self, node) -> bool:
        return node in self._index

    def __len__(self) -> int:
        return len(self._nodes)

    def lhs_nodes(self) -> list:
        """Every node with at least one outgoing edge."""
        return [self._nodes[i] for i in self._lhs]

    def rhs_nodes(self, node: T) -> list:
        """Direct successors of `node`."""
        idx = self._index.get(node)
        if idx is None:
            return []
        return [self._nodes[i] for i in self._out[idx]]

    def edges(self) -> list:
        return [(self._nodes[a], self._nodes[b]) for a in self._lhs for b in self._out[a]]

    def reachable_predicate(self, start: T, predicate: Callable[[T], bool]) -> Optional[NodePath]:
        """Shortest path from `start` to the first node matching `predicate`.

        Breadth-first; among equally short paths the one reached through the
        earliest-added edges wins. `start` itself counts as reachable.
        """
        if predicate(start):
            return NodePath([start])
        root = self._index.get(start)
        if root is None:
            return None

        visited = [False] * len(self._nodes)
        parent = [-1] * len(self._nodes)
        visited[root] = True
        queue = deque([root])

        while queue:
            cur = queue.popleft()
            for nxt in self._out[cur]:
                if visited[nxt]:
                    continue
                visited[nxt] = True
                parent[nxt] = cur
                if predicate(self._nodes[nxt]):
                    return NodePath(self._backtrack(parent, nxt))
                queue.append(nxt)
        return None

    def reachable(self, start: T, target: T) -> Optional[NodePath]:
        return self.reachable_predicate(start, lambda node: node == target)

    def _backtrack(self, parent: list, idx: int) -> list:
        path = []
        while idx != -1:
            path.append(self._nodes[idx])
            idx = parent[idx]
        path.reverse()
        return path
