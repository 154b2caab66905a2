"""
Symmetric per-edge scalar table over a rectangular grid.

Edges are stored in two numpy arrays:
- horizontal[x, y]: edge (x, y) - (x+1, y), shape (width, height+1)
- vertical[x, y]:   edge (x, y) - (x, y+1), shape (width+1, height)

so a value is shared by both directions of an edge and non-adjacent pairs
have no entry.
"""

from typing import Iterable, List, Sequence, Tuple

import numpy as np

from env.types_fleet import Location
from env.utils_fleet import l_corridor


class EdgeTable:
    """Grid edge values with vectorised bulk operations."""

    def __init__(self, width: int, height: int, initial: float = 0.0):
        self.width = width
        self.height = height
        self.horizontal = np.full((width, height + 1), initial, dtype=float)
        self.vertical = np.full((width + 1, height), initial, dtype=float)

    @property
    def size(self) -> int:
        return self.horizontal.size + self.vertical.size

    def arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.horizontal, self.vertical

    def fill(self, value: float) -> None:
        self.horizontal.fill(value)
        self.vertical.fill(value)

    def min(self) -> float:
        return float(min(self.horizontal.min(initial=np.inf), self.vertical.min(initial=np.inf)))

    def max(self) -> float:
        return float(max(self.horizontal.max(initial=-np.inf), self.vertical.max(initial=-np.inf)))

    def _index(self, a: Location, b: Location):
        if a.y == b.y and abs(a.x - b.x) == 1:
            return self.horizontal, (min(a.x, b.x), a.y)
        if a.x == b.x and abs(a.y - b.y) == 1:
            return self.vertical, (a.x, min(a.y, b.y))
        return None, None

    def get(self, a: Location, b: Location) -> float:
        """Value of the edge a-b; 0.0 for non-adjacent pairs."""
        table, idx = self._index(a, b)
        if table is None:
            return 0.0
        return float(table[idx])

    def set(self, a: Location, b: Location, value: float) -> None:
        table, idx = self._index(a, b)
        if table is None:
            raise KeyError(f"{a} and {b} are not grid-adjacent")
        table[idx] = value

    def add_along_path(self, path: Sequence[Location], amount: float) -> None:
        for a, b in zip(path[:-1], path[1:]):
            table, idx = self._index(a, b)
            if table is not None:
                table[idx] += amount

    def _segment_slice(self, s1: Location, s2: Location):
        if s1.y == s2.y:
            lo, hi = sorted((s1.x, s2.x))
            return self.horizontal, (slice(lo, hi), s1.y)
        lo, hi = sorted((s1.y, s2.y))
        return self.vertical, (s1.x, slice(lo, hi))

    def corridor_values(self, a: Location, b: Location, x_first: bool = True) -> np.ndarray:
        """Values of every edge on the L-shaped corridor from a to b."""
        parts: List[np.ndarray] = []
        for s1, s2 in l_corridor(a, b, x_first):
            table, idx = self._segment_slice(s1, s2)
            parts.append(np.ravel(table[idx]))
        if not parts:
            return np.zeros(0)
        return np.concatenate(parts)

    def corridor_mean(self, a: Location, b: Location) -> float:
        """Mean over both L-shaped corridors; 0.0 when a == b."""
        values = np.concatenate([self.corridor_values(a, b, True), self.corridor_values(a, b, False)])
        if values.size == 0:
            return 0.0
        return float(values.mean())

    def corridor_scale_max(self, a: Location, b: Location, factor: float, x_first: bool = True) -> None:
        """Raise every corridor edge to at least `factor` (used for multiplier tables)."""
        for s1, s2 in l_corridor(a, b, x_first):
            table, idx = self._segment_slice(s1, s2)
            table[idx] = np.maximum(table[idx], factor)

    def edge_midpoints(self) -> Tuple[Tuple[np.ndarray, np.ndarray], Tuple[np.ndarray, np.ndarray]]:
        """Midpoint coordinates of every edge, for distance-based masks."""
        hx, hy = np.meshgrid(np.arange(self.width) + 0.5, np.arange(self.height + 1), indexing="ij")
        vx, vy = np.meshgrid(np.arange(self.width + 1), np.arange(self.height) + 0.5, indexing="ij")
        return (hx, hy), (vx, vy)

    def edges_touching(self, nodes: Iterable[Location]) -> List[Tuple[Location, Location]]:
        """Every in-bounds edge incident to one of `nodes`."""
        edges = []
        for n in nodes:
            for dx, dy in ((1, 0), (-1, 0), (0, 1), (0, -1)):
                m = Location(n.x + dx, n.y + dy)
                if 0 <= m.x <= self.width and 0 <= m.y <= self.height:
                    edges.append((n, m))
        return edges
