"""
Pheromone field: learned per-edge desirability.

Evaporated and reinforced once per iteration by the orchestrator, read
concurrently (never written) by route builders.
"""

from typing import Iterable

import numpy as np

from core.aco.edge_table import EdgeTable
from env.types_fleet import Location, Solution


class PheromoneField:
    """
    Attributes:
        table: EdgeTable with one value per grid edge
        floor: lower bound every value is kept above
        deposit_factor: scale of quality-proportional deposits
    """

    def __init__(self, width: int, height: int, initial: float = 0.1,
                 floor: float = 0.001, deposit_factor: float = 10.0):
        self.table = EdgeTable(width, height, initial)
        self.initial = initial
        self.floor = floor
        self.deposit_factor = deposit_factor

    def get(self, a: Location, b: Location) -> float:
        return self.table.get(a, b)

    def corridor_mean(self, a: Location, b: Location) -> float:
        """Mean pheromone on the corridors between two arbitrary locations."""
        if a == b:
            return self.initial
        return self.table.corridor_mean(a, b)

    def evaporate(self, rate: float) -> None:
        """Multiply every entry by (1 - rate), keeping the floor."""
        for arr in self.table.arrays():
            arr *= (1.0 - rate)
            np.maximum(arr, self.floor, out=arr)

    def reinforce(self, solutions: Iterable[Solution]) -> None:
        """
        Deposit quality-proportional pheromone on every travelled edge.

        Each leg spreads quality * deposit_factor / distance over its path, so
        short high-quality legs are reinforced most.
        """
        for solution in solutions:
            if solution.quality <= 0:
                continue
            for assignment in solution.assignments:
                for leg in assignment.legs:
                    if len(leg.path) < 2:
                        continue
                    amount = solution.quality * self.deposit_factor / max(1.0, leg.distance)
                    self.table.add_along_path(leg.path, amount)

    def perturb(self, rng: np.random.Generator, floor: float = None,
                amplitude: float = 0.2, fraction: float = 0.1, boost: float = 3.0) -> None:
        """
        Shake the field out of a local optimum.

        Every entry is scaled by U[1 - amplitude, 1 + amplitude] and clamped to
        floor / 2, then a random `fraction` of the edges is multiplied by
        `boost`.
        """
        floor = self.floor if floor is None else floor
        for arr in self.table.arrays():
            if arr.size == 0:
                continue
            arr *= rng.uniform(1.0 - amplitude, 1.0 + amplitude, size=arr.shape)
            np.maximum(arr, floor / 2.0, out=arr)
            picks = max(1, int(arr.size * fraction))
            flat = rng.choice(arr.size, size=min(picks, arr.size), replace=False)
            arr.flat[flat] *= boost

    def min_value(self) -> float:
        return self.table.min()
