"""
Heuristic field: per-edge "obvious goodness" recomputed every iteration.

value = base x blockage x urgency x tank priority x empty-leg

- base: inverse Manhattan distance (1 for every grid edge)
- blockage: edges touching an active blockage get a near-zero multiplier
- urgency: edges near an order above the urgency threshold are boosted
- tank priority: edges near an intermediate tank with spare volume are boosted
- empty-leg: the corridor between two nearby orders is boosted by closeness
  and combined urgency

Each boost keeps the strongest source per edge rather than compounding them.
"""

import logging
from datetime import datetime
from typing import Sequence

import numpy as np

from configs.config import AcoParameters
from core.aco.edge_table import EdgeTable
from env.route_graph import RouteGraph
from env.types_fleet import Location, Order, Tank
from env.utils_fleet import build_distance_matrix, manhattan_distance, urgency

logger = logging.getLogger(__name__)


class HeuristicField:

    def __init__(self, width: int, height: int, params: AcoParameters):
        self.params = params
        self.table = EdgeTable(width, height, 1.0)
        (self._hx, self._hy), (self._vx, self._vy) = self.table.edge_midpoints()

    def get(self, a: Location, b: Location) -> float:
        return self.table.get(a, b)

    def score(self, a: Location, b: Location) -> float:
        """Desirability of moving from a to b: corridor multiplier / distance."""
        if a == b:
            return 1.0
        return self.table.corridor_mean(a, b) / manhattan_distance(a, b)

    def _radius_mask(self, center: Location, radius: float):
        h = (np.abs(self._hx - center.x) + np.abs(self._hy - center.y)) <= radius
        v = (np.abs(self._vx - center.x) + np.abs(self._vy - center.y)) <= radius
        return h, v

    def refresh(self, graph: RouteGraph, orders: Sequence[Order], tanks: Sequence[Tank], now: datetime) -> None:
        """Recompute the whole field from the current operational state."""
        p = self.params
        self.table.fill(1.0)

        # (1) blockage suppression
        blocked = graph.blocked_nodes(now)
        for a, b in self.table.edges_touching(blocked):
            self.table.set(a, b, p.blocked_multiplier)

        # (2) urgency amplification
        urgent = EdgeTable(self.table.width, self.table.height, 1.0)
        urgencies = {o.id: urgency(o, now) for o in orders}
        for order in orders:
            u = urgencies[order.id]
            if u <= p.urgency_threshold:
                continue
            h, v = self._radius_mask(order.destination, p.urgency_radius)
            factor = 1.0 + u * p.urgency_factor
            urgent.horizontal[h] = np.maximum(urgent.horizontal[h], factor)
            urgent.vertical[v] = np.maximum(urgent.vertical[v], factor)

        # (3) tank priority
        tank_boost = EdgeTable(self.table.width, self.table.height, 1.0)
        for tank in tanks:
            if tank.is_central() or tank.real_availability() < p.min_refuel_capacity:
                continue
            h, v = self._radius_mask(tank.location, p.tank_radius)
            factor = 1.0 + (tank.real_availability() / tank.capacity) * p.tank_priority_factor
            tank_boost.horizontal[h] = np.maximum(tank_boost.horizontal[h], factor)
            tank_boost.vertical[v] = np.maximum(tank_boost.vertical[v], factor)

        # (4) empty-leg minimisation
        chain = EdgeTable(self.table.width, self.table.height, 1.0)
        if len(orders) > 1:
            dist = build_distance_matrix([o.destination for o in orders])
            threshold = p.proximity_threshold
            for i in range(len(orders)):
                for j in range(i + 1, len(orders)):
                    d = dist[i, j]
                    if d == 0 or d >= threshold:
                        continue
                    closeness = 1.0 + (threshold - d) / threshold
                    avg_urgency = (urgencies[orders[i].id] + urgencies[orders[j].id]) / 2.0
                    factor = 1.0 + closeness * (1.0 + avg_urgency)
                    a, b = orders[i].destination, orders[j].destination
                    x_first = abs(a.x - b.x) >= abs(a.y - b.y)
                    chain.corridor_scale_max(a, b, factor, x_first)

        for target, sources in zip(self.table.arrays(), zip(urgent.arrays(), tank_boost.arrays(), chain.arrays())):
            for src in sources:
                target *= src
            np.maximum(target, p.heuristic_floor, out=target)

        logger.debug("Heuristic refreshed: %d blocked nodes, range [%.4g, %.4g]",
                     len(blocked), self.table.min(), self.table.max())
