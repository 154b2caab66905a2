"""
Time-aware grid graph of the city.

The static adjacency is a NetworkX grid graph whose nodes are Location
objects tagged with their tank type; blockages are kept alongside and
queried per time instant. Paths use unit step cost and the Manhattan
heuristic: networkx A* when the blocked edges are fixed for the whole query,
a local A* when an edge is blocked or not depending on the arrival time.
"""

import heapq
import logging
from datetime import datetime, timedelta
from itertools import count
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx

from env.types_fleet import Blockage, Location, Tank
from env.utils_fleet import manhattan_distance, point_on_segment, segments_intersect

logger = logging.getLogger(__name__)


class RouteGraph:
    """
    City grid with dynamic blockages.

    Attributes:
        width, height: grid bounds (nodes are 0..width x 0..height)
        graph: undirected NetworkX grid graph keyed by Location
        blockages: every known blockage, active or not
        tanks: depots tagged on the graph
        speed_kmh: speed used to estimate arrival times along a path
    """

    def __init__(
        self,
        width: int,
        height: int,
        blockages: Sequence[Blockage] = (),
        tanks: Sequence[Tank] = (),
        speed_kmh: float = 50.0,
    ):
        self.width = width
        self.height = height
        self.blockages = list(blockages)
        self.tanks = list(tanks)
        self.speed_kmh = speed_kmh

        grid = nx.grid_2d_graph(width + 1, height + 1)
        self.graph = nx.relabel_nodes(grid, lambda n: Location(n[0], n[1]))
        nx.set_node_attributes(self.graph, None, "tank_type")
        for tank in self.tanks:
            if tank.location in self.graph:
                self.graph.nodes[tank.location]["tank_type"] = tank.type

        # Fixed neighbour order: right, left, up, down
        self._neighbors: Dict[Location, List[Location]] = {}
        for node in self.graph.nodes:
            ordered = []
            for dx, dy in ((1, 0), (-1, 0), (0, 1), (0, -1)):
                nb = Location(node.x + dx, node.y + dy)
                if nb in self.graph:
                    ordered.append(nb)
            self._neighbors[node] = ordered

        self._path_cache: Dict[Tuple[Location, Location], List[Location]] = {}

    # ------------------------------------------------------------------
    # Static queries
    # ------------------------------------------------------------------

    def __contains__(self, location: Location) -> bool:
        return location in self.graph

    def neighbors(self, location: Location) -> List[Location]:
        """Up to 4 grid-adjacent locations, fixed at construction."""
        return self._neighbors.get(location, [])

    @staticmethod
    def path_distance(path: Sequence[Location]) -> int:
        return max(0, len(path) - 1)

    # ------------------------------------------------------------------
    # Blockage queries
    # ------------------------------------------------------------------

    def active_blockages(self, when: datetime) -> List[Blockage]:
        return [b for b in self.blockages if b.is_active(when)]

    def blockages_in_window(self, t_start: datetime, t_end: datetime) -> List[Blockage]:
        return [b for b in self.blockages if b.overlaps(t_start, t_end)]

    def is_blocked(self, location: Location, when: datetime) -> bool:
        """True if any blockage active at `when` covers the node."""
        for blockage in self.active_blockages(when):
            for s1, s2 in blockage.segments():
                if point_on_segment(location, s1, s2):
                    return True
        return False

    def is_blocked_edge(self, a: Location, b: Location, when: datetime) -> bool:
        """True if the edge a-b touches a segment of a blockage active at `when`."""
        return self._edge_hits(a, b, self.active_blockages(when))

    @staticmethod
    def _edge_hits(a: Location, b: Location, blockages: Iterable[Blockage]) -> bool:
        for blockage in blockages:
            for s1, s2 in blockage.segments():
                if segments_intersect(a, b, s1, s2):
                    return True
        return False

    def blocked_nodes(self, when: datetime) -> List[Location]:
        """Every in-bounds node lying on a blockage active at `when`."""
        nodes = []
        for blockage in self.active_blockages(when):
            for s1, s2 in blockage.segments():
                for x in range(min(s1.x, s2.x), max(s1.x, s2.x) + 1):
                    for y in range(min(s1.y, s2.y), max(s1.y, s2.y) + 1):
                        loc = Location(x, y)
                        if loc in self.graph and point_on_segment(loc, s1, s2):
                            nodes.append(loc)
        return nodes

    def path_hits_future_blockage(
        self,
        origin: Location,
        destination: Location,
        t_start: datetime,
        t_end: datetime,
    ) -> bool:
        """
        Look-ahead for the decision rule.

        Predicts the A* path from origin at t_start and checks its edges
        against blockages active at sampled instants of [t_start, t_end]. No
        path at all counts as a hit.
        """
        if origin == destination:
            return False
        path = self.find_path(origin, destination, t_start)
        if not path:
            return True
        window = self.blockages_in_window(t_start, t_end)
        if not window:
            return False
        sampled = self._sample_active(window, t_start, t_end)
        return any(
            self._edge_hits(a, b, active)
            for a, b in zip(path, path[1:])
            for active in sampled if active
        )

    # ------------------------------------------------------------------
    # Path finding
    # ------------------------------------------------------------------

    def _arrival(self, start: datetime, steps: int) -> datetime:
        return start + timedelta(hours=steps / self.speed_kmh)

    def _horizon(self, start: datetime) -> datetime:
        # Upper bound on the arrival time of any simple grid path
        return self._arrival(start, self.graph.number_of_nodes())

    def find_path(self, origin: Location, destination: Location, when: datetime) -> List[Location]:
        """
        A* shortest path avoiding blockages active when each edge is reached.

        Args:
            origin: start node
            destination: target node
            when: departure time

        Returns:
            node list from origin to destination, [origin] when they match,
            [] when no path exists
        """
        if origin not in self.graph or destination not in self.graph:
            return []
        if origin == destination:
            return [origin]

        relevant = self.blockages_in_window(when, self._horizon(when))
        if not relevant:
            key = (origin, destination)
            cached = self._path_cache.get(key)
            if cached is None:
                cached = self._nx_path(origin, destination)
                self._path_cache[key] = cached
            return list(cached)

        def blocked(a: Location, b: Location, g: int) -> bool:
            arrival = self._arrival(when, g)
            return self._edge_hits(a, b, [bl for bl in relevant if bl.is_active(arrival)])

        return self._astar(origin, destination, blocked)

    def find_path_avoiding_future_blockages(
        self,
        origin: Location,
        destination: Location,
        t_start: datetime,
        t_end: datetime,
    ) -> List[Location]:
        """
        Path that stays clear of every blockage active at sampled instants of
        [t_start, t_end], not only at the departure time.

        Falls back to find_path when nothing is blocked during the window.
        """
        window = self.blockages_in_window(t_start, t_end)
        if not window:
            return self.find_path(origin, destination, t_start)
        if origin not in self.graph or destination not in self.graph:
            return []
        if origin == destination:
            return [origin]

        sampled = self._sample_active(window, t_start, t_end)

        def blocked(a: Location, b: Location) -> bool:
            return any(self._edge_hits(a, b, active) for active in sampled if active)

        return self._nx_path(origin, destination, blocked)

    @staticmethod
    def _sample_active(window: Sequence[Blockage], t_start: datetime, t_end: datetime) -> List[List[Blockage]]:
        # 2 to 5 instants spread evenly over the window
        hours = max(0.0, (t_end - t_start).total_seconds() / 3600.0)
        samples = min(5, max(2, int(hours)))
        step = (t_end - t_start) / (samples - 1)
        instants = [t_start + step * i for i in range(samples)]
        return [[b for b in window if b.is_active(t)] for t in instants]

    def _nx_path(self, origin: Location, destination: Location, blocked=None) -> List[Location]:
        """networkx A* over the static grid; edges for which `blocked` holds are hidden."""
        def weight(a: Location, b: Location, _attrs) -> Optional[int]:
            if blocked is not None and blocked(a, b):
                return None
            return 1

        try:
            return nx.astar_path(self.graph, origin, destination,
                                 heuristic=manhattan_distance, weight=weight)
        except nx.NetworkXNoPath:
            return []

    def _astar(self, origin: Location, destination: Location, blocked) -> List[Location]:
        # heap entries: (f, enqueue counter, node, g, parent); the counter
        # keeps equal-f ties in insertion order
        c = count()
        queue = [(manhattan_distance(origin, destination), next(c), origin, 0, None)]
        enqueued: Dict[Location, int] = {origin: 0}
        explored: Dict[Location, Optional[Location]] = {}

        while queue:
            _, __, node, g, parent = heapq.heappop(queue)
            if node in explored:
                continue
            explored[node] = parent

            if node == destination:
                path = [node]
                step = parent
                while step is not None:
                    path.append(step)
                    step = explored[step]
                path.reverse()
                return path

            for nb in self._neighbors[node]:
                if nb in explored:
                    continue
                ng = g + 1
                if nb in enqueued and enqueued[nb] <= ng:
                    continue
                if blocked(node, nb, g):
                    continue
                enqueued[nb] = ng
                heapq.heappush(queue, (ng + manhattan_distance(nb, destination), next(c), nb, ng, node))

        return []
