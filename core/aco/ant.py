"""
Route builder ("ant"): constructs one complete candidate Solution.

Construction steps:
1. Shuffle orders and vehicles with the builder's own seeded generator
2. Cluster orders by proximity
3. Sort clusters by their most urgent order
4. Pick the best-fitting vehicle for each cluster
5. Sequence the cluster with the ACO decision rule, inserting refuel
   detours whenever the next leg would eat into the fuel safety margin
6. Close each route with a return leg to the nearest reachable depot

Builders only read the shared fields and work on private copies of vehicles
and tanks, so any number of them can run side by side.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from configs.config import AcoParameters
from core.aco.heuristic import HeuristicField
from core.aco.pheromone import PheromoneField
from core.aco.tanks import reserve, select_refuel_tank
from env.route_graph import RouteGraph
from env.types_fleet import (LegKind, Location, Order, RouteLeg, Solution, Tank,
                             Vehicle, VehicleAssignment)
from env.utils_fleet import build_distance_matrix, fuel_consumption, manhattan_distance, urgency

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """
    Read-only inputs shared by every builder of one iteration.

    Attributes:
        graph: city graph with blockages
        pheromone, heuristic: field snapshots for this iteration
        orders: pending orders to plan
        vehicles: available vehicles, prioritised by the orchestrator
        tanks: tank snapshot; builders copy it again before use
        now: planning time
        window_end: end of the current planning window (blockage look-ahead)
    """
    graph: RouteGraph
    pheromone: PheromoneField
    heuristic: HeuristicField
    orders: List[Order]
    vehicles: List[Vehicle]
    tanks: List[Tank]
    now: datetime
    window_end: datetime


@dataclass
class _RouteState:
    location: Location
    time: datetime
    fuel: float
    load: float


class RouteBuilder:
    """One ant. Stateless between builds apart from its id."""

    def __init__(self, ant_id: int, params: AcoParameters):
        self.ant_id = ant_id
        self.params = params

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def build(self, ctx: BuildContext, seed: int) -> Solution:
        """
        Construct one candidate solution.

        Args:
            ctx: shared read-only inputs
            seed: seed for this build's random generator

        Returns:
            Solution with assignments, unassigned orders and the tank
            reservations made on the private snapshot
        """
        rng = np.random.default_rng(seed)
        solution = Solution()
        tanks = [t.clone() for t in ctx.tanks]
        vehicles = [v.clone() for v in ctx.vehicles]

        if not vehicles:
            solution.unassigned = list(ctx.orders)
            return solution

        max_capacity = max(v.capacity for v in vehicles)
        orders: List[Order] = []
        for order in ctx.orders:
            orders.extend(order.split(max_capacity))

        orders = [orders[i] for i in rng.permutation(len(orders))]
        vehicles = [vehicles[i] for i in rng.permutation(len(vehicles))]

        clusters = self.cluster_orders(orders, rng)
        clusters.sort(key=lambda group: max(urgency(o, ctx.now) for o in group), reverse=True)

        free = list(vehicles)
        for group in clusters:
            volume = sum(o.volume for o in group)
            vehicle = self.select_vehicle(free, volume)
            if vehicle is None:
                solution.unassigned.extend(group)
                continue
            try:
                assignment, dropped = self.route_cluster(vehicle, group, ctx, tanks, rng, solution)
            except Exception as exc:
                logger.warning("Ant %d: routing %s with %s failed (%s); orders left unassigned",
                               self.ant_id, [o.id for o in group], vehicle.id, exc)
                self._release(vehicle, tanks, solution)
                solution.unassigned.extend(group)
                continue
            solution.unassigned.extend(dropped)
            if assignment.orders:
                free.remove(vehicle)
                solution.assignments.append(assignment)
            else:
                self._release(vehicle, tanks, solution)

        return solution

    @staticmethod
    def _release(vehicle: Vehicle, tanks: Sequence[Tank], solution: Solution) -> None:
        """Drop reservations of a vehicle whose route ended up empty."""
        for tank in tanks:
            tank.reservations = [r for r in tank.reservations if r.vehicle_id != vehicle.id]
        for tank_id in list(solution.reservations):
            kept = [r for r in solution.reservations[tank_id] if r.vehicle_id != vehicle.id]
            if kept:
                solution.reservations[tank_id] = kept
            else:
                del solution.reservations[tank_id]

    # ------------------------------------------------------------------
    # Clustering and vehicle choice
    # ------------------------------------------------------------------

    def cluster_orders(self, orders: Sequence[Order], rng: np.random.Generator) -> List[List[Order]]:
        """
        Greedy proximity clustering.

        Each unclustered order seeds a group which absorbs its nearest
        unclustered neighbours within a randomised threshold, up to
        max_group_size orders and max_group_volume m3.
        """
        p = self.params
        threshold = p.proximity_threshold * (0.9 + 0.2 * rng.random())
        dist = build_distance_matrix([o.destination for o in orders])
        clustered = np.zeros(len(orders), dtype=bool)
        clusters = []

        for i, seed_order in enumerate(orders):
            if clustered[i]:
                continue
            clustered[i] = True
            group = [seed_order]
            volume = seed_order.volume

            nearby = [j for j in range(len(orders)) if not clustered[j] and dist[i, j] <= threshold]
            nearby.sort(key=lambda j: dist[i, j])
            for j in nearby:
                if len(group) >= p.max_group_size:
                    break
                if volume + orders[j].volume > p.max_group_volume:
                    continue
                group.append(orders[j])
                volume += orders[j].volume
                clustered[j] = True
            clusters.append(group)

        return clusters

    @staticmethod
    def select_vehicle(vehicles: Sequence[Vehicle], volume: float) -> Optional[Vehicle]:
        """
        Best fit: smallest capacity / volume ratio, discounted for vehicles
        carrying less fuel.
        """
        best = None
        best_score = float("inf")
        for vehicle in vehicles:
            if vehicle.capacity < volume:
                continue
            ratio = vehicle.capacity / volume if volume > 0 else vehicle.capacity
            fuel_factor = 1.0 + (vehicle.fuel_capacity - vehicle.fuel) / vehicle.fuel_capacity
            score = ratio / fuel_factor
            if score < best_score:
                best_score = score
                best = vehicle
        return best

    # ------------------------------------------------------------------
    # Decision rule
    # ------------------------------------------------------------------

    def _attractiveness(self, ctx: BuildContext, a: Location, b: Location) -> float:
        p = self.params
        return (ctx.pheromone.corridor_mean(a, b) ** p.alpha) * (ctx.heuristic.score(a, b) ** p.beta)

    def choose_next(
        self,
        current: Location,
        candidates: Sequence[Order],
        when: datetime,
        ctx: BuildContext,
        rng: np.random.Generator,
    ) -> Order:
        """
        Pick the next order with the pseudo-random proportional rule.

        Scores are pheromone^alpha * heuristic^beta * (1 + urgency * factor),
        cut to 10% when the predicted path to the order runs into a blockage
        before the planning window closes (or there is no path), then blended
        70/30 with the best score reachable from that order.
        """
        p = self.params
        if len(candidates) == 1:
            return candidates[0]

        scores = self.candidate_scores(current, candidates, when, ctx)
        if rng.random() < p.q0:
            return candidates[int(np.argmax(scores))]

        total = scores.sum()
        if not np.isfinite(total) or total <= 0:
            return candidates[int(rng.integers(len(candidates)))]
        return candidates[int(rng.choice(len(candidates), p=scores / total))]

    def candidate_scores(
        self,
        current: Location,
        candidates: Sequence[Order],
        when: datetime,
        ctx: BuildContext,
    ) -> np.ndarray:
        p = self.params
        horizon = max(ctx.window_end, when)
        scores = np.zeros(len(candidates))
        for i, order in enumerate(candidates):
            base = self._attractiveness(ctx, current, order.destination)
            base *= 1.0 + urgency(order, when) * p.urgency_factor
            if ctx.graph.path_hits_future_blockage(current, order.destination, when, horizon):
                base *= p.blockage_lookahead_penalty
            best_next = max(
                (self._attractiveness(ctx, order.destination, other.destination)
                 for other in candidates if other is not order),
                default=0.0,
            )
            scores[i] = (1.0 - p.lookahead_weight) * base + p.lookahead_weight * best_next
        return scores

    # ------------------------------------------------------------------
    # Route threading
    # ------------------------------------------------------------------

    def _travel_hours(self, distance: float) -> float:
        return distance / self.params.speed_kmh

    def _nearest_depot_distance(self, location: Location, tanks: Sequence[Tank]) -> int:
        return min((manhattan_distance(location, t.location) for t in tanks), default=0)

    def _fuel_ok(self, state: _RouteState, target: Location, weight: float, tanks: Sequence[Tank]) -> bool:
        p = self.params
        distance = manhattan_distance(state.location, target) + self._nearest_depot_distance(target, tanks)
        needed = fuel_consumption(distance, weight, p.fuel_efficiency)
        return needed <= p.fuel_safety_margin * state.fuel

    def route_cluster(
        self,
        vehicle: Vehicle,
        group: Sequence[Order],
        ctx: BuildContext,
        tanks: List[Tank],
        rng: np.random.Generator,
        solution: Solution,
    ) -> Tuple[VehicleAssignment, List[Order]]:
        """
        Thread a fuel-feasible route through a cluster, sequencing it with the
        decision rule.

        Returns:
            (assignment, orders dropped because they could not be reached)
        """
        def pick(state: _RouteState, remaining: List[Order]) -> Order:
            return self.choose_next(state.location, remaining, state.time, ctx, rng)

        return self._thread(vehicle, group, ctx, tanks, solution, pick)

    def route_sequence(
        self,
        vehicle: Vehicle,
        sequence: Sequence[Order],
        ctx: BuildContext,
        tanks: List[Tank],
        solution: Solution,
    ) -> Tuple[VehicleAssignment, List[Order]]:
        """Thread a route visiting `sequence` in the given order."""
        return self._thread(vehicle, sequence, ctx, tanks, solution, lambda state, remaining: remaining[0])

    def _thread(
        self,
        vehicle: Vehicle,
        group: Sequence[Order],
        ctx: BuildContext,
        tanks: List[Tank],
        solution: Solution,
        pick: Callable[[_RouteState, List[Order]], Order],
    ) -> Tuple[VehicleAssignment, List[Order]]:
        p = self.params
        assignment = VehicleAssignment(vehicle=vehicle)
        dropped: List[Order] = []
        state = _RouteState(vehicle.position, ctx.now, vehicle.fuel, sum(o.volume for o in group))
        remaining = list(group)

        while remaining:
            order = pick(state, remaining)
            remaining.remove(order)
            weight = vehicle.combined_weight(state.load)

            if not self._fuel_ok(state, order.destination, weight, tanks):
                upcoming = [order.destination] + [o.destination for o in remaining]
                if not self._refuel(vehicle, state, upcoming, weight, ctx, tanks, assignment, solution) \
                        or not self._fuel_ok(state, order.destination, weight, tanks):
                    dropped.append(order)
                    state.load -= order.volume
                    continue

            horizon = max(ctx.window_end, state.time)
            path = (ctx.graph.find_path_avoiding_future_blockages(state.location, order.destination,
                                                                  state.time, horizon)
                    or ctx.graph.find_path(state.location, order.destination, state.time))
            if not path:
                dropped.append(order)
                state.load -= order.volume
                continue
            distance = RouteGraph.path_distance(path)
            used = fuel_consumption(distance, weight, p.fuel_efficiency)
            if used > state.fuel:
                dropped.append(order)
                state.load -= order.volume
                continue

            state.fuel -= used
            state.time += timedelta(hours=self._travel_hours(distance), minutes=p.unload_min)
            state.load -= order.volume
            state.location = order.destination
            assignment.fuel_used += used
            assignment.orders.append(order)
            assignment.legs.append(RouteLeg(path[0], path[-1], distance, LegKind.DELIVERY,
                                            order_id=order.id, path=tuple(path)))
            assignment.fuel_levels.append(state.fuel)

        if assignment.orders:
            self._return_leg(vehicle, state, ctx, tanks, assignment)
        return assignment, dropped

    def _refuel(
        self,
        vehicle: Vehicle,
        state: _RouteState,
        upcoming: Sequence[Location],
        weight: float,
        ctx: BuildContext,
        tanks: List[Tank],
        assignment: VehicleAssignment,
        solution: Solution,
    ) -> bool:
        """Detour to the best tank and fill up; False when no tank is reachable."""
        p = self.params
        refill = vehicle.fuel_capacity - state.fuel
        candidates = list(tanks)
        while candidates:
            tank = select_refuel_tank(candidates, state.location, upcoming, state.fuel, refill, weight,
                                      state.time, p.tank_priority_factor, p.fuel_efficiency)
            if tank is None:
                return False
            candidates.remove(tank)
            path = ctx.graph.find_path(state.location, tank.location, state.time)
            if not path:
                continue
            distance = RouteGraph.path_distance(path)
            used = fuel_consumption(distance, weight, p.fuel_efficiency)
            if used > state.fuel:
                continue
            # Top-up is measured after the detour has been driven
            amount = vehicle.fuel_capacity - (state.fuel - used)
            if not tank.is_central() and tank.real_availability() < amount:
                continue

            state.fuel -= used
            assignment.fuel_used += used
            state.time += timedelta(hours=self._travel_hours(distance), minutes=p.unload_min)
            state.location = tank.location
            reservation = reserve(tank, vehicle.id, amount, state.time)
            solution.reservations.setdefault(tank.id, []).append(reservation)
            state.fuel = vehicle.fuel_capacity
            assignment.legs.append(RouteLeg(path[0], path[-1], distance, LegKind.REFUEL,
                                            tank_id=tank.id, path=tuple(path)))
            assignment.fuel_levels.append(state.fuel)
            return True
        return False

    def _return_leg(
        self,
        vehicle: Vehicle,
        state: _RouteState,
        ctx: BuildContext,
        tanks: Sequence[Tank],
        assignment: VehicleAssignment,
    ) -> None:
        # Any depot counts; nearest first, skipping ones that cannot be reached
        p = self.params
        weight = vehicle.combined_weight(max(0.0, state.load))
        for tank in sorted(tanks, key=lambda t: manhattan_distance(state.location, t.location)):
            path = ctx.graph.find_path(state.location, tank.location, state.time)
            if not path:
                continue
            distance = RouteGraph.path_distance(path)
            used = fuel_consumption(distance, weight, p.fuel_efficiency)
            if used > state.fuel:
                continue
            state.fuel -= used
            assignment.fuel_used += used
            state.time += timedelta(hours=self._travel_hours(distance))
            state.location = tank.location
            assignment.legs.append(RouteLeg(path[0], path[-1], distance, LegKind.RETURN,
                                            tank_id=tank.id, path=tuple(path)))
            assignment.fuel_levels.append(state.fuel)
            return
        logger.warning("Ant %d: %s has no reachable depot after its last delivery, route left open",
                       self.ant_id, vehicle.id)
