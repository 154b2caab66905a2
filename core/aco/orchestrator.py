"""
The ACO loop.

Each iteration:
1. Adapt replanning frequency, colony size and q0 to recent order density
2. Apply dynamic events (blockages, maintenance, breakdowns, daily refill)
3. Refresh the heuristic field and run the colony on private snapshots
4. Score candidates, polish a share of them with local search and keep
   the best solution seen so far
5. Evaporate and reinforce pheromone, reconcile tank reservations
6. Perturb on stagnation, stop on convergence, collapse or the iteration cap
7. Advance simulated time

Terminal states: CONVERGED, COLLAPSED_ABORTED, MAX_ITERATIONS_REACHED and
STOPPED (external stop signal at an iteration boundary).
The best plan gets a final, more intensive local search pass.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

import numpy as np

from configs.config import AcoParameters
from core.aco.ant import BuildContext
from core.aco.collapse import CollapseDetector, operational_indicator
from core.aco.colony import Colony
from core.aco.evaluator import SolutionEvaluator
from core.aco.heuristic import HeuristicField
from core.aco.local_search import LocalSearch
from core.aco.pheromone import PheromoneField
from core.aco.tanks import TankManager
from core.utils.validation import ValidationReport, validate_city_map
from env.route_graph import RouteGraph
from env.types_fleet import (CityMap, MaintenanceWindow, Order, OrderState, Solution,
                             Tank, Vehicle, VehicleAssignment, VehicleState)

logger = logging.getLogger(__name__)

DENSITY_LOOKBACK_H = 4


class RunState(Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    COLLAPSED_ABORTED = "collapsed_aborted"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    STOPPED = "stopped"


@dataclass
class RunResult:
    """
    Outcome of one planning run.

    Attributes:
        best: best solution found
        state: terminal state
        iterations: completed iterations
        history: one telemetry record per iteration
        orders: working copies of the orders with their final states
        tanks: tank state after reconciling the best plan
        validation: input validation report
    """
    best: Solution
    state: RunState
    iterations: int
    history: List[Dict[str, Any]] = field(default_factory=list)
    orders: List[Order] = field(default_factory=list)
    tanks: List[Tank] = field(default_factory=list)
    validation: Optional[ValidationReport] = None


class AcoOrchestrator:
    """
    Owns all mutable run state: vehicles, tanks, fields and the clock.

    Args:
        city: input feed
        params: search parameters, validated on construction
        on_iteration: optional telemetry sink, called with each history record
        stop_event: optional external stop signal checked between iterations
    """

    def __init__(
        self,
        city: CityMap,
        params: AcoParameters,
        on_iteration: Optional[Callable[[Dict[str, Any]], None]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.params = params.validate()
        self.on_iteration = on_iteration
        self.stop_event = stop_event

        self.validation = validate_city_map(city, params)
        self.orders = [copy.copy(o) for o in self.validation.orders]
        self.vehicles = [v.clone() for v in self.validation.vehicles]
        self.breakdowns = sorted(city.breakdowns, key=lambda b: b.at)
        self.maintenance: Dict[str, List[MaintenanceWindow]] = {}
        for window in city.maintenance:
            self.maintenance.setdefault(window.vehicle_id, []).append(window)

        self.graph = RouteGraph(city.width, city.height, self.validation.blockages, city.tanks, params.speed_kmh)
        self.pheromone = PheromoneField(city.width, city.height, params.initial_pheromone,
                                        params.pheromone_floor, params.deposit_factor)
        self.heuristic = HeuristicField(city.width, city.height, params)
        self.tanks = TankManager(city.tanks, params.exhaustion_alert_days)
        self.evaluator = SolutionEvaluator(self.graph, params, city.maintenance)
        self.colony = Colony(params)
        self.collapse = CollapseDetector(params.collapse_threshold, params.collapse_patience)
        self.local_search = LocalSearch(params, self.evaluator)
        self.rng = np.random.default_rng(params.seed)

        self.now = city.start_time
        self.last_replan = city.start_time
        self.replan_minutes = params.replanning_base_min
        self.state = RunState.RUNNING
        self.best: Optional[Solution] = None
        self.best_iteration = -1
        self.perturbations = 0
        self._best_ctx: Optional[BuildContext] = None
        self.history: List[Dict[str, Any]] = []

        self._day = city.start_time.date()
        self._active_blockages: Set[int] = set()
        self._applied_breakdowns: Set[int] = set()
        self._low_tanks: Set[str] = set()
        self._exhaustion_alerts: Set[str] = set()

    # ------------------------------------------------------------------
    # Time and events
    # ------------------------------------------------------------------

    def order_density(self) -> float:
        """Orders per hour registered over the last few hours."""
        since = self.now - timedelta(hours=DENSITY_LOOKBACK_H)
        recent = sum(1 for o in self.orders if since < o.registered_at <= self.now)
        return recent / DENSITY_LOOKBACK_H

    def replanning_tier(self, density: float):
        """(interval minutes, ant multiplier, q0 shift) for an order density."""
        if density > 15:
            return 15, 1.5, -0.15
        if density > 10:
            return 30, 1.25, -0.10
        if density > 5:
            return 45, 1.0, 0.0
        return self.params.replanning_base_min, 0.75, 0.03

    def _maybe_replan(self) -> None:
        if self.now - self.last_replan < timedelta(minutes=self.replan_minutes):
            return
        self.last_replan = self.now
        density = self.order_density()
        minutes, ant_factor, q0_shift = self.replanning_tier(density)
        ants = max(1, int(round(self.params.ants * ant_factor)))
        q0 = float(np.clip(self.params.q0 + q0_shift, 0.0, 1.0))
        self.replan_minutes = minutes
        self.colony.configure(replace(self.params, q0=q0), ants)
        logger.info("Replanning at %s: %.1f orders/h -> every %d min, %d ants, q0=%.2f",
                    self.now, density, minutes, ants, q0)

    def _apply_events(self) -> None:
        # Blockage activation is time-queried by the graph; only report changes
        active = {i for i, b in enumerate(self.graph.blockages) if b.is_active(self.now)}
        for i in sorted(active - self._active_blockages):
            logger.info("Blockage %d active until %s", i, self.graph.blockages[i].end)
        for i in sorted(self._active_blockages - active):
            logger.info("Blockage %d lifted", i)
        self._active_blockages = active

        by_id = {v.id: v for v in self.vehicles}
        for idx, breakdown in enumerate(self.breakdowns):
            if idx in self._applied_breakdowns or breakdown.at > self.now:
                continue
            self._applied_breakdowns.add(idx)
            vehicle = by_id.get(breakdown.vehicle_id)
            if vehicle is None or self.now >= breakdown.repaired_at():
                continue
            vehicle.state = VehicleState.BROKEN
            vehicle.available_from = breakdown.repaired_at()
            logger.warning("Vehicle %s broke down (%s), out until %s",
                           vehicle.id, breakdown.kind.value, vehicle.available_from)

        for vehicle in self.vehicles:
            if vehicle.state == VehicleState.BROKEN:
                if vehicle.available_from is not None and self.now >= vehicle.available_from:
                    vehicle.state = VehicleState.AVAILABLE
                    vehicle.available_from = None
                    logger.info("Vehicle %s repaired", vehicle.id)
                continue
            in_window = any(w.start <= self.now < w.end for w in self.maintenance.get(vehicle.id, []))
            if in_window and vehicle.state == VehicleState.AVAILABLE:
                vehicle.state = VehicleState.UNDER_MAINTENANCE
            elif not in_window and vehicle.state == VehicleState.UNDER_MAINTENANCE:
                vehicle.state = VehicleState.AVAILABLE

        if self.now.date() != self._day:
            self._day = self.now.date()
            self.tanks.refill_intermediate()

        low = {t.id for t in self.tanks.low_tanks(self.params.critical_tank_level)}
        for tank_id in sorted(low - self._low_tanks):
            logger.warning("Tank %s below %.0f m3", tank_id, self.params.critical_tank_level)
        self._low_tanks = low

        alerts = {t.id for t in self.tanks.exhaustion_alerts(self.now)}
        for tank_id in sorted(alerts - self._exhaustion_alerts):
            logger.warning("Tank %s expected to run dry within %.1f days", tank_id, self.tanks.alert_days)
        self._exhaustion_alerts = alerts

    def pending_orders(self) -> List[Order]:
        """Every valid order still to plan, whether or not it has registered yet."""
        return [o for o in self.orders if o.state == OrderState.PENDING]

    def available_vehicles(self) -> List[Vehicle]:
        """Available vehicles, lowest fuel first."""
        return sorted((v for v in self.vehicles if v.is_available()), key=lambda v: v.fuel)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def step(self, iteration: int) -> List[Solution]:
        """Run one build + update cycle and return its scored candidates."""
        p = self.params
        self._maybe_replan()
        self._apply_events()

        pending = self.pending_orders()
        vehicles = self.available_vehicles()
        tanks = self.tanks.snapshot()
        self.heuristic.refresh(self.graph, pending, tanks, self.now)

        ctx = BuildContext(
            graph=self.graph,
            pheromone=self.pheromone,
            heuristic=self.heuristic,
            orders=pending,
            vehicles=vehicles,
            tanks=tanks,
            now=self.now,
            window_end=self.now + timedelta(minutes=self.replan_minutes),
        )
        seeds = self.rng.integers(0, 2 ** 31 - 1, size=len(self.colony))
        candidates = self.colony.run(ctx, seeds)

        # Every builder has returned: single-writer update phase
        for candidate in candidates:
            self.evaluator.score(candidate, self.now)
        if p.local_search_rate > 0:
            for i, candidate in enumerate(candidates):
                if self.rng.random() < p.local_search_rate:
                    candidates[i] = self.local_search.improve(candidate, ctx)
        iteration_best = max(candidates, key=lambda s: s.quality)

        improved = self.best is None or iteration_best.quality > self.best.quality
        if improved:
            self.best = iteration_best.clone()
            self.best_iteration = iteration
            self._best_ctx = ctx
            self.tanks.reconcile(self.best)

        self.pheromone.evaporate(p.evaporation)
        self.pheromone.reinforce(candidates)

        stress = operational_indicator(self.vehicles, pending, self.now)
        if stress >= 0.6:
            logger.warning("Operational stress indicator at %.1f", stress)

        record = {
            "iteration": iteration,
            "time": self.now.isoformat(),
            "best_quality": self.best.quality,
            "iteration_quality": iteration_best.quality,
            "assigned": self.best.assigned_count(),
            "unassigned": len(self.best.unassigned),
            "distance": self.best.total_distance(),
            "fuel": self.best.total_fuel(),
            "pending": len(pending),
            "vehicles_available": len(vehicles),
            "ants": len(self.colony),
            "q0": self.colony.params.q0,
            "replan_minutes": self.replan_minutes,
            "unassigned_ratio": self.collapse.unassigned_ratio(candidates, len(pending)),
            "stress": stress,
        }
        self.history.append(record)
        if self.on_iteration is not None:
            self.on_iteration(record)
        logger.debug("Iteration %d: best %.6g, iteration best %.6g", iteration,
                     self.best.quality, iteration_best.quality)
        return candidates

    def run(self) -> RunResult:
        """Drive iterations until a terminal state is reached."""
        p = self.params
        stagnant = 0
        completed = 0
        self.state = RunState.RUNNING

        for iteration in range(p.iterations):
            if self.stop_event is not None and self.stop_event.is_set():
                self.state = RunState.STOPPED
                break

            candidates = self.step(iteration)
            completed += 1
            stagnant = 0 if self.best_iteration == iteration else stagnant + 1

            if stagnant >= p.stagnation_limit:
                if iteration < p.iterations * p.early_convergence_fraction:
                    logger.info("No improvement for %d iterations, perturbing pheromone", stagnant)
                    self.pheromone.perturb(self.rng, p.pheromone_floor, p.perturb_amplitude,
                                           p.perturb_fraction, p.perturb_boost)
                    self.perturbations += 1
                    stagnant = 0
                else:
                    self.state = RunState.CONVERGED
                    break

            if self.collapse.observe(candidates, len(self.pending_orders())):
                logger.warning("Collapse: %.0f%% of orders unassigned for %d iterations",
                               100 * self.collapse.last_ratio, self.collapse.streak)
                self.state = RunState.COLLAPSED_ABORTED
                break

            self.now += timedelta(minutes=p.time_step_min)
        else:
            self.state = RunState.MAX_ITERATIONS_REACHED

        if self.best is None:
            self.best = Solution(unassigned=self.pending_orders())
            self.evaluator.score(self.best, self.now)
        elif p.local_search_final_rounds > 0:
            self._polish_best()
        self._settle_orders()

        logger.info("Run finished: %s after %d iterations, best quality %.6g",
                    self.state.value, completed, self.best.quality)
        return RunResult(
            best=self.best,
            state=self.state,
            iterations=completed,
            history=self.history,
            orders=self.orders,
            tanks=list(self.tanks.tanks.values()),
            validation=self.validation,
        )

    def _polish_best(self) -> None:
        """Intensive local search on the final best plan, in the context it was built in."""
        rounds = self.params.local_search_final_rounds
        polished = self.local_search.improve(self.best, self._best_ctx, rounds)
        if polished is self.best:
            return
        logger.info("Final local search: quality %.6g -> %.6g", self.best.quality, polished.quality)
        self.best = polished
        self.tanks.reconcile(self.best)

    def _settle_orders(self) -> None:
        assigned = {o.parent_id or o.id for o in self.best.assigned_orders()}
        unassigned = {o.parent_id or o.id for o in self.best.unassigned}
        for order in self.orders:
            if order.id in unassigned:
                order.state = OrderState.UNASSIGNABLE
            elif order.id in assigned:
                order.state = OrderState.ASSIGNED


def run(city: CityMap, params: Optional[AcoParameters] = None,
        on_iteration: Optional[Callable[[Dict[str, Any]], None]] = None) -> List[VehicleAssignment]:
    """
    Plan deliveries for `city`.

    Args:
        city: orders, fleet, tanks, blockages, breakdowns and start time
        params: search parameters; defaults when omitted
        on_iteration: optional telemetry sink

    Returns:
        vehicle assignments of the best solution found
    """
    result = AcoOrchestrator(city, params or AcoParameters(), on_iteration).run()
    return result.best.assignments
