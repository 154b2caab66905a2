"""
Baseline planner for LPG dispatch.

Implements a greedy nearest-order heuristic for benchmarking against the
ant colony search. It shares the graph, fuel model and evaluator with the
ACO engine but makes every choice deterministically.
"""

from datetime import timedelta
from typing import Any, Dict, List

from configs.config import AcoParameters
from core.aco.evaluator import SolutionEvaluator
from core.aco.orchestrator import RunResult, RunState
from core.utils.validation import validate_city_map
from env.route_graph import RouteGraph
from env.types_fleet import (CityMap, LegKind, Order, OrderState, RouteLeg, Solution,
                             VehicleAssignment)
from env.utils_fleet import fuel_consumption, manhattan_distance, sort_by_urgency


def greedy_nearest_order_plan(city: CityMap, params: AcoParameters) -> Solution:
    """
    Greedy policy: each vehicle repeatedly drives to the nearest order it can
    still carry and safely reach.

    Vehicles are taken largest first and load the most urgent orders that
    fit; deliveries are then made nearest first. An order is feasible for a vehicle when
    it fits the remaining capacity, a path exists, and the fuel for the leg
    plus the way back to the nearest depot stays within the safety margin.
    After its last delivery the vehicle returns to the nearest depot.

    Args:
        city: input feed
        params: cost and speed parameters

    Returns:
        Scored Solution
    """
    report = validate_city_map(city, params)
    graph = RouteGraph(city.width, city.height, report.blockages, city.tanks, params.speed_kmh)
    evaluator = SolutionEvaluator(graph, params, city.maintenance)
    now = city.start_time
    depots = [t.location for t in city.tanks]

    remaining: List[Order] = list(report.orders)
    solution = Solution()

    for vehicle in sorted((v.clone() for v in report.vehicles if v.is_available()),
                          key=lambda v: -v.capacity):
        assignment = VehicleAssignment(vehicle=vehicle)
        position, time, fuel = vehicle.position, now, vehicle.fuel
        free = vehicle.capacity
        load = 0.0
        candidates = [o for o in remaining if o.volume <= free]

        # Loading decision first: most urgent orders go on board first
        chosen: List[Order] = []
        for order in sort_by_urgency(candidates, now):
            if order.volume <= free:
                chosen.append(order)
                free -= order.volume
                load += order.volume

        while chosen:
            order = min(chosen, key=lambda o: manhattan_distance(position, o.destination))
            chosen.remove(order)
            weight = vehicle.combined_weight(load)
            back = min(manhattan_distance(order.destination, d) for d in depots)
            needed = fuel_consumption(manhattan_distance(position, order.destination) + back,
                                      weight, params.fuel_efficiency)
            path = graph.find_path(position, order.destination, time)
            # Skipped orders stay on board until the truck is back at a depot
            if not path or needed > params.fuel_safety_margin * fuel:
                continue
            distance = RouteGraph.path_distance(path)
            used = fuel_consumption(distance, weight, params.fuel_efficiency)
            if used > fuel:
                continue
            fuel -= used
            load -= order.volume
            time += timedelta(hours=distance / params.speed_kmh, minutes=params.unload_min)
            position = order.destination
            assignment.fuel_used += used
            assignment.orders.append(order)
            assignment.legs.append(RouteLeg(path[0], path[-1], distance, LegKind.DELIVERY,
                                            order_id=order.id, path=tuple(path)))
            assignment.fuel_levels.append(fuel)
            remaining.remove(order)

        if not assignment.orders:
            continue
        weight = vehicle.combined_weight(load)
        for tank in sorted(city.tanks, key=lambda t: manhattan_distance(position, t.location)):
            path = graph.find_path(position, tank.location, time)
            if not path:
                continue
            distance = RouteGraph.path_distance(path)
            used = fuel_consumption(distance, weight, params.fuel_efficiency)
            if used > fuel:
                continue
            fuel -= used
            assignment.fuel_used += used
            assignment.legs.append(RouteLeg(path[0], path[-1], distance, LegKind.RETURN,
                                            tank_id=tank.id, path=tuple(path)))
            assignment.fuel_levels.append(fuel)
            break
        solution.assignments.append(assignment)

    solution.unassigned = remaining
    evaluator.score(solution, now)
    return solution


class GreedySolver:
    name = "greedy"

    def solve(self, city: CityMap, params: AcoParameters) -> RunResult:
        solution = greedy_nearest_order_plan(city, params)
        assigned = {o.id for o in solution.assigned_orders()}
        unassigned = {o.id for o in solution.unassigned}
        orders = []
        for order in city.orders:
            settled = Order(order.id, order.destination, order.volume, order.registered_at,
                            order.deadline, order.customer_id)
            if order.id in assigned:
                settled.state = OrderState.ASSIGNED
            elif order.id in unassigned:
                settled.state = OrderState.UNASSIGNABLE
            orders.append(settled)
        return RunResult(best=solution, state=RunState.CONVERGED, iterations=1, orders=orders)


def summarize(result: RunResult) -> Dict[str, Any]:
    """Metrics dictionary used to compare solvers side by side."""
    best = result.best
    return {
        "state": result.state.value,
        "iterations": result.iterations,
        "quality": best.quality,
        "assigned": best.assigned_count(),
        "unassigned": len(best.unassigned),
        "vehicles_used": best.vehicles_used(),
        "total_distance": best.total_distance(),
        "total_fuel": best.total_fuel(),
    }
