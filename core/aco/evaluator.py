"""
Solution scoring.

quality = 1 / (1 + fuel + lateness + restriction penalties)

Fuel per leg is distance * combined weight / fuel efficiency, with the weight
dropping as deliveries complete. Penalties cover late minutes, legs driven
through an active blockage, routes overlapping a maintenance window, and
unassigned orders.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Sequence

from configs.config import AcoParameters
from env.route_graph import RouteGraph
from env.types_fleet import LegKind, MaintenanceWindow, RouteLeg, Solution, VehicleAssignment
from env.utils_fleet import fuel_consumption


class SolutionEvaluator:
    """
    Attributes:
        graph: used to test legs against blockages at traversal time
        maintenance: preventive maintenance windows, grouped by vehicle
    """

    def __init__(self, graph: RouteGraph, params: AcoParameters,
                 maintenance: Sequence[MaintenanceWindow] = ()):
        self.graph = graph
        self.params = params
        self.maintenance: Dict[str, List[MaintenanceWindow]] = {}
        for window in maintenance:
            self.maintenance.setdefault(window.vehicle_id, []).append(window)

    def evaluate(self, solution: Solution, now: datetime) -> float:
        """Quality of `solution` planned at `now`; does not modify it."""
        return 1.0 / (1.0 + self.cost_breakdown(solution, now)["total"])

    def score(self, solution: Solution, now: datetime) -> float:
        solution.quality = self.evaluate(solution, now)
        return solution.quality

    def _leg_blocked(self, leg: RouteLeg, start: datetime) -> bool:
        for i, (a, b) in enumerate(zip(leg.path[:-1], leg.path[1:])):
            when = start + timedelta(hours=i / self.params.speed_kmh)
            if self.graph.is_blocked_edge(a, b, when):
                return True
        return False

    def _walk(self, assignment: VehicleAssignment, now: datetime) -> Dict[str, float]:
        p = self.params
        vehicle = assignment.vehicle
        orders = {o.id: o for o in assignment.orders}
        weight = vehicle.combined_weight(assignment.load_volume())
        time = now
        fuel = lateness = blockage = 0.0

        for leg in assignment.legs:
            fuel += fuel_consumption(leg.distance, weight, p.fuel_efficiency)
            if self._leg_blocked(leg, time):
                blockage += p.blockage_penalty
            time += timedelta(hours=leg.distance / p.speed_kmh)

            if leg.kind == LegKind.DELIVERY:
                order = orders.get(leg.order_id)
                if order is not None:
                    late_min = (time - order.deadline).total_seconds() / 60.0
                    if late_min > 0:
                        lateness += late_min * p.late_penalty_per_min
                    weight -= order.cargo_weight()
                time += timedelta(minutes=p.unload_min)
            elif leg.kind == LegKind.REFUEL:
                time += timedelta(minutes=p.unload_min)

        maintenance = 0.0
        for window in self.maintenance.get(vehicle.id, []):
            if window.overlaps(now, max(time, now + timedelta(seconds=1))):
                maintenance += p.maintenance_penalty

        return {"fuel": fuel, "lateness": lateness, "blockage": blockage, "maintenance": maintenance}

    def cost_breakdown(self, solution: Solution, now: datetime) -> Dict[str, float]:
        """Individual cost terms and their total."""
        terms = {"fuel": 0.0, "lateness": 0.0, "blockage": 0.0, "maintenance": 0.0}
        for assignment in solution.assignments:
            for key, value in self._walk(assignment, now).items():
                terms[key] += value
        terms["unassigned"] = len(solution.unassigned) * self.params.unassigned_penalty
        terms["total"] = sum(terms.values())
        return terms
