"""
Convert vehicle assignments into output route plans.
"""

from typing import List, Sequence

from configs.config import AcoParameters
from env.types_fleet import LegKind, Location, RoutePlan, VehicleAssignment
from env.utils_fleet import fuel_consumption


def assignment_to_plan(assignment: VehicleAssignment, params: AcoParameters) -> RoutePlan:
    """
    Flatten an assignment into the full list of visited nodes.

    Time is driving time plus unloading per delivery plus one routine
    maintenance stop; consumption uses the average of loaded and empty weight.
    """
    locations: List[Location] = []
    for leg in assignment.legs:
        path = list(leg.path) or [leg.origin, leg.destination]
        if locations and locations[-1] == path[0]:
            path = path[1:]
        locations.extend(path)

    distance = assignment.total_distance()
    deliveries = sum(1 for leg in assignment.legs if leg.kind == LegKind.DELIVERY)
    hours = (distance / params.speed_kmh
             + deliveries * params.unload_min / 60.0
             + params.routine_maintenance_min / 60.0)

    vehicle = assignment.vehicle
    loaded = vehicle.combined_weight(assignment.load_volume())
    average_weight = (loaded + vehicle.tare) / 2.0
    consumption = fuel_consumption(distance, average_weight, params.fuel_efficiency)

    return RoutePlan(vehicle_id=vehicle.id, locations=locations, distance=distance,
                     hours=hours, consumption=consumption)


def build_route_plans(assignments: Sequence[VehicleAssignment], params: AcoParameters) -> List[RoutePlan]:
    return [assignment_to_plan(a, params) for a in assignments]
