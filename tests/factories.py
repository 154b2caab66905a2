"""
Small hand-built instances shared by the test modules.
"""

from datetime import datetime, timedelta

from configs.config import AcoParameters
from env.types_fleet import CityMap, Location, Order, Tank, TankType, Vehicle

START = datetime(2025, 1, 1, 8, 0)


def make_order(oid, x, y, volume=5.0, hours=8, registered=START):
    return Order(id=oid, destination=Location(x, y), volume=volume,
                 registered_at=registered, deadline=registered + timedelta(hours=hours))


def central(x=0, y=0):
    return Tank("CENTRAL", Location(x, y), TankType.CENTRAL)


def intermediate(tank_id, x, y, available=160.0):
    return Tank(tank_id, Location(x, y), TankType.INTERMEDIATE, 160.0, available)


def truck(vehicle_id, type_code="TA", x=0, y=0, fuel=None):
    vehicle = Vehicle.of_type(vehicle_id, type_code, Location(x, y))
    if fuel is not None:
        vehicle.fuel = fuel
    return vehicle


def make_city(orders, vehicles=None, tanks=None, width=30, height=30, **kwargs):
    return CityMap(
        width=width,
        height=height,
        vehicles=vehicles if vehicles is not None else [truck("TA01")],
        orders=orders,
        tanks=tanks if tanks is not None else [central()],
        start_time=START,
        **kwargs,
    )


def small_params(**overrides):
    values = dict(ants=4, iterations=6, workers=1, worker_backend="serial", seed=7)
    values.update(overrides)
    return AcoParameters(**values).validate()


def make_context(orders, vehicles, tanks, width=30, height=30, params=None, blockages=(), now=START, window_hours=1):
    """BuildContext over fresh fields, heuristic refreshed at `now`."""
    from core.aco.ant import BuildContext
    from core.aco.heuristic import HeuristicField
    from core.aco.pheromone import PheromoneField
    from env.route_graph import RouteGraph

    params = params or small_params()
    graph = RouteGraph(width, height, list(blockages), tanks)
    heuristic = HeuristicField(width, height, params)
    heuristic.refresh(graph, orders, tanks, now)
    return BuildContext(
        graph=graph,
        pheromone=PheromoneField(width, height, params.initial_pheromone, params.pheromone_floor),
        heuristic=heuristic,
        orders=list(orders),
        vehicles=list(vehicles),
        tanks=list(tanks),
        now=now,
        window_end=now + timedelta(hours=window_hours),
    )
