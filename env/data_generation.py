"""
Data generation for LPG dispatch problems.

Creates random city instances with the standard fleet, the standard tank
layout, random orders and random axis-aligned blockages, for the CLI and
for tests.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import numpy as np

from env.types_fleet import (FLEET_COMPOSITION, Blockage, CityMap, Location, Order, Tank,
                             TankType, Vehicle)

DEFAULT_START = datetime(2025, 1, 1, 0, 0)


def standard_tanks(capacity: float = 160.0) -> List[Tank]:
    """Central plant at (12,8); intermediate tanks east (63,3) and north (42,42)."""
    return [
        Tank("CENTRAL", Location(12, 8), TankType.CENTRAL, capacity, capacity),
        Tank("EAST", Location(63, 3), TankType.INTERMEDIATE, capacity, capacity),
        Tank("NORTH", Location(42, 42), TankType.INTERMEDIATE, capacity, capacity),
    ]


def standard_fleet(home: Location) -> List[Vehicle]:
    """2 TA, 4 TB, 4 TC and 10 TD trucks parked at `home`."""
    fleet = []
    for type_code, units in FLEET_COMPOSITION.items():
        for i in range(units):
            fleet.append(Vehicle.of_type(f"{type_code}{i + 1:02d}", type_code, home))
    return fleet


def generate_orders(
    num_orders: int,
    width: int,
    height: int,
    start: datetime,
    volume_range: Tuple[float, float] = (1.0, 15.0),
    deadline_hours_range: Tuple[int, int] = (4, 36),
    spread_hours: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> List[Order]:
    """
    Random orders.

    Args:
        num_orders: how many orders to create
        width, height: grid bounds
        start: registration time of the first order
        volume_range: (min, max) volume in m3
        deadline_hours_range: (min, max) hours between registration and deadline
        spread_hours: registrations are spread uniformly over this many hours
        rng: random generator

    Returns:
        List of orders with ids "P001", "P002", ...
    """
    rng = rng or np.random.default_rng()
    orders = []
    for i in range(num_orders):
        registered = start + timedelta(hours=float(rng.uniform(0, spread_hours))) if spread_hours else start
        hours = int(rng.integers(deadline_hours_range[0], deadline_hours_range[1] + 1))
        orders.append(Order(
            id=f"P{i + 1:03d}",
            destination=Location(int(rng.integers(0, width + 1)), int(rng.integers(0, height + 1))),
            volume=float(round(rng.uniform(*volume_range), 1)),
            registered_at=registered,
            deadline=registered + timedelta(hours=hours),
            customer_id=f"c-{i + 1}",
        ))
    return orders


def generate_blockages(
    num_blockages: int,
    width: int,
    height: int,
    start: datetime,
    max_length: int = 10,
    duration_hours_range: Tuple[int, int] = (2, 24),
    rng: Optional[np.random.Generator] = None,
) -> List[Blockage]:
    """Random straight or L-shaped closures starting within the first day."""
    rng = rng or np.random.default_rng()
    blockages = []
    for _ in range(num_blockages):
        x, y = int(rng.integers(0, width + 1)), int(rng.integers(0, height + 1))
        first = Location(min(width, x + int(rng.integers(1, max_length + 1))), y)
        second = Location(first.x, min(height, y + int(rng.integers(0, max_length + 1))))
        points = (Location(x, y), first) if second == first else (Location(x, y), first, second)
        begin = start + timedelta(hours=int(rng.integers(0, 24)))
        end = begin + timedelta(hours=int(rng.integers(duration_hours_range[0], duration_hours_range[1] + 1)))
        blockages.append(Blockage(begin, end, points))
    return blockages


def generate_city_map(
    num_orders: int = 40,
    width: int = 70,
    height: int = 50,
    num_blockages: int = 3,
    start: datetime = DEFAULT_START,
    seed: int = None,
) -> CityMap:
    """
    Generate a random city with the standard fleet and tank layout.

    Args:
        num_orders: number of orders
        width, height: grid bounds
        num_blockages: number of random closures
        start: simulation start time
        seed: random seed for reproducibility

    Returns:
        CityMap ready for planning
    """
    rng = np.random.default_rng(seed)
    tanks = standard_tanks()
    central = tanks[0].location
    return CityMap(
        width=width,
        height=height,
        vehicles=standard_fleet(central),
        orders=generate_orders(num_orders, width, height, start, rng=rng),
        tanks=tanks,
        start_time=start,
        blockages=generate_blockages(num_blockages, width, height, start, rng=rng),
    )
