"""
Tank inventory and reservations.

The TankManager is owned by the orchestrator. Route builders never touch it
directly: they receive private snapshots (plain Tank copies) and record
reservations there; the orchestrator reconciles the winning plan's
reservations back serially.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from env.types_fleet import Location, Reservation, Solution, Tank
from env.utils_fleet import centroid, fuel_consumption, manhattan_distance

logger = logging.getLogger(__name__)

BASE_DAILY_CONSUMPTION = 100.0


def days_to_exhaustion(tank: Tank, now: datetime) -> float:
    """
    Estimated days until an intermediate tank runs dry.

    Daily consumption = reservations due in the next 24 h + a base rate.
    """
    if tank.is_central():
        return float("inf")
    horizon = now + timedelta(days=1)
    upcoming = sum(r.amount for r in tank.reservations if now <= r.expected_at <= horizon)
    daily = upcoming + BASE_DAILY_CONSUMPTION
    return tank.available / daily


def reserve(tank: Tank, vehicle_id: str, amount: float, expected_at: datetime) -> Reservation:
    """Record a reservation on a tank copy and return it."""
    reservation = Reservation(vehicle_id, amount, expected_at)
    tank.reservations.append(reservation)
    return reservation


def select_refuel_tank(
    tanks: Sequence[Tank],
    current: Location,
    destinations: Sequence[Location],
    fuel: float,
    refill: float,
    weight: float,
    now: datetime,
    priority_factor: float = 1.2,
    efficiency: float = 180.0,
) -> Optional[Tank]:
    """
    Choose where to refuel before continuing towards `destinations`.

    Candidates must be reachable on the current fuel and able to supply
    `refill`; the central depot is always able to. Score (lower is better) is
    the detour via the route midpoint divided by a capacity weight and a
    time-to-exhaustion preference.

    Args:
        tanks: tank snapshot to choose from
        current: vehicle location
        destinations: upcoming stops
        fuel: fuel left (gallons)
        refill: amount the vehicle will take
        weight: current combined weight (t)
        now: current time

    Returns:
        best tank, or None when no tank can be reached
    """
    midpoint = centroid([current] + list(destinations)) or current
    best = None
    best_score = float("inf")
    for tank in tanks:
        to_tank = manhattan_distance(current, tank.location)
        if fuel_consumption(to_tank, weight, efficiency) > fuel:
            continue
        if not tank.is_central() and tank.real_availability() < refill:
            continue
        detour = to_tank + manhattan_distance(tank.location, midpoint)
        if tank.is_central():
            capacity_weight = priority_factor
            exhaustion_weight = 2.0
        else:
            capacity_weight = max(0.1, tank.real_availability() / tank.capacity * priority_factor)
            exhaustion_weight = min(2.0, 1.0 + days_to_exhaustion(tank, now) / 30.0)
        score = detour / (capacity_weight * exhaustion_weight)
        if score < best_score:
            best_score = score
            best = tank
    return best


class TankManager:
    """
    Orchestrator-owned tank state.

    Attributes:
        tanks: tanks keyed by id
        alert_days: days-to-exhaustion under which an alert is raised
    """

    def __init__(self, tanks: Iterable[Tank], alert_days: float = 2.0):
        self.tanks: Dict[str, Tank] = {t.id: t.clone() for t in tanks}
        self.alert_days = alert_days

    def snapshot(self) -> List[Tank]:
        """
        Private copies for the route builders.

        Outstanding reservations belong to the plan being recomputed, so the
        copies carry physical volume only.
        """
        copies = []
        for tank in self.tanks.values():
            twin = tank.clone()
            twin.reservations = []
            copies.append(twin)
        return copies

    def refill_intermediate(self) -> None:
        for tank in self.tanks.values():
            if not tank.is_central():
                tank.available = tank.capacity
                tank.reservations = []
        logger.info("Intermediate tanks refilled")

    def reconcile(self, solution: Solution) -> None:
        """
        Replace outstanding reservations with those of `solution`, clamped to
        what each tank physically holds.
        """
        for tank in self.tanks.values():
            tank.reservations = []
        for tank_id, reservations in solution.reservations.items():
            tank = self.tanks.get(tank_id)
            if tank is None:
                continue
            for r in reservations:
                if tank.is_central():
                    tank.reservations.append(r)
                    continue
                amount = min(r.amount, tank.real_availability())
                if amount < r.amount:
                    logger.warning("Tank %s cannot honour %.1f for %s, reserving %.1f",
                                   tank_id, r.amount, r.vehicle_id, amount)
                if amount > 0:
                    tank.reservations.append(Reservation(r.vehicle_id, amount, r.expected_at))

    def low_tanks(self, threshold: float) -> List[Tank]:
        return [t for t in self.tanks.values() if not t.is_central() and t.available < threshold]

    def exhaustion_alerts(self, now: datetime) -> List[Tank]:
        return [t for t in self.tanks.values() if days_to_exhaustion(t, now) < self.alert_days]
