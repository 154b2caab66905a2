"""
Input consistency checks for a CityMap.

Problems are logged as warnings and the offending records are excluded; the
run itself always proceeds with whatever remains valid.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from configs.config import AcoParameters
from env.types_fleet import Blockage, CityMap, Order, Vehicle

logger = logging.getLogger(__name__)

MAX_ORDER_VOLUME = 200.0


@dataclass
class ValidationReport:
    """
    Attributes:
        orders, vehicles, blockages: records that passed validation
        issues: one human-readable line per rejected record
    """
    orders: List[Order] = field(default_factory=list)
    vehicles: List[Vehicle] = field(default_factory=list)
    blockages: List[Blockage] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


def order_issue(order: Order, city: CityMap, params: AcoParameters) -> str:
    if not city.in_bounds(order.destination):
        return f"order {order.id}: destination {order.destination} outside the {city.width}x{city.height} grid"
    if order.volume <= 0:
        return f"order {order.id}: non-positive volume {order.volume}"
    if order.volume > MAX_ORDER_VOLUME:
        return f"order {order.id}: volume {order.volume} exceeds {MAX_ORDER_VOLUME}"
    if order.deadline <= order.registered_at:
        return f"order {order.id}: deadline not after registration"
    if order.window_hours() < params.min_lead_time_h:
        return f"order {order.id}: lead time {order.window_hours():.1f}h below {params.min_lead_time_h}h"
    return ""


def blockage_issue(blockage: Blockage, city: CityMap) -> str:
    if blockage.start >= blockage.end:
        return f"blockage from {blockage.start}: start is not before end"
    if len(blockage.points) < 2:
        return f"blockage from {blockage.start}: fewer than two points"
    for p in blockage.points:
        if not city.in_bounds(p):
            return f"blockage from {blockage.start}: point {p} outside the grid"
    for a, b in zip(blockage.points[:-1], blockage.points[1:]):
        if a.x != b.x and a.y != b.y:
            return f"blockage from {blockage.start}: segment {a}-{b} is not axis-aligned"
    return ""


def vehicle_issue(vehicle: Vehicle, city: CityMap) -> str:
    if vehicle.capacity <= 0 or vehicle.tare <= 0:
        return f"vehicle {vehicle.id}: non-positive capacity or tare"
    if vehicle.fuel < 0 or vehicle.fuel > vehicle.fuel_capacity:
        return f"vehicle {vehicle.id}: fuel {vehicle.fuel} outside [0, {vehicle.fuel_capacity}]"
    if not city.in_bounds(vehicle.position):
        return f"vehicle {vehicle.id}: position {vehicle.position} outside the grid"
    return ""


def validate_city_map(city: CityMap, params: AcoParameters) -> ValidationReport:
    """
    Check every order, vehicle and blockage of `city`.

    Args:
        city: input feed
        params: supplies the minimum lead time

    Returns:
        ValidationReport with the valid records and the list of issues
    """
    report = ValidationReport()

    for order in city.orders:
        issue = order_issue(order, city, params)
        if issue:
            report.issues.append(issue)
        else:
            report.orders.append(order)

    for vehicle in city.vehicles:
        issue = vehicle_issue(vehicle, city)
        if issue:
            report.issues.append(issue)
        else:
            report.vehicles.append(vehicle)

    for blockage in city.blockages:
        issue = blockage_issue(blockage, city)
        if issue:
            report.issues.append(issue)
        else:
            report.blockages.append(blockage)

    for issue in report.issues:
        logger.warning("Input inconsistency, record excluded: %s", issue)
    return report
