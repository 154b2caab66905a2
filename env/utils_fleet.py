"""
Utility functions for LPG tanker routing.

This module provides helper functions for:
- Distance calculations on the Manhattan grid
- Fuel consumption and autonomy
- Order urgency
- Integer segment intersection for blockages
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np

from env.types_fleet import Location, Order


def manhattan_distance(p1: Location, p2: Location) -> int:
    """
    Calculate grid distance between two locations.

    Args:
        p1: first location
        p2: second location

    Returns:
        |dx| + |dy|
    """
    return abs(p1.x - p2.x) + abs(p1.y - p2.y)


def build_distance_matrix(locations: Sequence[Location]) -> np.ndarray:
    """
    Build the pairwise Manhattan distance matrix.

    Args:
        locations: N locations

    Returns:
        (N, N) matrix where distance[i, j] is the grid distance from i to j
    """
    if not locations:
        return np.zeros((0, 0))
    coords = np.array([loc.as_tuple() for loc in locations], dtype=float)
    return np.abs(coords[:, None, :] - coords[None, :, :]).sum(axis=2)


def fuel_consumption(distance: float, weight: float, efficiency: float = 180.0) -> float:
    """Gallons burnt travelling `distance` km at `weight` t: d * w / efficiency."""
    return distance * weight / efficiency


def urgency(order: Order, now: datetime) -> float:
    """
    Normalised urgency of an order.

    0 before registration, 1 once the deadline has passed, otherwise
    (elapsed / window)^2 so that risk grows slowly and then sharply.

    Args:
        order: order to evaluate
        now: current time

    Returns:
        value in [0, 1]
    """
    if order.deadline is None:
        return 0.0
    if now >= order.deadline:
        return 1.0
    window = (order.deadline - order.registered_at).total_seconds()
    if window <= 0:
        return 1.0
    elapsed = (now - order.registered_at).total_seconds()
    if elapsed <= 0:
        return 0.0
    return min(1.0, (elapsed / window) ** 2)


def sort_by_urgency(orders: Sequence[Order], now: datetime) -> List[Order]:
    """Most urgent first; ties broken by earliest deadline."""
    return sorted(orders, key=lambda o: (-urgency(o, now), o.deadline))


def hours_to_deadline(order: Order, now: datetime) -> float:
    return (order.deadline - now).total_seconds() / 3600.0


def is_critical(order: Order, now: datetime, threshold_hours: float = 2.0) -> bool:
    """An order is critical when it is late or due within threshold_hours."""
    return hours_to_deadline(order, now) < threshold_hours


def centroid(locations: Sequence[Location]) -> Optional[Location]:
    """Integer mean of a set of locations, None for an empty set."""
    if not locations:
        return None
    coords = np.array([loc.as_tuple() for loc in locations], dtype=float)
    cx, cy = coords.mean(axis=0)
    return Location(int(cx), int(cy))


def _ranges_overlap(a1: int, a2: int, b1: int, b2: int) -> bool:
    return max(min(a1, a2), min(b1, b2)) <= min(max(a1, a2), max(b1, b2))


def _within(v: int, a: int, b: int) -> bool:
    return min(a, b) <= v <= max(a, b)


def segments_intersect(a1: Location, a2: Location, b1: Location, b2: Location) -> bool:
    """
    Test two axis-aligned integer segments for contact.

    Handles:
    - both horizontal on the same row with overlapping x ranges
    - both vertical on the same column with overlapping y ranges
    - one horizontal, one vertical, crossing point inside both

    Degenerate single-point segments behave as both horizontal and vertical.
    Diagonal segments are never reported as intersecting.
    """
    a_h = a1.y == a2.y
    a_v = a1.x == a2.x
    b_h = b1.y == b2.y
    b_v = b1.x == b2.x

    if a_h and b_h and a1.y == b1.y and _ranges_overlap(a1.x, a2.x, b1.x, b2.x):
        return True
    if a_v and b_v and a1.x == b1.x and _ranges_overlap(a1.y, a2.y, b1.y, b2.y):
        return True
    if a_h and b_v and _within(b1.x, a1.x, a2.x) and _within(a1.y, b1.y, b2.y):
        return True
    if a_v and b_h and _within(a1.x, b1.x, b2.x) and _within(b1.y, a1.y, a2.y):
        return True
    return False


def point_on_segment(p: Location, s1: Location, s2: Location) -> bool:
    return segments_intersect(p, p, s1, s2)


def l_corridor(a: Location, b: Location, x_first: bool = True) -> List[Tuple[Location, Location]]:
    """
    The two straight segments of an L-shaped Manhattan route from a to b.

    Args:
        a: start
        b: end
        x_first: travel along x before y

    Returns:
        list of (start, end) segments, zero-length segments omitted
    """
    corner = Location(b.x, a.y) if x_first else Location(a.x, b.y)
    segments = []
    if corner != a:
        segments.append((a, corner))
    if corner != b:
        segments.append((corner, b))
    return segments
