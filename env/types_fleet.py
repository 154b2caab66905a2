"""
Data types for the LPG tanker dispatch problem.

This module defines the core data structures:
- Location: integer grid coordinate
- Blockage: time-bounded polyline of closed road segments
- Order: delivery request with volume and deadline
- Vehicle: tanker truck with capacity, fuel and availability
- Tank: central depot or intermediate refuelling tank
- RouteLeg / VehicleAssignment / Solution: planner output
- CityMap: the complete input feed of one planning run
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Liquefied gas weighs 0.5 t per m3
CARGO_TON_PER_M3 = 0.5
FUEL_TANK_GALLONS = 25.0


@dataclass(frozen=True)
class Location:
    """
    Integer coordinate on the city grid.

    Attributes:
        x, y: grid coordinates (1 unit = 1 km)
    """
    x: int
    y: int

    def manhattan(self, other: "Location") -> int:
        """Return grid distance to another location."""
        return abs(self.x - other.x) + abs(self.y - other.y)

    def as_tuple(self) -> Tuple[int, int]:
        return (self.x, self.y)

    def __str__(self) -> str:
        return f"({self.x},{self.y})"


@dataclass(frozen=True)
class Blockage:
    """
    Road closure active during [start, end).

    Attributes:
        start, end: activity interval
        points: ordered polyline; each consecutive pair is one blocked segment
    """
    start: datetime
    end: datetime
    points: Tuple[Location, ...]

    def is_active(self, when: datetime) -> bool:
        return self.start <= when < self.end

    def overlaps(self, t_start: datetime, t_end: datetime) -> bool:
        """True if the blockage is active at any instant of [t_start, t_end]."""
        return self.start <= t_end and t_start < self.end

    def segments(self) -> List[Tuple[Location, Location]]:
        if len(self.points) == 1:
            return [(self.points[0], self.points[0])]
        return list(zip(self.points[:-1], self.points[1:]))


class OrderState(Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    DELIVERED = "delivered"
    UNASSIGNABLE = "unassignable"


@dataclass
class Order:
    """
    Delivery request from a customer.

    Attributes:
        id: order identifier (sub-orders get "<parent>-<k>")
        destination: delivery location
        volume: requested LPG volume in m3
        registered_at: time the order was received
        deadline: latest acceptable delivery time
        customer_id: originating customer code
        state: lifecycle state, owned by the orchestrator
    """
    id: str
    destination: Location
    volume: float
    registered_at: datetime
    deadline: datetime
    customer_id: str = ""
    state: OrderState = OrderState.PENDING
    parent_id: Optional[str] = None

    def window_hours(self) -> float:
        """Total time allowed between registration and deadline."""
        return (self.deadline - self.registered_at).total_seconds() / 3600.0

    def cargo_weight(self) -> float:
        return self.volume * CARGO_TON_PER_M3

    def split(self, max_volume: float) -> List["Order"]:
        """
        Split an oversized order into chunks no larger than max_volume.

        Returns [self] when no split is needed.
        """
        if max_volume <= 0 or self.volume <= max_volume:
            return [self]
        parts = []
        remaining = self.volume
        k = 1
        while remaining > 1e-9:
            chunk = min(max_volume, remaining)
            parts.append(Order(
                id=f"{self.id}-{k}",
                destination=self.destination,
                volume=chunk,
                registered_at=self.registered_at,
                deadline=self.deadline,
                customer_id=self.customer_id,
                parent_id=self.id,
            ))
            remaining -= chunk
            k += 1
        return parts


class VehicleState(Enum):
    AVAILABLE = "available"
    EN_ROUTE = "en_route"
    UNDER_MAINTENANCE = "under_maintenance"
    BROKEN = "broken"


@dataclass(frozen=True)
class VehicleType:
    """
    Tanker model.

    Attributes:
        code: TA, TB, TC or TD
        tare: empty truck weight (t)
        capacity: LPG capacity (m3)
    """
    code: str
    tare: float
    capacity: float


FLEET_TYPES: Dict[str, VehicleType] = {
    "TA": VehicleType("TA", tare=2.5, capacity=25.0),
    "TB": VehicleType("TB", tare=2.0, capacity=15.0),
    "TC": VehicleType("TC", tare=1.5, capacity=10.0),
    "TD": VehicleType("TD", tare=1.0, capacity=5.0),
}

# Units per type in the standard fleet
FLEET_COMPOSITION: Dict[str, int] = {"TA": 2, "TB": 4, "TC": 4, "TD": 10}


@dataclass
class Vehicle:
    """
    Tanker truck.

    Attributes:
        id: vehicle code, e.g. "TA01"
        type_code: key into FLEET_TYPES
        capacity: LPG capacity (m3)
        tare: empty weight (t)
        position: current grid location
        fuel: current fuel (gallons)
        fuel_capacity: fuel tank size (gallons)
        state: availability state
        available_from: end of an ongoing repair, if any
    """
    id: str
    type_code: str
    capacity: float
    tare: float
    position: Location
    fuel: float = FUEL_TANK_GALLONS
    fuel_capacity: float = FUEL_TANK_GALLONS
    state: VehicleState = VehicleState.AVAILABLE
    available_from: Optional[datetime] = None

    @classmethod
    def of_type(cls, vehicle_id: str, type_code: str, position: Location) -> "Vehicle":
        vtype = FLEET_TYPES[type_code]
        return cls(id=vehicle_id, type_code=type_code, capacity=vtype.capacity,
                   tare=vtype.tare, position=position)

    def combined_weight(self, load_volume: float) -> float:
        """Tare plus the weight of load_volume m3 of cargo."""
        return self.tare + load_volume * CARGO_TON_PER_M3

    def is_available(self) -> bool:
        return self.state == VehicleState.AVAILABLE

    def clone(self) -> "Vehicle":
        return copy.copy(self)


class TankType(Enum):
    CENTRAL = "central"
    INTERMEDIATE = "intermediate"


@dataclass
class Reservation:
    vehicle_id: str
    amount: float
    expected_at: datetime


@dataclass
class Tank:
    """
    Loading / refuelling point.

    Attributes:
        id: tank name
        location: grid location
        type: CENTRAL (inexhaustible) or INTERMEDIATE (finite)
        capacity: maximum volume (m3)
        available: current volume (m3)
        reservations: outstanding reservations against this tank
    """
    id: str
    location: Location
    type: TankType
    capacity: float = 160.0
    available: float = 160.0
    reservations: List[Reservation] = field(default_factory=list)

    def is_central(self) -> bool:
        return self.type == TankType.CENTRAL

    def reserved(self, since: Optional[datetime] = None) -> float:
        return sum(r.amount for r in self.reservations
                   if since is None or r.expected_at >= since)

    def real_availability(self) -> float:
        """Volume left once outstanding reservations are honoured."""
        if self.is_central():
            return float("inf")
        return max(0.0, self.available - self.reserved())

    def clone(self) -> "Tank":
        twin = copy.copy(self)
        twin.reservations = list(self.reservations)
        return twin


class BreakdownType(Enum):
    T1 = "T1"
    T2 = "T2"
    T3 = "T3"

    def repair_hours(self) -> float:
        return 4.0 if self is BreakdownType.T3 else 2.0


@dataclass(frozen=True)
class Breakdown:
    vehicle_id: str
    kind: BreakdownType
    at: datetime

    def repaired_at(self) -> datetime:
        return self.at + timedelta(hours=self.kind.repair_hours())


@dataclass(frozen=True)
class MaintenanceWindow:
    """Preventive maintenance; the vehicle is out for [start, end)."""
    vehicle_id: str
    start: datetime
    end: datetime

    @classmethod
    def full_day(cls, vehicle_id: str, day: datetime) -> "MaintenanceWindow":
        start = datetime(day.year, day.month, day.day)
        return cls(vehicle_id, start, start + timedelta(days=1))

    def overlaps(self, t_start: datetime, t_end: datetime) -> bool:
        return self.start < t_end and t_start < self.end


class LegKind(Enum):
    DELIVERY = "delivery"
    REFUEL = "refuel"
    RETURN = "return"


@dataclass(frozen=True)
class RouteLeg:
    """
    One travelled stretch of a vehicle route.

    Attributes:
        origin, destination: end points
        distance: grid steps travelled
        kind: DELIVERY, REFUEL or RETURN
        order_id: fulfilled order for DELIVERY legs
        tank_id: tank visited for REFUEL and RETURN legs
        path: node sequence from origin to destination
    """
    origin: Location
    destination: Location
    distance: float
    kind: LegKind
    order_id: Optional[str] = None
    tank_id: Optional[str] = None
    path: Tuple[Location, ...] = ()


@dataclass
class VehicleAssignment:
    """
    Orders and legs planned for one vehicle.

    Attributes:
        vehicle: private copy of the vehicle at planning time
        orders: orders in delivery order
        legs: legs in travel order
        fuel_levels: fuel remaining after each leg
        fuel_used: fuel consumed along the route
    """
    vehicle: Vehicle
    orders: List[Order] = field(default_factory=list)
    legs: List[RouteLeg] = field(default_factory=list)
    fuel_levels: List[float] = field(default_factory=list)
    fuel_used: float = 0.0

    def total_distance(self) -> float:
        return sum(leg.distance for leg in self.legs)

    def load_volume(self) -> float:
        return sum(o.volume for o in self.orders)

    def refuel_legs(self) -> List[RouteLeg]:
        return [leg for leg in self.legs if leg.kind == LegKind.REFUEL]

    def clone(self) -> "VehicleAssignment":
        return VehicleAssignment(
            vehicle=self.vehicle.clone(),
            orders=list(self.orders),
            legs=list(self.legs),
            fuel_levels=list(self.fuel_levels),
            fuel_used=self.fuel_used,
        )


@dataclass
class Solution:
    """
    One candidate plan.

    Attributes:
        assignments: per-vehicle plans
        unassigned: orders that could not be placed
        quality: 1 / (1 + cost); higher is better
        reservations: tank reservations made while building, keyed by tank id
    """
    assignments: List[VehicleAssignment] = field(default_factory=list)
    unassigned: List[Order] = field(default_factory=list)
    quality: float = 0.0
    reservations: Dict[str, List[Reservation]] = field(default_factory=dict)

    def assigned_orders(self) -> List[Order]:
        return [o for a in self.assignments for o in a.orders]

    def assigned_count(self) -> int:
        return sum(len(a.orders) for a in self.assignments)

    def total_distance(self) -> float:
        return sum(a.total_distance() for a in self.assignments)

    def total_fuel(self) -> float:
        return sum(a.fuel_used for a in self.assignments)

    def vehicles_used(self) -> int:
        return len(self.assignments)

    def clone(self) -> "Solution":
        """Deep copy of the plan structure; orders are shared by reference."""
        return Solution(
            assignments=[a.clone() for a in self.assignments],
            unassigned=list(self.unassigned),
            quality=self.quality,
            reservations={k: list(v) for k, v in self.reservations.items()},
        )


@dataclass
class RoutePlan:
    """
    Output route of one vehicle, in plan form.

    Attributes:
        vehicle_id: vehicle code
        locations: every grid node visited, in order
        distance: total km
        hours: driving plus unloading plus routine maintenance time
        consumption: estimated fuel (gallons) using the average weight
    """
    vehicle_id: str
    locations: List[Location]
    distance: float
    hours: float
    consumption: float

    def formatted(self) -> str:
        if not self.locations:
            return "[]"
        return ">".join(str(loc) for loc in self.locations)


@dataclass
class CityMap:
    """
    Complete input feed for one planning run.

    Attributes:
        width, height: grid bounds; valid x in [0, width], y in [0, height]
        vehicles: the fleet
        orders: pending orders
        tanks: central depot first, then intermediate tanks
        blockages: road closures
        breakdowns: scheduled breakdowns
        maintenance: preventive maintenance windows
        start_time: simulation start
    """
    width: int
    height: int
    vehicles: List[Vehicle]
    orders: List[Order]
    tanks: List[Tank]
    start_time: datetime
    blockages: List[Blockage] = field(default_factory=list)
    breakdowns: List[Breakdown] = field(default_factory=list)
    maintenance: List[MaintenanceWindow] = field(default_factory=list)

    def central_tank(self) -> Tank:
        for tank in self.tanks:
            if tank.is_central():
                return tank
        raise ValueError("City map has no central tank")

    def in_bounds(self, loc: Location) -> bool:
        return 0 <= loc.x <= self.width and 0 <= loc.y <= self.height
