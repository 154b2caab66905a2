"""
Collapse detection.

Two signals:
- CollapseDetector: the average unassigned-order ratio of an iteration's
  candidates stays above a threshold for several consecutive iterations.
  This drives the orchestrator's COLLAPSED_ABORTED transition.
- operational_indicator: a 0..1 score of fleet/order stress, reported with
  telemetry and logged when high.
"""

import logging
from datetime import datetime
from typing import Sequence

from env.types_fleet import Order, Solution, Vehicle
from env.utils_fleet import is_critical

logger = logging.getLogger(__name__)


class CollapseDetector:

    def __init__(self, threshold: float = 0.2, patience: int = 5):
        self.threshold = threshold
        self.patience = patience
        self.streak = 0
        self.last_ratio = 0.0

    def unassigned_ratio(self, candidates: Sequence[Solution], total_orders: int) -> float:
        if not candidates or total_orders <= 0:
            return 0.0
        # split sub-orders count once, under their parent id
        missing = sum(len({o.parent_id or o.id for o in s.unassigned}) for s in candidates)
        return min(1.0, missing / (len(candidates) * total_orders))

    def observe(self, candidates: Sequence[Solution], total_orders: int) -> bool:
        """Record one iteration; True once the collapse condition has persisted."""
        self.last_ratio = self.unassigned_ratio(candidates, total_orders)
        if self.last_ratio > self.threshold:
            self.streak += 1
        else:
            self.streak = 0
        return self.streak >= self.patience


def operational_indicator(
    vehicles: Sequence[Vehicle],
    orders: Sequence[Order],
    now: datetime,
    delivery_time_ratio: float = 0.0,
) -> float:
    """
    Stress score in [0, 1].

    +0.4 when more than 70% of the fleet is out of service
    +0.4 when more than 30% of orders are late or due within 2 hours
    +0.2 when actual delivery times run over twice the estimate
    """
    score = 0.0
    if vehicles:
        inactive = sum(1 for v in vehicles if not v.is_available())
        if inactive / len(vehicles) > 0.7:
            score += 0.4
    if orders:
        critical = sum(1 for o in orders if is_critical(o, now))
        if critical / len(orders) > 0.3:
            score += 0.4
    if delivery_time_ratio > 2.0:
        score += 0.2
    return min(1.0, score)
