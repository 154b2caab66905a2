"""
Local search over finished candidate plans.

Three moves, tried in this order on every round:
- swap: exchange one order between two vehicles
- 2-opt: reverse a stretch of one vehicle's delivery sequence
- relocate: move one order into another vehicle's route

A move is screened with a Manhattan estimate of the distance it saves. Only
promising moves are re-threaded through RouteBuilder.route_sequence (so fuel,
refuel detours and blockages are honoured) and re-scored; a move is kept when
the scored quality goes up.
"""

import logging
from typing import Dict, List, Optional, Sequence

from configs.config import AcoParameters
from core.aco.ant import BuildContext, RouteBuilder
from core.aco.evaluator import SolutionEvaluator
from env.types_fleet import Location, Order, Solution, VehicleAssignment
from env.utils_fleet import manhattan_distance

logger = logging.getLogger(__name__)

SWAP_PASSES = 3
TWO_OPT_PASSES = 5
RELOCATE_PASSES = 3


def route_estimate(start: Location, stops: Sequence[Location], depots: Sequence[Location]) -> int:
    """
    Manhattan length of start -> stops -> nearest depot to the last stop.

    An empty route costs nothing: the vehicle simply stays unused.
    """
    if not stops:
        return 0
    points = [start] + list(stops)
    length = sum(manhattan_distance(a, b) for a, b in zip(points, points[1:]))
    return length + min((manhattan_distance(stops[-1], d) for d in depots), default=0)


class LocalSearch:
    """
    Attributes:
        evaluator: scores re-threaded plans
        router: builder used only for its fixed-sequence threading
    """

    def __init__(self, params: AcoParameters, evaluator: SolutionEvaluator):
        self.params = params
        self.evaluator = evaluator
        self.router = RouteBuilder(-1, params)

    def improve(self, solution: Solution, ctx: BuildContext, rounds: int = 1) -> Solution:
        """
        Apply swap, 2-opt and relocate moves for up to `rounds` rounds.

        Args:
            solution: scored candidate; never modified
            ctx: the context the candidate was built in
            rounds: stop early once a round changes nothing

        Returns:
            an improved copy, or `solution` itself when no move helped
        """
        best = solution
        for _ in range(rounds):
            current = self.swap_orders(best, ctx)
            current = self.two_opt(current, ctx)
            current = self.relocate_orders(current, ctx)
            if current is best:
                break
            best = current
        if best is not solution:
            logger.debug("Local search: quality %.6g -> %.6g", solution.quality, best.quality)
        return best

    # ------------------------------------------------------------------
    # Re-threading
    # ------------------------------------------------------------------

    def rebuild(self, solution: Solution, sequences: Dict[int, List[Order]], ctx: BuildContext) -> Solution:
        """
        Copy of `solution` with the assignments at the given indexes
        re-threaded in the given order, scored at ctx.now.
        """
        touched = {solution.assignments[i].vehicle.id for i in sequences}
        rebuilt = Solution(unassigned=list(solution.unassigned))
        for tank_id, reservations in solution.reservations.items():
            kept = [r for r in reservations if r.vehicle_id not in touched]
            if kept:
                rebuilt.reservations[tank_id] = kept

        tanks = [t.clone() for t in ctx.tanks]
        for tank in tanks:
            tank.reservations.extend(rebuilt.reservations.get(tank.id, []))

        for i, assignment in enumerate(solution.assignments):
            if i not in sequences:
                rebuilt.assignments.append(assignment.clone())
                continue
            if not sequences[i]:
                continue
            routed, dropped = self.router.route_sequence(assignment.vehicle.clone(), sequences[i],
                                                         ctx, tanks, rebuilt)
            rebuilt.unassigned.extend(dropped)
            if routed.orders:
                rebuilt.assignments.append(routed)

        self.evaluator.score(rebuilt, ctx.now)
        return rebuilt

    def _try(self, solution: Solution, sequences: Dict[int, List[Order]], ctx: BuildContext) -> Optional[Solution]:
        candidate = self.rebuild(solution, sequences, ctx)
        return candidate if candidate.quality > solution.quality else None

    @staticmethod
    def _estimate(assignment: VehicleAssignment, sequence: Sequence[Order], ctx: BuildContext) -> int:
        return route_estimate(assignment.vehicle.position, [o.destination for o in sequence],
                              [t.location for t in ctx.tanks])

    def _cheapest_insertion(self, assignment: VehicleAssignment, order: Order, ctx: BuildContext) -> List[Order]:
        sequence = list(assignment.orders)
        best = None
        best_length = None
        for k in range(len(sequence) + 1):
            trial = sequence[:k] + [order] + sequence[k:]
            length = self._estimate(assignment, trial, ctx)
            if best_length is None or length < best_length:
                best, best_length = trial, length
        return best

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def two_opt(self, solution: Solution, ctx: BuildContext) -> Solution:
        """Reverse delivery stretches of single routes with three or more stops."""
        for _ in range(TWO_OPT_PASSES):
            improved = None
            for idx, assignment in enumerate(solution.assignments):
                sequence = assignment.orders
                if len(sequence) < 3:
                    continue
                current = self._estimate(assignment, sequence, ctx)
                for i in range(len(sequence) - 1):
                    for j in range(i + 1, len(sequence)):
                        trial = sequence[:i] + sequence[i:j + 1][::-1] + sequence[j + 1:]
                        if self._estimate(assignment, trial, ctx) >= current:
                            continue
                        improved = self._try(solution, {idx: trial}, ctx)
                        if improved is not None:
                            break
                    if improved is not None:
                        break
                if improved is not None:
                    break
            if improved is None:
                return solution
            solution = improved
        return solution

    def swap_orders(self, solution: Solution, ctx: BuildContext) -> Solution:
        """Exchange one order between two vehicles when both still fit."""
        for _ in range(SWAP_PASSES):
            improved = self._first_swap(solution, ctx)
            if improved is None:
                return solution
            solution = improved
        return solution

    def _first_swap(self, solution: Solution, ctx: BuildContext) -> Optional[Solution]:
        assignments = solution.assignments
        for a in range(len(assignments) - 1):
            for b in range(a + 1, len(assignments)):
                first, second = assignments[a], assignments[b]
                current = (self._estimate(first, first.orders, ctx)
                           + self._estimate(second, second.orders, ctx))
                load_a, load_b = first.load_volume(), second.load_volume()
                for i, o1 in enumerate(first.orders):
                    for j, o2 in enumerate(second.orders):
                        if load_a - o1.volume + o2.volume > first.vehicle.capacity:
                            continue
                        if load_b - o2.volume + o1.volume > second.vehicle.capacity:
                            continue
                        seq_a = first.orders[:i] + [o2] + first.orders[i + 1:]
                        seq_b = second.orders[:j] + [o1] + second.orders[j + 1:]
                        estimate = self._estimate(first, seq_a, ctx) + self._estimate(second, seq_b, ctx)
                        if estimate >= current:
                            continue
                        improved = self._try(solution, {a: seq_a, b: seq_b}, ctx)
                        if improved is not None:
                            return improved
        return None

    def relocate_orders(self, solution: Solution, ctx: BuildContext) -> Solution:
        """Move one order to the cheapest position of another vehicle's route."""
        for _ in range(RELOCATE_PASSES):
            improved = self._first_relocation(solution, ctx)
            if improved is None:
                return solution
            solution = improved
        return solution

    def _first_relocation(self, solution: Solution, ctx: BuildContext) -> Optional[Solution]:
        assignments = solution.assignments
        for a, source in enumerate(assignments):
            for i, order in enumerate(source.orders):
                remaining = source.orders[:i] + source.orders[i + 1:]
                saved = (self._estimate(source, source.orders, ctx)
                         - self._estimate(source, remaining, ctx))
                for b, target in enumerate(assignments):
                    if a == b or target.load_volume() + order.volume > target.vehicle.capacity:
                        continue
                    inserted = self._cheapest_insertion(target, order, ctx)
                    added = (self._estimate(target, inserted, ctx)
                             - self._estimate(target, target.orders, ctx))
                    if added >= saved:
                        continue
                    improved = self._try(solution, {a: remaining, b: inserted}, ctx)
                    if improved is not None:
                        return improved
        return None
