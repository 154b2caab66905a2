"""
Tests for local search over finished plans.

Verifies:
- 2-opt untangles a single route
- Swap hands each vehicle the order next to it
- Relocate merges two short routes into one
- A plan with nothing to gain is returned as is
- Re-threading keeps the reservations of routes it does not touch
"""

from core.aco.ant import RouteBuilder
from core.aco.evaluator import SolutionEvaluator
from core.aco.local_search import LocalSearch, route_estimate
from env.types_fleet import Location, Solution
from tests.factories import central, intermediate, make_context, make_order, small_params, truck


def planned(ctx, params, routes):
    """Scored plan threading each (vehicle, orders) pair in the given order."""
    builder = RouteBuilder(0, params)
    tanks = [t.clone() for t in ctx.tanks]
    solution = Solution()
    for vehicle, sequence in routes:
        assignment, dropped = builder.route_sequence(vehicle, sequence, ctx, tanks, solution)
        assert not dropped
        solution.assignments.append(assignment)
    SolutionEvaluator(ctx.graph, params).score(solution, ctx.now)
    return solution


def searcher(ctx, params):
    return LocalSearch(params, SolutionEvaluator(ctx.graph, params))


def served(solution):
    return {a.vehicle.id: [o.id for o in a.orders] for a in solution.assignments}


class TestLocalSearch:

    def test_route_estimate(self):
        depots = [Location(0, 0), Location(10, 0)]
        assert route_estimate(Location(0, 0), [Location(3, 0), Location(8, 0)], depots) == 10
        assert route_estimate(Location(0, 0), [], depots) == 0
        print("[PASS] route estimate")

    def test_two_opt_untangles_route(self):
        params = small_params()
        p2, p4, p6 = make_order("P2", 2, 0), make_order("P4", 4, 0), make_order("P6", 6, 0)
        ctx = make_context([p2, p4, p6], [truck("TA01")], [central()], params=params)
        tangled = planned(ctx, params, [(truck("TA01"), [p6, p2, p4])])

        improved = searcher(ctx, params).improve(tangled, ctx)

        assert improved.quality > tangled.quality
        assert improved.total_distance() < tangled.total_distance()
        assert sorted(o.id for o in improved.assigned_orders()) == ["P2", "P4", "P6"]
        assert not improved.unassigned
        # input plan untouched
        assert served(tangled) == {"TA01": ["P6", "P2", "P4"]}
        print("[PASS] 2-opt")

    def test_swap_between_vehicles(self):
        params = small_params()
        west, east = make_order("P1", 1, 0), make_order("P19", 19, 0)
        tanks = [central(0, 0), intermediate("EAST", 20, 0)]
        ctx = make_context([west, east], [truck("TA01"), truck("TA02", x=20)], tanks, params=params)
        crossed = planned(ctx, params, [(truck("TA01"), [east]), (truck("TA02", x=20), [west])])

        improved = searcher(ctx, params).improve(crossed, ctx)

        assert served(improved) == {"TA01": ["P1"], "TA02": ["P19"]}
        assert improved.quality > crossed.quality
        assert improved.total_distance() == 4
        print("[PASS] swap")

    def test_relocate_merges_routes(self):
        params = small_params()
        p10, p11 = make_order("P10", 10, 0), make_order("P11", 11, 0)
        ctx = make_context([p10, p11], [truck("TA01"), truck("TA02")], [central()], params=params)
        split = planned(ctx, params, [(truck("TA01"), [p10]), (truck("TA02"), [p11])])

        improved = searcher(ctx, params).improve(split, ctx)

        assert improved.vehicles_used() == 1
        assert improved.assigned_count() == 2
        assert not improved.unassigned
        assert improved.total_distance() == 22
        assert improved.quality > split.quality
        print("[PASS] relocate")

    def test_nothing_to_gain(self):
        params = small_params()
        order = make_order("P1", 10, 0)
        ctx = make_context([order], [truck("TA01")], [central()], params=params)
        solution = planned(ctx, params, [(truck("TA01"), [order])])

        assert searcher(ctx, params).improve(solution, ctx, rounds=5) is solution
        print("[PASS] no improving move")

    def test_rebuild_keeps_reservations_of_untouched_routes(self):
        params = small_params()
        far, near = make_order("P1", 40, 0), make_order("P2", 3, 0)
        tanks = [central(0, 0), intermediate("MID", 32, 0)]
        low = truck("TA01", x=30, fuel=0.395)
        ctx = make_context([far, near], [low, truck("TA02")], tanks, width=60, height=10, params=params)
        solution = planned(ctx, params, [(low, [far]), (truck("TA02"), [near])])
        assert [r.vehicle_id for r in solution.reservations["MID"]] == ["TA01"]

        search = searcher(ctx, params)
        other = search.rebuild(solution, {1: [near]}, ctx)
        assert [r.vehicle_id for r in other.reservations["MID"]] == ["TA01"]
        assert other.assignments[0].legs == solution.assignments[0].legs

        same = search.rebuild(solution, {0: [far]}, ctx)
        assert [r.vehicle_id for r in same.reservations["MID"]] == ["TA01"]
        assert len(same.assignments[1].refuel_legs()) == 0
        assert [leg.tank_id for leg in same.assignments[0].refuel_legs()] == ["MID"]
        print("[PASS] rebuild keeps untouched reservations")
