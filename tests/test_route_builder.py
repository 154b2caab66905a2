"""
Tests for the route builder (one ant).

Verifies:
- Best-fit vehicle choice and proximity clustering limits
- The q0 exploitation branch of the decision rule, blockage penalty and look-ahead blend
- Refuel detours inserted before a leg that would break the safety margin
- Unreachable orders end up unassigned instead of raising; a failed route frees its reservations
- Threading a fixed order sequence
- Oversized orders are split across vehicles
- Same seed, same solution
"""

from datetime import timedelta

import numpy as np
import pytest

from core.aco.ant import RouteBuilder
from env.types_fleet import Blockage, LegKind, Location, Solution
from tests.factories import START, central, intermediate, make_context, make_order, small_params, truck


class TestVehicleSelection:

    def test_smallest_sufficient_capacity(self):
        fleet = [truck("TA01", "TA"), truck("TC01", "TC"), truck("TD01", "TD")]
        assert RouteBuilder.select_vehicle(fleet, 4.0).id == "TD01"
        assert RouteBuilder.select_vehicle(fleet, 6.0).id == "TC01"
        assert RouteBuilder.select_vehicle(fleet, 20.0).id == "TA01"
        print("[PASS] best-fit capacity")

    def test_nothing_fits(self):
        fleet = [truck("TC01", "TC"), truck("TD01", "TD")]
        assert RouteBuilder.select_vehicle(fleet, 30.0) is None
        assert RouteBuilder.select_vehicle([], 1.0) is None
        print("[PASS] no vehicle large enough")

    def test_low_fuel_is_preferred(self):
        # TB: 15/5 / 2 = 1.5 beats TC: 10/5 / 1 = 2
        fleet = [truck("TC01", "TC"), truck("TB01", "TB", fuel=0.0)]
        assert RouteBuilder.select_vehicle(fleet, 5.0).id == "TB01"
        print("[PASS] fuel factor")


class TestClustering:

    def test_group_size_limit(self):
        builder = RouteBuilder(0, small_params())
        orders = [make_order(f"P{i}", i, 0, volume=1.0) for i in range(8)]
        clusters = builder.cluster_orders(orders, np.random.default_rng(0))
        assert [len(c) for c in clusters] == [5, 3]
        print("[PASS] group size limit")

    def test_group_volume_limit(self):
        builder = RouteBuilder(0, small_params())
        orders = [make_order(f"P{i}", i, 0, volume=5.0) for i in range(4)]
        clusters = builder.cluster_orders(orders, np.random.default_rng(0))
        assert [sum(o.volume for o in c) for c in clusters] == [15.0, 5.0]
        print("[PASS] group volume limit")

    def test_distant_orders_split(self):
        builder = RouteBuilder(0, small_params())
        orders = [make_order("P1", 0, 0), make_order("P2", 60, 0)]
        clusters = builder.cluster_orders(orders, np.random.default_rng(0))
        assert len(clusters) == 2
        print("[PASS] distant orders in separate clusters")


class TestDecisionRule:

    def test_exploitation_picks_nearer_order(self):
        params = small_params(q0=1.0)
        near, far = make_order("NEAR", 2, 0), make_order("FAR", 20, 0)
        ctx = make_context([near, far], [truck("TA01")], [central()], params=params)
        builder = RouteBuilder(0, params)

        for seed in range(5):
            choice = builder.choose_next(Location(0, 0), [far, near], ctx.now, ctx, np.random.default_rng(seed))
            assert choice is near
        print("[PASS] q0 exploitation")

    def test_single_candidate_returned(self):
        params = small_params()
        only = make_order("P1", 5, 5)
        ctx = make_context([only], [truck("TA01")], [central()], params=params)
        assert RouteBuilder(0, params).choose_next(Location(0, 0), [only], ctx.now, ctx,
                                                   np.random.default_rng(0)) is only
        print("[PASS] single candidate")

    def test_blocked_candidate_is_penalised_and_still_blended(self):
        params = small_params()
        wall = Blockage(START, START + timedelta(hours=1000), (Location(5, 0), Location(5, 30)))
        blocked, free = make_order("BLK", 10, 0), make_order("FREE", 0, 3)
        ctx = make_context([blocked, free], [truck("TA01")], [central()], params=params, blockages=[wall])
        builder = RouteBuilder(0, params)

        scores = builder.candidate_scores(Location(0, 0), [blocked, free], START, ctx)

        w = params.lookahead_weight
        penalised = builder._attractiveness(ctx, Location(0, 0), blocked.destination) \
            * params.blockage_lookahead_penalty
        onward = builder._attractiveness(ctx, blocked.destination, free.destination)
        assert scores[0] == pytest.approx((1.0 - w) * penalised + w * onward)
        assert scores[0] < scores[1]
        print("[PASS] penalty then look-ahead blend")


class TestBuild:

    def test_simple_delivery_and_return(self):
        params = small_params()
        order = make_order("P1", 10, 0)
        ctx = make_context([order], [truck("TA01")], [central()], params=params)

        solution = RouteBuilder(0, params).build(ctx, seed=1)

        assert not solution.unassigned
        assert len(solution.assignments) == 1
        legs = solution.assignments[0].legs
        assert [leg.kind for leg in legs] == [LegKind.DELIVERY, LegKind.RETURN]
        assert legs[0].destination == Location(10, 0) and legs[0].distance == 10
        assert legs[1].destination == Location(0, 0)
        print("[PASS] delivery then return")

    def test_refuel_inserted_before_delivery(self):
        # Needs (10 + 8) * 5 / 180 = 0.5 gal; 0.8 * 0.395 = 0.316 is not enough
        params = small_params()
        tanks = [central(0, 0), intermediate("MID", 32, 0)]
        order = make_order("P1", 40, 0)
        ctx = make_context([order], [truck("TA01", x=30, fuel=0.395)], tanks,
                           width=60, height=10, params=params)

        solution = RouteBuilder(0, params).build(ctx, seed=3)

        assert not solution.unassigned
        assignment = solution.assignments[0]
        assert [leg.kind for leg in assignment.legs] == [LegKind.REFUEL, LegKind.DELIVERY, LegKind.RETURN]
        assert [leg.tank_id for leg in assignment.refuel_legs()] == ["MID"]
        assert assignment.legs[2].tank_id == "MID"
        assert all(level >= 0 for level in assignment.fuel_levels)
        assert assignment.fuel_levels[0] == assignment.vehicle.fuel_capacity

        # reservation lives on the solution, the shared snapshot is untouched
        assert solution.reservations["MID"][0].vehicle_id == "TA01"
        assert all(not t.reservations for t in ctx.tanks)
        print("[PASS] refuel detour")

    def test_unreachable_destination_is_unassigned(self):
        params = small_params()
        order = make_order("P1", 50, 50)
        ctx = make_context([order], [truck("TA01")], [central()], params=params)

        solution = RouteBuilder(0, params).build(ctx, seed=0)

        assert [o.id for o in solution.unassigned] == ["P1"]
        assert not solution.assignments
        print("[PASS] unreachable order left unassigned")

    def test_failed_route_releases_reservations(self):
        class FailingReturn(RouteBuilder):
            def _return_leg(self, *args, **kwargs):
                raise RuntimeError("depot lookup failed")

        params = small_params()
        tanks = [central(0, 0), intermediate("MID", 32, 0)]
        ctx = make_context([make_order("P1", 40, 0)], [truck("TA01", x=30, fuel=0.395)], tanks,
                           width=60, height=10, params=params)

        solution = FailingReturn(0, params).build(ctx, seed=3)

        assert [o.id for o in solution.unassigned] == ["P1"]
        assert not solution.assignments
        assert not solution.reservations
        print("[PASS] failed route releases reservations")

    def test_route_sequence_keeps_the_given_order(self):
        params = small_params()
        far, near = make_order("FAR", 20, 0), make_order("NEAR", 2, 0)
        ctx = make_context([far, near], [truck("TA01")], [central()], params=params)
        vehicle = truck("TA01")

        assignment, dropped = RouteBuilder(0, params).route_sequence(vehicle, [far, near], ctx,
                                                                     list(ctx.tanks), Solution())

        assert not dropped
        assert [o.id for o in assignment.orders] == ["FAR", "NEAR"]
        assert [leg.kind for leg in assignment.legs] == [LegKind.DELIVERY, LegKind.DELIVERY, LegKind.RETURN]
        print("[PASS] fixed sequence threading")

    def test_no_vehicles(self):
        params = small_params()
        order = make_order("P1", 5, 5)
        ctx = make_context([order], [], [central()], params=params)
        solution = RouteBuilder(0, params).build(ctx, seed=0)
        assert solution.unassigned == [order]
        print("[PASS] no vehicles")

    def test_oversized_order_split(self):
        params = small_params()
        order = make_order("P1", 10, 0, volume=40.0)
        ctx = make_context([order], [truck("TA01"), truck("TA02")], [central()], params=params)

        solution = RouteBuilder(0, params).build(ctx, seed=5)

        assert not solution.unassigned
        assert sorted(o.id for o in solution.assigned_orders()) == ["P1-1", "P1-2"]
        assert {o.parent_id for o in solution.assigned_orders()} == {"P1"}
        assert sum(o.volume for o in solution.assigned_orders()) == 40.0
        print("[PASS] oversized order split")

    def test_same_seed_same_solution(self):
        params = small_params(q0=0.5)
        orders = [make_order(f"P{i}", 3 * i, (7 * i) % 20, volume=2.0) for i in range(1, 9)]
        fleet = [truck("TA01"), truck("TB01", "TB"), truck("TC01", "TC")]
        ctx = make_context(orders, fleet, [central()], params=params)

        first = RouteBuilder(0, params).build(ctx, seed=11)
        second = RouteBuilder(0, params).build(ctx, seed=11)

        assert [[leg for leg in a.legs] for a in first.assignments] == \
            [[leg for leg in a.legs] for a in second.assignments]
        assert [o.id for o in first.unassigned] == [o.id for o in second.unassigned]
        print("[PASS] deterministic build")
