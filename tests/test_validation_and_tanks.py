"""
Tests for input validation, tank inventory and stress signals.
"""

from datetime import timedelta

import numpy as np

from core.aco.collapse import CollapseDetector, operational_indicator
from core.aco.tanks import TankManager, days_to_exhaustion, reserve, select_refuel_tank
from core.utils.validation import validate_city_map
from env.data_generation import generate_city_map
from env.types_fleet import Blockage, Location, Order, Reservation, Solution, VehicleState
from env.utils_fleet import is_critical, urgency
from tests.factories import START, central, intermediate, make_city, make_order, small_params, truck


class TestValidation:

    def test_invalid_records_reported(self):
        orders = [
            make_order("OK", 5, 5),
            make_order("OUT", 40, 5),
            make_order("EMPTY", 5, 5, volume=0.0),
            make_order("HUGE", 5, 5, volume=250.0),
            make_order("RUSH", 5, 5, hours=2),
        ]
        blockages = [
            Blockage(START, START + timedelta(hours=1), (Location(1, 1), Location(1, 5))),
            Blockage(START, START + timedelta(hours=1), (Location(1, 1), Location(3, 5))),
            Blockage(START + timedelta(hours=2), START, (Location(1, 1), Location(1, 5))),
        ]
        vehicles = [truck("TA01"), truck("TA02", fuel=-1.0)]
        report = validate_city_map(make_city(orders, vehicles=vehicles, blockages=blockages), small_params())

        assert [o.id for o in report.orders] == ["OK"]
        assert [v.id for v in report.vehicles] == ["TA01"]
        assert len(report.blockages) == 1
        assert len(report.issues) == 4 + 1 + 2
        assert not report.ok
        print("[PASS] invalid records reported")

    def test_generated_city_is_valid(self):
        city = generate_city_map(num_orders=15, num_blockages=2, seed=4)
        report = validate_city_map(city, small_params())
        assert report.ok, report.issues
        assert len(city.orders) == 15
        assert city.central_tank().location == Location(12, 8)
        print("[PASS] generated city is valid")


class TestTanks:

    def test_days_to_exhaustion(self):
        tank = intermediate("EAST", 63, 3)
        assert np.isclose(days_to_exhaustion(tank, START), 1.6)
        reserve(tank, "TA01", 60.0, START + timedelta(hours=3))
        assert np.isclose(days_to_exhaustion(tank, START), 1.0)
        assert days_to_exhaustion(central(), START) == float("inf")
        print("[PASS] days to exhaustion")

    def test_exhaustion_alerts_and_refill(self):
        manager = TankManager([central(), intermediate("EAST", 63, 3), intermediate("NORTH", 42, 42)])
        assert sorted(t.id for t in manager.exhaustion_alerts(START)) == ["EAST", "NORTH"]

        manager.tanks["EAST"].available = 10.0
        assert [t.id for t in manager.low_tanks(20.0)] == ["EAST"]
        manager.refill_intermediate()
        assert manager.tanks["EAST"].available == 160.0
        assert not manager.low_tanks(20.0)
        print("[PASS] alerts and refill")

    def test_reconcile_clamps_to_volume(self):
        manager = TankManager([central(), intermediate("EAST", 63, 3, available=50.0)])
        best = Solution(reservations={
            "EAST": [Reservation("TA01", 30.0, START), Reservation("TA02", 30.0, START)],
            "CENTRAL": [Reservation("TB01", 25.0, START)],
        })
        manager.reconcile(best)

        east = manager.tanks["EAST"]
        assert [r.amount for r in east.reservations] == [30.0, 20.0]
        assert east.real_availability() == 0.0
        assert len(manager.tanks["CENTRAL"].reservations) == 1

        manager.reconcile(Solution())
        assert not east.reservations
        print("[PASS] reconcile clamps")

    def test_snapshots_are_private(self):
        manager = TankManager([intermediate("EAST", 63, 3)])
        snapshot = manager.snapshot()
        reserve(snapshot[0], "TA01", 25.0, START)
        assert not manager.tanks["EAST"].reservations
        print("[PASS] private snapshots")

    def test_snapshot_drops_committed_reservations(self):
        manager = TankManager([central(), intermediate("MID", 32, 0, available=26.0)])
        manager.reconcile(Solution(reservations={"MID": [Reservation("TA01", 24.6, START)]}))
        assert manager.tanks["MID"].real_availability() < 2.0

        mid = [t for t in manager.snapshot() if t.id == "MID"][0]
        assert not mid.reservations
        assert mid.real_availability() == 26.0
        # the committed plan is still visible on the manager itself
        assert len(manager.tanks["MID"].reservations) == 1
        print("[PASS] snapshot drops committed reservations")

    def test_central_fallback(self):
        tanks = [central(0, 0), intermediate("DRY", 5, 0, available=5.0)]
        chosen = select_refuel_tank(tanks, Location(4, 0), [Location(10, 0)], fuel=10.0, refill=20.0,
                                    weight=5.0, now=START)
        assert chosen.id == "CENTRAL"

        assert select_refuel_tank([central(0, 0)], Location(100, 0), [Location(110, 0)], fuel=0.1,
                                  refill=20.0, weight=5.0, now=START) is None
        print("[PASS] central fallback")

    def test_nearby_intermediate_preferred(self):
        tanks = [central(0, 0), intermediate("MID", 32, 0)]
        chosen = select_refuel_tank(tanks, Location(30, 0), [Location(40, 0)], fuel=5.0, refill=20.0,
                                    weight=5.0, now=START)
        assert chosen.id == "MID"
        print("[PASS] nearby intermediate preferred")


class TestStressSignals:

    def test_urgency_curve(self):
        order = Order("P1", Location(1, 1), 5.0, START, START + timedelta(hours=10))
        assert urgency(order, START - timedelta(hours=1)) == 0.0
        assert np.isclose(urgency(order, START + timedelta(hours=5)), 0.25)
        assert urgency(order, START + timedelta(hours=11)) == 1.0
        assert is_critical(order, START + timedelta(hours=9))
        assert not is_critical(order, START + timedelta(hours=5))
        print("[PASS] urgency curve")

    def test_collapse_needs_consecutive_iterations(self):
        detector = CollapseDetector(threshold=0.2, patience=3)
        order = make_order("P1", 1, 1)
        bad = [Solution(unassigned=[order])]
        good = [Solution()]

        assert not detector.observe(bad, 1)
        assert not detector.observe(bad, 1)
        assert not detector.observe(good, 1)
        assert not detector.observe(bad, 1)
        assert not detector.observe(bad, 1)
        assert detector.observe(bad, 1)
        print("[PASS] collapse streak")

    def test_operational_indicator(self):
        fleet = [truck(f"TD{i:02d}", "TD") for i in range(10)]
        for vehicle in fleet[:8]:
            vehicle.state = VehicleState.BROKEN
        late = [make_order(f"P{i}", 1, 1, hours=1) for i in range(3)]

        assert np.isclose(operational_indicator(fleet, late, START), 0.8)
        assert operational_indicator(fleet[8:], [], START, delivery_time_ratio=2.5) == 0.2
        print("[PASS] operational indicator")
