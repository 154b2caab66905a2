"""
Master test runner - runs all tests in the test suite.

Execute this file to run every test class in order:
1. Graph and field tests
2. Route builder, evaluator and local search tests
3. Colony, configuration, validation and tank tests
4. End-to-end orchestrator tests
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def run_test_class(cls):
    """Instantiate `cls` and call each test_* method; returns the failure count."""
    failures = 0
    for name in sorted(n for n in dir(cls) if n.startswith("test_")):
        instance = cls()
        if hasattr(instance, "setup_method"):
            instance.setup_method()
        try:
            getattr(instance, name)()
        except Exception as e:
            print(f"[FAIL] {cls.__name__}.{name}: {e!r}")
            failures += 1
    return failures


def run_all():
    """Run all tests in sequence."""
    from tests.test_colony_and_config import TestColony, TestCommandLine, TestParameters
    from tests.test_evaluator import TestSolutionEvaluator
    from tests.test_fields import TestEdgeTable, TestHeuristicField, TestPheromoneField
    from tests.test_local_search import TestLocalSearch
    from tests.test_orchestrator import TestEvents, TestGreedyBaseline, TestRunOutcomes, TestTelemetryAndTuning
    from tests.test_route_builder import TestBuild, TestClustering, TestDecisionRule, TestVehicleSelection
    from tests.test_route_graph import TestBlockageQueries, TestPathFinding, TestSegmentIntersection
    from tests.test_validation_and_tanks import TestStressSignals, TestTanks, TestValidation

    groups = [
        ("Graph and Field Tests", [TestBlockageQueries, TestPathFinding, TestSegmentIntersection,
                                   TestEdgeTable, TestPheromoneField, TestHeuristicField]),
        ("Route Builder, Evaluator and Local Search Tests", [TestVehicleSelection, TestClustering,
                                                            TestDecisionRule, TestBuild,
                                                            TestSolutionEvaluator, TestLocalSearch]),
        ("Colony, Config, Validation and Tank Tests", [TestColony, TestParameters, TestCommandLine,
                                                       TestValidation, TestTanks, TestStressSignals]),
        ("Orchestrator Tests", [TestRunOutcomes, TestEvents, TestTelemetryAndTuning, TestGreedyBaseline]),
    ]

    print("\n" + "=" * 70)
    print("RUNNING COMPLETE TEST SUITE")
    print("=" * 70 + "\n")

    all_passed = True
    for i, (title, classes) in enumerate(groups, start=1):
        print(f"[{i}/{len(groups)}] Running {title}...")
        print("-" * 70)
        failures = sum(run_test_class(cls) for cls in classes)
        if failures:
            print(f"[FAIL] {title}: {failures} failing\n")
            all_passed = False
        else:
            print(f"[PASS] {title} completed\n")

    print("=" * 70)
    if all_passed:
        print("SUCCESS - ALL TESTS PASSED")
        print("=" * 70)
        print("\nRun a planning session with: python main.py --no-wandb")
        return 0
    else:
        print("FAILURE - SOME TESTS FAILED")
        print("=" * 70)
        return 1


if __name__ == "__main__":
    exit_code = run_all()
    sys.exit(exit_code)
