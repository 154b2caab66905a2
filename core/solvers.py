"""
Solver capability.

Every planning strategy exposes the same `solve(city, params)` call and is
swapped by composition; the ACO orchestrator is the canonical one and
baselines.GreedySolver is the benchmark alternative.
"""

from typing import Protocol

from configs.config import AcoParameters
from core.aco.orchestrator import AcoOrchestrator, RunResult
from env.types_fleet import CityMap


class Solver(Protocol):
    name: str

    def solve(self, city: CityMap, params: AcoParameters) -> RunResult:
        ...


class AcoSolver:
    name = "aco"

    def __init__(self, on_iteration=None, stop_event=None):
        self.on_iteration = on_iteration
        self.stop_event = stop_event

    def solve(self, city: CityMap, params: AcoParameters) -> RunResult:
        return AcoOrchestrator(city, params, self.on_iteration, self.stop_event).run()
