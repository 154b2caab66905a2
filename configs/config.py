import argparse
from dataclasses import dataclass, fields, replace
from typing import Callable, Dict, Optional

WORKER_BACKENDS = ("serial", "thread", "process")


class ConfigError(ValueError):
    """Invalid or unknown configuration value."""


@dataclass
class AcoParameters:
    # --- Colony ---
    ants: int = 10
    iterations: int = 50
    stagnation_limit: int = 15
    early_convergence_fraction: float = 0.6  # perturb before this share of iterations, converge after
    evaporation: float = 0.7
    alpha: float = 1.0
    beta: float = 2.0
    q0: float = 0.95  # exploitation probability
    initial_pheromone: float = 0.1
    pheromone_floor: float = 0.001
    deposit_factor: float = 10.0
    perturb_amplitude: float = 0.2
    perturb_fraction: float = 0.1
    perturb_boost: float = 3.0
    local_search_rate: float = 0.8  # share of candidates polished each iteration
    local_search_final_rounds: int = 10  # polishing rounds on the final best plan

    # --- Time ---
    replanning_base_min: int = 60
    min_lead_time_h: float = 4.0
    speed_kmh: float = 50.0
    unload_min: float = 15.0
    routine_maintenance_min: float = 15.0
    time_step_min: int = 15

    # --- Cost model ---
    fuel_efficiency: float = 180.0  # gallons = km * t / fuel_efficiency
    fuel_safety_margin: float = 0.8
    late_penalty_per_min: float = 1000.0
    blockage_penalty: float = 5000.0
    maintenance_penalty: float = 10000.0
    unassigned_penalty: float = 20000.0

    # --- Heuristic signals ---
    urgency_threshold: float = 0.3
    urgency_factor: float = 2.0
    urgency_radius: int = 15
    tank_priority_factor: float = 1.2
    tank_radius: int = 15
    min_refuel_capacity: float = 10.0
    blocked_multiplier: float = 1e-4
    heuristic_floor: float = 1e-4
    blockage_lookahead_penalty: float = 0.1
    lookahead_weight: float = 0.3

    # --- Clustering ---
    proximity_threshold: float = 50.0
    max_group_size: int = 5
    max_group_volume: float = 15.0

    # --- Collapse / tanks ---
    collapse_threshold: float = 0.20
    collapse_patience: int = 5
    critical_tank_level: float = 20.0
    exhaustion_alert_days: float = 2.0

    # --- Execution ---
    workers: int = 4
    worker_backend: str = "thread"
    seed: int = 42

    def validate(self) -> "AcoParameters":
        """Fail fast on values the search cannot run with."""
        if self.worker_backend not in WORKER_BACKENDS:
            raise ConfigError(
                f"Unknown worker_backend '{self.worker_backend}', expected one of {WORKER_BACKENDS}"
            )
        for name in ("ants", "iterations", "stagnation_limit", "workers", "time_step_min",
                     "replanning_base_min", "max_group_size", "collapse_patience"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1, got {getattr(self, name)}")
        for name in ("evaporation", "q0", "early_convergence_fraction", "fuel_safety_margin",
                     "collapse_threshold", "perturb_amplitude", "perturb_fraction", "lookahead_weight",
                     "local_search_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be in [0, 1], got {value}")
        for name in ("initial_pheromone", "pheromone_floor", "heuristic_floor", "speed_kmh",
                     "fuel_efficiency", "max_group_volume", "proximity_threshold"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.local_search_final_rounds < 0:
            raise ConfigError(f"local_search_final_rounds must be >= 0, got {self.local_search_final_rounds}")
        if self.pheromone_floor > self.initial_pheromone:
            raise ConfigError("pheromone_floor cannot exceed initial_pheromone")
        return self

    @classmethod
    def from_dict(cls, values: Dict) -> "AcoParameters":
        """Build from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"Unknown parameters: {sorted(unknown)}")
        return cls(**values).validate()


def _fast(p: AcoParameters) -> AcoParameters:
    return replace(p, ants=15, iterations=100, stagnation_limit=20)


def _balanced(p: AcoParameters) -> AcoParameters:
    return replace(p, ants=30, iterations=300, stagnation_limit=50)


def _quality(p: AcoParameters) -> AcoParameters:
    return replace(p, ants=50, iterations=1000, stagnation_limit=100, q0=0.8)


def _sensitive_collapse(p: AcoParameters) -> AcoParameters:
    return replace(p, collapse_threshold=0.15)


def _urgency_priority(p: AcoParameters) -> AcoParameters:
    return replace(p, urgency_factor=3.0, late_penalty_per_min=2000.0)


PRESETS: Dict[str, Callable[[AcoParameters], AcoParameters]] = {
    "default": lambda p: p,
    "fast": _fast,
    "balanced": _balanced,
    "quality": _quality,
    "sensitive_collapse": _sensitive_collapse,
    "urgency_priority": _urgency_priority,
}


def apply_preset(name: str, base: Optional[AcoParameters] = None) -> AcoParameters:
    if name not in PRESETS:
        raise ConfigError(f"Unknown preset '{name}', expected one of {sorted(PRESETS)}")
    return PRESETS[name](base or AcoParameters()).validate()


@dataclass
class Config:
    # --- Experiment ---
    project_name: str = "lpg-dispatch-aco"
    run_name: str = "default"
    seed: int = 42
    wandb: bool = True  # Toggle W&B logging
    output_csv: str = "runs/history.csv"

    # --- Instance ---
    width: int = 70
    height: int = 50
    num_orders: int = 40
    num_blockages: int = 3

    # --- Search ---
    preset: str = "default"
    ants: Optional[int] = None
    iterations: Optional[int] = None
    workers: int = 4
    worker_backend: str = "thread"

    def aco_parameters(self) -> AcoParameters:
        params = apply_preset(self.preset)
        overrides = {"seed": self.seed, "workers": self.workers, "worker_backend": self.worker_backend}
        if self.ants is not None:
            overrides["ants"] = self.ants
        if self.iterations is not None:
            overrides["iterations"] = self.iterations
        return replace(params, **overrides).validate()


def parse_args(argv=None) -> Config:

    base_cfg = Config()
    parser = argparse.ArgumentParser(description="Plan LPG deliveries with ant colony optimisation")

    parser.add_argument("--orders", type=int, default=base_cfg.num_orders)
    parser.add_argument("--blockages", type=int, default=base_cfg.num_blockages)
    parser.add_argument("--width", type=int, default=base_cfg.width)
    parser.add_argument("--height", type=int, default=base_cfg.height)
    parser.add_argument("--preset", type=str, default=base_cfg.preset, choices=sorted(PRESETS))
    parser.add_argument("--ants", type=int, default=None)
    parser.add_argument("--iterations", type=int, default=None)
    parser.add_argument("--workers", type=int, default=base_cfg.workers)
    parser.add_argument("--backend", type=str, default=base_cfg.worker_backend, choices=WORKER_BACKENDS)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--output", type=str, default=base_cfg.output_csv)

    # Flag: --no-wandb to disable logging
    parser.add_argument("--no-wandb", action="store_true", help="Disable W&B")

    args = parser.parse_args(argv)

    # Construct Run Name
    run_name = f"O{args.orders}_{args.preset}_sd{args.seed}"

    cfg = Config(
        num_orders=args.orders,
        num_blockages=args.blockages,
        width=args.width,
        height=args.height,
        preset=args.preset,
        ants=args.ants,
        iterations=args.iterations,
        workers=args.workers,
        worker_backend=args.backend,
        seed=args.seed,
        output_csv=args.output,
        wandb=not args.no_wandb,
        run_name=run_name
    )
    # Surface configuration errors before any iteration runs
    cfg.aco_parameters()
    return cfg
