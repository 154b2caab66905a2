import logging
import os

import pandas as pd
from tqdm import tqdm

import wandb
from baselines import GreedySolver, summarize
from configs.config import parse_args
from core.solvers import AcoSolver
from core.utils.route_plans import build_route_plans
from env.data_generation import generate_city_map


def plan():
    """
    Generate: Build a random city (standard fleet and tanks, random orders and blockages).
    Search: The colony builds candidate plans every simulated time step.
    Report: Each iteration's best quality and counts go to the progress bar and W&B.
    Compare: The greedy baseline runs on the same city for reference.
    Export: The iteration history is written to CSV.
    """
    cfg = parse_args()
    params = cfg.aco_parameters()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    city = generate_city_map(num_orders=cfg.num_orders, width=cfg.width, height=cfg.height,
                             num_blockages=cfg.num_blockages, seed=cfg.seed)

    if cfg.wandb:
        wandb.init(project=cfg.project_name, name=cfg.run_name, config=vars(params))

    print(f"--> STARTING RUN: {cfg.run_name}")
    pbar = tqdm(total=params.iterations)

    def on_iteration(record):
        pbar.update(1)
        if (record["iteration"] + 1) % 5 == 0:
            pbar.write(
                f"Iter {record['iteration'] + 1:>4} | "
                f"Best Q: {record['best_quality']:.3e} | "
                f"Assigned: {record['assigned']:>3} | "
                f"Unassigned: {record['unassigned']:>3} | "
                f"Fuel: {record['fuel']:.2f}gal"
            )
        if cfg.wandb:
            wandb.log(record)

    result = AcoSolver(on_iteration=on_iteration).solve(city, params)
    pbar.close()

    baseline = GreedySolver().solve(city, params)
    for name, metrics in (("aco", summarize(result)), ("greedy", summarize(baseline))):
        print(f"{name:>7}: " + ", ".join(f"{k}={v:.4g}" if isinstance(v, float) else f"{k}={v}"
                                         for k, v in metrics.items()))

    for route in build_route_plans(result.best.assignments, params):
        print(f"Truck {route.vehicle_id}: {route.distance:.0f} km, {route.hours:.2f} h, "
              f"{route.consumption:.2f} gal")

    out_dir = os.path.dirname(cfg.output_csv)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    pd.DataFrame(result.history).to_csv(cfg.output_csv, index=False)

    if cfg.wandb:
        wandb.summary.update(summarize(result))
        wandb.finish()


if __name__ == "__main__":
    plan()
