"""
Colony: a fixed-size pool of route builders run once per iteration.

Builders execute on a bounded worker pool. Collecting every future is the
barrier that separates the parallel build phase from the single-writer
update phase in the orchestrator. Results come back in ant order whatever
the completion order, so a fixed seed always yields the same candidates.
"""

import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence, Tuple

from configs.config import AcoParameters, ConfigError
from core.aco.ant import BuildContext, RouteBuilder
from env.types_fleet import Solution

logger = logging.getLogger(__name__)


def run_builder(args: Tuple[RouteBuilder, BuildContext, int]) -> Solution:
    """Build one candidate. Module-level so process pools can pickle it."""
    builder, ctx, seed = args
    return builder.build(ctx, seed)


class Colony:
    """
    Attributes:
        params: search parameters (ants, workers, worker_backend)
        builders: one RouteBuilder per ant
    """

    def __init__(self, params: AcoParameters, ants: Optional[int] = None):
        self.params = params
        self.builders: List[RouteBuilder] = []
        self.configure(params, ants or params.ants)

    def configure(self, params: AcoParameters, ants: int) -> None:
        """Rebuild the ants; replanning uses this to adapt colony size and q0."""
        self.params = params
        self.builders = [RouteBuilder(i, params) for i in range(max(1, ants))]

    def __len__(self) -> int:
        return len(self.builders)

    def _executor(self) -> Optional[Executor]:
        backend = self.params.worker_backend
        workers = max(1, min(self.params.workers, len(self.builders)))
        if backend == "serial" or workers == 1:
            return None
        if backend == "thread":
            return ThreadPoolExecutor(max_workers=workers)
        if backend == "process":
            return ProcessPoolExecutor(max_workers=workers)
        raise ConfigError(f"Unknown worker_backend '{backend}'")

    def run(self, ctx: BuildContext, seeds: Sequence[int]) -> List[Solution]:
        """
        Run every builder once against the same context.

        Args:
            ctx: shared read-only inputs for this iteration
            seeds: one seed per builder

        Returns:
            candidate solutions in ant order
        """
        if len(seeds) != len(self.builders):
            raise ValueError(f"Expected {len(self.builders)} seeds, got {len(seeds)}")

        jobs = [(builder, ctx, int(seed)) for builder, seed in zip(self.builders, seeds)]
        executor = self._executor()
        if executor is None:
            return [run_builder(job) for job in jobs]

        results: List[Optional[Solution]] = [None] * len(jobs)
        with executor:
            futures = {executor.submit(run_builder, job): idx for idx, job in enumerate(jobs)}
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        logger.debug("Colony finished %d builds", len(results))
        return results
