"""Federated prompt optimizer: caller-facing facade over the engine."""

import asyncio
import random
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from loguru import logger

from ...clients import BaseLLMClient
from ...errors import FPOError
from ...models import (
    EvalCase,
    FPOConfig,
    IterationOptions,
    IterationResult,
    JobResult,
    Population,
    StatusReport,
    TemplateStatus,
)
from ..crossover import PromptCrossover
from ..evaluator import BaseEvaluator, EvaluationRunner
from ..io.iteration_logger import IterationLogger
from ..mutator import PromptMutator
from ..pool import CandidatePool
from ..store import PopulationStore
from ..ui.progress_tracker import ProgressTracker
from ..weights import WeightUpdater
from .controller import IterationController
from .evolver import Evolver

TestDataSource = Union[Sequence[EvalCase], Callable[[int], Sequence[EvalCase]]]


class FederatedPromptOptimizer:
    """Persistent, self-improving prompt population.

    Usage:
        optimizer = FederatedPromptOptimizer(
            registry_path=Path("data/prompts.json"),
            evaluator=my_evaluator,
            seed=seed_population,
        )
        result = optimizer.run_iteration(optimizer.next_iteration(), cases)
    """

    def __init__(
        self,
        registry_path: Path,
        evaluator: BaseEvaluator,
        config: Optional[FPOConfig] = None,
        seed: Optional[Population] = None,
        llm_client: Optional[BaseLLMClient] = None,
        log_dir: Optional[Path] = None,
        show_progress: bool = False
    ):
        self.config = config or FPOConfig()
        self.store = PopulationStore(Path(registry_path), seed=seed)
        self.pool = CandidatePool()
        rng = random.Random(self.config.seed)
        self.evolver = Evolver(
            config=self.config,
            pool=self.pool,
            crossover=PromptCrossover(self.config, llm_client=llm_client, rng=rng),
            mutator=PromptMutator(self.config, llm_client=llm_client, rng=rng),
        )
        self.iteration_logger = IterationLogger(
            Path(log_dir) if log_dir else self.store.path.parent
        )
        self.controller = IterationController(
            config=self.config,
            store=self.store,
            runner=EvaluationRunner(evaluator, self.config.max_concurrency),
            evolver=self.evolver,
            pool=self.pool,
            updater=WeightUpdater(self.config.learning_rate),
            iteration_logger=self.iteration_logger,
        )
        self.show_progress = show_progress

    def load_registry(self) -> Population:
        """Current committed population (the seed when nothing is committed yet)."""
        return self.store.load()

    def next_iteration(self) -> int:
        return self.load_registry().iteration + 1

    def run_iteration(
        self,
        iteration: int,
        test_data: Sequence[EvalCase],
        options: Optional[IterationOptions] = None
    ) -> IterationResult:
        """Load, run and commit one iteration under the writer lock."""
        return asyncio.run(self.arun_iteration(iteration, test_data, options))

    async def arun_iteration(
        self,
        iteration: int,
        test_data: Sequence[EvalCase],
        options: Optional[IterationOptions] = None
    ) -> IterationResult:
        """Async variant of :meth:`run_iteration`; concurrent calls are serialized."""
        try:
            _, result = await self.controller.arun_iteration(None, iteration, test_data, options)
        except FPOError as e:
            logger.error(f"Iteration {iteration} failed: {e}")
            raise
        return result

    def run_job(
        self,
        iterations: int,
        test_data: TestDataSource,
        options: Optional[IterationOptions] = None
    ) -> JobResult:
        """Run several iterations in sequence, continuing after the last committed one.

        ``test_data`` is either a fixed list of cases or a callable returning
        the cases for a given iteration number.
        """
        if iterations < 1:
            raise ValueError("iterations must be >= 1")
        start = self.next_iteration()
        logger.info(f"Starting FPO job: {iterations} iteration(s) from iteration {start}")
        results: List[IterationResult] = []
        with ProgressTracker(iterations, start, enabled=self.show_progress) as progress:
            for iteration in range(start, start + iterations):
                cases = test_data(iteration) if callable(test_data) else test_data
                result = self.run_iteration(iteration, list(cases), options)
                results.append(result)
                champion = self.load_registry().champion
                progress.update_iteration(iteration, champion.id, champion.weight)

        population = self.load_registry()
        evolved = sum(len(r.evolution.evolved) for r in results if r.evolution)
        logger.success(f"FPO job completed: {len(results)} iterations, {evolved} evolved")
        return JobResult(
            iterations=len(results),
            results=results,
            final_prompt=results[-1].global_prompt,
            evolved=evolved,
            generation=population.max_generation,
        )

    def get_status(self) -> StatusReport:
        """Read-only projection of the population, best first."""
        population = self.load_registry()
        return StatusReport(
            global_prompt=population.champion_id,
            population_size=population.size,
            max_generation=population.max_generation,
            iteration=population.iteration,
            templates=[
                TemplateStatus(
                    id=c.id,
                    name=c.name,
                    template=c.template_text,
                    weight=c.weight,
                    generation=c.generation,
                    parents=list(c.parents),
                    created=c.created_at,
                    performance_history=list(c.performance_history),
                    latest_score=c.latest_score,
                )
                for c in self.pool.rank(population)
            ],
        )

    def history(self, limit: int = 10):
        """Recent audit-trail records."""
        return self.iteration_logger.read_history(limit)

    def reset(self, seed: Optional[Population] = None) -> Population:
        """Replace the committed registry with the seed population."""
        seed = seed or self.store.seed
        if seed is None:
            raise ValueError("No seed population to reset to")
        return self.store.reset(seed)
