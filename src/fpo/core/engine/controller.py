"""One optimization iteration: evaluate, update weights, evolve, commit."""

import asyncio
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from ...errors import IterationOrderError, IterationTimeout
from ...models import (
    CandidateScore,
    EvalCase,
    FPOConfig,
    IterationOptions,
    IterationResult,
    Population,
    PromptCandidate,
    ResolvedOptions,
)
from ..evaluator import EvaluationRunner, outcome_scores
from ..io.iteration_logger import IterationLogger
from ..pool import CandidatePool
from ..store import PopulationStore
from ..weights import WeightUpdater
from .evolver import Evolver

SEPARATOR_WIDTH = 60


class IterationController:
    """Runs iterations against a population as single transactions.

    Every mutation happens on a deep copy of the population. The copy is
    committed with one atomic save at the end; any error before that leaves
    the committed registry untouched.
    """

    def __init__(
        self,
        config: FPOConfig,
        store: PopulationStore,
        runner: EvaluationRunner,
        evolver: Evolver,
        pool: Optional[CandidatePool] = None,
        updater: Optional[WeightUpdater] = None,
        iteration_logger: Optional[IterationLogger] = None
    ):
        self.config = config
        self.store = store
        self.runner = runner
        self.evolver = evolver
        self.pool = pool or CandidatePool()
        self.updater = updater or WeightUpdater(config.learning_rate)
        self.iteration_logger = iteration_logger

    def run_iteration(
        self,
        population: Optional[Population],
        iteration: int,
        test_data: Sequence[EvalCase],
        options: Optional[IterationOptions] = None
    ) -> Tuple[Population, IterationResult]:
        """Synchronous wrapper around :meth:`arun_iteration`."""
        return asyncio.run(self.arun_iteration(population, iteration, test_data, options))

    async def arun_iteration(
        self,
        population: Optional[Population],
        iteration: int,
        test_data: Sequence[EvalCase],
        options: Optional[IterationOptions] = None
    ) -> Tuple[Population, IterationResult]:
        """Run one iteration and commit it; returns the committed population.

        With ``population=None`` the committed registry is loaded inside the
        writer lock. A population that no longer matches the committed
        registry is rejected.
        """
        async with self.store.atransaction():
            if population is None:
                population = self.store.load()
            else:
                self._check_fresh(population)
            updated, result = await self._step_with_deadline(
                population, iteration, test_data, options
            )
            self.store.save(updated)
        logger.success(f"Iteration {iteration} committed, champion: {result.global_prompt}")
        self._log_summary(updated, result)
        if self.iteration_logger:
            self.iteration_logger.append(result, updated)
        return updated, result

    async def astep(
        self,
        population: Population,
        iteration: int,
        test_data: Sequence[EvalCase],
        options: Optional[IterationOptions] = None
    ) -> Tuple[Population, IterationResult]:
        """Compute the next population state without persisting it."""
        opts = (options or IterationOptions()).resolve(self.config)
        self._check_iteration(population, iteration)
        self._check_cases(test_data)
        self._log_header(iteration)

        working = population.model_copy(deep=True)
        previous_champion = working.get(working.champion_id, role="champion").id
        selected = self._select_candidates(working, opts)
        outcomes = await self.runner.evaluate_many(selected, test_data)

        scores: List[CandidateScore] = []
        for candidate in selected:
            scores.append(self._apply_scores(working, candidate, outcomes[candidate.id], iteration, opts))

        no_op = not any(score.scored for score in scores)
        if no_op:
            logger.warning(f"Iteration {iteration}: no evaluation succeeded, weights unchanged")
        working.domains = sorted(set(working.domains) | {case.domain for case in test_data})
        evolution = None
        if self.evolver.should_evolve(
            working, iteration, opts.enable_evolution, opts.evolution_interval
        ):
            evolution = await self.evolver.evolve(working)
        working.champion_id = self.pool.pick_champion(working)

        working.iteration = iteration
        result = IterationResult(
            iteration=iteration,
            global_prompt=working.champion_id,
            per_candidate_scores=scores,
            evolution=evolution,
            champion_changed=working.champion_id != previous_champion,
            no_op=no_op,
        )
        return Population.model_validate(working.model_dump(by_alias=True)), result

    def _check_iteration(self, population: Population, iteration: int) -> None:
        if iteration <= population.iteration:
            raise IterationOrderError(
                f"Iteration {iteration} does not follow committed iteration {population.iteration}"
            )

    def _check_cases(self, test_data: Sequence[EvalCase]) -> None:
        keys = [case.key for case in test_data]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise ValueError(f"Duplicate test case keys: {duplicates}")

    def _select_candidates(
        self,
        population: Population,
        opts: ResolvedOptions
    ) -> List[PromptCandidate]:
        if opts.candidate_id is not None or not opts.evaluate_population:
            candidate_id = self.pool.select_for_evaluation(population, opts.candidate_id)
            return [population.get(candidate_id)]
        return self.pool.rank(population)

    def _check_fresh(self, population: Population) -> None:
        if not self.store.exists():
            return
        committed = self.store.load()
        if committed.iteration != population.iteration:
            raise IterationOrderError(
                f"Population at iteration {population.iteration} is stale; "
                f"registry is at iteration {committed.iteration}"
            )

    async def _step_with_deadline(
        self,
        population: Population,
        iteration: int,
        test_data: Sequence[EvalCase],
        options: Optional[IterationOptions]
    ) -> Tuple[Population, IterationResult]:
        step = self.astep(population, iteration, test_data, options)
        if self.config.iteration_timeout_s is None:
            return await step
        try:
            return await asyncio.wait_for(step, timeout=self.config.iteration_timeout_s)
        except asyncio.TimeoutError as e:
            raise IterationTimeout(
                f"Iteration {iteration} exceeded {self.config.iteration_timeout_s}s; "
                "nothing committed"
            ) from e

    def _apply_scores(
        self,
        population: Population,
        candidate: PromptCandidate,
        outcomes,
        iteration: int,
        opts: ResolvedOptions
    ) -> CandidateScore:
        scores = outcome_scores(outcomes)
        if not scores:
            return CandidateScore(
                candidate_id=candidate.id,
                outcomes=outcomes,
                weight_before=candidate.weight,
                weight_after=candidate.weight,
            )
        aggregate = self.updater.aggregate(scores)
        updated = self.updater.update(candidate, aggregate, iteration, opts.learning_rate)
        population.candidates[candidate.id] = updated
        return CandidateScore(
            candidate_id=candidate.id,
            outcomes=outcomes,
            aggregate_score=aggregate,
            weight_before=candidate.weight,
            weight_after=updated.weight,
        )

    def _log_header(self, iteration: int) -> None:
        logger.info("=" * SEPARATOR_WIDTH)
        logger.info(f"FPO Iteration {iteration}")
        logger.info("=" * SEPARATOR_WIDTH)

    def _log_summary(self, population: Population, result: IterationResult) -> None:
        logger.info(f"Iteration {result.iteration} complete. Global prompt: {result.global_prompt}")
        for candidate in self.pool.rank(population):
            logger.info(f"  {candidate.id:<28} weight: {candidate.weight:.4f}")
        if result.evolution:
            logger.info(
                f"  Evolved {', '.join(result.evolution.evolved)} "
                f"(generation {result.evolution.generation})"
            )
