"""Population evolution: parent selection, crossover, lineage and pruning."""

import uuid
from typing import List, Optional, Set, Tuple

from loguru import logger

from ...errors import InvalidReference
from ...models import EvolutionSummary, FPOConfig, Population, PromptCandidate
from ..crossover import PromptCrossover
from ..mutator import PromptMutator
from ..pool import CandidatePool

MIN_EVOLUTION_POPULATION = 2
ID_HEX_LENGTH = 8
MAX_ID_ATTEMPTS = 100


class Evolver:
    """Create a crossover child of the two best candidates and bound the population.

    Works in place on the population it is given; callers pass a working copy.
    """

    def __init__(
        self,
        config: FPOConfig,
        pool: CandidatePool,
        crossover: PromptCrossover,
        mutator: PromptMutator
    ):
        self.config = config
        self.pool = pool
        self.crossover = crossover
        self.mutator = mutator

    def should_evolve(
        self,
        population: Population,
        iteration: int,
        enabled: bool,
        interval: int
    ) -> bool:
        """Evolution fires on every ``interval``-th iteration."""
        return (
            enabled
            and iteration % interval == 0
            and population.size >= MIN_EVOLUTION_POPULATION
        )

    def select_parents(self, population: Population) -> Tuple[PromptCandidate, PromptCandidate]:
        """Two highest-ranked candidates, best first."""
        ranked = self.pool.top(population, 2)
        if len(ranked) < MIN_EVOLUTION_POPULATION:
            raise ValueError("Crossover needs at least two candidates")
        return ranked[0], ranked[1]

    async def evolve(self, population: Population) -> EvolutionSummary:
        """Insert one child of the top two candidates, then prune to the bound."""
        parent_a, parent_b = self.select_parents(population)
        logger.info(
            f"Evolving from {parent_a.id} (weight {parent_a.weight:.4f}) "
            f"and {parent_b.id} (weight {parent_b.weight:.4f})"
        )
        text = await self.crossover.crossover_prompts(parent_a, parent_b, population.domains)
        if self.mutator.should_mutate():
            text = await self.mutator.mutate(text)
        elif self.repeats_parent(text, parent_a, parent_b):
            logger.info("Crossover reproduced a parent text, mutating the child")
            text = await self.mutator.mutate(text)
        child = self.create_child(population, parent_a, parent_b, text)
        population.candidates[child.id] = child
        logger.success(f"Created {child.id} (gen {child.generation}, weight {child.weight:.4f})")

        pruned = self.prune(population, protected={child.id})
        return EvolutionSummary(
            evolved=[child.id],
            generation=child.generation,
            pruned=pruned,
        )

    @staticmethod
    def repeats_parent(text: str, *parents: PromptCandidate) -> bool:
        normalized = text.strip().lower()
        return any(normalized == p.template_text.strip().lower() for p in parents)

    def create_child(
        self,
        population: Population,
        parent_a: PromptCandidate,
        parent_b: PromptCandidate,
        text: str
    ) -> PromptCandidate:
        """Stamp lineage and the discounted starting weight on a new candidate."""
        for parent in (parent_a, parent_b):
            if parent.id not in population.candidates:
                raise InvalidReference(parent.id, role="parent")
        if not text.strip():
            raise ValueError("Crossover produced empty text")
        generation = max(parent_a.generation, parent_b.generation) + 1
        weight = (parent_a.weight + parent_b.weight) / 2 * self.config.discount_factor
        return PromptCandidate(
            id=self.new_id(population, generation),
            name=f"Evolved Gen {generation}",
            template=text.strip(),
            weight=weight,
            generation=generation,
            parents=[parent_a.id, parent_b.id],
        )

    def new_id(self, population: Population, generation: int) -> str:
        """Fresh id never used by a live or retired candidate."""
        for _ in range(MAX_ID_ATTEMPTS):
            candidate_id = f"evolved_gen{generation}_{uuid.uuid4().hex[:ID_HEX_LENGTH]}"
            if not population.is_known_id(candidate_id):
                return candidate_id
        raise RuntimeError("Could not allocate a unique candidate id")

    def prune(self, population: Population, protected: Optional[Set[str]] = None) -> List[str]:
        """Retire the weakest evolved candidates until the population fits the bound.

        The champion (current and recomputed) and generation-0 seeds are never
        removed, nor anything in ``protected``. When only such candidates
        remain, the bound is exceeded and a warning is logged.
        """
        keep = set(protected or ())
        keep.add(population.champion_id)
        keep.add(self.pool.pick_champion(population))

        removable = [
            c for c in self.pool.rank(population)
            if c.id not in keep and not c.is_seed
        ]
        pruned: List[str] = []
        while population.size > self.config.max_population and removable:
            victim = removable.pop()
            del population.candidates[victim.id]
            population.retired[victim.id] = victim.generation
            pruned.append(victim.id)
            logger.info(f"Pruned {victim.id} (weight {victim.weight:.4f})")

        if population.size > self.config.max_population:
            logger.warning(
                f"Population size {population.size} exceeds bound "
                f"{self.config.max_population}; remaining candidates are protected"
            )
        return pruned
