"""Candidate ranking and champion selection."""

from typing import List, Optional

from loguru import logger

from ..models import Population, PromptCandidate, rank_key


class CandidatePool:
    """Deterministic ranking over a population's candidates."""

    def rank(self, population: Population) -> List[PromptCandidate]:
        """All candidates, best first."""
        return sorted(population.candidates.values(), key=rank_key)

    def top(self, population: Population, count: int) -> List[PromptCandidate]:
        return self.rank(population)[:count]

    def pick_champion(self, population: Population) -> str:
        """Id of the best candidate; a pure function of population state."""
        return min(population.candidates.values(), key=rank_key).id

    def select_for_evaluation(
        self,
        population: Population,
        explicit_id: Optional[str] = None
    ) -> str:
        """Explicit id when given and present, else the current champion."""
        if explicit_id is not None:
            if explicit_id in population.candidates:
                return explicit_id
            logger.warning(
                f"Candidate {explicit_id!r} not in population, evaluating champion instead"
            )
        return population.get(population.champion_id, role="champion").id
