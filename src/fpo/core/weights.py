"""Exponential-moving-average fitness updates."""

from typing import Optional, Sequence

from loguru import logger

from ..models import PerformanceRecord, PromptCandidate

MIN_SCORE = 0.0
MAX_SCORE = 1.0


def clamp_score(score: float) -> float:
    """Clamp an oracle score into [0, 1]."""
    return min(MAX_SCORE, max(MIN_SCORE, float(score)))


class WeightUpdater:
    """Blend new oracle scores into candidate weights.

    ``new_weight = (1 - alpha) * old_weight + alpha * score``
    """

    def __init__(self, learning_rate: float = 0.3):
        self.learning_rate = learning_rate

    @staticmethod
    def aggregate(scores: Sequence[float]) -> float:
        """Federated aggregation: mean of the clamped per-case scores."""
        if not scores:
            raise ValueError("Cannot aggregate an empty score list")
        clamped = [clamp_score(s) for s in scores]
        return sum(clamped) / len(clamped)

    def update(
        self,
        candidate: PromptCandidate,
        score: float,
        iteration: int,
        learning_rate: Optional[float] = None
    ) -> PromptCandidate:
        """Return a copy of the candidate with the updated weight and history."""
        alpha = self.learning_rate if learning_rate is None else learning_rate
        score = clamp_score(score)
        if candidate.last_iteration >= iteration:
            raise ValueError(
                f"Candidate {candidate.id} already scored in iteration "
                f"{candidate.last_iteration}, cannot record iteration {iteration}"
            )
        new_weight = max(0.0, (1 - alpha) * candidate.weight + alpha * score)
        history = candidate.performance_history + [
            PerformanceRecord(iteration=iteration, score=score)
        ]
        logger.debug(
            f"Weight {candidate.id}: {candidate.weight:.4f} -> {new_weight:.4f} "
            f"(score={score:.4f}, alpha={alpha})"
        )
        return candidate.model_copy(
            update={"weight": new_weight, "performance_history": history}
        )
