"""Prompt candidate model for federated prompt optimization."""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class PerformanceRecord(BaseModel):
    """One aggregated score of a candidate in one iteration."""

    iteration: int = Field(ge=1)
    score: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utc_now)


class PromptCandidate(BaseModel):
    """Prompt candidate in the persistent population."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    name: str = ""
    template_text: str = Field(alias="template", min_length=1, description="Prompt text")
    weight: float = Field(ge=0.0, description="Fitness / selection score")
    generation: int = Field(default=0, ge=0, description="Lineage depth")
    parents: List[str] = Field(default_factory=list)
    created_at: datetime = Field(alias="created", default_factory=utc_now)
    performance_history: List[PerformanceRecord] = Field(
        alias="performance",
        default_factory=list
    )

    @field_validator("parents")
    @classmethod
    def _check_parents(cls, parents: List[str]) -> List[str]:
        if len(parents) not in (0, 2):
            raise ValueError(f"parents must hold 0 or 2 ids, got {len(parents)}")
        if len(parents) == 2 and parents[0] == parents[1]:
            raise ValueError("parents must be two distinct ids")
        return parents

    @field_validator("performance_history")
    @classmethod
    def _check_history_order(cls, history: List[PerformanceRecord]) -> List[PerformanceRecord]:
        for previous, current in zip(history, history[1:]):
            if current.iteration <= previous.iteration:
                raise ValueError(
                    "performance history must be strictly increasing by iteration "
                    f"({previous.iteration} -> {current.iteration})"
                )
        return history

    @property
    def is_seed(self) -> bool:
        return self.generation == 0 and not self.parents

    @property
    def latest_score(self) -> Optional[float]:
        """Most recent aggregated score, if the candidate was ever scored."""
        if not self.performance_history:
            return None
        return self.performance_history[-1].score

    @property
    def last_iteration(self) -> int:
        if not self.performance_history:
            return 0
        return self.performance_history[-1].iteration

    def __str__(self) -> str:
        return f"Candidate({self.id}, gen={self.generation}, weight={self.weight:.4f})"


def rank_key(candidate: PromptCandidate) -> Tuple[float, int, str]:
    """Sort key: higher weight, then higher generation, then smaller id."""
    return (-candidate.weight, -candidate.generation, candidate.id)
