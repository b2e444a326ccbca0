"""Iteration, job and status result models."""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .candidate import PerformanceRecord


class EvaluationSuccess(BaseModel):
    """Evaluator produced a score for one test case."""

    status: Literal["ok"] = "ok"
    case_key: str
    domain: str
    score: float = Field(ge=0.0, le=1.0)


class EvaluationError(BaseModel):
    """Evaluator failed on one test case; the case contributes no score."""

    status: Literal["error"] = "error"
    case_key: str
    domain: str
    kind: str
    message: str


EvaluationOutcome = Annotated[
    Union[EvaluationSuccess, EvaluationError],
    Field(discriminator="status")
]


class CandidateScore(BaseModel):
    """Outcome of evaluating one candidate in one iteration."""

    candidate_id: str
    outcomes: List[EvaluationOutcome] = Field(default_factory=list)
    aggregate_score: Optional[float] = None
    weight_before: float
    weight_after: float

    @property
    def scored(self) -> bool:
        return self.aggregate_score is not None

    @property
    def errors(self) -> List[EvaluationError]:
        return [o for o in self.outcomes if isinstance(o, EvaluationError)]


class EvolutionSummary(BaseModel):
    """Candidates created by the evolver in one iteration."""

    evolved: List[str]
    generation: int
    pruned: List[str] = Field(default_factory=list)


class IterationResult(BaseModel):
    """Result of one committed optimization iteration."""

    iteration: int
    global_prompt: str
    per_candidate_scores: List[CandidateScore]
    evolution: Optional[EvolutionSummary] = None
    champion_changed: bool = False
    no_op: bool = Field(
        default=False,
        description="Every evaluation failed; only the iteration counter advanced"
    )


class JobResult(BaseModel):
    """Result of a run of several sequential iterations."""

    iterations: int
    results: List[IterationResult]
    final_prompt: str
    evolved: int = 0
    generation: int = 0


class TemplateStatus(BaseModel):
    """Read-only projection of one candidate."""

    id: str
    name: str
    template: str
    weight: float
    generation: int
    parents: List[str]
    created: datetime
    performance_history: List[PerformanceRecord]
    latest_score: Optional[float] = None


class StatusReport(BaseModel):
    """Read-only projection of the population, sorted by descending weight."""

    global_prompt: str
    population_size: int
    max_generation: int
    iteration: int
    templates: List[TemplateStatus]
