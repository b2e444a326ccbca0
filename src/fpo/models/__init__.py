"""Data models for federated prompt optimization."""

from .candidate import PerformanceRecord, PromptCandidate, rank_key
from .config import FPOConfig, IterationOptions, ResolvedOptions
from .dataset import EvalCase
from .population import REGISTRY_VERSION, Population
from .result import (
    CandidateScore,
    EvaluationError,
    EvaluationOutcome,
    EvaluationSuccess,
    EvolutionSummary,
    IterationResult,
    JobResult,
    StatusReport,
    TemplateStatus,
)

__all__ = [
    "PromptCandidate",
    "PerformanceRecord",
    "rank_key",
    "Population",
    "REGISTRY_VERSION",
    "EvalCase",
    "FPOConfig",
    "IterationOptions",
    "ResolvedOptions",
    "EvaluationSuccess",
    "EvaluationError",
    "EvaluationOutcome",
    "CandidateScore",
    "EvolutionSummary",
    "IterationResult",
    "JobResult",
    "TemplateStatus",
    "StatusReport",
]
