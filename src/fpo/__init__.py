"""FPO - Federated Prompt Optimization engine."""

from .clients import BaseLLMClient, LLMClient
from .config import Settings, get_settings
from .core import (
    BaseEvaluator,
    CandidatePool,
    EvaluationRunner,
    Evolver,
    FederatedPromptOptimizer,
    FunctionEvaluator,
    IterationController,
    LLMJudgeEvaluator,
    PopulationStore,
    PromptCrossover,
    PromptMutator,
    WeightUpdater,
)
from .errors import (
    EvaluationFailure,
    FPOError,
    InvalidReference,
    IterationOrderError,
    IterationTimeout,
    PermanentEvaluationError,
    StoreCorrupt,
    TransientEvaluationError,
)
from .models import (
    EvalCase,
    FPOConfig,
    IterationOptions,
    IterationResult,
    JobResult,
    Population,
    PromptCandidate,
    StatusReport,
)

__version__ = "0.1.0"

__all__ = [
    "FederatedPromptOptimizer",
    "IterationController",
    "Evolver",
    "PromptCrossover",
    "PromptMutator",
    "CandidatePool",
    "PopulationStore",
    "WeightUpdater",
    "BaseEvaluator",
    "FunctionEvaluator",
    "LLMJudgeEvaluator",
    "EvaluationRunner",
    "BaseLLMClient",
    "LLMClient",
    "Settings",
    "get_settings",
    "FPOError",
    "StoreCorrupt",
    "EvaluationFailure",
    "TransientEvaluationError",
    "PermanentEvaluationError",
    "InvalidReference",
    "IterationTimeout",
    "IterationOrderError",
    "EvalCase",
    "FPOConfig",
    "IterationOptions",
    "IterationResult",
    "JobResult",
    "Population",
    "PromptCandidate",
    "StatusReport",
]
