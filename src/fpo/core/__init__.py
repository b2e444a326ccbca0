"""Core federated prompt optimization engine."""

from .crossover import PromptCrossover
from .engine.controller import IterationController
from .engine.evolver import Evolver
from .engine.optimizer import FederatedPromptOptimizer
from .evaluator import BaseEvaluator, EvaluationRunner, FunctionEvaluator, LLMJudgeEvaluator
from .mutator import PromptMutator
from .pool import CandidatePool
from .store import PopulationStore
from .weights import WeightUpdater

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
]
