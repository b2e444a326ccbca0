"""Typed errors raised by the optimization engine."""

from pathlib import Path
from typing import Optional


class FPOError(Exception):
    """Base class for all engine errors."""


class StoreCorrupt(FPOError):
    """Persisted registry is unreadable or structurally invalid."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Registry {path} is corrupt: {reason}")


class EvaluationFailure(FPOError):
    """Evaluator could not score a candidate on a test case."""

    kind = "evaluation"

    def __init__(self, message: str, case_key: Optional[str] = None):
        self.case_key = case_key
        super().__init__(message)


class TransientEvaluationError(EvaluationFailure):
    """Network, timeout or rate-limit failure; tolerated per test case."""

    kind = "transient"


class PermanentEvaluationError(EvaluationFailure):
    """Malformed input; aborts the iteration."""

    kind = "permanent"


class InvalidReference(FPOError):
    """A candidate id that must exist is missing from the population."""

    def __init__(self, candidate_id: str, role: str = "candidate"):
        self.candidate_id = candidate_id
        self.role = role
        super().__init__(f"Unknown {role} id: {candidate_id!r}")


class IterationTimeout(FPOError):
    """Evaluation did not finish before the iteration deadline."""


class IterationOrderError(FPOError):
    """Iteration number does not advance past the last committed iteration."""
