"""Shared fixtures: seed populations and deterministic fake evaluators."""

from pathlib import Path
from typing import Dict, List

import pytest

from fpo.core import FunctionEvaluator
from fpo.models import EvalCase, FPOConfig, Population, PromptCandidate

TEXT_A = "Describe the main subjects. Focus on the setting."
TEXT_B = "List visible text. Identify key actions."


def make_candidate(candidate_id: str, weight: float = 0.5, text: str = "") -> PromptCandidate:
    return PromptCandidate(
        id=candidate_id,
        name=candidate_id.upper(),
        template=text or f"Prompt {candidate_id}. Describe the frame.",
        weight=weight,
    )


def scores_by_text(table: Dict[str, float], default: float = 0.0) -> FunctionEvaluator:
    """Evaluator that scores a prompt by its exact text."""
    return FunctionEvaluator(lambda text, case: table.get(text, default))


@pytest.fixture
def seed_population() -> Population:
    return Population.from_seeds(
        [make_candidate("A", text=TEXT_A), make_candidate("B", text=TEXT_B)],
        domains=["news"],
    )


@pytest.fixture
def single_case() -> List[EvalCase]:
    return [EvalCase(key="news-1", domain="news", reference="A reporter on the street.")]


@pytest.fixture
def cases() -> List[EvalCase]:
    return [
        EvalCase(key="sports-1", domain="sports"),
        EvalCase(key="news-1", domain="news"),
        EvalCase(key="reels-1", domain="reels"),
    ]


@pytest.fixture
def config() -> FPOConfig:
    return FPOConfig(seed=7)


@pytest.fixture
def registry_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "prompts.json"


class FakeLLMClient:
    """Synchronous/async chat stub recording its calls."""

    def __init__(self, replies: List[str] = None, error: Exception = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[list] = []

    def chat_completion(self, messages, temperature=0.7, max_tokens=None, json_mode=False):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return self.replies.pop(0) if self.replies else ""

    async def achat_completion(self, messages, temperature=0.7, max_tokens=None, json_mode=False):
        return self.chat_completion(messages, temperature, max_tokens, json_mode)


@pytest.fixture
def fake_llm_factory():
    return FakeLLMClient
