"""Evaluator interface and per-case fan-out of oracle calls."""

import asyncio
import inspect
import json
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from loguru import logger
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    BadRequestError,
    RateLimitError,
)

from ..clients import BaseLLMClient
from ..errors import PermanentEvaluationError, TransientEvaluationError
from ..models import EvalCase, EvaluationError, EvaluationOutcome, EvaluationSuccess, PromptCandidate
from .weights import clamp_score

NO_REFERENCE_SCORE = 0.5
JUDGE_MAX_TOKENS = 100
SERVER_ERROR_STATUS = 500

ScoreFn = Callable[[str, EvalCase], Union[float, Awaitable[float]]]

DEFAULT_JUDGE_TEMPLATE = """You are grading how well a model output matches a reference.

REFERENCE:
{reference}

MODEL OUTPUT:
{output}

Rate the semantic agreement between the output and the reference on a scale
from 0.0 (unrelated) to 1.0 (equivalent). Reply with JSON: {{"score": <number>}}"""


class BaseEvaluator(ABC):
    """External quality oracle: scores one prompt on one test case.

    Implementations raise TransientEvaluationError for failures worth
    skipping (network, timeouts) and PermanentEvaluationError for malformed
    input.
    """

    @abstractmethod
    async def evaluate(self, template_text: str, case: EvalCase) -> float:
        """Return a score in [0, 1]."""


class FunctionEvaluator(BaseEvaluator):
    """Adapt a plain sync or async scoring function."""

    def __init__(self, score_fn: ScoreFn):
        self.score_fn = score_fn

    async def evaluate(self, template_text: str, case: EvalCase) -> float:
        result = self.score_fn(template_text, case)
        if inspect.isawaitable(result):
            result = await result
        return float(result)


class LLMJudgeEvaluator(BaseEvaluator):
    """Run the prompt through an LLM and let a judge compare it with the reference."""

    def __init__(
        self,
        llm_client: BaseLLMClient,
        judge_template: str = DEFAULT_JUDGE_TEMPLATE,
        judge_llm_client: Optional[BaseLLMClient] = None
    ):
        self.llm = llm_client
        self.judge = judge_llm_client or llm_client
        self.judge_template = judge_template

    async def evaluate(self, template_text: str, case: EvalCase) -> float:
        try:
            prompt = template_text.format(**case.input)
        except (KeyError, IndexError, ValueError) as e:
            raise PermanentEvaluationError(
                f"Prompt does not fit test case inputs: {e}",
                case_key=case.key
            ) from e

        output = await self._call(self.llm, [{"role": "user", "content": prompt}], case)
        if not case.reference:
            return NO_REFERENCE_SCORE

        judge_prompt = self.judge_template.format(reference=case.reference, output=output)
        reply = await self._call(
            self.judge,
            [{"role": "user", "content": judge_prompt}],
            case,
            json_mode=True,
        )
        return self._parse_score(reply, case)

    async def _call(
        self,
        client: BaseLLMClient,
        messages: List[Dict[str, str]],
        case: EvalCase,
        json_mode: bool = False
    ) -> str:
        try:
            return await client.achat_completion(
                messages=messages,
                temperature=0.0,
                max_tokens=JUDGE_MAX_TOKENS if json_mode else None,
                json_mode=json_mode,
            )
        except (APITimeoutError, APIConnectionError, RateLimitError) as e:
            raise TransientEvaluationError(str(e), case_key=case.key) from e
        except BadRequestError as e:
            raise PermanentEvaluationError(str(e), case_key=case.key) from e
        except APIStatusError as e:
            if e.status_code >= SERVER_ERROR_STATUS:
                raise TransientEvaluationError(str(e), case_key=case.key) from e
            raise PermanentEvaluationError(str(e), case_key=case.key) from e

    def _parse_score(self, reply: str, case: EvalCase) -> float:
        try:
            score = float(json.loads(reply)["score"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise TransientEvaluationError(
                f"Judge returned an unusable reply: {reply[:200]!r}",
                case_key=case.key
            ) from e
        return clamp_score(score)


class EvaluationRunner:
    """Score candidates on test cases with bounded parallelism.

    Results are ordered by candidate and by test-case key, never by arrival.
    Transient failures become EvaluationError markers. Any other failure is
    raised as PermanentEvaluationError and cancels the remaining calls.
    """

    def __init__(self, evaluator: BaseEvaluator, max_concurrency: int = 4):
        self.evaluator = evaluator
        self.max_concurrency = max_concurrency

    async def evaluate_many(
        self,
        candidates: Sequence[PromptCandidate],
        cases: Sequence[EvalCase]
    ) -> Dict[str, List[EvaluationOutcome]]:
        """Outcomes per candidate id, each list sorted by case key."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        ordered_cases = sorted(cases, key=lambda c: c.key)
        total = len(candidates) * len(ordered_cases)
        logger.info(
            f"Evaluating {len(candidates)} candidate(s) on {len(ordered_cases)} case(s): "
            f"{total} oracle calls"
        )
        tasks = [
            asyncio.ensure_future(self._evaluate_single(semaphore, candidate, case))
            for candidate in candidates
            for case in ordered_cases
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        merged: Dict[str, List[EvaluationOutcome]] = {c.id: [] for c in candidates}
        width = len(ordered_cases)
        for index, candidate in enumerate(candidates):
            merged[candidate.id] = list(outcomes[index * width:(index + 1) * width])
        return merged

    async def _evaluate_single(
        self,
        semaphore: asyncio.Semaphore,
        candidate: PromptCandidate,
        case: EvalCase
    ) -> EvaluationOutcome:
        async with semaphore:
            try:
                raw = await self.evaluator.evaluate(candidate.template_text, case)
                score = clamp_score(raw)
            except (TransientEvaluationError, ConnectionError, TimeoutError, asyncio.TimeoutError) as e:
                logger.warning(f"Evaluation of {candidate.id} @ {case.key} failed: {e}")
                return EvaluationError(
                    case_key=case.key,
                    domain=case.domain,
                    kind="transient",
                    message=str(e) or type(e).__name__,
                )
            except PermanentEvaluationError:
                raise
            except Exception as e:
                raise PermanentEvaluationError(
                    f"Evaluator failed on {candidate.id} @ {case.key}: {e!r}",
                    case_key=case.key
                ) from e
        if score != raw:
            logger.warning(f"Score {raw} for {candidate.id} @ {case.key} clamped to {score}")
        logger.debug(f"{candidate.id} @ {case.key}: {score:.4f}")
        return EvaluationSuccess(case_key=case.key, domain=case.domain, score=score)


def outcome_scores(outcomes: Sequence[Any]) -> List[float]:
    """Scores of the successful outcomes."""
    return [o.score for o in outcomes if isinstance(o, EvaluationSuccess)]
