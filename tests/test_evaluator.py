"""Tests for evaluators and the evaluation fan-out."""

import asyncio

import pytest

from fpo.core import EvaluationRunner, FunctionEvaluator, LLMJudgeEvaluator
from fpo.core.evaluator import outcome_scores
from fpo.errors import PermanentEvaluationError, TransientEvaluationError
from fpo.models import EvalCase, EvaluationError, EvaluationSuccess

from .conftest import make_candidate


class TestEvaluationRunner:

    @pytest.mark.asyncio
    async def test_outcomes_sorted_by_case_key(self, cases):
        runner = EvaluationRunner(FunctionEvaluator(lambda text, case: 0.5))
        outcomes = await runner.evaluate_many([make_candidate("A")], cases)
        assert [o.case_key for o in outcomes["A"]] == ["news-1", "reels-1", "sports-1"]

    @pytest.mark.asyncio
    async def test_merge_is_independent_of_completion_order(self, cases):
        delays = {"news-1": 0.03, "reels-1": 0.0, "sports-1": 0.01}

        async def slow(text, case):
            await asyncio.sleep(delays[case.key])
            return 1.0 if text.startswith("Prompt A") else 0.0

        runner = EvaluationRunner(FunctionEvaluator(slow), max_concurrency=6)
        outcomes = await runner.evaluate_many([make_candidate("A"), make_candidate("B")], cases)
        assert outcome_scores(outcomes["A"]) == [1.0, 1.0, 1.0]
        assert outcome_scores(outcomes["B"]) == [0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, cases):
        running = 0
        peak = 0

        async def tracked(text, case):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return 0.5

        runner = EvaluationRunner(FunctionEvaluator(tracked), max_concurrency=2)
        await runner.evaluate_many([make_candidate("A"), make_candidate("B")], cases)
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_transient_failure_becomes_marker(self, single_case):
        def flaky(text, case):
            raise TransientEvaluationError("connection reset", case_key=case.key)

        runner = EvaluationRunner(FunctionEvaluator(flaky))
        outcomes = await runner.evaluate_many([make_candidate("A")], single_case)
        marker = outcomes["A"][0]
        assert isinstance(marker, EvaluationError)
        assert marker.kind == "transient"
        assert marker.case_key == "news-1"
        assert outcome_scores(outcomes["A"]) == []

    @pytest.mark.asyncio
    async def test_permanent_failure_propagates(self, single_case):
        def broken(text, case):
            raise PermanentEvaluationError("bad input")

        runner = EvaluationRunner(FunctionEvaluator(broken))
        with pytest.raises(PermanentEvaluationError):
            await runner.evaluate_many([make_candidate("A")], single_case)

    @pytest.mark.asyncio
    async def test_out_of_range_score_clamped(self, single_case):
        runner = EvaluationRunner(FunctionEvaluator(lambda text, case: 1.7))
        outcomes = await runner.evaluate_many([make_candidate("A")], single_case)
        assert isinstance(outcomes["A"][0], EvaluationSuccess)
        assert outcomes["A"][0].score == 1.0


class TestLLMJudgeEvaluator:

    @pytest.mark.asyncio
    async def test_judge_score(self, fake_llm_factory, single_case):
        llm = fake_llm_factory(["A reporter talks.", '{"score": 0.8}'])
        score = await LLMJudgeEvaluator(llm).evaluate("Describe the frame.", single_case[0])
        assert score == pytest.approx(0.8)
        assert "A reporter on the street." in llm.calls[1][0]["content"]

    @pytest.mark.asyncio
    async def test_prompt_filled_from_case_input(self, fake_llm_factory):
        llm = fake_llm_factory(["output"])
        case = EvalCase(key="k", input={"topic": "football"})
        score = await LLMJudgeEvaluator(llm).evaluate("Talk about {topic}.", case)
        assert llm.calls[0][0]["content"] == "Talk about football."
        assert score == 0.5

    @pytest.mark.asyncio
    async def test_missing_placeholder_is_permanent(self, fake_llm_factory):
        case = EvalCase(key="k")
        with pytest.raises(PermanentEvaluationError):
            await LLMJudgeEvaluator(fake_llm_factory()).evaluate("Talk about {topic}.", case)

    @pytest.mark.asyncio
    async def test_unparseable_judge_reply_is_transient(self, fake_llm_factory, single_case):
        llm = fake_llm_factory(["output", "great job"])
        with pytest.raises(TransientEvaluationError):
            await LLMJudgeEvaluator(llm).evaluate("Describe.", single_case[0])

    @pytest.mark.asyncio
    async def test_separate_judge_client(self, fake_llm_factory, single_case):
        worker = fake_llm_factory(["output"])
        judge = fake_llm_factory(['{"score": 3}'])
        evaluator = LLMJudgeEvaluator(worker, judge_llm_client=judge)
        assert await evaluator.evaluate("Describe.", single_case[0]) == 1.0
        assert len(worker.calls) == 1
        assert len(judge.calls) == 1


class TestUntypedEvaluatorErrors:

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped_as_permanent(self, single_case):
        def buggy(text, case):
            raise KeyError("missing field")

        runner = EvaluationRunner(FunctionEvaluator(buggy))
        with pytest.raises(PermanentEvaluationError) as excinfo:
            await runner.evaluate_many([make_candidate("A")], single_case)
        assert excinfo.value.case_key == "news-1"
        assert isinstance(excinfo.value.__cause__, KeyError)
