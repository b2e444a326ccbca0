"""Tests for the audit trail, progress tracker and lineage plot."""

import pytest

from fpo.core.io.iteration_logger import ITERATION_LOG_FILENAME, IterationLogger
from fpo.core.ui.progress_tracker import ProgressTracker
from fpo.models import (
    CandidateScore,
    EvaluationError,
    EvaluationSuccess,
    EvolutionSummary,
    IterationResult,
    Population,
    PromptCandidate,
)

from .conftest import make_candidate


def make_result(iteration: int) -> IterationResult:
    return IterationResult(
        iteration=iteration,
        global_prompt="A",
        per_candidate_scores=[
            CandidateScore(
                candidate_id="A",
                outcomes=[
                    EvaluationSuccess(case_key="k1", domain="news", score=0.9),
                    EvaluationError(case_key="k2", domain="news", kind="transient", message="x" * 500),
                ],
                aggregate_score=0.9,
                weight_before=0.5,
                weight_after=0.62,
            )
        ],
        evolution=EvolutionSummary(evolved=["C"], generation=1, pruned=[]),
        champion_changed=False,
        no_op=False,
    )


class TestIterationLogger:

    def test_append_and_read(self, tmp_path, seed_population):
        log = IterationLogger(tmp_path / "logs")
        for iteration in range(1, 4):
            log.append(make_result(iteration), seed_population)

        assert (tmp_path / "logs" / ITERATION_LOG_FILENAME).exists()
        records = log.read_history(limit=2)
        assert [r["iteration"] for r in records] == [2, 3]
        prompt = records[0]["prompts"][0]
        assert prompt["weight"] == 0.62
        assert prompt["errors"][0]["case"] == "k2"
        assert len(prompt["errors"][0]["message"]) == 200
        assert records[0]["evolution"]["evolved"] == ["C"]

    def test_read_without_log(self, tmp_path):
        assert IterationLogger(tmp_path).read_history() == []


class TestProgressTracker:

    def test_tracks_best_weight(self):
        with ProgressTracker(2, start_iteration=5, enabled=False) as tracker:
            tracker.update_iteration(5, "A", 0.6)
            tracker.update_iteration(6, "A", 0.4)
        assert tracker.best_weight == 0.6


class TestLineageVisualizer:

    def test_graph_includes_retired_parents(self):
        pytest.importorskip("networkx")
        from fpo.visualization import LineageVisualizer

        child = PromptCandidate(id="C", template="x", weight=0.2, generation=2, parents=["A", "B1"])
        population = Population(
            candidates={"A": make_candidate("A"), "C": child},
            champion_id="A",
            retired={"B1": 1},
        )
        graph = LineageVisualizer().build_graph(population)
        assert graph.nodes["B1"]["retired"]
        assert graph.has_edge("A", "C")
        assert graph.has_edge("B1", "C")
        positions = LineageVisualizer().layout(graph)
        assert set(positions) == {"A", "B1", "C"}

    def test_render_png(self, tmp_path, seed_population):
        pytest.importorskip("networkx")
        pytest.importorskip("matplotlib")
        from fpo.visualization import LineageVisualizer

        output = LineageVisualizer().render(seed_population, tmp_path / "plots" / "lineage.png")
        assert output.exists()
