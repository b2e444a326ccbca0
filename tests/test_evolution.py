"""Tests for crossover, mutation and population evolution."""

import random

import pytest

from fpo.core import CandidatePool, Evolver, PromptCrossover, PromptMutator
from fpo.core.crossover import clean_completion, splice_sentences, split_sentences
from fpo.errors import InvalidReference
from fpo.models import FPOConfig, Population, PromptCandidate

from .conftest import TEXT_A, TEXT_B, make_candidate


def build_evolver(config: FPOConfig, llm=None) -> Evolver:
    rng = random.Random(config.seed)
    return Evolver(
        config=config,
        pool=CandidatePool(),
        crossover=PromptCrossover(config, llm_client=llm, rng=rng),
        mutator=PromptMutator(config, llm_client=llm, rng=rng),
    )


def weighted(population: Population, **weights: float) -> Population:
    for candidate_id, weight in weights.items():
        population.candidates[candidate_id] = population.candidates[candidate_id].model_copy(
            update={"weight": weight}
        )
    return population


class TestSplice:

    def test_split_sentences(self):
        assert split_sentences("One. Two!  Three?") == ["One.", "Two!", "Three?"]

    def test_clean_completion_strips_quotes(self):
        assert clean_completion('  "Describe it."\n') == "Describe it."

    @pytest.mark.parametrize("seed", range(5))
    def test_splice_mixes_both_parents(self, seed):
        hybrid = splice_sentences(TEXT_A, TEXT_B, random.Random(seed))
        sentences = split_sentences(hybrid)
        a, b = split_sentences(TEXT_A), split_sentences(TEXT_B)
        assert all(s in a or s in b for s in sentences)
        assert any(s in a for s in sentences)
        assert any(s in b for s in sentences)

    def test_single_sentence_parents_concatenate(self):
        assert splice_sentences("Be brief.", "Be exact.", random.Random(0)) == "Be brief. Be exact."

    def test_splice_is_reproducible(self):
        first = splice_sentences(TEXT_A, TEXT_B, random.Random(3))
        second = splice_sentences(TEXT_A, TEXT_B, random.Random(3))
        assert first == second


class TestPromptCrossover:

    @pytest.mark.asyncio
    async def test_llm_crossover_used(self, config, fake_llm_factory):
        llm = fake_llm_factory(replies=['"Hybrid prompt."'])
        crossover = PromptCrossover(config, llm_client=llm)
        hybrid = await crossover.crossover_prompts(
            make_candidate("A", 0.6, TEXT_A), make_candidate("B", 0.4, TEXT_B), ["news"]
        )
        assert hybrid == "Hybrid prompt."
        assert TEXT_A in llm.calls[0][1]["content"]
        assert "news" in llm.calls[0][1]["content"]

    @pytest.mark.parametrize("replies,error", [([""], None), ([], RuntimeError("down"))])
    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_splice(self, config, fake_llm_factory, replies, error):
        crossover = PromptCrossover(config, llm_client=fake_llm_factory(replies, error))
        hybrid = await crossover.crossover_prompts(
            make_candidate("A", 0.6, TEXT_A), make_candidate("B", 0.4, TEXT_B)
        )
        assert hybrid
        assert set(split_sentences(hybrid)) <= set(split_sentences(TEXT_A + " " + TEXT_B))


class TestPromptMutator:

    def test_disabled_by_default(self, config):
        mutator = PromptMutator(config)
        assert not any(mutator.should_mutate() for _ in range(20))

    def test_always_with_full_rate(self):
        assert PromptMutator(FPOConfig(mutation_rate=1.0)).should_mutate()

    def test_synonym_substitution_keeps_case(self, config):
        assert PromptMutator(config).substitute("Describe the scene") == "Depict the scene"

    def test_addition_when_no_synonym(self, config):
        mutated = PromptMutator(config).substitute("Hello world.")
        assert mutated.startswith("Hello world. ")
        assert mutated != "Hello world."

    @pytest.mark.asyncio
    async def test_llm_mutation(self, config, fake_llm_factory):
        mutator = PromptMutator(config, llm_client=fake_llm_factory(["Sharper prompt."]))
        assert await mutator.mutate("Prompt.") == "Sharper prompt."

    @pytest.mark.asyncio
    async def test_llm_echo_falls_back_to_substitution(self, config, fake_llm_factory):
        mutator = PromptMutator(config, llm_client=fake_llm_factory(["describe the frame."]))
        assert await mutator.mutate("Describe the frame.") == "Depict the frame."


class TestEvolver:

    def test_should_evolve(self, config, seed_population):
        evolver = build_evolver(config)
        assert evolver.should_evolve(seed_population, 2, enabled=True, interval=2)
        assert not evolver.should_evolve(seed_population, 1, enabled=True, interval=2)
        assert not evolver.should_evolve(seed_population, 2, enabled=False, interval=2)

    def test_single_candidate_never_evolves(self, config):
        population = Population.from_seeds([make_candidate("A")])
        assert not build_evolver(config).should_evolve(population, 2, True, 2)

    @pytest.mark.asyncio
    async def test_evolve_stamps_lineage(self, config, seed_population):
        population = weighted(seed_population, A=0.65, B=0.35)
        summary = await build_evolver(config).evolve(population)

        child = population.get(summary.evolved[0])
        assert child.generation == 1
        assert child.parents == ["A", "B"]
        assert child.weight == pytest.approx(0.25)
        assert child.name == "Evolved Gen 1"
        assert child.id.startswith("evolved_gen1_")
        assert summary.generation == 1
        assert summary.pruned == []
        Population.model_validate(population.model_dump(by_alias=True))

    def test_create_child_unknown_parent(self, config, seed_population):
        ghost = make_candidate("ghost")
        with pytest.raises(InvalidReference):
            build_evolver(config).create_child(
                seed_population, seed_population.get("A"), ghost, "text"
            )

    def test_new_id_avoids_retired(self, config, seed_population, monkeypatch):
        seed_population.retired["evolved_gen1_aaaaaaaa"] = 1
        hexes = iter(["aaaaaaaa" + "0" * 24, "bbbbbbbb" + "0" * 24])

        class FakeUUID:
            def __init__(self):
                self.hex = next(hexes)

        monkeypatch.setattr("fpo.core.engine.evolver.uuid.uuid4", FakeUUID)
        assert build_evolver(config).new_id(seed_population, 1) == "evolved_gen1_bbbbbbbb"

    @pytest.mark.asyncio
    async def test_prune_retires_weakest_evolved(self, seed_population):
        config = FPOConfig(seed=1, max_population=2)
        weak = PromptCandidate(
            id="X", template="Weak.", weight=0.1, generation=1, parents=["A", "B"]
        )
        population = weighted(seed_population, A=0.65, B=0.35)
        population.candidates["X"] = weak

        summary = await build_evolver(config).evolve(population)

        assert summary.pruned == ["X"]
        assert population.retired == {"X": 1}
        assert "X" not in population.candidates
        # Seeds, champion and the newborn child are protected.
        assert population.size == 3
        assert summary.evolved[0] in population.candidates

    @pytest.mark.asyncio
    async def test_identical_parents_yield_distinct_child(self, config):
        population = Population.from_seeds([
            make_candidate("A", 0.6, "Describe the frame."),
            make_candidate("B", 0.4, "describe the frame."),
        ])
        summary = await build_evolver(config).evolve(population)
        child = population.get(summary.evolved[0])
        assert child.template_text == "Depict the frame."

    @pytest.mark.asyncio
    async def test_evolve_uses_async_llm(self, config, seed_population, fake_llm_factory):
        llm = fake_llm_factory(["Merged prompt."])
        summary = await build_evolver(config, llm=llm).evolve(seed_population)
        assert seed_population.get(summary.evolved[0]).template_text == "Merged prompt."
        assert len(llm.calls) == 1
