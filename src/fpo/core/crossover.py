"""Prompt crossover: LLM synthesis of two prompts, or sentence splicing."""

import random
import re
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from ..clients import BaseLLMClient
from ..models import FPOConfig, PromptCandidate

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
WRAPPING_QUOTES = re.compile(r"^[\"']|[\"']$")
CROSSOVER_MAX_TOKENS = 400

ORIGIN_A = "a"
ORIGIN_B = "b"


def split_sentences(text: str) -> List[str]:
    """Split prompt text into non-empty sentences."""
    return [s.strip() for s in SENTENCE_SPLIT.split(text.strip()) if s.strip()]


def clean_completion(text: str) -> str:
    """Strip whitespace and the quotes models like to wrap prompts in."""
    return WRAPPING_QUOTES.sub("", text.strip()).strip()


def splice_sentences(text_a: str, text_b: str, rng: random.Random) -> str:
    """Uniform crossover over sentence slots.

    Every slot takes the sentence of one parent; at least one slot comes from
    each parent. Single-sentence parents are concatenated.
    """
    a = split_sentences(text_a)
    b = split_sentences(text_b)
    if not a or not b:
        return (text_a if a else text_b).strip()

    if max(len(a), len(b)) == 1:
        picks: List[Tuple[str, str]] = [(ORIGIN_A, a[0]), (ORIGIN_B, b[0])]
    else:
        picks = []
        for i in range(max(len(a), len(b))):
            options = []
            if i < len(a):
                options.append((ORIGIN_A, a[i]))
            if i < len(b):
                options.append((ORIGIN_B, b[i]))
            picks.append(rng.choice(options))
        origins = {origin for origin, _ in picks}
        if len(origins) == 1:
            # Force one shared slot over to the other parent.
            slot = rng.randrange(min(len(a), len(b)))
            picks[slot] = (ORIGIN_B, b[slot]) if ORIGIN_A in origins else (ORIGIN_A, a[slot])

    seen = set()
    sentences = []
    for _, sentence in picks:
        marker = sentence.lower()
        if marker in seen:
            continue
        seen.add(marker)
        sentences.append(sentence)
    return " ".join(sentences)


class PromptCrossover:
    """Generate a hybrid prompt from two parents."""

    def __init__(
        self,
        config: FPOConfig,
        llm_client: Optional[BaseLLMClient] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config
        self.llm = llm_client
        self.rng = rng or random.Random(config.seed)

    async def crossover_prompts(
        self,
        parent_a: PromptCandidate,
        parent_b: PromptCandidate,
        domains: Sequence[str] = ()
    ) -> str:
        """Create a non-empty hybrid text from both parents."""
        if self.llm is not None:
            hybrid = await self._llm_crossover(parent_a, parent_b, domains)
            if hybrid:
                return hybrid
        hybrid = splice_sentences(parent_a.template_text, parent_b.template_text, self.rng)
        logger.debug(f"Spliced crossover prompt ({len(hybrid)} chars)")
        return hybrid

    async def _llm_crossover(
        self,
        parent_a: PromptCandidate,
        parent_b: PromptCandidate,
        domains: Sequence[str]
    ) -> str:
        prompt = self.config.crossover_template.format(
            prompt_a=parent_a.template_text,
            prompt_b=parent_b.template_text,
            weight_a=parent_a.weight,
            weight_b=parent_b.weight,
            domains=", ".join(domains) or "all content types",
        )
        try:
            response = await self.llm.achat_completion(
                messages=[
                    {"role": "system", "content": self.config.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.config.crossover_temperature,
                max_tokens=CROSSOVER_MAX_TOKENS,
            )
        except Exception as e:
            logger.warning(f"LLM crossover failed ({e}), falling back to sentence splice")
            return ""
        hybrid = clean_completion(response)
        if not hybrid:
            logger.warning("LLM crossover returned empty text, falling back to sentence splice")
        else:
            logger.debug(f"LLM crossover prompt ({len(hybrid)} chars)")
        return hybrid
