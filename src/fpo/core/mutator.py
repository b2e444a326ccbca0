"""Stochastic perturbation of evolved prompt text."""

import random
import re
from typing import List, Optional, Tuple

from loguru import logger

from ..clients import BaseLLMClient
from ..models import FPOConfig
from .crossover import clean_completion

MAX_SUBSTITUTIONS = 2
MUTATION_MAX_TOKENS = 400

SYNONYMS: List[Tuple[str, str]] = [
    (r"\bdescribe\b", "depict"),
    (r"\bdetailed\b", "thorough"),
    (r"\bconcise\b", "brief"),
    (r"\bfocus on\b", "concentrate on"),
    (r"\bidentify\b", "point out"),
    (r"\bkey\b", "main"),
    (r"\bimportant\b", "significant"),
    (r"\bclearly\b", "precisely"),
    (r"\bsummarize\b", "condense"),
    (r"\bexplain\b", "clarify"),
    (r"\binclude\b", "mention"),
    (r"\bshould\b", "must"),
]

ADDITIONS = [
    "Be specific.",
    "Mention visible text when present.",
    "Keep the answer short.",
    "Note the setting and the main subjects.",
]


def _match_case(original: str, replacement: str) -> str:
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


class PromptMutator:
    """Apply a small random variation to a prompt.

    Uses the LLM to rephrase when a client is configured, otherwise swaps a
    couple of words for synonyms or appends a short instruction.
    """

    def __init__(
        self,
        config: FPOConfig,
        llm_client: Optional[BaseLLMClient] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config
        self.llm = llm_client
        self.rng = rng or random.Random(config.seed)

    def should_mutate(self) -> bool:
        return self.config.mutation_rate > 0 and self.rng.random() < self.config.mutation_rate

    async def mutate(self, text: str) -> str:
        """Return a perturbed, non-empty version of the text that differs from it."""
        if self.llm is not None:
            mutated = await self._llm_mutation(text)
            if mutated and mutated.lower() != text.strip().lower():
                return mutated
        return self.substitute(text)

    def substitute(self, text: str) -> str:
        patterns = [
            (pattern, word) for pattern, word in SYNONYMS
            if re.search(pattern, text, flags=re.IGNORECASE)
        ]
        if not patterns:
            addition = self.rng.choice(ADDITIONS)
            logger.debug(f"Mutation: appended {addition!r}")
            return f"{text.rstrip()} {addition}"
        self.rng.shuffle(patterns)
        for pattern, word in patterns[:MAX_SUBSTITUTIONS]:
            text = re.sub(
                pattern,
                lambda m, w=word: _match_case(m.group(0), w),
                text,
                count=1,
                flags=re.IGNORECASE
            )
        logger.debug(f"Mutation: {min(len(patterns), MAX_SUBSTITUTIONS)} synonym substitutions")
        return text

    async def _llm_mutation(self, text: str) -> str:
        prompt = self.config.mutation_template.format(prompt=text)
        try:
            response = await self.llm.achat_completion(
                messages=[
                    {"role": "system", "content": self.config.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.config.mutation_temperature,
                max_tokens=MUTATION_MAX_TOKENS,
            )
        except Exception as e:
            logger.warning(f"LLM mutation failed ({e}), using synonym substitution")
            return ""
        return clean_completion(response)
