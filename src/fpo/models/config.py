"""Optimization configuration models."""

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_LEARNING_RATE = 0.3
DEFAULT_EVOLUTION_INTERVAL = 2
DEFAULT_DISCOUNT_FACTOR = 0.5
DEFAULT_MAX_POPULATION = 10
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_CROSSOVER_TEMPERATURE = 0.7
DEFAULT_MUTATION_TEMPERATURE = 0.5
MIN_RATE = 0.0
MAX_RATE = 1.0
MIN_POPULATION = 2

DEFAULT_SYSTEM_PROMPT = (
    "You are a prompt engineering expert. "
    "Create hybrid prompts by combining the best elements of given examples."
)

DEFAULT_CROSSOVER_TEMPLATE = """You are a prompt engineer optimizing prompts that are scored by a quality oracle.

Given these two high-performing prompts:

PROMPT 1 (weight: {weight_a:.4f}):
"{prompt_a}"

PROMPT 2 (weight: {weight_b:.4f}):
"{prompt_b}"

Create a NEW prompt that combines the best aspects of both. The new prompt should:
1. Merge effective instruction patterns from both parents
2. Keep the most successful elements from each
3. Be concise and clear
4. Work well across the domains: {domains}

Return ONLY the new prompt text, nothing else."""

DEFAULT_MUTATION_TEMPLATE = """You are a prompt engineer creating variations of successful prompts.

Given this prompt:
"{prompt}"

Create a SLIGHTLY IMPROVED version by:
1. Adding one useful detail or instruction
2. OR making it more specific
3. OR adjusting the phrasing for clarity
4. Keep the core structure that makes it work

Return ONLY the new prompt text, nothing else."""


class FPOConfig(BaseModel):
    """Federated prompt optimization configuration."""

    learning_rate: float = Field(default=DEFAULT_LEARNING_RATE, ge=MIN_RATE, le=MAX_RATE)
    enable_evolution: bool = True
    evolution_interval: int = Field(default=DEFAULT_EVOLUTION_INTERVAL, ge=1)
    discount_factor: float = Field(default=DEFAULT_DISCOUNT_FACTOR, ge=MIN_RATE, le=MAX_RATE)
    max_population: int = Field(default=DEFAULT_MAX_POPULATION, ge=MIN_POPULATION)
    mutation_rate: float = Field(default=0.0, ge=MIN_RATE, le=MAX_RATE)
    crossover_temperature: float = Field(default=DEFAULT_CROSSOVER_TEMPERATURE, ge=0.0, le=2.0)
    mutation_temperature: float = Field(default=DEFAULT_MUTATION_TEMPERATURE, ge=0.0, le=2.0)
    max_concurrency: int = Field(default=DEFAULT_MAX_CONCURRENCY, ge=1, le=64)
    iteration_timeout_s: Optional[float] = Field(default=None, gt=0)
    evaluate_population: bool = True
    seed: Optional[int] = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    crossover_template: str = DEFAULT_CROSSOVER_TEMPLATE
    mutation_template: str = DEFAULT_MUTATION_TEMPLATE

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> "FPOConfig":
        """Load config keys from a YAML file, then apply non-None overrides."""
        data = {}
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                data = {k: v for k, v in loaded.items() if k in cls.model_fields}
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)


class IterationOptions(BaseModel):
    """Per-iteration overrides; unset values fall back to FPOConfig."""

    enable_evolution: Optional[bool] = None
    evolution_interval: Optional[int] = Field(default=None, ge=1)
    learning_rate: Optional[float] = Field(default=None, ge=MIN_RATE, le=MAX_RATE)
    candidate_id: Optional[str] = None
    evaluate_population: Optional[bool] = None

    def resolve(self, config: FPOConfig) -> "ResolvedOptions":
        """Merge with config defaults."""
        return ResolvedOptions(
            enable_evolution=(
                config.enable_evolution if self.enable_evolution is None
                else self.enable_evolution
            ),
            evolution_interval=self.evolution_interval or config.evolution_interval,
            learning_rate=(
                config.learning_rate if self.learning_rate is None
                else self.learning_rate
            ),
            candidate_id=self.candidate_id,
            evaluate_population=(
                config.evaluate_population if self.evaluate_population is None
                else self.evaluate_population
            ),
        )


class ResolvedOptions(BaseModel):
    """Fully resolved options for one iteration."""

    enable_evolution: bool
    evolution_interval: int = Field(ge=1)
    learning_rate: float = Field(ge=MIN_RATE, le=MAX_RATE)
    candidate_id: Optional[str] = None
    evaluate_population: bool = True
