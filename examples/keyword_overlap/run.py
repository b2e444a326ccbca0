"""Minimal FPO example: offline keyword-overlap oracle, no API key needed."""

import re
from pathlib import Path

from fpo import EvalCase, FederatedPromptOptimizer, FPOConfig, FunctionEvaluator, PromptCandidate
from fpo.models import Population

RUN_DIR = Path(__file__).parent / "runs"
WORD = re.compile(r"[a-z]+")

seed = Population.from_seeds(
    [
        PromptCandidate(id="baseline", template="Describe what you see.", weight=0.5),
        PromptCandidate(
            id="structured",
            template="List the main subjects. Mention the setting and visible text.",
            weight=0.5,
        ),
        PromptCandidate(
            id="narrative",
            template="Tell what is happening in the frame. Focus on actions.",
            weight=0.5,
        ),
    ],
    domains=["news", "sports"],
)

cases = [
    EvalCase(key="news-1", domain="news", reference="subjects setting visible text"),
    EvalCase(key="sports-1", domain="sports", reference="actions happening main subjects"),
]


def keyword_overlap(template: str, case: EvalCase) -> float:
    expected = set(WORD.findall(case.reference.lower()))
    found = set(WORD.findall(template.lower()))
    return len(expected & found) / len(expected)


optimizer = FederatedPromptOptimizer(
    registry_path=RUN_DIR / "prompts.json",
    evaluator=FunctionEvaluator(keyword_overlap),
    config=FPOConfig(seed=42, max_population=6),
    seed=seed,
)
result = optimizer.run_job(6, cases)

print(f"\nFinal prompt: {result.final_prompt}")
print(f"Evolved:      {result.evolved} (max generation {result.generation})")
for template in optimizer.get_status().templates:
    print(f"  {template.id:<28} {template.weight:.4f}  {template.template}")
