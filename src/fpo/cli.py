"""Command-line interface for FPO."""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import Settings, get_settings
from .errors import StoreCorrupt
from .models import EvalCase, FPOConfig, IterationOptions, Population, PromptCandidate

FPO_YAML = "fpo.yaml"
TEST_DATA_FILENAME = "test_cases.jsonl"
DEFAULT_ITERATIONS = 3
TEMPLATE_PREVIEW_LENGTH = 60

EXAMPLE_CONFIG = """\
# FPO Configuration
# API key: set FPO_API_KEY or OPENAI_API_KEY in environment
# For local models (SGLang, vLLM, Ollama) set base_url, no API key needed.

registry: {registry}
seed_template: {seed_template}
test_data: {test_data}
model: gpt-4o-mini
# base_url: http://localhost:8000/v1

iterations: 3
learning_rate: 0.3
enable_evolution: true
evolution_interval: 2
discount_factor: 0.5
max_population: 10
# mutation_rate: 0.2
# max_concurrency: 4
# iteration_timeout_s: 300
# seed: 42            # RNG seed for crossover and mutation
# llm_crossover: true
"""

EXAMPLE_SEEDS = [
    ("baseline", "Baseline", "Describe what you see in this video frame."),
    ("structured", "Structured",
     "Describe this video frame. List the main subjects, the setting and any visible text."),
    ("narrative", "Narrative",
     "Tell the story of this video frame in two sentences. Focus on what is happening."),
    ("technical", "Technical",
     "Describe the composition of this frame. Include camera angle, lighting and key objects."),
    ("comprehensive", "Comprehensive",
     "Give a detailed description of this frame. Identify people, actions, objects and context."),
]

EXAMPLE_DOMAINS = ["news", "reels", "sports"]

EXAMPLE_CASES = [
    {"key": "news-1", "domain": "news", "input": {},
     "reference": "A reporter speaks in front of the parliament building during a protest."},
    {"key": "sports-1", "domain": "sports", "input": {},
     "reference": "A striker scores a goal as the goalkeeper dives to the left."},
    {"key": "reels-1", "domain": "reels", "input": {},
     "reference": "A person dances in a kitchen while cooking pasta."},
]

console = Console()


def main() -> None:
    """FPO CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="fpo",
        description="FPO - Federated Prompt Optimization",
    )
    parser.add_argument("--config", type=str, default=FPO_YAML, help="Config file path")
    parser.add_argument("--registry", type=str, help="Registry JSON path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init", help="Create example project files")

    run_parser = subparsers.add_parser("run", help="Run optimization iterations")
    run_parser.add_argument("--iterations", type=int, help="Number of iterations")
    run_parser.add_argument("--test-data", type=str, help="Path to test cases JSONL file")
    run_parser.add_argument("--no-evolution", action="store_true", help="Disable evolution")
    run_parser.add_argument("--evolution-interval", type=int, help="Evolve every N iterations")
    run_parser.add_argument("--learning-rate", type=float, help="EMA learning rate")
    run_parser.add_argument("--candidate", type=str, help="Evaluate only this candidate id")
    run_parser.add_argument("--model", type=str, help="LLM model name")
    run_parser.add_argument("--base-url", type=str, help="OpenAI-compatible API base URL")
    run_parser.add_argument("--api-key", type=str, help="API key (or set OPENAI_API_KEY)")
    run_parser.add_argument("--llm-crossover", action="store_true", help="LLM-assisted crossover")

    subparsers.add_parser("status", help="Show prompt weights and lineage")

    history_parser = subparsers.add_parser("history", help="Show recent iterations")
    history_parser.add_argument("-n", "--top", type=int, default=10, help="Number of records")

    subparsers.add_parser("reset", help="Reset the registry to the seed template")

    lineage_parser = subparsers.add_parser("lineage", help="Render lineage plot")
    lineage_parser.add_argument("--output", type=str, default="lineage.png", help="PNG path")

    args = parser.parse_args()
    _configure_logging(args.verbose)

    if args.command == "init":
        cmd_init()
        return
    if args.command is None:
        parser.print_help()
        return

    effective = _merge_config(_load_yaml_config(args.config), args)
    commands = {
        "run": cmd_run,
        "status": cmd_status,
        "history": cmd_history,
        "reset": cmd_reset,
        "lineage": cmd_lineage,
    }
    try:
        commands[args.command](effective)
    except StoreCorrupt as e:
        logger.error(str(e))
        logger.error("Inspect the file or run `fpo reset` to start from the seed template.")
        sys.exit(1)
    except FileNotFoundError as e:
        logger.error(str(e))
        logger.error("Run `fpo init` to create a seed template.")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Interrupted; the last committed iteration is kept")
        sys.exit(130)


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def cmd_init() -> None:
    """Create example FPO project files."""
    cwd = Path.cwd()
    paths = default_paths(get_settings())
    seed = build_example_seed()
    files = {
        FPO_YAML: EXAMPLE_CONFIG.format(**paths),
        paths["seed_template"]: json.dumps(seed.to_registry(), indent=2, ensure_ascii=False),
        paths["test_data"]: "\n".join(
            json.dumps(case, ensure_ascii=False) for case in EXAMPLE_CASES
        ) + "\n",
    }
    for filename, content in files.items():
        filepath = cwd / filename
        if filepath.exists():
            logger.warning(f"Skipped (already exists): {filename}")
            continue
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_text(content, encoding="utf-8")
        logger.success(f"Created: {filename}")

    print("\nProject initialized! Next steps:")
    print("  1. Edit fpo.yaml: set model and base_url (local) or API key (cloud)")
    print(f"  2. Edit {paths['seed_template']} with your seed prompts")
    print(f"  3. Replace {paths['test_data']} with your test cases")
    print("  4. Run: fpo run")


def build_example_seed() -> Population:
    seeds = [
        PromptCandidate(id=seed_id, name=name, template=text, weight=0.5)
        for seed_id, name, text in EXAMPLE_SEEDS
    ]
    return Population.from_seeds(seeds, domains=EXAMPLE_DOMAINS)


def cmd_run(effective: Dict[str, Any]) -> None:
    """Run an optimization job."""
    from .clients import LLMClient
    from .core import FederatedPromptOptimizer, LLMJudgeEvaluator

    env_settings = get_settings()
    api_key = effective.get("api_key") or env_settings.api_key
    base_url = effective.get("base_url") or env_settings.base_url
    if not api_key:
        if base_url:
            api_key = "local"
            logger.info("Using local endpoint without API key.")
        else:
            logger.error("No API key. Set FPO_API_KEY / OPENAI_API_KEY or use --api-key.")
            sys.exit(1)

    test_data_path = Path(effective["test_data"])
    if not test_data_path.exists():
        logger.error(f"Test data file not found: {test_data_path}")
        sys.exit(1)
    cases = load_test_cases(test_data_path)

    settings = env_settings.model_copy(update={
        "api_key": api_key,
        "model": effective.get("model") or env_settings.model,
        "base_url": base_url,
    })
    llm_client = LLMClient(settings)
    config = build_fpo_config(effective)
    optimizer = FederatedPromptOptimizer(
        registry_path=Path(effective["registry"]),
        evaluator=LLMJudgeEvaluator(llm_client),
        config=config,
        seed=_load_seed(effective),
        llm_client=llm_client if effective.get("llm_crossover") else None,
        show_progress=True,
    )
    options = IterationOptions(candidate_id=effective.get("candidate"))
    iterations = int(effective.get("iterations", DEFAULT_ITERATIONS))
    logger.info(
        f"Starting FPO: {iterations} iterations, {len(cases)} test cases, "
        f"evolution={'on' if config.enable_evolution else 'off'}, model={settings.model}"
    )
    result = optimizer.run_job(iterations, cases, options)

    print(f"\n{'=' * 60}")
    print("FPO JOB COMPLETE")
    print(f"{'=' * 60}")
    print(f"Iterations:    {result.iterations}")
    print(f"Final prompt:  {result.final_prompt}")
    print(f"Evolved:       {result.evolved}")
    print(f"Generation:    {result.generation}")
    print(f"{'=' * 60}")


def cmd_status(effective: Dict[str, Any]) -> None:
    """Print the population, best first."""
    from .core import CandidatePool, PopulationStore

    store = PopulationStore(Path(effective["registry"]), seed=_load_seed(effective))
    population = store.load()
    table = Table(title=f"FPO status (iteration {population.iteration})")
    table.add_column("id", style="cyan")
    table.add_column("weight", justify="right")
    table.add_column("gen", justify="right")
    table.add_column("parents")
    table.add_column("latest", justify="right")
    table.add_column("template")
    for candidate in CandidatePool().rank(population):
        marker = "* " if candidate.id == population.champion_id else ""
        latest = candidate.latest_score
        table.add_row(
            f"{marker}{candidate.id}",
            f"{candidate.weight:.4f}",
            str(candidate.generation),
            ", ".join(candidate.parents),
            "-" if latest is None else f"{latest:.4f}",
            candidate.template_text[:TEMPLATE_PREVIEW_LENGTH],
        )
    console.print(table)
    console.print(
        f"Global prompt: [green]{population.champion_id}[/green] | "
        f"Population: {population.size} | Max generation: {population.max_generation}"
    )


def cmd_history(effective: Dict[str, Any]) -> None:
    """Print recent audit-trail records."""
    from .core.io.iteration_logger import IterationLogger

    log_dir = Path(effective["registry"]).parent
    records = IterationLogger(log_dir).read_history(int(effective.get("top", 10)))
    if not records:
        console.print("No iterations recorded yet.")
        return
    table = Table(title="FPO history")
    table.add_column("iteration", justify="right")
    table.add_column("global prompt", style="cyan")
    table.add_column("evolved")
    table.add_column("errors", justify="right")
    for record in records:
        evolution = record.get("evolution") or {}
        errors = sum(len(p.get("errors", [])) for p in record.get("prompts", []))
        table.add_row(
            str(record["iteration"]),
            record["global_prompt"],
            ", ".join(evolution.get("evolved", [])),
            str(errors),
        )
    console.print(table)


def cmd_reset(effective: Dict[str, Any]) -> None:
    """Replace the registry with the seed template."""
    from .core import PopulationStore

    seed = _load_seed(effective)
    if seed is None:
        logger.error(f"Seed template not found: {effective['seed_template']}")
        sys.exit(1)
    PopulationStore(Path(effective["registry"])).reset(seed)
    logger.success(f"Registry reset to seed template ({seed.size} candidates)")


def cmd_lineage(effective: Dict[str, Any]) -> None:
    """Render the lineage plot."""
    from .core import PopulationStore
    from .visualization import LineageVisualizer

    population = PopulationStore(Path(effective["registry"]), seed=_load_seed(effective)).load()
    LineageVisualizer().render(population, Path(effective.get("output", "lineage.png")))


def load_test_cases(path: Path) -> List[EvalCase]:
    """Load test cases from a JSONL file."""
    cases: List[EvalCase] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                cases.append(EvalCase.model_validate(json.loads(line)))
    logger.info(f"Loaded {len(cases)} test cases from {path}")
    return cases


def build_fpo_config(effective: Dict[str, Any]) -> FPOConfig:
    """Build FPOConfig from the effective config dict."""
    overrides = {
        key: value for key, value in effective.items()
        if key in FPOConfig.model_fields and value is not None
    }
    return FPOConfig(**overrides)


def default_paths(settings: Settings) -> Dict[str, str]:
    """Registry, seed template and test data paths under the settings data dir."""
    return {
        "registry": settings.registry_path.as_posix(),
        "seed_template": settings.seed_path.as_posix(),
        "test_data": (settings.data_dir / TEST_DATA_FILENAME).as_posix(),
    }


def _load_seed(effective: Dict[str, Any]) -> Optional[Population]:
    from .core import PopulationStore

    seed_path = Path(effective["seed_template"])
    if not seed_path.exists():
        return None
    return PopulationStore.read(seed_path)


def _load_yaml_config(config_path: str) -> Dict[str, Any]:
    """Load YAML config file if it exists."""
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _merge_config(yaml_data: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Settings defaults, overridden by YAML values, overridden by CLI flags that were given."""
    effective: Dict[str, Any] = dict(default_paths(get_settings()))
    effective.update(yaml_data)
    cli_overrides = {
        "registry": getattr(args, "registry", None),
        "iterations": getattr(args, "iterations", None),
        "test_data": getattr(args, "test_data", None),
        "evolution_interval": getattr(args, "evolution_interval", None),
        "learning_rate": getattr(args, "learning_rate", None),
        "candidate": getattr(args, "candidate", None),
        "model": getattr(args, "model", None),
        "base_url": getattr(args, "base_url", None),
        "api_key": getattr(args, "api_key", None),
        "top": getattr(args, "top", None),
        "output": getattr(args, "output", None),
    }
    if getattr(args, "no_evolution", False):
        cli_overrides["enable_evolution"] = False
    if getattr(args, "llm_crossover", False):
        cli_overrides["llm_crossover"] = True
    for key, value in cli_overrides.items():
        if value is not None:
            effective[key] = value
    return effective
