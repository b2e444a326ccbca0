"""Append-only audit trail of committed iterations."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from ...models import IterationResult, Population

ITERATION_LOG_FILENAME = "fpo_log.jsonl"
MAX_ERROR_MESSAGE_LENGTH = 200


class IterationLogger:
    """Write one JSON line per committed iteration."""

    def __init__(self, log_dir: Path):
        self.log_dir = Path(log_dir)
        self.log_path = self.log_dir / ITERATION_LOG_FILENAME

    def append(self, result: IterationResult, population: Population) -> None:
        """Append the record of a committed iteration."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "type": "fpo_iteration",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "iteration": result.iteration,
            "global_prompt": result.global_prompt,
            "champion_changed": result.champion_changed,
            "no_op": result.no_op,
            "prompts": [
                {
                    "id": score.candidate_id,
                    "weight": score.weight_after,
                    "avg_score": score.aggregate_score,
                    "errors": [
                        {
                            "case": error.case_key,
                            "kind": error.kind,
                            "message": error.message[:MAX_ERROR_MESSAGE_LENGTH],
                        }
                        for error in score.errors
                    ],
                }
                for score in result.per_candidate_scores
            ],
            "evolution": result.evolution.model_dump() if result.evolution else None,
            "population_size": population.size,
            "max_generation": population.max_generation,
        }
        with open(self.log_path, "a", encoding="utf-8") as log_file:
            log_file.write(json.dumps(payload, ensure_ascii=False) + "\n")

    def read_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent records, oldest first."""
        if not self.log_path.exists():
            return []
        records = []
        with open(self.log_path, "r", encoding="utf-8") as log_file:
            for line in log_file:
                if line.strip():
                    records.append(json.loads(line))
        return records[-limit:] if limit > 0 else records
