"""Population model and registry (de)serialization."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import InvalidReference
from .candidate import PromptCandidate, rank_key

REGISTRY_VERSION = "1.0"


class Population(BaseModel):
    """Candidate registry: every candidate, the champion and lineage bookkeeping."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = REGISTRY_VERSION
    iteration: int = Field(default=0, ge=0, description="Last committed iteration")
    candidates: Dict[str, PromptCandidate]
    domains: List[str] = Field(default_factory=list)
    champion_id: str = Field(alias="global_prompt")
    retired: Dict[str, int] = Field(
        default_factory=dict,
        description="Pruned candidate id -> generation"
    )

    @field_validator("domains")
    @classmethod
    def _normalize_domains(cls, domains: List[str]) -> List[str]:
        return sorted(set(domains))

    @model_validator(mode="after")
    def _check_invariants(self) -> "Population":
        if not self.candidates:
            raise ValueError("population has no candidates")
        for key, candidate in self.candidates.items():
            if key != candidate.id:
                raise ValueError(f"candidate stored under {key!r} has id {candidate.id!r}")
        if self.champion_id not in self.candidates:
            raise ValueError(f"champion {self.champion_id!r} is not a candidate")
        reused = set(self.retired) & set(self.candidates)
        if reused:
            raise ValueError(f"retired ids reused: {sorted(reused)}")
        for candidate in self.candidates.values():
            self._check_lineage(candidate)
            if candidate.last_iteration > self.iteration:
                raise ValueError(
                    f"candidate {candidate.id!r} was scored in iteration "
                    f"{candidate.last_iteration} beyond committed iteration {self.iteration}"
                )
        return self

    def _check_lineage(self, candidate: PromptCandidate) -> None:
        if not candidate.parents:
            if candidate.generation != 0:
                raise ValueError(f"candidate {candidate.id!r} has no parents but generation > 0")
            return
        parent_generations = []
        for parent_id in candidate.parents:
            if parent_id in self.candidates:
                parent_generations.append(self.candidates[parent_id].generation)
            elif parent_id in self.retired:
                parent_generations.append(self.retired[parent_id])
            else:
                raise ValueError(f"candidate {candidate.id!r} has unknown parent {parent_id!r}")
        expected = max(parent_generations) + 1
        if candidate.generation != expected:
            raise ValueError(
                f"candidate {candidate.id!r} has generation {candidate.generation}, "
                f"expected {expected}"
            )

    @property
    def champion(self) -> PromptCandidate:
        return self.get(self.champion_id, role="champion")

    @property
    def size(self) -> int:
        return len(self.candidates)

    @property
    def max_generation(self) -> int:
        return max(candidate.generation for candidate in self.candidates.values())

    def get(self, candidate_id: str, role: str = "candidate") -> PromptCandidate:
        """Look up a candidate, raising InvalidReference when it is missing."""
        try:
            return self.candidates[candidate_id]
        except KeyError:
            raise InvalidReference(candidate_id, role) from None

    def is_known_id(self, candidate_id: str) -> bool:
        """True for live and retired ids; such ids must never be issued again."""
        return candidate_id in self.candidates or candidate_id in self.retired

    @classmethod
    def from_seeds(
        cls,
        seeds: List[PromptCandidate],
        domains: Optional[List[str]] = None
    ) -> "Population":
        """Initial population; the best-ranked seed becomes champion."""
        if not seeds:
            raise ValueError("at least one seed candidate is required")
        return cls(
            candidates={seed.id: seed for seed in seeds},
            domains=domains or [],
            champion_id=min(seeds, key=rank_key).id,
        )

    def to_registry(self) -> Dict[str, Any]:
        """Serialize into the persisted registry layout."""
        return {
            "version": self.version,
            "iteration": self.iteration,
            "templates": [
                candidate.model_dump(mode="json", by_alias=True)
                for candidate in self.candidates.values()
            ],
            "domains": list(self.domains),
            "global_prompt": self.champion_id,
            "retired": dict(self.retired),
        }

    @classmethod
    def from_registry(cls, data: Any) -> "Population":
        """Parse the persisted registry layout; raises ValueError on bad structure."""
        if not isinstance(data, dict):
            raise ValueError("registry root must be an object")
        templates = data.get("templates")
        if not isinstance(templates, list):
            raise ValueError("registry is missing the 'templates' list")
        if "global_prompt" not in data:
            raise ValueError("registry is missing 'global_prompt'")
        candidates: Dict[str, PromptCandidate] = {}
        for item in templates:
            candidate = PromptCandidate.model_validate(item)
            if candidate.id in candidates:
                raise ValueError(f"duplicate candidate id {candidate.id!r}")
            candidates[candidate.id] = candidate
        return cls.model_validate({
            "version": data.get("version", REGISTRY_VERSION),
            "iteration": data.get("iteration", 0),
            "candidates": candidates,
            "domains": data.get("domains", []),
            "global_prompt": data["global_prompt"],
            "retired": data.get("retired", {}),
        })
