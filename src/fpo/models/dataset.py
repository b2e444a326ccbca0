"""Test case models for federated evaluation."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_DOMAIN = "default"


class EvalCase(BaseModel):
    """Single test case scored by the external evaluator."""

    key: str = Field(min_length=1, description="Stable key used to merge results")
    domain: str = DEFAULT_DOMAIN
    input: Dict[str, Any] = Field(default_factory=dict)
    reference: Optional[str] = None

    @classmethod
    def from_domain_mapping(cls, data: Dict[str, Dict[str, Any]]) -> List["EvalCase"]:
        """Convert ``{domain: {path, reference, ...}}`` test data into cases.

        The ``default`` entry only serves domains without their own data, so it
        is dropped when every other domain is present.
        """
        cases: List[EvalCase] = []
        for domain, payload in sorted(data.items()):
            if domain == DEFAULT_DOMAIN and len(data) > 1:
                continue
            fields = dict(payload)
            reference = fields.pop("reference", None)
            cases.append(cls(key=domain, domain=domain, input=fields, reference=reference))
        return cases
