from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from loginguard.schemas.base_schema import BaseSchema, Decision

THRESHOLD_KEYS = ("low", "medium", "high", "block")


class Thresholds(BaseSchema):
    """Decision cutover points, each within [0, 1]"""

    low: float = Field(..., ge=0.0, le=1.0)
    medium: float = Field(..., ge=0.0, le=1.0)
    high: float = Field(..., ge=0.0, le=1.0)
    block: float = Field(..., ge=0.0, le=1.0)

    def as_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in THRESHOLD_KEYS}


class ThresholdsResponse(Thresholds):
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class DecisionResult(BaseSchema):
    decision: Decision
    recommended_actions: List[str]


def ordering_problems(values: Dict[str, float]) -> List[str]:
    """Describe every violation of 0 <= low <= medium <= high <= block <= 1"""
    problems = []
    for key in THRESHOLD_KEYS:
        value = values.get(key)
        if value is None:
            problems.append(f"{key} is required")
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            problems.append(f"{key} must be a number")
        elif not 0.0 <= value <= 1.0:
            problems.append(f"{key} must be between 0 and 1 (got {value})")
    if problems:
        return problems

    for lower, upper in zip(THRESHOLD_KEYS, THRESHOLD_KEYS[1:]):
        if values[lower] > values[upper]:
            problems.append(
                f"{lower} ({values[lower]}) must not exceed {upper} ({values[upper]})"
            )
    return problems
