"""
Completeness scoring for extracted job data.

Weights (total 100):
    title 20, company_name 15, description 25, location 10,
    salary_min 5, salary_max 5, qualifications 5, responsibilities 5,
    benefits 5, job_type 3, experience_level 2

A field is present when its trimmed value has at least 5 characters.
Missing any required field (title, company_name, description) is Failed
regardless of the score. Otherwise:
    >= 0.90 Complete, >= 0.70 Sufficient, >= 0.50 Partial, else Minimal
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

MIN_FIELD_LENGTH = 5

FIELD_WEIGHTS: Dict[str, int] = {
    "title": 20,
    "company_name": 15,
    "description": 25,
    "location": 10,
    "salary_min": 5,
    "salary_max": 5,
    "qualifications": 5,
    "responsibilities": 5,
    "benefits": 5,
    "job_type": 3,
    "experience_level": 2,
}

REQUIRED_FIELDS = ("title", "company_name", "description")

MAX_POINTS = sum(FIELD_WEIGHTS.values())

COMPLETE_THRESHOLD = 0.90
SUFFICIENT_THRESHOLD = 0.70
PARTIAL_THRESHOLD = 0.50


class CompletionState(Enum):
    """Extraction quality grade. Always derived from a ScoringResult."""
    COMPLETE = "Complete"
    SUFFICIENT = "Sufficient"
    PARTIAL = "Partial"
    MINIMAL = "Minimal"
    FAILED = "Failed"
    UNKNOWN = "Unknown"  # legacy data, never produced by score()

    def to_db_string(self) -> str:
        return self.value.lower()

    @classmethod
    def from_db_string(cls, value: Optional[str]) -> "CompletionState":
        """Lenient parse for stored values; anything unrecognized is Unknown."""
        return cls.from_string(value) or cls.UNKNOWN

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["CompletionState"]:
        if not value:
            return None
        wanted = value.strip().lower()
        for state in cls:
            if state.value.lower() == wanted:
                return state
        return None


@dataclass(frozen=True)
class ScoringResult:
    state: CompletionState
    score: float
    earned_points: int
    max_points: int
    present_fields: List[str]
    missing_required_fields: List[str]
    missing_optional_fields: List[str]

    @property
    def score_percent(self) -> str:
        return f"{self.score * 100:.1f}%"

    @property
    def summary(self) -> str:
        return f"{self.state.value} ({self.score_percent}, {self.earned_points}/{self.max_points} points)"

    @property
    def has_required_fields(self) -> bool:
        return not self.missing_required_fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "score": round(self.score, 4),
            "earned_points": self.earned_points,
            "max_points": self.max_points,
            "present_fields": list(self.present_fields),
            "missing_required_fields": list(self.missing_required_fields),
            "missing_optional_fields": list(self.missing_optional_fields),
        }


def is_present(value: Optional[str]) -> bool:
    return value is not None and len(value.strip()) >= MIN_FIELD_LENGTH


def score(fields: Mapping[str, Optional[str]]) -> ScoringResult:
    """Grade a field -> value map."""
    present = sorted(name for name, value in fields.items() if is_present(value))
    present_set = set(present)

    missing_required = sorted(f for f in REQUIRED_FIELDS if f not in present_set)
    missing_optional = sorted(
        f for f in FIELD_WEIGHTS if f not in present_set and f not in REQUIRED_FIELDS
    )

    earned = sum(FIELD_WEIGHTS.get(name, 0) for name in present)
    normalized = earned / MAX_POINTS

    if missing_required:
        state = CompletionState.FAILED
    elif normalized >= COMPLETE_THRESHOLD:
        state = CompletionState.COMPLETE
    elif normalized >= SUFFICIENT_THRESHOLD:
        state = CompletionState.SUFFICIENT
    elif normalized >= PARTIAL_THRESHOLD:
        state = CompletionState.PARTIAL
    else:
        state = CompletionState.MINIMAL

    return ScoringResult(
        state=state,
        score=normalized,
        earned_points=earned,
        max_points=MAX_POINTS,
        present_fields=present,
        missing_required_fields=missing_required,
        missing_optional_fields=missing_optional,
    )
