from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, field_validator


class SegmentField(str, Enum):
    total_spent = "totalSpent"
    visit_count = "visitCount"
    last_visit = "lastVisit"
    status = "status"
    location = "location"
    email_verified = "emailVerified"


class SegmentOperator(str, Enum):
    gt = "gt"
    lt = "lt"
    eq = "eq"
    gte = "gte"
    lte = "lte"


# Long-form operator names produced by older clients and the rule converter.
OPERATOR_ALIASES = {
    "greater_than": "gt",
    "less_than": "lt",
    "greater_than_equal": "gte",
    "less_than_equal": "lte",
    "equals": "eq",
}


class SegmentRule(BaseModel):
    field: SegmentField
    operator: SegmentOperator
    value: str

    # Accepted and stored, never interpreted: rules are always AND-ed.
    logic: Optional[Literal["AND", "OR"]] = None

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, v: Any):
        if isinstance(v, str):
            key = v.strip().lower()
            return OPERATOR_ALIASES.get(key, key)
        return v

    @field_validator("value", mode="before")
    @classmethod
    def _value_as_string(cls, v: Any):
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v


def parse_segment_rules(raw: list[dict[str, Any]] | None) -> list[SegmentRule]:
    return [SegmentRule.model_validate(r) for r in (raw or [])]
