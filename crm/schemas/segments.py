from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from crm.db.enums import RuleFieldEnum, RuleLogicEnum, RuleOperatorEnum


class SegmentRule(BaseModel):
    field: RuleFieldEnum
    operator: RuleOperatorEnum
    value: str = Field(min_length=1)
    logic: Optional[RuleLogicEnum] = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, value: Any) -> Any:
        # Numeric thresholds arrive as JSON numbers from the builder UI.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


def normalize_rules(rules: List[SegmentRule]) -> List[SegmentRule]:
    if not rules:
        raise ValueError("At least one rule is required")
    first = rules[0]
    if first.logic is not None:
        rules[0] = first.model_copy(update={"logic": None})
    return rules


class SegmentCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str = Field(min_length=5, max_length=500)
    rules: List[SegmentRule]
    tags: List[str] = Field(default_factory=list)

    @field_validator("rules")
    @classmethod
    def validate_rules(cls, rules: List[SegmentRule]) -> List[SegmentRule]:
        return normalize_rules(rules)


class SegmentUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, min_length=5, max_length=500)
    rules: Optional[List[SegmentRule]] = None
    tags: Optional[List[str]] = None

    @field_validator("rules")
    @classmethod
    def validate_rules(cls, rules: Optional[List[SegmentRule]]) -> Optional[List[SegmentRule]]:
        if rules is None:
            return rules
        return normalize_rules(rules)


class RulesPreviewRequest(BaseModel):
    rules: List[SegmentRule]

    @field_validator("rules")
    @classmethod
    def validate_rules(cls, rules: List[SegmentRule]) -> List[SegmentRule]:
        return normalize_rules(rules)


class AudienceEstimateResponse(BaseModel):
    audienceSize: int
    estimatedReach: int


class SegmentResponse(BaseModel):
    id: str
    name: str
    description: str
    rules: List[SegmentRule]
    audienceSize: int
    estimatedReach: int
    usageCount: int
    tags: List[str]
    isActive: bool
    createdBy: str
    lastUpdated: datetime
    createdAt: datetime
    updatedAt: datetime
