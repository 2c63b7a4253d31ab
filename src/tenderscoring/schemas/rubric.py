"""Rubric and criterion schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CriterionType = Literal["Numeric", "Boolean", "Dropdown", "Text"]
CriterionCategory = Literal["technical", "financial", "experience", "delivery", "other"]
RubricStatus = Literal["Draft", "Active", "Archived"]


class SubCriterion(BaseModel):
    """Scorable dimension rolled up into exactly one parent criterion.

    Sub-criteria cannot carry sub-criteria of their own; the extra field is
    rejected by the schema. A mandatory sub-criterion without its own
    ``passing_score`` is held to its parent's passing score.
    """

    id: str
    name: str
    description: str = ""
    weight: float = Field(ge=0, le=100)
    max_score: float = Field(default=100.0, gt=0)
    type: CriterionType = "Numeric"
    options: tuple[str, ...] = ()
    mandatory: bool = False
    passing_score: float | None = Field(default=None, ge=0, le=100)

    model_config = ConfigDict(extra="forbid", frozen=True)


class Criterion(BaseModel):
    """Top-level weighted criterion."""

    id: str
    name: str
    description: str = ""
    weight: float = Field(ge=0, le=100)
    max_score: float = Field(default=100.0, gt=0)
    type: CriterionType = "Numeric"
    options: tuple[str, ...] = ()
    category: CriterionCategory = "technical"
    mandatory: bool = False
    passing_score: float | None = Field(default=None, ge=0, le=100)
    sub_criteria: tuple[SubCriterion, ...] = ()

    model_config = ConfigDict(extra="forbid", frozen=True)

    def sub_criterion(self, sub_id: str) -> SubCriterion | None:
        for sub in self.sub_criteria:
            if sub.id == sub_id:
                return sub
        return None


class RubricDefinition(BaseModel):
    """Caller-supplied rubric content used to create a rubric."""

    id: str | None = None
    name: str
    description: str = ""
    version: str = "1.0"
    applicable_categories: list[str] = Field(default_factory=list)
    criteria: list[Criterion] = Field(default_factory=list)
    passing_threshold: float = Field(default=70.0, ge=0, le=100)
    primary_criterion_id: str | None = None

    model_config = ConfigDict(extra="forbid")


class Rubric(BaseModel):
    """Versioned scoring rubric held by the rubric store."""

    id: str
    name: str
    description: str = ""
    version: str = "1.0"
    applicable_categories: tuple[str, ...] = ()
    criteria: tuple[Criterion, ...] = ()
    passing_threshold: float = Field(default=70.0, ge=0, le=100)
    primary_criterion_id: str | None = None
    status: RubricStatus = "Draft"
    created_at: datetime | None = None
    last_modified: datetime | None = None
    usage_count: int = 0

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def total_weight(self) -> float:
        return float(sum(criterion.weight for criterion in self.criteria))

    def criterion(self, criterion_id: str) -> Criterion | None:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        return None


class RubricSnapshot(BaseModel):
    """Immutable value copy of an active rubric bound to a matrix."""

    id: str
    name: str
    version: str
    criteria: tuple[Criterion, ...]
    passing_threshold: float
    primary_criterion_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_rubric(cls, rubric: Rubric) -> "RubricSnapshot":
        data = rubric.model_dump(
            mode="python",
            include={
                "id",
                "name",
                "version",
                "criteria",
                "passing_threshold",
                "primary_criterion_id",
            },
        )
        return cls.model_validate(data)

    def criterion(self, criterion_id: str) -> Criterion | None:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        return None

    def parent_of(self, sub_id: str) -> Criterion | None:
        for criterion in self.criteria:
            if criterion.sub_criterion(sub_id) is not None:
                return criterion
        return None

    def criterion_ids(self) -> list[str]:
        return [criterion.id for criterion in self.criteria]

    def sub_criterion_ids(self) -> list[str]:
        return [sub.id for criterion in self.criteria for sub in criterion.sub_criteria]
