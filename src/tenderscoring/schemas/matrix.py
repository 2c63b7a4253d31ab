"""Evaluation matrix schemas: submissions, score records, results and audit."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

MatrixStatus = Literal[
    "Setup",
    "InProgress",
    "EvaluationComplete",
    "Review",
    "Final",
    "Cancelled",
]
ReviewStatus = Literal["Pending", "Reviewed", "Approved", "Rejected"]
Severity = Literal["Critical", "Major", "Minor"]
Recommendation = Literal["Award", "Consider", "Reject"]
Role = Literal["evaluator", "chair", "reviewer"]


class EvaluationPeriod(BaseModel):
    """Window in which the committee scores vendors."""

    start: datetime
    end: datetime

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "EvaluationPeriod":
        if self.end < self.start:
            raise ValueError("evaluation period ends before it starts")
        return self


class Vendor(BaseModel):
    """Eligible vendor supplied by bid intake."""

    vendor_id: str
    name: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class MatrixSetup(BaseModel):
    """Everything needed to open one evaluation exercise."""

    matrix_id: str
    name: str = ""
    tender_id: str
    tender_title: str = ""
    rubric_id: str
    rubric_version: str | None = None
    committee_id: str = ""
    committee: list[str] = Field(min_length=1)
    vendors: list[Vendor] = Field(min_length=1)
    evaluation_period: EvaluationPeriod | None = None
    consensus_threshold: float | None = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_unique(self) -> "MatrixSetup":
        if len(set(self.committee)) != len(self.committee):
            raise ValueError("committee roster contains duplicate evaluator ids")
        vendor_ids = [vendor.vendor_id for vendor in self.vendors]
        if len(set(vendor_ids)) != len(vendor_ids):
            raise ValueError("vendor list contains duplicate vendor ids")
        return self


class ScoreSubmission(BaseModel):
    """Raw criterion scores one evaluator submits for one vendor."""

    vendor_id: str
    evaluator_id: str
    scores: dict[str, float] = Field(default_factory=dict)
    sub_scores: dict[str, float] = Field(default_factory=dict)
    comments: str = ""
    criterion_comments: dict[str, str] = Field(default_factory=dict)
    evidence_provided: dict[str, bool] = Field(default_factory=dict)
    vendor_name: str | None = None
    time_spent_minutes: int | None = Field(default=None, ge=0)
    attachments: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ComplianceIssue(BaseModel):
    """Single compliance finding against a criterion."""

    criterion_id: str
    criterion_name: str = ""
    issue: str
    severity: Severity
    recommendation: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)


class VendorScore(BaseModel):
    """Accepted score sheet for one (vendor, evaluator) pair."""

    vendor_id: str
    evaluator_id: str
    vendor_name: str | None = None
    scores: dict[str, float] = Field(default_factory=dict)
    sub_scores: dict[str, float] = Field(default_factory=dict)
    comments: str = ""
    criterion_comments: dict[str, str] = Field(default_factory=dict)
    evidence_provided: dict[str, bool] = Field(default_factory=dict)
    time_spent_minutes: int | None = None
    attachments: tuple[str, ...] = ()
    review_status: ReviewStatus = "Pending"
    submitted_at: datetime
    first_submitted_at: datetime | None = None
    version: int = 1
    weighted_score: float = 0.0
    category_scores: dict[str, float] = Field(default_factory=dict)
    technical_compliance: bool = True
    compliance_issues: tuple[ComplianceIssue, ...] = ()
    fully_scored: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def key(self) -> tuple[str, str]:
        return self.vendor_id, self.evaluator_id

    @property
    def etag(self) -> str:
        return f"{self.vendor_id}:{self.evaluator_id}:v{self.version}"


class VendorRanking(BaseModel):
    """One ranked vendor row of the results snapshot."""

    rank: int
    vendor_id: str
    vendor_name: str | None = None
    total_score: float
    technical_score: float = 0.0
    financial_score: float = 0.0
    experience_score: float = 0.0
    compliance: bool
    recommendation: Recommendation
    variance: float = 0.0
    consensus_reached: bool = True
    evaluator_count: int = 0
    compliance_issues: tuple[ComplianceIssue, ...] = ()

    model_config = ConfigDict(extra="forbid", frozen=True)


class MatrixResults(BaseModel):
    """Derived results snapshot; regenerated in full on every recompute."""

    rankings: tuple[VendorRanking, ...] = ()
    consensus_reached: bool = False
    average_score: float = 0.0
    score_variance: float = 0.0
    recommended_award: str = ""
    alternative_options: tuple[str, ...] = ()
    technically_compliant: int = 0
    total_evaluated: int = 0
    expected_vendors: int = 0
    submitted_evaluations: int = 0
    expected_evaluations: int = 0
    evaluation_summary: str = ""
    # Time of the committed change the snapshot reflects, not of the recompute.
    computed_at: datetime | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class AuditEntry(BaseModel):
    """Append-only audit record."""

    entry_id: str
    timestamp: datetime
    actor: str
    role: Role | None = None
    action: str
    details: str = ""
    old_value: Any = None
    new_value: Any = None
    overridden: bool = False
    succeeded: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)
