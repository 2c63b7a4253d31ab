"""Pydantic schema definitions for rubrics, matrices and results."""

from __future__ import annotations

from .matrix import (
    AuditEntry,
    ComplianceIssue,
    EvaluationPeriod,
    MatrixResults,
    MatrixSetup,
    MatrixStatus,
    Recommendation,
    ReviewStatus,
    Role,
    ScoreSubmission,
    Severity,
    Vendor,
    VendorRanking,
    VendorScore,
)
from .rubric import (
    Criterion,
    CriterionCategory,
    CriterionType,
    Rubric,
    RubricDefinition,
    RubricSnapshot,
    RubricStatus,
    SubCriterion,
)

__all__ = [
    "AuditEntry",
    "ComplianceIssue",
    "Criterion",
    "CriterionCategory",
    "CriterionType",
    "EvaluationPeriod",
    "MatrixResults",
    "MatrixSetup",
    "MatrixStatus",
    "Recommendation",
    "ReviewStatus",
    "Role",
    "Rubric",
    "RubricDefinition",
    "RubricSnapshot",
    "RubricStatus",
    "ScoreSubmission",
    "Severity",
    "SubCriterion",
    "Vendor",
    "VendorRanking",
    "VendorScore",
]
