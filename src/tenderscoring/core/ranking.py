"""Deterministic vendor ranking and award recommendations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from ..schemas import ComplianceIssue, Recommendation, VendorRanking


@dataclass(slots=True)
class VendorAggregate:
    """Per-vendor inputs to ranking, combined across evaluators."""

    vendor_id: str
    weighted_score: float
    technical_compliance: bool
    first_submitted_at: datetime | None = None
    primary_score: float | None = None
    vendor_name: str | None = None
    category_scores: dict[str, float] = field(default_factory=dict)
    variance: float = 0.0
    consensus_reached: bool = True
    evaluator_count: int = 0
    compliance_issues: list[ComplianceIssue] = field(default_factory=list)


class RankingEngine:
    """Order vendors by weighted score with a strict tie-break chain.

    Ties on weighted score are broken by, in order: the higher score on the
    rubric's primary criterion when one is designated, the earlier first
    submission, then the vendor id in lexicographic order. Vendor ids are
    unique, so no two rows share a rank.
    """

    def rank(
        self,
        vendors: Iterable[VendorAggregate],
        *,
        passing_threshold: float,
        use_primary: bool = False,
    ) -> list[VendorRanking]:
        ordered = sorted(vendors, key=lambda vendor: self._sort_key(vendor, use_primary))
        rankings: list[VendorRanking] = []
        for position, vendor in enumerate(ordered, start=1):
            rankings.append(
                VendorRanking(
                    rank=position,
                    vendor_id=vendor.vendor_id,
                    vendor_name=vendor.vendor_name,
                    total_score=vendor.weighted_score,
                    technical_score=vendor.category_scores.get("technical", 0.0),
                    financial_score=vendor.category_scores.get("financial", 0.0),
                    experience_score=vendor.category_scores.get("experience", 0.0),
                    compliance=vendor.technical_compliance,
                    recommendation=self.recommend(position, vendor, passing_threshold),
                    variance=vendor.variance,
                    consensus_reached=vendor.consensus_reached,
                    evaluator_count=vendor.evaluator_count,
                    compliance_issues=tuple(vendor.compliance_issues),
                )
            )
        return rankings

    @staticmethod
    def recommend(
        rank: int,
        vendor: VendorAggregate,
        passing_threshold: float,
    ) -> Recommendation:
        if not vendor.technical_compliance:
            return "Reject"
        if rank == 1:
            return "Award"
        if vendor.weighted_score >= passing_threshold:
            return "Consider"
        return "Reject"

    @staticmethod
    def _sort_key(vendor: VendorAggregate, use_primary: bool) -> tuple:
        primary = vendor.primary_score if (use_primary and vendor.primary_score is not None) else 0.0
        submitted = (
            vendor.first_submitted_at.timestamp()
            if vendor.first_submitted_at is not None
            else float("inf")
        )
        return (-vendor.weighted_score, -primary, submitted, vendor.vendor_id)


def recommended_award(rankings: Iterable[VendorRanking]) -> str:
    """Return the vendor id of the Award row, or an empty string."""
    awards = [row.vendor_id for row in rankings if row.recommendation == "Award"]
    return awards[0] if len(awards) == 1 else ""
