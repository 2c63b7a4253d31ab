from __future__ import annotations

import pendulum
import pytest

from tenderscoring.core import RankingEngine, VendorAggregate, recommended_award


def _vendor(vendor_id: str, score: float, *, compliant: bool = True, **kwargs) -> VendorAggregate:
    return VendorAggregate(
        vendor_id=vendor_id,
        weighted_score=score,
        technical_compliance=compliant,
        **kwargs,
    )


def test_award_goes_to_highest_compliant_vendor():
    rankings = RankingEngine().rank(
        [_vendor("VEN-002", 85.25), _vendor("VEN-001", 88.65)],
        passing_threshold=70,
    )

    assert [(row.rank, row.vendor_id, row.recommendation) for row in rankings] == [
        (1, "VEN-001", "Award"),
        (2, "VEN-002", "Consider"),
    ]
    assert recommended_award(rankings) == "VEN-001"


def test_non_compliant_leader_is_rejected():
    rankings = RankingEngine().rank(
        [_vendor("VEN-X", 88.0, compliant=False), _vendor("VEN-Y", 80.0)],
        passing_threshold=70,
    )

    assert [(row.vendor_id, row.recommendation) for row in rankings] == [
        ("VEN-X", "Reject"),
        ("VEN-Y", "Consider"),
    ]
    assert recommended_award(rankings) == ""


def test_below_threshold_is_rejected():
    rankings = RankingEngine().rank(
        [_vendor("VEN-001", 90), _vendor("VEN-002", 69.99), _vendor("VEN-003", 70)],
        passing_threshold=70,
    )

    assert [row.recommendation for row in rankings] == ["Award", "Consider", "Reject"]


def test_ties_broken_by_primary_criterion():
    rankings = RankingEngine().rank(
        [
            _vendor("VEN-001", 85.0, primary_score=80.0),
            _vendor("VEN-002", 85.0, primary_score=92.0),
        ],
        passing_threshold=70,
        use_primary=True,
    )

    assert [row.vendor_id for row in rankings] == ["VEN-002", "VEN-001"]


def test_ties_broken_by_earliest_submission():
    early = pendulum.datetime(2024, 2, 15, 9, 0, tz="UTC")
    late = early.add(minutes=5)
    rankings = RankingEngine().rank(
        [
            _vendor("VEN-001", 85.0, first_submitted_at=late),
            _vendor("VEN-002", 85.0, first_submitted_at=early),
        ],
        passing_threshold=70,
    )

    assert [row.vendor_id for row in rankings] == ["VEN-002", "VEN-001"]


def test_ties_broken_by_vendor_id_last():
    rankings = RankingEngine().rank(
        [_vendor("VEN-B", 85.0), _vendor("VEN-A", 85.0), _vendor("VEN-C", 85.0)],
        passing_threshold=70,
    )

    assert [row.vendor_id for row in rankings] == ["VEN-A", "VEN-B", "VEN-C"]
    assert [row.rank for row in rankings] == [1, 2, 3]


def test_ranking_is_independent_of_input_order():
    vendors = [_vendor(f"VEN-{index:03d}", score) for index, score in enumerate([70, 85, 85, 92, 60])]
    engine = RankingEngine()

    forward = engine.rank(vendors, passing_threshold=70)
    backward = engine.rank(list(reversed(vendors)), passing_threshold=70)

    assert forward == backward
    assert sorted(row.rank for row in forward) == list(range(1, 6))


def test_category_scores_carried_into_rows():
    rankings = RankingEngine().rank(
        [
            _vendor(
                "VEN-001",
                88.65,
                vendor_name="PrimeCare Medical Ltd",
                category_scores={"technical": 88.0, "financial": 85.0},
            )
        ],
        passing_threshold=70,
    )

    row = rankings[0]
    assert row.vendor_name == "PrimeCare Medical Ltd"
    assert row.technical_score == pytest.approx(88.0)
    assert row.financial_score == pytest.approx(85.0)
    assert row.experience_score == 0.0


def test_empty_input():
    assert RankingEngine().rank([], passing_threshold=70) == []
    assert recommended_award([]) == ""
