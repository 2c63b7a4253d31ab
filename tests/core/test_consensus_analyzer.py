from __future__ import annotations

import pytest

from tenderscoring.core import ConsensusAnalyzer, ConsensusConfig


def test_wide_spread_fails_consensus():
    result = ConsensusAnalyzer().consensus("VEN-001", [90, 60], threshold_points=10)

    assert result.variance == pytest.approx(15.0)
    assert result.reached is False
    assert result.evaluator_count == 2


def test_threshold_is_inclusive():
    result = ConsensusAnalyzer().consensus("VEN-001", [80, 100], threshold_points=10)

    assert result.variance == pytest.approx(10.0)
    assert result.reached is True


def test_spread_just_above_threshold_fails_even_when_rounded_down():
    # exact spread is 10.0032, reported as 10.0
    result = ConsensusAnalyzer().consensus("VEN-001", [0.0, 0.0, 21.22], threshold_points=10)

    assert result.variance == pytest.approx(10.0)
    assert result.reached is False


@pytest.mark.parametrize("scores", [[], [72.5]])
def test_single_or_no_evaluator_is_consensus(scores):
    result = ConsensusAnalyzer().consensus("VEN-001", scores)

    assert result.variance == 0.0
    assert result.reached is True


def test_spread_is_rounded():
    result = ConsensusAnalyzer().consensus("VEN-001", [88.65, 85.25, 80.0])

    assert result.variance == pytest.approx(3.56)


def test_default_threshold_from_config():
    analyzer = ConsensusAnalyzer(config=ConsensusConfig(threshold_points=20))

    assert analyzer.default_threshold == 20
    assert analyzer.consensus("VEN-001", [90, 60]).reached is True


def test_summary_averages_vendor_spreads():
    summary = ConsensusAnalyzer().summarize(
        {"VEN-002": [80, 80], "VEN-001": [90, 60]},
        threshold_points=10,
    )

    assert list(summary.per_vendor) == ["VEN-001", "VEN-002"]
    assert summary.score_variance == pytest.approx(7.5)
    assert summary.consensus_reached is False
    assert summary.dissenting_vendors == ["VEN-001"]


def test_empty_summary_has_no_consensus():
    summary = ConsensusAnalyzer().summarize({})

    assert summary.score_variance == 0.0
    assert summary.consensus_reached is False
