"""Inter-evaluator consensus analysis."""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from .aggregator import round_half_up


@dataclass(slots=True)
class ConsensusResult:
    """Spread of evaluator scores for one vendor."""

    vendor_id: str
    variance: float
    reached: bool
    evaluator_count: int


@dataclass(slots=True)
class ConsensusSummary:
    """Matrix-level consensus view."""

    per_vendor: dict[str, ConsensusResult]
    score_variance: float
    consensus_reached: bool

    @property
    def dissenting_vendors(self) -> list[str]:
        return sorted(v for v, result in self.per_vendor.items() if not result.reached)


@dataclass
class ConsensusConfig:
    """Default agreement threshold in score points."""

    threshold_points: float = 10.0


class ConsensusAnalyzer:
    """Measure agreement among evaluators scoring the same vendor.

    The spread is the population standard deviation of the evaluators'
    weighted scores; it is reported under the name ``variance``.
    """

    def __init__(self, *, config: ConsensusConfig | None = None) -> None:
        self._config = config or ConsensusConfig()

    @property
    def default_threshold(self) -> float:
        return self._config.threshold_points

    def consensus(
        self,
        vendor_id: str,
        all_evaluator_scores: Sequence[float],
        threshold_points: float | None = None,
    ) -> ConsensusResult:
        threshold = self._config.threshold_points if threshold_points is None else threshold_points
        scores = [float(score) for score in all_evaluator_scores]
        spread = statistics.pstdev(scores) if len(scores) > 1 else 0.0
        # only the reported value is rounded; agreement uses the exact spread
        return ConsensusResult(
            vendor_id=vendor_id,
            variance=round_half_up(spread),
            reached=spread <= threshold,
            evaluator_count=len(scores),
        )

    def summarize(
        self,
        scores_by_vendor: Mapping[str, Iterable[float]],
        threshold_points: float | None = None,
    ) -> ConsensusSummary:
        per_vendor = {
            vendor_id: self.consensus(vendor_id, list(scores), threshold_points)
            for vendor_id, scores in sorted(scores_by_vendor.items())
        }
        if per_vendor:
            score_variance = round_half_up(
                statistics.fmean(result.variance for result in per_vendor.values())
            )
        else:
            score_variance = 0.0
        return ConsensusSummary(
            per_vendor=per_vendor,
            score_variance=score_variance,
            consensus_reached=bool(per_vendor)
            and all(result.reached for result in per_vendor.values()),
        )
