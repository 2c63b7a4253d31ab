"""Weighted score aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from ..schemas import Criterion, RubricSnapshot

_HUNDRED = Decimal(100)


def to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(repr(float(value)))


def round_half_up(value: float | Decimal, decimals: int = 2) -> float:
    """Round half away from zero at ``decimals`` places."""
    quantum = Decimal(1).scaleb(-decimals)
    return float(to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass
class AggregatorConfig:
    """Configuration for weighted score computation."""

    score_decimals: int = 2


class ScoreAggregator:
    """Compute weighted 0-100 scores from raw criterion scores.

    All arithmetic runs on :class:`~decimal.Decimal` values built from the
    float inputs, so identical inputs always yield identical outputs.
    """

    def __init__(self, *, config: AggregatorConfig | None = None) -> None:
        self._config = config or AggregatorConfig()

    def weighted_score(
        self,
        rubric: RubricSnapshot,
        raw_scores: Mapping[str, float],
        sub_scores: Mapping[str, float] | None = None,
    ) -> float:
        """Return the weighted score over the criteria that carry a score.

        Contributions are divided by the weight actually present, so partially
        scored sheets produce a provisional 0-100 value.
        """
        resolved = self.resolve_scores(rubric, raw_scores, sub_scores)
        return self._weighted(rubric.criteria, resolved)

    def category_scores(
        self,
        rubric: RubricSnapshot,
        raw_scores: Mapping[str, float],
        sub_scores: Mapping[str, float] | None = None,
    ) -> dict[str, float]:
        """Return the weighted score restricted to each criterion category."""
        resolved = self.resolve_scores(rubric, raw_scores, sub_scores)
        categories: dict[str, list[Criterion]] = {}
        for criterion in rubric.criteria:
            categories.setdefault(criterion.category, []).append(criterion)
        return {
            category: self._weighted(criteria, resolved)
            for category, criteria in categories.items()
        }

    def resolve_scores(
        self,
        rubric: RubricSnapshot,
        raw_scores: Mapping[str, float],
        sub_scores: Mapping[str, float] | None = None,
    ) -> dict[str, Decimal]:
        """Return the raw score of every scored top-level criterion.

        A parent whose sub-criteria carry scores takes the rolled-up value
        ``sum(sub / sub_max * sub_weight) / sum(sub_weight) * parent_max``
        over the scored sub-criteria.
        """
        resolved: dict[str, Decimal] = {}
        sub_scores = sub_scores or {}
        for criterion in rubric.criteria:
            rolled = self._roll_up(criterion, sub_scores)
            if rolled is not None:
                resolved[criterion.id] = rolled
            elif criterion.id in raw_scores:
                resolved[criterion.id] = to_decimal(raw_scores[criterion.id])
        return resolved

    def is_fully_scored(
        self,
        rubric: RubricSnapshot,
        raw_scores: Mapping[str, float],
        sub_scores: Mapping[str, float] | None = None,
    ) -> bool:
        """True when every criterion carries a score, via all its sub-criteria if rolled up."""
        sub_scores = sub_scores or {}
        for criterion in rubric.criteria:
            if criterion.id in raw_scores:
                continue
            if criterion.sub_criteria and all(
                sub.id in sub_scores for sub in criterion.sub_criteria
            ):
                continue
            return False
        return True

    def _weighted(self, criteria, resolved: Mapping[str, Decimal]) -> float:
        contribution = Decimal(0)
        weight_present = Decimal(0)
        for criterion in criteria:
            if criterion.id not in resolved:
                continue
            weight = to_decimal(criterion.weight)
            contribution += resolved[criterion.id] / to_decimal(criterion.max_score) * weight
            weight_present += weight
        if weight_present == 0:
            return 0.0
        return round_half_up(
            contribution / weight_present * _HUNDRED,
            self._config.score_decimals,
        )

    @staticmethod
    def _roll_up(criterion: Criterion, sub_scores: Mapping[str, float]) -> Decimal | None:
        total = Decimal(0)
        weight_present = Decimal(0)
        for sub in criterion.sub_criteria:
            if sub.id not in sub_scores:
                continue
            weight = to_decimal(sub.weight)
            total += to_decimal(sub_scores[sub.id]) / to_decimal(sub.max_score) * weight
            weight_present += weight
        if weight_present == 0:
            return None
        return total / weight_present * to_decimal(criterion.max_score)
