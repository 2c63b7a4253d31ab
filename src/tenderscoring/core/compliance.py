"""Technical compliance checks against mandatory criterion thresholds."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Protocol, runtime_checkable

from ..schemas import ComplianceIssue, Criterion, RubricSnapshot
from .aggregator import ScoreAggregator, round_half_up, to_decimal


@dataclass
class ComplianceConfig:
    """Thresholds for compliance findings."""

    minor_floor_percent: float = 60.0
    emit_major_for_sub_criteria: bool = True


@runtime_checkable
class ComplianceCheck(Protocol):
    """Contract for components deciding technical compliance."""

    def check_compliance(
        self,
        rubric: RubricSnapshot,
        raw_scores: Mapping[str, float],
        sub_scores: Mapping[str, float] | None = None,
    ) -> tuple[bool, list[ComplianceIssue]]:
        """Return overall compliance and the findings behind it."""


class ComplianceEvaluator:
    """Derive per-criterion compliance findings from raw scores.

    Every criterion type is compared on its 0-100 normalized value; how a
    Boolean, Dropdown or Text answer became a number is decided upstream.
    """

    def __init__(
        self,
        *,
        config: ComplianceConfig | None = None,
        aggregator: ScoreAggregator | None = None,
    ) -> None:
        self._config = config or ComplianceConfig()
        self._aggregator = aggregator or ScoreAggregator()

    def check_compliance(
        self,
        rubric: RubricSnapshot,
        raw_scores: Mapping[str, float],
        sub_scores: Mapping[str, float] | None = None,
    ) -> tuple[bool, list[ComplianceIssue]]:
        sub_scores = sub_scores or {}
        resolved = self._aggregator.resolve_scores(rubric, raw_scores, sub_scores)
        issues: list[ComplianceIssue] = []

        for criterion in rubric.criteria:
            raw = resolved.get(criterion.id)
            if raw is None:
                if criterion.mandatory:
                    issues.append(self._unscored(criterion))
                continue
            percent = raw / to_decimal(criterion.max_score) * Decimal(100)
            if criterion.mandatory:
                threshold = to_decimal(criterion.passing_score or 0)
                if percent < threshold:
                    issues.append(self._below_passing(criterion, percent, threshold))
                if self._config.emit_major_for_sub_criteria:
                    issues.extend(self._sub_criterion_issues(criterion, sub_scores, threshold))
            elif percent < to_decimal(self._config.minor_floor_percent):
                issues.append(self._below_floor(criterion, percent))

        compliant = not any(issue.severity == "Critical" for issue in issues)
        return compliant, issues

    @staticmethod
    def _unscored(criterion: Criterion) -> ComplianceIssue:
        return ComplianceIssue(
            criterion_id=criterion.id,
            criterion_name=criterion.name,
            issue=f"criterion {criterion.name!r} is mandatory and unscored",
            severity="Critical",
            recommendation="Score the criterion before the evaluation is closed.",
        )

    @staticmethod
    def _below_passing(
        criterion: Criterion,
        percent: Decimal,
        threshold: Decimal,
    ) -> ComplianceIssue:
        return ComplianceIssue(
            criterion_id=criterion.id,
            criterion_name=criterion.name,
            issue=(
                f"scored {round_half_up(percent):g}% against a passing score of "
                f"{float(threshold):g}%"
            ),
            severity="Critical",
            recommendation="Vendor does not meet a mandatory requirement.",
        )

    def _below_floor(self, criterion: Criterion, percent: Decimal) -> ComplianceIssue:
        return ComplianceIssue(
            criterion_id=criterion.id,
            criterion_name=criterion.name,
            issue=(
                f"scored {round_half_up(percent):g}%, below the "
                f"{self._config.minor_floor_percent:g}% floor"
            ),
            severity="Minor",
            recommendation="Note the weakness in the evaluation report.",
        )

    @staticmethod
    def _sub_criterion_issues(
        criterion: Criterion,
        sub_scores: Mapping[str, float],
        parent_threshold: Decimal,
    ) -> list[ComplianceIssue]:
        issues: list[ComplianceIssue] = []
        for sub in criterion.sub_criteria:
            if not sub.mandatory or sub.id not in sub_scores:
                continue
            threshold = (
                to_decimal(sub.passing_score) if sub.passing_score is not None else parent_threshold
            )
            percent = to_decimal(sub_scores[sub.id]) / to_decimal(sub.max_score) * Decimal(100)
            if percent < threshold:
                issues.append(
                    ComplianceIssue(
                        criterion_id=sub.id,
                        criterion_name=sub.name,
                        issue=(
                            f"mandatory sub-criterion of {criterion.name!r} scored "
                            f"{round_half_up(percent):g}%, below {float(threshold):g}%"
                        ),
                        severity="Major",
                        recommendation="Seek clarification from the vendor.",
                    )
                )
        return issues
