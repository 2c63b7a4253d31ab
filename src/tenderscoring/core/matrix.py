"""Evaluation matrix orchestration and lifecycle."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable

import pendulum

from ..errors import (
    ConcurrencyConflict,
    NotFound,
    PermissionDenied,
    ScoringError,
    StateError,
    ValidationError,
)
from ..events import EventKind, EventSink, MatrixEvent
from ..logging import matrix_logger
from ..schemas import (
    AuditEntry,
    ComplianceIssue,
    MatrixResults,
    MatrixSetup,
    MatrixStatus,
    ReviewStatus,
    Role,
    RubricSnapshot,
    ScoreSubmission,
    VendorRanking,
    VendorScore,
)
from .aggregator import ScoreAggregator, round_half_up, to_decimal
from .compliance import ComplianceCheck, ComplianceEvaluator
from .consensus import ConsensusAnalyzer, ConsensusSummary
from .ranking import RankingEngine, VendorAggregate, recommended_award
from .rubric_store import RubricStore
from .validation import SubmissionRules, submission_issues


@dataclass(slots=True, frozen=True)
class Actor:
    """Authorized caller of a matrix action."""

    actor_id: str
    role: Role


class EvaluationMatrix:
    """One evaluation exercise: a tender, a bound rubric and a committee.

    Writes (submissions, reviews, transitions) run one at a time under a
    per-matrix lock and end with a full recompute of the results snapshot.
    Readers of :meth:`results` get the last committed snapshot without
    taking the lock.
    """

    ALLOWED_TRANSITIONS: dict[MatrixStatus, set[MatrixStatus]] = {
        "Setup": {"InProgress", "Cancelled"},
        "InProgress": {"EvaluationComplete", "Cancelled"},
        "EvaluationComplete": {"Review", "Cancelled"},
        "Review": {"Final", "Cancelled"},
        "Final": set(),
        "Cancelled": set(),
    }
    TERMINAL: frozenset[str] = frozenset({"Final", "Cancelled"})
    REVIEWABLE: frozenset[str] = frozenset({"InProgress", "EvaluationComplete", "Review"})

    def __init__(
        self,
        setup: MatrixSetup,
        rubric: RubricSnapshot,
        *,
        aggregator: ScoreAggregator | None = None,
        compliance: ComplianceCheck | None = None,
        consensus: ConsensusAnalyzer | None = None,
        ranking: RankingEngine | None = None,
        rules: SubmissionRules | None = None,
        rubric_store: RubricStore | None = None,
        sinks: Iterable[EventSink] = (),
        created_by: Actor | None = None,
        now_provider: Callable[[], Any] | None = None,
    ) -> None:
        self._setup = setup
        self._rubric = rubric
        self._aggregator = aggregator or ScoreAggregator()
        self._compliance: ComplianceCheck = compliance or ComplianceEvaluator(
            aggregator=self._aggregator
        )
        self._consensus = consensus or ConsensusAnalyzer()
        self._ranking = ranking or RankingEngine()
        self._rules = rules or SubmissionRules()
        self._rubric_store = rubric_store
        self._sinks: list[EventSink] = list(sinks)
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._threshold = (
            setup.consensus_threshold
            if setup.consensus_threshold is not None
            else self._consensus.default_threshold
        )
        self._vendor_names = {vendor.vendor_id: vendor.name for vendor in setup.vendors}

        self._lock = threading.RLock()
        self._status: MatrixStatus = "Setup"
        self._scores: dict[tuple[str, str], VendorScore] = {}
        self._audit: list[AuditEntry] = []
        self._outbox: list[MatrixEvent] = []
        self._dissenting: tuple[str, ...] = ()
        self._changed_at = self._now()
        self._logger = matrix_logger(__name__, setup.matrix_id, tender_id=setup.tender_id)

        self._results = self._compute_results()
        creator = created_by or Actor(actor_id="system", role="chair")
        self._append_audit(
            creator,
            "matrix_created",
            details=f"Created evaluation matrix {setup.name or setup.matrix_id}",
            new_value={
                "rubric_id": rubric.id,
                "rubric_version": rubric.version,
                "vendors": sorted(self._vendor_names),
                "committee": list(setup.committee),
            },
        )

    # -- read side -----------------------------------------------------

    @property
    def matrix_id(self) -> str:
        return self._setup.matrix_id

    @property
    def setup(self) -> MatrixSetup:
        return self._setup

    @property
    def rubric(self) -> RubricSnapshot:
        return self._rubric

    @property
    def status(self) -> MatrixStatus:
        return self._status

    @property
    def consensus_threshold(self) -> float:
        return self._threshold

    def results(self) -> MatrixResults:
        """Return the last committed results snapshot."""
        return self._results

    def audit_log(self) -> tuple[AuditEntry, ...]:
        with self._lock:
            return tuple(self._audit)

    def scores(self) -> list[VendorScore]:
        with self._lock:
            return [self._scores[key] for key in sorted(self._scores)]

    def get_score(self, vendor_id: str, evaluator_id: str) -> VendorScore:
        with self._lock:
            try:
                return self._scores[(vendor_id, evaluator_id)]
            except KeyError as exc:
                raise NotFound(
                    f"no score sheet for vendor {vendor_id!r} by evaluator {evaluator_id!r}"
                ) from exc

    def missing_pairs(self) -> list[tuple[str, str]]:
        """Return (vendor, evaluator) pairs without a fully scored sheet."""
        with self._lock:
            return [
                (vendor_id, evaluator_id)
                for vendor_id in sorted(self._vendor_names)
                for evaluator_id in self._setup.committee
                if not self._is_complete(vendor_id, evaluator_id)
            ]

    def subscribe(self, sink: EventSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def drain_events(self) -> list[MatrixEvent]:
        """Return and clear the events emitted since the last drain."""
        with self._lock:
            events, self._outbox = self._outbox, []
            return events

    # -- write side ----------------------------------------------------

    def submit(
        self,
        submission: ScoreSubmission | dict[str, Any],
        *,
        actor: Actor,
        expected_version: int | None = None,
        override: bool = False,
    ) -> VendorScore:
        """Accept one evaluator's score sheet for one vendor.

        The first write for a (vendor, evaluator) pair needs no version. Every
        later write must carry the version it read; anything else is a
        :class:`ConcurrencyConflict`.
        """
        if isinstance(submission, dict):
            try:
                submission = ScoreSubmission.model_validate(submission)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc

        key = (submission.vendor_id, submission.evaluator_id)
        with self._lock:
            previous = self._scores.get(key)
            try:
                self._check_submission_allowed(submission, actor, override)
                self._check_version(previous, expected_version)
                if previous is not None and previous.review_status == "Approved" and not override:
                    raise StateError(
                        f"score sheet for vendor {key[0]!r} by {key[1]!r} is approved; "
                        "an override is required to change it"
                    )
                issues = submission_issues(
                    self._rubric,
                    submission.scores,
                    submission.sub_scores,
                    annotated=[*submission.criterion_comments, *submission.evidence_provided],
                    rules=self._rules,
                )
                if issues:
                    raise ValidationError(issues)
            except ScoringError as exc:
                self._append_audit(
                    actor,
                    "score_submission_rejected",
                    details=f"{type(exc).__name__}: {exc}",
                    new_value={"vendor_id": key[0], "evaluator_id": key[1]},
                    overridden=override,
                    succeeded=False,
                )
                self._logger.warning(
                    "matrix.submission_rejected",
                    vendor_id=key[0],
                    evaluator_id=key[1],
                    error=type(exc).__name__,
                    reason=str(exc),
                )
                raise

            record = self._build_record(submission, previous)
            self._scores[key] = record
            self._changed_at = record.submitted_at
            self._append_audit(
                actor,
                "scores_resubmitted" if previous is not None else "scores_submitted",
                details=f"Submitted scores for vendor {key[0]} by evaluator {key[1]}",
                old_value=_sheet_summary(previous) if previous is not None else None,
                new_value=_sheet_summary(record),
                overridden=override,
            )
            self._emit(
                "submission_accepted",
                {
                    "vendor_id": record.vendor_id,
                    "evaluator_id": record.evaluator_id,
                    "version": record.version,
                    "weighted_score": record.weighted_score,
                    "technical_compliance": record.technical_compliance,
                    "overridden": override,
                },
            )
            self._logger.info(
                "matrix.submission_accepted",
                vendor_id=record.vendor_id,
                evaluator_id=record.evaluator_id,
                version=record.version,
                weighted_score=record.weighted_score,
                technical_compliance=record.technical_compliance,
            )

            if self._status == "Setup":
                self._transition("InProgress", actor, details="first submission accepted")
            else:
                self._recompute()

            if self._status == "InProgress" and not self.missing_pairs():
                self._transition(
                    "EvaluationComplete",
                    actor,
                    details="every committee member has scored every vendor",
                )
            return record

    def review_score(
        self,
        vendor_id: str,
        evaluator_id: str,
        review_status: ReviewStatus,
        *,
        actor: Actor,
        expected_version: int | None = None,
        comment: str = "",
    ) -> VendorScore:
        """Set the review status of one score sheet."""
        if review_status == "Pending":
            raise ValidationError("review status must be Reviewed, Approved or Rejected")
        self._require_role(actor, {"reviewer", "chair"}, "review score sheets")
        with self._lock:
            if self._status not in self.REVIEWABLE:
                raise StateError(f"score sheets cannot be reviewed while the matrix is {self._status}")
            record = self.get_score(vendor_id, evaluator_id)
            if expected_version is not None and expected_version != record.version:
                raise ConcurrencyConflict(
                    f"score sheet is at version {record.version}, not {expected_version}",
                    current_version=record.version,
                )
            if record.review_status == "Approved":
                raise StateError("an approved score sheet cannot change review status")
            updated = record.model_copy(
                update={"review_status": review_status, "version": record.version + 1}
            )
            self._scores[record.key] = updated
            self._changed_at = self._now()
            self._append_audit(
                actor,
                "score_reviewed",
                details=comment or f"Marked sheet {record.etag} as {review_status}",
                old_value={"review_status": record.review_status},
                new_value={"review_status": review_status},
            )
            self._recompute()
            return updated

    def close_evaluation(self, *, actor: Actor, reason: str = "") -> MatrixResults:
        """Close scoring early; gaps stay visible in the results counts."""
        self._require_role(actor, {"chair"}, "close the evaluation")
        with self._lock:
            gaps = len(self.missing_pairs())
            details = reason or "closed by chair"
            if gaps:
                details = f"{details} ({gaps} evaluations outstanding)"
            self._transition("EvaluationComplete", actor, details=details)
            return self._results

    def start_review(self, *, actor: Actor) -> MatrixResults:
        self._require_role(actor, {"reviewer"}, "start the review")
        with self._lock:
            self._transition("Review", actor, details="oversight review started")
            return self._results

    def finalize(self, *, actor: Actor) -> MatrixResults:
        """Approve the review and seal the results in the audit log."""
        self._require_role(actor, {"reviewer", "chair"}, "finalize the evaluation")
        with self._lock:
            self._transition("Final", actor, details="results approved and sealed", seal=True)
            return self._results

    def cancel(self, *, actor: Actor, reason: str) -> None:
        self._require_role(actor, {"chair", "reviewer"}, "cancel the evaluation")
        if not reason or not reason.strip():
            raise ValidationError("a reason is required to cancel an evaluation")
        with self._lock:
            self._transition("Cancelled", actor, details=reason.strip())
        if self._rubric_store is not None:
            self._rubric_store.release(self._rubric.id, self._rubric.version)

    def recompute(self) -> MatrixResults:
        """Rebuild the results snapshot from the current score sheets."""
        with self._lock:
            self._recompute()
            return self._results

    # -- internals -----------------------------------------------------

    def _check_submission_allowed(
        self,
        submission: ScoreSubmission,
        actor: Actor,
        override: bool,
    ) -> None:
        if self._status in self.TERMINAL:
            raise StateError(f"matrix {self.matrix_id} is {self._status}; submissions are closed")
        if actor.role == "reviewer":
            raise PermissionDenied("reviewers cannot submit scores")
        if actor.role == "evaluator" and actor.actor_id != submission.evaluator_id:
            raise PermissionDenied("evaluators may only submit their own scores")
        if override and actor.role != "chair":
            raise PermissionDenied("only the committee chair may override an approved sheet")
        problems: list[str] = []
        if submission.vendor_id not in self._vendor_names:
            problems.append(f"vendor {submission.vendor_id!r} is not part of this evaluation")
        if submission.evaluator_id not in self._setup.committee:
            problems.append(f"evaluator {submission.evaluator_id!r} is not on the committee")
        if problems:
            raise ValidationError(problems)

    @staticmethod
    def _check_version(previous: VendorScore | None, expected_version: int | None) -> None:
        if previous is None:
            if expected_version not in (None, 0):
                raise ConcurrencyConflict(
                    f"score sheet does not exist; expected version {expected_version}",
                    current_version=0,
                )
            return
        if expected_version is None:
            raise ConcurrencyConflict(
                f"score sheet {previous.etag} already exists; resubmit with its version",
                current_version=previous.version,
            )
        if expected_version != previous.version:
            raise ConcurrencyConflict(
                f"score sheet is at version {previous.version}, not {expected_version}",
                current_version=previous.version,
            )

    @staticmethod
    def _require_role(actor: Actor, roles: set[str], action: str) -> None:
        if actor.role not in roles:
            raise PermissionDenied(f"role {actor.role!r} may not {action}")

    def _build_record(
        self,
        submission: ScoreSubmission,
        previous: VendorScore | None,
    ) -> VendorScore:
        rubric = self._rubric
        compliant, issues = self._compliance.check_compliance(
            rubric, submission.scores, submission.sub_scores
        )
        now = self._now()
        return VendorScore(
            vendor_id=submission.vendor_id,
            evaluator_id=submission.evaluator_id,
            vendor_name=submission.vendor_name or self._vendor_names.get(submission.vendor_id),
            scores=dict(submission.scores),
            sub_scores=dict(submission.sub_scores),
            comments=submission.comments,
            criterion_comments=dict(submission.criterion_comments),
            evidence_provided=dict(submission.evidence_provided),
            time_spent_minutes=submission.time_spent_minutes,
            attachments=tuple(submission.attachments),
            review_status="Pending",
            submitted_at=now,
            first_submitted_at=previous.first_submitted_at if previous is not None else now,
            version=previous.version + 1 if previous is not None else 1,
            weighted_score=self._aggregator.weighted_score(
                rubric, submission.scores, submission.sub_scores
            ),
            category_scores=self._aggregator.category_scores(
                rubric, submission.scores, submission.sub_scores
            ),
            technical_compliance=compliant,
            compliance_issues=tuple(issues),
            fully_scored=self._aggregator.is_fully_scored(
                rubric, submission.scores, submission.sub_scores
            ),
        )

    def _is_complete(self, vendor_id: str, evaluator_id: str) -> bool:
        record = self._scores.get((vendor_id, evaluator_id))
        return record is not None and record.fully_scored

    def _transition(
        self,
        target: MatrixStatus,
        actor: Actor,
        *,
        details: str,
        seal: bool = False,
    ) -> None:
        current = self._status
        if target not in self.ALLOWED_TRANSITIONS[current]:
            raise StateError(f"cannot move matrix {self.matrix_id} from {current} to {target}")
        self._status = target
        self._changed_at = self._now()
        self._recompute()
        new_value: dict[str, Any] = {"status": target}
        if seal:
            new_value["results"] = self._results.model_dump(mode="json")
        self._append_audit(
            actor,
            f"status_{target.lower()}",
            details=details,
            old_value={"status": current},
            new_value=new_value,
        )
        self._emit("state_changed", {"from": current, "to": target, "details": details})
        self._logger.info("matrix.state_changed", from_status=current, to_status=target)

    def _recompute(self) -> None:
        results = self._compute_results()
        self._results = results
        summary_dissent = tuple(
            row.vendor_id for row in results.rankings if not row.consensus_reached
        )
        if summary_dissent and summary_dissent != self._dissenting:
            self._emit(
                "consensus_not_reached",
                {
                    "vendors": list(summary_dissent),
                    "threshold": self._threshold,
                    "score_variance": results.score_variance,
                },
            )
            self._logger.warning("matrix.consensus_not_reached", vendors=list(summary_dissent))
        self._dissenting = summary_dissent

    def _compute_results(self) -> MatrixResults:
        counted = [
            record
            for key, record in sorted(self._scores.items())
            if record.review_status != "Rejected"
        ]
        by_vendor: dict[str, list[VendorScore]] = {}
        for record in counted:
            by_vendor.setdefault(record.vendor_id, []).append(record)

        summary = self._consensus.summarize(
            {
                vendor_id: [record.weighted_score for record in records]
                for vendor_id, records in by_vendor.items()
            },
            self._threshold,
        )
        aggregates = [
            self._aggregate(vendor_id, records, summary)
            for vendor_id, records in sorted(by_vendor.items())
        ]
        rankings = self._ranking.rank(
            aggregates,
            passing_threshold=self._rubric.passing_threshold,
            use_primary=self._rubric.primary_criterion_id is not None,
        )
        average = (
            round_half_up(_mean(row.total_score for row in rankings)) if rankings else 0.0
        )
        results = MatrixResults(
            rankings=tuple(rankings),
            consensus_reached=summary.consensus_reached,
            average_score=average,
            score_variance=summary.score_variance,
            recommended_award=recommended_award(rankings),
            alternative_options=tuple(
                row.vendor_id for row in rankings if row.recommendation == "Consider"
            ),
            technically_compliant=sum(1 for row in rankings if row.compliance),
            total_evaluated=len(rankings),
            expected_vendors=len(self._vendor_names),
            submitted_evaluations=len(counted),
            expected_evaluations=len(self._vendor_names) * len(self._setup.committee),
            computed_at=self._changed_at,
        )
        return results.model_copy(
            update={"evaluation_summary": self._summarize(results, summary)}
        )

    def _aggregate(
        self,
        vendor_id: str,
        records: list[VendorScore],
        summary: ConsensusSummary,
    ) -> VendorAggregate:
        consensus = summary.per_vendor[vendor_id]
        categories: dict[str, list[float]] = {}
        for record in records:
            for category, value in record.category_scores.items():
                categories.setdefault(category, []).append(value)
        issues: list[ComplianceIssue] = []
        for record in records:
            for issue in record.compliance_issues:
                if issue not in issues:
                    issues.append(issue)
        first_submitted = [
            record.first_submitted_at or record.submitted_at for record in records
        ]
        return VendorAggregate(
            vendor_id=vendor_id,
            vendor_name=self._vendor_names.get(vendor_id) or records[0].vendor_name,
            weighted_score=round_half_up(_mean(record.weighted_score for record in records)),
            technical_compliance=all(record.technical_compliance for record in records),
            first_submitted_at=min(first_submitted),
            primary_score=self._primary_score(records),
            category_scores={
                category: round_half_up(_mean(values))
                for category, values in categories.items()
            },
            variance=consensus.variance,
            consensus_reached=consensus.reached,
            evaluator_count=consensus.evaluator_count,
            compliance_issues=issues,
        )

    def _primary_score(self, records: list[VendorScore]) -> float | None:
        primary_id = self._rubric.primary_criterion_id
        if primary_id is None:
            return None
        criterion = self._rubric.criterion(primary_id)
        if criterion is None:
            return None
        values: list[Decimal] = []
        for record in records:
            resolved = self._aggregator.resolve_scores(
                self._rubric, record.scores, record.sub_scores
            )
            if primary_id in resolved:
                values.append(resolved[primary_id] / to_decimal(criterion.max_score) * 100)
        if not values:
            return None
        return round_half_up(sum(values) / len(values))

    def _summarize(self, results: MatrixResults, summary: ConsensusSummary) -> str:
        if not results.rankings:
            return "No vendors have been evaluated yet."
        parts = [
            f"{results.total_evaluated} of {results.expected_vendors} vendors evaluated "
            f"({results.submitted_evaluations} of {results.expected_evaluations} score sheets); "
            f"{results.technically_compliant} technically compliant."
        ]
        if results.recommended_award:
            winner = _find_row(results.rankings, results.recommended_award)
            parts.append(
                f"Recommended award: {winner.vendor_name or winner.vendor_id} "
                f"with {winner.total_score:.2f}."
            )
        else:
            parts.append("No vendor qualifies for award.")
        if summary.consensus_reached:
            parts.append("Evaluators reached consensus.")
        else:
            parts.append(
                "Consensus not reached for: " + ", ".join(summary.dissenting_vendors) + "."
            )
        return " ".join(parts)

    def _append_audit(
        self,
        actor: Actor,
        action: str,
        *,
        details: str = "",
        old_value: Any = None,
        new_value: Any = None,
        overridden: bool = False,
        succeeded: bool = True,
    ) -> AuditEntry:
        entry = AuditEntry(
            entry_id=f"AUD-{len(self._audit) + 1:04d}",
            timestamp=self._now(),
            actor=actor.actor_id,
            role=actor.role,
            action=action,
            details=details,
            old_value=old_value,
            new_value=new_value,
            overridden=overridden,
            succeeded=succeeded,
        )
        self._audit.append(entry)
        return entry

    def _emit(self, kind: EventKind, payload: dict[str, Any]) -> None:
        event = MatrixEvent(
            kind=kind,
            matrix_id=self.matrix_id,
            timestamp=self._now(),
            payload=payload,
        )
        self._outbox.append(event)
        for sink in self._sinks:
            try:
                sink.publish(event)
            except Exception as exc:  # noqa: BLE001
                self._logger.error("matrix.sink_failed", kind=kind, error=str(exc))


def open_matrix(
    setup: MatrixSetup | dict[str, Any],
    *,
    store: RubricStore,
    **kwargs: Any,
) -> EvaluationMatrix:
    """Bind the requested rubric version and open a matrix in Setup."""
    if isinstance(setup, dict):
        try:
            setup = MatrixSetup.model_validate(setup)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
    snapshot = store.bind(setup.rubric_id, setup.rubric_version)
    return EvaluationMatrix(setup, snapshot, rubric_store=store, **kwargs)


def _mean(values: Iterable[float]) -> Decimal:
    decimals = [to_decimal(value) for value in values]
    return sum(decimals, Decimal(0)) / len(decimals)


def _find_row(rankings: Iterable[VendorRanking], vendor_id: str) -> VendorRanking:
    for row in rankings:
        if row.vendor_id == vendor_id:
            return row
    raise NotFound(f"vendor {vendor_id!r} is not ranked")


def _sheet_summary(record: VendorScore) -> dict[str, Any]:
    return {
        "version": record.version,
        "scores": dict(record.scores),
        "sub_scores": dict(record.sub_scores),
        "criterion_comments": dict(record.criterion_comments),
        "evidence_provided": dict(record.evidence_provided),
        "weighted_score": record.weighted_score,
        "technical_compliance": record.technical_compliance,
        "review_status": record.review_status,
    }
