"""Dependency injection container for the evaluation engine."""

from __future__ import annotations

from dependency_injector import containers, providers

from .core import (
    AggregatorConfig,
    ComplianceConfig,
    ComplianceEvaluator,
    ConsensusAnalyzer,
    ConsensusConfig,
    RankingEngine,
    RubricStore,
    ScoreAggregator,
    SubmissionRules,
    open_matrix,
)
from .pipeline import EvaluationPipeline


class ScoringContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    rubric_store = providers.Singleton(RubricStore)

    aggregator = providers.Singleton(ScoreAggregator)
    compliance = providers.Singleton(ComplianceEvaluator, aggregator=aggregator)
    consensus = providers.Singleton(ConsensusAnalyzer)
    ranking = providers.Singleton(RankingEngine)
    submission_rules = providers.Singleton(SubmissionRules)

    matrix = providers.Factory(
        open_matrix,
        store=rubric_store,
        aggregator=aggregator,
        compliance=compliance,
        consensus=consensus,
        ranking=ranking,
        rules=submission_rules,
    )

    pipeline = providers.Factory(
        EvaluationPipeline,
        store=rubric_store,
        matrix_factory=matrix.provider,
    )


def create_container(*, settings: dict | None = None) -> ScoringContainer:
    """Instantiate container with optional overrides."""

    container = ScoringContainer()

    if not settings:
        return container

    engine_settings = settings.get("engine", {}) if isinstance(settings, dict) else {}
    compliance_settings = settings.get("compliance", {}) if isinstance(settings, dict) else {}

    if "score_decimals" in engine_settings:
        aggregator_config = AggregatorConfig(score_decimals=engine_settings["score_decimals"])
        container.aggregator.override(
            providers.Singleton(ScoreAggregator, config=aggregator_config)
        )

    if "consensus_threshold" in engine_settings:
        consensus_config = ConsensusConfig(
            threshold_points=engine_settings["consensus_threshold"]
        )
        container.consensus.override(
            providers.Singleton(ConsensusAnalyzer, config=consensus_config)
        )

    if "suggestion_cutoff" in engine_settings:
        container.submission_rules.override(
            providers.Singleton(
                SubmissionRules,
                suggestion_cutoff=engine_settings["suggestion_cutoff"],
            )
        )

    compliance_kwargs = {}
    if "minor_floor_percent" in engine_settings:
        compliance_kwargs["minor_floor_percent"] = engine_settings["minor_floor_percent"]
    if "emit_major_for_sub_criteria" in compliance_settings:
        compliance_kwargs["emit_major_for_sub_criteria"] = compliance_settings[
            "emit_major_for_sub_criteria"
        ]
    if compliance_kwargs:
        container.compliance.override(
            providers.Singleton(
                ComplianceEvaluator,
                config=ComplianceConfig(**compliance_kwargs),
                aggregator=container.aggregator,
            )
        )

    return container
