"""Core evaluation engine components."""

from __future__ import annotations

# NOTE: keep imports explicit for export clarity.
from .aggregator import AggregatorConfig, ScoreAggregator, round_half_up
from .compliance import ComplianceCheck, ComplianceConfig, ComplianceEvaluator
from .consensus import ConsensusAnalyzer, ConsensusConfig, ConsensusResult, ConsensusSummary
from .matrix import Actor, EvaluationMatrix, open_matrix
from .ranking import RankingEngine, VendorAggregate, recommended_award
from .rubric_store import RubricStore
from .validation import SubmissionRules

__all__ = [
    "Actor",
    "AggregatorConfig",
    "ComplianceCheck",
    "ComplianceConfig",
    "ComplianceEvaluator",
    "ConsensusAnalyzer",
    "ConsensusConfig",
    "ConsensusResult",
    "ConsensusSummary",
    "EvaluationMatrix",
    "RankingEngine",
    "RubricStore",
    "ScoreAggregator",
    "SubmissionRules",
    "VendorAggregate",
    "open_matrix",
    "recommended_award",
    "round_half_up",
]
