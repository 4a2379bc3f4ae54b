"""Rules engine for fall-injury reporting.

This module provides deterministic injury reporting logic. The rules engine
takes structured LLM evidence extraction output and applies fixed reporting
rules to produce the final injury list.

Architecture:
    Note → LLM Evidence Extraction → Rules Engine → Final Injuries

The LLM's job is evidence extraction (which phrases mention an injury, are
they denied, when did they happen relative to the fall). The rules engine
decides what is reportable, so the same evidence always gives the same answer.
"""

from .schemas import (
    ALLOWED_INJURIES,
    AllowedInjury,
    BodySite,
    Certainty,
    EvidenceMetadata,
    EvidenceParseError,
    FinalInjury,
    InjuryMention,
    Layer1Evidence,
    Negation,
    NoInjuryStatement,
    TemporalRelation,
    TimingMarker,
    is_valid_allowed_injury,
)
from .evaluator import (
    DEFAULT_CONFIG,
    EvaluationResult,
    EvaluatorConfig,
    ExclusionReason,
    InjuryRulesEngine,
    MentionDecision,
    evaluate,
    evaluate_dict,
)

__all__ = [
    # Schemas
    "ALLOWED_INJURIES",
    "AllowedInjury",
    "BodySite",
    "Certainty",
    "EvidenceMetadata",
    "EvidenceParseError",
    "FinalInjury",
    "InjuryMention",
    "Layer1Evidence",
    "Negation",
    "NoInjuryStatement",
    "TemporalRelation",
    "TimingMarker",
    "is_valid_allowed_injury",
    # Evaluator
    "DEFAULT_CONFIG",
    "EvaluationResult",
    "EvaluatorConfig",
    "ExclusionReason",
    "InjuryRulesEngine",
    "MentionDecision",
    "evaluate",
    "evaluate_dict",
]
