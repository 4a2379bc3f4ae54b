"""Fall-injury Rules Engine (Layer 2).

Converts Layer 1 evidence into the final injury list deterministically.

The rules engine receives:
1. Layer1Evidence (from LLM) - quoted mentions, denials, offsets
2. EvaluatorConfig - which optional rules are active

And produces:
- An ordered list of FinalInjury, or an EvaluationResult that also records
  which rule kept or removed every mention

Decision Flow (each step sees only what survived the previous one):
1. Is the candidate label in the allowed vocabulary?
   → If no, drop
2. Is the mention negated?
   → If yes, drop (exclude_negated)
3. Is there a "no injuries" statement?
   → Keep only explicit mentions after the latest one; if none, return []
     immediately (respect_no_injury_statements)
4. Is any mention explicit?
   → If yes, drop every implied/unclear mention (prefer_explicit)
5. Is it pain without a body site or explicit fall timing?
   → If yes, drop (strict_pain_evaluation)
6. One mention per label: longest phrase, then phrase naming its body site,
   then earliest start_char, then evidence order
7. Order by start_char, then label
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum

from ..config import Config
from .criteria import (
    dedup_rank,
    has_pain_context,
    is_explicit_after,
    latest_no_injury_statement,
)
from .schemas import (
    AllowedInjury,
    FinalInjury,
    InjuryMention,
    Layer1Evidence,
)

logger = logging.getLogger(__name__)


# JSON contract names for the evaluator flags
_CAMEL_CASE_FLAGS = {
    "excludeNegated": "exclude_negated",
    "respectNoInjuryStatements": "respect_no_injury_statements",
    "preferExplicit": "prefer_explicit",
    "strictPainEvaluation": "strict_pain_evaluation",
    "requireExactMatch": "require_exact_match",
}


@dataclass(frozen=True)
class EvaluatorConfig:
    """Rule toggles for the evaluator. Every rule is on by default."""
    # Drop mentions marked is_negated, even explicit ones
    exclude_negated: bool = True
    # Return [] for a "no injuries" note unless an explicit injury follows it
    respect_no_injury_statements: bool = True
    # Explicit mentions replace implied/unclear ones
    prefer_explicit: bool = True
    # Pain needs a body site or explicit post/during-fall timing
    strict_pain_evaluation: bool = True
    # Labels must match the vocabulary exactly; otherwise case-folded first
    require_exact_match: bool = True

    @classmethod
    def from_dict(cls, data: dict | None) -> "EvaluatorConfig":
        """Build a config from a flat, possibly partial, flag object.

        Accepts snake_case field names or their camelCase JSON names.
        Omitted flags stay enabled.

        Raises:
            ValueError: If a key is not a known flag or a value is not boolean
        """
        if not data:
            return cls()

        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _CAMEL_CASE_FLAGS.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown evaluator flag: {key}")
            if not isinstance(value, bool):
                raise ValueError(f"Evaluator flag {key} must be a boolean, got {value!r}")
            values[name] = value
        return cls(**values)

    @classmethod
    def from_env(cls) -> "EvaluatorConfig":
        """Build a config from the EVALUATOR_* environment settings."""
        return cls(**Config.evaluator_flags())

    def to_dict(self) -> dict:
        """Serialize using the camelCase JSON names."""
        return {
            camel: getattr(self, name)
            for camel, name in _CAMEL_CASE_FLAGS.items()
        }


DEFAULT_CONFIG = EvaluatorConfig()


class ExclusionReason(str, Enum):
    """Which rule removed a mention."""
    NOT_ADMISSIBLE = "not_admissible"                  # Rule 1
    NEGATED = "negated"                                # Rule 2
    SUPPRESSED = "suppressed_by_no_injury_statement"   # Rule 3
    NOT_EXPLICIT = "superseded_by_explicit"            # Rule 4
    PAIN_WITHOUT_CONTEXT = "pain_without_context"      # Rule 5
    DUPLICATE = "duplicate_label"                      # Rule 6


@dataclass(frozen=True)
class MentionDecision:
    """What happened to one input mention."""
    index: int  # Position in evidence.injury_mentions
    text: str
    matched_injury: AllowedInjury | None
    included: bool
    reason: ExclusionReason | None = None
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "text": self.text,
            "matched_injury": self.matched_injury.value if self.matched_injury else None,
            "included": self.included,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
        }


@dataclass
class EvaluationResult:
    """Output of the rules engine with its audit trail."""
    injuries: list[FinalInjury]
    decisions: list[MentionDecision] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)
    suppressed: bool = False
    config: EvaluatorConfig = DEFAULT_CONFIG

    @property
    def excluded(self) -> list[MentionDecision]:
        return [d for d in self.decisions if not d.included]

    def to_dict(self) -> dict:
        return {
            "injuries": [i.to_dict() for i in self.injuries],
            "decisions": [d.to_dict() for d in self.decisions],
            "reasoning": list(self.reasoning),
            "suppressed": self.suppressed,
            "config": self.config.to_dict(),
        }


@dataclass(frozen=True)
class _Candidate:
    """A mention that passed admissibility, with its resolved label."""
    index: int
    mention: InjuryMention
    label: AllowedInjury


class InjuryRulesEngine:
    """Apply the fall-injury reporting rules deterministically.

    The engine holds only its (immutable) config, so one instance can be
    shared across threads and notes.
    """

    def __init__(self, config: EvaluatorConfig | None = None):
        self.config = config or DEFAULT_CONFIG

    def evaluate(self, evidence: Layer1Evidence) -> EvaluationResult:
        """Apply the rules to one note's evidence.

        Args:
            evidence: Layer 1 evidence for a single note

        Returns:
            EvaluationResult with the final injuries and a decision per mention
        """
        config = self.config
        mentions = evidence.injury_mentions
        reasoning: list[str] = []
        labels: dict[int, AllowedInjury | None] = {}
        excluded: dict[int, tuple[ExclusionReason, str]] = {}

        # Rule 1: Admissibility - always applied
        candidates: list[_Candidate] = []
        for index, mention in enumerate(mentions):
            label = AllowedInjury.resolve(
                mention.injury_candidate,
                exact=config.require_exact_match,
            )
            labels[index] = label
            if label is None:
                excluded[index] = (
                    ExclusionReason.NOT_ADMISSIBLE,
                    f"Candidate {mention.injury_candidate!r} is not an allowed injury",
                )
            else:
                candidates.append(_Candidate(index, mention, label))
        reasoning.append(
            f"Admissibility: {len(candidates)} of {len(mentions)} mention(s) "
            "have an allowed injury label"
        )

        # Rule 2: Negation
        if config.exclude_negated:
            kept = []
            for candidate in candidates:
                if candidate.mention.is_negated:
                    negation = candidate.mention.negation_text
                    excluded[candidate.index] = (
                        ExclusionReason.NEGATED,
                        f"Negated by {negation!r}" if negation else "Marked as negated",
                    )
                else:
                    kept.append(candidate)
            if len(kept) < len(candidates):
                reasoning.append(f"Negation: dropped {len(candidates) - len(kept)} negated mention(s)")
            candidates = kept

        # Rule 3: Global "no injuries" suppression
        if config.respect_no_injury_statements:
            statement = latest_no_injury_statement(evidence.no_injury_statements)
            if statement is not None:
                after = [c for c in candidates if is_explicit_after(c.mention, statement)]
                detail = (
                    f"No explicit mention after {statement.text!r} "
                    f"(ends at {statement.end_char})"
                )
                if not after:
                    for candidate in candidates:
                        excluded[candidate.index] = (ExclusionReason.SUPPRESSED, detail)
                    reasoning.append(
                        f"Suppression: {statement.text!r} is not contradicted by a later "
                        "explicit injury - no injuries reported"
                    )
                    logger.debug(f"Evidence suppressed by no-injury statement {statement.text!r}")
                    return self._build_result([], mentions, labels, excluded, reasoning, suppressed=True)

                kept_indexes = {c.index for c in after}
                for candidate in candidates:
                    if candidate.index not in kept_indexes:
                        excluded[candidate.index] = (ExclusionReason.SUPPRESSED, detail)
                reasoning.append(
                    f"Suppression: {len(after)} explicit mention(s) after {statement.text!r} "
                    "override it"
                )
                candidates = after

        # Rule 4: Explicit evidence replaces weaker evidence
        if config.prefer_explicit:
            explicit = [c for c in candidates if c.mention.is_explicit]
            if explicit and len(explicit) < len(candidates):
                for candidate in candidates:
                    if not candidate.mention.is_explicit:
                        excluded[candidate.index] = (
                            ExclusionReason.NOT_EXPLICIT,
                            f"Certainty {candidate.mention.certainty.value!r} superseded by explicit mentions",
                        )
                reasoning.append(
                    f"Certainty: dropped {len(candidates) - len(explicit)} non-explicit mention(s)"
                )
                candidates = explicit

        # Rule 5: Pain needs a body site or explicit fall timing
        if config.strict_pain_evaluation:
            kept = []
            for candidate in candidates:
                if candidate.label == AllowedInjury.PAIN and not has_pain_context(candidate.mention):
                    excluded[candidate.index] = (
                        ExclusionReason.PAIN_WITHOUT_CONTEXT,
                        "Pain without body site or explicit post/during-fall timing",
                    )
                else:
                    kept.append(candidate)
            if len(kept) < len(candidates):
                reasoning.append(
                    f"Pain: dropped {len(candidates) - len(kept)} pain mention(s) without context"
                )
            candidates = kept

        # Rule 6: One representative per label
        groups: dict[AllowedInjury, list[_Candidate]] = {}
        for candidate in candidates:
            groups.setdefault(candidate.label, []).append(candidate)

        representatives = []
        for label, group in groups.items():
            best = min(group, key=lambda c: dedup_rank(c.mention, c.index))
            representatives.append(best)
            for candidate in group:
                if candidate is not best:
                    excluded[candidate.index] = (
                        ExclusionReason.DUPLICATE,
                        f"Duplicate {label.value!r}; kept {best.mention.text!r}",
                    )
        if len(representatives) < len(candidates):
            reasoning.append(
                f"Deduplication: {len(candidates)} mention(s) reduced to "
                f"{len(representatives)} injury label(s)"
            )

        # Rule 7: Note order, label as tiebreak
        representatives.sort(key=lambda c: (c.mention.start_char, c.label.value))
        injuries = [
            FinalInjury(phrase=c.mention.text, matched_injury=c.label)
            for c in representatives
        ]
        reasoning.append(
            "Final injuries: "
            + (", ".join(i.matched_injury.value for i in injuries) if injuries else "none")
        )

        return self._build_result(injuries, mentions, labels, excluded, reasoning)

    def _build_result(
        self,
        injuries: list[FinalInjury],
        mentions: tuple[InjuryMention, ...],
        labels: dict[int, AllowedInjury | None],
        excluded: dict[int, tuple[ExclusionReason, str]],
        reasoning: list[str],
        suppressed: bool = False,
    ) -> EvaluationResult:
        """Assemble the decision list in evidence order."""
        decisions = []
        for index, mention in enumerate(mentions):
            if index in excluded:
                reason, detail = excluded[index]
                decisions.append(MentionDecision(
                    index=index,
                    text=mention.text,
                    matched_injury=labels.get(index),
                    included=False,
                    reason=reason,
                    detail=detail,
                ))
            else:
                decisions.append(MentionDecision(
                    index=index,
                    text=mention.text,
                    matched_injury=labels.get(index),
                    included=True,
                ))

        logger.debug(
            f"Evaluated {len(mentions)} mention(s): {len(injuries)} injury(ies) reported"
        )
        return EvaluationResult(
            injuries=injuries,
            decisions=decisions,
            reasoning=reasoning,
            suppressed=suppressed,
            config=self.config,
        )


def evaluate(
    evidence: Layer1Evidence,
    config: EvaluatorConfig | None = None,
) -> list[FinalInjury]:
    """Convert Layer 1 evidence into the final injury list.

    Pure and deterministic: the same evidence and config always give the
    same list in the same order. Empty evidence gives [].
    """
    return InjuryRulesEngine(config).evaluate(evidence).injuries


def evaluate_dict(data: dict, config: EvaluatorConfig | dict | None = None) -> list[dict]:
    """Evaluate a JSON-shaped evidence payload.

    Args:
        data: Layer1Evidence in its JSON form
        config: EvaluatorConfig, or a flat flag object for EvaluatorConfig.from_dict

    Returns:
        List of {"phrase", "matched_injury"} dicts

    Raises:
        EvidenceParseError: If the payload does not have the evidence shape
    """
    if isinstance(config, dict):
        config = EvaluatorConfig.from_dict(config)
    evidence = Layer1Evidence.from_dict(data)
    return [injury.to_dict() for injury in evaluate(evidence, config)]
