"""Schemas for the fall-injury rules engine.

This module defines:
- AllowedInjury: The closed vocabulary of reportable injury labels
- Layer1Evidence: What the LLM extracts from a fall-incident note
- FinalInjury: Output of the deterministic evaluator

The key principle: the LLM extracts *evidence*, the evaluator applies
*rules*. The LLM is never asked which injuries to report - only to quote
what the note says, where it says it, and how certainly.

All evidence types are frozen dataclasses holding tuples, so a single
Layer1Evidence can be shared between callers without copying. Field names
match the JSON contract the Layer 1 extractor is prompted to emit.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EvidenceParseError(ValueError):
    """Raised when a payload does not have the Layer1Evidence shape."""


class AllowedInjury(str, Enum):
    """Injury labels the evaluator is permitted to emit."""
    ABRASION = "abrasion"
    BLEEDING = "bleeding"
    BROKEN_SKIN = "broken skin"
    BRUISING = "bruising"
    BRUISE = "bruise"
    BURN = "burn"
    CUT = "cut"
    CONTUSION = "contusion"
    DISLOCATION = "dislocation"
    FRACTURE = "fracture"
    FROSTBITE = "frostbite"
    HEMATOMA = "hematoma"
    HYPOGLYCEMIA = "hypoglycemia"
    INCISION = "incision"
    LACERATION = "laceration"
    PAIN = "pain"
    REDNESS = "redness"
    SCRATCHES = "scratches"
    SKIN_TEAR = "skin tear"
    SCRAPE = "scrape"
    SPRAIN = "sprain"
    STRAIN = "strain"
    SWELLING = "swelling"
    UNCONSCIOUS = "unconscious"

    @classmethod
    def resolve(cls, value: "AllowedInjury | str | None", exact: bool = True) -> "AllowedInjury | None":
        """Map a candidate label onto the vocabulary.

        Args:
            value: Label as extracted (enum member, raw string, or None)
            exact: If False, fold case and collapse whitespace before lookup

        Returns:
            The matching AllowedInjury, or None if the label is inadmissible
        """
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        if not exact:
            value = re.sub(r"\s+", " ", value.strip().lower())
        try:
            return cls(value)
        except ValueError:
            return None


ALLOWED_INJURIES: tuple[str, ...] = tuple(injury.value for injury in AllowedInjury)


def is_valid_allowed_injury(value: str) -> bool:
    """Check whether a string is exactly one of the allowed injury labels."""
    return AllowedInjury.resolve(value) is not None


class TemporalRelation(str, Enum):
    """When the mention happened relative to the fall."""
    POST_FALL = "post_fall"
    DURING_FALL = "during_fall"
    PRE_FALL = "pre_fall"
    UNKNOWN = "unknown"


class Certainty(str, Enum):
    """How explicitly the note states the mention.

    This is NOT the LLM's confidence in its extraction - it describes the
    documentation itself.
    """
    EXPLICIT = "explicit"     # Stated outright ("3cm skin tear")
    IMPLIED = "implied"       # Strongly suggested by context
    UNCLEAR = "unclear"       # Ambiguous or equivocal


# ============================================================================
# Boundary helpers
# ============================================================================

def _require_mapping(data: Any, owner: str) -> dict:
    if not isinstance(data, dict):
        raise EvidenceParseError(f"{owner} must be an object, got {type(data).__name__}")
    return data


def _require_text(data: dict, key: str, owner: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise EvidenceParseError(f"{owner}.{key} must be a string, got {type(value).__name__}")
    return value


def _optional_text(data: dict, key: str, owner: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise EvidenceParseError(f"{owner}.{key} must be a string or null")
    return value


def _require_offset(data: dict, key: str, owner: str) -> int:
    value = data.get(key)
    # bool is an int subclass; JSON true/false is not an offset
    if isinstance(value, bool):
        raise EvidenceParseError(f"{owner}.{key} must be an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise EvidenceParseError(f"{owner}.{key} must be an integer, got {value!r}")
    return value


def _collection(data: dict, key: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise EvidenceParseError(f"Layer1Evidence.{key} must be an array")
    return value


# ============================================================================
# LLM Extraction Schemas - What the LLM produces
# ============================================================================

@dataclass(frozen=True)
class InjuryMention:
    """One candidate injury observation quoted from the note."""
    text: str  # Exact substring from the note, never paraphrased
    injury_candidate: AllowedInjury | str | None  # str = out-of-vocabulary label
    body_site: str | None = None  # e.g. "right forearm"
    is_negated: bool = False
    negation_text: str | None = None  # e.g. "denies pain"
    temporal_relation_to_fall: TemporalRelation = TemporalRelation.UNKNOWN
    certainty: Certainty = Certainty.UNCLEAR
    start_char: int = 0
    end_char: int = 0

    @property
    def is_explicit(self) -> bool:
        return self.certainty == Certainty.EXPLICIT

    def to_dict(self) -> dict:
        candidate = self.injury_candidate
        return {
            "text": self.text,
            "injury_candidate": candidate.value if isinstance(candidate, AllowedInjury) else candidate,
            "body_site": self.body_site,
            "is_negated": self.is_negated,
            "negation_text": self.negation_text,
            "temporal_relation_to_fall": self.temporal_relation_to_fall.value,
            "certainty": self.certainty.value,
            "start_char": self.start_char,
            "end_char": self.end_char,
        }

    @classmethod
    def from_dict(cls, data: dict, warnings: list[str] | None = None) -> "InjuryMention":
        """Build a mention from its JSON form.

        Unknown enum values are coerced (temporal -> unknown, certainty ->
        unclear) and a warning is appended to ``warnings`` if given.
        """
        owner = "InjuryMention"
        data = _require_mapping(data, owner)
        text = _require_text(data, "text", owner)

        candidate = data.get("injury_candidate")
        if candidate is not None and not isinstance(candidate, str):
            raise EvidenceParseError(f"{owner}.injury_candidate must be a string or null")
        # Keep out-of-vocabulary labels as raw strings so the trace can show them
        resolved = AllowedInjury.resolve(candidate)
        if resolved is not None:
            candidate = resolved

        is_negated = data.get("is_negated", False)
        if not isinstance(is_negated, bool):
            raise EvidenceParseError(f"{owner}.is_negated must be a boolean")

        temporal_raw = data.get("temporal_relation_to_fall") or TemporalRelation.UNKNOWN.value
        try:
            temporal = TemporalRelation(temporal_raw)
        except ValueError:
            message = f"Unknown temporal_relation_to_fall {temporal_raw!r} for {text!r}; using 'unknown'"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
            temporal = TemporalRelation.UNKNOWN

        certainty_raw = data.get("certainty") or Certainty.UNCLEAR.value
        try:
            certainty = Certainty(certainty_raw)
        except ValueError:
            message = f"Unknown certainty {certainty_raw!r} for {text!r}; using 'unclear'"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
            certainty = Certainty.UNCLEAR

        return cls(
            text=text,
            injury_candidate=candidate,
            body_site=_optional_text(data, "body_site", owner),
            is_negated=is_negated,
            negation_text=_optional_text(data, "negation_text", owner),
            temporal_relation_to_fall=temporal,
            certainty=certainty,
            start_char=_require_offset(data, "start_char", owner),
            end_char=_require_offset(data, "end_char", owner),
        )


@dataclass(frozen=True)
class Negation:
    """A denial phrase not tied to a specific mention."""
    text: str  # "denies pain", "no bruising"
    scope_hint: str | None  # Substring it negates, if known
    start_char: int
    end_char: int

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "scope_hint": self.scope_hint,
            "start_char": self.start_char,
            "end_char": self.end_char,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Negation":
        owner = "Negation"
        data = _require_mapping(data, owner)
        return cls(
            text=_require_text(data, "text", owner),
            scope_hint=_optional_text(data, "scope_hint", owner),
            start_char=_require_offset(data, "start_char", owner),
            end_char=_require_offset(data, "end_char", owner),
        )


@dataclass(frozen=True)
class _Span:
    """A quoted phrase with its character offsets."""
    text: str
    start_char: int
    end_char: int

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "start_char": self.start_char,
            "end_char": self.end_char,
        }

    @classmethod
    def from_dict(cls, data: dict):
        owner = cls.__name__
        data = _require_mapping(data, owner)
        return cls(
            text=_require_text(data, "text", owner),
            start_char=_require_offset(data, "start_char", owner),
            end_char=_require_offset(data, "end_char", owner),
        )


class NoInjuryStatement(_Span):
    """A global denial such as "no injuries noted"."""


class TimingMarker(_Span):
    """A timing phrase such as "post fall" or "found on floor"."""


class BodySite(_Span):
    """A body site mention such as "left knee"."""


@dataclass(frozen=True)
class EvidenceMetadata:
    """Extraction metadata. Informational only - never read by the rules."""
    model_version: str = ""
    extraction_warnings: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "extraction_warnings", tuple(self.extraction_warnings))

    def to_dict(self) -> dict:
        return {
            "model_version": self.model_version,
            "extraction_warnings": list(self.extraction_warnings),
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "EvidenceMetadata":
        if data is None:
            return cls()
        data = _require_mapping(data, "EvidenceMetadata")
        warnings = data.get("extraction_warnings") or []
        if not isinstance(warnings, list):
            raise EvidenceParseError("EvidenceMetadata.extraction_warnings must be an array")
        return cls(
            model_version=str(data.get("model_version") or ""),
            extraction_warnings=tuple(str(w) for w in warnings),
        )


@dataclass(frozen=True)
class Layer1Evidence:
    """Complete evidence bundle for one note.

    This is what the LLM produces. The evaluator turns it into the final
    injury list; the LLM is NOT making the reporting decision.
    """
    injury_mentions: tuple[InjuryMention, ...] = ()
    negations: tuple[Negation, ...] = ()
    no_injury_statements: tuple[NoInjuryStatement, ...] = ()
    timing_markers: tuple[TimingMarker, ...] = ()
    body_sites: tuple[BodySite, ...] = ()
    metadata: EvidenceMetadata = field(default_factory=EvidenceMetadata)

    def __post_init__(self):
        # Accept lists from callers but store tuples
        for name in ("injury_mentions", "negations", "no_injury_statements", "timing_markers", "body_sites"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def to_dict(self) -> dict:
        return {
            "injury_mentions": [m.to_dict() for m in self.injury_mentions],
            "negations": [n.to_dict() for n in self.negations],
            "no_injury_statements": [s.to_dict() for s in self.no_injury_statements],
            "timing_markers": [t.to_dict() for t in self.timing_markers],
            "body_sites": [b.to_dict() for b in self.body_sites],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Layer1Evidence":
        """Validate a JSON payload and build the evidence bundle.

        Missing collections are treated as empty. Wrong types raise
        EvidenceParseError.
        """
        data = _require_mapping(data, "Layer1Evidence")
        warnings: list[str] = []

        mentions = tuple(
            InjuryMention.from_dict(item, warnings)
            for item in _collection(data, "injury_mentions")
        )
        metadata = EvidenceMetadata.from_dict(data.get("metadata"))
        if warnings:
            metadata = EvidenceMetadata(
                model_version=metadata.model_version,
                extraction_warnings=metadata.extraction_warnings + tuple(warnings),
            )

        return cls(
            injury_mentions=mentions,
            negations=tuple(Negation.from_dict(n) for n in _collection(data, "negations")),
            no_injury_statements=tuple(
                NoInjuryStatement.from_dict(s) for s in _collection(data, "no_injury_statements")
            ),
            timing_markers=tuple(
                TimingMarker.from_dict(t) for t in _collection(data, "timing_markers")
            ),
            body_sites=tuple(BodySite.from_dict(b) for b in _collection(data, "body_sites")),
            metadata=metadata,
        )


# ============================================================================
# Evaluator Output
# ============================================================================

@dataclass(frozen=True)
class FinalInjury:
    """A reportable injury: the quoted phrase and its vocabulary label."""
    phrase: str
    matched_injury: AllowedInjury

    def to_dict(self) -> dict:
        return {
            "phrase": self.phrase,
            "matched_injury": self.matched_injury.value,
        }
