"""Abstract base class for Layer 1 evidence extractors."""

from abc import ABC, abstractmethod
from typing import Any

from ..rules.schemas import ALLOWED_INJURIES, Certainty, TemporalRelation
from .prompts import build_user_prompt, load_system_prompt

_SPAN = {
    "type": "object",
    "properties": {
        "text": {"type": "string"},
        "start_char": {"type": "integer"},
        "end_char": {"type": "integer"},
    },
    "required": ["text", "start_char", "end_char"],
}

# JSON Schema for Layer 1 evidence extraction output
LAYER1_EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "injury_mentions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "text": {"type": "string"},
                    "injury_candidate": {
                        "type": ["string", "null"],
                        "enum": [*ALLOWED_INJURIES, None],
                    },
                    "body_site": {"type": ["string", "null"]},
                    "is_negated": {"type": "boolean"},
                    "negation_text": {"type": ["string", "null"]},
                    "temporal_relation_to_fall": {
                        "type": "string",
                        "enum": [r.value for r in TemporalRelation],
                    },
                    "certainty": {
                        "type": "string",
                        "enum": [c.value for c in Certainty],
                    },
                    "start_char": {"type": "integer"},
                    "end_char": {"type": "integer"},
                },
                "required": [
                    "text",
                    "injury_candidate",
                    "is_negated",
                    "temporal_relation_to_fall",
                    "certainty",
                    "start_char",
                    "end_char",
                ],
            },
        },
        "negations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "text": {"type": "string"},
                    "scope_hint": {"type": ["string", "null"]},
                    "start_char": {"type": "integer"},
                    "end_char": {"type": "integer"},
                },
                "required": ["text", "start_char", "end_char"],
            },
        },
        "no_injury_statements": {"type": "array", "items": _SPAN},
        "timing_markers": {"type": "array", "items": _SPAN},
        "body_sites": {"type": "array", "items": _SPAN},
        "metadata": {
            "type": "object",
            "properties": {
                "model_version": {"type": "string"},
                "extraction_warnings": {"type": "array", "items": {"type": "string"}},
            },
        },
    },
    "required": ["injury_mentions", "no_injury_statements"],
}


class BaseEvidenceExtractor(ABC):
    """Abstract base class for Layer 1 extractors.

    An extractor sends the note to a model and returns the model's raw text.
    It does not parse or judge the answer - that is the response parser's and
    the rules engine's job.
    """

    prompt_version: str = "v1"

    @property
    def system_prompt(self) -> str:
        """Get the Layer 1 system prompt for this extractor."""
        return load_system_prompt(self.prompt_version)

    def build_prompt(self, note_text: str) -> str:
        """Build the user prompt for one note."""
        return build_user_prompt(note_text)

    @abstractmethod
    def extract(self, note_text: str) -> str:
        """Extract evidence from one note.

        Args:
            note_text: The (possibly section-filtered) note

        Returns:
            Raw model response, expected to contain a Layer1Evidence JSON object
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name being used."""
        pass
