"""Layer 1 evidence extraction prompts.

The system prompt tells the model to quote evidence, never to decide which
injuries to report. The vocabulary, enum values and output shape are built
from the schemas so the prompt cannot drift from what the parser accepts.

A text file in ``prompts/layer1_extraction_<version>.txt`` at the project
root overrides the built-in system prompt.
"""

import json
import logging
from pathlib import Path

from ..rules.schemas import ALLOWED_INJURIES, Certainty, TemporalRelation

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent.parent / "prompts"

LAYER1_USER_PROMPT_TEMPLATE = "Note:\n{note}\n\nExtract evidence and output JSON:"

_CERTAINTY_DEFINITIONS = {
    Certainty.EXPLICIT: 'the injury term is stated directly ("bruise", "skin tear")',
    Certainty.IMPLIED: 'the injury is described but the term is not used ("3cm tear")',
    Certainty.UNCLEAR: "it is ambiguous whether the phrase describes an injury",
}

_OUTPUT_SHAPE = {
    "injury_mentions": [
        {
            "text": "exact quoted substring from the note",
            "injury_candidate": "an Allowed_Injuries label, or null",
            "body_site": "right forearm, or null",
            "is_negated": False,
            "negation_text": "denies pain, or null",
            "temporal_relation_to_fall": " | ".join(r.value for r in TemporalRelation),
            "certainty": " | ".join(c.value for c in Certainty),
            "start_char": 123,
            "end_char": 145,
        }
    ],
    "negations": [
        {"text": "exact negation phrase", "scope_hint": "what it negates, or null",
         "start_char": 200, "end_char": 210}
    ],
    "no_injury_statements": [
        {"text": "exact phrase such as 'no injuries noted'", "start_char": 150, "end_char": 167}
    ],
    "timing_markers": [{"text": "post fall", "start_char": 0, "end_char": 9}],
    "body_sites": [{"text": "right forearm", "start_char": 50, "end_char": 63}],
    "metadata": {"model_version": "model identifier", "extraction_warnings": []},
}

# Worked example shown to the model. Offsets index into the note.
LAYER1_EXAMPLE_NOTE = (
    "Found on floor post fall. New 3cm skin tear on right forearm. Denies other pain."
)

LAYER1_EXAMPLE_EVIDENCE = {
    "injury_mentions": [
        {
            "text": "New 3cm skin tear on right forearm",
            "injury_candidate": "skin tear",
            "body_site": "right forearm",
            "is_negated": False,
            "negation_text": None,
            "temporal_relation_to_fall": "post_fall",
            "certainty": "explicit",
            "start_char": 26,
            "end_char": 60,
        },
        {
            "text": "Denies other pain",
            "injury_candidate": "pain",
            "body_site": None,
            "is_negated": True,
            "negation_text": "Denies other pain",
            "temporal_relation_to_fall": "unknown",
            "certainty": "explicit",
            "start_char": 62,
            "end_char": 79,
        },
    ],
    "negations": [
        {"text": "Denies other pain", "scope_hint": "other pain", "start_char": 62, "end_char": 79},
    ],
    "no_injury_statements": [],
    "timing_markers": [
        {"text": "Found on floor", "start_char": 0, "end_char": 14},
        {"text": "post fall", "start_char": 15, "end_char": 24},
    ],
    "body_sites": [
        {"text": "right forearm", "start_char": 47, "end_char": 60},
    ],
    "metadata": {"model_version": "example", "extraction_warnings": []},
}


def _build_system_prompt() -> str:
    vocabulary = "\n".join(f"  - {label}" for label in ALLOWED_INJURIES)
    certainty = "\n".join(
        f'   - "{level.value}": {definition}'
        for level, definition in _CERTAINTY_DEFINITIONS.items()
    )
    timing = ", ".join(f'"{r.value}"' for r in TemporalRelation)

    return f"""You are a medical data extraction specialist. Extract structured evidence from a fall incident note. You do NOT decide which injuries to report. You ONLY extract observable evidence.

Extract everything that could bear on injuries:
- Injury-related mentions, stated or implied
- Negations and denials
- "No injury" statements
- Timing markers relative to the fall
- Body site mentions

Allowed_Injuries (map a mention only to one of these exact labels):
{vocabulary}

RULES:
1. Extract evidence, not conclusions.
2. Quote exact text spans from the note. Never paraphrase.
3. Include every injury-related mention, even if negated or unclear.
4. If an injury term is not in Allowed_Injuries, set injury_candidate to null but keep the mention.
5. Mark denials explicitly: "denies pain" is a negated mention, not an injury.
6. temporal_relation_to_fall is one of {timing}.
7. Record body sites whenever mentioned ("right forearm", "left knee").
8. certainty describes the documentation:
{certainty}
9. start_char and end_char are character offsets into the note (end exclusive).

OUTPUT FORMAT:
Output ONLY a JSON object with this shape:
{json.dumps(_OUTPUT_SHAPE, indent=2)}

EXAMPLE:
Note: "{LAYER1_EXAMPLE_NOTE}"

Output:
{json.dumps(LAYER1_EXAMPLE_EVIDENCE, indent=2)}

Extract ALL evidence. Output ONLY the JSON object, no preamble or explanation."""


LAYER1_SYSTEM_PROMPT = _build_system_prompt()


def load_system_prompt(prompt_version: str = "v1") -> str:
    """Load the system prompt from the prompts directory or use the default."""
    template_file = PROMPTS_DIR / f"layer1_extraction_{prompt_version}.txt"

    if template_file.exists():
        try:
            return template_file.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not load prompt template: {e}")

    return LAYER1_SYSTEM_PROMPT


def build_user_prompt(note_text: str) -> str:
    """Wrap one note in the Layer 1 user prompt."""
    return LAYER1_USER_PROMPT_TEMPLATE.format(note=note_text)
