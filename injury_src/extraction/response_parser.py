"""Recover Layer 1 evidence from raw LLM output.

Models asked for "JSON only" still wrap it in code fences, prefix it with
"Output:", or add a sentence afterwards. The parser tries, in order:

1. The whole response as JSON
2. A fenced code block (```json ... ```)
3. An object after an "Output:", "Response:" or "JSON:" prefix
4. The first balanced {...} object

A candidate that does not decode as-is is retried with trailing commas
before a closing brace or bracket removed. Valid JSON is never rewritten, so
quoted note text reaches the rules engine unchanged.
"""

import json
import logging
import re

from ..rules.schemas import EvidenceParseError, Layer1Evidence

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
_PREFIX_RE = re.compile(r"(?:Output|Response|JSON):\s*(?=\{)", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def _clean(candidate: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", candidate).strip()


def _decode(candidate: str):
    """Decode a candidate, removing trailing commas only if it is invalid as-is.

    Raises:
        json.JSONDecodeError: If the cleaned candidate is still invalid
    """
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return json.loads(_clean(candidate))


def _balanced_object(text: str, start: int) -> str | None:
    """Return the {...} object starting at ``start``, honouring JSON strings."""
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _candidates(text: str):
    """Yield candidate JSON strings in strategy order."""
    yield text.strip()

    for match in _CODE_BLOCK_RE.finditer(text):
        # The lazy match stops at the first "}" before a fence; rebalance
        block = _balanced_object(text, match.start(1))
        yield block or match.group(1)

    prefix = _PREFIX_RE.search(text)
    if prefix:
        obj = _balanced_object(text, prefix.end())
        if obj:
            yield obj

    start = text.find("{")
    if start != -1:
        obj = _balanced_object(text, start)
        if obj:
            yield obj


def extract_json_object(raw_text: str) -> dict:
    """Find and decode the JSON object in a raw LLM response.

    Args:
        raw_text: Model output that should contain one JSON object

    Returns:
        The decoded object

    Raises:
        EvidenceParseError: If no candidate decodes to a JSON object
    """
    if not raw_text or not raw_text.strip():
        raise EvidenceParseError("Empty Layer 1 response")

    last_error = None
    non_object = None
    for candidate in _candidates(raw_text):
        try:
            data = _decode(candidate)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if not isinstance(data, dict):
            non_object = type(data).__name__
            continue
        return data

    logger.warning(f"Could not extract JSON from Layer 1 response (length={len(raw_text)})")
    if non_object is not None:
        raise EvidenceParseError(f"Layer 1 response must be a JSON object, got {non_object}")
    if last_error is not None:
        raise EvidenceParseError(f"No JSON object found in Layer 1 response: {last_error}")
    raise EvidenceParseError("No JSON object found in Layer 1 response")


def parse_layer1_response(raw_text: str) -> Layer1Evidence:
    """Parse a raw Layer 1 response into validated evidence.

    Raises:
        EvidenceParseError: If no JSON object is found or it has the wrong shape
    """
    return Layer1Evidence.from_dict(extract_json_object(raw_text))
