"""Layer 1 evidence extraction boundary.

Concrete LLM clients live outside this package; they implement
BaseEvidenceExtractor and hand their raw text to parse_layer1_response.
"""

from .base import LAYER1_EXTRACTION_SCHEMA, BaseEvidenceExtractor
from .prompts import (
    LAYER1_SYSTEM_PROMPT,
    LAYER1_USER_PROMPT_TEMPLATE,
    build_user_prompt,
    load_system_prompt,
)
from .response_parser import extract_json_object, parse_layer1_response

__all__ = [
    "LAYER1_EXTRACTION_SCHEMA",
    "BaseEvidenceExtractor",
    "LAYER1_SYSTEM_PROMPT",
    "LAYER1_USER_PROMPT_TEMPLATE",
    "build_user_prompt",
    "load_system_prompt",
    "extract_json_object",
    "parse_layer1_response",
]
