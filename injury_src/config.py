"""Configuration for the fall-injury evaluator."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Find and load .env file
_env_candidates = [
    Path(__file__).parent.parent / ".env",
    Path(__file__).parent.parent / ".env.template",
]

for env_path in _env_candidates:
    if env_path.exists():
        load_dotenv(env_path)
        break

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str = "true") -> bool:
    """Read a boolean flag from the environment."""
    return os.getenv(name, default).strip().lower() in _TRUTHY


class Config:
    """Fall-injury evaluator configuration."""

    # --- Evaluator Rule Toggles ---
    # Drop mentions the extractor marked as negated ("denies pain")
    EVALUATOR_EXCLUDE_NEGATED: bool = _env_flag("EVALUATOR_EXCLUDE_NEGATED")
    # Suppress output when a "no injuries noted" statement dominates the note
    EVALUATOR_RESPECT_NO_INJURY_STATEMENTS: bool = _env_flag(
        "EVALUATOR_RESPECT_NO_INJURY_STATEMENTS"
    )
    # Explicit mentions replace implied/unclear ones entirely
    EVALUATOR_PREFER_EXPLICIT: bool = _env_flag("EVALUATOR_PREFER_EXPLICIT")
    # Pain needs a body site or explicit post-fall context
    EVALUATOR_STRICT_PAIN_EVALUATION: bool = _env_flag(
        "EVALUATOR_STRICT_PAIN_EVALUATION"
    )
    # Candidate labels must match the vocabulary exactly (no case folding)
    EVALUATOR_REQUIRE_EXACT_MATCH: bool = _env_flag("EVALUATOR_REQUIRE_EXACT_MATCH")

    # --- Pipeline ---
    # Maximum note length handed to the Layer 1 extractor (in characters)
    MAX_NOTE_LENGTH: int = int(os.getenv("MAX_NOTE_LENGTH", "50000"))

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def evaluator_flags(cls) -> dict[str, bool]:
        """Get the evaluator rule toggles keyed by EvaluatorConfig field name."""
        return {
            "exclude_negated": cls.EVALUATOR_EXCLUDE_NEGATED,
            "respect_no_injury_statements": cls.EVALUATOR_RESPECT_NO_INJURY_STATEMENTS,
            "prefer_explicit": cls.EVALUATOR_PREFER_EXPLICIT,
            "strict_pain_evaluation": cls.EVALUATOR_STRICT_PAIN_EVALUATION,
            "require_exact_match": cls.EVALUATOR_REQUIRE_EXACT_MATCH,
        }


# Module-level convenience instance
config = Config()
