"""Command-line runner for the fall-injury rules engine.

Evaluates one Layer 1 evidence document and prints the final injuries.

Usage:
    # Evaluate an evidence JSON file
    python -m injury_src.runner evidence.json

    # Evaluate a raw LLM response (code fences, prose around the JSON)
    python -m injury_src.runner response.txt --raw

    # Show which rule kept or dropped every mention
    python -m injury_src.runner evidence.json --trace

    # Read from stdin with strict pain evaluation off
    cat evidence.json | python -m injury_src.runner --no-strict-pain
"""

import argparse
import json
import logging
import sys
from dataclasses import replace

from .config import config
from .extraction.response_parser import parse_layer1_response
from .rules.evaluator import EvaluatorConfig, InjuryRulesEngine
from .rules.schemas import EvidenceParseError, Layer1Evidence

logger = logging.getLogger(__name__)

# CLI switch -> EvaluatorConfig field it turns off
_DISABLE_FLAGS = {
    "no_exclude_negated": "exclude_negated",
    "no_respect_no_injury": "respect_no_injury_statements",
    "no_prefer_explicit": "prefer_explicit",
    "no_strict_pain": "strict_pain_evaluation",
    "no_exact_match": "require_exact_match",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_config(args: argparse.Namespace) -> EvaluatorConfig:
    """Start from the environment defaults and apply --no-* switches."""
    evaluator_config = EvaluatorConfig.from_env()
    disabled = {
        field_name: False
        for switch, field_name in _DISABLE_FLAGS.items()
        if getattr(args, switch)
    }
    if disabled:
        evaluator_config = replace(evaluator_config, **disabled)
    return evaluator_config


def load_evidence(text: str, raw: bool = False) -> Layer1Evidence:
    """Parse evidence from JSON text, or from a raw LLM response if ``raw``."""
    if raw:
        return parse_layer1_response(text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise EvidenceParseError(f"Invalid evidence JSON: {e}") from e
    return Layer1Evidence.from_dict(data)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Evaluate Layer 1 fall-note evidence into final injuries."
    )
    parser.add_argument(
        "path",
        nargs="?",
        help="Evidence file (default: read stdin)",
    )
    parser.add_argument(
        "--raw",
        action="store_true",
        help="Input is a raw LLM response; locate the JSON object in it",
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Print the full evaluation trace instead of just the injuries",
    )
    parser.add_argument("--no-exclude-negated", action="store_true", help="Keep negated mentions")
    parser.add_argument(
        "--no-respect-no-injury",
        action="store_true",
        help="Ignore 'no injuries noted' statements",
    )
    parser.add_argument(
        "--no-prefer-explicit",
        action="store_true",
        help="Keep implied/unclear mentions alongside explicit ones",
    )
    parser.add_argument(
        "--no-strict-pain",
        action="store_true",
        help="Accept pain without body site or fall timing",
    )
    parser.add_argument(
        "--no-exact-match",
        action="store_true",
        help="Fold case and whitespace in candidate labels",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.path:
        with open(args.path, encoding="utf-8") as f:
            text = f.read()
    else:
        text = sys.stdin.read()

    try:
        evidence = load_evidence(text, raw=args.raw)
    except EvidenceParseError as e:
        logger.error(f"Could not load evidence: {e}")
        return 1

    evaluator_config = build_config(args)
    logger.debug(f"Evaluator config: {evaluator_config.to_dict()}")

    result = InjuryRulesEngine(evaluator_config).evaluate(evidence)

    if args.trace:
        output = result.to_dict()
    else:
        output = [injury.to_dict() for injury in result.injuries]
    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
