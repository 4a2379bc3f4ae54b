"""Two-layer injury extraction pipeline.

Combines Layer 1 (LLM evidence extraction) and Layer 2 (deterministic
rules engine):

    note → [section filter] → extractor → response parser → rules engine

The extractor and the section filter are supplied by the caller. Failures in
the section filter, extraction or parsing are reported on the result rather
than raised, so a batch of notes can run to completion.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from .config import Config
from .extraction.base import BaseEvidenceExtractor
from .extraction.response_parser import parse_layer1_response
from .rules.evaluator import EvaluatorConfig, InjuryRulesEngine
from .rules.schemas import EvidenceParseError, FinalInjury, Layer1Evidence

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Result of running one note through both layers."""
    final_injuries: list[FinalInjury]
    original_note: str
    evidence: Layer1Evidence | None = None  # Kept for auditing
    raw_response: str | None = None
    error: str | None = None
    used_section_filter: bool = False
    preprocessed_note: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "final_injuries": [i.to_dict() for i in self.final_injuries],
            "evidence": self.evidence.to_dict() if self.evidence else None,
            "raw_response": self.raw_response,
            "error": self.error,
            "used_section_filter": self.used_section_filter,
            "original_note": self.original_note,
            "preprocessed_note": self.preprocessed_note,
        }


class InjuryPipeline:
    """Run notes through Layer 1 extraction and the Layer 2 rules engine."""

    def __init__(
        self,
        extractor: BaseEvidenceExtractor,
        evaluator_config: EvaluatorConfig | None = None,
        section_filter: Callable[[str], str] | None = None,
        use_section_filter: bool | None = None,
        max_note_length: int | None = None,
    ):
        """Initialize the pipeline.

        Args:
            extractor: Layer 1 extractor returning raw model text
            evaluator_config: Rule toggles. Uses EvaluatorConfig.from_env() if None.
            section_filter: Reduces a note to its injury-relevant sections
            use_section_filter: Apply section_filter. Defaults to "if one is given".
            max_note_length: Truncate notes longer than this. Uses config if None.

        Raises:
            ValueError: If the section filter is requested but not supplied
        """
        if use_section_filter is None:
            use_section_filter = section_filter is not None
        if use_section_filter and section_filter is None:
            raise ValueError("use_section_filter requires a section_filter")

        self.extractor = extractor
        self.engine = InjuryRulesEngine(evaluator_config or EvaluatorConfig.from_env())
        self.section_filter = section_filter
        self.use_section_filter = use_section_filter
        self.max_note_length = max_note_length or Config.MAX_NOTE_LENGTH

    def run(self, note_text: str) -> PipelineResult:
        """Extract and evaluate injuries for one note.

        Args:
            note_text: Full fall-incident note

        Returns:
            PipelineResult; ``error`` is set and ``final_injuries`` is empty
            if the section filter, extraction or parsing failed
        """
        preprocessed = None
        text = note_text

        if self.use_section_filter:
            try:
                preprocessed = self.section_filter(note_text)
            except Exception as e:
                logger.error(f"Section filter failed: {e}")
                return PipelineResult(
                    final_injuries=[],
                    original_note=note_text,
                    error=f"Section filter error: {e}",
                    used_section_filter=True,
                )
            text = preprocessed

        if len(text) > self.max_note_length:
            logger.warning(
                f"Note length {len(text)} exceeds {self.max_note_length} - truncating"
            )
            text = text[:self.max_note_length]

        try:
            raw_response = self.extractor.extract(text)
        except Exception as e:
            logger.error(f"Layer 1 extraction failed: {e}")
            return PipelineResult(
                final_injuries=[],
                original_note=note_text,
                error=f"Extraction error: {e}",
                used_section_filter=self.use_section_filter,
                preprocessed_note=preprocessed,
            )

        try:
            evidence = parse_layer1_response(raw_response)
        except EvidenceParseError as e:
            logger.error(f"Failed to parse Layer 1 response from {self.extractor.model_name}: {e}")
            return PipelineResult(
                final_injuries=[],
                original_note=note_text,
                raw_response=raw_response,
                error=f"Failed to parse Layer 1 response: {e}",
                used_section_filter=self.use_section_filter,
                preprocessed_note=preprocessed,
            )

        result = self.engine.evaluate(evidence)
        logger.info(
            f"Evaluated note ({len(note_text)} chars) with {self.extractor.model_name}: "
            f"{len(result.injuries)} injury(ies)"
        )

        return PipelineResult(
            final_injuries=result.injuries,
            original_note=note_text,
            evidence=evidence,
            raw_response=raw_response,
            used_section_filter=self.use_section_filter,
            preprocessed_note=preprocessed,
        )

    def run_batch(self, notes: list[str]) -> list[PipelineResult]:
        """Run several notes, in order."""
        return [self.run(note) for note in notes]
