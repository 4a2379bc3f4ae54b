"""Two-layer fall-injury extraction: LLM evidence in, deterministic injuries out."""

__version__ = "0.1.0"
