"""
Question-Bank Ingest Engine
===========================
Turns pasted exam text (English or Arabic) into validated multiple-choice
question records for a question bank.

Architecture:
    - Normalizer: Strips page footers, answer-key headers and watermarks
    - Segmenter: Splits the text into one block per question
    - Heuristic Parser: Line-pattern extraction of stem, options and answer
    - AI Parser: Structured-extraction fallback for blocks the heuristics miss
    - Reconciler: Maps answer keys ("B", "AC", "3", free text) to option text
    - Engine: Runs the blocks concurrently and reports what was skipped

Version: 1.0.0
"""

from __future__ import annotations

from typing import Optional

__version__ = "1.0.0"

from .engine import IngestConfig, IngestEngine  # noqa: E402
from .models import IngestReport, IngestResult, ParsedQuestion  # noqa: E402


def ingest(
    raw_text: str,
    config: Optional[IngestConfig] = None,
) -> list[ParsedQuestion]:
    """
    Parse pasted exam text into question records, in document order.

    Raises:
        TypeError: If raw_text is not a string.
    """
    return IngestEngine(config).ingest(raw_text)


__all__ = [
    "IngestConfig",
    "IngestEngine",
    "IngestReport",
    "IngestResult",
    "ParsedQuestion",
    "ingest",
]
