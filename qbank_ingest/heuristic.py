"""
Heuristic Block Parser
======================
Line-pattern extraction of stem, options, answer and explanation from a
single block. Returns None when no stem survives, which tells the engine
to try the next parser tier.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence

from .anchors import (
    DEFAULT_WATERMARKS,
    has_answer_marker,
    is_explanation_start,
    is_watermark_only,
    match_option,
    match_question_start,
    strip_explanation_anchor,
    strip_stem_prefix,
)
from .models import ParseCandidate
from .reconciler import reconcile

logger = logging.getLogger(__name__)


class BlockSection(Enum):
    STEM = "stem"
    OPTIONS = "options"
    ANSWER = "answer"
    EXPLANATION = "explanation"


def parse_heuristic(
    block: str,
    watermarks: Sequence[str] = DEFAULT_WATERMARKS,
) -> Optional[ParseCandidate]:
    """
    Parse one block without any external service.

    Stem lines are only collected before the first option; non-option lines
    after the options begin (the answer line, stray notes) are ignored.
    """
    section = BlockSection.STEM
    stem_lines: list[str] = []
    options: list[str] = []
    explanation_lines: list[str] = []

    for raw_line in block.split("\n"):
        line = raw_line.strip()
        if not line or is_watermark_only(line, watermarks):
            continue

        if section is not BlockSection.EXPLANATION and is_explanation_start(line):
            section = BlockSection.EXPLANATION
            explanation_lines.append(strip_explanation_anchor(line))
            continue

        if section is BlockSection.EXPLANATION:
            explanation_lines.append(line)
            continue

        if has_answer_marker(line):
            section = BlockSection.ANSWER
            continue

        if section is BlockSection.ANSWER:
            continue

        # The numbered first line ("1. What is...") is the stem, not option 1.
        opens_stem = (
            section is BlockSection.STEM
            and not stem_lines
            and match_question_start(line) is not None
        )
        option = None if opens_stem else match_option(line)

        if option is not None:
            section = BlockSection.OPTIONS
            options.append(option.text)
            continue

        if section is BlockSection.STEM:
            stem_lines.append(line)

    question_text = strip_stem_prefix(" ".join(" ".join(stem_lines).split()))
    if not question_text:
        logger.debug(f"No stem found in block: {block[:60]!r}")
        return None

    return ParseCandidate(
        question_text=question_text,
        options=options,
        correct_answer=reconcile(block, options),
        explanation=" ".join(" ".join(explanation_lines).split()),
    )
