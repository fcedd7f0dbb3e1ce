"""
Text Normalizer
===============
Cleans pasted exam text before segmentation: unified line breaks,
right-trimmed lines, junk lines (watermarks, answer-key headers, page
footers, empty question headers) removed, blank runs collapsed.

normalize() is pure and a fixed point of itself.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Sequence

from .anchors import DEFAULT_WATERMARKS, strip_watermarks, watermark_pattern

# "Answer Key", "ANSWER KEY:"
ANSWER_KEY_HEADER = re.compile(r"^\s*answers?\s*key\s*:?\s*$", re.IGNORECASE)

# "Page 3", "Page 3 of 40", "page 3/40", "8/528"
PAGE_FOOTER = re.compile(
    r"^\s*(?:page\s*\d+(?:\s*(?:/|of)\s*\d+)?|\d+\s*(?:/|of)\s*\d+)\s*$",
    re.IGNORECASE,
)

# "Question 12", "Question: 12:" with nothing after the number
BARE_QUESTION_HEADER = re.compile(
    r"^\s*question\s*:?\s*\d+\s*[:.)\-]?\s*$", re.IGNORECASE
)

BLANK_RUN = re.compile(r"\n{3,}")


@lru_cache(maxsize=32)
def _junk_patterns(tokens: tuple[str, ...]) -> tuple[re.Pattern, ...]:
    patterns = [ANSWER_KEY_HEADER, PAGE_FOOTER, BARE_QUESTION_HEADER]
    token = watermark_pattern(tokens)
    if token is not None:
        # Lone watermark line
        patterns.append(
            re.compile(r"^\s*" + token.pattern + r"\s*$", re.IGNORECASE)
        )
        # "Question 26 ... CertyIQ"
        patterns.append(
            re.compile(
                r"^\s*question\s*:?\s*\d+\b.*" + token.pattern,
                re.IGNORECASE,
            )
        )
    return tuple(patterns)


def is_junk_line(line: str, watermarks: Sequence[str] = DEFAULT_WATERMARKS) -> bool:
    return any(p.match(line) for p in _junk_patterns(tuple(watermarks)))


def normalize(raw: str, watermarks: Sequence[str] = DEFAULT_WATERMARKS) -> str:
    """
    Normalize raw pasted text.

    Args:
        raw: The pasted document.
        watermarks: Junk tokens injected by the source tool.

    Returns:
        Cleaned text; "" when nothing survives.
    """
    text = raw.replace("\r\n", "\n").replace("\r", "\n")

    kept: list[str] = []
    for line in text.split("\n"):
        line = line.rstrip()
        if is_junk_line(line, watermarks):
            continue

        cleaned = strip_watermarks(line, watermarks).rstrip()
        if cleaned != line and is_junk_line(cleaned, watermarks):
            continue
        kept.append(cleaned)

    text = BLANK_RUN.sub("\n\n", "\n".join(kept))
    return text.strip()
