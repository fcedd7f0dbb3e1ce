"""
Anchor Patterns
===============
Text anchors shared by the normalizer, segmenter, heuristic parser and
answer reconciler: question starts, option lines, answer markers,
explanation markers and watermark tokens.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence

DEFAULT_WATERMARKS: tuple[str, ...] = ("CertyIQ",)

# ─── Question / Option Anchors ────────────────────────────────────────────────

# "Question 12", "Question: 12", "Q12", "Q.12" (explicit) or "12." / "12)" /
# "12:" / "12 -" (bare). A bare number followed by a digit is a decimal.
QUESTION_START_PATTERN = re.compile(
    r"^\s*(?:"
    r"(?:question|q)\s*[:#.]?\s*(?P<explicit>\d+)\b"
    r"|(?P<bare>\d+)\s*[:.)\-](?!\d)"
    r")",
    re.IGNORECASE,
)

# "A) text", "(b) text", "C. text", "1) text", "10 - text"
OPTION_PATTERN = re.compile(
    r"^\s*\(?(?P<marker>[A-Ha-h]|10|[1-9])\s*[.):\-\]]\s*(?P<text>\S.*)$"
)

# Leading numbering left on a stem: "Question 3:", "Q3)", "3."
STEM_PREFIX_PATTERN = re.compile(
    r"^\s*(?:(?:question|q)\s*[:#.]?\s*\d+\s*[:.)\-]?|\d+\s*[:.)\-](?!\d))\s*",
    re.IGNORECASE,
)

# ─── Answer Anchors ───────────────────────────────────────────────────────────

ANSWER_LABEL = (
    r"(?:correct\s+answers?|right\s+answers?|correct\s+options?"
    r"|answers?\s+is|answers?|ans"
    r"|الإجابة(?:\s+الصحيحة)?|الاجابة(?:\s+الصحيحة)?|الجواب)"
)

# "Answer: B", "Correct Answer - A, C", "Ans. 3", "(Answer) D", "Answer:"
ANSWER_LINE_PATTERN = re.compile(
    r"^\s*[(\[]?(?P<label>" + ANSWER_LABEL + r")\b[)\]]?"
    r"\s*(?P<sep>[:：.\-–])?\s*(?P<payload>.*)$",
    re.IGNORECASE,
)

# Label anywhere in the line, payload optional-separated ("... answer is B")
ANSWER_INLINE_PATTERN = re.compile(
    r"\b(?P<label>" + ANSWER_LABEL + r")\b\s*[:：.\-–]?\s*(?P<payload>\S.*)$",
    re.IGNORECASE,
)

# Label followed by a colon anywhere in the line ("Q7 ... Answer: B")
ANSWER_COLON_PATTERN = re.compile(
    r"\b" + ANSWER_LABEL + r"\s*[:：]", re.IGNORECASE
)

_KEY = r"[(\[]?(?:[A-Ha-h]|10|[1-9])[)\]]?"

# Payload that reads like an answer key: "B", "A and C", "2, 4", "BD"
ANSWER_KEY_PAYLOAD = re.compile(
    r"^(?:" + _KEY + r"(?:\s*(?:,|&|/|\band\b|\bor\b|\s)\s*" + _KEY + r")*"
    r"|[A-H]{2,})\.?$",
    re.IGNORECASE,
)

# Matches "Explanation:", "Reference:", "Rationale:"
EXPLANATION_PATTERN = re.compile(
    r"^\s*(?:Explanation|Reference|Rationale|الشرح|التوضيح)\b\s*:?\s*",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class OptionMatch:
    """An option line split into its marker and text."""
    marker: str
    text: str

    @property
    def number(self) -> Optional[int]:
        return int(self.marker) if self.marker.isdigit() else None

    @property
    def is_first_letter(self) -> bool:
        return self.marker.upper() == "A"


def match_question_start(line: str) -> Optional[re.Match]:
    return QUESTION_START_PATTERN.match(line)


def match_option(line: str) -> Optional[OptionMatch]:
    m = OPTION_PATTERN.match(line)
    if not m:
        return None
    return OptionMatch(marker=m.group("marker"), text=m.group("text").strip())


def match_answer_line(line: str) -> Optional[str]:
    """
    Return the payload of a line that starts with an answer label.

    A single-word label ("Answer", "Ans") without a separator only counts
    when the rest of the line reads like an answer key, so stems such as
    "Answer the following..." are not mistaken for answer lines. The
    payload is "" for a bare "Answer:" line.
    """
    m = ANSWER_LINE_PATTERN.match(line)
    if not m:
        return None

    label = m.group("label")
    payload = m.group("payload").strip()

    if (
        m.group("sep")
        or not payload
        or len(label.split()) > 1
        or ANSWER_KEY_PAYLOAD.match(payload)
    ):
        return payload
    return None


def has_answer_marker(line: str) -> bool:
    """True when the line carries an answer marker (start of line or 'label:')."""
    return (
        match_answer_line(line) is not None
        or ANSWER_COLON_PATTERN.search(line) is not None
    )


def is_explanation_start(line: str) -> bool:
    return EXPLANATION_PATTERN.match(line) is not None


def strip_explanation_anchor(line: str) -> str:
    return EXPLANATION_PATTERN.sub("", line, count=1).strip()


def strip_stem_prefix(text: str) -> str:
    return STEM_PREFIX_PATTERN.sub("", text, count=1).strip()


# ─── Watermarks ───────────────────────────────────────────────────────────────


@lru_cache(maxsize=32)
def watermark_pattern(tokens: tuple[str, ...]) -> Optional[re.Pattern]:
    """Case-insensitive alternation of the watermark tokens."""
    tokens = tuple(t for t in tokens if t and t.strip())
    if not tokens:
        return None
    return re.compile(
        "(?:" + "|".join(re.escape(t.strip()) for t in tokens) + ")",
        re.IGNORECASE,
    )


def contains_watermark(text: str, tokens: Sequence[str]) -> bool:
    pattern = watermark_pattern(tuple(tokens))
    return bool(pattern and pattern.search(text))


def is_watermark_only(line: str, tokens: Sequence[str]) -> bool:
    pattern = watermark_pattern(tuple(tokens))
    if pattern is None:
        return False
    return bool(line.strip()) and not pattern.sub("", line).strip()


def strip_watermarks(text: str, tokens: Sequence[str]) -> str:
    """Remove every inline occurrence, including ones revealed by a removal."""
    pattern = watermark_pattern(tuple(tokens))
    if pattern is None:
        return text
    inline = re.compile(r"[ \t]*" + pattern.pattern, re.IGNORECASE)
    previous = None
    while previous != text:
        previous = text
        text = inline.sub("", text)
    return text
