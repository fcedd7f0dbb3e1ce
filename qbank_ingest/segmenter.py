"""
Block Segmenter
===============
Deterministic state machine that splits normalized exam text into one
block per question.

Three independent signals close a block:
    - an explicit question start ("Question 4", "Q4", "4.")
    - an answer marker line ("Answer: B"), which always ends its block
    - a blank line after an option list when the next line opens a new
      question or a new "A)" list, or is an unnumbered stem whose options
      follow directly

step() is a pure transition over an immutable SegmentBuffer; segment()
only drives it line by line, passing a short window of upcoming lines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence

from .anchors import (
    has_answer_marker,
    is_explanation_start,
    match_answer_line,
    match_option,
    match_question_start,
)

logger = logging.getLogger(__name__)

# Lines after the lookahead that step() may inspect.
LOOKAHEAD_WINDOW = 8


class SegmenterPhase(Enum):
    """Buffer phase."""
    ACCUMULATING = "accumulating"
    # Closed by an answer marker; only an explanation tail may still attach.
    FLUSHING = "flushing"


class LineKind(Enum):
    BLANK = "blank"
    QUESTION_START = "question_start"
    OPTION = "option"
    ANSWER = "answer"
    STEM = "stem"


@dataclass(frozen=True)
class SegmentBuffer:
    """Lines of the block being built plus the flags the transitions need."""
    lines: tuple[str, ...] = ()
    has_options: bool = False
    last_stem_line: Optional[str] = None
    last_option_number: Optional[int] = None
    phase: SegmenterPhase = SegmenterPhase.ACCUMULATING
    in_explanation: bool = False
    # "Answer:" alone on its line; the key is on the next one.
    awaiting_payload: bool = False

    @property
    def is_empty(self) -> bool:
        return not any(line.strip() for line in self.lines)

    @property
    def has_stem(self) -> bool:
        return self.last_stem_line is not None

    def text(self) -> str:
        return "\n".join(self.lines).strip()

    def append(self, line: str, kind: LineKind) -> SegmentBuffer:
        buffer = replace(self, lines=self.lines + (line,))

        if kind in (LineKind.QUESTION_START, LineKind.STEM):
            buffer = replace(buffer, last_stem_line=line.strip())
        elif kind is LineKind.OPTION:
            option = match_option(line)
            buffer = replace(
                buffer,
                has_options=True,
                last_option_number=option.number if option else None,
            )
        elif kind is LineKind.ANSWER:
            buffer = replace(
                buffer,
                phase=SegmenterPhase.FLUSHING,
                awaiting_payload=match_answer_line(line) == "",
            )
        return buffer


@dataclass(frozen=True)
class Step:
    """Result of feeding one line to the state machine."""
    buffer: SegmentBuffer
    emitted: tuple[str, ...] = ()


# ─── Line Classification ──────────────────────────────────────────────────────


def is_question_start(line: str, buffer: SegmentBuffer) -> bool:
    """
    Whether the line opens a new question in the context of the buffer.

    "Question N" and "QN" always start a question. A bare "N." is read as
    a numbered option instead when it is the first choice under a stem,
    or when it continues the buffer's numbered option run.
    """
    match = match_question_start(line)
    if not match:
        return False
    if match.group("explicit"):
        return True

    number = int(match.group("bare"))
    if number == 1 and buffer.has_stem and not buffer.has_options:
        return False
    if (
        buffer.last_option_number is not None
        and number == buffer.last_option_number + 1
    ):
        return False
    return True


def classify(line: str, buffer: SegmentBuffer) -> LineKind:
    if not line.strip():
        return LineKind.BLANK
    if has_answer_marker(line):
        return LineKind.ANSWER
    if is_question_start(line, buffer):
        return LineKind.QUESTION_START
    if match_option(line):
        return LineKind.OPTION
    return LineKind.STEM


def _opens_new_question(line: Optional[str], buffer: SegmentBuffer) -> bool:
    """Lookahead test for the blank-line close: a new start or a new 'A)' list."""
    if line is None or not line.strip():
        return False
    if is_question_start(line, buffer):
        return True
    option = match_option(line)
    return option is not None and option.is_first_letter


def _stem_then_options(
    lookahead: Optional[str], upcoming: Sequence[str]
) -> bool:
    """
    Lookahead test for an unnumbered question: a stem line followed by an
    'A)' list before any blank line or answer marker.
    """
    if lookahead is None or not lookahead.strip():
        return False
    if match_option(lookahead) or has_answer_marker(lookahead):
        return False

    for line in upcoming:
        if not line.strip() or has_answer_marker(line):
            return False
        option = match_option(line)
        if option is not None:
            return option.is_first_letter or option.number == 1
    return False


def _emit(buffer: SegmentBuffer) -> tuple[str, ...]:
    text = buffer.text()
    return (text,) if text else ()


# ─── Transitions ──────────────────────────────────────────────────────────────


def step(
    buffer: SegmentBuffer,
    line: str,
    lookahead: Optional[str],
    upcoming: Sequence[str] = (),
) -> Step:
    """
    Feed one line; return the next buffer and any completed blocks.

    lookahead is the next line (None at the end of the text); upcoming
    holds the lines after it.
    """
    if buffer.phase is SegmenterPhase.FLUSHING:
        return _step_closed(buffer, line, lookahead, upcoming)
    return _step_open(buffer, line, lookahead, upcoming)


def _step_open(
    buffer: SegmentBuffer,
    line: str,
    lookahead: Optional[str],
    upcoming: Sequence[str] = (),
) -> Step:
    kind = classify(line, buffer)

    if kind is LineKind.BLANK:
        if buffer.is_empty:
            return Step(buffer)
        if buffer.has_options and (
            _opens_new_question(lookahead, buffer)
            or _stem_then_options(lookahead, upcoming)
        ):
            # Heuristic close; the blank itself is dropped.
            return Step(SegmentBuffer(), _emit(buffer))
        return Step(buffer.append(line, kind))

    starts = kind is LineKind.QUESTION_START or (
        kind is LineKind.ANSWER and is_question_start(line, buffer)
    )

    emitted: tuple[str, ...] = ()
    if starts and not buffer.is_empty:
        emitted = _emit(buffer)
        buffer = SegmentBuffer()

    return Step(buffer.append(line, kind), emitted)


def _step_closed(
    buffer: SegmentBuffer,
    line: str,
    lookahead: Optional[str],
    upcoming: Sequence[str],
) -> Step:
    fresh = SegmentBuffer()

    if not line.strip():
        if not buffer.in_explanation:
            return Step(buffer)
        if (
            lookahead is None
            or _ends_explanation(lookahead)
            or _stem_then_options(lookahead, upcoming)
        ):
            return Step(fresh, _emit(buffer))
        return Step(replace(buffer, lines=buffer.lines + (line,)))

    if buffer.awaiting_payload and not _ends_explanation(line):
        return Step(
            replace(buffer, lines=buffer.lines + (line,), awaiting_payload=False)
        )

    if not buffer.in_explanation and is_explanation_start(line):
        return Step(
            replace(buffer, lines=buffer.lines + (line,), in_explanation=True)
        )

    if buffer.in_explanation and not _ends_explanation(line):
        return Step(replace(buffer, lines=buffer.lines + (line,)))

    # Anything else belongs to the next question.
    opened = _step_open(fresh, line, lookahead, upcoming)
    return Step(opened.buffer, _emit(buffer) + opened.emitted)


def _ends_explanation(line: str) -> bool:
    if not line.strip():
        return False
    if has_answer_marker(line) or is_explanation_start(line):
        return True
    if is_question_start(line, SegmentBuffer()):
        return True
    option = match_option(line)
    return option is not None and option.is_first_letter


# ─── Driver ───────────────────────────────────────────────────────────────────


class BlockSegmenter:
    """
    Splits normalized text into ordered, non-empty question blocks.
    """

    def segment(self, text: str) -> list[str]:
        lines = text.split("\n")
        blocks: list[str] = []
        buffer = SegmentBuffer()

        for idx, line in enumerate(lines):
            lookahead = lines[idx + 1] if idx + 1 < len(lines) else None
            upcoming = lines[idx + 2 : idx + 2 + LOOKAHEAD_WINDOW]
            result = step(buffer, line, lookahead, upcoming)
            blocks.extend(result.emitted)
            buffer = result.buffer

        blocks.extend(_emit(buffer))

        logger.debug(f"Segmented {len(lines)} lines into {len(blocks)} blocks")
        return blocks


def segment(text: str) -> list[str]:
    """Split normalized text into question blocks, in document order."""
    return BlockSegmenter().segment(text)
