"""
Answer Reconciler
=================
Turns the raw answer payload of a block ("B", "A and C", "3", the option
text itself, or free text) into values taken verbatim from the option list.

Used by the heuristic parser as its answer extractor, and by the engine as
a repair pass over answers claimed by the AI tier.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Optional, Sequence

from .anchors import (
    ANSWER_INLINE_PATTERN,
    is_explanation_start,
    match_answer_line,
    match_option,
)
from .models import Answer, answer_values, collapse_answer

logger = logging.getLogger(__name__)

_CONNECTOR = r"\s*(?:,|&|/|\band\b|\bor\b|\s)\s*"

# "B", "a & c", "A, C and D"
LETTERS_PATTERN = re.compile(
    r"^[A-Ha-h](?:" + _CONNECTOR + r"[A-Ha-h])*$", re.IGNORECASE
)
# "ACD" (uppercase only, no separators)
COMPACT_LETTERS_PATTERN = re.compile(r"^[A-H]{2,}$")
# "3", "2 and 4", "1, 3"
NUMBERS_PATTERN = re.compile(
    r"^(?:10|[1-9])(?:" + _CONNECTOR + r"(?:10|[1-9]))*$", re.IGNORECASE
)

LETTER_TOKEN = re.compile(r"\b[A-Ha-h]\b")
NUMBER_TOKEN = re.compile(r"\b(?:10|[1-9])\b")

# Shorter free-text tokens ("Z") only match an option exactly.
MIN_CONTAINMENT_LENGTH = 2

FREE_TEXT_SPLIT = re.compile(r"\s*(?:[,;/]|\band\b|\bor\b)\s*", re.IGNORECASE)

_BRACKETS = re.compile(r"[()\[\]{}]")
_OPTION_WORD = re.compile(r"\boptions?\b", re.IGNORECASE)
_LEADING_VERB = re.compile(r"^\s*(?:is|are)\b\s*[:\-]?\s*", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[\s.;,:!?]+$")
_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


# ─── Payload Location ─────────────────────────────────────────────────────────


def _split_explanation(lines: list[str]) -> tuple[list[str], list[str]]:
    for idx, line in enumerate(lines):
        if is_explanation_start(line):
            return lines[:idx], lines[idx:]
    return lines, []


def _full_line_payload(lines: list[str]) -> Optional[str]:
    for idx, line in enumerate(lines):
        payload = match_answer_line(line)
        if payload is None:
            continue
        if payload:
            return payload
        # "Answer:" on its own line; the key follows.
        for following in lines[idx + 1:]:
            if following:
                return following
    return None


def _inline_payload(lines: list[str]) -> Optional[str]:
    for line in lines:
        if line.endswith(("?", "؟")) or match_option(line):
            continue
        match = ANSWER_INLINE_PATTERN.search(line)
        if match:
            return match.group("payload").strip()
    return None


def locate_answer_payload(block: str) -> Optional[str]:
    """
    Find the raw answer payload in a block.

    Full-line matches ("Answer: B") win over inline ones ("... the correct
    answer is B"); an explanation tail is only searched when the rest of the
    block has no answer at all.
    """
    lines = [line.strip() for line in block.split("\n")]
    body, tail = _split_explanation(lines)

    for scope in (body, tail):
        payload = _full_line_payload(scope) or _inline_payload(scope)
        if payload:
            return payload
    return None


def clean_payload(payload: str) -> str:
    text = _BRACKETS.sub(" ", payload)
    text = _OPTION_WORD.sub(" ", text)
    text = _LEADING_VERB.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return _TRAILING_PUNCT.sub("", text)


# ─── Matching ─────────────────────────────────────────────────────────────────


def normalize_for_match(text: str) -> str:
    """Case-fold, NFKC, keep only letters/digits/whitespace, collapse spaces."""
    text = unicodedata.normalize("NFKC", text).casefold()
    text = _NON_WORD.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def _find_exact(target: str, options: Sequence[str]) -> Optional[str]:
    if not target:
        return None
    for option in options:
        if normalize_for_match(option) == target:
            return option
    return None


def _find_containing(target: str, options: Sequence[str]) -> Optional[str]:
    """First option (in list order) containing the target or contained in it."""
    if len(target) < MIN_CONTAINMENT_LENGTH:
        return None
    for option in options:
        normalized = normalize_for_match(option)
        if normalized and (target in normalized or normalized in target):
            return option
    return None


def _map_letters(letters: Sequence[str], options: Sequence[str]) -> list[str]:
    mapped = []
    for letter in letters:
        index = ord(letter.upper()) - ord("A")
        if 0 <= index < len(options):
            mapped.append(options[index])
    return mapped


def _map_numbers(numbers: Sequence[int], options: Sequence[str]) -> list[str]:
    # Numeric answer choices ("2", "4", "8"): the number is the option text.
    if options and all(str(n) in options for n in numbers):
        return [str(n) for n in numbers]

    mapped = []
    for number in numbers:
        if 1 <= number <= len(options):
            mapped.append(options[number - 1])
    return mapped


def _map_free_text(payload: str, options: Sequence[str]) -> list[str]:
    whole = _find_exact(normalize_for_match(payload), options)
    if whole is not None:
        return [whole]

    mapped = []
    for token in FREE_TEXT_SPLIT.split(payload):
        target = normalize_for_match(token)
        match = _find_exact(target, options) or _find_containing(target, options)
        if match is not None:
            mapped.append(match)

    if not mapped:
        match = _find_containing(normalize_for_match(payload), options)
        if match is not None:
            mapped.append(match)
    return mapped


# ─── Public API ───────────────────────────────────────────────────────────────


def reconcile(block: str, options: Sequence[str]) -> Optional[Answer]:
    """
    Derive the correct answer(s) of a block from its raw text.

    Args:
        block: Raw block text, answer line included.
        options: Option texts in appearance order.

    Returns:
        None when no answer can be derived, the option text for a single
        answer, or a list of option texts for several. With a non-empty
        options list every returned value is an element of it. Without
        options, a free-text payload is returned as written.
    """
    raw = locate_answer_payload(block)
    if raw is None:
        return None

    payload = clean_payload(raw)
    if not payload:
        return None

    options = list(options)
    compact = _WHITESPACE.sub("", payload)

    if LETTERS_PATTERN.match(payload):
        kind = "letters"
        mapped = _map_letters(LETTER_TOKEN.findall(payload), options)
    elif COMPACT_LETTERS_PATTERN.match(compact):
        kind = "letters"
        mapped = _map_letters(list(compact), options)
    elif NUMBERS_PATTERN.match(payload):
        kind = "numbers"
        numbers = [int(n) for n in NUMBER_TOKEN.findall(payload)]
        mapped = _map_numbers(numbers, options)
    else:
        kind = "text"
        if not options:
            return payload
        mapped = _map_free_text(payload, options)

    answer = collapse_answer(mapped)
    if answer is None:
        logger.debug(f"Answer payload {raw!r} ({kind}) matched no option")
    return answer


def is_consistent(answer: Optional[Answer], options: Sequence[str]) -> bool:
    """True when an answer is present and drawn verbatim from the options."""
    values = answer_values(answer)
    if not values:
        return False
    if not options:
        return True
    return all(value in options for value in values)
