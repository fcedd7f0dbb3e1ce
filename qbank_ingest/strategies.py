"""
Parser Strategies
=================
The fallback chain as data: an ordered list of parser tiers, each returning
a ParseCandidate or None. The engine tries them in order and keeps the
first acceptable candidate.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from .ai_parser import AIBlockParser
from .anchors import DEFAULT_WATERMARKS, contains_watermark
from .heuristic import parse_heuristic
from .models import ParseCandidate, ParseTier

logger = logging.getLogger(__name__)

HEURISTIC = "heuristic"
AI = "ai"
HEURISTIC_FIRST: tuple[str, ...] = (HEURISTIC, AI)
AI_FIRST: tuple[str, ...] = (AI, HEURISTIC)


class ParserStrategy(Protocol):
    tier: ParseTier

    async def parse(self, block: str) -> Optional[ParseCandidate]:
        ...


class HeuristicStrategy:
    tier = ParseTier.HEURISTIC

    def __init__(self, watermarks: Sequence[str] = DEFAULT_WATERMARKS):
        self.watermarks = tuple(watermarks)

    async def parse(self, block: str) -> Optional[ParseCandidate]:
        return parse_heuristic(block, self.watermarks)


class AIStrategy:
    tier = ParseTier.AI

    def __init__(self, parser: AIBlockParser):
        self.parser = parser

    async def parse(self, block: str) -> Optional[ParseCandidate]:
        return await self.parser.parse(block)


def is_acceptable(
    candidate: Optional[ParseCandidate],
    watermarks: Sequence[str] = DEFAULT_WATERMARKS,
) -> bool:
    """A candidate counts as a success only with a clean, non-empty stem."""
    if candidate is None:
        return False
    stem = candidate.question_text.strip()
    return bool(stem) and not contains_watermark(stem, watermarks)


def build_strategies(
    order: Sequence[str],
    watermarks: Sequence[str] = DEFAULT_WATERMARKS,
    ai_parser: Optional[AIBlockParser] = None,
) -> list[ParserStrategy]:
    """
    Build the strategy chain for a tier order such as ("heuristic", "ai").

    The AI tier is left out when no AI parser is available.

    Raises:
        ValueError: On an unknown tier name.
    """
    strategies: list[ParserStrategy] = []
    for name in order:
        if name == HEURISTIC:
            strategies.append(HeuristicStrategy(watermarks))
        elif name == AI:
            if ai_parser is None:
                logger.debug("AI tier requested but not available; skipping")
                continue
            strategies.append(AIStrategy(ai_parser))
        else:
            raise ValueError(f"Unknown parser tier: {name!r}")
    return strategies
