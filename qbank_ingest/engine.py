"""
Ingest Engine
=============
Main orchestrator that turns pasted exam text into validated question
records.

Usage:
    engine = IngestEngine(IngestConfig(ai_enabled=False))
    questions = engine.ingest(raw_text)
    # or engine.run(raw_text) for an IngestResult with the report

Architecture:
    raw text → normalize → segment → blocks → [heuristic | AI] per block
    (concurrently) → answer repair → ParsedQuestion → IngestReport
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .ai_parser import (
    DEFAULT_MODEL,
    AIBlockParser,
    GeminiExtractor,
    StructuredExtractor,
)
from .anchors import DEFAULT_WATERMARKS
from .models import (
    Difficulty,
    IngestResult,
    Language,
    ParseCandidate,
    ParsedQuestion,
    ParseTier,
    question_type_for,
)
from .normalizer import normalize
from .reconciler import is_consistent, reconcile
from .report import BlockOutcome, ReportBuilder
from .segmenter import segment
from .strategies import (
    AI_FIRST,
    HEURISTIC_FIRST,
    ParserStrategy,
    build_strategies,
    is_acceptable,
)

logger = logging.getLogger(__name__)

ARABIC_PATTERN = re.compile(
    r"[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]"
)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


@dataclass
class IngestConfig:
    """Configuration for the ingest engine."""

    # Cleanup
    watermarks: tuple[str, ...] = DEFAULT_WATERMARKS

    # Parser tiers
    strategy_order: tuple[str, ...] = HEURISTIC_FIRST
    ai_enabled: bool = True
    ai_model: str = DEFAULT_MODEL
    ai_api_key: Optional[str] = None
    ai_timeout_seconds: Optional[float] = 30.0
    ai_concurrency: int = 4

    # Whole-run budget; None waits for every block
    deadline_seconds: Optional[float] = None

    # Record defaults
    default_subject: str = "Cyber Security"
    default_difficulty: str = "medium"
    source: str = ""

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> IngestConfig:
        """
        Build a config from QBANK_* environment variables.

        QBANK_WATERMARKS is comma separated; QBANK_AI_FIRST=1 puts the AI
        tier first. Keyword overrides win over the environment.
        """
        env = os.environ
        values: dict = {}

        if env.get("QBANK_WATERMARKS"):
            values["watermarks"] = tuple(
                t.strip() for t in env["QBANK_WATERMARKS"].split(",") if t.strip()
            )
        if _env_flag(env.get("QBANK_AI_FIRST")):
            values["strategy_order"] = AI_FIRST
        if env.get("QBANK_AI_ENABLED") is not None:
            values["ai_enabled"] = _env_flag(env["QBANK_AI_ENABLED"])
        if env.get("QBANK_AI_MODEL"):
            values["ai_model"] = env["QBANK_AI_MODEL"]
        if env.get("QBANK_AI_TIMEOUT"):
            values["ai_timeout_seconds"] = float(env["QBANK_AI_TIMEOUT"])
        if env.get("QBANK_AI_CONCURRENCY"):
            values["ai_concurrency"] = int(env["QBANK_AI_CONCURRENCY"])
        if env.get("QBANK_DEADLINE"):
            values["deadline_seconds"] = float(env["QBANK_DEADLINE"])
        if env.get("QBANK_SUBJECT"):
            values["default_subject"] = env["QBANK_SUBJECT"]
        if env.get("QBANK_DIFFICULTY"):
            values["default_difficulty"] = env["QBANK_DIFFICULTY"]
        if env.get("QBANK_SOURCE"):
            values["source"] = env["QBANK_SOURCE"]
        if env.get("QBANK_LOG_LEVEL"):
            values["log_level"] = env["QBANK_LOG_LEVEL"]
        if env.get("QBANK_LOG_FILE"):
            values["log_file"] = env["QBANK_LOG_FILE"]

        known = {f.name for f in fields(cls)}
        values.update({k: v for k, v in overrides.items() if k in known})
        return cls(**values)


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def detect_language(texts: Sequence[str]) -> Language:
    """Arabic if any Arabic code point appears, else English."""
    for text in texts:
        if text and ARABIC_PATTERN.search(text):
            return Language.AR
    return Language.EN


class IngestEngine:
    """
    Main ingestion engine.

    Orchestrates the full pipeline:
        1. Normalization (junk and watermark removal)
        2. Segmentation (one block per question)
        3. Per-block parsing through the strategy chain
        4. Answer repair and record validation
        5. Run report

    Blocks are processed concurrently but records always come back in
    block order.
    """

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        extractor: Optional[StructuredExtractor] = None,
    ):
        """
        Args:
            config: Engine configuration.
            extractor: Structured-extraction service for the AI tier. When
                omitted and AI is enabled, a GeminiExtractor is built; if no
                API key is available the AI tier is disabled.
        """
        self.config = config or IngestConfig()
        self._setup_logging()
        self.extractor = extractor

        if self.extractor is None and self.config.ai_enabled:
            try:
                self.extractor = GeminiExtractor(
                    api_key=self.config.ai_api_key,
                    model=self.config.ai_model,
                )
            except ValueError as e:
                logger.warning(f"AI tier disabled: {e}")

        self.report_builder = ReportBuilder()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("qbank_ingest")
        package_logger.setLevel(log_level)

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

        # Console handler
        if not any(
            type(h) is logging.StreamHandler for h in package_logger.handlers
        ):
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(formatter)
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_path = Path(self.config.log_file).resolve()
            already = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path
                for h in package_logger.handlers
            )
            if not already:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)

    @property
    def ai_available(self) -> bool:
        return self.config.ai_enabled and self.extractor is not None

    # ─── Public API ───────────────────────────────────────────────────────────

    def ingest(self, raw_text: str) -> list[ParsedQuestion]:
        """
        Parse pasted text into question records.

        Raises:
            TypeError: If raw_text is not a string.
        """
        return asyncio.run(self.aingest(raw_text))

    async def aingest(self, raw_text: str) -> list[ParsedQuestion]:
        result = await self.arun(raw_text)
        return result.questions

    def run(self, raw_text: str) -> IngestResult:
        """Like ingest(), but also returns the run report."""
        return asyncio.run(self.arun(raw_text))

    async def arun(self, raw_text: str) -> IngestResult:
        if not isinstance(raw_text, str):
            raise TypeError(
                f"raw_text must be str, not {type(raw_text).__name__}"
            )

        logger.info(f"Starting ingest of {len(raw_text)} characters")

        text = normalize(raw_text, self.config.watermarks)
        blocks = segment(text)
        logger.info(f"Detected {len(blocks)} question blocks")

        strategies = self._build_strategies()
        outcomes, abandoned = await self._process_blocks(blocks, strategies)

        report = self.report_builder.build(len(blocks), outcomes, abandoned)
        questions = [
            o.question
            for o in sorted(outcomes, key=lambda o: o.index)
            if o.question is not None
        ]

        logger.info(f"Ingest complete: {len(questions)} questions")
        return IngestResult(
            engine_version=__version__,
            questions=questions,
            report=report,
        )

    # ─── Internals ────────────────────────────────────────────────────────────

    def _build_strategies(self) -> list[ParserStrategy]:
        # A fresh AI parser per run keeps its semaphore on the running loop.
        ai_parser = None
        if self.ai_available:
            ai_parser = AIBlockParser(
                self.extractor,
                timeout_seconds=self.config.ai_timeout_seconds,
                concurrency=self.config.ai_concurrency,
            )
        return build_strategies(
            self.config.strategy_order,
            self.config.watermarks,
            ai_parser,
        )

    async def _process_blocks(
        self,
        blocks: Sequence[str],
        strategies: Sequence[ParserStrategy],
    ) -> tuple[list[BlockOutcome], list[int]]:
        if not blocks:
            return [], []

        tasks = {
            asyncio.ensure_future(self._process_block(i, block, strategies)): i
            for i, block in enumerate(blocks)
        }
        done, pending = await asyncio.wait(
            tasks, timeout=self.config.deadline_seconds
        )

        abandoned = sorted(tasks[t] for t in pending)
        if pending:
            logger.warning(
                f"Deadline of {self.config.deadline_seconds}s reached; "
                f"abandoning {len(pending)} blocks"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        return [t.result() for t in done], abandoned

    async def _process_block(
        self,
        index: int,
        block: str,
        strategies: Sequence[ParserStrategy],
    ) -> BlockOutcome:
        try:
            for strategy in strategies:
                candidate = await strategy.parse(block)
                if is_acceptable(candidate, self.config.watermarks):
                    return self._build_record(index, block, candidate, strategy.tier)
                logger.debug(
                    f"Block {index}: {strategy.tier.value} tier gave no usable question"
                )
        except Exception:
            logger.exception(f"Block {index}: unexpected error, skipping")
            return BlockOutcome(index)

        logger.warning(f"Block {index}: no parser tier produced a question, skipping")
        return BlockOutcome(index)

    def _build_record(
        self,
        index: int,
        block: str,
        candidate: ParseCandidate,
        tier: ParseTier,
    ) -> BlockOutcome:
        answer = candidate.correct_answer
        repaired = False
        if not is_consistent(answer, candidate.options):
            derived = reconcile(block, candidate.options)
            if derived != answer:
                logger.info(
                    f"Block {index}: repaired answer {answer!r} -> {derived!r}"
                )
                repaired = True
            answer = derived

        try:
            question = ParsedQuestion(
                question_text=candidate.question_text,
                options=candidate.options,
                correct_answer=answer,
                question_type=question_type_for(answer),
                explanation=candidate.explanation,
                subject=self.config.default_subject,
                topic_tags=candidate.topic_tags,
                difficulty=candidate.difficulty or self._default_difficulty(),
                language=detect_language(
                    [candidate.question_text, *candidate.options]
                ),
                source=self.config.source,
                parse_tier=tier,
                block_index=index,
            )
        except ValidationError as e:
            logger.error(f"Block {index}: record failed validation, skipping: {e}")
            return BlockOutcome(index)

        return BlockOutcome(index, question, repaired)

    def _default_difficulty(self) -> Difficulty:
        try:
            return Difficulty(self.config.default_difficulty.strip().lower())
        except ValueError:
            logger.warning(
                f"Unknown default difficulty {self.config.default_difficulty!r}; "
                f"using medium"
            )
            return Difficulty.MEDIUM
