"""
Data Models
===========
Pydantic models for the ingestion pipeline.

ParsedQuestion is the single validation boundary of the pipeline: a record
whose answer is not drawn from its own options cannot be constructed.
All output models serialize to JSON with camelCase keys for the question
bank front end.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .anchors import strip_stem_prefix

Answer = Union[str, list[str]]


# ─── Enums ────────────────────────────────────────────────────────────────────


class QuestionType(str, Enum):
    """Single-answer or multiple-answer question."""
    SINGLE = "single"
    MULTIPLE = "multiple"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Language(str, Enum):
    EN = "en"
    AR = "ar"


class ParseTier(str, Enum):
    """Which parser produced a record."""
    HEURISTIC = "heuristic"
    AI = "ai"


# ─── Helpers ──────────────────────────────────────────────────────────────────


def collapse_answer(value) -> Optional[Answer]:
    """
    Canonical answer shape: None for nothing, a string for one value,
    a list only for two or more distinct values.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None

    values = list(dict.fromkeys(
        v.strip() for v in value if isinstance(v, str) and v.strip()
    ))
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return values


def answer_values(value: Optional[Answer]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def question_type_for(answer: Optional[Answer]) -> QuestionType:
    if isinstance(answer, list) and len(answer) > 1:
        return QuestionType.MULTIPLE
    return QuestionType.SINGLE


# ─── Parser Tier Output ───────────────────────────────────────────────────────


class ParseCandidate(BaseModel):
    """
    What a single parser tier extracted from one block, before the
    orchestrator repairs the answer and assigns metadata.
    """
    question_text: str = ""
    options: list[str] = Field(default_factory=list)
    correct_answer: Optional[Answer] = None
    explanation: str = ""
    difficulty: Optional[Difficulty] = None
    topic_tags: list[str] = Field(default_factory=list)

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _collapse(cls, value):
        return collapse_answer(value)

    @property
    def question_type(self) -> QuestionType:
        return question_type_for(self.correct_answer)


class ExtractedQuestion(BaseModel):
    """
    Response schema for the structured-extraction service.

    Kept flat and permissive: the answer is always a list, and enum-like
    fields are plain strings that are coerced later.
    """
    question_text: str = Field(
        default="",
        description=(
            "The question stem with numbering, 'Question N:' prefixes and "
            "watermark text removed."
        ),
    )
    options: list[str] = Field(
        default_factory=list,
        description="Option texts in order, without their A)/1. markers.",
    )
    correct_answers: list[str] = Field(
        default_factory=list,
        description=(
            "Correct answers, each copied verbatim from options. Letters and "
            "option numbers must be mapped to the option text."
        ),
    )
    explanation: str = Field(default="", description="Explanation, if given.")
    question_type: Optional[str] = Field(
        default=None, description="'single' or 'multiple'."
    )
    difficulty: Optional[str] = Field(
        default=None, description="'easy', 'medium' or 'hard'."
    )
    language: Optional[str] = Field(default=None, description="'ar' or 'en'.")
    topic_tags: list[str] = Field(
        default_factory=list, description="A few short topic tags."
    )

    @field_validator("options", "correct_answers", "topic_tags", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("question_text", "explanation", mode="before")
    @classmethod
    def _none_as_blank(cls, value):
        return "" if value is None else value

    def to_candidate(self) -> ParseCandidate:
        difficulty = None
        if self.difficulty and self.difficulty.strip().lower() in {
            d.value for d in Difficulty
        }:
            difficulty = Difficulty(self.difficulty.strip().lower())

        stem = " ".join(self.question_text.split())
        return ParseCandidate(
            question_text=strip_stem_prefix(stem),
            options=[o.strip() for o in self.options if o and o.strip()],
            correct_answer=self.correct_answers,
            explanation=self.explanation.strip(),
            difficulty=difficulty,
            topic_tags=[t.strip() for t in self.topic_tags if t and t.strip()],
        )


# ─── Output Record ────────────────────────────────────────────────────────────


class ParsedQuestion(BaseModel):
    """
    A fully parsed question record: the pipeline's output unit.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    question_text: str = Field(min_length=1)
    options: list[str] = Field(default_factory=list)
    correct_answer: Optional[Answer] = None
    question_type: QuestionType = QuestionType.SINGLE
    explanation: str = ""

    subject: str = ""
    chapter: Optional[str] = None
    topic_tags: list[str] = Field(default_factory=list)
    difficulty: Difficulty = Difficulty.MEDIUM
    language: Language = Language.EN
    source: str = ""
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    updated_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    parse_tier: ParseTier = ParseTier.HEURISTIC
    block_index: int = Field(default=0, ge=0)

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _collapse(cls, value):
        return collapse_answer(value)

    @model_validator(mode="after")
    def _check_answer_consistency(self) -> ParsedQuestion:
        if self.options:
            stray = [
                a for a in answer_values(self.correct_answer)
                if a not in self.options
            ]
            if stray:
                raise ValueError(
                    f"correct answer {stray!r} is not one of the options"
                )

        expected = question_type_for(self.correct_answer)
        if self.question_type != expected:
            raise ValueError(
                f"question type {self.question_type.value!r} does not match "
                f"answer arity (expected {expected.value!r})"
            )
        return self

    @computed_field
    @property
    def has_answer(self) -> bool:
        return self.correct_answer is not None


# ─── Run Report / Result ──────────────────────────────────────────────────────


class IngestReport(BaseModel):
    """Per-run summary: why fewer records than blocks may have come out."""
    blocks_detected: int = 0
    records_emitted: int = 0
    skipped_blocks: list[int] = Field(default_factory=list)
    abandoned_blocks: list[int] = Field(default_factory=list)
    heuristic_records: int = 0
    ai_records: int = 0
    repaired_answers: list[int] = Field(default_factory=list)
    records_missing_answer: list[int] = Field(default_factory=list)
    multiple_answer_records: int = 0

    @computed_field
    @property
    def success_rate(self) -> float:
        if self.blocks_detected == 0:
            return 0.0
        return round(self.records_emitted / self.blocks_detected * 100, 2)


class IngestResult(BaseModel):
    """
    Complete output of an ingestion run.
    """
    engine_version: str = "1.0.0"
    ingest_timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    questions: list[ParsedQuestion] = Field(default_factory=list)
    report: IngestReport = Field(default_factory=IngestReport)
