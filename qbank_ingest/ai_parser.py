"""
AI-Assisted Block Parser
========================
Fallback tier that hands a single block to a structured-extraction service.

The service is any object with an async ``extract(block)`` method returning
an ExtractedQuestion (or None). GeminiExtractor is the default, built on the
google-genai SDK in JSON response mode.

AIBlockParser never raises on service failures: timeouts, transport errors,
malformed JSON and schema violations all become None so one bad block
cannot stop the rest of the document.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Optional, Protocol

from google import genai
from google.genai import types

from .models import ExtractedQuestion, ParseCandidate

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"

EXTRACTION_PROMPT = """You parse exactly ONE exam question out of a block of pasted text.
The text may be English or Arabic and may contain numbering, watermark
junk (for example "CertyIQ") and an answer line.

Return a single JSON object (never a list) with these fields:
- question_text: the question stem only. Remove numbering and prefixes such
  as "Question 3:", "Q3)", "3." and any watermark text. Do not include the
  options or the answer line.
- options: the option texts in order, without their "A)", "B.", "1)" markers.
- correct_answers: the correct answer(s). Each entry MUST be copied
  character for character from options.
- explanation: the explanation text if one is given, else "".
- question_type: "multiple" if more than one answer is correct, else "single".
- difficulty: "easy", "medium" or "hard".
- language: "ar" if the question is in Arabic, else "en".
- topic_tags: two to four short topic tags.

Before answering, check your answer mapping:
- A letter answer ("Answer: B") means the option at that alphabetical
  position (A = first option). "AC", "A and C", "A, C" or "A/C" mean
  several letters.
- A number answer ("Answer: 3") means the option at that position,
  counting from 1.
- A text answer must be matched to the option it repeats.
- If no answer is given, return an empty correct_answers list.
- If the block contains no question at all, return an empty question_text.

Block:
---
{block}
---"""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class StructuredExtractor(Protocol):
    """Anything that can turn one block of text into an ExtractedQuestion."""

    async def extract(self, block: str) -> Optional[ExtractedQuestion]:
        ...


def build_prompt(block: str) -> str:
    return EXTRACTION_PROMPT.format(block=block.strip())


def parse_extraction(raw: str) -> Optional[ExtractedQuestion]:
    """
    Parse a JSON response into an ExtractedQuestion.

    A list response is tolerated by taking its first object; an empty
    response or empty list means "no question". Malformed JSON raises
    ValueError, as do schema violations
    (pydantic.ValidationError subclasses it).
    """
    text = _CODE_FENCE.sub("", raw.strip()).strip()
    if not text:
        return None

    data = json.loads(text)
    if isinstance(data, list):
        if not data:
            return None
        data = data[0]
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return ExtractedQuestion.model_validate(data)


class GeminiExtractor:
    """Structured extraction through the Gemini API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.1,
    ):
        """
        Args:
            api_key: Gemini API key. If not provided, reads GEMINI_API_KEY.
            model: Model name.
            temperature: Sampling temperature.

        Raises:
            ValueError: If no API key is available.
        """
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Gemini API key required. Set GEMINI_API_KEY environment "
                "variable or pass api_key."
            )

        self.client = genai.Client(api_key=self.api_key)
        self.model_name = model
        self.temperature = temperature

    async def extract(self, block: str) -> Optional[ExtractedQuestion]:
        response = await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=build_prompt(block),
            config=types.GenerateContentConfig(
                temperature=self.temperature,
                response_mime_type="application/json",
            ),
        )
        return parse_extraction(response.text or "")


class AIBlockParser:
    """
    Wraps a StructuredExtractor with a timeout, a concurrency limit and
    failure-to-None conversion.
    """

    def __init__(
        self,
        extractor: StructuredExtractor,
        timeout_seconds: Optional[float] = 30.0,
        concurrency: int = 4,
    ):
        self.extractor = extractor
        self.timeout_seconds = timeout_seconds
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    async def parse(self, block: str) -> Optional[ParseCandidate]:
        try:
            async with self._semaphore:
                extracted = await asyncio.wait_for(
                    self.extractor.extract(block),
                    timeout=self.timeout_seconds,
                )
        except asyncio.TimeoutError:
            logger.warning(
                f"AI extraction timed out after {self.timeout_seconds}s"
            )
            return None
        except ValueError as e:
            logger.warning(f"AI extraction returned an unusable response: {e}")
            return None
        except Exception as e:
            logger.warning(f"AI extraction failed: {e}")
            return None

        if extracted is None or not extracted.question_text.strip():
            logger.debug("AI extraction returned no question")
            return None

        return extracted.to_candidate()
