"""
Ingest Report
=============
Post-run summary of an ingestion:
    - Blocks Detected
    - Records Emitted
    - Skipped Blocks (no parser tier produced a usable question)
    - Abandoned Blocks (still running when the deadline hit)
    - Records per parser tier
    - Answers repaired after the AI tier
    - Records without a derivable answer

A count mismatch between blocks and records is never silent here: every
missing block index is listed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .models import IngestReport, ParsedQuestion, ParseTier, QuestionType

logger = logging.getLogger(__name__)


@dataclass
class BlockOutcome:
    """What happened to one block."""
    index: int
    question: Optional[ParsedQuestion] = None
    repaired: bool = False


class ReportBuilder:
    """
    Tallies block outcomes into an IngestReport.
    """

    def build(
        self,
        blocks_detected: int,
        outcomes: Sequence[BlockOutcome],
        abandoned: Sequence[int] = (),
    ) -> IngestReport:
        """
        Args:
            blocks_detected: Number of blocks the segmenter produced.
            outcomes: Outcomes of the blocks that finished, any order.
            abandoned: Indices of blocks cancelled at the deadline.

        Returns:
            IngestReport for the run.
        """
        report = IngestReport(
            blocks_detected=blocks_detected,
            abandoned_blocks=sorted(abandoned),
        )

        for outcome in sorted(outcomes, key=lambda o: o.index):
            q = outcome.question
            if q is None:
                report.skipped_blocks.append(outcome.index)
                continue

            report.records_emitted += 1
            if q.parse_tier == ParseTier.AI:
                report.ai_records += 1
            else:
                report.heuristic_records += 1

            if outcome.repaired:
                report.repaired_answers.append(outcome.index)
            if q.correct_answer is None:
                report.records_missing_answer.append(outcome.index)
            if q.question_type == QuestionType.MULTIPLE:
                report.multiple_answer_records += 1

        self._log(report)
        return report

    def _log(self, report: IngestReport):
        logger.info("=" * 60)
        logger.info("INGEST REPORT")
        logger.info("=" * 60)
        logger.info(f"Blocks Detected: {report.blocks_detected}")
        logger.info(
            f"Records Emitted: {report.records_emitted} "
            f"({report.success_rate}%)"
        )
        logger.info(
            f"By Tier: heuristic={report.heuristic_records} "
            f"ai={report.ai_records}"
        )
        logger.info(f"Skipped Blocks: {len(report.skipped_blocks)}")
        if report.abandoned_blocks:
            logger.warning(
                f"Abandoned Blocks (deadline): {len(report.abandoned_blocks)}"
            )
        logger.info(f"Repaired Answers: {len(report.repaired_answers)}")
        logger.info(
            f"Records Missing Answer: {len(report.records_missing_answer)}"
        )
        logger.info(f"Multiple-Answer Records: {report.multiple_answer_records}")
        logger.info("=" * 60)
