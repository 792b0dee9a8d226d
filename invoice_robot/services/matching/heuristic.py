"""
Rule-based project matching.

Scores every active project from three independent signals found in the OCR text:

1. Project code as a whole word            +1.0
2. Address segment (or a significant word)  +0.7, at most once per project
3. Each significant project-name word      +0.5

The signals are summed and only the winning score is clamped to 1.0. The result is an
evidence score, not a probability: several name-word hits alone can cross the
auto-match threshold.
"""

import re
from typing import Optional, Sequence
from loguru import logger
from .base import MatchResult, ProjectMatcher
from ...models import Project

CODE_SCORE = 1.0
ADDRESS_SCORE = 0.7
NAME_WORD_SCORE = 0.5

MIN_ADDRESS_SEGMENT_LENGTH = 5
MIN_ADDRESS_WORD_LENGTH = 5
MIN_NAME_WORD_LENGTH = 4


def contains_word(text: str, word: str) -> bool:
    """Case-insensitive whole-word search ("PRJ-001" does not match "PRJ-0011")"""
    if not word:
        return False
    return re.search(rf"\b{re.escape(word)}\b", text, re.IGNORECASE) is not None


def _address_match(text: str, address: str) -> Optional[str]:
    """Return the first address segment that matches the text, if any."""
    segments = [s.strip() for s in re.split(r"[,;]", address)]

    for segment in segments:
        # Whole segment as a plain substring
        if len(segment) > MIN_ADDRESS_SEGMENT_LENGTH and segment.lower() in text:
            return segment

        # Otherwise any significant word of the segment
        for word in segment.split():
            if len(word) > MIN_ADDRESS_WORD_LENGTH and contains_word(text, word):
                return segment

    return None


def score_project(text: str, project: Project) -> tuple[float, list[str]]:
    """
    Score a single project against lower-cased OCR text.

    Returns:
        (unclamped score, reasons in signal order)
    """
    score = 0.0
    reasons = []

    if contains_word(text, project.project_code.lower()):
        score += CODE_SCORE
        reasons.append(f"Project code '{project.project_code}' found in text")

    if project.address:
        segment = _address_match(text, project.address)
        if segment is not None:
            score += ADDRESS_SCORE
            reasons.append(f"Address '{segment}' found in text")

    for part in project.name.split():
        if len(part) > MIN_NAME_WORD_LENGTH and contains_word(text, part.lower()):
            score += NAME_WORD_SCORE
            reasons.append(f"Project name part '{part}' found in text")

    return score, reasons


class HeuristicProjectMatcher(ProjectMatcher):
    """Deterministic matcher; identical input always yields identical output."""

    method = "Heuristic"

    def match(
        self,
        text: str,
        vendor: str | None,
        amount: float | None,
        projects: Sequence[Project],
        **context
    ) -> Optional[MatchResult]:
        invoice_number = context.get("invoice_number")

        if not text:
            logger.warning("OCR text missing, heuristic matching skipped", invoice_number=invoice_number)
            return None

        lowered = text.lower()
        best: tuple[float, list[str], Project] | None = None

        for project in projects:
            if not project.is_active:
                continue

            score, reasons = score_project(lowered, project)
            # Strict comparison keeps the first project in catalog order on ties
            if score > 0 and (best is None or score > best[0]):
                best = (score, reasons, project)

        if best is None:
            logger.info("No heuristic match", invoice_number=invoice_number)
            return None

        score, reasons, project = best
        result = MatchResult(
            project_key=project.netvisor_project_key,
            confidence=min(score, 1.0),
            reasoning="; ".join(reasons),
        )

        logger.info(
            "Heuristic match",
            invoice_number=invoice_number,
            project_key=result.project_key,
            raw_score=score,
            confidence=result.confidence,
        )
        return result
