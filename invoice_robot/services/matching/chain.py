"""
Ordered fallback over project matchers.

Matchers are tried in list order until one returns a candidate. Each call is isolated:
an exception from one matcher is logged and counts as "no match" from that matcher,
so a broken AI backend never stops the heuristic result (or vice versa).
"""

from dataclasses import dataclass
from typing import Optional, Sequence
from loguru import logger
from .base import MatchResult, ProjectMatcher
from ...models import Project


@dataclass
class ChainMatch:
    """Winning match plus the tag of the matcher that produced it"""
    result: MatchResult
    method: str


class MatcherChain:

    def __init__(self, matchers: Sequence[ProjectMatcher]):
        self.matchers = list(matchers)

    def append(self, matcher: ProjectMatcher) -> None:
        self.matchers.append(matcher)

    def match(
        self,
        text: str,
        vendor: str | None,
        amount: float | None,
        projects: Sequence[Project],
        **context
    ) -> Optional[ChainMatch]:
        for matcher in self.matchers:
            try:
                result = matcher.match(text, vendor, amount, projects, **context)
            except Exception as e:
                logger.exception(
                    "{method} matcher failed: {error}",
                    method=matcher.method,
                    error=str(e),
                    invoice_number=context.get("invoice_number"),
                )
                continue

            if result is not None:
                logger.info(
                    "{method} matcher found a project",
                    method=matcher.method,
                    project_key=result.project_key,
                    confidence=result.confidence,
                )
                return ChainMatch(result=result, method=matcher.method)

        return None
