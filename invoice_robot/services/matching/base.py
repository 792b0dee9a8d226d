"""
Abstract base class for project matchers.

Every matcher answers the same question: which project does this invoice belong to?
Implementations are tried in order by the matcher chain, so adding a new strategy
means appending another ProjectMatcher to the list.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence
from pydantic import BaseModel, Field
from ...models import Project


class MatchResult(BaseModel):
    """A single project suggestion with its confidence and explanation"""
    project_key: int
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str


class ProjectMatcher(ABC):
    """
    Abstract base class for project matching.

    Implementations:
    - HeuristicProjectMatcher (deterministic scoring, no external calls)
    - AiProjectMatcher (Azure OpenAI chat completion)
    """

    #: Tag recorded on the invoice when this matcher produced the suggestion
    method: str = "Unknown"

    @abstractmethod
    def match(
        self,
        text: str,
        vendor: str | None,
        amount: float | None,
        projects: Sequence[Project],
        **context
    ) -> Optional[MatchResult]:
        """
        Match invoice text against the project catalog.

        Args:
            text: OCR text extracted from the invoice document
            vendor: Vendor name from the accounting system
            amount: Invoice total
            projects: Candidate projects
            **context: Extra invoice fields (invoice_number, invoice_date) for matchers
                that can use them

        Returns:
            MatchResult, or None when no candidate clears the matcher's bar.
            "No match" is never signalled with an exception.
        """
        pass
