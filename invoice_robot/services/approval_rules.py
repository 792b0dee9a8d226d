"""
Business rules for routing a project match.

Decides whether a suggestion is strong enough to be pushed to the accounting
system automatically or has to go through a human approval request.
"""

from enum import Enum
from typing import Any, Dict
from loguru import logger
from pydantic import BaseModel, Field


class MatchRoute(str, Enum):
    AUTO_MATCH = "auto_match"
    REQUIRE_APPROVAL = "require_approval"


class RoutingDecision(BaseModel):
    """Result of a routing decision with explanation"""
    route: MatchRoute
    reason: str
    metadata: Dict[str, Any] = {}

    @property
    def auto_match(self) -> bool:
        return self.route is MatchRoute.AUTO_MATCH


class ApprovalRulesConfig(BaseModel):
    """Configuration for routing rules (loaded from environment)"""
    auto_match_threshold: float = Field(0.9, ge=0.0, le=1.0)


class InvoiceApprovalRules:
    """
    Confidence-threshold policy for project matches.

    The threshold is inclusive: a confidence equal to ``auto_match_threshold`` is
    auto-matched. It is a policy value (AUTO_MATCH_THRESHOLD), not an algorithm constant.
    """

    def __init__(self, config: ApprovalRulesConfig = None):
        self.config = config or ApprovalRulesConfig()

    def evaluate(self, confidence: float, method: str | None = None, **kwargs) -> RoutingDecision:
        """
        Decide how a suggestion with the given confidence is handled.

        Args:
            confidence: Matcher confidence (0-1)
            method: Matcher tag ("Heuristic" / "AI"), informational
            **kwargs: Additional fields for future rule extensions

        Returns:
            RoutingDecision with the route and a human-readable reason
        """
        threshold = self.config.auto_match_threshold

        if confidence >= threshold:
            route = MatchRoute.AUTO_MATCH
            reason = f"Auto-matched: {confidence:.1%} confidence >= {threshold:.1%}"
        else:
            route = MatchRoute.REQUIRE_APPROVAL
            reason = f"Requires approval: {confidence:.1%} confidence below {threshold:.1%}"

        logger.info(
            "Match routing decision",
            route=route.value,
            confidence=confidence,
            threshold=threshold,
            method=method,
        )

        return RoutingDecision(
            route=route,
            reason=reason,
            metadata={
                "confidence": confidence,
                "method": method,
                "config": self.config.model_dump(),
            },
        )


def create_approval_rules(auto_match_threshold: float = None) -> InvoiceApprovalRules:
    """
    Factory function to create routing rules with optional overrides.

    Uses environment variables as defaults, can be overridden per request.
    """
    from ..core.config import settings

    config = ApprovalRulesConfig(
        auto_match_threshold=auto_match_threshold
        if auto_match_threshold is not None
        else getattr(settings, "auto_match_threshold", 0.9)
    )
    return InvoiceApprovalRules(config)
