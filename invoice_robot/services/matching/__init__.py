from .base import MatchResult, ProjectMatcher
from .heuristic import HeuristicProjectMatcher
from .ai_matcher import AiProjectMatcher
from .chain import ChainMatch, MatcherChain

__all__ = [
    "MatchResult",
    "ProjectMatcher",
    "HeuristicProjectMatcher",
    "AiProjectMatcher",
    "ChainMatch",
    "MatcherChain",
]
