"""Project matching package."""

from ledgerflow.matching.matcher import (
    ExactIdentifierStrategy,
    MatchStrategy,
    ProjectMatcher,
)

__all__ = ["ExactIdentifierStrategy", "MatchStrategy", "ProjectMatcher"]
