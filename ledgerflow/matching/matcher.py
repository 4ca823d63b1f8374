"""
Account/Project Matcher

Links a transaction to the project account it belongs to.

DESIGN DECISION: Exact identifier equality only.
A transaction is linked to a project when its project_id equals the
project's project_id, character for character. No trimming beyond what
the normalizer already did, no case folding, no substring or fuzzy
matching. A near-miss is left unlinked rather than silently attached to
the wrong project; spending reports are built on these links.

The rule lives behind MatchStrategy so a different policy can be
plugged in without touching callers.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Union

import structlog

from ledgerflow.models.records import (
    Candidate,
    ProjectAccount,
    ProjectSummary,
)


logger = structlog.get_logger(__name__)


class MatchStrategy(ABC):
    """Decides whether a transaction belongs to a project."""

    @abstractmethod
    def matches(self, transaction: Candidate, project: ProjectAccount) -> bool:
        pass


class ExactIdentifierStrategy(MatchStrategy):
    """Linked iff project identifiers are exactly equal."""

    def matches(self, transaction: Candidate, project: ProjectAccount) -> bool:
        return (
            transaction.project_id is not None
            and transaction.project_id == project.project_id
        )


class ProjectMatcher:
    """
    Resolves project links for transactions.

    Usage:
        matcher = ProjectMatcher()
        project = matcher.match(transaction, projects)
    """

    def __init__(self, strategy: Optional[MatchStrategy] = None):
        self._strategy = strategy or ExactIdentifierStrategy()

    def match(
        self,
        transaction: Candidate,
        projects: list[ProjectAccount],
    ) -> Optional[ProjectAccount]:
        """
        Find the single project this transaction belongs to.

        Returns None when the transaction carries no identifier, when
        nothing matches, or when more than one project matches.
        """
        if transaction.project_id is None:
            return None

        found = [p for p in projects if self._strategy.matches(transaction, p)]
        if len(found) > 1:
            logger.warning(
                "ambiguous_project_match",
                project_id=transaction.project_id,
                candidates=len(found),
            )
            return None
        return found[0] if found else None

    def link(
        self,
        transaction: Candidate,
        projects: list[ProjectAccount],
    ) -> dict[str, Union[str, None]]:
        """
        Fields to store alongside the transaction for its project link.

        An unmatched identifier is kept as entered; only project_name is
        derived from the match. Without a match project_name is None so
        that an update clears a stale link.
        """
        project = self.match(transaction, projects)
        if project is None:
            if transaction.project_id is not None:
                logger.info("project_unlinked", project_id=transaction.project_id)
            return {"project_name": None}
        return {"project_name": project.name}

    def linked(
        self,
        project: ProjectAccount,
        transactions: list[Candidate],
    ) -> list[Candidate]:
        """Transactions linked to `project` under the current strategy."""
        return [t for t in transactions if self._strategy.matches(t, project)]

    def project_spent(
        self,
        project: ProjectAccount,
        transactions: list[Candidate],
    ) -> Decimal:
        """Total expense of the transactions linked to a project."""
        return sum((t.expense for t in self.linked(project, transactions)), Decimal("0"))

    def summarize(
        self,
        project: ProjectAccount,
        transactions: list[Candidate],
    ) -> ProjectSummary:
        linked = self.linked(project, transactions)
        return ProjectSummary(
            project=project,
            transaction_count=len(linked),
            spent=sum((t.expense for t in linked), Decimal("0")),
            received=sum((t.income for t in linked), Decimal("0")),
        )
