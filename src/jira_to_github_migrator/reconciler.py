"""Resolution of imports left pending by a previous run."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests
from github import GithubException

from .issue_builder import build_title, find_pull_requests

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .importer import ImportEngine
    from .mapping_store import MappingStore
    from .models import SourceIssue
    from .protocols import Destination

logger: logging.Logger = logging.getLogger(__name__)


class PendingReconciler:
    """Confirms pending imports, then links their pull requests and fixes their close reason.

    Never submits an import: it only settles the fate of imports GitHub accepted earlier.
    """

    def __init__(
        self,
        destination: Destination,
        store: MappingStore,
        engine: ImportEngine,
        *,
        link_pull_requests: bool = True,
    ) -> None:
        self.destination: Destination = destination
        self.store: MappingStore = store
        self.engine: ImportEngine = engine
        self.link_pull_requests: bool = link_pull_requests

    def reconcile(self, issues: Iterable[SourceIssue]) -> tuple[list[str], list[str]]:
        """Process every issue whose key is pending.

        Returns:
            Keys promoted to completed, and keys still pending
        """
        promoted: list[str] = []
        still_pending: list[str] = []
        pending_issues = [issue for issue in issues if self.store.pending_number(issue.key) is not None]
        if not pending_issues:
            return promoted, still_pending

        logger.info(f"Checking status of {len(pending_issues)} pending issues from previous run")
        for issue in pending_issues:
            issue_number = self.store.pending_number(issue.key)
            assert issue_number is not None  # filtered above
            if self._issue_exists(issue_number):
                if self.link_pull_requests:
                    logger.info(f"Linking pull requests of GitHub issue {issue_number}")
                    self.engine.link_pull_requests(issue_number, build_title(issue), find_pull_requests(issue))
                self.engine.apply_close_reason(issue, issue_number)
                self.store.promote(issue.key)
                promoted.append(issue.key)
            else:
                logger.warning(f"GitHub issue {issue_number} is still pending")
                self.store.add_pending_message(issue.key, issue_number)
                still_pending.append(issue.key)
        return promoted, still_pending

    def _issue_exists(self, issue_number: int) -> bool:
        try:
            return self.destination.issue_exists(issue_number)
        except (GithubException, requests.RequestException) as e:
            logger.warning(f"Could not look up GitHub issue {issue_number}: {e}")
            return False
