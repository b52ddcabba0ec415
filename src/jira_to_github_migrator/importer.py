"""Submission of issues through GitHub's asynchronous issue import API.

An import goes through these states::

    submitted -> pending* -> succeeded | failed

POST /repos/{owner}/{repo}/import/issues accepts the request and returns a status
URL. The status is polled until GitHub reports the created issue or a failure.
Polling is bounded: an import still pending after ``max_retries`` polls counts as
failed, so its pull requests are never linked to an issue that may not exist.

See https://gist.github.com/jonmagic/5282384165e0f86ef105 for the import API.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests
from github import GithubException

from .models import ImportOutcome

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .mapping_store import MappingStore
    from .models import ImportRequest, Milestone, PullRequestRef, SourceIssue
    from .protocols import Destination
    from .rate_limit import RateLimitGovernor

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5
DEFAULT_BATCH_SIZE = 100

# Jira resolutions that close an issue without the work being done
NOT_PLANNED_RESOLUTIONS = frozenset(
    {
        "Won't Fix",
        "Won't Do",
        "Abandoned",
        "Not A Bug",
        "Not A Problem",
        "Cannot Reproduce",
        "Duplicate",
        "Incomplete",
        "Invalid",
    }
)

RESOLVE_COMMENT_PREFIX = "Resolve #"


def issue_number_from_url(url: str) -> int:
    """Parse the issue number from e.g. https://api.github.com/repos/o/r/issues/42."""
    segments = [segment for segment in url.split("?", 1)[0].split("/") if segment]
    if not segments:
        msg = f"No path in issue URL: {url}"
        raise ValueError(msg)
    return int(segments[-1])


def error_detail(e: requests.RequestException) -> str:
    """The error message, followed by the response body GitHub sent with it, e.g. 422 validation errors."""
    if e.response is not None and e.response.text:
        return f"{e}: {e.response.text}"
    return str(e)


class ImportEngine:
    """Submits import requests one at a time and records every outcome exactly once."""

    def __init__(
        self,
        destination: Destination,
        store: MappingStore,
        governor: RateLimitGovernor,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        batch_size: int = DEFAULT_BATCH_SIZE,
        not_planned_resolutions: frozenset[str] = NOT_PLANNED_RESOLUTIONS,
    ) -> None:
        if max_retries < 1:
            msg = f"max_retries must be at least 1, got {max_retries}"
            raise ValueError(msg)
        if batch_size < 1:
            msg = f"batch_size must be at least 1, got {batch_size}"
            raise ValueError(msg)
        self.destination: Destination = destination
        self.store: MappingStore = store
        self.governor: RateLimitGovernor = governor
        self.max_retries: int = max_retries
        self.batch_size: int = batch_size
        self.not_planned_resolutions: frozenset[str] = not_planned_resolutions

    def submit(
        self,
        request: ImportRequest,
        *,
        source_issue: SourceIssue | None = None,
        milestone: Milestone | None = None,
    ) -> ImportOutcome:
        """POST one import request. Settles the outcome as failed right away if the POST fails."""
        outcome = ImportOutcome(request=request, source_issue=source_issue, milestone=milestone)
        self.governor.acquire()
        try:
            response = self.destination.submit_import(request.to_payload())
        except requests.RequestException as e:
            failure = error_detail(e)
        else:
            if response is None:
                failure = "No body in response"
            elif not response.get("url"):
                failure = f"No status URL in response: {response}"
            else:
                outcome.status_url = response["url"]
                outcome.submit_status = response.get("status")
                return outcome

        message = f'Failed to POST import for "{request.issue.title}"'
        logger.error(f"{message}: {failure}")
        self.store.add_failure_message(f"{message}: {failure}")
        outcome.failure = failure
        self._record(outcome)
        return outcome

    def check(self, outcome: ImportOutcome) -> bool:
        """Poll the import status until it settles. Returns True if the issue was created.

        Checking an outcome that already settled returns its result without any
        request, so callers may check the same outcome repeatedly.
        """
        if outcome.recorded:
            return outcome.succeeded
        try:
            return self._poll(outcome)
        finally:
            self._record(outcome)

    def _poll(self, outcome: ImportOutcome) -> bool:
        if outcome.status_url is None:
            outcome.failure = "No body from import request"
            return False

        retries = 0
        while True:
            if retries == self.max_retries:
                logger.error(f"Import for [{outcome.ref}] failed after {retries} retries")
                # Unresolved imports count as failures so that no pull request gets linked to them
                outcome.failure = f"failed after {retries} retries"
                return False
            retries += 1

            self.governor.acquire()
            try:
                body = self.destination.get_import_status(outcome.status_url)
            except requests.RequestException as e:
                outcome.failure = error_detail(e)
                logger.error(f"Import failed: {outcome.status_url}: {outcome.failure}")  # noqa: TRY400
                return False

            if body is None:
                outcome.failure = "No body from import result request"
                return False

            status = body.get("status")
            if status == "failed":
                outcome.failure = f"status: {body}"
                return False
            if status == "pending":
                logger.debug(f"{outcome.ref} import still pending")
                continue

            issue_url = body.get("issue_url")
            if not issue_url:
                outcome.failure = f"No URL for imported issue: {body}"
                return False
            try:
                outcome.issue_number = issue_number_from_url(issue_url)
            except ValueError:
                outcome.failure = f"Unexpected URL for imported issue: {issue_url}"
                return False

            if outcome.source_issue is not None:
                self.apply_close_reason(outcome.source_issue, outcome.issue_number)
            return True

    def _record(self, outcome: ImportOutcome) -> None:
        if outcome.recorded or not outcome.settled:
            return
        outcome.recorded = True
        issue = outcome.source_issue
        if outcome.issue_number is None:
            self.store.record_failure(outcome.ref, outcome.failure or "unknown failure")
        elif issue is None:
            self.store.record_holder()
        elif outcome.pending:
            self.store.record_pending(issue.key, outcome.issue_number)
        else:
            self.store.record_completed(issue.key, outcome.issue_number)

    def apply_close_reason(self, issue: SourceIssue, issue_number: int) -> None:
        """Close the GitHub issue as "not planned" if the Jira resolution says so. Best effort."""
        if issue.resolution not in self.not_planned_resolutions:
            return
        self.governor.acquire()
        try:
            self.destination.close_as_not_planned(issue_number)
        except (GithubException, requests.RequestException) as e:
            logger.warning(f"Closed reason update failed for Jira issue {issue.key}: {e}")
            return
        logger.info(f"Updated state reason in GitHub for Jira issue [{issue.key}] to not_planned")

    def run(self, prepared: Sequence[tuple[SourceIssue, ImportRequest]]) -> list[ImportOutcome]:
        """Submit all requests in order, checking results batch by batch.

        Checking after each batch surfaces failures early without polling every
        import right after its submission. Everything still unchecked is polled
        at the end, so the final state does not depend on the batch size.
        """
        outcomes: list[ImportOutcome] = []
        for index, (issue, request) in enumerate(prepared):
            outcomes.append(self.submit(request, source_issue=issue))
            if (index + 1) % self.batch_size == 0:
                for outcome in outcomes[index + 1 - self.batch_size :]:
                    if not self.check(outcome):
                        logger.error(f"Detected import failure for {outcome.ref}")
                        break

        logger.info("Checking remaining import results")
        for outcome in outcomes:
            self.check(outcome)
        return outcomes

    def import_holders(self, holders: Sequence[tuple[Milestone, ImportRequest]]) -> list[ImportOutcome]:
        """Submit backport holder issues, then check all of them."""
        outcomes = [self.submit(request, milestone=milestone) for milestone, request in holders]
        logger.info("Checking import results for backport issue holders")
        for outcome in outcomes:
            self.check(outcome)
        return outcomes

    def link_pull_requests(self, issue_number: int, title: str, pull_requests: Sequence[PullRequestRef]) -> int:
        """Comment "Resolve #<issue>" on each pull request. Returns the number of failures."""
        failures = 0
        for pull_request in pull_requests:
            try:
                comments = self.destination.get_issue_comments(pull_request.number)
                if any(RESOLVE_COMMENT_PREFIX in body for body in comments):
                    logger.info(f"Resolve comment for pull request #{pull_request.number} already exists")
                    continue
                self.governor.acquire()
                self.destination.create_issue_comment(pull_request.number, f"{RESOLVE_COMMENT_PREFIX}{issue_number}")
            except (GithubException, requests.RequestException) as e:
                failures += 1
                message = f'Failed to POST link pull request for "{title}"'
                logger.error(f"{message}: {e}")  # noqa: TRY400
                self.store.add_failure_message(f"{message}: {e}")
        return failures

    def link_imported(self, outcomes: Sequence[ImportOutcome]) -> int:
        """Link pull requests of every successfully imported Jira issue."""
        failures = 0
        for outcome in outcomes:
            if outcome.issue_number is None or outcome.source_issue is None:
                continue
            failures += self.link_pull_requests(
                outcome.issue_number, outcome.request.issue.title, outcome.request.pull_requests
            )
        return failures
