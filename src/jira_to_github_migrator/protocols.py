"""Protocols defining the seams of the migration.

The migration separates concerns into:

1. SourceSystem: reads projects and issues from Jira
2. Destination: talks to GitHub's REST and issue import APIs
3. MarkupManager / MarkupEngine: converts Jira wiki markup into GitHub markdown
4. Business rules: IssueFilter, MilestoneFilter, LabelHandler, IssueProcessor

Business rules are per-project data. Each is a small class with one decision
method, and rules.py composes ordered lists of them: filters must all agree,
processors and label handlers are applied in sequence.

Rule hooks receive shared mutable objects. ``IssueProcessor.before_conversion``
owns the SourceIssue until it returns, ``IssueProcessor.before_import`` owns the
ImportRequest until it returns; after that the objects are handed to the next
stage and must not be kept.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    import datetime as dt

    from .models import ImportRequest, Milestone, ProjectVersion, SourceIssue


class SourceSystem(Protocol):
    """Protocol for reading from the source tracker.

    Re-querying is safe: every call returns a fresh, finite sequence.
    """

    def find_project(self, project_id: str) -> list[ProjectVersion]:
        """Return the versions of the project, in Jira's order."""
        ...

    def find_issues(self, jql: str) -> list[SourceIssue]:
        """Return all issues matching the JQL query."""
        ...

    def find_issues_votes_and_commits(
        self,
        jql: str,
        pre_filter: Callable[[list[SourceIssue]], list[SourceIssue]] | None = None,
    ) -> list[SourceIssue]:
        """Like find_issues(), also resolving vote counts and commit URLs.

        ``pre_filter`` is applied before the extra per-issue lookups so that
        issues which are already migrated cost no additional requests.
        """
        ...


class Destination(Protocol):
    """Protocol for the GitHub side.

    Implementations are plain transports: callers acquire a rate-limit permit
    before every write and before every import status poll.
    """

    def create_repository(self) -> None:
        """Create the destination repository (test mode only)."""
        ...

    def delete_repository(self) -> bool:
        """Delete the destination repository. Returns False if it did not exist."""
        ...

    def list_milestones(self) -> list[Milestone]:
        """Return all milestones, open and closed."""
        ...

    def create_milestone(self, title: str, *, state: str, due_on: dt.date | None = None) -> None: ...

    def list_labels(self) -> list[str]:
        """Return the names of all labels of the repository."""
        ...

    def create_label(self, name: str, *, color: str, description: str = "") -> None: ...

    def submit_import(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        """POST an issue import. Returns the response body, or None if it had none."""
        ...

    def get_import_status(self, status_url: str) -> dict[str, Any] | None:
        """GET the status of an issue import."""
        ...

    def close_as_not_planned(self, issue_number: int) -> None:
        """PATCH the issue to ``state=closed, state_reason=not_planned``."""
        ...

    def issue_exists(self, issue_number: int) -> bool: ...

    def get_issue_comments(self, issue_number: int) -> list[str]:
        """Return the bodies of the comments on an issue or pull request."""
        ...

    def create_issue_comment(self, issue_number: int, body: str) -> None: ...

    def list_issues(self) -> Iterator[tuple[int, str]]:
        """Yield (number, title) for every issue, skipping pull requests."""
        ...


class MarkupEngine(Protocol):
    """Renders Jira text for GitHub."""

    def convert(self, text: str) -> str:
        """Convert Jira wiki markup to GitHub markdown."""
        ...

    def link(self, label: str, url: str) -> str:
        """Render a markdown link."""
        ...


class MarkupManager(Protocol):
    def engine(self, reference_timestamp: dt.datetime | None) -> MarkupEngine:
        """Return the engine to use for content created at ``reference_timestamp``."""
        ...


class IssueFilter(Protocol):
    def test(self, issue: SourceIssue) -> bool:
        """Return True to migrate the issue."""
        ...


class MilestoneFilter(Protocol):
    def test(self, version: ProjectVersion) -> bool:
        """Return True to create a milestone for the version."""
        ...


class LabelHandler(Protocol):
    def all_labels(self) -> list[dict[str, str]]:
        """Return every label this handler can produce, as ``{"name", "color"}`` dicts."""
        ...

    def labels_for(self, issue: SourceIssue) -> set[str]:
        """Return the labels for one issue."""
        ...


class IssueProcessor(Protocol):
    def before_conversion(self, issue: SourceIssue) -> None:
        """Adjust the Jira snapshot before anything is rendered."""
        ...

    def before_import(self, issue: SourceIssue, request: ImportRequest) -> None:
        """Adjust the built import request before it is submitted."""
        ...
