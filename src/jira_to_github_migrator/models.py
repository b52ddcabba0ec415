"""Data models exchanged between the Jira source, the issue builder and the GitHub import engine.

Source-side classes are snapshots of what Jira returned for one run. Import-side
classes mirror the JSON body of GitHub's issue import API and are built once per
source issue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from .exceptions import InvalidIssueError

if TYPE_CHECKING:
    import datetime as dt


@dataclass
class SourceUser:
    """A Jira user as referenced from issues and comments."""

    key: str
    display_name: str
    browser_url: str = ""


@dataclass
class ProjectVersion:
    """A version of the Jira project; becomes a GitHub milestone."""

    name: str
    released: bool = False
    release_date: dt.date | None = None


@dataclass
class SourceComment:
    """A Jira comment. Restricted comments have a visibility limited to a group or role."""

    author: SourceUser
    body: str
    created: dt.datetime | None = None
    restricted: bool = False


@dataclass
class IssueRef:
    """Lightweight reference to another Jira issue (parent, sub-task, link end)."""

    key: str
    summary: str = ""
    browser_url: str = ""


@dataclass
class IssueLink:
    """A typed, directional Jira issue link.

    Exactly one of ``outward_issue`` / ``inward_issue`` is set, depending on
    which end of the link the owning issue is on.
    """

    outward: str
    inward: str
    outward_issue: IssueRef | None = None
    inward_issue: IssueRef | None = None

    @property
    def target(self) -> IssueRef:
        if self.outward_issue is not None:
            return self.outward_issue
        if self.inward_issue is None:
            msg = "Issue link has neither an outward nor an inward issue"
            raise ValueError(msg)
        return self.inward_issue

    @property
    def link_type(self) -> str:
        return self.outward if self.outward_issue is not None else self.inward


@dataclass
class RemoteLink:
    """An arbitrary web link attached to a Jira issue."""

    url: str
    title: str = ""


@dataclass
class SourceAttachment:
    """Attachment metadata only; the content stays in Jira."""

    filename: str
    content_url: str
    size: int = 0


@dataclass
class SourceIssue:
    """Snapshot of one Jira issue.

    ``resolution`` decides whether the issue is closed. ``fix_version`` is the
    primary fix version and ``backport_versions`` holds the remaining ones.
    """

    key: str
    summary: str
    browser_url: str = ""
    description: str | None = None
    reporter: SourceUser | None = None
    assignee: SourceUser | None = None
    created: dt.datetime | None = None
    updated: dt.datetime | None = None
    resolution: str | None = None
    status: str = ""
    issue_type: str = ""
    priority: str | None = None
    components: list[str] = field(default_factory=list)
    fix_version: str | None = None
    backport_versions: list[str] = field(default_factory=list)
    affects_versions: list[str] = field(default_factory=list)
    reference_url: str | None = None
    pull_request_url: str | None = None
    commit_urls: list[str] = field(default_factory=list)
    comments: list[SourceComment] = field(default_factory=list)
    links: list[IssueLink] = field(default_factory=list)
    remote_links: list[RemoteLink] = field(default_factory=list)
    attachments: list[SourceAttachment] = field(default_factory=list)
    parent: IssueRef | None = None
    subtasks: list[IssueRef] = field(default_factory=list)
    votes: int = 0
    watchers: int = 0
    public: bool = True

    @property
    def closed(self) -> bool:
        # Jira: an issue is closed when its resolution is set, whatever its status
        return self.resolution is not None

    @property
    def has_restricted_comments(self) -> bool:
        return any(comment.restricted for comment in self.comments)

    @property
    def visible_comments(self) -> list[SourceComment]:
        return [comment for comment in self.comments if not comment.restricted]

    def browser_url_for(self, key: str) -> str:
        """Browser URL of another issue on the same Jira instance."""
        if not self.browser_url:
            return key
        base_url = self.browser_url.rsplit("/", 1)[0]
        return f"{base_url}/{key}"

    def validate(self) -> None:
        """Raise InvalidIssueError if the snapshot lacks fields every import needs."""
        if not self.key:
            msg = "Jira issue has no key"
            raise InvalidIssueError(msg)
        if not self.summary:
            msg = f"Jira issue {self.key} has no summary"
            raise InvalidIssueError(msg)


@dataclass
class Milestone:
    """A GitHub milestone as listed by the milestones API."""

    number: int
    title: str
    state: Literal["open", "closed"] = "open"
    due_on: dt.datetime | None = None

    @property
    def closed(self) -> bool:
        return self.state == "closed"


@dataclass
class ImportComment:
    body: str
    created_at: dt.datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"body": self.body}
        if self.created_at is not None:
            payload["created_at"] = format_api_timestamp(self.created_at)
        return payload


@dataclass
class ImportIssue:
    """The ``issue`` object of an import request."""

    title: str
    body: str = ""
    closed: bool = False
    closed_at: dt.datetime | None = None
    assignee: str | None = None
    milestone: int | None = None
    labels: list[str] = field(default_factory=list)
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": self.title,
            "body": self.body,
            "closed": self.closed,
            "labels": list(self.labels),
        }
        if self.assignee is not None:
            payload["assignee"] = self.assignee
        if self.milestone is not None:
            payload["milestone"] = self.milestone
        for name in ("created_at", "updated_at", "closed_at"):
            value = getattr(self, name)
            if value is not None:
                payload[name] = format_api_timestamp(value)
        return payload


@dataclass
class PullRequestRef:
    """A GitHub pull request that resolved the issue."""

    number: int


@dataclass
class ImportRequest:
    """One issue import: the issue, its comments and the pull requests to link afterwards."""

    issue: ImportIssue
    comments: list[ImportComment] = field(default_factory=list)
    pull_requests: list[PullRequestRef] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """JSON body for POST /repos/{owner}/{repo}/import/issues."""
        return {
            "issue": self.issue.to_payload(),
            "comments": [comment.to_payload() for comment in self.comments],
        }


@dataclass
class ImportOutcome:
    """Result of submitting one import request.

    ``issue_number`` and ``failure`` stay unset until the import status is
    checked. ``source_issue`` and ``milestone`` are mutually exclusive: the
    former for issues imported from Jira, the latter for backport holders.
    """

    request: ImportRequest
    source_issue: SourceIssue | None = None
    milestone: Milestone | None = None
    status_url: str | None = None
    submit_status: str | None = None
    issue_number: int | None = None
    failure: str | None = None
    recorded: bool = False

    @property
    def settled(self) -> bool:
        return self.issue_number is not None or self.failure is not None

    @property
    def succeeded(self) -> bool:
        return self.issue_number is not None

    @property
    def pending(self) -> bool:
        """Imported, but accepted as pending so the next run must confirm it."""
        return self.succeeded and self.submit_status == "pending" and self.source_issue is not None

    @property
    def ref(self) -> str:
        if self.source_issue is not None:
            return self.source_issue.key
        if self.milestone is not None:
            return f"{self.milestone.title} backports"
        return self.request.issue.title


def format_api_timestamp(value: dt.datetime) -> str:
    """Format a timestamp the way GitHub's import API expects (ISO 8601, no fraction)."""
    formatted = value.isoformat(timespec="seconds")
    return formatted.replace("+00:00", "Z")
