"""Build GitHub import requests from Jira issues."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .models import ImportComment, ImportIssue, ImportRequest, PullRequestRef
from .utils import human_size

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

    from .models import Milestone, SourceIssue
    from .protocols import IssueProcessor, LabelHandler, MarkupEngine, MarkupManager

logger: logging.Logger = logging.getLogger(__name__)

# Link types too generic to be worth spelling out
SUPPRESSED_LINK_TYPES = frozenset({"relates to", "is related to"})

VOTES_OR_WATCHERS_THRESHOLD = 5

_TRAILING_RULE = re.compile(r"----\s*\Z")


def build_title(issue: SourceIssue) -> str:
    return f"[{issue.key}] {issue.summary}"


def strip_trailing_rule(description: str) -> str:
    """Remove a horizontal rule ("----") that ends the description."""
    return _TRAILING_RULE.sub("", description)


def find_pull_requests(issue: SourceIssue) -> list[PullRequestRef]:
    """Pull requests referenced from remote links, e.g. https://github.com/o/r/pull/42."""
    pull_requests: list[PullRequestRef] = []
    for remote_link in issue.remote_links:
        number = _pull_request_number(remote_link.url)
        if number is not None:
            logger.debug(f"For Jira issue {issue.key}, pull request {remote_link.title or number} found")
            pull_requests.append(PullRequestRef(number))
    return pull_requests


def _pull_request_number(url: str) -> int | None:
    segments = [segment for segment in url.split("?", 1)[0].split("#", 1)[0].split("/") if segment]
    for previous, segment in zip(segments, segments[1:], strict=False):
        if previous == "pull" and segment.isdigit():
            return int(segment)
    return None


class IssueBuilder:
    """Turns SourceIssue snapshots into ImportRequests.

    ``test_mode`` is set when the destination repository is a throwaway copy:
    assignees and pull request references are left out so the migration does not
    notify real users or add events to real pull requests.
    """

    def __init__(
        self,
        markup: MarkupManager,
        label_handler: LabelHandler,
        issue_processor: IssueProcessor,
        *,
        repository_slug: str,
        user_mappings: Mapping[str, str] | None = None,
        test_mode: bool = False,
    ) -> None:
        self.markup: MarkupManager = markup
        self.label_handler: LabelHandler = label_handler
        self.issue_processor: IssueProcessor = issue_processor
        self.repository_slug: str = repository_slug
        self.user_mappings: dict[str, str] = dict(user_mappings or {})
        self.test_mode: bool = test_mode

    def prepare(
        self,
        issue: SourceIssue,
        milestones: Mapping[str, Milestone],
        restricted_keys: Collection[str],
    ) -> ImportRequest:
        """Build the import request for one issue.

        Raises:
            InvalidIssueError: If the issue lacks a key or summary
        """
        logger.debug(f"Prepare import data for Jira issue: {issue.key}")
        issue.validate()
        self.issue_processor.before_conversion(issue)
        issue.validate()
        request = ImportRequest(
            issue=self.build_issue(issue, milestones, restricted_keys),
            comments=self.build_comments(issue),
            pull_requests=find_pull_requests(issue),
        )
        self.issue_processor.before_import(issue, request)
        return request

    def build_issue(
        self,
        issue: SourceIssue,
        milestones: Mapping[str, Milestone],
        restricted_keys: Collection[str],
    ) -> ImportIssue:
        engine = self.markup.engine(issue.created)
        github_issue = ImportIssue(
            title=build_title(issue),
            body=self.build_body(issue, engine, milestones, restricted_keys),
            closed=issue.closed,
            created_at=issue.created,
            updated_at=issue.updated,
        )
        if github_issue.closed:
            github_issue.closed_at = issue.updated

        # Real users are probably not collaborators of a test repository
        if not self.test_mode and issue.assignee is not None:
            github_issue.assignee = self.user_mappings.get(issue.assignee.key)

        if issue.fix_version is not None:
            milestone = milestones.get(issue.fix_version)
            if milestone is not None:
                github_issue.milestone = milestone.number

        github_issue.labels = sorted(self.label_handler.labels_for(issue))
        return github_issue

    def build_body(
        self,
        issue: SourceIssue,
        engine: MarkupEngine,
        milestones: Mapping[str, Milestone],
        restricted_keys: Collection[str],
    ) -> str:
        issue_link = engine.link(issue.key, f"{issue.browser_url}?redirect=false" if issue.browser_url else "")
        if issue.reporter is not None:
            reporter = engine.link(issue.reporter.display_name, issue.reporter.browser_url)
        else:
            reporter = "Anonymous"
        restricted_marker = "*" if issue.has_restricted_comments else ""
        body = f"**{reporter}** opened **{issue_link}**{restricted_marker} and commented\n"
        if issue.description is not None:
            body += "\n" + engine.convert(strip_trailing_rule(issue.description))

        details = self.build_details(issue, engine, milestones, restricted_keys)
        body += "\n\n---\n" + (details if details.strip() else f"No further details from {issue_link}")
        return body

    def build_details(  # noqa: C901, PLR0912 - one section per Jira field
        self,
        issue: SourceIssue,
        engine: MarkupEngine,
        milestones: Mapping[str, Milestone],
        restricted_keys: Collection[str],
    ) -> str:
        details = ""

        if issue.affects_versions:
            details += "\n**Affects:** " + ", ".join(issue.affects_versions) + "\n"

        if issue.reference_url:
            details += f"\n**Reference URL:** {issue.reference_url}\n"

        if issue.attachments:
            lines = [
                f"- {engine.link(attachment.filename, attachment.content_url)} (_{human_size(attachment.size)}_)"
                for attachment in issue.attachments
            ]
            details += "\n**Attachments:**\n" + "\n".join(lines) + "\n"

        if issue.parent is not None:
            sub_task_type = "backport sub-task" if issue.issue_type.lower() == "backport" else "sub-task"
            parent_url = issue.parent.browser_url or issue.browser_url_for(issue.parent.key)
            details += f"\nThis issue is a {sub_task_type} of {engine.link(issue.parent.key, parent_url)}\n"

        subtasks = [subtask for subtask in issue.subtasks if subtask.key not in restricted_keys]
        if subtasks:
            lines = [
                f"- {engine.link(subtask.key, issue.browser_url_for(subtask.key))} {engine.convert(subtask.summary)}"
                for subtask in subtasks
            ]
            details += "\n**Sub-tasks:**\n" + "\n".join(lines) + "\n"

        links = [link for link in issue.links if link.target.key not in restricted_keys]
        if links:
            lines = []
            for link in links:
                target = link.target
                line = f"- {engine.link(target.key, issue.browser_url_for(target.key))} {engine.convert(target.summary)}"
                if link.link_type not in SUPPRESSED_LINK_TYPES:
                    line += f' (_**"{link.link_type}"**_)'
                lines.append(line)
            details += "\n**Issue Links:**\n" + "\n".join(lines) + "\n"

        if issue.remote_links:
            lines = [
                f"- {engine.link(engine.convert(link.title or link.url), link.url)}" for link in issue.remote_links
            ]
            details += "\n**Remote Links:**\n" + "\n".join(lines) + "\n"

        references: list[str] = []
        # Linking real pull requests from a test repository adds events to their timelines
        if issue.pull_request_url and not self.test_mode:
            references.append(f"pull request {issue.pull_request_url}")
        if issue.commit_urls:
            references.append("commits " + ", ".join(issue.commit_urls))
        if references:
            details += "\n**Referenced from:** " + ", and ".join(references) + "\n"

        if issue.backport_versions:
            names = []
            for name in issue.backport_versions:
                milestone = milestones.get(name)
                if milestone is not None:
                    url = f"https://github.com/{self.repository_slug}/milestone/{milestone.number}?closed=1"
                    names.append(engine.link(name, url))
                else:
                    names.append(name)
            details += "\n**Backported to:** " + ", ".join(names) + "\n"

        if issue.votes > 0 or issue.watchers >= VOTES_OR_WATCHERS_THRESHOLD:
            details += f"\n{issue.votes} votes, {issue.watchers} watchers\n"

        return details

    def build_comments(self, issue: SourceIssue) -> list[ImportComment]:
        engine = self.markup.engine(issue.created)
        comments: list[ImportComment] = []
        for jira_comment in issue.visible_comments:
            author = engine.link(jira_comment.author.display_name, jira_comment.author.browser_url)
            body = f"**{author}** commented\n\n" + engine.convert(jira_comment.body)
            comments.append(ImportComment(body=body, created_at=jira_comment.created))
        return comments
