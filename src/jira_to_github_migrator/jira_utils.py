"""Jira read side: client setup and conversion of REST payloads into SourceIssue snapshots."""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
from collections.abc import Callable
from typing import Any, Final

from jira import JIRA

from . import utils
from .exceptions import ConfigurationError
from .models import (
    IssueLink,
    IssueRef,
    ProjectVersion,
    RemoteLink,
    SourceAttachment,
    SourceComment,
    SourceIssue,
    SourceUser,
)

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "JIRA_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "jira/cli/ro_token"  # noqa: S105

_VERSION_PART = re.compile(r"(\d+)")
_COMMIT_URL = re.compile(r"/commit/[0-9a-f]{7,40}\b|[?;&]h=[0-9a-f]{7,40}\b")


def get_token(pass_path: str | None = None) -> str | None:
    """Get Jira token from pass path, env var JIRA_TOKEN, or default pass location.

    Returns None when no token is found: public Jira instances can be read anonymously.
    """
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except (ValueError, utils.PassError):
        logger.warning("No Jira token specified nor found, reading anonymously")
        return None


def get_client(url: str, token: str | None = None) -> JIRA:
    """Get a Jira client, authenticated with a bearer token if one is given."""
    if not url:
        msg = "Jira URL is required"
        raise ConfigurationError(msg)
    headers = JIRA.DEFAULT_OPTIONS["headers"].copy()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return JIRA(server=url, options={"headers": headers})


def version_sort_key(name: str) -> tuple[tuple[int, int | str], ...]:
    """Natural sort key: "2.10" sorts after "2.9", "3.0.0-alpha-1" before "3.0.0-beta-1"."""
    return tuple((0, int(part)) if part.isdigit() else (1, part.lower()) for part in _VERSION_PART.split(name) if part)


def split_fix_versions(names: list[str]) -> tuple[str | None, list[str]]:
    """The highest fix version is the primary one, the others are backports."""
    if not names:
        return None, []
    ordered = sorted(names, key=version_sort_key)
    return ordered[-1], ordered[:-1]


def is_commit_url(url: str) -> bool:
    return bool(_COMMIT_URL.search(url))


def _parse_date(value: str | None) -> dt.date | None:
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        logger.warning(f"Ignoring invalid release date: {value}")
        return None


def _name(value: dict[str, Any] | None) -> str | None:
    return value.get("name") if value else None


class JiraSource:
    """SourceSystem reading from a Jira instance.

    ``reference_url_field`` and ``pull_request_url_field`` name the custom fields
    (e.g. "customfield_12310220") some projects use to store those URLs.
    """

    def __init__(
        self,
        client: JIRA,
        *,
        reference_url_field: str | None = None,
        pull_request_url_field: str | None = None,
    ) -> None:
        self.client: JIRA = client
        self.reference_url_field: str | None = reference_url_field
        self.pull_request_url_field: str | None = pull_request_url_field
        self.users: dict[str, SourceUser] = {}

    @property
    def browse_url(self) -> str:
        return f"{self.client.server_url.rstrip('/')}/browse"

    def find_project(self, project_id: str) -> list[ProjectVersion]:
        logger.info(f"Fetching versions of Jira project {project_id}")
        return [
            ProjectVersion(
                name=version.raw["name"],
                released=bool(version.raw.get("released", False)),
                release_date=_parse_date(version.raw.get("releaseDate")),
            )
            for version in self.client.project_versions(project_id)
        ]

    def find_issues(self, jql: str) -> list[SourceIssue]:
        logger.info(f"Searching Jira issues: {jql}")
        raw_issues = self.client.search_issues(jql, maxResults=False, fields="*all")
        issues = [self.convert_issue(raw_issue.raw) for raw_issue in raw_issues]
        logger.info(f"Found {len(issues)} Jira issues")
        return issues

    def find_issues_votes_and_commits(
        self,
        jql: str,
        pre_filter: Callable[[list[SourceIssue]], list[SourceIssue]] | None = None,
    ) -> list[SourceIssue]:
        issues = self.find_issues(jql)
        to_resolve = pre_filter(issues) if pre_filter is not None else issues
        logger.info(f"Fetching votes and remote links of {len(to_resolve)} Jira issues")
        for issue in to_resolve:
            issue.votes = self.client.votes(issue.key).votes
            issue.remote_links = [self._convert_remote_link(link.raw) for link in self.client.remote_links(issue.key)]
            issue.commit_urls = [link.url for link in issue.remote_links if is_commit_url(link.url)]
        return issues

    def convert_issue(self, raw: dict[str, Any]) -> SourceIssue:
        fields: dict[str, Any] = raw.get("fields") or {}
        key: str = raw.get("key", "")

        fix_version, backport_versions = split_fix_versions([v["name"] for v in fields.get("fixVersions") or []])
        issue = SourceIssue(
            key=key,
            summary=fields.get("summary") or "",
            browser_url=f"{self.browse_url}/{key}",
            description=fields.get("description"),
            reporter=self._convert_user(fields.get("reporter")),
            assignee=self._convert_user(fields.get("assignee")),
            created=utils.parse_timestamp(fields.get("created")),
            updated=utils.parse_timestamp(fields.get("updated")),
            resolution=_name(fields.get("resolution")),
            status=_name(fields.get("status")) or "",
            issue_type=_name(fields.get("issuetype")) or "",
            priority=_name(fields.get("priority")),
            components=[c["name"] for c in fields.get("components") or []],
            fix_version=fix_version,
            backport_versions=backport_versions,
            affects_versions=[v["name"] for v in fields.get("versions") or []],
            comments=[self._convert_comment(c) for c in (fields.get("comment") or {}).get("comments", [])],
            links=[link for link in (self._convert_link(raw_link) for raw_link in fields.get("issuelinks") or []) if link],
            attachments=[
                SourceAttachment(filename=a["filename"], content_url=a.get("content", ""), size=a.get("size", 0))
                for a in fields.get("attachment") or []
            ],
            parent=self._convert_ref(fields.get("parent")),
            subtasks=[ref for ref in (self._convert_ref(s) for s in fields.get("subtasks") or []) if ref],
            votes=(fields.get("votes") or {}).get("votes", 0),
            watchers=(fields.get("watches") or {}).get("watchCount", 0),
            public=fields.get("security") is None,
        )
        if self.reference_url_field:
            issue.reference_url = fields.get(self.reference_url_field)
        if self.pull_request_url_field:
            issue.pull_request_url = fields.get(self.pull_request_url_field)
        return issue

    def _convert_user(self, raw: dict[str, Any] | None) -> SourceUser | None:
        if not raw:
            return None
        key = raw.get("key") or raw.get("name") or raw.get("accountId") or ""
        user = self.users.get(key)
        if user is None:
            profile_url = raw.get("self", "")
            if raw.get("name"):
                profile_url = f"{self.client.server_url.rstrip('/')}/secure/ViewProfile.jspa?name={raw['name']}"
            user = SourceUser(key=key, display_name=raw.get("displayName") or key, browser_url=profile_url)
            self.users[key] = user
        return user

    def _convert_comment(self, raw: dict[str, Any]) -> SourceComment:
        author = self._convert_user(raw.get("author")) or SourceUser(key="", display_name="Anonymous")
        return SourceComment(
            author=author,
            body=raw.get("body") or "",
            created=utils.parse_timestamp(raw.get("created")),
            restricted=raw.get("visibility") is not None,
        )

    def _convert_ref(self, raw: dict[str, Any] | None) -> IssueRef | None:
        if not raw or not raw.get("key"):
            return None
        return IssueRef(
            key=raw["key"],
            summary=(raw.get("fields") or {}).get("summary", ""),
            browser_url=f"{self.browse_url}/{raw['key']}",
        )

    def _convert_link(self, raw: dict[str, Any]) -> IssueLink | None:
        link_type = raw.get("type") or {}
        outward_issue = self._convert_ref(raw.get("outwardIssue"))
        inward_issue = self._convert_ref(raw.get("inwardIssue"))
        if outward_issue is None and inward_issue is None:
            logger.warning(f"Ignoring issue link without target: {raw.get('id')}")
            return None
        return IssueLink(
            outward=link_type.get("outward", ""),
            inward=link_type.get("inward", ""),
            outward_issue=outward_issue,
            inward_issue=inward_issue,
        )

    @staticmethod
    def _convert_remote_link(raw: dict[str, Any]) -> RemoteLink:
        remote_object = raw.get("object") or {}
        return RemoteLink(url=remote_object.get("url", ""), title=remote_object.get("title", ""))
