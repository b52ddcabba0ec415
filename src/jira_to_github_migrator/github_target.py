"""GitHub implementation of the Destination protocol.

Repository, milestone, label and comment calls go through PyGithub. The issue
import API is a preview API that PyGithub does not cover, so it and the few
calls that need exact HTTP semantics use a requests session.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any, Final

import requests

from . import github_utils as ghu
from .models import Milestone

if TYPE_CHECKING:
    from collections.abc import Iterator

    from github import Github
    from github.Repository import Repository

logger: logging.Logger = logging.getLogger(__name__)

GITHUB_API_URL: Final[str] = "https://api.github.com"
IMPORT_MEDIA_TYPE: Final[str] = "application/vnd.github.golden-comet-preview+json"
REQUEST_TIMEOUT_SECONDS: Final[int] = 60


class GithubDestination:
    """Talks to one GitHub repository."""

    def __init__(
        self,
        client: Github,
        repository_slug: str,
        token: str,
        *,
        session: requests.Session | None = None,
        api_url: str = GITHUB_API_URL,
    ) -> None:
        ghu.split_repo_path(repository_slug)
        self.client: Github = client
        self.repository_slug: str = repository_slug
        self.api_url: str = api_url.rstrip("/")
        self.session: requests.Session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}", "Accept": IMPORT_MEDIA_TYPE})
        self._repo: Repository | None = None

    @property
    def repo(self) -> Repository:
        if self._repo is None:
            self._repo = self.client.get_repo(self.repository_slug)
        return self._repo

    def _repo_url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.repository_slug}{path}"

    def create_repository(self) -> None:
        logger.info(f"Creating repository {self.repository_slug}")
        self._repo = ghu.create_repo(self.client, self.repository_slug, "Issues migrated from Jira")

    def delete_repository(self) -> bool:
        self._repo = None
        return ghu.delete_repo(self.client, self.repository_slug)

    def list_milestones(self) -> list[Milestone]:
        return [
            Milestone(number=m.number, title=m.title, state=m.state, due_on=m.due_on)
            for m in self.repo.get_milestones(state="all")
        ]

    def create_milestone(self, title: str, *, state: str, due_on: dt.date | None = None) -> None:
        if due_on is None:
            self.repo.create_milestone(title=title, state=state)
        else:
            self.repo.create_milestone(title=title, state=state, due_on=due_on)

    def list_labels(self) -> list[str]:
        return [label.name for label in self.repo.get_labels()]

    def create_label(self, name: str, *, color: str, description: str = "") -> None:
        self.repo.create_label(name=name, color=color, description=description)

    def submit_import(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        response = self.session.post(self._repo_url("/import/issues"), json=payload, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.json() if response.content else None

    def get_import_status(self, status_url: str) -> dict[str, Any] | None:
        response = self.session.get(status_url, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.json() if response.content else None

    def close_as_not_planned(self, issue_number: int) -> None:
        response = self.session.patch(
            self._repo_url(f"/issues/{issue_number}"),
            json={"state": "closed", "state_reason": "not_planned"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        response.raise_for_status()

    def issue_exists(self, issue_number: int) -> bool:
        response = self.session.get(self._repo_url(f"/issues/{issue_number}"), timeout=REQUEST_TIMEOUT_SECONDS)
        if response.status_code in (404, 410):
            return False
        response.raise_for_status()
        return True

    def get_issue_comments(self, issue_number: int) -> list[str]:
        return [comment.body for comment in self.repo.get_issue(issue_number).get_comments()]

    def create_issue_comment(self, issue_number: int, body: str) -> None:
        self.repo.get_issue(issue_number).create_comment(body)

    def list_issues(self) -> Iterator[tuple[int, str]]:
        for issue in self.repo.get_issues(state="all", direction="asc"):
            if issue.pull_request is None:
                yield issue.number, issue.title
