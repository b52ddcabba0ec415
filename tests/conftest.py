"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings, and use in-memory fakes of Jira and GitHub
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable, Generator, Iterator
from pathlib import Path
from typing import Any

from typing_extensions import override

import pytest

from jira_to_github_migrator.mapping_store import MappingStore
from jira_to_github_migrator.models import Milestone, ProjectVersion, SourceIssue, SourceUser
from jira_to_github_migrator.rate_limit import RateLimitGovernor

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        if self.test_nodeid not in _integration_test_warnings:
            _integration_test_warnings[self.test_nodeid] = []
        _integration_test_warnings[self.test_nodeid].append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    This fixture captures logging output and fails the test if any WARNING or ERROR
    level logs are detected during integration tests. These would come from logger.warning()
    or logger.error() calls in the source code.

    Warnings from the test code itself (via warnings.warn()) are allowed, as they are
    just informational output. This fixture specifically targets logger warnings which
    indicate issues in the code under test.

    Warnings are acceptable when running the tool as a user, but in the test context
    we don't expect any warnings from the migrator code and treat them as test failures.
    """
    # Check if this is an integration test
    is_integration_test = request.node.get_closest_marker("integration") is not None

    if not is_integration_test:
        # For unit tests and other tests, don't check for warnings
        yield
        return

    # For integration tests, set up warning capture
    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    # Add handler to root logger to capture all warnings
    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        # Clean up - remove the handler
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """
    Hook to check for warnings after test execution and mark test as failed if warnings were detected.

    This runs after the test completes but before pytest generates the final report.
    """
    # Execute the test and get the report
    outcome = yield
    report = outcome.get_result()

    # Only check during the test call phase (not setup or teardown)
    if call.when == "call" and report.outcome == "passed":
        # Check if this test has any captured warnings
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            # Format warning messages for better readability
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]

            # Mark the test as failed
            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        # Clean up the warnings for this test
        _integration_test_warnings.pop(test_nodeid, None)


class FakeDestination:
    """In-memory GitHub repository speaking the import API.

    Imports settle on the first status poll unless their title is listed in
    ``failing_titles`` (status "failed") or ``stuck_titles`` (always "pending").
    """

    def __init__(self) -> None:
        self.milestones: list[Milestone] = []
        self.labels: list[str] = []
        self.issues: dict[int, str] = {}
        self.comments: dict[int, list[str]] = {}
        self.closed_not_planned: list[int] = []
        self.submitted: list[dict[str, Any]] = []
        self.status_polls: int = 0
        self.submit_status: str = "imported"
        self.failing_titles: set[str] = set()
        self.stuck_titles: set[str] = set()
        self.missing_issues: set[int] = set()
        self.repository_exists: bool = True
        self.repository_created: bool = False
        self._imports: dict[str, tuple[str, int]] = {}
        self._next_number: int = 1

    def create_repository(self) -> None:
        self.repository_exists = True
        self.repository_created = True

    def delete_repository(self) -> bool:
        existed = self.repository_exists
        self.repository_exists = False
        return existed

    def list_milestones(self) -> list[Milestone]:
        return list(self.milestones)

    def create_milestone(self, title: str, *, state: str, due_on: dt.date | None = None) -> None:
        due = dt.datetime(due_on.year, due_on.month, due_on.day, tzinfo=dt.UTC) if due_on else None
        self.milestones.append(Milestone(len(self.milestones) + 1, title, state, due))  # type: ignore[arg-type]

    def list_labels(self) -> list[str]:
        return list(self.labels)

    def create_label(self, name: str, *, color: str, description: str = "") -> None:
        self.labels.append(name)

    def submit_import(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        self.submitted.append(payload)
        number = self._next_number
        self._next_number += 1
        url = f"https://api.github.com/repos/owner/repo/import/issues/{len(self.submitted)}"
        title = payload["issue"]["title"]
        self._imports[url] = (title, number)
        status = "pending" if title in self.stuck_titles else self.submit_status
        return {"id": len(self.submitted), "status": status, "url": url}

    def get_import_status(self, status_url: str) -> dict[str, Any] | None:
        self.status_polls += 1
        title, number = self._imports[status_url]
        if title in self.failing_titles:
            return {"status": "failed", "errors": [{"field": "title", "code": "invalid"}]}
        if title in self.stuck_titles:
            return {"status": "pending"}
        self.issues[number] = title
        return {"status": "imported", "issue_url": f"https://api.github.com/repos/owner/repo/issues/{number}"}

    def close_as_not_planned(self, issue_number: int) -> None:
        self.closed_not_planned.append(issue_number)

    def issue_exists(self, issue_number: int) -> bool:
        return issue_number in self.issues and issue_number not in self.missing_issues

    def get_issue_comments(self, issue_number: int) -> list[str]:
        return list(self.comments.get(issue_number, []))

    def create_issue_comment(self, issue_number: int, body: str) -> None:
        self.comments.setdefault(issue_number, []).append(body)

    def list_issues(self) -> Iterator[tuple[int, str]]:
        yield from sorted(self.issues.items())


class FakeSource:
    def __init__(self, issues: list[SourceIssue], versions: list[ProjectVersion] | None = None) -> None:
        self.issues: list[SourceIssue] = issues
        self.versions: list[ProjectVersion] = versions or []
        self.pre_filtered: list[str] = []

    def find_project(self, project_id: str) -> list[ProjectVersion]:
        return list(self.versions)

    def find_issues(self, jql: str) -> list[SourceIssue]:
        return list(self.issues)

    def find_issues_votes_and_commits(
        self,
        jql: str,
        pre_filter: Callable[[list[SourceIssue]], list[SourceIssue]] | None = None,
    ) -> list[SourceIssue]:
        issues = self.find_issues(jql)
        if pre_filter is not None:
            self.pre_filtered = [issue.key for issue in pre_filter(issues)]
        return issues


class NoWaitGovernor(RateLimitGovernor):
    def __init__(self) -> None:
        super().__init__(0.0, sleep=lambda _seconds: None)


@pytest.fixture
def destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def governor() -> NoWaitGovernor:
    return NoWaitGovernor()


@pytest.fixture
def store(tmp_path: Path) -> Generator[MappingStore]:
    mapping_store = MappingStore(
        tmp_path / "mappings.properties", tmp_path / "pending.properties", tmp_path / "failures.txt"
    )
    mapping_store.load()
    yield mapping_store
    mapping_store.close()


def make_issue(key: str = "MNG-1", summary: str = "Something is broken", **kwargs: Any) -> SourceIssue:
    kwargs.setdefault("browser_url", f"https://issues.apache.org/jira/browse/{key}")
    kwargs.setdefault(
        "reporter", SourceUser("jdoe", "John Doe", "https://issues.apache.org/jira/secure/ViewProfile.jspa?name=jdoe")
    )
    kwargs.setdefault("created", dt.datetime(2020, 1, 2, 3, 4, 5, tzinfo=dt.UTC))
    kwargs.setdefault("updated", dt.datetime(2020, 2, 3, 4, 5, 6, tzinfo=dt.UTC))
    kwargs.setdefault("issue_type", "Bug")
    return SourceIssue(key=key, summary=summary, **kwargs)


@pytest.fixture
def issue_factory() -> Callable[..., SourceIssue]:
    return make_issue
