"""Tests for the business rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from jira_to_github_migrator.labels import LabelTranslator
from jira_to_github_migrator.models import ImportComment, ImportIssue, ImportRequest, ProjectVersion
from jira_to_github_migrator.rules import (
    APACHE_BOT_PROFILES,
    ComponentIssueFilter,
    CompositeIssueFilter,
    CompositeIssueProcessor,
    CompositeLabelHandler,
    DropAssigneeOnLabelProcessor,
    FieldType,
    FieldValueLabelHandler,
    FixDependencyIssueProcessor,
    ReplaceInDescriptionProcessor,
    SkipBotCommentIssueProcessor,
    SkipVersionsMilestoneFilter,
    SnipCommentLinesProcessor,
    TruncateDescriptionProcessor,
    default_rule_set,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from jira_to_github_migrator.models import SourceIssue


@pytest.mark.unit
class TestFilters:
    def test_empty_composite_accepts_everything(self, issue_factory: Callable[..., SourceIssue]) -> None:
        assert CompositeIssueFilter().test(issue_factory())

    def test_all_filters_must_agree(self, issue_factory: Callable[..., SourceIssue]) -> None:
        issue_filter = CompositeIssueFilter(ComponentIssueFilter("core"), ComponentIssueFilter("maven"))
        assert issue_filter.test(issue_factory(components=["maven-core"]))
        assert not issue_filter.test(issue_factory(components=["core"]))

    def test_skip_versions(self) -> None:
        milestone_filter = SkipVersionsMilestoneFilter(["Backlog"])
        assert milestone_filter.test(ProjectVersion("3.6.0"))
        assert not milestone_filter.test(ProjectVersion("Backlog"))


@pytest.mark.unit
class TestLabelHandlers:
    def test_field_value_labels(self, issue_factory: Callable[..., SourceIssue]) -> None:
        handler = FieldValueLabelHandler()
        handler.add_mapping(FieldType.ISSUE_TYPE, "Bug", "bug")
        handler.add_mapping(FieldType.PRIORITY, "Major", "priority:major")
        handler.add_mapping(FieldType.RESOLUTION, "Duplicate", "duplicate")

        issue = issue_factory(issue_type="Bug", priority="Major", resolution="Duplicate")

        assert handler.labels_for(issue) == {"bug", "priority:major", "duplicate"}
        assert {label["name"] for label in handler.all_labels()} == {"bug", "priority:major", "duplicate"}

    def test_composite_translates(self, issue_factory: Callable[..., SourceIssue]) -> None:
        handler = FieldValueLabelHandler()
        handler.add_mapping(FieldType.PRIORITY, "Major", "priority:major")
        composite = CompositeLabelHandler(handler, translator=LabelTranslator(["priority:*=P-*"]))

        assert composite.labels_for(issue_factory(priority="Major")) == {"P-major"}
        assert composite.all_labels() == [{"name": "P-major", "color": "e8f9de"}]

    def test_default_label_handler(self, issue_factory: Callable[..., SourceIssue]) -> None:
        handler = default_rule_set().label_handler
        labels = handler.labels_for(issue_factory(issue_type="Improvement", priority="Critical"))
        assert labels == {"enhancement", "priority:critical"}


def request_with(*labels: str, assignee: str | None = None, comments: list[str] | None = None) -> ImportRequest:
    return ImportRequest(
        issue=ImportIssue(title="t", labels=list(labels), assignee=assignee),
        comments=[ImportComment(body) for body in comments or []],
    )


@pytest.mark.unit
class TestProcessors:
    def test_fix_dependency(self, issue_factory: Callable[..., SourceIssue]) -> None:
        request = request_with("enhancement", "priority:minor")
        FixDependencyIssueProcessor().before_import(
            issue_factory(summary="Bump commons-io to 2.11", issue_type="Improvement"), request
        )
        assert request.issue.labels == ["priority:minor", "dependencies"]

    def test_fix_dependency_ignores_bugs(self, issue_factory: Callable[..., SourceIssue]) -> None:
        request = request_with("bug")
        FixDependencyIssueProcessor().before_import(issue_factory(summary="Upgrade breaks build"), request)
        assert request.issue.labels == ["bug"]

    def test_skip_bot_comments(self, issue_factory: Callable[..., SourceIssue]) -> None:
        request = request_with(comments=[f"**[Hudson]({APACHE_BOT_PROFILES[0]})** commented\n\nBuild", "Human"])
        SkipBotCommentIssueProcessor(APACHE_BOT_PROFILES).before_import(issue_factory(), request)
        assert [comment.body for comment in request.comments] == ["Human"]

    def test_replace_in_description(self, issue_factory: Callable[..., SourceIssue]) -> None:
        issue = issue_factory("MNG-5", description="a {noformat} b")
        other = issue_factory("MNG-6", description="a {noformat} b")
        processor = ReplaceInDescriptionProcessor("MNG-5", "{noformat}")
        processor.before_conversion(issue)
        processor.before_conversion(other)
        assert issue.description == "a  b"
        assert other.description == "a {noformat} b"

    def test_truncate_description(self, issue_factory: Callable[..., SourceIssue]) -> None:
        issue = issue_factory(description="x" * 20)
        TruncateDescriptionProcessor(max_length=10).before_conversion(issue)
        assert issue.description is not None
        assert issue.description.startswith("x" * 10 + "\n\n[Truncated")

    def test_snip_comment_lines(self, issue_factory: Callable[..., SourceIssue]) -> None:
        request = request_with(comments=["keep\nObject@1234 dump\nkeep too", "untouched"])
        SnipCommentLinesProcessor("MNG-1", "Object@").before_import(issue_factory("MNG-1"), request)
        assert request.comments[0].body == "[Snipped see original comment in jira]\n\nkeep\nkeep too"
        assert request.comments[1].body == "untouched"

    def test_drop_assignee_on_label(self, issue_factory: Callable[..., SourceIssue]) -> None:
        request = request_with("waiting-for-feedback", assignee="alice")
        DropAssigneeOnLabelProcessor(["waiting-for-feedback"]).before_import(issue_factory(), request)
        assert request.issue.assignee is None

    def test_composite_runs_in_order(self, issue_factory: Callable[..., SourceIssue]) -> None:
        issue = issue_factory("MNG-1", description="old " + "y" * 20)
        CompositeIssueProcessor(
            ReplaceInDescriptionProcessor("MNG-1", "old", "new"),
            TruncateDescriptionProcessor(max_length=3),
        ).before_conversion(issue)
        assert issue.description is not None
        assert issue.description.startswith("new\n\n[Truncated")
