from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING
from unittest.mock import Mock

import pytest
from github import GithubException

from jira_to_github_migrator.exceptions import MigrationError
from jira_to_github_migrator.labels import LabelTranslator, create_labels_if_not_exist
from jira_to_github_migrator.milestones import create_milestones_if_not_exist, retrieve_milestones
from jira_to_github_migrator.models import Milestone, ProjectVersion
from jira_to_github_migrator.rules import SkipVersionsMilestoneFilter

if TYPE_CHECKING:
    from conftest import FakeDestination, NoWaitGovernor


class StaticLabels:
    def __init__(self, *names: str) -> None:
        self.names = names

    def all_labels(self) -> list[dict[str, str]]:
        return [{"name": name, "color": "ededed"} for name in self.names]

    def labels_for(self, issue: object) -> set[str]:
        return set()


@pytest.mark.unit
class TestCreateLabelsIfNotExist:
    """Test create_labels_if_not_exist function."""

    def test_creates_only_missing_labels(self, destination: FakeDestination, governor: NoWaitGovernor) -> None:
        destination.labels = ["Bug", "documentation"]

        created = create_labels_if_not_exist(destination, StaticLabels("bug", "enhancement", "priority:major"), governor)

        assert created == ["enhancement", "priority:major"]
        assert destination.labels == ["Bug", "documentation", "enhancement", "priority:major"]
        assert governor.permits_issued == 2

    def test_already_exists_error_is_handled(self, governor: NoWaitGovernor) -> None:
        """When create_label raises 422 already_exists, skip the label instead of crashing."""
        destination = Mock()
        # Repository returns no labels initially (race condition: default labels not yet provisioned)
        destination.list_labels.return_value = []
        destination.create_label.side_effect = GithubException(
            422,
            {"message": "Validation Failed", "errors": [{"resource": "Label", "code": "already_exists"}]},
            headers={},
        )

        assert create_labels_if_not_exist(destination, StaticLabels("bug"), governor) == []

    def test_other_errors_abort(self, governor: NoWaitGovernor) -> None:
        destination = Mock()
        destination.list_labels.return_value = []
        destination.create_label.side_effect = GithubException(403, {"message": "Forbidden"}, headers={})

        with pytest.raises(MigrationError, match="Failed to create label bug"):
            create_labels_if_not_exist(destination, StaticLabels("bug"), governor)


@pytest.mark.unit
class TestMilestones:
    def test_creates_filtered_missing_milestones(self, destination: FakeDestination, governor: NoWaitGovernor) -> None:
        destination.milestones = [Milestone(1, "3.5.0", "closed")]
        versions = [
            ProjectVersion("3.5.0", released=True),
            ProjectVersion("3.6.0", released=True, release_date=dt.date(2018, 10, 24)),
            ProjectVersion("4.0.0"),
            ProjectVersion("Backlog"),
        ]

        created = create_milestones_if_not_exist(
            destination, versions, SkipVersionsMilestoneFilter(["Backlog"]), governor
        )

        assert created == ["3.6.0", "4.0.0"]
        milestones = retrieve_milestones(destination)
        assert milestones["3.6.0"].state == "closed"
        assert milestones["3.6.0"].due_on == dt.datetime(2018, 10, 24, tzinfo=dt.UTC)
        assert milestones["4.0.0"].state == "open"
        assert "Backlog" not in milestones

    def test_retrieve_failure(self) -> None:
        destination = Mock()
        destination.list_milestones.side_effect = GithubException(500, {"message": "Server Error"}, headers={})
        with pytest.raises(MigrationError, match="Failed to retrieve milestones"):
            retrieve_milestones(destination)


@pytest.mark.unit
class TestLabelTranslator:
    """Test label translation functionality."""

    def test_simple_translation(self) -> None:
        translator = LabelTranslator(["p_high:priority: high", "bug:defect"])
        assert translator.translate("p_high") == "priority: high"
        assert translator.translate("bug") == "defect"
        assert translator.translate("unknown") == "unknown"

    def test_wildcard_translation(self) -> None:
        translator = LabelTranslator(["p_*:priority: *", "status_*:status: *"])
        assert translator.translate("p_high") == "priority: high"
        assert translator.translate("p_low") == "priority: low"
        assert translator.translate("status_open") == "status: open"
        assert translator.translate("unmatched") == "unmatched"

    def test_source_with_colon(self) -> None:
        translator = LabelTranslator(["priority:*=prio/*"])
        assert translator.translate("priority:major") == "prio/major"

    def test_invalid_pattern(self) -> None:
        with pytest.raises(ValueError, match="Invalid pattern format"):
            LabelTranslator(["invalid_pattern"])

    def test_multiple_patterns(self) -> None:
        translator = LabelTranslator(["p_*:priority: *", "comp_*:component: *", "bug:defect"])
        assert translator.translate("p_critical") == "priority: critical"
        assert translator.translate("comp_ui") == "component: ui"
        assert translator.translate("bug") == "defect"
