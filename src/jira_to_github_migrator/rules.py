"""Business rules deciding what gets migrated and how it is labelled.

Rules are per-project data. Every rule is a small class implementing one of the
protocols in protocols.py; the composites below combine ordered lists of them.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .labels import LabelTranslator
    from .models import ImportRequest, ProjectVersion, SourceIssue
    from .protocols import IssueFilter, IssueProcessor, LabelHandler, MilestoneFilter

logger: logging.Logger = logging.getLogger(__name__)


class CompositeIssueFilter:
    """Migrates an issue only if every filter agrees. No filters means migrate everything."""

    def __init__(self, *filters: IssueFilter) -> None:
        self.filters: list[IssueFilter] = list(filters)

    def test(self, issue: SourceIssue) -> bool:
        return all(f.test(issue) for f in self.filters)


class ComponentIssueFilter:
    """Keeps issues having a component whose name contains ``component_name``."""

    def __init__(self, component_name: str) -> None:
        self.component_name: str = component_name

    def test(self, issue: SourceIssue) -> bool:
        return any(self.component_name in component for component in issue.components)


class SkipVersionsMilestoneFilter:
    """Skips Jira versions that are used as triage buckets rather than releases."""

    def __init__(self, skip_versions: Iterable[str] = ()) -> None:
        self.skip_versions: set[str] = set(skip_versions)

    def test(self, version: ProjectVersion) -> bool:
        return version.name not in self.skip_versions


class FieldType(enum.Enum):
    ISSUE_TYPE = "issue_type"
    PRIORITY = "priority"
    VERSION = "version"
    RESOLUTION = "resolution"


_DEFAULT_COLORS: dict[FieldType, str] = {
    FieldType.ISSUE_TYPE: "e3d9fc",
    FieldType.PRIORITY: "e8f9de",
    FieldType.VERSION: "fef2c0",
    FieldType.RESOLUTION: "dfdfdf",
}


class FieldValueLabelHandler:
    """Maps values of a Jira field to GitHub labels."""

    def __init__(self) -> None:
        self._mappings: dict[FieldType, dict[str, str]] = {field_type: {} for field_type in FieldType}

    def add_mapping(self, field_type: FieldType, field_value: str, label: str) -> None:
        self._mappings[field_type][field_value] = label

    def all_labels(self) -> list[dict[str, str]]:
        labels: dict[str, dict[str, str]] = {}
        for field_type, mapping in self._mappings.items():
            for label in mapping.values():
                labels.setdefault(label, {"name": label, "color": _DEFAULT_COLORS[field_type]})
        return list(labels.values())

    def labels_for(self, issue: SourceIssue) -> set[str]:
        labels: set[str] = set()
        self._add(labels, FieldType.ISSUE_TYPE, issue.issue_type)
        self._add(labels, FieldType.PRIORITY, issue.priority)
        self._add(labels, FieldType.VERSION, issue.fix_version)
        self._add(labels, FieldType.RESOLUTION, issue.resolution)
        return labels

    def _add(self, labels: set[str], field_type: FieldType, value: str | None) -> None:
        if value is None:
            return
        label = self._mappings[field_type].get(value)
        if label is not None:
            labels.add(label)


class CompositeLabelHandler:
    """Unions the labels of all handlers, optionally renaming them with a LabelTranslator."""

    def __init__(self, *handlers: LabelHandler, translator: LabelTranslator | None = None) -> None:
        self.handlers: list[LabelHandler] = list(handlers)
        self.translator: LabelTranslator | None = translator

    def add_label_handler(self, handler: LabelHandler) -> None:
        self.handlers.append(handler)

    def all_labels(self) -> list[dict[str, str]]:
        labels: dict[str, dict[str, str]] = {}
        for handler in self.handlers:
            for label in handler.all_labels():
                name = self._translate(label["name"])
                labels.setdefault(name, {**label, "name": name})
        return list(labels.values())

    def labels_for(self, issue: SourceIssue) -> set[str]:
        labels: set[str] = set()
        for handler in self.handlers:
            labels.update(self._translate(label) for label in handler.labels_for(issue))
        return labels

    def _translate(self, name: str) -> str:
        return self.translator.translate(name) if self.translator else name


class CompositeIssueProcessor:
    """Applies processors in order; each sees the changes of the ones before it."""

    def __init__(self, *processors: IssueProcessor) -> None:
        self.processors: list[IssueProcessor] = list(processors)

    def before_conversion(self, issue: SourceIssue) -> None:
        for processor in self.processors:
            processor.before_conversion(issue)

    def before_import(self, issue: SourceIssue, request: ImportRequest) -> None:
        for processor in self.processors:
            processor.before_import(issue, request)


class IssueProcessorBase:
    """No-op hooks, so concrete processors only implement what they need."""

    def before_conversion(self, issue: SourceIssue) -> None:
        pass

    def before_import(self, issue: SourceIssue, request: ImportRequest) -> None:
        pass


class FixDependencyIssueProcessor(IssueProcessorBase):
    """Relabels dependency bumps filed as tasks or improvements.

    Only priority labels survive, and "dependencies" is added.
    """

    issue_types: tuple[str, ...] = ("Task", "Improvement")
    keywords: tuple[str, ...] = ("Bump", "Upgrade")

    def before_import(self, issue: SourceIssue, request: ImportRequest) -> None:
        if issue.issue_type not in self.issue_types:
            return
        if not any(keyword in issue.summary for keyword in self.keywords):
            return
        labels = [label for label in request.issue.labels if "priority:" in label]
        labels.append("dependencies")
        request.issue.labels = labels


class SkipBotCommentIssueProcessor(IssueProcessorBase):
    """Drops comments written by CI and bridge bots."""

    def __init__(self, bot_profile_urls: Sequence[str]) -> None:
        self.bot_profile_urls: list[str] = list(bot_profile_urls)

    def before_import(self, issue: SourceIssue, request: ImportRequest) -> None:
        request.comments = [
            comment for comment in request.comments if not any(url in comment.body for url in self.bot_profile_urls)
        ]


class ReplaceInDescriptionProcessor(IssueProcessorBase):
    """Rewrites a description that breaks conversion or is too large to import."""

    def __init__(self, key: str, old: str, new: str = "") -> None:
        self.key: str = key
        self.old: str = old
        self.new: str = new

    def before_conversion(self, issue: SourceIssue) -> None:
        if issue.key == self.key and issue.description:
            issue.description = issue.description.replace(self.old, self.new)


class TruncateDescriptionProcessor(IssueProcessorBase):
    """Cuts descriptions that would exceed GitHub's issue body limit."""

    def __init__(self, max_length: int = 60000) -> None:
        self.max_length: int = max_length

    def before_conversion(self, issue: SourceIssue) -> None:
        if issue.description and len(issue.description) > self.max_length:
            logger.info(f"Truncating description of {issue.key} ({len(issue.description)} characters)")
            issue.description = issue.description[: self.max_length] + "\n\n[Truncated, see the original issue in Jira]"


class SnipCommentLinesProcessor(IssueProcessorBase):
    """Removes noise lines (e.g. object dumps) from the comments of one issue."""

    def __init__(self, key: str, marker: str) -> None:
        self.key: str = key
        self.marker: str = marker

    def before_import(self, issue: SourceIssue, request: ImportRequest) -> None:
        if issue.key != self.key:
            return
        for comment in request.comments:
            if self.marker in comment.body:
                kept = [line for line in comment.body.split("\n") if self.marker not in line]
                comment.body = "[Snipped see original comment in jira]\n\n" + "\n".join(kept)


class DropAssigneeOnLabelProcessor(IssueProcessorBase):
    """Unassigns issues carrying a status label such as "waiting-for-feedback"."""

    def __init__(self, labels: Iterable[str]) -> None:
        self.labels: set[str] = set(labels)

    def before_import(self, issue: SourceIssue, request: ImportRequest) -> None:
        if request.issue.assignee is not None and self.labels.intersection(request.issue.labels):
            request.issue.assignee = None


@dataclass
class RuleSet:
    """The business rules of one migration."""

    issue_filter: IssueFilter = field(default_factory=CompositeIssueFilter)
    milestone_filter: MilestoneFilter = field(default_factory=SkipVersionsMilestoneFilter)
    label_handler: LabelHandler = field(default_factory=CompositeLabelHandler)
    issue_processor: IssueProcessor = field(default_factory=CompositeIssueProcessor)


APACHE_SKIP_VERSIONS = (
    "Contributions Welcome",
    "Pending Closure",
    "Waiting for Triage",
    "waiting-for-feedback",
    "backlog",
    "more-investigation",
)

APACHE_BOT_PROFILES = (
    "https://issues.apache.org/jira/secure/ViewProfile.jspa?name=hudson",
    "https://issues.apache.org/jira/secure/ViewProfile.jspa?name=githubbot",
)


def default_label_handler(translator: LabelTranslator | None = None) -> CompositeLabelHandler:
    """Issue type, priority and triage-version labels shared by the Apache Maven projects."""
    handler = FieldValueLabelHandler()
    handler.add_mapping(FieldType.ISSUE_TYPE, "Bug", "bug")
    handler.add_mapping(FieldType.ISSUE_TYPE, "Improvement", "enhancement")
    handler.add_mapping(FieldType.ISSUE_TYPE, "New Feature", "enhancement")
    handler.add_mapping(FieldType.ISSUE_TYPE, "Task", "maintenance")
    handler.add_mapping(FieldType.ISSUE_TYPE, "Dependency Upgrade", "dependencies")

    handler.add_mapping(FieldType.PRIORITY, "Blocker", "priority:blocker")
    handler.add_mapping(FieldType.PRIORITY, "Critical", "priority:critical")
    handler.add_mapping(FieldType.PRIORITY, "Major", "priority:major")
    handler.add_mapping(FieldType.PRIORITY, "Minor", "priority:minor")
    handler.add_mapping(FieldType.PRIORITY, "Trivial", "priority:trivial")

    handler.add_mapping(FieldType.VERSION, "waiting-for-feedback", "waiting-for-feedback")
    handler.add_mapping(FieldType.VERSION, "more-investigation", "help wanted")
    return CompositeLabelHandler(handler, translator=translator)


def default_rule_set(
    *,
    component: str | None = None,
    translator: LabelTranslator | None = None,
    extra_processors: Sequence[IssueProcessor] = (),
) -> RuleSet:
    """Rules used for Apache Maven style Jira projects."""
    issue_filter = CompositeIssueFilter(ComponentIssueFilter(component)) if component else CompositeIssueFilter()
    return RuleSet(
        issue_filter=issue_filter,
        milestone_filter=SkipVersionsMilestoneFilter(APACHE_SKIP_VERSIONS),
        label_handler=default_label_handler(translator),
        issue_processor=CompositeIssueProcessor(
            TruncateDescriptionProcessor(),
            FixDependencyIssueProcessor(),
            SkipBotCommentIssueProcessor(APACHE_BOT_PROFILES),
            DropAssigneeOnLabelProcessor(["waiting-for-feedback"]),
            *extra_processors,
        ),
    )
