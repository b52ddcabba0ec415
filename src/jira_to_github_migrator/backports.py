"""Backport holder issues.

GitHub issues have a single milestone, while a Jira issue may be fixed in several
versions. The issue is imported under its primary fix version; for every other
version it was backported to, the issue is listed in a "<milestone> Backported
Issues" holder issue assigned to that milestone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .models import ImportIssue, ImportRequest

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .mapping_store import MappingStore
    from .models import Milestone, SourceIssue
    from .protocols import MarkupManager

logger: logging.Logger = logging.getLogger(__name__)


class BackportAggregator:
    def __init__(self, markup: MarkupManager, store: MappingStore) -> None:
        self.markup: MarkupManager = markup
        self.store: MappingStore = store

    def collect(
        self,
        issues: Iterable[SourceIssue],
        milestones: Mapping[str, Milestone],
    ) -> dict[str, list[SourceIssue]]:
        """Group imported issues by the milestones they were backported to.

        Only issues whose GitHub issue is confirmed to exist are grouped: pending
        imports carried over from a previous run are left out until promoted. Groups are keyed
        by milestone title, in order of first appearance.
        """
        groups: dict[str, list[SourceIssue]] = {}
        for issue in issues:
            if self.store.confirmed_number(issue.key) is None:
                continue
            for version in issue.backport_versions:
                if version == issue.fix_version or version not in milestones:
                    continue
                group = groups.setdefault(version, [])
                if issue not in group:
                    group.append(issue)
        return groups

    def build_holder(self, milestone: Milestone, issues: list[SourceIssue]) -> ImportRequest:
        """Build the holder issue listing ``issues`` under ``milestone``."""
        logger.debug(f"Milestone data: {milestone}")
        holder = ImportIssue(
            title=f"{milestone.title} Backported Issues",
            milestone=milestone.number,
            closed=milestone.closed,
        )
        if milestone.due_on is not None:
            holder.created_at = milestone.due_on
            if milestone.closed:
                holder.closed_at = milestone.due_on

        lines = []
        for issue in issues:
            number = self.store.confirmed_number(issue.key)
            if number is None:
                self.store.add_failure_message(
                    f"{milestone.title} backport issues holder is missing the GitHub issue id for {issue.key}"
                )
            lines.append(f"- {issue.summary} #{number}")

        engine = self.markup.engine(issues[0].created if issues else None)
        holder.body = engine.convert("\n".join(lines))
        return ImportRequest(issue=holder)

    def build_holders(
        self,
        issues: Iterable[SourceIssue],
        milestones: Mapping[str, Milestone],
    ) -> list[tuple[Milestone, ImportRequest]]:
        groups = self.collect(issues, milestones)
        logger.info(f"{len(groups)} backport issue holders to create")
        return [(milestones[title], self.build_holder(milestones[title], group)) for title, group in groups.items()]
