"""
Milestone provisioning and lookup for the GitHub repository.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from github import GithubException

from .exceptions import MigrationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Milestone, ProjectVersion
    from .protocols import Destination, MilestoneFilter
    from .rate_limit import RateLimitGovernor

logger: logging.Logger = logging.getLogger(__name__)


def retrieve_milestones(destination: Destination) -> dict[str, Milestone]:
    """Return all milestones of the repository by title."""
    try:
        return {milestone.title: milestone for milestone in destination.list_milestones()}
    except GithubException as e:
        msg = f"Failed to retrieve milestones: {e}"
        raise MigrationError(msg) from e


def create_milestones_if_not_exist(
    destination: Destination,
    versions: Sequence[ProjectVersion],
    milestone_filter: MilestoneFilter,
    governor: RateLimitGovernor,
) -> list[str]:
    """Create a milestone for every Jira version that passes the filter and does not exist yet.

    Released versions become closed milestones, due on the release date.

    Returns:
        Titles of the milestones that were created
    """
    existing = set(retrieve_milestones(destination))
    logger.info(f"{len(existing)} existing milestones: {sorted(existing)}")

    to_create = [version for version in versions if milestone_filter.test(version) and version.name not in existing]
    logger.info(f"Creating {len(to_create)} milestones")

    for version in to_create:
        governor.acquire()
        try:
            destination.create_milestone(
                version.name,
                state="closed" if version.released else "open",
                due_on=version.release_date,
            )
        except GithubException as e:
            msg = f"Failed to create milestone {version.name}"
            raise MigrationError(msg) from e
        logger.debug(f"Created milestone: {version.name}")
    return [version.name for version in to_create]
