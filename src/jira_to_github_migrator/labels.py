"""
Label translation and provisioning for the GitHub repository.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from github import GithubException

from .exceptions import MigrationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .protocols import Destination, LabelHandler
    from .rate_limit import RateLimitGovernor

logger: logging.Logger = logging.getLogger(__name__)


def _is_already_exists_error(exc: GithubException) -> bool:
    """Check if a GithubException is a 422 'already_exists' validation error."""
    if not isinstance(exc.data, dict):
        return False
    errors: Any = exc.data.get("errors")
    if not isinstance(errors, list):
        return False
    return any(isinstance(e, dict) and e.get("code") == "already_exists" for e in errors)


class LabelTranslator:
    """Handles label translation patterns.

    Patterns are ``"source:target"``, or ``"source=target"`` when the source
    itself contains a colon. A ``*`` in the source matches anything and is
    substituted into the target.
    """

    def __init__(self, patterns: Sequence[str] | None) -> None:
        self.patterns: list[tuple[str, str]] = []

        for pattern in patterns or []:
            separator = "=" if "=" in pattern else ":"
            if separator not in pattern:
                msg = f"Invalid pattern format: {pattern}"
                raise ValueError(msg)
            source, target = pattern.split(separator, 1)
            self.patterns.append((source, target))

    def translate(self, label_name: str) -> str:
        """Translate a label name using configured patterns."""
        for source_pattern, target_pattern in self.patterns:
            if "*" in source_pattern:
                regex_pattern = re.escape(source_pattern).replace(r"\*", "(.*)")
                match = re.match(f"^{regex_pattern}$", label_name)
                if match:
                    return target_pattern.replace("*", match.group(1))
            elif source_pattern == label_name:
                return target_pattern
        return label_name


def create_labels_if_not_exist(
    destination: Destination,
    label_handler: LabelHandler,
    governor: RateLimitGovernor,
) -> list[str]:
    """Create every label the handler can produce that the repository does not have.

    Matching is case-insensitive, as GitHub labels are.

    Returns:
        Names of the labels that were created

    Raises:
        MigrationError: If a label cannot be created
    """
    try:
        existing = {name.lower() for name in destination.list_labels()}
    except GithubException as e:
        msg = f"Failed to list labels: {e}"
        raise MigrationError(msg) from e
    logger.info(f"Existing labels: {sorted(existing)}")

    new_labels = [label for label in label_handler.all_labels() if label["name"].lower() not in existing]
    logger.info(f"Creating {len(new_labels)} labels")

    created: list[str] = []
    for label in new_labels:
        logger.debug(f'Creating label: "{label["name"]}"')
        governor.acquire()
        try:
            destination.create_label(
                label["name"], color=label.get("color", "ededed"), description=label.get("description", "")
            )
        except GithubException as e:
            if e.status == 422 and _is_already_exists_error(e):
                # GitHub may provision default labels after repository creation
                logger.debug(f"Label already existed: {label['name']}")
                continue
            msg = f"Failed to create label {label['name']}"
            raise MigrationError(msg) from e
        created.append(label["name"])
    return created
