"""
Configuration of a migration run.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ConfigurationError
from .importer import DEFAULT_BATCH_SIZE, DEFAULT_MAX_RETRIES
from .mapping_store import DEFAULT_FAILURES_FILE, DEFAULT_MAPPINGS_FILE, DEFAULT_PENDING_FILE

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_USER_MAPPINGS_FILE = "jira-to-github-users.properties"


def read_properties(path: Path) -> dict[str, str]:
    """Read "key=value" or "key:value" lines. Blank lines and "#"/"!" comments are skipped."""
    properties: dict[str, str] = {}
    with path.open(encoding="utf-8") as f:
        for line_number, raw_line in enumerate(f, start=1):
            line = raw_line.strip()
            if not line or line.startswith(("#", "!")):
                continue
            positions = [pos for pos in (line.find("="), line.find(":")) if pos > 0]
            if not positions:
                logger.warning(f"{path}:{line_number}: ignoring line without separator: {line}")
                continue
            separator = min(positions)
            properties[line[:separator].strip()] = line[separator + 1 :].strip()
    return properties


def load_user_mappings(path: Path | str) -> dict[str, str]:
    """Jira user key → GitHub login. A missing file means no mappings."""
    path = Path(path)
    if not path.exists():
        logger.info(f"No user mappings file {path}, assignees and mentions stay unmapped")
        return {}
    mappings = {key: login.lstrip("@") for key, login in read_properties(path).items() if login}
    logger.info(f"Loaded {len(mappings)} user mappings from {path}")
    return mappings


@dataclass
class MigrationConfig:
    jira_url: str
    jira_project_id: str
    github_repository_slug: str
    github_token: str
    jira_token: str | None = None
    migrate_jql: str | None = None
    jira_component: str | None = None
    delete_create_repository: bool = False
    user_mappings: dict[str, str] = field(default_factory=dict)
    label_translations: list[str] = field(default_factory=list)
    markup_cutoff: dt.datetime | None = None
    reference_url_field: str | None = None
    pull_request_url_field: str | None = None
    import_batch_size: int = DEFAULT_BATCH_SIZE
    max_poll_retries: int = DEFAULT_MAX_RETRIES
    rate_limit_interval: float = 1.0
    mappings_file: Path = Path(DEFAULT_MAPPINGS_FILE)
    pending_file: Path = Path(DEFAULT_PENDING_FILE)
    failures_file: Path = Path(DEFAULT_FAILURES_FILE)

    def __post_init__(self) -> None:
        if not self.migrate_jql:
            self.migrate_jql = f"project = {self.jira_project_id} ORDER BY key ASC"
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError for values that would fail later in the run."""
        if not self.jira_url:
            msg = "Jira URL is required"
            raise ConfigurationError(msg)
        if not self.jira_project_id:
            msg = "Jira project id is required"
            raise ConfigurationError(msg)
        if self.github_repository_slug.count("/") != 1 or not all(self.github_repository_slug.split("/")):
            msg = f"Invalid GitHub repository '{self.github_repository_slug}'. Expected format: 'owner/repository'"
            raise ConfigurationError(msg)
        if not self.github_token:
            msg = "GitHub token is required"
            raise ConfigurationError(msg)
        if self.import_batch_size < 1:
            msg = f"Import batch size must be at least 1, got {self.import_batch_size}"
            raise ConfigurationError(msg)
        if self.max_poll_retries < 1:
            msg = f"Maximum poll retries must be at least 1, got {self.max_poll_retries}"
            raise ConfigurationError(msg)
        if self.rate_limit_interval < 0:
            msg = f"Rate limit interval must not be negative, got {self.rate_limit_interval}"
            raise ConfigurationError(msg)
