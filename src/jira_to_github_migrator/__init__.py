"""
Jira to GitHub Migration Tool

Migrates Jira issues to GitHub through the issue import API, preserving
comments, milestones, labels and links, and resuming safely after failures.
"""

from __future__ import annotations

from .cli import main
from .config import MigrationConfig
from .exceptions import MigrationError, RepositoryStateError
from .labels import LabelTranslator
from .migrator import JiraToGithubMigrator, MigrationReport
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "JiraToGithubMigrator",
    "LabelTranslator",
    "MigrationConfig",
    "MigrationError",
    "MigrationReport",
    "RepositoryStateError",
    "main",
    "setup_logging",
]
