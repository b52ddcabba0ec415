"""
Custom exception classes for the Jira to GitHub migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class RepositoryStateError(MigrationError):
    """Raised when the destination repository state contradicts the local mapping files."""


class InvalidIssueError(MigrationError):
    """Raised when a Jira issue snapshot lacks required fields."""


class MappingStateError(MigrationError):
    """Raised when a mapping update would put a key in both the completed and pending tables."""


class ConfigurationError(MigrationError):
    """Raised when migration settings are missing or invalid."""
