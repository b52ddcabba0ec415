from __future__ import annotations

import logging
import os
from typing import Final

from github import Github, GithubException, UnknownObjectException
from github.AuthenticatedUser import AuthenticatedUser
from github.Organization import Organization
from github.Repository import Repository

from . import utils
from .exceptions import ConfigurationError, MigrationError

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "GITHUB_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "github/cli/token"  # noqa: S105


def get_token(pass_path: str | None = None) -> str:
    """Get GitHub token from pass path, env var GITHUB_TOKEN, or default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except (ValueError, utils.PassError) as e:
        msg = f"No GitHub token specified: set {_TOKEN_ENV_VAR} or use --github-pass-token"
        raise ConfigurationError(msg) from e


def get_client(token: str | None = None) -> Github:
    """Get a GitHub client using the token."""
    return Github(token)


def split_repo_path(repo_path: str) -> tuple[str, str]:
    """Split "owner/repository" into its parts."""
    parts = repo_path.strip().split("/")
    if len(parts) != 2 or not all(parts):  # noqa: PLR2004
        msg = f"Invalid GitHub repository path '{repo_path}'. Expected format: 'owner/repository'"
        raise MigrationError(msg)
    return parts[0], parts[1]


def get_repo(client: Github, repo_path: str) -> Repository | None:
    try:
        return client.get_repo(repo_path)
    except UnknownObjectException as e:
        if e.status == 404:  # noqa: PLR2004
            return None
        msg = f"Error checking repository existence: {e}"
        raise MigrationError(msg) from e


def create_repo(client: Github, repo_path: str, description: str | None = None) -> Repository:
    """Create a private GitHub repository for the migrated issues."""
    owner, repo_name = split_repo_path(repo_path)

    if get_repo(client, repo_path) is not None:
        msg = f"Repository {repo_path} already exists"
        raise MigrationError(msg)

    try:
        org: Organization = client.get_organization(owner)
        return org.create_repo(
            name=repo_name,
            description=description or "",
            private=True,
            has_issues=True,
        )
    except UnknownObjectException as e:
        if e.status != 404:  # noqa: PLR2004
            raise
    except GithubException as e:
        msg = f"Failed to create repository {repo_path}: {e}"
        raise MigrationError(msg) from e

    # Not an organization, so it must be the authenticated user
    authenticated_user = client.get_user()
    assert isinstance(authenticated_user, AuthenticatedUser)  # always true
    if owner != authenticated_user.login:
        msg = (
            f"Cannot create repository for '{owner}'. "
            "The specified owner is not an organization and does not match "
            f"the authenticated user '{authenticated_user.login}'."
        )
        raise MigrationError(msg)
    try:
        return authenticated_user.create_repo(
            name=repo_name,
            description=description or "",
            private=True,
            has_issues=True,
        )
    except GithubException as e:
        msg = f"Failed to create repository {repo_path}: {e}"
        raise MigrationError(msg) from e


def delete_repo(client: Github, repo_path: str) -> bool:
    """Delete the repository. Returns False if it did not exist."""
    repo = get_repo(client, repo_path)
    if repo is None:
        return False
    logger.info(f"Deleting repository {repo_path}")
    try:
        repo.delete()
    except GithubException as e:
        msg = f"Failed to delete repository {repo_path}: {e}"
        raise MigrationError(msg) from e
    return True
