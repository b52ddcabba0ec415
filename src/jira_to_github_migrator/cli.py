"""
Command-line interface for the Jira to GitHub migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from . import github_utils as ghu
from . import jira_utils as jru
from .config import DEFAULT_USER_MAPPINGS_FILE, MigrationConfig, load_user_mappings
from .github_target import GithubDestination
from .importer import DEFAULT_BATCH_SIZE, DEFAULT_MAX_RETRIES
from .mapping_rebuild import rebuild_mappings
from .mapping_store import DEFAULT_MAPPINGS_FILE
from .migrator import JiraToGithubMigrator
from .utils import parse_timestamp, setup_logging

REBUILD_MAPPINGS_COMMAND = "rebuild-mappings"
DEFAULT_JIRA_URL = "https://issues.apache.org/jira"


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument("github_repo", help="GitHub repository path (owner/repo)")
    _ = parser.add_argument(
        "--github-pass-token",
        dest="github_token_path",
        help="Path for GitHub token in pass utility (default: github/cli/token)",
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for a migration run."""
    parser = argparse.ArgumentParser(
        description="Migrate Jira issues to GitHub through the issue import API",
        epilog=f"Run '%(prog)s {REBUILD_MAPPINGS_COMMAND} --help' to rebuild a lost mappings file.",
    )

    # Positional arguments
    _ = parser.add_argument("jira_project", help="Jira project key (e.g. MNG)")
    _add_common_arguments(parser)

    _ = parser.add_argument("--jira-url", default=DEFAULT_JIRA_URL, help="Jira base URL (default: %(default)s)")
    _ = parser.add_argument("--jql", help="JQL selecting the issues (default: all issues of the project, by key)")
    _ = parser.add_argument("--component", help="Only migrate issues of this Jira component")
    _ = parser.add_argument(
        "--relabel",
        "-l",
        dest="label_translations",
        action="append",
        help='Label translation pattern (format: "source_pattern:target_pattern"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--user-mappings",
        default=DEFAULT_USER_MAPPINGS_FILE,
        help="Properties file mapping Jira user keys to GitHub logins (default: %(default)s)",
    )
    _ = parser.add_argument(
        "--markup-cutoff",
        help="ISO timestamp; content created before it renders user mentions by name instead of @login",
    )
    _ = parser.add_argument("--reference-url-field", help="Jira custom field holding a reference URL")
    _ = parser.add_argument("--pull-request-url-field", help="Jira custom field holding a pull request URL")
    _ = parser.add_argument(
        "--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Imports submitted between status checks"
    )
    _ = parser.add_argument(
        "--max-retries", type=int, default=DEFAULT_MAX_RETRIES, help="Status polls before an import counts as failed"
    )
    _ = parser.add_argument(
        "--rate-limit-interval", type=float, default=1.0, help="Minimum seconds between GitHub write calls"
    )
    _ = parser.add_argument(
        "--delete-create-repository",
        action="store_true",
        help="Test mode: delete and recreate the GitHub repository, skip assignees and pull request links",
    )
    _ = parser.add_argument(
        "--jira-pass-token", dest="jira_token_path", help="Path for Jira token in pass utility (default: jira/cli/ro_token)"
    )

    return parser.parse_args(argv)


def parse_rebuild_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for rebuilding the mappings file."""
    parser = argparse.ArgumentParser(
        prog=f"jira-to-github-migrator {REBUILD_MAPPINGS_COMMAND}",
        description="Rebuild the Jira to GitHub issue mappings from the issue titles of the repository",
    )
    _add_common_arguments(parser)
    _ = parser.add_argument(
        "--output", "-o", default=DEFAULT_MAPPINGS_FILE, help="File to write the mappings to (default: %(default)s)"
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> MigrationConfig:
    markup_cutoff = parse_timestamp(args.markup_cutoff)
    if args.markup_cutoff and markup_cutoff is None:
        msg = f"Invalid markup cutoff timestamp: {args.markup_cutoff}"
        raise ValueError(msg)

    return MigrationConfig(
        jira_url=args.jira_url,
        jira_project_id=args.jira_project,
        github_repository_slug=args.github_repo,
        github_token=ghu.get_token(args.github_token_path),
        jira_token=jru.get_token(args.jira_token_path),
        migrate_jql=args.jql,
        jira_component=args.component,
        delete_create_repository=args.delete_create_repository,
        user_mappings=load_user_mappings(Path(args.user_mappings)),
        label_translations=args.label_translations or [],
        markup_cutoff=markup_cutoff,
        reference_url_field=args.reference_url_field,
        pull_request_url_field=args.pull_request_url_field,
        import_batch_size=args.batch_size,
        max_poll_retries=args.max_retries,
        rate_limit_interval=args.rate_limit_interval,
    )


def run_migration(argv: list[str]) -> int:
    args = parse_arguments(argv)
    setup_logging(verbose=args.verbose)
    logger = logging.getLogger(__name__)

    try:
        migrator = JiraToGithubMigrator.from_config(build_config(args))
        report = migrator.migrate()
    except Exception:
        logger.exception("Migration failed")
        return 1

    logger.info(
        f"Migration finished: {report.succeeded} succeeded, {report.failed} failed, {report.skipped} skipped, "
        f"{report.pending} pending, {report.holders} backport holders"
    )
    if not report.success:
        logger.error(f"Failed imports are listed in {migrator.store.failures_path}; fix them and run again")
    return 0


def run_rebuild_mappings(argv: list[str]) -> int:
    args = parse_rebuild_arguments(argv)
    setup_logging(verbose=args.verbose)
    logger = logging.getLogger(__name__)

    try:
        token = ghu.get_token(args.github_token_path)
        destination = GithubDestination(ghu.get_client(token), args.github_repo, token)
        rebuild_mappings(destination, args.output)
    except Exception:
        logger.exception("Rebuilding mappings failed")
        return 1
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv[0] == REBUILD_MAPPINGS_COMMAND:
        sys.exit(run_rebuild_mappings(argv[1:]))
    sys.exit(run_migration(argv))
