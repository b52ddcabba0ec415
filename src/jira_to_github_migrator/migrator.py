"""
Main migration class for Jira to GitHub migration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from . import github_utils as ghu
from . import jira_utils as jru
from .backports import BackportAggregator
from .exceptions import InvalidIssueError, RepositoryStateError
from .github_target import GithubDestination
from .importer import ImportEngine
from .issue_builder import IssueBuilder
from .labels import LabelTranslator, create_labels_if_not_exist
from .mapping_store import MappingStore
from .markup import JiraMarkupManager
from .milestones import create_milestones_if_not_exist, retrieve_milestones
from .rate_limit import RateLimitGovernor
from .reconciler import PendingReconciler
from .rules import RuleSet, default_rule_set

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .config import MigrationConfig
    from .models import ImportRequest, Milestone, SourceIssue, SourceUser
    from .protocols import Destination, SourceSystem

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    """Counts of one run. ``total`` is the number of issues this run tried to import."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    pending: int = 0
    holders: int = 0
    total: int = 0

    @property
    def success(self) -> bool:
        return self.failed == 0


def collect_users(issues: Iterable[SourceIssue]) -> dict[str, SourceUser]:
    """All Jira users referenced as reporter, assignee or comment author."""
    users: dict[str, SourceUser] = {}
    for issue in issues:
        for user in (issue.reporter, issue.assignee, *(comment.author for comment in issue.comments)):
            if user is not None and user.key:
                users.setdefault(user.key, user)
    return users


class JiraToGithubMigrator:
    """Main migration class."""

    def __init__(
        self,
        config: MigrationConfig,
        *,
        source: SourceSystem,
        destination: Destination,
        rules: RuleSet | None = None,
        markup: JiraMarkupManager | None = None,
        store: MappingStore | None = None,
        governor: RateLimitGovernor | None = None,
    ) -> None:
        self.config: MigrationConfig = config
        self.source: SourceSystem = source
        self.destination: Destination = destination
        self.rules: RuleSet = rules or default_rule_set(
            component=config.jira_component, translator=LabelTranslator(config.label_translations)
        )
        self.markup: JiraMarkupManager = markup or JiraMarkupManager(config.user_mappings, config.markup_cutoff)
        self.store: MappingStore = store or MappingStore(
            config.mappings_file, config.pending_file, config.failures_file
        )
        self.governor: RateLimitGovernor = governor or RateLimitGovernor(config.rate_limit_interval)

        self.engine: ImportEngine = ImportEngine(
            destination,
            self.store,
            self.governor,
            max_retries=config.max_poll_retries,
            batch_size=config.import_batch_size,
        )
        self.builder: IssueBuilder = IssueBuilder(
            self.markup,
            self.rules.label_handler,
            self.rules.issue_processor,
            repository_slug=config.github_repository_slug,
            user_mappings=config.user_mappings,
            test_mode=config.delete_create_repository,
        )
        self.reconciler: PendingReconciler = PendingReconciler(
            destination, self.store, self.engine, link_pull_requests=not config.delete_create_repository
        )
        self.backports: BackportAggregator = BackportAggregator(self.markup, self.store)

        logger.info(f"Initialized migrator for {config.jira_project_id} -> {config.github_repository_slug}")

    @classmethod
    def from_config(cls, config: MigrationConfig, *, rules: RuleSet | None = None) -> JiraToGithubMigrator:
        """Build a migrator talking to the real Jira and GitHub APIs."""
        jira_client = jru.get_client(config.jira_url, config.jira_token)
        source = jru.JiraSource(
            jira_client,
            reference_url_field=config.reference_url_field,
            pull_request_url_field=config.pull_request_url_field,
        )
        github_client = ghu.get_client(config.github_token)
        destination = GithubDestination(github_client, config.github_repository_slug, config.github_token)
        return cls(config, source=source, destination=destination, rules=rules)

    def recreate_repository(self) -> None:
        """Delete and create the destination repository (test mode).

        Raises:
            RepositoryStateError: If the repository existed while mappings of previous runs exist
        """
        self.governor.acquire()
        deleted = self.destination.delete_repository()
        if deleted and not self.store.is_empty:
            msg = (
                f"Deleted repository {self.config.github_repository_slug} while issue mappings exist. "
                f"Remove {self.store.mappings_path} and {self.store.pending_path} before running again."
            )
            raise RepositoryStateError(msg)
        self.governor.acquire()
        self.destination.create_repository()

    def provision(self) -> None:
        """Create the milestones and labels the import requests refer to."""
        versions = self.source.find_project(self.config.jira_project_id)
        created_milestones = create_milestones_if_not_exist(
            self.destination, versions, self.rules.milestone_filter, self.governor
        )
        created_labels = create_labels_if_not_exist(self.destination, self.rules.label_handler, self.governor)
        logger.info(f"Created {len(created_milestones)} milestones and {len(created_labels)} labels")

    def prepare_all(
        self,
        issues: Iterable[SourceIssue],
        milestones: Mapping[str, Milestone],
        restricted_keys: set[str],
        report: MigrationReport,
    ) -> list[tuple[SourceIssue, ImportRequest]]:
        prepared: list[tuple[SourceIssue, ImportRequest]] = []
        for issue in issues:
            try:
                prepared.append((issue, self.builder.prepare(issue, milestones, restricted_keys)))
            except InvalidIssueError as e:
                logger.error(f"Skipping Jira issue {issue.key or '<no key>'}: {e}")  # noqa: TRY400
                self.store.add_failure_message(f"Skipped {issue.key or '<no key>'}: {e}")
                report.skipped += 1
        return prepared

    def migrate(self) -> MigrationReport:
        """Execute the migration. Safe to re-run after any failure.

        Raises:
            RepositoryStateError: If test mode would recreate a repository that mappings refer to
            MigrationError: If the repository, milestones or labels cannot be set up
        """
        report = MigrationReport()
        with self.store:
            self.store.load()
            logger.info("Starting Jira to GitHub migration")

            if self.config.delete_create_repository:
                self.recreate_repository()

            if self.store.is_empty:
                self.provision()
            milestones = retrieve_milestones(self.destination)

            assert self.config.migrate_jql is not None  # set by MigrationConfig
            issues = self.source.find_issues_votes_and_commits(
                self.config.migrate_jql,
                lambda found: [issue for issue in found if issue.key not in self.store.completed],
            )
            self.markup.configure_user_lookup(collect_users(issues))

            self.reconciler.reconcile(issues)

            restricted_keys = {issue.key for issue in issues if not issue.public}
            if restricted_keys:
                logger.info(f"Skipping {len(restricted_keys)} restricted issues")
            public_issues = [issue for issue in issues if issue.public]
            to_import = [issue for issue in self.store.filter_remaining(public_issues) if self.rules.issue_filter.test(issue)]
            logger.info(f"{len(to_import)} issues to import")

            prepared = self.prepare_all(to_import, milestones, restricted_keys, report)
            outcomes = self.engine.run(prepared)

            report.total = len(to_import)
            report.succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
            report.failed = sum(1 for outcome in outcomes if not outcome.succeeded)
            report.pending = len(self.store.pending)

            if report.failed:
                logger.error(f"{report.failed} failed, {report.succeeded} succeeded, {report.total} total")
                logger.info(self.store.summary())
                return report

            if not self.config.delete_create_repository:
                self.engine.link_imported(outcomes)

            existing_titles = {title for _, title in self.destination.list_issues()}
            holder_requests = [
                (milestone, request)
                for milestone, request in self.backports.build_holders(public_issues, milestones)
                if request.issue.title not in existing_titles
            ]
            holder_outcomes = self.engine.import_holders(holder_requests)
            report.holders = sum(1 for outcome in holder_outcomes if outcome.succeeded)
            report.failed += sum(1 for outcome in holder_outcomes if not outcome.succeeded)

            logger.info(f"{report.failed} failed, {report.succeeded} succeeded, {report.total} total")
            logger.info(self.store.summary())
        return report
