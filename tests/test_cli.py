"""
Tests for CLI module.
"""

import datetime as dt
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from jira_to_github_migrator.cli import build_config, main, parse_arguments, parse_rebuild_arguments
from jira_to_github_migrator.exceptions import MigrationError
from jira_to_github_migrator.migrator import MigrationReport
from jira_to_github_migrator.utils import setup_logging


@pytest.fixture
def tokens() -> Iterator[None]:
    with (
        patch("jira_to_github_migrator.cli.ghu.get_token", return_value="gh-token"),
        patch("jira_to_github_migrator.cli.jru.get_token", return_value=None),
        patch("jira_to_github_migrator.cli.setup_logging"),
    ):
        yield


@pytest.mark.unit
class TestSetupLogging:
    """Test setup_logging verbosity levels."""

    def _setup(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *, verbose: bool) -> str:
        monkeypatch.chdir(tmp_path)
        root_logger = logging.getLogger()
        original_handlers = root_logger.handlers[:]
        original_level = root_logger.level
        root_logger.handlers.clear()
        try:
            setup_logging(verbose=verbose)
            level = root_logger.level
            handler_types = {type(h) for h in root_logger.handlers}
        finally:
            for h in root_logger.handlers:
                h.close()
            root_logger.handlers = original_handlers
            root_logger.setLevel(original_level)
        assert logging.FileHandler in handler_types
        assert logging.StreamHandler in handler_types
        return logging.getLevelName(level)

    def test_default_level_is_info(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        assert self._setup(tmp_path, monkeypatch, verbose=False) == "INFO"
        assert (tmp_path / "migration.log").exists()

    def test_verbose_level_is_debug(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        assert self._setup(tmp_path, monkeypatch, verbose=True) == "DEBUG"


@pytest.mark.unit
class TestParseArguments:
    def test_defaults(self) -> None:
        args = parse_arguments(["MNG", "owner/repo"])

        assert args.jira_project == "MNG"
        assert args.github_repo == "owner/repo"
        assert args.jira_url == "https://issues.apache.org/jira"
        assert args.batch_size == 100
        assert args.max_retries == 5
        assert args.label_translations is None
        assert not args.delete_create_repository

    def test_rebuild_arguments(self) -> None:
        args = parse_rebuild_arguments(["owner/repo", "-o", "out.properties"])
        assert args.github_repo == "owner/repo"
        assert args.output == "out.properties"

    @pytest.mark.usefixtures("tokens")
    def test_build_config(self, tmp_path: Path) -> None:
        users = tmp_path / "users.properties"
        users.write_text("asmith=alice\n")
        args = parse_arguments(
            [
                "MNG",
                "owner/repo",
                "-l",
                "bug:defect",
                "--user-mappings",
                str(users),
                "--markup-cutoff",
                "2021-01-01T00:00:00+00:00",
                "--component",
                "core",
            ]
        )

        config = build_config(args)

        assert config.label_translations == ["bug:defect"]
        assert config.user_mappings == {"asmith": "alice"}
        assert config.markup_cutoff == dt.datetime(2021, 1, 1, tzinfo=dt.UTC)
        assert config.jira_component == "core"
        assert config.github_token == "gh-token"  # noqa: S105
        assert config.jira_token is None

    @pytest.mark.usefixtures("tokens")
    def test_invalid_markup_cutoff(self) -> None:
        with pytest.raises(ValueError, match="Invalid markup cutoff"):
            build_config(parse_arguments(["MNG", "owner/repo", "--markup-cutoff", "soon"]))


@pytest.mark.unit
@pytest.mark.usefixtures("tokens")
class TestMain:
    """Test exit codes and forwarding of the options to the migrator."""

    def _run_main(self, argv: list[str], report: MigrationReport | Exception) -> tuple[int, MagicMock]:
        with patch("jira_to_github_migrator.cli.JiraToGithubMigrator") as mock_migrator:
            if isinstance(report, Exception):
                mock_migrator.from_config.return_value.migrate.side_effect = report
            else:
                mock_migrator.from_config.return_value.migrate.return_value = report
            with pytest.raises(SystemExit) as exc_info:
                main(argv)
        return exc_info.value.code, mock_migrator

    def test_label_translations_passed_to_migrator(self) -> None:
        code, mock_migrator = self._run_main(
            ["-l", "bug:new-bug", "-l", "p*:p-*", "MNG", "owner/repo"], MigrationReport(succeeded=2, total=2)
        )

        assert code == 0
        mock_migrator.from_config.assert_called_once()
        config = mock_migrator.from_config.call_args.args[0]
        assert config.label_translations == ["bug:new-bug", "p*:p-*"]

    def test_failed_imports_still_exit_cleanly(self) -> None:
        code, mock_migrator = self._run_main(
            ["MNG", "owner/repo"], MigrationReport(succeeded=1, failed=1, total=2)
        )
        assert code == 0
        mock_migrator.from_config.return_value.migrate.assert_called_once_with()

    def test_exception_exits_with_error(self) -> None:
        code, _ = self._run_main(["MNG", "owner/repo"], MigrationError("Repository owner/repo already exists"))
        assert code == 1

    def test_rebuild_mappings_command(self, tmp_path: Path) -> None:
        output = tmp_path / "mappings.properties"
        with (
            patch("jira_to_github_migrator.cli.ghu.get_client") as mock_get_client,
            patch("jira_to_github_migrator.cli.rebuild_mappings") as mock_rebuild,
            patch("jira_to_github_migrator.cli.JiraToGithubMigrator") as mock_migrator,
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["rebuild-mappings", "owner/repo", "--output", str(output)])

        assert exc_info.value.code == 0
        mock_get_client.assert_called_once_with("gh-token")
        destination, path = mock_rebuild.call_args.args
        assert destination.repository_slug == "owner/repo"
        assert path == str(output)
        mock_migrator.from_config.assert_not_called()
