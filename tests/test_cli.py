"""
Tests for the CLI interface.
"""

from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from backport_pilot import __version__
from backport_pilot.cli import cli
from backport_pilot.cli_prompt import _parse_selection
from backport_pilot.models import (
    BackportResult,
    DomainError,
    PullRequest,
    RunSummary,
    TargetBranch,
    TransportError,
)

from conftest import make_commit


@pytest.fixture(autouse=True)
def log_to_tmp(tmp_path, monkeypatch):
    monkeypatch.setenv("BACKPORT_PILOT_LOG", str(tmp_path / "logs" / "backport-pilot.log"))


class TestCLI:
    """Test CLI commands."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_cli_help(self):
        result = self.runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Backport Pilot" in result.output

    def test_version_option(self):
        result = self.runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert result.output.strip() == f"backport-pilot {__version__}"

    def test_branch_name_command(self):
        result = self.runner.invoke(cli, ["branch-name", "6.x", "1000", "#2000"])
        assert result.exit_code == 0
        assert result.output.strip() == "backport/6.x/pr-1000_pr-2000"

    def test_branch_name_with_sha(self):
        result = self.runner.invoke(cli, ["branch-name", "7.x", "abcdef0123456"])
        assert result.exit_code == 0
        assert result.output.strip() == "backport/7.x/commit-abcdef0"


class TestRunCommand:
    """The run command wires resolvers and orchestrator together."""

    def setup_method(self):
        self.runner = CliRunner()

    def invoke(self, options, summary=None, resolve_error=None):
        commit = make_commit("mySha", "myCommitMessage (#1000)", 1000)
        with patch("backport_pilot.cli.load_run_options", return_value=options) as load, patch(
            "backport_pilot.cli.GithubClient"
        ), patch("backport_pilot.cli.GitManager"), patch(
            "backport_pilot.cli.CommitResolver"
        ) as resolver_class, patch(
            "backport_pilot.cli.TargetBranchResolver"
        ) as branch_resolver_class, patch(
            "backport_pilot.cli.BackportOrchestrator"
        ) as orchestrator_class:
            if resolve_error:
                resolver_class.return_value.resolve.side_effect = resolve_error
            else:
                resolver_class.return_value.resolve.return_value = [commit]
            branch_resolver_class.return_value.resolve.return_value = [TargetBranch("6.x")]
            orchestrator = Mock()
            orchestrator.run.return_value = summary or RunSummary()
            orchestrator_class.return_value = orchestrator

            result = self.runner.invoke(cli, ["run", "--upstream", "elastic/kibana", "-b", "6.x"])
            return result, load, orchestrator

    def test_successful_run(self, options):
        summary = RunSummary(
            [BackportResult("6.x", pull_request=PullRequest(1337, "https://github.com/elastic/kibana/pull/1337"))]
        )

        result, load, orchestrator = self.invoke(options, summary)

        assert result.exit_code == 0
        assert "Backport Summary" in result.output
        overrides = load.call_args[0][0]
        assert overrides["upstream"] == "elastic/kibana"
        assert overrides["branches"] == ("6.x",)
        orchestrator.setup_repo.assert_called_once()
        orchestrator.run.assert_called_once()

    def test_dry_run_skips_clone(self, options):
        options.dry_run = True
        summary = RunSummary([BackportResult("6.x", pull_request=PullRequest(1337, "this-is-a-dry-run"))])

        result, _, orchestrator = self.invoke(options, summary)

        assert result.exit_code == 0
        orchestrator.setup_repo.assert_not_called()

    def test_failed_branch_exits_non_zero(self, options):
        summary = RunSummary([BackportResult("6.x", error=DomainError("boom"))])

        result, _, _ = self.invoke(options, summary)

        assert result.exit_code == 1

    def test_domain_error_is_printed_without_traceback(self, options):
        result, _, _ = self.invoke(options, resolve_error=DomainError("There are no commits in this repository"))

        assert result.exit_code == 1
        assert "There are no commits in this repository" in result.output
        assert "Traceback" not in result.output

    def test_transport_error_shows_api_body(self, options):
        result, _, _ = self.invoke(options, resolve_error=TransportError("Bad credentials", status_code=401))

        assert result.exit_code == 1
        assert "Bad credentials" in result.output


class TestSelectionParsing:
    """Numbered selections typed at the prompt."""

    def test_parse_selection(self):
        assert _parse_selection("1, 3", 3) == [0, 2]
        assert _parse_selection("2 2 9 x", 3) == [1]
        assert _parse_selection("", 3) == []
