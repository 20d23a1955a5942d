"""
Command-line interface for the backport tool.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from . import __version__ as PACKAGE_VERSION
from .backport_orchestrator import BackportOrchestrator
from .cli_prompt import CliPrompt
from .commit_resolver import CommitResolver
from .config import load_run_options
from .git_manager import GitManager
from .github_client import GithubClient
from .models import (
    Commit,
    DomainError,
    RunSummary,
    SubprocessError,
    TransportError,
)
from .pull_request_publisher import get_backport_branch_name
from .target_branch_resolver import TargetBranchResolver


console = Console()
logger = logging.getLogger(__name__)


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"backport-pilot {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.backport/backport-pilot.log)."""
    env_path = os.environ.get("BACKPORT_PILOT_LOG")
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".backport"
    base.mkdir(parents=True, exist_ok=True)
    return base / "backport-pilot.log"


def setup_logging(
    verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None
) -> Path:
    """Setup logging with a per-run file plus a rotated aggregate log.

    Console logging is disabled by default; enable via --verbose or --log-level.
    Returns the aggregate log path.
    """
    aggregate_path = Path(log_file) if log_file else _default_log_path()
    base_dir = aggregate_path.parent
    base_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{aggregate_path.stem}-{timestamp}.log"

    root = logging.getLogger()
    # Clear existing handlers to avoid duplication in tests / repeated invocations
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        console_handler = RichHandler(console=console, rich_tracebacks=True)
        console_handler.setLevel(level_map.get((console_level or "info").lower(), logging.INFO))
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

    return aggregate_path


def _maybe_print_log_notice(verbose: bool, console_level: Optional[str], log_path: Path) -> None:
    """Inform user about logging destination and how to enable console logs."""
    if verbose or console_level:
        return
    console.print(f"[dim]Logs are written to {log_path}. Use -v or --log-level to enable console logs.[/dim]")


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_level: Optional[str]) -> None:
    """Backport Pilot - cherry-pick merged commits onto release branches and open pull requests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    if ctx.invoked_subcommand == "branch-name":
        return
    ctx.obj["log_path"] = setup_logging(verbose, console_level=log_level)


def _select_commits(prompt: CliPrompt, commits: List[Commit], multiple: bool) -> List[Commit]:
    if len(commits) == 1:
        console.print(f"Selected commit: [cyan]{commits[0].formatted_message}[/cyan]")
        return commits
    selected = prompt.select_commits(commits, multiple)
    if not selected:
        raise DomainError("No commits selected")
    return selected


def _display_summary(summary: RunSummary) -> None:
    table = Table(show_header=True, header_style="bold magenta", title="Backport Summary")
    table.add_column("Target Branch", style="cyan")
    table.add_column("Result")
    table.add_column("Pull Request / Error")
    for result in summary.results:
        if result.succeeded:
            status = "[green]✅ created[/green]"
            if result.follow_up_errors:
                status = "[yellow]⚠️  created (follow-up errors)[/yellow]"
            detail = result.pull_request.html_url
            if result.follow_up_errors:
                detail += "\n" + "\n".join(result.follow_up_errors)
        else:
            status = "[red]❌ failed[/red]"
            detail = str(result.error)
        table.add_row(result.target_branch, status, detail)
    console.print(table)


@cli.command()
@click.option("--upstream", help="Upstream repository as owner/repo (overrides .backportrc.json)")
@click.option("--username", help="GitHub username (overrides global config)")
@click.option("--access-token", help="GitHub access token (overrides global config)")
@click.option("--branch", "-b", "branches", multiple=True, help="Target branch. Repeatable.")
@click.option("--sha", help="Backport this exact commit")
@click.option("--author", help="Only list commits by this GitHub user")
@click.option("--all", "all_authors", is_flag=True, default=None, help="List commits by all users")
@click.option("--path", help="Only list commits touching this path")
@click.option("--max-number", type=int, help="Maximum number of commits to list")
@click.option("--label", "-l", "labels", multiple=True, help="Label added to the pull request. Repeatable.")
@click.option("--assignee", "assignees", multiple=True, help="Assignee for the pull request. Repeatable.")
@click.option("--auto-assign", is_flag=True, default=None, help="Assign the pull request to yourself")
@click.option("--source-branch", help="Branch the commits are taken from")
@click.option("--no-fork", "no_fork", is_flag=True, help="Push to the upstream repository instead of your fork")
@click.option("--reset-author", is_flag=True, default=None, help="Set yourself as author of the backport commits")
@click.option("--dry-run", is_flag=True, default=None, help="Resolve and print the plan without pushing")
@click.option("--multiple-commits", is_flag=True, default=None, help="Allow selecting more than one commit")
@click.option("--multiple-branches/--single-branch", default=None, help="Allow selecting more than one branch")
@click.pass_context
def run(
    ctx: click.Context,
    upstream: Optional[str],
    username: Optional[str],
    access_token: Optional[str],
    branches: Tuple[str, ...],
    sha: Optional[str],
    author: Optional[str],
    all_authors: Optional[bool],
    path: Optional[str],
    max_number: Optional[int],
    labels: Tuple[str, ...],
    assignees: Tuple[str, ...],
    auto_assign: Optional[bool],
    source_branch: Optional[str],
    no_fork: bool,
    reset_author: Optional[bool],
    dry_run: Optional[bool],
    multiple_commits: Optional[bool],
    multiple_branches: Optional[bool],
) -> None:
    """
    Backport commits to one or more target branches.

    Example: backport-pilot run --upstream elastic/kibana -b 6.x --sha abc1234
    """
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        options = load_run_options(
            {
                "upstream": upstream,
                "username": username,
                "access_token": access_token,
                "branches": branches,
                "sha": sha,
                "author": author,
                "all": all_authors,
                "path": path,
                "max_number": max_number,
                "labels": labels,
                "assignees": assignees,
                "auto_assign": auto_assign,
                "source_branch": source_branch,
                "fork": False if no_fork else None,
                "reset_author": reset_author,
                "dry_run": dry_run,
                "multiple_commits": multiple_commits,
                "multiple_branches": multiple_branches,
            }
        )
        prompt = CliPrompt(console)
        github_client = GithubClient(options)
        git_manager = GitManager(options)

        console.print(f"\n🔍 Loading commits from [cyan]{options.repo_owner}/{options.repo_name}[/cyan]")
        candidates = CommitResolver(github_client, options).resolve()
        commits = _select_commits(prompt, candidates, options.multiple_commits)

        target_branches = TargetBranchResolver(prompt, options.label_policy).resolve(
            commits,
            explicit_branches=options.branches,
            branch_choices=options.branch_choices,
            multiple=options.multiple_branches,
        )

        with Progress(
            TextColumn("[bold blue]Cloning repository (one-time operation)"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
            transient=True,
        ) as progress_bar:
            clone_task = progress_bar.add_task("clone", total=100)
            orchestrator = BackportOrchestrator(
                options,
                git_manager,
                github_client,
                prompt,
                progress=lambda percent: progress_bar.update(clone_task, completed=percent),
            )
            if not options.dry_run:
                orchestrator.setup_repo()

        console.print(
            f"\n📋 Backporting {len(commits)} commit(s) to: "
            + ", ".join(f"[green]{b.name}[/green]" for b in target_branches)
        )
        summary = orchestrator.run(commits, target_branches)
        _display_summary(summary)

        if not summary.ok:
            sys.exit(1)

    except DomainError as e:
        console.print(f"\n❌ {e}", style="bold red")
        logger.debug("Backport aborted due to DomainError", exc_info=True)
        sys.exit(1)
    except TransportError as e:
        console.print("\n❌ **GitHub API Error:**", style="bold red")
        console.print(e.render(), markup=False)
        logger.debug("GitHub API error", exc_info=True)
        sys.exit(1)
    except SubprocessError as e:
        console.print(f"\n❌ **Git Error** (exit code {e.exit_code}): {e.command}", style="bold red")
        if e.stderr:
            console.print(e.stderr, markup=False)
        logger.debug("Git command failed", exc_info=True)
        sys.exit(1)
    except (click.Abort, KeyboardInterrupt):
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Operation cancelled by user", exc_info=True)
        sys.exit(130)
    except Exception as e:
        console.print(f"\n💥 **Unexpected Error:** {e}", style="bold red")
        if ctx.obj.get("verbose"):
            console.print_exception()
        logger.debug("Unexpected error during backport", exc_info=True)
        sys.exit(1)


@cli.command("branch-name")
@click.argument("target_branch")
@click.argument("refs", nargs=-1, required=True)
def branch_name(target_branch: str, refs: Tuple[str, ...]) -> None:
    """
    Print the backport branch name for TARGET_BRANCH and REFS.

    Each ref is a pull request number (`123` or `#123`) or a commit sha.

    Example: backport-pilot branch-name 6.x 1000 2000
    """
    commits = []
    for ref in refs:
        token = ref.lstrip("#")
        pull_number = int(token) if token.isdigit() else None
        commits.append(
            Commit(
                sha="" if pull_number else token,
                original_message="",
                formatted_message="",
                source_branch="",
                pull_number=pull_number,
            )
        )
    click.echo(get_backport_branch_name(target_branch, commits))


if __name__ == "__main__":
    cli()
