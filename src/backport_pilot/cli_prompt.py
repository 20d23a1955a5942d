"""
CLI-specific implementation of the prompt interface.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import Commit
from .prompt_interface import BackportPrompt


def _parse_selection(raw: str, count: int) -> List[int]:
    """Parse `1,3` / `2` into zero-based indexes, ignoring anything out of range."""
    indexes: List[int] = []
    for token in raw.replace(" ", ",").split(","):
        token = token.strip()
        if not token.isdigit():
            continue
        idx = int(token) - 1
        if 0 <= idx < count and idx not in indexes:
            indexes.append(idx)
    return indexes


class CliPrompt(BackportPrompt):
    """CLI implementation of the prompt interface using click and rich."""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def select_commits(self, commits: Sequence[Commit], multiple: bool) -> List[Commit]:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Commit", style="yellow")
        table.add_column("Message")
        for i, commit in enumerate(commits, 1):
            table.add_row(str(i), commit.short_sha, commit.formatted_message)
        self.console.print(table)

        hint = "comma separated numbers" if multiple else "a number"
        raw = click.prompt(f"Select commit(s) to backport ({hint})", default="1")
        indexes = _parse_selection(raw, len(commits))
        if not multiple:
            indexes = indexes[:1]
        # Oldest first so cherry-picks replay in history order
        return [commits[i] for i in sorted(indexes, reverse=True)]

    def select_target_branches(self, choices: Sequence[str], multiple: bool) -> List[str]:
        self.console.print("\n🎯 **Select target branch(es)**", style="bold blue")
        for i, choice in enumerate(choices, 1):
            self.console.print(f"  {i}. {choice}")

        hint = "comma separated numbers" if multiple else "a number"
        raw = click.prompt(f"Branches ({hint})", default="1")
        indexes = _parse_selection(raw, len(choices))
        if not multiple:
            indexes = indexes[:1]
        return [choices[i] for i in indexes]

    def confirm_conflicts_resolved(self, repo_path: Path, conflicting_files: List[str]) -> bool:
        self.console.print("\n🔥 **CHERRY-PICK CONFLICTS**", style="bold red")
        if conflicting_files:
            self.console.print(f"\n📄 **Conflicting files** ({len(conflicting_files)}):", style="bold yellow")
            for path in conflicting_files:
                self.console.print(f"  - {path}")

        instructions = [
            f"1. Navigate to: {repo_path}",
            "2. Resolve the conflicts in the files listed above",
            "3. Stage your changes: `git add <resolved-files>`",
            "4. Do NOT commit or run `git cherry-pick --continue`",
            "5. Return here and type 'resolved' to continue",
        ]
        self.console.print(
            Panel("\n".join(instructions), title="Instructions", title_align="left", border_style="blue")
        )

        user_input = click.prompt(
            "\nType 'resolved' when conflicts are fixed, or 'abort' to cancel",
            type=click.Choice(["resolved", "abort"], case_sensitive=False),
            show_choices=False,
        ).lower()
        return user_input == "resolved"

    def confirm_stage_files(self, unstaged_files: List[str]) -> bool:
        self.console.print("\n⚠️  **Unstaged changes**", style="bold yellow")
        for path in unstaged_files:
            self.console.print(f"  - {path}")
        return click.confirm("Stage these files and continue the cherry-pick?", default=True)

    def show_messages(self, messages: List[str], style: str = "") -> None:
        for message in messages:
            self.console.print(message, style=style or None)
