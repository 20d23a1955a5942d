"""
UI-agnostic prompt interface for user interactions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence

from .models import Commit


class BackportPrompt(ABC):
    """Abstract interface for the decisions the backport engine asks the user to make."""

    @abstractmethod
    def select_commits(self, commits: Sequence[Commit], multiple: bool) -> List[Commit]:
        """
        Ask the user which of the candidate commits to backport.

        Args:
            commits: Candidate commits, newest first
            multiple: Whether more than one commit may be chosen

        Returns:
            The chosen commits in the order they should be cherry-picked
        """
        pass

    @abstractmethod
    def select_target_branches(self, choices: Sequence[str], multiple: bool) -> List[str]:
        """
        Ask the user which branches to backport to.

        Args:
            choices: Candidate branch names
            multiple: Whether more than one branch may be chosen

        Returns:
            Selected branch names (may be empty)
        """
        pass

    @abstractmethod
    def confirm_conflicts_resolved(self, repo_path: Path, conflicting_files: List[str]) -> bool:
        """
        Tell the user to resolve and stage the listed files, then wait for confirmation.

        Returns:
            True when the user says they are done, False to abort
        """
        pass

    @abstractmethod
    def confirm_stage_files(self, unstaged_files: List[str]) -> bool:
        """
        Ask whether the listed unstaged files should be staged before continuing.

        Returns:
            True to stage them and continue, False to abort
        """
        pass

    @abstractmethod
    def show_messages(self, messages: List[str], style: str = "") -> None:
        """Display generic user-facing messages from core logic."""
        pass


class NoOpPrompt(BackportPrompt):
    """Non-interactive prompt: selects nothing and aborts on conflicts."""

    def select_commits(self, commits: Sequence[Commit], multiple: bool) -> List[Commit]:
        return []

    def select_target_branches(self, choices: Sequence[str], multiple: bool) -> List[str]:
        return []

    def confirm_conflicts_resolved(self, repo_path: Path, conflicting_files: List[str]) -> bool:
        return False

    def confirm_stage_files(self, unstaged_files: List[str]) -> bool:
        return False

    def show_messages(self, messages: List[str], style: str = "") -> None:
        pass
