"""
Human-in-the-loop conflict resolution for stopped cherry-picks.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from .git_manager import GitManager
from .models import AbortedError, ConflictState
from .prompt_interface import BackportPrompt, NoOpPrompt


logger = logging.getLogger(__name__)


class ConflictStage(Enum):
    DIRTY = "dirty"
    PROMPTED = "prompted"
    CLEAN = "clean"


class ConflictResolver:
    """Drives the confirm-and-recheck loop until the index is clean or the user aborts.

    No merge strategy is attempted here; resolving the files is up to the user.
    Retries are unbounded, only the user can end the loop early.
    """

    def __init__(self, git_manager: GitManager, prompt: Optional[BackportPrompt] = None) -> None:
        self.git_manager = git_manager
        self.prompt = prompt or NoOpPrompt()

    def get_conflict_state(self) -> ConflictState:
        conflicting = self.git_manager.get_files_with_conflicts()
        # Unstaged files only matter once the markers are gone
        unstaged = [] if conflicting else self.git_manager.get_unstaged_files()
        return ConflictState(conflicting_files=conflicting, unstaged_files=unstaged)

    def resolve(self) -> int:
        """Wait for the user to resolve the stopped cherry-pick, then continue it.

        Returns:
            Number of times the user was prompted

        Raises:
            AbortedError: if the user declines at any prompt
        """
        stage = ConflictStage.DIRTY
        state = self.get_conflict_state()
        prompts = 0

        while stage != ConflictStage.CLEAN:
            if stage == ConflictStage.DIRTY:
                prompts += 1
                if state.conflicting_files or not state.unstaged_files:
                    logger.info(f"Waiting for conflicts to be resolved in {state.conflicting_files}")
                    proceed = self.prompt.confirm_conflicts_resolved(
                        self.git_manager.repo_path, state.conflicting_files
                    )
                else:
                    logger.info(f"Unstaged files after conflict resolution: {state.unstaged_files}")
                    proceed = self.prompt.confirm_stage_files(state.unstaged_files)
                    if proceed:
                        self.git_manager.add_unstaged_files()
                if not proceed:
                    logger.info("User aborted conflict resolution")
                    raise AbortedError()
                stage = ConflictStage.PROMPTED

            elif stage == ConflictStage.PROMPTED:
                state = self.get_conflict_state()
                if state.is_clean:
                    stage = ConflictStage.CLEAN
                else:
                    if state.conflicting_files:
                        self.prompt.show_messages(
                            ["Conflicts still exist. Resolve and stage all files before continuing."],
                            style="bold red",
                        )
                    stage = ConflictStage.DIRTY

        self.git_manager.cherrypick_continue()
        return prompts
