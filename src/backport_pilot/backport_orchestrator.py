"""
Main backport orchestration: one task per target branch, run sequentially.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Sequence

from .conflict_resolver import ConflictResolver
from .git_manager import GitManager, ProgressCallback
from .github_client import GithubClient
from .models import (
    BackportError,
    BackportResult,
    BackportTask,
    Commit,
    DomainError,
    RunOptions,
    RunSummary,
    TargetBranch,
)
from .prompt_interface import BackportPrompt, NoOpPrompt
from .pull_request_publisher import PullRequestPublisher, get_reference


logger = logging.getLogger(__name__)


class TaskStage(Enum):
    """Stages of a single backport task, in order."""

    INIT = "init"
    BRANCH_SETUP = "branch_setup"
    CHERRY_PICKING = "cherry_picking"
    CONFLICT_RESOLUTION = "conflict_resolution"
    PUSHED = "pushed"
    PR_CREATED = "pr_created"
    LABELED = "labeled"
    DONE = "done"
    FAILED = "failed"


class BackportOrchestrator:
    """Orchestrates backports of a commit set onto one or more target branches.

    The working copy is a single shared resource: tasks run strictly one after
    another and each owns the clone exclusively while it runs. A failure ends
    the current task only; the remaining target branches are still processed.
    """

    def __init__(
        self,
        options: RunOptions,
        git_manager: GitManager,
        github_client: GithubClient,
        prompt: Optional[BackportPrompt] = None,
        publisher: Optional[PullRequestPublisher] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Initialize the orchestrator with its collaborators."""
        self.options = options
        self.git_manager = git_manager
        self.github_client = github_client
        self.prompt = prompt or NoOpPrompt()
        self.publisher = publisher or PullRequestPublisher(github_client, options)
        self.conflict_resolver = ConflictResolver(git_manager, self.prompt)
        self.progress = progress

    def setup_repo(self) -> None:
        """Make sure the local clone and its remotes exist."""
        self.git_manager.setup_repo(self.progress)

    def build_tasks(
        self, commits: Sequence[Commit], target_branches: Sequence[TargetBranch]
    ) -> List[BackportTask]:
        seen = set()
        tasks: List[BackportTask] = []
        for branch in target_branches:
            if branch.name in seen:
                continue
            seen.add(branch.name)
            tasks.append(BackportTask(commits=tuple(commits), target_branch=branch))
        return tasks

    def run(
        self, commits: Sequence[Commit], target_branches: Sequence[TargetBranch]
    ) -> RunSummary:
        """
        Backport ``commits`` to every target branch.

        Returns:
            RunSummary with one result per target branch, in order
        """
        if not commits:
            raise DomainError("No commits selected")

        summary = RunSummary()
        for task in self.build_tasks(commits, target_branches):
            target = task.target_branch.name
            try:
                result = self.backport_to_branch(task)
            except BackportError as e:
                logger.error(f"Backport to {target} failed: {e}")
                self._enter(TaskStage.FAILED, target)
                result = BackportResult(target_branch=target, error=e)
            except Exception as e:
                logger.error(f"Unexpected error while backporting to {target}: {e}")
                logger.debug("Backport task failed", exc_info=True)
                self._enter(TaskStage.FAILED, target)
                result = BackportResult(target_branch=target, error=e)
            summary.results.append(result)

        logger.info(
            f"Backport run finished: {len(summary.successes)} succeeded, {len(summary.failures)} failed"
        )
        return summary

    def backport_to_branch(self, task: BackportTask) -> BackportResult:
        """Run one task to completion. Any raised error is fatal for this task only."""
        target = task.target_branch.name
        payload = self.publisher.build_payload(task)
        refs = ", ".join(get_reference(c, short=False) for c in task.commits)
        logger.info(f"Backporting {refs} to {target} on {payload.branch_name}")
        self._enter(TaskStage.INIT, target)

        if self.options.dry_run:
            logger.info(f"Dry run: not touching the working copy for {target}")
        else:
            self._enter(TaskStage.BRANCH_SETUP, target)
            self.git_manager.create_feature_branch(target, payload.branch_name)

            for commit in task.commits:
                self._enter(TaskStage.CHERRY_PICKING, target)
                self.cherrypick_and_confirm(commit)

            self.git_manager.push_feature_branch(payload.branch_name)
            self._enter(TaskStage.PUSHED, target)
            self.git_manager.delete_feature_branch(payload.branch_name)

        pull_request, follow_up_errors = self.publisher.publish(payload)
        self._enter(TaskStage.PR_CREATED, target)
        if follow_up_errors:
            logger.warning(f"Pull request #{pull_request.number} created with follow-up errors")
        else:
            self._enter(TaskStage.LABELED, target)
        self._enter(TaskStage.DONE, target)

        return BackportResult(
            target_branch=target, pull_request=pull_request, follow_up_errors=follow_up_errors
        )

    def cherrypick_and_confirm(self, commit: Commit) -> None:
        """Cherry-pick one commit, handing over to the user on conflicts."""
        applied = self.git_manager.cherrypick(commit)
        if not applied:
            self.prompt.show_messages(
                [
                    f"Cherry-picking {commit.formatted_message} failed.",
                    f"Please resolve conflicts in: {self.git_manager.repo_path}",
                ],
                style="bold yellow",
            )
            self._enter(TaskStage.CONFLICT_RESOLUTION, commit.short_sha)
            self.conflict_resolver.resolve()

        if self.options.reset_author:
            self.git_manager.set_commit_author(self.options.username)

    def _enter(self, stage: TaskStage, context: str) -> None:
        logger.debug(f"[{context}] -> {stage.value}")
