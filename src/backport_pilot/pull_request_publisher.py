"""
Deterministic pull request naming and content, and publication to GitHub.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from .github_client import GithubClient
from .models import BackportTask, Commit, PullRequest, PullRequestPayload, RunOptions


logger = logging.getLogger(__name__)

MAX_REF_SEGMENT_LENGTH = 200
MAX_TITLE_MESSAGES_LENGTH = 200


def get_reference(commit: Commit, short: bool) -> str:
    if commit.pull_number:
        return f"pr-{commit.pull_number}" if short else f"#{commit.pull_number}"
    return f"commit-{commit.short_sha}" if short else commit.short_sha


def get_backport_branch_name(target_branch: str, commits: Sequence[Commit]) -> str:
    """`backport/<target>/<refs>`, refs joined by `_` and capped at 200 characters."""
    refs = "_".join(get_reference(c, short=True) for c in commits)[:MAX_REF_SEGMENT_LENGTH]
    return f"backport/{target_branch}/{refs}"


def get_commit_messages_for_title(commits: Sequence[Commit]) -> str:
    return " | ".join(c.first_message_line for c in commits)[:MAX_TITLE_MESSAGES_LENGTH]


def get_commit_line_for_body(commit: Commit) -> str:
    ref = get_reference(commit, short=False)
    message = commit.first_message_line.replace(f"({ref})", "", 1).strip()
    return f" - {message} ({ref})"


def render_template(template: str, target_branch: str, commit_messages: str) -> str:
    return (
        template.replace("{targetBranch}", target_branch)
        .replace("{baseBranch}", target_branch)
        .replace("{commitMessages}", commit_messages)
    )


class PullRequestPublisher:
    """Builds the pull request payload for a task and publishes it."""

    def __init__(self, github_client: GithubClient, options: RunOptions) -> None:
        self.github_client = github_client
        self.options = options

    def get_title(self, target_branch: str, commits: Sequence[Commit]) -> str:
        return render_template(
            self.options.pr_title, target_branch, get_commit_messages_for_title(commits)
        )

    def get_body(self, target_branch: str, commits: Sequence[Commit]) -> str:
        lines = "\n".join(get_commit_line_for_body(c) for c in commits)
        body = f"Backports the following commits to {target_branch}:\n{lines}"
        if self.options.pr_description:
            body += f"\n\n{self.options.pr_description}"
        return body

    def build_payload(self, task: BackportTask) -> PullRequestPayload:
        target = task.target_branch.name
        branch_name = get_backport_branch_name(target, task.commits)
        return PullRequestPayload(
            title=self.get_title(target, task.commits),
            body=self.get_body(target, task.commits),
            head=f"{self.options.remote_name}:{branch_name}",
            base=target,
            branch_name=branch_name,
        )

    def get_assignees(self) -> List[str]:
        if self.options.assignees:
            return list(self.options.assignees)
        if self.options.auto_assign:
            return [self.options.username]
        return []

    def publish(self, payload: PullRequestPayload) -> Tuple[PullRequest, List[str]]:
        """Create the pull request, then apply labels and assignees.

        Label and assignee failures never undo the created pull request; they
        are logged and returned as follow-up errors.
        """
        pull_request = self.github_client.create_pull_request(payload)
        follow_up_errors: List[str] = []

        if self.options.labels:
            try:
                self.github_client.add_labels_to_pull_request(pull_request.number, self.options.labels)
            except Exception as e:
                logger.error(f"Failed to add labels to #{pull_request.number}: {e}")
                follow_up_errors.append(f"Adding labels failed: {e}")

        assignees = self.get_assignees()
        if assignees:
            try:
                self.github_client.add_assignees_to_pull_request(pull_request.number, assignees)
            except Exception as e:
                logger.error(f"Failed to add assignees to #{pull_request.number}: {e}")
                follow_up_errors.append(f"Adding assignees failed: {e}")

        return pull_request, follow_up_errors
