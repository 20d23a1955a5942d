"""
Backport Pilot - replay merged commits onto release branches and open pull requests.

This package resolves commits and their originating pull requests, picks the
target branches, cherry-picks onto a fresh branch per target (guiding the user
through conflicts) and opens one pull request per target branch.
"""

__version__ = "0.1.0"

from .backport_orchestrator import BackportOrchestrator
from .models import (
    BackportTask,
    Commit,
    RunOptions,
    TargetBranch,
    BackportError,
    DomainError,
    TransportError,
    SubprocessError,
)
from .git_manager import GitManager
from .github_client import GithubClient
from .commit_resolver import CommitResolver
from .target_branch_resolver import TargetBranchResolver
from .conflict_resolver import ConflictResolver
from .pull_request_publisher import PullRequestPublisher

__all__ = [
    "BackportOrchestrator",
    "BackportTask",
    "Commit",
    "RunOptions",
    "TargetBranch",
    "BackportError",
    "DomainError",
    "TransportError",
    "SubprocessError",
    "GitManager",
    "GithubClient",
    "CommitResolver",
    "TargetBranchResolver",
    "ConflictResolver",
    "PullRequestPublisher",
]
