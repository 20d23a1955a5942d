"""
Basic tests for the backport tool package.
"""

import re

from backport_pilot import __version__
from backport_pilot import (
    BackportOrchestrator, BackportTask, Commit, RunOptions, TargetBranch,
    GitManager, GithubClient, CommitResolver, TargetBranchResolver,
    ConflictResolver, PullRequestPublisher,
)


def test_version_matches_semver():
    assert re.match(r"^\d+\.\d+\.\d+$", __version__)


def test_all_imports():
    """Test that all main classes can be imported."""
    for obj in (
        BackportOrchestrator, BackportTask, Commit, RunOptions, TargetBranch,
        GitManager, GithubClient, CommitResolver, TargetBranchResolver,
        ConflictResolver, PullRequestPublisher,
    ):
        assert obj is not None
