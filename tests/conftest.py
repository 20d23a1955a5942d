"""
Shared fixtures for the backport tests.
"""

from pathlib import Path
from typing import Optional

import pytest

from backport_pilot.models import Commit, RunOptions


def make_commit(
    sha: str = "mySha",
    message: str = "myCommitMessage",
    pull_number: Optional[int] = None,
    source_branch: str = "master",
    target_branches_from_labels=(),
) -> Commit:
    return Commit(
        sha=sha,
        original_message=message,
        formatted_message=message,
        source_branch=source_branch,
        pull_number=pull_number,
        target_branches_from_labels=tuple(target_branches_from_labels),
    )


@pytest.fixture()
def options(tmp_path: Path) -> RunOptions:
    return RunOptions(
        repo_owner="elastic",
        repo_name="kibana",
        username="sqren",
        access_token="myAccessToken",
        labels=["backport"],
        repositories_dir=tmp_path / "repositories",
    )
