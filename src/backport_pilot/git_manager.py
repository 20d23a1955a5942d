"""
Git operations on the local backport clone.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from git import InvalidGitRepositoryError, NoSuchPathError, RemoteProgress, Repo
from git.exc import GitCommandError

from .models import Commit, DomainError, RunOptions, SubprocessError


logger = logging.getLogger(__name__)

# Exit status of `git cherry-pick` when the replay stopped on conflicts
CHERRYPICK_CONFLICT_STATUS = 1
# Exit status of `git diff --check` when conflict markers remain
DIFF_CHECK_CONFLICT_STATUS = 2
# Exit status of `git cherry-pick --continue` when nothing is in progress
CHERRYPICK_NOT_IN_PROGRESS_STATUS = 128

DIFF_CHECK_LINE_PATTERN = re.compile(r"^(.+?):\d+: ")

ProgressCallback = Callable[[int], None]


class CloneProgress(RemoteProgress):
    """Forwards `Receiving objects` percentages to a progress observer."""

    def __init__(self, callback: ProgressCallback) -> None:
        super().__init__()
        self.callback = callback
        self._last: Optional[int] = None

    def update(self, op_code, cur_count, max_count=None, message="") -> None:
        if not op_code & self.RECEIVING or not max_count:
            return
        percent = int(float(cur_count) / float(max_count) * 100)
        if percent != self._last:
            self._last = percent
            self.callback(percent)


class GitManager:
    """Runs version-control commands against the clone at ``options.repo_path``.

    All mutating operations assume exclusive ownership of the working copy by
    the caller; nothing here is safe to run concurrently.
    """

    def __init__(self, options: RunOptions) -> None:
        self.options = options
        self.repo_path = options.repo_path
        self._repo: Optional[Repo] = None

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            try:
                self._repo = Repo(self.repo_path)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise DomainError(
                    f"No repository clone found at {self.repo_path}. Run the setup step first."
                ) from e
        return self._repo

    # --- Clone and remotes ---
    def get_remote_url(self, repo_owner: str) -> str:
        o = self.options
        return f"https://{o.access_token}@{o.git_hostname}/{repo_owner}/{o.repo_name}.git"

    def repo_exists(self) -> bool:
        return self.repo_path.is_dir()

    def delete_repo(self) -> None:
        self._repo = None
        shutil.rmtree(self.repo_path, ignore_errors=True)

    def clone_repo(self, progress: Optional[ProgressCallback] = None) -> None:
        """Clone the upstream repository, reporting receive progress to ``progress``."""
        self.options.repo_owner_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning {self.options.repo_owner}/{self.options.repo_name} into {self.repo_path}")
        try:
            self._repo = Repo.clone_from(
                self.get_remote_url(self.options.repo_owner),
                str(self.repo_path),
                progress=CloneProgress(progress) if progress else None,
            )
        except GitCommandError as e:
            raise SubprocessError.from_git_error(e) from e

    def delete_remote(self, remote_name: str) -> None:
        """Remove a remote; a missing remote is not an error."""
        try:
            self.repo.git.remote("rm", remote_name)
            logger.debug(f"Removed remote {remote_name}")
        except GitCommandError as e:
            if e.status in (2, 128):
                logger.debug(f"Remote {remote_name} did not exist")
                return
            raise SubprocessError.from_git_error(e) from e

    def add_remote(self, remote_name: str) -> None:
        """Add a remote pointing at ``<remote_name>/<repo>``; failures are swallowed."""
        try:
            self.repo.git.remote("add", remote_name, self.get_remote_url(remote_name))
            logger.debug(f"Added remote {remote_name}")
        except GitCommandError as e:
            # The remote may already exist
            logger.debug(f"Could not add remote {remote_name}: {e}")

    def setup_repo(self, progress: Optional[ProgressCallback] = None) -> None:
        """Clone on first use and recreate remotes with the current access token."""
        if not self.repo_exists():
            try:
                self.clone_repo(progress)
                # The default remote would be confused with the owner remote
                self.delete_remote("origin")
            except Exception:
                logger.error(f"Cloning into {self.repo_path} failed; removing partial clone")
                self.delete_repo()
                raise

        username = self.options.username
        repo_owner = self.options.repo_owner
        self.delete_remote(username)
        self.add_remote(username)
        if username != repo_owner:
            self.delete_remote(repo_owner)
            self.add_remote(repo_owner)

    # --- Branch setup ---
    def create_feature_branch(self, target_branch: str, feature_branch: str) -> None:
        """Reset the working copy and check out ``feature_branch`` from the upstream target."""
        owner = self.options.repo_owner
        try:
            self.repo.git.reset("--hard")
            self.repo.git.clean("-d", "--force")
            self.repo.git.fetch(owner, target_branch)
            self.repo.git.checkout("-B", feature_branch, f"{owner}/{target_branch}", "--no-track")
            logger.info(f"Checked out {feature_branch} from {owner}/{target_branch}")
        except GitCommandError as e:
            stderr = str(e.stderr or "").lower()
            if "couldn't find remote ref" in stderr or "invalid refspec" in stderr:
                raise DomainError(
                    f'The branch "{target_branch}" is invalid or doesn\'t exist'
                ) from e
            raise SubprocessError.from_git_error(e) from e

    def delete_feature_branch(self, feature_branch: str) -> None:
        try:
            self.repo.git.checkout(self.options.source_branch)
            self.repo.git.branch("-D", feature_branch)
            logger.info(f"Deleted local branch {feature_branch}")
        except GitCommandError as e:
            raise SubprocessError.from_git_error(e) from e

    def push_feature_branch(self, feature_branch: str) -> None:
        remote_name = self.options.remote_name
        try:
            self.repo.git.push(remote_name, f"{feature_branch}:{feature_branch}", "--force")
            logger.info(f"Pushed {feature_branch} to {remote_name}")
        except GitCommandError as e:
            raise SubprocessError.from_git_error(e) from e

    # --- Cherry-picking ---
    def cherrypick(self, commit: Commit) -> bool:
        """Cherry-pick ``commit`` onto the current branch.

        Returns:
            True if the commit applied cleanly, False if it stopped on conflicts
        """
        owner = self.options.repo_owner
        branch = commit.source_branch
        try:
            self.repo.git.fetch(owner, f"{branch}:{branch}", "--force")
        except GitCommandError as e:
            raise SubprocessError.from_git_error(e) from e

        try:
            self.repo.git.cherry_pick(commit.sha)
            logger.info(f"Cherry-picked {commit.short_sha}")
            return True
        except GitCommandError as e:
            if e.status == CHERRYPICK_CONFLICT_STATUS:
                logger.warning(f"Cherry-pick of {commit.short_sha} stopped on conflicts")
                return False
            raise SubprocessError.from_git_error(e) from e

    def cherrypick_continue(self) -> None:
        try:
            # Avoid interactive editor prompt
            with self.repo.git.custom_environment(GIT_EDITOR="true"):
                self.repo.git.cherry_pick("--continue")
            logger.info("Cherry-pick continued")
        except GitCommandError as e:
            if e.status == CHERRYPICK_NOT_IN_PROGRESS_STATUS:
                logger.info(
                    f"Cherry-pick continue failed, probably because the cherry-pick was completed manually: {e}"
                )
                return
            raise SubprocessError.from_git_error(e) from e

    def set_commit_author(self, username: str) -> None:
        try:
            self.repo.git.commit(
                "--amend", "--no-edit", f"--author={username} <{username}@users.noreply.github.com>"
            )
        except GitCommandError as e:
            raise SubprocessError.from_git_error(e) from e

    # --- Conflict inspection ---
    def get_files_with_conflicts(self) -> List[str]:
        """Return absolute paths that still contain conflict markers."""
        status, stdout, stderr = self.repo.git.diff(
            "--check", with_extended_output=True, with_exceptions=False
        )
        if status == 0:
            return []
        if status != DIFF_CHECK_CONFLICT_STATUS:
            raise SubprocessError("git diff --check", status, stdout, stderr)

        files: List[str] = []
        for line in stdout.splitlines():
            # Only `<file>:<line>: <problem>` lines name a file
            match = DIFF_CHECK_LINE_PATTERN.match(line)
            if not match:
                continue
            path = str(Path(self.repo_path) / match.group(1))
            if path not in files:
                files.append(path)
        return files

    def get_unstaged_files(self) -> List[str]:
        """Return absolute paths of tracked files with unstaged changes."""
        try:
            output = self.repo.git.add("--update", "--dry-run")
        except GitCommandError as e:
            raise SubprocessError.from_git_error(e) from e
        files: List[str] = []
        for line in output.splitlines():
            match = re.match(r"\w+ '(.*)'", line.strip())
            if match:
                files.append(str(Path(self.repo_path) / match.group(1)))
        return files

    def add_unstaged_files(self) -> None:
        try:
            self.repo.git.add("--update")
        except GitCommandError as e:
            raise SubprocessError.from_git_error(e) from e
