"""
Tests for GitManager command sequences and exit status handling.
"""

from unittest.mock import MagicMock, call

import pytest
from git.exc import GitCommandError

from backport_pilot.git_manager import CloneProgress, GitManager
from backport_pilot.models import DomainError, SubprocessError

from conftest import make_commit


@pytest.fixture()
def manager(options):
    git_manager = GitManager(options)
    git_manager._repo = MagicMock()
    return git_manager


def git_error(command, status, stderr=""):
    return GitCommandError(command, status, stderr=stderr)


class TestRemotes:
    def test_remote_url_contains_token(self, manager):
        assert manager.get_remote_url("sqren") == "https://myAccessToken@github.com/sqren/kibana.git"

    def test_delete_missing_remote_is_ignored(self, manager):
        manager.repo.git.remote.side_effect = git_error(["git", "remote", "rm", "sqren"], 2)
        manager.delete_remote("sqren")

    def test_delete_remote_other_failure_raises(self, manager):
        manager.repo.git.remote.side_effect = git_error(["git", "remote", "rm", "sqren"], 1, "boom")
        with pytest.raises(SubprocessError):
            manager.delete_remote("sqren")

    def test_add_remote_failure_is_swallowed(self, manager):
        manager.repo.git.remote.side_effect = git_error(["git", "remote", "add"], 3, "exists")
        manager.add_remote("sqren")

    def test_setup_repo_recreates_both_remotes(self, manager, options):
        options.repo_path.mkdir(parents=True)

        manager.setup_repo()

        remote_calls = manager.repo.git.remote.call_args_list
        assert remote_calls == [
            call("rm", "sqren"),
            call("add", "sqren", "https://myAccessToken@github.com/sqren/kibana.git"),
            call("rm", "elastic"),
            call("add", "elastic", "https://myAccessToken@github.com/elastic/kibana.git"),
        ]


class TestFeatureBranch:
    def test_create_feature_branch_sequence(self, manager):
        manager.create_feature_branch("6.x", "backport/6.x/pr-1000")

        git = manager.repo.git
        git.reset.assert_called_once_with("--hard")
        git.clean.assert_called_once_with("-d", "--force")
        git.fetch.assert_called_once_with("elastic", "6.x")
        git.checkout.assert_called_once_with("-B", "backport/6.x/pr-1000", "elastic/6.x", "--no-track")

    def test_missing_target_branch_is_a_domain_error(self, manager):
        manager.repo.git.fetch.side_effect = git_error(
            ["git", "fetch", "elastic", "foo"], 128, "fatal: couldn't find remote ref foo"
        )
        with pytest.raises(DomainError, match='The branch "foo" is invalid or doesn\'t exist'):
            manager.create_feature_branch("foo", "backport/foo/pr-1")

    def test_other_fetch_failure_is_a_subprocess_error(self, manager):
        manager.repo.git.fetch.side_effect = git_error(["git", "fetch"], 128, "fatal: unable to access")
        with pytest.raises(SubprocessError) as exc_info:
            manager.create_feature_branch("6.x", "backport/6.x/pr-1")
        assert exc_info.value.exit_code == 128

    def test_push_uses_fork_remote(self, manager):
        manager.push_feature_branch("backport/6.x/pr-1")
        manager.repo.git.push.assert_called_once_with(
            "sqren", "backport/6.x/pr-1:backport/6.x/pr-1", "--force"
        )

    def test_push_without_fork_uses_owner_remote(self, manager, options):
        options.fork = False
        manager.push_feature_branch("backport/6.x/pr-1")
        assert manager.repo.git.push.call_args[0][0] == "elastic"


class TestCherrypick:
    def test_clean_cherrypick(self, manager):
        commit = make_commit("abcdef0123", pull_number=1)

        assert manager.cherrypick(commit) is True
        manager.repo.git.fetch.assert_called_once_with("elastic", "master:master", "--force")
        manager.repo.git.cherry_pick.assert_called_once_with("abcdef0123")

    def test_conflicting_cherrypick(self, manager):
        manager.repo.git.cherry_pick.side_effect = git_error(["git", "cherry-pick", "abc"], 1)
        assert manager.cherrypick(make_commit("abc")) is False

    def test_cherrypick_other_failure_raises(self, manager):
        manager.repo.git.cherry_pick.side_effect = git_error(["git", "cherry-pick", "abc"], 128, "bad object")
        with pytest.raises(SubprocessError):
            manager.cherrypick(make_commit("abc"))

    def test_continue_when_already_committed(self, manager):
        manager.repo.git.cherry_pick.side_effect = git_error(
            ["git", "cherry-pick", "--continue"], 128, "no cherry-pick in progress"
        )
        manager.cherrypick_continue()

    def test_continue_other_failure_raises(self, manager):
        manager.repo.git.cherry_pick.side_effect = git_error(["git", "cherry-pick", "--continue"], 1)
        with pytest.raises(SubprocessError):
            manager.cherrypick_continue()


class TestConflictInspection:
    def test_no_conflicts(self, manager):
        manager.repo.git.diff.return_value = (0, "", "")
        assert manager.get_files_with_conflicts() == []

    def test_conflicting_files_are_listed_once(self, manager, options):
        manager.repo.git.diff.return_value = (
            2,
            "conflicting-file.txt:1: leftover conflict marker\n"
            "+<<<<<<< HEAD\n"
            "conflicting-file.txt:3: leftover conflict marker\n"
            "src/other.txt:7: leftover conflict marker\n",
            "",
        )

        files = manager.get_files_with_conflicts()

        assert files == [
            str(options.repo_path / "conflicting-file.txt"),
            str(options.repo_path / "src/other.txt"),
        ]

    def test_unexpected_diff_status_raises(self, manager):
        manager.repo.git.diff.return_value = (129, "", "usage")
        with pytest.raises(SubprocessError):
            manager.get_files_with_conflicts()

    def test_unstaged_files(self, manager, options):
        manager.repo.git.add.return_value = "add 'conflicting-file.txt'\nadd 'docs/readme.md'"
        assert manager.get_unstaged_files() == [
            str(options.repo_path / "conflicting-file.txt"),
            str(options.repo_path / "docs/readme.md"),
        ]
        manager.repo.git.add.assert_called_once_with("--update", "--dry-run")


class TestMissingClone:
    def test_repo_access_without_clone(self, options):
        with pytest.raises(DomainError, match="No repository clone"):
            GitManager(options).repo


class TestCloneProgress:
    def test_reports_receiving_percentages(self):
        seen = []
        progress = CloneProgress(seen.append)

        progress.update(CloneProgress.RECEIVING, 10, 100)
        progress.update(CloneProgress.RECEIVING, 10, 100)
        progress.update(CloneProgress.COUNTING, 50, 100)
        progress.update(CloneProgress.RECEIVING, 100, 100)

        assert seen == [10, 100]
