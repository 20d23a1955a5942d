"""
Data models for the backport tool.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from git.exc import GitCommandError


SHORT_SHA_LENGTH = 7


@dataclass(frozen=True)
class ExistingTargetPullRequest:
    """A backport pull request that already exists for a source commit."""

    branch: str
    state: str
    number: Optional[int] = None


@dataclass(frozen=True)
class Commit:
    """A commit selected for backporting.

    Instances are produced by the commit resolver and never mutated afterwards.
    """

    sha: str
    original_message: str
    formatted_message: str
    source_branch: str
    pull_number: Optional[int] = None
    target_branches_from_labels: Tuple[str, ...] = ()
    existing_target_pull_requests: Tuple[ExistingTargetPullRequest, ...] = ()

    @property
    def short_sha(self) -> str:
        return self.sha[:SHORT_SHA_LENGTH]

    @property
    def first_message_line(self) -> str:
        return get_first_line(self.original_message)


class BranchSource(Enum):
    """How a target branch was chosen."""

    EXPLICIT = "explicit"
    LABEL = "label"
    PROMPT = "prompt"


@dataclass(frozen=True)
class TargetBranch:
    """A branch to backport into, with its resolution provenance."""

    name: str
    source: BranchSource = BranchSource.EXPLICIT

    def __str__(self) -> str:
        return self.name


@dataclass
class BackportTask:
    """One unit of work: the selected commits replayed onto one target branch."""

    commits: Tuple[Commit, ...]
    target_branch: TargetBranch


@dataclass
class ConflictState:
    """Snapshot of the working copy while a cherry-pick is stopped."""

    conflicting_files: List[str] = field(default_factory=list)
    unstaged_files: List[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.conflicting_files and not self.unstaged_files


@dataclass(frozen=True)
class PullRequestPayload:
    """Everything needed to open a backport pull request."""

    title: str
    body: str
    head: str
    base: str
    branch_name: str
    maintainer_can_modify: bool = True

    def to_json(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "head": self.head,
            "base": self.base,
            "maintainer_can_modify": self.maintainer_can_modify,
        }


@dataclass(frozen=True)
class PullRequest:
    """A pull request created on the remote."""

    number: int
    html_url: str


class TargetBranchPolicy(Enum):
    """How per-commit label-derived branch sets are combined."""

    UNION = "union"
    INTERSECTION = "intersection"
    REJECT = "reject"


@dataclass
class RunOptions:
    """Run configuration. Owned by the caller; the engine only reads it."""

    repo_owner: str
    repo_name: str
    username: str
    access_token: str = ""
    source_branch: str = "master"
    author: Optional[str] = None
    all: bool = False
    path: Optional[str] = None
    max_number: int = 10
    sha: Optional[str] = None
    branches: List[str] = field(default_factory=list)
    branch_choices: List[str] = field(default_factory=list)
    branch_label_mapping: Dict[str, str] = field(default_factory=OrderedDict)
    multiple_branches: bool = True
    multiple_commits: bool = False
    fork: bool = True
    dry_run: bool = False
    reset_author: bool = False
    pr_title: str = "[{targetBranch}] {commitMessages}"
    pr_description: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    auto_assign: bool = False
    label_policy: TargetBranchPolicy = TargetBranchPolicy.UNION
    github_api_base_url_v3: str = "https://api.github.com"
    github_api_base_url_v4: str = "https://api.github.com/graphql"
    git_hostname: str = "github.com"
    repositories_dir: Path = field(
        default_factory=lambda: Path.home() / ".backport" / "repositories"
    )

    def __post_init__(self) -> None:
        if self.author is None and not self.all:
            self.author = self.username
        self.repositories_dir = Path(self.repositories_dir).expanduser()

    @property
    def remote_name(self) -> str:
        """Remote the feature branch is pushed to."""
        return self.username if self.fork else self.repo_owner

    @property
    def repo_owner_path(self) -> Path:
        return self.repositories_dir / self.repo_owner

    @property
    def repo_path(self) -> Path:
        return self.repo_owner_path / self.repo_name


@dataclass
class BackportResult:
    """Outcome of a single backport task."""

    target_branch: str
    pull_request: Optional[PullRequest] = None
    error: Optional[Exception] = None
    follow_up_errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.pull_request is not None


@dataclass
class RunSummary:
    """Aggregate outcome of a run across all target branches."""

    results: List[BackportResult] = field(default_factory=list)

    @property
    def successes(self) -> List[BackportResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failures(self) -> List[BackportResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def ok(self) -> bool:
        return not self.failures


def get_first_line(message: str) -> str:
    return message.split("\n")[0].strip()


class ErrorKind(Enum):
    DOMAIN = "domain"
    TRANSPORT = "transport"
    SUBPROCESS = "subprocess"


class BackportError(Exception):
    """Base exception for backport operations."""

    kind: ErrorKind = ErrorKind.DOMAIN


class DomainError(BackportError):
    """User-facing error. Only the message is shown, never a stack trace."""

    kind = ErrorKind.DOMAIN


class AbortedError(DomainError):
    """The user declined to continue conflict resolution."""

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message)


class TransportError(BackportError):
    """Structured error body returned by the GitHub API, plus request context."""

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[List[Any]] = None,
        documentation_url: Optional[str] = None,
        status_code: Optional[int] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        self.message = message
        self.errors = errors or []
        self.documentation_url = documentation_url
        self.status_code = status_code
        self.method = method
        self.url = url
        super().__init__(self.render())

    def render(self) -> str:
        body: Dict[str, Any] = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        if self.documentation_url:
            body["documentation_url"] = self.documentation_url
        if self.status_code is not None:
            body["status"] = self.status_code
        if self.url:
            body["request"] = f"{self.method or 'GET'} {self.url}"
        return json.dumps(body, indent=2)


class SubprocessError(BackportError):
    """A version-control command exited with a non-zero status."""

    kind = ErrorKind.SUBPROCESS

    def __init__(
        self, command: str, exit_code: Optional[int], stdout: str = "", stderr: str = ""
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command '{command}' failed with exit code {exit_code}: {stderr.strip()}")

    @classmethod
    def from_git_error(cls, error: GitCommandError) -> "SubprocessError":
        command = error.command
        if isinstance(command, (list, tuple)):
            command = " ".join(str(part) for part in command)
        status = error.status if isinstance(error.status, int) else None
        return cls(str(command), status, str(error.stdout or ""), str(error.stderr or ""))
