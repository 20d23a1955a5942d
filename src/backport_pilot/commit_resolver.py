"""
Resolution of commits (and their originating pull requests) on the source branch.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .github_client import GithubClient
from .models import (
    SHORT_SHA_LENGTH,
    Commit,
    DomainError,
    ExistingTargetPullRequest,
    RunOptions,
    get_first_line,
)
from .target_branch_resolver import get_target_branches_from_labels


logger = logging.getLogger(__name__)

PULL_NUMBER_PATTERN = re.compile(r"\(#(\d+)\)")


def get_pull_number_from_message(message: str) -> Optional[int]:
    """Parse the trailing-style `(#123)` reference GitHub adds to squash merges."""
    match = PULL_NUMBER_PATTERN.search(message)
    return int(match.group(1)) if match else None


def get_formatted_commit_message(message: str, sha: str, pull_number: Optional[int]) -> str:
    first_line = get_first_line(message)
    if pull_number:
        if re.search(rf"\(#{pull_number}\)\s*$", first_line):
            return first_line
        return f"{first_line} (#{pull_number})"

    short_sha = sha[:SHORT_SHA_LENGTH]
    if first_line.endswith(f"({short_sha})"):
        return first_line
    return f"{first_line} ({short_sha})"


def is_source_pull_request(
    pull_request_node: Optional[Dict[str, Any]], options: RunOptions, sha: str
) -> bool:
    """A pull request counts only if it merged exactly this commit into this repo."""
    if not pull_request_node:
        return False
    repository = pull_request_node.get("repository") or {}
    owner = (repository.get("owner") or {}).get("login")
    merge_commit = pull_request_node.get("mergeCommit") or {}
    return (
        repository.get("name") == options.repo_name
        and owner == options.repo_owner
        and merge_commit.get("oid") == sha
    )


def get_pull_request_labels(pull_request_node: Dict[str, Any]) -> List[str]:
    nodes = (pull_request_node.get("labels") or {}).get("nodes") or []
    return [n["name"] for n in nodes if n and n.get("name")]


def get_existing_target_pull_requests(
    message: str, pull_request_node: Dict[str, Any]
) -> List[ExistingTargetPullRequest]:
    """Find backport pull requests already opened for this commit.

    A cross-referenced pull request is a backport of ``message`` if its title
    contains the commit's first line, or one of its commits has the same first line.
    """
    first_line = get_first_line(message)
    edges = (pull_request_node.get("timelineItems") or {}).get("edges") or []

    existing: List[ExistingTargetPullRequest] = []
    for edge in edges:
        source = ((edge or {}).get("node") or {}).get("source") or {}
        if source.get("__typename", "PullRequest") != "PullRequest" or "baseRefName" not in source:
            continue
        commit_edges = (source.get("commits") or {}).get("edges") or []
        commit_match = any(
            get_first_line(((e.get("node") or {}).get("commit") or {}).get("message", "")) == first_line
            for e in commit_edges
            if e
        )
        title_match = first_line in (source.get("title") or "")
        if commit_match or title_match:
            existing.append(
                ExistingTargetPullRequest(
                    branch=source["baseRefName"],
                    state=source.get("state", ""),
                    number=source.get("number"),
                )
            )
    return existing


class CommitResolver:
    """Turns run options into the ordered list of commits to backport.

    Only performs read-only API calls; the working copy is never touched.
    """

    def __init__(self, github_client: GithubClient, options: RunOptions) -> None:
        self.github_client = github_client
        self.options = options

    def resolve(self) -> List[Commit]:
        if self.options.sha:
            return [self.fetch_commit_by_sha(self.options.sha)]
        return self.fetch_commits_by_author()

    def fetch_commit_by_sha(self, sha: str) -> Commit:
        source_branch = self.options.source_branch
        node = self.github_client.fetch_commit_by_sha(sha, source_branch)
        if node is None:
            raise DomainError(f'No commit found on {source_branch} with sha "{sha}"')
        return self.to_commit(node)

    def fetch_commits_by_author(self) -> List[Commit]:
        o = self.options
        author_id = self.github_client.fetch_author_id(None if o.all else o.author)
        nodes = self.github_client.fetch_commit_history(
            o.source_branch, o.max_number, author_id=author_id, path=o.path
        )
        commits = [self.to_commit(node) for node in nodes]
        logger.info(f"Resolved {len(commits)} commits from {o.source_branch}")

        if not commits:
            raise DomainError(self._no_commits_message())
        return commits

    def _no_commits_message(self) -> str:
        o = self.options
        path_text = f' touching files in path: "{o.path}"' if o.path else ""
        if o.all:
            return f"There are no commits in this repository{path_text}"
        return (
            f'There are no commits by "{o.author}" in this repository{path_text}. '
            "Try with `--all` for commits by all users or `--author=<username>` "
            "for commits from a specific user"
        )

    def to_commit(self, node: Dict[str, Any]) -> Commit:
        sha = node["oid"]
        message = node.get("message") or ""
        source_branch = self.options.source_branch

        # Only the first associated pull request is considered
        pr_edges = (node.get("associatedPullRequests") or {}).get("edges") or []
        pull_request_node = pr_edges[0].get("node") if pr_edges and pr_edges[0] else None

        if not is_source_pull_request(pull_request_node, self.options, sha):
            pull_number = get_pull_number_from_message(message)
            return Commit(
                sha=sha,
                original_message=message,
                formatted_message=get_formatted_commit_message(message, sha, pull_number),
                source_branch=source_branch,
                pull_number=pull_number,
            )

        pull_number = pull_request_node["number"]
        existing = get_existing_target_pull_requests(message, pull_request_node)
        target_branches = get_target_branches_from_labels(
            get_pull_request_labels(pull_request_node),
            self.options.branch_label_mapping,
            existing,
        )
        return Commit(
            sha=sha,
            original_message=message,
            formatted_message=get_formatted_commit_message(message, sha, pull_number),
            source_branch=source_branch,
            pull_number=pull_number,
            target_branches_from_labels=tuple(target_branches),
            existing_target_pull_requests=tuple(existing),
        )
