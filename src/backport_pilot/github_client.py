"""
GitHub REST (v3) and GraphQL (v4) client used by the backport engine.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from .models import DomainError, PullRequest, PullRequestPayload, RunOptions, TransportError


logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30

DRY_RUN_PULL_REQUEST = PullRequest(number=1337, html_url="this-is-a-dry-run")

PULL_REQUEST_FRAGMENT = """
fragment SourcePullRequest on PullRequest {
  number
  repository {
    name
    owner {
      login
    }
  }
  mergeCommit {
    oid
  }
  labels(first: 50) {
    nodes {
      name
    }
  }
  timelineItems(last: 20, itemTypes: CROSS_REFERENCED_EVENT) {
    edges {
      node {
        ... on CrossReferencedEvent {
          source {
            __typename
            ... on PullRequest {
              title
              state
              number
              baseRefName
              commits(first: 20) {
                edges {
                  node {
                    commit {
                      message
                    }
                  }
                }
              }
            }
          }
        }
      }
    }
  }
}
"""

COMMIT_HISTORY_QUERY = (
    """
query CommitHistory(
  $repoOwner: String!
  $repoName: String!
  $maxNumber: Int!
  $sourceBranch: String!
  $authorId: ID
  $historyPath: String
) {
  repository(owner: $repoOwner, name: $repoName) {
    ref(qualifiedName: $sourceBranch) {
      target {
        ... on Commit {
          history(first: $maxNumber, author: { id: $authorId }, path: $historyPath) {
            edges {
              node {
                oid
                message
                associatedPullRequests(first: 1) {
                  edges {
                    node {
                      ...SourcePullRequest
                    }
                  }
                }
              }
            }
          }
        }
      }
    }
  }
}
"""
    + PULL_REQUEST_FRAGMENT
)

COMMIT_BY_SHA_QUERY = (
    """
query CommitBySha($repoOwner: String!, $repoName: String!, $sha: String!) {
  repository(owner: $repoOwner, name: $repoName) {
    object(expression: $sha) {
      ... on Commit {
        oid
        message
        associatedPullRequests(first: 1) {
          edges {
            node {
              ...SourcePullRequest
            }
          }
        }
      }
    }
  }
}
"""
    + PULL_REQUEST_FRAGMENT
)

COMMIT_ON_BRANCH_QUERY = """
query CommitOnBranch($repoOwner: String!, $repoName: String!, $sourceBranch: String!, $sha: String!) {
  repository(owner: $repoOwner, name: $repoName) {
    ref(qualifiedName: $sourceBranch) {
      compare(headRef: $sha) {
        status
      }
    }
  }
}
"""

AUTHOR_ID_QUERY = """
query AuthorId($login: String!) {
  user(login: $login) {
    id
  }
}
"""


class GithubClient:
    """Thin wrapper around the GitHub APIs.

    Non-2xx responses and GraphQL error arrays are raised as TransportError so
    the caller can show the API's own message.
    """

    def __init__(self, options: RunOptions, session: Optional[requests.Session] = None) -> None:
        self.options = options
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"token {options.access_token}",
                "Accept": "application/vnd.github.v3+json",
            }
        )

    # --- Transport ---
    def _raise_for_response(self, response: requests.Response, method: str, url: str) -> None:
        if 200 <= response.status_code < 300:
            return
        try:
            data = response.json()
        except ValueError:
            data = {"message": response.text}
        if not isinstance(data, dict):
            data = {"message": str(data)}
        logger.info(f"GitHub API {method} {url} failed with {response.status_code}: {data}")
        raise TransportError(
            data.get("message") or f"HTTP {response.status_code}",
            errors=data.get("errors"),
            documentation_url=data.get("documentation_url"),
            status_code=response.status_code,
            method=method,
            url=url,
        )

    def _post(self, path: str, payload: Any) -> Any:
        url = f"{self.options.github_api_base_url_v3}{path}"
        try:
            response = self.session.post(url, json=payload, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as e:
            raise TransportError(str(e), method="POST", url=url) from e
        self._raise_for_response(response, "POST", url)
        return response.json() if response.content else None

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object."""
        url = self.options.github_api_base_url_v4
        try:
            response = self.session.post(
                url,
                json={"query": query, "variables": variables},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(str(e), method="POST", url=url) from e
        self._raise_for_response(response, "POST", url)

        body = response.json()
        if body.get("errors"):
            errors = body["errors"]
            message = "; ".join(err.get("message", "") for err in errors if isinstance(err, dict))
            raise TransportError(message or "GraphQL query failed", errors=errors, method="POST", url=url)
        return body.get("data") or {}

    # --- Queries ---
    def fetch_author_id(self, author: Optional[str]) -> Optional[str]:
        """Return the GraphQL node id for ``author``, or None when not filtering."""
        if self.options.all or not author:
            return None
        try:
            data = self.graphql(AUTHOR_ID_QUERY, {"login": author})
        except TransportError as e:
            # Unknown logins come back as a NOT_FOUND error next to `user: null`
            if any(isinstance(err, dict) and err.get("type") == "NOT_FOUND" for err in e.errors):
                raise DomainError(f'The author "{author}" does not exist') from e
            raise
        user = data.get("user")
        if not user:
            raise DomainError(f'The author "{author}" does not exist')
        return user["id"]

    def fetch_commit_history(
        self,
        source_branch: str,
        max_number: int,
        author_id: Optional[str] = None,
        path: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return raw history nodes (oid, message, associatedPullRequests)."""
        data = self.graphql(
            COMMIT_HISTORY_QUERY,
            {
                "repoOwner": self.options.repo_owner,
                "repoName": self.options.repo_name,
                "sourceBranch": source_branch,
                "maxNumber": max_number,
                "authorId": author_id,
                "historyPath": path or None,
            },
        )
        ref = (data.get("repository") or {}).get("ref")
        if ref is None:
            raise DomainError(
                f'The upstream branch "{source_branch}" does not exist. '
                'Try specifying a different branch with "--source-branch <your-branch>"'
            )
        edges = ref["target"]["history"]["edges"]
        return [edge["node"] for edge in edges]

    def fetch_commit_by_sha(
        self, sha: str, source_branch: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Return the raw commit node for ``sha`` or None if it does not exist.

        With ``source_branch`` the commit must also be reachable from that branch.
        """
        data = self.graphql(
            COMMIT_BY_SHA_QUERY,
            {
                "repoOwner": self.options.repo_owner,
                "repoName": self.options.repo_name,
                "sha": sha,
            },
        )
        node = (data.get("repository") or {}).get("object")
        if not node or "oid" not in node:
            return None
        if source_branch and not self.is_commit_on_branch(node["oid"], source_branch):
            logger.info(f"Commit {node['oid']} is not reachable from {source_branch}")
            return None
        return node

    def is_commit_on_branch(self, sha: str, branch: str) -> bool:
        data = self.graphql(
            COMMIT_ON_BRANCH_QUERY,
            {
                "repoOwner": self.options.repo_owner,
                "repoName": self.options.repo_name,
                "sourceBranch": branch,
                "sha": sha,
            },
        )
        ref = (data.get("repository") or {}).get("ref")
        if ref is None:
            raise DomainError(
                f'The upstream branch "{branch}" does not exist. '
                'Try specifying a different branch with "--source-branch <your-branch>"'
            )
        # BEHIND: the commit is an ancestor of the branch head
        status = (ref.get("compare") or {}).get("status")
        return status in ("BEHIND", "IDENTICAL")

    # --- Mutations ---
    def create_pull_request(self, payload: PullRequestPayload) -> PullRequest:
        if self.options.dry_run:
            logger.info(f"Dry run: skipping pull request creation for {payload.head} -> {payload.base}")
            return DRY_RUN_PULL_REQUEST
        o = self.options
        data = self._post(f"/repos/{o.repo_owner}/{o.repo_name}/pulls", payload.to_json())
        logger.info(f"Created pull request #{data['number']}: {data['html_url']}")
        return PullRequest(number=data["number"], html_url=data["html_url"])

    def add_labels_to_pull_request(self, pull_number: int, labels: List[str]) -> None:
        if self.options.dry_run:
            return
        o = self.options
        self._post(f"/repos/{o.repo_owner}/{o.repo_name}/issues/{pull_number}/labels", labels)
        logger.info(f"Added labels {labels} to #{pull_number}")

    def add_assignees_to_pull_request(self, pull_number: int, assignees: List[str]) -> None:
        if self.options.dry_run:
            return
        o = self.options
        self._post(
            f"/repos/{o.repo_owner}/{o.repo_name}/issues/{pull_number}/assignees",
            {"assignees": assignees},
        )
        logger.info(f"Added assignees {assignees} to #{pull_number}")
