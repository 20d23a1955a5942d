"""
Configuration loading: global config, project `.backportrc.json`, CLI overrides.
"""

from __future__ import annotations

import json
import logging
import os
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Optional

from .models import DomainError, RunOptions, TargetBranchPolicy
from .target_branch_resolver import compile_branch_label_mapping


logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILENAME = ".backportrc.json"

# Project config keys -> RunOptions fields
PROJECT_KEYS = {
    "branches": "branch_choices",
    "branchLabelMapping": "branch_label_mapping",
    "labels": "labels",
    "assignees": "assignees",
    "autoAssign": "auto_assign",
    "sourceBranch": "source_branch",
    "prTitle": "pr_title",
    "prDescription": "pr_description",
    "fork": "fork",
    "resetAuthor": "reset_author",
    "maxNumber": "max_number",
    "multipleCommits": "multiple_commits",
    "multipleBranches": "multiple_branches",
    "targetBranchPolicy": "label_policy",
}

GLOBAL_KEYS = {
    "username": "username",
    "accessToken": "access_token",
    "gitHostname": "git_hostname",
    "githubApiBaseUrlV3": "github_api_base_url_v3",
    "githubApiBaseUrlV4": "github_api_base_url_v4",
}


def default_global_config_path() -> Path:
    env_path = os.environ.get("BACKPORT_PILOT_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".backport" / "config.json"


def find_project_config(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from ``start`` looking for `.backportrc.json`."""
    search_path = (start or Path.cwd()).resolve()
    while True:
        candidate = search_path / PROJECT_CONFIG_FILENAME
        if candidate.is_file():
            logger.debug(f"Found project config at {candidate}")
            return candidate
        if search_path == search_path.parent:
            return None
        search_path = search_path.parent


def read_json_config(path: Optional[Path]) -> Dict[str, Any]:
    if path is None or not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"), object_pairs_hook=OrderedDict)
    except ValueError as e:
        raise DomainError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise DomainError(f"Config file {path} must contain a JSON object")
    return data


def _translate(data: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    return {field: data[key] for key, field in keys.items() if key in data}


def load_run_options(
    cli_overrides: Optional[Dict[str, Any]] = None,
    project_config_path: Optional[Path] = None,
    global_config_path: Optional[Path] = None,
) -> RunOptions:
    """Merge global config < project config < CLI overrides into RunOptions.

    ``cli_overrides`` uses RunOptions field names; None values are ignored so
    unset CLI options do not mask file settings.
    """
    global_data = read_json_config(global_config_path or default_global_config_path())
    project_data = read_json_config(project_config_path or find_project_config())

    merged: Dict[str, Any] = {}
    merged.update(_translate(global_data, GLOBAL_KEYS))
    merged.update(_translate(project_data, PROJECT_KEYS))

    upstream = project_data.get("upstream")
    for key, value in (cli_overrides or {}).items():
        if value is None or value == () or value == []:
            continue
        if key == "upstream":
            upstream = value
            continue
        merged[key] = list(value) if isinstance(value, tuple) else value

    if not upstream or "/" not in upstream:
        raise DomainError(
            'Missing or invalid "upstream". Set it in .backportrc.json or pass --upstream owner/repo'
        )
    repo_owner, repo_name = upstream.split("/", 1)

    for required in ("username", "access_token"):
        if not merged.get(required):
            raise DomainError(
                f'Missing "{required}". Set it in {default_global_config_path()} or pass it on the command line'
            )

    policy = merged.get("label_policy")
    if isinstance(policy, str):
        try:
            merged["label_policy"] = TargetBranchPolicy(policy.lower())
        except ValueError as e:
            raise DomainError(f'Unknown target branch policy "{policy}"') from e

    # Mapping keys must compile as regular expressions
    compile_branch_label_mapping(merged.get("branch_label_mapping") or {})

    return RunOptions(repo_owner=repo_owner, repo_name=repo_name, **merged)
