"""
Target branch resolution: explicit selection, label mapping, or prompt.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from .models import (
    BranchSource,
    Commit,
    DomainError,
    ExistingTargetPullRequest,
    TargetBranch,
    TargetBranchPolicy,
)
from .prompt_interface import BackportPrompt, NoOpPrompt


logger = logging.getLogger(__name__)


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _to_python_template(replacement: str) -> str:
    # Mapping values use `$1` style back-references
    return re.sub(r"\$(\d+)", r"\\g<\1>", replacement)


def compile_branch_label_mapping(
    branch_label_mapping: Dict[str, str]
) -> List[Tuple[Pattern[str], str]]:
    compiled: List[Tuple[Pattern[str], str]] = []
    for pattern, replacement in branch_label_mapping.items():
        try:
            compiled.append((re.compile(pattern), replacement))
        except re.error as e:
            raise DomainError(
                f'Invalid pattern "{pattern}" in branchLabelMapping: {e}'
            ) from e
    return compiled


def get_target_branches_from_labels(
    labels: Sequence[str],
    branch_label_mapping: Optional[Dict[str, str]],
    existing_target_pull_requests: Sequence[ExistingTargetPullRequest] = (),
) -> List[str]:
    """Map pull request labels to target branch names.

    Keys of ``branch_label_mapping`` are regular expressions; the first key
    matching a label wins and its value is used as the replacement template.
    Labels that match nothing are ignored, and branches that already received
    a merged backport are skipped.
    """
    if not branch_label_mapping:
        return []

    compiled = compile_branch_label_mapping(branch_label_mapping)
    already_merged = {pr.branch for pr in existing_target_pull_requests if pr.state == "MERGED"}
    branches: List[str] = []
    for label in labels:
        for regex, replacement in compiled:
            if regex.search(label):
                try:
                    branches.append(regex.sub(_to_python_template(replacement), label, count=1))
                except re.error as e:
                    raise DomainError(
                        f'Invalid replacement "{replacement}" for "{regex.pattern}" in branchLabelMapping: {e}'
                    ) from e
                break
    return [b for b in _unique(branches) if b not in already_merged]


class TargetBranchResolver:
    """Determines the ordered, deduplicated set of branches to backport into."""

    def __init__(
        self,
        prompt: Optional[BackportPrompt] = None,
        policy: TargetBranchPolicy = TargetBranchPolicy.UNION,
    ) -> None:
        self.prompt = prompt or NoOpPrompt()
        self.policy = policy

    def resolve(
        self,
        commits: Sequence[Commit],
        explicit_branches: Sequence[str] = (),
        branch_choices: Sequence[str] = (),
        multiple: bool = True,
    ) -> List[TargetBranch]:
        explicit = _unique(explicit_branches)
        if explicit:
            logger.info(f"Using explicit target branches: {explicit}")
            return [TargetBranch(name, BranchSource.EXPLICIT) for name in explicit]

        from_labels = self.branches_from_labels(commits)
        if from_labels:
            logger.info(f"Target branches derived from labels: {from_labels}")
            return [TargetBranch(name, BranchSource.LABEL) for name in from_labels]

        choices = _unique(branch_choices)
        if not choices:
            raise DomainError(
                "No target branches were given and none could be derived from labels. "
                "Use --branch or configure branch choices."
            )
        selected = _unique(self.prompt.select_target_branches(choices, multiple))
        if not selected:
            raise DomainError("No target branches selected")
        return [TargetBranch(name, BranchSource.PROMPT) for name in selected]

    def branches_from_labels(self, commits: Sequence[Commit]) -> List[str]:
        """Combine each commit's label-derived branches according to the policy."""
        per_commit = [list(c.target_branches_from_labels) for c in commits]
        non_empty = [branches for branches in per_commit if branches]
        if not non_empty:
            return []

        if self.policy == TargetBranchPolicy.REJECT:
            if any(set(b) != set(non_empty[0]) for b in per_commit):
                raise DomainError(
                    "The selected commits map to different target branches: "
                    + "; ".join(f"{c.short_sha} -> {list(c.target_branches_from_labels)}" for c in commits)
                )
            return _unique(non_empty[0])

        if self.policy == TargetBranchPolicy.INTERSECTION:
            common = set(per_commit[0]).intersection(*per_commit[1:])
            return [b for b in _unique(per_commit[0]) if b in common]

        return _unique(b for branches in per_commit for b in branches)
