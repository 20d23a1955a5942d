"""
Tests for configuration discovery and merging.
"""

import json
from pathlib import Path

import pytest

from backport_pilot.config import find_project_config, load_run_options, read_json_config
from backport_pilot.models import DomainError, TargetBranchPolicy


@pytest.fixture()
def global_config(tmp_path: Path) -> Path:
    path = tmp_path / "global.json"
    path.write_text(json.dumps({"username": "sqren", "accessToken": "myAccessToken"}))
    return path


@pytest.fixture()
def project_config(tmp_path: Path) -> Path:
    path = tmp_path / "project" / ".backportrc.json"
    path.parent.mkdir()
    path.write_text(
        json.dumps(
            {
                "upstream": "elastic/kibana",
                "branches": ["7.x", "6.x"],
                "labels": ["backport"],
                "branchLabelMapping": {"^v8.0.0$": "master", "^v(\\d+).(\\d+).\\d+$": "$1.$2"},
                "targetBranchPolicy": "intersection",
                "fork": False,
            }
        )
    )
    return path


class TestDiscovery:
    def test_walks_up_to_project_config(self, project_config):
        nested = project_config.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_config(nested) == project_config.resolve()

    def test_missing_file_reads_as_empty(self, tmp_path):
        assert read_json_config(tmp_path / "missing.json") == {}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{ not json")
        with pytest.raises(DomainError, match="not valid JSON"):
            read_json_config(path)


class TestLoadRunOptions:
    def test_merges_global_and_project(self, global_config, project_config):
        options = load_run_options({}, project_config, global_config)

        assert (options.repo_owner, options.repo_name) == ("elastic", "kibana")
        assert options.username == "sqren"
        assert options.access_token == "myAccessToken"
        assert options.branch_choices == ["7.x", "6.x"]
        assert options.labels == ["backport"]
        assert list(options.branch_label_mapping) == ["^v8.0.0$", "^v(\\d+).(\\d+).\\d+$"]
        assert options.label_policy == TargetBranchPolicy.INTERSECTION
        assert options.fork is False
        assert options.author == "sqren"

    def test_cli_overrides_files(self, global_config, project_config):
        options = load_run_options(
            {
                "upstream": "sqren/backport-demo",
                "username": "other",
                "branches": ("6.x",),
                "labels": (),
                "sha": None,
            },
            project_config,
            global_config,
        )

        assert options.repo_owner == "sqren"
        assert options.repo_name == "backport-demo"
        assert options.username == "other"
        assert options.branches == ["6.x"]
        assert options.labels == ["backport"]
        assert options.sha is None

    def test_missing_upstream(self, global_config, tmp_path):
        with pytest.raises(DomainError, match="upstream"):
            load_run_options({}, tmp_path / "none.json", global_config)

    def test_missing_access_token(self, tmp_path, project_config):
        global_path = tmp_path / "partial.json"
        global_path.write_text(json.dumps({"username": "sqren"}))
        with pytest.raises(DomainError, match="access_token"):
            load_run_options({}, project_config, global_path)

    def test_unknown_policy(self, global_config, tmp_path):
        project = tmp_path / "rc.json"
        project.write_text(json.dumps({"upstream": "elastic/kibana", "targetBranchPolicy": "random"}))
        with pytest.raises(DomainError, match="random"):
            load_run_options({}, project, global_config)

    def test_invalid_label_mapping_pattern(self, global_config, tmp_path):
        project = tmp_path / "rc.json"
        project.write_text(
            json.dumps({"upstream": "elastic/kibana", "branchLabelMapping": {"^v(\\d+$": "$1.x"}})
        )
        with pytest.raises(DomainError, match="branchLabelMapping"):
            load_run_options({}, project, global_config)
