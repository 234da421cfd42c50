"""Shared fixtures for workflow tests."""

import os
from pathlib import Path

import pytest
import yaml


@pytest.fixture
def write_workflow(tmp_path):
    """Write a workflow dict as YAML and return its path."""
    def _write(content: dict, name: str = "workflow.lobster", directory: Path = None) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        with open(path, 'w') as f:
            yaml.safe_dump(content, f, sort_keys=False)
        return path
    return _write


@pytest.fixture
def base_env():
    """Parent environment snapshot with PATH available for the shell."""
    env = dict(os.environ)
    for key in ('MY_VAR', 'MY_TEST_VAR', 'NAME', 'CMD_VAR'):
        env.pop(key, None)
    return env
