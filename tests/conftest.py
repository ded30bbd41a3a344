"""Shared test fixtures."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import pytest

from cascade.config import Settings
from cascade.models import ExecutionLedger, ReleaseUnit


def write_manifest(directory: Path, data: dict[str, Any]) -> Path:
    """Write a package.json into ``directory`` and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(data, indent=2) + "\n")
    return path


def git_cmd(repo: Path, *args: str) -> str:
    """Run git in ``repo`` for test setup, bypassing the echoing wrapper."""
    result = subprocess.run(
        ["git", *args], cwd=repo, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def commit_file(repo: Path, relpath: str, content: str, message: str) -> str:
    """Write a file, commit it and return the new commit hash."""
    path = repo / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git_cmd(repo, "add", relpath)
    git_cmd(repo, "commit", "-m", message)
    return git_cmd(repo, "rev-parse", "HEAD")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a three-package npm workspace (no git)."""
    write_manifest(
        tmp_path,
        {"name": "monorepo", "private": True, "workspaces": ["packages/*"]},
    )
    write_manifest(
        tmp_path / "packages" / "a",
        {"name": "@acme/a", "version": "1.0.0"},
    )
    write_manifest(
        tmp_path / "packages" / "b",
        {
            "name": "@acme/b",
            "version": "2.0.0",
            "dependencies": {"@acme/a": "^1.0.0", "left-pad": "^1.3.0"},
        },
    )
    write_manifest(
        tmp_path / "packages" / "c",
        {
            "name": "@acme/c",
            "version": "0.3.0",
            "devDependencies": {"@acme/a": "workspace:^1.0.0"},
        },
    )
    return tmp_path


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create an empty git repository with a committer identity."""
    git_cmd(tmp_path, "init", "-q", "-b", "main")
    git_cmd(tmp_path, "config", "user.email", "release@example.com")
    git_cmd(tmp_path, "config", "user.name", "Release Bot")
    git_cmd(tmp_path, "config", "commit.gpgsign", "false")
    git_cmd(tmp_path, "config", "tag.gpgsign", "false")
    return tmp_path


@pytest.fixture
def settings() -> Settings:
    return Settings(
        token="ghp_test",
        repository="acme/monorepo",
        run_id="42",
        registry="https://registry.example.com/",
    )


@pytest.fixture
def ledger() -> ExecutionLedger:
    return ExecutionLedger(original_commit="abc1234def", branch="main")


@pytest.fixture
def units(tmp_path: Path) -> list[ReleaseUnit]:
    """Three release units rooted under tmp_path."""
    return [
        ReleaseUnit(
            name="@acme/a",
            current="1.0.0",
            next="1.1.0",
            directory=tmp_path / "packages" / "a",
        ),
        ReleaseUnit(
            name="@acme/b",
            current="2.0.0",
            next="2.0.1",
            directory=tmp_path / "packages" / "b",
            dependency_updates={"@acme/a": "1.1.0"},
            dependency_commits_done=True,
        ),
        ReleaseUnit(
            name="@acme/c",
            current="0.3.0",
            next="0.3.1",
            directory=tmp_path / "packages" / "c",
            dependency_updates={"@acme/a": "1.1.0"},
        ),
    ]
