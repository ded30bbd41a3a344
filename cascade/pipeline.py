"""Release pipeline: validate → discover → bump → scan → plan → execute.

This module wires the cascade release process together:
1. Validate the environment before touching the repository
2. Discover workspace packages from the root package.json
3. Compute direct bumps from each package's own commits
4. Find packages whose dependencies point at bumped packages
5. Bump those packages too (committing their dependency updates)
6. Execute the plan, rolling back on failure

The commit recorded before step 5 is the rollback target for everything
that follows.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from .bump import compute_direct_bumps
from .config import Settings, load_settings, validate_env
from .deps import compute_dependency_updates
from .executor import ReleaseContext, execute_release
from .host import GitHubReleaseHost, ReleaseHost
from .models import ExecutionLedger, VersionTransition
from .plan import build_release_plan
from .shell import git, warn
from .workspace import describe_packages, find_repo_root, get_workspace_package_paths


def current_branch(root: Path, settings: Settings) -> str:
    """Branch to push the release to; the configured one wins."""
    if settings.branch:
        return settings.branch
    return git("rev-parse", "--abbrev-ref", "HEAD", cwd=root)


def run_release(
    root: Path | None = None,
    environ: Mapping[str, str] | None = None,
    host: ReleaseHost | None = None,
) -> ExecutionLedger | None:
    """Execute the full release pipeline.

    Args:
        root: Directory to search upward from for the workspace root;
              defaults to the current directory.
        environ: Environment to read settings from; defaults to os.environ.
        host: Release host; defaults to GitHub through the gh CLI.

    Returns:
        The final ledger, or None when no package needed a release.

    Raises:
        ConfigError: Pre-flight or workspace validation failed.
        RollbackError: A failed release could not be fully compensated.
    """
    environ = os.environ if environ is None else environ
    validate_env(environ)

    root = find_repo_root(root)
    settings = load_settings(root, environ)
    manifest_paths = get_workspace_package_paths(root)
    describe_packages(manifest_paths)

    direct = compute_direct_bumps(root, manifest_paths)
    if not direct:
        print("\nNothing to release.")
        return None

    branch = current_branch(root, settings)
    ledger = ExecutionLedger(
        original_commit=git("rev-parse", "HEAD", cwd=root), branch=branch
    )

    rewrites = compute_dependency_updates(manifest_paths, direct)
    try:
        plan = build_release_plan(root, manifest_paths, direct, rewrites, ledger)
    except Exception:
        # Dependency commits are local until the release push
        if ledger.commits_made:
            warn(f"discarding {ledger.commits_made} local dependency commit(s)")
            git("reset", "--hard", ledger.original_commit, cwd=root)
        raise

    if host is None:
        host = GitHubReleaseHost(
            settings.owner, settings.repo, timeout=settings.command_timeout
        )
    ctx = ReleaseContext(root=root, settings=settings, host=host, branch=branch)
    return execute_release(plan, ctx, ledger)


def preview_release(
    root: Path | None = None,
) -> tuple[list[VersionTransition], dict[str, dict[str, str]]]:
    """Compute what a release would do without changing anything.

    Returns:
        The direct bumps, and the dependency rewrites each other package
        would receive (those packages get triggered bumps).
    """
    root = find_repo_root(root)
    manifest_paths = get_workspace_package_paths(root)
    describe_packages(manifest_paths)

    direct = compute_direct_bumps(root, manifest_paths)
    if not direct:
        return [], {}
    return direct, compute_dependency_updates(manifest_paths, direct)
