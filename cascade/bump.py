"""Per-package version bump computation.

A package's next version is derived from the conventional commits that touch
its directory since its last ``{name}@{version}`` tag.
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .commits import WhatBump, default_what_bump, find_last_tag, get_commits
from .deps import create_dependency_update_commits, relative_dir
from .manifest import MANIFEST_NAME, get_name, get_version, load_manifest
from .models import ExecutionLedger, VersionTransition
from .shell import step
from .versions import next_version

# Direct bumps only read git history, so they can run side by side
MAX_WORKERS = 8


def compute_package_bump(
    root: Path,
    manifest_path: Path,
    updated_deps: Mapping[str, str] | None = None,
    *,
    ledger: ExecutionLedger | None = None,
    what_bump: WhatBump = default_what_bump,
) -> VersionTransition | None:
    """Compute the next version for one package.

    When ``updated_deps`` is non-empty, one dependency-update commit per entry
    is created first, so the commit range examined below includes them.

    Args:
        root: Repository root.
        manifest_path: The package's package.json.
        updated_deps: Dependency rewrites to commit before classifying.
        ledger: Receives a commit count for each dependency commit.
        what_bump: Classifier turning commits into a recommendation.

    Returns:
        The transition, or None when the package is private, is the workspace
        root, has no commits since its last tag, or the classifier (or the
        version arithmetic) yields no change.

    Raises:
        ValueError: If the manifest lacks a name or version.
        CommandError: If a dependency commit or git lookup fails.
    """
    manifest = load_manifest(manifest_path)
    name = get_name(manifest)
    current = get_version(manifest)
    if not name or not current:
        raise ValueError(f"Missing required fields in package.json: {manifest_path}")

    if manifest.get("private"):
        return None

    # The workspace root only aggregates packages
    if manifest.get("workspaces") and Path(manifest_path).resolve() == (
        Path(root).resolve() / MANIFEST_NAME
    ):
        return None

    pkg_dir = Path(manifest_path).parent

    if updated_deps:
        create_dependency_update_commits(root, updated_deps, pkg_dir, ledger=ledger)

    last_tag = find_last_tag(name, root)
    commits = get_commits(root, relative_dir(root, pkg_dir), from_ref=last_tag)
    if not commits:
        return None

    recommendation = what_bump(commits)
    if recommendation is None:
        return None
    if not recommendation.release_type or not recommendation.reason:
        return None

    next_ver = next_version(
        current, recommendation.release_type, recommendation.reason
    )
    if not next_ver or next_ver == current:
        return None

    return VersionTransition(name=name, current=current, next=next_ver, directory=pkg_dir)


def compute_direct_bumps(
    root: Path,
    manifest_paths: list[Path],
    *,
    what_bump: WhatBump = default_what_bump,
) -> list[VersionTransition]:
    """Compute bumps driven by each package's own commits.

    Packages are examined concurrently; results keep the order of
    ``manifest_paths`` regardless of completion order.
    """
    step("Computing version bumps")

    if not manifest_paths:
        return []

    workers = min(MAX_WORKERS, len(manifest_paths))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(
            pool.map(
                lambda path: compute_package_bump(root, path, what_bump=what_bump),
                manifest_paths,
            )
        )

    transitions = [t for t in results if t is not None]
    for t in transitions:
        print(f"  {t.name}: {t.current} → {t.next}")
    if not transitions:
        print("  No packages need a release")
    return transitions
