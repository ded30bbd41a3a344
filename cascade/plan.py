"""Release plan assembly.

The plan is every direct bump followed by every bump triggered purely by a
dependency being bumped. Triggered bumps commit their dependency rewrites
while being computed, so they run one at a time.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from .bump import compute_package_bump
from .manifest import get_name, get_version, load_manifest
from .models import ExecutionLedger, ReleasePlan, ReleaseUnit, VersionTransition
from .shell import step, warn


def find_manifest_by_name(manifest_paths: list[Path], name: str) -> Path | None:
    """Return the first manifest declaring ``name``.

    Unreadable manifests are reported and skipped.
    """
    for path in manifest_paths:
        try:
            manifest = load_manifest(path)
        except (OSError, ValueError) as exc:
            warn(f"skipping unreadable manifest {path}: {exc}")
            continue
        if get_name(manifest) == name:
            return path
    return None


def compute_triggered_bumps(
    root: Path,
    manifest_paths: list[Path],
    direct: list[VersionTransition],
    rewrites: Mapping[str, Mapping[str, str]],
    ledger: ExecutionLedger | None = None,
) -> list[ReleaseUnit]:
    """Bump packages whose only reason to release is a bumped dependency.

    Args:
        root: Repository root.
        manifest_paths: Workspace manifests in discovery order.
        direct: Transitions from the packages' own history.
        rewrites: Owning package name → dependency rewrites.
        ledger: Receives a commit count per dependency commit.

    Returns:
        Units in ``rewrites`` order, each already carrying its dependency
        commits.

    Raises:
        CommandError: If a dependency commit fails.
        OSError: If a manifest cannot be rewritten.
        ValueError: If a version cannot be bumped.
    """
    step("Computing dependency-triggered bumps")

    direct_names = {t.name for t in direct}
    units: list[ReleaseUnit] = []

    for name, deps in rewrites.items():
        if name in direct_names:
            continue

        path = find_manifest_by_name(manifest_paths, name)
        if path is None:
            warn(f"no readable manifest found for {name}; not releasing it")
            continue

        # Once dependency commits exist every failure aborts the plan, so
        # only a manifest that cannot be bumped at all is skipped here
        try:
            manifest = load_manifest(path)
        except (OSError, ValueError) as exc:
            warn(f"skipping {name}: {exc}")
            continue
        if not get_version(manifest):
            warn(f"skipping {name}: missing version in {path}")
            continue

        transition = compute_package_bump(root, path, deps, ledger=ledger)

        if transition is None:
            continue

        units.append(
            ReleaseUnit(
                **transition.model_dump(),
                dependency_updates=dict(deps),
                dependency_commits_done=True,
            )
        )
        print(f"  {name}: {transition.current} → {transition.next} (dependencies)")

    if not units:
        print("  No dependency-triggered bumps")
    return units


def build_release_plan(
    root: Path,
    manifest_paths: list[Path],
    direct: list[VersionTransition],
    rewrites: Mapping[str, Mapping[str, str]],
    ledger: ExecutionLedger | None = None,
) -> ReleasePlan:
    """Combine direct and triggered bumps into one ordered plan.

    Direct units get their own rewrite set (possibly empty) attached; their
    dependency commits are made later by the executor.
    """
    units = [
        ReleaseUnit(
            **t.model_dump(),
            dependency_updates=dict(rewrites.get(t.name, {})),
        )
        for t in direct
    ]
    units += compute_triggered_bumps(root, manifest_paths, direct, rewrites, ledger)
    return ReleasePlan(units=tuple(units))
