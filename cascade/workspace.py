"""Workspace discovery.

Locates the repository root and expands the root manifest's ``workspaces``
globs into the list of package manifests that take part in a release.
"""

from __future__ import annotations

import glob
from pathlib import Path

from .config import ConfigError
from .manifest import MANIFEST_NAME, get_name, get_version, load_manifest
from .shell import step, warn


def find_repo_root(start: Path | None = None) -> Path:
    """Walk upward from ``start`` to the first directory with a package.json.

    Raises:
        ConfigError: If no parent directory holds a package.json.
    """
    directory = (start or Path.cwd()).resolve()
    for candidate in (directory, *directory.parents):
        if (candidate / MANIFEST_NAME).exists():
            return candidate
    raise ConfigError("Could not find package.json in any parent directory")


def get_workspace_package_paths(root: Path) -> list[Path]:
    """Expand the root manifest's workspaces into package manifest paths.

    Each pattern is matched as ``<root>/<pattern>/package.json``. When the
    root declares no workspaces, or none of them match, the root manifest is
    the only package (single-package repository).

    Raises:
        ConfigError: If the root manifest is unreadable or ``workspaces`` is
            not a list of strings.
    """
    root_manifest = root / MANIFEST_NAME
    try:
        root_pkg = load_manifest(root_manifest)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Malformed package.json in {root_manifest}") from exc

    patterns = root_pkg.get("workspaces")
    if patterns is None:
        patterns = []
    if not isinstance(patterns, list):
        raise ConfigError(
            f"Invalid workspaces field in {root_manifest}: must be an array"
        )
    if not all(isinstance(p, str) for p in patterns):
        raise ConfigError(
            f"Invalid workspaces field in {root_manifest}: "
            "every workspace must be a string"
        )

    # Expand globs to find all package manifests, keeping discovery order
    paths: list[Path] = []
    seen: set[Path] = set()
    for pattern in patterns:
        full = str(root / pattern / MANIFEST_NAME)
        for match in sorted(glob.glob(full, recursive=True)):
            path = Path(match)
            if path not in seen:
                seen.add(path)
                paths.append(path)

    return paths or [root_manifest]


def describe_packages(manifest_paths: list[Path]) -> None:
    """Print discovered packages for user feedback."""
    step("Discovering workspace packages")
    for path in manifest_paths:
        try:
            manifest = load_manifest(path)
        except (OSError, ValueError):
            warn(f"unreadable manifest {path}")
            continue
        name = get_name(manifest) or "<unnamed>"
        version = get_version(manifest) or "<no version>"
        private = " (private)" if manifest.get("private") else ""
        print(f"  {name} {version} ({path.parent}){private}")
