"""Dependency handling utilities.

Finds manifest dependency entries that point at packages being released,
rewrites their version ranges, and records each rewrite as its own commit so
that a dependent package's history shows why it is being re-released.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .manifest import (
    MANIFEST_NAME,
    get_name,
    iter_dependency_tables,
    load_manifest,
    save_manifest,
)
from .models import ExecutionLedger, VersionTransition
from .shell import CommandError, git, step, warn

ALIAS_PATTERN = re.compile(r"^npm:(@?[^@]+)(?:@.*)?$")
INLINE_VERSION_PATTERN = re.compile(r"^(@?[^@]+)@.+$")
RANGE_PREFIX_PATTERN = re.compile(r"^[~^]")

# Ranges using these protocols are never rewritten
UNTOUCHED_PREFIXES = ("github:", "file:", "link:", "http:", "https:")


def extract_package_name_from_alias(value: str) -> str | None:
    """Extract the real package name from an npm alias.

    Examples:
        "npm:@scope/real@^1.0.0" → "@scope/real"
        "npm:real" → "real"
        "^1.0.0" → None
    """
    match = ALIAS_PATTERN.match(value)
    return match.group(1) if match else None


def effective_version(value: str) -> str:
    """Strip known protocol and range prefixes from a dependency value.

    Examples:
        "^1.2.3" → "1.2.3"
        "workspace:^1.2.3" → "1.2.3"
        "npm:real@~1.2.3" → "1.2.3"
    """
    if value.startswith("npm:"):
        cut = value[4:]
        at = cut.rfind("@")
        value = cut[at + 1 :] if at > 0 else ""
    elif value.startswith("workspace:"):
        value = value[len("workspace:") :]
    return RANGE_PREFIX_PATTERN.sub("", value)


def _candidate_names(key: str, value: str) -> list[str] | None:
    """Real package names an entry may refer to, in priority order.

    Returns None for an ambiguous alias that must be skipped.
    """
    candidates = [key]

    if value.startswith("npm:"):
        # An alias without a version separator is ambiguous
        if "@" not in value[4:]:
            return None
        alias_name = extract_package_name_from_alias(value)
        if not alias_name:
            return None
        candidates.append(alias_name)

    inline = INLINE_VERSION_PATTERN.match(key)
    if inline:
        candidates.append(inline.group(1))

    return candidates


def scan_manifest(
    manifest: Mapping[str, Any], bump_map: Mapping[str, str]
) -> dict[str, str]:
    """Collect the dependency rewrites one manifest needs.

    Args:
        manifest: Parsed package.json.
        bump_map: Package name → next version for every package being bumped.

    Returns:
        Manifest dependency key (as written on disk) → target version.
    """
    rewrites: dict[str, str] = {}

    for _, table in iter_dependency_tables(dict(manifest)):
        for raw_key, raw_value in table.items():
            key = raw_key.strip()
            # Arrays and objects are not version ranges
            if isinstance(raw_value, (list, dict)):
                continue
            value = raw_value.strip() if isinstance(raw_value, str) else ""

            candidates = _candidate_names(key, value)
            if candidates is None:
                continue

            picked = next((name for name in candidates if name in bump_map), None)
            if picked is None:
                continue

            target = bump_map[picked]
            # git, file, link and url references are never rewritten
            if rewrite_range(value, target) is None:
                continue
            current = effective_version(value)
            # Already at the target version; nothing to rewrite
            if current and current == target:
                continue

            rewrites[key] = target

    return rewrites


def compute_dependency_updates(
    manifest_paths: Iterable[Path],
    transitions: Iterable[VersionTransition],
) -> dict[str, dict[str, str]]:
    """Find every package whose dependencies reference a bumped package.

    Args:
        manifest_paths: Workspace manifests in discovery order.
        transitions: Version transitions already decided.

    Returns:
        Owning package name → its dependency rewrites, in discovery order.
        Packages with nothing to rewrite are absent.
    """
    step("Scanning dependency updates")

    bump_map = {t.name: t.next for t in transitions}
    result: dict[str, dict[str, str]] = {}

    for path in manifest_paths:
        try:
            manifest = load_manifest(path)
        except (OSError, ValueError) as exc:
            warn(f"skipping unreadable manifest {path}: {exc}")
            continue

        owner = get_name(manifest)
        if owner is None:
            continue

        rewrites = scan_manifest(manifest, bump_map)
        if not rewrites:
            continue

        if owner in result:
            warn(f"duplicate package name {owner} in {path}; keeping the first")
            continue

        result[owner] = rewrites
        for dep, version in rewrites.items():
            print(f"  {owner}: {dep} → {version}")

    if not result:
        print("  No dependency updates needed")
    return result


def rewrite_range(current: Any, version: str) -> str | None:
    """Compute the new range for one dependency value.

    Returns None when the value uses a protocol that must not be rewritten
    (git, github, file, link, http(s)).
    """
    if isinstance(current, str):
        if "git+" in current or current.startswith(UNTOUCHED_PREFIXES):
            return None
        if current.startswith("workspace:"):
            return f"workspace:^{version}"
        if current.startswith("npm:"):
            without_prefix = current[4:]
            at = without_prefix.rfind("@")
            if at <= 0:
                return f"^{version}"
            return f"npm:{without_prefix[:at]}@^{version}"
    return f"^{version}"


def rewrite_dependency_ranges(
    manifest: dict[str, Any], rewrites: Mapping[str, str]
) -> bool:
    """Apply dependency rewrites to a manifest in place.

    Every dependency field holding a rewritten key is updated.

    Returns:
        True if anything changed.
    """
    changed = False
    for dep, version in rewrites.items():
        for _, table in iter_dependency_tables(manifest):
            if dep not in table:
                continue
            new_range = rewrite_range(table[dep], version)
            if new_range is not None and table[dep] != new_range:
                table[dep] = new_range
                changed = True
    return changed


def relative_dir(root: Path, directory: Path) -> str:
    """POSIX path of ``directory`` relative to ``root`` ("." for the root)."""
    rel = Path(directory).resolve().relative_to(Path(root).resolve()).as_posix()
    return rel or "."


def create_dependency_update_commits(
    root: Path,
    rewrites: Mapping[str, str],
    pkg_dir: Path,
    ledger: ExecutionLedger | None = None,
) -> None:
    """Commit each dependency rewrite separately.

    For every dependency the manifest is rewritten (a no-op when it already
    holds the new range), staged and committed with the message
    ``chore(deps): bump <dep> to v<version> in <relative-path>``.

    Raises:
        CommandError: The first git failure; earlier commits are already
            recorded in ``ledger``.
    """
    rel = relative_dir(root, pkg_dir)
    manifest_path = Path(pkg_dir) / MANIFEST_NAME

    for dep, version in rewrites.items():
        message = f"chore(deps): bump {dep} to v{version} in {rel}"

        manifest = load_manifest(manifest_path)
        if rewrite_dependency_ranges(manifest, {dep: version}):
            save_manifest(manifest_path, manifest)

        try:
            git("add", MANIFEST_NAME, cwd=pkg_dir)
            staged = git("diff", "--cached", "--name-only", cwd=pkg_dir)
            # The range may already have been written with the version bump
            extra = () if staged else ("--allow-empty",)
            git("commit", "-m", message, *extra, cwd=pkg_dir)
        except CommandError:
            warn(f"dependency commit failed for {dep} in {rel} (cwd: {pkg_dir})")
            raise

        if ledger is not None:
            ledger.record_commit()
        print(f"  {message}")
