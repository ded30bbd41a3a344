"""Changelog generation from conventional commits.

Each package gets its own changelog built only from commits touching its
directory, split into releases by its ``{name}@{version}`` tags. Commits
marked ``[skip ci]`` (release and lockfile commits) never appear.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from .commits import Commit, get_commits, is_skip_ci, list_release_tags
from .shell import git

HEADER = "# Changelog"

# Conventional type → section title, in rendering order
SECTIONS = (
    ("feat", "Features"),
    ("fix", "Bug Fixes"),
    ("perf", "Performance Improvements"),
    ("revert", "Reverts"),
)
DEPENDENCY_SECTION = "Dependencies"
BREAKING_SECTION = "⚠ BREAKING CHANGES"


class EmptyChangelogError(Exception):
    """The generated changelog has a header but no releases.

    This means the commit range or path filter matched nothing, which is a
    configuration problem rather than an empty release.
    """


def _entry(commit: Commit) -> str:
    scope = f"**{commit.scope}:** " if commit.scope else ""
    return f"* {scope}{commit.subject or commit.header} ({commit.hash[:7]})"


def _is_dependency_update(commit: Commit) -> bool:
    return commit.type in ("chore", "build") and commit.scope == "deps"


def render_release(version: str, date: str, commits: list[Commit]) -> str:
    """Render one release section.

    Args:
        version: Version shown in the section title.
        date: ISO date shown next to the version.
        commits: Commits in the release, newest first.
    """
    lines = [f"## {version} ({date})", ""]

    breaking = []
    for commit in commits:
        breaking.extend(f"* {note}" for note in commit.notes if note)
        if commit.breaking and not commit.notes:
            breaking.append(_entry(commit))
    if breaking:
        lines += [f"### {BREAKING_SECTION}", "", *breaking, ""]

    for commit_type, title in SECTIONS:
        entries = [_entry(c) for c in commits if c.type == commit_type]
        if entries:
            lines += [f"### {title}", "", *entries, ""]

    deps = [_entry(c) for c in commits if _is_dependency_update(c)]
    if deps:
        lines += [f"### {DEPENDENCY_SECTION}", "", *deps, ""]

    return "\n".join(lines).rstrip() + "\n"


def _release_commits(
    root: Path, path: str, from_ref: str | None, to_ref: str
) -> list[Commit]:
    return [c for c in get_commits(root, path, from_ref, to_ref) if not is_skip_ci(c)]


def _ref_exists(root: Path, ref: str) -> bool:
    return bool(git("tag", "--list", ref, cwd=root))


def _ref_date(root: Path, ref: str) -> str:
    return git("log", "-1", "--format=%cs", ref, cwd=root)


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def generate_release_notes(
    root: Path,
    name: str,
    from_ref: str | None,
    to_ref: str,
    path: str,
) -> str:
    """Render the notes for a single release range scoped to ``path``.

    A ``from_ref`` tag that doesn't exist (first release) means the range
    starts at the beginning of history.
    """
    if from_ref and not _ref_exists(root, from_ref):
        from_ref = None

    prefix = f"{name}@"
    version = to_ref[len(prefix) :] if to_ref.startswith(prefix) else to_ref
    commits = _release_commits(root, path, from_ref, to_ref)
    return render_release(version, _ref_date(root, to_ref), commits)


def generate_changelog(root: Path, name: str, next_version: str, path: str) -> str:
    """Render the full changelog for a package, newest release first.

    Commits after the latest tag form the upcoming ``next_version`` release.
    Releases with no commits in scope are left out.
    """
    tags = list_release_tags(name, root)

    # (from_ref, to_ref, version, date); newest first
    ranges: list[tuple[str | None, str, str, str]] = [
        (tags[-1][1] if tags else None, "HEAD", next_version, _today())
    ]
    for i in range(len(tags) - 1, -1, -1):
        version, tag = tags[i]
        previous = tags[i - 1][1] if i > 0 else None
        ranges.append((previous, tag, version, _ref_date(root, tag)))

    sections = []
    for from_ref, to_ref, version, date in ranges:
        commits = _release_commits(root, path, from_ref, to_ref)
        if commits:
            sections.append(render_release(version, date, commits))

    if not sections:
        return f"{HEADER}\n"
    return f"{HEADER}\n\n" + "\n".join(sections)


def ensure_not_empty(text: str, name: str) -> str:
    """Return ``text`` unless it is a bare changelog header.

    Raises:
        EmptyChangelogError: If no release section was generated.
    """
    body = text.strip()
    if body.startswith(HEADER):
        body = body[len(HEADER) :].strip()
    if not body:
        raise EmptyChangelogError(
            f"Generated changelog for {name} is empty; check the commit range "
            "and path filter"
        )
    return text
