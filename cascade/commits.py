"""Commit history lookup and conventional-commit classification.

Release tags follow the pattern ``{package-name}@{version}`` (e.g.
``@scope/pkg@1.2.3``). Commits are read with ``git log`` restricted to a
package directory so each package only sees its own history.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel, Field

from .models import BumpRecommendation
from .shell import git
from .versions import version_key

HEADER_PATTERN = re.compile(
    r"^(?P<type>[\w-]+)(?:\((?P<scope>[^()]*)\))?(?P<breaking>!)?: (?P<subject>.+)$"
)
BREAKING_NOTE_PATTERN = re.compile(r"^BREAKING[ -]CHANGE:\s*(?P<text>.*)$")
SKIP_CI_PATTERN = re.compile(r"\[(skip ci|ci skip)\]", re.IGNORECASE)

# Record and field separators for git log output
_RS = "\x1e"
_FS = "\x1f"


class Commit(BaseModel):
    """A commit with its conventional-commit fields pre-parsed.

    Attributes:
        hash: Full commit hash.
        header: First line of the message.
        body: Remaining lines of the message.
        type: Conventional type (feat, fix, chore, ...), None if unparsable.
        scope: Optional scope in parentheses.
        subject: Header text after the colon (the whole header if unparsable).
        breaking: Header carries the ``!`` marker.
        notes: Text of every BREAKING CHANGE note in the body.
    """

    hash: str
    header: str
    body: str = ""
    type: str | None = None
    scope: str | None = None
    subject: str = ""
    breaking: bool = False
    notes: list[str] = Field(default_factory=list)


WhatBump = Callable[[list[Commit]], BumpRecommendation | None]


def parse_commit(hash: str, message: str) -> Commit:
    """Split a raw commit message into header, body and conventional fields."""
    header, _, body = message.strip().partition("\n")
    header = header.strip()
    body = body.strip()

    notes = []
    for line in body.splitlines():
        match = BREAKING_NOTE_PATTERN.match(line.strip())
        if match:
            notes.append(match.group("text"))

    match = HEADER_PATTERN.match(header)
    if not match:
        return Commit(hash=hash, header=header, body=body, subject=header, notes=notes)

    return Commit(
        hash=hash,
        header=header,
        body=body,
        type=match.group("type").lower(),
        scope=match.group("scope") or None,
        subject=match.group("subject").strip(),
        breaking=bool(match.group("breaking")),
        notes=notes,
    )


def is_skip_ci(commit: Commit) -> bool:
    """True for commits whose header opts out of CI (and release notes)."""
    return bool(SKIP_CI_PATTERN.search(commit.header))


def list_release_tags(name: str, root: Path) -> list[tuple[str, str]]:
    """List a package's release tags as ``(version, tag)``, oldest first.

    Tags whose suffix is not a valid semver version are ignored.
    """
    prefix = f"{name}@"
    output = git("tag", "--list", f"{prefix}*", cwd=root)

    versioned = []
    for tag in output.splitlines():
        tag = tag.strip()
        if not tag.startswith(prefix):
            continue
        version = tag[len(prefix) :]
        key = version_key(version)
        if key is not None:
            versioned.append((key, version, tag))

    versioned.sort(key=lambda item: item[0])
    return [(version, tag) for _, version, tag in versioned]


def find_last_tag(name: str, root: Path) -> str | None:
    """Find the most recent release tag for a package.

    Returns None if the package has never been released.
    """
    tags = list_release_tags(name, root)
    return tags[-1][1] if tags else None


def get_commits(
    root: Path,
    path: str,
    from_ref: str | None = None,
    to_ref: str = "HEAD",
) -> list[Commit]:
    """List commits in ``from_ref..to_ref`` that touch ``path``, newest first.

    Args:
        root: Repository root to run git in.
        path: Directory relative to the root ("." for the whole repository).
        from_ref: Exclusive start of the range; None means the beginning of
                  history.
        to_ref: Inclusive end of the range.
    """
    rev_range = f"{from_ref}..{to_ref}" if from_ref else to_ref
    output = git(
        "log", f"--format=%H{_FS}%B{_RS}", rev_range, "--", path or ".", cwd=root
    )

    commits: list[Commit] = []
    for record in output.split(_RS):
        record = record.strip()
        if not record:
            continue
        hash, _, message = record.partition(_FS)
        commits.append(parse_commit(hash.strip(), message))
    return commits


def default_what_bump(commits: list[Commit]) -> BumpRecommendation | None:
    """Classify commits into a major, minor or patch bump.

    Any breaking change means major; otherwise any feature means minor;
    anything else is a patch. An empty commit list means no bump.
    """
    if not commits:
        return None

    breaks = 0
    features = 0
    for commit in commits:
        breaks += len(commit.notes)
        if "!:" in commit.header:
            breaks += 1
        if commit.type == "feat":
            features += 1

    if breaks > 0:
        return BumpRecommendation(
            level=0,
            release_type="major",
            reason=f"There are {breaks} BREAKING CHANGES",
        )

    if features > 0:
        return BumpRecommendation(
            level=1,
            release_type="minor",
            reason=f"There are {features} new features",
        )

    return BumpRecommendation(
        level=2,
        release_type="patch",
        reason="There are only patch changes in this release",
    )
