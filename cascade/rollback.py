"""Compensation for a release that failed part-way.

Reads only the execution ledger, so it undoes exactly what was done:

1. Delete every created tag, locally and on the remote
2. Hard-reset the branch to the commit recorded before the run,
   force-push it and remove files the run created
3. Unpublish every planned package version
4. Delete every release created on the release host
5. Reopen the pull request that triggered the run and explain the failure

Steps 1, 3 and 4 are best effort: each failure is reported and the next
compensation runs. Failing to restore the branch or to notify the pull
request fails the rollback as a whole.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from .models import ExecutionLedger, ReleaseUnit
from .shell import CommandError, git, npm, step, warn

if TYPE_CHECKING:
    from .executor import ReleaseContext

PR_NUMBER_PATTERN = re.compile(r"\(\s*#(\d+)(?:\s+#\d+)*\s*\)")
REVISION_PATTERN = re.compile(r"^[0-9a-fA-F]{4,64}$")


class RollbackError(Exception):
    """Compensating a failed release did not complete."""


def find_pr_number_from_commit_message(commit: str, cwd: Path) -> int | None:
    """Find the pull request number referenced by a commit message.

    Squash merges end their header with ``(#123)``; for ``( #12 #13 )`` the
    first number wins.

    Args:
        commit: Hex commit hash; anything else is rejected without running git.
        cwd: Repository to look the commit up in.

    Returns:
        The PR number, or None if the commit is invalid, unknown to git, or
        references no pull request.
    """
    if not REVISION_PATTERN.match(commit):
        return None

    try:
        message = git("log", "-1", "--format=%B", commit, cwd=cwd)
    except CommandError:
        return None

    match = PR_NUMBER_PATTERN.search(message)
    return int(match.group(1)) if match else None


def failure_comment(units: Sequence[ReleaseUnit], run_url: str) -> str:
    released = ", ".join(u.tag for u in units)
    return (
        f"⚠️ Release failed for: {released}\n\n"
        f"See workflow details: {run_url}\n\n"
        "This PR has been automatically reopened."
    )


def _delete_tags(ledger: ExecutionLedger, ctx: ReleaseContext) -> None:
    for tag in ledger.tags_created:
        try:
            git("tag", "-d", tag, cwd=ctx.root)
            git("push", ctx.settings.remote, f":refs/tags/{tag}", cwd=ctx.root)
            print(f"  Deleted tag {tag}")
        except Exception as exc:
            warn(f"could not delete tag {tag}: {exc}")


def _restore_branch(ledger: ExecutionLedger, ctx: ReleaseContext) -> None:
    git("reset", "--hard", ledger.original_commit, cwd=ctx.root)
    git("push", ctx.settings.remote, ctx.branch, "--force", cwd=ctx.root)
    print(f"  Reset {ctx.branch} to {ledger.original_commit}")


def _remove_created_files(ledger: ExecutionLedger) -> None:
    for path in ledger.files_created:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            warn(f"could not remove {path}: {exc}")


def _unpublish(units: Sequence[ReleaseUnit], ctx: ReleaseContext) -> None:
    for unit in units:
        spec = f"{unit.name}@{unit.next}"
        try:
            npm(
                "unpublish", spec, "--registry", ctx.settings.registry,
                cwd=ctx.root,
                timeout=ctx.settings.command_timeout,
            )
            print(f"  Unpublished {spec}")
        except Exception as exc:
            warn(f"could not unpublish {spec}: {exc}")


def _delete_releases(ledger: ExecutionLedger, ctx: ReleaseContext) -> None:
    for name, release_id in ledger.remote_release_ids.items():
        try:
            ctx.host.delete_release(release_id)
            print(f"  Deleted release {release_id} ({name})")
        except Exception as exc:
            warn(f"could not delete release {release_id} for {name}: {exc}")


def _notify_pull_request(
    units: Sequence[ReleaseUnit], ledger: ExecutionLedger, ctx: ReleaseContext
) -> None:
    number = find_pr_number_from_commit_message(ledger.original_commit, ctx.root)
    if number is None:
        print(f"  No pull request referenced by {ledger.original_commit}")
        return

    body = failure_comment(units, ctx.settings.run_url)
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(ctx.host.update_pull_request, number, "open"),
            pool.submit(ctx.host.create_comment, number, body),
        ]
    errors = [e for e in (f.exception() for f in futures) if e is not None]
    if errors:
        raise RollbackError(f"Could not notify pull request #{number}") from errors[0]
    print(f"  Reopened pull request #{number}")


def rollback(
    units: Sequence[ReleaseUnit], ledger: ExecutionLedger, ctx: ReleaseContext
) -> None:
    """Undo everything recorded in ``ledger``.

    Args:
        units: Every planned unit; each is unpublished and named in the
            pull request comment.
        ledger: What the failed run actually did.
        ctx: Shared collaborators.

    Raises:
        RollbackError: If the branch could not be restored or the pull
            request could not be reopened and commented on. Every other
            compensation has been attempted by then.
    """
    step("Rolling back release")

    _delete_tags(ledger, ctx)

    restore_error = None
    try:
        _restore_branch(ledger, ctx)
    except CommandError as exc:
        warn(f"could not restore {ctx.branch} to {ledger.original_commit}")
        restore_error = exc

    _remove_created_files(ledger)
    _unpublish(units, ctx)
    _delete_releases(ledger, ctx)
    _notify_pull_request(units, ledger, ctx)

    if restore_error is not None:
        raise RollbackError(
            f"Could not restore {ctx.branch} to {ledger.original_commit}"
        ) from restore_error

    print("  Rollback complete")
