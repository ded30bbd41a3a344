"""Transactional release execution.

Runs a release plan through a fixed sequence of stages:

1. Dry-run publish every package (nothing changed yet)
2. Write new versions and dependency ranges into the manifests
3. Commit dependency updates not already committed during planning
4. Regenerate changelogs
5. Sync the lockfile, create the release commit, tag and push
6. Publish each package and create its release on the release host

A failure in stages 1-2 only discards working-tree changes. Stage 5 is the
point of no return; a failure from stage 3 onward hands the ledger to the
rollback coordinator before the original error is re-raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .changelog import ensure_not_empty, generate_changelog, generate_release_notes
from .config import Settings
from .deps import create_dependency_update_commits, relative_dir, rewrite_dependency_ranges
from .host import ReleaseHost
from .manifest import MANIFEST_NAME, load_manifest, save_manifest
from .models import ExecutionLedger, ReleasePlan, ReleaseStage
from .rollback import RollbackError, rollback
from .shell import CommandError, git, npm, run, step, warn

RELEASE_COMMIT_MESSAGE = "chore: release [skip ci]"


@dataclass(frozen=True)
class ReleaseContext:
    """Collaborators shared by every stage.

    Attributes:
        root: Repository root; every git command runs here.
        settings: Resolved release configuration.
        host: Release host for releases, pull requests and comments.
        branch: Branch the release commit is pushed to.
    """

    root: Path
    settings: Settings
    host: ReleaseHost
    branch: str


def lockfile_commit_message(lockfile: str) -> str:
    return f"chore(deps): sync {lockfile} [skip ci]"


def run_dry_run(plan: ReleasePlan, ctx: ReleaseContext) -> None:
    """Simulate publishing every package."""
    step("Verifying packages can be published (dry run)")
    for unit in plan.units:
        print(f"\n  {unit.name}@{unit.next}")
        npm(
            "publish", "--dry-run", "--registry", ctx.settings.registry,
            cwd=unit.directory,
            timeout=ctx.settings.command_timeout,
        )


def update_manifests(plan: ReleasePlan, ctx: ReleaseContext) -> None:
    """Write each unit's next version and dependency ranges to disk."""
    step("Updating package manifests")
    for unit in plan.units:
        path = unit.directory / MANIFEST_NAME
        manifest = load_manifest(path)
        manifest["version"] = unit.next
        rewrite_dependency_ranges(manifest, unit.dependency_updates)
        save_manifest(path, manifest)
        print(f"  {unit.name}: {unit.current} → {unit.next}")


def commit_dependency_updates(
    plan: ReleasePlan, ctx: ReleaseContext, ledger: ExecutionLedger
) -> None:
    """Commit dependency rewrites for units that haven't committed them yet."""
    step("Committing dependency updates")
    pending = [
        u for u in plan.units
        if u.dependency_updates and not u.dependency_commits_done
    ]
    if not pending:
        print("  Nothing to commit")
        return
    for unit in pending:
        create_dependency_update_commits(
            ctx.root, unit.dependency_updates, unit.directory, ledger=ledger
        )


def update_changelogs(
    plan: ReleasePlan, ctx: ReleaseContext, ledger: ExecutionLedger
) -> list[Path]:
    """Regenerate and write every unit's changelog.

    Changelogs git does not track yet are recorded in ``ledger`` so a
    rollback can remove them.

    Returns:
        The changelog paths written.

    Raises:
        EmptyChangelogError: If a package's changelog has no releases.
    """
    step("Generating changelogs")
    written = []
    for unit in plan.units:
        text = generate_changelog(
            ctx.root, unit.name, unit.next, relative_dir(ctx.root, unit.directory)
        )
        ensure_not_empty(text, unit.name)
        path = unit.directory / ctx.settings.changelog_file
        tracked = git("ls-files", "--", str(path), cwd=ctx.root)
        path.write_text(text, encoding="utf-8")
        if not tracked:
            ledger.record_created_file(path)
        written.append(path)
        print(f"  Wrote {path}")
    return written


def sync_lockfile(ctx: ReleaseContext, ledger: ExecutionLedger) -> bool:
    """Reinstall and commit the lockfile on its own if it changed.

    Only the lockfile is committed; anything else already staged stays
    staged for the release commit.

    Returns:
        True if a lockfile commit was made.
    """
    lockfile = ctx.settings.lockfile
    run(
        *ctx.settings.install_command,
        cwd=ctx.root,
        quiet=True,
        timeout=ctx.settings.command_timeout,
    )

    if not (ctx.root / lockfile).exists():
        print(f"  No {lockfile}; skipping lockfile sync")
        return False

    if not git("status", "--porcelain", "--", lockfile, cwd=ctx.root):
        print(f"  {lockfile} is up to date")
        return False

    git("add", "--", lockfile, cwd=ctx.root)
    git("commit", "-m", lockfile_commit_message(lockfile), "--", lockfile, cwd=ctx.root)
    ledger.record_commit()
    print(f"  Committed {lockfile}")
    return True


def commit_and_tag_releases(
    plan: ReleasePlan,
    ctx: ReleaseContext,
    changelogs: list[Path],
    ledger: ExecutionLedger,
) -> None:
    """Create the release commit and one annotated tag per unit, then push.

    Each tag is recorded in the ledger as soon as it exists, so a failure
    on a later tag still leaves the earlier ones visible to rollback.
    """
    step("Committing and tagging release")

    for unit in plan.units:
        git("add", "--", str(unit.directory / MANIFEST_NAME), cwd=ctx.root)
    for path in changelogs:
        git("add", "--", str(path), cwd=ctx.root)

    sync_lockfile(ctx, ledger)

    git("commit", "-m", RELEASE_COMMIT_MESSAGE, cwd=ctx.root)
    ledger.record_commit()

    for unit in plan.units:
        git("tag", "-a", unit.tag, "-m", unit.tag, cwd=ctx.root)
        ledger.record_tag(unit.tag)
        print(f"  {unit.tag}")

    git("push", "--follow-tags", ctx.settings.remote, ctx.branch, cwd=ctx.root)
    print(f"  Pushed to {ctx.settings.remote}/{ctx.branch}")


def publish_and_release(
    plan: ReleasePlan, ctx: ReleaseContext, ledger: ExecutionLedger
) -> None:
    """Publish each unit, then create its release with the new notes."""
    step("Publishing packages")
    for unit in plan.units:
        print(f"\n  {unit.name}@{unit.next}")
        npm(
            "publish", "--registry", ctx.settings.registry,
            cwd=unit.directory,
            timeout=ctx.settings.command_timeout,
        )
        ledger.record_published(f"{unit.name}@{unit.next}")

        notes = generate_release_notes(
            ctx.root,
            unit.name,
            f"{unit.name}@{unit.current}",
            unit.tag,
            relative_dir(ctx.root, unit.directory),
        )
        release_id = ctx.host.create_release(unit.tag, unit.tag, notes)
        ledger.record_release(unit.name, release_id)
        print(f"  Created release {unit.tag} (id {release_id})")


def restore_working_tree(ctx: ReleaseContext, ledger: ExecutionLedger) -> None:
    """Discard local changes and commits made by this run (local only)."""
    try:
        git("reset", "--hard", ledger.original_commit, cwd=ctx.root)
    except CommandError:
        warn(f"could not restore working tree to {ledger.original_commit}")


def execute_release(
    plan: ReleasePlan, ctx: ReleaseContext, ledger: ExecutionLedger
) -> ExecutionLedger:
    """Run a release plan to completion or roll it back.

    Args:
        plan: Units to release, in order.
        ctx: Shared collaborators.
        ledger: Ledger created before any mutation; updated in place.

    Returns:
        The ledger, at stage DONE.

    Raises:
        RollbackError: If compensating a failure itself failed; chained to
            the failure that triggered the rollback.
        Exception: The original failure, after rollback completed.
    """
    try:
        run_dry_run(plan, ctx)
        ledger.advance(ReleaseStage.DRY_RUN_VERIFIED)

        update_manifests(plan, ctx)
        ledger.advance(ReleaseStage.MANIFESTS_UPDATED)
    except Exception:
        restore_working_tree(ctx, ledger)
        raise

    try:
        commit_dependency_updates(plan, ctx, ledger)
        ledger.advance(ReleaseStage.DEP_COMMITS_DONE)

        changelogs = update_changelogs(plan, ctx, ledger)
        ledger.advance(ReleaseStage.CHANGELOGS_WRITTEN)

        commit_and_tag_releases(plan, ctx, changelogs, ledger)
        ledger.advance(ReleaseStage.COMMITTED_AND_TAGGED)

        publish_and_release(plan, ctx, ledger)
        ledger.advance(ReleaseStage.PUBLISHED_AND_RELEASED)
    except Exception as exc:
        warn(f"release failed after {ledger.stage.value}: {exc}")
        try:
            rollback(plan.units, ledger, ctx)
        except Exception as rollback_exc:
            raise RollbackError(f"Rollback failed: {rollback_exc}") from exc
        raise

    ledger.advance(ReleaseStage.DONE)
    print(f"\n{'=' * 60}\nReleased {', '.join(u.tag for u in plan.units)}\n{'=' * 60}")
    return ledger
