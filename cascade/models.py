"""Data models for cascade.

These Pydantic models represent the core data structures passed between the
planning stages, the release executor and the rollback coordinator.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class PackageIdentity(BaseModel):
    """A releasable package discovered in the workspace.

    Attributes:
        name: Package name from package.json, including any scope.
        directory: Absolute path to the package directory.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    directory: Path


class BumpRecommendation(BaseModel):
    """What a commit classifier decided for a set of commits.

    Attributes:
        level: 0 for major, 1 for minor, 2 for patch.
        release_type: One of major, minor, patch, prerelease, release.
        reason: Human readable explanation; also inspected for prerelease
                channel keywords (rc, beta, alpha).
    """

    level: int
    release_type: str
    reason: str


class VersionTransition(BaseModel):
    """Records a version change for a package.

    A transition where next equals current is never created; "no bump" is
    represented by the absence of a transition.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    current: str
    next: str
    directory: Path

    @property
    def tag(self) -> str:
        """Release tag, e.g. ``@scope/pkg@1.2.3``."""
        return f"{self.name}@{self.next}"


class ReleaseUnit(VersionTransition):
    """A version transition plus the dependency entries it must rewrite.

    Attributes:
        dependency_updates: Manifest dependency key (possibly an alias) →
            target version.
        dependency_commits_done: True when the dependency-update commits were
            already created while computing a triggered bump.
    """

    dependency_updates: dict[str, str] = Field(default_factory=dict)
    dependency_commits_done: bool = False


class ReleasePlan(BaseModel):
    """Ordered release units: direct bumps first, then triggered bumps."""

    model_config = ConfigDict(frozen=True)

    units: tuple[ReleaseUnit, ...] = ()

    def names(self) -> list[str]:
        return [u.name for u in self.units]


class ReleaseStage(str, Enum):
    """Linear states of the release executor."""

    PLANNED = "planned"
    DRY_RUN_VERIFIED = "dry_run_verified"
    MANIFESTS_UPDATED = "manifests_updated"
    DEP_COMMITS_DONE = "dep_commits_done"
    CHANGELOGS_WRITTEN = "changelogs_written"
    COMMITTED_AND_TAGGED = "committed_and_tagged"
    PUBLISHED_AND_RELEASED = "published_and_released"
    DONE = "done"


class ExecutionLedger(BaseModel):
    """Append-only record of the irreversible actions taken so far.

    Each ``record_*`` method is called only after the corresponding action
    succeeded. The rollback coordinator reads nothing else.

    Attributes:
        original_commit: HEAD before any mutation; the rollback target.
        branch: Branch the release commit is pushed to.
        stage: Last stage the executor completed.
        tags_created: Tags created locally, in creation order.
        commits_made: Number of commits created by this run.
        packages_published: ``name@version`` published to the registry.
        remote_release_ids: Package name → release id on the release host.
        files_created: Files written by this run that git did not track.
    """

    original_commit: str
    branch: str = "main"
    stage: ReleaseStage = ReleaseStage.PLANNED
    tags_created: list[str] = Field(default_factory=list)
    commits_made: int = 0
    packages_published: list[str] = Field(default_factory=list)
    remote_release_ids: dict[str, int] = Field(default_factory=dict)
    files_created: list[Path] = Field(default_factory=list)

    def advance(self, stage: ReleaseStage) -> None:
        self.stage = stage

    def record_tag(self, tag: str) -> None:
        self.tags_created.append(tag)

    def record_commit(self) -> None:
        self.commits_made += 1

    def record_published(self, spec: str) -> None:
        self.packages_published.append(spec)

    def record_release(self, name: str, release_id: int) -> None:
        self.remote_release_ids[name] = release_id

    def record_created_file(self, path: Path) -> None:
        self.files_created.append(path)
