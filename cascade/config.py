"""Release configuration.

Settings come from three layers, lowest precedence first: built-in defaults,
an optional ``cascade.toml`` at the repository root, and environment
variables. The TOML file is read with tomlkit so it can carry comments next
to each option.

Example ``cascade.toml``::

    [release]
    registry = "https://registry.npmjs.org/"
    branch = "main"
    install-command = ["pnpm", "install"]
    lockfile = "pnpm-lock.yaml"
    command-timeout = 900
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import tomlkit
from pydantic import BaseModel, Field, ValidationError
from tomlkit.exceptions import ParseError

CONFIG_FILE = "cascade.toml"

DEFAULT_REGISTRY = "https://npm.pkg.github.com/"


class ConfigError(Exception):
    """Pre-flight validation failed; nothing has been changed."""


class Settings(BaseModel):
    """Everything the release run needs to know that isn't in the manifests.

    Attributes:
        token: Release-host token (GH_TOKEN); gh reads it from the environment.
        repository: ``owner/repo`` identifier (GITHUB_REPOSITORY).
        run_id: CI run id, used to link the run from PR comments.
        server_url: Release-host base URL.
        registry: Registry packages are published to.
        remote: Git remote to push to.
        branch: Branch to push; None means the currently checked-out branch.
        install_command: Command that resynchronises the lockfile.
        lockfile: Lockfile path relative to the repository root.
        changelog_file: Changelog file name inside each package directory.
        command_timeout: Seconds before registry/host commands are killed.
    """

    token: str
    repository: str
    run_id: str = ""
    server_url: str = "https://github.com"
    registry: str = DEFAULT_REGISTRY
    remote: str = "origin"
    branch: str | None = None
    install_command: list[str] = Field(default_factory=lambda: ["npm", "install"])
    lockfile: str = "package-lock.json"
    changelog_file: str = "CHANGELOG.md"
    command_timeout: float | None = None

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.repository.split("/", 1)[1]

    @property
    def run_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/{self.repository}/actions/runs/{self.run_id}"


def validate_env(environ: Mapping[str, str]) -> None:
    """Fail fast when the release-host credentials are missing.

    Raises:
        ConfigError: Naming every missing variable, or describing a malformed
            GITHUB_REPOSITORY.
    """
    missing = [
        var for var in ("GH_TOKEN", "GITHUB_REPOSITORY") if not environ.get(var)
    ]
    if missing:
        raise ConfigError(
            "\n".join(
                f"{var} environment variable is required for releasing"
                for var in missing
            )
        )

    owner, _, repo = environ["GITHUB_REPOSITORY"].partition("/")
    if not owner or not repo or "/" in repo:
        raise ConfigError(
            f"Invalid GITHUB_REPOSITORY {environ['GITHUB_REPOSITORY']!r}. "
            "Expected 'owner/repo'"
        )


def load_config_file(root: Path) -> dict:
    """Read the ``[release]`` table from cascade.toml, if the file exists."""
    path = root / CONFIG_FILE
    if not path.exists():
        return {}
    try:
        doc = tomlkit.parse(path.read_text())
    except ParseError as exc:
        raise ConfigError(f"Malformed {CONFIG_FILE}: {exc}") from exc

    table = doc.unwrap().get("release", {})
    if not isinstance(table, dict):
        raise ConfigError(f"[release] in {CONFIG_FILE} must be a table")
    # Keys use dashes in TOML
    return {key.replace("-", "_"): value for key, value in table.items()}


def load_settings(root: Path, environ: Mapping[str, str]) -> Settings:
    """Build Settings for a repository.

    Call validate_env() first; this assumes GH_TOKEN and GITHUB_REPOSITORY
    are present.
    """
    values = load_config_file(root)

    env_overrides = {
        "token": environ.get("GH_TOKEN"),
        "repository": environ.get("GITHUB_REPOSITORY"),
        "run_id": environ.get("GITHUB_RUN_ID"),
        "server_url": environ.get("GITHUB_SERVER_URL"),
        "registry": environ.get("CASCADE_REGISTRY"),
        "branch": environ.get("CASCADE_BRANCH"),
    }
    values.update({k: v for k, v in env_overrides.items() if v})

    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid release configuration:\n{exc}") from exc
