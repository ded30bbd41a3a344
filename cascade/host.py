"""Release host access.

The executor and rollback coordinator only see the ``ReleaseHost`` protocol;
``GitHubReleaseHost`` implements it with the GitHub CLI, which authenticates
from ``GH_TOKEN`` in the environment.
"""

from __future__ import annotations

from typing import Protocol

from .shell import gh


class ReleaseHostError(Exception):
    """The release host answered with something other than what was asked for."""


class ReleaseHost(Protocol):
    def create_release(self, tag: str, title: str, body: str) -> int: ...

    def delete_release(self, release_id: int) -> None: ...

    def update_pull_request(self, number: int, state: str) -> None: ...

    def create_comment(self, number: int, body: str) -> None: ...


class GitHubReleaseHost:
    """Releases, pull requests and comments for one GitHub repository.

    Args:
        owner: Repository owner (user or organisation).
        repo: Repository name.
        timeout: Seconds before a ``gh`` call is killed; None waits forever.
    """

    def __init__(self, owner: str, repo: str, timeout: float | None = None) -> None:
        self.owner = owner
        self.repo = repo
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"repos/{self.owner}/{self.repo}"

    def _api(self, *args: str) -> str:
        return gh("api", *args, timeout=self.timeout)

    def create_release(self, tag: str, title: str, body: str) -> int:
        """Create a published release for an existing tag.

        Returns:
            The numeric release id, needed to delete it again.

        Raises:
            ReleaseHostError: If the response carries no numeric id.
        """
        output = self._api(
            "--method", "POST",
            f"{self.endpoint}/releases",
            "-f", f"tag_name={tag}",
            "-f", f"name={title}",
            "-f", f"body={body}",
            "--jq", ".id",
        )
        try:
            return int(output)
        except ValueError:
            raise ReleaseHostError(
                f"Release for {tag} was created without an id: {output!r}"
            ) from None

    def delete_release(self, release_id: int) -> None:
        self._api("--method", "DELETE", f"{self.endpoint}/releases/{release_id}")

    def update_pull_request(self, number: int, state: str) -> None:
        self._api(
            "--method", "PATCH",
            f"{self.endpoint}/pulls/{number}",
            "-f", f"state={state}",
        )

    def create_comment(self, number: int, body: str) -> None:
        # PR comments live on the issues endpoint
        self._api(
            "--method", "POST",
            f"{self.endpoint}/issues/{number}/comments",
            "-f", f"body={body}",
        )
