"""Tests for cascade.rollback."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from cascade.config import Settings
from cascade.executor import ReleaseContext
from cascade.host import ReleaseHostError
from cascade.models import ExecutionLedger, ReleaseUnit
from cascade.rollback import (
    RollbackError,
    failure_comment,
    find_pr_number_from_commit_message,
    rollback,
)
from cascade.shell import CommandError

from conftest import commit_file


@pytest.fixture
def ctx(tmp_path: Path, settings: Settings) -> ReleaseContext:
    return ReleaseContext(root=tmp_path, settings=settings, host=MagicMock(), branch="main")


class TestFindPrNumberFromCommitMessage:
    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("feat: add thing (#123)", 123),
            ("fix: many ( #12 #13 )", 12),
            ("chore: padded (#007)", 7),
            ("docs: no reference", None),
            ("refs #55 without parens", None),
        ],
    )
    @patch("cascade.rollback.git")
    def test_patterns(self, mock_git: MagicMock, message: str, expected: int | None) -> None:
        mock_git.return_value = message

        assert find_pr_number_from_commit_message("abc1234", Path("/repo")) == expected

    @patch("cascade.rollback.git")
    def test_rejects_non_hex_revision_without_git(self, mock_git: MagicMock) -> None:
        assert find_pr_number_from_commit_message("HEAD; rm -rf /", Path("/repo")) is None
        mock_git.assert_not_called()

    @patch("cascade.rollback.git")
    def test_git_failure_is_none(self, mock_git: MagicMock) -> None:
        mock_git.side_effect = CommandError(["git", "log"], "/repo", 128)

        assert find_pr_number_from_commit_message("deadbeef", Path("/repo")) is None

    def test_real_repository(self, git_repo: Path) -> None:
        sha = commit_file(git_repo, "a.txt", "a\n", "feat: squash merged (#42)")

        assert find_pr_number_from_commit_message(sha, git_repo) == 42


class TestFailureComment:
    def test_lists_every_unit_and_links_run(self, units: list[ReleaseUnit]) -> None:
        body = failure_comment(units, "https://github.com/acme/monorepo/actions/runs/42")

        assert body == (
            "⚠️ Release failed for: @acme/a@1.1.0, @acme/b@2.0.1, @acme/c@0.3.1\n\n"
            "See workflow details: https://github.com/acme/monorepo/actions/runs/42\n\n"
            "This PR has been automatically reopened."
        )


@patch("cascade.rollback.step")
@patch("cascade.rollback.npm")
@patch("cascade.rollback.find_pr_number_from_commit_message", return_value=None)
class TestRollback:
    def test_removes_only_recorded_tags_and_resets(
        self,
        mock_find_pr: MagicMock,
        mock_npm: MagicMock,
        mock_step: MagicMock,
        units: list[ReleaseUnit],
        ledger: ExecutionLedger,
        ctx: ReleaseContext,
    ) -> None:
        """One tag created before failure: exactly that tag is removed."""
        ledger.record_tag("@acme/a@1.1.0")

        with patch("cascade.rollback.git", return_value="f00d") as mock_git:
            rollback(units, ledger, ctx)

        tag_calls = [c for c in mock_git.call_args_list if c.args[0] == "tag"]
        assert tag_calls == [call("tag", "-d", "@acme/a@1.1.0", cwd=ctx.root)]
        mock_git.assert_any_call("push", "origin", ":refs/tags/@acme/a@1.1.0", cwd=ctx.root)
        mock_git.assert_any_call("reset", "--hard", "abc1234def", cwd=ctx.root)
        mock_git.assert_any_call("push", "origin", "main", "--force", cwd=ctx.root)
        # The pull request is looked up from the pre-release commit
        mock_find_pr.assert_called_once_with("abc1234def", ctx.root)
        assert call("rev-parse", "HEAD", cwd=ctx.root) not in mock_git.call_args_list

    def test_unpublish_failure_is_not_fatal(
        self,
        mock_find_pr: MagicMock,
        mock_npm: MagicMock,
        mock_step: MagicMock,
        units: list[ReleaseUnit],
        ledger: ExecutionLedger,
        ctx: ReleaseContext,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        ledger.record_release("@acme/a", 11)
        ledger.record_release("@acme/b", 22)
        mock_npm.side_effect = [CommandError(["npm", "unpublish"], None, 1), "", ""]
        mock_find_pr.return_value = 7

        with patch("cascade.rollback.git", return_value=""):
            rollback(units, ledger, ctx)

        assert mock_npm.call_count == 3
        assert ctx.host.delete_release.call_args_list == [call(11), call(22)]
        ctx.host.update_pull_request.assert_called_once_with(7, "open")
        ctx.host.create_comment.assert_called_once()
        assert "could not unpublish @acme/a@1.1.0" in capsys.readouterr().err

    def test_tag_and_release_failures_are_warnings(
        self,
        mock_find_pr: MagicMock,
        mock_npm: MagicMock,
        mock_step: MagicMock,
        units: list[ReleaseUnit],
        ledger: ExecutionLedger,
        ctx: ReleaseContext,
    ) -> None:
        ledger.record_tag("@acme/a@1.1.0")
        ledger.record_tag("@acme/b@2.0.1")
        ledger.record_release("@acme/a", 11)
        ctx.host.delete_release.side_effect = ReleaseHostError("gone")

        def fake_git(*args, cwd=None):
            if args[:2] == ("tag", "-d") and args[2] == "@acme/a@1.1.0":
                raise CommandError(["git", *args], cwd, 1)
            return ""

        with patch("cascade.rollback.git", side_effect=fake_git) as mock_git:
            rollback(units, ledger, ctx)

        mock_git.assert_any_call("tag", "-d", "@acme/b@2.0.1", cwd=ctx.root)
        mock_git.assert_any_call("reset", "--hard", "abc1234def", cwd=ctx.root)

    def test_pull_request_notification_failure_is_fatal(
        self,
        mock_find_pr: MagicMock,
        mock_npm: MagicMock,
        mock_step: MagicMock,
        units: list[ReleaseUnit],
        ledger: ExecutionLedger,
        ctx: ReleaseContext,
    ) -> None:
        mock_find_pr.return_value = 7
        ctx.host.create_comment.side_effect = CommandError(["gh", "api"], None, 1)

        with patch("cascade.rollback.git", return_value=""):
            with pytest.raises(RollbackError, match="#7"):
                rollback(units, ledger, ctx)

        # Both notifications were attempted
        ctx.host.update_pull_request.assert_called_once_with(7, "open")

    def test_reset_failure_is_fatal_after_other_compensations(
        self,
        mock_find_pr: MagicMock,
        mock_npm: MagicMock,
        mock_step: MagicMock,
        units: list[ReleaseUnit],
        ledger: ExecutionLedger,
        ctx: ReleaseContext,
    ) -> None:
        ledger.record_release("@acme/a", 11)

        def fake_git(*args, cwd=None):
            if args[0] == "reset":
                raise CommandError(["git", *args], cwd, 1)
            return ""

        with patch("cascade.rollback.git", side_effect=fake_git):
            with pytest.raises(RollbackError, match="Could not restore main"):
                rollback(units, ledger, ctx)

        assert mock_npm.call_count == 3
        ctx.host.delete_release.assert_called_once_with(11)

    def test_unexpected_host_and_registry_errors_are_warnings(
        self,
        mock_find_pr: MagicMock,
        mock_npm: MagicMock,
        mock_step: MagicMock,
        units: list[ReleaseUnit],
        ledger: ExecutionLedger,
        ctx: ReleaseContext,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        ledger.record_release("@acme/a", 11)
        ledger.record_release("@acme/b", 22)
        mock_npm.side_effect = RuntimeError("registry unreachable")
        ctx.host.delete_release.side_effect = [RuntimeError("bad payload"), None]
        mock_find_pr.return_value = 7

        with patch("cascade.rollback.git", return_value=""):
            rollback(units, ledger, ctx)

        assert ctx.host.delete_release.call_args_list == [call(11), call(22)]
        ctx.host.update_pull_request.assert_called_once_with(7, "open")
        err = capsys.readouterr().err
        assert "could not unpublish @acme/c@0.3.1: registry unreachable" in err
        assert "could not delete release 11 for @acme/a: bad payload" in err

    def test_removes_files_created_by_the_run(
        self,
        mock_find_pr: MagicMock,
        mock_npm: MagicMock,
        mock_step: MagicMock,
        units: list[ReleaseUnit],
        ledger: ExecutionLedger,
        ctx: ReleaseContext,
        tmp_path: Path,
    ) -> None:
        """Untracked changelogs survive a hard reset unless removed."""
        created = tmp_path / "packages" / "a" / "CHANGELOG.md"
        created.parent.mkdir(parents=True)
        created.write_text("# Changelog\n")
        kept = tmp_path / "packages" / "b" / "CHANGELOG.md"
        kept.parent.mkdir(parents=True)
        kept.write_text("# Changelog\n")
        ledger.record_created_file(created)
        ledger.record_created_file(tmp_path / "packages" / "c" / "CHANGELOG.md")

        with patch("cascade.rollback.git", return_value=""):
            rollback(units, ledger, ctx)

        assert not created.exists()
        assert kept.exists()
