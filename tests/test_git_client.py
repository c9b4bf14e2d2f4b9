from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from repo_sync.git import FakeGitRunner, GitClient, GitCommandError
from repo_sync.process import CommandResult


def _ok(stdout: str = "") -> CommandResult:
    return CommandResult(args=("git",), returncode=0, stdout=stdout, stderr="")


def _fail(stderr: str = "fatal") -> CommandResult:
    return CommandResult(args=("git", "status"), returncode=128, stdout="", stderr=stderr)


def _client(tmp_path: Path, responses=None, *, with_git_dir: bool = True) -> tuple[GitClient, FakeGitRunner]:
    if with_git_dir:
        (tmp_path / ".git").mkdir(exist_ok=True)
    runner = FakeGitRunner(responses)
    return GitClient(runner, tmp_path), runner


def test_plain_directory_is_not_a_repo_without_running_git(tmp_path: Path) -> None:
    client, runner = _client(tmp_path, with_git_dir=False)

    assert asyncio.run(client.is_repo()) is False
    assert runner.invocations == []


def test_is_repo_checks_work_tree(tmp_path: Path) -> None:
    client, runner = _client(tmp_path, {("rev-parse", "--is-inside-work-tree"): _ok("true\n")})

    assert asyncio.run(client.is_repo()) is True
    assert runner.invocations == [("rev-parse", "--is-inside-work-tree")]


def test_current_branch_detached_is_none(tmp_path: Path) -> None:
    client, _ = _client(
        tmp_path,
        {("symbolic-ref", "--quiet", "--short", "HEAD"): CommandResult(("git",), 1, "", "")},
    )

    assert asyncio.run(client.current_branch()) is None


def test_status_returns_changed_paths(tmp_path: Path) -> None:
    client, _ = _client(tmp_path, {("status", "--porcelain"): _ok(" M src/a.py\n?? notes.txt\n")})

    assert asyncio.run(client.status()) == ["src/a.py", "notes.txt"]


def test_status_failure_raises(tmp_path: Path) -> None:
    client, _ = _client(tmp_path, {("status", "--porcelain"): _fail("fatal: bad index")})

    with pytest.raises(GitCommandError) as excinfo:
        asyncio.run(client.status())

    assert excinfo.value.command == "status"
    assert "bad index" in excinfo.value.detail


def test_symbolic_default_branch_parses_symref(tmp_path: Path) -> None:
    client, _ = _client(
        tmp_path,
        {
            ("ls-remote", "--symref", "origin", "HEAD"): _ok(
                "ref: refs/heads/trunk\tHEAD\n0123abcd\tHEAD\n"
            )
        },
    )

    assert asyncio.run(client.symbolic_default_branch("origin", 5)) == "trunk"


def test_cached_remote_head_strips_remote_prefix(tmp_path: Path) -> None:
    client, _ = _client(
        tmp_path,
        {("symbolic-ref", "--quiet", "--short", "refs/remotes/origin/HEAD"): _ok("origin/develop\n")},
    )

    assert asyncio.run(client.cached_remote_head("origin")) == "develop"


@pytest.mark.parametrize(
    "stdout, expected",
    [
        ("* remote origin\n  Fetch URL: x\n  HEAD branch: main\n", "main"),
        ("* remote origin\n  HEAD branch: (unknown)\n", None),
        ("* remote origin\n", None),
    ],
)
def test_remote_show_head(tmp_path: Path, stdout: str, expected: str | None) -> None:
    client, _ = _client(tmp_path, {("remote", "show", "origin"): _ok(stdout)})

    assert asyncio.run(client.remote_show_head("origin", 5)) == expected


def test_upstream_falls_back_to_remote_branch(tmp_path: Path) -> None:
    client, runner = _client(
        tmp_path,
        {
            ("rev-parse", "--abbrev-ref", "--symbolic-full-name", "feature@{upstream}"): CommandResult(
                ("git",), 128, "", "fatal: no upstream configured"
            ),
        },
    )

    assert asyncio.run(client.upstream_for("feature", "origin")) == "origin/feature"
    assert runner.invocations[-1] == ("rev-parse", "--verify", "--quiet", "refs/remotes/origin/feature")


def test_rev_list_count_tolerates_garbage(tmp_path: Path) -> None:
    client, _ = _client(tmp_path, {("rev-list", "--count", "origin/main..HEAD"): _ok("oops\n")})

    assert asyncio.run(client.rev_list_count("origin/main..HEAD")) == 0


def test_pull_is_fast_forward_only(tmp_path: Path) -> None:
    client, runner = _client(tmp_path)

    asyncio.run(client.pull(timeout=30))

    assert runner.invocations == [("pull", "--ff-only")]


def test_stash_push_includes_untracked(tmp_path: Path) -> None:
    client, runner = _client(tmp_path)

    asyncio.run(client.stash_push("auto-stash-20240101_000000-abc123"))

    assert runner.invocations == [
        ("stash", "push", "-m", "auto-stash-20240101_000000-abc123", "--include-untracked")
    ]


def test_find_stash_returns_matching_reference(tmp_path: Path) -> None:
    listing = (
        "stash@{0}: On main: manual work\n"
        "stash@{1}: On feature: auto-stash-20240101_000000-abc123\n"
    )
    client, runner = _client(tmp_path, {("stash", "list"): _ok(listing)})

    ref = asyncio.run(client.find_stash("auto-stash-20240101_000000-abc123"))
    missing = asyncio.run(client.find_stash("auto-stash-19990101_000000-ffffff"))
    asyncio.run(client.stash_pop(ref))

    assert ref == "stash@{1}"
    assert missing is None
    assert runner.invocations[-1] == ("stash", "pop", "stash@{1}")
