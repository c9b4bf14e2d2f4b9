from __future__ import annotations

import asyncio
import io
import os
import signal
import shutil
import subprocess
import sys
import time
from pathlib import Path

import pytest

from repo_sync.config import RepoSyncSettings
from repo_sync.git import GitRunner
from repo_sync.hooks import HookCommand, HookExecutor, RepoHookSet
from repo_sync.models import Outcome
from repo_sync.orchestrator import TERMINATED_EXIT_CODE, run, sync_repositories

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(*args: str, cwd: Path) -> str:
    completed = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return completed.stdout.strip()


@pytest.fixture(autouse=True)
def isolated_git(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for key in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(key, "Repo Sync Tests")
    for key in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(key, "tests@example.invalid")
    (tmp_path / "gitconfig").write_text("[commit]\n\tgpgsign = false\n", encoding="utf-8")


@pytest.fixture
def workspace(tmp_path: Path) -> dict[str, Path]:
    remote = tmp_path / "remote.git"
    git("init", "--bare", str(remote), cwd=tmp_path)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=remote)

    seed = tmp_path / "seed"
    git("clone", str(remote), str(seed), cwd=tmp_path)
    git("checkout", "-b", "main", cwd=seed)
    (seed / "README.md").write_text("v1\n", encoding="utf-8")
    git("add", "README.md", cwd=seed)
    git("commit", "-m", "initial", cwd=seed)
    git("push", "origin", "main", cwd=seed)

    code = tmp_path / "code"
    code.mkdir()
    git("clone", str(remote), str(code / "repoA"), cwd=tmp_path)
    return {"remote": remote, "seed": seed, "code": code, "repo": code / "repoA"}


def advance_remote(seed: Path, content: str) -> str:
    (seed / "README.md").write_text(content, encoding="utf-8")
    git("commit", "-am", f"update to {content.strip()}", cwd=seed)
    git("push", "origin", "main", cwd=seed)
    return git("rev-parse", "HEAD", cwd=seed)


def settings_for(code: Path, tmp_path: Path, **overrides) -> RepoSyncSettings:
    values = dict(
        code_dir=code,
        batch_size=2,
        job_timeout=60.0,
        dry_run=False,
        verbose=False,
        log_dir=tmp_path / "logs",
        hook_paths=(),
        status_file=None,
        log_file=None,
    )
    values.update(overrides)
    return RepoSyncSettings(**values)


def sync(settings: RepoSyncSettings, hooks: HookExecutor | None = None):
    return asyncio.run(sync_repositories(settings, GitRunner(), hooks))


def test_clean_repository_is_fast_forwarded(workspace, tmp_path: Path) -> None:
    head = advance_remote(workspace["seed"], "v2\n")

    summary = sync(settings_for(workspace["code"], tmp_path))

    assert summary.outcomes == {"repoA": Outcome.SUCCESS}
    assert git("rev-parse", "HEAD", cwd=workspace["repo"]) == head
    assert git("symbolic-ref", "--short", "HEAD", cwd=workspace["repo"]) == "main"


def test_dirty_feature_branch_is_restored_after_syncing_main(workspace, tmp_path: Path) -> None:
    repo = workspace["repo"]
    git("checkout", "-b", "feature", cwd=repo)
    (repo / "README.md").write_text("local edit\n", encoding="utf-8")
    (repo / "scratch.txt").write_text("untracked\n", encoding="utf-8")
    head = advance_remote(workspace["seed"], "v2\n")

    summary = sync(settings_for(workspace["code"], tmp_path))

    assert summary.outcomes == {"repoA": Outcome.SUCCESS}
    assert git("symbolic-ref", "--short", "HEAD", cwd=repo) == "feature"
    assert git("rev-parse", "main", cwd=repo) == head
    assert (repo / "README.md").read_text(encoding="utf-8") == "local edit\n"
    assert (repo / "scratch.txt").read_text(encoding="utf-8") == "untracked\n"
    assert git("stash", "list", cwd=repo) == ""


def test_mixed_directory_counts_each_outcome(workspace, tmp_path: Path) -> None:
    code = workspace["code"]
    (code / "plain").mkdir()
    detached = code / "repoB"
    git("clone", str(workspace["remote"]), str(detached), cwd=tmp_path)
    git("checkout", "--detach", "HEAD", cwd=detached)
    (code / ".hidden").mkdir()

    summary = sync(settings_for(code, tmp_path, batch_size=1))

    assert summary.outcomes == {
        "plain": Outcome.SKIPPED,
        "repoA": Outcome.SUCCESS,
        "repoB": Outcome.SKIPPED,
    }
    assert summary.exit_code == 0


def test_unreachable_remote_keeps_local_state(workspace, tmp_path: Path) -> None:
    repo = workspace["repo"]
    before = git("rev-parse", "HEAD", cwd=repo)
    shutil.rmtree(workspace["remote"])

    summary = sync(settings_for(workspace["code"], tmp_path))

    assert summary.outcomes == {"repoA": Outcome.SUCCESS}
    assert git("rev-parse", "HEAD", cwd=repo) == before


def test_dry_run_changes_nothing(workspace, tmp_path: Path) -> None:
    repo = workspace["repo"]
    git("checkout", "-b", "feature", cwd=repo)
    (repo / "README.md").write_text("local edit\n", encoding="utf-8")
    before_main = git("rev-parse", "main", cwd=repo)
    advance_remote(workspace["seed"], "v2\n")
    hooks = HookExecutor(
        {"repoA": RepoHookSet(repository="repoA", commands=[HookCommand(argv=["touch", "hooked"])])},
        dry_run=True,
    )

    summary = sync(settings_for(workspace["code"], tmp_path, dry_run=True), hooks)

    assert summary.outcomes == {"repoA": Outcome.SUCCESS}
    assert git("symbolic-ref", "--short", "HEAD", cwd=repo) == "feature"
    assert git("rev-parse", "main", cwd=repo) == before_main
    assert git("stash", "list", cwd=repo) == ""
    assert (repo / "README.md").read_text(encoding="utf-8") == "local edit\n"
    assert not (repo / "hooked").exists()


def test_hooks_run_after_pull(workspace, tmp_path: Path) -> None:
    repo = workspace["repo"]
    advance_remote(workspace["seed"], "v2\n")
    hooks = HookExecutor(
        {
            "repoA": RepoHookSet(
                repository="repoA",
                commands=[HookCommand(argv=["sh", "-c", "cp README.md seen.txt"])],
            )
        }
    )

    summary = sync(settings_for(workspace["code"], tmp_path), hooks)

    assert summary.outcomes == {"repoA": Outcome.SUCCESS}
    assert (repo / "seen.txt").read_text(encoding="utf-8") == "v2\n"


def test_full_run_writes_log_and_status(workspace, tmp_path: Path) -> None:
    advance_remote(workspace["seed"], "v2\n")
    status_file = tmp_path / "status.json"
    stream = io.StringIO()

    exit_code = run(
        settings_for(workspace["code"], tmp_path, status_file=status_file, verbose=True),
        stream=stream,
    )

    output = stream.getvalue()
    assert exit_code == 0
    assert "===== repoA [SUCCESS] =====" in output
    assert "Successfully processed: 1" in output
    assert status_file.exists()
    logs = list((tmp_path / "logs").glob("git_update_*.log"))
    assert len(logs) == 1
    assert "Pull completed successfully" in logs[0].read_text(encoding="utf-8")


def test_hanging_repository_times_out_and_others_finish(workspace, tmp_path: Path) -> None:
    code = workspace["code"]
    git("clone", str(workspace["remote"]), str(code / "repoD"), cwd=tmp_path)
    hooks = HookExecutor(
        {"repoD": RepoHookSet(repository="repoD", commands=[HookCommand(argv=["sleep", "30"])])}
    )

    started = time.monotonic()
    summary = sync(settings_for(code, tmp_path, job_timeout=2.0), hooks)
    elapsed = time.monotonic() - started

    assert summary.outcomes == {"repoA": Outcome.SUCCESS, "repoD": Outcome.TIMEOUT}
    assert summary.exit_code == 1
    assert elapsed < 15


def _process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    stat = Path(f"/proc/{pid}/stat")
    if stat.exists():
        try:
            return stat.read_text().rsplit(")", 1)[1].split()[0] != "Z"
        except (OSError, IndexError):
            return False
    return True


def test_sigterm_stops_running_hooks(tmp_path: Path) -> None:
    code = tmp_path / "code"
    code.mkdir()
    git("init", str(code / "repoT"), cwd=tmp_path)
    pid_file = tmp_path / "hook.pid"
    hooks_file = tmp_path / "hooks.yml"
    hooks_file.write_text(
        "repository: repoT\n"
        "commands:\n"
        f"  - argv: [sh, -c, 'echo $$ > {pid_file}; exec sleep 60']\n",
        encoding="utf-8",
    )

    repo_root = Path(__file__).resolve().parents[1]
    env = os.environ.copy()
    for name in ("VERBOSE", "DRY_RUN", "BATCH_SIZE", "LOG_FILE", "SKIP_DIRS", "EXCLUDED_REPOS", "GIT_PATH"):
        env.pop(name, None)
    env.update(
        CODE_DIR=str(code),
        REPO_SYNC_LOG_DIR=str(tmp_path / "logs"),
        JOB_TIMEOUT="120",
        PYTHONPATH=f"{repo_root / 'src'}" + os.pathsep + env.get("PYTHONPATH", ""),
    )
    process = subprocess.Popen(
        [sys.executable, "-m", "repo_sync", "--hooks", str(hooks_file)],
        cwd=str(tmp_path),
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    try:
        deadline = time.monotonic() + 30
        while not (pid_file.exists() and pid_file.read_text().strip()):
            assert process.poll() is None, "repo-sync exited before the hook started"
            assert time.monotonic() < deadline, "hook never started"
            time.sleep(0.05)
        hook_pid = int(pid_file.read_text().strip())

        process.send_signal(signal.SIGTERM)
        returncode = process.wait(timeout=30)
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()

    assert returncode == TERMINATED_EXIT_CODE
    deadline = time.monotonic() + 5
    while _process_alive(hook_pid) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not _process_alive(hook_pid)
