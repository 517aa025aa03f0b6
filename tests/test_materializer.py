from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import anyio
import pytest

from reviewkit.review.context import build_change_set
from reviewkit.review.context import build_file_change
from reviewkit.review.errors import SnapshotConflictError
from reviewkit.review.errors import SnapshotUnavailableError
from reviewkit.review.materializer import GitSnapshotProvider
from reviewkit.review.materializer import PatchMaterializer
from reviewkit.review.materializer import _inject_token
from reviewkit.review.models import ChangeSet


def _change_set() -> ChangeSet:
    return build_change_set(
        identifier="cs-1",
        source_ref="head",
        target_ref="base",
        files=[
            build_file_change(path="src/a.py", diff="@@ -1 +1 @@\n-x\n+y"),
            build_file_change(path="src/gone.py", diff="@@ -1 +0,0 @@\n-x", is_deleted_file=True),
        ],
    )


def _provider(root: Path):  # type: ignore[no-untyped-def]
    async def materialize(ref: str) -> str:
        return str(root)

    return materialize


def test_materialize_returns_consistent_snapshot(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("y\n")
    materializer = PatchMaterializer(materialize=_provider(tmp_path), timeout_seconds=5)

    snapshot = anyio.run(materializer.materialize, _change_set())

    assert snapshot.root == tmp_path
    assert snapshot.ref == "head"


def test_missing_or_lingering_files_are_a_conflict(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("y\n")
    (tmp_path / "src" / "gone.py").write_text("x\n")
    materializer = PatchMaterializer(materialize=_provider(tmp_path), timeout_seconds=5)

    with pytest.raises(SnapshotConflictError):
        anyio.run(materializer.materialize, _change_set())


def test_provider_failure_is_wrapped() -> None:
    async def broken(ref: str) -> str:
        raise OSError("disk full")

    materializer = PatchMaterializer(materialize=broken, timeout_seconds=5)
    with pytest.raises(SnapshotUnavailableError) as exc_info:
        anyio.run(materializer.materialize, _change_set())
    assert "disk full" in str(exc_info.value)


def test_slow_provider_times_out() -> None:
    async def slow(ref: str) -> str:
        await anyio.sleep(5)
        return "/nowhere"

    materializer = PatchMaterializer(materialize=slow, timeout_seconds=0.05)
    with pytest.raises(SnapshotUnavailableError) as exc_info:
        anyio.run(materializer.materialize, _change_set())
    assert "timed out" in str(exc_info.value)


def test_inject_token_only_touches_http_urls() -> None:
    assert _inject_token("https://gitlab.example.com/g/p.git", "t", "oauth2") == "https://oauth2:t@gitlab.example.com/g/p.git"
    assert _inject_token("git@gitlab.example.com:g/p.git", "t", "oauth2") == "git@gitlab.example.com:g/p.git"
    assert _inject_token("https://github.com/o/r.git", None, None) == "https://github.com/o/r.git"


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=reviewkit", "-c", "user.email=reviewkit@example.com", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def _origin_with_two_commits(tmp_path: Path) -> tuple[Path, str, str]:
    origin = tmp_path / "origin"
    origin.mkdir()
    _git(origin, "init", "-q")
    _git(origin, "config", "uploadpack.allowAnySHA1InWant", "true")
    (origin / "a.py").write_text("x = 1\n")
    _git(origin, "add", "a.py")
    _git(origin, "commit", "-q", "-m", "first")
    first = _git(origin, "rev-parse", "HEAD")
    (origin / "a.py").write_text("x = 2\n")
    _git(origin, "commit", "-q", "-am", "second")
    second = _git(origin, "rev-parse", "HEAD")
    return origin, first, second


def _git_provider(tmp_path: Path, origin: Path, keep_worktrees: int = 3) -> GitSnapshotProvider:
    return GitSnapshotProvider(
        base_dir=str(tmp_path / "snapshots"),
        git_bin="git",
        repo_id="local/origin",
        clone_url=str(origin),
        keep_worktrees=keep_worktrees,
    )


@requires_git
def test_git_provider_checks_out_commit_and_reuses_worktree(tmp_path: Path) -> None:
    origin, first, _ = _origin_with_two_commits(tmp_path)
    provider = _git_provider(tmp_path, origin)

    path = provider.materialize_sync(first)

    assert Path(path).name == first
    assert (Path(path) / "a.py").read_text() == "x = 1\n"
    assert provider.materialize_sync(first) == path
    assert _git(Path(path), "rev-parse", "HEAD") == first


@requires_git
def test_git_provider_rejects_worktree_at_wrong_commit(tmp_path: Path) -> None:
    origin, first, second = _origin_with_two_commits(tmp_path)
    provider = _git_provider(tmp_path, origin)
    path = Path(provider.materialize_sync(first))
    _git(path, "checkout", "-q", "--detach", second)

    with pytest.raises(SnapshotConflictError):
        provider.materialize_sync(first)


@requires_git
def test_git_provider_removes_least_recently_used_worktrees(tmp_path: Path) -> None:
    origin, first, second = _origin_with_two_commits(tmp_path)
    provider = _git_provider(tmp_path, origin, keep_worktrees=1)

    old = Path(provider.materialize_sync(first))
    new = Path(provider.materialize_sync(second))

    assert not old.exists()
    assert [p.name for p in new.parent.iterdir()] == [second]
    assert (new / "a.py").read_text() == "x = 2\n"
    worktrees = _git(tmp_path / "snapshots" / "local__origin" / "clone", "worktree", "list")
    assert first[:7] not in worktrees


@requires_git
def test_git_provider_refuses_corrupted_clone_dir(tmp_path: Path) -> None:
    origin, first, _ = _origin_with_two_commits(tmp_path)
    (tmp_path / "snapshots" / "local__origin" / "clone").mkdir(parents=True)

    with pytest.raises(SnapshotUnavailableError):
        _git_provider(tmp_path, origin).materialize_sync(first)


@requires_git
def test_git_provider_failure_surfaces_as_unavailable_snapshot(tmp_path: Path) -> None:
    provider = _git_provider(tmp_path, tmp_path / "does-not-exist")
    materializer = PatchMaterializer(materialize=provider, timeout_seconds=30)

    with pytest.raises(SnapshotUnavailableError):
        anyio.run(materializer.materialize, _change_set())
