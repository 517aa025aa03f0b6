"""
Patch Materializer（只在 complex 等级触发）。

约定：
- 要么完全成功（本地快照与 ChangeSet 声明的文件列表一致），要么干净地失败
  （抛 `SnapshotError` 子类），由 dispatcher 决定降级为 diff-only
- 真正的“怎么拿到快照”由 `materialize_snapshot(ref) -> local_path` 协作方负责，
  默认实现是基于 git CLI 的 `GitSnapshotProvider`
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse, urlunparse

import anyio

from reviewkit.review.errors import SnapshotConflictError
from reviewkit.review.errors import SnapshotError
from reviewkit.review.errors import SnapshotUnavailableError
from reviewkit.review.models import ChangeSet

logger = logging.getLogger(__name__)

SnapshotMaterializer = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class Snapshot:
    """某个 ref 的完整本地工作树。"""

    root: Path
    ref: str

    def resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if target != root and root not in target.parents:
            raise FileNotFoundError(f"{path} escapes snapshot root {root}")
        return target

    async def read(self, path: str) -> bytes:
        return await anyio.Path(self.resolve(path)).read_bytes()


class PatchMaterializer:
    def __init__(self, materialize: SnapshotMaterializer, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._materialize = materialize
        self._timeout_seconds = timeout_seconds

    async def materialize(self, change_set: ChangeSet) -> Snapshot:
        """拉取 source_ref 的完整快照并校验一致性；任何失败都转成 `SnapshotError`。"""
        ref = change_set.source_ref
        try:
            with anyio.fail_after(self._timeout_seconds):
                local_path = await self._materialize(ref)
        except SnapshotError:
            raise
        except TimeoutError as exc:
            raise SnapshotUnavailableError(f"Snapshot of {ref} timed out after {self._timeout_seconds}s") from exc
        except Exception as exc:
            raise SnapshotUnavailableError(f"Snapshot of {ref} unavailable: {exc}") from exc

        snapshot = Snapshot(root=Path(local_path), ref=ref)
        await anyio.to_thread.run_sync(verify_snapshot, snapshot, change_set)
        logger.info(f"Materialized snapshot for {change_set.identifier} at {snapshot.root}")
        return snapshot


def verify_snapshot(snapshot: Snapshot, change_set: ChangeSet) -> None:
    """快照必须包含所有未删除的文件，且不包含已删除的文件。"""
    if not snapshot.root.is_dir():
        raise SnapshotUnavailableError(f"Snapshot root does not exist: {snapshot.root}")
    missing: list[str] = []
    lingering: list[str] = []
    for f in change_set.files:
        try:
            exists = snapshot.resolve(f.path).is_file()
        except FileNotFoundError:
            exists = False
        if f.is_deleted_file and exists:
            lingering.append(f.path)
        if not f.is_deleted_file and not exists:
            missing.append(f.path)
    if missing or lingering:
        raise SnapshotConflictError(
            f"Snapshot {snapshot.root} inconsistent with {change_set.identifier}: "
            f"missing={missing}, deleted_but_present={lingering}"
        )


class GitSnapshotProvider:
    """
    基于 git CLI 的 `materialize_snapshot` 实现。

    - 每个仓库一个本地 clone（不 checkout），后续只 fetch
    - 每个 commit 一个 detached worktree；同一 commit 重复请求直接复用
    - 每个仓库最多保留 keep_worktrees 个 worktree，最久未使用的会被 `git worktree remove`
    """

    def __init__(
        self,
        base_dir: str,
        git_bin: str,
        repo_id: str,
        clone_url: str,
        token: str | None = None,
        token_user: str | None = None,
        keep_worktrees: int = 3,
    ) -> None:
        if keep_worktrees <= 0:
            raise ValueError("keep_worktrees must be > 0")
        self._base_dir = base_dir
        self._git_bin = git_bin
        self._repo_id = repo_id
        self._clone_url = clone_url
        self._token = token
        self._token_user = token_user
        self._keep_worktrees = keep_worktrees

    async def __call__(self, ref: str) -> str:
        return await anyio.to_thread.run_sync(self.materialize_sync, ref)

    def materialize_sync(self, ref: str) -> str:
        repo_root = _repo_dir(base_dir=self._base_dir, repo_id=self._repo_id)
        clone_dir = os.path.join(repo_root, "clone")
        worktrees_dir = os.path.join(repo_root, "worktrees")
        worktree_dir = os.path.join(worktrees_dir, ref)
        os.makedirs(repo_root, exist_ok=True)

        if not os.path.exists(clone_dir):
            auth_url = _inject_token(clone_url=self._clone_url, token=self._token, token_user=self._token_user)
            _run_git(self._git_bin, ["clone", "--no-checkout", auth_url, clone_dir], None)
        elif not os.path.exists(os.path.join(clone_dir, ".git")):
            raise SnapshotUnavailableError(f"Clone directory exists but is not a git repo: {clone_dir}")

        _run_git(self._git_bin, ["fetch", "--prune", "origin", ref], clone_dir)

        if os.path.exists(worktree_dir):
            head = _run_git(self._git_bin, ["rev-parse", "HEAD"], worktree_dir).strip()
            expected = _run_git(self._git_bin, ["rev-parse", "FETCH_HEAD"], clone_dir).strip()
            if head != expected:
                raise SnapshotConflictError(f"Worktree {worktree_dir} is at {head}, expected {expected}")
            # mtime 记录最近一次使用，清理时按它排序
            os.utime(worktree_dir)
        else:
            _run_git(self._git_bin, ["worktree", "add", "--detach", worktree_dir, "FETCH_HEAD"], clone_dir)

        self._prune_worktrees(clone_dir=clone_dir, worktrees_dir=worktrees_dir, current=worktree_dir)
        return worktree_dir

    def _prune_worktrees(self, clone_dir: str, worktrees_dir: str, current: str) -> None:
        others = [
            os.path.join(worktrees_dir, name)
            for name in os.listdir(worktrees_dir)
            if os.path.join(worktrees_dir, name) != current
        ]
        others.sort(key=os.path.getmtime, reverse=True)
        stale = others[self._keep_worktrees - 1 :]
        for path in stale:
            logger.info(f"Removing stale worktree {path}")
            _run_git(self._git_bin, ["worktree", "remove", "--force", path], clone_dir)
        if stale:
            _run_git(self._git_bin, ["worktree", "prune"], clone_dir)


def _repo_dir(base_dir: str, repo_id: str) -> str:
    safe = repo_id.replace("/", "__").replace(":", "__")
    return os.path.join(base_dir, safe)


def _inject_token(clone_url: str, token: str | None, token_user: str | None) -> str:
    if clone_url.startswith("git@") or clone_url.startswith("ssh://"):
        return clone_url
    if token is None or token_user is None:
        return clone_url
    parsed = urlparse(clone_url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid clone_url: {clone_url}")
    netloc = f"{token_user}:{token}@{parsed.netloc}"
    return urlunparse(parsed._replace(netloc=netloc))


def _run_git(git_bin: str, args: list[str], cwd: str | None) -> str:
    cmd = [git_bin] + args
    result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
    if result.returncode != 0:
        # 命令行里可能带 token，日志里只记子命令
        logger.error(f"git {args[0]} failed (cwd={cwd})\nstdout={result.stdout}\nstderr={result.stderr}")
        raise SnapshotUnavailableError(f"git {args[0]} failed with exit code {result.returncode}")
    return result.stdout
