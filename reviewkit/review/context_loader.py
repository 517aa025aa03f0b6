"""
Context Loader（按需拉取完整文件内容）。

关键约束：
- **懒加载**：只有 analyzer 觉得 diff 不够时才调用，orchestrator 不预取
- **幂等**：同一个 (path, ref) 在一次 run 内只会真正拉取一次，之后直接返回缓存
  （失败也会被缓存，避免对同一个 404 反复请求）
- **single-flight**：并发调用同一个 key 时，后来者等待正在进行的那次拉取

analyzer 拿到的是 `AnalysisContext`：只能读自己分区内的文件。
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from collections.abc import Iterable

import anyio

from reviewkit.review.errors import ContentNotFoundError
from reviewkit.review.errors import ContextScopeError
from reviewkit.review.errors import ContextUnavailableError
from reviewkit.review.materializer import Snapshot
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import ComplexityTier

logger = logging.getLogger(__name__)

FileContentFetcher = Callable[[str, str], Awaitable[bytes]]


class ContextLoader:
    """一次 review run 内共享的全文缓存。"""

    def __init__(self, change_set: ChangeSet, fetch: FileContentFetcher | None) -> None:
        """
        - change_set：拉到的内容会挂到对应的 FileChange 上（仅 source_ref）
        - fetch：`fetch_file_content(path, ref)` 协作方；为 None 表示本次 run 只能看 diff
        """
        self._change_set = change_set
        self._fetch = fetch
        self._cache: dict[tuple[str, str], bytes] = {}
        self._failures: dict[tuple[str, str], Exception] = {}
        self._inflight: dict[tuple[str, str], anyio.Event] = {}
        self._fetch_count = 0

    @property
    def available(self) -> bool:
        return self._fetch is not None

    @property
    def fetch_count(self) -> int:
        """真正调用协作方的次数（single-flight 的可观测指标）。"""
        return self._fetch_count

    @property
    def loaded_paths(self) -> list[str]:
        return sorted({path for path, _ in self._cache})

    async def load(self, path: str, ref: str) -> bytes:
        if self._fetch is None:
            raise ContextUnavailableError(f"No content source available for {path}@{ref}")

        key = (path, ref)
        while True:
            if key in self._cache:
                return self._cache[key]
            if key in self._failures:
                raise self._failures[key]
            pending = self._inflight.get(key)
            if pending is None:
                break
            await pending.wait()

        event = anyio.Event()
        self._inflight[key] = event
        try:
            self._fetch_count += 1
            logger.info(f"Fetching full content: {path}@{ref}")
            content = await self._fetch(path, ref)
        except Exception as exc:
            logger.warning(f"Content fetch failed for {path}@{ref}: {exc}")
            self._failures[key] = exc
            raise
        else:
            self._cache[key] = content
            if ref == self._change_set.source_ref:
                file_change = self._change_set.get_file(path)
                if file_change is not None:
                    file_change.attach_full_content(content)
            return content
        finally:
            # 被取消时不写缓存，等待者醒来后会自己重新拉取
            del self._inflight[key]
            event.set()


class AnalysisContext:
    """交给单个 analyzer 的上下文句柄（限定在它的分区内）。"""

    def __init__(
        self,
        loader: ContextLoader,
        scope: Iterable[str],
        default_ref: str,
        tier: ComplexityTier,
        snapshot: Snapshot | None = None,
        diff_only: bool = False,
    ) -> None:
        self._loader = loader
        self._scope = frozenset(scope)
        self._default_ref = default_ref
        self.tier = tier
        self.snapshot = snapshot
        self.diff_only = diff_only

    @property
    def can_read(self) -> bool:
        return not self.diff_only and self._loader.available

    async def read_file(self, path: str, ref: str | None = None) -> bytes:
        """读取分区内文件的完整内容；ref 默认为 ChangeSet 的 source_ref。"""
        if path not in self._scope:
            raise ContextScopeError(f"{path} is outside this analyzer's partition")
        if self.diff_only:
            raise ContextUnavailableError(f"Diff-only review: full content of {path} is not available")
        return await self._loader.load(path, ref or self._default_ref)

    async def read_text(self, path: str, ref: str | None = None) -> str:
        return (await self.read_file(path, ref)).decode("utf-8", errors="replace")


def snapshot_first(snapshot: Snapshot | None, fallback: FileContentFetcher | None) -> FileContentFetcher | None:
    """
    组合内容来源：有快照时 source_ref 的读取走本地文件，其余 ref 走远端 fetcher。
    """
    if snapshot is None:
        return fallback

    async def fetch(path: str, ref: str) -> bytes:
        if ref == snapshot.ref:
            try:
                return await snapshot.read(path)
            except FileNotFoundError as exc:
                raise ContentNotFoundError(f"{path} not found in snapshot {snapshot.root}") from exc
        if fallback is None:
            raise ContextUnavailableError(f"No content source for {path}@{ref}")
        return await fallback(path, ref)

    return fetch
