from __future__ import annotations

from pathlib import Path

import anyio
import pytest

from reviewkit.review.context import build_change_set
from reviewkit.review.context import build_file_change
from reviewkit.review.context_loader import AnalysisContext
from reviewkit.review.context_loader import ContextLoader
from reviewkit.review.context_loader import snapshot_first
from reviewkit.review.errors import ContentNotFoundError
from reviewkit.review.errors import ContextScopeError
from reviewkit.review.errors import ContextUnavailableError
from reviewkit.review.materializer import Snapshot
from reviewkit.review.models import ChangeSet


def _change_set() -> ChangeSet:
    return build_change_set(
        identifier="cs-1",
        source_ref="head",
        target_ref="base",
        files=[
            build_file_change(path="a.py", diff="@@ -1 +1 @@\n-x = 1\n+x = 2"),
            build_file_change(path="b.py", diff="@@ -1 +1 @@\n-y = 1\n+y = 2"),
        ],
    )


class _CountingFetcher:
    def __init__(self, delay: float = 0.0, missing: set[str] | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self._delay = delay
        self._missing = missing or set()

    async def __call__(self, path: str, ref: str) -> bytes:
        self.calls.append((path, ref))
        if self._delay:
            await anyio.sleep(self._delay)
        if path in self._missing:
            raise ContentNotFoundError(f"{path} not found")
        return f"{path}@{ref}".encode()


def test_concurrent_loads_of_same_key_fetch_once() -> None:
    fetcher = _CountingFetcher(delay=0.05)
    loader = ContextLoader(change_set=_change_set(), fetch=fetcher)
    results: list[bytes] = []

    async def main() -> None:
        async def load() -> None:
            results.append(await loader.load("a.py", "head"))

        async with anyio.create_task_group() as tg:
            tg.start_soon(load)
            tg.start_soon(load)

    anyio.run(main)
    assert fetcher.calls == [("a.py", "head")]
    assert results == [b"a.py@head", b"a.py@head"]
    assert loader.fetch_count == 1


def test_repeated_load_is_cached_per_path_and_ref() -> None:
    fetcher = _CountingFetcher()
    change_set = _change_set()
    loader = ContextLoader(change_set=change_set, fetch=fetcher)

    async def main() -> None:
        await loader.load("a.py", "head")
        await loader.load("a.py", "head")
        await loader.load("a.py", "base")

    anyio.run(main)
    assert fetcher.calls == [("a.py", "head"), ("a.py", "base")]
    assert loader.loaded_paths == ["a.py"]
    # 只有 source_ref 的内容会挂到 FileChange 上
    a = change_set.get_file("a.py")
    assert a is not None and a.full_content == b"a.py@head"
    b = change_set.get_file("b.py")
    assert b is not None and b.full_content is None


def test_failures_are_cached_too() -> None:
    fetcher = _CountingFetcher(missing={"a.py"})
    loader = ContextLoader(change_set=_change_set(), fetch=fetcher)

    async def main() -> None:
        for _ in range(2):
            with pytest.raises(ContentNotFoundError):
                await loader.load("a.py", "head")

    anyio.run(main)
    assert fetcher.calls == [("a.py", "head")]
    assert loader.loaded_paths == []


def test_attach_full_content_is_idempotent() -> None:
    file_change = build_file_change(path="a.py", diff="")
    assert file_change.attach_full_content(b"first") == b"first"
    assert file_change.attach_full_content(b"second") == b"first"
    assert file_change.full_content == b"first"


def test_analysis_context_is_scoped_to_partition() -> None:
    loader = ContextLoader(change_set=_change_set(), fetch=_CountingFetcher())
    context = AnalysisContext(loader=loader, scope=["a.py"], default_ref="head", tier="simple")

    async def main() -> None:
        assert await context.read_text("a.py") == "a.py@head"
        with pytest.raises(ContextScopeError):
            await context.read_file("b.py")

    anyio.run(main)


def test_diff_only_context_refuses_reads() -> None:
    fetcher = _CountingFetcher()
    loader = ContextLoader(change_set=_change_set(), fetch=fetcher)
    context = AnalysisContext(loader=loader, scope=["a.py"], default_ref="head", tier="complex", diff_only=True)
    assert not context.can_read

    async def main() -> None:
        with pytest.raises(ContextUnavailableError):
            await context.read_file("a.py")

    anyio.run(main)
    assert fetcher.calls == []


def test_loader_without_fetcher_is_unavailable() -> None:
    loader = ContextLoader(change_set=_change_set(), fetch=None)

    async def main() -> None:
        with pytest.raises(ContextUnavailableError):
            await loader.load("a.py", "head")

    anyio.run(main)


def test_snapshot_first_reads_local_tree_for_source_ref(tmp_path: Path) -> None:
    (tmp_path / "a.py").write_bytes(b"local")
    fallback = _CountingFetcher()
    fetch = snapshot_first(Snapshot(root=tmp_path, ref="head"), fallback)
    assert fetch is not None

    async def main() -> None:
        assert await fetch("a.py", "head") == b"local"
        assert await fetch("a.py", "base") == b"a.py@base"
        with pytest.raises(ContentNotFoundError):
            await fetch("missing.py", "head")
        with pytest.raises(ContentNotFoundError):
            await fetch("../outside.py", "head")

    anyio.run(main)
    assert fallback.calls == [("a.py", "base")]
