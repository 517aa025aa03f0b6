"""
Analyzer 注册/路由。

为什么需要 registry：
- 把“content type -> analyzer”做成一张可扩展的表，而不是 dispatcher 里的 if/else
- 新 analyzer 只需 `register`，不需要改 dispatcher
- 注册顺序就是确定性顺序：结果合并、去重时“先注册者优先”
"""

from __future__ import annotations

from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from reviewkit.review.context_loader import AnalysisContext
from reviewkit.review.models import AnalysisResult
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import Finding

ANY_CONTENT_TYPE = "*"

AnalyzerOutput = Sequence[Finding | Mapping[str, object]] | AnalysisResult


class AnalyzerCapability(Protocol):
    """analyzer 协议：按名字标识，接收分区 ChangeSet + 上下文句柄，产出 findings。"""

    name: str

    async def analyze(self, change_set: ChangeSet, context: AnalysisContext) -> AnalyzerOutput: ...


@dataclass(frozen=True)
class _Registration:
    analyzer: AnalyzerCapability
    content_types: frozenset[str]


class AnalyzerRegistry:
    def __init__(self) -> None:
        self._registrations: list[_Registration] = []

    def register(self, analyzer: AnalyzerCapability, content_types: Iterable[str]) -> None:
        """
        注册一个 analyzer。

        - content_types：它能处理的 tag 集合；`"*"` 表示所有类型
        - 失败：名字重复 / tag 为空抛 `ValueError`
        """
        if not analyzer.name:
            raise ValueError("analyzer name must be non-empty")
        if any(r.analyzer.name == analyzer.name for r in self._registrations):
            raise ValueError(f"Analyzer already registered: {analyzer.name}")
        tags = frozenset(content_types)
        if not tags or any(not t for t in tags):
            raise ValueError(f"Analyzer {analyzer.name} must claim at least one non-empty content type")
        self._registrations.append(_Registration(analyzer=analyzer, content_types=tags))

    def resolve(self, content_type: str) -> list[AnalyzerCapability]:
        """返回能处理该 tag 的 analyzer（按注册顺序，去重）。"""
        return [
            r.analyzer
            for r in self._registrations
            if content_type in r.content_types or ANY_CONTENT_TYPE in r.content_types
        ]

    def registration_index(self, name: str) -> int:
        for index, r in enumerate(self._registrations):
            if r.analyzer.name == name:
                return index
        raise KeyError(f"Analyzer not registered: {name}")

    @property
    def names(self) -> list[str]:
        return [r.analyzer.name for r in self._registrations]

    def __len__(self) -> int:
        return len(self._registrations)
