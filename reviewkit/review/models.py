"""
Review 领域模型（Pydantic）。

用途：
- 明确 pipeline 各阶段的输入/输出结构（ChangeSet -> Finding -> ReviewReport）
- 值对象全部 frozen：ChangeSet 构造后只读，Finding 产生后不可修改

唯一允许的“写”：
- `FileChange.attach_full_content`：Context Loader 拉到全文后挂到文件上（追加式、幂等）
- `ChangeSet.memoized_tier`：本次 run 内只计算一次复杂度等级
"""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Hashable
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

Severity = Literal["critical", "high", "medium", "low"]
ComplexityTier = Literal["simple", "moderate", "complex"]

# 数值越大越严重；排序和去重都以此为准
SEVERITY_RANK: dict[str, int] = {"critical": 3, "high": 2, "medium": 1, "low": 0}


class DiffHunk(BaseModel):
    """unified diff 中的一个 hunk（行号都是 1-based）。"""

    model_config = ConfigDict(frozen=True)

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    added_lines: tuple[int, ...] = ()
    removed_lines: tuple[int, ...] = ()


class FileChange(BaseModel):
    """单个文件的变更（从 GitLab/GitHub diff 归一化而来）。"""

    model_config = ConfigDict(frozen=True)

    path: str
    content_type: str
    diff: str
    hunks: tuple[DiffHunk, ...] = ()
    added: int = 0
    removed: int = 0
    is_new_file: bool = False
    is_deleted_file: bool = False
    is_renamed_file: bool = False
    old_path: str | None = None

    _full_content: bytes | None = PrivateAttr(default=None)

    @property
    def changed_lines(self) -> int:
        return self.added + self.removed

    @property
    def full_content(self) -> bytes | None:
        """Context Loader 拉取到的完整内容；未拉取时为 None。"""
        return self._full_content

    def attach_full_content(self, content: bytes) -> bytes:
        """挂载全文：已挂载过则保持原值（幂等），返回实际生效的内容。"""
        if self._full_content is None:
            self._full_content = content
        return self._full_content


class ChangeSet(BaseModel):
    """一次 review 的单位：source_ref（head）相对 target_ref（base）的一组文件变更。"""

    model_config = ConfigDict(frozen=True)

    identifier: str
    source_ref: str
    target_ref: str
    files: tuple[FileChange, ...] = ()

    _tiers: dict[Hashable, str] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _paths_must_be_unique(self) -> ChangeSet:
        seen: set[str] = set()
        for f in self.files:
            if f.path in seen:
                raise ValueError(f"Duplicate path in change set {self.identifier}: {f.path}")
            seen.add(f.path)
        return self

    @property
    def added_lines(self) -> int:
        return sum(f.added for f in self.files)

    @property
    def removed_lines(self) -> int:
        return sum(f.removed for f in self.files)

    @property
    def changed_lines(self) -> int:
        return self.added_lines + self.removed_lines

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    def get_file(self, path: str) -> FileChange | None:
        for f in self.files:
            if f.path == path:
                return f
        return None

    def subset(self, paths: Iterable[str]) -> ChangeSet:
        """按 path 过滤出分区视图（保持原顺序，复用同一批 FileChange 实例）。"""
        wanted = set(paths)
        return ChangeSet(
            identifier=self.identifier,
            source_ref=self.source_ref,
            target_ref=self.target_ref,
            files=tuple(f for f in self.files if f.path in wanted),
        )

    def memoized_tier(self, key: Hashable, compute: Callable[[], ComplexityTier]) -> ComplexityTier:
        """同一个 key（通常是 ComplexityPolicy）只计算一次。"""
        if key not in self._tiers:
            self._tiers[key] = compute()
        return self._tiers[key]  # type: ignore[return-value]


class Finding(BaseModel):
    """analyzer 报告的一条问题/观察。"""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    dimension: str = Field(min_length=1)
    path: str = Field(min_length=1)
    line: int | None = None
    description: str = Field(min_length=1)
    suggestion: str | None = None
    analyzer: str = Field(min_length=1)


@dataclass(frozen=True)
class AnalysisResult:
    """
    analyzer 的完整输出：findings + 正向观察。

    findings 里的元素允许是 `Finding` 或 dict（例如 LLM 的 JSON），
    由 aggregator 统一校验，不合法的会被丢弃并记 warning。
    """

    findings: Sequence[Finding | Mapping[str, object]] = ()
    observations: Sequence[str] = field(default_factory=tuple)


class ReportedFinding(BaseModel):
    """去重后保留下来的 Finding，附带“被哪些 analyzer 佐证”。"""

    model_config = ConfigDict(frozen=True)

    finding: Finding
    corroborated_by: tuple[str, ...] = ()

    @property
    def note(self) -> str | None:
        if not self.corroborated_by:
            return None
        return f"Corroborated by: {', '.join(self.corroborated_by)}"


class AnalyzerRun(BaseModel):
    """单个 analyzer 在本次 run 中的执行结果摘要。"""

    analyzer: str
    status: Literal["succeeded", "timed_out", "failed", "cancelled"]
    findings: int = 0
    error: str | None = None


class ReviewReport(BaseModel):
    """review 的最终输出（终态，不再回流进 pipeline）。"""

    change_set_id: str
    tier: ComplexityTier
    findings: list[ReportedFinding] = Field(default_factory=list)
    dimension_counts: dict[str, int] = Field(default_factory=dict)
    severity_counts: dict[str, int] = Field(default_factory=dict)
    total: int = 0
    positive_observations: list[str] = Field(default_factory=list)
    context_loaded: bool = False
    context_loaded_files: list[str] = Field(default_factory=list)
    snapshot_materialized: bool = False
    degraded: bool = False
    degraded_reason: str | None = None
    partial: bool = False
    warnings: list[str] = Field(default_factory=list)
    analyzer_runs: list[AnalyzerRun] = Field(default_factory=list)
