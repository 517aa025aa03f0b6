"""
Finding Aggregator（确定性汇总，不依赖 LLM）。

步骤：
1. 按 analyzer 注册顺序展开所有 findings；不是合法 Finding 的条目丢弃并记 warning
2. 去重：(path, line, dimension) 相同且 severity 与已合并的每一条都相差不超过一级 -> 保留更严重的；
   同级保留先出现的；被合并方记为“佐证”（Finding 本身不做任何修改）
3. 排序：severity 降序 -> path -> line（无行号排最后）-> 其余字段兜底，保证完全确定
4. 统计每个 dimension / severity 的数量

同一批输入（不论 analyzer 完成顺序、不论输入排列）必然得到同样的输出。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass, field

from pydantic import ValidationError

from reviewkit.review.models import AnalyzerRun
from reviewkit.review.models import ComplexityTier
from reviewkit.review.models import Finding
from reviewkit.review.models import ReportedFinding
from reviewkit.review.models import ReviewReport
from reviewkit.review.models import SEVERITY_RANK

logger = logging.getLogger(__name__)

# dispatcher 合成的运行级提示：各自独立，不参与去重
RUN_NOTICE_DIMENSIONS = frozenset({"unsupported", "analysis-incomplete"})


@dataclass(frozen=True)
class AnalyzerFindings:
    """一个 analyzer 的原始输出（order = 注册顺序）。"""

    analyzer: str
    order: int
    findings: Sequence[object]


@dataclass(frozen=True)
class RunSummary:
    """dispatcher 侧的运行信息，原样写进报告。"""

    tier: ComplexityTier
    positive_observations: Sequence[str] = ()
    context_loaded_files: Sequence[str] = ()
    snapshot_materialized: bool = False
    degraded_reason: str | None = None
    partial: bool = False
    warnings: Sequence[str] = ()
    analyzer_runs: Sequence[AnalyzerRun] = field(default_factory=tuple)


@dataclass
class _Entry:
    finding: Finding
    corroborated_by: list[str]
    # 已并入的所有 severity；新成员必须与其中每一个都相差不超过一级
    ranks: list[int] = field(default_factory=list)

    def accepts(self, finding: Finding) -> bool:
        rank = SEVERITY_RANK[finding.severity]
        return all(abs(rank - r) <= 1 for r in self.ranks)


def aggregate_report(change_set_id: str, results: Sequence[AnalyzerFindings], run: RunSummary) -> ReviewReport:
    warnings = list(run.warnings)
    findings = _flatten(results=results, warnings=warnings)
    entries = _deduplicate(findings=findings)
    ordered = sorted(entries, key=lambda e: _sort_key(e.finding))

    reported = [ReportedFinding(finding=e.finding, corroborated_by=tuple(e.corroborated_by)) for e in ordered]
    dimension_counts: dict[str, int] = {}
    severity_counts: dict[str, int] = {s: 0 for s in sorted(SEVERITY_RANK, key=lambda s: -SEVERITY_RANK[s])}
    for r in reported:
        dimension_counts[r.finding.dimension] = dimension_counts.get(r.finding.dimension, 0) + 1
        severity_counts[r.finding.severity] += 1

    return ReviewReport(
        change_set_id=change_set_id,
        tier=run.tier,
        findings=reported,
        dimension_counts=dict(sorted(dimension_counts.items())),
        severity_counts=severity_counts,
        total=len(reported),
        positive_observations=list(run.positive_observations),
        context_loaded=bool(run.context_loaded_files),
        context_loaded_files=sorted(run.context_loaded_files),
        snapshot_materialized=run.snapshot_materialized,
        degraded=run.degraded_reason is not None,
        degraded_reason=run.degraded_reason,
        partial=run.partial,
        warnings=warnings,
        analyzer_runs=list(run.analyzer_runs),
    )


def _flatten(results: Sequence[AnalyzerFindings], warnings: list[str]) -> list[Finding]:
    flat: list[Finding] = []
    for group in sorted(results, key=lambda g: (g.order, g.analyzer)):
        for item in group.findings:
            finding = _coerce_finding(item=item, analyzer=group.analyzer)
            if finding is None:
                message = f"Dropped malformed finding from {group.analyzer}: {item!r}"
                logger.warning(message)
                warnings.append(message)
                continue
            flat.append(finding)
    return flat


def _coerce_finding(item: object, analyzer: str) -> Finding | None:
    if isinstance(item, Finding):
        return item
    if not isinstance(item, Mapping):
        return None
    data = dict(item)
    data.setdefault("analyzer", analyzer)
    try:
        return Finding.model_validate(data)
    except ValidationError:
        return None


def _deduplicate(findings: list[Finding]) -> list[_Entry]:
    entries: list[_Entry] = []
    by_key: dict[tuple[str, int | None, str], list[_Entry]] = {}
    for finding in findings:
        if finding.dimension in RUN_NOTICE_DIMENSIONS:
            entries.append(_Entry(finding=finding, corroborated_by=[]))
            continue

        key = (finding.path, finding.line, finding.dimension)
        candidates = by_key.setdefault(key, [])
        match = next((e for e in candidates if e.accepts(finding)), None)
        if match is None:
            entry = _Entry(finding=finding, corroborated_by=[], ranks=[SEVERITY_RANK[finding.severity]])
            candidates.append(entry)
            entries.append(entry)
            continue

        if SEVERITY_RANK[finding.severity] > SEVERITY_RANK[match.finding.severity]:
            secondary = match.finding.analyzer
            match.finding = finding
        else:
            secondary = finding.analyzer
        match.ranks.append(SEVERITY_RANK[finding.severity])
        _add_corroboration(entry=match, analyzer=secondary)
    return entries


def _add_corroboration(entry: _Entry, analyzer: str) -> None:
    if analyzer == entry.finding.analyzer or analyzer in entry.corroborated_by:
        return
    entry.corroborated_by.append(analyzer)
    # 主 finding 换成更严重的那条后，原来的佐证名单里可能包含新的主 analyzer
    entry.corroborated_by[:] = [a for a in entry.corroborated_by if a != entry.finding.analyzer]


def _sort_key(finding: Finding) -> tuple[int, str, bool, int, str, str, str, str]:
    return (
        -SEVERITY_RANK[finding.severity],
        finding.path,
        finding.line is None,
        finding.line or 0,
        finding.dimension,
        finding.analyzer,
        finding.description,
        finding.suggestion or "",
    )
