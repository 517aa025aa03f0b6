"""
Dispatcher（分类 -> 选 analyzer -> 并发调用 -> 收集结果）。

流程：
1. 复杂度分级（complex 先尝试物化快照，失败则降级为 diff-only 并记录原因）
2. 按 content type 分区；没有 analyzer 的分区产出一条 `unsupported` notice
3. 每个 analyzer 只调用一次，拿到它负责的所有分区 + 限定范围的上下文句柄
4. 所有 analyzer 并发执行，各自有超时；整体还有一个 run 级预算
5. 结果以 tagged union（成功/超时/失败）收集，按注册顺序排好交给 aggregator

隔离原则：单个 analyzer 的异常/超时/畸形输出只影响它自己，
会被转成一条 `analysis-incomplete` notice + warning，不会中断其他 analyzer。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

import anyio
from pydantic import BaseModel, Field

from reviewkit.analyzers.registry import AnalyzerCapability
from reviewkit.analyzers.registry import AnalyzerRegistry
from reviewkit.review.aggregator import AnalyzerFindings
from reviewkit.review.complexity import ComplexityPolicy
from reviewkit.review.complexity import resolve_tier
from reviewkit.review.context_loader import AnalysisContext
from reviewkit.review.context_loader import ContextLoader
from reviewkit.review.context_loader import FileContentFetcher
from reviewkit.review.context_loader import snapshot_first
from reviewkit.review.errors import SnapshotError
from reviewkit.review.materializer import PatchMaterializer
from reviewkit.review.materializer import Snapshot
from reviewkit.review.models import AnalysisResult
from reviewkit.review.models import AnalyzerRun
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import ComplexityTier
from reviewkit.review.models import Finding

logger = logging.getLogger(__name__)

DISPATCHER_SOURCE = "dispatcher"
UNSUPPORTED_DIMENSION = "unsupported"
INCOMPLETE_DIMENSION = "analysis-incomplete"


class ReviewPolicy(BaseModel):
    """一次 review 的阈值与时间预算（秒）。"""

    complexity: ComplexityPolicy = Field(default_factory=ComplexityPolicy)
    analyzer_timeout_seconds: float = Field(default=120.0, gt=0)
    aggregation_margin_seconds: float = Field(default=10.0, ge=0)
    snapshot_timeout_seconds: float = Field(default=300.0, gt=0)
    run_timeout_seconds: float | None = Field(default=None, gt=0)

    def run_budget(self, job_count: int) -> float:
        """run 级超时：显式配置优先，否则为所有 analyzer 预算之和 + 汇总余量。"""
        if self.run_timeout_seconds is not None:
            return self.run_timeout_seconds
        return self.analyzer_timeout_seconds * max(job_count, 1) + self.aggregation_margin_seconds


@dataclass(frozen=True)
class AnalyzerSucceeded:
    analyzer: str
    order: int
    findings: tuple[object, ...]
    observations: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalyzerTimedOut:
    analyzer: str
    order: int
    # analyzer：自身超时；run：整体预算耗尽被取消
    scope: Literal["analyzer", "run"]


@dataclass(frozen=True)
class AnalyzerFailed:
    analyzer: str
    order: int
    error: str


AnalyzerOutcome = AnalyzerSucceeded | AnalyzerTimedOut | AnalyzerFailed


@dataclass
class _Job:
    analyzer: AnalyzerCapability
    order: int
    paths: list[str] = field(default_factory=list)
    content_types: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DispatchResult:
    change_set: ChangeSet
    tier: ComplexityTier
    outcomes: list[AnalyzerOutcome]
    notices: list[Finding]
    snapshot: Snapshot | None
    degraded_reason: str | None
    loaded_files: list[str]
    warnings: list[str]

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None

    @property
    def partial(self) -> bool:
        return any(not isinstance(o, AnalyzerSucceeded) for o in self.outcomes)

    def finding_groups(self) -> list[AnalyzerFindings]:
        """aggregator 的输入：成功的 analyzer 按注册顺序，dispatcher notice 排最后。"""
        groups = [
            AnalyzerFindings(analyzer=o.analyzer, order=o.order, findings=o.findings)
            for o in self.outcomes
            if isinstance(o, AnalyzerSucceeded)
        ]
        if self.notices:
            last = max((o.order for o in self.outcomes), default=-1) + 1
            groups.append(AnalyzerFindings(analyzer=DISPATCHER_SOURCE, order=last, findings=tuple(self.notices)))
        return groups

    def observations(self) -> list[str]:
        seen: set[str] = set()
        result: list[str] = []
        for o in self.outcomes:
            if not isinstance(o, AnalyzerSucceeded):
                continue
            for text in o.observations:
                if text not in seen:
                    seen.add(text)
                    result.append(text)
        return result

    def analyzer_runs(self) -> list[AnalyzerRun]:
        runs: list[AnalyzerRun] = []
        for o in self.outcomes:
            if isinstance(o, AnalyzerSucceeded):
                runs.append(AnalyzerRun(analyzer=o.analyzer, status="succeeded", findings=len(o.findings)))
            elif isinstance(o, AnalyzerTimedOut):
                status: Literal["timed_out", "cancelled"] = "timed_out" if o.scope == "analyzer" else "cancelled"
                runs.append(AnalyzerRun(analyzer=o.analyzer, status=status))
            else:
                runs.append(AnalyzerRun(analyzer=o.analyzer, status="failed", error=o.error))
        return runs


def partition_by_content_type(change_set: ChangeSet) -> dict[str, list[str]]:
    """content type -> paths（保持文件在 ChangeSet 中的顺序）。"""
    partitions: dict[str, list[str]] = {}
    for f in change_set.files:
        partitions.setdefault(f.content_type, []).append(f.path)
    return partitions


class Dispatcher:
    def __init__(
        self,
        registry: AnalyzerRegistry,
        policy: ReviewPolicy,
        fetch_file_content: FileContentFetcher | None = None,
        materializer: PatchMaterializer | None = None,
    ) -> None:
        self._registry = registry
        self._policy = policy
        self._fetch_file_content = fetch_file_content
        self._materializer = materializer

    async def dispatch(self, change_set: ChangeSet) -> DispatchResult:
        tier = resolve_tier(change_set, self._policy.complexity)
        jobs, notices = self._plan(change_set)

        # run 级预算覆盖快照 + 所有 analyzer
        budget = self._policy.run_budget(job_count=len(jobs))
        deadline = anyio.current_time() + budget

        snapshot: Snapshot | None = None
        degraded_reason: str | None = None
        if tier == "complex" and jobs:
            with anyio.move_on_after(budget) as snapshot_scope:
                snapshot, degraded_reason = await self._prepare_snapshot(change_set)
            if snapshot_scope.cancelled_caught:
                logger.warning(f"Run budget of {budget}s exhausted while materializing {change_set.identifier}")
                snapshot, degraded_reason = None, f"snapshot did not finish within the run budget of {budget}s"

        fetch = None if degraded_reason is not None else snapshot_first(snapshot, self._fetch_file_content)
        loader = ContextLoader(change_set=change_set, fetch=fetch)

        outcomes = await self._invoke_all(
            jobs=jobs,
            change_set=change_set,
            tier=tier,
            loader=loader,
            snapshot=snapshot,
            diff_only=degraded_reason is not None,
            deadline=deadline,
        )

        warnings: list[str] = []
        if degraded_reason is not None:
            warnings.append(f"Degraded to diff-only review: {degraded_reason}")
        job_paths = {job.analyzer.name: job.paths for job in jobs}
        for outcome in outcomes:
            if isinstance(outcome, AnalyzerSucceeded):
                continue
            warning, notice = _describe_incomplete(
                outcome=outcome,
                paths=job_paths[outcome.analyzer],
                timeout_seconds=self._policy.analyzer_timeout_seconds,
            )
            warnings.append(warning)
            notices.append(notice)

        return DispatchResult(
            change_set=change_set,
            tier=tier,
            outcomes=outcomes,
            notices=notices,
            snapshot=snapshot,
            degraded_reason=degraded_reason,
            loaded_files=loader.loaded_paths,
            warnings=warnings,
        )

    def _plan(self, change_set: ChangeSet) -> tuple[list[_Job], list[Finding]]:
        jobs_by_name: dict[str, _Job] = {}
        notices: list[Finding] = []
        for content_type, paths in partition_by_content_type(change_set).items():
            analyzers = self._registry.resolve(content_type)
            if not analyzers:
                logger.info(f"No analyzer for content type {content_type!r} ({len(paths)} file(s))")
                notices.append(_unsupported_notice(content_type=content_type, paths=paths))
                continue
            for analyzer in analyzers:
                job = jobs_by_name.get(analyzer.name)
                if job is None:
                    job = _Job(analyzer=analyzer, order=self._registry.registration_index(analyzer.name))
                    jobs_by_name[analyzer.name] = job
                job.paths.extend(paths)
                job.content_types.append(content_type)
        return sorted(jobs_by_name.values(), key=lambda j: j.order), notices

    async def _prepare_snapshot(self, change_set: ChangeSet) -> tuple[Snapshot | None, str | None]:
        if self._materializer is None:
            return None, "no snapshot materializer configured"
        try:
            return await self._materializer.materialize(change_set), None
        except SnapshotError as exc:
            logger.warning(f"Snapshot failed for {change_set.identifier}, falling back to diff-only: {exc}")
            return None, f"snapshot unavailable: {exc}"

    async def _invoke_all(
        self,
        jobs: list[_Job],
        change_set: ChangeSet,
        tier: ComplexityTier,
        loader: ContextLoader,
        snapshot: Snapshot | None,
        diff_only: bool,
        deadline: float,
    ) -> list[AnalyzerOutcome]:
        outcomes: dict[int, AnalyzerOutcome] = {}

        # 快照已经用掉一部分预算时，analyzer 只拿剩下的
        with anyio.CancelScope(deadline=deadline) as run_scope:
            async with anyio.create_task_group() as tg:
                for job in jobs:
                    context = AnalysisContext(
                        loader=loader,
                        scope=job.paths,
                        default_ref=change_set.source_ref,
                        tier=tier,
                        snapshot=snapshot,
                        diff_only=diff_only,
                    )
                    tg.start_soon(self._run_job, job, change_set.subset(job.paths), context, outcomes)

        if run_scope.cancelled_caught:
            logger.warning(f"Run budget exhausted for {change_set.identifier}; cancelling remaining analyzers")
        for job in jobs:
            if job.order not in outcomes:
                outcomes[job.order] = AnalyzerTimedOut(analyzer=job.analyzer.name, order=job.order, scope="run")
        return [outcomes[order] for order in sorted(outcomes)]

    async def _run_job(
        self,
        job: _Job,
        partition: ChangeSet,
        context: AnalysisContext,
        outcomes: dict[int, AnalyzerOutcome],
    ) -> None:
        name = job.analyzer.name
        timeout = self._policy.analyzer_timeout_seconds
        logger.info(f"Analyzer {name} started: {len(job.paths)} file(s), content types={job.content_types}")
        try:
            with anyio.move_on_after(timeout) as scope:
                raw = await job.analyzer.analyze(partition, context)
            if scope.cancelled_caught:
                logger.warning(f"Analyzer {name} timed out after {timeout}s")
                outcomes[job.order] = AnalyzerTimedOut(analyzer=name, order=job.order, scope="analyzer")
                return
            findings, observations = _normalize_output(raw)
        except Exception as exc:
            logger.exception(f"Analyzer {name} failed")
            outcomes[job.order] = AnalyzerFailed(analyzer=name, order=job.order, error=f"{type(exc).__name__}: {exc}")
            return

        logger.info(f"Analyzer {name} finished: {len(findings)} finding(s)")
        outcomes[job.order] = AnalyzerSucceeded(
            analyzer=name,
            order=job.order,
            findings=findings,
            observations=observations,
        )


def _normalize_output(raw: object) -> tuple[tuple[object, ...], tuple[str, ...]]:
    if isinstance(raw, AnalysisResult):
        return tuple(raw.findings), tuple(str(o) for o in raw.observations)
    if raw is None or isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, Iterable):
        raise TypeError(f"Malformed analyzer output: {type(raw).__name__}")
    return tuple(raw), ()


def _unsupported_notice(content_type: str, paths: list[str]) -> Finding:
    listed = ", ".join(paths[:5]) + (" ..." if len(paths) > 5 else "")
    return Finding(
        severity="low",
        dimension=UNSUPPORTED_DIMENSION,
        path=paths[0],
        description=f"No analyzer registered for content type '{content_type}' ({len(paths)} file(s): {listed})",
        analyzer=DISPATCHER_SOURCE,
    )


def _describe_incomplete(outcome: AnalyzerOutcome, paths: list[str], timeout_seconds: float) -> tuple[str, Finding]:
    if isinstance(outcome, AnalyzerTimedOut) and outcome.scope == "analyzer":
        reason = f"timed out after {timeout_seconds}s"
    elif isinstance(outcome, AnalyzerTimedOut):
        reason = "cancelled when the run budget was exhausted"
    elif isinstance(outcome, AnalyzerFailed):
        reason = f"failed ({outcome.error})"
    else:
        raise TypeError(f"Not an incomplete outcome: {outcome!r}")

    notice = Finding(
        severity="medium",
        dimension=INCOMPLETE_DIMENSION,
        path=paths[0],
        description=f"analysis incomplete for {outcome.analyzer}: {reason}",
        suggestion=f"Review manually: {', '.join(paths)}",
        analyzer=DISPATCHER_SOURCE,
    )
    return f"Analyzer {outcome.analyzer} {reason}", notice
