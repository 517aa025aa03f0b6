"""
Review Orchestrator（核心流程编排）。

关键思想：
- **流程由工程代码控制**：校验 -> 分级 -> 分发（并发 analyzer）-> 汇总
- **对调用方同步**：`review()` 内部用 anyio 跑事件循环；已经在事件循环里的调用方用 `areview()`
- **只有输入错误会抛出**：其余失败都降级为报告内容（flags / notice / warnings）

SCM 接入（webhook handler）也在这里装配：
Webhook -> fetch change metadata -> review -> synthesize -> post note/review
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import anyio
import httpx

from reviewkit.analyzers.registry import AnalyzerRegistry
from reviewkit.config import GitHubConfig
from reviewkit.config import GitLabConfig
from reviewkit.config import SnapshotConfig
from reviewkit.github.adapter import GitHubChangeSource
from reviewkit.github.client import GitHubClient
from reviewkit.github.schemas import GitHubPullRequestWebhookEvent
from reviewkit.gitlab.adapter import GitLabChangeSource
from reviewkit.gitlab.client import GitLabClient
from reviewkit.gitlab.schemas import GitLabMergeRequestWebhookEvent
from reviewkit.review.aggregator import RunSummary
from reviewkit.review.aggregator import aggregate_report
from reviewkit.review.context import validate_change_set
from reviewkit.review.context_loader import FileContentFetcher
from reviewkit.review.dispatcher import Dispatcher
from reviewkit.review.dispatcher import ReviewPolicy
from reviewkit.review.errors import ChangeSetValidationError
from reviewkit.review.materializer import GitSnapshotProvider
from reviewkit.review.materializer import PatchMaterializer
from reviewkit.review.materializer import SnapshotMaterializer
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import ReviewReport
from reviewkit.review.synthesis import synthesize_note_body

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewOrchestrator:
    """一次 review 的运行时依赖（registry 可跨 review 复用，协作方按 MR/PR 绑定）。"""

    registry: AnalyzerRegistry
    policy: ReviewPolicy = field(default_factory=ReviewPolicy)
    fetch_file_content: FileContentFetcher | None = None
    materialize_snapshot: SnapshotMaterializer | None = None

    def review(self, change_set: ChangeSet) -> ReviewReport:
        """同步入口（内部并发）。失败：ChangeSet 不合法抛 `ChangeSetValidationError`。"""
        return anyio.run(self.areview, change_set)

    async def areview(self, change_set: ChangeSet) -> ReviewReport:
        validate_change_set(change_set)

        materializer = None
        if self.materialize_snapshot is not None:
            materializer = PatchMaterializer(
                materialize=self.materialize_snapshot,
                timeout_seconds=self.policy.snapshot_timeout_seconds,
            )
        dispatcher = Dispatcher(
            registry=self.registry,
            policy=self.policy,
            fetch_file_content=self.fetch_file_content,
            materializer=materializer,
        )
        result = await dispatcher.dispatch(change_set)

        report = aggregate_report(
            change_set_id=change_set.identifier,
            results=result.finding_groups(),
            run=RunSummary(
                tier=result.tier,
                positive_observations=result.observations(),
                context_loaded_files=result.loaded_files,
                snapshot_materialized=result.snapshot is not None,
                degraded_reason=result.degraded_reason,
                partial=result.partial,
                warnings=result.warnings,
                analyzer_runs=result.analyzer_runs(),
            ),
        )
        logger.info(
            f"Review {change_set.identifier} done: tier={report.tier}, findings={report.total}, "
            f"degraded={report.degraded}, partial={report.partial}"
        )
        return report


@dataclass(frozen=True)
class ReviewService:
    """webhook 侧共享的依赖：analyzer 组合、策略、快照配置。"""

    registry: AnalyzerRegistry
    policy: ReviewPolicy
    snapshot: SnapshotConfig | None = None


def build_snapshot_provider(
    snapshot: SnapshotConfig | None,
    repo_id: str,
    clone_url: str | None,
    token: str,
    token_user: str,
) -> SnapshotMaterializer | None:
    """没有快照目录或 clone 地址时返回 None（complex 等级会降级为 diff-only）。"""
    if snapshot is None or not clone_url:
        return None
    return GitSnapshotProvider(
        base_dir=snapshot.base_dir,
        git_bin=snapshot.git_bin,
        repo_id=repo_id,
        clone_url=clone_url,
        token=token,
        token_user=token_user,
        keep_worktrees=snapshot.keep_worktrees,
    )


async def run_review(
    service: ReviewService,
    change_set: ChangeSet,
    fetch_file_content: FileContentFetcher,
    materialize_snapshot: SnapshotMaterializer | None,
) -> str | None:
    """跑一次 review 并渲染评论正文；ChangeSet 不合法（例如空 MR）返回 None。"""
    orchestrator = ReviewOrchestrator(
        registry=service.registry,
        policy=service.policy,
        fetch_file_content=fetch_file_content,
        materialize_snapshot=materialize_snapshot,
    )
    try:
        report = await orchestrator.areview(change_set)
    except ChangeSetValidationError as exc:
        logger.warning(f"Skipping review of {change_set.identifier}: {exc}")
        return None
    return synthesize_note_body(report=report, head_sha=change_set.source_ref)


def build_webhook_handler(
    config: GitLabConfig,
    http_client: httpx.AsyncClient,
    service: ReviewService,
) -> Callable[[GitLabMergeRequestWebhookEvent], Awaitable[None]]:
    """装配 GitLab webhook handler：把 GitLabClient 和 review 编排绑定起来。"""
    gitlab_client = GitLabClient(
        base_url=str(config.base_url).rstrip("/"),
        private_token=config.token,
        http_client=http_client,
    )

    async def handle(event: GitLabMergeRequestWebhookEvent) -> None:
        project_id = event.project.id
        mr_iid = event.object_attributes.iid
        try:
            source = GitLabChangeSource(client=gitlab_client, project_id=project_id)
            change_set = await source.fetch_change_metadata(mr_iid=mr_iid)

            body = await run_review(
                service=service,
                change_set=change_set,
                fetch_file_content=source.fetch_file_content,
                materialize_snapshot=build_snapshot_provider(
                    snapshot=service.snapshot,
                    repo_id=f"gitlab:{project_id}",
                    clone_url=event.project.git_http_url,
                    token=gitlab_client.private_token,
                    token_user="oauth2",
                ),
            )
            if body is not None:
                await gitlab_client.post_merge_request_note(project_id=project_id, mr_iid=mr_iid, body=body)
        except Exception:
            logger.exception(f"GitLab review failed for project {project_id} MR !{mr_iid}")
            raise

    return handle


def build_github_webhook_handler(
    config: GitHubConfig,
    http_client: httpx.AsyncClient,
    service: ReviewService,
) -> Callable[[GitHubPullRequestWebhookEvent], Awaitable[None]]:
    github_client = GitHubClient(
        api_base_url=str(config.api_base_url).rstrip("/"),
        token=config.token,
        http_client=http_client,
    )

    async def handle(event: GitHubPullRequestWebhookEvent) -> None:
        owner = event.repository.owner.login
        repo = event.repository.name
        pr = event.pull_request
        try:
            source = GitHubChangeSource(client=github_client, owner=owner, repo=repo)
            change_set = await source.fetch_change_metadata(
                pull_number=pr.number,
                head_sha=pr.head.sha,
                base_sha=pr.base.sha,
            )

            body = await run_review(
                service=service,
                change_set=change_set,
                fetch_file_content=source.fetch_file_content,
                materialize_snapshot=build_snapshot_provider(
                    snapshot=service.snapshot,
                    repo_id=f"github:{event.repository.full_name}",
                    clone_url=event.repository.clone_url,
                    token=github_client.token,
                    token_user="x-access-token",
                ),
            )
            if body is not None:
                await github_client.create_pull_request_review(
                    owner=owner,
                    repo=repo,
                    pull_number=pr.number,
                    commit_id=pr.head.sha,
                    body=body,
                )
        except Exception:
            logger.exception(f"GitHub review failed for {owner}/{repo}#{pr.number}")
            raise

    return handle
