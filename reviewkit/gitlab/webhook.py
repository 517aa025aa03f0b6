"""
GitLab Webhook 接入层。

职责：
- 校验 `X-Gitlab-Token`（防止被随意调用）
- 解析 webhook payload -> Pydantic schema
- 只处理 MR open/update/reopen
- review 可能跑几分钟，而 GitLab webhook 有超时：handler 放进 BackgroundTasks，先返回 202
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from fastapi import status

from reviewkit.config import GitLabConfig
from reviewkit.gitlab.schemas import GitLabMergeRequestWebhookEvent

WebhookHandler = Callable[[GitLabMergeRequestWebhookEvent], Awaitable[None]]

REVIEWABLE_ACTIONS = ("open", "update", "reopen")


def build_gitlab_webhook_router(config: GitLabConfig, handler: WebhookHandler) -> APIRouter:
    router = APIRouter()

    @router.post("/gitlab/webhook", status_code=status.HTTP_202_ACCEPTED)
    async def gitlab_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_gitlab_token: str = Header(alias="X-Gitlab-Token"),
    ) -> dict[str, str]:
        if x_gitlab_token != config.webhook_secret:
            raise HTTPException(status_code=401, detail="Invalid webhook token")

        payload = await request.json()
        if payload.get("object_kind") != "merge_request":
            return {"status": "ignored"}
        event = GitLabMergeRequestWebhookEvent.model_validate(payload)
        if event.object_attributes.action not in REVIEWABLE_ACTIONS:
            return {"status": "ignored"}

        background_tasks.add_task(handler, event)
        return {"status": "accepted"}

    return router
