"""
GitHub Webhook 接入层。

职责：
- 校验 `X-Hub-Signature-256`（HMAC SHA256，基于原始 body）
- 只处理 pull_request 的 opened/reopened/synchronize
- handler 放进 BackgroundTasks，先返回 202（review 耗时远超 GitHub webhook 超时）
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Awaitable, Callable

from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from fastapi import status

from reviewkit.config import GitHubConfig
from reviewkit.github.schemas import GitHubPullRequestWebhookEvent

GitHubWebhookHandler = Callable[[GitHubPullRequestWebhookEvent], Awaitable[None]]

REVIEWABLE_ACTIONS = ("opened", "reopened", "synchronize")


def verify_github_signature(body: bytes, signature_header: str, secret: str) -> None:
    if not signature_header.startswith("sha256="):
        raise HTTPException(status_code=401, detail="Invalid signature header")
    expected = "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature_header):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


def build_github_webhook_router(config: GitHubConfig, handler: GitHubWebhookHandler) -> APIRouter:
    router = APIRouter()

    @router.post("/github/webhook", status_code=status.HTTP_202_ACCEPTED)
    async def github_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_github_event: str = Header(alias="X-GitHub-Event"),
        x_hub_signature_256: str = Header(alias="X-Hub-Signature-256"),
    ) -> dict[str, str]:
        body = await request.body()
        verify_github_signature(body=body, signature_header=x_hub_signature_256, secret=config.webhook_secret)
        if x_github_event != "pull_request":
            return {"status": "ignored"}

        try:
            payload = json.loads(body.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc
        event = GitHubPullRequestWebhookEvent.model_validate(payload)
        if event.action not in REVIEWABLE_ACTIONS:
            return {"status": "ignored"}

        background_tasks.add_task(handler, event)
        return {"status": "accepted"}

    return router
