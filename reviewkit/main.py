"""
FastAPI 服务入口。

这里做三件事：
- 加载配置（严格校验环境变量）
- 组装外部依赖（HTTP Client / LLM Client / analyzer registry）
- 装配路由（health + GitLab/GitHub webhook）

注意：
- 业务流程不写在这里（由 `review/orchestrator.py` 负责）
- `httpx.AsyncClient` 会被复用（GitLab/GitHub API 与 LLM 调用共用连接池）

启动：
  uvicorn reviewkit.main:app
"""

from __future__ import annotations

import os

import httpx
from fastapi import FastAPI

from reviewkit.analyzers.defaults import build_default_registry
from reviewkit.config import load_config_from_env
from reviewkit.github.webhook import build_github_webhook_router
from reviewkit.gitlab.webhook import build_gitlab_webhook_router
from reviewkit.llm.client import OpenAICompatLLMClient
from reviewkit.review.orchestrator import ReviewService
from reviewkit.review.orchestrator import build_github_webhook_handler
from reviewkit.review.orchestrator import build_webhook_handler


def build_app() -> FastAPI:
    """创建并返回 FastAPI app（便于测试/复用）。"""

    # 1) 配置：缺失会直接抛错，启动失败（这是期望行为）
    config = load_config_from_env(os.environ)

    # 2) 可复用的 HTTP client
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))

    # 3) LLM client + analyzer 组合（registry 在所有 review 之间共享）
    llm_client = OpenAICompatLLMClient(
        api_key=config.llm.api_key,
        base_url=str(config.llm.base_url).rstrip("/"),
        http_client=http_client,
        model=config.llm.model,
    )
    service = ReviewService(
        registry=build_default_registry(llm_client=llm_client, max_steps=config.llm.max_steps),
        policy=config.review,
        snapshot=config.snapshot,
    )

    app = FastAPI(title="reviewkit", version="0.1.0")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    if config.gitlab is not None:
        gitlab_handler = build_webhook_handler(config=config.gitlab, http_client=http_client, service=service)
        app.include_router(build_gitlab_webhook_router(config=config.gitlab, handler=gitlab_handler))
    if config.github is not None:
        github_handler = build_github_webhook_handler(config=config.github, http_client=http_client, service=service)
        app.include_router(build_github_webhook_router(config=config.github, handler=github_handler))
    return app


# Uvicorn 默认会从模块级变量 `app` 读取 ASGI 应用
app = build_app()
