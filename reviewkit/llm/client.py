"""
LLM Client（基于 OpenAI SDK，对接任意 OpenAI-compatible 服务 / LiteLLM Proxy）。

目标：
- **尽量薄**：只做协议适配与错误处理
- **结构化输出由上层负责**：agent runtime 自己解析/校验 JSON，这里只返回文本
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """OpenAI chat message 的最小结构。"""

    role: str
    content: str


def _normalize_base_url(base_url: str) -> str:
    normalized = base_url.rstrip("/")
    if normalized.endswith("/v1"):
        return normalized
    return f"{normalized}/v1"


class OpenAICompatLLMClient:
    def __init__(self, api_key: str, base_url: str, http_client: httpx.AsyncClient, model: str) -> None:
        """
        - base_url: OpenAI-compatible base URL（自动补 `/v1`）
        - http_client: 复用 httpx.AsyncClient 连接池（与 GitLab/GitHub client 共用）
        - model: 模型名（由服务端路由）
        """
        self._base_url = _normalize_base_url(base_url=base_url)
        self._model = model
        self._client = AsyncOpenAI(api_key=api_key, base_url=self._base_url, http_client=http_client)

    @property
    def model(self) -> str:
        return self._model

    async def complete_text(self, messages: Sequence[ChatMessage]) -> str:
        """
        调用 chat completion 并返回纯文本 content。

        出错直接抛异常：在 analyzer 里抛出的异常会被 dispatcher 隔离成 “analysis incomplete”。
        """
        try:
            logger.info(f"LLM request: model={self._model}, messages={len(messages)} msg(s)")
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[m.model_dump() for m in messages],
            )
        except (OpenAIError, httpx.HTTPError) as exc:
            logger.error(f"LLM call failed: {exc}")
            raise

        content = response.choices[0].message.content
        if content is None:
            logger.error("LLM returned None content")
            raise RuntimeError("LLM returned None content")

        logger.info(f"LLM response: {len(content)} chars")
        return str(content)
