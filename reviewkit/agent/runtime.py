from __future__ import annotations

"""
受控 ReAct runtime。

设计目标：
- **流程由代码控制**：外部决定 max_steps、提供 tool_executor
- **模型只输出结构化指令**：JSON-only（action 或 final）
- **步数用完就失败**：抛 `AgentStepLimitError`，由 dispatcher 记为“analysis incomplete”，
  而不是返回一个看起来正常的空结果
"""

import json
from collections.abc import Awaitable, Callable

from pydantic import TypeAdapter

from reviewkit.agent.prompt import build_react_instructions
from reviewkit.agent.schemas import AgentAction
from reviewkit.agent.schemas import AgentFinal
from reviewkit.agent.schemas import AgentStep
from reviewkit.agent.schemas import ToolContext
from reviewkit.agent.tools.registry import ToolObservation
from reviewkit.llm.client import ChatMessage
from reviewkit.llm.client import OpenAICompatLLMClient

ToolExecutor = Callable[[AgentAction, ToolContext], Awaitable[ToolObservation]]

_STEP_ADAPTER: TypeAdapter[AgentAction | AgentFinal] = TypeAdapter(AgentStep)


class AgentStepLimitError(RuntimeError):
    """模型在 max_steps 内没有给出 final。"""

    pass


async def run_react_agent(
    llm_client: OpenAICompatLLMClient,
    user_prompt: str,
    tool_ctx: ToolContext,
    tool_executor: ToolExecutor,
    max_steps: int,
) -> AgentFinal:
    """
    运行受控 ReAct loop。

    - 输出：模型的 final（findings + observations）
    - 失败：模型输出非 JSON/不符合 schema 直接抛 ValueError；步数用完抛 AgentStepLimitError
    """
    if max_steps <= 0:
        raise ValueError("max_steps must be > 0")

    messages: list[ChatMessage] = [
        ChatMessage(role="system", content=build_react_instructions()),
        ChatMessage(role="user", content=user_prompt),
    ]

    for _ in range(max_steps):
        # 1) 让模型给出下一步：action 或 final（必须 JSON-only）
        raw = await llm_client.complete_text(messages=messages)
        step = _parse_agent_step(raw=raw)

        if isinstance(step, AgentFinal):
            return step

        # 2) 执行工具
        observation = await tool_executor(step, tool_ctx)

        # 3) 把模型的 action 原文和 observation 回填给模型，进入下一轮
        messages.append(ChatMessage(role="assistant", content=raw))
        messages.append(
            ChatMessage(
                role="user",
                content=f'{{"observation": {json.dumps(observation, ensure_ascii=False)}}}',
            )
        )

    raise AgentStepLimitError(f"Agent did not finish within {max_steps} steps")


def _parse_agent_step(raw: str) -> AgentAction | AgentFinal:
    """将模型输出的 JSON 解析为 `AgentStep`（action/final）。"""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Agent output is not valid JSON. Raw: {raw}") from exc
    return _STEP_ADAPTER.validate_python(parsed)
