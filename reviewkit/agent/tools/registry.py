from __future__ import annotations

"""
工具注册/路由。

- 把“模型输出的 tool name”映射到具体函数
- 工具自身的参数/数据错误（KeyError/ValueError/SyntaxError）转成 observation 回给模型，
  让模型自己修正；未知工具名属于协议错误，直接抛出
"""

from reviewkit.agent.schemas import AgentAction
from reviewkit.agent.schemas import ToolContext
from reviewkit.agent.tools.complexity import calc_python_complexity
from reviewkit.agent.tools.files import get_diff_chunk
from reviewkit.agent.tools.files import read_file
from reviewkit.agent.tools.security import find_risky_pattern

ToolObservation = str | dict[str, int] | dict[str, str] | dict[str, list[dict[str, object]]]


async def execute_tool(action: AgentAction, ctx: ToolContext) -> ToolObservation:
    """执行一个工具调用，并返回 observation（必须可 JSON 序列化）。"""
    call = action.call
    try:
        if call.name == "get_diff_chunk":
            return get_diff_chunk(args=call.args, ctx=ctx)
        if call.name == "find_risky_pattern":
            return find_risky_pattern(args=call.args, ctx=ctx)
        if call.name == "calc_python_complexity":
            return calc_python_complexity(args=call.args, ctx=ctx)
        if call.name == "read_file":
            return await read_file(args=call.args, ctx=ctx)
    except (KeyError, ValueError, SyntaxError) as exc:
        return {"error": f"{type(exc).__name__}: {exc}"}
    raise ValueError(f"Unknown tool: {call.name}")
