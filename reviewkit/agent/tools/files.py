"""
文件类工具：diff 片段 + 按需读取全文。

- get_diff_chunk：纯内存、确定性，控制塞给模型的 diff 长度
- read_file：走 Context Loader（缓存 + single-flight），只读当前 analyzer 分区内的文件；
  拉取失败把错误作为 observation 返回给模型，而不是中断整个 agent
"""

from __future__ import annotations

from reviewkit.agent.schemas import GetDiffChunkArgs
from reviewkit.agent.schemas import ReadFileArgs
from reviewkit.agent.schemas import ToolContext
from reviewkit.review.errors import ContentFetchError


def get_diff_chunk(args: GetDiffChunkArgs, ctx: ToolContext) -> str:
    """
    返回指定文件 diff 的前 max_lines 行。

    - 失败：path 不存在抛 KeyError；max_lines 非法抛 ValueError
    """
    if args.max_lines <= 0:
        raise ValueError("max_lines must be > 0")
    if args.path not in ctx.diff_by_path:
        raise KeyError(f"diff not found for path: {args.path}")
    lines = ctx.diff_by_path[args.path].splitlines()
    return "\n".join(lines[: args.max_lines])


async def read_file(args: ReadFileArgs, ctx: ToolContext) -> dict[str, str]:
    """返回带行号的全文片段：{"content": "..."} 或 {"error": "..."}。"""
    if ctx.analysis is None:
        return {"error": "full file content is not available in this run"}
    try:
        text = await ctx.analysis.read_text(args.path)
    except ContentFetchError as exc:
        return {"error": str(exc)}

    lines = text.splitlines()
    start = args.start_line - 1
    window = lines[start : start + args.max_lines]
    numbered = [f"{start + i + 1}: {line}" for i, line in enumerate(window)]
    return {"content": "\n".join(numbered)}
