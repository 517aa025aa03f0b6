"""
风险模式扫描工具（字符串包含匹配）。

只扫描新增行，并带上新文件中的行号，方便模型直接引用到 finding 的 line 上。
"""

from __future__ import annotations

from reviewkit.agent.schemas import FindRiskyPatternArgs
from reviewkit.agent.schemas import ToolContext
from reviewkit.review.diff_parser import iter_added_lines


def find_risky_pattern(args: FindRiskyPatternArgs, ctx: ToolContext) -> dict[str, list[dict[str, object]]]:
    """
    - 输入：path + patterns
    - 输出：{"hits": [{"pattern": ..., "line": ...}, ...]}
    """
    if args.path not in ctx.diff_by_path:
        raise KeyError(f"diff not found for path: {args.path}")
    if any(not p for p in args.patterns):
        raise ValueError("pattern must be non-empty")

    hits: list[dict[str, object]] = []
    for line_no, text in iter_added_lines(diff=ctx.diff_by_path[args.path]):
        for pattern in args.patterns:
            if pattern in text:
                hits.append({"pattern": pattern, "line": line_no})
    return {"hits": hits}
