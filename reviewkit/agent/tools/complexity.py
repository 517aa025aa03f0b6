"""
复杂度分析工具（基于 diff 的近似值）。

说明：
- 只取新增的 Python 行（diff 中 `+` 开头），用 AST 解析并统计分支节点
- 与 `PythonComplexityAnalyzer` 共用同一套计数规则；agent 需要更精确的结果时应该先 read_file
"""

from __future__ import annotations

import ast

from reviewkit.agent.schemas import CalcPythonComplexityArgs
from reviewkit.agent.schemas import ToolContext
from reviewkit.analyzers.python_complexity import count_branches
from reviewkit.analyzers.python_complexity import extract_added_code


def calc_python_complexity(args: CalcPythonComplexityArgs, ctx: ToolContext) -> dict[str, int]:
    """
    新增代码整体的近似复杂度（分支节点数 + 1）；没有新增代码返回 0。
    解析失败直接抛 SyntaxError（由 executor 转成 observation）。
    """
    if args.path not in ctx.diff_by_path:
        raise KeyError(f"diff not found for path: {args.path}")

    code = extract_added_code(diff=ctx.diff_by_path[args.path])
    if not code.strip():
        return {"complexity": 0}
    return {"complexity": count_branches(ast.parse(code))}
