"""
Python 复杂度 analyzer（基于 AST 的近似圈复杂度）。

策略（“拿不准才拉全文”）：
1. 先只用 diff 的新增行解析（新文件、整段新增函数时足够）
2. 新增片段解析失败（改动在函数中间、缩进不完整）且允许读全文时，
   通过 Context Loader 拉取完整文件，只统计与改动行重叠的函数
3. 拉不到全文（diff-only / 404 / 无权限）就跳过该文件，不报错
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass

import anyio

from reviewkit.review.context_loader import AnalysisContext
from reviewkit.review.diff_parser import iter_added_lines
from reviewkit.review.errors import ContentFetchError
from reviewkit.review.models import AnalysisResult
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import FileChange
from reviewkit.review.models import Finding

logger = logging.getLogger(__name__)

_BRANCH_NODES = (
    ast.If,
    ast.For,
    ast.AsyncFor,
    ast.While,
    ast.Try,
    ast.With,
    ast.AsyncWith,
    ast.Match,
    ast.BoolOp,
    ast.IfExp,
    ast.comprehension,
)


@dataclass(frozen=True)
class FunctionComplexity:
    name: str
    start_line: int
    end_line: int
    complexity: int


def extract_added_code(diff: str) -> str:
    """从 unified diff 里提取新增代码行（去掉 diff 元信息）。"""
    lines: list[str] = []
    for line in diff.splitlines():
        if line.startswith("+++ ") or line.startswith("--- ") or line.startswith("@@"):
            continue
        if line.startswith("+") and not line.startswith("++"):
            lines.append(line[1:])
    return "\n".join(lines)


def count_branches(node: ast.AST) -> int:
    """分支节点数 + 1。"""
    return 1 + sum(1 for n in ast.walk(node) if isinstance(n, _BRANCH_NODES))


def measure_functions(source: str) -> list[FunctionComplexity]:
    """解析失败直接抛 SyntaxError（由调用方决定是否退回全文）。"""
    tree = ast.parse(source)
    result: list[FunctionComplexity] = []
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            result.append(
                FunctionComplexity(
                    name=node.name,
                    start_line=node.lineno,
                    end_line=node.end_lineno or node.lineno,
                    complexity=count_branches(node),
                )
            )
    return sorted(result, key=lambda f: (f.start_line, f.name))


class PythonComplexityAnalyzer:
    name = "python-complexity"

    def __init__(self, medium_threshold: int = 10, high_threshold: int = 20) -> None:
        if not 0 < medium_threshold <= high_threshold:
            raise ValueError("thresholds must satisfy 0 < medium_threshold <= high_threshold")
        self._medium_threshold = medium_threshold
        self._high_threshold = high_threshold

    async def analyze(self, change_set: ChangeSet, context: AnalysisContext) -> AnalysisResult:
        findings: list[Finding] = []
        checked = 0
        for file_change in change_set.files:
            if file_change.is_deleted_file or not file_change.hunks:
                continue
            functions = await self._changed_functions(file_change=file_change, context=context)
            if functions is None:
                continue
            checked += 1
            findings.extend(self._to_findings(file_change=file_change, functions=functions))

        observations: list[str] = []
        if checked and not findings:
            observations.append(f"No high-complexity Python functions in changed code ({checked} file(s) checked)")
        return AnalysisResult(findings=findings, observations=observations)

    async def _changed_functions(
        self,
        file_change: FileChange,
        context: AnalysisContext,
    ) -> list[FunctionComplexity] | None:
        added = iter_added_lines(diff=file_change.diff)
        fragment = "\n".join(text for _, text in added)
        try:
            measured = await anyio.to_thread.run_sync(measure_functions, fragment)
        except SyntaxError:
            measured = None
        if measured is not None:
            # 片段里的第 i 行对应新文件中的第 added[i-1] 行
            return [
                FunctionComplexity(
                    name=f.name,
                    start_line=added[f.start_line - 1][0],
                    end_line=added[min(f.end_line, len(added)) - 1][0],
                    complexity=f.complexity,
                )
                for f in measured
            ]

        if not context.can_read:
            logger.info(f"Skipping {file_change.path}: fragment does not parse and full content is unavailable")
            return None
        try:
            source = await context.read_text(file_change.path)
        except ContentFetchError as exc:
            logger.info(f"Skipping {file_change.path}: {exc}")
            return None
        try:
            functions = await anyio.to_thread.run_sync(measure_functions, source)
        except SyntaxError:
            logger.info(f"Skipping {file_change.path}: full file does not parse")
            return None

        changed = {line for hunk in file_change.hunks for line in hunk.added_lines}
        return [f for f in functions if any(f.start_line <= line <= f.end_line for line in changed)]

    def _to_findings(self, file_change: FileChange, functions: list[FunctionComplexity]) -> list[Finding]:
        findings: list[Finding] = []
        for f in functions:
            if f.complexity < self._medium_threshold:
                continue
            severity = "high" if f.complexity >= self._high_threshold else "medium"
            findings.append(
                Finding(
                    severity=severity,
                    dimension="complexity",
                    path=file_change.path,
                    line=f.start_line,
                    description=f"Function `{f.name}` has approximate cyclomatic complexity {f.complexity}",
                    suggestion="Split the function or flatten nested branches",
                    analyzer=self.name,
                )
            )
        return findings
