"""
LLM analyzer（受控 ReAct + tools）。

- 默认注册为 `"*"`：任何 content type 都可以交给它
- review 深度随复杂度等级变化（simple 步数减半，complex 步数翻倍）
- 需要更多上下文时，模型通过 `read_file` 工具走 Context Loader 按需拉取全文；
  diff-only（降级）模式下该工具直接返回错误 observation

注意：
- 模型给出的 finding 以 dict 形式交给 aggregator 校验（单条不合法只丢这一条）
- path 必须属于当前分区，避免模型“胡写路径”
"""

from __future__ import annotations

from reviewkit.agent.runtime import run_react_agent
from reviewkit.agent.schemas import ToolContext
from reviewkit.agent.tools.registry import execute_tool
from reviewkit.llm.client import OpenAICompatLLMClient
from reviewkit.review.context_loader import AnalysisContext
from reviewkit.review.models import AnalysisResult
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import ComplexityTier


def _truncate_text(text: str, max_chars: int) -> str:
    """控制 diff 输入长度，避免超出模型上下文/预算。"""
    if max_chars <= 0:
        raise ValueError("max_chars must be > 0")
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n...TRUNCATED..."


class LLMAnalyzer:
    name = "llm-review"

    def __init__(self, llm_client: OpenAICompatLLMClient, max_steps: int = 6, max_diff_chars: int = 12000) -> None:
        if max_steps <= 0:
            raise ValueError("max_steps must be > 0")
        self._llm_client = llm_client
        self._max_steps = max_steps
        self._max_diff_chars = max_diff_chars

    def steps_for(self, tier: ComplexityTier) -> int:
        if tier == "simple":
            return max(1, self._max_steps // 2)
        if tier == "complex":
            return self._max_steps * 2
        return self._max_steps

    async def analyze(self, change_set: ChangeSet, context: AnalysisContext) -> AnalysisResult:
        diff_by_path = {f.path: f.diff for f in change_set.files}
        tool_ctx = ToolContext(diff_by_path=diff_by_path, analysis=context if context.can_read else None)
        final = await run_react_agent(
            llm_client=self._llm_client,
            user_prompt=self._user_prompt(change_set=change_set, context=context),
            tool_ctx=tool_ctx,
            tool_executor=execute_tool,
            max_steps=self.steps_for(context.tier),
        )

        findings: list[dict[str, object]] = []
        for f in final.findings:
            if f.path not in diff_by_path:
                continue
            data: dict[str, object] = f.model_dump()
            data["analyzer"] = self.name
            findings.append(data)
        return AnalysisResult(findings=findings, observations=final.observations)

    def _user_prompt(self, change_set: ChangeSet, context: AnalysisContext) -> str:
        budget = max(1, self._max_diff_chars // max(1, len(change_set.files)))
        sections: list[str] = []
        for f in change_set.files:
            status = "deleted" if f.is_deleted_file else "new" if f.is_new_file else "modified"
            sections.append(
                f"path: {f.path}\n"
                f"content_type: {f.content_type}\n"
                f"status: {status} (+{f.added}/-{f.removed})\n"
                f"diff:\n{_truncate_text(text=f.diff, max_chars=budget)}\n"
            )
        mode = "只能基于 diff（无法读取全文）" if not context.can_read else "可以用 read_file 按需读取全文"
        return (
            f"请审查这次变更（复杂度等级：{context.tier}，{mode}）。\n"
            "要求：\n"
            "- finding 的 path 必须是下面列出的文件之一，line 用新文件中的行号\n"
            "- dimension 用简短的英文小写词（security, correctness, performance, error-handling 等）\n"
            "- description 要具体、可验证；suggestion 给出可执行的修复建议\n\n" + "\n".join(sections)
        )
