from __future__ import annotations

from reviewkit.analyzers.llm import LLMAnalyzer
from reviewkit.analyzers.patterns import RiskyPatternAnalyzer
from reviewkit.analyzers.python_complexity import PythonComplexityAnalyzer
from reviewkit.analyzers.registry import ANY_CONTENT_TYPE
from reviewkit.analyzers.registry import AnalyzerRegistry
from reviewkit.llm.client import OpenAICompatLLMClient


def build_default_registry(llm_client: OpenAICompatLLMClient | None, max_steps: int = 6) -> AnalyzerRegistry:
    """
    默认 analyzer 组合（注册顺序即去重时的优先顺序）：
    确定性规则在前，LLM 在后，LLM 与规则重复的 finding 会记为佐证。
    """
    registry = AnalyzerRegistry()
    registry.register(
        RiskyPatternAnalyzer(),
        content_types=("python", "javascript", "typescript", "go", "java", "ruby", "php", "yaml", "shell"),
    )
    registry.register(PythonComplexityAnalyzer(), content_types=("python",))
    if llm_client is not None:
        registry.register(LLMAnalyzer(llm_client=llm_client, max_steps=max_steps), content_types=(ANY_CONTENT_TYPE,))
    return registry
