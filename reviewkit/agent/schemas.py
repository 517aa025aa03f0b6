from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from reviewkit.review.context_loader import AnalysisContext


@dataclass
class ToolContext:
    """
    工具执行上下文。

    - diff_by_path：当前分区内每个文件的 diff（纯内存、确定性工具只用它）
    - analysis：Context Loader 句柄；只有 read_file 会用到（按需拉取全文）
    """

    diff_by_path: dict[str, str]
    analysis: AnalysisContext | None = None


class GetDiffChunkArgs(BaseModel):
    path: str
    max_lines: int


class FindRiskyPatternArgs(BaseModel):
    path: str
    patterns: list[str]


class CalcPythonComplexityArgs(BaseModel):
    path: str


class ReadFileArgs(BaseModel):
    path: str
    start_line: int = Field(default=1, ge=1)
    max_lines: int = Field(default=200, gt=0)


class GetDiffChunkCall(BaseModel):
    name: Literal["get_diff_chunk"]
    args: GetDiffChunkArgs


class FindRiskyPatternCall(BaseModel):
    name: Literal["find_risky_pattern"]
    args: FindRiskyPatternArgs


class CalcPythonComplexityCall(BaseModel):
    name: Literal["calc_python_complexity"]
    args: CalcPythonComplexityArgs


class ReadFileCall(BaseModel):
    name: Literal["read_file"]
    args: ReadFileArgs


ToolCall = Annotated[
    Union[GetDiffChunkCall, FindRiskyPatternCall, CalcPythonComplexityCall, ReadFileCall],
    Field(discriminator="name"),
]


class AgentAction(BaseModel):
    kind: Literal["action"]
    call: ToolCall


class AgentFinding(BaseModel):
    """模型在 final 里给出的单条 finding（path 会在 analyzer 里做白名单过滤）。"""

    severity: Literal["critical", "high", "medium", "low"]
    dimension: str
    path: str
    line: int | None = None
    description: str
    suggestion: str | None = None


class AgentFinal(BaseModel):
    kind: Literal["final"]
    findings: list[AgentFinding] = Field(default_factory=list)
    observations: list[str] = Field(default_factory=list)


AgentStep = Annotated[Union[AgentAction, AgentFinal], Field(discriminator="kind")]
