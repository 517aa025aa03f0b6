from __future__ import annotations

import pytest

from reviewkit.agent.schemas import FindRiskyPatternArgs
from reviewkit.agent.schemas import GetDiffChunkArgs
from reviewkit.agent.schemas import ToolContext
from reviewkit.agent.tools.files import get_diff_chunk
from reviewkit.agent.tools.security import find_risky_pattern


def test_get_diff_chunk_limits_lines() -> None:
    ctx = ToolContext(diff_by_path={"a.py": "line1\nline2\nline3\n"})
    args = GetDiffChunkArgs(path="a.py", max_lines=2)
    chunk = get_diff_chunk(args=args, ctx=ctx)
    assert chunk == "line1\nline2"


def test_get_diff_chunk_missing_path_raises() -> None:
    ctx = ToolContext(diff_by_path={})
    args = GetDiffChunkArgs(path="missing.py", max_lines=1)
    with pytest.raises(KeyError):
        get_diff_chunk(args=args, ctx=ctx)


def test_find_risky_pattern_reports_added_line_numbers() -> None:
    diff = "\n".join(["@@ -1,2 +1,2 @@", "-x = eval(old)", "+x = eval(new)", " y = 1"])
    ctx = ToolContext(diff_by_path={"a.py": diff})
    result = find_risky_pattern(args=FindRiskyPatternArgs(path="a.py", patterns=["eval("]), ctx=ctx)
    # 删除行里的 eval 不算
    assert result == {"hits": [{"pattern": "eval(", "line": 1}]}


def test_find_risky_pattern_rejects_empty_pattern() -> None:
    ctx = ToolContext(diff_by_path={"a.py": "@@ -1 +1 @@\n+x"})
    with pytest.raises(ValueError):
        find_risky_pattern(args=FindRiskyPatternArgs(path="a.py", patterns=[""]), ctx=ctx)
