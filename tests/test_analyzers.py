from __future__ import annotations

import anyio
import pytest

from reviewkit.analyzers.patterns import PatternRule
from reviewkit.analyzers.patterns import RiskyPatternAnalyzer
from reviewkit.analyzers.python_complexity import PythonComplexityAnalyzer
from reviewkit.analyzers.python_complexity import measure_functions
from reviewkit.analyzers.registry import AnalyzerRegistry
from reviewkit.review.context import build_change_set
from reviewkit.review.context import build_file_change
from reviewkit.review.context_loader import AnalysisContext
from reviewkit.review.context_loader import ContextLoader
from reviewkit.review.models import AnalysisResult
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import FileChange


def _change_set(*files: FileChange) -> ChangeSet:
    return build_change_set(identifier="cs-1", source_ref="head", target_ref="base", files=files)


def _context(change_set: ChangeSet, files: dict[str, str] | None = None, diff_only: bool = False) -> AnalysisContext:
    contents = files or {}

    async def fetch(path: str, ref: str) -> bytes:
        return contents[path].encode()

    loader = ContextLoader(change_set=change_set, fetch=fetch if files is not None else None)
    return AnalysisContext(
        loader=loader,
        scope=change_set.paths,
        default_ref=change_set.source_ref,
        tier="simple",
        diff_only=diff_only,
    )


def _branchy_function(branches: int) -> str:
    body = "".join(f"    if x == {i}:\n        return {i}\n" for i in range(branches))
    return "def route(x):\n" + body + "    return -1\n"


def test_risky_patterns_report_new_file_line_numbers() -> None:
    diff = "\n".join(
        [
            "@@ -10,3 +10,4 @@",
            " import subprocess",
            "-data = eval(raw)",
            "+data = json.loads(raw)",
            "+subprocess.run(cmd, shell=True)",
            " done = True",
        ]
    )
    change_set = _change_set(build_file_change(path="svc/run.py", diff=diff))

    findings = anyio.run(RiskyPatternAnalyzer().analyze, change_set, _context(change_set))

    assert [(f.line, f.severity, f.dimension) for f in findings] == [(12, "high", "security")]
    assert findings[0].analyzer == "risky-patterns"


def test_risky_patterns_respect_rule_content_types() -> None:
    diff = "@@ -0,0 +1 @@\n+el.innerHTML = value"
    change_set = _change_set(
        build_file_change(path="web/app.js", diff=diff),
        build_file_change(path="svc/app.py", diff=diff),
    )

    findings = anyio.run(RiskyPatternAnalyzer().analyze, change_set, _context(change_set))

    assert [f.path for f in findings] == ["web/app.js"]


def test_risky_pattern_rules_must_be_non_empty() -> None:
    with pytest.raises(ValueError):
        RiskyPatternAnalyzer(rules=[PatternRule(pattern="", severity="low", description="nothing")])


def test_measure_functions_counts_branches() -> None:
    functions = measure_functions(_branchy_function(3))
    assert [(f.name, f.start_line, f.complexity) for f in functions] == [("route", 1, 4)]


def test_complexity_of_new_file_uses_added_lines_only() -> None:
    source = _branchy_function(12)
    lines = source.splitlines()
    diff = "\n".join([f"@@ -0,0 +1,{len(lines)} @@"] + [f"+{line}" for line in lines])
    change_set = _change_set(build_file_change(path="svc/router.py", diff=diff, is_new_file=True))

    result = anyio.run(PythonComplexityAnalyzer().analyze, change_set, _context(change_set))

    assert isinstance(result, AnalysisResult)
    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.severity == "medium"  # type: ignore[union-attr]
    assert finding.line == 1  # type: ignore[union-attr]


def test_complexity_falls_back_to_full_file_when_fragment_does_not_parse() -> None:
    diff = "@@ -2,0 +2,2 @@\n+    if x == 0:\n+        return 0"
    change_set = _change_set(build_file_change(path="svc/router.py", diff=diff))
    context = _context(change_set, files={"svc/router.py": _branchy_function(19)})

    result = anyio.run(PythonComplexityAnalyzer().analyze, change_set, context)

    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.severity == "high"  # type: ignore[union-attr]
    assert "complexity 20" in finding.description  # type: ignore[union-attr]
    assert change_set.files[0].full_content is not None


def test_complexity_skips_file_in_diff_only_mode() -> None:
    diff = "@@ -2,0 +2,2 @@\n+    if x == 0:\n+        return 0"
    change_set = _change_set(build_file_change(path="svc/router.py", diff=diff))
    context = _context(change_set, files={"svc/router.py": _branchy_function(19)}, diff_only=True)

    result = anyio.run(PythonComplexityAnalyzer().analyze, change_set, context)

    assert list(result.findings) == []
    assert list(result.observations) == []


def test_simple_functions_produce_positive_observation() -> None:
    diff = "@@ -0,0 +1,2 @@\n+def ok():\n+    return 1"
    change_set = _change_set(build_file_change(path="a.py", diff=diff, is_new_file=True))

    result = anyio.run(PythonComplexityAnalyzer().analyze, change_set, _context(change_set))

    assert list(result.findings) == []
    assert len(result.observations) == 1


def test_registry_resolves_in_registration_order_with_wildcard() -> None:
    registry = AnalyzerRegistry()
    patterns = RiskyPatternAnalyzer()
    complexity = PythonComplexityAnalyzer()
    registry.register(patterns, content_types=("*",))
    registry.register(complexity, content_types=("python",))

    assert registry.resolve("python") == [patterns, complexity]
    assert registry.resolve("markdown") == [patterns]
    assert registry.registration_index("python-complexity") == 1
    assert registry.names == ["risky-patterns", "python-complexity"]


def test_registry_rejects_duplicates_and_empty_tags() -> None:
    registry = AnalyzerRegistry()
    registry.register(RiskyPatternAnalyzer(), content_types=("python",))
    with pytest.raises(ValueError):
        registry.register(RiskyPatternAnalyzer(), content_types=("go",))
    with pytest.raises(ValueError):
        registry.register(PythonComplexityAnalyzer(), content_types=())
    with pytest.raises(KeyError):
        registry.registration_index("missing")
    assert registry.resolve("rust") == []
