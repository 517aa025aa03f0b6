"""
风险模式 analyzer（确定性、只看 diff 新增行）。

规则表刻意保持很小：具体的安全规则属于“知识”，不是编排逻辑。
调用方可以传入自己的规则表替换默认值。
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from reviewkit.review.context_loader import AnalysisContext
from reviewkit.review.diff_parser import iter_added_lines
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import Finding
from reviewkit.review.models import Severity


@dataclass(frozen=True)
class PatternRule:
    pattern: str
    severity: Severity
    description: str
    suggestion: str | None = None
    # 空集合表示适用于所有 content type
    content_types: frozenset[str] = frozenset()

    def applies_to(self, content_type: str) -> bool:
        return not self.content_types or content_type in self.content_types


DEFAULT_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        pattern="eval(",
        severity="high",
        description="Use of eval() on dynamic input",
        suggestion="Parse the input explicitly (e.g. ast.literal_eval / JSON)",
        content_types=frozenset({"python", "javascript", "typescript"}),
    ),
    PatternRule(
        pattern="pickle.loads(",
        severity="high",
        description="Unpickling data can execute arbitrary code",
        suggestion="Use a data-only format such as JSON for untrusted input",
        content_types=frozenset({"python"}),
    ),
    PatternRule(
        pattern="shell=True",
        severity="high",
        description="Subprocess invoked through the shell",
        suggestion="Pass an argument list and keep shell=False",
        content_types=frozenset({"python"}),
    ),
    PatternRule(
        pattern="yaml.load(",
        severity="medium",
        description="yaml.load without SafeLoader can construct arbitrary objects",
        suggestion="Use yaml.safe_load",
        content_types=frozenset({"python"}),
    ),
    PatternRule(
        pattern="innerHTML",
        severity="medium",
        description="Assigning innerHTML can introduce XSS",
        suggestion="Use textContent or a sanitizer",
        content_types=frozenset({"javascript", "typescript"}),
    ),
    PatternRule(
        pattern="BEGIN RSA PRIVATE KEY",
        severity="critical",
        description="Private key committed to the repository",
        suggestion="Remove the key, rotate it and load it from a secret store",
    ),
)


class RiskyPatternAnalyzer:
    name = "risky-patterns"

    def __init__(self, rules: Sequence[PatternRule] = DEFAULT_RULES, dimension: str = "security") -> None:
        if any(not r.pattern for r in rules):
            raise ValueError("pattern must be non-empty")
        self._rules = tuple(rules)
        self._dimension = dimension

    async def analyze(self, change_set: ChangeSet, context: AnalysisContext) -> list[Finding]:
        findings: list[Finding] = []
        for file_change in change_set.files:
            rules = [r for r in self._rules if r.applies_to(file_change.content_type)]
            if not rules:
                continue
            for line_no, text in iter_added_lines(diff=file_change.diff):
                for rule in rules:
                    if rule.pattern in text:
                        findings.append(
                            Finding(
                                severity=rule.severity,
                                dimension=self._dimension,
                                path=file_change.path,
                                line=line_no,
                                description=rule.description,
                                suggestion=rule.suggestion,
                                analyzer=self.name,
                            )
                        )
        return findings
