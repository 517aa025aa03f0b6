from __future__ import annotations

"""
Synthesis（把 ReviewReport 渲染成 MR note / PR review 正文）。

注意：
- 这里是**确定性输出**（不依赖 LLM），同一份报告永远渲染出同一段文本
- 降级/部分完成必须写在正文里：读者要知道这次 review 的上下文是打了折扣的
"""

from reviewkit.review.models import ReviewReport


def synthesize_note_body(report: ReviewReport, head_sha: str) -> str:
    lines: list[str] = []
    lines.append(f"AI Code Review (commit: `{head_sha}`)")
    lines.append("")
    lines.append(f"- Complexity tier: **{report.tier}**")
    lines.append(f"- Findings: **{report.total}**")
    if report.context_loaded:
        lines.append(f"- Full context loaded for: {', '.join(f'`{p}`' for p in report.context_loaded_files)}")
    if report.degraded:
        lines.append(f"- **Reduced-context** review (diff only): {report.degraded_reason}")
    if report.partial:
        lines.append("- **Partial review**: some analyzers did not complete")
    lines.append("")

    if report.findings:
        lines.append("### Findings")
        for r in report.findings:
            f = r.finding
            location = f"`{f.path}:{f.line}`" if f.line is not None else f"`{f.path}`"
            entry = f"- **[{f.severity}]** {location} ({f.dimension}): {f.description}"
            if f.suggestion:
                entry += f" Suggestion: {f.suggestion}"
            if r.note:
                entry += f" _{r.note}_"
            lines.append(entry)
        lines.append("")
    else:
        lines.append("No issues found.")
        lines.append("")

    if report.positive_observations:
        lines.append("### Looks good")
        for text in report.positive_observations:
            lines.append(f"- {text}")
        lines.append("")

    if report.warnings:
        lines.append("<details><summary>Run warnings</summary>")
        lines.append("")
        for w in report.warnings:
            lines.append(f"- {w}")
        lines.append("")
        lines.append("</details>")

    return "\n".join(lines).rstrip() + "\n"
