"""
unified diff 解析（非 AI、确定性）。

只处理 review 需要的信息：hunk 范围、增删行号、新增行文本。
`---`/`+++` 文件头只在第一个 hunk 之前出现，hunk 内部以 `+++` 开头的行视为新增内容。
"""

from __future__ import annotations

from reviewkit.review.models import DiffHunk


def parse_hunks(diff: str) -> list[DiffHunk]:
    hunks: list[DiffHunk] = []
    header: tuple[int, int, int, int] | None = None
    added: list[int] = []
    removed: list[int] = []
    old_line = 0
    new_line = 0

    for line in diff.splitlines():
        if line.startswith("@@"):
            if header is not None:
                hunks.append(_make_hunk(header=header, added=added, removed=removed))
            header = _parse_hunk_header(header=line)
            old_line, new_line = header[0], header[2]
            added, removed = [], []
            continue
        if header is None:
            # 第一个 hunk 之前的文件头（diff --git / --- / +++ / index ...）
            continue
        if line.startswith("+"):
            added.append(new_line)
            new_line += 1
        elif line.startswith("-"):
            removed.append(old_line)
            old_line += 1
        elif line.startswith(" ") or line == "":
            old_line += 1
            new_line += 1
        # "\ No newline at end of file" 之类的标记行不占行号

    if header is not None:
        hunks.append(_make_hunk(header=header, added=added, removed=removed))
    return hunks


def count_changed_lines(diff: str) -> tuple[int, int]:
    """返回 (added, removed)。"""
    hunks = parse_hunks(diff=diff)
    return sum(len(h.added_lines) for h in hunks), sum(len(h.removed_lines) for h in hunks)


def extract_changed_line_numbers(diff: str) -> list[int]:
    """新增行在新文件里的行号（按出现顺序）。"""
    changed: list[int] = []
    for hunk in parse_hunks(diff=diff):
        changed.extend(hunk.added_lines)
    return changed


def iter_added_lines(diff: str) -> list[tuple[int, str]]:
    """新增行 (行号, 文本)，文本已去掉前缀 `+`。"""
    result: list[tuple[int, str]] = []
    new_line = 0
    in_hunk = False
    for line in diff.splitlines():
        if line.startswith("@@"):
            _, _, new_line, _ = _parse_hunk_header(header=line)
            in_hunk = True
            continue
        if not in_hunk:
            continue
        if line.startswith("+"):
            result.append((new_line, line[1:]))
            new_line += 1
        elif line.startswith(" ") or line == "":
            new_line += 1
    return result


def _make_hunk(header: tuple[int, int, int, int], added: list[int], removed: list[int]) -> DiffHunk:
    old_start, old_count, new_start, new_count = header
    return DiffHunk(
        old_start=old_start,
        old_count=old_count,
        new_start=new_start,
        new_count=new_count,
        added_lines=tuple(added),
        removed_lines=tuple(removed),
    )


def _parse_hunk_header(header: str) -> tuple[int, int, int, int]:
    # @@ -a,b +c,d @@ optional section heading
    try:
        parts = header.split(" ")
        old_start, old_count = _parse_range(parts[1], prefix="-")
        new_start, new_count = _parse_range(parts[2], prefix="+")
        return old_start, old_count, new_start, new_count
    except Exception as exc:
        raise ValueError(f"Invalid diff hunk header: {header}") from exc


def _parse_range(part: str, prefix: str) -> tuple[int, int]:
    if not part.startswith(prefix):
        raise ValueError(f"expected {prefix!r} range, got {part!r}")
    start, _, count = part[1:].partition(",")
    return int(start), int(count) if count else 1
