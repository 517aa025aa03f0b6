"""
ChangeSet Builder（非 AI）。

职责：
- 把各平台（GitLab/GitHub）的 diff 归一化为内部的 `FileChange` / `ChangeSet`
- 通过路径推断 content type（analyzer registry 的路由 key）
- 在分发前校验 ChangeSet（输入错误直接拒绝，不产生部分报告）
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable

from reviewkit.review.diff_parser import parse_hunks
from reviewkit.review.errors import ChangeSetValidationError
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import FileChange

UNKNOWN_CONTENT_TYPE = "unknown"

_SUFFIX_CONTENT_TYPES: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".go": "go",
    ".java": "java",
    ".kt": "kotlin",
    ".rb": "ruby",
    ".php": "php",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".swift": "swift",
    ".sql": "sql",
    ".sh": "shell",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".json": "json",
    ".toml": "toml",
    ".md": "markdown",
    ".rst": "restructuredtext",
    ".html": "html",
    ".css": "css",
}

_FILENAME_CONTENT_TYPES: dict[str, str] = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
}


def infer_content_type_from_path(path: str) -> str:
    """
    通过文件名/扩展名推断 content type。

    必须确定性：同一个 path 永远得到同一个 tag（registry 依赖它做路由）。
    """
    name = posixpath.basename(path).lower()
    if name in _FILENAME_CONTENT_TYPES:
        return _FILENAME_CONTENT_TYPES[name]
    _, ext = posixpath.splitext(name)
    return _SUFFIX_CONTENT_TYPES.get(ext, UNKNOWN_CONTENT_TYPE)


def build_file_change(
    path: str,
    diff: str,
    is_new_file: bool = False,
    is_deleted_file: bool = False,
    is_renamed_file: bool = False,
    old_path: str | None = None,
) -> FileChange:
    """解析 diff 得到 hunks 与增删行数，组装 `FileChange`。"""
    hunks = parse_hunks(diff=diff)
    return FileChange(
        path=path,
        content_type=infer_content_type_from_path(path=path),
        diff=diff,
        hunks=tuple(hunks),
        added=sum(len(h.added_lines) for h in hunks),
        removed=sum(len(h.removed_lines) for h in hunks),
        is_new_file=is_new_file,
        is_deleted_file=is_deleted_file,
        is_renamed_file=is_renamed_file,
        old_path=old_path if is_renamed_file else None,
    )


def build_change_set(
    identifier: str,
    source_ref: str,
    target_ref: str,
    files: Iterable[FileChange],
) -> ChangeSet:
    return ChangeSet(identifier=identifier, source_ref=source_ref, target_ref=target_ref, files=tuple(files))


def validate_change_set(change_set: ChangeSet) -> None:
    """
    review 入口的输入校验。

    - 失败抛 `ChangeSetValidationError`（唯一会冒泡给调用方的错误类型）
    - 重复 path 已在 `ChangeSet` 构造时拦截，这里再兜底一次（防止 model_construct 绕过校验）
    """
    if not change_set.identifier:
        raise ChangeSetValidationError("ChangeSet identifier must be non-empty")
    if not change_set.source_ref or not change_set.target_ref:
        raise ChangeSetValidationError(f"ChangeSet {change_set.identifier} is missing source/target ref")
    if not change_set.files:
        raise ChangeSetValidationError(f"ChangeSet {change_set.identifier} contains no file changes")

    paths = change_set.paths
    if any(not p for p in paths):
        raise ChangeSetValidationError(f"ChangeSet {change_set.identifier} contains an empty path")
    if len(set(paths)) != len(paths):
        raise ChangeSetValidationError(f"ChangeSet {change_set.identifier} contains duplicate paths")
