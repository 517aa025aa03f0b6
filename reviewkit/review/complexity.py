"""
Complexity Classifier（纯函数，无 I/O）。

等级决定 review 深度：
- simple：单文件小改动，只看 diff（analyzer 按需拉全文）
- moderate：多文件但规模可控，同上
- complex：大改动或结构性改动，dispatcher 会先物化完整快照

阈值（全部可配置，默认值见 `ComplexityPolicy`）：
1. changed_lines >= moderate_max_lines          -> complex（不看文件数）
2. 恰好 1 个文件且 changed_lines < simple_max_lines -> simple
3. 文件数 <= moderate_max_files 且不是结构性改动  -> moderate
4. 其余                                          -> complex

结构性改动只用来区分 moderate/complex，不会把规则 2 的 simple 升级。
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from reviewkit.review.models import ChangeSet
from reviewkit.review.models import ComplexityTier

logger = logging.getLogger(__name__)


class ComplexityPolicy(BaseModel):
    """复杂度阈值（frozen 且可哈希，用作 ChangeSet 上的缓存 key）。"""

    model_config = ConfigDict(frozen=True)

    simple_max_lines: int = Field(default=100, gt=0)
    moderate_max_files: int = Field(default=10, gt=0)
    moderate_max_lines: int = Field(default=500, gt=0)
    structural_deletion_ratio: float = Field(default=0.5, gt=0, le=1)
    max_top_level_modules: int = Field(default=1, gt=0)


def classify_complexity(change_set: ChangeSet, policy: ComplexityPolicy) -> ComplexityTier:
    file_count = len(change_set.files)
    changed = change_set.changed_lines

    if changed >= policy.moderate_max_lines:
        return "complex"
    if file_count == 1 and changed < policy.simple_max_lines:
        return "simple"
    if file_count <= policy.moderate_max_files and not is_structural_change(change_set, policy):
        return "moderate"
    return "complex"


def is_structural_change(change_set: ChangeSet, policy: ComplexityPolicy) -> bool:
    """删除了承载大部分改动行的文件，或改动跨越多个顶层模块。"""
    total = change_set.changed_lines
    if total > 0:
        for f in change_set.files:
            if f.is_deleted_file and f.changed_lines > policy.structural_deletion_ratio * total:
                return True
    return len(top_level_modules(change_set)) > policy.max_top_level_modules


def top_level_modules(change_set: ChangeSet) -> set[str]:
    """顶层目录集合；仓库根目录下的文件不算模块。"""
    modules: set[str] = set()
    for f in change_set.files:
        head, sep, _ = f.path.strip("/").partition("/")
        if sep:
            modules.add(head)
    return modules


def resolve_tier(change_set: ChangeSet, policy: ComplexityPolicy) -> ComplexityTier:
    """带缓存的分类：同一 ChangeSet + 同一 policy 只算一次。"""

    def compute() -> ComplexityTier:
        tier = classify_complexity(change_set, policy)
        logger.info(
            f"Classified {change_set.identifier}: tier={tier}, files={len(change_set.files)}, "
            f"changed_lines={change_set.changed_lines}"
        )
        return tier

    return change_set.memoized_tier(policy, compute)
