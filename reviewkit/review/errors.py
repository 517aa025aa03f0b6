"""
Review 错误类型。

分类：
- **输入错误**：ChangeSet 为空/不合法，review 在分发前直接拒绝（唯一会抛给调用方的错误）
- **协作方错误**：拉取文件内容 / 物化快照失败，只影响对应 analyzer 或让本次 review 降级
- 其余（analyzer 异常、超时、畸形 Finding）都在 dispatcher/aggregator 内部转成报告内容
"""

from __future__ import annotations


class ReviewError(Exception):
    """reviewkit 所有错误的基类。"""

    pass


class ChangeSetValidationError(ReviewError, ValueError):
    """ChangeSet 不合法（空、缺少 ref 等），review 被拒绝。"""

    pass


class ContentFetchError(ReviewError):
    """拉取完整文件内容失败。"""

    pass


class ContentNotFoundError(ContentFetchError):
    pass


class ContentAccessDeniedError(ContentFetchError):
    pass


class ContextScopeError(ContentAccessDeniedError):
    """analyzer 试图读取不属于自己分区的文件。"""

    pass


class ContextUnavailableError(ContentFetchError):
    """本次 run 没有可用的内容来源（未配置 fetcher，或处于降级模式）。"""

    pass


class SnapshotError(ReviewError):
    """Patch Materializer 失败的基类。"""

    pass


class SnapshotUnavailableError(SnapshotError):
    pass


class SnapshotConflictError(SnapshotError):
    """本地快照与 ChangeSet 声明的文件列表不一致。"""

    pass
