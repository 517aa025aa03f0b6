"""
GitLab -> Review domain adapter。

职责：
- `build_change_set_from_gitlab_changes`：MR changes -> 平台无关的 `ChangeSet`
- `GitLabChangeSource`：review 核心需要的两个协作方能力
  （fetch_change_metadata / fetch_file_content），只做数据归一化，不做业务决策
"""

from __future__ import annotations

from reviewkit.gitlab.client import GitLabClient
from reviewkit.gitlab.schemas import GitLabMergeRequestChanges
from reviewkit.review.context import build_change_set
from reviewkit.review.context import build_file_change
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import FileChange


def build_change_set_from_gitlab_changes(
    project_id: int,
    mr_iid: int,
    changes: GitLabMergeRequestChanges,
) -> ChangeSet:
    file_changes: list[FileChange] = []
    for c in changes.changes:
        # 删除文件只有 old_path 有意义；其余情况以 new_path 为准
        path = c.old_path if c.deleted_file else c.new_path
        file_changes.append(
            build_file_change(
                path=path,
                diff=c.diff,
                is_new_file=c.new_file,
                is_deleted_file=c.deleted_file,
                is_renamed_file=c.renamed_file,
                old_path=c.old_path,
            )
        )
    return build_change_set(
        identifier=f"gitlab:{project_id}!{mr_iid}",
        source_ref=changes.diff_refs.head_sha,
        target_ref=changes.diff_refs.base_sha,
        files=file_changes,
    )


class GitLabChangeSource:
    """绑定到单个 GitLab 项目的协作方实现。"""

    def __init__(self, client: GitLabClient, project_id: int) -> None:
        self._client = client
        self._project_id = project_id

    async def fetch_change_metadata(self, mr_iid: int) -> ChangeSet:
        changes = await self._client.get_merge_request_changes(project_id=self._project_id, mr_iid=mr_iid)
        return build_change_set_from_gitlab_changes(project_id=self._project_id, mr_iid=mr_iid, changes=changes)

    async def fetch_file_content(self, path: str, ref: str) -> bytes:
        return await self._client.get_raw_file(project_id=self._project_id, path=path, ref=ref)
