"""
GitHub -> Review domain adapter。

职责：
- 将 GitHub PR files/patch 转为平台无关的 `ChangeSet`
- `GitHubChangeSource`：绑定到单个仓库的协作方实现
"""

from __future__ import annotations

import logging

from reviewkit.github.client import GitHubClient
from reviewkit.github.schemas import GitHubPullRequestFile
from reviewkit.review.context import build_change_set
from reviewkit.review.context import build_file_change
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import FileChange

logger = logging.getLogger(__name__)


def build_change_set_from_github_files(
    owner: str,
    repo: str,
    pull_number: int,
    head_sha: str,
    base_sha: str,
    files: list[GitHubPullRequestFile],
) -> ChangeSet:
    file_changes: list[FileChange] = []
    for f in files:
        if not f.patch:
            logger.info(f"GitHub file has no patch (binary or truncated): {f.filename}")
        file_changes.append(
            build_file_change(
                path=f.filename,
                diff=f.patch or "",
                is_new_file=f.status == "added",
                is_deleted_file=f.status == "removed",
                is_renamed_file=f.status == "renamed",
                old_path=f.previous_filename,
            )
        )
    return build_change_set(
        identifier=f"github:{owner}/{repo}#{pull_number}",
        source_ref=head_sha,
        target_ref=base_sha,
        files=file_changes,
    )


class GitHubChangeSource:
    def __init__(self, client: GitHubClient, owner: str, repo: str) -> None:
        self._client = client
        self._owner = owner
        self._repo = repo

    async def fetch_change_metadata(self, pull_number: int, head_sha: str, base_sha: str) -> ChangeSet:
        files = await self._client.list_pull_request_files(owner=self._owner, repo=self._repo, pull_number=pull_number)
        return build_change_set_from_github_files(
            owner=self._owner,
            repo=self._repo,
            pull_number=pull_number,
            head_sha=head_sha,
            base_sha=base_sha,
            files=files,
        )

    async def fetch_file_content(self, path: str, ref: str) -> bytes:
        return await self._client.get_file_content(owner=self._owner, repo=self._repo, path=path, ref=ref)
