"""
GitLab API 客户端（外部系统连接器）。

约定：
- 这里只做“HTTP 调用 + 错误处理 + schema 校验”，不做业务决策。
- 发生错误时**直接抛错**，不要吞异常；文件内容的 404/403 映射为 review 领域的错误类型，
  方便 Context Loader / analyzer 区分“不存在”和“没权限”。
"""

from __future__ import annotations

from urllib.parse import quote

import httpx

from reviewkit.gitlab.schemas import GitLabMergeRequestChanges
from reviewkit.gitlab.schemas import GitLabNote
from reviewkit.review.errors import ContentAccessDeniedError
from reviewkit.review.errors import ContentNotFoundError


class GitLabClient:
    """最小 GitLab API client：MR changes、仓库文件原文、MR note。"""

    def __init__(self, base_url: str, private_token: str, http_client: httpx.AsyncClient) -> None:
        """
        - base_url: GitLab 实例地址（不包含末尾 /）
        - private_token: PRIVATE-TOKEN（建议用专用机器人账号）
        - http_client: 复用的 httpx.AsyncClient
        """
        self._base_url = base_url.rstrip("/")
        self._private_token = private_token
        self._http_client = http_client

    @property
    def private_token(self) -> str:
        return self._private_token

    def _headers(self) -> dict[str, str]:
        return {"PRIVATE-TOKEN": self._private_token}

    async def get_merge_request_changes(self, project_id: int, mr_iid: int) -> GitLabMergeRequestChanges:
        """GET /projects/:id/merge_requests/:iid/changes（包含每个文件的 diff 与 diff_refs）。"""
        url = f"{self._base_url}/api/v4/projects/{project_id}/merge_requests/{mr_iid}/changes"
        response = await self._http_client.get(url, headers=self._headers())
        if response.status_code >= 400:
            raise RuntimeError(f"GitLab API error {response.status_code}: {response.text}")
        return GitLabMergeRequestChanges.model_validate(response.json())

    async def get_raw_file(self, project_id: int, path: str, ref: str) -> bytes:
        """
        GET /projects/:id/repository/files/:file_path/raw?ref=...

        file_path 必须整体 URL 编码（包括 `/`）。
        """
        encoded = quote(path, safe="")
        url = f"{self._base_url}/api/v4/projects/{project_id}/repository/files/{encoded}/raw"
        response = await self._http_client.get(url, headers=self._headers(), params={"ref": ref})
        if response.status_code == 404:
            raise ContentNotFoundError(f"GitLab file not found: {path}@{ref}")
        if response.status_code in (401, 403):
            raise ContentAccessDeniedError(f"GitLab denied access to {path}@{ref} ({response.status_code})")
        if response.status_code >= 400:
            raise RuntimeError(f"GitLab API error {response.status_code}: {response.text}")
        return response.content

    async def post_merge_request_note(self, project_id: int, mr_iid: int, body: str) -> GitLabNote:
        """在 MR 下发布一条全局评论（note），review 报告整体写在这里。"""
        url = f"{self._base_url}/api/v4/projects/{project_id}/merge_requests/{mr_iid}/notes"
        payload = {"body": body}
        response = await self._http_client.post(url, headers=self._headers(), json=payload)
        if response.status_code >= 400:
            raise RuntimeError(f"GitLab API error {response.status_code}: {response.text}")
        return GitLabNote.model_validate(response.json())
