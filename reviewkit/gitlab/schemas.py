"""
GitLab Webhook / API response schemas（Pydantic）。

只覆盖 review 链路需要的字段子集：
- MR webhook：定位 MR + 取 clone 地址（complex 等级物化快照用）
- MR changes：每个文件的 diff + diff_refs（ChangeSet 的 source/target ref）
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class GitLabUser(BaseModel):
    username: str


class GitLabProject(BaseModel):
    id: int
    web_url: str
    git_http_url: str | None = None


class GitLabMergeRequestObjectAttributes(BaseModel):
    """Merge request webhook 的 object_attributes 子结构。"""

    iid: int
    action: Literal["open", "update", "reopen", "merge", "close", "approved", "unapproved"]
    last_commit: dict[str, object]
    target_branch: str
    source_branch: str


class GitLabMergeRequestWebhookEvent(BaseModel):
    object_kind: Literal["merge_request"]
    user: GitLabUser
    project: GitLabProject
    object_attributes: GitLabMergeRequestObjectAttributes


class GitLabDiffRef(BaseModel):
    base_sha: str
    head_sha: str
    start_sha: str


class GitLabMRChange(BaseModel):
    """单个文件变更（包含 diff 字符串）。"""

    old_path: str
    new_path: str
    a_mode: str | None = None
    b_mode: str | None = None
    new_file: bool
    renamed_file: bool
    deleted_file: bool
    diff: str


class GitLabMergeRequestChanges(BaseModel):
    changes: list[GitLabMRChange]
    diff_refs: GitLabDiffRef


class GitLabNote(BaseModel):
    id: int
    body: str
