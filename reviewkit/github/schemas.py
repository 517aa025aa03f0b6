"""
GitHub Webhook / API response schemas（Pydantic）。

说明：
- 字段只覆盖 review 链路需要的子集（PR webhook + list files）。
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class GitHubOwner(BaseModel):
    login: str


class GitHubRepository(BaseModel):
    name: str
    owner: GitHubOwner
    full_name: str
    clone_url: str


class GitHubPullRequestRef(BaseModel):
    sha: str
    ref: str


class GitHubPullRequest(BaseModel):
    number: int
    head: GitHubPullRequestRef
    base: GitHubPullRequestRef
    merged: bool = False


class GitHubPullRequestWebhookEvent(BaseModel):
    """GitHub `pull_request` webhook event（最小结构）。"""

    action: Literal[
        "opened",
        "reopened",
        "synchronize",
        "closed",
        "edited",
        "ready_for_review",
        "labeled",
        "unlabeled",
    ]
    pull_request: GitHubPullRequest
    repository: GitHubRepository


class GitHubPullRequestFile(BaseModel):
    """
    PR 文件列表 item（GET /pulls/{pull_number}/files）。

    patch 可能缺失（大文件/二进制/被截断），adapter 会把它当作没有 hunk 的变更。
    """

    filename: str
    status: Literal["added", "modified", "removed", "renamed", "changed", "copied", "unchanged"]
    patch: str | None = None
    previous_filename: str | None = None
