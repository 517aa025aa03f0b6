"""
应用配置加载。

设计目标：
- **严格**：必填项缺失、成组配置只填了一半、数字写错都直接报错
- **类型安全**：使用 Pydantic 校验 URL/数值范围，减少运行时踩坑
- **可测试**：核心加载函数接收 `environ` 显式输入，便于单元测试

分组：
- LLM（必填）
- GitLab / GitHub（可选，但至少配置一个）
- Snapshot（可选；不配置时 complex 等级的 review 会降级为 diff-only）
- Review policy（全部有默认值，见 `ReviewPolicy` / `ComplexityPolicy`）
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field, HttpUrl

from reviewkit.review.complexity import ComplexityPolicy
from reviewkit.review.dispatcher import ReviewPolicy


class LLMConfig(BaseModel):
    base_url: HttpUrl
    api_key: str
    model: str
    max_steps: int = Field(default=6, gt=0)


class GitLabConfig(BaseModel):
    base_url: HttpUrl
    token: str
    webhook_secret: str


class GitHubConfig(BaseModel):
    api_base_url: HttpUrl
    token: str
    webhook_secret: str


class SnapshotConfig(BaseModel):
    base_dir: str
    git_bin: str = "git"
    keep_worktrees: int = Field(default=3, gt=0)


class AppConfig(BaseModel):
    llm: LLMConfig
    gitlab: GitLabConfig | None = None
    github: GitHubConfig | None = None
    snapshot: SnapshotConfig | None = None
    review: ReviewPolicy = Field(default_factory=ReviewPolicy)


_LLM_KEYS: tuple[str, ...] = ("LLM_BASE_URL", "LLM_API_KEY", "LLM_MODEL")
_GITLAB_KEYS: tuple[str, ...] = ("GITLAB_BASE_URL", "GITLAB_TOKEN", "GITLAB_WEBHOOK_SECRET")
_GITHUB_KEYS: tuple[str, ...] = ("GITHUB_API_BASE_URL", "GITHUB_TOKEN", "GITHUB_WEBHOOK_SECRET")


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    从环境变量加载并校验配置。

    - **输入**：`environ`（例如 `os.environ`）
    - **输出**：`AppConfig`
    - **失败**：缺失/为空/只配置了一半/数值非法则抛 `ValueError`
    """
    missing = [key for key in _LLM_KEYS if not environ.get(key)]
    if missing:
        raise ValueError(f"Missing required env vars: {', '.join(missing)}")

    gitlab_present = _group_present(environ, _GITLAB_KEYS)
    github_present = _group_present(environ, _GITHUB_KEYS)
    if not gitlab_present and not github_present:
        raise ValueError("At least one of GitLab or GitHub must be configured")

    llm = LLMConfig(
        base_url=environ["LLM_BASE_URL"],
        api_key=environ["LLM_API_KEY"],
        model=environ["LLM_MODEL"],
        max_steps=_int(environ, "LLM_MAX_STEPS", 6),
    )
    gitlab = None
    if gitlab_present:
        gitlab = GitLabConfig(
            base_url=environ["GITLAB_BASE_URL"],
            token=environ["GITLAB_TOKEN"],
            webhook_secret=environ["GITLAB_WEBHOOK_SECRET"],
        )
    github = None
    if github_present:
        github = GitHubConfig(
            api_base_url=environ["GITHUB_API_BASE_URL"],
            token=environ["GITHUB_TOKEN"],
            webhook_secret=environ["GITHUB_WEBHOOK_SECRET"],
        )
    snapshot = None
    if environ.get("SNAPSHOT_BASE_DIR"):
        snapshot = SnapshotConfig(
            base_dir=environ["SNAPSHOT_BASE_DIR"],
            git_bin=environ.get("GIT_BIN") or "git",
            keep_worktrees=_int(environ, "SNAPSHOT_KEEP_WORKTREES", 3),
        )

    return AppConfig(llm=llm, gitlab=gitlab, github=github, snapshot=snapshot, review=load_review_policy(environ))


def load_review_policy(environ: Mapping[str, str]) -> ReviewPolicy:
    """review 阈值与预算；未设置的项用默认值。"""
    defaults = ReviewPolicy()
    complexity_defaults = ComplexityPolicy()
    complexity = ComplexityPolicy(
        simple_max_lines=_int(environ, "REVIEW_SIMPLE_MAX_LINES", complexity_defaults.simple_max_lines),
        moderate_max_files=_int(environ, "REVIEW_MODERATE_MAX_FILES", complexity_defaults.moderate_max_files),
        moderate_max_lines=_int(environ, "REVIEW_MODERATE_MAX_LINES", complexity_defaults.moderate_max_lines),
        structural_deletion_ratio=_float(
            environ, "REVIEW_STRUCTURAL_DELETION_RATIO", complexity_defaults.structural_deletion_ratio
        ),
        max_top_level_modules=_int(environ, "REVIEW_MAX_TOP_LEVEL_MODULES", complexity_defaults.max_top_level_modules),
    )
    run_timeout = environ.get("REVIEW_RUN_TIMEOUT_SECONDS")
    return ReviewPolicy(
        complexity=complexity,
        analyzer_timeout_seconds=_float(environ, "REVIEW_ANALYZER_TIMEOUT_SECONDS", defaults.analyzer_timeout_seconds),
        aggregation_margin_seconds=_float(
            environ, "REVIEW_AGGREGATION_MARGIN_SECONDS", defaults.aggregation_margin_seconds
        ),
        snapshot_timeout_seconds=_float(environ, "REVIEW_SNAPSHOT_TIMEOUT_SECONDS", defaults.snapshot_timeout_seconds),
        run_timeout_seconds=_float(environ, "REVIEW_RUN_TIMEOUT_SECONDS", 0.0) if run_timeout else None,
    )


def _group_present(environ: Mapping[str, str], keys: tuple[str, ...]) -> bool:
    """成组配置：全部缺失 -> False；全部存在 -> True；只有一部分 -> 报错。"""
    present = [key for key in keys if environ.get(key)]
    if not present:
        return False
    if len(present) != len(keys):
        missing = [key for key in keys if key not in present]
        raise ValueError(f"Incomplete configuration, missing: {', '.join(missing)}")
    return True


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {raw!r}") from exc
