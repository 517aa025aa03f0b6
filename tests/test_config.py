from __future__ import annotations

import pytest

from reviewkit.config import load_config_from_env

_LLM = {"LLM_BASE_URL": "https://llm.example.com", "LLM_API_KEY": "k", "LLM_MODEL": "m"}
_GITLAB = {
    "GITLAB_BASE_URL": "https://gitlab.example.com",
    "GITLAB_TOKEN": "t",
    "GITLAB_WEBHOOK_SECRET": "s",
}
_GITHUB = {
    "GITHUB_API_BASE_URL": "https://api.github.com",
    "GITHUB_TOKEN": "t",
    "GITHUB_WEBHOOK_SECRET": "s",
}


def test_load_config_requires_llm() -> None:
    with pytest.raises(ValueError):
        load_config_from_env(environ={})


def test_load_config_requires_at_least_one_scm() -> None:
    with pytest.raises(ValueError):
        load_config_from_env(environ=dict(_LLM))


def test_load_config_gitlab_only_ok() -> None:
    cfg = load_config_from_env(environ={**_LLM, **_GITLAB})
    assert cfg.gitlab is not None
    assert cfg.github is None
    assert cfg.snapshot is None


def test_load_config_github_only_ok() -> None:
    cfg = load_config_from_env(environ={**_LLM, **_GITHUB})
    assert cfg.gitlab is None
    assert cfg.github is not None


def test_load_config_rejects_partial_gitlab() -> None:
    environ = {**_LLM, **_GITLAB}
    del environ["GITLAB_WEBHOOK_SECRET"]
    with pytest.raises(ValueError):
        load_config_from_env(environ=environ)


def test_load_config_rejects_partial_github() -> None:
    environ = {**_LLM, **_GITHUB}
    del environ["GITHUB_WEBHOOK_SECRET"]
    with pytest.raises(ValueError):
        load_config_from_env(environ=environ)


def test_review_policy_defaults() -> None:
    cfg = load_config_from_env(environ={**_LLM, **_GITLAB})
    assert cfg.review.complexity.simple_max_lines == 100
    assert cfg.review.complexity.moderate_max_lines == 500
    assert cfg.review.complexity.moderate_max_files == 10
    assert cfg.review.run_timeout_seconds is None


def test_review_policy_overrides_and_snapshot() -> None:
    environ = {
        **_LLM,
        **_GITLAB,
        "REVIEW_MODERATE_MAX_FILES": "25",
        "REVIEW_ANALYZER_TIMEOUT_SECONDS": "2.5",
        "REVIEW_RUN_TIMEOUT_SECONDS": "30",
        "SNAPSHOT_BASE_DIR": "/var/lib/reviewkit",
    }
    cfg = load_config_from_env(environ=environ)
    assert cfg.review.complexity.moderate_max_files == 25
    assert cfg.review.analyzer_timeout_seconds == 2.5
    assert cfg.review.run_timeout_seconds == 30
    assert cfg.snapshot is not None
    assert cfg.snapshot.git_bin == "git"


@pytest.mark.parametrize(
    "key,value",
    [("REVIEW_MODERATE_MAX_FILES", "many"), ("REVIEW_MODERATE_MAX_FILES", "0"), ("REVIEW_ANALYZER_TIMEOUT_SECONDS", "-1")],
)
def test_review_policy_rejects_invalid_values(key: str, value: str) -> None:
    with pytest.raises(ValueError):
        load_config_from_env(environ={**_LLM, **_GITLAB, key: value})
