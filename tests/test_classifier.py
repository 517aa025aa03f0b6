from __future__ import annotations

import pytest

from reviewkit.review.complexity import ComplexityPolicy
from reviewkit.review.complexity import classify_complexity
from reviewkit.review.complexity import resolve_tier
from reviewkit.review.context import build_change_set
from reviewkit.review.context import build_file_change
from reviewkit.review.models import ChangeSet
from reviewkit.review.models import FileChange


def _diff(added: int, removed: int = 0) -> str:
    lines = [f"@@ -1,{removed} +1,{added} @@"]
    lines += [f"-old_{i} = {i}" for i in range(removed)]
    lines += [f"+new_{i} = {i}" for i in range(added)]
    return "\n".join(lines)


def _file(path: str, added: int, removed: int = 0, deleted: bool = False) -> FileChange:
    return build_file_change(path=path, diff=_diff(added, removed), is_deleted_file=deleted)


def _change_set(*files: FileChange) -> ChangeSet:
    return build_change_set(identifier="cs-1", source_ref="head", target_ref="base", files=files)


@pytest.mark.parametrize("added,removed", [(0, 1), (20, 0), (50, 49), (99, 0)])
def test_single_small_file_is_simple(added: int, removed: int) -> None:
    change_set = _change_set(_file("src/app.py", added, removed))
    assert classify_complexity(change_set, ComplexityPolicy()) == "simple"


def test_single_deleted_file_is_still_simple() -> None:
    change_set = _change_set(_file("src/old.py", 0, 30, deleted=True))
    assert classify_complexity(change_set, ComplexityPolicy()) == "simple"


@pytest.mark.parametrize("file_count", [1, 2, 40])
def test_five_hundred_changed_lines_is_complex_regardless_of_file_count(file_count: int) -> None:
    per_file = -(-500 // file_count)
    files = [_file(f"src/mod_{i}.py", per_file) for i in range(file_count)]
    change_set = _change_set(*files)
    assert change_set.changed_lines >= 500
    assert classify_complexity(change_set, ComplexityPolicy()) == "complex"


def test_few_files_in_one_module_is_moderate() -> None:
    change_set = _change_set(_file("src/a.py", 100), _file("src/b.py", 100), _file("README.md", 5))
    assert classify_complexity(change_set, ComplexityPolicy()) == "moderate"


def test_single_large_file_below_limit_is_moderate() -> None:
    change_set = _change_set(_file("src/a.py", 300))
    assert classify_complexity(change_set, ComplexityPolicy()) == "moderate"


def test_too_many_files_is_complex() -> None:
    files = [_file(f"src/m{i}.py", 1) for i in range(11)]
    assert classify_complexity(_change_set(*files), ComplexityPolicy()) == "complex"
    assert classify_complexity(_change_set(*files), ComplexityPolicy(moderate_max_files=20)) == "moderate"


def test_change_spanning_top_level_modules_is_complex() -> None:
    change_set = _change_set(_file("api/a.py", 10), _file("worker/b.py", 10))
    assert classify_complexity(change_set, ComplexityPolicy()) == "complex"
    assert classify_complexity(change_set, ComplexityPolicy(max_top_level_modules=2)) == "moderate"


def test_deleting_file_with_most_changed_lines_is_complex() -> None:
    change_set = _change_set(_file("src/a.py", 10), _file("src/legacy.py", 0, 60, deleted=True))
    assert classify_complexity(change_set, ComplexityPolicy()) == "complex"


def test_classification_is_pure_and_memoized() -> None:
    change_set = _change_set(_file("src/a.py", 10), _file("src/b.py", 10))
    policy = ComplexityPolicy()
    assert classify_complexity(change_set, policy) == classify_complexity(change_set, policy)
    assert resolve_tier(change_set, policy) == "moderate"
    # 缓存按 policy 区分
    assert resolve_tier(change_set, ComplexityPolicy(moderate_max_files=1)) == "complex"
    assert resolve_tier(change_set, policy) == "moderate"


def test_duplicate_paths_are_rejected_at_construction() -> None:
    with pytest.raises(ValueError):
        _change_set(_file("src/a.py", 1), _file("src/a.py", 2))
