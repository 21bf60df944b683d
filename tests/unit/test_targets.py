from __future__ import annotations

from pathlib import Path

import pytest

from forkline_core.errors import InvalidInputError, NotFoundError
from forkline_core.targets import (
    classify_target_kind,
    is_version_artifact,
    resolve_target_paths,
    target_id_from_path,
)
from tests.framework import write_file


@pytest.mark.parametrize(
    "path,kind",
    [
        ("src/pages/Home.tsx", "page"),
        ("app/dashboard/page.tsx", "page"),
        ("src/components/DemoPage.tsx", "page"),
        ("src/components/Button.tsx", "component"),
        ("src/components/Pager.tsx", "component"),
    ],
)
def test_classify_target_kind(path, kind):
    assert classify_target_kind(path) == kind


def test_version_artifacts():
    assert is_version_artifact("Foo.versions.ts")
    assert is_version_artifact("Foo.v2_1.jsx")
    assert not is_version_artifact("Foo.tsx")
    assert not is_version_artifact("Foo.vendor.ts")


def test_target_id_is_root_relative_without_extension(tmp_path: Path):
    assert target_id_from_path(tmp_path / "src" / "Foo.tsx", tmp_path) == "src/Foo"


def _tree(root: Path) -> None:
    for rel in (
        "src/components/A.tsx",
        "src/components/A.v1.tsx",
        "src/components/A.versions.ts",
        "src/components/B.jsx",
        "src/pages/Home.tsx",
        "src/styles.css",
        "node_modules/lib/C.tsx",
        ".next/D.tsx",
    ):
        write_file(root / rel, "x")


def test_globs_select_targets_only(tmp_path: Path):
    _tree(tmp_path)
    found = resolve_target_paths(["src/**/*.tsx"], tmp_path)
    assert [p.relative_to(tmp_path.resolve()).as_posix() for p in found] == [
        "src/components/A.tsx",
        "src/pages/Home.tsx",
    ]


def test_brace_and_question_mark_globs(tmp_path: Path):
    _tree(tmp_path)
    found = resolve_target_paths(["src/components/{A,B}.?sx"], tmp_path)
    assert [p.name for p in found] == ["A.tsx", "B.jsx"]


def test_directories_expand_and_dedupe(tmp_path: Path):
    _tree(tmp_path)
    found = resolve_target_paths(["src", "src/components/A.tsx"], tmp_path)
    assert [p.name for p in found] == ["A.tsx", "B.jsx", "Home.tsx"]


def test_explicit_path_errors(tmp_path: Path):
    _tree(tmp_path)
    with pytest.raises(NotFoundError):
        resolve_target_paths(["src/missing.tsx"], tmp_path)
    with pytest.raises(InvalidInputError):
        resolve_target_paths(["src/styles.css"], tmp_path)
    with pytest.raises(InvalidInputError):
        resolve_target_paths(["src/components/A.v1.tsx"], tmp_path)
