"""End-to-end CLI tests in a sandbox project using Typer's CliRunner."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from forkline_cli.cli import app
from tests.framework import mk_component, read_file, write_file

runner = CliRunner()

DIR = Path("src/components")


@pytest.fixture()
def project(tmp_path: Path, monkeypatch) -> Path:
    """Project root with two plain components, used as the working directory."""
    root = tmp_path / "app"
    write_file(root / DIR / "Foo.tsx", mk_component("Foo"))
    write_file(root / DIR / "Bar.jsx", mk_component("Bar", ext=".jsx"))
    write_file(root / "src/pages/Home.tsx", mk_component("Home"))
    monkeypatch.chdir(root)
    monkeypatch.delenv("FORKLINE_PORT", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    return root


def _invoke(*args: str):
    return runner.invoke(app, list(args))


def test_init_writes_config_and_scaffolds(project: Path):
    res = _invoke("init", "src/components/Foo.tsx")
    assert res.exit_code == 0, res.output
    assert (project / "forkline.yaml").exists()
    assert (project / DIR / "Foo.v1.tsx").exists()
    assert (project / DIR / "Foo.versions.ts").exists()
    assert "ForkedComponent" in read_file(project / DIR / "Foo.tsx")

    res = _invoke("init", "src/components/Foo.tsx")
    assert res.exit_code == 1
    assert "Already initialized" in res.output


def test_full_version_lifecycle(project: Path):
    assert _invoke("init", "src/components/Foo.tsx").exit_code == 0

    res = _invoke("new", "Foo")
    assert res.exit_code == 0, res.output
    assert "created new version v2" in res.output

    res = _invoke("fork", "src/components/Foo.tsx", "v1", "v1_1")
    assert res.exit_code == 0, res.output
    assert (project / DIR / "Foo.v1_1.tsx").exists()

    res = _invoke("rename", "Foo", "v2", "v3")
    assert res.exit_code == 0, res.output
    assert "FooV3" in read_file(project / DIR / "Foo.v3.tsx")

    res = _invoke("label", "Foo", "v3", "Hero")
    assert res.exit_code == 0, res.output
    assert '"v3": { render: FooV3, label: "Hero" },' in read_file(project / DIR / "Foo.versions.ts")

    res = _invoke("list")
    assert res.exit_code == 0, res.output
    assert "src/components/Foo" in res.output

    res = _invoke("delete", "Foo", "v1_1")
    assert res.exit_code == 0, res.output

    res = _invoke("promote", "Foo", "v3")
    assert res.exit_code == 0, res.output
    names = sorted(p.name for p in (project / DIR).iterdir())
    assert names == ["Bar.jsx", "Foo.tsx"]
    assert "export default function Foo()" in read_file(project / DIR / "Foo.tsx")


def test_aliases(project: Path):
    assert _invoke("init", "src/components/Foo.tsx").exit_code == 0
    assert _invoke("create", "Foo").exit_code == 0
    res = _invoke("duplicate", "Foo", "v2")
    assert res.exit_code == 0, res.output
    assert (project / DIR / "Foo.v3.tsx").exists()


def test_errors_exit_nonzero(project: Path):
    assert _invoke("init", "src/components/Foo.tsx").exit_code == 0

    res = _invoke("delete", "Foo", "v1")
    assert res.exit_code == 1
    assert "last remaining version" in res.output

    res = _invoke("fork", "Foo", "1.2")
    assert res.exit_code == 1
    assert "Invalid" in res.output

    res = _invoke("new", "Nope")
    assert res.exit_code == 1
    assert "Component not found" in res.output

    res = _invoke("rename", "Foo", "v1")
    assert res.exit_code != 0


def test_batch_init_and_fork(project: Path):
    res = _invoke("init", "--paths", "src/components")
    assert res.exit_code == 0, res.output
    assert (project / DIR / "Bar.v1.jsx").exists()
    assert (project / DIR / "Foo.v1.tsx").exists()
    assert not (project / "src/pages/Home.v1.tsx").exists()

    # Already-initialized targets are skipped, not failed.
    res = _invoke("init", "--targets", "src/**/*.{tsx,jsx}")
    assert res.exit_code == 0, res.output
    assert "SKIP" in res.output
    assert (project / "src/pages/Home.v1.tsx").exists()

    res = _invoke("fork", "--targets", "src/components/*.?sx", "v1")
    assert res.exit_code == 0, res.output
    assert (project / DIR / "Bar.v2.jsx").exists()
    assert (project / DIR / "Foo.v2.tsx").exists()


def test_batch_reports_failures_and_continues(project: Path):
    assert _invoke("init", "--paths", "src").exit_code == 0
    assert _invoke("new", "Foo").exit_code == 0

    res = _invoke("delete", "--paths", "src", "v2")
    assert res.exit_code == 1
    assert "OK" in res.output and "FAIL" in res.output
    assert not (project / DIR / "Foo.v2.tsx").exists()
    assert (project / DIR / "Bar.v1.jsx").exists()


def test_batch_without_matches(project: Path):
    res = _invoke("new", "--targets", "nowhere/**/*.tsx")
    assert res.exit_code == 1
    assert "No targets matched" in res.output


def test_lazy_init(project: Path):
    res = _invoke("init", "--lazy", "src/components/Foo.tsx")
    assert res.exit_code == 0, res.output
    assert 'render: () => import("./Foo.v1")' in read_file(project / DIR / "Foo.versions.ts")
