#!/usr/bin/env python3
"""
Create/clean a manual sandbox under ./sandbox using the real CLI (python -m forkline_cli ...).
This is *separate* from pytest, useful for manual poking and demos.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
SANDBOX = ROOT / "sandbox"

COMPONENTS = {
    "src/components/DashboardContent.tsx": """import React from "react";

export default function DashboardContent() {
  return <section className="dashboard">Dashboard</section>;
}
""",
    "src/components/Sidebar.tsx": """import React from "react";

export default function Sidebar() {
  return <nav>Sidebar</nav>;
}
""",
    "src/pages/DemoPage.tsx": """import React from "react";
import DashboardContent from "../components/DashboardContent";

export default function DemoPage() {
  return <DashboardContent />;
}
""",
}


def run(args: list[str], cwd: Path | None = None, check: bool = True):
    env = os.environ.copy()
    print(f"-> {' '.join(args)}  (cwd={cwd or ROOT})")
    proc = subprocess.run(args, cwd=cwd or ROOT, env=env, text=True, capture_output=True)
    if check and proc.returncode != 0:
        print(proc.stdout)
        print(proc.stderr, file=sys.stderr)
        raise SystemExit(proc.returncode)
    return proc


def forkline(*args: str, check: bool = True):
    return run([sys.executable, "-m", "forkline_cli", *args], cwd=SANDBOX, check=check)


def build():
    SANDBOX.mkdir(exist_ok=True)
    for rel, text in COMPONENTS.items():
        p = SANDBOX / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")

    # Version every component, then give the dashboard a few alternatives
    forkline("init", "--paths", "src")
    forkline("new", "src/components/DashboardContent.tsx")
    forkline("fork", "DashboardContent", "v1", "v1_1")
    forkline("label", "DashboardContent", "v1_1", "Compact")

    print(forkline("list").stdout)
    comp = SANDBOX / "src" / "components"
    for name in ("DashboardContent.v1.tsx", "DashboardContent.v2.tsx", "DashboardContent.v1_1.tsx"):
        assert (comp / name).exists(), f"{name} should exist"
    assert (comp / "DashboardContent.versions.ts").exists(), "Index should be generated"
    print("\n[OK] Sandbox built at ./sandbox (run `forkline watch` inside it)")


def clean():
    if SANDBOX.exists():
        shutil.rmtree(SANDBOX)
    print("[OK] Sandbox cleaned")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else "build"
    if cmd == "build":
        build()
    elif cmd == "clean":
        clean()
    else:
        print("Usage: python scripts/make_sandbox.py [build|clean]")
        sys.exit(2)
