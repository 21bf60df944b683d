"""Shared helpers: an on-disk project sandbox and a watch server runner."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from forkline_core.manager import ComponentManager
from forkline_sync.scaffold import init_target
from forkline_sync.watch import WatchServer


def write_file(p: Path, text: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")


def read_file(p: Path) -> str:
    return p.read_text(encoding="utf-8")


def mk_component(name: str, body: str | None = None, ext: str = ".tsx") -> str:
    """A plain default-exported component."""
    if ext in (".tsx", ".jsx"):
        inner = body or f"<div>{name}</div>"
        return (
            'import React from "react";\n\n'
            f"export default function {name}() {{\n"
            f"  return {inner};\n"
            "}\n"
        )
    inner = body or f"'{name}'"
    return (
        'import React from "react";\n\n'
        f"export default function {name}() {{\n"
        f"  return React.createElement('div', null, {inner});\n"
        "}\n"
    )


def mk_version(name: str, key: str, body: str = "content") -> str:
    suffix = "V" + key[1:]
    return (
        'import React from "react";\n\n'
        f"export default function {name}{suffix}() {{\n"
        f"  return <div>{body}</div>;\n"
        "}\n"
    )


class Sandbox:
    """A project root holding versioned targets."""

    def __init__(self, tmp_path: Path):
        self.root = (tmp_path / "project").resolve()

    def __enter__(self) -> "Sandbox":
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / "forkline.yaml").write_text("port: 0\npoll-interval: 0.05\n", encoding="utf-8")
        return self

    def __exit__(self, *exc) -> None:
        return None

    def path(self, rel: str) -> Path:
        return self.root / rel

    def add_component(self, rel: str, body: str | None = None) -> Path:
        p = self.path(rel)
        name = p.name.split(".")[0]
        write_file(p, mk_component(name, body, p.suffix))
        return p

    def versioned(self, rel: str, extra_versions: tuple[str, ...] = ()) -> ComponentManager:
        """Create and initialize a target; extra_versions are written as plain files."""
        p = self.add_component(rel)
        init_target(p, root=self.root)
        manager = ComponentManager.for_target(p, root=self.root)
        for key in extra_versions:
            name = manager.component_name
            write_file(manager.version_path(key, p.suffix), mk_version(name, key, f"{name} {key}"))
        manager.generate_versions_file()
        return manager

    def manager(self, rel: str) -> ComponentManager:
        return ComponentManager.for_target(self.path(rel), root=self.root)

    def listing(self, rel_dir: str) -> list[str]:
        return sorted(p.name for p in self.path(rel_dir).iterdir() if not p.name.startswith("."))


@asynccontextmanager
async def running_server(root: Path, poll_interval: float = 0.05) -> AsyncIterator[WatchServer]:
    """Watch server on a free port for the duration of the block."""
    server = WatchServer(root, host="127.0.0.1", port=0, poll_interval=poll_interval)
    ready = asyncio.Event()
    stop = asyncio.Event()
    task = asyncio.create_task(server.serve(ready=ready, stop=stop))
    await asyncio.wait_for(ready.wait(), timeout=5)
    try:
        yield server
    finally:
        stop.set()
        await asyncio.wait_for(task, timeout=5)


def url(server: WatchServer) -> str:
    return f"ws://127.0.0.1:{server.bound_port}/ws"
