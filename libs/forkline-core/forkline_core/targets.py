"""Target naming conventions and batch target selection."""

from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath
from typing import Iterable, Sequence

from forkline_core.errors import InvalidInputError, NotFoundError
from forkline_core.models import TargetKind

# Search order when a key alone does not determine the extension.
SUPPORTED_EXTENSIONS: tuple[str, ...] = (".tsx", ".ts", ".jsx", ".js")
VERSIONS_SUFFIX = ".versions.ts"
DEFAULT_IGNORE_DIRS: tuple[str, ...] = ("node_modules",)

_VERSION_FILE_RE = re.compile(r"\.v\d+(?:_\d+)?\.[jt]sx?$")
_GLOB_CHARS_RE = re.compile(r"[*?\[\]{}]")
_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def to_posix(value: str) -> str:
    return value.replace("\\", "/")


def is_version_artifact(path: Path | str) -> bool:
    """True for generated index files and version files (``Foo.v2.tsx``)."""
    name = Path(path).name
    if name.endswith(VERSIONS_SUFFIX):
        return True
    return bool(_VERSION_FILE_RE.search(name))


def version_file_regex(component_name: str) -> re.Pattern[str]:
    exts = "|".join(re.escape(e) for e in SUPPORTED_EXTENSIONS)
    return re.compile(rf"^{re.escape(component_name)}\.(?P<key>v\d+(?:_\d+)?)(?P<ext>{exts})$")


def classify_target_kind(path: Path | str) -> TargetKind:
    """Heuristic page/component split based on path conventions."""
    normalized = "/" + to_posix(str(path)).lstrip("/")
    base = PurePosixPath(normalized).name
    if (
        "/pages/" in normalized
        or "/app/" in normalized
        or re.search(r"(^|/)page\.[jt]sx?$", normalized)
        or re.search(r"Page\.[jt]sx?$", base)
        or re.search(r"Page$", base)
    ):
        return "page"
    return "component"


def target_id_from_path(path: Path, root: Path) -> str:
    """Root-relative POSIX path with the extension stripped."""
    abs_path = Path(os.path.abspath(path))
    try:
        rel = abs_path.relative_to(Path(os.path.abspath(root)))
    except ValueError:
        rel = Path(os.path.relpath(abs_path, os.path.abspath(root)))
    rel_posix = to_posix(str(rel))
    return re.sub(r"\.[^/.]+$", "", rel_posix)


def _is_ignored_dir(name: str, ignore_dirs: Iterable[str]) -> bool:
    return name.startswith(".") or name in set(ignore_dirs)


def walk_files(root: Path, ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS) -> list[Path]:
    """All files under root, skipping dot-directories and ignored directories."""
    ignore = tuple(ignore_dirs)
    out: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not _is_ignored_dir(d, ignore))
        for fname in sorted(filenames):
            out.append(Path(dirpath) / fname)
    return out


def _expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives into separate patterns."""
    m = _BRACE_RE.search(pattern)
    if not m:
        return [pattern]
    head, tail = pattern[: m.start()], pattern[m.end() :]
    out: list[str] = []
    for alt in m.group(1).split(","):
        alt = alt.strip()
        if alt:
            out.extend(_expand_braces(head + alt + tail))
    return out


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate ``*``, ``**`` and ``?`` (``/`` is a separator) into a regex."""
    regex = ""
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            regex += "(?:.*/)?"
            i += 3
            continue
        ch = pattern[i]
        if ch == "*":
            if pattern.startswith("**", i):
                regex += ".*"
                i += 2
                continue
            regex += "[^/]*"
        elif ch == "?":
            regex += "[^/]"
        else:
            regex += re.escape(ch)
        i += 1
    return re.compile(rf"^{regex}$")


def is_glob_pattern(value: str) -> bool:
    return bool(_GLOB_CHARS_RE.search(value))


def _is_candidate(path: Path) -> bool:
    return path.suffix in SUPPORTED_EXTENSIONS and not is_version_artifact(path)


def resolve_target_paths(
    inputs: Sequence[str],
    cwd: Path,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
) -> list[Path]:
    """
    Resolve batch selectors (globs, directories, files) to target files.

    Version artifacts are never selected. Explicit paths that do not exist,
    use an unsupported extension, or point at a version artifact raise.
    """
    cwd = cwd.resolve()
    ignore = tuple(ignore_dirs)
    collected: set[Path] = set()
    all_files: list[Path] | None = None

    for raw in inputs:
        if not raw or not raw.strip():
            continue
        value = to_posix(raw.strip())

        if is_glob_pattern(value):
            if all_files is None:
                all_files = [p.resolve() for p in walk_files(cwd, ignore) if _is_candidate(p)]
            matchers = [_glob_to_regex(p.lstrip("/")) for p in _expand_braces(value)]
            for fp in all_files:
                rel = to_posix(str(fp.relative_to(cwd)))
                if any(m.match(rel) for m in matchers):
                    collected.add(fp)
            continue

        p = (cwd / raw).resolve()
        if not p.exists():
            raise NotFoundError(f"Target does not exist: {raw}")
        if p.is_dir():
            for fp in walk_files(p, ignore):
                if _is_candidate(fp):
                    collected.add(fp.resolve())
            continue
        if p.suffix not in SUPPORTED_EXTENSIONS:
            raise InvalidInputError(f"Unsupported target file extension: {raw}")
        if is_version_artifact(p):
            raise InvalidInputError(f"Version artifact cannot be targeted directly: {raw}")
        collected.add(p)

    return sorted(collected)
