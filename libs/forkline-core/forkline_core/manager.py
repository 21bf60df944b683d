"""Per-target model: version discovery, allocation and index generation.

A target lives in one directory::

    Foo.tsx            wrapper rendering ForkedComponent (scaffolded)
    Foo.versions.ts    generated index (this module owns it)
    Foo.v1.tsx         version files
    Foo.v2_1.jsx

The index is always rewritten from the directory listing plus the stored label
overrides; its previous content is only consulted for those labels.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from pathlib import Path
from typing import Iterable, Mapping

from forkline_core import versionkey
from forkline_core.errors import InvalidInputError, NotFoundError
from forkline_core.models import ComponentInfo, TargetKind, VersionFile, VersionInfo
from forkline_core.targets import (
    DEFAULT_IGNORE_DIRS,
    SUPPORTED_EXTENSIONS,
    VERSIONS_SUFFIX,
    classify_target_kind,
    target_id_from_path,
    to_posix,
    version_file_regex,
    walk_files,
)

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".tsx"
INDEX_HEADER = (
    "// Generated by forkline. Do not edit: this file is rewritten from the directory contents.\n"
)
_LABEL_RE = re.compile(
    r'^\s*"(?P<key>v\d+(?:_\d+)?)":\s*\{\s*render:.*?,\s*label:\s*(?P<label>"(?:[^"\\]|\\.)*")\s*\},?\s*$',
    re.MULTILINE,
)


def _ext_rank(ext: str) -> int:
    try:
        return SUPPORTED_EXTENSIONS.index(ext)
    except ValueError:
        return len(SUPPORTED_EXTENSIONS)


class ComponentManager:
    """Owns one target's version files and its generated index."""

    def __init__(self, versions_file: Path, *, root: Path | None = None, lazy: bool = False):
        versions_file = Path(versions_file)
        if not versions_file.name.endswith(VERSIONS_SUFFIX):
            raise InvalidInputError(f"Not a versions index file: {versions_file}")
        self.versions_file = versions_file.resolve()
        self.watch_dir = self.versions_file.parent
        self.component_name = self.versions_file.name[: -len(VERSIONS_SUFFIX)]
        self.root = (root or self.watch_dir).resolve()
        self.lazy = lazy
        self._file_re = version_file_regex(self.component_name)

    @classmethod
    def for_target(
        cls, target_path: Path, *, root: Path | None = None, lazy: bool = False
    ) -> "ComponentManager":
        """Manager for the wrapper/target file at target_path (index may not exist yet)."""
        target_path = Path(target_path)
        name = target_path.name
        for ext in SUPPORTED_EXTENSIONS:
            if name.endswith(ext):
                name = name[: -len(ext)]
                break
        return cls(target_path.parent / f"{name}{VERSIONS_SUFFIX}", root=root, lazy=lazy)

    def __repr__(self) -> str:
        return f"ComponentManager({self.target_id!r})"

    # ---- identity ----------------------------------------------------------
    @property
    def wrapper_path(self) -> Path | None:
        for ext in SUPPORTED_EXTENSIONS:
            candidate = self.watch_dir / f"{self.component_name}{ext}"
            if candidate.exists():
                return candidate
        return None

    @property
    def target_id(self) -> str:
        anchor = self.wrapper_path or (self.watch_dir / self.component_name)
        return target_id_from_path(anchor, self.root)

    @property
    def kind(self) -> TargetKind:
        anchor = self.wrapper_path or (self.watch_dir / self.component_name)
        return classify_target_kind(to_posix(str(anchor)))

    @property
    def display_path(self) -> str:
        anchor = self.wrapper_path or self.versions_file
        try:
            return to_posix(str(anchor.relative_to(self.root)))
        except ValueError:
            return to_posix(str(anchor))

    def is_initialized(self) -> bool:
        return self.versions_file.exists()

    def identifier_for(self, key: str) -> str:
        """Exported identifier conventionally used by a version file."""
        return f"{self.component_name}{versionkey.to_import_suffix(key)}"

    # ---- version files -----------------------------------------------------
    def get_version_files(self) -> list[VersionFile]:
        """Version files sorted by key. Raises NotFoundError if the directory is gone."""
        if not self.watch_dir.is_dir():
            raise NotFoundError(f"Target directory not found: {self.watch_dir}")

        by_number: dict[versionkey.VersionNumber, VersionFile] = {}
        for entry in sorted(self.watch_dir.iterdir(), key=lambda p: p.name):
            m = self._file_re.match(entry.name)
            if not m or not entry.is_file():
                continue
            num = versionkey.parse(m.group("key"))
            if num is None:
                continue
            existing = by_number.get(num)
            if existing is not None:
                logger.warning(
                    f"{self.component_name}: {num.key} exists as both {existing.path.name} and "
                    f"{entry.name}; using the {SUPPORTED_EXTENSIONS[0]}-first search order"
                )
                if _ext_rank(entry.suffix) >= _ext_rank(existing.extension):
                    continue
            by_number[num] = VersionFile(key=num.key, path=entry)

        return [by_number[n] for n in sorted(by_number)]

    def require_version_files(self) -> list[VersionFile]:
        files = self.get_version_files()
        if not files:
            raise NotFoundError(f"No version files found for {self.component_name} in {self.watch_dir}")
        return files

    def version_keys(self) -> list[str]:
        return [vf.key for vf in self.get_version_files()]

    def find_version_file(self, key: str) -> VersionFile | None:
        num = versionkey.parse(key)
        if num is None:
            return None
        for vf in self.get_version_files():
            if versionkey.parse(vf.key) == num:
                return vf
        return None

    def get_next_version_number(self) -> int:
        return versionkey.next_major(self.version_keys())

    def next_version_key(self) -> str:
        return versionkey.format_key(self.get_next_version_number())

    def get_most_common_extension(self) -> str:
        """Most frequent extension among version files; ties go to the first seen."""
        counts = Counter(vf.extension for vf in self.get_version_files())
        if not counts:
            return DEFAULT_EXTENSION
        # Counter keeps insertion order, and max() returns the first maximal element.
        return max(counts, key=lambda ext: counts[ext])

    def version_path(self, key: str, extension: str) -> Path:
        if extension not in SUPPORTED_EXTENSIONS:
            raise InvalidInputError(f"Unsupported extension: {extension}")
        return self.watch_dir / f"{self.component_name}.v{versionkey.to_file_version(key)}{extension}"

    def get_version_file_path(self, key: str) -> Path:
        """
        Path of the file for key.

        The key alone does not determine the extension, so existing files are
        searched across all supported extensions; for a key without a file the
        target's dominant extension is used.
        """
        if not versionkey.is_valid_key(key):
            raise InvalidInputError(f"Invalid version key: {key!r}")
        found = self.find_version_file(key)
        if found is not None:
            return found.path
        return self.version_path(key, self.get_most_common_extension())

    def paths_for_key(self, key: str) -> list[Path]:
        """Every candidate path for key, one per supported extension."""
        return [self.version_path(key, ext) for ext in SUPPORTED_EXTENSIONS]

    # ---- labels ------------------------------------------------------------
    def read_labels(self) -> dict[str, str]:
        """Label overrides stored in the current index (defaults are not overrides)."""
        try:
            content = self.versions_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {self.versions_file}: {e}")
            return {}

        labels: dict[str, str] = {}
        for m in _LABEL_RE.finditer(content):
            try:
                label = json.loads(m.group("label"))
            except ValueError:
                continue
            key = versionkey.canonical(m.group("key"))
            if isinstance(label, str) and label and label != versionkey.to_display_label(key):
                labels[key] = label
        return labels

    def label_for(self, key: str, labels: Mapping[str, str] | None = None) -> str:
        labels = self.read_labels() if labels is None else labels
        return labels.get(versionkey.canonical(key)) or versionkey.to_display_label(key)

    def set_label(self, key: str, label: str | None) -> bool:
        """Store (or clear, for an empty label) a display label override."""
        if self.find_version_file(key) is None:
            raise NotFoundError(f"Version file not found: {key}")
        key = versionkey.canonical(key)
        labels = self.read_labels()
        label = (label or "").strip()
        if not label or label == versionkey.to_display_label(key):
            labels.pop(key, None)
        else:
            labels[key] = label
        return self.generate_versions_file(labels)

    # ---- index generation --------------------------------------------------
    def render_versions_file(
        self,
        version_files: Iterable[VersionFile] | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> str:
        files = list(self.get_version_files() if version_files is None else version_files)
        labels = {} if labels is None else labels

        lines: list[str] = [INDEX_HEADER]
        if not self.lazy and files:
            for vf in files:
                lines.append(
                    f'import {self.identifier_for(vf.key)} from "./{vf.path.stem}";\n'
                )
            lines.append("\n")

        lines.append("export const VERSIONS = {\n")
        for vf in files:
            if self.lazy:
                render = f'() => import("./{vf.path.stem}")'
            else:
                render = self.identifier_for(vf.key)
            label = json.dumps(labels.get(vf.key) or versionkey.to_display_label(vf.key), ensure_ascii=False)
            lines.append(f'  "{vf.key}": {{ render: {render}, label: {label} }},\n')
        lines.append("};\n\nexport default VERSIONS;\n")
        return "".join(lines)

    def generate_versions_file(self, labels: Mapping[str, str] | None = None) -> bool:
        """
        Rewrite the index from the directory listing.

        Returns True when the file changed. Identical input produces identical
        bytes, and an unchanged index is not rewritten.
        """
        files = self.get_version_files()
        if labels is None:
            labels = self.read_labels()
        keys = {vf.key for vf in files}
        kept = {k: v for k, v in labels.items() if k in keys}
        content = self.render_versions_file(files, kept)

        try:
            if self.versions_file.read_text(encoding="utf-8") == content:
                return False
        except FileNotFoundError:
            pass

        # Write atomically
        tmp = self.watch_dir / f".{self.versions_file.name}.forklinetmp"
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(self.versions_file)
        logger.info(f"Regenerated {self.versions_file.name} ({len(files)} versions)")
        return True

    def describe(self) -> ComponentInfo:
        labels = self.read_labels()
        return ComponentInfo(
            target_id=self.target_id,
            name=self.component_name,
            kind=self.kind,
            path=self.display_path,
            versions=[
                VersionInfo(key=vf.key, label=self.label_for(vf.key, labels))
                for vf in self.get_version_files()
            ],
        )


# ---- discovery ------------------------------------------------------------


def discover_managers(
    root: Path,
    *,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
    lazy: bool = False,
) -> list[ComponentManager]:
    """Every target under root, located by its generated index file."""
    root = root.resolve()
    managers = [
        ComponentManager(p, root=root, lazy=lazy)
        for p in walk_files(root, ignore_dirs)
        if p.name.endswith(VERSIONS_SUFFIX)
    ]
    managers.sort(key=lambda m: m.target_id)
    return managers


def _search_versions_file(root: Path, component_name: str, ignore_dirs: Iterable[str]) -> Path | None:
    wanted = f"{component_name}{VERSIONS_SUFFIX}"
    for p in walk_files(root, ignore_dirs):
        if p.name == wanted:
            return p
    return None


def find_component_manager(
    value: str | Path,
    *,
    cwd: Path | None = None,
    root: Path | None = None,
    lazy: bool = False,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
) -> ComponentManager:
    """
    Resolve a manager from a versions file, a directory holding one, a wrapper
    or version file, or a bare component name searched under cwd.
    """
    cwd = (cwd or Path.cwd()).resolve()
    root = (root or cwd).resolve()
    raw = str(value)
    path = (cwd / raw).resolve()

    if path.is_file() and path.name.endswith(VERSIONS_SUFFIX):
        return ComponentManager(path, root=root, lazy=lazy)

    if path.is_dir():
        for candidate in sorted(path.iterdir()):
            if candidate.is_file() and candidate.name.endswith(VERSIONS_SUFFIX):
                return ComponentManager(candidate, root=root, lazy=lazy)
    elif path.is_file():
        name = path.name
        m = re.match(r"^(?P<base>.+?)\.v\d+(?:_\d+)?\.[jt]sx?$", name)
        base = m.group("base") if m else path.stem
        versions_file = path.parent / f"{base}{VERSIONS_SUFFIX}"
        if versions_file.exists():
            return ComponentManager(versions_file, root=root, lazy=lazy)

    if "/" not in raw and "\\" not in raw:
        found = _search_versions_file(cwd, raw, ignore_dirs)
        if found:
            return ComponentManager(found, root=root, lazy=lazy)

    raise NotFoundError(f"Component not found: {raw}")
