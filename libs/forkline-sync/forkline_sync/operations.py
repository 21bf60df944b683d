"""Version mutations: new / fork / rename / relabel / delete / promote.

Every operation validates its keys with the codec before touching disk and
regenerates the target's index afterwards. Operations are not transactional:
rename writes the new file before unlinking the old one, promote writes the
wrapper before removing the scaffolding, so a crash in between leaves both.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from forkline_core import versionkey
from forkline_core.errors import ConflictError, InvalidInputError, NotFoundError
from forkline_core.manager import ComponentManager
from forkline_core.targets import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """Mutation kinds (also sent as the `action` of an ack)."""

    INIT = "init"
    NEW = "new"
    FORK = "fork"
    RENAME = "rename"
    RELABEL = "relabel"
    DELETE = "delete"
    PROMOTE = "promote"


@dataclass
class OperationResult:
    """Outcome of one mutation on one target."""

    action: Action
    target_id: str
    version: str
    message: str
    new_version: str | None = None
    path: Path | None = None
    replacements: int = 0


# ---------------------- identifier rewriting ----------------------

_DEFAULT_EXPORT_RE = re.compile(
    r"export\s+default\s+(?:async\s+)?(?:function\s*\*?\s*|class\s+)?(?P<name>[A-Za-z_$][\w$]*)"
)


def _identifier_re(name: str) -> re.Pattern[str]:
    # Exact identifier: not preceded or followed by another identifier character.
    return re.compile(rf"(?<![\w$]){re.escape(name)}(?![\w$])")


def default_export_name(content: str) -> str | None:
    m = _DEFAULT_EXPORT_RE.search(content)
    return m.group("name") if m else None


def rewrite_identifier(
    content: str, manager: ComponentManager, old_key: str, new_identifier: str
) -> tuple[str, int]:
    """
    Replace a version's exported identifier everywhere in content.

    The conventional ``{componentName}V{n}`` name for old_key is tried first.
    If it is absent (a forked file keeps its source's name) and the default
    export still follows the ``{componentName}V…`` convention, that name is
    rewritten instead. Returns (new_content, replacements).
    """
    old_identifier = manager.identifier_for(old_key)
    new_content, count = _identifier_re(old_identifier).subn(lambda _m: new_identifier, content)
    if count:
        return new_content, count

    exported = default_export_name(content)
    convention = re.compile(rf"^{re.escape(manager.component_name)}V\d+(?:_\d+)?$")
    if exported and convention.match(exported):
        return _identifier_re(exported).subn(lambda _m: new_identifier, content)
    return content, 0


# ---------------------- helpers ----------------------


def _require_key(value: str | None, field: str) -> str:
    if not value:
        raise InvalidInputError(f"Missing {field}")
    if not versionkey.is_valid_key(value):
        raise InvalidInputError(f"Invalid {field} format: {value}")
    return versionkey.canonical(value)


def _require_initialized(manager: ComponentManager) -> None:
    if not manager.is_initialized():
        raise NotFoundError(
            f"{manager.component_name} is not a versioned target "
            f"(no {manager.versions_file.name} in {manager.watch_dir})"
        )


def _ensure_absent(manager: ComponentManager, key: str, what: str) -> None:
    """Collision check across every supported extension, not only the dominant one."""
    if manager.find_version_file(key) is not None or any(p.exists() for p in manager.paths_for_key(key)):
        raise ConflictError(f"{what} already exists: {key}")


def _write_atomic(path: Path, content: str) -> None:
    tmp = path.parent / f".{path.name}.forklinetmp"
    tmp.write_text(content, encoding="utf-8")
    tmp.replace(path)


def placeholder_source(identifier: str, label: str, extension: str) -> str:
    """Minimal version file whose export embeds the version suffix."""
    if extension in (".tsx", ".jsx"):
        return (
            "import React from 'react';\n\n"
            f"export default function {identifier}() {{\n"
            "  return (\n"
            "    <div>\n"
            f"      {label}\n"
            "    </div>\n"
            "  );\n"
            "}\n"
        )
    return (
        "import React from 'react';\n\n"
        f"export default function {identifier}() {{\n"
        f"  return React.createElement('div', null, '{label}');\n"
        "}\n"
    )


# ---------------------- operations ----------------------


def new_version(manager: ComponentManager, version: str | None = None) -> OperationResult:
    """Create a placeholder version (explicit key, or the next free major)."""
    _require_initialized(manager)
    if version:
        key = _require_key(version, "version")
        _ensure_absent(manager, key, "Version")
    else:
        key = manager.next_version_key()

    extension = manager.get_most_common_extension()
    path = manager.version_path(key, extension)
    if path.exists():
        raise ConflictError(f"Version already exists: {key}")

    content = placeholder_source(
        manager.identifier_for(key), versionkey.to_display_label(key), extension
    )
    _write_atomic(path, content)
    manager.generate_versions_file()
    logger.info(f"{manager.target_id}: created {path.name}")
    return OperationResult(
        action=Action.NEW,
        target_id=manager.target_id,
        version=key,
        message=f"created new version {key}",
        path=path,
    )


def fork_version(
    manager: ComponentManager, source: str, target: str | None = None
) -> OperationResult:
    """Copy a version's bytes verbatim to a new key (same extension as the source)."""
    _require_initialized(manager)
    source_key = _require_key(source, "source version")
    target_key = _require_key(target, "target version") if target else None

    src = manager.find_version_file(source_key)
    if src is None:
        raise NotFoundError(f"Source version file not found: {source_key}")

    if target_key is None:
        target_key = manager.next_version_key()
    _ensure_absent(manager, target_key, "Target version")

    dest = manager.version_path(target_key, src.extension)
    shutil.copyfile(src.path, dest)
    manager.generate_versions_file()
    logger.info(f"{manager.target_id}: forked {src.path.name} -> {dest.name}")
    return OperationResult(
        action=Action.FORK,
        target_id=manager.target_id,
        version=target_key,
        message=f"duplicated {source_key} to {target_key}",
        path=dest,
    )


def rename_version(manager: ComponentManager, old: str, new: str) -> OperationResult:
    """
    Move a version to a new key, rewriting its exported identifier.

    Best-effort textual rename: the identifier is substituted as an exact
    token, globally, without parsing the source. A file with nothing to
    rewrite is refused and left untouched.
    """
    _require_initialized(manager)
    old_key = _require_key(old, "source version")
    new_key = _require_key(new, "target version")
    if old_key == new_key:
        raise InvalidInputError("Source and target versions are the same")

    src = manager.find_version_file(old_key)
    if src is None:
        raise NotFoundError(f"Source version file not found: {old_key}")
    _ensure_absent(manager, new_key, "Target version")

    content = src.path.read_text(encoding="utf-8")
    new_content, count = rewrite_identifier(content, manager, old_key, manager.identifier_for(new_key))
    if count == 0:
        raise ConflictError(
            f"{src.path.name} does not export {manager.identifier_for(old_key)}; "
            "refusing to rename without rewriting its identifier"
        )

    labels = manager.read_labels()
    if old_key in labels:
        labels[new_key] = labels.pop(old_key)

    dest = manager.version_path(new_key, src.extension)
    _write_atomic(dest, new_content)
    src.path.unlink()
    manager.generate_versions_file(labels)
    logger.info(f"{manager.target_id}: renamed {src.path.name} -> {dest.name} ({count} replacements)")
    return OperationResult(
        action=Action.RENAME,
        target_id=manager.target_id,
        version=old_key,
        new_version=new_key,
        message=f"renamed {old_key} to {new_key}",
        path=dest,
        replacements=count,
    )


def rename_label(manager: ComponentManager, version: str, label: str | None) -> OperationResult:
    """Set (or reset, with an empty label) a version's display label."""
    _require_initialized(manager)
    key = _require_key(version, "version")
    manager.set_label(key, label)
    effective = manager.label_for(key)
    return OperationResult(
        action=Action.RELABEL,
        target_id=manager.target_id,
        version=key,
        message=f"relabeled {key} as {effective}",
        path=manager.versions_file,
    )


def delete_version(manager: ComponentManager, version: str) -> OperationResult:
    """Remove one version; the last remaining version cannot be deleted."""
    _require_initialized(manager)
    key = _require_key(version, "version")
    vf = manager.find_version_file(key)
    if vf is None:
        raise NotFoundError(f"Version file not found: {key}")
    if len(manager.get_version_files()) <= 1:
        raise ConflictError("Cannot delete the last remaining version.")

    vf.path.unlink()
    manager.generate_versions_file()
    logger.info(f"{manager.target_id}: deleted {vf.path.name}")
    return OperationResult(
        action=Action.DELETE,
        target_id=manager.target_id,
        version=key,
        message=f"deleted {key}",
        path=vf.path,
    )


def promote_version(manager: ComponentManager, version: str) -> OperationResult:
    """
    Make one version the target's plain implementation.

    The wrapper is replaced by the version's content (exported identifier
    renamed back to the component name) and every version file plus the
    index is removed. The target stops being versioned; promoting again fails.
    """
    if not manager.is_initialized():
        raise NotFoundError(
            f"Nothing to promote for {manager.component_name}: "
            f"{manager.versions_file.name} not found (already promoted?)"
        )
    key = _require_key(version, "version")
    vf = manager.find_version_file(key)
    if vf is None:
        raise NotFoundError(f"Version file not found: {key}")

    target_id = manager.target_id
    all_files = manager.get_version_files()
    content = vf.path.read_text(encoding="utf-8")
    content, count = rewrite_identifier(content, manager, key, manager.component_name)
    if count == 0:
        logger.warning(f"{vf.path.name}: no {manager.identifier_for(key)} identifier to rename on promote")

    wrapper = manager.watch_dir / f"{manager.component_name}{vf.extension}"
    for ext in SUPPORTED_EXTENSIONS:
        other = manager.watch_dir / f"{manager.component_name}{ext}"
        if other != wrapper and other.exists():
            other.unlink()
    _write_atomic(wrapper, content)

    for f in all_files:
        f.path.unlink(missing_ok=True)
    manager.versions_file.unlink(missing_ok=True)
    logger.info(f"{target_id}: promoted {vf.path.name} -> {wrapper.name}")
    return OperationResult(
        action=Action.PROMOTE,
        target_id=target_id,
        version=key,
        message=f"promoted {key} for {target_id}",
        path=wrapper,
        replacements=count,
    )
