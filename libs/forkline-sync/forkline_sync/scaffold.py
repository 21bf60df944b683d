"""Turn a plain component file into a versioned target.

``forkline init src/Foo.tsx`` leaves::

    Foo.tsx           wrapper rendering ForkedComponent
    Foo.v1.tsx        the component body, exported as FooV1
    Foo.versions.ts   generated index
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from forkline_core import versionkey
from forkline_core.errors import ConflictError, InvalidInputError, NotFoundError
from forkline_core.manager import ComponentManager
from forkline_core.targets import SUPPORTED_EXTENSIONS, is_version_artifact, target_id_from_path

from forkline_sync.operations import Action, OperationResult, default_export_name

logger = logging.getLogger(__name__)

FIRST_VERSION = "v1"


def _declaration_re(name: str) -> re.Pattern[str]:
    # Skip module specifiers and strings ("./Foo.css", 'Foo') so only code references change.
    return re.compile(rf"(?<![\w$./'\">]){re.escape(name)}(?![\w$'\"])")


def render_wrapper(
    component_name: str, target_id: str, extension: str, runtime_package: str = "forkline"
) -> str:
    """Source of the wrapper that replaces the original target file."""
    header = (
        f'import {{ ForkedComponent }} from "{runtime_package}";\n'
        f'import {{ VERSIONS }} from "./{component_name}.versions";\n'
    )
    if extension in (".tsx", ".jsx"):
        props = "props: Record<string, unknown>" if extension == ".tsx" else "props"
        return (
            f"{header}\n"
            f"export default function {component_name}({props}) {{\n"
            f'  return <ForkedComponent id="{target_id}" versions={{VERSIONS}} props={{props}} />;\n'
            "}\n"
        )
    props = "props: Record<string, unknown>" if extension == ".ts" else "props"
    return (
        'import { createElement } from "react";\n'
        f"{header}\n"
        f"export default function {component_name}({props}) {{\n"
        f'  return createElement(ForkedComponent, {{ id: "{target_id}", versions: VERSIONS, props }});\n'
        "}\n"
    )


def init_target(
    target: Path,
    *,
    root: Path,
    runtime_package: str = "forkline",
    lazy: bool = False,
) -> OperationResult:
    """Scaffold target as a versioned component with a single v1."""
    target = Path(target).resolve()
    if not target.is_file():
        raise NotFoundError(f"Target does not exist: {target}")
    if target.suffix not in SUPPORTED_EXTENSIONS:
        raise InvalidInputError(f"Unsupported target file extension: {target.name}")
    if is_version_artifact(target):
        raise InvalidInputError(f"Version artifact cannot be initialized: {target.name}")

    manager = ComponentManager.for_target(target, root=root, lazy=lazy)
    if manager.is_initialized():
        raise ConflictError(f"Already initialized: {manager.versions_file.name} exists")
    if manager.get_version_files():
        raise ConflictError(f"{manager.component_name} already has version files; remove them first")

    name = manager.component_name
    content = target.read_text(encoding="utf-8")
    identifier = manager.identifier_for(FIRST_VERSION)
    replacements = 0
    if default_export_name(content) == name:
        content, replacements = _declaration_re(name).subn(lambda _m: identifier, content)
    else:
        logger.warning(f"{target.name}: default export is not named {name}; copied without renaming")

    version_path = manager.version_path(FIRST_VERSION, target.suffix)
    target_id = target_id_from_path(target, root)

    tmp = version_path.parent / f".{version_path.name}.forklinetmp"
    tmp.write_text(content, encoding="utf-8")
    tmp.replace(version_path)

    wrapper = render_wrapper(name, target_id, target.suffix, runtime_package)
    tmp = target.parent / f".{target.name}.forklinetmp"
    tmp.write_text(wrapper, encoding="utf-8")
    tmp.replace(target)

    manager.generate_versions_file()
    logger.info(f"Initialized {target_id} ({version_path.name})")
    return OperationResult(
        action=Action.INIT,
        target_id=target_id,
        version=FIRST_VERSION,
        message=f"initialized {target_id} with {versionkey.to_display_label(FIRST_VERSION)}",
        path=version_path,
        replacements=replacements,
    )
