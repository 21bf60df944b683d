"""Forkline Core - version keys, target model, configuration and wire protocol."""

from forkline_core.config import find_project_root, load_config, write_default_config
from forkline_core.errors import (
    ConflictError,
    ErrorKind,
    ForklineError,
    InvalidInputError,
    NotConnectedError,
    NotFoundError,
)
from forkline_core.manager import ComponentManager, discover_managers, find_component_manager
from forkline_core.models import ComponentInfo, ForklineConfig, VersionFile, VersionInfo
from forkline_core.targets import (
    SUPPORTED_EXTENSIONS,
    VERSIONS_SUFFIX,
    classify_target_kind,
    is_version_artifact,
    resolve_target_paths,
    target_id_from_path,
)

__all__ = [
    # config
    "find_project_root",
    "load_config",
    "write_default_config",
    # errors
    "ErrorKind",
    "ForklineError",
    "InvalidInputError",
    "ConflictError",
    "NotFoundError",
    "NotConnectedError",
    # target model
    "ComponentManager",
    "discover_managers",
    "find_component_manager",
    "ComponentInfo",
    "ForklineConfig",
    "VersionFile",
    "VersionInfo",
    "SUPPORTED_EXTENSIONS",
    "VERSIONS_SUFFIX",
    "classify_target_kind",
    "is_version_artifact",
    "resolve_target_paths",
    "target_id_from_path",
]

__version__ = "0.1.0"
