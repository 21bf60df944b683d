"""Forkline Sync - version mutations, target scaffolding and the watch server."""

from forkline_sync.operations import (
    Action,
    OperationResult,
    delete_version,
    fork_version,
    new_version,
    promote_version,
    rename_label,
    rename_version,
)
from forkline_sync.scaffold import init_target
from forkline_sync.watch import WatchServer, WatchState

__all__ = [
    "Action",
    "OperationResult",
    "new_version",
    "fork_version",
    "rename_version",
    "rename_label",
    "delete_version",
    "promote_version",
    "init_target",
    "WatchServer",
    "WatchState",
]

__version__ = "0.1.0"
