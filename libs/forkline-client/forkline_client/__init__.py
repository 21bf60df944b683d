"""Forkline Client - watch server session and client-side version reconciliation."""

from forkline_client.controller import Notification, WidgetController
from forkline_client.discovery import ComponentDiscovery
from forkline_client.registry import MountedRegistry
from forkline_client.selection import STALE_GRACE_PERIOD, ActiveVersionState
from forkline_client.session import RECONNECT_DELAY, Ack, ClientSession, ConnectionStatus
from forkline_client.storage import LocalStore, Preferences, load_preferences, save_preferences

__all__ = [
    "WidgetController",
    "Notification",
    "ComponentDiscovery",
    "MountedRegistry",
    "ActiveVersionState",
    "STALE_GRACE_PERIOD",
    "ClientSession",
    "ConnectionStatus",
    "Ack",
    "RECONNECT_DELAY",
    "LocalStore",
    "Preferences",
    "load_preferences",
    "save_preferences",
]

__version__ = "0.1.0"
