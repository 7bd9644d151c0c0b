"""Roster: discover and track running instances through a shared registry file."""

from .client import ClientState, RegistryClient
from .config import RosterConfig, load_config
from .registry import PublicInstanceView, RegistryEntry
from .snapshot import InstanceIdentity, SnapshotBuilder

__version__ = '0.1.0'
__all__ = [
    'ClientState',
    'RegistryClient',
    'RosterConfig',
    'load_config',
    'PublicInstanceView',
    'RegistryEntry',
    'InstanceIdentity',
    'SnapshotBuilder',
]
