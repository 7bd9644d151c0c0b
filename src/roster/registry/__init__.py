"""
Shared-file Instance Registry

This package provides:
1. RegistryEntry / PublicInstanceView — the record model and consumer view
2. RegistryStore — atomic read/write of the shared JSON file
3. LockCoordinator / with_retry — advisory sentinel-file locking
4. reap — staleness filtering
5. ChangeNotifier — directory watch that signals "re-query"
"""

from .entry import (
    SCHEMA_VERSION,
    PublicInstanceView,
    RegistryEntry,
    derive_instance_id,
    format_uptime,
    migrate_record,
    now_ms,
)
from .lock import LockCoordinator, with_retry
from .notifier import ChangeNotifier, NativeWatcher, PollingWatcher
from .reaper import is_live, reap
from .store import RegistryStore

__all__ = [
    'SCHEMA_VERSION',
    'PublicInstanceView',
    'RegistryEntry',
    'derive_instance_id',
    'format_uptime',
    'migrate_record',
    'now_ms',
    'LockCoordinator',
    'with_retry',
    'ChangeNotifier',
    'NativeWatcher',
    'PollingWatcher',
    'is_live',
    'reap',
    'RegistryStore',
]
