"""
Registry entry data model

This module provides:
- RegistryEntry: one process instance's published state record
- PublicInstanceView: the shape handed to consumers of the registry
- migrate_record: schema upgrades for records written by older peers
- helpers for identifiers, timestamps and uptime strings
"""

import hashlib
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, Optional

SCHEMA_VERSION = 2

# camelCase key on disk -> attribute name
_KEY_MAP = {
    "processId": "process_id",
    "sessionId": "session_id",
    "instanceId": "instance_id",
    "displayName": "display_name",
    "workspacePath": "workspace_path",
    "lastUpdated": "last_updated",
    "startTime": "start_time",
    "memoryMB": "memory_mb",
}
_RESERVED_KEYS = set(_KEY_MAP) | {"schemaVersion"}

# Legacy (v1) key -> current key
_V1_RENAMES = {
    "pid": "processId",
    "name": "displayName",
    "memory": "memoryMB",
}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_session_id(process_id: int, timestamp_ms: int) -> str:
    """Build a session id unique to one run of one process."""
    return f"{process_id}-{timestamp_ms}-{uuid.uuid4().hex[:12]}"


def new_instance_id() -> str:
    return str(uuid.uuid4())


def derive_instance_id(session_id: str) -> str:
    """Deterministic GUID-shaped id for records that predate instanceId."""
    digest = hashlib.sha256(session_id.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest[:16], version=4))


def format_uptime(seconds: float) -> str:
    """Render an uptime as ``"<h>h <m>m"`` or ``"<m>m"``."""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


# ---------------------------------------------------------------------------
# Schema migrations
# ---------------------------------------------------------------------------

def _migrate_v1(raw: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(raw)
    for old, new in _V1_RENAMES.items():
        if old in data and new not in data:
            data[new] = data.pop(old)
    if not data.get("instanceId") and data.get("sessionId"):
        data["instanceId"] = derive_instance_id(str(data["sessionId"]))
    data["schemaVersion"] = 2
    return data


_MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _migrate_v1,
}


def migrate_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade a raw on-disk record to the current schema version.

    Records without ``schemaVersion`` are treated as version 1. Records
    written by a newer peer are returned untouched.
    """
    data = dict(raw)
    version = int(data.get("schemaVersion", 1))
    while version < SCHEMA_VERSION:
        data = _MIGRATIONS[version](data)
        version = int(data["schemaVersion"])
    return data


# ---------------------------------------------------------------------------
# Entry and public view
# ---------------------------------------------------------------------------

@dataclass
class RegistryEntry:
    """One live process instance, as persisted in the shared record."""
    process_id: int
    session_id: str
    instance_id: str
    display_name: str
    last_updated: int
    start_time: int
    memory_mb: float = 0
    workspace_path: Optional[str] = None
    # Collaborator payloads (gitInfo, windowTitle, ...) and any unknown keys
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def sort_key(self) -> tuple:
        return (self.instance_id, self.session_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-serialisable on-disk shape."""
        data: Dict[str, Any] = {
            k: v for k, v in self.extras.items() if k not in _RESERVED_KEYS
        }
        for key, attr in _KEY_MAP.items():
            value = getattr(self, attr)
            if value is None:
                continue
            data[key] = value
        data["schemaVersion"] = SCHEMA_VERSION
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'RegistryEntry':
        """Create from an on-disk record, migrating older schemas.

        Raises KeyError, TypeError or ValueError when a required field is
        missing or has the wrong shape.
        """
        data = migrate_record(raw)
        workspace = data.get("workspacePath")
        return cls(
            process_id=int(data["processId"]),
            session_id=str(data["sessionId"]),
            instance_id=str(data["instanceId"]),
            display_name=str(data.get("displayName", "")),
            last_updated=int(data["lastUpdated"]),
            start_time=int(data.get("startTime", data["lastUpdated"])),
            memory_mb=float(data.get("memoryMB", 0)),
            workspace_path=str(workspace) if workspace is not None else None,
            extras={k: v for k, v in data.items() if k not in _RESERVED_KEYS},
        )


@dataclass
class PublicInstanceView:
    """What registry consumers (UI refresh loops, the CLI) see."""
    process_id: int
    session_id: str
    display_name: str
    workspace_path: Optional[str]
    memory_mb: float
    uptime: str
    payloads: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_entry(cls, entry: RegistryEntry, now: int) -> 'PublicInstanceView':
        return cls(
            process_id=entry.process_id,
            session_id=entry.session_id,
            display_name=entry.display_name,
            workspace_path=entry.workspace_path,
            memory_mb=entry.memory_mb,
            uptime=format_uptime((now - entry.start_time) / 1000),
            payloads=dict(entry.extras),
        )
