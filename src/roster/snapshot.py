"""
Snapshot building for this process's registry entry

The identity (session id, instance id, pid, start time) is fixed for the
lifetime of a process run. Everything else is re-gathered on each
heartbeat: memory, workspace-derived labels and collaborator payloads.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import psutil

from .registry.entry import RegistryEntry, new_instance_id, new_session_id, now_ms

logger = logging.getLogger(__name__)

# Payload key -> zero-argument callable producing a JSON-serialisable value
Collaborators = Dict[str, Callable[[], Any]]


@dataclass(frozen=True)
class InstanceIdentity:
    process_id: int
    session_id: str
    instance_id: str
    start_time: int

    @classmethod
    def generate(cls, process_id: Optional[int] = None, clock: Callable[[], int] = now_ms) -> 'InstanceIdentity':
        """Create the identity for a new process run."""
        pid = os.getpid() if process_id is None else process_id
        created = clock()
        return cls(
            process_id=pid,
            session_id=new_session_id(pid, created),
            instance_id=new_instance_id(),
            start_time=_process_start_ms(created),
        )


def _process_start_ms(fallback: int) -> int:
    try:
        return int(psutil.Process().create_time() * 1000)
    except psutil.Error:
        return fallback


def memory_mb() -> float:
    """Resident set size of this process, in MB."""
    try:
        return round(psutil.Process().memory_info().rss / 1024 / 1024, 1)
    except psutil.Error as exc:
        logger.debug("Could not read memory usage: %s", exc)
        return 0


def git_info(workspace_path: str) -> Dict[str, Any]:
    """Small version-control summary for a workspace directory."""
    info: Dict[str, Any] = {"isGitRepo": False}
    git_dir = Path(workspace_path) / ".git"
    if not git_dir.exists():
        return info
    info["isGitRepo"] = True

    head = git_dir / "HEAD"
    try:
        content = head.read_text().strip()
        if content.startswith("ref: refs/heads/"):
            info["branch"] = content[len("ref: refs/heads/"):]
    except OSError as exc:
        logger.debug("Could not read %s: %s", head, exc)

    try:
        result = subprocess.run(
            ["git", "status", "--porcelain"],
            cwd=workspace_path, capture_output=True, text=True, timeout=5,
        )
        info["hasChanges"] = result.returncode == 0 and bool(result.stdout.strip())
    except (OSError, subprocess.SubprocessError):
        info["hasChanges"] = False
    return info


class SnapshotBuilder:
    """Builds fresh RegistryEntry snapshots for one process run."""

    def __init__(
        self,
        identity: InstanceIdentity,
        workspace_path: Optional[str] = None,
        display_name: Optional[str] = None,
        app_name: str = "Roster",
        collaborators: Optional[Collaborators] = None,
        memory: Callable[[], float] = memory_mb,
    ):
        self.identity = identity
        self.workspace_path = workspace_path
        self.app_name = app_name
        self._display_name = display_name
        self._memory = memory
        if collaborators is None:
            collaborators = {}
            if workspace_path:
                collaborators["gitInfo"] = lambda: git_info(workspace_path)
        self.collaborators = collaborators

    @property
    def display_name(self) -> str:
        if self._display_name:
            return self._display_name
        if self.workspace_path:
            return f"{self.app_name} - {os.path.basename(os.path.normpath(self.workspace_path))}"
        return f"{self.app_name} - Current Instance"

    def build(self, now: int) -> RegistryEntry:
        extras: Dict[str, Any] = {"windowTitle": self.display_name}
        for key, produce in self.collaborators.items():
            try:
                extras[key] = produce()
            except Exception:
                # Collaborator payloads are optional decoration
                logger.exception("Collaborator %r failed; omitting its payload", key)
        return RegistryEntry(
            process_id=self.identity.process_id,
            session_id=self.identity.session_id,
            instance_id=self.identity.instance_id,
            display_name=self.display_name,
            workspace_path=self.workspace_path,
            last_updated=now,
            start_time=self.identity.start_time,
            memory_mb=self._memory(),
            extras=extras,
        )
