"""On-disk persistence for the shared instance record."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional

from .entry import RegistryEntry

logger = logging.getLogger(__name__)


class RegistryStore:
    """Reads and atomically replaces the shared registry file.

    ``read()`` never raises: a missing, empty or unparseable file is an empty
    registry. ``write()`` goes through a temporary file in the same directory
    and ``os.replace`` so concurrent readers only ever see a complete file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.corrupt_reads = 0
        self._last_corrupt: Optional[str] = None

    def read(self) -> List[RegistryEntry]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("Registry file does not exist: %s", self.path)
            return []
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read registry file %s: %s", self.path, exc)
            return []

        if not content.strip():
            return []

        try:
            data = json.loads(content)
        except (ValueError, RecursionError) as exc:
            self._report_corrupt(content, f"invalid JSON ({exc})")
            return []
        if not isinstance(data, list):
            self._report_corrupt(content, f"expected a list, got {type(data).__name__}")
            return []

        self._last_corrupt = None
        entries = []
        for item in data:
            if not isinstance(item, dict):
                logger.warning("Skipping malformed registry record: %r", item)
                continue
            try:
                entries.append(RegistryEntry.from_dict(item))
            except (KeyError, TypeError, ValueError, OverflowError) as exc:
                logger.warning("Skipping malformed registry record (%s): %r", exc, item)
        return entries

    def write(self, entries: Iterable[RegistryEntry]) -> None:
        content = json.dumps([e.to_dict() for e in entries], indent=2)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        tmp = tempfile.NamedTemporaryFile(
            mode="w", encoding="utf-8", prefix=f"{self.path.name}.",
            suffix=".tmp", dir=self.path.parent, delete=False,
        )
        try:
            with tmp:
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.chmod(tmp.name, 0o644)
            os.replace(tmp.name, self.path)
        except BaseException:
            Path(tmp.name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %s", self.path)

    def _report_corrupt(self, content: str, reason: str) -> None:
        self.corrupt_reads += 1
        # One warning per distinct corrupt content, not one per read
        if content == self._last_corrupt:
            return
        self._last_corrupt = content
        logger.warning(
            "Registry file %s is corrupt (%s); treating it as empty until the "
            "next write replaces it", self.path, reason,
        )
