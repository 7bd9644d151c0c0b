"""Staleness filtering for registry entries."""

import logging
from typing import Iterable, List

from .entry import RegistryEntry

logger = logging.getLogger(__name__)


def is_live(entry: RegistryEntry, now: int, threshold_ms: int) -> bool:
    return now - entry.last_updated < threshold_ms


def reap(entries: Iterable[RegistryEntry], now: int, threshold_ms: int) -> List[RegistryEntry]:
    """Return the entries whose ``last_updated`` is younger than *threshold_ms*.

    An entry exactly *threshold_ms* old is stale.
    """
    live = []
    for e in entries:
        if is_live(e, now, threshold_ms):
            live.append(e)
        else:
            logger.debug(
                "Reaping %s (pid %d): age %dms >= %dms",
                e.session_id, e.process_id, now - e.last_updated, threshold_ms,
            )
    return live
