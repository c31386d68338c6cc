"""Persistence of finished runs.

The orchestrator hands every completed RunSummary to an ``on_complete``
callback; the HTTP service points that callback at a HistoryStore.
"""

import logging
from collections import OrderedDict
from typing import Protocol

from vibescan.models.analysis import RunSummary

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    """Storage for finished run summaries."""

    def save(self, summary: RunSummary) -> None: ...

    def get(self, run_id: str) -> RunSummary | None: ...

    def list(self, limit: int = 20) -> list[RunSummary]: ...

    def delete(self, run_id: str) -> bool: ...


class InMemoryHistoryStore:
    """Process-local history bounded to ``max_entries``.

    ``list()`` returns the newest run first. Saving past capacity evicts the
    oldest run.
    """

    def __init__(self, max_entries: int = 100) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive (got {max_entries})")
        self.max_entries = max_entries
        self._runs: OrderedDict[str, RunSummary] = OrderedDict()

    def save(self, summary: RunSummary) -> None:
        self._runs[summary.run_id] = summary
        self._runs.move_to_end(summary.run_id)
        while len(self._runs) > self.max_entries:
            evicted, _ = self._runs.popitem(last=False)
            logger.debug("Evicted run %s from history", evicted)

    def get(self, run_id: str) -> RunSummary | None:
        return self._runs.get(run_id)

    def list(self, limit: int = 20) -> list[RunSummary]:
        """Return up to ``limit`` summaries, newest first."""
        return list(reversed(self._runs.values()))[:limit]

    def delete(self, run_id: str) -> bool:
        """Remove a run; False when it was never stored or already evicted."""
        removed = self._runs.pop(run_id, None) is not None
        if removed:
            logger.info("Deleted run %s from history", run_id)
        return removed

    def __len__(self) -> int:
        return len(self._runs)
