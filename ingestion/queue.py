"""
Work-queue seam between ingestion and analysis.

The real scheduler is external and delivers at least once. The core
only needs `enqueue_analysis`; InMemoryQueue backs the CLI `run`
command and the tests.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque

log = logging.getLogger(__name__)


class WorkQueue(ABC):
    @abstractmethod
    def enqueue_analysis(self, item_ids: list[int]):
        """Schedule one analysis unit of work covering `item_ids`."""
        ...


class InMemoryQueue(WorkQueue):
    """FIFO of item-id batches. Not durable; a crash loses queued work,
    which the `analyze` sweep over unprocessed items picks up again."""

    def __init__(self):
        self._batches: deque[list[int]] = deque()

    def enqueue_analysis(self, item_ids: list[int]):
        if not item_ids:
            return
        self._batches.append(list(item_ids))
        log.debug(f"Queued analysis batch of {len(item_ids)} items")

    def drain(self) -> list[list[int]]:
        """Remove and return every queued batch, oldest first."""
        batches = list(self._batches)
        self._batches.clear()
        return batches

    def __len__(self) -> int:
        return len(self._batches)
