"""
DocBridge Backend — Expiry Scheduler
======================================

What:  A min-heap of pending expirations, keyed by deadline.
Why:   One inspectable, cancellable schedule driven by a single background
       loop instead of one uncoordinated timer per stored file.
How:   Entries are (deadline, sequence, object_id). Cancelling or
       rescheduling an id only updates the `_live` map; heap entries whose
       sequence no longer matches are skipped when they surface, and the heap
       is rebuilt when stale entries outnumber live ones.
Who:   Owned by ObjectStore; not used directly by routes.
"""

import heapq
import itertools
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(order=True, frozen=True)
class ExpiryTask:
    """One scheduled deletion. `attempt` is 0 for the expiry itself, 1 for the retry."""

    deadline: float
    sequence: int
    object_id: str = field(compare=False)
    attempt: int = field(default=0, compare=False)


class ExpiryScheduler:
    """
    Thread-safe deadline heap.

    The lock guards only in-memory bookkeeping; nothing here performs I/O,
    so callers on the event loop are never blocked for long.
    """

    # Rebuild the heap once stale entries exceed this many beyond the live ones
    COMPACT_SLACK = 64

    def __init__(self) -> None:
        self._heap: List[ExpiryTask] = []
        self._live: Dict[str, ExpiryTask] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def schedule(self, object_id: str, deadline: float, attempt: int = 0) -> ExpiryTask:
        """Schedule (or reschedule) the single pending task for `object_id`."""
        with self._lock:
            task = ExpiryTask(deadline, next(self._sequence), object_id, attempt)
            heapq.heappush(self._heap, task)
            self._live[object_id] = task
            self._maybe_compact()
            return task

    def cancel(self, object_id: str) -> bool:
        """Drop the pending task for `object_id`. Returns False if none was pending."""
        with self._lock:
            removed = self._live.pop(object_id, None) is not None
            if removed:
                self._maybe_compact()
            return removed

    def pop_due(self, now: float) -> List[ExpiryTask]:
        """Remove and return every live task with deadline <= now, earliest first."""
        due: List[ExpiryTask] = []
        with self._lock:
            while self._heap and self._heap[0].deadline <= now:
                task = heapq.heappop(self._heap)
                if self._live.get(task.object_id) is task:
                    del self._live[task.object_id]
                    due.append(task)
        return due

    def next_deadline(self) -> Optional[float]:
        """Deadline of the earliest live task, or None when nothing is pending."""
        with self._lock:
            while self._heap and self._live.get(self._heap[0].object_id) is not self._heap[0]:
                heapq.heappop(self._heap)
            return self._heap[0].deadline if self._heap else None

    def pending(self) -> List[ExpiryTask]:
        """Snapshot of live tasks ordered by deadline."""
        with self._lock:
            return sorted(self._live.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._live)

    def __contains__(self, object_id: object) -> bool:
        with self._lock:
            return object_id in self._live

    def _maybe_compact(self) -> None:
        # Caller holds the lock
        if len(self._heap) > 2 * len(self._live) + self.COMPACT_SLACK:
            self._heap = list(self._live.values())
            heapq.heapify(self._heap)

    @property
    def heap_size(self) -> int:
        """Raw heap length including stale entries (used by tests and /health)."""
        with self._lock:
            return len(self._heap)
