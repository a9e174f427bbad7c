from __future__ import annotations
"""Counters for listing summaries and transfer progress."""
import threading
import time
from typing import Optional, Protocol

from .formatter import human_size
from .models import ObjectRecord


class ProgressBar(Protocol):
    def update(self, n: int) -> object: ...


class ListingSummary:
    """Accumulates totals over the single consumer of a listing stream."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._started = clock()
        self.total_objects = 0
        self.total_size = 0
        self.last_key: str | None = None

    def observe(self, record: ObjectRecord) -> bool:
        """Count ``record``; return False when it repeats the previous key."""

        self.total_objects += 1
        self.total_size += record.size
        if record.key == self.last_key:
            return False
        self.last_key = record.key
        return True

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    def summary_lines(self) -> list[str]:
        return [
            f"Total Size: {human_size(self.total_size)}",
            f"Total Objects: {self.total_objects}",
        ]


class TransferProgress:
    """Byte counter advanced concurrently by part-upload workers."""

    def __init__(self, total: int = 0, bar: Optional[ProgressBar] = None):
        self.total = total
        self._bar = bar
        self._lock = threading.Lock()
        self._transferred = 0

    @property
    def transferred(self) -> int:
        with self._lock:
            return self._transferred

    def advance(self, amount: int) -> int:
        with self._lock:
            self._transferred += amount
            transferred = self._transferred
            if self._bar is not None:
                self._bar.update(amount)
        return transferred
