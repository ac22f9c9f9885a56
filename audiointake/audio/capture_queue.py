from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class CaptureQueue:
    """
    Bounded FIFO of sample arrays with a terminal "completed" marker.

    One producer (the device callback thread) appends; one consumer takes.
    append() blocks while the queue is full and returns False once the queue
    is completed, so a stalled producer is always released by complete().
    take() returns None only after completion with nothing left queued, and
    from then on keeps returning None.

    queue.Queue has no way to wake a put() blocked on a full queue, and a
    sentinel cannot be enqueued while the queue is full, so completion is a
    flag checked under the same Condition the producer and consumer wait on.
    """

    def __init__(self, maxsize: int = 64) -> None:
        if int(maxsize) <= 0:
            raise ValueError("maxsize must be > 0")
        self._maxsize = int(maxsize)
        self._items: "deque[np.ndarray]" = deque()
        self._cond = threading.Condition()
        self._completed = False
        self._dropped = 0

    @property
    def completed(self) -> bool:
        with self._cond:
            return self._completed

    @property
    def dropped(self) -> int:
        with self._cond:
            return self._dropped

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def append(self, samples: np.ndarray) -> bool:
        with self._cond:
            while len(self._items) >= self._maxsize and not self._completed:
                self._cond.wait()
            if self._completed:
                self._dropped += 1
                logger.warning(f"Dropped {int(samples.size)} samples delivered after capture completed")
                return False
            self._items.append(samples)
            self._cond.notify_all()
            return True

    def complete(self) -> None:
        with self._cond:
            self._completed = True
            self._cond.notify_all()

    def take(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """Next array in production order, or None once completed and drained.

        With a timeout, None is also returned when nothing arrived in time;
        check ``completed`` to tell the two apart.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._completed, timeout=timeout):
                return None
            if self._items:
                samples = self._items.popleft()
                self._cond.notify_all()
                return samples
            return None
