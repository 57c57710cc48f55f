"""Counting semaphore."""

from __future__ import annotations

import threading


class Semaphore:
    """Blocks ``down`` callers while the count is zero or less."""

    def __init__(self, value: int = 0):
        self.value = value
        self._cond = threading.Condition()

    def up(self) -> None:
        with self._cond:
            self.value += 1
            self._cond.notify_all()

    def down(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self.value > 0)
            self.value -= 1