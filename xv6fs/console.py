"""Line-oriented console input with erase and kill editing."""

from __future__ import annotations

import sys
import threading
from typing import Callable, Optional

BACKSPACE = 0x100
INPUT_BUF_SIZE = 128


def _ctrl(letter: str) -> int:
    return ord(letter) - ord("@")


CTRL_D = _ctrl("D")
CTRL_H = _ctrl("H")
CTRL_P = _ctrl("P")
CTRL_U = _ctrl("U")
DELETE = 0x7F
NEWLINE = ord("\n")
RETURN = ord("\r")


class Console:
    """Collects typed characters and hands out whole lines to readers."""

    def __init__(
        self,
        output: Optional[Callable[[bytes], object]] = None,
        procdump: Optional[Callable[[], object]] = None,
    ):
        self._output = sys.stdout.buffer.write if output is None else output
        self._procdump = procdump
        self._buf = bytearray(INPUT_BUF_SIZE)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._cond = threading.Condition()

    def putc(self, c: int) -> None:
        """Send one character to the terminal; BACKSPACE erases the last one."""
        if c == BACKSPACE:
            self._output(b"\b \b")
        else:
            self._output(bytes([c]))

    def intr(self, c: int) -> None:
        """Handle one typed character."""
        with self._cond:
            if c == CTRL_P:
                if self._procdump is not None:
                    self._procdump()
            elif c == CTRL_U:
                while (
                    self._e != self._w
                    and self._buf[(self._e - 1) % INPUT_BUF_SIZE] != NEWLINE
                ):
                    self._e -= 1
                    self.putc(BACKSPACE)
            elif c in (CTRL_H, DELETE):
                if self._e != self._w:
                    self._e -= 1
                    self.putc(BACKSPACE)
            elif c != 0 and self._e - self._r < INPUT_BUF_SIZE:
                if c == RETURN:
                    c = NEWLINE
                self.putc(c)
                self._buf[self._e % INPUT_BUF_SIZE] = c
                self._e += 1
                if (
                    c in (NEWLINE, CTRL_D)
                    or self._e - self._r == INPUT_BUF_SIZE
                ):
                    self._w = self._e
                    self._cond.notify_all()

    def read(self, n: int) -> bytes:
        """Block for input and return up to ``n`` bytes, at most one line."""
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                self._cond.wait_for(lambda: self._r != self._w)
                c = self._buf[self._r % INPUT_BUF_SIZE]
                self._r += 1
                if c == CTRL_D:
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c)
                n -= 1
                if c == NEWLINE:
                    break
        return bytes(out)

    def write(self, data: bytes) -> int:
        """Send ``data`` to the terminal and return how many bytes went out."""
        data = bytes(data)
        for c in data:
            self._output(bytes([c]))
        return len(data)