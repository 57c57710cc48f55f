"""In-memory pipes with a bounded buffer."""

from __future__ import annotations

import errno
import threading

PIPESIZE = 512


class Pipe:
    """A byte channel with one read end and one write end."""

    def __init__(self):
        self._data = bytearray(PIPESIZE)
        self.nread = 0  # bytes read so far
        self.nwrite = 0  # bytes written so far
        self.readopen = True
        self.writeopen = True
        self._cond = threading.Condition()

    @property
    def released(self) -> bool:
        """True once both ends are closed."""
        return not self.readopen and not self.writeopen

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting while the buffer is full.

        Raises BrokenPipeError if the read end is closed.
        """
        data = bytes(data)
        written = 0
        with self._cond:
            while written < len(data):
                if not self.readopen:
                    raise BrokenPipeError(errno.EPIPE, "read end of pipe closed")
                if self.nwrite == self.nread + PIPESIZE:
                    self._cond.notify_all()
                    self._cond.wait()
                else:
                    self._data[self.nwrite % PIPESIZE] = data[written]
                    self.nwrite += 1
                    written += 1
            self._cond.notify_all()
        return written

    def read(self, n: int) -> bytes:
        """Wait for data and return up to ``n`` bytes; empty at end of file."""
        out = bytearray()
        with self._cond:
            self._cond.wait_for(
                lambda: self.nread != self.nwrite or not self.writeopen
            )
            while len(out) < n and self.nread != self.nwrite:
                out.append(self._data[self.nread % PIPESIZE])
                self.nread += 1
            self._cond.notify_all()
        return bytes(out)