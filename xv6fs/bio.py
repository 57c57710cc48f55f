"""Block devices and the buffer cache that sits in front of them."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .kprintf import KernelPanic
from .layout import BSIZE, NBUF


class BlockDevice(Protocol):
    def read_block(self, blockno: int) -> bytes: ...

    def write_block(self, blockno: int, data: bytes) -> None: ...


def _check_data(data: bytes) -> bytes:
    data = bytes(data)
    if len(data) != BSIZE:
        raise ValueError(f"block data must be {BSIZE} bytes, got {len(data)}")
    return data


class MemoryDisk:
    """A disk held in memory."""

    def __init__(self, nblocks: int):
        self.nblocks = nblocks
        self._data = bytearray(nblocks * BSIZE)

    def _span(self, blockno: int) -> slice:
        if not 0 <= blockno < self.nblocks:
            raise ValueError(f"block {blockno} out of range")
        return slice(blockno * BSIZE, (blockno + 1) * BSIZE)

    def read_block(self, blockno: int) -> bytes:
        return bytes(self._data[self._span(blockno)])

    def write_block(self, blockno: int, data: bytes) -> None:
        self._data[self._span(blockno)] = _check_data(data)


class FileDisk:
    """A disk image in a file; blocks past its end read as zeros."""

    def __init__(self, path):
        path = os.fspath(path)
        self._file = open(path, "r+b" if os.path.exists(path) else "w+b")

    def read_block(self, blockno: int) -> bytes:
        if blockno < 0:
            raise ValueError(f"block {blockno} out of range")
        self._file.seek(blockno * BSIZE)
        data = self._file.read(BSIZE)
        return data + bytes(BSIZE - len(data))

    def write_block(self, blockno: int, data: bytes) -> None:
        if blockno < 0:
            raise ValueError(f"block {blockno} out of range")
        self._file.seek(blockno * BSIZE)
        self._file.write(_check_data(data))
        self._file.flush()

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "FileDisk":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class _SleepLock:
    """A lock that knows which thread holds it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: Optional[int] = None

    def acquire(self) -> None:
        self._lock.acquire()
        self._holder = threading.get_ident()

    def release(self) -> None:
        self._holder = None
        self._lock.release()

    def holding(self) -> bool:
        return self._lock.locked() and self._holder == threading.get_ident()


@dataclass(eq=False)
class Buf:
    """A cached copy of one disk block."""

    dev: int = 0
    blockno: int = 0
    valid: bool = False
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE), repr=False)
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class BufferCache:
    """A fixed set of buffers, recycled least recently used first."""

    def __init__(self, disk: BlockDevice, nbuf: int = NBUF):
        self.disk = disk
        self._lock = threading.Lock()
        # Most recently used first.
        self._bufs = [Buf() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            chosen = next(
                (b for b in self._bufs if b.dev == dev and b.blockno == blockno),
                None,
            )
            if chosen is not None:
                chosen.refcnt += 1
            else:
                chosen = next((b for b in reversed(self._bufs) if b.refcnt == 0), None)
                if chosen is None:
                    raise KernelPanic("bget: no buffers")
                chosen.dev = dev
                chosen.blockno = blockno
                chosen.valid = False
                chosen.refcnt = 1
        chosen.lock.acquire()
        return chosen

    def bread(self, dev: int, blockno: int) -> Buf:
        """Return the block locked, reading it from disk if it is not cached."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            buf.data[:] = self.disk.read_block(blockno)
            buf.valid = True
        return buf

    def bwrite(self, buf: Buf) -> None:
        """Write a locked buffer to disk."""
        if not buf.lock.holding():
            raise KernelPanic("bwrite")
        self.disk.write_block(buf.blockno, bytes(buf.data))

    def brelse(self, buf: Buf) -> None:
        """Unlock a buffer; when unused it becomes the most recently used."""
        if not buf.lock.holding():
            raise KernelPanic("brelse")
        buf.lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._bufs.remove(buf)
                self._bufs.insert(0, buf)

    def bpin(self, buf: Buf) -> None:
        with self._lock:
            buf.refcnt += 1

    def bunpin(self, buf: Buf) -> None:
        with self._lock:
            buf.refcnt -= 1