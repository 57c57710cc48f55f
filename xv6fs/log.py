"""Redo log that makes multi-block file system updates crash safe."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .bio import Buf, BufferCache
from .kprintf import KernelPanic
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, Superblock

# Header block: a count followed by the home block number of each logged block.
_HEADER = struct.Struct(f"<i{LOGSIZE}i")


class Log:
    """Groups the writes of concurrent operations and commits them together.

    On disk the log is a header block followed by copies of the logged
    blocks. A transaction commits at the moment its header is written.
    """

    def __init__(self, bcache: BufferCache, dev: int, sb: Superblock):
        if _HEADER.size >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self.bcache = bcache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buf]:
        buf = self.bcache.bread(self.dev, blockno)
        try:
            yield buf
        finally:
            self.bcache.brelse(buf)

    def _read_head(self) -> None:
        with self._block(self.start) as buf:
            n, *blocks = _HEADER.unpack_from(buf.data, 0)
        self.blocks = list(blocks[:n])

    def _write_head(self) -> None:
        padding = [0] * (LOGSIZE - len(self.blocks))
        with self._block(self.start) as buf:
            buf.data[: _HEADER.size] = _HEADER.pack(
                len(self.blocks), *self.blocks, *padding
            )
            self.bcache.bwrite(buf)

    def _install_trans(self, recovering: bool) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, blockno in enumerate(self.blocks):
            with self._block(self.start + tail + 1) as lbuf, self._block(
                blockno
            ) as dbuf:
                dbuf.data[:] = lbuf.data
                self.bcache.bwrite(dbuf)
                if not recovering:
                    self.bcache.bunpin(dbuf)

    def _write_log(self) -> None:
        """Copy modified blocks from the cache into the log area."""
        for tail, blockno in enumerate(self.blocks):
            with self._block(self.start + tail + 1) as to, self._block(
                blockno
            ) as src:
                to.data[:] = src.data
                self.bcache.bwrite(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()  # the real commit point
            self._install_trans(False)
            self.blocks = []
            self._write_head()  # erase the transaction from the log

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans(True)
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            self._cond.wait_for(
                lambda: not self.committing
                and len(self.blocks) + (self.outstanding + 1) * MAXOPBLOCKS
                <= LOGSIZE
            )
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                # Fewer outstanding operations leaves room for waiters.
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the body between ``begin_op`` and ``end_op``."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def write(self, buf: Buf) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        with self._cond:
            if len(self.blocks) >= LOGSIZE or len(self.blocks) >= self.size - 1:
                raise KernelPanic("too big a transaction")
            if self.outstanding < 1:
                raise KernelPanic("log_write outside of trans")
            if buf.blockno not in self.blocks:  # otherwise absorbed
                self.bcache.bpin(buf)
                self.blocks.append(buf.blockno)