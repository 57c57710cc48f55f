"""Block allocation, the in-memory inode table and inode contents."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .bio import Buf, BufferCache, _SleepLock
from .kprintf import KernelPanic, Printer
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    DiskInode,
    Stat,
    Superblock,
)
from .log import Log

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")
_UINT_LIMIT = 1 << 32


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode plus its reference count and lock."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class InodeTable:
    """The table of active inodes for one device, and the blocks they own.

    Every change goes through ``log``, so callers must be inside a
    transaction whenever an operation may write to disk.
    """

    def __init__(
        self,
        bcache: BufferCache,
        log: Log,
        sb: Superblock,
        dev: int = ROOTDEV,
        ninode: int = NINODE,
        printer: Optional[Printer] = None,
    ):
        self.bcache = bcache
        self.log = log
        self.sb = sb
        self.dev = dev
        self.printer = printer or Printer()
        self._lock = threading.Lock()
        self._inodes = [Inode() for _ in range(ninode)]

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buf]:
        buf = self.bcache.bread(self.dev, blockno)
        try:
            yield buf
        finally:
            self.bcache.brelse(buf)

    @staticmethod
    def _dinode_span(inum: int) -> slice:
        start = (inum % IPB) * DINODE_SIZE
        return slice(start, start + DINODE_SIZE)

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self._block(blockno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.write(buf)

    def balloc(self) -> int:
        """Allocate a zeroed block; 0 when the disk is full."""
        for base in range(0, self.sb.size, BPB):
            with self._block(self.sb.bblock(base)) as buf:
                found = None
                for bi in range(min(BPB, self.sb.size - base)):
                    mask = 1 << (bi % 8)
                    if not buf.data[bi // 8] & mask:
                        buf.data[bi // 8] |= mask
                        self.log.write(buf)
                        found = base + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        self.printer.printf("balloc: out of blocks\n")
        return 0

    def bfree(self, blockno: int) -> None:
        """Mark a block free in the bitmap."""
        with self._block(self.sb.bblock(blockno)) as buf:
            bi = blockno % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise KernelPanic("freeing free block")
            buf.data[bi // 8] &= ~mask & 0xFF
            self.log.write(buf)

    # Inodes.

    def ialloc(self, itype: int) -> Optional[Inode]:
        """Allocate an inode of type ``itype``; returned referenced, unlocked."""
        for inum in range(1, self.sb.ninodes):
            span = self._dinode_span(inum)
            with self._block(self.sb.iblock(inum)) as buf:
                if DiskInode.unpack(bytes(buf.data[span])).type != 0:
                    continue
                buf.data[span] = DiskInode(type=int(itype)).pack()
                self.log.write(buf)
            return self.iget(inum)
        self.printer.printf("ialloc: no inodes\n")
        return None

    def iupdate(self, ip: Inode) -> None:
        """Copy an in-memory inode to disk; the caller holds its lock."""
        with self._block(self.sb.iblock(ip.inum)) as buf:
            buf.data[self._dinode_span(ip.inum)] = DiskInode(
                ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs)
            ).pack()
            self.log.write(buf)

    def iget(self, inum: int) -> Inode:
        """Find or make the table entry for ``inum``, without locking or reading."""
        with self._lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        with self._lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock the inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip.lock.acquire()
        if not ip.valid:
            with self._block(self.sb.iblock(ip.inum)) as buf:
                dip = DiskInode.unpack(bytes(buf.data[self._dinode_span(ip.inum)]))
            ip.type = dip.type
            ip.major = dip.major
            ip.minor = dip.minor
            ip.nlink = dip.nlink
            ip.size = dip.size
            ip.addrs = list(dip.addrs)
            ip.valid = True
            if ip.type == 0:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        if ip is None or not ip.lock.holding() or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip.lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        self._lock.acquire()
        try:
            if ip.ref == 1 and ip.valid and ip.nlink == 0:
                # No other reference exists, so this cannot block.
                ip.lock.acquire()
                self._lock.release()
                try:
                    self.itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
                finally:
                    ip.lock.release()
                    self._lock.acquire()
            ip.ref -= 1
        finally:
            self._lock.release()

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    # Contents.

    def bmap(self, ip: Inode, bn: int) -> int:
        """Disk block of the ``bn``-th block of ``ip``, allocated if missing; 0 if full."""
        if bn < NDIRECT:
            addr = ip.addrs[bn]
            if addr == 0:
                addr = self.balloc()
                if addr == 0:
                    return 0
                ip.addrs[bn] = addr
            return addr
        bn -= NDIRECT
        if bn < NINDIRECT:
            indirect = ip.addrs[NDIRECT]
            if indirect == 0:
                indirect = self.balloc()
                if indirect == 0:
                    return 0
                ip.addrs[NDIRECT] = indirect
            with self._block(indirect) as buf:
                (addr,) = _ADDR.unpack_from(buf.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self.balloc()
                    if addr:
                        _ADDR.pack_into(buf.data, bn * _ADDR.size, addr)
                        self.log.write(buf)
            return addr
        raise KernelPanic("bmap: out of range")

    def itrunc(self, ip: Inode) -> None:
        """Free every block of ``ip``; the caller holds its lock."""
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self.bfree(addr)
                ip.addrs[i] = 0
        indirect = ip.addrs[NDIRECT]
        if indirect:
            with self._block(indirect) as buf:
                for addr in _INDIRECT.unpack_from(buf.data, 0):
                    if addr:
                        self.bfree(addr)
            self.bfree(indirect)
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        return Stat(dev=ip.dev, ino=ip.inum, type=ip.type, nlink=ip.nlink, size=ip.size)

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Up to ``n`` bytes from offset ``off``, stopping at end of file."""
        if n < 0 or off > ip.size or off + n >= _UINT_LIMIT:
            return b""
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            addr = self.bmap(ip, off // BSIZE)
            if addr == 0:
                break
            with self._block(addr) as buf:
                start = off % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += buf.data[start : start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, off: int, data: bytes) -> int:
        """Write ``data`` at ``off``; returns bytes written, short if the disk fills."""
        data = bytes(data)
        n = len(data)
        if off < 0 or off > ip.size or off + n >= _UINT_LIMIT:
            raise ValueError(f"write at offset {off} past end of file")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the maximum file size")
        tot = 0
        while tot < n:
            addr = self.bmap(ip, off // BSIZE)
            if addr == 0:
                break
            with self._block(addr) as buf:
                start = off % BSIZE
                m = min(n - tot, BSIZE - start)
                buf.data[start : start + m] = data[tot : tot + m]
                self.log.write(buf)
            tot += m
            off += m
        if off > ip.size:
            ip.size = off
        # bmap may have added blocks even when the size is unchanged.
        self.iupdate(ip)
        return tot