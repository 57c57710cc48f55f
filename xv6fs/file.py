"""Open files: the system-wide table of file structures."""

from __future__ import annotations

import enum
import errno
import threading
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .inode import Inode, InodeTable
from .kprintf import KernelPanic
from .layout import BSIZE, MAXOPBLOCKS, NDEV, NFILE, Stat
from .pipe import Pipe

# Largest write done in one transaction: leaves room in the log for the
# inode, an indirect block, bitmap blocks and two partial blocks.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileType(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2
    DEVICE = 3


@dataclass
class Device:
    """Read and write handlers for one major device number."""

    read: Optional[Callable[[int], bytes]] = None
    write: Optional[Callable[[bytes], int]] = None


@dataclass(eq=False)
class File:
    """An open file; ``ref`` counts the descriptors sharing it."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional[Pipe] = None
    ip: Optional[Inode] = None
    off: int = 0
    major: int = 0


class FileTable:
    """A fixed pool of open files over one inode table."""

    def __init__(
        self,
        itable: InodeTable,
        devices: Optional[Mapping[int, Device]] = None,
        nfile: int = NFILE,
    ):
        self.itable = itable
        self.log = itable.log
        self.devices = dict(devices or {})
        self._lock = threading.Lock()
        self._files = [File() for _ in range(nfile)]

    def alloc(self) -> File:
        """A free file with one reference; OSError when the table is full."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: File) -> File:
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; the last one releases the pipe or inode."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            ftype, pipe, writable, ip = f.type, f.pipe, f.writable, f.ip
            f.type = FileType.NONE
            f.pipe = None
            f.ip = None
        if ftype is FileType.PIPE:
            pipe.close(writable)
        elif ftype in (FileType.INODE, FileType.DEVICE):
            with self.log.transaction():
                self.itable.iput(ip)

    def stat(self, f: File) -> Stat:
        if f.type not in (FileType.INODE, FileType.DEVICE):
            raise OSError(errno.EINVAL, "file has no inode")
        self.itable.ilock(f.ip)
        try:
            return self.itable.stati(f.ip)
        finally:
            self.itable.iunlock(f.ip)

    def _device(self, f: File, op: str) -> Callable:
        device = self.devices.get(f.major) if 0 <= f.major < NDEV else None
        handler = getattr(device, op, None) if device is not None else None
        if handler is None:
            raise OSError(errno.ENODEV, f"no {op} handler for device {f.major}")
        return handler

    def read(self, f: File, n: int) -> bytes:
        """Read up to ``n`` bytes, advancing the file offset."""
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.type is FileType.PIPE:
            return f.pipe.read(n)
        if f.type is FileType.DEVICE:
            return self._device(f, "read")(n)
        if f.type is FileType.INODE:
            self.itable.ilock(f.ip)
            try:
                data = self.itable.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.itable.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: File, data: bytes) -> int:
        """Write all of ``data``; OSError if it cannot all be written."""
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        data = bytes(data)
        if f.type is FileType.PIPE:
            return f.pipe.write(data)
        if f.type is FileType.DEVICE:
            return self._device(f, "write")(data)
        if f.type is FileType.INODE:
            for start in range(0, len(data), _MAX_WRITE):
                chunk = data[start : start + _MAX_WRITE]
                with self.log.transaction():
                    self.itable.ilock(f.ip)
                    try:
                        written = self.itable.writei(f.ip, f.off, chunk)
                    except ValueError as exc:
                        raise OSError(errno.EFBIG, str(exc)) from exc
                    finally:
                        self.itable.iunlock(f.ip)
                    f.off += written
                if written != len(chunk):
                    raise OSError(errno.ENOSPC, "short write")
            return len(data)
        raise KernelPanic("filewrite")

    def pipe_alloc(self) -> tuple[File, File]:
        """A new pipe as a (read end, write end) pair of files."""
        rf = self.alloc()
        try:
            wf = self.alloc()
        except OSError:
            self.close(rf)
            raise
        pipe = Pipe()
        rf.type, rf.readable, rf.writable, rf.pipe = FileType.PIPE, True, False, pipe
        wf.type, wf.readable, wf.writable, wf.pipe = FileType.PIPE, False, True, pipe
        return rf, wf