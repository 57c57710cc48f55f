"""File system calls over a whole disk: descriptors, paths and directories."""

from __future__ import annotations

import errno
from typing import Mapping, Optional

from .bio import BlockDevice, BufferCache
from .directory import dirlink, dirlookup, namecmp, namei, nameiparent
from .file import Device, File, FileTable, FileType
from .inode import Inode, InodeTable
from .kprintf import KernelPanic, Printer
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    FSMAGIC,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXPATH,
    NDEV,
    NOFILE,
    ROOTDEV,
    ROOTINO,
    DiskInode,
    Dirent,
    InodeType,
    Stat,
    Superblock,
)
from .log import Log


def _check_path(path: str) -> str:
    if len(path.encode("utf-8", "surrogateescape")) >= MAXPATH:
        raise OSError(errno.ENAMETOOLONG, "path too long", path)
    return path


class FileSystem:
    """A mounted file system with one process's descriptors and directory."""

    def __init__(
        self,
        disk: BlockDevice,
        dev: int = ROOTDEV,
        devices: Optional[Mapping[int, Device]] = None,
        printer: Optional[Printer] = None,
    ):
        self.disk = disk
        self.dev = dev
        self.bcache = BufferCache(disk)
        buf = self.bcache.bread(dev, 1)
        try:
            self.sb = Superblock.unpack(bytes(buf.data))
        finally:
            self.bcache.brelse(buf)
        if self.sb.magic != FSMAGIC:
            raise KernelPanic("invalid file system")
        self.log = Log(self.bcache, dev, self.sb)
        self.itable = InodeTable(self.bcache, self.log, self.sb, dev, printer=printer)
        self.ftable = FileTable(self.itable, devices)
        self.ofile: list[Optional[File]] = [None] * NOFILE
        self.cwd: Inode = self.itable.iget(ROOTINO)

    @classmethod
    def format(
        cls,
        disk: BlockDevice,
        size: int = FSSIZE,
        ninodes: int = 200,
        nlog: int = LOGSIZE,
    ) -> "FileSystem":
        """Write an empty file system holding only the root directory."""
        if ninodes < 2:
            raise ValueError("need at least two inodes")
        if nlog < 2:
            raise ValueError("log needs a header and at least one block")
        ninodeblocks = ninodes // IPB + 1
        nbitmap = size // BPB + 1
        logstart = 2
        inodestart = logstart + nlog
        bmapstart = inodestart + ninodeblocks
        nmeta = bmapstart + nbitmap
        if size <= nmeta:
            raise ValueError(f"size {size} leaves no data blocks")
        sb = Superblock(
            magic=FSMAGIC,
            size=size,
            nblocks=size - nmeta,
            ninodes=ninodes,
            nlog=nlog,
            logstart=logstart,
            inodestart=inodestart,
            bmapstart=bmapstart,
        )

        zero = bytes(BSIZE)
        for blockno in range(size):
            disk.write_block(blockno, zero)

        block = bytearray(BSIZE)
        packed = sb.pack()
        block[: len(packed)] = packed
        disk.write_block(1, block)

        bitmap = bytearray(nbitmap * BSIZE)
        for blockno in range(nmeta):
            bitmap[blockno // 8] |= 1 << (blockno % 8)
        for k in range(nbitmap):
            disk.write_block(bmapstart + k, bitmap[k * BSIZE : (k + 1) * BSIZE])

        block = bytearray(BSIZE)
        start = (ROOTINO % IPB) * DINODE_SIZE
        block[start : start + DINODE_SIZE] = DiskInode(
            type=InodeType.DIR, nlink=1
        ).pack()
        disk.write_block(sb.iblock(ROOTINO), block)

        fs = cls(disk)
        with fs.log.transaction():
            root = fs.cwd
            fs.itable.ilock(root)
            try:
                dirlink(fs.itable, root, ".", ROOTINO)
                dirlink(fs.itable, root, "..", ROOTINO)
            finally:
                fs.itable.iunlock(root)
        return fs

    # Descriptors.

    def _file(self, fd: int) -> File:
        if not 0 <= fd < NOFILE or self.ofile[fd] is None:
            raise OSError(errno.EBADF, f"bad file descriptor {fd}")
        return self.ofile[fd]

    def _fdalloc(self, f: File) -> int:
        for fd, slot in enumerate(self.ofile):
            if slot is None:
                self.ofile[fd] = f
                return fd
        raise OSError(errno.EMFILE, "too many open files")

    def dup(self, fd: int) -> int:
        f = self._file(fd)
        newfd = self._fdalloc(f)
        self.ftable.dup(f)
        return newfd

    def read(self, fd: int, n: int) -> bytes:
        return self.ftable.read(self._file(fd), n)

    def write(self, fd: int, data: bytes) -> int:
        return self.ftable.write(self._file(fd), data)

    def close(self, fd: int) -> None:
        f = self._file(fd)
        self.ofile[fd] = None
        self.ftable.close(f)

    def fstat(self, fd: int) -> Stat:
        return self.ftable.stat(self._file(fd))

    # Names.

    def link(self, old: str, new: str) -> None:
        """Make ``new`` another name for the file ``old``."""
        _check_path(old)
        _check_path(new)
        it = self.itable
        with self.log.transaction():
            ip = namei(it, old, self.cwd)
            it.ilock(ip)
            if ip.type == InodeType.DIR:
                it.iunlockput(ip)
                raise IsADirectoryError(errno.EISDIR, "cannot link a directory", old)
            ip.nlink += 1
            it.iupdate(ip)
            it.iunlock(ip)
            try:
                dp, name = nameiparent(it, new, self.cwd)
                it.ilock(dp)
                try:
                    if dp.dev != ip.dev:
                        raise OSError(errno.EXDEV, "cross-device link", new)
                    dirlink(it, dp, name, ip.inum)
                finally:
                    it.iunlockput(dp)
            except OSError:
                it.ilock(ip)
                ip.nlink -= 1
                it.iupdate(ip)
                it.iunlockput(ip)
                raise
            it.iput(ip)

    def _isdirempty(self, dp: Inode) -> bool:
        """True if the directory holds nothing but "." and ".."."""
        for off in range(2 * DIRENT_SIZE, dp.size, DIRENT_SIZE):
            raw = self.itable.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("isdirempty: readi")
            if Dirent.unpack(raw).inum != 0:
                return False
        return True

    def unlink(self, path: str) -> None:
        """Remove the name ``path``; the file goes when nothing refers to it."""
        _check_path(path)
        it = self.itable
        with self.log.transaction():
            dp, name = nameiparent(it, path, self.cwd)
            it.ilock(dp)
            try:
                if namecmp(name, ".") == 0 or namecmp(name, "..") == 0:
                    raise OSError(errno.EINVAL, "cannot unlink . or ..", path)
                found = dirlookup(it, dp, name)
                if found is None:
                    raise FileNotFoundError(
                        errno.ENOENT, "no such file or directory", path
                    )
                ip, off = found
                it.ilock(ip)
                if ip.nlink < 1:
                    raise KernelPanic("unlink: nlink < 1")
                if ip.type == InodeType.DIR and not self._isdirempty(ip):
                    it.iunlockput(ip)
                    raise OSError(errno.ENOTEMPTY, "directory not empty", path)
            except Exception:
                it.iunlockput(dp)
                raise

            if it.writei(dp, off, bytes(DIRENT_SIZE)) != DIRENT_SIZE:
                raise KernelPanic("unlink: writei")
            if ip.type == InodeType.DIR:
                dp.nlink -= 1
                it.iupdate(dp)
            it.iunlockput(dp)

            ip.nlink -= 1
            it.iupdate(ip)
            it.iunlockput(ip)

    def _create(self, path: str, itype: int, major: int, minor: int) -> Inode:
        """The locked inode for ``path``, made if absent; inside a transaction."""
        it = self.itable
        dp, name = nameiparent(it, path, self.cwd)
        it.ilock(dp)

        found = dirlookup(it, dp, name)
        if found is not None:
            it.iunlockput(dp)
            ip = found[0]
            it.ilock(ip)
            if itype == InodeType.FILE and ip.type in (
                InodeType.FILE,
                InodeType.DEVICE,
            ):
                return ip
            it.iunlockput(ip)
            raise FileExistsError(errno.EEXIST, "file exists", path)

        ip = it.ialloc(itype)
        if ip is None:
            it.iunlockput(dp)
            raise OSError(errno.ENOSPC, "no free inodes", path)

        it.ilock(ip)
        ip.major = major
        ip.minor = minor
        ip.nlink = 1
        it.iupdate(ip)

        try:
            if itype == InodeType.DIR:
                # No nlink for ".": that would be a cycle.
                dirlink(it, ip, ".", ip.inum)
                dirlink(it, ip, "..", dp.inum)
            dirlink(it, dp, name, ip.inum)
        except OSError:
            ip.nlink = 0
            it.iupdate(ip)
            it.iunlockput(ip)
            it.iunlockput(dp)
            raise

        if itype == InodeType.DIR:
            dp.nlink += 1  # for ".."
            it.iupdate(dp)
        it.iunlockput(dp)
        return ip

    def open(
        self,
        path: str,
        read: bool = True,
        write: bool = False,
        create: bool = False,
        truncate: bool = False,
    ) -> int:
        """Open ``path`` and return a new file descriptor."""
        _check_path(path)
        it = self.itable
        with self.log.transaction():
            if create:
                ip = self._create(path, InodeType.FILE, 0, 0)
            else:
                ip = namei(it, path, self.cwd)
                it.ilock(ip)
                if ip.type == InodeType.DIR and (write or truncate or not read):
                    it.iunlockput(ip)
                    raise IsADirectoryError(
                        errno.EISDIR, "directory opened for writing", path
                    )

            try:
                if ip.type == InodeType.DEVICE and not 0 <= ip.major < NDEV:
                    raise OSError(errno.ENXIO, "bad device number", path)
                f = self.ftable.alloc()
                try:
                    fd = self._fdalloc(f)
                except OSError:
                    self.ftable.close(f)
                    raise
            except Exception:
                it.iunlockput(ip)
                raise

            if ip.type == InodeType.DEVICE:
                f.type = FileType.DEVICE
                f.major = ip.major
            else:
                f.type = FileType.INODE
                f.off = 0
            f.ip = ip
            f.readable = bool(read)
            f.writable = bool(write)

            if truncate and ip.type == InodeType.FILE:
                it.itrunc(ip)
            it.iunlock(ip)
        return fd

    def mkdir(self, path: str) -> None:
        _check_path(path)
        with self.log.transaction():
            self.itable.iunlockput(self._create(path, InodeType.DIR, 0, 0))

    def mknod(self, path: str, major: int, minor: int) -> None:
        _check_path(path)
        with self.log.transaction():
            self.itable.iunlockput(
                self._create(path, InodeType.DEVICE, major, minor)
            )

    def chdir(self, path: str) -> None:
        _check_path(path)
        it = self.itable
        with self.log.transaction():
            ip = namei(it, path, self.cwd)
            it.ilock(ip)
            if ip.type != InodeType.DIR:
                it.iunlockput(ip)
                raise NotADirectoryError(errno.ENOTDIR, "not a directory", path)
            it.iunlock(ip)
            it.iput(self.cwd)
        self.cwd = ip

    def pipe(self) -> tuple[int, int]:
        """A new pipe as (read descriptor, write descriptor)."""
        rf, wf = self.ftable.pipe_alloc()
        fd0 = None
        try:
            fd0 = self._fdalloc(rf)
            fd1 = self._fdalloc(wf)
        except OSError:
            if fd0 is not None:
                self.ofile[fd0] = None
            self.ftable.close(rf)
            self.ftable.close(wf)
            raise
        return fd0, fd1