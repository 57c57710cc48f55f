"""Directories and path name lookup."""

from __future__ import annotations

import errno
from typing import Optional

from .cstr import strncmp
from .inode import Inode, InodeTable
from .kprintf import KernelPanic
from .layout import DIRENT_SIZE, DIRSIZ, ROOTINO, Dirent, InodeType


def namecmp(s: str, t: str) -> int:
    """Compare two names on their first DIRSIZ characters."""
    return strncmp(s, t, DIRSIZ)


def skipelem(path: str) -> Optional[tuple[str, str]]:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``name`` is cut to DIRSIZ characters and
    ``rest`` has no leading slashes, or None when no element is left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    elem, _, rest = path.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


def _read_dirent(itable: InodeTable, dp: Inode, off: int, what: str) -> Dirent:
    raw = itable.readi(dp, off, DIRENT_SIZE)
    if len(raw) != DIRENT_SIZE:
        raise KernelPanic(what)
    return Dirent.unpack(raw)


def dirlookup(
    itable: InodeTable, dp: Inode, name: str
) -> Optional[tuple[Inode, int]]:
    """Find ``name`` in the locked directory ``dp``.

    Returns the referenced, unlocked inode and the byte offset of its entry,
    or None when the name is absent.
    """
    if dp.type != InodeType.DIR:
        raise KernelPanic("dirlookup not DIR")
    for off in range(0, dp.size, DIRENT_SIZE):
        de = _read_dirent(itable, dp, off, "dirlookup read")
        if de.inum == 0:
            continue
        if namecmp(name, de.name) == 0:
            return itable.iget(de.inum), off
    return None


def dirlink(itable: InodeTable, dp: Inode, name: str, inum: int) -> int:
    """Add the entry ``name -> inum`` to the locked directory ``dp``.

    Returns the byte offset of the new entry. Raises FileExistsError when the
    name is already present and OSError when the directory cannot grow.
    """
    found = dirlookup(itable, dp, name)
    if found is not None:
        itable.iput(found[0])
        raise FileExistsError(errno.EEXIST, "name already in directory", name)

    off = next(
        (
            off
            for off in range(0, dp.size, DIRENT_SIZE)
            if _read_dirent(itable, dp, off, "dirlink read").inum == 0
        ),
        dp.size,
    )
    try:
        written = itable.writei(dp, off, Dirent(inum, name[:DIRSIZ]).pack())
    except ValueError as exc:
        raise OSError(errno.EFBIG, str(exc)) from exc
    if written != DIRENT_SIZE:
        raise OSError(errno.ENOSPC, "no space for directory entry")
    return off


def _namex(
    itable: InodeTable, path: str, cwd: Optional[Inode], parent: bool
) -> tuple[Inode, str]:
    if path.startswith("/") or cwd is None:
        ip = itable.iget(ROOTINO)
    else:
        ip = itable.idup(cwd)

    name = ""
    while (step := skipelem(path)) is not None:
        name, path = step
        itable.ilock(ip)
        if ip.type != InodeType.DIR:
            itable.iunlockput(ip)
            raise NotADirectoryError(errno.ENOTDIR, "not a directory", name)
        if parent and path == "":
            # Stop one level early.
            itable.iunlock(ip)
            return ip, name
        found = dirlookup(itable, ip, name)
        itable.iunlockput(ip)
        if found is None:
            raise FileNotFoundError(errno.ENOENT, "no such file or directory", name)
        ip = found[0]

    if parent:
        itable.iput(ip)
        raise FileNotFoundError(errno.ENOENT, "path has no final element", path)
    return ip, name


def namei(itable: InodeTable, path: str, cwd: Optional[Inode] = None) -> Inode:
    """The referenced, unlocked inode for ``path``.

    Relative paths start at ``cwd``, or at the root when it is None.
    Must run inside a transaction.
    """
    return _namex(itable, path, cwd, False)[0]


def nameiparent(
    itable: InodeTable, path: str, cwd: Optional[Inode] = None
) -> tuple[Inode, str]:
    """The parent directory of ``path`` and the final element's name."""
    return _namex(itable, path, cwd, True)