"""On-disk layout of the file system and the kernel's size limits."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

# Kernel limits.
NPROC = 64
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 2000
MAXPATH = 128
USERSTACK = 1

# On-disk format.
ROOTINO = 1
BSIZE = 1024
FSMAGIC = 0x10203040
NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14

_SUPERBLOCK = struct.Struct("<8I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size

# Inodes per block and bitmap bits per block.
IPB = BSIZE // DINODE_SIZE
BPB = BSIZE * 8


class InodeType(enum.IntEnum):
    """Kinds of inode; a type of zero on disk marks a free inode."""

    DIR = 1
    FILE = 2
    DEVICE = 3


def _unpack(layout: struct.Struct, data: bytes, what: str) -> tuple:
    try:
        return layout.unpack_from(data, 0)
    except struct.error as exc:
        raise ValueError(f"{what}: need {layout.size} bytes, got {len(data)}") from exc


@dataclass
class Superblock:
    """Describes where each region of the disk lies."""

    magic: int = FSMAGIC
    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.magic,
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        return cls(*_unpack(_SUPERBLOCK, data, "superblock"))

    def iblock(self, inum: int) -> int:
        """Block holding inode ``inum``."""
        return inum // IPB + self.inodestart

    def bblock(self, blockno: int) -> int:
        """Bitmap block holding the bit for block ``blockno``."""
        return blockno // BPB + self.bmapstart


@dataclass
class DiskInode:
    """An inode as stored on disk."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"inode needs {NDIRECT + 1} block addresses")
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DiskInode":
        itype, major, minor, nlink, size, *addrs = _unpack(_DINODE, data, "inode")
        return cls(itype, major, minor, nlink, size, list(addrs))


@dataclass
class Dirent:
    """A directory entry; an inode number of zero marks a free slot."""

    inum: int = 0
    name: str = ""

    def pack(self) -> bytes:
        raw = self.name.encode("utf-8", "surrogateescape")[:DIRSIZ]
        return _DIRENT.pack(self.inum, raw)

    @classmethod
    def unpack(cls, data: bytes) -> "Dirent":
        inum, raw = _unpack(_DIRENT, data, "dirent")
        raw = raw.split(b"\0", 1)[0]
        return cls(inum, raw.decode("utf-8", "surrogateescape"))


@dataclass
class Stat:
    """Metadata reported for an open file."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int