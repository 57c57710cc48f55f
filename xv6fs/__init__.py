"""A block file system with buffer cache, redo log, inodes, directories, pipes and file descriptors."""

__version__ = "0.1.0"

__all__ = [
    "layout",
    "cstr",
    "kprintf",
    "console",
    "sem",
    "bio",
    "log",
    "inode",
    "directory",
    "pipe",
    "file",
    "sysfile",
]