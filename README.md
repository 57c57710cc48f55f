# xv6fs

A small, self-contained block file system written in plain Python. The disk
can be held in memory (`MemoryDisk`) or in an image file (`FileDisk`). The
layers, from bottom to top, are:

- `xv6fs.layout`: the on-disk records (`Superblock`, `DiskInode`, `Dirent`),
  the `InodeType` enum, `Stat`, and the size limits (block size 1024 bytes,
  12 direct block addresses plus one indirect block, 14-character names).
- `xv6fs.bio`: block devices and a fixed-size, least-recently-used
  `BufferCache` with `bread`, `bwrite`, `brelse`, `bpin` and `bunpin`.
- `xv6fs.log`: a redo `Log` that groups operations into transactions
  (`begin_op`/`end_op`, or the `transaction()` context manager). It records
  modified blocks with `write` and installs committed work on start-up with
  `recover`.
- `xv6fs.inode`: the `InodeTable`, which covers the block bitmap allocator
  (`balloc`, `bfree`), inode allocation and reference counting (`ialloc`,
  `iget`, `idup`, `iput`), locking (`ilock`, `iunlock`, `iunlockput`) and
  file contents (`bmap`, `readi`, `writei`, `itrunc`, `stati`).
- `xv6fs.directory`: directory entries and path lookup (`dirlookup`,
  `dirlink`, `namei`, `nameiparent`, `skipelem`, `namecmp`).
- `xv6fs.pipe`: a `Pipe` with a 512-byte bounded buffer.
- `xv6fs.file`: the open-file `FileTable`, `File` records and `Device`
  read/write handlers keyed by major number.
- `xv6fs.sysfile`: `FileSystem`, the descriptor-level interface.

The disk layout is, in order: a boot block, the superblock (block 1), the log,
the inode blocks, the free bitmap and then the data blocks.

## Installation

```
pip install .
```

The package uses only the standard library. To run the tests:

```
pip install .[test]
pytest
```

## Quick start

```python
from xv6fs.bio import MemoryDisk
from xv6fs.sysfile import FileSystem

disk = MemoryDisk(2000)
fs = FileSystem.format(disk, 2000, 200, 30)   # size, ninodes, nlog

fs.mkdir("/docs")
fd = fs.open("/docs/hello.txt", read=True, write=True, create=True, truncate=False)
fs.write(fd, b"hello, world\n")
fs.close(fd)

fd = fs.open("/docs/hello.txt")
print(fs.read(fd, 100))      # b'hello, world\n'
print(fs.fstat(fd).size)     # 13
fs.close(fd)

fs.link("/docs/hello.txt", "/greeting")
fs.unlink("/docs/hello.txt")
fs.chdir("/docs")
```

`FileSystem.format` zeroes the disk and writes an empty file system that holds
only the root directory. `FileSystem(disk)` opens an existing one, replays
any committed transaction left in the log, and raises `KernelPanic` if the
superblock's magic number is wrong.

To keep an image on disk, pass a `FileDisk(path)` instead. It creates the file
if it is missing and can be used as a context manager, or closed with
`close()`.

Other calls on `FileSystem` are `dup`, `mknod(path, major, minor)` and
`pipe`. Device files read and write through the `Device` handlers passed as
`FileSystem(disk, devices={major: Device(read=..., write=...)})`.

## Errors

Failures come back as `OSError` subclasses with an `errno` set:
`FileNotFoundError`, `FileExistsError`, `IsADirectoryError`,
`NotADirectoryError`, `BrokenPipeError` for a pipe whose read end is closed,
and plain `OSError` for bad descriptors, full tables, a full disk, non-empty
directories and paths of 128 bytes or more. Where an internal invariant is
broken, the package raises `xv6fs.kprintf.KernelPanic`.

## Pipes

```python
rfd, wfd = fs.pipe()
fs.write(wfd, b"ping")
print(fs.read(rfd, 4))       # b'ping'
```

## Other helpers

- `xv6fs.kprintf.format_printf` formats a small printf dialect: `%d`, `%u`
  and `%x` with their `l`/`ll` forms, plus `%p`, `%s` and `%%`.
  `Printer.printf` writes formatted text, and `Printer.panic` prints the
  message and raises `KernelPanic`.
- `xv6fs.console.Console` provides line-edited input. Characters are fed in
  with `intr`, which handles backspace/delete, Ctrl-U to kill the line, Ctrl-D
  for end of file and Ctrl-P to call an optional `procdump` callback. `read(n)`
  blocks until a whole line has arrived.
- `xv6fs.sem.Semaphore` is a counting semaphore with `up` and `down`.
- `xv6fs.cstr` provides NUL-terminated string helpers: `strlen`, `strncmp`,
  `strncpy` and `safestrcpy`.

## What this package does not do

- It has no command-line tool. There is nothing to build an image from host
  files or to list one from a shell, so all use is through the Python API.
- It has no processes, program loading or scheduler. A `FileSystem` holds the
  descriptor table and working directory of a single caller.
- The console is not wired to any device number automatically. To use it as
  a device file, register it through `Device` handlers.