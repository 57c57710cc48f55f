import pytest

from xv6fs.bio import BufferCache, FileDisk, MemoryDisk
from xv6fs.kprintf import KernelPanic
from xv6fs.layout import BSIZE


def block_of(value):
    return bytes([value]) * BSIZE


def test_memory_disk_round_trip_and_bounds():
    disk = MemoryDisk(4)
    disk.write_block(2, block_of(9))
    assert disk.read_block(2) == block_of(9)
    assert disk.read_block(1) == bytes(BSIZE)
    with pytest.raises(ValueError):
        disk.read_block(4)
    with pytest.raises(ValueError):
        disk.write_block(0, b"short")


def test_file_disk_persists(tmp_path):
    path = tmp_path / "fs.img"
    with FileDisk(path) as disk:
        disk.write_block(3, block_of(5))
        assert disk.read_block(10) == bytes(BSIZE)
    with FileDisk(path) as disk:
        assert disk.read_block(3) == block_of(5)
        assert disk.read_block(0) == bytes(BSIZE)


def test_bread_returns_disk_contents():
    disk = MemoryDisk(8)
    disk.write_block(5, block_of(7))
    cache = BufferCache(disk)
    buf = cache.bread(1, 5)
    assert bytes(buf.data) == block_of(7)
    assert buf.valid and buf.refcnt == 1
    cache.brelse(buf)
    assert buf.refcnt == 0


def test_bwrite_reaches_disk():
    disk = MemoryDisk(8)
    cache = BufferCache(disk)
    buf = cache.bread(1, 2)
    buf.data[:3] = b"abc"
    cache.bwrite(buf)
    cache.brelse(buf)
    assert disk.read_block(2)[:3] == b"abc"


def test_cached_block_not_reread():
    disk = MemoryDisk(8)
    cache = BufferCache(disk)
    first = cache.bread(1, 3)
    cache.brelse(first)
    disk.write_block(3, block_of(1))
    second = cache.bread(1, 3)
    assert second is first
    assert bytes(second.data) == bytes(BSIZE)
    cache.brelse(second)


def test_least_recently_used_is_recycled():
    disk = MemoryDisk(8)
    cache = BufferCache(disk, nbuf=2)
    for blockno in (0, 1):
        cache.brelse(cache.bread(1, blockno))
    disk.write_block(0, block_of(2))
    disk.write_block(1, block_of(3))
    cache.brelse(cache.bread(1, 2))  # evicts block 0
    kept = cache.bread(1, 1)
    assert bytes(kept.data) == bytes(BSIZE)
    cache.brelse(kept)
    reread = cache.bread(1, 0)
    assert bytes(reread.data) == block_of(2)
    cache.brelse(reread)


def test_no_free_buffers_panics():
    cache = BufferCache(MemoryDisk(8), nbuf=2)
    cache.bread(1, 0)
    cache.bread(1, 1)
    with pytest.raises(KernelPanic, match="bget: no buffers"):
        cache.bread(1, 2)


def test_release_without_lock_panics():
    cache = BufferCache(MemoryDisk(4))
    buf = cache.bread(1, 0)
    cache.brelse(buf)
    with pytest.raises(KernelPanic, match="brelse"):
        cache.brelse(buf)
    with pytest.raises(KernelPanic, match="bwrite"):
        cache.bwrite(buf)


def test_pinned_buffer_is_not_recycled():
    cache = BufferCache(MemoryDisk(4), nbuf=1)
    buf = cache.bread(1, 0)
    cache.bpin(buf)
    cache.brelse(buf)
    assert buf.refcnt == 1
    with pytest.raises(KernelPanic):
        cache.bread(1, 1)
    cache.bunpin(buf)
    other = cache.bread(1, 1)
    assert other.blockno == 1
    cache.brelse(other)