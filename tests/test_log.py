import struct
import threading
from types import SimpleNamespace

import pytest

from xv6fs.bio import BufferCache, MemoryDisk
from xv6fs.kprintf import KernelPanic
from xv6fs.layout import BSIZE, LOGSIZE, Superblock
from xv6fs.log import Log

DEV = 1


def make_env(nlog=LOGSIZE + 1, disk=None):
    disk = disk or MemoryDisk(300)
    sb = Superblock(size=300, nlog=nlog, logstart=2)
    bcache = BufferCache(disk)
    return SimpleNamespace(disk=disk, sb=sb, bcache=bcache, log=Log(bcache, DEV, sb))


def modify(env, blockno, payload):
    buf = env.bcache.bread(DEV, blockno)
    try:
        buf.data[: len(payload)] = payload
        env.log.write(buf)
    finally:
        env.bcache.brelse(buf)
    return buf


def test_commit_installs_block_at_home_location():
    env = make_env()
    with env.log.transaction():
        modify(env, 100, b"abcd")
        assert env.disk.read_block(100)[:4] == bytes(4)
    assert env.disk.read_block(100)[:4] == b"abcd"


def test_header_cleared_after_commit():
    env = make_env()
    with env.log.transaction():
        modify(env, 100, b"abcd")
    assert struct.unpack_from("<i", env.disk.read_block(env.sb.logstart))[0] == 0
    assert env.log.blocks == []


def test_repeated_writes_of_one_block_are_absorbed():
    env = make_env()
    with env.log.transaction():
        modify(env, 100, b"a")
        modify(env, 100, b"b")
        modify(env, 101, b"c")
        assert env.log.blocks == [100, 101]
    assert env.disk.read_block(100)[:1] == b"b"


def test_logged_buffer_is_pinned_until_commit():
    env = make_env()
    with env.log.transaction():
        buf = modify(env, 100, b"x")
        assert buf.refcnt == 1
    assert buf.refcnt == 0


def test_write_outside_transaction_panics():
    env = make_env()
    buf = env.bcache.bread(DEV, 100)
    try:
        with pytest.raises(KernelPanic, match="outside of trans"):
            env.log.write(buf)
    finally:
        env.bcache.brelse(buf)


def test_transaction_larger_than_log_panics():
    env = make_env(nlog=5)
    with pytest.raises(KernelPanic, match="too big a transaction"):
        with env.log.transaction():
            for blockno in range(100, 110):
                modify(env, blockno, b"z")


def test_recovery_replays_committed_transaction():
    disk = MemoryDisk(300)
    disk.write_block(2, struct.pack("<ii", 1, 200).ljust(BSIZE, b"\0"))
    disk.write_block(3, b"\x7f" * BSIZE)
    env = make_env(disk=disk)
    assert disk.read_block(200) == b"\x7f" * BSIZE
    assert struct.unpack_from("<i", disk.read_block(2))[0] == 0
    assert env.log.blocks == []


def test_nested_operations_commit_when_last_ends():
    env = make_env()
    env.log.begin_op()
    env.log.begin_op()
    assert env.log.outstanding == 2
    modify(env, 120, b"qq")
    env.log.end_op()
    assert env.disk.read_block(120)[:2] == bytes(2)
    env.log.end_op()
    assert env.disk.read_block(120)[:2] == b"qq"
    assert env.log.outstanding == 0


def test_begin_op_waits_when_log_space_is_reserved():
    env = make_env()
    for _ in range(3):
        env.log.begin_op()
    entered = threading.Event()

    def worker():
        env.log.begin_op()
        entered.set()
        env.log.end_op()

    thread = threading.Thread(target=worker)
    thread.start()
    assert not entered.wait(0.2)
    env.log.end_op()
    assert entered.wait(5)
    thread.join(5)
    env.log.end_op()
    env.log.end_op()
    assert env.log.outstanding == 0