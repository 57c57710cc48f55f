import pytest

from xv6fs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    FSMAGIC,
    IPB,
    NDIRECT,
    SUPERBLOCK_SIZE,
    DiskInode,
    Dirent,
    InodeType,
    Superblock,
)


def test_superblock_round_trip():
    sb = Superblock(size=2000, nblocks=1954, ninodes=200, nlog=30,
                    logstart=2, inodestart=32, bmapstart=45)
    data = sb.pack()
    assert len(data) == SUPERBLOCK_SIZE
    assert Superblock.unpack(data) == sb


def test_superblock_magic_is_first_little_endian_word():
    data = Superblock().pack()
    assert data[:4] == FSMAGIC.to_bytes(4, "little")


def test_superblock_unpack_accepts_whole_block():
    sb = Superblock(size=10, ninodes=5)
    block = sb.pack() + bytes(BSIZE - SUPERBLOCK_SIZE)
    assert Superblock.unpack(block) == sb


def test_superblock_unpack_short_data():
    with pytest.raises(ValueError):
        Superblock.unpack(b"\x00" * 4)


def test_iblock_groups_inodes_per_block():
    sb = Superblock(inodestart=32)
    assert sb.iblock(0) == 32
    assert sb.iblock(IPB - 1) == 32
    assert sb.iblock(IPB) == 33


def test_bblock_groups_bits_per_block():
    sb = Superblock(bmapstart=45)
    assert sb.bblock(0) == 45
    assert sb.bblock(BPB - 1) == 45
    assert sb.bblock(BPB) == 46


def test_dinode_fits_block_exactly():
    packed = DiskInode().pack()
    assert len(packed) == DINODE_SIZE == 64
    assert IPB * len(packed) == BSIZE


def test_dinode_round_trip():
    addrs = list(range(1, NDIRECT + 2))
    ino = DiskInode(type=InodeType.DEVICE, major=1, minor=-1, nlink=2,
                    size=5000, addrs=addrs)
    data = ino.pack()
    assert len(data) == DINODE_SIZE
    back = DiskInode.unpack(data)
    assert back == ino
    assert back.type == InodeType.DEVICE


def test_dinode_wrong_address_count():
    with pytest.raises(ValueError):
        DiskInode(addrs=[0, 0]).pack()


def test_dirent_wire_bytes():
    assert Dirent(3, "a").pack() == b"\x03\x00a" + b"\x00" * (DIRSIZ - 1)


def test_dirent_truncates_long_names():
    name = "averyverylongname"
    data = Dirent(7, name).pack()
    assert len(data) == DIRENT_SIZE
    back = Dirent.unpack(data)
    assert back.inum == 7
    assert back.name == name[:DIRSIZ]


def test_dirent_round_trip_short_name():
    d = Dirent(12, "README")
    assert Dirent.unpack(d.pack()) == d