import threading

from xv6fs.console import BACKSPACE, INPUT_BUF_SIZE, Console


def make_console(**kwargs):
    echo = bytearray()
    return Console(output=echo.extend, **kwargs), echo


def type_text(console, text):
    for c in text:
        console.intr(c)


def test_line_is_echoed_and_read_with_cr_mapped():
    console, echo = make_console()
    type_text(console, b"hi\r")
    assert console.read(10) == b"hi\n"
    assert bytes(echo) == b"hi\n"


def test_delete_erases_previous_character():
    console, echo = make_console()
    type_text(console, b"ab\x7fc\n")
    assert console.read(10) == b"ac\n"
    assert b"\b \b" in echo


def test_ctrl_h_erases_too():
    console, _ = make_console()
    type_text(console, b"xy\x08\n")
    assert console.read(10) == b"x\n"


def test_kill_line():
    console, echo = make_console()
    type_text(console, b"abc\x15x\n")
    assert console.read(10) == b"x\n"
    assert echo.count(b"\b \b") == 3


def test_erase_does_not_cross_committed_line():
    console, _ = make_console()
    type_text(console, b"a\n\x7f\x15b\n")
    assert console.read(10) == b"a\n"
    assert console.read(10) == b"b\n"


def test_ctrl_d_ends_partial_read_then_reads_empty():
    console, _ = make_console()
    type_text(console, b"ab\x04")
    assert console.read(10) == b"ab"
    assert console.read(10) == b""


def test_read_limited_by_n():
    console, _ = make_console()
    type_text(console, b"abcdef\n")
    first = console.read(3)
    second = console.read(10)
    assert first + second == b"abcdef\n"
    assert len(first) == 3


def test_full_buffer_wakes_reader_and_drops_extra():
    console, _ = make_console()
    type_text(console, b"a" * (INPUT_BUF_SIZE + 5))
    assert console.read(INPUT_BUF_SIZE) == b"a" * INPUT_BUF_SIZE


def test_ctrl_p_calls_procdump():
    calls = []
    console, echo = make_console(procdump=lambda: calls.append(1))
    console.intr(0x10)
    assert calls == [1]
    assert bytes(echo) == b""


def test_putc_backspace_and_write():
    console, echo = make_console()
    console.putc(BACKSPACE)
    assert console.write(b"ok") == 2
    assert bytes(echo) == b"\b \bok"


def test_reader_blocks_until_line_arrives():
    console, _ = make_console()
    result = []
    reader = threading.Thread(target=lambda: result.append(console.read(20)))
    reader.start()
    type_text(console, b"late\n")
    reader.join(timeout=5)
    assert not reader.is_alive()
    assert result == [b"late\n"]