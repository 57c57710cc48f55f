"""Formatted kernel output and panics."""

from __future__ import annotations

import sys
import threading
from typing import Callable, Optional

_DIGITS = "0123456789abcdef"
_MASK64 = (1 << 64) - 1

# (spec, base, signed, width in bits of the argument)
_INT_SPECS = (
    ("d", 10, True, 32),
    ("ld", 10, True, 64),
    ("lld", 10, True, 64),
    ("u", 10, False, 32),
    ("lu", 10, False, 64),
    ("llu", 10, False, 64),
    ("x", 16, False, 32),
    ("lx", 16, False, 64),
    ("llx", 16, False, 64),
)


class KernelPanic(RuntimeError):
    """Raised where the kernel would halt with a panic."""


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    return value - (1 << bits) if value >> (bits - 1) else value


def _printint(value: int, base: int, sign: bool) -> str:
    negative = sign and value < 0
    x = -value if negative else value & _MASK64
    digits = []
    while True:
        digits.append(_DIGITS[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        digits.append("-")
    return "".join(reversed(digits))


def _text(value) -> str:
    if value is None:
        return "(null)"
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("latin-1")
    value = str(value)
    return value.split("\0", 1)[0]


def format_printf(fmt: str, *args) -> str:
    """Format like the kernel printf: %d %u %x (with l/ll), %p, %s and %%."""
    values = iter(args)

    def next_arg():
        try:
            return next(values)
        except StopIteration:
            raise TypeError("format_printf: not enough arguments") from None

    out = []
    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch == "\0":
            break
        if ch != "%":
            out.append(ch)
            i += 1
            continue
        rest = fmt[i + 1 :]
        for spec, base, sign, bits in _INT_SPECS:
            if rest.startswith(spec):
                value = _signed(next_arg(), bits)
                out.append(_printint(value, base, sign))
                i += 1 + len(spec)
                break
        else:
            if not rest or rest[0] == "\0":
                break
            c0 = rest[0]
            if c0 == "p":
                out.append("0x" + format(next_arg() & _MASK64, "016x"))
            elif c0 == "s":
                out.append(_text(next_arg()))
            elif c0 == "%":
                out.append("%")
            else:
                out.append("%" + c0)
            i += 2
    return "".join(out)


class Printer:
    """Serialised console printing with a panic that stops the caller."""

    def __init__(self, output: Optional[Callable[[str], object]] = None):
        self._output = sys.stdout.write if output is None else output
        self._lock = threading.Lock()
        self.locking = True
        self.panicked = False

    def printf(self, fmt: str, *args) -> None:
        text = format_printf(fmt, *args)
        if self.locking:
            with self._lock:
                self._output(text)
        else:
            self._output(text)

    def panic(self, message: str):
        self.locking = False
        self.printf("panic: ")
        self.printf("%s\n", message)
        self.panicked = True
        raise KernelPanic(message)