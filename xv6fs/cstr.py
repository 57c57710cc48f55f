"""NUL-terminated string helpers with the semantics of the kernel's own."""

from __future__ import annotations

from itertools import zip_longest
from typing import Union

Text = Union[bytes, bytearray, str]


def _terminated(s: Text):
    """The part of ``s`` before its first NUL, as an immutable value."""
    if isinstance(s, str):
        return s.partition("\0")[0]
    return bytes(s).partition(b"\0")[0]


def _codes(s: Text) -> list[int]:
    return [ord(ch) for ch in s] if isinstance(s, str) else list(s)


def strlen(s: Text) -> int:
    """Length of ``s`` up to its first NUL."""
    return len(_terminated(s))


def strncmp(p: Text, q: Text, n: int) -> int:
    """Compare at most ``n`` characters; the sign of the result orders p and q."""
    if n <= 0:
        return 0
    left = _codes(_terminated(p)[:n])
    right = _codes(_terminated(q)[:n])
    for a, b in zip_longest(left, right, fillvalue=0):
        if a != b:
            return a - b
    return 0


def strncpy(src: Text, n: int):
    """Exactly ``n`` characters of ``src``, NUL padded; not always NUL terminated."""
    n = max(n, 0)
    body = _terminated(src)[:n]
    if isinstance(body, str):
        return body.ljust(n, "\0")
    return body.ljust(n, b"\0")


def safestrcpy(src: Text, n: int):
    """What fits in a buffer of ``n`` with room kept for the terminating NUL."""
    body = _terminated(src)
    if n <= 0:
        return body[:0]
    return body[: n - 1]