"""Generic helpers over Lua values: type tags, number codecs and messages."""

from __future__ import annotations

import enum
import re
from typing import Any, Optional

#: Default size of the buffer used to describe a chunk's source.
ID_SIZE = 60

_SPACE = " \t\n\v\f\r"

_DECIMAL = re.compile(
    r"[ \t\n\v\f\r]*[+-]?"
    r"(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)
_HEX = re.compile(r"[ \t\n\v\f\r]*([+-]?)0[xX]([0-9a-fA-F]+)")


class LuaType(enum.IntEnum):
    """Type tags of Lua values, plus the internal tags for non-values."""

    NONE = -1
    NIL = 0
    BOOLEAN = 1
    LIGHTUSERDATA = 2
    NUMBER = 3
    STRING = 4
    TABLE = 5
    FUNCTION = 6
    USERDATA = 7
    THREAD = 8
    PROTO = 9
    UPVAL = 10
    DEADKEY = 11

    @property
    def is_collectable(self) -> bool:
        """True for types whose values are garbage-collected objects."""
        return self >= LuaType.STRING

    @classmethod
    def of(cls, value: Any) -> "LuaType":
        """Classify a Python value as the Lua type it stands for."""
        if value is None:
            return cls.NIL
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, (int, float)):
            return cls.NUMBER
        if isinstance(value, (str, bytes)):
            return cls.STRING
        if isinstance(value, dict):
            return cls.TABLE
        if callable(value):
            return cls.FUNCTION
        return cls.USERDATA


def int_to_fb(x: int) -> int:
    """Encode a non-negative integer as a "floating point byte" (eeeeexxx).

    The encoded value is (1xxx) * 2^(eeeee - 1) when eeeee != 0, and xxx
    otherwise; values that do not fit exactly are rounded up.
    """
    if x < 0:
        raise ValueError("value must be non-negative")
    e = 0
    while x >= 16:
        x = (x + 1) >> 1
        e += 1
    if x < 8:
        return x
    return ((e + 1) << 3) | (x - 8)


def fb_to_int(x: int) -> int:
    """Decode a "floating point byte" back to an integer."""
    e = (x >> 3) & 31
    if e == 0:
        return x
    return ((x & 7) + 8) << (e - 1)


def log2(x: int) -> int:
    """Floor of the base-2 logarithm of x; -1 for zero."""
    if x < 0:
        raise ValueError("value must be non-negative")
    return x.bit_length() - 1


def ceil_log2(x: int) -> int:
    """Ceiling of the base-2 logarithm of a positive integer."""
    if x < 1:
        raise ValueError("value must be positive")
    return log2(x - 1) + 1


def str_to_number(s: str) -> Optional[float]:
    """Convert a numeral to a number, or return None when it is not one.

    Accepts decimal numerals and hexadecimal integers (``0x...``), with
    surrounding whitespace.
    """
    m = _DECIMAL.match(s)
    if m is None:
        return None
    result = float(m.group(0))
    end = m.end()
    if s[end:end + 1] in ("x", "X"):
        h = _HEX.match(s)
        if h is not None:
            magnitude = int(h.group(2), 16)
            result = float(-magnitude if h.group(1) == "-" else magnitude)
            end = h.end()
    if s[end:].strip(_SPACE):
        return None
    return result


def raw_equal(a: Any, b: Any) -> bool:
    """Primitive equality of two values, without metamethods."""
    kind = LuaType.of(a)
    if kind != LuaType.of(b):
        return False
    if kind == LuaType.NIL:
        return True
    if kind in (LuaType.NUMBER, LuaType.BOOLEAN, LuaType.STRING):
        return a == b
    return a is b


def _number_to_str(n: float) -> str:
    return format(n, ".14g")


def format_message(fmt: str, *args: Any) -> str:
    """Format a message supporting only %d, %c, %f, %p, %s and %%.

    Unknown conversions are copied through unchanged.
    """
    values = iter(args)

    def take() -> Any:
        try:
            return next(values)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    parts = []
    pos = 0
    while True:
        e = fmt.find("%", pos)
        if e < 0:
            break
        parts.append(fmt[pos:e])
        spec = fmt[e + 1:e + 2]
        if spec == "s":
            value = take()
            if value is None:
                parts.append("(null)")
            elif isinstance(value, bytes):
                parts.append(value.decode("latin-1"))
            else:
                parts.append(str(value))
        elif spec == "c":
            parts.append(chr(int(take()) & 0xFF))
        elif spec == "d":
            parts.append(_number_to_str(float(int(take()))))
        elif spec == "f":
            parts.append(_number_to_str(float(take())))
        elif spec == "p":
            value = take()
            parts.append("(nil)" if value is None else f"0x{id(value):x}")
        elif spec == "%":
            parts.append("%")
        else:
            parts.append("%" + spec)
        pos = e + 2
    parts.append(fmt[pos:])
    return "".join(parts)


def chunk_id(source: str, bufflen: int = ID_SIZE) -> str:
    """Describe a chunk's source in at most ``bufflen - 1`` characters.

    ``=name`` gives the name itself, ``@file`` gives the file name (keeping
    its last part when too long), and anything else is shown as
    ``[string "..."]`` cut at the first newline.
    """
    if source.startswith("="):
        return source[1:bufflen][: bufflen - 1]
    if source.startswith("@"):
        name = source[1:]
        room = bufflen - len(" '...' ") - 1
        if len(name) > room:
            return "..." + name[len(name) - room:]
        return name
    cut = len(source)
    for ch in "\n\r":
        idx = source.find(ch)
        if 0 <= idx < cut:
            cut = idx
    room = bufflen - len(' [string "..."] ') - 1
    if cut > room:
        cut = room
    if cut < len(source):
        return '[string "' + source[:cut] + '..."]'
    return '[string "' + source + '"]'