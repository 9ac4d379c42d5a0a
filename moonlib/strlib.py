"""Basic string operations: slicing, case, repetition, bytes and formatting.

Strings are Python ``str`` objects whose characters stand for bytes
(code points 0-255).  Positions are 1-based and negative positions count
back from the end of the string.  Case conversion follows the "C" locale.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple, Union

from moonlib.objects import LuaType, str_to_number

#: Valid flags in a format specification.
FLAGS = "-+ #0"

#: Strings at least this long, formatted with ``%s`` and no precision,
#: are copied through unchanged.
_LONG_STRING = 100

_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOWER = "abcdefghijklmnopqrstuvwxyz"
_TO_LOWER = str.maketrans(_UPPER, _LOWER)
_TO_UPPER = str.maketrans(_LOWER, _UPPER)
_DIGITS = "0123456789"
_ULONG_MASK = (1 << 64) - 1

Number = Union[int, float]


class _Missing:
    """Marker for an argument that was not given."""


_MISSING = _Missing()


def _type_name(value: Any) -> str:
    if value is _MISSING:
        return "no value"
    return LuaType.of(value).name.lower()


def _check_number(value: Any, argn: int, fname: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        number = str_to_number(value)
        if number is not None:
            return number
    raise TypeError(
        f"bad argument #{argn} to '{fname}' (number expected, got {_type_name(value)})"
    )


def _check_string(value: Any, argn: int, fname: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    raise TypeError(
        f"bad argument #{argn} to '{fname}' (string expected, got {_type_name(value)})"
    )


def format_number(n: Number) -> str:
    """Convert a number to a string the way strings are coerced (``%.14g``)."""
    return f"{float(n):.14g}"


def _posrelat(pos: int, length: int) -> int:
    return pos if pos >= 0 else length + pos + 1


def length(s: str) -> int:
    """Length of ``s``."""
    return len(_check_string(s, 1, "len"))


def sub(s: str, i: int = 1, j: int = -1) -> str:
    """Substring of ``s`` from position ``i`` to ``j``, both inclusive."""
    s = _check_string(s, 1, "sub")
    n = len(s)
    start = max(_posrelat(int(i), n), 1)
    end = min(_posrelat(int(j), n), n)
    if start > end:
        return ""
    return s[start - 1:end]


def reverse(s: str) -> str:
    """``s`` with its characters in reverse order."""
    return _check_string(s, 1, "reverse")[::-1]


def lower(s: str) -> str:
    """``s`` with ASCII upper-case letters turned to lower case."""
    return _check_string(s, 1, "lower").translate(_TO_LOWER)


def upper(s: str) -> str:
    """``s`` with ASCII lower-case letters turned to upper case."""
    return _check_string(s, 1, "upper").translate(_TO_UPPER)


def rep(s: str, n: int) -> str:
    """``s`` repeated ``n`` times; empty when ``n`` is not positive."""
    s = _check_string(s, 1, "rep")
    count = int(_check_number(n, 2, "rep"))
    return s * count if count > 0 else ""


def byte(s: str, i: int = 1, j: Optional[int] = None) -> Tuple[int, ...]:
    """Codes of the characters of ``s`` from position ``i`` to ``j``.

    ``j`` defaults to ``i``; an empty interval gives an empty tuple.
    """
    s = _check_string(s, 1, "byte")
    n = len(s)
    posi = _posrelat(int(i), n)
    pose = _posrelat(posi if j is None else int(j), n)
    posi = max(posi, 1)
    pose = min(pose, n)
    if posi > pose:
        return ()
    return tuple(ord(ch) for ch in s[posi - 1:pose])


def char(*args: int) -> str:
    """String made of the characters with the given codes (0-255)."""
    out: List[str] = []
    for argn, value in enumerate(args, start=1):
        code = int(_check_number(value, argn, "char"))
        if not 0 <= code <= 255:
            raise ValueError(f"bad argument #{argn} to 'char' (invalid value)")
        out.append(chr(code))
    return "".join(out)


def quote(s: str) -> str:
    """``s`` in double quotes, escaped so that it reads back unchanged."""
    s = _check_string(s, 1, "format")
    out = ['"']
    for ch in s:
        if ch in '"\\\n':
            out.append("\\" + ch)
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\0":
            out.append("\\000")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def _scan_format(fmt: str, start: int) -> Tuple[str, str, Optional[str], int]:
    """Read flags, width and precision; return them and the next index."""
    n = len(fmt)
    p = start
    while p < n and fmt[p] in FLAGS:
        p += 1
    if p - start >= len(FLAGS) + 1:
        raise ValueError("invalid format (repeated flags)")
    flags = fmt[start:p]
    w0 = p
    for _ in range(2):
        if p < n and fmt[p] in _DIGITS:
            p += 1
    width = fmt[w0:p]
    precision: Optional[str] = None
    if p < n and fmt[p] == ".":
        p += 1
        p0 = p
        for _ in range(2):
            if p < n and fmt[p] in _DIGITS:
                p += 1
        precision = fmt[p0:p]
    if p < n and fmt[p] in _DIGITS:
        raise ValueError("invalid format (width or precision too long)")
    return flags, width, precision, p


def _alt_octal(flags: str, width: str, precision: Optional[str], value: int) -> str:
    digits = format(value, "o")
    if precision is not None:
        prec = int(precision or "0")
        digits = "" if prec == 0 and value == 0 else digits.zfill(prec)
    if not digits.startswith("0"):
        digits = "0" + digits
    w = int(width or "0")
    if "-" in flags:
        return digits.ljust(w)
    if "0" in flags and precision is None:
        return digits.rjust(w, "0")
    return digits.rjust(w)


def format(fmt: str, *args: Any) -> str:
    """Format ``args`` following a printf-like template.

    Supports ``%c %d %i %o %u %x %X %e %E %f %g %G %q %s`` and ``%%``,
    with flags ``-+ #0`` and at most two digits of width and precision.
    ``%q`` writes a string quoted so that it can be read back.
    """
    fmt = _check_string(fmt, 1, "format")
    out: List[str] = []
    n = len(fmt)
    i = 0
    argn = 1
    while i < n:
        ch = fmt[i]
        if ch != "%":
            out.append(ch)
            i += 1
            continue
        i += 1
        if i < n and fmt[i] == "%":
            out.append("%")
            i += 1
            continue
        argn += 1
        flags, width, precision, i = _scan_format(fmt, i)
        conv = fmt[i] if i < n else ""
        i += 1
        value = args[argn - 2] if argn - 2 < len(args) else _MISSING
        spec = "%" + flags + width + ("" if precision is None else "." + precision)
        if conv == "c":
            code = int(_check_number(value, argn, "format")) & 0xFF
            out.append((spec + "c") % chr(code))
        elif conv in ("d", "i"):
            number = int(_check_number(value, argn, "format"))
            out.append((spec + "d") % number)
        elif conv in ("o", "u", "x", "X"):
            number = int(_check_number(value, argn, "format")) & _ULONG_MASK
            if conv == "o" and "#" in flags:
                out.append(_alt_octal(flags, width, precision, number))
            else:
                out.append((spec + ("d" if conv == "u" else conv)) % number)
        elif conv in ("e", "E", "f", "g", "G"):
            number = float(_check_number(value, argn, "format"))
            out.append((spec + conv) % number)
        elif conv == "q":
            out.append(quote(_check_string(value, argn, "format")))
        elif conv == "s":
            text = _check_string(value, argn, "format")
            if precision is None and len(text) >= _LONG_STRING:
                out.append(text)
            else:
                out.append((spec + "s") % text)
        else:
            raise ValueError(f"invalid option '%{conv}' to 'format'")
    return "".join(out)