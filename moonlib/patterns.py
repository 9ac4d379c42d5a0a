"""Pattern matching over strings: find, match, gmatch and gsub.

Patterns use the classic syntax: ``.`` any character, ``%a %c %d %l %p
%s %u %w %x %z`` character classes (upper case for the complement),
``[set]`` and ``[^set]``, the quantifiers ``* + - ?``, captures with
``( )`` and position captures ``()``, back references ``%1``-``%9``,
balanced matches ``%bxy``, frontiers ``%f[set]`` and the anchors ``^``
and ``$``.  Positions are 1-based and negative positions count from the
end of the string.  Character classes follow the "C" locale.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

from moonlib.objects import LuaType

#: Characters that make a pattern more than a plain substring.
SPECIALS = "^$*+?.([%-"

#: Maximum number of captures in one pattern.
MAXCAPTURES = 32

_L_ESC = "%"
_CAP_UNFINISHED = -1
_CAP_POSITION = -2
_DIGITS = "0123456789"
_SPACES = " \t\n\v\f\r"
_PUNCT = "!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~"
_HEXDIGITS = "0123456789abcdefABCDEF"

Capture = Union[str, int]


class PatternError(ValueError):
    """Raised for malformed patterns and invalid captures."""


def _is_alpha(c: str) -> bool:
    return ("a" <= c <= "z") or ("A" <= c <= "Z")


def _class_matches(c: str, cl: str) -> bool:
    """Test character ``c`` against class letter ``cl`` (as in ``%a``)."""
    low = cl.lower() if _is_alpha(cl) else cl
    if low == "a":
        res = _is_alpha(c)
    elif low == "c":
        res = ord(c) < 32 or ord(c) == 127
    elif low == "d":
        res = c in _DIGITS
    elif low == "l":
        res = "a" <= c <= "z"
    elif low == "p":
        res = c in _PUNCT
    elif low == "s":
        res = c in _SPACES
    elif low == "u":
        res = "A" <= c <= "Z"
    elif low == "w":
        res = _is_alpha(c) or c in _DIGITS
    elif low == "x":
        res = c in _HEXDIGITS
    elif low == "z":
        res = c == "\0"
    else:
        return cl == c
    return res if "a" <= cl <= "z" else not res


def _number_to_str(n: Union[int, float]) -> str:
    return format(float(n), ".14g")


def _posrelat(pos: int, length: int) -> int:
    return pos if pos >= 0 else length + pos + 1


class _Matcher:
    """Backtracking matcher of one pattern against one subject string."""

    def __init__(self, src: str, pattern: str) -> None:
        self.src = src
        self.pat = pattern
        self.end = len(src)
        self.captures: List[List[int]] = []

    def reset(self) -> None:
        self.captures = []

    @property
    def level(self) -> int:
        return len(self.captures)

    def _pat_at(self, p: int) -> str:
        return self.pat[p] if p < len(self.pat) else ""

    def _check_capture(self, digit: str) -> int:
        idx = ord(digit) - ord("1")
        if idx < 0 or idx >= self.level or self.captures[idx][1] == _CAP_UNFINISHED:
            raise PatternError("invalid capture index")
        return idx

    def _capture_to_close(self) -> int:
        for level in range(self.level - 1, -1, -1):
            if self.captures[level][1] == _CAP_UNFINISHED:
                return level
        raise PatternError("invalid pattern capture")

    def _class_end(self, p: int) -> int:
        pat = self.pat
        n = len(pat)
        ch = pat[p]
        p += 1
        if ch == _L_ESC:
            if p >= n:
                raise PatternError("malformed pattern (ends with '%')")
            return p + 1
        if ch == "[":
            if p < n and pat[p] == "^":
                p += 1
            while True:
                if p >= n:
                    raise PatternError("malformed pattern (missing ']')")
                cur = pat[p]
                p += 1
                if cur == _L_ESC and p < n:
                    p += 1
                if p < n and pat[p] == "]":
                    break
            return p + 1
        return p

    def _match_bracket(self, c: str, p: int, ec: int) -> bool:
        pat = self.pat
        sig = True
        if pat[p + 1] == "^":
            sig = False
            p += 1
        p += 1
        while p < ec:
            if pat[p] == _L_ESC:
                p += 1
                if _class_matches(c, pat[p]):
                    return sig
            elif pat[p + 1] == "-" and p + 2 < ec:
                p += 2
                if pat[p - 2] <= c <= pat[p]:
                    return sig
            elif pat[p] == c:
                return sig
            p += 1
        return not sig

    def _single_match(self, c: str, p: int, ep: int) -> bool:
        ch = self.pat[p]
        if ch == ".":
            return True
        if ch == _L_ESC:
            return _class_matches(c, self.pat[p + 1])
        if ch == "[":
            return self._match_bracket(c, p, ep - 1)
        return ch == c

    def _match_balance(self, s: int, p: int) -> Optional[int]:
        if p + 1 >= len(self.pat):
            raise PatternError("unbalanced pattern")
        if s >= self.end or self.src[s] != self.pat[p]:
            return None
        opening, closing = self.pat[p], self.pat[p + 1]
        depth = 1
        s += 1
        while s < self.end:
            ch = self.src[s]
            if ch == closing:
                depth -= 1
                if depth == 0:
                    return s + 1
            elif ch == opening:
                depth += 1
            s += 1
        return None

    def _max_expand(self, s: int, p: int, ep: int) -> Optional[int]:
        i = 0
        while s + i < self.end and self._single_match(self.src[s + i], p, ep):
            i += 1
        while i >= 0:
            res = self.match(s + i, ep + 1)
            if res is not None:
                return res
            i -= 1
        return None

    def _min_expand(self, s: int, p: int, ep: int) -> Optional[int]:
        while True:
            res = self.match(s, ep + 1)
            if res is not None:
                return res
            if s < self.end and self._single_match(self.src[s], p, ep):
                s += 1
            else:
                return None

    def _start_capture(self, s: int, p: int, what: int) -> Optional[int]:
        if self.level >= MAXCAPTURES:
            raise PatternError("too many captures")
        self.captures.append([s, what])
        res = self.match(s, p)
        if res is None:
            self.captures.pop()
        return res

    def _end_capture(self, s: int, p: int) -> Optional[int]:
        idx = self._capture_to_close()
        cap = self.captures[idx]
        cap[1] = s - cap[0]
        res = self.match(s, p)
        if res is None:
            cap[1] = _CAP_UNFINISHED
        return res

    def _match_capture(self, s: int, digit: str) -> Optional[int]:
        init, length = self.captures[self._check_capture(digit)]
        if length < 0 or self.end - s < length:
            return None
        if self.src[init:init + length] == self.src[s:s + length]:
            return s + length
        return None

    def match(self, s: int, p: int) -> Optional[int]:
        """Match the pattern from index ``p`` at subject index ``s``.

        Returns the subject index where the match ends, or None.
        """
        n = len(self.pat)
        while True:
            if p >= n:
                return s
            ch = self.pat[p]
            if ch == "(":
                if self._pat_at(p + 1) == ")":
                    return self._start_capture(s, p + 2, _CAP_POSITION)
                return self._start_capture(s, p + 1, _CAP_UNFINISHED)
            if ch == ")":
                return self._end_capture(s, p + 1)
            if ch == _L_ESC:
                nxt = self._pat_at(p + 1)
                if nxt == "b":
                    found = self._match_balance(s, p + 2)
                    if found is None:
                        return None
                    s = found
                    p += 4
                    continue
                if nxt == "f":
                    p += 2
                    if self._pat_at(p) != "[":
                        raise PatternError("missing '[' after '%f' in pattern")
                    ep = self._class_end(p)
                    previous = self.src[s - 1] if s > 0 else "\0"
                    current = self.src[s] if s < self.end else "\0"
                    if self._match_bracket(previous, p, ep - 1) or not self._match_bracket(
                        current, p, ep - 1
                    ):
                        return None
                    p = ep
                    continue
                if nxt and nxt in _DIGITS:
                    found = self._match_capture(s, nxt)
                    if found is None:
                        return None
                    s = found
                    p += 2
                    continue
            elif ch == "$" and p + 1 == n:
                return s if s == self.end else None
            ep = self._class_end(p)
            m = s < self.end and self._single_match(self.src[s], p, ep)
            quant = self._pat_at(ep)
            if quant == "?":
                if m:
                    res = self.match(s + 1, ep + 1)
                    if res is not None:
                        return res
                p = ep + 1
                continue
            if quant == "*":
                return self._max_expand(s, p, ep)
            if quant == "+":
                return self._max_expand(s + 1, p, ep) if m else None
            if quant == "-":
                return self._min_expand(s, p, ep)
            if not m:
                return None
            s += 1
            p = ep

    def capture(self, i: int, s: int, e: int) -> Capture:
        """Value of capture ``i``; the whole match when there are none."""
        if i >= self.level:
            if i == 0:
                return self.src[s:e]
            raise PatternError("invalid capture index")
        init, length = self.captures[i]
        if length == _CAP_UNFINISHED:
            raise PatternError("unfinished capture")
        if length == _CAP_POSITION:
            return init + 1
        return self.src[init:init + length]

    def all_captures(self, s: Optional[int], e: int) -> List[Capture]:
        count = 1 if self.level == 0 and s is not None else self.level
        return [self.capture(i, s if s is not None else 0, e) for i in range(count)]


def _collapse(values: List[Capture]) -> Union[Capture, Tuple[Capture, ...]]:
    return values[0] if len(values) == 1 else tuple(values)


def _split_anchor(pattern: str) -> Tuple[bool, str]:
    if pattern.startswith("^"):
        return True, pattern[1:]
    return False, pattern


def _start_index(init: int, length: int) -> int:
    start = _posrelat(int(init), length) - 1
    return min(max(start, 0), length)


def _search(s: str, pattern: str, init: int) -> Optional[Tuple[_Matcher, int, int]]:
    anchor, pat = _split_anchor(pattern)
    matcher = _Matcher(s, pat)
    s1 = _start_index(init, len(s))
    while True:
        matcher.reset()
        e = matcher.match(s1, 0)
        if e is not None:
            return matcher, s1, e
        if anchor or s1 >= len(s):
            return None
        s1 += 1


def find(
    s: str, pattern: str, init: int = 1, plain: bool = False
) -> Optional[Tuple[Capture, ...]]:
    """Find the first match of ``pattern`` in ``s`` from position ``init``.

    Returns ``(start, end, *captures)`` with 1-based inclusive positions,
    or None when there is no match.  With ``plain`` (or when the pattern
    has no special characters) a plain substring search is done.
    """
    if plain or not any(ch in SPECIALS for ch in pattern):
        start = _start_index(init, len(s))
        idx = s.find(pattern, start)
        if idx < 0:
            return None
        return (idx + 1, idx + len(pattern))
    found = _search(s, pattern, init)
    if found is None:
        return None
    matcher, start, end = found
    return (start + 1, end, *matcher.all_captures(None, 0))


def match(
    s: str, pattern: str, init: int = 1
) -> Union[Capture, Tuple[Capture, ...], None]:
    """Return the captures of the first match of ``pattern`` in ``s``.

    With no captures in the pattern the whole match is returned; with one
    capture, that capture; with several, a tuple of them.  None when the
    pattern does not match.
    """
    found = _search(s, pattern, init)
    if found is None:
        return None
    matcher, start, end = found
    return _collapse(matcher.all_captures(start, end))


def gmatch(s: str, pattern: str) -> Iterator[Union[Capture, Tuple[Capture, ...]]]:
    """Iterate over the captures of successive matches of ``pattern``.

    Each item is shaped as the result of :func:`match`.  A ``^`` has no
    anchoring meaning here.
    """
    matcher = _Matcher(s, pattern)
    length = len(s)
    start = 0
    while start <= length:
        for src in range(start, length + 1):
            matcher.reset()
            e = matcher.match(src, 0)
            if e is not None:
                start = e + 1 if e == src else e
                values = matcher.all_captures(src, e)
                break
        else:
            return
        yield _collapse(values)


Replacement = Union[str, int, float, Mapping, Callable[..., Any]]


def _expand_template(matcher: _Matcher, template: str, s: int, e: int) -> str:
    out: List[str] = []
    i = 0
    while i < len(template):
        ch = template[i]
        if ch != _L_ESC:
            out.append(ch)
        else:
            i += 1
            nxt = template[i] if i < len(template) else "\0"
            if nxt not in _DIGITS:
                out.append(nxt)
            elif nxt == "0":
                out.append(matcher.src[s:e])
            else:
                value = matcher.capture(ord(nxt) - ord("1"), s, e)
                out.append(str(value))
        i += 1
    return "".join(out)


def _replacement(matcher: _Matcher, repl: Replacement, s: int, e: int) -> str:
    if isinstance(repl, str):
        return _expand_template(matcher, repl, s, e)
    if isinstance(repl, (int, float)) and not isinstance(repl, bool):
        return _expand_template(matcher, _number_to_str(repl), s, e)
    if isinstance(repl, Mapping):
        result = repl.get(matcher.capture(0, s, e))
    elif callable(repl):
        result = repl(*matcher.all_captures(s, e))
    else:
        raise TypeError("bad argument #3 to 'gsub' (string/function/table expected)")
    if result is None or result is False:
        return matcher.src[s:e]
    if isinstance(result, str):
        return result
    if isinstance(result, (int, float)) and not isinstance(result, bool):
        return _number_to_str(result)
    kind = LuaType.of(result).name.lower()
    raise PatternError(f"invalid replacement value (a {kind})")


def gsub(
    s: str, pattern: str, repl: Replacement, max_n: Optional[int] = None
) -> Tuple[str, int]:
    """Replace matches of ``pattern`` in ``s``; return ``(result, count)``.

    ``repl`` may be a string (``%0``-``%9`` insert captures, ``%%`` a
    percent sign), a number, a mapping looked up with the first capture,
    or a callable given all captures.  A mapping or callable result of
    None or False keeps the original text.  At most ``max_n`` matches are
    replaced.
    """
    anchor, pat = _split_anchor(pattern)
    limit = len(s) + 1 if max_n is None else int(max_n)
    matcher = _Matcher(s, pat)
    end = len(s)
    out: List[str] = []
    src = 0
    count = 0
    while count < limit:
        matcher.reset()
        e = matcher.match(src, 0)
        if e is not None:
            count += 1
            out.append(_replacement(matcher, repl, src, e))
        if e is not None and e > src:
            src = e
        elif src < end:
            out.append(s[src])
            src += 1
        else:
            break
        if anchor:
            break
    out.append(s[src:])
    return "".join(out), count