"""Operating-system facilities: time and date, files, environment, locale."""

from __future__ import annotations

import locale as _locale
import os
import shutil
import subprocess
import sys
import tempfile
import time as _time
from collections.abc import Mapping
from typing import Any, Dict, Optional, Union

from moonlib.objects import str_to_number

_CATEGORIES = {
    "all": _locale.LC_ALL,
    "collate": _locale.LC_COLLATE,
    "ctype": _locale.LC_CTYPE,
    "monetary": _locale.LC_MONETARY,
    "numeric": _locale.LC_NUMERIC,
    "time": _locale.LC_TIME,
}


def clock() -> float:
    """Processor time used by the program, in seconds."""
    return _time.process_time()


def _date_table(st: _time.struct_time) -> Dict[str, Any]:
    table: Dict[str, Any] = {
        "sec": st.tm_sec,
        "min": st.tm_min,
        "hour": st.tm_hour,
        "day": st.tm_mday,
        "month": st.tm_mon,
        "year": st.tm_year,
        "wday": (st.tm_wday + 1) % 7 + 1,  # 1 is Sunday
        "yday": st.tm_yday,
    }
    if st.tm_isdst >= 0:
        table["isdst"] = bool(st.tm_isdst)
    return table


def date(fmt: str = "%c", t: Optional[float] = None) -> Union[str, Dict[str, Any], None]:
    """Format time ``t`` (default: now) following ``fmt``.

    A leading ``!`` selects UTC.  ``*t`` returns a dict with the fields
    year, month, day, hour, min, sec, wday, yday and isdst.  Returns None
    when the time cannot be represented.
    """
    when = int(_time.time()) if t is None else int(t)
    utc = fmt.startswith("!")
    if utc:
        fmt = fmt[1:]
    try:
        st = _time.gmtime(when) if utc else _time.localtime(when)
    except (OverflowError, OSError, ValueError):
        return None
    if fmt == "*t":
        return _date_table(st)
    parts = []
    chars = iter(fmt)
    for ch in chars:
        if ch != "%":
            parts.append(ch)
            continue
        spec = next(chars, None)
        if spec is None:
            parts.append("%")
        else:
            parts.append(_time.strftime("%" + spec, st))
    return "".join(parts)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        return str_to_number(value)
    return None


def _field(fields: Mapping, key: str, default: int) -> int:
    number = _as_number(fields.get(key))
    if number is None:
        if default < 0:
            raise ValueError(f"field '{key}' missing in date table")
        return default
    return int(number)


def time(fields: Optional[Mapping] = None) -> Optional[int]:
    """Current time, or the time described by a date table.

    The table needs year, month and day; hour defaults to 12, min and sec
    to 0.  Returns None when the date cannot be represented.
    """
    if fields is None:
        return int(_time.time())
    if not isinstance(fields, Mapping):
        raise TypeError("bad argument #1 to 'time' (table expected)")
    sec = _field(fields, "sec", 0)
    minute = _field(fields, "min", 0)
    hour = _field(fields, "hour", 12)
    day = _field(fields, "day", -1)
    month = _field(fields, "month", -1)
    year = _field(fields, "year", -1)
    flag = fields.get("isdst")
    isdst = -1 if flag is None else (0 if flag is False else 1)
    try:
        return int(_time.mktime((year, month, day, hour, minute, sec, 0, 0, isdst)))
    except (OverflowError, ValueError, OSError):
        return None


def difftime(t2: float, t1: float = 0) -> float:
    """Number of seconds from time ``t1`` to time ``t2``."""
    return float(int(t2) - int(t1))


def getenv(name: str) -> Optional[str]:
    """Value of an environment variable, or None when it is not set."""
    return os.environ.get(name)


def _raise_os_error(exc: OSError, filename: str) -> None:
    message = exc.strerror or str(exc)
    raise OSError(exc.errno, f"{filename}: {message}") from exc


def remove(filename: str) -> bool:
    """Delete a file or an empty directory; raises OSError on failure."""
    try:
        if os.path.isdir(filename) and not os.path.islink(filename):
            os.rmdir(filename)
        else:
            os.remove(filename)
    except OSError as exc:
        _raise_os_error(exc, filename)
    return True


def rename(src: str, dst: str) -> bool:
    """Rename a file or directory; raises OSError on failure."""
    try:
        os.rename(src, dst)
    except OSError as exc:
        _raise_os_error(exc, src)
    return True


def tmpname() -> str:
    """Create a fresh temporary file and return its name."""
    try:
        fd, name = tempfile.mkstemp(prefix="lua_")
    except OSError as exc:
        raise OSError("unable to generate a unique filename") from exc
    os.close(fd)
    return name


def _shell_available() -> bool:
    if os.name == "nt":
        return shutil.which(os.environ.get("COMSPEC", "cmd.exe")) is not None
    return shutil.which("sh") is not None


def execute(command: Optional[str] = None) -> int:
    """Run a shell command and return its raw system status.

    Without a command, returns 1 when a shell is available and 0 otherwise.
    """
    if command is None:
        return 1 if _shell_available() else 0
    code = subprocess.run(command, shell=True).returncode
    if os.name == "nt":
        return code
    return -code if code < 0 else code << 8


def setlocale(locale_name: Optional[str] = None, category: str = "all") -> Optional[str]:
    """Set or query the program's locale; None when the request fails."""
    try:
        cat = _CATEGORIES[category]
    except KeyError:
        raise ValueError(
            f"bad argument #2 to 'setlocale' (invalid option '{category}')"
        ) from None
    try:
        return _locale.setlocale(cat, locale_name)
    except _locale.Error:
        return None


def exit(code: int = 0) -> None:
    """Terminate the program with the given status."""
    sys.exit(int(code))