"""Module system: searching paths, ``require``, ``module`` and native libraries."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Tuple

#: Directory separator substituted for dots in module names.
LUA_DIRSEP = os.sep
#: Separator between templates in a search path.
LUA_PATHSEP = ";"
#: Mark in a template replaced by the module name.
LUA_PATH_MARK = "?"
#: Mark standing for the executable's directory.
LUA_EXECDIR = "!"
#: Everything up to this mark is ignored when naming an open function.
LUA_IGMARK = "-"
#: Prefix of open functions in native libraries.
LUA_POF = "luaopen_"
#: Separator of open-function name parts.
LUA_OFSEP = "_"

LUA_PATH_DEFAULT = (
    "./?.lua;"
    "/usr/local/share/lua/5.1/?.lua;"
    "/usr/local/share/lua/5.1/?/init.lua;"
    "/usr/local/lib/lua/5.1/?.lua;"
    "/usr/local/lib/lua/5.1/?/init.lua"
)
LUA_CPATH_DEFAULT = "./?.so;/usr/local/lib/lua/5.1/?.so;/usr/local/lib/lua/5.1/loadall.so"

#: Message given when no native-library opener is available.
DLMSG = "dynamic libraries not enabled; check your Lua installation"

_AUXMARK = "\1"
_ERRLIB = 1
_ERRFUNC = 2

ChunkLoader = Callable[[str], Callable[..., Any]]
LibraryOpener = Callable[[str], Mapping]


class LoaderError(ImportError):
    """Raised when a module or library cannot be found or loaded.

    ``where`` tells which step failed for :meth:`Package.loadlib`:
    ``"open"`` or ``"absent"`` for the library, ``"init"`` for the function.
    """

    def __init__(self, message: str, where: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.where = where

    def __str__(self) -> str:
        return self.message


class _LibFailure(Exception):
    def __init__(self, kind: int, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class _Loading:
    """Marks a module whose loading is in progress."""

    def __repr__(self) -> str:
        return "<loading>"


_LOADING = _Loading()


class ModuleTable(dict):
    """Table created by :meth:`Package.module`; may fall back to globals."""

    fallback: Optional[Mapping] = None

    def __missing__(self, key: Any) -> Any:
        if self.fallback is not None and key in self.fallback:
            return self.fallback[key]
        raise KeyError(key)


def make_path(envname: str, default: str) -> str:
    """Search path from an environment variable, or ``default`` without it.

    A ``;;`` in the variable's value is replaced by the default path.
    """
    path = os.environ.get(envname)
    if path is None:
        return default
    path = path.replace(LUA_PATHSEP * 2, LUA_PATHSEP + _AUXMARK + LUA_PATHSEP)
    return path.replace(_AUXMARK, default)


def func_name(modname: str) -> str:
    """Name of the open function of a native module."""
    mark = modname.find(LUA_IGMARK)
    if mark >= 0:
        modname = modname[mark + 1:]
    return LUA_POF + modname.replace(".", LUA_OFSEP)


def _readable(filename: str) -> bool:
    try:
        with open(filename, "r"):
            return True
    except OSError:
        return False


def _no_chunk_loader(filename: str) -> Callable[..., Any]:
    raise LoaderError("no chunk compiler configured")


def _truthy(value: Any) -> bool:
    return value is not None and value is not False


def _load_error(name: str, filename: str, reason: str) -> LoaderError:
    return LoaderError(
        f"error loading module '{name}' from file '{filename}':\n\t{reason}"
    )


class Package:
    """State of the module system: paths, loaded modules, preloads, loaders.

    ``load_file`` compiles a source file into a callable chunk;
    ``open_library`` opens a native library and returns a mapping from
    symbol names to callables.  Without ``open_library`` native libraries
    are disabled.
    """

    def __init__(
        self,
        *,
        globals_table: Optional[Dict[str, Any]] = None,
        load_file: Optional[ChunkLoader] = None,
        open_library: Optional[LibraryOpener] = None,
        path: Optional[str] = None,
        cpath: Optional[str] = None,
    ) -> None:
        self.path: Any = path if path is not None else make_path("LUA_PATH", LUA_PATH_DEFAULT)
        self.cpath: Any = (
            cpath if cpath is not None else make_path("LUA_CPATH", LUA_CPATH_DEFAULT)
        )
        self.config = "\n".join(
            (LUA_DIRSEP, LUA_PATHSEP, LUA_PATH_MARK, LUA_EXECDIR, LUA_IGMARK)
        )
        self.globals: Dict[str, Any] = globals_table if globals_table is not None else {}
        self.loaded: Dict[str, Any] = {}
        self.preload: Any = {}
        self.loaders: Any = [
            self._loader_preload,
            self._loader_lua,
            self._loader_c,
            self._loader_croot,
        ]
        self._load_file = load_file or _no_chunk_loader
        self._open_library = open_library
        self._libraries: Dict[str, Mapping] = {}

    # -- native libraries -------------------------------------------------

    @property
    def _lib_fail(self) -> str:
        return "absent" if self._open_library is None else "open"

    def _load_func(self, path: str, sym: str) -> Callable[..., Any]:
        handle = self._libraries.get(path)
        if handle is None:
            if self._open_library is None:
                raise _LibFailure(_ERRLIB, DLMSG)
            try:
                handle = self._open_library(path)
            except (OSError, LoaderError) as exc:
                raise _LibFailure(_ERRLIB, str(exc)) from exc
            self._libraries[path] = handle
        try:
            return handle[sym]
        except LookupError:
            raise _LibFailure(_ERRFUNC, f"symbol '{sym}' not found") from None

    def loadlib(self, path: str, init: str) -> Callable[..., Any]:
        """Open the native library ``path`` and return its function ``init``."""
        try:
            return self._load_func(path, init)
        except _LibFailure as failure:
            where = self._lib_fail if failure.kind == _ERRLIB else "init"
            raise LoaderError(failure.message, where=where) from None

    def close(self) -> None:
        """Release every native library opened so far."""
        for handle in self._libraries.values():
            closer = getattr(handle, "close", None)
            if callable(closer):
                closer()
        self._libraries.clear()

    def __enter__(self) -> "Package":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- searching --------------------------------------------------------

    def _find(self, name: str, key: str) -> Tuple[Optional[str], str]:
        path = getattr(self, key, None)
        if not isinstance(path, str):
            raise LoaderError(f"'package.{key}' must be a string")
        name = name.replace(".", LUA_DIRSEP)
        tried: List[str] = []
        for template in path.split(LUA_PATHSEP):
            if not template:
                continue
            filename = template.replace(LUA_PATH_MARK, name)
            if _readable(filename):
                return filename, ""
            tried.append(f"\n\tno file '{filename}'")
        return None, "".join(tried)

    def search_path(self, name: str, key: str = "path") -> Optional[str]:
        """First readable file for module ``name`` along ``path`` or ``cpath``."""
        return self._find(name, key)[0]

    # -- loaders ----------------------------------------------------------

    def _loader_preload(self, name: str) -> Any:
        if not isinstance(self.preload, Mapping):
            raise LoaderError("'package.preload' must be a table")
        value = self.preload.get(name)
        if value is None:
            return f"\n\tno field package.preload['{name}']"
        return value

    def _loader_lua(self, name: str) -> Any:
        filename, message = self._find(name, "path")
        if filename is None:
            return message
        try:
            return self._load_file(filename)
        except Exception as exc:
            raise _load_error(name, filename, str(exc)) from exc

    def _loader_c(self, name: str) -> Any:
        filename, message = self._find(name, "cpath")
        if filename is None:
            return message
        try:
            return self._load_func(filename, func_name(name))
        except _LibFailure as failure:
            raise _load_error(name, filename, failure.message) from None

    def _loader_croot(self, name: str) -> Any:
        dot = name.find(".")
        if dot < 0:
            return None
        filename, message = self._find(name[:dot], "cpath")
        if filename is None:
            return message
        try:
            return self._load_func(filename, func_name(name))
        except _LibFailure as failure:
            if failure.kind != _ERRFUNC:
                raise _load_error(name, filename, failure.message) from None
            return f"\n\tno module '{name}' in file '{filename}'"

    # -- require and module -----------------------------------------------

    def require(self, name: str) -> Any:
        """Load module ``name`` once and return its value."""
        current = self.loaded.get(name)
        if _truthy(current):
            if current is _LOADING:
                raise LoaderError(f"loop or previous error loading module '{name}'")
            return current
        if not isinstance(self.loaders, (list, tuple)):
            raise LoaderError("'package.loaders' must be a table")
        messages: List[str] = []
        for loader in self.loaders:
            if loader is None:
                break
            result = loader(name)
            if callable(result):
                chunk = result
                break
            if isinstance(result, str):
                messages.append(result)
        else:
            raise LoaderError(f"module '{name}' not found:{''.join(messages)}")
        self.loaded[name] = _LOADING
        value = chunk(name)
        if value is not None:
            self.loaded[name] = value
        if self.loaded.get(name) is _LOADING:
            self.loaded[name] = True
        return self.loaded[name]

    def _find_table(self, modname: str) -> ModuleTable:
        table: Dict[str, Any] = self.globals
        for part in modname.split("."):
            field = table.get(part)
            if field is None:
                field = ModuleTable()
                table[part] = field
            elif not isinstance(field, dict):
                raise LoaderError(f"name conflict for module '{modname}'")
            table = field
        return table  # type: ignore[return-value]

    def module(self, modname: str, *args: Callable[[Any], Any]) -> Dict[str, Any]:
        """Create or reuse the table of module ``modname`` and return it.

        The table is stored in ``loaded`` and in the globals under its
        dotted name.  A new table gets ``_M``, ``_NAME`` and ``_PACKAGE``.
        Each extra argument is called with the table.
        """
        table = self.loaded.get(modname)
        if not isinstance(table, dict):
            table = self._find_table(modname)
            self.loaded[modname] = table
        if table.get("_NAME") is None:
            table["_M"] = table
            table["_NAME"] = modname
            table["_PACKAGE"] = modname[: modname.rfind(".") + 1]
        for option in args:
            option(table)
        return table

    def seeall(self, table: Dict[str, Any]) -> None:
        """Make lookups of missing keys in a module table fall back to globals."""
        if not isinstance(table, ModuleTable):
            raise TypeError("bad argument #1 to 'seeall' (module table expected)")
        table.fallback = self.globals