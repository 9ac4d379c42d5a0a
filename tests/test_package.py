import os

import pytest

from moonlib.package import (
    DLMSG,
    LUA_CPATH_DEFAULT,
    LoaderError,
    Package,
    func_name,
    make_path,
)


def _touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("-- chunk\n")
    return path


def _chunk_loader(filename):
    return lambda name: {"file": filename, "name": name}


@pytest.fixture
def empty_paths(tmp_path):
    return {"path": str(tmp_path / "?.lua"), "cpath": str(tmp_path / "?.so")}


def test_make_path_without_variable(monkeypatch):
    monkeypatch.delenv("MOON_TEST_PATH", raising=False)
    assert make_path("MOON_TEST_PATH", "d1;d2") == "d1;d2"


def test_make_path_expands_double_separator(monkeypatch):
    monkeypatch.setenv("MOON_TEST_PATH", "a;;b")
    assert make_path("MOON_TEST_PATH", "DEF") == "a;DEF;b"


def test_make_path_plain_value(monkeypatch):
    monkeypatch.setenv("MOON_TEST_PATH", "x/?.lua")
    assert make_path("MOON_TEST_PATH", "DEF") == "x/?.lua"


def test_func_name_replaces_dots():
    assert func_name("a.b.c") == "luaopen_a_b_c"


def test_func_name_skips_ignore_mark():
    assert func_name("v2-a.b") == "luaopen_a_b"


def test_config_lists_marks():
    pkg = Package(path="", cpath="")
    assert pkg.config.split("\n") == [os.sep, ";", "?", "!", "-"]


def test_default_cpath(monkeypatch):
    monkeypatch.delenv("LUA_CPATH", raising=False)
    assert Package(path="").cpath == LUA_CPATH_DEFAULT


def test_search_path_finds_file(tmp_path):
    target = _touch(tmp_path / "foo" / "bar.lua")
    pkg = Package(path=";;" + str(tmp_path / "?.lua"), cpath="")
    assert pkg.search_path("foo.bar") == str(target)


def test_search_path_missing(tmp_path, empty_paths):
    pkg = Package(**empty_paths)
    assert pkg.search_path("nothing.here") is None


def test_search_path_needs_string(empty_paths):
    pkg = Package(**empty_paths)
    pkg.path = 42
    with pytest.raises(LoaderError, match="'package.path' must be a string"):
        pkg.search_path("x")


def test_require_preload_runs_once(empty_paths):
    pkg = Package(**empty_paths)
    calls = []

    def opener(name):
        calls.append(name)
        return {"value": name}

    pkg.preload["mod"] = opener
    first = pkg.require("mod")
    second = pkg.require("mod")
    assert first == {"value": "mod"}
    assert second is first
    assert calls == ["mod"]
    assert pkg.loaded["mod"] is first


def test_require_module_returning_nothing_gives_true(empty_paths):
    pkg = Package(**empty_paths)
    pkg.preload["quiet"] = lambda name: None
    assert pkg.require("quiet") is True
    assert pkg.loaded["quiet"] is True


def test_require_keeps_value_set_by_module(empty_paths):
    pkg = Package(**empty_paths)

    def opener(name):
        pkg.loaded[name] = "set inside"

    pkg.preload["selfset"] = opener
    assert pkg.require("selfset") == "set inside"


def test_require_returns_already_loaded(empty_paths):
    pkg = Package(**empty_paths)
    pkg.loaded["ready"] = {"k": 1}
    assert pkg.require("ready") == {"k": 1}


def test_require_not_found_lists_attempts(tmp_path, empty_paths):
    pkg = Package(**empty_paths)
    with pytest.raises(LoaderError) as info:
        pkg.require("ghost")
    message = str(info.value)
    assert message.startswith("module 'ghost' not found:")
    assert "no field package.preload['ghost']" in message
    assert f"no file '{tmp_path / 'ghost.lua'}'" in message
    assert f"no file '{tmp_path / 'ghost.so'}'" in message


def test_require_detects_loop(empty_paths):
    pkg = Package(**empty_paths)
    pkg.preload["loopy"] = lambda name: pkg.require(name)
    with pytest.raises(LoaderError, match="loop or previous error loading module 'loopy'"):
        pkg.require("loopy")


def test_require_after_failed_run_reports_previous_error(empty_paths):
    pkg = Package(**empty_paths)

    def broken(name):
        raise RuntimeError("boom")

    pkg.preload["broken"] = broken
    with pytest.raises(RuntimeError):
        pkg.require("broken")
    with pytest.raises(LoaderError, match="loop or previous error"):
        pkg.require("broken")


def test_require_rejects_non_table_preload(empty_paths):
    pkg = Package(**empty_paths)
    pkg.preload = "nope"
    with pytest.raises(LoaderError, match="'package.preload' must be a table"):
        pkg.require("x")


def test_require_rejects_non_table_loaders(empty_paths):
    pkg = Package(**empty_paths)
    pkg.loaders = None
    with pytest.raises(LoaderError, match="'package.loaders' must be a table"):
        pkg.require("x")


def test_require_custom_loader_order(empty_paths):
    pkg = Package(**empty_paths)
    pkg.loaders = [lambda name: "\n\tfirst", lambda name: (lambda n: n.upper())]
    assert pkg.require("abc") == "ABC"


def test_require_source_file(tmp_path):
    target = _touch(tmp_path / "foo" / "bar.lua")
    pkg = Package(path=str(tmp_path / "?.lua"), cpath="", load_file=_chunk_loader)
    result = pkg.require("foo.bar")
    assert result == {"file": str(target), "name": "foo.bar"}


def test_require_source_file_compile_error(tmp_path):
    target = _touch(tmp_path / "bad.lua")

    def failing(filename):
        raise SyntaxError("unexpected symbol")

    pkg = Package(path=str(tmp_path / "?.lua"), cpath="", load_file=failing)
    with pytest.raises(LoaderError) as info:
        pkg.require("bad")
    assert str(info.value) == (
        f"error loading module 'bad' from file '{target}':\n\tunexpected symbol"
    )


def test_require_native_disabled(tmp_path):
    _touch(tmp_path / "nat.so")
    pkg = Package(path="", cpath=str(tmp_path / "?.so"))
    with pytest.raises(LoaderError, match="dynamic libraries not enabled"):
        pkg.require("nat")


def test_require_native_library(tmp_path):
    lib = _touch(tmp_path / "nat.so")
    opened = []

    def opener(path):
        opened.append(path)
        return {"luaopen_nat": lambda name: {"native": name}}

    pkg = Package(path="", cpath=str(tmp_path / "?.so"), open_library=opener)
    assert pkg.require("nat") == {"native": "nat"}
    assert opened == [str(lib)]


def test_require_root_library_missing_symbol(tmp_path):
    lib = _touch(tmp_path / "a.so")
    pkg = Package(
        path="",
        cpath=str(tmp_path / "?.so"),
        open_library=lambda path: {"luaopen_a": lambda name: 1},
    )
    with pytest.raises(LoaderError) as info:
        pkg.require("a.b")
    assert f"no module 'a.b' in file '{lib}'" in str(info.value)


def test_require_root_library_with_symbol(tmp_path):
    _touch(tmp_path / "a.so")
    pkg = Package(
        path="",
        cpath=str(tmp_path / "?.so"),
        open_library=lambda path: {"luaopen_a_b": lambda name: ("sub", name)},
    )
    assert pkg.require("a.b") == ("sub", "a.b")


def test_loadlib_disabled_reports_absent(empty_paths):
    pkg = Package(**empty_paths)
    with pytest.raises(LoaderError) as info:
        pkg.loadlib("lib.so", "luaopen_lib")
    assert info.value.where == "absent"
    assert str(info.value) == DLMSG


def test_loadlib_open_failure(empty_paths):
    def opener(path):
        raise OSError("cannot open " + path)

    pkg = Package(open_library=opener, **empty_paths)
    with pytest.raises(LoaderError) as info:
        pkg.loadlib("lib.so", "f")
    assert info.value.where == "open"
    assert "cannot open lib.so" in str(info.value)


def test_loadlib_missing_symbol(empty_paths):
    pkg = Package(open_library=lambda path: {}, **empty_paths)
    with pytest.raises(LoaderError) as info:
        pkg.loadlib("lib.so", "missing")
    assert info.value.where == "init"
    assert "missing" in str(info.value)


def test_loadlib_caches_library(empty_paths):
    opened = []

    def opener(path):
        opened.append(path)
        return {"f": len, "g": abs}

    pkg = Package(open_library=opener, **empty_paths)
    assert pkg.loadlib("lib.so", "f") is len
    assert pkg.loadlib("lib.so", "g") is abs
    assert opened == ["lib.so"]


def test_close_releases_libraries(empty_paths):
    closed = []

    class Handle(dict):
        def close(self):
            closed.append(True)

    with Package(open_library=lambda path: Handle(f=len), **empty_paths) as pkg:
        loaded = pkg.loadlib("lib.so", "f")
        assert loaded is len
        assert closed == []
    assert closed == [True]


def test_module_initialises_table(empty_paths):
    pkg = Package(**empty_paths)
    table = pkg.module("a.b.c")
    assert table["_NAME"] == "a.b.c"
    assert table["_PACKAGE"] == "a.b."
    assert table["_M"] is table
    assert pkg.loaded["a.b.c"] is table
    assert pkg.globals["a"]["b"]["c"] is table


def test_module_top_level_package_is_empty(empty_paths):
    pkg = Package(**empty_paths)
    assert pkg.module("solo")["_PACKAGE"] == ""


def test_module_reuses_existing_table(empty_paths):
    pkg = Package(**empty_paths)
    first = pkg.module("m")
    first["x"] = 1
    second = pkg.module("m")
    assert second is first
    assert second["x"] == 1


def test_module_keeps_existing_name(empty_paths):
    pkg = Package(**empty_paths)
    pkg.loaded["m"] = {"_NAME": "custom"}
    table = pkg.module("m")
    assert table["_NAME"] == "custom"
    assert "_M" not in table


def test_module_name_conflict(empty_paths):
    pkg = Package(globals_table={"a": 5}, **empty_paths)
    with pytest.raises(LoaderError, match="name conflict for module 'a.b'"):
        pkg.module("a.b")


def test_module_calls_options_in_order(empty_paths):
    pkg = Package(**empty_paths)
    seen = []
    table = pkg.module("opt", lambda t: seen.append(("one", t["_NAME"])), lambda t: seen.append(("two", t["_NAME"])))
    assert seen == [("one", "opt"), ("two", "opt")]
    assert table["_NAME"] == "opt"


def test_seeall_falls_back_to_globals(empty_paths):
    pkg = Package(globals_table={"print": print}, **empty_paths)
    table = pkg.module("viewer", pkg.seeall)
    assert table["print"] is print
    with pytest.raises(KeyError):
        table["absent"]


def test_seeall_rejects_plain_dict(empty_paths):
    pkg = Package(**empty_paths)
    with pytest.raises(TypeError):
        pkg.seeall({})