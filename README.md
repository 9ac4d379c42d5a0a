# moonlib

Building blocks for the runtime of a small embeddable scripting language,
written in plain Python with no third-party dependencies.

## What is inside

- `moonlib.objects`: value type tags (`LuaType`, with `LuaType.of(value)`
  to classify a Python value and `is_collectable`), the compact
  "floating point byte" encoding (`int_to_fb`, `fb_to_int`), `log2` and
  `ceil_log2`, numeric string parsing (`str_to_number`, which also accepts
  hexadecimal integers such as `0x1F` and returns `None` for non-numerals),
  raw equality (`raw_equal`), a small message formatter supporting only
  `%d %c %f %p %s %%` (`format_message`) and chunk names for error
  messages (`chunk_id`).
- `moonlib.stringtable`: the 32-bit string hash (`lua_hash`) and an
  interning `StringTable` that doubles its bucket count when it holds more
  strings than buckets. It supports `len()`, `in` and iteration, and
  `resize()` takes a power of two.
- `moonlib.opcodes`: the virtual machine's instruction set (`OpCode`,
  `OpMode`, `OpArgMask`), 32-bit instruction packing (`create_abc`,
  `create_abx`, `create_asbx`, the `get_*` and `set_*` field helpers and
  the frozen `Instruction` dataclass with `encode`, `decode`, `bx`, `sbx`
  and `mode`), constant/register operands (`is_k`, `index_k`, `rk_as_k`)
  and per-opcode properties (`op_mode`, `b_mode`, `c_mode`, `sets_a`,
  `is_test`). Out-of-range arguments raise `ValueError`.
- `moonlib.oslib`: operating-system functions: `clock`, `date` (a leading
  `!` means UTC, `"*t"` returns a dict of fields), `time` (current time or
  the time of a date dict), `difftime`, `getenv`, `remove`, `rename`,
  `tmpname`, `execute` (runs a shell command and returns the raw system
  status), `setlocale` and `exit`. `remove` and `rename` raise `OSError`
  on failure.
- `moonlib.patterns`: the language's own pattern matching (`find`,
  `match`, `gmatch`, `gsub`); malformed patterns raise `PatternError`.
- `moonlib.strlib`: the rest of the string library: `length`, `sub`,
  `reverse`, `lower`, `upper`, `rep`, `byte`, `char`, `quote`, `format`
  and `format_number`. Case conversion touches ASCII letters only.
- `moonlib.package`: module search and loading: `Package` with
  `search_path`, `require`, `module`, `seeall`, `loadlib` and `close`
  (it is also a context manager), plus `make_path` and `func_name`;
  loading failures raise `LoaderError`, whose `where` attribute says which
  step of `loadlib` failed.

## Installing

    pip install .

To run the tests:

    pip install ".[test]"
    pytest

## Examples

Pattern matching uses the language's own syntax, not regular
expressions, and positions count from 1:

```python
from moonlib import patterns

patterns.find("hello world", "o w")                 # (5, 7)
patterns.match("key = value", "(%w+)%s*=%s*(%w+)")  # ("key", "value")
patterns.gsub("hello world", "o", "0")              # ("hell0 w0rld", 2)
for word in patterns.gmatch("one two three", "%a+"):
    print(word)
```

String helpers follow the same 1-based, negative-from-the-end indexing:

```python
from moonlib import strlib

strlib.sub("hello", 2, -2)        # "ell"
strlib.byte("ABC", 1, -1)         # (65, 66, 67)
strlib.format("%5.2f|%q", 3.14159, 'a "b"')
```

Instructions pack into 32-bit words and unpack again:

```python
from moonlib.opcodes import OpCode, create_abc, get_opcode, get_b

word = create_abc(OpCode.ADD, 0, 1, 2)
assert get_opcode(word) is OpCode.ADD
assert get_b(word) == 1
```

Modules can be registered in advance and required once:

```python
from moonlib.package import Package

pkg = Package(path="./?.lua", cpath="./?.so")
pkg.preload["greet"] = lambda name: {"hello": "world"}
pkg.require("greet")              # {"hello": "world"}, cached in pkg.loaded
```

## What it does not do

There is no compiler, virtual machine or command-line interpreter here.
`Package` cannot compile source files on its own: pass a `load_file`
callable that turns a file name into a callable chunk. Native libraries
are likewise opened only through an `open_library` callable that returns
a mapping of symbol names to callables; without one, `loadlib` fails with
`where == "absent"`.