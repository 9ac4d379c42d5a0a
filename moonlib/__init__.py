"""Runtime support for a small scripting language: value helpers, string interning, opcodes, OS, pattern, string and package libraries."""

__version__ = "0.1.0"

__all__ = ["objects", "stringtable", "opcodes", "oslib", "patterns", "strlib", "package"]