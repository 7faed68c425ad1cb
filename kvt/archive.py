"""
archive.py - Loading and saving KVT trees from files and strings

File extensions:
- .kvtb, .bin: binary format
- anything else (.kvt, .txt, ...): text format

Usage:
    import kvt

    tree = kvt.load("settings.kvt")
    kvt.dump(tree, "settings.kvtb")   # binary, by extension

    tree = kvt.loads("{value: 42}")
    text = kvt.dumps(tree)
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import BinaryIO, Optional, TextIO, Union

from .binary_archive import BinaryReader, BinaryWriter
from .text_archive import TextReader, TextWriter, parse, stringify
from .tree import Branch

BINARY_SUFFIXES = frozenset({".kvtb", ".bin"})
DEFAULT_INDENT_SIZE = 4


def is_binary_path(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in BINARY_SUFFIXES


def _is_binary_stream(stream) -> bool:
    return isinstance(stream, (io.BufferedIOBase, io.RawIOBase)) or "b" in getattr(stream, "mode", "")


def load(source: Union[str, Path, TextIO, BinaryIO]) -> Branch:
    """Load a tree from a file.

    Format is auto-detected by:
    - File extension (.kvtb or .bin for binary) for paths
    - File mode ('b' in mode) or a binary buffer for file objects

    Args:
        source: File path (str or Path) or file-like object

    Returns:
        The root branch

    Example:
        config = kvt.load("config.kvt")
        with open("data.kvtb", "rb") as f:
            data = kvt.load(f)
    """
    if isinstance(source, (str, Path)):
        if is_binary_path(source):
            return load_binary(source)
        return load_text(source)

    if _is_binary_stream(source):
        return load_binary(source)
    return load_text(source)


def load_text(source: Union[str, Path, TextIO]) -> Branch:
    """Load a tree from a text archive file."""
    with TextReader(source) as reader:
        return reader.read_all()


def load_binary(source: Union[str, Path, BinaryIO]) -> Branch:
    """Load a tree from a binary archive file.

    Example:
        data = kvt.load_binary("data.kvtb")
    """
    with BinaryReader(source) as reader:
        return reader.read_all()


def dump(tree: Branch, dest: Union[str, Path, TextIO, BinaryIO], indent_size: Optional[int] = DEFAULT_INDENT_SIZE):
    """Write a tree to a file.

    Format is auto-detected by file extension:
    - .kvtb, .bin: Binary format
    - anything else: Text format

    File objects are written as text unless they are binary buffers.

    Args:
        tree: Root branch to write
        dest: File path (str or Path) or file-like object
        indent_size: Spaces per nesting level for text, None for one line

    Example:
        kvt.dump(config, "config.kvt")
        kvt.dump(data, "output.kvtb")  # Binary format
    """
    if isinstance(dest, (str, Path)):
        if is_binary_path(dest):
            dump_binary(tree, dest)
            return
    elif _is_binary_stream(dest):
        dump_binary(tree, dest)
        return
    dump_text(tree, dest, indent_size)


def dump_text(tree: Branch, dest: Union[str, Path, TextIO], indent_size: Optional[int] = DEFAULT_INDENT_SIZE):
    """Write a tree to a text archive file."""
    with TextWriter(dest, indent_size) as writer:
        writer.write_all(tree)


def dump_binary(tree: Branch, dest: Union[str, Path, BinaryIO]):
    """Write a tree to a binary archive file."""
    with BinaryWriter(dest) as writer:
        writer.write_all(tree)


def loads(text: str) -> Branch:
    """Parse a text archive from a string.

    Example:
        data = kvt.loads("{value: 42}")
    """
    return parse(text)


def dumps(tree: Branch, indent_size: Optional[int] = None) -> str:
    """Serialize a tree to a text archive string.

    Example:
        text = kvt.dumps(tree)  # '{value:42}'
    """
    return stringify(tree, indent_size)
