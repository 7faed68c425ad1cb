"""
binary_archive.py - Reader and writer for the KVT binary format

Binary Format specification (all integers big-endian):
- Document: NODE type tag (1 byte) + node payload; the root has no name
- Child record: type tag (1 byte) + name (uint32 length + UTF-8) + payload
- Node payload: uint32 child count + that many child records, in key order
- Scalars: BOOLEAN 1 byte (0 or 1), BYTE 1, SHORT 2, INTEGER 4, LONG 8,
  FLOAT 4 and DOUBLE 8 (IEEE-754)
- Strings: uint32 length prefix + UTF-8 bytes
- Arrays: uint32 element count + packed elements; string arrays use
  length-prefixed elements, node arrays use bare node payloads

The type tags are the NodeType binary ids (BOOLEAN=0 ... STRING_ARRAY=17).

Usage:
    from kvt import binary_archive

    data = binary_archive.encode(tree)
    tree = binary_archive.decode(data)

    with binary_archive.BinaryWriter("tree.kvtb") as writer:
        writer.write_all(tree)
"""

from __future__ import annotations

import io
import logging
import struct
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np

from .errors import (
    DecodeError,
    DecodeTruncatedError,
    DecodeUnknownTagError,
    UnknownTypeTagError,
)
from .node_type import NodeType
from .tree import ArrayLeaf, Branch, ELEMENT_DTYPES, ScalarLeaf, Tree

logger = logging.getLogger(__name__)

_SCALAR_FORMATS = {
    NodeType.BOOLEAN: ">B",
    NodeType.BYTE: ">b",
    NodeType.SHORT: ">h",
    NodeType.INTEGER: ">i",
    NodeType.LONG: ">q",
    NodeType.FLOAT: ">f",
    NodeType.DOUBLE: ">d",
}

# Wire dtypes for packed array elements
_ARRAY_DTYPES = {
    NodeType.BOOLEAN: np.dtype("u1"),
    NodeType.BYTE: np.dtype("i1"),
    NodeType.SHORT: np.dtype(">i2"),
    NodeType.INTEGER: np.dtype(">i4"),
    NodeType.LONG: np.dtype(">i8"),
    NodeType.FLOAT: np.dtype(">f4"),
    NodeType.DOUBLE: np.dtype(">f8"),
}

_WIDTHS = {t: struct.calcsize(fmt) for t, fmt in _SCALAR_FORMATS.items()}

_LENGTH = struct.Struct(">I")


class BinaryReader:
    """Reader for the KVT binary format.

    Reads exactly one document per ``read_all`` call, leaving any following
    bytes in the stream.
    """

    def __init__(self, source: Union[str, Path, BinaryIO]):
        if isinstance(source, (str, Path)):
            self._file = open(source, "rb")
            self._owns_file = True
        else:
            self._file = source
            self._owns_file = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        if self._owns_file:
            self._file.close()

    def _read_exact(self, count: int, what: str) -> bytes:
        data = self._file.read(count)
        if data is None or len(data) < count:
            raise DecodeTruncatedError(f"Unexpected end of binary data while reading {what}")
        return data

    def _read_length(self, what: str) -> int:
        return _LENGTH.unpack(self._read_exact(4, what))[0]

    def _read_tag(self) -> NodeType:
        tag = self._read_exact(1, "type tag")[0]
        try:
            return NodeType.from_binary_id(tag)
        except UnknownTypeTagError:
            raise DecodeUnknownTagError(tag) from None

    def _read_string(self, what: str = "string") -> str:
        length = self._read_length(what)
        data = self._read_exact(length, what)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid UTF-8 in {what}: {e}") from None

    def _read_scalar(self, node_type: NodeType):
        if node_type is NodeType.STRING:
            return self._read_string()
        fmt = _SCALAR_FORMATS[node_type]
        value = struct.unpack(fmt, self._read_exact(_WIDTHS[node_type], node_type.name))[0]
        if node_type is NodeType.BOOLEAN:
            if value > 1:
                raise DecodeError(f"Invalid boolean byte: {value}")
            return value == 1
        return value

    def _read_array(self, node_type: NodeType):
        count = self._read_length(f"{node_type.name} count")
        element = node_type.element_type

        if element is NodeType.STRING:
            return [self._read_string("string array element") for _ in range(count)]

        wire = _ARRAY_DTYPES[element]
        data = self._read_exact(count * wire.itemsize, node_type.name)
        values = np.frombuffer(data, dtype=wire)
        if element is NodeType.BOOLEAN and values.size and values.max() > 1:
            raise DecodeError(f"Invalid boolean byte in array: {values.max()}")
        return values.astype(ELEMENT_DTYPES[element])

    def _read_node_array(self, leaf: ArrayLeaf):
        count = self._read_length("NODE_ARRAY count")
        for _ in range(count):
            self._read_branch(leaf.append(Branch()))

    def _read_branch(self, branch: Branch) -> Branch:
        """Read a node payload, adding its children to ``branch`` in place."""
        count = self._read_length("child count")
        for _ in range(count):
            node_type = self._read_tag()
            name = self._read_string("name")
            if node_type is NodeType.NODE:
                self._read_branch(branch.add(name))
            elif node_type is NodeType.NODE_ARRAY:
                self._read_node_array(branch.add(name, node_type))
            elif node_type.is_array:
                branch.add(name, node_type, self._read_array(node_type))
            else:
                branch.add(name, node_type, self._read_scalar(node_type))
        return branch

    def read_all(self) -> Branch:
        """Read one document from the stream.

        Raises:
            DecodeTruncatedError: If the stream ends early.
            DecodeUnknownTagError: If a type tag is not recognized.
            DecodeError: If the data is otherwise malformed or nested too
                deeply to read.
        """
        root_type = self._read_tag()
        if root_type is not NodeType.NODE:
            raise DecodeError(f"Document root must be NODE, got {root_type.name}")
        try:
            return self._read_branch(Branch())
        except RecursionError:
            raise DecodeError("Document is nested too deeply") from None


class BinaryWriter:
    """Writer for the KVT binary format."""

    def __init__(self, dest: Union[str, Path, BinaryIO]):
        if isinstance(dest, (str, Path)):
            self._file = open(dest, "wb")
            self._owns_file = True
        else:
            self._file = dest
            self._owns_file = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        if self._owns_file:
            self._file.close()

    def _write_tag(self, node_type: NodeType):
        self._file.write(struct.pack(">B", node_type.binary_id))

    def _write_length(self, length: int):
        self._file.write(_LENGTH.pack(length))

    def _write_string(self, value: str):
        encoded = value.encode("utf-8")
        self._write_length(len(encoded))
        self._file.write(encoded)

    def _write_scalar(self, node_type: NodeType, value):
        if node_type is NodeType.STRING:
            self._write_string(value)
        elif node_type is NodeType.BOOLEAN:
            self._file.write(struct.pack(">B", 1 if value else 0))
        else:
            self._file.write(struct.pack(_SCALAR_FORMATS[node_type], value))

    def _write_array(self, leaf: ArrayLeaf):
        values = leaf.values
        element = leaf.node_type.element_type
        self._write_length(len(values))
        if element is NodeType.NODE:
            for branch in values:
                self._write_branch(branch)
        elif element is NodeType.STRING:
            for item in values:
                self._write_string(item)
        else:
            self._file.write(np.asarray(values).astype(_ARRAY_DTYPES[element]).tobytes())

    def _write_payload(self, node: Tree):
        match node:
            case Branch():
                self._write_branch(node)
            case ScalarLeaf(node_type=NodeType.NODE):
                self._write_branch(node.value)
            case ScalarLeaf():
                self._write_scalar(node.node_type, node.value)
            case ArrayLeaf():
                self._write_array(node)
            case _:
                raise TypeError(f"Unexpected tree node: {node!r}")

    def _write_branch(self, branch: Branch):
        self._write_length(len(branch))
        for name, child in branch.items():
            self._write_tag(child.get_type())
            self._write_string(name)
            self._write_payload(child)

    def write_all(self, tree: Branch):
        """Write an entire tree as one document."""
        if not isinstance(tree, Branch):
            raise TypeError(f"Only a Branch can be written as a document, not {type(tree).__name__}")
        self._write_tag(NodeType.NODE)
        self._write_branch(tree)


def _payload_size(node: Tree) -> int:
    if isinstance(node, Branch):
        return _branch_size(node)
    node_type = node.get_type()
    if isinstance(node, ScalarLeaf):
        if node_type is NodeType.NODE:
            return _branch_size(node.value)
        if node_type is NodeType.STRING:
            return 4 + len(node.value.encode("utf-8"))
        return _WIDTHS[node_type]

    element = node_type.element_type
    if element is NodeType.NODE:
        return 4 + sum(_branch_size(b) for b in node.values)
    if element is NodeType.STRING:
        return 4 + sum(4 + len(s.encode("utf-8")) for s in node.values)
    return 4 + _WIDTHS[element] * len(node.values)


def _branch_size(branch: Branch) -> int:
    size = 4
    for name, child in branch.items():
        size += 1 + 4 + len(name.encode("utf-8"))
        size += _payload_size(child)
    return size


def encoded_size(tree: Branch) -> int:
    """Number of bytes ``encode(tree)`` produces, computed without encoding."""
    return 1 + _branch_size(tree)


def encode(tree: Branch) -> bytes:
    """Serialize a tree to bytes.

    Example:
        data = encode(tree)
    """
    buf = io.BytesIO()
    BinaryWriter(buf).write_all(tree)
    data = buf.getvalue()
    logger.debug("Encoded tree with %d top-level entries into %d bytes", len(tree), len(data))
    return data


def decode(data: bytes) -> Branch:
    """Deserialize a tree from bytes holding exactly one document.

    Raises:
        DecodeError: If the data is malformed, truncated or has trailing bytes.
    """
    buf = io.BytesIO(data)
    tree = BinaryReader(buf).read_all()
    remaining = len(data) - buf.tell()
    if remaining:
        raise DecodeError(f"{remaining} trailing bytes after document")
    logger.debug("Decoded %d bytes into tree with %d top-level entries", len(data), len(tree))
    return tree
