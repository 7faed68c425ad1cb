"""KVT - typed key/value trees with text and binary archive formats."""

from __future__ import annotations

from . import binary_archive, text_archive
from .archive import (
    dump,
    dump_binary,
    dump_text,
    dumps,
    load,
    load_binary,
    load_text,
    loads,
)
from .binary_archive import decode, encode, encoded_size
from .errors import (
    DecodeError,
    DecodeTruncatedError,
    DecodeUnknownTagError,
    ErrorKind,
    InvalidTypePairingError,
    KVTError,
    LoweringError,
    MissingChildError,
    ParseError,
    TypeMismatchError,
    UnknownArrayPrefixError,
    UnknownTypeTagError,
    UnsupportedOperationError,
)
from .node_type import NodeType
from .text_archive import parse, stringify
from .tree import ArrayLeaf, Branch, ScalarLeaf, Tree

__version__: str = "0.1.0"
__all__: list[str] = [
    "ArrayLeaf",
    "Branch",
    "DecodeError",
    "DecodeTruncatedError",
    "DecodeUnknownTagError",
    "ErrorKind",
    "InvalidTypePairingError",
    "KVTError",
    "LoweringError",
    "MissingChildError",
    "NodeType",
    "ParseError",
    "ScalarLeaf",
    "Tree",
    "TypeMismatchError",
    "UnknownArrayPrefixError",
    "UnknownTypeTagError",
    "UnsupportedOperationError",
    "binary_archive",
    "decode",
    "dump",
    "dump_binary",
    "dump_text",
    "dumps",
    "encode",
    "encoded_size",
    "load",
    "load_binary",
    "load_text",
    "loads",
    "parse",
    "stringify",
    "text_archive",
]
