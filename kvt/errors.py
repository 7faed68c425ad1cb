"""
errors.py - Error kinds raised by the KVT tree and its archives

Every exception carries a structured ``kind`` plus the offending datum as
attributes, so callers can render or translate messages themselves.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Any


class ErrorKind(Enum):
    UNKNOWN_TYPE_TAG = auto()
    UNKNOWN_ARRAY_PREFIX = auto()
    UNSUPPORTED_OPERATION = auto()
    INVALID_TYPE_PAIRING = auto()
    TYPE_MISMATCH = auto()
    MISSING_CHILD = auto()
    LOWERING_FAILURE = auto()
    SYNTAX = auto()
    DECODE_MALFORMED = auto()
    DECODE_TRUNCATED = auto()
    DECODE_UNKNOWN_TAG = auto()


class KVTError(Exception):
    """Base class for all errors raised by this package."""

    kind: ErrorKind


class UnknownTypeTagError(KVTError, ValueError):
    """A binary type id that no NodeType uses."""

    kind = ErrorKind.UNKNOWN_TYPE_TAG

    def __init__(self, tag: Any):
        self.tag = tag
        super().__init__(f"Unrecognized type tag: {tag!r}")


class UnknownArrayPrefixError(KVTError, ValueError):
    """An array prefix letter that no array NodeType uses."""

    kind = ErrorKind.UNKNOWN_ARRAY_PREFIX

    def __init__(self, letter: Any):
        self.letter = letter
        super().__init__(f"Unrecognized array prefix: {letter!r}")


class UnsupportedOperationError(KVTError, TypeError):
    """A branch-only operation was called on a leaf."""

    kind = ErrorKind.UNSUPPORTED_OPERATION

    def __init__(self, operation: str, node_type: Any):
        self.operation = operation
        self.node_type = node_type
        super().__init__(f"{operation}() is not supported on a {node_type.name} leaf")


class InvalidTypePairingError(KVTError, TypeError):
    """A value whose shape or range does not fit the declared NodeType."""

    kind = ErrorKind.INVALID_TYPE_PAIRING

    def __init__(self, node_type: Any, value: Any, reason: str = ""):
        self.node_type = node_type
        self.value = value
        msg = f"Cannot store {type(value).__name__} as {node_type.name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TypeMismatchError(KVTError, TypeError):
    """A typed read against a child of a different type."""

    kind = ErrorKind.TYPE_MISMATCH

    def __init__(self, name: str, expected: Any, actual: Any):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Child {name!r} is {actual.name}, not {expected.name}"
        )


class MissingChildError(KVTError, KeyError):
    """A typed read of a child that does not exist."""

    kind = ErrorKind.MISSING_CHILD

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"No child named {self.name!r}"


class LoweringError(KVTError, ValueError):
    """A parsed entry whose value cannot be turned into a tree node."""

    kind = ErrorKind.LOWERING_FAILURE


class ParseError(KVTError, ValueError):
    """Error during text archive parsing."""

    kind = ErrorKind.SYNTAX

    def __init__(self, message: str, line: int = None, column: int = None):
        self.line = line
        self.column = column
        full_msg = message
        if line is not None:
            full_msg = f"Line {line}: {message}"
            if column is not None:
                full_msg = f"Line {line}, column {column}: {message}"
        super().__init__(full_msg)


class DecodeError(KVTError, ValueError):
    """Malformed binary archive data."""

    kind = ErrorKind.DECODE_MALFORMED


class DecodeTruncatedError(DecodeError):
    """The binary stream ended before the tree was complete."""

    kind = ErrorKind.DECODE_TRUNCATED


class DecodeUnknownTagError(DecodeError):
    """The binary stream holds a type tag that no NodeType uses."""

    kind = ErrorKind.DECODE_UNKNOWN_TAG

    def __init__(self, tag: int):
        self.tag = tag
        super().__init__(f"Unknown type tag in binary data: {tag}")
