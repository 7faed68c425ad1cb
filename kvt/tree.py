"""
tree.py - The typed key/value tree

A tree is rooted at a Branch, which maps names to children. Children are
either other branches, ScalarLeaf nodes holding a single typed value, or
ArrayLeaf nodes holding a homogeneous sequence.

Payload types:
- BOOLEAN: bool                 BOOLEAN_ARRAY: ndarray[bool_]
- BYTE/SHORT/INTEGER/LONG: int  *_ARRAY: ndarray[int8/int16/int32/int64]
- FLOAT/DOUBLE: float           *_ARRAY: ndarray[float32/float64]
- STRING: str                   STRING_ARRAY: tuple[str, ...]
- NODE: Branch                  NODE_ARRAY: tuple[Branch, ...]

Names are flat keys: "a.b" is a single key, not a path.

Usage:
    from kvt import Branch, NodeType

    root = Branch()
    root.add("count", NodeType.INTEGER, 3)
    root.add("values", NodeType.DOUBLE_ARRAY, [1.0, 2.5])
    child = root.add("child")
    child.add("name", NodeType.STRING, "widget")

    root.get("count")            # 3
    root.get_integer("missing")  # 0
    root.require("count", NodeType.LONG)  # raises TypeMismatchError
"""

from __future__ import annotations

import copy
import math
from abc import ABC, abstractmethod
from typing import Any, Iterator, Optional

import numpy as np

from .errors import (
    InvalidTypePairingError,
    MissingChildError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from .node_type import NodeType


ELEMENT_DTYPES = {
    NodeType.BOOLEAN: np.dtype(np.bool_),
    NodeType.BYTE: np.dtype(np.int8),
    NodeType.SHORT: np.dtype(np.int16),
    NodeType.INTEGER: np.dtype(np.int32),
    NodeType.LONG: np.dtype(np.int64),
    NodeType.FLOAT: np.dtype(np.float32),
    NodeType.DOUBLE: np.dtype(np.float64),
}

# Finite doubles at or above this magnitude round to infinity in single precision.
_FLOAT32_LIMIT = (2 - 2**-24) * 2.0**127


def _is_bool(value: Any) -> bool:
    return isinstance(value, (bool, np.bool_))


def _is_integer(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not _is_bool(value)


def _is_real(value: Any) -> bool:
    return _is_integer(value) or isinstance(value, (float, np.floating))


def _same_value(a: Any, b: Any) -> bool:
    """Payload equality in which NaN equals NaN."""
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b


def _to_float32(node_type: NodeType, value: Any) -> float:
    value = float(value)
    if np.isfinite(value) and abs(value) >= _FLOAT32_LIMIT:
        raise InvalidTypePairingError(node_type, value, "out of single precision range")
    return float(np.float32(value))


def coerce_scalar(node_type: NodeType, value: Any) -> Any:
    """Check a value against a scalar type and return its canonical form."""
    match node_type:
        case NodeType.BOOLEAN:
            if not _is_bool(value):
                raise InvalidTypePairingError(node_type, value)
            return bool(value)
        case NodeType.BYTE | NodeType.SHORT | NodeType.INTEGER | NodeType.LONG:
            if not _is_integer(value):
                raise InvalidTypePairingError(node_type, value)
            info = np.iinfo(ELEMENT_DTYPES[node_type])
            if not info.min <= value <= info.max:
                raise InvalidTypePairingError(
                    node_type, value, f"{value} is outside [{info.min}, {info.max}]"
                )
            return int(value)
        case NodeType.FLOAT:
            if not _is_real(value):
                raise InvalidTypePairingError(node_type, value)
            return _to_float32(node_type, value)
        case NodeType.DOUBLE:
            if not _is_real(value):
                raise InvalidTypePairingError(node_type, value)
            return float(value)
        case NodeType.STRING:
            if not isinstance(value, str):
                raise InvalidTypePairingError(node_type, value)
            return value
        case NodeType.NODE:
            if not isinstance(value, Branch):
                raise InvalidTypePairingError(node_type, value)
            # A tree owns its branches; sharing one would allow aliases and cycles.
            return copy.deepcopy(value)
        case _:
            raise InvalidTypePairingError(node_type, value, "not a scalar type")


def coerce_array(node_type: NodeType, values: Any) -> Any:
    """Check a sequence against an array type and return a private copy.

    Numeric and boolean arrays become one-dimensional numpy arrays of the
    element dtype; string and node arrays become tuples.
    """
    if not node_type.is_array:
        raise InvalidTypePairingError(node_type, values, "not an array type")
    if isinstance(values, (str, bytes, dict, Branch)):
        raise InvalidTypePairingError(node_type, values, "not a sequence")

    element = node_type.element_type
    if element in (NodeType.STRING, NodeType.NODE):
        try:
            items = list(values)
        except TypeError:
            raise InvalidTypePairingError(node_type, values, "not a sequence") from None
        return tuple(coerce_scalar(element, item) for item in items)

    try:
        raw = np.asarray(values)
    except ValueError as e:
        raise InvalidTypePairingError(node_type, values, str(e)) from None
    if raw.ndim != 1:
        raise InvalidTypePairingError(node_type, values, "expected a flat sequence")

    dtype = ELEMENT_DTYPES[element]
    if raw.size == 0:
        return np.array([], dtype=dtype)

    kind = raw.dtype.kind
    if element is NodeType.BOOLEAN:
        if kind != "b":
            raise InvalidTypePairingError(node_type, values, f"elements are {raw.dtype}")
    elif dtype.kind == "i":
        if kind not in "iu":
            raise InvalidTypePairingError(node_type, values, f"elements are {raw.dtype}")
        info = np.iinfo(dtype)
        if raw.min() < info.min or raw.max() > info.max:
            raise InvalidTypePairingError(
                node_type, values, f"elements outside [{info.min}, {info.max}]"
            )
    else:
        if kind not in "iuf":
            raise InvalidTypePairingError(node_type, values, f"elements are {raw.dtype}")
        if element is NodeType.FLOAT:
            finite = raw[np.isfinite(raw)]
            if finite.size and np.abs(finite).max() >= _FLOAT32_LIMIT:
                raise InvalidTypePairingError(
                    node_type, values, "elements out of single precision range"
                )
    return raw.astype(dtype)


def _empty_sequence(node_type: NodeType):
    """Read-only empty payload returned by the *_array accessors on a miss."""
    element = node_type.element_type
    if element in (NodeType.STRING, NodeType.NODE):
        return ()
    empty = np.array([], dtype=ELEMENT_DTYPES[element])
    empty.setflags(write=False)
    return empty


class Tree(ABC):
    """Capability surface shared by branches and leaves.

    Leaves reject everything that needs children; the typed convenience
    accessors are defined once here on top of ``require``.
    """

    __slots__ = ()

    @abstractmethod
    def get_type(self, name: Optional[str] = None) -> Optional[NodeType]:
        """Type of this node, or of the child ``name`` (None if absent)."""

    def add(self, name: str, node_type: NodeType = NodeType.NODE, value: Any = None) -> Tree:
        raise UnsupportedOperationError("add", self.get_type())

    def get(self, name: str) -> Any:
        raise UnsupportedOperationError("get", self.get_type())

    def require(self, name: str, node_type: NodeType) -> Any:
        raise UnsupportedOperationError("require", self.get_type())

    def child(self, name: str) -> Optional[Tree]:
        return None

    def has_child(self, name: str) -> bool:
        return False

    def get_keys(self) -> list[str]:
        return []

    def _get_or_default(self, name: str, node_type: NodeType, default: Any) -> Any:
        try:
            return self.require(name, node_type)
        except (MissingChildError, TypeMismatchError):
            return default

    # Scalar accessors. Missing children and type mismatches give the default.

    def get_boolean(self, name: str) -> bool:
        return self._get_or_default(name, NodeType.BOOLEAN, False)

    def get_byte(self, name: str) -> int:
        return self._get_or_default(name, NodeType.BYTE, 0)

    def get_short(self, name: str) -> int:
        return self._get_or_default(name, NodeType.SHORT, 0)

    def get_integer(self, name: str) -> int:
        return self._get_or_default(name, NodeType.INTEGER, 0)

    def get_long(self, name: str) -> int:
        return self._get_or_default(name, NodeType.LONG, 0)

    def get_float(self, name: str) -> float:
        return self._get_or_default(name, NodeType.FLOAT, 0.0)

    def get_double(self, name: str) -> float:
        return self._get_or_default(name, NodeType.DOUBLE, 0.0)

    def get_string(self, name: str) -> Optional[str]:
        return self._get_or_default(name, NodeType.STRING, None)

    def get_node(self, name: str) -> Optional[Branch]:
        return self._get_or_default(name, NodeType.NODE, None)

    # Array accessors. Misses give an empty read-only sequence.

    def _get_array(self, name: str, node_type: NodeType):
        return self._get_or_default(name, node_type, _empty_sequence(node_type))

    def get_boolean_array(self, name: str) -> np.ndarray:
        return self._get_array(name, NodeType.BOOLEAN_ARRAY)

    def get_byte_array(self, name: str) -> np.ndarray:
        return self._get_array(name, NodeType.BYTE_ARRAY)

    def get_short_array(self, name: str) -> np.ndarray:
        return self._get_array(name, NodeType.SHORT_ARRAY)

    def get_integer_array(self, name: str) -> np.ndarray:
        return self._get_array(name, NodeType.INTEGER_ARRAY)

    def get_long_array(self, name: str) -> np.ndarray:
        return self._get_array(name, NodeType.LONG_ARRAY)

    def get_float_array(self, name: str) -> np.ndarray:
        return self._get_array(name, NodeType.FLOAT_ARRAY)

    def get_double_array(self, name: str) -> np.ndarray:
        return self._get_array(name, NodeType.DOUBLE_ARRAY)

    def get_string_array(self, name: str):
        return self._get_array(name, NodeType.STRING_ARRAY)

    def get_node_array(self, name: str):
        return self._get_array(name, NodeType.NODE_ARRAY)


class ScalarLeaf(Tree):
    """A leaf holding exactly one value of a scalar type."""

    __slots__ = ("_type", "_value")

    def __init__(self, node_type: NodeType, value: Any):
        if node_type.is_array:
            raise InvalidTypePairingError(node_type, value, "not a scalar type")
        self._type = node_type
        self._value = coerce_scalar(node_type, value)

    @property
    def node_type(self) -> NodeType:
        return self._type

    @property
    def value(self) -> Any:
        return self._value

    def value_as(self, node_type: NodeType) -> Any:
        """Return the value, checking that the leaf has the expected type."""
        if node_type is not self._type:
            raise TypeMismatchError("<leaf>", node_type, self._type)
        return self._value

    def get_type(self, name: Optional[str] = None) -> Optional[NodeType]:
        if name is not None:
            return None
        return self._type

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScalarLeaf):
            return NotImplemented
        return self._type is other._type and _same_value(self._value, other._value)

    __hash__ = None

    def __repr__(self) -> str:
        return f"ScalarLeaf({self._type!r}, {self._value!r})"


class ArrayLeaf(Tree):
    """A leaf holding an ordered sequence of values of one scalar type."""

    __slots__ = ("_type", "_values")

    def __init__(self, node_type: NodeType, values: Any = ()):
        self._type = node_type
        self._values = coerce_array(node_type, values)

    @property
    def node_type(self) -> NodeType:
        return self._type

    @property
    def values(self):
        return self._values

    def values_as(self, node_type: NodeType):
        """Return the values, checking that the leaf has the expected type."""
        if node_type is not self._type:
            raise TypeMismatchError("<leaf>", node_type, self._type)
        return self._values

    def append(self, value: Any) -> Any:
        """Append one element, checked against the element type.

        Returns the stored element. For NODE_ARRAY leaves that is the leaf's
        own copy of the branch, which can still be filled in.
        """
        element = self._type.element_type
        item = coerce_scalar(element, value)
        if isinstance(self._values, tuple):
            self._values = self._values + (item,)
        else:
            self._values = np.append(self._values, np.array([item], dtype=self._values.dtype))
        return item

    def __len__(self) -> int:
        return len(self._values)

    def get_type(self, name: Optional[str] = None) -> Optional[NodeType]:
        if name is not None:
            return None
        return self._type

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ArrayLeaf):
            return NotImplemented
        if self._type is not other._type:
            return False
        if isinstance(self._values, tuple):
            return self._values == other._values
        # NaN elements compare equal so that decoded trees match their source
        return np.array_equal(
            self._values, other._values, equal_nan=self._values.dtype.kind == "f"
        )

    __hash__ = None

    def __repr__(self) -> str:
        values = list(self._values) if isinstance(self._values, tuple) else self._values.tolist()
        return f"ArrayLeaf({self._type!r}, {values!r})"


class Branch(Tree):
    """A node holding named children, kept in key order."""

    __slots__ = ("_children",)

    def __init__(self):
        self._children: dict[str, Tree] = {}

    def add(self, name: str, node_type: NodeType = NodeType.NODE, value: Any = None) -> Tree:
        """Insert a child, replacing any existing child of that name.

        Args:
            name: Key of the child. Dots are ordinary characters.
            node_type: Type of the new child. Defaults to NODE.
            value: Payload matching ``node_type``. For NODE, None creates an
                empty branch and a given branch is stored as a deep copy;
                for array types, None creates an empty array.

        Returns:
            The inserted child (the stored branch for NODE children).

        Raises:
            InvalidTypePairingError: If ``value`` does not fit ``node_type``.
        """
        if not isinstance(name, str):
            raise TypeError(f"Child names must be str, not {type(name).__name__}")
        if not isinstance(node_type, NodeType):
            raise TypeError(f"Expected a NodeType, got {node_type!r}")

        if node_type is NodeType.NODE:
            child = Branch() if value is None else coerce_scalar(node_type, value)
        elif node_type.is_array:
            child = ArrayLeaf(node_type, () if value is None else value)
        else:
            if value is None:
                raise InvalidTypePairingError(node_type, value, "a value is required")
            child = ScalarLeaf(node_type, value)

        self._children[name] = child
        return child

    def child(self, name: str) -> Optional[Tree]:
        return self._children.get(name)

    def get(self, name: str) -> Any:
        """Return the payload of a child, or None if there is no such child."""
        return _payload(self._children.get(name))

    def require(self, name: str, node_type: NodeType) -> Any:
        """Return the payload of a child that must exist with the given type.

        Raises:
            MissingChildError: If there is no child called ``name``.
            TypeMismatchError: If the child has a different type.
        """
        node = self._children.get(name)
        if node is None:
            raise MissingChildError(name)
        actual = node.get_type()
        if actual is not node_type:
            raise TypeMismatchError(name, node_type, actual)
        return _payload(node)

    def get_type(self, name: Optional[str] = None) -> Optional[NodeType]:
        if name is None:
            return NodeType.NODE
        node = self._children.get(name)
        return None if node is None else node.get_type()

    def has_child(self, name: str) -> bool:
        return name in self._children

    def get_keys(self) -> list[str]:
        return sorted(self._children)

    def items(self) -> Iterator[tuple[str, Tree]]:
        for key in sorted(self._children):
            yield key, self._children[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.get_keys())

    def __len__(self) -> int:
        return len(self._children)

    def __contains__(self, name: object) -> bool:
        return name in self._children

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Branch):
            return NotImplemented
        return self._children == other._children

    __hash__ = None

    def __repr__(self) -> str:
        inner = ", ".join(f"{key!r}: {node!r}" for key, node in self.items())
        return f"Branch({{{inner}}})"

    def __str__(self) -> str:
        from .text_archive import stringify

        return stringify(self)


def _payload(node: Optional[Tree]) -> Any:
    if node is None:
        return None
    if isinstance(node, Branch):
        return node
    if isinstance(node, ScalarLeaf):
        return node.value
    return node.values
