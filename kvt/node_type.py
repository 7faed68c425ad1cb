"""
node_type.py - The closed set of KVT type tags

Every value stored in a tree has one of 18 types: nine scalar kinds and a
homogeneous array of each. Each type has a stable one-byte id used by the
binary archive, and array types also have the one-letter prefix used by the
text archive (e.g. ``[I: 1, 2, 3]``).

Usage:
    from kvt.node_type import NodeType

    NodeType.from_binary_id(9)      # NodeType.INTEGER_ARRAY
    NodeType.from_array_letter("T") # NodeType.STRING_ARRAY
    NodeType.INTEGER.array_type     # NodeType.INTEGER_ARRAY
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .errors import UnknownArrayPrefixError, UnknownTypeTagError


class NodeType(Enum):
    """Type tag of a tree node.

    Values are ``(binary_id, array_letter)`` pairs; scalar kinds have no letter.
    """

    BOOLEAN = (0, None)
    BOOLEAN_ARRAY = (1, "Z")
    BYTE = (2, None)
    BYTE_ARRAY = (3, "B")
    DOUBLE = (4, None)
    DOUBLE_ARRAY = (5, "D")
    FLOAT = (6, None)
    FLOAT_ARRAY = (7, "F")
    INTEGER = (8, None)
    INTEGER_ARRAY = (9, "I")
    LONG = (10, None)
    LONG_ARRAY = (11, "L")
    NODE = (12, None)
    NODE_ARRAY = (13, "N")
    SHORT = (14, None)
    SHORT_ARRAY = (15, "S")
    STRING = (16, None)
    STRING_ARRAY = (17, "T")

    def __init__(self, binary_id: int, array_letter: Optional[str]):
        self.binary_id = binary_id
        self.array_letter = array_letter

    def __repr__(self) -> str:
        return f"NodeType.{self.name}"

    @property
    def is_array(self) -> bool:
        return self.array_letter is not None

    @property
    def element_type(self) -> NodeType:
        """Scalar kind held by an array kind. Scalar kinds return themselves."""
        if not self.is_array:
            return self
        return NodeType[self.name[: -len("_ARRAY")]]

    @property
    def array_type(self) -> NodeType:
        """Array kind holding this scalar kind. Array kinds return themselves."""
        if self.is_array:
            return self
        return NodeType[self.name + "_ARRAY"]

    @classmethod
    def from_binary_id(cls, binary_id: int) -> NodeType:
        """Look up a type by its binary tag.

        Raises:
            UnknownTypeTagError: If no type uses that tag.
        """
        try:
            return _BY_BINARY_ID[binary_id]
        except (KeyError, TypeError):
            raise UnknownTypeTagError(binary_id) from None

    @classmethod
    def from_array_letter(cls, letter: str) -> NodeType:
        """Look up an array type by its text prefix letter (case-sensitive).

        Raises:
            UnknownArrayPrefixError: If no array type uses that letter.
        """
        try:
            return _BY_ARRAY_LETTER[letter]
        except (KeyError, TypeError):
            raise UnknownArrayPrefixError(letter) from None


_BY_BINARY_ID = {t.binary_id: t for t in NodeType}
_BY_ARRAY_LETTER = {t.array_letter: t for t in NodeType if t.is_array}

SCALAR_TYPES = tuple(t for t in NodeType if not t.is_array)
ARRAY_TYPES = tuple(t for t in NodeType if t.is_array)
