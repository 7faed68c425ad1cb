"""Shared fixtures: a tree that uses every NodeType."""

from __future__ import annotations

import pytest

from kvt.node_type import NodeType
from kvt.tree import Branch

ANNOYING_NAME = "annoying name 7!@#$%^ %^&_+'-={}|[]\\*()\""
ANNOYING_VALUE = "annoying value 7!@#$%^ %^&_+'-={}|[]\\*()\"\n\ttab"


def build_full_tree() -> Branch:
    tree = Branch()
    tree.add(ANNOYING_NAME, NodeType.STRING, ANNOYING_VALUE)
    tree.add("bool", NodeType.BOOLEAN, True)
    tree.add("byte", NodeType.BYTE, -5)
    tree.add("double", NodeType.DOUBLE, 1.02)
    tree.add("float", NodeType.FLOAT, 2.34)
    tree.add("int", NodeType.INTEGER, -70000)
    tree.add("long", NodeType.LONG, -(2**63))
    tree.add("short", NodeType.SHORT, 300)
    tree.add("string", NodeType.STRING, "test")
    tree.add("empty", NodeType.STRING, "")

    child = tree.add("child1")
    child.add("child2").add("deep", NodeType.LONG, 2**40)
    child.add("value", NodeType.DOUBLE, -0.5)

    tree.add("boolArray", NodeType.BOOLEAN_ARRAY, [True, False, True])
    tree.add("byteArray", NodeType.BYTE_ARRAY, [1, -128, 127])
    tree.add("doubleArray", NodeType.DOUBLE_ARRAY, [1.02, -0.5, 1e100])
    tree.add("floatArray", NodeType.FLOAT_ARRAY, [2.34, -1.5])
    tree.add("intArray", NodeType.INTEGER_ARRAY, [3, -(2**31)])
    tree.add("longArray", NodeType.LONG_ARRAY, [4, 2**63 - 1])
    tree.add("shortArray", NodeType.SHORT_ARRAY, [5, -32768])
    tree.add("stringArray", NodeType.STRING_ARRAY, ["test", "with \"quotes\"", ""])
    tree.add("emptyArray", NodeType.INTEGER_ARRAY, [])

    nodes = tree.add("childArray", NodeType.NODE_ARRAY)
    nodes.append(Branch())
    element = Branch()
    element.add("name", NodeType.STRING, "second")
    element.add("tags", NodeType.STRING_ARRAY, ["a", "b"])
    nodes.append(element)
    return tree


@pytest.fixture
def full_tree() -> Branch:
    """A tree holding every NodeType, nested branches and awkward names."""
    return build_full_tree()
