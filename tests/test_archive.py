"""Tests for load/dump/loads/dumps and format detection."""

from __future__ import annotations

import io

import pytest

import kvt
from kvt.archive import is_binary_path
from kvt.binary_archive import encode
from kvt.errors import DecodeError, ParseError
from kvt.node_type import NodeType
from kvt.tree import Branch


class TestFormatDetection:
    """Suffixes select the binary format."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("tree.kvtb", True),
            ("tree.KVTB", True),
            ("dir/tree.bin", True),
            ("tree.kvt", False),
            ("tree.txt", False),
            ("tree", False),
            ("tree.kvtb.kvt", False),
        ],
    )
    def test_is_binary_path(self, path: str, expected: bool) -> None:
        assert is_binary_path(path) is expected


class TestFiles:
    """load and dump through the file system."""

    @pytest.mark.parametrize("name", ["tree.kvt", "tree.txt", "tree.kvtb", "tree.bin"])
    def test_dump_then_load(self, full_tree: Branch, tmp_path, name: str) -> None:
        path = tmp_path / name
        kvt.dump(full_tree, path)
        assert kvt.load(path) == full_tree
        assert kvt.load(str(path)) == full_tree

    def test_binary_suffix_writes_binary(self, full_tree: Branch, tmp_path) -> None:
        path = tmp_path / "tree.kvtb"
        kvt.dump(full_tree, path)
        assert path.read_bytes() == encode(full_tree)

    def test_text_is_indented_by_default(self, tmp_path) -> None:
        tree = Branch()
        tree.add("a", NodeType.INTEGER, 1)
        path = tmp_path / "tree.kvt"
        kvt.dump(tree, path)
        assert path.read_text(encoding="utf-8") == "{\n    a: 1\n}\n"

    def test_compact_text(self, tmp_path) -> None:
        tree = Branch()
        tree.add("a", NodeType.INTEGER, 1)
        path = tmp_path / "tree.kvt"
        kvt.dump(tree, path, indent_size=None)
        assert path.read_text(encoding="utf-8") == "{a:1}"

    def test_explicit_format_ignores_suffix(self, full_tree: Branch, tmp_path) -> None:
        path = tmp_path / "tree.data"
        kvt.dump_binary(full_tree, path)
        assert kvt.load_binary(path) == full_tree
        with pytest.raises((UnicodeDecodeError, ParseError)):
            kvt.load(path)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            kvt.load(tmp_path / "missing.kvt")

    def test_bad_text_file(self, tmp_path) -> None:
        path = tmp_path / "bad.kvt"
        path.write_text("{a: }", encoding="utf-8")
        with pytest.raises(ParseError):
            kvt.load(path)

    def test_bad_binary_file(self, tmp_path) -> None:
        path = tmp_path / "bad.kvtb"
        path.write_bytes(b"\x0c\x00")
        with pytest.raises(DecodeError):
            kvt.load(path)


class TestStreams:
    """load and dump with file objects."""

    def test_text_stream(self, full_tree: Branch) -> None:
        buf = io.StringIO()
        kvt.dump(full_tree, buf)
        buf.seek(0)
        assert kvt.load(buf) == full_tree

    def test_binary_stream(self, full_tree: Branch) -> None:
        buf = io.BytesIO()
        kvt.dump(full_tree, buf)
        assert buf.getvalue() == encode(full_tree)
        buf.seek(0)
        assert kvt.load(buf) == full_tree

    def test_opened_files(self, full_tree: Branch, tmp_path) -> None:
        path = tmp_path / "tree.data"
        with open(path, "wb") as f:
            kvt.dump(full_tree, f)
        with open(path, "rb") as f:
            assert kvt.load(f) == full_tree
        with open(path, "w", encoding="utf-8") as f:
            kvt.dump(full_tree, f)
        with open(path, "r", encoding="utf-8") as f:
            assert kvt.load(f) == full_tree


class TestStrings:
    """loads and dumps."""

    def test_loads(self) -> None:
        tree = kvt.loads("{value: 42, name: \"x\"}")
        assert tree.get_integer("value") == 42
        assert tree.get_string("name") == "x"

    def test_dumps_is_compact_by_default(self) -> None:
        tree = Branch()
        tree.add("value", NodeType.INTEGER, 42)
        assert kvt.dumps(tree) == "{value:42}"
        assert kvt.dumps(tree, indent_size=2) == "{\n  value: 42\n}"

    def test_round_trip(self, full_tree: Branch) -> None:
        assert kvt.loads(kvt.dumps(full_tree)) == full_tree
