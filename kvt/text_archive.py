"""
text_archive.py - Reader and writer for the KVT text format

Format specification:
- A document is one node: { key: value, key: value }
- Keys: bare identifiers (letters, digits, _ - . +) or "quoted strings"
- Integers: 5 (INTEGER), 5b (BYTE), 5s (SHORT), 5L (LONG)
- Floats: 5.0 or 5.0d (DOUBLE), 5.0f (FLOAT), also 1e-5, Infinity, NaN
- Booleans: true, false
- Strings: "value" (with \\" \\\\ \\n \\t \\r escapes)
- Arrays: [I: 1, 2, 3], the letter selecting the element type
  (Z boolean, B byte, D double, F float, I integer, L long, N node,
  S short, T string)
- Nested nodes: { ... }, and node arrays [N: {...}, {...}]
- Whitespace and line breaks are insignificant

Reading happens in three steps: the scanner splits the text into tokens, the
parser builds a parse tree (NodeContext and friends) and raises ParseError on
bad syntax, and the lowering pass turns the parse tree into a Branch. Values
the grammar accepts but the tree cannot hold (300b, [I: "x"], [Q: 1]) are
lowering failures: the rest of the enclosing node is skipped and a warning is
logged, while other nodes keep loading.

Usage:
    from kvt import text_archive

    tree = text_archive.parse('{name: "widget", size: [I: 1, 2, 3]}')
    text = text_archive.stringify(tree)               # compact
    text = text_archive.stringify(tree, indent_size=4)

    with text_archive.TextReader("config.kvt") as reader:
        tree = reader.read_all()
"""

from __future__ import annotations

import logging
import math
import re
import string
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Optional, TextIO, Union

import numpy as np

from .errors import (
    InvalidTypePairingError,
    LoweringError,
    ParseError,
    UnknownArrayPrefixError,
)
from .node_type import NodeType
from .tree import ArrayLeaf, Branch, ScalarLeaf, Tree

logger = logging.getLogger(__name__)

# Keys that can be written without quotes.
NORMAL_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-.+]+$")

_BARE_CHARS = frozenset(string.ascii_letters + string.digits + "_-.+")
_WHITESPACE = frozenset(" \t\r\n")

_INTEGER_RE = re.compile(r"[+-]?[0-9]+[bBsSlL]?")
_FLOAT_RE = re.compile(
    r"[+-]?(?:"
    r"(?:[0-9]+\.[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?[fFdD]?"
    r"|[0-9]+[eE][+-]?[0-9]+[fFdD]?"
    r"|[0-9]+[fFdD]"
    r"|(?:Infinity|NaN)[fFdD]?"
    r")"
)

_INTEGER_SUFFIXES = {"b": NodeType.BYTE, "s": NodeType.SHORT, "l": NodeType.LONG}
_FLOAT_SUFFIXES = {"f": NodeType.FLOAT, "d": NodeType.DOUBLE}
_TYPE_SUFFIXES = {
    NodeType.BYTE: "B",
    NodeType.SHORT: "S",
    NodeType.LONG: "L",
    NodeType.FLOAT: "F",
}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"'}


# =============================================================================
# Tokens and scanner
# =============================================================================


class TokenType(Enum):
    STRING = auto()
    FLOAT = auto()
    INTEGER = auto()
    BOOLEAN = auto()
    IDENTIFIER = auto()
    ARRAY_PREFIX = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACK = auto()
    RBRACK = auto()
    COMMA = auto()
    COLON = auto()
    EOF = auto()


LITERAL_TOKENS = frozenset(
    {TokenType.STRING, TokenType.FLOAT, TokenType.INTEGER, TokenType.BOOLEAN}
)

_PUNCTUATION = {
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACK,
    "]": TokenType.RBRACK,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
}


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    line: int
    column: int
    offset: int


def classify_word(word: str) -> TokenType:
    """Token type of a bare word; literals win over identifiers."""
    if word in ("true", "false"):
        return TokenType.BOOLEAN
    if _INTEGER_RE.fullmatch(word):
        return TokenType.INTEGER
    if _FLOAT_RE.fullmatch(word):
        return TokenType.FLOAT
    return TokenType.IDENTIFIER


class Scanner:
    """Splits KVT text into tokens."""

    def __init__(self, text: str):
        self._text = text
        self._pos = 0
        self._line = 1
        self._column = 1

    def _peek(self) -> str:
        if self._pos < len(self._text):
            return self._text[self._pos]
        return ""

    def _get(self) -> str:
        c = self._peek()
        if c:
            self._pos += 1
            if c == "\n":
                self._line += 1
                self._column = 1
            else:
                self._column += 1
        return c

    def _skip_whitespace(self):
        while self._peek() and self._peek() in _WHITESPACE:
            self._get()

    def _read_word(self) -> str:
        start = self._pos
        while self._peek() and self._peek() in _BARE_CHARS:
            self._get()
        return self._text[start : self._pos]

    def _read_quoted_string(self) -> str:
        """Read a quoted string literal, returning its raw text with quotes."""
        line, column, start = self._line, self._column, self._pos
        self._get()
        while True:
            c = self._get()
            if c == "":
                raise ParseError("Unterminated string", line, column)
            if c == '"':
                break
            if c == "\\" and self._get() == "":
                raise ParseError("Unterminated string", line, column)
        return self._text[start : self._pos]

    def tokens(self) -> list[Token]:
        result = []
        while True:
            self._skip_whitespace()
            line, column, offset = self._line, self._column, self._pos
            c = self._peek()

            if c == "":
                result.append(Token(TokenType.EOF, "", line, column, offset))
                return result

            if c in _PUNCTUATION:
                self._get()
                result.append(Token(_PUNCTUATION[c], c, line, column, offset))
            elif c == '"':
                text = self._read_quoted_string()
                result.append(Token(TokenType.STRING, text, line, column, offset))
            elif c in _BARE_CHARS:
                word = self._read_word()
                if len(word) == 1 and word in string.ascii_letters and self._peek() == ":":
                    self._get()
                    result.append(
                        Token(TokenType.ARRAY_PREFIX, word + ":", line, column, offset)
                    )
                else:
                    result.append(Token(classify_word(word), word, line, column, offset))
            else:
                raise ParseError(f"Unexpected character {c!r}", line, column)


# =============================================================================
# Parse tree and parser
# =============================================================================


@dataclass
class LiteralContext:
    token: Token

    @property
    def text(self) -> str:
        return self.token.text


@dataclass
class ArrayContext:
    prefix: Token
    elements: list = field(default_factory=list)
    text: str = ""


@dataclass
class EntryContext:
    key: Token
    value: Union[LiteralContext, ArrayContext, "NodeContext"]


@dataclass
class NodeContext:
    entries: list[EntryContext] = field(default_factory=list)
    text: str = ""


class Parser:
    """Recursive-descent parser for the KVT grammar.

    document      = node EOF
    node          = '{' entryList? '}'
    entryList     = entry (',' entry)*
    entry         = key ':' value
    key           = Identifier | StringLiteral
    value         = literal | array | node
    array         = '[' ArrayPrefix arrayElements? ']'
    arrayElements = value (',' value)*
    """

    def __init__(self, text: str):
        self._text = text
        self._tokens = Scanner(text).tokens()
        self._index = 0

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _next(self) -> Token:
        token = self._tokens[self._index]
        if token.type is not TokenType.EOF:
            self._index += 1
        return token

    def _error(self, expected: str, token: Token) -> ParseError:
        got = "end of input" if token.type is TokenType.EOF else repr(token.text)
        return ParseError(f"Expected {expected}, got {got}", token.line, token.column)

    def _expect(self, token_type: TokenType, expected: str) -> Token:
        token = self._next()
        if token.type is not token_type:
            raise self._error(expected, token)
        return token

    def document(self) -> NodeContext:
        node = self._node()
        self._expect(TokenType.EOF, "end of input")
        return node

    def _node(self) -> NodeContext:
        start = self._expect(TokenType.LBRACE, "'{'")
        entries = []
        if self._peek().type is not TokenType.RBRACE:
            entries.append(self._entry())
            while self._peek().type is TokenType.COMMA:
                self._next()
                entries.append(self._entry())
        end = self._expect(TokenType.RBRACE, "',' or '}'")
        return NodeContext(entries, self._text[start.offset : end.offset + 1])

    def _entry(self) -> EntryContext:
        token = self._next()
        if token.type is TokenType.ARRAY_PREFIX:
            # "x:" scans as an array prefix; here it is the key x and its colon
            key = Token(TokenType.IDENTIFIER, token.text[0], token.line, token.column, token.offset)
        elif token.type in (TokenType.IDENTIFIER, TokenType.STRING):
            key = token
            self._expect(TokenType.COLON, "':'")
        else:
            raise self._error("a key", token)
        return EntryContext(key, self._value())

    def _value(self) -> Union[LiteralContext, ArrayContext, NodeContext]:
        token = self._peek()
        if token.type is TokenType.LBRACE:
            return self._node()
        if token.type is TokenType.LBRACK:
            return self._array()
        if token.type in LITERAL_TOKENS:
            return LiteralContext(self._next())
        raise self._error("a value", token)

    def _array(self) -> ArrayContext:
        start = self._expect(TokenType.LBRACK, "'['")
        prefix = self._expect(TokenType.ARRAY_PREFIX, "an array prefix such as 'I:'")
        elements = []
        if self._peek().type is not TokenType.RBRACK:
            elements.append(self._value())
            while self._peek().type is TokenType.COMMA:
                self._next()
                elements.append(self._value())
        end = self._expect(TokenType.RBRACK, "',' or ']'")
        return ArrayContext(prefix, elements, self._text[start.offset : end.offset + 1])


# =============================================================================
# Lowering (parse tree -> Branch)
# =============================================================================


def unquote(text: str) -> str:
    """Strip one pair of surrounding quotes and decode escape sequences."""
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    if "\\" not in text:
        return text
    result = []
    chars = iter(text)
    for c in chars:
        if c == "\\":
            escaped = next(chars, "")
            result.append(_ESCAPES.get(escaped, escaped))
        else:
            result.append(c)
    return "".join(result)


def quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    escaped = escaped.replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r")
    return f'"{escaped}"'


def _key_text(token: Token) -> str:
    if token.type is TokenType.STRING:
        return unquote(token.text)
    return token.text


def read_literal(token: Token) -> tuple[NodeType, object]:
    """Infer the type of a literal from its token and suffix."""
    text = token.text
    match token.type:
        case TokenType.INTEGER:
            node_type = _INTEGER_SUFFIXES.get(text[-1].lower())
            if node_type is not None:
                return node_type, int(text[:-1])
            return NodeType.INTEGER, int(text)
        case TokenType.FLOAT:
            node_type = _FLOAT_SUFFIXES.get(text[-1].lower())
            if node_type is not None:
                return node_type, float(text[:-1])
            return NodeType.DOUBLE, float(text)
        case TokenType.BOOLEAN:
            return NodeType.BOOLEAN, text == "true"
        case TokenType.STRING:
            return NodeType.STRING, unquote(text)
    raise LoweringError(f"Not a literal: {text!r}")


def _read_element(element_type: NodeType, context) -> object:
    """Parse one element of a non-node array."""
    if not isinstance(context, LiteralContext):
        raise LoweringError(
            f"{element_type.name} array elements must be literals, got {context.text!r}"
        )
    token = context.token
    text = token.text
    match element_type:
        case NodeType.BOOLEAN:
            if token.type is TokenType.BOOLEAN:
                return text == "true"
        case NodeType.STRING:
            if token.type is TokenType.STRING:
                return unquote(text)
        case NodeType.BYTE | NodeType.SHORT | NodeType.INTEGER | NodeType.LONG:
            if token.type is TokenType.INTEGER:
                suffix = text[-1].lower()
                if suffix not in _INTEGER_SUFFIXES:
                    return int(text)
                if _INTEGER_SUFFIXES[suffix] is element_type:
                    return int(text[:-1])
        case NodeType.FLOAT | NodeType.DOUBLE:
            if token.type is TokenType.INTEGER and text[-1].isdigit():
                return float(text)
            if token.type is TokenType.FLOAT:
                if text[-1].lower() in _FLOAT_SUFFIXES:
                    text = text[:-1]
                return float(text)
    raise LoweringError(f"{text!r} is not a valid {element_type.name} array element")


def _add(branch: Branch, key: str, node_type: NodeType, value) -> Tree:
    try:
        return branch.add(key, node_type, value)
    except InvalidTypePairingError as e:
        raise LoweringError(str(e)) from e


def _lower_array(branch: Branch, key: str, context: ArrayContext):
    letter = context.prefix.text[0]
    try:
        array_type = NodeType.from_array_letter(letter)
    except UnknownArrayPrefixError as e:
        raise LoweringError(str(e)) from e
    if not array_type.is_array:
        raise LoweringError(f"{array_type.name} is not an array type")

    if array_type is NodeType.NODE_ARRAY:
        for element in context.elements:
            if not isinstance(element, NodeContext):
                raise LoweringError(f"NODE array elements must be nodes, got {element.text!r}")
        leaf = _add(branch, key, array_type, None)
        for element in context.elements:
            _lower_node(leaf.append(Branch()), element)
        return

    element_type = array_type.element_type
    values = [_read_element(element_type, element) for element in context.elements]
    _add(branch, key, array_type, values)


def _lower_entry(branch: Branch, entry: EntryContext):
    key = _key_text(entry.key)
    value = entry.value
    match value:
        case LiteralContext():
            node_type, parsed = read_literal(value.token)
            _add(branch, key, node_type, parsed)
        case ArrayContext():
            _lower_array(branch, key, value)
        case NodeContext():
            child = branch.add(key)
            _lower_node(child, value)
        case _:
            raise LoweringError(f"Unexpected value for {key!r}")


def _lower_node(branch: Branch, context: NodeContext):
    """Lower the entries of a node into ``branch``.

    The first failing entry stops this node: earlier entries stay, later ones
    are dropped. Nested nodes handle their own failures.
    """
    try:
        for entry in context.entries:
            _lower_entry(branch, entry)
    except LoweringError as e:
        logger.warning("Invalid node format, skipping remaining entries of %s: %s", context.text, e)


def lower(context: NodeContext, root: Optional[Branch] = None) -> Branch:
    """Turn a parse tree into a Branch (a new one unless ``root`` is given)."""
    if root is None:
        root = Branch()
    _lower_node(root, context)
    return root


# =============================================================================
# Formatting (Branch -> text)
# =============================================================================


def _format_nonfinite(value: float) -> Optional[str]:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return None


def format_double(value: float) -> str:
    value = float(value)
    return _format_nonfinite(value) or repr(value)


def format_float(value: float) -> str:
    """Shortest text that reads back as the same single-precision value."""
    value = float(value)
    return _format_nonfinite(value) or str(np.float32(value))


def format_key(key: str) -> str:
    if NORMAL_KEY_PATTERN.fullmatch(key) and classify_word(key) is TokenType.IDENTIFIER:
        return key
    return quote(key)


def format_element(element_type: NodeType, value) -> str:
    """Format a scalar without a type suffix."""
    match element_type:
        case NodeType.BOOLEAN:
            return "true" if value else "false"
        case NodeType.BYTE | NodeType.SHORT | NodeType.INTEGER | NodeType.LONG:
            return str(int(value))
        case NodeType.FLOAT:
            return format_float(value)
        case NodeType.DOUBLE:
            return format_double(value)
        case NodeType.STRING:
            return quote(value)
    raise TypeError(f"Cannot format {element_type.name} as a literal")


def format_literal(node_type: NodeType, value) -> str:
    """Format a scalar with the suffix its type needs to read back."""
    return format_element(node_type, value) + _TYPE_SUFFIXES.get(node_type, "")


class TextWriter:
    """Writer for the KVT text format."""

    def __init__(self, dest: Union[str, Path, TextIO], indent_size: Optional[int] = None):
        if isinstance(dest, (str, Path)):
            self._file = open(dest, "w", encoding="utf-8")
            self._owns_file = True
        else:
            self._file = dest
            self._owns_file = False
        self._indent_size = indent_size

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        if self._owns_file:
            self._file.close()

    @property
    def _compact(self) -> bool:
        return self._indent_size is None

    def format(self, tree: Branch) -> str:
        if not isinstance(tree, Branch):
            raise TypeError(f"Only a Branch can be written as a document, not {type(tree).__name__}")
        return self._format_branch(tree, 0)

    def write_all(self, tree: Branch):
        """Write an entire tree as one document."""
        self._file.write(self.format(tree))
        if not self._compact:
            self._file.write("\n")

    def _format_branch(self, branch: Branch, level: int) -> str:
        if len(branch) == 0:
            return "{}"
        separator = ":" if self._compact else ": "
        entries = [
            f"{format_key(key)}{separator}{self._format_child(child, level + 1)}"
            for key, child in branch.items()
        ]
        if self._compact:
            return "{" + ",".join(entries) + "}"
        pad = " " * (self._indent_size * (level + 1))
        closing = " " * (self._indent_size * level)
        return "{\n" + ",\n".join(pad + e for e in entries) + "\n" + closing + "}"

    def _format_child(self, child: Tree, level: int) -> str:
        match child:
            case Branch():
                return self._format_branch(child, level)
            case ScalarLeaf(node_type=NodeType.NODE):
                return self._format_branch(child.value, level)
            case ScalarLeaf():
                return format_literal(child.node_type, child.value)
            case ArrayLeaf():
                return self._format_array(child, level)
        raise TypeError(f"Unexpected tree node: {child!r}")

    def _format_array(self, leaf: ArrayLeaf, level: int) -> str:
        node_type = leaf.node_type
        if node_type is NodeType.NODE_ARRAY:
            items = [self._format_branch(b, level) for b in leaf.values]
        else:
            element_type = node_type.element_type
            items = [format_element(element_type, v) for v in leaf.values]
        if self._compact:
            return f"[{node_type.array_letter}:{','.join(items)}]"
        if not items:
            return f"[{node_type.array_letter}:]"
        return f"[{node_type.array_letter}: {', '.join(items)}]"


class TextReader:
    """Reader for the KVT text format."""

    def __init__(self, source: Union[str, Path, TextIO]):
        if isinstance(source, (str, Path)):
            self._file = open(source, "r", encoding="utf-8")
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

    def read_all(self) -> Branch:
        """Read an entire document into a tree.

        Raises:
            ParseError: If the text does not follow the grammar.
        """
        return parse(self._file.read())


def parse(text: str) -> Branch:
    """Parse a KVT document from a string.

    Args:
        text: Document text

    Returns:
        The root branch

    Raises:
        ParseError: On a syntax error or nesting too deep to parse. Lowering
            failures are logged instead.

    Example:
        tree = parse("{x: 5b}")
        tree.get_type("x")  # NodeType.BYTE
    """
    try:
        context = Parser(text).document()
        logger.debug("Parsed document with %d top-level entries", len(context.entries))
        return lower(context)
    except RecursionError:
        raise ParseError("Document is nested too deeply") from None


def stringify(tree: Branch, indent_size: Optional[int] = None) -> str:
    """Format a tree as a KVT document.

    Args:
        tree: Root branch
        indent_size: Spaces per nesting level, or None for a single line

    Returns:
        Document text that parses back into an equal tree
    """
    return TextWriter(None, indent_size).format(tree)
