"""PHP tokenizer producing an indexable token array.

The source is parsed with tree-sitter-php and flattened into the leaves of the
syntax tree, in source order. Strings, heredocs, variables, comments and
(qualified) names are kept whole. The gaps between leaves become WHITESPACE
tokens, so joining every token's text reproduces the input exactly. Parse
errors never raise: tree-sitter recovers and the broken region still comes
out as tokens.

Only the distinctions the scanners need are made. Keywords that matter for
cataloging and linkage get their own kind; every other word is an IDENTIFIER.
Words directly after ``->``, ``?->``, ``::`` or ``function`` are always
identifiers (``$this->class``, ``function list()``) with one exception:
``Foo::class`` keeps the CLASS kind.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache
from typing import Any

import tree_sitter
import tree_sitter_php


class TokenKind(StrEnum):
    INLINE_HTML = "inline_html"
    OPEN_TAG = "open_tag"
    CLOSE_TAG = "close_tag"
    WHITESPACE = "whitespace"
    COMMENT = "comment"
    DOC_COMMENT = "doc_comment"
    CONSTANT_STRING = "constant_string"
    INTERPOLATED_STRING = "interpolated_string"
    HEREDOC = "heredoc"
    VARIABLE = "variable"
    NUMBER = "number"
    IDENTIFIER = "identifier"
    NAME_QUALIFIED = "name_qualified"
    NAME_FULLY_QUALIFIED = "name_fully_qualified"
    NAME_RELATIVE = "name_relative"
    NAMESPACE = "namespace"
    USE = "use"
    CLASS = "class"
    INTERFACE = "interface"
    TRAIT = "trait"
    FUNCTION = "function"
    FN = "fn"
    NEW = "new"
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"
    STATIC = "static"
    CLASS_C = "class_c"
    DOUBLE_COLON = "double_colon"
    OBJECT_OPERATOR = "object_operator"
    NULLSAFE_OBJECT_OPERATOR = "nullsafe_object_operator"
    DOUBLE_ARROW = "double_arrow"
    ATTRIBUTE = "attribute"
    PUNCT = "punct"


TRIVIA: frozenset[TokenKind] = frozenset({
    TokenKind.WHITESPACE,
    TokenKind.COMMENT,
    TokenKind.DOC_COMMENT,
})

NAME_KINDS: frozenset[TokenKind] = frozenset({
    TokenKind.IDENTIFIER,
    TokenKind.NAME_QUALIFIED,
    TokenKind.NAME_FULLY_QUALIFIED,
})

VISIBILITY_KINDS: frozenset[TokenKind] = frozenset({
    TokenKind.PUBLIC,
    TokenKind.PROTECTED,
    TokenKind.PRIVATE,
})

_KEYWORDS: dict[str, TokenKind] = {
    "namespace": TokenKind.NAMESPACE,
    "use": TokenKind.USE,
    "class": TokenKind.CLASS,
    "interface": TokenKind.INTERFACE,
    "trait": TokenKind.TRAIT,
    "function": TokenKind.FUNCTION,
    "fn": TokenKind.FN,
    "new": TokenKind.NEW,
    "public": TokenKind.PUBLIC,
    "protected": TokenKind.PROTECTED,
    "private": TokenKind.PRIVATE,
    "static": TokenKind.STATIC,
    "__class__": TokenKind.CLASS_C,
}

_MEMBER_CONTEXT: frozenset[TokenKind] = frozenset({
    TokenKind.OBJECT_OPERATOR,
    TokenKind.NULLSAFE_OBJECT_OPERATOR,
    TokenKind.DOUBLE_COLON,
    TokenKind.FUNCTION,
})


_OPERATORS: dict[str, TokenKind] = {
    "::": TokenKind.DOUBLE_COLON,
    "->": TokenKind.OBJECT_OPERATOR,
    "?->": TokenKind.NULLSAFE_OBJECT_OPERATOR,
    "=>": TokenKind.DOUBLE_ARROW,
    "#[": TokenKind.ATTRIBUTE,
    "?>": TokenKind.CLOSE_TAG,
}

# Node types emitted as one token; the walk does not descend into them.
_ATOMIC: dict[str, TokenKind | None] = {
    "text": TokenKind.INLINE_HTML,
    "php_tag": TokenKind.OPEN_TAG,
    "comment": None,
    "string": TokenKind.CONSTANT_STRING,
    "encapsed_string": None,
    "heredoc": TokenKind.HEREDOC,
    "nowdoc": TokenKind.HEREDOC,
    "shell_command_expression": TokenKind.INTERPOLATED_STRING,
    "variable_name": TokenKind.VARIABLE,
    "integer": TokenKind.NUMBER,
    "float": TokenKind.NUMBER,
    "name": None,
    "qualified_name": None,
    "namespace_name": None,
}

_LITERAL_PARTS = frozenset({"string", "string_content", "string_value", "escape_sequence"})

_IDENT = r"[A-Za-z_\x80-\uffff][A-Za-z0-9_\x80-\uffff]*"
_RE_WORD = re.compile(rf"\\?{_IDENT}(?:\\{_IDENT})*")
_RE_GAP = re.compile(r"\s+|\S+")


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexeme: kind, exact source text and 1-based start line."""

    kind: TokenKind
    text: str
    line: int

    @property
    def is_trivia(self) -> bool:
        return self.kind in TRIVIA

    def is_punct(self, *chars: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.text in chars


@lru_cache(maxsize=1)
def _php_parser() -> tree_sitter.Parser:
    parser = tree_sitter.Parser()
    parser.language = tree_sitter.Language(tree_sitter_php.language_php())
    return parser


def tokenize(source: str) -> list[Token]:
    """Split PHP source into tokens. Never raises."""
    data = source.encode("utf-8", errors="surrogatepass")
    tree = _php_parser().parse(data)
    return _Flattener(data).run(tree.root_node)


def _leaves(root: Any) -> list[Any]:
    """Leaf and atomic nodes in source order."""
    out: list[Any] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type in _ATOMIC or node.child_count == 0:
            if node.end_byte > node.start_byte:
                out.append(node)
            continue
        stack.extend(reversed(node.children))
    return out


class _Flattener:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0
        self._row = 0
        self._tokens: list[Token] = []
        self._last_significant: Token | None = None

    def run(self, root: Any) -> list[Token]:
        for node in _leaves(root):
            start = max(node.start_byte, self._pos)
            if node.end_byte <= start:
                continue
            self._gap(start)
            text = self._text(start, node.end_byte)
            row = node.start_point[0] if start == node.start_byte else self._row
            self._emit(self._kind(node, text), text, row)
            self._pos = node.end_byte
            self._row = node.end_point[0]
        self._gap(len(self._data))
        return self._tokens

    def _text(self, start: int, end: int) -> str:
        return self._data[start:end].decode("utf-8", errors="surrogatepass")

    def _emit(self, kind: TokenKind, text: str, row: int) -> None:
        token = Token(kind, text, row + 1)
        self._tokens.append(token)
        if kind not in TRIVIA:
            self._last_significant = token

    def _gap(self, end: int) -> None:
        if end <= self._pos:
            return
        row = self._row
        for match in _RE_GAP.finditer(self._text(self._pos, end)):
            chunk = match.group(0)
            kind = TokenKind.WHITESPACE if chunk.isspace() else TokenKind.PUNCT
            self._emit(kind, chunk, row)
            row += chunk.count("\n")
        self._pos = end
        self._row = row

    def _kind(self, node: Any, text: str) -> TokenKind:
        node_type = node.type
        if node_type == "comment":
            is_doc = text.startswith("/**") and len(text) > 4 and text[3] in " \t\r\n"
            return TokenKind.DOC_COMMENT if is_doc else TokenKind.COMMENT
        if node_type == "encapsed_string":
            interpolated = any(child.type not in _LITERAL_PARTS for child in node.named_children)
            return TokenKind.INTERPOLATED_STRING if interpolated else TokenKind.CONSTANT_STRING
        fixed = _ATOMIC.get(node_type)
        if fixed is not None:
            return fixed
        if text in _OPERATORS:
            return _OPERATORS[text]
        if _RE_WORD.fullmatch(text):
            return self._classify_name(text)
        return TokenKind.PUNCT

    def _classify_name(self, text: str) -> TokenKind:
        if text.startswith("\\"):
            return TokenKind.NAME_FULLY_QUALIFIED
        if "\\" in text:
            if text.lower().startswith("namespace\\"):
                return TokenKind.NAME_RELATIVE
            return TokenKind.NAME_QUALIFIED

        previous = self._last_significant
        keyword = _KEYWORDS.get(text.lower())
        if keyword is None:
            return TokenKind.IDENTIFIER
        if previous is not None and previous.kind in _MEMBER_CONTEXT:
            if previous.kind is TokenKind.DOUBLE_COLON and keyword is TokenKind.CLASS:
                return TokenKind.CLASS
            return TokenKind.IDENTIFIER
        return keyword


def next_significant(tokens: list[Token], start: int) -> int | None:
    """Index of the first non-trivia token at or after ``start``."""
    for index in range(start, len(tokens)):
        if not tokens[index].is_trivia:
            return index
    return None


def prev_significant(tokens: list[Token], start: int) -> int | None:
    """Index of the first non-trivia token at or before ``start``."""
    for index in range(start, -1, -1):
        if not tokens[index].is_trivia:
            return index
    return None
