"""Tokenizer for the supported OpenSCAD subset.

The token grammar lives in ``grammar.py`` and is run by Arpeggio; this module
turns the resulting parse tree into a flat list of ``Token`` objects and maps
Arpeggio failures onto ``LexError``.

Example:
    from openscad_transpiler.lexer import tokenize

    tokens = tokenize("cube(10);")
    [t.kind.name for t in tokens]
    # ['CUBE', 'LPAREN', 'NUMBER', 'RPAREN', 'SEMICOLON', 'EOF']
"""

from __future__ import annotations

import bisect
import enum
import re
from dataclasses import dataclass

from arpeggio import NoMatch, ParserPython, PTNodeVisitor, visit_parse_tree

from .errors import LexError
from .grammar import openscad_tokens, comment


class TokenKind(enum.Enum):
    # 3D primitives
    CUBE = "cube"
    SPHERE = "sphere"
    CYLINDER = "cylinder"
    POLYHEDRON = "polyhedron"
    # 2D primitives
    CIRCLE = "circle"
    SQUARE = "square"
    POLYGON = "polygon"
    TEXT = "text"
    # Transforms
    TRANSLATE = "translate"
    ROTATE = "rotate"
    SCALE = "scale"
    MIRROR = "mirror"
    RESIZE = "resize"
    MULTMATRIX = "multmatrix"
    COLOR = "color"
    OFFSET = "offset"
    HULL = "hull"
    MINKOWSKI = "minkowski"
    # Boolean operations
    UNION = "union"
    DIFFERENCE = "difference"
    INTERSECTION = "intersection"
    # Extrusions
    LINEAR_EXTRUDE = "linear_extrude"
    ROTATE_EXTRUDE = "rotate_extrude"
    # Control flow and definitions
    MODULE = "module"
    FUNCTION = "function"
    IF = "if"
    ELSE = "else"
    FOR = "for"
    LET = "let"
    EACH = "each"
    # Literal keywords
    TRUE = "true"
    FALSE = "false"
    UNDEF = "undef"
    # Operators
    PLUS = "+"
    MINUS = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    MODULO = "%"
    POWER = "^"
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS_THAN = "<"
    GREATER_THAN = ">"
    LESS_EQUAL = "<="
    GREATER_EQUAL = ">="
    AND = "&&"
    OR = "||"
    NOT = "!"
    QUESTION = "?"
    COLON = ":"
    ASSIGN = "="
    # Punctuation
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    COMMA = ","
    SEMICOLON = ";"
    DOT = "."
    # Everything else
    SPECIAL_VAR = "special variable"
    IDENTIFIER = "identifier"
    NUMBER = "number"
    STRING = "string"
    EOF = "end of input"


_KEYWORD_KINDS = (
    TokenKind.CUBE, TokenKind.SPHERE, TokenKind.CYLINDER, TokenKind.POLYHEDRON,
    TokenKind.CIRCLE, TokenKind.SQUARE, TokenKind.POLYGON, TokenKind.TEXT,
    TokenKind.TRANSLATE, TokenKind.ROTATE, TokenKind.SCALE, TokenKind.MIRROR,
    TokenKind.RESIZE, TokenKind.MULTMATRIX, TokenKind.COLOR, TokenKind.OFFSET,
    TokenKind.HULL, TokenKind.MINKOWSKI,
    TokenKind.UNION, TokenKind.DIFFERENCE, TokenKind.INTERSECTION,
    TokenKind.LINEAR_EXTRUDE, TokenKind.ROTATE_EXTRUDE,
    TokenKind.MODULE, TokenKind.FUNCTION, TokenKind.IF, TokenKind.ELSE,
    TokenKind.FOR, TokenKind.LET, TokenKind.EACH,
    TokenKind.TRUE, TokenKind.FALSE, TokenKind.UNDEF,
)

_SYMBOL_KINDS = (
    TokenKind.PLUS, TokenKind.MINUS, TokenKind.MULTIPLY, TokenKind.DIVIDE,
    TokenKind.MODULO, TokenKind.POWER, TokenKind.EQUAL, TokenKind.NOT_EQUAL,
    TokenKind.LESS_THAN, TokenKind.GREATER_THAN, TokenKind.LESS_EQUAL,
    TokenKind.GREATER_EQUAL, TokenKind.AND, TokenKind.OR, TokenKind.NOT,
    TokenKind.QUESTION, TokenKind.COLON, TokenKind.ASSIGN,
    TokenKind.LPAREN, TokenKind.RPAREN, TokenKind.LBRACE, TokenKind.RBRACE,
    TokenKind.LBRACKET, TokenKind.RBRACKET, TokenKind.COMMA,
    TokenKind.SEMICOLON, TokenKind.DOT,
)

KEYWORDS: dict[str, TokenKind] = {kind.value: kind for kind in _KEYWORD_KINDS}

SYMBOLS: dict[str, TokenKind] = {kind.value: kind for kind in _SYMBOL_KINDS}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"'}


@dataclass(frozen=True)
class Token:
    """A single lexical token.

    Attributes:
        kind: The token kind.
        text: The source text of the token. For strings this is the decoded
            content without the surrounding quotes; for EOF it is empty.
        line: 1-based line of the first character.
        column: 1-based column of the first character.
    """
    kind: TokenKind
    text: str
    line: int
    column: int

    def __str__(self):
        return f"{self.kind.name}({self.text!r}) at {self.line}:{self.column}"


class _LineIndex:
    """Maps character offsets to 1-based (line, column) pairs."""

    def __init__(self, text: str):
        self.starts = [0]
        for match in re.finditer("\n", text):
            self.starts.append(match.end())

    def linecol(self, pos: int) -> tuple[int, int]:
        line = bisect.bisect_right(self.starts, pos)
        return line, pos - self.starts[line - 1] + 1


def get_token_parser(debug=False):
    """Create an Arpeggio parser for the OpenSCAD token grammar.

    A new parser should be created for every tokenize call; Arpeggio parsers
    keep their input position and are not safe to share.

    Args:
        debug: If True, enable Arpeggio debug output (default: False)

    Returns:
        ParserPython instance configured for OpenSCAD tokens
    """
    return ParserPython(
        openscad_tokens, comment, reduce_tree=False,
        memoization=False, debug=debug
    )


def _decode_string(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(0)), body)


class TokenVisitor(PTNodeVisitor):
    """Converts the token-grammar parse tree into ``Token`` objects."""

    def __init__(self, text: str, **kwargs):
        super().__init__(**kwargs)
        self.index = _LineIndex(text)

    def _token(self, node, kind: TokenKind, text: str) -> Token:
        line, column = self.index.linecol(node.position)
        return Token(kind, text, line, column)

    def visit_openscad_tokens(self, node, children):
        return [child for child in children if isinstance(child, Token)]

    def visit_token(self, node, children):
        return children[0]

    def visit_TOK_NUMBER(self, node, children):
        return self._token(node, TokenKind.NUMBER, node.value)

    def visit_TOK_SPECIAL_VAR(self, node, children):
        return self._token(node, TokenKind.SPECIAL_VAR, node.value)

    def visit_TOK_ID(self, node, children):
        return self._token(node, KEYWORDS.get(node.value, TokenKind.IDENTIFIER), node.value)

    def visit_TOK_STRING(self, node, children):
        return self._token(node, TokenKind.STRING, _decode_string(node.value[1:-1]))

    def visit_TOK_OPERATOR(self, node, children):
        return self._token(node, SYMBOLS[node.value], node.value)

    def visit_TOK_PUNCTUATION(self, node, children):
        return self._token(node, SYMBOLS[node.value], node.value)

    def visit_TOK_UNTERMINATED_STRING(self, node, children):
        line, column = self.index.linecol(node.position)
        raise LexError(
            f"Unterminated string starting at line {line}, column {column}",
            line, column, '"', ["closing double quote"]
        )

    def visit_TOK_UNTERMINATED_COMMENT(self, node, children):
        line, column = self.index.linecol(node.position)
        raise LexError(
            f"Unterminated multi-line comment starting at line {line}, column {column}",
            line, column, "/*", ['closing "*/"']
        )


def tokenize(text: str, debug=False) -> list[Token]:
    """Split OpenSCAD source into tokens.

    Args:
        text: The OpenSCAD source code.
        debug: If True, enable Arpeggio debug output.

    Returns:
        The tokens in source order, always terminated by an EOF token.

    Raises:
        LexError: On an invalid character or an unterminated string or comment.
    """
    parser = get_token_parser(debug=debug)
    index = _LineIndex(text)
    try:
        parse_tree = parser.parse(text)
    except NoMatch as e:
        pos = e.position if isinstance(e.position, int) else 0
        while pos < len(text) and text[pos] in " \t\r\n":
            pos += 1
        found = text[pos] if pos < len(text) else ""
        line, column = index.linecol(pos)
        raise LexError(
            f"Unexpected character '{found}' at line {line}, column {column}",
            line, column, found,
            ["number", "identifier", "string", "operator", "punctuation"]
        ) from None

    tokens = visit_parse_tree(parse_tree, TokenVisitor(text))
    line, column = index.linecol(len(text))
    tokens.append(Token(TokenKind.EOF, "", line, column))
    return tokens


# vim: set ts=4 sw=4 expandtab:
