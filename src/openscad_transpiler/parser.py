"""Recursive-descent parser for the supported OpenSCAD subset.

The parser consumes the token list produced by ``lexer.tokenize`` and builds
an immutable ``Program``. It validates argument lists against a per-construct
schema, normalizes diameters to radii, and rejects the parts of OpenSCAD that
the transpiler does not support (loops, conditionals, modules, functions and
general expressions) with a ``ParseError`` describing what was expected.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Optional

from .errors import ParseError
from .lexer import KEYWORDS, Token, TokenKind, tokenize
from .ast.nodes import (
    ArgValue,
    VarRef,
    Position,
    CubeArgs,
    SphereArgs,
    CylinderArgs,
    CircleArgs,
    SquareArgs,
    PolygonArgs,
    TranslateArgs,
    RotateArgs,
    ScaleArgs,
    MirrorArgs,
    ColorArgs,
    HullArgs,
    MinkowskiArgs,
    LinearExtrudeArgs,
    RotateExtrudeArgs,
    Program,
    PrimitiveCall,
    Transform,
    BooleanOp,
    Extrude,
    SpecialVarAssign,
    VarAssign,
)

logger = logging.getLogger(__name__)


# --- Human readable descriptions for diagnostics ---

_DESCRIPTIONS = {
    TokenKind.LPAREN: "opening parenthesis",
    TokenKind.RPAREN: "closing parenthesis",
    TokenKind.LBRACE: "opening brace",
    TokenKind.RBRACE: "closing brace",
    TokenKind.LBRACKET: "opening bracket",
    TokenKind.RBRACKET: "closing bracket",
    TokenKind.SEMICOLON: "semicolon",
    TokenKind.COMMA: "comma",
    TokenKind.ASSIGN: "equals sign",
    TokenKind.NUMBER: "number",
    TokenKind.STRING: "string",
    TokenKind.IDENTIFIER: "variable name",
}

_CALL_EXPECTED = [
    "primitive (cube, sphere, cylinder, circle, square, polygon)",
    "transform (translate, rotate, scale, mirror, color)",
    "boolean operation (union, difference, intersection)",
    "extrusion (linear_extrude, rotate_extrude)",
]
STATEMENT_EXPECTED = _CALL_EXPECTED + [
    "variable assignment",
    "special variable assignment",
]
BLOCK_EXPECTED = _CALL_EXPECTED + ["closing brace"]
CHILD_EXPECTED = _CALL_EXPECTED + ["opening brace"]
LITERAL_EXPECTED = ["number", "array", "true", "false", "string"]
VALUE_EXPECTED = LITERAL_EXPECTED + ["variable name"]


# --- Token categories ---

_PRIMITIVE_KINDS = frozenset({
    TokenKind.CUBE, TokenKind.SPHERE, TokenKind.CYLINDER,
    TokenKind.CIRCLE, TokenKind.SQUARE, TokenKind.POLYGON,
})

_TRANSFORM_KINDS = frozenset({
    TokenKind.TRANSLATE, TokenKind.ROTATE, TokenKind.SCALE, TokenKind.MIRROR,
    TokenKind.COLOR, TokenKind.HULL, TokenKind.MINKOWSKI,
})

_BOOLEAN_KINDS = frozenset({
    TokenKind.UNION, TokenKind.DIFFERENCE, TokenKind.INTERSECTION,
})

_EXTRUDE_KINDS = frozenset({
    TokenKind.LINEAR_EXTRUDE, TokenKind.ROTATE_EXTRUDE,
})

_UNSUPPORTED_STATEMENTS = {
    TokenKind.FOR: "for loops are not supported. Unroll the loop into separate statements.",
    TokenKind.IF: "if statements are not supported. Use separate models for each case.",
    TokenKind.MODULE: "module definitions are not supported. Inline the module contents directly.",
    TokenKind.FUNCTION: "function definitions are not supported. Use literal values instead.",
}

_UNSUPPORTED_CALLS = frozenset({
    TokenKind.POLYHEDRON, TokenKind.TEXT, TokenKind.RESIZE,
    TokenKind.MULTMATRIX, TokenKind.OFFSET,
})

_EXPRESSION_OPERATORS = frozenset({
    TokenKind.PLUS, TokenKind.MINUS, TokenKind.MULTIPLY, TokenKind.DIVIDE,
    TokenKind.MODULO, TokenKind.POWER, TokenKind.EQUAL, TokenKind.NOT_EQUAL,
    TokenKind.LESS_THAN, TokenKind.GREATER_THAN, TokenKind.LESS_EQUAL,
    TokenKind.GREATER_EQUAL, TokenKind.AND, TokenKind.OR, TokenKind.QUESTION,
    TokenKind.DOT, TokenKind.LBRACKET,
})

_ARGUMENT_NAME_KINDS = frozenset({TokenKind.IDENTIFIER, TokenKind.SPECIAL_VAR}) | frozenset(KEYWORDS.values())


# --- Argument schemas: record class and positional parameter order ---

_SCHEMAS = {
    "cube": (CubeArgs, ("size", "center")),
    "sphere": (SphereArgs, ("r",)),
    "cylinder": (CylinderArgs, ("h", "r1", "r2", "center")),
    "circle": (CircleArgs, ("r",)),
    "square": (SquareArgs, ("size", "center")),
    "polygon": (PolygonArgs, ("points", "paths", "convexity")),
    "translate": (TranslateArgs, ("v",)),
    "rotate": (RotateArgs, ("a", "v")),
    "scale": (ScaleArgs, ("v",)),
    "mirror": (MirrorArgs, ("v",)),
    "color": (ColorArgs, ("c", "alpha")),
    "hull": (HullArgs, ()),
    "minkowski": (MinkowskiArgs, ()),
    "linear_extrude": (LinearExtrudeArgs, ("height", "center", "convexity", "twist", "slices", "scale")),
    "rotate_extrude": (RotateExtrudeArgs, ()),
}

_DIAMETERS = {"d": "r", "d1": "r1", "d2": "r2"}

# Record fields that can only be given with the $ sigil
_SPECIAL_ARGUMENTS = {"$fn": "fn", "$fa": "fa", "$fs": "fs"}


@dataclass
class _RawArgs:
    """Arguments as written, before they are matched against a schema."""
    positional: list[tuple[ArgValue, Token]] = field(default_factory=list)
    named: dict[str, tuple[ArgValue, Token]] = field(default_factory=dict)


def _position(token: Token) -> Position:
    return Position(token.line, token.column)


def _found(token: Token) -> str:
    return token.text if token.kind is not TokenKind.EOF else "end of input"


class Parser:
    """Builds a ``Program`` from a token list.

    Usage:
        parser = Parser(tokenize("cube(10);"))
        program = parser.parse_program()
    """

    def __init__(self, tokens: list[Token]):
        if not tokens or tokens[-1].kind is not TokenKind.EOF:
            raise ValueError("token list must end with an EOF token")
        self.tokens = tokens
        self.pos = 0

    # --- Token helpers ---

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def peek_next(self) -> Token:
        return self.tokens[min(self.pos + 1, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind is not TokenKind.EOF:
            self.pos += 1
        return token

    def check(self, kind: TokenKind) -> bool:
        return self.peek().kind is kind

    def match(self, kind: TokenKind) -> bool:
        if self.check(kind):
            self.advance()
            return True
        return False

    def expect(self, kind: TokenKind) -> Token:
        if self.check(kind):
            return self.advance()
        description = _DESCRIPTIONS.get(kind, kind.value)
        raise self.error(
            f"Expected {description} but found '{_found(self.peek())}'",
            [description]
        )

    def error(self, message: str, expected: list[str], token: Optional[Token] = None) -> ParseError:
        token = token or self.peek()
        return ParseError(message, token.line, token.column, _found(token), expected)

    def _unsupported(self, token: Token, expected: list[str]) -> ParseError:
        if token.kind in _UNSUPPORTED_STATEMENTS:
            detail = _UNSUPPORTED_STATEMENTS[token.kind]
        else:
            detail = f"{token.text}() is not supported."
        return self.error(
            f"Unsupported feature '{token.text}' at line {token.line}, column {token.column}: {detail}",
            expected, token
        )

    def _reject_expression(self, expected: list[str]) -> None:
        """Raise if the next token would continue an expression."""
        token = self.peek()
        if token.kind in _EXPRESSION_OPERATORS:
            raise self.error(
                f"Unsupported feature: expressions using '{token.text}' are not evaluated. "
                "Use a literal value instead.",
                expected
            )

    # --- Statements ---

    def parse_program(self) -> Program:
        """Parse the whole token list.

        Returns:
            The Program node.

        Raises:
            ParseError: On the first syntax error.
        """
        body = []
        while not self.check(TokenKind.EOF):
            # Stray semicolons are empty statements
            if self.match(TokenKind.SEMICOLON):
                continue
            body.append(self.parse_statement())
        return Program(body=tuple(body), position=Position(1, 1))

    def parse_statement(self):
        token = self.peek()
        kind = token.kind

        if kind is TokenKind.SPECIAL_VAR:
            return self.parse_special_var_assign()

        if kind is TokenKind.IDENTIFIER:
            following = self.peek_next()
            if following.kind is TokenKind.ASSIGN:
                return self.parse_var_assign()
            if following.kind is TokenKind.LPAREN:
                raise self.error(
                    f"Unsupported feature: unknown module '{token.text}'. Only built-in "
                    "primitives, transforms, boolean operations and extrusions can be called.",
                    STATEMENT_EXPECTED, token
                )
            raise self.error(
                f"Unexpected token '{_found(following)}' after '{token.text}'",
                ["equals sign"], following
            )

        return self.parse_call(STATEMENT_EXPECTED)

    def parse_call(self, expected: list[str]):
        """Parse a primitive, transform, boolean or extrusion statement."""
        kind = self.peek().kind
        if kind in _PRIMITIVE_KINDS:
            return self.parse_primitive()
        if kind in _TRANSFORM_KINDS:
            return self.parse_transform()
        if kind in _BOOLEAN_KINDS:
            return self.parse_boolean()
        if kind in _EXTRUDE_KINDS:
            return self.parse_extrude()
        if kind in _UNSUPPORTED_STATEMENTS or kind in _UNSUPPORTED_CALLS:
            raise self._unsupported(self.peek(), expected)
        raise self.error(f"Unexpected token '{_found(self.peek())}'", expected)

    def parse_primitive(self) -> PrimitiveCall:
        token = self.advance()
        primitive = token.kind.value
        self.expect(TokenKind.LPAREN)
        raw = self.parse_argument_list()
        self.expect(TokenKind.RPAREN)
        self.expect(TokenKind.SEMICOLON)
        return PrimitiveCall(
            primitive=primitive,
            args=self.build_args(primitive, raw),
            position=_position(token),
        )

    def parse_transform(self) -> Transform:
        token = self.advance()
        transform = token.kind.value
        self.expect(TokenKind.LPAREN)
        raw = self.parse_argument_list()
        self.expect(TokenKind.RPAREN)
        args = self.build_args(transform, raw)
        return Transform(
            transform=transform,
            args=args,
            children=self.parse_children(),
            position=_position(token),
        )

    def parse_boolean(self) -> BooleanOp:
        token = self.advance()
        self.expect(TokenKind.LPAREN)
        # Boolean operations take no arguments we use; accept and drop them
        self.parse_argument_list()
        self.expect(TokenKind.RPAREN)
        return BooleanOp(
            operation=token.kind.value,
            children=self.parse_children(),
            position=_position(token),
        )

    def parse_extrude(self) -> Extrude:
        token = self.advance()
        extrude = token.kind.value
        self.expect(TokenKind.LPAREN)
        raw = self.parse_argument_list()
        self.expect(TokenKind.RPAREN)
        args = self.build_args(extrude, raw)
        return Extrude(
            extrude=extrude,
            args=args,
            children=self.parse_children(),
            position=_position(token),
        )

    def parse_special_var_assign(self) -> SpecialVarAssign:
        token = self.advance()
        self.expect(TokenKind.ASSIGN)
        value = self.parse_value(allow_refs=False)
        self._reject_expression(["semicolon"])
        self.expect(TokenKind.SEMICOLON)
        return SpecialVarAssign(variable=token.text, value=value, position=_position(token))

    def parse_var_assign(self) -> VarAssign:
        token = self.advance()
        self.expect(TokenKind.ASSIGN)
        value = self.parse_value(allow_refs=False)
        self._reject_expression(["semicolon"])
        self.expect(TokenKind.SEMICOLON)
        return VarAssign(name=token.text, value=value, position=_position(token))

    # --- Children ---

    def parse_children(self) -> tuple:
        """Parse a braced child block or a single unbraced child statement."""
        if not self.match(TokenKind.LBRACE):
            return (self.parse_child_statement(CHILD_EXPECTED),)

        children = []
        while not self.check(TokenKind.RBRACE):
            if self.check(TokenKind.EOF):
                raise self.error("Unterminated block: expected closing brace", ["closing brace"])
            if self.match(TokenKind.SEMICOLON):
                continue
            children.append(self.parse_child_statement(BLOCK_EXPECTED))
        self.expect(TokenKind.RBRACE)
        # Optional trailing semicolon after a block
        self.match(TokenKind.SEMICOLON)
        return tuple(children)

    def parse_child_statement(self, expected: list[str]):
        token = self.peek()
        if token.kind is TokenKind.SPECIAL_VAR or (
                token.kind is TokenKind.IDENTIFIER and self.peek_next().kind is TokenKind.ASSIGN):
            raise self.error(
                f"Unsupported feature: assignment to '{token.text}' inside a block. "
                "Assignments are only supported at the top level.",
                expected
            )
        return self.parse_call(expected)

    # --- Arguments ---

    def parse_argument_list(self) -> _RawArgs:
        raw = _RawArgs()
        if self.check(TokenKind.RPAREN):
            return raw

        while True:
            token = self.peek()
            if token.kind in _ARGUMENT_NAME_KINDS and self.peek_next().kind is TokenKind.ASSIGN:
                self.advance()
                self.advance()
                value_token = self.peek()
                raw.named[token.text] = (self.parse_value(), value_token)
            else:
                if raw.named:
                    raise self.error(
                        "Positional argument after named argument",
                        ["named argument"]
                    )
                raw.positional.append((self.parse_value(), token))
            self._reject_expression(["comma", "closing parenthesis"])
            if not self.match(TokenKind.COMMA):
                return raw

    def parse_value(self, allow_refs: bool = True) -> ArgValue:
        """Parse a literal, an array, or (if allowed) a variable reference."""
        token = self.peek()
        expected = VALUE_EXPECTED if allow_refs else LITERAL_EXPECTED

        if token.kind is TokenKind.LBRACKET:
            return self.parse_array(allow_refs)
        if token.kind is TokenKind.NUMBER:
            self.advance()
            return float(token.text)
        if token.kind is TokenKind.MINUS:
            self.advance()
            if not self.check(TokenKind.NUMBER):
                raise self.error(
                    f"Expected number after '-' but found '{_found(self.peek())}'",
                    ["number"]
                )
            return -float(self.advance().text)
        if token.kind is TokenKind.TRUE:
            self.advance()
            return True
        if token.kind is TokenKind.FALSE:
            self.advance()
            return False
        if token.kind is TokenKind.STRING:
            self.advance()
            return token.text
        if token.kind is TokenKind.IDENTIFIER:
            if self.peek_next().kind is TokenKind.LPAREN:
                raise self.error(
                    f"Unsupported feature: function call '{token.text}()' is not evaluated. "
                    "Use a literal value instead.",
                    expected
                )
            if allow_refs:
                self.advance()
                return VarRef(name=token.text)
            raise self.error(
                f"Variable reference '{token.text}' is not allowed here. Use a literal value.",
                expected
            )
        raise self.error(f"Expected a value but found '{_found(token)}'", expected)

    def parse_array(self, allow_refs: bool = True) -> tuple:
        self.expect(TokenKind.LBRACKET)
        elements = []
        if not self.check(TokenKind.RBRACKET):
            while True:
                elements.append(self.parse_value(allow_refs))
                self._reject_expression(["comma", "closing bracket"])
                if not self.match(TokenKind.COMMA):
                    break
        self.expect(TokenKind.RBRACKET)
        return tuple(elements)

    def build_args(self, construct: str, raw: _RawArgs):
        """Match raw arguments against the schema of a construct.

        Positional arguments are assigned in schema order, then named ones.
        Diameters are converted to radii last so that they win over a radius
        given in the same call.
        """
        record_class, order = _SCHEMAS[construct]
        fields = {f.name for f in dataclasses.fields(record_class)}

        if len(raw.positional) > len(order):
            _, token = raw.positional[len(order)]
            raise self.error(
                f"{construct}() takes at most {len(order)} positional argument(s)",
                ["closing parenthesis"], token
            )

        kwargs: dict[str, ArgValue] = {}
        for name, (value, _) in zip(order, raw.positional):
            kwargs[name] = value

        diameters = []
        for name, (value, token) in raw.named.items():
            if name.startswith("$"):
                key = _SPECIAL_ARGUMENTS.get(name)
            elif name in _SPECIAL_ARGUMENTS.values():
                key = None
            else:
                key = name
            if key in _DIAMETERS and _DIAMETERS[key] in fields:
                diameters.append((key, value, token))
            elif key in fields:
                kwargs[key] = value
            else:
                logger.debug("Ignoring unknown argument '%s' of %s()", name, construct)

        for key, value, token in diameters:
            if isinstance(value, bool) or not isinstance(value, float):
                raise self.error(
                    f"Diameter '{key}' of {construct}() must be a literal number",
                    ["number"], token
                )
            kwargs[_DIAMETERS[key]] = value / 2

        return record_class(**kwargs)


def parse(text: str, debug=False) -> Program:
    """Parse OpenSCAD source code into a Program.

    Args:
        text: The OpenSCAD source code.
        debug: If True, enable Arpeggio debug output while tokenizing.

    Returns:
        The Program node.

    Raises:
        LexError: If the source cannot be tokenized.
        ParseError: If the tokens do not form a supported program.
    """
    return Parser(tokenize(text, debug=debug)).parse_program()
