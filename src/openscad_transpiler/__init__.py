#######################################################################
# OpenSCAD subset to CSG runtime transpiler
#######################################################################

from __future__ import annotations

from .errors import (
    OpenSCADError,
    OpenSCADSyntaxError,
    LexError,
    ParseError,
    TranspileError,
)
from .lexer import Token, TokenKind, KEYWORDS, SYMBOLS, tokenize, get_token_parser
from .parser import Parser, parse
from .transpiler import (
    RESERVED_NAMES,
    MIN_SEGMENTS,
    MAX_SEGMENTS,
    DEFAULT_SEGMENTS,
    TranspileOptions,
    TranspileContext,
    Transpiler,
    clamp_fn,
    transpile,
    transpile_openscad,
)
from .ast import (
    Position,
    VarRef,
    Program,
    PrimitiveCall,
    Transform,
    BooleanOp,
    Extrude,
    SpecialVarAssign,
    VarAssign,
    getASTfromString,
    getASTfromFile,
)


# vim: set ts=4 sw=4 expandtab:
