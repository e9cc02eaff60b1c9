"""Exception types raised by the OpenSCAD transpiler.

Two kinds of diagnostics are produced:

- ``OpenSCADSyntaxError`` (``LexError`` and ``ParseError``) carries the source
  position, the offending text and a list of human readable descriptions of
  what was expected there. ``to_retry_context()`` formats them for automated
  code-fixing callers.
- ``TranspileError`` carries the AST node that could not be lowered.

Every error aborts the compile call; no partial output is ever returned.
"""

from __future__ import annotations

from typing import Any, Optional


class OpenSCADError(Exception):
    """Base class for all transpiler errors."""
    pass


class OpenSCADSyntaxError(OpenSCADError):
    """An error with a source position, raised while lexing or parsing.

    Attributes:
        line: 1-based line of the offending text.
        column: 1-based column of the offending text.
        found: The offending text, or ``"end of input"``.
        expected: Human readable descriptions of what would have been valid.
    """
    kind = "Syntax Error"

    def __init__(self, message: str, line: int, column: int, found: str, expected: list[str]):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.found = found
        self.expected = list(expected)

    def to_retry_context(self) -> str:
        """Return the error as plain text for an automated retry prompt."""
        return (
            f"{self.kind} at line {self.line}, column {self.column}:\n"
            f"Found: \"{self.found}\"\n"
            f"Expected: {', '.join(self.expected)}\n"
            f"Message: {self.message}"
        )

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({self.message!r}, line={self.line}, "
            f"column={self.column}, found={self.found!r})"
        )


class LexError(OpenSCADSyntaxError):
    """Invalid character, unterminated string or unterminated comment."""
    kind = "Lex Error"


class ParseError(OpenSCADSyntaxError):
    """Unexpected token, unsupported construct or malformed argument list."""
    kind = "Parse Error"


class TranspileError(OpenSCADError):
    """The AST could not be lowered to runtime calls.

    Attributes:
        message: What went wrong.
        node: The offending AST node (or value), if known.
    """

    def __init__(self, message: str, node: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.node = node

    @property
    def position(self):
        """Source position of the offending node, if it has one."""
        return getattr(self.node, "position", None)
