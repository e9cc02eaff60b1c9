"""Tests for the diagnostic exception types."""

import pytest
from openscad_transpiler import (
    OpenSCADError,
    OpenSCADSyntaxError,
    LexError,
    ParseError,
    TranspileError,
    transpile,
)
from openscad_transpiler.ast import Position, VarAssign


class TestHierarchy:
    """Test the exception class hierarchy."""

    def test_subclasses(self):
        assert issubclass(LexError, OpenSCADSyntaxError)
        assert issubclass(ParseError, OpenSCADSyntaxError)
        assert issubclass(OpenSCADSyntaxError, OpenSCADError)
        assert issubclass(TranspileError, OpenSCADError)
        assert not issubclass(TranspileError, OpenSCADSyntaxError)

    def test_single_except_clause(self):
        for source in ["cube(1) #", "cube(1)", "params = 1;"]:
            with pytest.raises(OpenSCADError):
                transpile(source)


class TestSyntaxError:
    """Test syntax error attributes and formatting."""

    def test_attributes(self):
        err = ParseError("Bad token", 2, 5, ";", ["number", "string"])
        assert str(err) == "Bad token"
        assert (err.line, err.column, err.found) == (2, 5, ";")
        assert err.expected == ["number", "string"]

    def test_retry_context(self):
        err = ParseError("Bad token", 2, 5, ";", ["number", "string"])
        assert err.to_retry_context() == (
            "Parse Error at line 2, column 5:\n"
            'Found: ";"\n'
            "Expected: number, string\n"
            "Message: Bad token"
        )

    def test_lex_error_kind(self):
        err = LexError("Unexpected character '#'", 1, 3, "#", ["number"])
        assert err.to_retry_context().startswith("Lex Error at line 1, column 3:")

    def test_repr(self):
        err = LexError("oops", 1, 2, "#", ["number"])
        assert repr(err) == "LexError('oops', line=1, column=2, found='#')"


class TestTranspileError:
    """Test transpile error attributes."""

    def test_node_and_position(self):
        node = VarAssign("params", 1.0, Position(3, 4))
        err = TranspileError("reserved", node)
        assert err.message == "reserved"
        assert err.node is node
        assert err.position == Position(3, 4)

    def test_without_node(self):
        err = TranspileError("broken")
        assert err.node is None
        assert err.position is None

    def test_raised_with_offending_node(self):
        with pytest.raises(TranspileError) as exc_info:
            transpile("cube(1);\nhull() { cube(1); }")
        assert exc_info.value.node.transform == "hull"
        assert exc_info.value.position == Position(2, 1)
