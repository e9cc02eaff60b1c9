"""Tests for variable tracking."""

import pytest
from openscad_transpiler.ast import Scope, VarAssign, getASTfromString


class TestScopeBasics:
    """Test basic Scope class functionality."""

    def test_empty_scope(self):
        scope = Scope()
        assert scope.variables == {}
        assert "x" not in scope

    def test_lookup_variable_not_found(self):
        scope = Scope()
        assert scope.lookup_variable("x") is None
        assert scope.default_value("x") is None

    def test_define_and_lookup(self):
        scope = Scope()
        node = VarAssign("width", 50.0)
        assert scope.define_variable("width", node) is None
        assert scope.lookup_variable("width") is node
        assert scope.default_value("width") == 50.0
        assert "width" in scope

    def test_redefine_returns_previous(self):
        scope = Scope()
        first = VarAssign("w", 1.0)
        second = VarAssign("w", 2.0)
        scope.define_variable("w", first)
        assert scope.define_variable("w", second) is first
        assert scope.default_value("w") == 2.0

    def test_repr(self):
        assert repr(Scope()) == "<Scope vars=[none]>"
        scope = Scope()
        scope.define_variable("a", VarAssign("a", 1.0))
        scope.define_variable("b", VarAssign("b", 2.0))
        assert repr(scope) == "<Scope vars=[a, b]>"


class TestScopeFromProgram:
    """Test building a scope from parsed assignments."""

    def test_program_declarations(self):
        program = getASTfromString("a = 1; b = [1, 2]; cube(a); a = 3;")
        scope = Scope()
        for node in program.body:
            if isinstance(node, VarAssign):
                scope.define_variable(node.name, node)
        assert scope.default_value("a") == 3.0
        assert scope.default_value("b") == (1.0, 2.0)
        assert scope.lookup_variable("a").position.column == 29
