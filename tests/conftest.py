"""Pytest configuration and shared fixtures for OpenSCAD transpiler tests."""

import textwrap

import pytest
from openscad_transpiler import parse, transpile


class RuntimeMisuse(Exception):
    """A generated program used the runtime incorrectly."""


class FakeSolid:
    """A runtime object that records how it was made and checks its lifetime."""

    def __init__(self, kernel, op, args, sources=()):
        self.kernel = kernel
        self.op = op
        self.args = args
        self.sources = sources
        self.alive = True
        kernel.constructed.append(self)

    def _check(self):
        if not self.alive:
            raise RuntimeMisuse(f"use after release: {self!r}")

    def _derive(self, op, *args):
        self._check()
        return FakeSolid(self.kernel, op, args, (self,))

    def translate(self, v):
        return self._derive("translate", v)

    def rotate(self, v):
        return self._derive("rotate", v)

    def scale(self, v):
        return self._derive("scale", v)

    def mirror(self, v):
        return self._derive("mirror", v)

    def _combine(self, op, other):
        self._check()
        other._check()
        return FakeSolid(self.kernel, op, (), (self, other))

    def add(self, other):
        return self._combine("add", other)

    def subtract(self, other):
        return self._combine("subtract", other)

    def intersect(self, other):
        return self._combine("intersect", other)

    def delete(self):
        if not self.alive:
            raise RuntimeMisuse(f"double release: {self!r}")
        self.alive = False
        self.kernel.released.append(self)

    def __repr__(self):
        return f"<FakeSolid {self.op}{self.args}>"


class FakeManifold:
    def __init__(self, kernel):
        self.kernel = kernel

    def cube(self, size, center):
        return FakeSolid(self.kernel, "cube", (size, center))

    def sphere(self, r, segments):
        return FakeSolid(self.kernel, "sphere", (r, segments))

    def cylinder(self, h, r_low, r_high, segments, center):
        return FakeSolid(self.kernel, "cylinder", (h, r_low, r_high, segments, center))

    def extrude(self, points, height, divisions, twist, scale_top, center):
        return FakeSolid(self.kernel, "extrude", (points, height, divisions, twist, scale_top, center))

    def revolve(self, points, segments, degrees):
        return FakeSolid(self.kernel, "revolve", (points, segments, degrees))


class FakeKernel:
    """Stands in for the CSG runtime handle ``M``."""

    def __init__(self):
        self.constructed = []
        self.released = []
        self.Manifold = FakeManifold(self)

    def live(self):
        return [solid for solid in self.constructed if solid.alive]


def run_generated(code, params=None):
    """Run a generated function body against a FakeKernel.

    Returns:
        (kernel, result) tuple.
    """
    source = "def _model(M):\n" + textwrap.indent(code, "    ")
    namespace = {"params": params if params is not None else {}}
    exec(compile(source, "<generated>", "exec"), namespace)
    kernel = FakeKernel()
    result = namespace["_model"](kernel)
    return kernel, result


@pytest.fixture
def kernel():
    """Create a fresh recording runtime."""
    return FakeKernel()


@pytest.fixture
def compile_and_run():
    """Transpile OpenSCAD source and run the result against a FakeKernel."""
    def _compile_and_run(source, params=None, options=None):
        code = transpile(source, options)
        kernel, result = run_generated(code, params)
        return code, kernel, result
    return _compile_and_run


def parse_statement(code):
    """Helper function to parse code holding exactly one statement."""
    program = parse(code)
    assert len(program.body) == 1
    return program.body[0]
