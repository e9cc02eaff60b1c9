"""Tests that run generated programs against a recording runtime."""

import pytest
from openscad_transpiler import TranspileOptions
from conftest import RuntimeMisuse, run_generated


PROGRAMS = [
    "cube(10);",
    "sphere(d=10);",
    "translate([1,2,3]) rotate([0,0,45]) cube(10);",
    "width = 50; cube(width);",
    "difference() { cube(20); sphere(10); cylinder(h=30, r=5); }",
    "cube(1); sphere(1); cylinder(h=2);",
    'color("red") { cube(1); sphere(1); }',
    "union() { translate([1, 0, 0]) cube(1); difference() { sphere(2); cube(1); } }",
    "translate([0, 0, 1]) scale(2) linear_extrude(height=2, twist=45) square(3, center=true);",
    "r = 2; rotate_extrude(angle=270) circle(r);",
    "intersection() { cube(4, center=true); sphere(3); mirror([1, 1]) cube(2); }",
]


class TestLifetime:
    """Test that every intermediate is released exactly once and never reused."""

    @pytest.mark.parametrize("source", PROGRAMS)
    def test_only_result_survives(self, compile_and_run, source):
        _, kernel, result = compile_and_run(source)
        assert result.alive
        assert kernel.live() == [result]
        assert len(kernel.released) == len(kernel.constructed) - 1

    @pytest.mark.parametrize("source", PROGRAMS)
    def test_fewer_releases_than_constructions(self, compile_and_run, source):
        _, kernel, _ = compile_and_run(source)
        assert len(kernel.released) < len(kernel.constructed)

    def test_empty_program(self, compile_and_run):
        _, kernel, result = compile_and_run("$fn = 64;")
        assert result is None
        assert kernel.constructed == []

    def test_fake_runtime_rejects_use_after_release(self):
        code = "_v1 = M.Manifold.cube([1, 1, 1], False)\n_v1.delete()\nreturn _v1.translate([1, 0, 0])"
        with pytest.raises(RuntimeMisuse):
            run_generated(code)

    def test_fake_runtime_rejects_double_release(self):
        code = "_v1 = M.Manifold.cube([1, 1, 1], False)\n_v1.delete()\n_v1.delete()\nreturn None"
        with pytest.raises(RuntimeMisuse):
            run_generated(code)


class TestScenarios:
    """Runtime behavior of the reference scenarios."""

    def test_cube(self, compile_and_run):
        _, kernel, result = compile_and_run("cube(10);")
        assert result.op == "cube"
        assert result.args == ([10, 10, 10], False)
        assert kernel.released == []

    def test_sphere(self, compile_and_run):
        _, _, result = compile_and_run("sphere(d=10);")
        assert result.args == (5, 32)

    def test_rotate_then_translate(self, compile_and_run):
        _, _, result = compile_and_run("translate([1,2,3]) rotate([0,0,45]) cube(10);")
        assert result.op == "translate"
        assert result.args == ([1, 2, 3],)
        rotated = result.sources[0]
        assert rotated.op == "rotate"
        assert rotated.args == ([0, 0, 45],)
        assert rotated.sources[0].op == "cube"

    def test_sequential_subtraction(self, compile_and_run):
        _, kernel, result = compile_and_run("difference() { cube(20); sphere(10); cylinder(h=30, r=5); }")
        assert result.op == "subtract"
        base, cylinder = result.sources
        assert cylinder.op == "cylinder"
        assert base.op == "subtract"
        assert [s.op for s in base.sources] == ["cube", "sphere"]
        assert all(not solid.alive for solid in kernel.constructed if solid is not result)


class TestParameters:
    """Test parameter overrides at run time."""

    def test_default_used(self, compile_and_run):
        _, _, result = compile_and_run("width = 50; cube(width);")
        assert result.args == ([50, 50, 50], False)

    def test_scalar_override(self, compile_and_run):
        _, _, result = compile_and_run("width = 50; cube(width);", params={"width": 20})
        assert result.args == ([20, 20, 20], False)

    def test_vector_override(self, compile_and_run):
        _, _, result = compile_and_run("width = 50; cube(width);", params={"width": [1, 2, 3]})
        assert result.args == ([1, 2, 3], False)

    def test_other_parameters_ignored(self, compile_and_run):
        _, _, result = compile_and_run("h = 4; cylinder(h=h, r=1);", params={"width": 9})
        assert result.args == (4, 1, 1, 32, False)

    def test_rotate_reference(self, compile_and_run):
        source = "a = 30; rotate(a) cube(1);"
        _, _, result = compile_and_run(source)
        assert result.args == ([0, 0, 30],)
        _, _, result = compile_and_run(source, params={"a": [10, 20, 30]})
        assert result.args == ([10, 20, 30],)

    def test_scale_reference(self, compile_and_run):
        _, _, result = compile_and_run("s = 2; scale(s) cube(1);")
        assert result.args == ([2, 2, 2],)

    def test_segment_reference_clamped(self, compile_and_run):
        source = "n = 64; sphere(r=1, $fn=n);"
        assert compile_and_run(source)[2].args == (1, 64)
        assert compile_and_run(source, params={"n": 4})[2].args == (1, 16)
        assert compile_and_run(source, params={"n": 1000})[2].args == (1, 128)

    def test_default_fn_option(self, compile_and_run):
        _, _, result = compile_and_run("sphere(1);", options=TranspileOptions(default_fn=100))
        assert result.args == (1, 100)


class TestProfiles:
    """Test 2D point lists passed to extrusions."""

    def test_circle_points(self, compile_and_run):
        _, _, result = compile_and_run("linear_extrude(1) circle(r=2, $fn=16);")
        points = result.args[0]
        assert len(points) == 16
        assert points[0] == [2, 0]
        assert points[4] == [0, 2]
        assert points[8] == [-2, 0]

    def test_circle_reference(self, compile_and_run):
        source = "r = 3; linear_extrude(1) circle(r);"
        points = compile_and_run(source)[2].args[0]
        assert len(points) == 32
        assert points[0] == pytest.approx([3, 0])
        points = compile_and_run(source, params={"r": 5})[2].args[0]
        assert points[8] == pytest.approx([0, 5])

    def test_square_reference_size(self, compile_and_run):
        source = "s = 3; linear_extrude(1) square(s);"
        assert compile_and_run(source)[2].args[0] == [[0, 0], [3, 0], [3, 3], [0, 3]]
        points = compile_and_run(source, params={"s": [2, 4]})[2].args[0]
        assert points == [[0, 0], [2, 0], [2, 4], [0, 4]]

    def test_square_reference_center(self, compile_and_run):
        source = "c = true; linear_extrude(1) square(2, center=c);"
        assert compile_and_run(source)[2].args[0] == [[-1, -1], [1, -1], [1, 1], [-1, 1]]
        points = compile_and_run(source, params={"c": False})[2].args[0]
        assert points == [[0, 0], [2, 0], [2, 2], [0, 2]]

    def test_polygon_reference_points(self, compile_and_run):
        source = "x = 5; linear_extrude(2) polygon([[0, 0], [x, 0], [0, x]]);"
        assert compile_and_run(source)[2].args[0] == [[0, 0], [5, 0], [0, 5]]
        assert compile_and_run(source, params={"x": 7})[2].args[0] == [[0, 0], [7, 0], [0, 7]]

    def test_linear_extrude_arguments(self, compile_and_run):
        source = "h = 5; linear_extrude(height=h, slices=4, twist=30, scale=0.5, center=true) square(1);"
        _, _, result = compile_and_run(source, params={"h": 8})
        assert result.op == "extrude"
        assert result.args[1:] == (8, 4, 30, 0.5, True)

    def test_revolve_arguments(self, compile_and_run):
        _, _, result = compile_and_run("$fn = 48; rotate_extrude(angle=90) square([1, 2]);")
        assert result.op == "revolve"
        assert result.args == ([[0, 0], [1, 0], [1, 2], [0, 2]], 48, 90)
