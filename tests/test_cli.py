"""Tests for the openscad-transpile command."""

import json

from click.testing import CliRunner
from openscad_transpiler.__main__ import main


def invoke(args, source=None):
    return CliRunner().invoke(main, args, input=source)


def test_emit_python_from_stdin():
    result = invoke([], "cube(10);")
    assert result.exit_code == 0
    assert result.output == "return M.Manifold.cube([10, 10, 10], False)\n"


def test_default_fn_option():
    result = invoke(["--fn", "64"], "sphere(1);")
    assert result.exit_code == 0
    assert result.output == "return M.Manifold.sphere(1, 64)\n"


def test_default_fn_clamped():
    result = invoke(["--fn", "4"], "sphere(1);")
    assert result.output == "return M.Manifold.sphere(1, 16)\n"


def test_emit_json():
    result = invoke(["--emit", "json"], "width = 5; cube(width);")
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["_type"] == "Program"
    assert data["body"][1]["args"]["size"] == {"_type": "VarRef", "name": "width"}


def test_input_and_output_files(tmp_path):
    source = tmp_path / "model.scad"
    source.write_text("translate([1, 2, 3]) cube(1);\n")
    target = tmp_path / "model.py"
    result = invoke(["-i", str(source), "-o", str(target)])
    assert result.exit_code == 0
    assert target.read_text() == (
        "_v1 = M.Manifold.cube([1, 1, 1], False)\n"
        "_v2 = _v1.translate([1, 2, 3])\n"
        "_v1.delete()\n"
        "return _v2\n"
    )


def test_missing_input_file(tmp_path):
    result = invoke(["-i", str(tmp_path / "missing.scad")])
    assert result.exit_code == 2


def test_parse_error():
    result = invoke([], "cube(1)")
    assert result.exit_code == 1
    assert "Parse Error at line 1" in result.output
    assert "Expected:" in result.output


def test_lex_error():
    result = invoke([], "cube(1) #")
    assert result.exit_code == 1
    assert "Lex Error at line 1, column 9" in result.output


def test_transpile_error():
    result = invoke([], "params = 1;")
    assert result.exit_code == 1
    assert "Transpile Error at 1:1: Variable name 'params' is reserved" in result.output


def test_transpile_error_nested_position():
    result = invoke([], "union() {\n  cube(1);\n  hull() cube(1);\n}")
    assert result.exit_code == 1
    assert "Transpile Error at 3:3: Transform hull() is not supported" in result.output
