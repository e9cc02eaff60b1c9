"""Lowering of OpenSCAD ASTs to CSG runtime calls.

The output is the body of a Python function taking one parameter, ``M``, the
CSG runtime handle. Parameter overrides are read from a mapping bound as
``params`` in the globals the body runs with:

    code = transpile("width = 50; cube(width);")
    namespace = {"params": {"width": 20}}
    exec(compile("def model(M):\n" + textwrap.indent(code, "    "),
                 "<model>", "exec"), namespace)
    solid = namespace["model"](runtime)

Runtime objects are unmanaged. Every object that is consumed by a later
operation is bound to a ``_vN`` temporary and released with ``.delete()``
right after that operation. The returned object is never released.
"""

from __future__ import annotations

import logging
import math
import textwrap
from dataclasses import dataclass, field
from typing import Optional, Union

from .errors import TranspileError
from .parser import parse
from .ast.scope import Scope
from .ast.nodes import (
    ArgValue,
    VarRef,
    Program,
    PrimitiveCall,
    Transform,
    BooleanOp,
    Extrude,
    SpecialVarAssign,
    VarAssign,
    TRANSFORMS,
    EXTRUSIONS,
)

logger = logging.getLogger(__name__)


# Names bound in the execution sandbox; source programs may not declare them
RESERVED_NAMES = frozenset({
    "params",
    "M",
    "cq",
    "MIN_WALL_THICKNESS",
    "MIN_FEATURE_SIZE",
})

MIN_SEGMENTS = 16
MAX_SEGMENTS = 128
DEFAULT_SEGMENTS = 32

_BOOLEAN_METHODS = {
    "union": "add",
    "difference": "subtract",
    "intersection": "intersect",
}

_NUMBER_TYPES = "(int, float)"


def clamp_fn(fn):
    """Clamp a segment count to ``[MIN_SEGMENTS, MAX_SEGMENTS]``."""
    return max(MIN_SEGMENTS, min(MAX_SEGMENTS, fn))


def format_number(value: float) -> str:
    """Format a number as a Python literal.

    Integral values are written without a fractional part and values closer
    to zero than 1e-10 are written as ``0``.

    Raises:
        TranspileError: If the value is infinite or NaN.
    """
    if not math.isfinite(value):
        raise TranspileError(f"Number out of range: {value}")
    if abs(value) < 1e-10:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


@dataclass
class TranspileOptions:
    """Options for a transpile call.

    Attributes:
        default_fn: Segment count used for curved surfaces until the program
            assigns ``$fn``. Clamped like any other ``$fn`` value.
    """
    default_fn: int = DEFAULT_SEGMENTS


@dataclass
class TranspileContext:
    """Mutable state of a single transpile call."""
    fn: int = DEFAULT_SEGMENTS
    temp_counter: int = 0
    lines: list[str] = field(default_factory=list)
    scope: Scope = field(default_factory=Scope)
    is_2d: bool = False
    node: object = None

    def new_temp(self) -> str:
        self.temp_counter += 1
        return f"_v{self.temp_counter}"

    def emit(self, line: str) -> None:
        self.lines.append(line)

    def materialize(self, solid: "_Solid") -> str:
        """Return a temporary holding the solid, binding one if needed."""
        if solid.temp:
            return solid.expr
        name = self.new_temp()
        self.emit(f"{name} = {solid.expr}")
        return name

    def release(self, name: str) -> None:
        self.emit(f"{name}.delete()")


@dataclass(frozen=True)
class _Solid:
    """A lowered runtime object.

    ``expr`` is either an inline constructor call (``temp`` False) or the
    name of a temporary that owns the object (``temp`` True).
    """
    expr: str
    temp: bool = False


@dataclass(frozen=True)
class _Profile:
    """A lowered 2D shape: an expression evaluating to a list of [x, y] points."""
    expr: str


class Transpiler:
    """Lowers a ``Program`` to the body of a function of the runtime handle ``M``.

    A Transpiler holds only its options; all per-call state lives in a fresh
    ``TranspileContext``, so one instance can be reused.
    """

    def __init__(self, options: Optional[TranspileOptions] = None):
        self.options = options or TranspileOptions()

    def transpile(self, program: Program) -> str:
        """Lower a program.

        Returns:
            The generated function body.

        Raises:
            TranspileError: If the program cannot be lowered.
        """
        ctx = TranspileContext(fn=int(clamp_fn(self.options.default_fn)))
        ctx.node = program

        solids = []
        for statement in program.body:
            result = self._lower(statement, ctx)
            if result is not None:
                solids.append(result)

        if not solids:
            result = "None"
        else:
            result = self._combine(solids, "add", ctx).expr

        body = "\n".join(ctx.lines + [f"return {result}"])
        self._validate(body, program)
        return body

    def _validate(self, body: str, program: Program) -> None:
        source = "def _openscad_program(M):\n" + textwrap.indent(body, "    ")
        try:
            compile(source, "<openscad>", "exec")
        except SyntaxError as e:
            raise TranspileError(f"Internal compiler error: {e.msg}", program) from e

    # --- Dispatch ---

    def _lower(self, node, ctx: TranspileContext):
        previous = ctx.node
        ctx.node = node
        try:
            if isinstance(node, PrimitiveCall):
                return self._lower_primitive(node, ctx)
            if isinstance(node, Transform):
                return self._lower_transform(node, ctx)
            if isinstance(node, BooleanOp):
                return self._lower_boolean(node, ctx)
            if isinstance(node, Extrude):
                return self._lower_extrude(node, ctx)
            if isinstance(node, SpecialVarAssign):
                self._assign_special(node, ctx)
                return None
            if isinstance(node, VarAssign):
                self._assign_variable(node, ctx)
                return None
            raise TranspileError(f"Unsupported node type: {type(node).__name__}", node)
        except TranspileError as e:
            if e.node is None:
                e.node = node
            raise
        finally:
            ctx.node = previous

    def _lower_children(self, node, ctx: TranspileContext, kind: str) -> list:
        results = []
        for child in node.children:
            result = self._lower(child, ctx)
            if result is not None:
                results.append(result)
        if not results:
            raise TranspileError(f"{kind} has no children", node)
        return results

    def _error(self, message: str, ctx: TranspileContext) -> TranspileError:
        return TranspileError(message, ctx.node)

    # --- Assignments ---

    def _assign_special(self, node: SpecialVarAssign, ctx: TranspileContext) -> None:
        value = node.value
        if node.variable == "$fn" and isinstance(value, float):
            ctx.fn = int(clamp_fn(value))
        else:
            logger.debug("Ignoring special variable assignment %s", node)

    def _assign_variable(self, node: VarAssign, ctx: TranspileContext) -> None:
        if node.name in RESERVED_NAMES:
            raise TranspileError(
                f"Variable name '{node.name}' is reserved and cannot be used. "
                f"Reserved names: {', '.join(sorted(RESERVED_NAMES))}",
                node
            )
        previous = ctx.scope.define_variable(node.name, node)
        if previous is not None:
            logger.warning(
                "Variable '%s' is redefined at %s; previous value %s is overwritten",
                node.name, node.position, previous.value
            )

    # --- Values ---

    def format_value(self, value: ArgValue, ctx: TranspileContext) -> str:
        """Format an argument value as a Python expression.

        A VarRef becomes a lookup in ``params`` falling back to the literal
        default of its declaration.
        """
        if isinstance(value, VarRef):
            default = ctx.scope.default_value(value.name)
            if default is None:
                raise self._error(f"Unknown variable: {value.name}", ctx)
            return f"params.get({value.name!r}, {self.format_value(default, ctx)})"
        if isinstance(value, bool):
            return "True" if value else "False"
        if isinstance(value, (int, float)):
            return format_number(value)
        if isinstance(value, str):
            return repr(value)
        if isinstance(value, tuple):
            return "[" + ", ".join(self.format_value(item, ctx) for item in value) + "]"
        raise self._error(f"Unsupported value type: {type(value).__name__}", ctx)

    def _number(self, value, default: float, ctx: TranspileContext, what: str) -> str:
        if value is None:
            return format_number(default)
        if isinstance(value, bool) or not isinstance(value, (float, VarRef)):
            raise self._error(f"{what} must be a number", ctx)
        return self.format_value(value, ctx)

    def _flag(self, value, ctx: TranspileContext, what: str) -> str:
        if value is None:
            return "False"
        if not isinstance(value, (bool, VarRef)):
            raise self._error(f"{what} must be true or false", ctx)
        return self.format_value(value, ctx)

    def _segments(self, fn, ctx: TranspileContext) -> str:
        if fn is None:
            return str(ctx.fn)
        if isinstance(fn, VarRef):
            return f"max({MIN_SEGMENTS}, min({MAX_SEGMENTS}, int({self.format_value(fn, ctx)})))"
        if isinstance(fn, bool) or not isinstance(fn, float):
            raise self._error("$fn must be a number", ctx)
        return str(int(clamp_fn(fn)))

    def _literal_segments(self, fn, ctx: TranspileContext) -> int:
        if fn is None:
            return ctx.fn
        if isinstance(fn, bool) or not isinstance(fn, float):
            raise self._error("$fn of a 2D shape must be a literal number", ctx)
        return int(clamp_fn(fn))

    def _vector3(self, value, pad: float, ctx: TranspileContext, what: str) -> str:
        """Format a 2- or 3-vector, padding a 2-vector to three elements."""
        if isinstance(value, VarRef):
            return self.format_value(value, ctx)
        if not isinstance(value, tuple) or len(value) not in (2, 3):
            raise self._error(f"{what} expects a vector of 2 or 3 numbers", ctx)
        if len(value) == 2:
            value = value + (pad,)
        return self.format_value(value, ctx)

    def _expand_scalar(self, value, ctx: TranspileContext) -> str:
        """Format a scalar-or-vector value, expanding scalars to 3-vectors."""
        if isinstance(value, float):
            text = format_number(value)
            return f"[{text}, {text}, {text}]"
        if isinstance(value, VarRef):
            lookup = self.format_value(value, ctx)
            return f"([{lookup}, {lookup}, {lookup}] if isinstance({lookup}, {_NUMBER_TYPES}) else {lookup})"
        return None

    # --- Primitives ---

    def _lower_primitive(self, node: PrimitiveCall, ctx: TranspileContext):
        lower = {
            "cube": self._lower_cube,
            "sphere": self._lower_sphere,
            "cylinder": self._lower_cylinder,
            "circle": self._lower_circle,
            "square": self._lower_square,
            "polygon": self._lower_polygon,
        }.get(node.primitive)
        if lower is None:
            raise TranspileError(f"Unsupported primitive: {node.primitive}", node)
        if node.is_2d and not ctx.is_2d:
            raise TranspileError(
                f"2D primitive {node.primitive}() can only be used inside "
                "linear_extrude() or rotate_extrude()",
                node
            )
        if not node.is_2d and ctx.is_2d:
            raise TranspileError(
                f"3D primitive {node.primitive}() cannot be used inside an extrusion",
                node
            )
        return lower(node.args, ctx)

    def _lower_cube(self, args, ctx: TranspileContext) -> _Solid:
        size = args.size
        if size is None:
            size_expr = "[1, 1, 1]"
        elif isinstance(size, tuple) and len(size) == 3:
            size_expr = self.format_value(size, ctx)
        elif isinstance(size, (float, VarRef)) and not isinstance(size, bool):
            size_expr = self._expand_scalar(size, ctx)
        else:
            raise self._error("cube() size expects a number or a vector of 3 numbers", ctx)
        center = self._flag(args.center, ctx, "cube() center")
        return _Solid(f"M.Manifold.cube({size_expr}, {center})")

    def _lower_sphere(self, args, ctx: TranspileContext) -> _Solid:
        radius = self._number(args.r, 1.0, ctx, "sphere() radius")
        return _Solid(f"M.Manifold.sphere({radius}, {self._segments(args.fn, ctx)})")

    def _lower_cylinder(self, args, ctx: TranspileContext) -> _Solid:
        height = self._number(args.h, 1.0, ctx, "cylinder() height")
        if args.r is not None:
            r_low = r_high = self._number(args.r, 1.0, ctx, "cylinder() radius")
        else:
            r_low = self._number(args.r1, 1.0, ctx, "cylinder() r1")
            r_high = self._number(args.r2, 1.0, ctx, "cylinder() r2") if args.r2 is not None else r_low
        center = self._flag(args.center, ctx, "cylinder() center")
        segments = self._segments(args.fn, ctx)
        return _Solid(f"M.Manifold.cylinder({height}, {r_low}, {r_high}, {segments}, {center})")

    def _lower_circle(self, args, ctx: TranspileContext) -> _Profile:
        segments = self._literal_segments(args.fn, ctx)
        unit = [
            (math.cos(2 * math.pi * i / segments), math.sin(2 * math.pi * i / segments))
            for i in range(segments)
        ]
        radius = args.r if args.r is not None else 1.0
        if isinstance(radius, VarRef):
            lookup = self.format_value(radius, ctx)
            points = _format_points(unit)
            return _Profile(f"[[_x * {lookup}, _y * {lookup}] for _x, _y in {points}]")
        if isinstance(radius, bool) or not isinstance(radius, float):
            raise self._error("circle() radius must be a number", ctx)
        return _Profile(_format_points([(radius * x, radius * y) for x, y in unit]))

    def _lower_square(self, args, ctx: TranspileContext) -> _Profile:
        size = args.size if args.size is not None else 1.0
        center = args.center if args.center is not None else False
        if not isinstance(center, (bool, VarRef)):
            raise self._error("square() center must be true or false", ctx)

        literal = (isinstance(size, float) or (
            isinstance(size, tuple) and len(size) == 2
            and all(isinstance(item, float) and not isinstance(item, bool) for item in size)))
        if literal and isinstance(center, bool):
            width, height = (size, size) if isinstance(size, float) else size
            if center:
                hw, hh = width / 2, height / 2
                return _Profile(_format_points([(-hw, -hh), (hw, -hh), (hw, hh), (-hw, hh)]))
            return _Profile(_format_points([(0, 0), (width, 0), (width, height), (0, height)]))

        if isinstance(size, VarRef):
            lookup = self.format_value(size, ctx)
            width = f"({lookup} if isinstance({lookup}, {_NUMBER_TYPES}) else {lookup}[0])"
            height = f"({lookup} if isinstance({lookup}, {_NUMBER_TYPES}) else {lookup}[1])"
        elif isinstance(size, float):
            width = height = format_number(size)
        elif isinstance(size, tuple) and len(size) == 2:
            width = self._number(size[0], 1.0, ctx, "square() width")
            height = self._number(size[1], 1.0, ctx, "square() height")
        else:
            raise self._error("square() size expects a number or a vector of 2 numbers", ctx)

        corner = f"[[0, 0], [{width}, 0], [{width}, {height}], [0, {height}]]"
        hw, hh = f"{width} / 2", f"{height} / 2"
        centered = f"[[-({hw}), -({hh})], [{hw}, -({hh})], [{hw}, {hh}], [-({hw}), {hh}]]"
        if isinstance(center, bool):
            return _Profile(centered if center else corner)
        return _Profile(f"({centered} if {self.format_value(center, ctx)} else {corner})")

    def _lower_polygon(self, args, ctx: TranspileContext) -> _Profile:
        points = args.points
        if points is None:
            raise self._error("polygon() requires points", ctx)
        if args.convexity is not None:
            logger.warning("Ignoring polygon() convexity=%s", args.convexity)

        paths = args.paths
        if paths is not None:
            if isinstance(paths, tuple) and paths and all(isinstance(p, tuple) for p in paths):
                if len(paths) > 1:
                    raise self._error(
                        "polygon() with multiple paths (holes) is not supported", ctx
                    )
                paths = paths[0]
            if not isinstance(points, tuple) or not isinstance(paths, tuple):
                raise self._error("polygon() paths require a literal list of points", ctx)
            points = tuple(self._path_point(points, index, ctx) for index in paths)

        if isinstance(points, VarRef):
            return _Profile(self.format_value(points, ctx))
        if not isinstance(points, tuple):
            raise self._error("polygon() points must be a list of [x, y] points", ctx)
        return _Profile(self.format_value(points, ctx))

    def _path_point(self, points: tuple, index, ctx: TranspileContext):
        if isinstance(index, bool) or not isinstance(index, float) or not index.is_integer():
            raise self._error("polygon() path entries must be integer indices", ctx)
        if not 0 <= index < len(points):
            raise self._error(f"polygon() path index {int(index)} is out of range", ctx)
        return points[int(index)]

    # --- Transforms ---

    def _lower_transform(self, node: Transform, ctx: TranspileContext):
        if node.transform not in TRANSFORMS:
            raise TranspileError(f"Unknown transform: {node.transform}", node)
        if node.transform in ("hull", "minkowski"):
            raise TranspileError(f"Transform {node.transform}() is not supported", node)
        if node.transform == "rotate" and node.args.v is not None:
            raise TranspileError(
                "rotate(a, v) with an axis vector is not supported; "
                "use rotate([x, y, z]) instead",
                node
            )
        if ctx.is_2d and node.transform != "color":
            raise TranspileError(
                f"Transform {node.transform}() cannot be used inside an extrusion; "
                "2D shapes are not transformed, only color() is accepted there",
                node
            )

        children = self._lower_children(node, ctx, f"Transform {node.transform}()")
        if ctx.is_2d:
            return self._first_profile(children, f"{node.transform}()")

        combined = self._combine(children, "add", ctx)
        if node.transform == "color":
            return combined

        call = self._transform_call(node, ctx)
        source = ctx.materialize(combined)
        result = ctx.new_temp()
        ctx.emit(f"{result} = {source}{call}")
        ctx.release(source)
        return _Solid(result, temp=True)

    def _transform_call(self, node: Transform, ctx: TranspileContext) -> str:
        args = node.args
        if node.transform == "translate":
            v = args.v if args.v is not None else (0.0, 0.0, 0.0)
            return f".translate({self._vector3(v, 0.0, ctx, 'translate()')})"
        if node.transform == "rotate":
            a = args.a if args.a is not None else (0.0, 0.0, 0.0)
            if isinstance(a, float):
                a = (0.0, 0.0, a)
            elif isinstance(a, VarRef):
                lookup = self.format_value(a, ctx)
                return f".rotate(([0, 0, {lookup}] if isinstance({lookup}, {_NUMBER_TYPES}) else {lookup}))"
            return f".rotate({self._vector3(a, 0.0, ctx, 'rotate()')})"
        if node.transform == "scale":
            v = args.v if args.v is not None else (1.0, 1.0, 1.0)
            expanded = self._expand_scalar(v, ctx)
            if expanded is None:
                expanded = self._vector3(v, 1.0, ctx, "scale()")
            return f".scale({expanded})"
        if node.transform == "mirror":
            v = args.v if args.v is not None else (1.0, 0.0, 0.0)
            return f".mirror({self._vector3(v, 0.0, ctx, 'mirror()')})"
        raise TranspileError(f"Unknown transform: {node.transform}", node)

    # --- Booleans ---

    def _lower_boolean(self, node: BooleanOp, ctx: TranspileContext):
        method = _BOOLEAN_METHODS.get(node.operation)
        if method is None:
            raise TranspileError(f"Unknown boolean operation: {node.operation}", node)
        children = self._lower_children(node, ctx, f"Boolean operation {node.operation}()")
        if ctx.is_2d:
            return self._first_profile(children, f"{node.operation}()")
        return self._combine(children, method, ctx)

    def _combine(self, solids: list, method: str, ctx: TranspileContext) -> _Solid:
        """Fold solids left to right through a binary runtime operation."""
        if len(solids) == 1:
            return solids[0]
        current = ctx.materialize(solids[0])
        for solid in solids[1:]:
            operand = ctx.materialize(solid)
            result = ctx.new_temp()
            ctx.emit(f"{result} = {current}.{method}({operand})")
            ctx.release(current)
            ctx.release(operand)
            current = result
        return _Solid(current, temp=True)

    # --- Extrusions ---

    def _lower_extrude(self, node: Extrude, ctx: TranspileContext) -> _Solid:
        if node.extrude not in EXTRUSIONS:
            raise TranspileError(f"Unknown extrusion type: {node.extrude}", node)
        if ctx.is_2d:
            raise TranspileError(f"Nested extrusion {node.extrude}() is not supported", node)

        ctx.is_2d = True
        try:
            profiles = self._lower_children(node, ctx, f"Extrusion {node.extrude}()")
        finally:
            ctx.is_2d = False
        points = self._first_profile(profiles, f"{node.extrude}()").expr

        args = node.args
        if node.extrude == "linear_extrude":
            height = self._number(args.height, 1.0, ctx, "linear_extrude() height")
            slices = args.slices if args.slices is not None else 0.0
            if isinstance(slices, VarRef):
                divisions = f"int({self.format_value(slices, ctx)})"
            elif isinstance(slices, float) and not isinstance(slices, bool):
                divisions = str(int(slices))
            else:
                raise self._error("linear_extrude() slices must be a number", ctx)
            twist = self._number(args.twist, 0.0, ctx, "linear_extrude() twist")
            scale = self.format_value(args.scale, ctx) if args.scale is not None else "1"
            center = self._flag(args.center, ctx, "linear_extrude() center")
            return _Solid(
                f"M.Manifold.extrude({points}, {height}, {divisions}, {twist}, {scale}, {center})"
            )
        if node.extrude == "rotate_extrude":
            segments = self._segments(args.fn, ctx)
            angle = self._number(args.angle, 360.0, ctx, "rotate_extrude() angle")
            return _Solid(f"M.Manifold.revolve({points}, {segments}, {angle})")
        raise TranspileError(f"Unknown extrusion type: {node.extrude}", node)

    def _first_profile(self, profiles: list, label: str) -> _Profile:
        # 2D booleans are not evaluated; the first shape stands in for the rest
        if len(profiles) > 1:
            logger.debug("%s: only the first of %d 2D shapes is used", label, len(profiles))
        return profiles[0]


def _format_points(points) -> str:
    return "[" + ", ".join(
        f"[{format_number(x)}, {format_number(y)}]" for x, y in points
    ) + "]"


def transpile(input: Union[str, Program], options: Optional[TranspileOptions] = None) -> str:
    """Compile OpenSCAD source, or a parsed Program, to a runtime function body.

    Args:
        input: OpenSCAD source code or a ``Program`` node.
        options: Transpile options (default: ``TranspileOptions()``).

    Returns:
        The body of a function of ``M`` that builds and returns the model.

    Raises:
        LexError: If the source cannot be tokenized.
        ParseError: If the source is not a supported program.
        TranspileError: If the program cannot be lowered.
        TypeError: If ``input`` is neither a string nor a Program.
    """
    if isinstance(input, str):
        program = parse(input)
    elif isinstance(input, Program):
        program = input
    else:
        raise TypeError(f"Expected OpenSCAD source or a Program, got {type(input).__name__}")
    return Transpiler(options).transpile(program)


def transpile_openscad(source: str, options: Optional[TranspileOptions] = None) -> str:
    """Parse and compile OpenSCAD source code."""
    return transpile(source, options)
