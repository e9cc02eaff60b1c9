from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union


# --- Positions and values. ---

@dataclass(frozen=True)
class Position:
    """A position in source code.

    Attributes:
        line: 1-based line number.
        column: 1-based column number.
    """
    line: int
    column: int

    def __str__(self):
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class VarRef:
    """A reference to a previously declared variable.

    A VarRef may appear anywhere a literal argument value may, including
    inside nested arrays such as a polygon's point list. It is resolved when
    the generated program runs: the parameter-override table is consulted
    first, then the literal default from the declaring ``VarAssign``.

    Example:
        width = 50;
        cube([width, 10, 10]);   // VarRef(name='width')

    Attributes:
        name: The referenced variable name.
    """
    name: str

    def __str__(self):
        return self.name


# Recursive union of everything an argument or assignment can hold.
# Arrays are tuples so that values stay immutable.
ArgValue = Union[float, bool, str, VarRef, Tuple["ArgValue", ...]]


def format_arg_value(value) -> str:
    """Render an ArgValue back in OpenSCAD syntax."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    if isinstance(value, tuple):
        return "[" + ", ".join(format_arg_value(item) for item in value) + "]"
    return str(value)


# --- Argument records. ---

@dataclass(frozen=True)
class ArgRecord(object):
    """Base class for the typed argument record of a construct.

    Fields left as None were not given in the source. ``$fn``, ``$fa`` and
    ``$fs`` are stored as ``fn``, ``fa`` and ``fs``.
    """

    def __str__(self):
        items = []
        for name, value in vars(self).items():
            if value is None:
                continue
            if name in ("fn", "fa", "fs"):
                name = "$" + name
            items.append(f"{name}={format_arg_value(value)}")
        return ", ".join(items)


@dataclass(frozen=True)
class CubeArgs(ArgRecord):
    """Arguments of ``cube(size, center)``.

    ``size`` is a scalar (all three edges), a 3-vector, or a VarRef.
    """
    size: Optional[ArgValue] = None
    center: Optional[ArgValue] = None


@dataclass(frozen=True)
class SphereArgs(ArgRecord):
    """Arguments of ``sphere(r)``. A diameter ``d`` is stored as ``r``."""
    r: Optional[ArgValue] = None
    fn: Optional[ArgValue] = None
    fa: Optional[ArgValue] = None
    fs: Optional[ArgValue] = None


@dataclass(frozen=True)
class CylinderArgs(ArgRecord):
    """Arguments of ``cylinder(h, r1, r2, center)``.

    Diameters ``d``, ``d1`` and ``d2`` are stored as ``r``, ``r1`` and ``r2``.
    """
    h: Optional[ArgValue] = None
    r: Optional[ArgValue] = None
    r1: Optional[ArgValue] = None
    r2: Optional[ArgValue] = None
    center: Optional[ArgValue] = None
    fn: Optional[ArgValue] = None
    fa: Optional[ArgValue] = None
    fs: Optional[ArgValue] = None


@dataclass(frozen=True)
class CircleArgs(ArgRecord):
    """Arguments of ``circle(r)``. A diameter ``d`` is stored as ``r``."""
    r: Optional[ArgValue] = None
    fn: Optional[ArgValue] = None
    fa: Optional[ArgValue] = None
    fs: Optional[ArgValue] = None


@dataclass(frozen=True)
class SquareArgs(ArgRecord):
    """Arguments of ``square(size, center)``."""
    size: Optional[ArgValue] = None
    center: Optional[ArgValue] = None


@dataclass(frozen=True)
class PolygonArgs(ArgRecord):
    """Arguments of ``polygon(points, paths, convexity)``."""
    points: Optional[ArgValue] = None
    paths: Optional[ArgValue] = None
    convexity: Optional[ArgValue] = None


@dataclass(frozen=True)
class TranslateArgs(ArgRecord):
    v: Optional[ArgValue] = None


@dataclass(frozen=True)
class RotateArgs(ArgRecord):
    """Arguments of ``rotate(a, v)``.

    ``a`` is either a scalar angle about Z or a vector of Euler angles;
    ``v`` is the axis of the axis-angle form.
    """
    a: Optional[ArgValue] = None
    v: Optional[ArgValue] = None


@dataclass(frozen=True)
class ScaleArgs(ArgRecord):
    v: Optional[ArgValue] = None


@dataclass(frozen=True)
class MirrorArgs(ArgRecord):
    v: Optional[ArgValue] = None


@dataclass(frozen=True)
class ColorArgs(ArgRecord):
    c: Optional[ArgValue] = None
    alpha: Optional[ArgValue] = None


@dataclass(frozen=True)
class HullArgs(ArgRecord):
    pass


@dataclass(frozen=True)
class MinkowskiArgs(ArgRecord):
    convexity: Optional[ArgValue] = None


@dataclass(frozen=True)
class LinearExtrudeArgs(ArgRecord):
    """Arguments of ``linear_extrude(height, center, convexity, twist, slices, scale)``."""
    height: Optional[ArgValue] = None
    center: Optional[ArgValue] = None
    convexity: Optional[ArgValue] = None
    twist: Optional[ArgValue] = None
    slices: Optional[ArgValue] = None
    scale: Optional[ArgValue] = None
    fn: Optional[ArgValue] = None


@dataclass(frozen=True)
class RotateExtrudeArgs(ArgRecord):
    """Arguments of ``rotate_extrude(angle=..., convexity=..., $fn=...)``."""
    angle: Optional[ArgValue] = None
    convexity: Optional[ArgValue] = None
    fn: Optional[ArgValue] = None
    fa: Optional[ArgValue] = None
    fs: Optional[ArgValue] = None


PrimitiveArgs = Union[CubeArgs, SphereArgs, CylinderArgs, CircleArgs, SquareArgs, PolygonArgs]
TransformArgs = Union[TranslateArgs, RotateArgs, ScaleArgs, MirrorArgs, ColorArgs, HullArgs, MinkowskiArgs]
ExtrudeArgs = Union[LinearExtrudeArgs, RotateExtrudeArgs]


# --- AST nodes classes. ---

PRIMITIVES = ("cube", "sphere", "cylinder", "circle", "square", "polygon")
PRIMITIVES_2D = ("circle", "square", "polygon")
TRANSFORMS = ("translate", "rotate", "scale", "mirror", "color", "hull", "minkowski")
BOOLEAN_OPERATIONS = ("union", "difference", "intersection")
EXTRUSIONS = ("linear_extrude", "rotate_extrude")


def _format_children(children) -> str:
    if len(children) == 1:
        return f" {children[0]}"
    return " { " + " ".join(str(child) for child in children) + " }"


@dataclass(frozen=True)
class ASTNode(object):
    """Base class for all AST nodes.

    Nodes are immutable. Every node may carry the source position of its
    first token, used for diagnostics.
    """

    def __str__(self) -> str:
        """Return the node rendered back as OpenSCAD source."""
        raise NotImplementedError


@dataclass(frozen=True)
class PrimitiveCall(ASTNode):
    """A primitive shape call.

    Examples:
        cube([10, 20, 30], center=true);
        sphere(d=10);          // stored as SphereArgs(r=5.0)
        circle(r=5);           // 2D, only valid inside an extrusion

    Attributes:
        primitive: One of ``PRIMITIVES``.
        args: The typed argument record for the primitive.
    """
    primitive: str
    args: PrimitiveArgs
    position: Optional[Position] = None

    @property
    def is_2d(self) -> bool:
        return self.primitive in PRIMITIVES_2D

    def __str__(self):
        return f"{self.primitive}({self.args});"


@dataclass(frozen=True)
class Transform(ASTNode):
    """A transform applied to one or more children.

    Example:
        translate([1, 2, 3]) { cube(1); sphere(2); }

    Attributes:
        transform: One of ``TRANSFORMS``.
        args: The typed argument record for the transform.
        children: Child statements, in source order.
    """
    transform: str
    args: TransformArgs
    children: Tuple["Statement", ...] = ()
    position: Optional[Position] = None

    def __str__(self):
        return f"{self.transform}({self.args}){_format_children(self.children)}"


@dataclass(frozen=True)
class BooleanOp(ASTNode):
    """A boolean combination of children.

    Attributes:
        operation: One of ``BOOLEAN_OPERATIONS``.
        children: Operands, in source order. For ``difference`` the first
            child is the base and the rest are subtracted from it.
    """
    operation: str
    children: Tuple["Statement", ...] = ()
    position: Optional[Position] = None

    def __str__(self):
        return f"{self.operation}(){_format_children(self.children)}"


@dataclass(frozen=True)
class Extrude(ASTNode):
    """A linear or rotational extrusion of a 2D profile.

    Attributes:
        extrude: One of ``EXTRUSIONS``.
        args: The typed argument record for the extrusion.
        children: The 2D children. Only the first one is used as the profile.
    """
    extrude: str
    args: ExtrudeArgs
    children: Tuple["Statement", ...] = ()
    position: Optional[Position] = None

    def __str__(self):
        return f"{self.extrude}({self.args}){_format_children(self.children)}"


@dataclass(frozen=True)
class SpecialVarAssign(ASTNode):
    """Assignment to a special variable such as ``$fn = 64;``.

    Only ``$fn`` affects lowering; the others are accepted and ignored.
    """
    variable: str
    value: ArgValue
    position: Optional[Position] = None

    def __str__(self):
        return f"{self.variable} = {format_arg_value(self.value)};"


@dataclass(frozen=True)
class VarAssign(ASTNode):
    """Assignment of a literal default to a plain variable, e.g. ``width = 50;``.

    The value becomes the compiled-in default for every later VarRef to the
    same name.
    """
    name: str
    value: ArgValue
    position: Optional[Position] = None

    def __str__(self):
        return f"{self.name} = {format_arg_value(self.value)};"


Statement = Union[PrimitiveCall, Transform, BooleanOp, Extrude, SpecialVarAssign, VarAssign]


@dataclass(frozen=True)
class Program(ASTNode):
    """Root node holding the top-level statements in source order."""
    body: Tuple[Statement, ...] = ()
    position: Optional[Position] = None

    def __str__(self):
        return "\n".join(str(statement) for statement in self.body)
