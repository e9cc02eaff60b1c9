import os

from .nodes import (
    Position,
    VarRef,
    ArgValue,
    format_arg_value,
    ArgRecord,
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
    PrimitiveArgs,
    TransformArgs,
    ExtrudeArgs,
    PRIMITIVES,
    PRIMITIVES_2D,
    TRANSFORMS,
    BOOLEAN_OPERATIONS,
    EXTRUSIONS,
    ASTNode,
    PrimitiveCall,
    Transform,
    BooleanOp,
    Extrude,
    SpecialVarAssign,
    VarAssign,
    Statement,
    Program,
)

from .scope import Scope

from .serialization import (
    ast_to_dict,
    ast_to_json,
    ast_from_dict,
    ast_from_json,
    ast_to_yaml,
    ast_from_yaml,
)


# --- AST convenience functions ---

def getASTfromString(code: str) -> Program:
    """
    Parse OpenSCAD source code from a string and return its Program node.

    Args:
        code (str): The OpenSCAD source code to be parsed.

    Returns:
        Program: The root of the AST.

    Raises:
        LexError: If the code cannot be tokenized.
        ParseError: If the code is not a supported program.

    Example:
        ast = getASTfromString("cube([1,2,3]);")
    """
    from ..parser import parse
    return parse(code)


def getASTfromFile(file: str) -> Program:
    """
    Parse an OpenSCAD source file and return its Program node.

    The file is read and parsed on every call.

    Args:
        file (str): The OpenSCAD source file to be parsed.

    Returns:
        Program: The root of the AST.

    Raises:
        FileNotFoundError: If the specified file does not exist.
        LexError: If the file cannot be tokenized.
        ParseError: If the file is not a supported program.
    """
    file_path = os.path.abspath(file)
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File {file} not found")

    with open(file_path, 'r', encoding='utf-8') as f:
        code = f.read()

    return getASTfromString(code)


# vim: set ts=4 sw=4 expandtab:
