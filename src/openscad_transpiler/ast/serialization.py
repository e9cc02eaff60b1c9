"""JSON and YAML serialization for OpenSCAD AST trees.

This module serializes AST trees to JSON and YAML and reads them back, so a
caller can store, inspect or build a ``Program`` outside of the parser and
hand it to the transpiler directly.

Example:
    from openscad_transpiler.ast import getASTfromString, ast_to_json, ast_from_json

    ast = getASTfromString("cube(10);")
    json_str = ast_to_json(ast)
    ast_restored = ast_from_json(json_str)
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from .nodes import (
    Position,
    VarRef,
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
    ASTNode,
    Program,
    PrimitiveCall,
    Transform,
    BooleanOp,
    Extrude,
    SpecialVarAssign,
    VarAssign,
)


# Registry mapping class names to classes for deserialization
_NODE_REGISTRY: dict[str, type] = {
    cls.__name__: cls
    for cls in [
        # Nodes
        Program,
        PrimitiveCall,
        Transform,
        BooleanOp,
        Extrude,
        SpecialVarAssign,
        VarAssign,
        # Argument records
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
        # Values
        VarRef,
    ]
}


def _serialize_position(position: Position | None) -> dict[str, Any] | None:
    """Serialize a Position to a dictionary."""
    if position is None:
        return None
    return {
        "line": position.line,
        "column": position.column,
    }


def _serialize_value(value: Any, include_position: bool) -> Any:
    """Serialize a field value recursively."""
    if value is None:
        return None
    elif isinstance(value, (ASTNode, ArgRecord, VarRef)):
        return _serialize_node(value, include_position)
    elif isinstance(value, (list, tuple)):
        return [_serialize_value(item, include_position) for item in value]
    elif isinstance(value, (str, int, float, bool)):
        return value
    else:
        raise TypeError(f"Unsupported type for serialization: {type(value)}")


def _serialize_node(node: Any, include_position: bool) -> dict[str, Any]:
    """Serialize a single node, argument record or VarRef to a dictionary."""
    result: dict[str, Any] = {
        "_type": node.__class__.__name__,
    }

    has_position = False
    for field in dataclasses.fields(node):
        if field.name == "position":
            has_position = True
            continue
        value = getattr(node, field.name)
        if isinstance(node, ArgRecord) and value is None:
            continue
        result[field.name] = _serialize_value(value, include_position)

    if include_position and has_position and node.position is not None:
        result["_position"] = _serialize_position(node.position)

    return result


def ast_to_dict(
    ast: ASTNode | list[ASTNode] | None,
    include_position: bool = True,
) -> dict[str, Any] | list[dict[str, Any]] | None:
    """Convert an AST to a Python dictionary (JSON-serializable).

    Args:
        ast: An AST node, list of AST nodes, or None.
        include_position: If True, include source position information (default: True).

    Returns:
        A dictionary representation of the AST, a list of dictionaries, or None.
    """
    if ast is None:
        return None
    elif isinstance(ast, (list, tuple)):
        return [_serialize_node(node, include_position) for node in ast]
    else:
        return _serialize_node(ast, include_position)


def ast_to_json(
    ast: ASTNode | list[ASTNode] | None,
    include_position: bool = True,
    indent: int | None = 2,
) -> str:
    """Serialize an AST to a JSON string.

    Args:
        ast: An AST node, list of AST nodes, or None.
        include_position: If True, include source position information (default: True).
        indent: Indentation level for pretty-printing. Use None for compact output.

    Returns:
        A JSON string representation of the AST.
    """
    data = ast_to_dict(ast, include_position=include_position)
    return json.dumps(data, indent=indent)


def _deserialize_position(data: dict[str, Any] | None) -> Position | None:
    """Deserialize a Position from a dictionary."""
    if data is None:
        return None
    return Position(line=data["line"], column=data["column"])


def _deserialize_value(value: Any) -> Any:
    """Deserialize a field value recursively."""
    if value is None:
        return None
    elif isinstance(value, dict) and "_type" in value:
        return _deserialize_node(value)
    elif isinstance(value, list):
        return tuple(_deserialize_value(item) for item in value)
    elif isinstance(value, bool) or isinstance(value, str):
        return value
    elif isinstance(value, (int, float)):
        # Numbers are always floats in the AST
        return float(value)
    else:
        raise TypeError(f"Unsupported type for deserialization: {type(value)}")


def _deserialize_node(data: dict[str, Any]) -> Any:
    """Deserialize a single node, argument record or VarRef from a dictionary."""
    if "_type" not in data:
        raise ValueError("Missing '_type' field in node data")

    type_name = data["_type"]
    if type_name not in _NODE_REGISTRY:
        raise ValueError(f"Unknown node type: {type_name}")

    node_class = _NODE_REGISTRY[type_name]
    field_names = {f.name for f in dataclasses.fields(node_class)}

    kwargs: dict[str, Any] = {}
    if "position" in field_names and "_position" in data:
        kwargs["position"] = _deserialize_position(data["_position"])
    for key, value in data.items():
        if key.startswith("_"):
            continue  # Skip _type, _position
        if key not in field_names:
            raise ValueError(f"Unknown field '{key}' for node type {type_name}")
        kwargs[key] = _deserialize_value(value)

    return node_class(**kwargs)


def ast_from_dict(data: dict[str, Any] | list[dict[str, Any]] | None) -> Any:
    """Reconstruct an AST from a Python dictionary.

    Args:
        data: A dictionary, list of dictionaries, or None (as returned by ast_to_dict).

    Returns:
        An AST node, list of AST nodes, or None.

    Raises:
        ValueError: If the data contains an unknown node type or is malformed.
    """
    if data is None:
        return None
    elif isinstance(data, list):
        return [_deserialize_node(item) for item in data]
    else:
        return _deserialize_node(data)


def ast_from_json(json_str: str) -> Any:
    """Deserialize an AST from a JSON string.

    Raises:
        ValueError: If the JSON contains an unknown node type or is malformed.
        json.JSONDecodeError: If the string is not valid JSON.
    """
    data = json.loads(json_str)
    return ast_from_dict(data)


def ast_to_yaml(
    ast: ASTNode | list[ASTNode] | None,
    include_position: bool = True,
) -> str:
    """Serialize an AST to a YAML string.

    Requires PyYAML to be installed: pip install openscad-transpiler[yaml]

    Raises:
        ImportError: If PyYAML is not installed.
    """
    try:
        import yaml
    except ImportError:
        raise ImportError(
            "PyYAML is required for YAML serialization. "
            "Install it with: pip install openscad-transpiler[yaml]"
        )

    data = ast_to_dict(ast, include_position=include_position)
    return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def ast_from_yaml(yaml_str: str) -> Any:
    """Deserialize an AST from a YAML string.

    Requires PyYAML to be installed: pip install openscad-transpiler[yaml]

    Raises:
        ImportError: If PyYAML is not installed.
        ValueError: If the YAML contains an unknown node type or is malformed.
    """
    try:
        import yaml
    except ImportError:
        raise ImportError(
            "PyYAML is required for YAML deserialization. "
            "Install it with: pip install openscad-transpiler[yaml]"
        )

    data = yaml.safe_load(yaml_str)
    return ast_from_dict(data)
