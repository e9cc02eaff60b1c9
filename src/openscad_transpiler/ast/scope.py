"""Variable tracking for OpenSCAD programs.

The supported subset has a single, global namespace of plain variables that
are declared before they are referenced. ``Scope`` records the most recent
``VarAssign`` for each name so that the transpiler can resolve VarRef
defaults.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .nodes import ArgValue, VarAssign


@dataclass
class Scope:
    """The variables visible at the current point of a program.

    Declarations are processed in source order, so a lookup only sees
    variables declared before it. Redeclaring a name replaces the earlier
    declaration from that point on.

    Attributes:
        variables: Declared variables (name -> declaring VarAssign node).
    """
    variables: dict[str, "VarAssign"] = field(default_factory=dict)

    def lookup_variable(self, name: str) -> Optional["VarAssign"]:
        """Look up a variable by name.

        Args:
            name: The variable name to look up.

        Returns:
            The VarAssign node that most recently declared the variable,
            or None if it has not been declared.
        """
        return self.variables.get(name)

    def default_value(self, name: str) -> Optional["ArgValue"]:
        """Return the literal default of a declared variable, or None."""
        node = self.lookup_variable(name)
        return node.value if node is not None else None

    def define_variable(self, name: str, node: "VarAssign") -> Optional["VarAssign"]:
        """Define (or redefine) a variable.

        Args:
            name: The variable name.
            node: The declaring VarAssign node.

        Returns:
            The previous declaration of the same name, or None.
        """
        previous = self.variables.get(name)
        self.variables[name] = node
        return previous

    def __contains__(self, name: str) -> bool:
        return name in self.variables

    def __repr__(self) -> str:
        vars_str = ", ".join(self.variables.keys()) if self.variables else "none"
        return f"<Scope vars=[{vars_str}]>"
