"""
Defines the program-tree node types and the Scope used by the Tern runtime.

Nodes are produced by the TernTransformer (or built directly by a host) and
consumed by the Evaluator. Every node may carry a `loc` dict with the
`line`/`col` of the source it came from; `loc` never takes part in equality.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from tern.tern_errors import UnboundVariable


# =================================================================
# Scope
# =================================================================

class Scope:
    """A variable environment with a lexical parent.

    A scope is created for each function call, each block body and each
    for-each iteration. Declaring a name binds it here (shadowing outer
    bindings); assigning a name rebinds it in the scope that owns it.
    """
    def __init__(self, parent: Optional['Scope'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Scope key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __getitem__(self, key: str) -> Any:
        owner = self.find_owner(key)
        if owner is not None:
            return owner.bindings[key]
        raise UnboundVariable(f"'{key}' is not defined", name=key)

    def __contains__(self, key: Any) -> bool:
        return isinstance(key, str) and self.find_owner(key) is not None

    def find_owner(self, key: str) -> Optional['Scope']:
        """Finds the Scope in the parent chain that binds key."""
        scope = self
        while scope is not None:
            if key in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def get(self, key: str, default: Any = None) -> Any:
        owner = self.find_owner(key)
        if owner is not None:
            return owner.bindings[key]
        return default

    def declare(self, key: str, value: Any = None):
        """Binds key in this scope, shadowing any outer binding."""
        self[key] = value

    def assign(self, key: str, value: Any):
        """Rebinds an existing variable where it was declared."""
        owner = self.find_owner(key)
        if owner is None:
            raise UnboundVariable(f"cannot assign to undeclared variable '{key}'", name=key)
        owner.bindings[key] = value

    def keys(self):
        """Returns a view of keys in the current scope only."""
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{keys}]{parent_id}>"


# =================================================================
# Program nodes
# =================================================================

@dataclass
class Node:
    loc: Optional[dict] = field(default=None, compare=False, repr=False, kw_only=True)


# --- Expressions ---

@dataclass
class Literal(Node):
    """An int, string, bool or none constant."""
    value: Any


@dataclass
class Variable(Node):
    name: str


@dataclass
class BinaryOp(Node):
    op: str
    left: Node
    right: Node


@dataclass
class UnaryOp(Node):
    op: str
    operand: Node


@dataclass
class ArrayLiteral(Node):
    items: List[Node] = field(default_factory=list)


@dataclass
class DictLiteral(Node):
    entries: List[Tuple[Node, Node]] = field(default_factory=list)


@dataclass
class IndexExpr(Node):
    container: Node
    key: Node


@dataclass
class Call(Node):
    """A call to a bound primitive, or a method call when receiver is set."""
    name: str
    args: List[Node] = field(default_factory=list)
    receiver: Optional[Node] = None


# --- Statements ---

@dataclass
class VarDecl(Node):
    name: str
    value: Optional[Node] = None


@dataclass
class Assign(Node):
    """`target op value`; target is a Variable or an IndexExpr."""
    target: Node
    value: Node
    op: str = "="


@dataclass
class ExprStmt(Node):
    expr: Node


@dataclass
class ForEach(Node):
    names: List[str]
    iterable: Node
    body: List[Node] = field(default_factory=list)


@dataclass
class While(Node):
    cond: Node
    body: List[Node] = field(default_factory=list)


@dataclass
class If(Node):
    cond: Node
    body: List[Node] = field(default_factory=list)
    orelse: Optional[List[Node]] = None


@dataclass
class Break(Node):
    levels: int = 0


@dataclass
class Continue(Node):
    levels: int = 0


@dataclass
class Pass(Node):
    pass


@dataclass
class Return(Node):
    value: Optional[Node] = None


# --- Top level ---

@dataclass
class Function(Node):
    name: str
    params: List[str] = field(default_factory=list)
    body: List[Node] = field(default_factory=list)


@dataclass
class Script(Node):
    """Script-level variable names plus functions keyed by name."""
    functions: Dict[str, Function] = field(default_factory=dict)
    variables: List[str] = field(default_factory=list)


ASSIGN_OPERATORS = ("=", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=")
LOGICAL_OPERATORS = ("and", "or")
