"""Syntax tree nodes produced by the parser."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


class Node:
    pass


# ── Statements ────────────────────────────────────────────────

@dataclass
class Program(Node):
    body: list[Node]


@dataclass
class VarDecl(Node):
    kind: str                                   # const | let | var
    declarations: list[tuple[str, Optional[Node]]]


@dataclass
class FunctionDecl(Node):
    name: str
    function: "FunctionExpr"


@dataclass
class If(Node):
    test: Node
    consequent: Node
    alternate: Optional[Node] = None


@dataclass
class Return(Node):
    argument: Optional[Node] = None


@dataclass
class Block(Node):
    body: list[Node]


@dataclass
class ExprStmt(Node):
    expression: Node


@dataclass
class For(Node):
    init: Optional[Node]
    test: Optional[Node]
    update: Optional[Node]
    body: Node


@dataclass
class ForOf(Node):
    kind: str
    name: str
    iterable: Node
    body: Node


@dataclass
class While(Node):
    test: Node
    body: Node


@dataclass
class Break(Node):
    pass


@dataclass
class Continue(Node):
    pass


@dataclass
class Throw(Node):
    argument: Node


@dataclass
class Empty(Node):
    pass


# ── Expressions ───────────────────────────────────────────────

@dataclass
class Literal(Node):
    value: Any


@dataclass
class TemplateLiteral(Node):
    strings: list[str]
    expressions: list[Node]


@dataclass
class Identifier(Node):
    name: str


@dataclass
class Spread(Node):
    argument: Node


@dataclass
class ArrayLiteral(Node):
    elements: list[Node]


@dataclass
class Property(Node):
    key: Node                                   # Literal for plain keys, any expr when computed
    value: Node


@dataclass
class ObjectLiteral(Node):
    properties: list[Node]                      # Property | Spread


@dataclass
class Member(Node):
    object: Node
    property: Node
    computed: bool = False
    optional: bool = False


@dataclass
class OptionalChain(Node):
    """Wraps a member/call chain containing `?.`; a nullish link yields undefined for the whole chain."""
    expression: Node


@dataclass
class Call(Node):
    callee: Node
    arguments: list[Node]
    optional: bool = False


@dataclass
class New(Node):
    callee: Node
    arguments: list[Node]


@dataclass
class Unary(Node):
    operator: str
    argument: Node


@dataclass
class Update(Node):
    operator: str                               # ++ | --
    prefix: bool
    target: Node


@dataclass
class Binary(Node):
    operator: str
    left: Node
    right: Node


@dataclass
class Logical(Node):
    operator: str                               # && | || | ??
    left: Node
    right: Node


@dataclass
class Conditional(Node):
    test: Node
    consequent: Node
    alternate: Node


@dataclass
class Assign(Node):
    operator: str
    target: Node
    value: Node


@dataclass
class FunctionExpr(Node):
    params: list[str]
    body: Node                                  # Block, or an expression for concise arrows
    is_arrow: bool = False
    name: str = ""
    rest: Optional[str] = None
    defaults: dict[str, Node] = field(default_factory=dict)
