"""
Abstract Syntax Tree (AST) Node Definitions

Every node is a plain dataclass, so two trees compare equal when they have
the same shape and values. `render()` prints a node back as source text
that parses to an equal tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

INDENT = "    "


@dataclass
class ASTNode:
    """Base class for all AST nodes"""

    def render(self, indent: int = 0) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.render()


# ============== Expression Nodes ==============

@dataclass
class Expression(ASTNode):
    """Base class for expressions"""
    pass


@dataclass
class Identifier(Expression):
    name: str

    def render(self, indent: int = 0) -> str:
        return self.name


@dataclass
class IntegerLiteral(Expression):
    value: int

    def render(self, indent: int = 0) -> str:
        return str(self.value)


@dataclass
class PrefixExpression(Expression):
    """Unary operator application, e.g. -x"""
    operator: str
    operand: Expression

    def render(self, indent: int = 0) -> str:
        return f"({self.operator}{self.operand.render(indent)})"


@dataclass
class InfixExpression(Expression):
    """Binary operator application, e.g. a + b"""
    operator: str
    left: Expression
    right: Expression

    def render(self, indent: int = 0) -> str:
        return f"({self.left.render(indent)} {self.operator} {self.right.render(indent)})"


@dataclass
class AssignExpression(Expression):
    """Assignment; the target is always an Identifier"""
    target: Expression
    value: Expression

    def render(self, indent: int = 0) -> str:
        return f"({self.target.render(indent)} = {self.value.render(indent)})"


@dataclass
class IfExpression(Expression):
    condition: Expression
    consequence: 'Statement'
    alternative: Optional['Statement'] = None

    def render(self, indent: int = 0) -> str:
        out = f"if ({self.condition.render(indent)}) {self.consequence.render(indent)}"
        if self.alternative is not None:
            out += f" else {self.alternative.render(indent)}"
        return out


@dataclass
class WhileExpression(Expression):
    condition: Expression
    body: 'Statement'

    def render(self, indent: int = 0) -> str:
        return f"while ({self.condition.render(indent)}) {self.body.render(indent)}"


@dataclass
class CallExpression(Expression):
    callee: str
    arguments: List[Expression] = field(default_factory=list)

    def render(self, indent: int = 0) -> str:
        args = ", ".join(a.render(indent) for a in self.arguments)
        return f"{self.callee}({args})"


# ============== Statement Nodes ==============

@dataclass
class Statement(ASTNode):
    """Base class for statements"""
    pass


@dataclass
class ExpressionStatement(Statement):
    expression: Expression

    def render(self, indent: int = 0) -> str:
        return f"{self.expression.render(indent)};"


@dataclass
class ReturnStatement(Statement):
    value: Expression

    def render(self, indent: int = 0) -> str:
        return f"return {self.value.render(indent)};"


@dataclass
class BlockStatement(Statement):
    """Block statement { ... }"""
    statements: List[Statement] = field(default_factory=list)

    def render(self, indent: int = 0) -> str:
        if not self.statements:
            return "{}"
        inner = INDENT * (indent + 1)
        lines = [inner + s.render(indent + 1) for s in self.statements]
        return "{\n" + "\n".join(lines) + "\n" + INDENT * indent + "}"


# ============== Top Level ==============

@dataclass
class Function(ASTNode):
    """Function definition: fn name(params) { body }"""
    name: str
    parameters: List[str]
    body: BlockStatement

    def render(self, indent: int = 0) -> str:
        params = ", ".join(self.parameters)
        return f"fn {self.name}({params}) {self.body.render(indent)}"


@dataclass
class Program(ASTNode):
    """Root node: the ordered list of function definitions"""
    functions: List[Function] = field(default_factory=list)

    def render(self, indent: int = 0) -> str:
        return "".join(f.render(indent) + "\n" for f in self.functions)

    def find_function(self, name: str) -> Optional[Function]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None
