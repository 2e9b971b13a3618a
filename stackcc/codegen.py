"""stackcc.codegen

x86-64 (System V AMD64 ABI) code generator, Intel syntax.

The generator walks the AST and lowers it as a stack machine: every
expression leaves exactly one 8-byte value on top of the machine stack and
every operator pops its operands from there. Statements follow the same
rule, so a block can discard each statement's value with a single
`pop rax`.

Frame layout per function:

    [rbp + 16 + 8*k]   stack-passed argument k (arguments 7 and up)
    [rbp + 8]          return address
    [rbp]              caller's rbp
    [rbp - off]        locals and parameters, `off` from the Environment

The prologue reserves the function's whole local area at once. Its size is
the Environment's high-water mark after the body has been compiled, which
is why each function body is generated before its prologue is emitted.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Tuple

from stackcc.ast_nodes import (
    Program,
    Function,
    Statement,
    BlockStatement,
    ExpressionStatement,
    ReturnStatement,
    Expression,
    Identifier,
    IntegerLiteral,
    PrefixExpression,
    InfixExpression,
    AssignExpression,
    IfExpression,
    WhileExpression,
    CallExpression,
)
from stackcc.scope import Environment

logger = logging.getLogger(__name__)

ARG_REGS = ["rdi", "rsi", "rdx", "rcx", "r8", "r9"]

# Prefix for every function label except `main`. Identifiers never contain
# `_`, so prefixed labels cannot clash with registers or operand keywords
# such as `rax` or `qword`.
SYMBOL_PREFIX = "sc_"

# Comparison lowering: (first cmp operand, second cmp operand, setcc).
# `>` and `>=` swap the operands instead of using setg/setge.
COMPARISONS: Dict[str, Tuple[str, str, str]] = {
    "==": ("rax", "rdi", "sete"),
    "!=": ("rax", "rdi", "setne"),
    "<": ("rax", "rdi", "setl"),
    "<=": ("rax", "rdi", "setle"),
    ">": ("rdi", "rax", "setl"),
    ">=": ("rdi", "rax", "setle"),
}

I32_MIN = -(2 ** 31)
I32_MAX = 2 ** 31 - 1


class Status(Enum):
    """Result of compiling one statement"""
    DEFAULT = "default"
    RETURN = "return"


class CodegenError(Exception):
    """Code generation error"""
    pass


class UnresolvedIdentifier(CodegenError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"identifier not found: {name}")


def symbol_name(name: str) -> str:
    """Assembly label for function `name`"""
    if name == "main":
        return name
    return SYMBOL_PREFIX + name


class CodeGenerator:
    """Generates x86-64 assembly from a Program"""

    def __init__(self):
        self.assembly_lines: List[str] = []
        self.env = Environment()
        self.errors: List[str] = []
        self._functions: Dict[str, Function] = {}
        self._current_function = ""

    def generate(self, program: Program) -> str:
        """Generate an assembly module for every function in `program`.

        Raises CodegenError listing every function that failed.
        """
        self.assembly_lines = []
        self.env = Environment()
        self.errors = []
        self._functions = {}

        for fn in program.functions:
            if fn.name in self._functions:
                self.errors.append(f"function redefined: {fn.name}")
                continue
            self._functions[fn.name] = fn

        self._emit(".intel_syntax noprefix")
        self._emit(".globl main")
        self._emit(".text")

        for fn in program.functions:
            if self._functions.get(fn.name) is not fn:
                continue
            try:
                self.assembly_lines.extend(self.generate_function(fn))
            except CodegenError as e:
                logger.debug("code generation failed in %s: %s", fn.name, e)
                self.errors.append(f"in function {fn.name}: {e}")

        if self.errors:
            raise CodegenError("\n".join(self.errors))
        return "\n".join(self.assembly_lines) + "\n"

    def _emit(self, line: str) -> None:
        self.assembly_lines.append(line)

    # -----------------
    # Function framing
    # -----------------

    def generate_function(self, fn: Function) -> List[str]:
        """Lower one function to a list of assembly lines"""
        logger.debug("generating %s(%s)", fn.name, ", ".join(fn.parameters))
        self._current_function = fn.name
        self.env.enter_function()
        try:
            param_offsets = [self.env.declare(p) for p in fn.parameters]
            body, _ = self._compile_block(fn.body)
            stack = self.env.frame_size()
        finally:
            self.env.leave()

        # keep rsp 16-byte aligned below the saved rbp
        if stack % 16 != 0:
            stack += 16 - stack % 16

        lines = [f"{symbol_name(fn.name)}:", "  push rbp", "  mov rbp, rsp"]
        if stack:
            lines.append(f"  sub rsp, {stack}")
        for i, off in enumerate(param_offsets):
            if i < len(ARG_REGS):
                lines.append(f"  mov [rbp - {off}], {ARG_REGS[i]}")
            else:
                lines.append(f"  mov rax, [rbp + {16 + 8 * (i - len(ARG_REGS))}]")
                lines.append(f"  mov [rbp - {off}], rax")
        lines.extend(body)
        lines.append("  pop rax")
        lines.append(f"{self._return_label()}:")
        lines.append("  mov rsp, rbp")
        lines.append("  pop rbp")
        lines.append("  ret")
        return lines

    def _return_label(self) -> str:
        return f".Lreturn.{symbol_name(self._current_function)}"

    # -----------------
    # Statements
    # -----------------

    def _compile_statement(self, stmt: Statement) -> Tuple[List[str], Status]:
        if isinstance(stmt, BlockStatement):
            return self._compile_block(stmt)
        if isinstance(stmt, ReturnStatement):
            lines = self._compile_expression(stmt.value)
            lines.append("  pop rax")
            lines.append(f"  jmp {self._return_label()}")
            return lines, Status.RETURN
        if isinstance(stmt, ExpressionStatement):
            return self._compile_expression(stmt.expression), Status.DEFAULT
        raise CodegenError(f"unsupported statement: {type(stmt).__name__}")

    def _compile_block(self, block: BlockStatement) -> Tuple[List[str], Status]:
        """Compile a block in its own scope.

        A `return` directly inside the block stops compilation of the
        statements after it. The block absorbs the RETURN status, so the
        enclosing block keeps compiling its own remaining statements.
        """
        if not block.statements:
            # an empty block's value is 0
            return ["  push 0"], Status.DEFAULT
        lines: List[str] = []
        self.env.enter_block()
        try:
            for stmt in block.statements:
                code, status = self._compile_statement(stmt)
                lines.extend(code)
                if status is Status.RETURN:
                    return lines, Status.DEFAULT
                lines.append("  pop rax")
            # the block's value is its last statement's value
            lines.append("  push rax")
            return lines, Status.DEFAULT
        finally:
            self.env.leave()

    # -----------------
    # Expressions
    # -----------------

    def _compile_expression(self, expr: Expression) -> List[str]:
        if isinstance(expr, IntegerLiteral):
            return self._compile_integer(expr.value)
        if isinstance(expr, Identifier):
            return self._compile_identifier(expr.name)
        if isinstance(expr, PrefixExpression):
            return self._compile_prefix(expr)
        if isinstance(expr, InfixExpression):
            return self._compile_infix(expr.operator, expr.left, expr.right)
        if isinstance(expr, AssignExpression):
            return self._compile_assign(expr)
        if isinstance(expr, IfExpression):
            return self._compile_if(expr)
        if isinstance(expr, WhileExpression):
            return self._compile_while(expr)
        if isinstance(expr, CallExpression):
            return self._compile_call(expr)
        raise CodegenError(f"unsupported expression: {type(expr).__name__}")

    def _compile_integer(self, value: int) -> List[str]:
        if I32_MIN <= value <= I32_MAX:
            return [f"  push {value}"]
        return [f"  movabs rax, {value}", "  push rax"]

    def _compile_identifier(self, name: str) -> List[str]:
        off = self.env.lookup(name)
        if off is None:
            raise UnresolvedIdentifier(name)
        return [
            "  mov rax, rbp",
            f"  sub rax, {off}",
            "  mov rax, [rax]",
            "  push rax",
        ]

    def _compile_prefix(self, expr: PrefixExpression) -> List[str]:
        if expr.operator == "-":
            return self._compile_infix("-", IntegerLiteral(0), expr.operand)
        raise CodegenError(f"unsupported prefix operator: {expr.operator}")

    def _compile_infix(self, op: str, left: Expression, right: Expression) -> List[str]:
        # Right operand first: it ends up below the left one on the stack.
        lines = self._compile_expression(right)
        lines.extend(self._compile_expression(left))
        lines.append("  pop rax")
        lines.append("  pop rdi")

        if op == "+":
            lines.append("  add rax, rdi")
        elif op == "-":
            lines.append("  sub rax, rdi")
        elif op == "*":
            lines.append("  imul rax, rdi")
        elif op == "/":
            lines.append("  cqo")
            lines.append("  idiv rdi")
        elif op in COMPARISONS:
            a, b, setcc = COMPARISONS[op]
            lines.append(f"  cmp {a}, {b}")
            lines.append(f"  {setcc} al")
            lines.append("  movzx rax, al")
        else:
            raise CodegenError(f"unsupported infix operator: {op}")

        lines.append("  push rax")
        return lines

    def _compile_assign(self, expr: AssignExpression) -> List[str]:
        if not isinstance(expr.target, Identifier):
            raise CodegenError(f"invalid assignment target: {expr.target}")
        lines = self._compile_expression(expr.value)

        name = expr.target.name
        off = self.env.lookup(name)
        if off is None:
            off = self.env.declare(name)
        lines.append(f"# {name}")
        lines.append("  mov rdi, rbp")
        lines.append(f"  sub rdi, {off}")
        lines.append("  pop rax")
        lines.append("  mov [rdi], rax")
        lines.append("  push rax")
        return lines

    def _compile_if(self, expr: IfExpression) -> List[str]:
        label = self.env.next_label()
        lines = self._compile_expression(expr.condition)
        lines.append("  pop rax")
        lines.append("  cmp rax, 0")
        lines.append(f"  je .Lelse{label}")

        code, _ = self._compile_statement(expr.consequence)
        lines.extend(code)
        lines.append(f"  jmp .Lend{label}")

        lines.append(f".Lelse{label}:")
        if expr.alternative is not None:
            code, _ = self._compile_statement(expr.alternative)
            lines.extend(code)
        else:
            # not taken: the value is the (zero) condition
            lines.append("  push rax")
        lines.append(f".Lend{label}:")
        return lines

    def _compile_while(self, expr: WhileExpression) -> List[str]:
        label = self.env.next_label()
        lines = [f".Lbegin{label}:"]
        lines.extend(self._compile_expression(expr.condition))
        lines.append("  pop rax")
        lines.append("  cmp rax, 0")
        lines.append(f"  je .Lend{label}")

        code, _ = self._compile_statement(expr.body)
        lines.extend(code)
        lines.append("  pop rax")
        lines.append(f"  jmp .Lbegin{label}")
        lines.append(f".Lend{label}:")
        # the loop's value is the final (zero) condition
        lines.append("  push rax")
        return lines

    def _compile_call(self, expr: CallExpression) -> List[str]:
        fn = self._functions.get(expr.callee)
        if fn is None:
            raise CodegenError(f"undefined function: {expr.callee}")
        if len(fn.parameters) != len(expr.arguments):
            raise CodegenError(
                f"function {expr.callee} expects {len(fn.parameters)} arguments, "
                f"got {len(expr.arguments)}"
            )

        lines: List[str] = []
        # Push right to left so argument 0 ends up on top.
        for arg in reversed(expr.arguments):
            lines.extend(self._compile_expression(arg))
        nregs = min(len(expr.arguments), len(ARG_REGS))
        for reg in ARG_REGS[:nregs]:
            lines.append(f"  pop {reg}")
        lines.append(f"  call {symbol_name(expr.callee)}")
        extra = len(expr.arguments) - nregs
        if extra:
            lines.append(f"  add rsp, {8 * extra}")
        lines.append("  push rax")
        return lines
