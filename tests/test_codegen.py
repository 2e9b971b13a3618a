"""
Tests for the x86-64 code generator (assembly text only, no toolchain needed)
"""

import pytest

from stackcc.codegen import CodeGenerator, CodegenError, UnresolvedIdentifier, symbol_name
from stackcc.parser import parse_source


def _asm(source: str) -> str:
    program, errors = parse_source(source)
    assert errors == [], errors
    return CodeGenerator().generate(program)


def _lines(source: str):
    return _asm(source).splitlines()


def _codegen_error(source: str) -> str:
    program, errors = parse_source(source)
    assert errors == [], errors
    with pytest.raises(CodegenError) as ei:
        CodeGenerator().generate(program)
    return str(ei.value)


class TestModule:
    """Test module-level output"""

    def test_header(self):
        """Test the assembly header"""
        lines = _lines("1")
        assert lines[:3] == [".intel_syntax noprefix", ".globl main", ".text"]

    def test_literal_program(self):
        """Test complete output for a literal program"""
        assert _lines("42") == [
            ".intel_syntax noprefix",
            ".globl main",
            ".text",
            "main:",
            "  push rbp",
            "  mov rbp, rsp",
            "  push 42",
            "  pop rax",
            "  push rax",
            "  pop rax",
            ".Lreturn.main:",
            "  mov rsp, rbp",
            "  pop rbp",
            "  ret",
        ]

    def test_functions_emitted_in_order(self):
        """Test functions are emitted in source order"""
        asm = _asm("fn one() { 1 } fn main() { one() }")
        assert asm.index("sc_one:") < asm.index("main:")
        assert "  call sc_one" in asm

    def test_symbol_names(self):
        """Test label names for functions"""
        assert symbol_name("main") == "main"
        assert symbol_name("fib") == "sc_fib"

    @pytest.mark.parametrize("name", ["rax", "rdi", "al", "offset", "qword", "ptr"])
    def test_function_named_like_register(self, name):
        """Test functions named like registers or operand keywords"""
        lines = _lines(f"fn {name}() {{ return 7; }} fn main() {{ {name}() }}")
        assert f"sc_{name}:" in lines
        assert f"  call sc_{name}" in lines
        assert f"  jmp .Lreturn.sc_{name}" in lines
        assert f".Lreturn.sc_{name}:" in lines
        assert f"  call {name}" not in lines


class TestExpressions:
    """Test expression lowering"""

    def test_right_operand_before_left(self):
        """Test right operand is evaluated first"""
        lines = _lines("7 - 3")
        assert lines.index("  push 3") < lines.index("  push 7")
        i = lines.index("  sub rax, rdi")
        assert lines[i - 2:i] == ["  pop rax", "  pop rdi"]

    @pytest.mark.parametrize("op,instr", [
        ("+", "  add rax, rdi"),
        ("-", "  sub rax, rdi"),
        ("*", "  imul rax, rdi"),
        ("/", "  idiv rdi"),
    ])
    def test_arithmetic(self, op, instr):
        """Test arithmetic instructions"""
        assert instr in _lines(f"6 {op} 2")

    def test_division_sign_extends(self):
        """Test cqo before idiv"""
        lines = _lines("6 / 2")
        assert lines[lines.index("  idiv rdi") - 1] == "  cqo"

    @pytest.mark.parametrize("op,cmp,setcc", [
        ("==", "  cmp rax, rdi", "  sete al"),
        ("!=", "  cmp rax, rdi", "  setne al"),
        ("<", "  cmp rax, rdi", "  setl al"),
        ("<=", "  cmp rax, rdi", "  setle al"),
        (">", "  cmp rdi, rax", "  setl al"),
        (">=", "  cmp rdi, rax", "  setle al"),
    ])
    def test_comparisons(self, op, cmp, setcc):
        """Test comparison lowering"""
        lines = _lines(f"1 {op} 2")
        i = lines.index(setcc)
        assert lines[i - 1] == cmp
        assert lines[i + 1] == "  movzx rax, al"

    def test_prefix_minus_subtracts_from_zero(self):
        """Test unary minus as 0 - x"""
        lines = _lines("-5")
        assert lines.index("  push 5") < lines.index("  push 0")
        assert "  sub rax, rdi" in lines

    def test_wide_literal_uses_movabs(self):
        """Test literal wider than 32 bits"""
        lines = _lines("4294967296")
        i = lines.index("  movabs rax, 4294967296")
        assert lines[i + 1] == "  push rax"

    def test_int32_literal_is_pushed_directly(self):
        """Test literal that fits in 32 bits"""
        assert "  push 2147483647" in _lines("2147483647")

    def test_assignment_and_load(self):
        """Test store and load of a local"""
        lines = _lines("a = 5; a")
        assert "# a" in lines
        assert "  mov [rdi], rax" in lines
        assert "  mov rax, [rax]" in lines
        assert "  sub rsp, 16" in lines


class TestControlFlow:
    """Test control flow lowering"""

    def test_if_else_labels(self):
        """Test if/else labels"""
        lines = _lines("if (1) { 2 } else { 3 }")
        assert "  je .Lelse0" in lines
        assert "  jmp .Lend0" in lines
        assert ".Lelse0:" in lines
        assert ".Lend0:" in lines

    def test_labels_are_unique(self):
        """Test labels are numbered uniquely"""
        asm = _asm("if (1) { 2 }; if (0) { 3 }; while (0) { 4 }")
        assert ".Lelse0:" in asm
        assert ".Lelse1:" in asm
        assert ".Lbegin2:" in asm
        assert ".Lend2:" in asm

    def test_labels_unique_across_functions(self):
        """Test label numbering spans functions"""
        asm = _asm("fn f() { if (1) { 2 } } fn main() { if (1) { f() } }")
        assert ".Lelse0:" in asm
        assert ".Lelse1:" in asm

    def test_while_loop_shape(self):
        """Test while loop layout"""
        lines = _lines("while (0) { 1 }")
        assert lines.index(".Lbegin0:") < lines.index("  je .Lend0")
        assert lines.index("  jmp .Lbegin0") < lines.index(".Lend0:")

    def test_return_jumps_to_epilogue(self):
        """Test return jumps to the epilogue"""
        lines = _lines("return 5; 6")
        assert "  jmp .Lreturn.main" in lines
        # statements after the return are not compiled
        assert "  push 6" not in lines

    def test_empty_function_body_yields_zero(self):
        """Test empty function body"""
        lines = _lines("fn main() {}")
        i = lines.index("  mov rbp, rsp")
        assert lines[i + 1:i + 3] == ["  push 0", "  pop rax"]

    def test_empty_block_yields_zero(self):
        """Test empty loop body"""
        lines = _lines("while (0) {}")
        i = lines.index("  je .Lend0")
        assert lines[i + 1:i + 3] == ["  push 0", "  pop rax"]

    def test_return_in_nested_block_does_not_stop_outer_block(self):
        """Test return stops only its own block"""
        lines = _lines("{ return 1; 2 } 3")
        assert "  push 2" not in lines
        assert "  push 3" in lines


class TestFrames:
    """Test stack frames and calls"""

    def test_frame_rounded_to_16(self):
        """Test frame size is aligned to 16"""
        assert "  sub rsp, 32" in _lines("a = 1; b = 2; c = 3")

    def test_no_locals_no_reservation(self):
        """Test no frame reservation without locals"""
        assert not any(line.startswith("  sub rsp") for line in _lines("1 + 2"))

    def test_block_locals_count_toward_frame(self):
        """Test block locals are reserved in the prologue"""
        assert "  sub rsp, 16" in _lines("a = 1; { b = 2; }")

    def test_register_parameters(self):
        """Test register parameter spill"""
        lines = _lines("fn f(a, b) { a + b } fn main() { f(1, 2) }")
        assert "  mov [rbp - 8], rdi" in lines
        assert "  mov [rbp - 16], rsi" in lines

    def test_stack_parameters(self):
        """Test parameters passed on the stack"""
        asm = _asm(
            "fn f(a, b, c, d, e, g, h, i) { i } "
            "fn main() { f(1, 2, 3, 4, 5, 6, 7, 8) }"
        )
        assert "  mov [rbp - 48], r9" in asm
        assert "  mov rax, [rbp + 16]" in asm
        assert "  mov rax, [rbp + 24]" in asm
        assert "  add rsp, 16" in asm

    def test_call_pops_arguments_into_registers(self):
        """Test argument registers at a call"""
        lines = _lines("fn f(a, b) { a } fn main() { f(1, 2) }")
        i = lines.index("  call sc_f")
        assert lines[i - 2:i] == ["  pop rdi", "  pop rsi"]
        assert lines[i + 1] == "  push rax"


class TestErrors:
    """Test code generation errors"""

    def test_unresolved_identifier(self):
        """Test undefined variable"""
        program, _ = parse_source("fn main() { x }")
        with pytest.raises(UnresolvedIdentifier) as ei:
            CodeGenerator().generate_function(program.functions[0])
        assert ei.value.name == "x"

    def test_unresolved_identifier_in_module(self):
        """Test undefined variable message"""
        assert _codegen_error("x + 1") == "in function main: identifier not found: x"

    def test_block_scope_ends_at_brace(self):
        """Test block local used after the block"""
        assert "identifier not found: b" in _codegen_error("a = 1; { b = 2; } b")

    def test_parameters_not_visible_in_other_functions(self):
        """Test parameters are function-local"""
        msg = _codegen_error("fn f(a) { a } fn main() { a }")
        assert msg == "in function main: identifier not found: a"

    def test_undefined_function(self):
        """Test call to undefined function"""
        assert "undefined function: g" in _codegen_error("g(1)")

    def test_arity_mismatch(self):
        """Test call with wrong argument count"""
        msg = _codegen_error("fn f(a, b) { a } fn main() { f(1) }")
        assert "function f expects 2 arguments, got 1" in msg

    def test_redefined_function(self):
        """Test duplicate function definition"""
        assert "function redefined: f" in _codegen_error("fn f() { 1 } fn f() { 2 } fn main() { f() }")

    def test_errors_collected_per_function(self):
        """Test errors from several functions"""
        msg = _codegen_error("fn f() { x } fn main() { y }")
        assert msg.splitlines() == [
            "in function f: identifier not found: x",
            "in function main: identifier not found: y",
        ]

    def test_generator_is_reusable_after_error(self):
        """Test generator state is reset between runs"""
        gen = CodeGenerator()
        bad, _ = parse_source("x")
        good, _ = parse_source("1")
        with pytest.raises(CodegenError):
            gen.generate(bad)
        assert "main:" in gen.generate(good)
