"""
Main Compiler Driver

Orchestrates the compilation pipeline: lex -> parse -> generate, then
optionally hands the assembly to the system C toolchain.
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional

from stackcc.ast_nodes import Program
from stackcc.lexer import Lexer
from stackcc.parser import Parser
from stackcc.codegen import CodeGenerator, CodegenError

logger = logging.getLogger(__name__)

# Parser and generator recurse once per nesting level.
NESTING_TOO_DEEP = "nesting too deep"


@dataclass
class CompilationResult:
    """Result of compilation"""
    success: bool
    output_file: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    assembly: Optional[str] = None


class Compiler:
    """Main compiler class orchestrating all compilation stages"""

    def __init__(self, *, best_effort: bool = False):
        # Generate code even when the parser reported diagnostics.
        self.best_effort = best_effort

        # Toolchain used to assemble and link (`cc` drives both).
        self.cc = os.environ.get("STACKCC_CC", "cc")

    def compile_file(self, source_file: str, output_file: Optional[str] = None) -> CompilationResult:
        """Compile a source file (see `compile_code` for `output_file`)"""
        try:
            with open(source_file, 'r', encoding='utf-8') as f:
                source_code = f.read()
        except OSError as e:
            return CompilationResult(
                success=False,
                errors=[f"Failed to read source file: {e}"]
            )
        return self.compile_code(source_code, output_file)

    def compile_code(self, source_code: str, output_file: Optional[str] = None) -> CompilationResult:
        """Compile source code.

        If output_file endswith:
        - .s : write assembly
        - .o : assemble with the system toolchain
        - otherwise: link to an executable
        Without output_file only the assembly text is returned.
        """
        warnings: List[str] = []

        # Phase 1+2: Lexical and Syntax Analysis
        try:
            program, diagnostics = self.get_ast(source_code)
        except RecursionError:
            return CompilationResult(
                success=False,
                errors=[f"Syntax analysis failed: {NESTING_TOO_DEEP}"],
            )
        if diagnostics:
            if not self.best_effort:
                return CompilationResult(
                    success=False,
                    errors=[f"Syntax analysis failed: {d}" for d in diagnostics],
                )
            warnings.extend(f"Syntax analysis: {d}" for d in diagnostics)

        # Phase 3: Code Generation
        try:
            assembly = self.get_assembly(program)
        except CodegenError as e:
            return CompilationResult(
                success=False,
                errors=[f"Code generation failed: {msg}" for msg in str(e).splitlines()],
                warnings=warnings,
            )
        except RecursionError:
            return CompilationResult(
                success=False,
                errors=[f"Code generation failed: {NESTING_TOO_DEEP}"],
                warnings=warnings,
            )

        if output_file:
            error = self._write_output(assembly, output_file)
            if error:
                return CompilationResult(success=False, errors=[error], warnings=warnings, assembly=assembly)

        return CompilationResult(
            success=True,
            output_file=output_file,
            assembly=assembly,
            warnings=warnings,
        )

    def _write_output(self, assembly: str, out: str) -> Optional[str]:
        """Write, assemble or link `assembly` into `out`; return an error message on failure"""
        ext = os.path.splitext(out)[1]

        if ext == ".s":
            try:
                with open(out, 'w') as f:
                    f.write(assembly)
            except OSError as e:
                return f"Failed to write output file: {e}"
            return None

        with tempfile.TemporaryDirectory(prefix="stackcc_") as td:
            s_path = os.path.join(td, "out.s")
            try:
                with open(s_path, 'w') as f:
                    f.write(assembly)
                if ext == ".o":
                    self._run([self.cc, "-c", "-o", out, s_path], "assemble")
                else:
                    self._run([self.cc, "-o", out, s_path], "link")
            except OSError as e:
                return f"Toolchain invocation failed: {e}"
            except subprocess.CalledProcessError as e:
                what = "Assembling" if ext == ".o" else "Linking"
                detail = getattr(e, "stderr", None)
                if detail:
                    return f"{what} failed: {e}\n{detail}"
                return f"{what} failed: {e}"
        return None

    def _run(self, cmd: List[str], what: str) -> None:
        logger.debug("%s: %s", what, " ".join(cmd))
        if shutil.which(cmd[0]) is None:
            raise OSError(f"{cmd[0]} not found")
        p = subprocess.run(cmd, check=False, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        if p.returncode != 0:
            msg = p.stderr.strip() or p.stdout.strip() or "(no output)"
            raise subprocess.CalledProcessError(p.returncode, cmd, output=p.stdout, stderr=msg)

    def get_ast(self, source_code: str):
        """Parse source code; return (program, diagnostics)"""
        parser = Parser(Lexer(source_code))
        program = parser.parse_program()
        logger.debug(
            "parsed %d function(s), %d diagnostic(s)",
            len(program.functions), len(parser.errors),
        )
        return program, parser.errors

    def get_assembly(self, program: Program) -> str:
        """Generate assembly from the AST"""
        generator = CodeGenerator()
        return generator.generate(program)


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    ap = argparse.ArgumentParser(prog="stackcc", description="stack-machine x86-64 compiler")
    ap.add_argument("source", help="Program text (or a path with -f)")
    ap.add_argument("-f", "--file", action="store_true", help="Treat SOURCE as a file path")
    ap.add_argument("-o", dest="output", required=False, help="Output: .s, .o, or executable")
    ap.add_argument("--best-effort", action="store_true",
                    help="Generate code even when the parser reported errors")
    ap.add_argument("--dump-ast", action="store_true", help="Print the parsed program and exit")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if args.file:
        try:
            with open(args.source, 'r', encoding='utf-8') as f:
                text = f.read()
        except OSError as e:
            print(f"Error: cannot read {args.source}: {e}")
            return 1
    else:
        text = args.source

    compiler = Compiler(best_effort=args.best_effort)

    if args.dump_ast:
        try:
            program, diagnostics = compiler.get_ast(text)
            rendered = program.render()
        except RecursionError:
            print(f"Error: Syntax analysis failed: {NESTING_TOO_DEEP}")
            return 1
        for d in diagnostics:
            print("Error:", d)
        sys.stdout.write(rendered)
        return 1 if diagnostics else 0

    result = compiler.compile_code(text, args.output)
    for w in result.warnings:
        print("Warning:", w, file=sys.stderr)
    if not result.success:
        for e in result.errors:
            print("Error:", e)
        return 1
    if args.output:
        print("Done:", args.output)
    else:
        sys.stdout.write(result.assembly)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
