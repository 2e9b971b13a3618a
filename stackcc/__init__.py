"""
stackcc - a tiny ahead-of-time compiler

Translates a small integer language (arithmetic, comparisons, assignment,
if/else, while, return, blocks and functions) into x86-64 assembly using
a stack-machine code generation strategy.
"""

__version__ = "0.1.0"
__author__ = "stackcc Contributors"
__license__ = "MIT"

from .lexer import Lexer, Token, TokenType
from .parser import Parser, ParserError, parse_source
from .scope import Environment
from .codegen import CodeGenerator, CodegenError, UnresolvedIdentifier
from .compiler import Compiler, CompilationResult

__all__ = [
    'Lexer',
    'Token',
    'TokenType',
    'Parser',
    'ParserError',
    'parse_source',
    'Environment',
    'CodeGenerator',
    'CodegenError',
    'UnresolvedIdentifier',
    'Compiler',
    'CompilationResult',
]
