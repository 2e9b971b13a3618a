"""stackcc.parser

Recursive-descent parser for functions, blocks and statements, with
precedence climbing (Pratt style) for expressions.

Grammar handled:

- program: `fn name(params) { ... }` repeated, or a bare statement list that
  becomes the body of an implicit `fn main()`
- statements: block, `return expr [;]`, `expr [;]`
- expressions: integer, identifier, call, unary minus, parentheses,
  `if (c) {..} [else {..}]`, `while (c) {..}`, the binary operators
  `+ - * / < > <= >= == !=` and assignment

Errors do not stop the parse. A failing production raises `ParserError`,
which is recorded in `Parser.errors`; the parser then skips to the next
statement boundary and continues.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Tuple

from stackcc.lexer import Lexer, Token, TokenType
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

logger = logging.getLogger(__name__)

I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


class Precedence(IntEnum):
    LOWEST = 1
    ASSIGN = 2
    EQUALS = 3       # == !=
    LESSGREATER = 4  # < > <= >=
    SUM = 5          # + -
    PRODUCT = 6      # * /
    PREFIX = 7       # -x
    CALL = 8         # f(x)


PRECEDENCES: Dict[TokenType, Precedence] = {
    TokenType.ASSIGN: Precedence.ASSIGN,
    TokenType.EQ: Precedence.EQUALS,
    TokenType.NOTEQ: Precedence.EQUALS,
    TokenType.LT: Precedence.LESSGREATER,
    TokenType.GT: Precedence.LESSGREATER,
    TokenType.LTEQ: Precedence.LESSGREATER,
    TokenType.GTEQ: Precedence.LESSGREATER,
    TokenType.PLUS: Precedence.SUM,
    TokenType.MINUS: Precedence.SUM,
    TokenType.ASTERISK: Precedence.PRODUCT,
    TokenType.SLASH: Precedence.PRODUCT,
    TokenType.LPAREN: Precedence.CALL,
}


class ParserError(Exception):
    """Parser error"""
    def __init__(self, message: str, token: Optional[Token] = None):
        self.message = message
        self.token = token
        if token:
            super().__init__(f"{message} at {token.line}:{token.column}")
        else:
            super().__init__(message)


class _Abort(ParserError):
    """Input ended inside a block; the error is already recorded"""

    def __init__(self) -> None:
        super().__init__("unterminated block")


class Parser:
    """Parser driven by a Lexer with one token of lookahead"""

    def __init__(self, lexer: Lexer):
        self.lexer = lexer
        self.errors: List[str] = []
        self._block_depth = 0

        self._prefix_fns: Dict[TokenType, Callable[[], Expression]] = {
            TokenType.IDENT: self._parse_identifier,
            TokenType.INT: self._parse_integer_literal,
            TokenType.MINUS: self._parse_prefix_expression,
            TokenType.LPAREN: self._parse_grouped_expression,
            TokenType.IF: self._parse_if_expression,
            TokenType.WHILE: self._parse_while_expression,
        }
        self._infix_fns: Dict[TokenType, Callable[[Expression], Expression]] = {
            TokenType.ASSIGN: self._parse_assign_expression,
            TokenType.LPAREN: self._parse_call_on_expression,
        }
        for t in PRECEDENCES:
            self._infix_fns.setdefault(t, self._parse_infix_expression)

        self.current_token: Token = self.lexer.next_token()
        self.peek_token: Token = self.lexer.next_token()

    def advance(self) -> Token:
        """Shift the lookahead into the current slot; return the consumed token"""
        consumed = self.current_token
        self.current_token = self.peek_token
        self.peek_token = self.lexer.next_token()
        return consumed

    # -----------------
    # Helpers
    # -----------------

    def _at(self, t: TokenType) -> bool:
        return self.current_token.type == t

    def _match(self, t: TokenType) -> bool:
        if self._at(t):
            self.advance()
            return True
        return False

    def _expect(self, t: TokenType) -> Token:
        tok = self.current_token
        if tok.type != t:
            raise ParserError(
                f"expected next token to be {t.name}, got {tok.type.name} instead", tok
            )
        return self.advance()

    def _current_precedence(self) -> Precedence:
        return PRECEDENCES.get(self.current_token.type, Precedence.LOWEST)

    def _record(self, err: ParserError) -> None:
        logger.debug("recovering from parse error: %s", err)
        self.errors.append(str(err))

    def _synchronize(self) -> None:
        """Skip to the next statement boundary after an error.

        Stops after a `;`, or before a `}` when inside a block. At the top
        level a stray `}` is consumed so the statement loop keeps moving.
        """
        start = self.current_token
        while not self._at(TokenType.EOF):
            if self._match(TokenType.SEMICOLON):
                return
            if self._at(TokenType.RBRACE):
                if self._block_depth == 0 and self.current_token is start:
                    self.advance()
                return
            self.advance()

    # -----------------
    # Program / functions
    # -----------------

    def parse_program(self) -> Program:
        """Parse the entire token stream"""
        if self._at(TokenType.FUNCTION):
            return Program(functions=self._parse_functions())

        # Expression-only form: the whole input is the body of main().
        statements: List[Statement] = []
        try:
            while not self._at(TokenType.EOF):
                stmt = self._parse_statement_recovering()
                if stmt is not None:
                    statements.append(stmt)
        except _Abort:
            pass
        body = BlockStatement(statements=statements)
        return Program(functions=[Function(name="main", parameters=[], body=body)])

    def _parse_functions(self) -> List[Function]:
        functions: List[Function] = []
        while not self._at(TokenType.EOF):
            try:
                if not self._at(TokenType.FUNCTION):
                    raise ParserError(
                        f"expected next token to be {TokenType.FUNCTION.name}, "
                        f"got {self.current_token.type.name} instead",
                        self.current_token,
                    )
                functions.append(self._parse_function())
            except _Abort:
                break
            except ParserError as e:
                self._record(e)
                # Resume at the next function definition.
                self.advance()
                while not self._at(TokenType.EOF) and not self._at(TokenType.FUNCTION):
                    self.advance()
        return functions

    def _parse_function(self) -> Function:
        self._expect(TokenType.FUNCTION)
        name_tok = self._expect(TokenType.IDENT)
        self._expect(TokenType.LPAREN)
        params = self._parse_parameter_list()
        body = self._parse_block_statement()
        logger.debug("parsed function %s(%s)", name_tok.value, ", ".join(params))
        return Function(name=name_tok.value, parameters=params, body=body)

    def _parse_parameter_list(self) -> List[str]:
        """Parse `a, b, c)`; the opening paren is already consumed"""
        params: List[str] = []
        if self._match(TokenType.RPAREN):
            return params
        params.append(self._expect(TokenType.IDENT).value)
        while self._match(TokenType.COMMA):
            params.append(self._expect(TokenType.IDENT).value)
        self._expect(TokenType.RPAREN)
        return params

    # -----------------
    # Statements
    # -----------------

    def _parse_block_statement(self) -> BlockStatement:
        """Parse `{ ... }`.

        Running out of input before the closing brace records an
        `unterminated block` error and raises `_Abort`, which unwinds the
        whole parse.
        """
        self._expect(TokenType.LBRACE)
        statements: List[Statement] = []
        self._block_depth += 1
        try:
            while not self._at(TokenType.RBRACE):
                if self._at(TokenType.EOF):
                    self._record(ParserError("unterminated block", self.current_token))
                    raise _Abort()
                stmt = self._parse_statement_recovering()
                if stmt is not None:
                    statements.append(stmt)
        finally:
            self._block_depth -= 1
        self.advance()  # }
        return BlockStatement(statements=statements)

    def _parse_statement_recovering(self) -> Optional[Statement]:
        try:
            return self._parse_statement()
        except _Abort:
            raise
        except ParserError as e:
            self._record(e)
            self._synchronize()
            return None

    def _parse_statement(self) -> Statement:
        if self._at(TokenType.LBRACE):
            return self._parse_block_statement()
        if self._at(TokenType.RETURN):
            self.advance()
            value = self._parse_expression(Precedence.LOWEST)
            self._match(TokenType.SEMICOLON)
            return ReturnStatement(value=value)
        expr = self._parse_expression(Precedence.LOWEST)
        self._match(TokenType.SEMICOLON)
        return ExpressionStatement(expression=expr)

    # -----------------
    # Expressions (precedence climbing)
    # -----------------

    def _parse_expression(self, precedence: Precedence) -> Expression:
        prefix = self._prefix_fns.get(self.current_token.type)
        if prefix is None:
            raise ParserError(
                f"no prefix parse function for {self.current_token.type.name} found",
                self.current_token,
            )
        left = prefix()
        while precedence < self._current_precedence():
            infix = self._infix_fns[self.current_token.type]
            left = infix(left)
        return left

    def _parse_identifier(self) -> Expression:
        if self.peek_token.type == TokenType.LPAREN:
            tok = self.advance()
            self.advance()  # (
            return CallExpression(callee=tok.value, arguments=self._parse_argument_list())
        return Identifier(name=self.advance().value)

    def _parse_argument_list(self) -> List[Expression]:
        """Parse `a, b + 1, c)`; the opening paren is already consumed"""
        args: List[Expression] = []
        if self._match(TokenType.RPAREN):
            return args
        args.append(self._parse_expression(Precedence.LOWEST))
        while self._match(TokenType.COMMA):
            args.append(self._parse_expression(Precedence.LOWEST))
        self._expect(TokenType.RPAREN)
        return args

    def _parse_integer_literal(self) -> Expression:
        tok = self.advance()
        try:
            value = int(tok.value, 10)
        except ValueError:
            value = None
        if value is None or not (I64_MIN <= value <= I64_MAX):
            raise ParserError(f"could not parse {tok.value} as integer", tok)
        return IntegerLiteral(value=value)

    def _parse_prefix_expression(self) -> Expression:
        op = self.advance()
        operand = self._parse_expression(Precedence.PREFIX)
        return PrefixExpression(operator=op.value, operand=operand)

    def _parse_grouped_expression(self) -> Expression:
        self.advance()  # (
        expr = self._parse_expression(Precedence.LOWEST)
        self._expect(TokenType.RPAREN)
        return expr

    def _parse_if_expression(self) -> Expression:
        self.advance()  # if
        self._expect(TokenType.LPAREN)
        cond = self._parse_expression(Precedence.LOWEST)
        self._expect(TokenType.RPAREN)
        consequence = self._parse_block_statement()
        alternative = None
        if self._match(TokenType.ELSE):
            alternative = self._parse_block_statement()
        return IfExpression(condition=cond, consequence=consequence, alternative=alternative)

    def _parse_while_expression(self) -> Expression:
        self.advance()  # while
        self._expect(TokenType.LPAREN)
        cond = self._parse_expression(Precedence.LOWEST)
        self._expect(TokenType.RPAREN)
        body = self._parse_block_statement()
        return WhileExpression(condition=cond, body=body)

    def _parse_infix_expression(self, left: Expression) -> Expression:
        precedence = self._current_precedence()
        op = self.advance()
        right = self._parse_expression(precedence)
        return InfixExpression(operator=op.value, left=left, right=right)

    def _parse_assign_expression(self, left: Expression) -> Expression:
        op = self.advance()
        if not isinstance(left, Identifier):
            raise ParserError(f"invalid assignment target: {left}", op)
        # One level below ASSIGN so that `a = b = 1` nests to the right.
        value = self._parse_expression(Precedence.LOWEST)
        return AssignExpression(target=left, value=value)

    def _parse_call_on_expression(self, left: Expression) -> Expression:
        raise ParserError(f"malformed call target: {left}", self.current_token)


def parse_source(source: str) -> Tuple[Program, List[str]]:
    """Lex and parse `source`; return the program and its diagnostics"""
    parser = Parser(Lexer(source))
    program = parser.parse_program()
    return program, parser.errors
