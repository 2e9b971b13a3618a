"""
Lexical Analyzer (Lexer)

Converts source text into tokens for the parser, one token per call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional


class TokenType(Enum):
    """Token types for the stackcc lexer"""
    ILLEGAL = auto()
    EOF = auto()

    # Identifiers and literals
    IDENT = auto()               # add, foobar, x, y
    INT = auto()                 # 1343456

    # Operators
    ASSIGN = auto()              # =
    PLUS = auto()                # +
    MINUS = auto()               # -
    ASTERISK = auto()            # *
    SLASH = auto()               # /
    LT = auto()                  # <
    GT = auto()                  # >
    EQ = auto()                  # ==
    NOTEQ = auto()               # !=
    LTEQ = auto()                # <=
    GTEQ = auto()                # >=

    # Delimiters
    COMMA = auto()               # ,
    SEMICOLON = auto()           # ;
    LPAREN = auto()              # (
    RPAREN = auto()              # )
    LBRACE = auto()              # {
    RBRACE = auto()              # }

    # Keywords
    FUNCTION = auto()            # fn
    IF = auto()                  # if
    ELSE = auto()                # else
    RETURN = auto()              # return
    WHILE = auto()               # while


@dataclass(frozen=True)
class Token:
    """Represents a lexical token"""
    type: TokenType
    value: str
    line: int = 1
    column: int = 1

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {repr(self.value)}, {self.line}:{self.column})"


KEYWORDS: Dict[str, TokenType] = {
    'fn': TokenType.FUNCTION,
    'if': TokenType.IF,
    'else': TokenType.ELSE,
    'return': TokenType.RETURN,
    'while': TokenType.WHILE,
}

SINGLE_CHAR_TOKENS: Dict[str, TokenType] = {
    '+': TokenType.PLUS,
    '-': TokenType.MINUS,
    '*': TokenType.ASTERISK,
    '/': TokenType.SLASH,
    ',': TokenType.COMMA,
    ';': TokenType.SEMICOLON,
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
}


def lookup_ident(ident: str) -> TokenType:
    """Return the keyword type for `ident`, or IDENT"""
    return KEYWORDS.get(ident, TokenType.IDENT)


def _is_ascii_alpha(ch: Optional[str]) -> bool:
    return ch is not None and ch.isascii() and ch.isalpha()


def _is_ascii_digit(ch: Optional[str]) -> bool:
    return ch is not None and ch in '0123456789'


class Lexer:
    """Lexical analyzer.

    The source is indexed as a Python string, so the cursor always moves by
    whole code points. Once the end of input is reached every further call
    to `next_token()` returns another EOF token.
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self.line = 1
        self.column = 1

    def current_char(self) -> Optional[str]:
        """Get current character without consuming"""
        if self.position >= len(self.source):
            return None
        return self.source[self.position]

    def peek_char(self, offset: int = 1) -> Optional[str]:
        """Peek ahead at character"""
        pos = self.position + offset
        if pos >= len(self.source):
            return None
        return self.source[pos]

    def advance(self) -> Optional[str]:
        """Consume and return current character"""
        if self.position >= len(self.source):
            return None

        char = self.source[self.position]
        self.position += 1

        if char == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1

        return char

    def skip_whitespace(self) -> None:
        while self.current_char() is not None and self.current_char() in ' \t\n\r':
            self.advance()

    def read_number(self) -> str:
        num_str = ""
        while _is_ascii_digit(self.current_char()):
            num_str += self.advance()
        return num_str

    def read_identifier(self) -> str:
        ident = ""
        while _is_ascii_alpha(self.current_char()):
            ident += self.advance()
        return ident

    def next_token(self) -> Token:
        """Scan and return the next token"""
        self.skip_whitespace()

        line = self.line
        column = self.column
        char = self.current_char()

        if char is None:
            return Token(TokenType.EOF, '', line, column)

        if char in SINGLE_CHAR_TOKENS:
            self.advance()
            return Token(SINGLE_CHAR_TOKENS[char], char, line, column)

        if char == '=':
            self.advance()
            if self.current_char() == '=':
                self.advance()
                return Token(TokenType.EQ, '==', line, column)
            return Token(TokenType.ASSIGN, '=', line, column)

        if char == '<':
            self.advance()
            if self.current_char() == '=':
                self.advance()
                return Token(TokenType.LTEQ, '<=', line, column)
            return Token(TokenType.LT, '<', line, column)

        if char == '>':
            self.advance()
            if self.current_char() == '=':
                self.advance()
                return Token(TokenType.GTEQ, '>=', line, column)
            return Token(TokenType.GT, '>', line, column)

        if char == '!' and self.peek_char() == '=':
            self.advance()
            self.advance()
            return Token(TokenType.NOTEQ, '!=', line, column)

        if _is_ascii_digit(char):
            return Token(TokenType.INT, self.read_number(), line, column)

        if _is_ascii_alpha(char):
            ident = self.read_identifier()
            return Token(lookup_ident(ident), ident, line, column)

        self.advance()
        return Token(TokenType.ILLEGAL, char, line, column)

    def tokenize(self) -> List[Token]:
        """Tokenize the remaining source, including the trailing EOF token"""
        tokens: List[Token] = []
        while True:
            tok = self.next_token()
            tokens.append(tok)
            if tok.type == TokenType.EOF:
                return tokens
