"""
Lexer for the interface signature DSL.

Splits the input into a lazy stream of tokens for the parser. Every character
of the input belongs to exactly one token, so the lengths of the produced
tokens always add up to the length of the input. Lexing never fails: anything
that is not recognised becomes a single-character UNKNOWN token and it is up to
the parser to decide whether that is an error.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator


class TokenKind(Enum):
    WHITESPACE = auto()
    IDENTIFIER = auto()
    COMMA = auto()          # ,
    OPEN_PAREN = auto()     # (
    CLOSE_PAREN = auto()    # )
    OPEN_BRACKET = auto()   # [
    CLOSE_BRACKET = auto()  # ]
    UNKNOWN = auto()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    length: int

    def __repr__(self):
        return f"Token({self.kind.name}, {self.length})"


WHITESPACE_CHARS = frozenset(
    ' '         # space
    '\t'        # tab
    '\n'        # new line
    '\r'        # carriage return
    '\u000b'    # vertical tab
    '\u000c'    # form feed
    '\u0085'    # next line (latin1)
    '\u200e'    # left-to-right mark
    '\u200f'    # right-to-left mark
    '\u2028'    # line separator
    '\u2029'    # paragraph separator
)

SINGLE_CHAR_TOKENS = {
    ',': TokenKind.COMMA,
    '(': TokenKind.OPEN_PAREN,
    ')': TokenKind.CLOSE_PAREN,
    '[': TokenKind.OPEN_BRACKET,
    ']': TokenKind.CLOSE_BRACKET,
}


def is_whitespace(char: str) -> bool:
    return char in WHITESPACE_CHARS


def is_ident_start(char: str) -> bool:
    return ('a' <= char <= 'z') or ('A' <= char <= 'Z') or char == '_'


def is_ident_continue(char: str) -> bool:
    return is_ident_start(char) or ('0' <= char <= '9')


class Lexer:
    """Tokenizer for interface signatures.

    Iterating a Lexer always starts from the beginning of the source, so the
    same instance can be walked any number of times.
    """

    def __init__(self, source: str):
        self.source = source

    def __iter__(self) -> Iterator[Token]:
        pos = 0
        while pos < len(self.source):
            token = self._scan_token(pos)
            pos += token.length
            yield token

    def _scan_token(self, start: int) -> Token:
        char = self.source[start]

        if is_whitespace(char):
            return Token(TokenKind.WHITESPACE, self._eat_while(start, is_whitespace))

        if is_ident_start(char):
            return Token(TokenKind.IDENTIFIER, self._eat_while(start, is_ident_continue))

        kind = SINGLE_CHAR_TOKENS.get(char, TokenKind.UNKNOWN)
        return Token(kind, 1)

    def _eat_while(self, start: int, predicate) -> int:
        end = start + 1
        while end < len(self.source) and predicate(self.source[end]):
            end += 1
        return end - start


def tokenize(source: str) -> Iterator[Token]:
    """Convenience function returning a fresh lazy token stream."""
    return iter(Lexer(source))
