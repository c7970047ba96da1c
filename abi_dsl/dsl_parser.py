"""
Parser for the interface signature DSL.

Turns the token stream into a type tree. Types are parsed in a single forward
pass with an explicit stack of open frames (anonymous tuples, optional, ref,
map), so nesting never recurses and is capped at MAX_TUPLE_DEPTH.

Top level:

    uint256, (bool, cell)[]            -> CellEntity
    transfer(address,uint128)(bool)v2  -> FunctionEntity
    <empty>                            -> EmptyEntity

The first identifier decides which form is parsed: if it names a type the
input is a type list, otherwise it is the name of a function.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator, List, Optional, Tuple as TupleOf

from .dsl_lexer import Token, TokenKind, tokenize
from .dsl_ast import (
    Array, CellEntity, DEFAULT_ABI_VERSION, EmptyEntity, Entity, FixedArray,
    InvalidMapKeyError, MAX_TUPLE_DEPTH, Map, OptionalType, Param, ParamType,
    Ref, Tuple, VERSION_TAGS, make_params,
)
from .dsl_errors import (
    InvalidMapKeyTypeError, InvalidNumericLiteralError, InvalidVersionTagError,
    NestingTooDeepError, ParseError, UnexpectedEndOfInputError,
    UnexpectedTokenError, UnknownIdentifierError, ValueOutOfRangeError,
    byte_offset,
)
from .dsl_resolver import Keyword, resolve_ident
from .dsl_signature import build_function


DIGITS = "0123456789"
HEX_DIGITS = "0123456789abcdefABCDEF"


class FrameKind(Enum):
    TUPLE = auto()
    OPTIONAL = auto()
    REF = auto()
    MAP = auto()


KEYWORD_FRAMES = {
    Keyword.OPTIONAL: FrameKind.OPTIONAL,
    Keyword.REF: FrameKind.REF,
    Keyword.MAP: FrameKind.MAP,
}

# Number of members a frame accepts; tuples take any number
FRAME_ARITY = {
    FrameKind.OPTIONAL: 1,
    FrameKind.REF: 1,
    FrameKind.MAP: 2,
}


@dataclass
class Frame:
    """An open parenthesised construct and the types collected in it so far."""
    kind: FrameKind
    start: int  # character index of the token that opened the frame
    items: List[ParamType] = field(default_factory=list)


class Parser:
    """Single-pass parser for interface signatures.

    `components` resolves a bare `tuple` keyword; it is only supplied when
    parsing the type strings of structured interface documents.
    """

    def __init__(self, source: str, components: Optional[List[Param]] = None):
        self.source = source
        self.components = components
        self.pos = 0
        self._tokens: Iterator[Token] = tokenize(source)
        self._current: Optional[Token] = next(self._tokens, None)

    def parse(self) -> Entity:
        """Parse the whole input as a function, a type list or nothing."""
        self._skip_whitespace()
        token = self._peek()

        if token is None:
            return EmptyEntity()

        if token.kind == TokenKind.IDENTIFIER:
            ident = self._text()
            if resolve_ident(ident, self._offset()) is not None:
                entity = CellEntity(self._parse_cell_types())
            else:
                self._advance()
                entity = self._parse_function(ident)
        elif token.kind == TokenKind.OPEN_PAREN:
            entity = CellEntity(self._parse_cell_types())
        else:
            raise self._unexpected()

        self._skip_whitespace()
        self._expect_end()
        return entity

    def parse_params(self) -> List[Param]:
        """Parse the whole input as a type list (no function form)."""
        self._skip_whitespace()
        if self._peek() is None:
            return []
        return self._parse_cell_types()

    def parse_type(self) -> ParamType:
        """Parse the whole input as exactly one type."""
        self._skip_whitespace()
        kinds = self._parse_type_list(stop_at_paren=False, single=True)
        return kinds[0]

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _peek(self) -> Optional[Token]:
        return self._current

    def _check(self, kind: TokenKind) -> bool:
        return self._current is not None and self._current.kind == kind

    def _text(self) -> str:
        return self.source[self.pos:self.pos + self._current.length]

    def _advance(self) -> Token:
        token = self._current
        self.pos += token.length
        self._current = next(self._tokens, None)
        return token

    def _offset(self, char_pos: Optional[int] = None) -> int:
        return byte_offset(self.source, self.pos if char_pos is None else char_pos)

    def _unexpected(self) -> ParseError:
        if self._current is None:
            return UnexpectedEndOfInputError(self._offset())
        return UnexpectedTokenError(self._text(), self._offset())

    def _expect(self, kind: TokenKind) -> Token:
        if self._check(kind):
            return self._advance()
        raise self._unexpected()

    def _expect_end(self):
        if self._current is not None:
            raise self._unexpected()

    def _skip_whitespace(self):
        while self._check(TokenKind.WHITESPACE):
            self._advance()

    def _take_word(self) -> TupleOf[str, int]:
        """Consume adjacent identifier/unknown tokens, e.g. `v2.1` or `#1a2b`."""
        start = self.pos
        while self._check(TokenKind.IDENTIFIER) or self._check(TokenKind.UNKNOWN):
            self._advance()
        return self.source[start:self.pos], start

    # =========================================================================
    # Functions
    # =========================================================================

    def _parse_function(self, name: str):
        """Parse: name [#id] (inputs) (outputs) [version]"""
        explicit_id = None

        self._skip_whitespace()
        if self._check(TokenKind.UNKNOWN) and self._text() == "#":
            explicit_id = self._parse_explicit_id()
            self._skip_whitespace()

        self._expect(TokenKind.OPEN_PAREN)
        inputs = self._parse_type_list(stop_at_paren=True)
        self._expect(TokenKind.CLOSE_PAREN)

        self._skip_whitespace()
        self._expect(TokenKind.OPEN_PAREN)
        outputs = self._parse_type_list(stop_at_paren=True)
        self._expect(TokenKind.CLOSE_PAREN)

        self._skip_whitespace()
        version = self._parse_version()

        return build_function(
            name, make_params(inputs), make_params(outputs), version, explicit_id
        )

    def _parse_explicit_id(self) -> int:
        word, start = self._take_word()
        digits = word[1:]
        if not digits or len(digits) > 8 or any(c not in HEX_DIGITS for c in digits):
            raise InvalidNumericLiteralError(word, self._offset(start))
        return int(digits, 16)

    def _parse_version(self):
        if not self._check(TokenKind.IDENTIFIER):
            return DEFAULT_ABI_VERSION

        word, start = self._take_word()
        if not word.startswith("v"):
            raise UnexpectedTokenError(word, self._offset(start))

        version = VERSION_TAGS.get(word)
        if version is None:
            raise InvalidVersionTagError(word, self._offset(start))
        return version

    # =========================================================================
    # Types
    # =========================================================================

    def _parse_cell_types(self) -> List[Param]:
        """Parse: '(' type_list ')' | type_list"""
        opened = self._check(TokenKind.OPEN_PAREN)
        kinds = self._parse_type_list(stop_at_paren=False)

        # `(a, b)` is the parenthesised form of the list `a, b`
        if opened and len(kinds) == 1 and isinstance(kinds[0], Tuple):
            return list(kinds[0].params)
        return make_params(kinds)

    def _parse_type_list(self, stop_at_paren: bool, single: bool = False) -> List[ParamType]:
        """Parse comma separated types.

        With `stop_at_paren` an unmatched `)` ends the list (function inputs and
        outputs) and the list may be empty; otherwise the list runs to the end of
        the input.
        """
        root: List[ParamType] = []
        stack: List[Frame] = []
        expect_type = True

        if stop_at_paren:
            self._skip_whitespace()
            if self._check(TokenKind.CLOSE_PAREN):
                return root

        while True:
            self._skip_whitespace()
            token = self._peek()
            items = stack[-1].items if stack else root

            if expect_type:
                if token is None:
                    raise UnexpectedEndOfInputError(self._offset())
                if token.kind == TokenKind.IDENTIFIER:
                    kind = self._parse_ident_type(stack)
                    if kind is not None:
                        items.append(kind)
                        expect_type = False
                elif token.kind == TokenKind.OPEN_PAREN:
                    self._push_frame(stack, FrameKind.TUPLE, self.pos)
                    self._advance()
                else:
                    raise self._unexpected()
                continue

            if token is None:
                if stack:
                    raise UnexpectedEndOfInputError(self._offset())
                return root

            if token.kind == TokenKind.COMMA:
                if stack:
                    arity = FRAME_ARITY.get(stack[-1].kind)
                    if arity is not None and len(stack[-1].items) >= arity:
                        raise self._unexpected()
                elif single:
                    raise self._unexpected()
                self._advance()
                expect_type = True
            elif token.kind == TokenKind.CLOSE_PAREN:
                if not stack:
                    if stop_at_paren:
                        return root
                    raise self._unexpected()
                kind = self._close_frame(stack.pop())
                self._advance()
                kind = self._parse_array_suffixes(kind)
                (stack[-1].items if stack else root).append(kind)
            else:
                raise self._unexpected()

    def _parse_ident_type(self, stack: List[Frame]) -> Optional[ParamType]:
        """Parse a type starting with an identifier.

        Returns the completed type, or None when the identifier opened a new
        frame (optional/ref/map) whose members follow.
        """
        ident = self._text()
        start = self.pos
        resolved = resolve_ident(ident, self._offset())

        if resolved is None:
            raise UnknownIdentifierError(ident, self._offset())

        if resolved == Keyword.TUPLE:
            if not self.components:
                raise UnexpectedTokenError(ident, self._offset())
            self._advance()
            return self._parse_array_suffixes(Tuple(self.components))

        if isinstance(resolved, Keyword):
            self._advance()
            self._skip_whitespace()
            if not self._check(TokenKind.OPEN_PAREN):
                raise self._unexpected()
            self._push_frame(stack, KEYWORD_FRAMES[resolved], start)
            self._advance()
            return None

        self._advance()
        return self._parse_array_suffixes(resolved)

    def _push_frame(self, stack: List[Frame], kind: FrameKind, start: int):
        if len(stack) >= MAX_TUPLE_DEPTH:
            raise NestingTooDeepError(len(stack) + 1, self._offset(start))
        stack.append(Frame(kind=kind, start=start))

    def _close_frame(self, frame: Frame) -> ParamType:
        """Build the type for a frame whose `)` is the current token."""
        if frame.kind == FrameKind.TUPLE:
            return Tuple(make_params(frame.items))
        if frame.kind == FrameKind.OPTIONAL:
            return OptionalType(frame.items[0])
        if frame.kind == FrameKind.REF:
            return Ref(frame.items[0])

        if len(frame.items) != 2:
            raise self._unexpected()
        key, value = frame.items
        try:
            return Map(key, value)
        except InvalidMapKeyError:
            raise InvalidMapKeyTypeError(key.signature(), self._offset(frame.start))

    def _parse_array_suffixes(self, kind: ParamType) -> ParamType:
        """Parse any number of trailing `[]` / `[N]`."""
        while True:
            self._skip_whitespace()
            if not self._check(TokenKind.OPEN_BRACKET):
                return kind
            self._advance()
            self._skip_whitespace()

            if self._check(TokenKind.CLOSE_BRACKET):
                self._advance()
                kind = Array(kind)
                continue

            word, start = self._take_word()
            if not word:
                raise self._unexpected()
            if any(c not in DIGITS for c in word):
                raise InvalidNumericLiteralError(word, self._offset(start))
            size = int(word)
            if size < 1:
                raise ValueOutOfRangeError("fixedarray", size, self._offset(start))

            self._skip_whitespace()
            self._expect(TokenKind.CLOSE_BRACKET)
            kind = FixedArray(kind, size)


def parse(source: str) -> Entity:
    """Parse an interface signature into an Entity."""
    return Parser(source).parse()


def parse_params(source: str) -> List[Param]:
    """Parse a type list into named params (value0, value1, ...)."""
    return Parser(source).parse_params()


def parse_type(source: str, components: Optional[List[Param]] = None) -> ParamType:
    """Parse exactly one type, resolving `tuple` to `components` when given."""
    return Parser(source, components).parse_type()
