"""
PEG-based parser for the interface signature DSL using Lark.

Uses a formal grammar definition (dsl_grammar.lark) and Lark's Earley parser
to produce the same entities as the hand-written parser in dsl_parser.py.
Identifier resolution, id derivation and all validation are shared with the
hand-written parser, so both accept the same language.
"""

from pathlib import Path
from typing import List, Optional

from lark import Lark, Transformer, v_args
from lark.exceptions import (
    UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, VisitError,
)

from .dsl_ast import (
    Array, CellEntity, DEFAULT_ABI_VERSION, EmptyEntity, Entity, FixedArray,
    InvalidMapKeyError, MAX_TUPLE_DEPTH, Map, OptionalType, ParamType, Ref,
    Tuple, VERSION_TAGS, make_params, nesting_depth,
)
from .dsl_errors import (
    InvalidMapKeyTypeError, InvalidNumericLiteralError, InvalidVersionTagError,
    NestingTooDeepError, ParseError, UnexpectedEndOfInputError,
    UnexpectedTokenError, UnknownIdentifierError, ValueOutOfRangeError,
    byte_offset,
)
from .dsl_lexer import TokenKind, WHITESPACE_CHARS, tokenize
from .dsl_resolver import KEYWORDS, Keyword, is_type_keyword, resolve_ident
from .dsl_signature import build_function


# Load grammar from file
GRAMMAR_PATH = Path(__file__).parent / "dsl_grammar.lark"

HEX_DIGITS = "0123456789abcdefABCDEF"


@v_args(inline=True)
class SignatureTransformer(Transformer):
    """Transform Lark parse tree into entities."""

    def __init__(self, source: str):
        super().__init__()
        self.source = source

    # =========================================================================
    # Top-level
    # =========================================================================

    def start(self, item):
        if isinstance(item, list):
            # `(a, b)` is the parenthesised form of the list `a, b`
            if len(item) == 1 and isinstance(item[0], Tuple):
                return CellEntity(list(item[0].params))
            return CellEntity(make_params(item))
        return item

    @v_args(meta=True)
    def function(self, meta, children):
        name, explicit_id, inputs, outputs, version = children
        position = self._offset(meta.start_pos)

        # A type name is never a function name
        if resolve_ident(str(name), position) is not None:
            raise UnexpectedTokenError(str(name), position)

        return build_function(
            str(name),
            make_params(inputs or []),
            make_params(outputs or []),
            self._version(version),
            self._explicit_id(explicit_id),
        )

    def type_list(self, *kinds):
        return list(kinds)

    # =========================================================================
    # Types
    # =========================================================================

    def type(self, base, *suffixes):
        kind = base
        for size in suffixes:
            kind = Array(kind) if size is None else FixedArray(kind, size)
        return kind

    @v_args(meta=True)
    def scalar(self, meta, children):
        name = str(children[0])
        position = self._offset(meta.start_pos)
        resolved = resolve_ident(name, position)

        if resolved is None:
            raise UnknownIdentifierError(name, position)
        if isinstance(resolved, Keyword):
            rest = self.source[meta.end_pos:]
            if all(c in WHITESPACE_CHARS for c in rest):
                raise UnexpectedEndOfInputError(self._offset(len(self.source)))
            raise UnexpectedTokenError(name, position)
        return resolved

    @v_args(meta=True)
    def tuple(self, meta, children):
        return self._check_depth(Tuple(make_params(children[0])), meta)

    @v_args(meta=True)
    def optional(self, meta, children):
        return self._check_depth(OptionalType(children[0]), meta)

    @v_args(meta=True)
    def ref(self, meta, children):
        return self._check_depth(Ref(children[0]), meta)

    @v_args(meta=True)
    def map(self, meta, children):
        key, value = children
        try:
            kind = Map(key, value)
        except InvalidMapKeyError:
            raise InvalidMapKeyTypeError(key.signature(), self._offset(meta.start_pos))
        return self._check_depth(kind, meta)

    def dynamic_array(self):
        return None

    @v_args(meta=True)
    def fixed_array(self, meta, children):
        text = str(children[0])
        position = self._offset(children[0].start_pos)
        if not text.isdigit() or not text.isascii():
            raise InvalidNumericLiteralError(text, position)
        size = int(text)
        if size < 1:
            raise ValueOutOfRangeError("fixedarray", size, position)
        return size

    # =========================================================================
    # Helpers
    # =========================================================================

    def _offset(self, char_pos: int) -> int:
        return byte_offset(self.source, char_pos)

    def _check_depth(self, kind: ParamType, meta) -> ParamType:
        if nesting_depth(kind) > MAX_TUPLE_DEPTH:
            raise NestingTooDeepError(MAX_TUPLE_DEPTH + 1, self._offset(meta.start_pos))
        return kind

    def _version(self, token):
        if token is None:
            return DEFAULT_ABI_VERSION
        version = VERSION_TAGS.get(str(token))
        if version is None:
            raise InvalidVersionTagError(str(token), self._offset(token.start_pos))
        return version

    def _explicit_id(self, token) -> Optional[int]:
        if token is None:
            return None
        digits = str(token)[1:]
        if not digits or len(digits) > 8 or any(c not in HEX_DIGITS for c in digits):
            raise InvalidNumericLiteralError(str(token), self._offset(token.start_pos))
        return int(digits, 16)


# Create parser instance
_parser = None


def get_parser() -> Lark:
    """Get or create the Lark parser instance."""
    global _parser
    if _parser is None:
        with open(GRAMMAR_PATH) as f:
            grammar = f.read()
        _parser = Lark(
            grammar,
            parser='earley',
            propagate_positions=True,
            maybe_placeholders=True,
        )
    return _parser


def check_nesting(source: str):
    """Reject input nested deeper than MAX_TUPLE_DEPTH before Lark sees it.

    Counts open parentheses over the token stream. The argument lists of a
    function are not frames, so a leading function name raises the limit by
    one. The error is reported at the frame that crosses the limit: the
    keyword for `optional(`/`ref(`/`map(`, otherwise the parenthesis.
    """
    limit = MAX_TUPLE_DEPTH
    depth = 0
    pos = 0
    first = True
    keyword_start = None

    for token in tokenize(source):
        kind = token.kind
        if kind == TokenKind.IDENTIFIER:
            text = source[pos:pos + token.length]
            if first and not is_type_keyword(text):
                limit += 1
            keyword_start = pos if text in KEYWORDS else None
        elif kind == TokenKind.OPEN_PAREN:
            depth += 1
            if depth > limit:
                start = pos if keyword_start is None else keyword_start
                raise NestingTooDeepError(MAX_TUPLE_DEPTH + 1, byte_offset(source, start))
            keyword_start = None
        elif kind == TokenKind.CLOSE_PAREN:
            depth = max(depth - 1, 0)
            keyword_start = None
        elif kind != TokenKind.WHITESPACE:
            keyword_start = None

        if kind != TokenKind.WHITESPACE:
            first = False
        pos += token.length


def parse(source: str) -> Entity:
    """Parse an interface signature into an Entity."""
    if all(c in WHITESPACE_CHARS for c in source):
        return EmptyEntity()

    check_nesting(source)

    try:
        tree = get_parser().parse(source)
    except UnexpectedEOF:
        raise UnexpectedEndOfInputError(byte_offset(source, len(source))) from None
    except UnexpectedCharacters as e:
        raise UnexpectedTokenError(e.char, byte_offset(source, e.pos_in_stream)) from None
    except UnexpectedInput as e:
        position = max(e.pos_in_stream or 0, 0)
        token = getattr(e, "token", None) or source[position:position + 1]
        raise UnexpectedTokenError(str(token), byte_offset(source, position)) from None

    try:
        return SignatureTransformer(source).transform(tree)
    except VisitError as e:
        if isinstance(e.orig_exc, ParseError):
            raise e.orig_exc from None
        raise


def parse_params(source: str) -> List:
    """Parse a type list into named params; a function signature is rejected."""
    entity = parse(source)
    if isinstance(entity, EmptyEntity):
        return []
    if not isinstance(entity, CellEntity):
        raise UnknownIdentifierError(entity.name, byte_offset(source, source.find(entity.name)))
    return entity.params
