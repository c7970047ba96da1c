"""
Identifier resolution for the interface signature DSL.

Maps an identifier such as `uint256`, `addr` or `map` to what it means in a
type position: a scalar type, a composite keyword that must be followed by
parentheses, or nothing at all (which makes the identifier a function name at
the start of the input).
"""

import re
from enum import Enum, auto
from typing import Optional, Union

from .dsl_errors import ValueOutOfRangeError
from .dsl_ast import (
    Address, Bool, Bytes, Cell, FixedBytes, Int, ParamType, String, TokenAmount,
    Uint, VarInt, VarUint,
)


class Keyword(Enum):
    """Identifiers that introduce a composite type."""
    OPTIONAL = auto()   # optional(T)
    REF = auto()        # ref(T)
    MAP = auto()        # map(K, V)
    TUPLE = auto()      # tuple, members come from document components


SIMPLE_TYPES = {
    "bool": Bool(),
    "bytes": Bytes(),
    "addr": Address(),
    "address": Address(),
    "cell": Cell(),
    "string": String(),
    "gram": TokenAmount(),
    "token": TokenAmount(),
}

KEYWORDS = {
    "optional": Keyword.OPTIONAL,
    "ref": Keyword.REF,
    "map": Keyword.MAP,
    "tuple": Keyword.TUPLE,
}

# Longer prefixes first so `uint8` is never read as `u` + `int8`
SIZED_TYPE_RE = re.compile(r"(varuint|varint|fixedbytes|uint|int|u|i)([0-9]*)")


def _check_bits(size: int) -> bool:
    return 1 <= size <= 256


def _check_varint(size: int) -> bool:
    return size in (16, 32)


def _check_fixedbytes(size: int) -> bool:
    return 1 <= size <= 32


# prefix -> (range kind, default size or None when required, validator, constructor)
SIZED_TYPES = {
    "uint": ("uint", 256, _check_bits, Uint),
    "u": ("uint", None, _check_bits, Uint),
    "int": ("int", 256, _check_bits, Int),
    "i": ("int", None, _check_bits, Int),
    "varuint": ("varuint", None, _check_varint, VarUint),
    "varint": ("varint", None, _check_varint, VarInt),
    "fixedbytes": ("fixedbytes", None, _check_fixedbytes, FixedBytes),
}


Resolved = Union[ParamType, Keyword]


def resolve_ident(ident: str, position: int = 0) -> Optional[Resolved]:
    """Resolve an identifier in type position.

    Returns a scalar ParamType, a Keyword, or None when the identifier does not
    name a type. Raises ValueOutOfRangeError for a recognised sized type whose
    size is invalid, e.g. `uint0` or `varuint8`.
    """
    simple = SIMPLE_TYPES.get(ident)
    if simple is not None:
        return simple

    keyword = KEYWORDS.get(ident)
    if keyword is not None:
        return keyword

    match = SIZED_TYPE_RE.fullmatch(ident)
    if not match:
        return None

    prefix, digits = match.groups()
    kind, default, is_valid, constructor = SIZED_TYPES[prefix]

    if not digits:
        if default is None:
            return None
        return constructor(default)

    size = int(digits)
    if not is_valid(size):
        raise ValueOutOfRangeError(kind, size, position)
    return constructor(size)


def is_type_keyword(ident: str) -> bool:
    """True when the identifier names a type (ignoring size validity)."""
    try:
        return resolve_ident(ident) is not None
    except ValueOutOfRangeError:
        return True
