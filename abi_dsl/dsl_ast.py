"""
Type model for the interface signature DSL.

Every value type is a small frozen dataclass, so two type trees compare equal
exactly when they are structurally identical and can be used as dict keys.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple as TupleOf, Union


class TypeModelError(ValueError):
    """Raised when a type tree is built from invalid parts."""


class InvalidMapKeyError(TypeModelError):
    """Raised when a map is keyed by something other than an integer or address."""
    def __init__(self, key: 'ParamType'):
        self.key = key
        super().__init__(f"Map key must be an integer or address, got `{key.signature()}`")


# Maximum nesting of parenthesised constructs (tuples, optional, ref, map)
MAX_TUPLE_DEPTH = 16


# =============================================================================
# Scalar types
# =============================================================================

@dataclass(frozen=True)
class Bool:
    def signature(self) -> str:
        return "bool"


@dataclass(frozen=True)
class Int:
    """Signed integer of `size` bits (1..256)."""
    size: int

    def signature(self) -> str:
        return f"int{self.size}"


@dataclass(frozen=True)
class Uint:
    """Unsigned integer of `size` bits (1..256)."""
    size: int

    def signature(self) -> str:
        return f"uint{self.size}"


@dataclass(frozen=True)
class VarInt:
    """Variable-length signed integer, `size` is 16 or 32."""
    size: int

    def signature(self) -> str:
        return f"varint{self.size}"


@dataclass(frozen=True)
class VarUint:
    """Variable-length unsigned integer, `size` is 16 or 32."""
    size: int

    def signature(self) -> str:
        return f"varuint{self.size}"


@dataclass(frozen=True)
class Address:
    def signature(self) -> str:
        return "address"


@dataclass(frozen=True)
class Bytes:
    def signature(self) -> str:
        return "bytes"


@dataclass(frozen=True)
class FixedBytes:
    """Byte string of exactly `size` bytes (1..32)."""
    size: int

    def signature(self) -> str:
        return f"fixedbytes{self.size}"


@dataclass(frozen=True)
class String:
    def signature(self) -> str:
        return "string"


@dataclass(frozen=True)
class Cell:
    """Opaque cell handle, passed through untouched."""
    def signature(self) -> str:
        return "cell"


@dataclass(frozen=True)
class TokenAmount:
    """Native currency amount (`gram` / `token`)."""
    def signature(self) -> str:
        return "gram"


# =============================================================================
# Composite types
# =============================================================================

@dataclass(frozen=True)
class OptionalType:
    """Optional value: optional(inner)."""
    inner: 'ParamType'

    def signature(self) -> str:
        return f"optional({self.inner.signature()})"


@dataclass(frozen=True)
class Ref:
    """Value stored in a separate cell: ref(inner). Transparent for typing."""
    inner: 'ParamType'

    def signature(self) -> str:
        return f"ref({self.inner.signature()})"


@dataclass(frozen=True)
class Tuple:
    """Ordered list of named members."""
    params: TupleOf['Param', ...]

    def __post_init__(self):
        # Accept any sequence but always store a tuple so the node stays hashable
        object.__setattr__(self, 'params', tuple(self.params))

    def signature(self) -> str:
        return "(" + ",".join(p.kind.signature() for p in self.params) + ")"


@dataclass(frozen=True)
class Array:
    """Dynamic array: inner[]."""
    inner: 'ParamType'

    def signature(self) -> str:
        return f"{self.inner.signature()}[]"


@dataclass(frozen=True)
class FixedArray:
    """Fixed-size array: inner[size]."""
    inner: 'ParamType'
    size: int

    def signature(self) -> str:
        return f"{self.inner.signature()}[{self.size}]"


@dataclass(frozen=True)
class Map:
    """Dictionary: map(key, value). Keys are restricted to integers and addresses."""
    key: 'ParamType'
    value: 'ParamType'

    def __post_init__(self):
        if not isinstance(self.key, MAP_KEY_TYPES):
            raise InvalidMapKeyError(self.key)

    def signature(self) -> str:
        return f"map({self.key.signature()},{self.value.signature()})"


MAP_KEY_TYPES = (Int, Uint, Address)

# Union type for all value types
ParamType = Union[
    Bool, Int, Uint, VarInt, VarUint, Address, Bytes, FixedBytes, String, Cell,
    TokenAmount, OptionalType, Ref, Tuple, Array, FixedArray, Map,
]

# Types that open a parenthesised frame in the textual notation
PAREN_TYPES = (Tuple, OptionalType, Ref, Map)


@dataclass(frozen=True)
class Param:
    """A named value type."""
    name: str
    kind: ParamType


def make_params(kinds, prefix: str = "value") -> List[Param]:
    """Name a list of types by position: value0, value1, ..."""
    return [Param(name=f"{prefix}{i}", kind=kind) for i, kind in enumerate(kinds)]


def named_signature(kind: ParamType) -> str:
    """Canonical signature that also spells out tuple member names.

    Used where two tuples must only be treated as equal when their members are
    named the same, e.g. `(a:uint8,b:bool)[]`.
    """
    if isinstance(kind, Tuple):
        members = ",".join(f"{p.name}:{named_signature(p.kind)}" for p in kind.params)
        return f"({members})"
    if isinstance(kind, Array):
        return f"{named_signature(kind.inner)}[]"
    if isinstance(kind, FixedArray):
        return f"{named_signature(kind.inner)}[{kind.size}]"
    if isinstance(kind, OptionalType):
        return f"optional({named_signature(kind.inner)})"
    if isinstance(kind, Ref):
        return f"ref({named_signature(kind.inner)})"
    if isinstance(kind, Map):
        return f"map({named_signature(kind.key)},{named_signature(kind.value)})"
    return kind.signature()


def nesting_depth(kind: ParamType) -> int:
    """Number of nested parenthesised constructs in a type tree."""
    if isinstance(kind, Tuple):
        return 1 + max((nesting_depth(p.kind) for p in kind.params), default=0)
    if isinstance(kind, (OptionalType, Ref)):
        return 1 + nesting_depth(kind.inner)
    if isinstance(kind, Map):
        return 1 + max(nesting_depth(kind.key), nesting_depth(kind.value))
    if isinstance(kind, (Array, FixedArray)):
        return nesting_depth(kind.inner)
    return 0


def params_signature(params: List[Param]) -> str:
    """Canonical text of a type list, always wrapped in parentheses."""
    return "(" + ",".join(p.kind.signature() for p in params) + ")"


# =============================================================================
# Interface versions
# =============================================================================

@dataclass(frozen=True, order=True)
class AbiVersion:
    major: int
    minor: int

    def __str__(self):
        return f"{self.major}.{self.minor}"


ABI_VERSION_1_0 = AbiVersion(1, 0)
ABI_VERSION_2_0 = AbiVersion(2, 0)
ABI_VERSION_2_1 = AbiVersion(2, 1)
ABI_VERSION_2_2 = AbiVersion(2, 2)
ABI_VERSION_2_3 = AbiVersion(2, 3)

DEFAULT_ABI_VERSION = ABI_VERSION_2_2

# Version tags accepted after a function signature
VERSION_TAGS = {
    "v1": ABI_VERSION_1_0,
    "v1.0": ABI_VERSION_1_0,
    "v2": ABI_VERSION_2_2,
    "v2.0": ABI_VERSION_2_0,
    "v2.1": ABI_VERSION_2_1,
    "v2.2": ABI_VERSION_2_2,
    "v2.3": ABI_VERSION_2_3,
}


# =============================================================================
# Parse results
# =============================================================================

@dataclass(frozen=True)
class EmptyEntity:
    """Result of parsing empty or whitespace-only input."""


@dataclass
class CellEntity:
    """A bare list of value types."""
    params: List[Param] = field(default_factory=list)


@dataclass
class FunctionEntity:
    """A contract function with its derived or explicit ids."""
    name: str
    input_id: int
    output_id: int
    inputs: List[Param] = field(default_factory=list)
    outputs: List[Param] = field(default_factory=list)
    version: AbiVersion = DEFAULT_ABI_VERSION
    explicit_id: bool = False


@dataclass
class EventEntity:
    """A contract event. Events only come from structured documents."""
    name: str
    id: int
    inputs: List[Param] = field(default_factory=list)
    version: AbiVersion = DEFAULT_ABI_VERSION
    explicit_id: bool = False


@dataclass
class Contract:
    """Functions and events of a contract, in document order."""
    version: AbiVersion = DEFAULT_ABI_VERSION
    functions: List[FunctionEntity] = field(default_factory=list)
    events: List[EventEntity] = field(default_factory=list)

    def function(self, name: str) -> Optional[FunctionEntity]:
        for function in self.functions:
            if function.name == name:
                return function
        return None

    def event(self, name: str) -> Optional[EventEntity]:
        for event in self.events:
            if event.name == name:
                return event
        return None


# Union type for all parse results
Entity = Union[EmptyEntity, CellEntity, FunctionEntity, EventEntity]
