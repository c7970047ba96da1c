"""
Canonical signatures and identifiers for functions and events.

A function's id is derived from its canonical signature

    name(input,types)(output,types)v<major>

by taking the first four bytes of its SHA-256 digest as a big-endian integer.
The top bit tags the direction: cleared for the call (input id), set for the
answer (output id). Explicit ids are used verbatim for both directions.
"""

import hashlib
from typing import List, Optional, Tuple, Union

from .dsl_ast import (
    AbiVersion, DEFAULT_ABI_VERSION, EventEntity, FunctionEntity, Param,
)


INPUT_ID_MASK = 0x7FFFFFFF
OUTPUT_ID_FLAG = 0x80000000
MAX_ID = 0xFFFFFFFF


def types_csv(params: List[Param]) -> str:
    return ",".join(p.kind.signature() for p in params)


def function_signature(name: str, inputs: List[Param], outputs: List[Param],
                       version: AbiVersion = DEFAULT_ABI_VERSION) -> str:
    """Canonical signature of a function, e.g. `foo(uint32)(bool)v2`."""
    return f"{name}({types_csv(inputs)})({types_csv(outputs)})v{version.major}"


def event_signature(name: str, inputs: List[Param],
                    version: AbiVersion = DEFAULT_ABI_VERSION) -> str:
    """Canonical signature of an event, e.g. `Transfer(address,uint128)v2`."""
    return f"{name}({types_csv(inputs)})v{version.major}"


def calc_function_id(signature: str) -> int:
    """First four bytes of SHA-256(signature), big-endian."""
    digest = hashlib.sha256(signature.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big")


def split_function_id(base: int) -> Tuple[int, int]:
    """Derive (input_id, output_id) from one base id."""
    return base & INPUT_ID_MASK, base | OUTPUT_ID_FLAG


def parse_id_literal(value: Union[int, str]) -> int:
    """Parse an explicit id: an int, a decimal string, or `0x`/`#` hex.

    Raises ValueError when the literal is malformed or does not fit in 32 bits.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid function id: {value!r}")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        if text[:2] in ("0x", "0X"):
            digits, base = text[2:], 16
        elif text.startswith("#"):
            digits, base = text[1:], 16
        else:
            digits, base = text, 10
        allowed = "0123456789abcdefABCDEF" if base == 16 else "0123456789"
        if not digits or any(c not in allowed for c in digits):
            raise ValueError(f"Invalid function id: {value!r}")
        result = int(digits, base)
    else:
        raise ValueError(f"Invalid function id: {value!r}")

    if not 0 <= result <= MAX_ID:
        raise ValueError(f"Function id out of range: {value!r}")
    return result


def build_function(name: str, inputs: List[Param], outputs: List[Param],
                   version: AbiVersion = DEFAULT_ABI_VERSION,
                   explicit_id: Optional[int] = None) -> FunctionEntity:
    """Create a FunctionEntity, deriving its ids unless one is given."""
    if explicit_id is not None:
        input_id = output_id = explicit_id
    else:
        base = calc_function_id(function_signature(name, inputs, outputs, version))
        input_id, output_id = split_function_id(base)

    return FunctionEntity(
        name=name,
        input_id=input_id,
        output_id=output_id,
        inputs=list(inputs),
        outputs=list(outputs),
        version=version,
        explicit_id=explicit_id is not None,
    )


def build_event(name: str, inputs: List[Param],
                version: AbiVersion = DEFAULT_ABI_VERSION,
                explicit_id: Optional[int] = None) -> EventEntity:
    """Create an EventEntity; derived event ids always have the top bit cleared."""
    if explicit_id is not None:
        event_id = explicit_id
    else:
        event_id = calc_function_id(event_signature(name, inputs, version)) & INPUT_ID_MASK

    return EventEntity(
        name=name,
        id=event_id,
        inputs=list(inputs),
        version=version,
        explicit_id=explicit_id is not None,
    )


def format_id(value: int) -> str:
    return f"0x{value:08x}"
