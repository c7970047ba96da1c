"""
abi-dsl - Interface signature DSL for smart-contract ABIs.

This package provides:
- dsl_lexer / dsl_parser: hand-written signature parser
- dsl_peg_parser: Lark grammar-based parser for the same notation
- dsl_signature: canonical signatures and function ids
- dsl_converter: JSON/YAML interface documents and parse strategies
- generate_structs: Rust struct and accessor generation
"""

from .dsl_ast import (
    AbiVersion,
    CellEntity,
    Contract,
    EmptyEntity,
    EventEntity,
    FunctionEntity,
    Param,
    DEFAULT_ABI_VERSION,
    MAX_TUPLE_DEPTH,
)

from .dsl_errors import (
    ParseError,
    UnexpectedTokenError,
    UnexpectedEndOfInputError,
    InvalidNumericLiteralError,
    ValueOutOfRangeError,
    NestingTooDeepError,
    UnknownIdentifierError,
    InvalidVersionTagError,
    InvalidMapKeyTypeError,
)

from .dsl_parser import Parser, parse, parse_params, parse_type

from .dsl_signature import (
    function_signature,
    event_signature,
    calc_function_id,
)

from .dsl_converter import (
    DocumentError,
    EntityParseError,
    entity_to_dict,
    load_contract,
    load_contract_file,
    parse_entity,
)

from .generate_structs import (
    GenerationError,
    TypeMapping,
    Generator,
    generate_rust_code,
    generate_rust_code_from_params,
    load_type_mapping,
)

__all__ = [
    # Model
    "AbiVersion",
    "CellEntity",
    "Contract",
    "EmptyEntity",
    "EventEntity",
    "FunctionEntity",
    "Param",
    "DEFAULT_ABI_VERSION",
    "MAX_TUPLE_DEPTH",
    # Errors
    "ParseError",
    "UnexpectedTokenError",
    "UnexpectedEndOfInputError",
    "InvalidNumericLiteralError",
    "ValueOutOfRangeError",
    "NestingTooDeepError",
    "UnknownIdentifierError",
    "InvalidVersionTagError",
    "InvalidMapKeyTypeError",
    # Parsing
    "Parser",
    "parse",
    "parse_params",
    "parse_type",
    # Signatures
    "function_signature",
    "event_signature",
    "calc_function_id",
    # Documents
    "DocumentError",
    "EntityParseError",
    "entity_to_dict",
    "load_contract",
    "load_contract_file",
    "parse_entity",
    # Code generation
    "GenerationError",
    "TypeMapping",
    "Generator",
    "generate_rust_code",
    "generate_rust_code_from_params",
    "load_type_mapping",
]
