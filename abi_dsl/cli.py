#!/usr/bin/env python3
"""
Command-line interface for the interface signature DSL.

Usage:
    abi-dsl parse <text> [--json] [--peg]
    abi-dsl signature <text>
    abi-dsl codegen <contract.json|contract.yaml> [--config mapping.yaml] [--output lib.rs]
    abi-dsl codegen --params <type list> [--config mapping.yaml] [--output lib.rs]

Example:
    abi-dsl signature "transfer(address,uint128)(bool)v2"
    abi-dsl parse "uint256, (bool, address)[]" --json
    abi-dsl codegen wallet.abi.json --output src/wallet.rs

Pass `-` as text to read it from stdin.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml

from .dsl_ast import CellEntity, EmptyEntity, FunctionEntity, params_signature
from .dsl_converter import (
    DEFAULT_STRATEGIES, DocumentStrategy, SignatureStrategy, entity_to_dict,
    load_contract_file, parse_entity,
)
from .dsl_errors import ParseError
from .dsl_parser import parse
from .dsl_peg_parser import parse as peg_parse
from .dsl_signature import format_id, function_signature
from .generate_structs import (
    GenerationError, generate_rust_code, generate_rust_code_from_params,
    load_type_mapping, write_rust_code,
)


def _read_text(text: str) -> str:
    return sys.stdin.read() if text == "-" else text


def cmd_parse(args) -> None:
    strategies = DEFAULT_STRATEGIES
    if args.peg:
        strategies = (SignatureStrategy(peg_parse), DocumentStrategy())

    result = entity_to_dict(parse_entity(_read_text(args.text), strategies))
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(yaml.safe_dump(result, sort_keys=False), end="")


def cmd_signature(args) -> None:
    entity = parse(_read_text(args.text))

    if isinstance(entity, FunctionEntity):
        print(function_signature(entity.name, entity.inputs, entity.outputs, entity.version))
        print(f"input id:  {format_id(entity.input_id)}")
        print(f"output id: {format_id(entity.output_id)}")
    elif isinstance(entity, CellEntity):
        print(params_signature(entity.params))
    elif isinstance(entity, EmptyEntity):
        print("()")


def cmd_codegen(args) -> None:
    mapping = load_type_mapping(args.config) if args.config else None

    if args.params is not None:
        code = generate_rust_code_from_params(_read_text(args.params), mapping)
        if not code:
            raise ValueError("--params expects a list of types")
    elif args.contract:
        code = generate_rust_code(load_contract_file(args.contract), mapping)
    else:
        raise ValueError("Specify a contract file or --params")

    if args.output:
        path = write_rust_code(code, args.output)
        print(f"Wrote {path}")
    else:
        print(code, end="")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="abi-dsl",
        description="Parse interface signatures and generate Rust bindings"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Parse a signature or interface document")
    parse_cmd.add_argument("text", help="Signature text, JSON/YAML document, or - for stdin")
    parse_cmd.add_argument("--json", action="store_true", help="Print JSON instead of YAML")
    parse_cmd.add_argument("--peg", action="store_true", help="Use the grammar-based parser")
    parse_cmd.set_defaults(func=cmd_parse)

    sig_cmd = subparsers.add_parser("signature", help="Print the canonical signature and ids")
    sig_cmd.add_argument("text", help="Signature text, or - for stdin")
    sig_cmd.set_defaults(func=cmd_signature)

    gen_cmd = subparsers.add_parser("codegen", help="Generate Rust structs")
    gen_cmd.add_argument("contract", nargs="?", help="JSON or YAML contract file")
    gen_cmd.add_argument("--params", help="Type list to generate a CommonStruct for")
    gen_cmd.add_argument("--config", help="YAML type mapping overrides")
    gen_cmd.add_argument("--output", help="Output file (default: stdout)")
    gen_cmd.set_defaults(func=cmd_codegen)

    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        args.func(args)
    except (ParseError, GenerationError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
