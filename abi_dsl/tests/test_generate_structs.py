"""
Tests for Rust struct generation.
"""

import logging

import pytest

from abi_dsl.dsl_ast import (
    Address, Array, Bool, FixedArray, Map, OptionalType, Param, Ref, TokenAmount,
    Tuple, Uint, VarUint, make_params,
)
from abi_dsl.dsl_converter import load_contract
from abi_dsl.generate_structs import (
    DEFAULT_TYPE_MAPPING, GenerationError, Generator, InternalInconsistencyError,
    Override, TypeMapping, UnsupportedMapKeyTypeError, build_property,
    generate_rust_code, generate_rust_code_from_params, load_type_mapping,
    param_type_literal, render_event, render_function, rust_field_name,
    to_camel, to_snake, write_rust_code,
)
from abi_dsl.dsl_parser import parse


MEMBERS = [{"name": "a", "type": "uint256"}, {"name": "b", "type": "bool"}]

SHARED_TUPLE_CONTRACT = {
    "functions": [
        {
            "name": "deposit",
            "inputs": [{"name": "info", "type": "tuple", "components": MEMBERS}],
        },
        {
            "name": "withdraw",
            "outputs": [{"name": "items", "type": "tuple[]", "components": MEMBERS}],
        },
    ],
    "events": [{"name": "Ping"}],
}


def struct_block(code, name):
    """Text of one rendered struct, from its derive line to the closing brace."""
    start = code.index(f"pub struct {name}")
    start = code.rindex("#[derive(", 0, start)
    end = code.find("\n\n", start)
    return code[start:end if end != -1 else len(code)].rstrip("\n")


def hand_built_map(key, value):
    # Map() refuses invalid keys, so bypass its validation
    kind = object.__new__(Map)
    object.__setattr__(kind, "key", key)
    object.__setattr__(kind, "value", value)
    return kind


class TestNaming:
    """Tests for Rust identifiers."""

    @pytest.mark.parametrize("name,expected", [
        ("someValue", "some_value"),
        ("SomeValue", "some_value"),
        ("HTTPServer", "http_server"),
        ("some-value", "some_value"),
        ("value0", "value0"),
    ])
    def test_to_snake(self, name, expected):
        assert to_snake(name) == expected

    def test_to_camel(self):
        assert to_camel("get_balanceFunctionInput") == "GetBalanceFunctionInput"
        assert to_camel("transferFunctionOutput") == "TransferFunctionOutput"

    @pytest.mark.parametrize("name,expected", [
        ("_value", "value"),
        ("value_", "value"),
        ("__value__", "_value_"),
        ("someValue", "some_value"),
        ("type", "r#type"),
        ("_ref", "r#ref"),
        ("self", "self_"),
        ("Self", "self_"),
        ("super", "super_"),
        ("crate", "crate_"),
        ("1st", "_1st"),
        ("_1st", "_1st"),
    ])
    def test_rust_field_name(self, name, expected):
        assert rust_field_name(name) == expected

    @pytest.mark.parametrize("name", ["", "_", "__", "  "])
    def test_empty_field_name_uses_index(self, name):
        assert rust_field_name(name, 3) == "value3"


class TestTypeMapping:
    """Tests for type mapping configuration."""

    @pytest.mark.parametrize("kind,expected", [
        (Uint(8), "u8"),
        (Uint(256), "ton_types::UInt256"),
        (Uint(7), "num_bigint::BigUint"),
        (Bool(), "bool"),
        (Address(), "ton_block::MsgAddressInt"),
        (TokenAmount(), "ton_block::Grams"),
        (VarUint(16), "num_bigint::BigUint"),
    ])
    def test_default_rust_types(self, kind, expected):
        assert DEFAULT_TYPE_MAPPING.rust_type(kind) == expected

    def test_immutable(self):
        with pytest.raises(TypeError):
            DEFAULT_TYPE_MAPPING.uint[8] = "x"
        with pytest.raises(AttributeError):
            DEFAULT_TYPE_MAPPING.uint_default = "x"

    def test_custom(self):
        mapping = TypeMapping(uint={8: "u8"})
        assert mapping.rust_type(Uint(16)) == "num_bigint::BigUint"

    def test_load(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text(
            "uint:\n"
            "  256: MyU256\n"
            "overrides:\n"
            "  uint64:\n"
            "    rust_type: MyU64\n"
            "    annotation: with = \"u64_str\"\n"
            "struct_derives: [Debug]\n"
        )
        mapping = load_type_mapping(path)
        assert mapping.uint[256] == "MyU256"
        assert mapping.uint[8] == "u8"
        assert mapping.overrides["uint64"] == Override("MyU64", 'with = "u64_str"')
        assert "uint160" in mapping.overrides
        assert mapping.struct_derives == ("Debug",)

        code = generate_rust_code_from_params("uint256, uint64", mapping)
        assert struct_block(code, "CommonStruct") == (
            "#[derive(Debug)]\n"
            "pub struct CommonStruct {\n"
            "    #[abi(uint256)]\n"
            "    pub value0: MyU256,\n"
            "    #[abi(with = \"u64_str\")]\n"
            "    pub value1: MyU64,\n"
            "}"
        )

    def test_load_empty(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text("")
        assert load_type_mapping(path) == DEFAULT_TYPE_MAPPING

    def test_load_unknown_key(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text("bogus: 1\nuint: {}\n")
        with pytest.raises(ValueError, match="unknown type mapping keys: bogus"):
            load_type_mapping(path)

    def test_load_not_a_mapping(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text("- a\n")
        with pytest.raises(ValueError):
            load_type_mapping(path)

    def test_load_bad_override(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text("overrides:\n  uint64: 5\n")
        with pytest.raises(ValueError):
            load_type_mapping(path)

    @pytest.mark.parametrize("text,message", [
        ("uint: u64\n", "`uint` must be a mapping"),
        ("int: [8, 16]\n", "`int` must be a mapping"),
        ("scalars: bool\n", "`scalars` must be a mapping"),
        ("overrides: [uint64]\n", "`overrides` must be a mapping"),
        ("known_abi_types: array\n", "`known_abi_types` must be a list"),
        ("imports: {a: b}\n", "`imports` must be a list"),
        ("uint_default: [a, b]\n", "`uint_default` must be a string"),
        ("uint:\n  big: MyBig\n", "`uint` keys must be bit sizes"),
    ])
    def test_load_bad_shape(self, tmp_path, text, message):
        path = tmp_path / "types.yaml"
        path.write_text(text)
        with pytest.raises(ValueError) as exc:
            load_type_mapping(path)
        assert str(exc.value).startswith(f"{path}: ")
        assert message in str(exc.value)


class TestProperties:
    """Tests for lowering types to struct properties."""

    def test_ref_is_transparent(self):
        prop = build_property("x", Ref(Uint(8)))
        assert prop.rust_type == "u8"
        assert prop.abi_hint(DEFAULT_TYPE_MAPPING) == "uint8"

    def test_override(self):
        prop = build_property("hash", Uint(160))
        assert prop.rust_type == "[u8; 20]"
        assert prop.annotation == 'unpack_with = "uint160_bytes"'

    def test_array_override_wins(self):
        prop = build_property("hashes", Array(Uint(160)))
        assert prop.rust_type == "Vec<[u8; 20]>"

    def test_unsupported_map_key(self):
        with pytest.raises(UnsupportedMapKeyTypeError) as exc:
            build_property("m", hand_built_map(Bool(), Uint(8)))
        assert exc.value.param_name == "m"

    def test_map_key_from_override(self):
        prop = build_property("m", Map(Uint(160), Bool()))
        assert prop.key.rust_type == "[u8; 20]"


class TestGenerator:
    """Tests for struct generation."""

    def test_common_struct(self):
        code = generate_rust_code_from_params("uint256, (bool, address)[]")
        assert struct_block(code, "CommonStruct") == (
            "#[derive(Serialize, Deserialize, Debug, Clone, PackAbi, UnpackAbiPlain)]\n"
            "pub struct CommonStruct {\n"
            "    #[abi(uint256)]\n"
            "    pub value0: ton_types::UInt256,\n"
            "    #[abi(array)]\n"
            "    pub value1: Vec<InternalStruct1>,\n"
            "}"
        )
        assert struct_block(code, "InternalStruct1") == (
            "#[derive(Serialize, Deserialize, Debug, Clone, UnpackAbi)]\n"
            "pub struct InternalStruct1 {\n"
            "    #[abi(bool)]\n"
            "    pub value0: bool,\n"
            "    #[abi(address)]\n"
            "    pub value1: ton_block::MsgAddressInt,\n"
            "}"
        )

    def test_from_params_ignores_other_entities(self):
        assert generate_rust_code_from_params("foo()()") == ""
        assert generate_rust_code_from_params("") == ""

    def test_imports(self):
        code = generate_rust_code_from_params("bool")
        assert code.startswith("use serde::{Serialize, Deserialize};\n")
        assert "use ton_abi::{Param, ParamType};" in code
        assert "use std::collections::HashMap;" in code

    def test_field_annotations(self):
        params = [
            Param("someValue", Uint(32)),
            Param("_owner", Address()),
            Param("type", Bool()),
            Param("maybe", OptionalType(Uint(8))),
            Param("balances", Map(Address(), Uint(128))),
            Param("hash", Uint(160)),
            Param("raw", Uint(7)),
        ]
        code = Generator().generate_from_params(params, name="Fields")
        block = struct_block(code, "Fields")
        assert '    #[abi(name = "someValue", uint32)]\n    pub some_value: u32,' in block
        assert '    #[abi(name = "_owner", address)]\n    pub owner: ton_block::MsgAddressInt,' in block
        assert '    #[abi(name = "type", bool)]\n    pub r#type: bool,' in block
        assert '    #[abi(optional)]\n    pub maybe: Option<u8>,' in block
        assert '    #[abi]\n    pub balances: HashMap<ton_block::MsgAddressInt, u128>,' in block
        assert '    #[abi(unpack_with = "uint160_bytes")]\n    pub hash: [u8; 20],' in block
        assert '    #[abi]\n    pub raw: num_bigint::BigUint,' in block

    def test_awkward_field_names(self):
        contract = load_contract({"functions": [{"name": "odd", "inputs": [
            {"name": "_", "type": "uint8"},
            {"name": "self", "type": "bool"},
            {"name": "1st", "type": "bool"},
        ]}]})
        block = struct_block(generate_rust_code(contract), "OddFunctionInput")
        assert '    #[abi(name = "_", uint8)]\n    pub value0: u8,' in block
        assert '    #[abi(name = "self", bool)]\n    pub self_: bool,' in block
        assert '    #[abi(name = "1st", bool)]\n    pub _1st: bool,' in block

    def test_duplicate_field_name(self):
        params = [Param("owner", Address()), Param("_owner", Address())]
        with pytest.raises(GenerationError, match="duplicate field name `owner`"):
            Generator().generate_from_params(params)

    def test_shared_tuple(self):
        code = generate_rust_code(load_contract(SHARED_TUPLE_CONTRACT))
        assert "    #[abi]\n    pub info: InternalStruct1," in code
        assert "    #[abi(array)]\n    pub items: Vec<InternalStruct1>," in code
        assert code.count("pub struct InternalStruct1 {") == 1
        assert "InternalStruct2" not in code

    def test_struct_names(self):
        code = generate_rust_code(load_contract(SHARED_TUPLE_CONTRACT))
        assert "pub struct DepositFunctionInput {" in code
        assert "pub struct WithdrawFunctionOutput {" in code
        assert "DepositFunctionOutput" not in code
        assert "WithdrawFunctionInput" not in code

    def test_empty_event_struct(self):
        code = generate_rust_code(load_contract(SHARED_TUPLE_CONTRACT))
        assert "pub struct PingEventOutput;" in code

    def test_struct_order(self):
        code = generate_rust_code(load_contract(SHARED_TUPLE_CONTRACT))
        positions = [
            code.index("pub struct DepositFunctionInput"),
            code.index("pub struct WithdrawFunctionOutput"),
            code.index("pub struct PingEventOutput"),
            code.index("pub struct InternalStruct1"),
            code.index("pub fn deposit()"),
            code.index("pub fn withdraw()"),
            code.index("pub fn ping()"),
        ]
        assert positions == sorted(positions)

    def test_member_names_split_structs(self):
        params = [
            Param("x", Tuple([Param("a", Uint(8))])),
            Param("y", Tuple([Param("b", Uint(8))])),
            Param("z", Tuple([Param("a", Uint(8))])),
        ]
        generator = Generator()
        generator.add_struct("Pair", params)
        assert [f.rust_type for f in generator.structs[0].fields] == [
            "InternalStruct1", "InternalStruct2", "InternalStruct1",
        ]

    def test_nested_numbering(self):
        code = generate_rust_code_from_params("bool, (uint8, (cell, string))")
        assert "    pub value1: InternalStruct1," in code
        assert "    pub value1: InternalStruct2," in struct_block(code, "InternalStruct1")
        assert "    pub value0: ton_types::Cell," in struct_block(code, "InternalStruct2")

    def test_deterministic(self):
        contract = load_contract(SHARED_TUPLE_CONTRACT)
        assert generate_rust_code(contract) == generate_rust_code(contract)

    def test_duplicate_struct_name(self):
        contract = load_contract({"functions": [
            {"name": "foo", "inputs": [{"name": "a", "type": "bool"}]},
            {"name": "Foo", "inputs": [{"name": "a", "type": "bool"}]},
        ]})
        with pytest.raises(InternalInconsistencyError):
            generate_rust_code(contract)

    def test_unsupported_map_key(self):
        params = [Param("m", hand_built_map(Bool(), Uint(8)))]
        with pytest.raises(UnsupportedMapKeyTypeError):
            Generator().generate_from_params(params)

    def test_logs_inner_structs(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="abi_dsl.generate_structs"):
            generate_rust_code_from_params("(uint8, bool)[]")
        assert "Created InternalStruct1" in caplog.text

    def test_write(self, tmp_path):
        output = write_rust_code("// code\n", tmp_path / "out" / "abi.rs")
        assert output.read_text() == "// code\n"


class TestAccessors:
    """Tests for function and event accessor rendering."""

    @pytest.mark.parametrize("kind,expected", [
        (Uint(8), "ParamType::Uint(8)"),
        (Address(), "ParamType::Address"),
        (TokenAmount(), "ParamType::Token"),
        (Array(Bool()), "ParamType::Array(Box::new(ParamType::Bool))"),
        (FixedArray(Uint(8), 3), "ParamType::FixedArray(Box::new(ParamType::Uint(8)), 3)"),
        (OptionalType(Bool()), "ParamType::Optional(Box::new(ParamType::Bool))"),
        (Ref(Bool()), "ParamType::Ref(Box::new(ParamType::Bool))"),
        (Map(Address(), Bool()),
         "ParamType::Map(Box::new(ParamType::Address), Box::new(ParamType::Bool))"),
    ])
    def test_param_type_literal(self, kind, expected):
        assert param_type_literal(kind) == expected

    def test_tuple_literal(self):
        kind = Tuple(make_params([Bool()]))
        assert param_type_literal(kind) == (
            'ParamType::Tuple(vec![Param { name: "value0".to_string(), kind: ParamType::Bool }])'
        )

    def test_render_function(self):
        code = render_function(parse("getBalance()(uint128)"))
        assert code.splitlines() == [
            "pub fn get_balance() -> &'static ton_abi::Function {",
            "    static FUNCTION: OnceCell<ton_abi::Function> = OnceCell::new();",
            "    FUNCTION.get_or_init(|| {",
            '        let mut builder = FunctionBuilder::new("getBalance");',
            '        let output = vec![Param { name: "value0".to_string(), kind: ParamType::Uint(128) }];',
            "        builder = builder.outputs(output);",
            "        builder.build()",
            "    })",
            "}",
        ]

    def test_render_event(self):
        contract = load_contract({"functions": [], "events": [
            {"name": "Transferred", "inputs": [{"name": "amount", "type": "uint128"}]},
        ]})
        code = render_event(contract.events[0])
        assert code.startswith("pub fn transferred() -> &'static ton_abi::Event {")
        assert 'EventBuilder::new("Transferred")' in code
        assert "builder = builder.inputs(input);" in code

    def test_render_function_explicit_id(self):
        code = render_function(parse("foo#1a2b(uint8)()"))
        assert code.splitlines()[-7:] == [
            "        builder = builder.inputs(input);",
            "        let mut function = builder.build();",
            "        function.input_id = 0x00001a2b;",
            "        function.output_id = 0x00001a2b;",
            "        function",
            "    })",
            "}",
        ]

    def test_render_function_version(self):
        function = parse("getBalance()(uint128)v2.3")
        code = render_function(function)
        assert code.splitlines()[-8:-2] == [
            "        builder = builder.outputs(output);",
            "        let mut function = builder.build();",
            "        function.abi_version = ton_abi::contract::AbiVersion { major: 2, minor: 3 };",
            f"        function.input_id = 0x{function.input_id:08x};",
            f"        function.output_id = 0x{function.output_id:08x};",
            "        function",
        ]

    def test_render_function_default_version(self):
        code = render_function(parse("getBalance()(uint128)v2.2"))
        assert "builder.build()\n" in code
        assert "abi_version" not in code
        assert "input_id" not in code

    def test_render_event_explicit_id(self):
        contract = load_contract({"functions": [], "events": [
            {"name": "Ping", "id": "0x10", "inputs": [{"name": "a", "type": "bool"}]},
        ]})
        code = render_event(contract.events[0])
        assert code.splitlines()[-5:-2] == [
            "        let mut event = builder.build();",
            "        event.id = 0x00000010;",
            "        event",
        ]
        assert "abi_version" not in code
