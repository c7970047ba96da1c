"""
Generate Rust struct definitions from parsed interfaces.

Every function gets a `<Name>FunctionInput` / `<Name>FunctionOutput` struct
(when it has inputs / outputs), every event an `<Name>EventOutput` struct, and
each distinct tuple type an `InternalStruct<N>` helper. Tuples with identical
member names and types share one helper struct, across functions and events.

The generated code targets nekoton-abi derives (`PackAbi`, `UnpackAbi`, ...)
and ton-abi `FunctionBuilder` / `EventBuilder` accessors.

Usage:
    rust = generate_rust_code(load_contract_file("wallet.abi.json"))
    rust = generate_rust_code_from_params("uint256, (bool, address)[]")
"""

import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple as TupleOf

import yaml

from .dsl_ast import (
    AbiVersion, Address, Array, Bool, Bytes, Cell, CellEntity, Contract,
    DEFAULT_ABI_VERSION, EventEntity, FixedArray, FixedBytes, FunctionEntity,
    Int, MAP_KEY_TYPES, Map, OptionalType, Param, ParamType, Ref, String,
    TokenAmount, Tuple, Uint, VarInt, VarUint, named_signature,
)
from .dsl_parser import parse
from .dsl_signature import format_id


log = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when Rust code cannot be generated for an interface."""


class UnsupportedMapKeyTypeError(GenerationError):
    def __init__(self, param_name: Optional[str]):
        self.param_name = param_name
        super().__init__(f"Unsupported map key type for parameter `{param_name}`")


class InternalInconsistencyError(GenerationError):
    """Raised when two different structs would be emitted under one name."""


# =============================================================================
# Type Mapping Configuration
# =============================================================================

# Type signatures that nekoton-abi understands as `#[abi(<type>)]` hints
KNOWN_ABI_TYPES = (
    "array", "int8", "uint8", "uint16", "uint32", "uint64", "uint128", "uint256",
    "gram", "grams", "token", "tokens", "bool", "cell", "address", "string", "bytes",
)


@dataclass(frozen=True)
class Override:
    """Rust type and extra `#[abi(...)]` argument for one type signature."""
    rust_type: str
    annotation: Optional[str] = None


def _frozen(mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class TypeMapping:
    """How value types become Rust types. Immutable; pass a new one to change it."""
    uint: Mapping[int, str] = field(default_factory=lambda: _frozen({
        8: "u8", 16: "u16", 32: "u32", 64: "u64", 128: "u128",
        256: "ton_types::UInt256",
    }))
    uint_default: str = "num_bigint::BigUint"
    int: Mapping[int, str] = field(default_factory=lambda: _frozen({
        8: "i8", 16: "i16", 32: "i32", 64: "i64", 128: "i128",
    }))
    int_default: str = "num_bigint::BigInt"
    scalars: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "bool": "bool",
        "bytes": "Vec<u8>",
        "fixedbytes": "Vec<u8>",
        "string": "String",
        "address": "ton_block::MsgAddressInt",
        "cell": "ton_types::Cell",
        "token": "ton_block::Grams",
        "varuint": "num_bigint::BigUint",
        "varint": "num_bigint::BigInt",
    }))
    overrides: Mapping[str, Override] = field(default_factory=lambda: _frozen({
        "uint160": Override("[u8; 20]", 'unpack_with = "uint160_bytes"'),
        "uint160[]": Override("Vec<[u8; 20]>", 'unpack_with = "array_uint160_bytes"'),
    }))
    known_abi_types: TupleOf[str, ...] = KNOWN_ABI_TYPES
    struct_derives: TupleOf[str, ...] = (
        "Serialize", "Deserialize", "Debug", "Clone", "PackAbi", "UnpackAbiPlain",
    )
    inner_struct_derives: TupleOf[str, ...] = (
        "Serialize", "Deserialize", "Debug", "Clone", "UnpackAbi",
    )
    imports: TupleOf[str, ...] = (
        "serde::Serialize",
        "serde::Deserialize",
        "nekoton_abi::UnpackAbi",
        "nekoton_abi::UnpackAbiPlain",
        "nekoton_abi::PackAbi",
        "nekoton_abi::PackAbiPlain",
        "nekoton_abi::UnpackerError",
        "nekoton_abi::UnpackerResult",
        "nekoton_abi::BuildTokenValue",
        "nekoton_abi::TokenValueExt",
        "nekoton_abi::FunctionBuilder",
        "nekoton_abi::EventBuilder",
        "ton_abi::Param",
        "ton_abi::ParamType",
        "std::collections::HashMap",
        "once_cell::sync::OnceCell",
    )

    def __post_init__(self):
        for name in ("uint", "int", "scalars", "overrides"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))
        for name in ("known_abi_types", "struct_derives", "inner_struct_derives", "imports"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def rust_type(self, kind: ParamType) -> str:
        """Rust type of a scalar value type."""
        if isinstance(kind, Uint):
            return self.uint.get(kind.size, self.uint_default)
        if isinstance(kind, Int):
            return self.int.get(kind.size, self.int_default)
        scalar = SCALAR_KEYS.get(type(kind))
        if scalar is None:
            raise GenerationError(f"No Rust type for `{kind.signature()}`")
        return self.scalars[scalar]


SCALAR_KEYS = {
    Bool: "bool",
    Bytes: "bytes",
    FixedBytes: "fixedbytes",
    String: "string",
    Address: "address",
    Cell: "cell",
    TokenAmount: "token",
    VarUint: "varuint",
    VarInt: "varint",
}

DEFAULT_TYPE_MAPPING = TypeMapping()


def load_type_mapping(path) -> TypeMapping:
    """Load a TypeMapping from a YAML file; keys override the defaults.

    Mapping-valued keys (uint, int, scalars, overrides) are merged into the
    defaults, every other key replaces its default.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: type mapping must be a mapping")

    known = {f.name for f in fields(TypeMapping)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{path}: unknown type mapping keys: {', '.join(unknown)}")

    values = {}
    for key, value in data.items():
        default = getattr(DEFAULT_TYPE_MAPPING, key)
        if isinstance(default, Mapping):
            if not isinstance(value, dict):
                raise ValueError(f"{path}: `{key}` must be a mapping")
            if key in ("uint", "int"):
                loaded = {_bit_size(path, key, k): str(v) for k, v in value.items()}
            elif key == "overrides":
                loaded = {str(k): _load_override(path, v) for k, v in value.items()}
            else:
                loaded = {str(k): str(v) for k, v in value.items()}
            values[key] = {**default, **loaded}
        elif isinstance(default, tuple):
            if not isinstance(value, list):
                raise ValueError(f"{path}: `{key}` must be a list")
            values[key] = tuple(str(v) for v in value)
        else:
            if isinstance(value, (dict, list)):
                raise ValueError(f"{path}: `{key}` must be a string")
            values[key] = str(value)

    return TypeMapping(**values)


def _bit_size(path, key: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{path}: `{key}` keys must be bit sizes, got {value!r}") from None


def _load_override(path, value) -> Override:
    if isinstance(value, str):
        return Override(value)
    if isinstance(value, dict) and "rust_type" in value:
        annotation = value.get("annotation")
        return Override(str(value["rust_type"]), None if annotation is None else str(annotation))
    raise ValueError(f"{path}: invalid type override: {value!r}")


# =============================================================================
# Naming
# =============================================================================

RUST_KEYWORDS = frozenset({
    "as", "async", "await", "break", "const", "continue", "dyn", "else",
    "enum", "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop",
    "match", "mod", "move", "mut", "pub", "ref", "return", "static", "struct",
    "trait", "true", "type", "unsafe", "use", "where", "while",
})

# Keywords that cannot be raw identifiers
RESERVED_PATH_KEYWORDS = frozenset({"crate", "self", "super"})


def to_snake(name: str) -> str:
    """someValue / SomeValue / some-value -> some_value"""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    name = re.sub(r"[^0-9A-Za-z_]+", "_", name)
    return name.lower()


def to_camel(name: str) -> str:
    """get_balanceFunctionInput -> GetBalanceFunctionInput"""
    parts = re.split(r"[^0-9A-Za-z]+", name)
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


def rust_field_name(source_name: str, index: int = 0) -> str:
    """Field name for a parameter: snake_case without one leading/trailing `_`.

    A name with nothing left becomes `value<index>`, a leading digit gets a `_`
    prefix, `self`/`super`/`crate` get a `_` suffix and other keywords become
    raw identifiers.
    """
    name = to_snake(source_name.strip())
    if name.startswith("_"):
        name = name[1:]
    if name.endswith("_"):
        name = name[:-1]
    if not name:
        return f"value{index}"
    if name[0].isdigit():
        return f"_{name}"
    if name in RESERVED_PATH_KEYWORDS:
        return f"{name}_"
    if name in RUST_KEYWORDS:
        return f"r#{name}"
    return name


# =============================================================================
# Struct Properties
# =============================================================================

@dataclass
class StructProperty:
    """One field of a generated struct, or the element of an array/option/map."""
    source_name: Optional[str]
    original_type: ParamType

    def signature(self) -> str:
        return self.original_type.signature()

    def rust_name(self, index: int = 0) -> str:
        return rust_field_name(self.source_name or "", index)

    def abi_hint(self, mapping: TypeMapping) -> Optional[str]:
        return None


@dataclass
class SimpleProperty(StructProperty):
    rust_type: str = ""
    annotation: Optional[str] = None

    def abi_hint(self, mapping: TypeMapping) -> Optional[str]:
        if self.annotation:
            return self.annotation
        if self.signature() in mapping.known_abi_types:
            return self.signature()
        return None


@dataclass
class ArrayProperty(StructProperty):
    inner: Optional[StructProperty] = None

    def abi_hint(self, mapping: TypeMapping) -> Optional[str]:
        return "array"


@dataclass
class OptionProperty(StructProperty):
    inner: Optional[StructProperty] = None

    def abi_hint(self, mapping: TypeMapping) -> Optional[str]:
        return "optional"


@dataclass
class TupleProperty(StructProperty):
    properties: List[StructProperty] = field(default_factory=list)


@dataclass
class MapProperty(StructProperty):
    key: Optional[SimpleProperty] = None
    value: Optional[StructProperty] = None


def build_property(source_name: Optional[str], kind: ParamType,
                   mapping: TypeMapping = DEFAULT_TYPE_MAPPING) -> StructProperty:
    """Lower a value type to its struct property."""
    override = mapping.overrides.get(kind.signature())
    if override is not None:
        return SimpleProperty(source_name, kind, override.rust_type, override.annotation)

    if isinstance(kind, Ref):
        return build_property(source_name, kind.inner, mapping)
    if isinstance(kind, (Array, FixedArray)):
        return ArrayProperty(source_name, kind, inner=build_property(None, kind.inner, mapping))
    if isinstance(kind, OptionalType):
        return OptionProperty(source_name, kind, inner=build_property(None, kind.inner, mapping))
    if isinstance(kind, Tuple):
        return TupleProperty(source_name, kind, properties=[
            build_property(p.name, p.kind, mapping) for p in kind.params
        ])
    if isinstance(kind, Map):
        key = build_property(None, kind.key, mapping)
        if not isinstance(key, SimpleProperty) or not isinstance(key.original_type, MAP_KEY_TYPES):
            raise UnsupportedMapKeyTypeError(source_name)
        return MapProperty(source_name, kind, key=key,
                           value=build_property(None, kind.value, mapping))

    return SimpleProperty(source_name, kind, mapping.rust_type(kind))


# =============================================================================
# Rust Structs
# =============================================================================

@dataclass
class RustField:
    name: str
    rust_type: str
    annotation: str


@dataclass
class RustStruct:
    name: str
    derives: TupleOf[str, ...]
    fields: List[RustField] = field(default_factory=list)

    def render(self) -> str:
        lines = [f"#[derive({', '.join(self.derives)})]"]
        if not self.fields:
            lines.append(f"pub struct {self.name};")
            return "\n".join(lines)

        lines.append(f"pub struct {self.name} {{")
        for f in self.fields:
            lines.append(f"    {f.annotation}")
            lines.append(f"    pub {f.name}: {f.rust_type},")
        lines.append("}")
        return "\n".join(lines)


def abi_annotation(prop: StructProperty, mapping: TypeMapping, index: int = 0) -> str:
    """`#[abi(...)]` attribute for a field."""
    args = []
    source_name = prop.source_name or ""
    if source_name != prop.rust_name(index):
        args.append(f'name = "{source_name}"')
    hint = prop.abi_hint(mapping)
    if hint:
        args.append(hint)
    if not args:
        return "#[abi]"
    return f"#[abi({', '.join(args)})]"


# Registry key of a helper struct: (member name, named signature) per member
StructKey = TupleOf[TupleOf[Optional[str], str], ...]


class Generator:
    """Builds Rust structs for one contract (or one type list).

    Owns the helper-struct registry, so every run should use a new instance.
    """

    def __init__(self, mapping: Optional[TypeMapping] = None):
        self.mapping = mapping or DEFAULT_TYPE_MAPPING
        self.structs: List[RustStruct] = []
        self.inner_structs: Dict[StructKey, RustStruct] = {}
        self._names: Dict[str, RustStruct] = {}

    # =========================================================================
    # Entry points
    # =========================================================================

    def generate(self, contract: Contract) -> str:
        """Rust code for every function and event of a contract."""
        for function in contract.functions:
            if function.inputs:
                self.add_struct(to_camel(f"{function.name}FunctionInput"), function.inputs)
        for function in contract.functions:
            if function.outputs:
                self.add_struct(to_camel(f"{function.name}FunctionOutput"), function.outputs)
        for event in contract.events:
            self.add_struct(to_camel(f"{event.name}EventOutput"), event.inputs)

        sections = [self.render_imports()]
        sections.extend(self.render_structs())
        sections.extend(render_function(f) for f in contract.functions)
        sections.extend(render_event(e) for e in contract.events)
        return "\n\n".join(sections) + "\n"

    def generate_from_params(self, params: List[Param], name: str = "CommonStruct") -> str:
        """Rust code for a single struct holding a type list."""
        self.add_struct(name, params)
        sections = [self.render_imports()]
        sections.extend(self.render_structs())
        return "\n\n".join(sections) + "\n"

    # =========================================================================
    # Structs
    # =========================================================================

    def add_struct(self, name: str, params: List[Param]) -> RustStruct:
        """Add a top-level struct with one field per param."""
        properties = [build_property(p.name, p.kind, self.mapping) for p in params]
        struct = RustStruct(name, self.mapping.struct_derives)
        self._register_name(struct)
        self.structs.append(struct)
        struct.fields = self._build_fields(properties)
        return struct

    def inner_struct_name(self, properties: List[StructProperty]) -> str:
        """Name of the helper struct for a tuple, creating it on first use."""
        key: StructKey = tuple(
            (p.source_name, named_signature(p.original_type)) for p in properties
        )
        existing = self.inner_structs.get(key)
        if existing is not None:
            return existing.name

        name = f"InternalStruct{len(self.inner_structs) + 1}"
        struct = RustStruct(name, self.mapping.inner_struct_derives)
        self._register_name(struct)
        # Registered before its fields so nested tuples are numbered after it
        self.inner_structs[key] = struct
        log.debug("Created %s for (%s)", name,
                  ",".join(f"{n}:{s}" for n, s in key))
        struct.fields = self._build_fields(properties)
        return name

    def _register_name(self, struct: RustStruct):
        if struct.name in self._names:
            raise InternalInconsistencyError(f"Struct `{struct.name}` generated twice")
        self._names[struct.name] = struct

    def _build_fields(self, properties: List[StructProperty]) -> List[RustField]:
        result = []
        seen = set()
        for index, p in enumerate(properties):
            name = p.rust_name(index)
            if name in seen:
                raise GenerationError(
                    f"Parameter `{p.source_name}` gives duplicate field name `{name}`"
                )
            seen.add(name)
            result.append(RustField(name, self.field_type(p),
                                    abi_annotation(p, self.mapping, index)))
        return result

    def field_type(self, prop: StructProperty) -> str:
        """Rust type of a property, creating helper structs for tuples."""
        if isinstance(prop, SimpleProperty):
            return prop.rust_type
        if isinstance(prop, ArrayProperty):
            return f"Vec<{self.field_type(prop.inner)}>"
        if isinstance(prop, OptionProperty):
            return f"Option<{self.field_type(prop.inner)}>"
        if isinstance(prop, TupleProperty):
            return self.inner_struct_name(prop.properties)
        if isinstance(prop, MapProperty):
            return f"HashMap<{prop.key.rust_type}, {self.field_type(prop.value)}>"
        raise InternalInconsistencyError(f"Unknown property: {prop!r}")

    # =========================================================================
    # Rendering
    # =========================================================================

    def render_imports(self) -> str:
        groups: Dict[str, List[str]] = {}
        for path in self.mapping.imports:
            module, _, name = path.rpartition("::")
            groups.setdefault(module, []).append(name)

        lines = []
        for module, names in groups.items():
            if len(names) == 1:
                lines.append(f"use {module}::{names[0]};")
            else:
                lines.append(f"use {module}::{{{', '.join(names)}}};")
        return "\n".join(lines)

    def render_structs(self) -> List[str]:
        """Top-level structs first, then helper structs in creation order."""
        return [s.render() for s in self.structs] + [
            s.render() for s in self.inner_structs.values()
        ]


# =============================================================================
# Accessor Functions
# =============================================================================

SIMPLE_LITERALS = {
    Bool: "ParamType::Bool",
    Address: "ParamType::Address",
    Bytes: "ParamType::Bytes",
    String: "ParamType::String",
    Cell: "ParamType::Cell",
    TokenAmount: "ParamType::Token",
}

SIZED_LITERALS = {
    Uint: "Uint",
    Int: "Int",
    VarUint: "VarUint",
    VarInt: "VarInt",
    FixedBytes: "FixedBytes",
}


def param_type_literal(kind: ParamType) -> str:
    """Rust `ton_abi::ParamType` expression for a value type."""
    if type(kind) in SIMPLE_LITERALS:
        return SIMPLE_LITERALS[type(kind)]
    if type(kind) in SIZED_LITERALS:
        return f"ParamType::{SIZED_LITERALS[type(kind)]}({kind.size})"
    if isinstance(kind, Tuple):
        return f"ParamType::Tuple({params_literal(kind.params)})"
    if isinstance(kind, Array):
        return f"ParamType::Array(Box::new({param_type_literal(kind.inner)}))"
    if isinstance(kind, FixedArray):
        return f"ParamType::FixedArray(Box::new({param_type_literal(kind.inner)}), {kind.size})"
    if isinstance(kind, OptionalType):
        return f"ParamType::Optional(Box::new({param_type_literal(kind.inner)}))"
    if isinstance(kind, Ref):
        return f"ParamType::Ref(Box::new({param_type_literal(kind.inner)}))"
    if isinstance(kind, Map):
        key = param_type_literal(kind.key)
        value = param_type_literal(kind.value)
        return f"ParamType::Map(Box::new({key}), Box::new({value}))"
    raise GenerationError(f"No ParamType for `{kind!r}`")


def params_literal(params) -> str:
    items = [
        f'Param {{ name: "{p.name}".to_string(), kind: {param_type_literal(p.kind)} }}'
        for p in params
    ]
    return f"vec![{', '.join(items)}]"


def _build_lines(binding: str, version: AbiVersion, explicit_id: bool,
                 ids: List[TupleOf[str, int]]) -> List[str]:
    """Closing lines of an accessor; the version and ids are pinned unless default."""
    if not explicit_id and version == DEFAULT_ABI_VERSION:
        return ["        builder.build()"]

    lines = [f"        let mut {binding} = builder.build();"]
    if version != DEFAULT_ABI_VERSION:
        lines.append(
            f"        {binding}.abi_version = ton_abi::contract::AbiVersion "
            f"{{ major: {version.major}, minor: {version.minor} }};"
        )
    for name, value in ids:
        lines.append(f"        {binding}.{name} = {format_id(value)};")
    lines.append(f"        {binding}")
    return lines


def render_function(function: FunctionEntity) -> str:
    """`pub fn <name>() -> &'static ton_abi::Function`"""
    lines = [
        f"pub fn {to_snake(function.name)}() -> &'static ton_abi::Function {{",
        "    static FUNCTION: OnceCell<ton_abi::Function> = OnceCell::new();",
        "    FUNCTION.get_or_init(|| {",
        f'        let mut builder = FunctionBuilder::new("{function.name}");',
    ]
    if function.inputs:
        lines.append(f"        let input = {params_literal(function.inputs)};")
        lines.append("        builder = builder.inputs(input);")
    if function.outputs:
        lines.append(f"        let output = {params_literal(function.outputs)};")
        lines.append("        builder = builder.outputs(output);")
    lines.extend(_build_lines("function", function.version, function.explicit_id, [
        ("input_id", function.input_id),
        ("output_id", function.output_id),
    ]))
    lines.append("    })")
    lines.append("}")
    return "\n".join(lines)


def render_event(event: EventEntity) -> str:
    """`pub fn <name>() -> &'static ton_abi::Event`"""
    lines = [
        f"pub fn {to_snake(event.name)}() -> &'static ton_abi::Event {{",
        "    static EVENT: OnceCell<ton_abi::Event> = OnceCell::new();",
        "    EVENT.get_or_init(|| {",
        f'        let mut builder = EventBuilder::new("{event.name}");',
    ]
    if event.inputs:
        lines.append(f"        let input = {params_literal(event.inputs)};")
        lines.append("        builder = builder.inputs(input);")
    lines.extend(_build_lines("event", event.version, event.explicit_id, [("id", event.id)]))
    lines.append("    })")
    lines.append("}")
    return "\n".join(lines)


# =============================================================================
# Module API
# =============================================================================

def generate_rust_code(contract: Contract, mapping: Optional[TypeMapping] = None) -> str:
    """Generate Rust structs and accessors for a contract."""
    return Generator(mapping).generate(contract)


def generate_rust_code_from_params(text: str, mapping: Optional[TypeMapping] = None) -> str:
    """Generate a `CommonStruct` for a type list; empty for anything else."""
    entity = parse(text)
    if not isinstance(entity, CellEntity):
        return ""
    return Generator(mapping).generate_from_params(entity.params)


def write_rust_code(code: str, output: Path) -> Path:
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(code)
    return output
