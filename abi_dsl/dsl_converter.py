"""
Structured interface documents and parse strategies.

Provides:
- load_document(): Read JSON or YAML text into plain Python data
- load_function_document(): Function mapping -> FunctionEntity
- load_contract(): Contract mapping -> Contract
- entity_to_dict(): Entity -> plain dict (for JSON/YAML output)
- parse_entity(): Try signature text first, then structured documents

A function document looks like:

    name: transfer
    inputs:
      - {name: dest, type: address}
      - {name: amount, type: uint128}
    outputs:
      - {name: ok, type: bool}
    id: "0x4b1f3e2a"      # optional

A contract document has `functions` and `events` lists of such mappings and an
optional `version` / `ABI version`.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import yaml

from .dsl_ast import (
    AbiVersion, Array, CellEntity, Contract, DEFAULT_ABI_VERSION, EmptyEntity,
    Entity, EventEntity, FixedArray, FunctionEntity, Map, OptionalType, Param,
    ParamType, Ref, Tuple, VERSION_TAGS,
)
from .dsl_errors import ParseError
from .dsl_parser import parse, parse_type
from .dsl_signature import (
    build_event, build_function, event_signature, format_id,
    function_signature, parse_id_literal,
)


log = logging.getLogger(__name__)


class DocumentError(ValueError):
    """Raised when a structured interface document is malformed."""


Document = Union[Entity, Contract]


# =============================================================================
# Document Loading
# =============================================================================

def load_document(text: str) -> Any:
    """Read JSON (first non-space char `{`) or YAML text."""
    try:
        if text.lstrip().startswith("{"):
            return json.loads(text)
        return yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise DocumentError(f"Invalid document: {e}") from e


def _document_version(value, default: AbiVersion) -> AbiVersion:
    if value is None:
        return default
    if isinstance(value, bool):
        raise DocumentError(f"Invalid ABI version: {value!r}")

    text = str(value).strip()
    tag = text if text.startswith("v") else f"v{text}"
    version = VERSION_TAGS.get(tag)
    if version is None:
        raise DocumentError(f"Invalid ABI version: {value!r}")
    return version


def _require_mapping(doc: Any, what: str) -> Dict[str, Any]:
    if not isinstance(doc, dict):
        raise DocumentError(f"{what} must be a mapping, got {type(doc).__name__}")
    return doc


def _require_name(doc: Dict[str, Any], what: str) -> str:
    name = doc.get("name")
    if not isinstance(name, str) or not name:
        raise DocumentError(f"{what} is missing a name")
    return name


def load_params(items: Optional[List[Any]], owner: str) -> List[Param]:
    """Convert a list of `{name, type, components?}` mappings to Params."""
    if items is None:
        return []
    if not isinstance(items, list):
        raise DocumentError(f"Parameters of `{owner}` must be a list")

    params = []
    for index, item in enumerate(items):
        item = _require_mapping(item, f"Parameter {index} of `{owner}`")
        name = item.get("name", f"value{index}")
        type_text = item.get("type")
        if not isinstance(type_text, str):
            raise DocumentError(f"Parameter `{name}` of `{owner}` has no type")

        components = None
        if item.get("components") is not None:
            components = load_params(item["components"], f"{owner}.{name}")

        try:
            kind = parse_type(type_text, components)
        except ParseError as e:
            raise DocumentError(f"Invalid type for parameter `{name}` of `{owner}`: {e}") from e
        params.append(Param(name=str(name), kind=kind))
    return params


def _explicit_id(doc: Dict[str, Any], owner: str) -> Optional[int]:
    if doc.get("id") is None:
        return None
    try:
        return parse_id_literal(doc["id"])
    except ValueError as e:
        raise DocumentError(f"Invalid id of `{owner}`: {e}") from e


def load_function_document(doc: Any, default_version: AbiVersion = DEFAULT_ABI_VERSION) -> FunctionEntity:
    """Build a FunctionEntity from a function mapping."""
    doc = _require_mapping(doc, "Function document")
    name = _require_name(doc, "Function")
    return build_function(
        name,
        load_params(doc.get("inputs"), name),
        load_params(doc.get("outputs"), name),
        _document_version(doc.get("version"), default_version),
        _explicit_id(doc, name),
    )


def load_event_document(doc: Any, default_version: AbiVersion = DEFAULT_ABI_VERSION) -> EventEntity:
    """Build an EventEntity from an event mapping."""
    doc = _require_mapping(doc, "Event document")
    name = _require_name(doc, "Event")
    return build_event(
        name,
        load_params(doc.get("inputs"), name),
        _document_version(doc.get("version"), default_version),
        _explicit_id(doc, name),
    )


def load_contract(doc: Any) -> Contract:
    """Build a Contract from a contract mapping (functions and events)."""
    doc = _require_mapping(doc, "Contract document")
    if not isinstance(doc.get("functions"), list):
        raise DocumentError("Contract document must have a `functions` list")

    version_value = doc.get("version", doc.get("ABI version"))
    version = _document_version(version_value, DEFAULT_ABI_VERSION)
    contract = Contract(version=version)

    for item in doc["functions"]:
        function = load_function_document(item, version)
        if contract.function(function.name) is not None:
            raise DocumentError(f"Duplicate function `{function.name}`")
        contract.functions.append(function)

    events = doc.get("events") or []
    if not isinstance(events, list):
        raise DocumentError("Contract `events` must be a list")
    for item in events:
        event = load_event_document(item, version)
        if contract.event(event.name) is not None:
            raise DocumentError(f"Duplicate event `{event.name}`")
        contract.events.append(event)

    log.debug("Loaded contract with %d functions and %d events",
              len(contract.functions), len(contract.events))
    return contract


def load_contract_file(path) -> Contract:
    """Load a JSON or YAML contract file."""
    return load_contract(load_document(Path(path).read_text()))


def parse_document(text: str) -> Document:
    """Parse a structured document: a contract if it has `functions`, else a function."""
    doc = _require_mapping(load_document(text), "Document")
    if "functions" in doc:
        return load_contract(doc)
    return load_function_document(doc)


# =============================================================================
# Dict Conversion
# =============================================================================

def type_to_document(kind: ParamType):
    """Render a type as a document `type` string plus tuple components."""
    if isinstance(kind, Tuple):
        return "tuple", [param_to_dict(p) for p in kind.params]
    if isinstance(kind, Array):
        inner, components = type_to_document(kind.inner)
        return f"{inner}[]", components
    if isinstance(kind, FixedArray):
        inner, components = type_to_document(kind.inner)
        return f"{inner}[{kind.size}]", components
    if isinstance(kind, OptionalType):
        inner, components = type_to_document(kind.inner)
        return f"optional({inner})", components
    if isinstance(kind, Ref):
        inner, components = type_to_document(kind.inner)
        return f"ref({inner})", components
    if isinstance(kind, Map):
        value, components = type_to_document(kind.value)
        return f"map({kind.key.signature()},{value})", components
    return kind.signature(), None


def param_to_dict(param: Param) -> Dict[str, Any]:
    type_text, components = type_to_document(param.kind)
    result = {"name": param.name, "type": type_text}
    if components is not None:
        result["components"] = components
    return result


def _function_info(function: FunctionEntity) -> Dict[str, Any]:
    info = {
        "name": function.name,
        "inputs": [param_to_dict(p) for p in function.inputs],
        "outputs": [param_to_dict(p) for p in function.outputs],
        "version": str(function.version),
        "signature": function_signature(
            function.name, function.inputs, function.outputs, function.version
        ),
        "input_id": format_id(function.input_id),
        "output_id": format_id(function.output_id),
    }
    if function.explicit_id:
        info["id"] = format_id(function.input_id)
    return info


def _event_info(event: EventEntity) -> Dict[str, Any]:
    info = {
        "name": event.name,
        "inputs": [param_to_dict(p) for p in event.inputs],
        "version": str(event.version),
        "signature": event_signature(event.name, event.inputs, event.version),
        "event_id": format_id(event.id),
    }
    if event.explicit_id:
        info["id"] = format_id(event.id)
    return info


def entity_to_dict(entity: Document) -> Dict[str, Any]:
    """Convert an entity to `{"kind": ..., "info": ...}`."""
    if isinstance(entity, EmptyEntity):
        return {"kind": "empty", "info": None}
    if isinstance(entity, CellEntity):
        return {"kind": "cell", "info": {"params": [param_to_dict(p) for p in entity.params]}}
    if isinstance(entity, FunctionEntity):
        return {"kind": "function", "info": _function_info(entity)}
    if isinstance(entity, EventEntity):
        return {"kind": "event", "info": _event_info(entity)}
    if isinstance(entity, Contract):
        return {
            "kind": "contract",
            "info": {
                "version": str(entity.version),
                "functions": [_function_info(f) for f in entity.functions],
                "events": [_event_info(e) for e in entity.events],
            },
        }
    raise TypeError(f"Unknown entity: {entity!r}")


# =============================================================================
# Parse Strategies
# =============================================================================

@dataclass
class StrategyResult:
    """Outcome of one parse strategy: an entity or the error it raised."""
    strategy: str
    entity: Optional[Document] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SignatureStrategy:
    """Parse the text as a signature (type list or function)."""
    name = "signature"

    def __init__(self, parser: Callable[[str], Entity] = parse):
        self.parser = parser

    def __call__(self, text: str) -> StrategyResult:
        try:
            return StrategyResult(self.name, entity=self.parser(text))
        except ParseError as e:
            return StrategyResult(self.name, error=e)


class DocumentStrategy:
    """Parse the text as a JSON/YAML function or contract document."""
    name = "document"

    def __call__(self, text: str) -> StrategyResult:
        try:
            return StrategyResult(self.name, entity=parse_document(text))
        except DocumentError as e:
            return StrategyResult(self.name, error=e)


DEFAULT_STRATEGIES = (SignatureStrategy(), DocumentStrategy())


class EntityParseError(ValueError):
    """Raised when no strategy could parse the input.

    The message is that of the first failed strategy; all results are kept in
    `results`.
    """
    def __init__(self, results: List[StrategyResult]):
        self.results = list(results)
        first = next((r.error for r in self.results if r.error is not None), None)
        super().__init__(str(first) if first is not None else "No parse strategy given")

    @property
    def errors(self) -> List[Exception]:
        return [r.error for r in self.results if r.error is not None]


def parse_entity(text: str, strategies: Iterable = DEFAULT_STRATEGIES) -> Document:
    """Parse text with each strategy in turn, returning the first success."""
    results = []
    for strategy in strategies:
        result = strategy(text)
        if result.ok:
            return result.entity
        log.debug("%s strategy failed: %s", result.strategy, result.error)
        results.append(result)
    raise EntityParseError(results)
