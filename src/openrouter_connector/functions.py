"""Function calling: registry contract, tool definitions and name mapping.

The host application owns its functions. This module defines the narrow
contract the connector needs from it (``ToolRegistry`` and
``FunctionChoiceBehavior``), converts registered functions into OpenRouter
tool definitions, and maps ``{plugin}{separator}{function}`` names in both
directions. ``SimpleToolRegistry`` is a small in-memory registry for plain
Python callables.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import enum
import inspect
import json
import logging
import types
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Protocol, Union, get_args, get_origin, get_type_hints, runtime_checkable

from pydantic import BaseModel

from .chat import FunctionCallContent
from .models import (
    FunctionParameters,
    FunctionProperty,
    Tool,
    ToolChoice,
    ToolChoiceFunction,
    ToolFunction,
)

logger = logging.getLogger(__name__)

DEFAULT_FUNCTION_NAME_SEPARATOR = "-"
DEFAULT_MAX_TOOL_ITERATIONS = 128

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


@dataclass
class ParameterMetadata:
    """Declared metadata of one function parameter."""

    name: str
    description: Optional[str] = None
    parameter_type: Any = None
    is_required: bool = True
    default: Any = None


@dataclass
class RegisteredFunction:
    """A callable function exposed to the model, optionally grouped under a plugin."""

    name: str
    plugin_name: Optional[str] = None
    description: str = ""
    parameters: list[ParameterMetadata] = field(default_factory=list)
    handler: Optional[Callable[..., Any]] = None


@dataclass
class FunctionChoiceBehavior:
    """How the model may use functions, and whether calls are auto-invoked.

    ``kind`` is one of ``auto``, ``none`` or ``required``. ``functions``
    restricts the advertised set; None means every registry function.
    ``max_iterations`` caps the tool-call loop (None uses the default).
    """

    kind: Literal["auto", "none", "required"] = "auto"
    auto_invoke: bool = True
    max_iterations: Optional[int] = None
    functions: Optional[list[RegisteredFunction]] = None

    def __post_init__(self):
        if self.max_iterations is not None and self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

    @classmethod
    def auto(
        cls,
        functions: Optional[Iterable[RegisteredFunction]] = None,
        auto_invoke: bool = True,
        max_iterations: Optional[int] = None,
    ) -> FunctionChoiceBehavior:
        return cls(
            kind="auto",
            auto_invoke=auto_invoke,
            max_iterations=max_iterations,
            functions=list(functions) if functions is not None else None,
        )

    @classmethod
    def none(cls, functions: Optional[Iterable[RegisteredFunction]] = None) -> FunctionChoiceBehavior:
        return cls(
            kind="none",
            auto_invoke=False,
            functions=list(functions) if functions is not None else None,
        )

    @classmethod
    def required(
        cls,
        functions: Optional[Iterable[RegisteredFunction]] = None,
        auto_invoke: bool = True,
        max_iterations: Optional[int] = None,
    ) -> FunctionChoiceBehavior:
        return cls(
            kind="required",
            auto_invoke=auto_invoke,
            max_iterations=max_iterations,
            functions=list(functions) if functions is not None else None,
        )


@runtime_checkable
class ToolRegistry(Protocol):
    """Contract for the host's function registry."""

    def get_functions(self) -> list[RegisteredFunction]:
        """Return every function the registry can invoke."""
        ...

    async def invoke(self, call: FunctionCallContent) -> Any:
        """Invoke the function named by ``call`` and return its result.

        Raises:
            Exception: Any failure; the tool-call loop reports it to the model.
        """
        ...


# =============================================================================
# Name mapping
# =============================================================================


def combine_function_name(
    plugin_name: Optional[str],
    function_name: str,
    separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
) -> str:
    if not plugin_name:
        return function_name
    return f"{plugin_name}{separator}{function_name}"


def create_function_name(
    function: RegisteredFunction,
    separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
) -> str:
    return combine_function_name(function.plugin_name, function.name, separator)


def parse_function_name(
    name: str,
    separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
) -> tuple[Optional[str], str]:
    """Split a wire function name into ``(plugin_name, function_name)``.

    Splits on the first occurrence of ``separator``; without one the plugin
    name is None and the whole string is the function name.
    """
    if not separator or separator not in name:
        return None, name
    plugin_name, _, function_name = name.partition(separator)
    return plugin_name, function_name


# =============================================================================
# JSON schema mapping
# =============================================================================


def _unwrap_optional(tp: Any) -> Any:
    if get_origin(tp) in (Union, types.UnionType):
        args = [arg for arg in get_args(tp) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _is_object_type(tp: Any) -> bool:
    if not isinstance(tp, type):
        return False
    return (
        issubclass(tp, dict)
        or dataclasses.is_dataclass(tp)
        or issubclass(tp, BaseModel)
    )


def json_schema_type(tp: Any) -> str:
    """Map a Python type to a JSON-schema type name (unknown types map to ``string``)."""
    tp = _unwrap_optional(tp)
    origin = get_origin(tp) or tp

    if not isinstance(origin, type):
        return "string"
    if issubclass(origin, bool):
        return "boolean"
    if issubclass(origin, enum.Enum):
        return "string"
    if issubclass(origin, int):
        return "integer"
    if issubclass(origin, (float, decimal.Decimal)):
        return "number"
    if issubclass(origin, (str, datetime.date, datetime.datetime)):
        return "string"
    if issubclass(origin, _SEQUENCE_TYPES):
        return "array"
    if _is_object_type(origin):
        return "object"
    return "string"


def _object_fields(tp: type) -> list[tuple[str, Any, Optional[str]]]:
    if issubclass(tp, BaseModel):
        return [
            (name, info.annotation, info.description)
            for name, info in tp.model_fields.items()
        ]
    if dataclasses.is_dataclass(tp):
        hints = get_type_hints(tp)
        return [(f.name, hints.get(f.name), None) for f in dataclasses.fields(tp)]
    return []


def property_schema(tp: Any, description: Optional[str] = None) -> FunctionProperty:
    """Build the JSON-schema property for a parameter type.

    Enums become ``string`` with the member names as ``enum``; sequences
    become ``array`` with an ``items`` schema; dataclasses and pydantic
    models become ``object`` with ``properties``.
    """
    tp = _unwrap_optional(tp if tp is not None else str)
    prop = FunctionProperty(type=json_schema_type(tp), description=description)
    origin = get_origin(tp) or tp

    if isinstance(origin, type) and issubclass(origin, enum.Enum):
        prop.enum = [member.name for member in origin]
    elif prop.type == "array":
        args = [arg for arg in get_args(tp) if arg is not Ellipsis]
        prop.items = property_schema(args[0]) if args else FunctionProperty(type="string")
    elif prop.type == "object" and isinstance(tp, type):
        fields = _object_fields(tp)
        if fields:
            prop.properties = {
                name: property_schema(annotation, field_description)
                for name, annotation, field_description in fields
            }
    return prop


def parameters_to_schema(parameters: Iterable[ParameterMetadata]) -> FunctionParameters:
    schema = FunctionParameters()
    for parameter in parameters:
        schema.properties[parameter.name] = property_schema(
            parameter.parameter_type, parameter.description
        )
        if parameter.is_required:
            schema.required.append(parameter.name)
    return schema


def to_tool(
    function: RegisteredFunction,
    separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
) -> Tool:
    return Tool(
        function=ToolFunction(
            name=create_function_name(function, separator),
            description=function.description or "",
            parameters=parameters_to_schema(function.parameters),
        )
    )


def to_tools(
    functions: Iterable[RegisteredFunction],
    separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
) -> list[Tool]:
    return [to_tool(function, separator) for function in functions]


def result_to_text(result: Any) -> Optional[str]:
    """Render a function result as tool-message text (dicts and lists as JSON)."""
    if result is None:
        return None
    if isinstance(result, str):
        return result
    if isinstance(result, (dict, list)):
        return json.dumps(result, default=str)
    return str(result)


def enabled_functions(
    behavior: FunctionChoiceBehavior,
    registry: ToolRegistry,
) -> list[RegisteredFunction]:
    """Functions advertised for a behavior: its explicit list, else the whole registry."""
    if behavior.functions is not None:
        return list(behavior.functions)
    return list(registry.get_functions())


def tool_choice_for(
    behavior: Optional[FunctionChoiceBehavior],
    separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
) -> Optional[ToolChoice]:
    """Encode a behavior as the wire ``tool_choice`` value.

    ``auto`` and ``none`` map to the strings of the same name. ``required``
    with an explicit function list forces the first function; without one it
    maps to ``"required"``.
    """
    if behavior is None:
        return None
    if behavior.kind == "auto":
        return "auto"
    if behavior.kind == "none":
        return "none"
    if behavior.kind == "required":
        if behavior.functions:
            return ToolChoiceFunction.for_function(
                create_function_name(behavior.functions[0], separator)
            )
        return "required"
    return None


# =============================================================================
# In-memory registry
# =============================================================================


def _describe(func: Callable[..., Any]) -> str:
    doc = inspect.getdoc(func) or ""
    return doc.strip().splitlines()[0] if doc.strip() else ""


def parameters_from_signature(func: Callable[..., Any]) -> list[ParameterMetadata]:
    """Derive parameter metadata from a callable's signature and type hints."""
    try:
        hints = get_type_hints(func)
    except (NameError, TypeError):
        hints = {}

    parameters = []
    for name, param in inspect.signature(func).parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        has_default = param.default is not inspect.Parameter.empty
        parameters.append(
            ParameterMetadata(
                name=name,
                parameter_type=hints.get(name, str),
                is_required=not has_default,
                default=param.default if has_default else None,
            )
        )
    return parameters


class SimpleToolRegistry:
    """In-memory registry of plain Python callables (sync or async)."""

    def __init__(self) -> None:
        self._functions: dict[tuple[Optional[str], str], RegisteredFunction] = {}

    def register(
        self,
        func: Callable[..., Any],
        name: Optional[str] = None,
        plugin_name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Optional[list[ParameterMetadata]] = None,
    ) -> RegisteredFunction:
        """Register a callable.

        Args:
            func: Function to expose; may be a coroutine function.
            name: Function name. Defaults to ``func.__name__``.
            plugin_name: Optional plugin the function belongs to.
            description: Defaults to the first docstring line.
            parameters: Defaults to metadata derived from the signature.

        Returns:
            The registered function definition.
        """
        function = RegisteredFunction(
            name=name or func.__name__,
            plugin_name=plugin_name,
            description=description if description is not None else _describe(func),
            parameters=parameters if parameters is not None else parameters_from_signature(func),
            handler=func,
        )
        self.add(function)
        return function

    def add(self, function: RegisteredFunction) -> None:
        self._functions[(function.plugin_name, function.name)] = function

    def get_functions(self) -> list[RegisteredFunction]:
        return list(self._functions.values())

    def find(self, plugin_name: Optional[str], function_name: str) -> Optional[RegisteredFunction]:
        return self._functions.get((plugin_name or None, function_name))

    async def invoke(self, call: FunctionCallContent) -> Any:
        function = self.find(call.plugin_name, call.function_name)
        if function is None or function.handler is None:
            qualified = combine_function_name(call.plugin_name, call.function_name, ".")
            raise LookupError(f"Function not found: {qualified}")

        logger.debug("Invoking function %s", function.name, extra={"call_id": call.id})
        result = function.handler(**call.arguments)
        if inspect.isawaitable(result):
            result = await result
        return result
