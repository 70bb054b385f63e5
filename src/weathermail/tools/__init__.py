"""
Tool registry for weathermail.

This module provides a decorator to register tools and a registry to look them up by name.
Each tool is described by a :class:`ToolDefinition`: a pydantic model for its input, a pydantic
model for its output, and an executor that maps a validated input model to an output.
"""

import logging
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Type,
)

from pydantic import BaseModel

from weathermail.core.errors import UnknownToolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDefinition:
    """Complete definition of a tool."""

    name: str
    description: str
    input_model: Type[BaseModel]
    output_model: Type[BaseModel]
    executor: Callable[[Any], Any]

    def parameters_schema(self) -> Dict[str, Any]:
        """JSON-schema object describing the tool's arguments, as sent to the model."""
        schema = self.input_model.model_json_schema()
        properties = {}
        for field_name, prop in schema.get("properties", {}).items():
            entry = {"type": prop.get("type", "string")}
            if "description" in prop:
                entry["description"] = prop["description"]
            properties[field_name] = entry
        return {
            "type": "object",
            "properties": properties,
            "required": list(schema.get("required", [])),
        }

    def declaration(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }


TOOL_REGISTRY: Dict[str, ToolDefinition] = {}
"""Global registry of tool definitions."""


def register_tool(
    name: str,
    *,
    description: str,
    input_model: Type[BaseModel],
    output_model: Type[BaseModel],
) -> Callable:
    """
    Register a tool executor under the given name.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("my_tool", description="...", input_model=In, output_model=Out)
        def my_tool(params: In) -> Out:
            # Do something
            return Out(...)

    Parameters
    ----------
    name: str
        The name of the tool.  This must be unique and is the name the model calls it by.
    description: str
        Human-readable description sent to the model with the declaration.
    input_model, output_model:
        Pydantic models the arguments and the result are validated against.

    Returns
    -------
    Callable
        A decorator that registers the function with the given name.

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: Callable) -> Callable:
        TOOL_REGISTRY[name] = ToolDefinition(
            name=name,
            description=description,
            input_model=input_model,
            output_model=output_model,
            executor=fn,
        )
        return fn

    return wrapper


def resolve_tool(
    name: str, registry: Mapping[str, ToolDefinition] | None = None
) -> ToolDefinition:
    """Look up *name*; an unknown name is a fatal :class:`UnknownToolError`."""
    tools = TOOL_REGISTRY if registry is None else registry
    tool = tools.get(name)
    if tool is None:
        raise UnknownToolError(name)
    return tool


def get_tool_declarations(
    registry: Mapping[str, ToolDefinition] | None = None,
) -> List[Dict[str, Any]]:
    """Provider-neutral declarations (name, description, JSON-schema parameters) of all tools."""
    tools = TOOL_REGISTRY if registry is None else registry
    return [tool.declaration() for tool in tools.values()]


# Built-in tools register themselves on import.
from weathermail.tools import (  # noqa: E402  pylint: disable=wrong-import-position
    mail,
    weather,
)

__all__ = [
    "TOOL_REGISTRY",
    "ToolDefinition",
    "get_tool_declarations",
    "mail",
    "register_tool",
    "resolve_tool",
    "weather",
]
