"""Dispatches tool calls registered in ``weathermail.tools`` and classifies their failures."""

import logging
from typing import Mapping

from pydantic import (
    BaseModel,
    ValidationError,
)

from weathermail.core.errors import (
    ConfigurationError,
    ToolExecutionError,
)
from weathermail.core.schema import (
    ToolCallRequest,
    ToolResult,
)
from weathermail.tools import (
    ToolDefinition,
    resolve_tool,
)

logger = logging.getLogger(__name__)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def invoke_tool(
    request: ToolCallRequest, registry: Mapping[str, ToolDefinition] | None = None
) -> ToolResult:
    """
    Look up ``request.name`` in the registry and invoke it with ``request.arguments``.

    Parameters
    ----------
    request:
        The tool call emitted by the model.
    registry:
        Tool registry to dispatch against.  Defaults to the global ``TOOL_REGISTRY``.

    Returns
    -------
    ToolResult
        A success payload, or a failure the model can react to: arguments or output that violate the
        tool's schema (``error_kind="validation"``) or missing operator configuration
        (``error_kind="configuration"``).

    Raises
    ------
    UnknownToolError
        If the tool is not registered.
    ToolExecutionError
        If the executor raises anything else (network errors included).
    """
    tool = resolve_tool(request.name, registry)

    try:
        params = tool.input_model.model_validate(request.arguments)
    except ValidationError as exc:
        logger.info("Rejected arguments for tool '%s': %s", tool.name, exc)
        return ToolResult.failure(
            request, f"Invalid arguments for tool '{tool.name}': {_describe(exc)}"
        )

    try:
        logger.debug("Executing tool '%s' with args=%s", tool.name, request.arguments)
        output = tool.executor(params)
    except ConfigurationError as exc:
        logger.error("Tool '%s' is not configured: %s", tool.name, exc)
        return ToolResult.failure(request, str(exc), kind="configuration")
    except ToolExecutionError:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Unhandled error in tool '%s'", tool.name)
        raise ToolExecutionError(f"Tool '{tool.name}' raised an error: {exc}") from exc

    data = output.model_dump() if isinstance(output, BaseModel) else output
    try:
        validated = tool.output_model.model_validate(data)
    except ValidationError as exc:
        logger.error("Tool '%s' returned output that does not match its schema: %s", tool.name, exc)
        return ToolResult.failure(
            request, f"Tool '{tool.name}' produced invalid output: {_describe(exc)}"
        )

    payload = validated.model_dump(exclude_none=True)
    logger.info("Tool '%s' returned: %s", tool.name, payload)
    return ToolResult.success(request, payload)
