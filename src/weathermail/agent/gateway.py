"""
Model gateway for weathermail.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools)
stays model-agnostic: a gateway receives the full conversation history and returns a
:class:`~weathermail.core.schema.ModelResponse`, either a final answer or the tool calls the model
wants executed.  Gateways hold no state between calls.

We support three back-ends out of the box:

1. **Google Gemini** via ``google-genai`` (default).
2. **OpenAI** chat completions with function tools.
3. **Anthropic** messages with ``tool_use`` blocks.

Additional providers can be added by subclassing :class:`BaseGateway` and registering via
:func:`register_gateway`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Sequence,
    Type,
)

from weathermail.config import settings
from weathermail.core.errors import (
    ConfigurationError,
    GatewayError,
)
from weathermail.core.schema import (
    ModelResponse,
    Role,
    ToolCallRequest,
    Turn,
)
from weathermail.tools import (
    ToolDefinition,
    get_tool_declarations,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_GATEWAY_REGISTRY: dict[str, Type["BaseGateway"]] = {}


def register_gateway(name: str) -> Callable:
    """Decorator to register a gateway class under *name*."""

    def wrapper(cls: Type["BaseGateway"]) -> Type["BaseGateway"]:
        _GATEWAY_REGISTRY[name] = cls
        return cls

    return wrapper


def available_gateways() -> List[str]:
    return sorted(_GATEWAY_REGISTRY)


def load_gateway(name: str | None = None, **kwargs: Any) -> "BaseGateway":
    """
    Factory that returns an instantiated gateway.

    Fallback order:
    1. *name* arg
    2. ``settings.GATEWAY`` env option
    3. default: ``"gemini"``
    """

    target = name or getattr(settings, "GATEWAY", "gemini")
    cls = _GATEWAY_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Gateway '{target}' is not registered.")
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseGateway(ABC):
    """Abstract gateway that converts conversation history -> final text / tool calls."""

    SYSTEM_INSTRUCTION: ClassVar[str] = (
        "You are an expert weather agent. When given a city and recipient email, "
        "1) call get_weather(city), then 2) compose a clear email body summarizing the weather, "
        "and 3) call send_email. "
        "Return a short confirmation message after tools are complete."
    )

    def __init__(self, registry: Mapping[str, ToolDefinition] | None = None) -> None:
        self.declarations = get_tool_declarations(registry)

    @abstractmethod
    def converse(self, history: Sequence[Turn]) -> ModelResponse:
        """Send *history* to the model and return its answer or requested tool calls."""


def _tool_payload_json(body: Mapping[str, Any]) -> str:
    return json.dumps(body, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------
def _upper_types(schema: Any) -> Any:
    """Gemini's Schema type names are upper-case (OBJECT, STRING, ...)."""
    if isinstance(schema, dict):
        return {
            k: (v.upper() if k == "type" and isinstance(v, str) else _upper_types(v))
            for k, v in schema.items()
        }
    if isinstance(schema, list):
        return [_upper_types(v) for v in schema]
    return schema


def to_gemini_contents(history: Sequence[Turn]) -> List[Any]:
    """Convert history to ``google.genai`` contents; function responses travel as user content."""
    from google.genai import types  # pylint: disable=import-outside-toplevel

    contents = []
    for turn in history:
        if turn.role is Role.USER:
            contents.append(types.Content(role="user", parts=[types.Part(text=turn.text or "")]))
        elif turn.role is Role.MODEL:
            parts = [
                types.Part.from_function_call(name=call.name, args=dict(call.arguments))
                for call in turn.tool_calls
            ]
            contents.append(types.Content(role="model", parts=parts))
        else:
            parts = [
                types.Part.from_function_response(name=result.name, response=result.response_body())
                for result in turn.tool_results
            ]
            contents.append(types.Content(role="user", parts=parts))
    return contents


@register_gateway("gemini")
class GeminiGateway(BaseGateway):
    """Gemini gateway using the native ``google-genai`` SDK."""

    def __init__(self, registry: Mapping[str, ToolDefinition] | None = None) -> None:
        super().__init__(registry)
        if not settings.GOOGLE_API_KEY:
            raise ConfigurationError("GOOGLE_API_KEY environment variable is not set.")
        from google import genai  # pylint: disable=import-outside-toplevel

        self._client = genai.Client(api_key=settings.GOOGLE_API_KEY)

    def _config(self) -> Any:
        from google.genai import types  # pylint: disable=import-outside-toplevel

        declarations = [_upper_types(decl) for decl in self.declarations]
        return types.GenerateContentConfig(
            system_instruction=self.SYSTEM_INSTRUCTION,
            tools=[types.Tool(function_declarations=declarations)],
            # We run the tool loop ourselves
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

    def converse(self, history: Sequence[Turn]) -> ModelResponse:
        try:
            resp = self._client.models.generate_content(
                model=settings.GEMINI_MODEL,
                contents=to_gemini_contents(history),
                config=self._config(),
            )
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Gemini gateway error: %s", str(e))
            raise GatewayError(f"Error calling Gemini: {str(e)}") from e

        texts: List[str] = []
        calls: List[ToolCallRequest] = []
        candidates = resp.candidates or []
        content = candidates[0].content if candidates else None
        for part in (content.parts if content and content.parts else []):
            if part.function_call:
                fc = part.function_call
                kwargs: Dict[str, Any] = {"name": fc.name, "arguments": dict(fc.args or {})}
                if fc.id:
                    kwargs["call_id"] = fc.id
                calls.append(ToolCallRequest(**kwargs))
            elif part.text:
                texts.append(part.text)

        logger.debug("Gemini gateway response: texts=%s calls=%s", texts, calls)
        return ModelResponse(final_text="\n".join(texts), tool_calls=tuple(calls))


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------
def to_openai_messages(history: Sequence[Turn], system_prompt: str) -> List[Dict[str, Any]]:
    """Convert history to chat-completions messages, one ``tool`` message per result."""
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for turn in history:
        if turn.role is Role.USER:
            messages.append({"role": "user", "content": turn.text or ""})
        elif turn.role is Role.MODEL:
            messages.append(
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": call.call_id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in turn.tool_calls
                    ],
                }
            )
        else:
            for result in turn.tool_results:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.call_id,
                        "content": _tool_payload_json(result.response_body()),
                    }
                )
    return messages


@register_gateway("openai")
class OpenAIGateway(BaseGateway):
    """OpenAI-based gateway using function tools."""

    def __init__(self, registry: Mapping[str, ToolDefinition] | None = None) -> None:
        super().__init__(registry)
        if not settings.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY environment variable is not set.")
        import openai  # pylint: disable=import-outside-toplevel

        self._client = openai.OpenAI(api_key=settings.OPENAI_API_KEY)

    def converse(self, history: Sequence[Turn]) -> ModelResponse:
        try:
            resp = self._client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=to_openai_messages(history, self.SYSTEM_INSTRUCTION),
                tools=[{"type": "function", "function": decl} for decl in self.declarations],
                temperature=0.2,
            )
        except Exception as e:  # pylint: disable=broad-except
            logger.error("OpenAI gateway error: %s", str(e))
            raise GatewayError(f"Error calling OpenAI: {str(e)}") from e

        message = resp.choices[0].message
        calls = []
        for tc in message.tool_calls or []:
            try:
                arguments = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError as e:
                raise GatewayError(
                    f"OpenAI returned malformed arguments for '{tc.function.name}': {e}"
                ) from e
            if not isinstance(arguments, dict):
                raise GatewayError(
                    f"OpenAI arguments for '{tc.function.name}' are not an object: {arguments!r}"
                )
            calls.append(ToolCallRequest(name=tc.function.name, arguments=arguments, call_id=tc.id))

        logger.debug("OpenAI gateway response: content=%r calls=%s", message.content, calls)
        return ModelResponse(final_text=message.content or "", tool_calls=tuple(calls))


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
def to_anthropic_messages(history: Sequence[Turn]) -> List[Dict[str, Any]]:
    """Convert history to Anthropic messages; results go back as user ``tool_result`` blocks."""
    messages: List[Dict[str, Any]] = []
    for turn in history:
        if turn.role is Role.USER:
            messages.append({"role": "user", "content": turn.text or ""})
        elif turn.role is Role.MODEL:
            messages.append(
                {
                    "role": "assistant",
                    "content": [
                        {
                            "type": "tool_use",
                            "id": call.call_id,
                            "name": call.name,
                            "input": call.arguments,
                        }
                        for call in turn.tool_calls
                    ],
                }
            )
        else:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": result.call_id,
                            "content": _tool_payload_json(result.response_body()),
                            "is_error": not result.ok,
                        }
                        for result in turn.tool_results
                    ],
                }
            )
    return messages


@register_gateway("anthropic")
class AnthropicGateway(BaseGateway):
    """Anthropic Claude-based gateway."""

    def __init__(self, registry: Mapping[str, ToolDefinition] | None = None) -> None:
        super().__init__(registry)
        if not settings.ANTHROPIC_API_KEY:
            raise ConfigurationError("ANTHROPIC_API_KEY environment variable is not set.")
        import anthropic  # pylint: disable=import-outside-toplevel

        self._client = anthropic.Anthropic(api_key=settings.ANTHROPIC_API_KEY)

    def converse(self, history: Sequence[Turn]) -> ModelResponse:
        try:
            response = self._client.messages.create(
                model=settings.ANTHROPIC_MODEL,
                max_tokens=1024,
                system=self.SYSTEM_INSTRUCTION,
                messages=to_anthropic_messages(history),
                tools=[
                    {
                        "name": decl["name"],
                        "description": decl["description"],
                        "input_schema": decl["parameters"],
                    }
                    for decl in self.declarations
                ],
                temperature=0.2,
            )
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Anthropic gateway error: %s", str(e))
            raise GatewayError(f"Error calling Anthropic: {str(e)}") from e

        texts: List[str] = []
        calls: List[ToolCallRequest] = []
        # Handle different content block types from Anthropic API
        for block in response.content:
            if block.type == "tool_use":
                calls.append(
                    ToolCallRequest(name=block.name, arguments=dict(block.input), call_id=block.id)
                )
            elif block.type == "text":
                texts.append(block.text)

        logger.debug("Anthropic gateway response: texts=%s calls=%s", texts, calls)
        return ModelResponse(final_text="\n".join(texts), tool_calls=tuple(calls))
