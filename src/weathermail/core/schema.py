"""
Schema definitions for gateway <-> agent <-> tool messages.

These data models serve as the contract between the model gateway, the orchestration loop, and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

import math
import uuid
from enum import Enum
from typing import (
    Any,
    Dict,
    Literal,
    Optional,
    Sequence,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


class Role(str, Enum):
    """Who produced a turn."""

    USER = "user"
    MODEL = "model"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """A call that the model wants the agent to execute."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(
        default_factory=dict, description="Keyword arguments for the tool"
    )
    call_id: str = Field(
        default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}",
        description="Provider call identifier, used to pair results with calls",
    )


class ToolResult(BaseModel):
    """Outcome of one tool invocation: a payload on success, an error message otherwise."""

    model_config = ConfigDict(frozen=True)

    name: str
    call_id: str
    payload: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_kind: Optional[Literal["validation", "configuration"]] = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "ToolResult":
        if (self.payload is None) == (self.error_message is None):
            raise ValueError("ToolResult needs exactly one of 'payload' or 'error_message'")
        return self

    @property
    def ok(self) -> bool:
        return self.error_message is None

    @classmethod
    def success(cls, request: ToolCallRequest, payload: Dict[str, Any]) -> "ToolResult":
        return cls(name=request.name, call_id=request.call_id, payload=payload)

    @classmethod
    def failure(
        cls,
        request: ToolCallRequest,
        message: str,
        kind: Literal["validation", "configuration"] = "validation",
    ) -> "ToolResult":
        return cls(
            name=request.name, call_id=request.call_id, error_message=message, error_kind=kind
        )

    def response_body(self) -> Dict[str, Any]:
        """
        Model-visible form of the result.

        Non-finite floats (e.g. a temperature that could not be parsed) are sent as ``None`` so the
        body is always valid JSON.
        """
        if self.payload is None:
            return {"error": self.error_message}
        return {"result": _json_safe(self.payload)}


def _json_safe(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


class Turn(BaseModel):
    """One immutable entry in the conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: Optional[str] = None
    tool_calls: Tuple[ToolCallRequest, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role=Role.USER, text=text)

    @classmethod
    def model_calls(cls, calls: Sequence[ToolCallRequest]) -> "Turn":
        return cls(role=Role.MODEL, tool_calls=tuple(calls))

    @classmethod
    def tool(cls, results: Sequence[ToolResult]) -> "Turn":
        return cls(role=Role.TOOL, tool_results=tuple(results))


class ModelResponse(BaseModel):
    """
    What the gateway returns for one model call.

    Either ``tool_calls`` is non-empty (keep looping) or ``final_text`` carries the answer.  When a
    provider returns both, the calls win and the text is dropped.
    """

    model_config = ConfigDict(frozen=True)

    final_text: Optional[str] = None
    tool_calls: Tuple[ToolCallRequest, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _calls_win_over_text(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("tool_calls"):
            data = {**data, "final_text": None}
        return data

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


class RunRequest(BaseModel):
    """Input parameters of one run, as collected by the CLI."""

    city: str = Field(..., min_length=1)
    to: str = Field(..., min_length=1, description="Recipient email address")
    subject: Optional[str] = None

    def to_prompt(self) -> str:
        """Build the seed user message; the model still decides which tools to call."""
        preferred = f"Preferred subject: {self.subject}\n" if self.subject else ""
        return (
            f"City: {self.city}\nRecipient: {self.to}\n{preferred}"
            "Please email the current weather for the city to the recipient."
        )
