"""Shared fixtures: a scripted model gateway and an isolated tool registry."""

from typing import (
    Dict,
    List,
    Sequence,
)

import pytest
from pydantic import BaseModel

from weathermail.agent.gateway import BaseGateway
from weathermail.config import settings
from weathermail.core.schema import (
    ModelResponse,
    ToolCallRequest,
    Turn,
)
from weathermail.tools import ToolDefinition


class ScriptedGateway(BaseGateway):
    """Replays canned responses and records the history it was shown on every call."""

    def __init__(self, responses: Sequence[ModelResponse], repeat_last: bool = False) -> None:
        super().__init__()
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.seen: List[Sequence[Turn]] = []

    def converse(self, history: Sequence[Turn]) -> ModelResponse:
        self.seen.append(history)
        if self.repeat_last and len(self.seen) > len(self.responses):
            return self.responses[-1]
        return self.responses[len(self.seen) - 1]

    @property
    def calls(self) -> int:
        return len(self.seen)


def calls(*requests: ToolCallRequest) -> ModelResponse:
    return ModelResponse(tool_calls=requests)


def answer(text: str) -> ModelResponse:
    return ModelResponse(final_text=text)


class AddParams(BaseModel):
    a: int
    b: int


class AddResult(BaseModel):
    total: int


class CountingAdd:
    """Executor for the test ``add`` tool; remembers every input it was called with."""

    def __init__(self) -> None:
        self.invocations: List[AddParams] = []

    def __call__(self, params: AddParams) -> AddResult:
        self.invocations.append(params)
        return AddResult(total=params.a + params.b)


@pytest.fixture
def add_registry() -> Dict[str, ToolDefinition]:
    """Registry with a single ``add`` tool; its executor is a :class:`CountingAdd`."""
    tool = ToolDefinition(
        name="add",
        description="Return the sum of two integers (used only for tests).",
        input_model=AddParams,
        output_model=AddResult,
        executor=CountingAdd(),
    )
    return {"add": tool}


@pytest.fixture
def smtp_settings(monkeypatch):
    """Fully configured mail relay."""
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(settings, "SMTP_PORT", 587)
    monkeypatch.setattr(settings, "SMTP_USER", "mailer")
    monkeypatch.setattr(settings, "SMTP_PASS", "secret")
    monkeypatch.setattr(settings, "FROM_EMAIL", "weather@example.com")


@pytest.fixture
def no_smtp_settings(monkeypatch):
    """Mail relay settings absent."""
    for name in ("SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS", "FROM_EMAIL"):
        monkeypatch.setattr(settings, name, None)


class FakeSMTPRecorder:
    """Callable replacement for ``smtplib.SMTP`` that records connections and sent messages."""

    def __init__(self) -> None:
        self.connections = 0
        self.sent = []

    def __call__(self, host, port, timeout=None):
        self.connections += 1
        return _RecordingConnection(self)


class _RecordingConnection:
    def __init__(self, recorder: FakeSMTPRecorder) -> None:
        self._recorder = recorder

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def ehlo(self):
        pass

    def has_extn(self, name):
        return False

    def login(self, user, password):
        pass

    def send_message(self, msg):
        self._recorder.sent.append(msg)
