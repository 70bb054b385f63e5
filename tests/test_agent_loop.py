"""Tests for the orchestration loop, driven by a scripted gateway."""

import httpx
import pytest

from weathermail.agent.agent_loop import (
    AgentRun,
    LoopPhase,
    run_agent,
)
from weathermail.config import settings
from weathermail.core.errors import (
    ConfigurationError,
    IterationLimitExceeded,
    ToolExecutionError,
    UnknownToolError,
)
from weathermail.core.schema import (
    ModelResponse,
    Role,
    RunRequest,
    ToolCallRequest,
)
from weathermail.tools import (
    TOOL_REGISTRY,
    ToolDefinition,
    mail,
    weather,
)

from conftest import (
    AddParams,
    AddResult,
    FakeSMTPRecorder,
    ScriptedGateway,
    answer,
    calls,
)

REQUEST = RunRequest(city="Paris", to="a@b.com")


def _add(a: int, b: int, call_id: str | None = None) -> ToolCallRequest:
    kwargs = {"call_id": call_id} if call_id else {}
    return ToolCallRequest(name="add", arguments={"a": a, "b": b}, **kwargs)


def test_final_answer_without_tools(add_registry) -> None:
    gateway = ScriptedGateway([answer("Nothing to do.")])
    agent = AgentRun(gateway, registry=add_registry)

    assert agent.run(REQUEST) == "Nothing to do."
    assert agent.phase is LoopPhase.DONE
    assert agent.iterations == 0
    assert [turn.role for turn in agent.conversation] == [Role.USER]
    assert "City: Paris" in agent.conversation.turns[0].text


def test_empty_final_text_defaults_to_done(add_registry) -> None:
    agent = AgentRun(ScriptedGateway([answer("")]), registry=add_registry)
    assert agent.run(REQUEST) == "Done."


def test_history_grows_by_model_and_tool_turn_per_batch(add_registry) -> None:
    gateway = ScriptedGateway(
        [calls(_add(1, 2)), calls(_add(3, 4), _add(5, 6)), answer("sums computed")]
    )
    agent = AgentRun(gateway, registry=add_registry)

    assert agent.run(REQUEST) == "sums computed"

    lengths = [len(history) for history in gateway.seen]
    assert lengths == [1, 3, 5]
    assert [turn.role for turn in agent.conversation] == [
        Role.USER,
        Role.MODEL,
        Role.TOOL,
        Role.MODEL,
        Role.TOOL,
    ]
    # Earlier snapshots are untouched by later appends
    assert gateway.seen[0] == agent.conversation.turns[:1]
    assert gateway.seen[1] == agent.conversation.turns[:3]


def test_batch_runs_sequentially_in_request_order(add_registry) -> None:
    gateway = ScriptedGateway(
        [calls(_add(1, 1, "first"), _add(2, 2, "second"), _add(3, 3, "third")), answer("ok")]
    )
    agent = AgentRun(gateway, registry=add_registry)
    agent.run(REQUEST)

    executor = add_registry["add"].executor
    assert [(p.a, p.b) for p in executor.invocations] == [(1, 1), (2, 2), (3, 3)]
    tool_turn = agent.conversation.turns[2]
    assert [r.call_id for r in tool_turn.tool_results] == ["first", "second", "third"]
    assert [r.payload for r in tool_turn.tool_results] == [{"total": 2}, {"total": 4}, {"total": 6}]


def test_text_alongside_tool_calls_keeps_looping(add_registry) -> None:
    mixed = ModelResponse(final_text="let me check", tool_calls=(_add(1, 1),))
    gateway = ScriptedGateway([mixed, answer("final")])

    assert AgentRun(gateway, registry=add_registry).run(REQUEST) == "final"
    assert gateway.calls == 2


def test_validation_failure_is_fed_back_to_the_model(add_registry) -> None:
    bad = ToolCallRequest(name="add", arguments={"a": 1})
    gateway = ScriptedGateway([calls(bad), calls(_add(1, 2)), answer("fixed it")])
    agent = AgentRun(gateway, registry=add_registry)

    assert agent.run(REQUEST) == "fixed it"
    failed = agent.conversation.turns[2].tool_results[0]
    assert not failed.ok
    assert "Invalid arguments" in failed.response_body()["error"]


def test_iteration_bound_stops_at_seventh_model_call(add_registry) -> None:
    gateway = ScriptedGateway([calls(_add(1, 1))], repeat_last=True)
    agent = AgentRun(gateway, registry=add_registry)

    with pytest.raises(IterationLimitExceeded, match="Too many tool-call iterations"):
        agent.run(REQUEST)

    assert gateway.calls == 7
    assert len(add_registry["add"].executor.invocations) == 6
    assert agent.iterations == 7
    assert agent.phase is LoopPhase.FAILED


def test_iteration_bound_follows_setting(add_registry, monkeypatch) -> None:
    monkeypatch.setattr(settings, "MAX_TOOL_ITERATIONS", 2)
    gateway = ScriptedGateway([calls(_add(1, 1))], repeat_last=True)

    with pytest.raises(IterationLimitExceeded):
        AgentRun(gateway, registry=add_registry).run(REQUEST)
    assert gateway.calls == 3


def test_unknown_tool_fails_without_invoking_any_executor(add_registry) -> None:
    gateway = ScriptedGateway(
        [calls(_add(1, 1), ToolCallRequest(name="launch_rockets")), answer("never")]
    )
    agent = AgentRun(gateway, registry=add_registry)

    with pytest.raises(UnknownToolError, match="launch_rockets"):
        agent.run(REQUEST)

    assert add_registry["add"].executor.invocations == []
    assert gateway.calls == 1
    assert agent.phase is LoopPhase.FAILED


def test_rerun_starts_from_fresh_state(add_registry) -> None:
    gateway = ScriptedGateway([calls(_add(1, 1)), answer("one"), answer("two")])
    agent = AgentRun(gateway, registry=add_registry)

    assert agent.run(REQUEST) == "one"
    assert agent.run(REQUEST) == "two"
    assert agent.iterations == 0
    assert len(agent.conversation) == 1


# ---------------------------------------------------------------------------
# End-to-end with the built-in tools
# ---------------------------------------------------------------------------
@pytest.fixture
def paris_weather(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="Partly cloudy +15°C")

    monkeypatch.setattr(
        weather, "_client", lambda: httpx.Client(transport=httpx.MockTransport(handler))
    )


def _weather_then_email() -> ScriptedGateway:
    return ScriptedGateway(
        [
            calls(ToolCallRequest(name="get_weather", arguments={"city": "Paris"})),
            calls(
                ToolCallRequest(
                    name="send_email",
                    arguments={
                        "to_email": "a@b.com",
                        "subject": "Weather in Paris",
                        "body": "It is partly cloudy and 15°C in Paris.",
                    },
                )
            ),
            answer("Sent the Paris weather to a@b.com."),
        ]
    )


def test_paris_scenario(paris_weather, smtp_settings, monkeypatch) -> None:
    recorder = FakeSMTPRecorder()
    monkeypatch.setattr(mail.smtplib, "SMTP", recorder)
    gateway = _weather_then_email()

    assert run_agent(REQUEST, gateway) == "Sent the Paris weather to a@b.com."

    weather_result = gateway.seen[1][-1].tool_results[0]
    assert weather_result.payload == {"city": "Paris", "degree_c": 15, "condition": "Partly cloudy"}
    email_result = gateway.seen[2][-1].tool_results[0]
    assert email_result.ok
    assert len(recorder.sent) == 1


def test_missing_mail_config_fails_the_run(paris_weather, no_smtp_settings, monkeypatch) -> None:
    recorder = FakeSMTPRecorder()
    monkeypatch.setattr(mail.smtplib, "SMTP", recorder)
    gateway = _weather_then_email()
    agent = AgentRun(gateway)

    with pytest.raises(ConfigurationError, match="Missing SMTP config"):
        agent.run(REQUEST)

    assert recorder.sent == []
    assert recorder.connections == 0
    email_result = agent.conversation.last.tool_results[0]
    assert email_result.error_kind == "configuration"
    assert gateway.calls == 2


def test_tool_runtime_failure_fails_the_run(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    monkeypatch.setattr(
        weather, "_client", lambda: httpx.Client(transport=httpx.MockTransport(handler))
    )
    gateway = ScriptedGateway(
        [calls(ToolCallRequest(name="get_weather", arguments={"city": "Paris"})), answer("never")]
    )

    with pytest.raises(ToolExecutionError, match="unreachable"):
        run_agent(REQUEST, gateway)
    assert gateway.calls == 1


def test_configuration_failure_stops_the_rest_of_the_batch(add_registry, no_smtp_settings) -> None:
    registry = {**TOOL_REGISTRY, **add_registry}
    email = ToolCallRequest(
        name="send_email",
        arguments={"to_email": "a@b.com", "subject": "Weather", "body": "Sunny"},
    )
    gateway = ScriptedGateway([calls(email, _add(1, 1)), answer("never")])
    agent = AgentRun(gateway, registry=registry)

    with pytest.raises(ConfigurationError, match="Missing SMTP config"):
        agent.run(REQUEST)

    assert add_registry["add"].executor.invocations == []
    (recorded,) = agent.conversation.last.tool_results
    assert recorded.name == "send_email"
    assert recorded.error_kind == "configuration"


def test_results_before_a_runtime_failure_stay_in_history(add_registry) -> None:
    def _boom(params):
        raise OSError("relay hung up")

    registry = {
        **add_registry,
        "boom": ToolDefinition(
            name="boom",
            description="always fails",
            input_model=AddParams,
            output_model=AddResult,
            executor=_boom,
        ),
    }
    failing = ToolCallRequest(name="boom", arguments={"a": 1, "b": 1})
    gateway = ScriptedGateway([calls(_add(2, 3, "sent"), failing, _add(4, 4)), answer("never")])
    agent = AgentRun(gateway, registry=registry)

    with pytest.raises(ToolExecutionError, match="relay hung up"):
        agent.run(REQUEST)

    (kept,) = agent.conversation.last.tool_results
    assert kept.call_id == "sent"
    assert kept.payload == {"total": 5}
    assert len(add_registry["add"].executor.invocations) == 1
