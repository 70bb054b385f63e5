"""Main orchestration loop for weathermail."""

from __future__ import annotations

import logging
from enum import Enum
from typing import (
    List,
    Mapping,
)

from weathermail.agent.gateway import (
    BaseGateway,
    load_gateway,
)
from weathermail.agent.tool_executor import invoke_tool
from weathermail.config import settings
from weathermail.core.conversation import Conversation
from weathermail.core.errors import (
    ConfigurationError,
    IterationLimitExceeded,
)
from weathermail.core.schema import (
    RunRequest,
    ToolCallRequest,
    ToolResult,
    Turn,
)
from weathermail.tools import (
    ToolDefinition,
    resolve_tool,
)

logger = logging.getLogger(__name__)

DEFAULT_FINAL_TEXT = "Done."


class LoopPhase(str, Enum):
    """States of a run. DONE and FAILED are terminal."""

    RUNNING = "running"
    DISPATCHING = "dispatching"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentRun:
    """
    One run of the propose-tool / execute / feed-back cycle.

    The run owns its conversation history and iteration counter; neither outlives it.  Each call to
    :meth:`run` starts from a fresh history.
    """

    def __init__(
        self,
        gateway: BaseGateway,
        registry: Mapping[str, ToolDefinition] | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.registry = registry
        if max_iterations is None:
            max_iterations = settings.MAX_TOOL_ITERATIONS
        self.max_iterations = max_iterations
        self.phase = LoopPhase.RUNNING
        self.iterations = 0
        self.conversation = Conversation()

    def run(self, request: RunRequest) -> str:
        """Drive the model until it answers; return the final text or raise a fatal AgentError."""
        self.conversation = Conversation()
        self.iterations = 0
        self.conversation.append(Turn.user(request.to_prompt()))
        self.phase = LoopPhase.RUNNING

        try:
            return self._loop()
        except Exception:
            self.phase = LoopPhase.FAILED
            raise

    def _loop(self) -> str:
        while True:
            response = self.gateway.converse(self.conversation.turns)
            if response.is_final:
                self.phase = LoopPhase.DONE
                logger.info("Run finished after %d tool iteration(s)", self.iterations)
                return response.final_text or DEFAULT_FINAL_TEXT

            self.conversation.append(Turn.model_calls(response.tool_calls))
            self.phase = LoopPhase.DISPATCHING
            self._dispatch(list(response.tool_calls))
            self.phase = LoopPhase.RUNNING

    def _dispatch(self, calls: List[ToolCallRequest]) -> None:
        self.iterations += 1
        if self.iterations > self.max_iterations:
            raise IterationLimitExceeded(self.max_iterations)

        logger.info(
            "Model requested %d tool call(s) (iteration %d): %s",
            len(calls),
            self.iterations,
            [call.name for call in calls],
        )
        # Every name must be known before anything with side effects runs.
        for call in calls:
            resolve_tool(call.name, self.registry)

        results: List[ToolResult] = []
        try:
            for call in calls:
                result = invoke_tool(call, self.registry)
                results.append(result)
                if result.error_kind == "configuration":
                    raise ConfigurationError(result.error_message)
        finally:
            # Results produced before a fatal error stay in the history.
            if results:
                self.conversation.append(Turn.tool(results))


def run_agent(request: RunRequest, gateway: BaseGateway | None = None) -> str:
    """Run one request with *gateway* (or the configured default) and return the final text."""
    return AgentRun(gateway or load_gateway()).run(request)
