"""The recipe chat step: hand the conversation to the agent once and normalize the reply."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Literal, Mapping, Optional, Protocol, Sequence

from .agent import AgentResult
from .types import ChatCompletion, ChatMessage, generate_id

logger = logging.getLogger(__name__)

RECIPE_CHAT_STEP_ID = "recipe-chat-workflow"

RunStatus = Literal["success", "failed"]


class Agent(Protocol):
    def generate(self, messages: Sequence[Dict[str, str]]) -> AgentResult: ...


class Step(Protocol):
    def execute(self, messages: Sequence[ChatMessage]) -> ChatCompletion: ...


class DelegationStep:
    """Maps chat messages to the agent's input and its result back to a :class:`ChatCompletion`.

    ``agent`` may be an agent instance or a zero-argument factory; a factory
    is called on first use so the app can start without model weights.
    """

    step_id = "delegate-to-recipe-agent"

    def __init__(self, agent: Optional[Agent] = None, *, agent_factory: Optional[Callable[[], Agent]] = None) -> None:
        if agent is None and agent_factory is None:
            raise ValueError("DelegationStep needs an agent or an agent_factory")
        self._agent = agent
        self._agent_factory = agent_factory
        self._lock = threading.Lock()

    @property
    def agent(self) -> Agent:
        if self._agent is not None:
            return self._agent
        # Runs happen on a threadpool; build the agent (loads weights) once.
        with self._lock:
            if self._agent is None:
                if self._agent_factory is None:
                    raise RuntimeError("DelegationStep has no agent factory")
                self._agent = self._agent_factory()
            return self._agent

    def execute(self, messages: Sequence[ChatMessage]) -> ChatCompletion:
        agent_messages = [{"role": m.role, "content": m.content} for m in messages]
        result = self.agent.generate(agent_messages)
        return ChatCompletion(
            message=ChatMessage(role="assistant", content=result.text or ""),
            usage=result.usage,
            runId=result.response_id or result.trace_id,
        )


@dataclass
class StepRun:
    """Outcome of one run: either ``success`` with a result or ``failed``."""
    run_id: str
    status: RunStatus
    result: Optional[ChatCompletion] = None
    error: Optional[str] = None


def run_step(step: Step, messages: Sequence[ChatMessage]) -> StepRun:
    """Execute ``step`` exactly once; any exception becomes a failed run (no retry)."""
    run_id = generate_id()
    try:
        result = step.execute(messages)
    except Exception as e:
        logger.warning("Run %s failed: %s", run_id, e)
        return StepRun(run_id=run_id, status="failed", error=str(e))
    return StepRun(run_id=run_id, status="success", result=result)


class StepRegistry(Mapping[str, Step]):
    """Steps addressable by a fixed identifier."""

    def __init__(self, steps: Optional[Mapping[str, Step]] = None) -> None:
        self._steps: Dict[str, Step] = dict(steps or {})

    def register(self, step_id: str, step: Step) -> None:
        self._steps[step_id] = step

    def __getitem__(self, step_id: str) -> Step:
        return self._steps[step_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)
