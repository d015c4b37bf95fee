from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from loguru import logger

from thinking_relay.forwarder import EventForwarder
from thinking_relay.models import BackendUsage, Message
from thinking_relay.usage import UsageWatermark


class SessionState(str, Enum):
    IDLE = "idle"
    REASONER_RUNNING = "reasoner_running"
    REASONER_DONE = "reasoner_done"
    ANSWERER_RUNNING = "answerer_running"
    ANSWERER_DONE = "answerer_done"
    FINALIZING = "finalizing"
    ERROR = "error"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.REASONER_RUNNING, SessionState.CLOSED},
    SessionState.REASONER_RUNNING: {SessionState.REASONER_DONE, SessionState.ERROR, SessionState.CLOSED},
    SessionState.REASONER_DONE: {SessionState.ANSWERER_RUNNING, SessionState.CLOSED},
    SessionState.ANSWERER_RUNNING: {SessionState.ANSWERER_DONE, SessionState.ERROR, SessionState.CLOSED},
    SessionState.ANSWERER_DONE: {SessionState.FINALIZING, SessionState.CLOSED},
    SessionState.FINALIZING: {SessionState.CLOSED},
    SessionState.ERROR: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


@dataclass(frozen=True)
class ReasoningStage:
    """Completed reasoner output; the answerer stage cannot start without it."""

    text: str
    usage: BackendUsage
    raw: dict | None = None


@dataclass(frozen=True)
class AnswerStage:
    text: str
    usage: BackendUsage
    raw: dict | None = None


@dataclass
class PipelineSession:
    """Mutable state of one orchestration, owned by a single task."""

    conversation: list[Message]
    system_prompt: str | None = None
    sink: EventForwarder | None = None
    session_id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: SessionState = SessionState.IDLE
    reasoning_parts: list[str] = field(default_factory=list)
    answer_parts: list[str] = field(default_factory=list)
    reasoner_usage: UsageWatermark = field(default_factory=UsageWatermark)
    answerer_usage: UsageWatermark = field(default_factory=UsageWatermark)

    def advance(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal session transition {self.state.value} -> {target.value}")
        logger.debug(f"session {self.session_id}: {self.state.value} -> {target.value}")
        self.state = target

    @property
    def reasoning(self) -> str:
        return "".join(self.reasoning_parts)

    @property
    def answer(self) -> str:
        return "".join(self.answer_parts)
