"""Two-stage reasoner -> answerer pipeline.

The reasoner runs first and must finish completely. Its full output is
wrapped in a thinking block and appended to the conversation as an assistant
turn, then the answerer is called with that extended conversation. Both
stages run either as blocking calls (``run``) or as incremental streams
pushed through an ``EventForwarder`` by a background task (``stream``).
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing

from loguru import logger

from thinking_relay.errors import ConsumerDisconnected, MissingContent, RelayError
from thinking_relay.events import (
    StreamEvent,
    content_event,
    done_event,
    error_event,
    start_event,
    usage_event,
    utc_now,
)
from thinking_relay.forwarder import EventForwarder
from thinking_relay.models import (
    BackendConfig,
    ChatRequest,
    ChatResponse,
    ChatResult,
    ContentBlock,
    Message,
    Role,
)
from thinking_relay.provider import ChatBackend
from thinking_relay.session import AnswerStage, PipelineSession, ReasoningStage, SessionState
from thinking_relay.usage import PriceTable, combined_usage

THINKING_OPEN = "<thinking>\n"
THINKING_CLOSE = "\n</thinking>"

_RUNNING = (SessionState.REASONER_RUNNING, SessionState.ANSWERER_RUNNING)


def wrap_reasoning(text: str) -> str:
    return f"{THINKING_OPEN}{text}{THINKING_CLOSE}"


def extend_with_reasoning(conversation: list[Message], reasoning: ReasoningStage) -> list[Message]:
    return [*conversation, Message(Role.ASSISTANT, wrap_reasoning(reasoning.text))]


def _raw_response(raw: dict | None) -> dict:
    return {"status": 200, "headers": {}, "body": raw or {}}


class PipelineOrchestrator:
    """Drives one request through both stages.

    With ``close_backends`` the orchestrator owns both backends and closes
    them once its session has ended.
    """

    def __init__(
        self,
        reasoner: ChatBackend,
        answerer: ChatBackend,
        prices: PriceTable,
        *,
        channel_capacity: int = 100,
        close_backends: bool = False,
    ) -> None:
        self._reasoner = reasoner
        self._answerer = answerer
        self._prices = prices
        self._channel_capacity = channel_capacity
        self._close_backends = close_backends

    async def _release_backends(self) -> None:
        if not self._close_backends:
            return
        for backend in (self._reasoner, self._answerer):
            try:
                await backend.aclose()
            except Exception as ex:
                logger.warning(f"Failed to close {backend.name} backend: {ex}")

    # -- batched ---------------------------------------------------------

    async def run(self, request: ChatRequest) -> ChatResponse:
        """Run both stages as blocking calls and assemble one response."""
        session = PipelineSession(
            conversation=request.conversation(),
            system_prompt=request.system_prompt(),
        )
        logger.info(f"session {session.session_id}: batched run, {len(session.conversation)} turns")
        try:
            reasoning = await self._reason(session, request.reasoner_config)
            answer = await self._answer(session, reasoning, request.answerer_config)
        except RelayError as ex:
            logger.warning(f"session {session.session_id}: {ex}")
            session.advance(SessionState.ERROR)
            session.advance(SessionState.CLOSED)
            raise
        finally:
            await self._release_backends()

        session.advance(SessionState.FINALIZING)
        usage = combined_usage(reasoning.usage, answer.usage, self._prices)
        response = ChatResponse(
            created=utc_now(),
            content=[ContentBlock.whole(wrap_reasoning(reasoning.text)), ContentBlock.whole(answer.text)],
            combined_usage=usage,
            reasoner_response=_raw_response(reasoning.raw) if request.verbose else None,
            answerer_response=_raw_response(answer.raw) if request.verbose else None,
        )
        session.advance(SessionState.CLOSED)
        logger.info(f"session {session.session_id}: done, total_cost={usage['total_cost']}")
        return response

    async def _reason(self, session: PipelineSession, config: BackendConfig) -> ReasoningStage:
        session.advance(SessionState.REASONER_RUNNING)
        result: ChatResult = await self._reasoner.chat(
            session.conversation, config, system_prompt=session.system_prompt
        )
        if not result.content:
            raise MissingContent(self._reasoner.name)
        session.reasoning_parts.append(result.content)
        session.reasoner_usage.observe(result.usage)
        session.advance(SessionState.REASONER_DONE)
        return ReasoningStage(text=result.content, usage=session.reasoner_usage.snapshot(), raw=result.raw)

    async def _answer(
        self,
        session: PipelineSession,
        reasoning: ReasoningStage,
        config: BackendConfig,
    ) -> AnswerStage:
        session.conversation = extend_with_reasoning(session.conversation, reasoning)
        session.advance(SessionState.ANSWERER_RUNNING)
        result: ChatResult = await self._answerer.chat(
            session.conversation, config, system_prompt=session.system_prompt
        )
        if not result.content:
            raise MissingContent(self._answerer.name)
        session.answer_parts.append(result.content)
        session.answerer_usage.observe(result.usage)
        session.advance(SessionState.ANSWERER_DONE)
        return AnswerStage(text=result.content, usage=session.answerer_usage.snapshot(), raw=result.raw)

    # -- streaming -------------------------------------------------------

    def stream(self, request: ChatRequest) -> EventForwarder:
        """Start the pipeline in a background task and return its event channel.

        Must be called from a running event loop. The caller reads the
        returned forwarder and calls ``detach()`` once it stops reading.
        """
        sink = EventForwarder(self._channel_capacity)
        session = PipelineSession(
            conversation=request.conversation(),
            system_prompt=request.system_prompt(),
            sink=sink,
        )
        task = asyncio.create_task(
            self._produce(session, request),
            name=f"pipeline-{session.session_id}",
        )
        sink.bind_producer(task)
        return sink

    async def _emit(self, session: PipelineSession, event: StreamEvent) -> None:
        if not await session.sink.send(event):
            raise ConsumerDisconnected()

    async def _produce(self, session: PipelineSession, request: ChatRequest) -> None:
        logger.info(f"session {session.session_id}: streaming run, {len(session.conversation)} turns")
        try:
            await self._emit(session, start_event())
            reasoning = await self._stream_reasoning(session, request.reasoner_config)
            answer = await self._stream_answer(session, reasoning, request.answerer_config)

            session.advance(SessionState.FINALIZING)
            usage = combined_usage(reasoning.usage, answer.usage, self._prices)
            await self._emit(session, usage_event(usage))
            await self._emit(session, done_event())
            logger.info(f"session {session.session_id}: done, total_cost={usage['total_cost']}")
        except ConsumerDisconnected:
            logger.warning(f"session {session.session_id}: consumer gone in state {session.state.value}, aborting")
        except asyncio.CancelledError:
            logger.warning(f"session {session.session_id}: cancelled in state {session.state.value}")
            session.sink.detach()
            raise
        except RelayError as ex:
            logger.warning(f"session {session.session_id}: {ex}")
            await self._fail(session, str(ex), ex.status_code)
        except Exception as ex:
            logger.exception(f"session {session.session_id}: unexpected pipeline failure")
            await self._fail(session, f"Internal error: {ex}", 500)
        finally:
            if session.state is not SessionState.CLOSED:
                session.advance(SessionState.CLOSED)
            try:
                await self._release_backends()
            finally:
                await session.sink.close()

    async def _fail(self, session: PipelineSession, message: str, code: int) -> None:
        if session.state in _RUNNING:
            session.advance(SessionState.ERROR)
        await session.sink.send(error_event(message, code))

    async def _stream_reasoning(self, session: PipelineSession, config: BackendConfig) -> ReasoningStage:
        session.advance(SessionState.REASONER_RUNNING)
        await self._emit(session, content_event(ContentBlock.whole(THINKING_OPEN)))

        chunks = self._reasoner.chat_stream(session.conversation, config, system_prompt=session.system_prompt)
        async with aclosing(chunks):
            async for chunk in chunks:
                if chunk.content_delta:
                    await self._emit(session, content_event(ContentBlock.delta(chunk.content_delta)))
                    session.reasoning_parts.append(chunk.content_delta)
                if chunk.usage is not None:
                    session.reasoner_usage.observe(chunk.usage)

        if not session.reasoning_parts:
            raise MissingContent(self._reasoner.name)

        await self._emit(session, content_event(ContentBlock.whole(THINKING_CLOSE)))
        session.advance(SessionState.REASONER_DONE)
        return ReasoningStage(text=session.reasoning, usage=session.reasoner_usage.snapshot())

    async def _stream_answer(
        self,
        session: PipelineSession,
        reasoning: ReasoningStage,
        config: BackendConfig,
    ) -> AnswerStage:
        session.conversation = extend_with_reasoning(session.conversation, reasoning)
        session.advance(SessionState.ANSWERER_RUNNING)

        chunks = self._answerer.chat_stream(session.conversation, config, system_prompt=session.system_prompt)
        async with aclosing(chunks):
            async for chunk in chunks:
                if chunk.content_delta:
                    await self._emit(session, content_event(ContentBlock.delta(chunk.content_delta)))
                    session.answer_parts.append(chunk.content_delta)
                if chunk.usage is not None:
                    session.answerer_usage.observe(chunk.usage)

        if not session.answer_parts:
            raise MissingContent(self._answerer.name)

        session.advance(SessionState.ANSWERER_DONE)
        return AnswerStage(text=session.answer, usage=session.answerer_usage.snapshot())
