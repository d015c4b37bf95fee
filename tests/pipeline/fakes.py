from __future__ import annotations

import asyncio

from thinking_relay.events import StreamEvent
from thinking_relay.forwarder import EventForwarder
from thinking_relay.models import BackendConfig, BackendUsage, ChatChunk, ChatResult, ChatRequest, Message, Role


class FakeBackend:
    """Scripted backend that records every call it receives."""

    def __init__(
        self,
        name: str,
        *,
        content: str | None = None,
        usage: BackendUsage | None = None,
        chunks: list[ChatChunk] | None = None,
        error: Exception | None = None,
        hang_after_chunks: bool = False,
    ):
        self.name = name
        self._content = content
        self._usage = usage or BackendUsage()
        self._chunks = chunks if chunks is not None else []
        self._error = error
        self._hang_after_chunks = hang_after_chunks
        self.chat_calls: list[tuple[list[Message], str | None]] = []
        self.stream_calls: list[tuple[list[Message], str | None]] = []
        self.stream_closed = False
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True

    async def chat(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ) -> ChatResult:
        self.chat_calls.append((list(messages), system_prompt))
        if self._error is not None:
            raise self._error
        return ChatResult(content=self._content, usage=self._usage, raw={"backend": self.name})

    async def chat_stream(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ):
        self.stream_calls.append((list(messages), system_prompt))
        try:
            for chunk in self._chunks:
                await asyncio.sleep(0)
                yield chunk
            if self._hang_after_chunks:
                await asyncio.Event().wait()
            if self._error is not None:
                raise self._error
        finally:
            self.stream_closed = True


def deltas(*parts: str, usage: BackendUsage | None = None) -> list[ChatChunk]:
    chunks = [ChatChunk(content_delta=p) for p in parts]
    if usage is not None:
        chunks.append(ChatChunk(usage=usage))
    return chunks


def two_turn_request(**kwargs) -> ChatRequest:
    return ChatRequest(
        messages=[
            Message(Role.USER, "What is 2 + 2?"),
            Message(Role.ASSISTANT, "Do you want the working?"),
            Message(Role.USER, "Yes please."),
        ],
        **kwargs,
    )


async def collect(forwarder: EventForwarder) -> list[StreamEvent]:
    events = [event async for event in forwarder]
    # Let the producer task finish its cleanup.
    await asyncio.sleep(0)
    return events


def streamed_text(events: list[StreamEvent]) -> str:
    return "".join(
        block["text"]
        for event in events
        if event.name == "content"
        for block in event.payload["content"]
    )
