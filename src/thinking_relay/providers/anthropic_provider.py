from collections.abc import AsyncIterator

import anthropic
from loguru import logger

from thinking_relay.errors import BackendError
from thinking_relay.models import BackendConfig, BackendUsage, ChatChunk, ChatResult, Message
from thinking_relay.providers.common import split_body, translate_error


class AnthropicProvider:
    """Anthropic Messages API backend."""

    def __init__(
        self,
        *,
        name: str,
        api_key: str,
        model: str,
        max_tokens: int,
        timeout_seconds: float,
        error_cls: type[BackendError],
        base_url: str | None = None,
    ):
        self.name = name
        self._model = model
        self._max_tokens = max_tokens
        self._error_cls = error_cls
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )

    def _request_kwargs(
        self,
        system_prompt: str | None,
        messages: list[Message],
        config: BackendConfig,
    ) -> dict:
        model, max_tokens, extra = split_body(config.body, self._model, self._max_tokens)
        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            messages=[m.to_dict() for m in messages],
        )
        if system_prompt:
            kwargs["system"] = system_prompt
        if config.headers:
            kwargs["extra_headers"] = config.headers
        if extra:
            kwargs["extra_body"] = extra
        return kwargs

    async def aclose(self) -> None:
        await self._client.close()

    def _error(self, ex: Exception) -> BackendError:
        return translate_error(ex, self._error_cls, timeout_types=(anthropic.APITimeoutError,))

    async def chat(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ) -> ChatResult:
        kwargs = self._request_kwargs(system_prompt, messages, config)
        logger.debug(f"{self.name} request: model={kwargs['model']}, messages={len(messages)}")
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as ex:
            raise self._error(ex) from ex

        texts = [block.text for block in response.content if block.type == "text"]
        content = "".join(texts) if texts else None
        usage = response.usage
        logger.debug(
            f"{self.name} response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return ChatResult(
            content=content,
            usage=BackendUsage(
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                total_tokens=usage.input_tokens + usage.output_tokens,
            ),
            raw=response.model_dump(),
        )

    async def chat_stream(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ) -> AsyncIterator[ChatChunk]:
        kwargs = self._request_kwargs(system_prompt, messages, config)
        logger.debug(f"{self.name} stream request: model={kwargs['model']}, messages={len(messages)}")
        input_tokens = 0
        output_tokens = 0
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for event in stream:
                    if event.type == "message_start":
                        input_tokens = event.message.usage.input_tokens
                        output_tokens = event.message.usage.output_tokens
                    elif event.type == "message_delta":
                        output_tokens = event.usage.output_tokens
                    elif event.type == "content_block_delta":
                        if event.delta.type == "text_delta" and event.delta.text:
                            yield ChatChunk(content_delta=event.delta.text)
                        continue
                    else:
                        continue
                    yield ChatChunk(
                        usage=BackendUsage(
                            input_tokens=input_tokens,
                            output_tokens=output_tokens,
                            total_tokens=input_tokens + output_tokens,
                        )
                    )
        except anthropic.APIError as ex:
            raise self._error(ex) from ex
