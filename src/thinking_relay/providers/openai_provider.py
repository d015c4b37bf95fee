from collections.abc import AsyncIterator

import openai
from loguru import logger

from thinking_relay.errors import BackendError
from thinking_relay.models import BackendConfig, BackendUsage, ChatChunk, ChatResult, Message
from thinking_relay.providers.common import split_body, translate_error


def _to_openai_messages(system_prompt: str | None, messages: list[Message]) -> list[dict]:
    """Render the conversation in chat-completions format, system prompt first."""
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    out.extend(m.to_dict() for m in messages)
    return out


def _to_usage(usage) -> BackendUsage | None:
    if usage is None:
        return None
    prompt = usage.prompt_tokens or 0
    completion = usage.completion_tokens or 0
    return BackendUsage(
        input_tokens=prompt,
        output_tokens=completion,
        total_tokens=usage.total_tokens or prompt + completion,
    )


class OpenAIProvider:
    """Chat-completions backend (OpenAI, OpenRouter, DeepSeek and other compatible APIs)."""

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
        self._client = openai.AsyncOpenAI(
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
            messages=_to_openai_messages(system_prompt, messages),
        )
        if config.headers:
            kwargs["extra_headers"] = config.headers
        if extra:
            kwargs["extra_body"] = extra
        return kwargs

    async def aclose(self) -> None:
        await self._client.close()

    def _error(self, ex: Exception) -> BackendError:
        return translate_error(ex, self._error_cls, timeout_types=(openai.APITimeoutError,))

    async def chat(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ) -> ChatResult:
        kwargs = self._request_kwargs(system_prompt, messages, config)
        logger.debug(f"{self.name} request: model={kwargs['model']}, messages={len(kwargs['messages'])}")
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as ex:
            raise self._error(ex) from ex

        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice is not None and choice.message is not None else None
        usage = _to_usage(response.usage) or BackendUsage()
        logger.debug(
            f"{self.name} response: input_tokens={usage.input_tokens}, "
            f"output_tokens={usage.output_tokens}, content_len={len(content or '')}"
        )
        return ChatResult(content=content, usage=usage, raw=response.model_dump())

    async def chat_stream(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ) -> AsyncIterator[ChatChunk]:
        kwargs = self._request_kwargs(system_prompt, messages, config)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}
        logger.debug(f"{self.name} stream request: model={kwargs['model']}, messages={len(kwargs['messages'])}")
        try:
            stream = await self._client.chat.completions.create(**kwargs)
            async with stream:
                async for chunk in stream:
                    choice = chunk.choices[0] if chunk.choices else None
                    delta = choice.delta.content if choice is not None and choice.delta is not None else None
                    usage = _to_usage(getattr(chunk, "usage", None))
                    if delta or usage is not None:
                        yield ChatChunk(content_delta=delta or None, usage=usage)
        except openai.APIError as ex:
            raise self._error(ex) from ex
