from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from thinking_relay.errors import AnswererError, BackendError, ReasonerError
from thinking_relay.models import BackendConfig, ChatChunk, ChatResult, Message


@runtime_checkable
class ChatBackend(Protocol):
    name: str

    async def chat(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ) -> ChatResult:
        """One blocking round trip. Raises BackendError on failure."""
        ...

    def chat_stream(
        self,
        messages: list[Message],
        config: BackendConfig,
        *,
        system_prompt: str | None = None,
    ) -> AsyncIterator[ChatChunk]:
        """Finite, non-restartable sequence of deltas and usage snapshots.

        A failure mid-stream is raised as BackendError from the iterator.
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying HTTP connection pool."""
        ...


_ERROR_TYPES: dict[str, type[BackendError]] = {
    "reasoner": ReasonerError,
    "answerer": AnswererError,
}


def create_backend(
    provider_name: str,
    *,
    role: str,
    api_key: str,
    model: str,
    max_tokens: int,
    timeout_seconds: float,
    base_url: str | None = None,
) -> ChatBackend:
    """Factory: create the backend filling ``role`` ("reasoner" or "answerer")."""
    error_cls = _ERROR_TYPES.get(role)
    if error_cls is None:
        raise ValueError(f"Unknown backend role: {role!r}. Supported: 'reasoner', 'answerer'")
    kwargs = dict(
        name=role,
        api_key=api_key,
        base_url=base_url,
        model=model,
        max_tokens=max_tokens,
        timeout_seconds=timeout_seconds,
        error_cls=error_cls,
    )
    name = provider_name.strip().lower()
    if name == "openai":
        from thinking_relay.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(**kwargs)
    if name == "anthropic":
        from thinking_relay.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(**kwargs)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic', 'openai'")
