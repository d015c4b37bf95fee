from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from thinking_relay.errors import InvalidRequest, InvalidSystemPrompt


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ContentBlock:
    """A piece of outbound content.

    ``text`` blocks are whole units; ``text_delta`` blocks are fragments that
    must be concatenated in emission order.
    """

    kind: str
    text: str

    @classmethod
    def whole(cls, text: str) -> ContentBlock:
        return cls("text", text)

    @classmethod
    def delta(cls, text: str) -> ContentBlock:
        return cls("text_delta", text)

    def to_dict(self) -> dict:
        return {"type": self.kind, "text": self.text}


@dataclass(frozen=True)
class BackendUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class BackendConfig:
    """Per-request overrides for one backend call."""

    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: object, *, field_name: str) -> BackendConfig:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise InvalidRequest(f"{field_name} must be an object", param=field_name)
        headers = data.get("headers") or {}
        body = data.get("body") or {}
        if not isinstance(headers, dict) or not isinstance(body, dict):
            raise InvalidRequest(f"{field_name}.headers and {field_name}.body must be objects", param=field_name)
        model = body.get("model")
        if model is not None and (not isinstance(model, str) or not model.strip()):
            raise InvalidRequest(f"{field_name}.body.model must be a non-empty string", param=f"{field_name}.body.model")
        max_tokens = body.get("max_tokens")
        if max_tokens is not None and (
            isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0
        ):
            raise InvalidRequest(
                f"{field_name}.body.max_tokens must be a positive integer",
                param=f"{field_name}.body.max_tokens",
            )
        return cls(headers={str(k): str(v) for k, v in headers.items()}, body=dict(body))


@dataclass
class ChatResult:
    """Outcome of a single blocking backend call."""

    content: str | None
    usage: BackendUsage
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ChatChunk:
    """One element of a backend's incremental output."""

    content_delta: str | None = None
    usage: BackendUsage | None = None


@dataclass
class ChatRequest:
    messages: list[Message]
    system: str | None = None
    stream: bool = False
    verbose: bool = False
    reasoner_config: BackendConfig = field(default_factory=BackendConfig)
    answerer_config: BackendConfig = field(default_factory=BackendConfig)

    @classmethod
    def from_dict(cls, data: object) -> ChatRequest:
        if not isinstance(data, dict):
            raise InvalidRequest("Request body must be a JSON object")

        raw_messages = data.get("messages")
        if not isinstance(raw_messages, list) or not raw_messages:
            raise InvalidRequest("messages must be a non-empty list", param="messages")

        messages: list[Message] = []
        for i, item in enumerate(raw_messages):
            if not isinstance(item, dict):
                raise InvalidRequest(f"messages[{i}] must be an object", param="messages")
            try:
                role = Role(item.get("role"))
            except ValueError:
                raise InvalidRequest(f"messages[{i}].role is invalid: {item.get('role')!r}", param="messages")
            content = item.get("content")
            if not isinstance(content, str):
                raise InvalidRequest(f"messages[{i}].content must be a string", param="messages")
            messages.append(Message(role, content))

        system = data.get("system")
        if system is not None and not isinstance(system, str):
            raise InvalidRequest("system must be a string", param="system")

        for flag in ("stream", "verbose"):
            if not isinstance(data.get(flag, False), bool):
                raise InvalidRequest(f"{flag} must be a boolean", param=flag)

        return cls(
            messages=messages,
            system=system,
            stream=data.get("stream", False),
            verbose=data.get("verbose", False),
            reasoner_config=BackendConfig.from_dict(data.get("reasoner_config"), field_name="reasoner_config"),
            answerer_config=BackendConfig.from_dict(data.get("answerer_config"), field_name="answerer_config"),
        )

    def validate_system_prompt(self) -> None:
        """A system prompt may come from ``system`` or from the messages, not both."""
        if self.system is not None and any(m.role is Role.SYSTEM for m in self.messages):
            raise InvalidSystemPrompt()

    def system_prompt(self) -> str | None:
        if self.system is not None:
            return self.system
        for m in self.messages:
            if m.role is Role.SYSTEM:
                return m.content
        return None

    def conversation(self) -> list[Message]:
        """Turns sent to the backends; the system prompt travels separately."""
        return [m for m in self.messages if m.role is not Role.SYSTEM]


@dataclass
class ChatResponse:
    created: str
    content: list[ContentBlock]
    combined_usage: dict
    reasoner_response: dict | None = None
    answerer_response: dict | None = None

    def to_dict(self) -> dict:
        out: dict = {
            "created": self.created,
            "content": [block.to_dict() for block in self.content],
            "combined_usage": self.combined_usage,
        }
        if self.reasoner_response is not None:
            out["reasoner_response"] = self.reasoner_response
        if self.answerer_response is not None:
            out["answerer_response"] = self.answerer_response
        return out
