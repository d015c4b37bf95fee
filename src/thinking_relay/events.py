from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime

from thinking_relay.models import ContentBlock


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class StreamEvent:
    """One outbound protocol event: an SSE ``event`` name plus JSON payload."""

    name: str
    payload: dict = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.name in ("done", "error")

    def encode(self) -> str:
        return f"event: {self.name}\ndata: {json.dumps(self.payload, ensure_ascii=False)}\n\n"


def start_event() -> StreamEvent:
    return StreamEvent("start", {"created": utc_now()})


def content_event(*blocks: ContentBlock) -> StreamEvent:
    return StreamEvent("content", {"content": [b.to_dict() for b in blocks]})


def usage_event(usage: dict) -> StreamEvent:
    return StreamEvent("usage", {"usage": usage})


def error_event(message: str, code: int) -> StreamEvent:
    return StreamEvent("error", {"message": message, "code": code})


def done_event() -> StreamEvent:
    return StreamEvent("done", {})
