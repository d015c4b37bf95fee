from __future__ import annotations

from typing import Any

from thinking_relay.errors import BackendError


def split_body(body: dict[str, Any], default_model: str, default_max_tokens: int) -> tuple[str, int, dict[str, Any]]:
    """Pull model and max_tokens out of a per-request body override.

    Whatever remains is passed through to the backend untouched.
    """
    extra = dict(body)
    model = str(extra.pop("model", default_model))
    max_tokens = int(extra.pop("max_tokens", default_max_tokens))
    extra.pop("messages", None)
    extra.pop("stream", None)
    return model, max_tokens, extra


def translate_error(
    exc: Exception,
    error_cls: type[BackendError],
    *,
    timeout_types: tuple[type[Exception], ...] = (),
) -> BackendError:
    """Map an SDK exception onto the relay's backend error taxonomy."""
    body = getattr(exc, "body", None)
    details: dict = {}
    if isinstance(body, dict):
        nested = body.get("error", body)
        if isinstance(nested, dict):
            details = nested

    message = details.get("message") or getattr(exc, "message", None) or str(exc) or type(exc).__name__
    error_type = getattr(exc, "type", None) or details.get("type")
    if not error_type:
        status = getattr(exc, "status_code", None)
        error_type = f"http_{status}" if status else "api_error"
    if timeout_types and isinstance(exc, timeout_types):
        error_type = "timeout"

    param = getattr(exc, "param", None) or details.get("param")
    code = getattr(exc, "code", None) or details.get("code")
    return error_cls(
        str(message),
        error_type=str(error_type),
        param=str(param) if param is not None else None,
        code=str(code) if code is not None else None,
    )
