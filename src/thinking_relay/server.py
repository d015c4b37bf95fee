"""HTTP surface.

Endpoints:
  POST /   - run the reasoner -> answerer pipeline; JSON or SSE depending on
             the request's ``stream`` flag
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable, Mapping

from loguru import logger
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from thinking_relay.app_config import AppConfig
from thinking_relay.errors import InvalidRequest, MalformedCredential, MissingCredential, RelayError
from thinking_relay.forwarder import EventForwarder
from thinking_relay.models import ChatRequest
from thinking_relay.pipeline import PipelineOrchestrator
from thinking_relay.provider import ChatBackend, create_backend

BackendFactory = Callable[[str], tuple[ChatBackend, ChatBackend]]


def extract_credential(headers: Mapping[str, str], header: str) -> str:
    value = headers.get(header)
    if value is None:
        raise MissingCredential(header)
    token = value.strip()
    if not token or any(ch.isspace() or not ch.isprintable() for ch in token):
        raise MalformedCredential(header)
    return token


def build_backends(config: AppConfig, api_key: str) -> tuple[ChatBackend, ChatBackend]:
    """Create both backends bound to the caller's forwarded credential."""
    reasoner = create_backend(
        config.reasoner.provider,
        role="reasoner",
        api_key=api_key,
        model=config.reasoner.model,
        max_tokens=config.reasoner.max_tokens,
        timeout_seconds=config.reasoner.timeout_seconds,
        base_url=config.reasoner.base_url,
    )
    answerer = create_backend(
        config.answerer.provider,
        role="answerer",
        api_key=api_key,
        model=config.answerer.model,
        max_tokens=config.answerer.max_tokens,
        timeout_seconds=config.answerer.timeout_seconds,
        base_url=config.answerer.base_url,
    )
    return reasoner, answerer


def _error_response(error: RelayError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status_code)


async def _sse_body(forwarder: EventForwarder) -> AsyncIterator[str]:
    try:
        async for event in forwarder:
            yield event.encode()
    finally:
        forwarder.detach()


def create_app(config: AppConfig, *, backend_factory: BackendFactory | None = None) -> Starlette:
    """Create the Starlette ASGI app."""
    make_backends = backend_factory or (lambda api_key: build_backends(config, api_key))

    async def chat(request: Request) -> Response:
        """POST / - batched JSON response or SSE stream."""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error_response(InvalidRequest("Invalid JSON body"))

        try:
            chat_request = ChatRequest.from_dict(body)
            chat_request.validate_system_prompt()
            api_key = extract_credential(request.headers, config.credential_header)
        except RelayError as ex:
            logger.info(f"Rejected request: {ex.message}")
            return _error_response(ex)

        reasoner, answerer = make_backends(api_key)
        orchestrator = PipelineOrchestrator(
            reasoner,
            answerer,
            config.pricing,
            channel_capacity=config.channel_capacity,
            close_backends=True,
        )

        if not chat_request.stream:
            try:
                response = await orchestrator.run(chat_request)
            except RelayError as ex:
                return _error_response(ex)
            return JSONResponse(response.to_dict())

        return StreamingResponse(
            _sse_body(orchestrator.stream(chat_request)),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    return Starlette(routes=[Route("/", chat, methods=["POST"])])
