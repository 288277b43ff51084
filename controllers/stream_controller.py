"""Chat stream and warmup helpers for the SSE relay endpoints."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import httpx
from fastapi import HTTPException, Request
from fastapi.responses import Response, StreamingResponse

from models.stream_models import ChatMessage, SessionContext, StreamRequest
from services.streaming.cancellation import CancelToken
from services.streaming.sse_codec import DONE, encode
from services.streaming.sse_relay import SSERelay
from services.streaming.upstream_client import UpstreamChatClient
from utils.settings import Settings

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
	"Cache-Control": "no-cache, no-transform",
	"Connection": "keep-alive",
	"X-Accel-Buffering": "no",
}


def _settings(request: Request) -> Settings:
	settings = getattr(request.app.state, "settings", None)
	if settings is None:
		raise HTTPException(status_code=500, detail="Settings not initialized.")
	return settings


def _http_client(request: Request) -> Optional[httpx.AsyncClient]:
	return getattr(request.app.state, "http_client", None)


def invalid_request_response(message: str) -> Response:
	"""Return a 400 whose body is a complete, terminated error stream."""
	return Response(
		content=encode({"error": message}) + encode(DONE),
		status_code=400,
		media_type=SSE_MEDIA_TYPE,
		headers={"Cache-Control": "no-cache, no-transform"},
	)


def to_stream_request(
	messages: Iterable[Dict[str, Any]],
	*,
	model: Optional[str],
	language: Optional[str],
	session_id: Optional[str],
	previous_state: Any,
	message_id: Optional[str],
	settings: Settings,
) -> StreamRequest:
	"""Convert validated payload fields into an immutable :class:`StreamRequest`."""
	chat_messages = tuple(
		ChatMessage(
			role=message["role"],
			content=message.get("content") if message.get("content") is not None else "",
			images=tuple(message.get("images") or ()),
		)
		for message in messages
	)
	context = None
	if session_id is not None or previous_state is not None or message_id is not None:
		context = SessionContext(session_id=session_id, previous_state=previous_state, message_id=message_id)
	return StreamRequest(
		messages=chat_messages,
		model=model or settings.default_model,
		language="ar" if language == "ar" else "en",
		session_context=context,
	)


def stream_chat(request: Request, stream_request: StreamRequest) -> StreamingResponse:
	"""Open the SSE response for one validated request.

	The cancel token lives exactly as long as this response; Starlette
	cancels the body iterator when the client disconnects, which fires it.
	"""
	settings = _settings(request)
	upstream = None
	if not settings.mock_mode:
		client = _http_client(request)
		if client is None:
			raise HTTPException(status_code=500, detail="HTTP client not initialized.")
		upstream = UpstreamChatClient(client, settings)
	relay = SSERelay(settings, upstream)
	return StreamingResponse(
		relay.stream(stream_request, CancelToken()),
		media_type=SSE_MEDIA_TYPE,
		headers=SSE_HEADERS,
	)


async def warmup(request: Request) -> Dict[str, Any]:
	"""Wake the upstream API so the first real request avoids a cold start."""
	settings = _settings(request)
	if settings.mock_mode:
		return {"status": "ok", "mode": "mock"}
	client = _http_client(request)
	if client is None:
		raise HTTPException(status_code=500, detail="HTTP client not initialized.")
	return await UpstreamChatClient(client, settings).warmup()
