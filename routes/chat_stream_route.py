"""FastAPI routes for the generative UI chat stream."""

import logging
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from controllers.stream_controller import invalid_request_response, stream_chat, to_stream_request, warmup

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat-stream"])


class ChatMessagePayload(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: Union[str, List[Dict[str, Any]], None] = ""
    images: Optional[List[str]] = None


class StreamPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessagePayload]
    model: Optional[str] = None
    language: Optional[str] = "en"
    session_id: Optional[str] = Field(None, alias="sessionId")
    previous_state: Any = Field(None, alias="previousState")
    message_id: Optional[str] = Field(None, alias="messageId")


def _messages_problem(body: Any) -> Optional[str]:
    """Return why ``body`` has no usable messages array, or None."""
    messages = body.get("messages") if isinstance(body, dict) else None
    if messages is None or not isinstance(messages, list):
        return "Invalid request: messages array is required"
    if not messages:
        return "Invalid request: messages array cannot be empty"
    return None


def _validation_problem(exc: ValidationError) -> str:
    """Describe the first failing field, e.g. ``messages.0.role: Field required``."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"Invalid request: {location}: {first.get('msg', 'invalid value')}"


@router.post("/thesys-chat-stream", summary="Stream a generative UI response as server-sent events")
async def chat_stream_route(request: Request):
    """Validate the chat payload and relay the upstream stream.

    Invalid payloads are rejected with HTTP 400 before any upstream work
    starts; everything after that is reported inside the 200 stream.
    """
    try:
        body = await request.json()
    except ValueError:
        LOGGER.error("[SSE Relay] Invalid request: body is not JSON")
        return invalid_request_response("Invalid request: body must be JSON")

    problem = _messages_problem(body)
    if problem:
        LOGGER.error("[SSE Relay] %s", problem)
        return invalid_request_response(problem)

    try:
        payload = StreamPayload.model_validate(body)
    except ValidationError as exc:
        LOGGER.error("[SSE Relay] Invalid request: %s", exc.errors()[:1])
        return invalid_request_response(_validation_problem(exc))

    stream_request = to_stream_request(
        [message.model_dump() for message in payload.messages],
        model=payload.model,
        language=payload.language,
        session_id=payload.session_id,
        previous_state=payload.previous_state,
        message_id=payload.message_id,
        settings=request.app.state.settings,
    )
    return stream_chat(request, stream_request)


@router.api_route("/thesys-warmup", methods=["GET", "HEAD"], summary="Warm up the upstream generative UI API")
async def warmup_route(request: Request):
    try:
        return await warmup(request)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
