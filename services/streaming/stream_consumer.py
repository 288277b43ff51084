"""Client for the chat stream endpoint with a single cold-start retry."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from services.streaming.errors import RETRYABLE_STATUSES
from services.streaming.sse_codec import DONE, SSEDecoder

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Any]
CompleteCallback = Callable[[str], Any]
ErrorCallback = Callable[[str], Any]


class StreamConsumer:
	"""Issue POST-based SSE requests and surface frames through callbacks.

	At most one stream is active per instance: ``start_stream`` aborts the
	previous one first. A 500/503 on the first attempt is retried once after
	``retry_delay``; the server performs its own single retry upstream, so
	the worst case is two attempts at each hop.
	"""

	def __init__(
		self,
		client: httpx.AsyncClient,
		*,
		on_chunk: Optional[ChunkCallback] = None,
		on_complete: Optional[CompleteCallback] = None,
		on_error: Optional[ErrorCallback] = None,
		endpoint: str = "/api/thesys-chat-stream",
		retry_delay: float = 3.0,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	) -> None:
		if client is None:
			raise ValueError("httpx.AsyncClient is required.")
		self.client = client
		self.on_chunk = on_chunk
		self.on_complete = on_complete
		self.on_error = on_error
		self.endpoint = endpoint
		self.retry_delay = retry_delay
		self._sleep = sleep
		self._task: Optional[asyncio.Task] = None
		self.streamed_response = ""
		self.is_streaming = False
		self.is_retrying = False
		self.error: Optional[str] = None

	def start_stream(
		self,
		messages: List[Dict[str, Any]],
		language: str = "en",
		session_context: Optional[Dict[str, Any]] = None,
	) -> asyncio.Task:
		"""Cancel any in-flight stream and start a new one; returns its task."""
		self.cancel_stream()
		self.streamed_response = ""
		self.error = None
		self.is_streaming = True
		body: Dict[str, Any] = {"messages": messages, "language": language}
		if session_context:
			body["sessionId"] = session_context.get("sessionId")
			body["previousState"] = session_context.get("previousState")
			body["messageId"] = session_context.get("messageId")
			LOGGER.info("[Stream Consumer] Including session context: %s", body["sessionId"])
		self._task = asyncio.create_task(self._run(body))
		return self._task

	def cancel_stream(self) -> None:
		if self._task is not None and not self._task.done():
			self._task.cancel()
		self._task = None
		self.is_streaming = False

	async def _run(self, body: Dict[str, Any]) -> None:
		try:
			for attempt in range(2):
				async with self.client.stream("POST", self.endpoint, json=body) as response:
					if response.status_code >= 400:
						await response.aread()
						LOGGER.error(
							"[Stream Consumer] Request failed status=%d attempt=%d",
							response.status_code,
							attempt,
						)
						if attempt == 0 and response.status_code in RETRYABLE_STATUSES:
							failure = None
						else:
							reason = response.reason_phrase or "Request failed"
							failure = f"HTTP {response.status_code}: {reason}"
					else:
						await self._consume(response)
						return
				if failure is not None:
					self._fail(failure)
					return
				LOGGER.warning("[Stream Consumer] First request failed, retrying in %.1fs", self.retry_delay)
				self.is_retrying = True
				try:
					await self._sleep(self.retry_delay)
				finally:
					self.is_retrying = False
		except asyncio.CancelledError:
			# cancel_stream() already reset the state; a newer stream may own it now.
			LOGGER.info("[Stream Consumer] Stream cancelled")
			raise
		except httpx.HTTPError as exc:
			LOGGER.error("[Stream Consumer] Error: %s", exc)
			self._fail(str(exc) or "Stream failed")
		except Exception as exc:
			LOGGER.exception("[Stream Consumer] Stream handler failed")
			self._fail(str(exc) or "Stream failed")

	async def _consume(self, response: httpx.Response) -> None:
		decoder = SSEDecoder()
		async for chunk in response.aiter_bytes():
			for frame in decoder.feed(chunk):
				if self._handle_frame(frame):
					return
		for frame in decoder.flush():
			if self._handle_frame(frame):
				return
		self._complete()

	def _handle_frame(self, frame: str) -> bool:
		"""Apply one frame; returns True once the stream reached a terminal frame."""
		data = frame.strip()
		if data == DONE:
			self._complete()
			return True
		try:
			parsed = json.loads(data)
		except ValueError:
			LOGGER.warning("[Stream Consumer] Failed to parse SSE data: %r", data[:200])
			return False
		if not isinstance(parsed, dict):
			return False
		if parsed.get("error"):
			self._fail(str(parsed["error"]))
			return True
		chunk = parsed.get("chunk")
		if chunk:
			self.streamed_response += chunk
			if self.on_chunk:
				self.on_chunk(chunk)
		return False

	def _complete(self) -> None:
		self.is_streaming = False
		if self.on_complete:
			self.on_complete(self.streamed_response)

	def _fail(self, message: str) -> None:
		self.error = message
		self.is_streaming = False
		if self.on_error:
			self.on_error(message)
