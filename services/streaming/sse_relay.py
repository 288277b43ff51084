"""Relay one chat request to the upstream generative UI stream as SSE frames."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import httpx

from models.stream_models import StreamRequest
from services.streaming.cancellation import CancelToken
from services.streaming.errors import (
	TIMEOUT_MESSAGE,
	UpstreamStatusError,
	classify_upstream_status,
	transport_error_message,
)
from services.streaming.sse_codec import DONE, encode
from services.streaming.upstream_client import UpstreamChatClient
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

MOCK_CHUNKS = (
	'{"type":"card","title":"',
	"Mock Streaming",
	'","content":"',
	"This is a simulated ",
	"streaming response. ",
	"Each chunk arrives ",
	"progressively!",
	'"}',
)

_END = object()


class SSERelay:
	"""Produce the encoded SSE byte stream for a single :class:`StreamRequest`.

	In mock mode a fixed card is emitted with ``settings.mock_frame_delay``
	between frames and nothing touches the network. In live mode an upstream
	pump task feeds a queue; the task is bound to the request's
	:class:`CancelToken` so a client disconnect or the request deadline
	aborts the upstream call. Every path ends with exactly one ``[DONE]``
	unless the consumer went away.
	"""

	def __init__(
		self,
		settings: Settings,
		upstream: Optional[UpstreamChatClient] = None,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	) -> None:
		if upstream is None and not settings.mock_mode:
			raise ValueError("An upstream client is required outside mock mode.")
		self.settings = settings
		self.upstream = upstream
		self._sleep = sleep

	def stream(self, request: StreamRequest, token: Optional[CancelToken] = None) -> AsyncIterator[bytes]:
		"""Return the async iterator of encoded frames for ``request``."""
		token = token or CancelToken()
		LOGGER.info(
			"[SSE Relay] Request model=%s messages=%d language=%s mock=%s",
			request.model,
			len(request.messages),
			request.language,
			self.settings.mock_mode,
		)
		if self.settings.mock_mode:
			return self._mock_stream(token)
		return self._live_stream(request, token)

	async def _mock_stream(self, token: CancelToken) -> AsyncIterator[bytes]:
		LOGGER.info("[SSE Relay] Using mock mode")
		try:
			for chunk in MOCK_CHUNKS:
				yield encode({"chunk": chunk})
				await self._sleep(self.settings.mock_frame_delay)
			yield encode(DONE)
		finally:
			token.cancel("closed")

	async def _live_stream(self, request: StreamRequest, token: CancelToken) -> AsyncIterator[bytes]:
		loop = asyncio.get_running_loop()
		queue: asyncio.Queue = asyncio.Queue()
		pump = asyncio.create_task(self._pump(request, queue))
		token.bind(pump)
		deadline = loop.time() + self.settings.request_timeout
		try:
			while True:
				remaining = deadline - loop.time()
				try:
					item = await asyncio.wait_for(queue.get(), timeout=max(remaining, 0.0))
				except asyncio.TimeoutError:
					token.cancel("timeout")
					LOGGER.error("[SSE Relay] Request exceeded %.0fs deadline", self.settings.request_timeout)
					yield encode({"error": TIMEOUT_MESSAGE})
					yield encode(DONE)
					return
				if item is _END:
					yield encode(DONE)
					return
				yield item
		finally:
			if token.cancel("closed") and not pump.done():
				LOGGER.info("[SSE Relay] Client went away, upstream request aborted")
			await asyncio.gather(pump, return_exceptions=True)

	async def _pump(self, request: StreamRequest, queue: asyncio.Queue) -> None:
		chunks = 0
		try:
			async for delta in self.upstream.stream_deltas(request):
				chunks += 1
				queue.put_nowait(encode({"chunk": delta}))
			LOGGER.info("[SSE Relay] Stream complete chunks=%d", chunks)
		except UpstreamStatusError as exc:
			queue.put_nowait(encode({"error": classify_upstream_status(exc.status_code, exc.detail)}))
		except httpx.TimeoutException:
			LOGGER.error("[SSE Relay] Upstream transport timed out")
			queue.put_nowait(encode({"error": TIMEOUT_MESSAGE}))
		except httpx.HTTPError as exc:
			LOGGER.error("[SSE Relay] Fetch error: %s", exc)
			queue.put_nowait(encode({"error": transport_error_message(exc)}))
		except Exception as exc:
			LOGGER.exception("[SSE Relay] Unexpected relay error")
			queue.put_nowait(encode({"error": str(exc) or "Internal server error"}))
		finally:
			queue.put_nowait(_END)
