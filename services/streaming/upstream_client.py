"""Streaming client for the upstream generative UI completions endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import httpx

from models.stream_models import StreamRequest
from services.streaming.errors import UpstreamStatusError
from services.streaming.message_transform import build_upstream_messages
from services.streaming.prompts import generative_ui_system_prompt, previous_state_directive
from services.streaming.sse_codec import DONE, SSEDecoder
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

GENERATION_PARAMS: Dict[str, Any] = {
	"max_tokens": 16000,
	"temperature": 0.3,
	"top_p": 0.9,
	"frequency_penalty": 0.0,
	"presence_penalty": 0.0,
}


def extract_delta(frame: str) -> Optional[str]:
	"""Return ``choices[0].delta.content`` from a JSON frame, or None.

	Raises:
		ValueError: If the frame is not valid JSON.
	"""
	parsed = json.loads(frame)
	if not isinstance(parsed, dict):
		return None
	choices = parsed.get("choices") or []
	if not choices or not isinstance(choices[0], dict):
		return None
	delta = choices[0].get("delta") or {}
	content = delta.get("content") if isinstance(delta, dict) else None
	return content if isinstance(content, str) else None


def _error_detail(body: bytes) -> Optional[str]:
	try:
		data = json.loads(body or b"{}")
	except ValueError:
		return None
	if not isinstance(data, dict):
		return None
	error = data.get("error")
	if isinstance(error, dict):
		return error.get("message")
	return error if isinstance(error, str) else None


class UpstreamChatClient:
	"""Issue streaming completion calls with a single cold-start retry."""

	def __init__(self, http_client: httpx.AsyncClient, settings: Settings, sleep: Sleep = asyncio.sleep) -> None:
		if http_client is None:
			raise ValueError("httpx.AsyncClient is required.")
		self.http = http_client
		self.settings = settings
		self._sleep = sleep

	def _headers(self) -> Dict[str, str]:
		return {
			"Content-Type": "application/json",
			"Authorization": f"Bearer {self.settings.thesys_api_key}",
		}

	def build_payload(self, request: StreamRequest) -> Dict[str, Any]:
		"""Return the JSON body for one streaming completion call."""
		system_prompt = generative_ui_system_prompt(request.language)
		context = request.session_context
		if context is not None and context.previous_state is not None:
			system_prompt += "\n\n" + previous_state_directive(request.language, context.previous_state)
			LOGGER.info(
				"[SSE Relay] Using session context session_id=%s message_id=%s",
				context.session_id,
				context.message_id,
			)
		messages: List[Dict[str, Any]] = build_upstream_messages(system_prompt, request.messages)
		return {"model": request.model, "messages": messages, "stream": True, **GENERATION_PARAMS}

	async def stream_deltas(self, request: StreamRequest) -> AsyncIterator[str]:
		"""Yield text deltas from the upstream stream in arrival order.

		A 500 or 503 on the first attempt is retried once after
		``settings.retry_delay`` with the identical payload. Any other non-2xx
		status, or a second failure, raises :class:`UpstreamStatusError`.
		Frames that are not valid JSON are skipped.
		"""
		payload = self.build_payload(request)
		attempt = 0
		while True:
			attempt += 1
			LOGGER.info(
				"[SSE Relay] Upstream request attempt=%d model=%s messages=%d language=%s",
				attempt,
				request.model,
				len(payload["messages"]),
				request.language,
			)
			async with self.http.stream(
				"POST",
				self.settings.upstream_url,
				json=payload,
				headers=self._headers(),
				timeout=httpx.Timeout(self.settings.request_timeout),
			) as response:
				if response.status_code >= 400:
					detail = _error_detail(await response.aread())
					error = UpstreamStatusError(response.status_code, detail)
					LOGGER.error("[SSE Relay] Upstream error status=%d detail=%s", response.status_code, detail)
					if not (error.retryable and attempt == 1):
						raise error
				else:
					async for delta in self._iter_deltas(response):
						yield delta
					return
			LOGGER.warning("[SSE Relay] First attempt failed, retrying in %.1fs", self.settings.retry_delay)
			await self._sleep(self.settings.retry_delay)

	async def _iter_deltas(self, response: httpx.Response) -> AsyncIterator[str]:
		decoder = SSEDecoder()
		chunks = 0
		async for chunk in response.aiter_bytes():
			chunks += 1
			for frame in decoder.feed(chunk):
				if frame == DONE:
					LOGGER.info("[SSE Relay] Upstream sent [DONE] after %d chunks", chunks)
					return
				delta = self._safe_delta(frame)
				if delta:
					yield delta
		for frame in decoder.flush():
			if frame == DONE:
				return
			delta = self._safe_delta(frame)
			if delta:
				yield delta
		LOGGER.info("[SSE Relay] Upstream stream ended after %d chunks", chunks)

	@staticmethod
	def _safe_delta(frame: str) -> Optional[str]:
		try:
			return extract_delta(frame)
		except ValueError:
			LOGGER.debug("[SSE Relay] Skipping malformed upstream frame: %r", frame[:200])
			return None

	async def warmup(self) -> Dict[str, Any]:
		"""Send a minimal non-streaming completion to wake the upstream API."""
		body = {
			"model": self.settings.default_model,
			"messages": [
				{"role": "system", "content": "You are a UI assistant."},
				{"role": "user", "content": "ping"},
			],
			"stream": False,
			"max_tokens": 10,
		}
		try:
			response = await self.http.post(
				self.settings.upstream_url,
				json=body,
				headers=self._headers(),
				timeout=httpx.Timeout(self.settings.warmup_timeout),
			)
		except httpx.HTTPError as exc:
			LOGGER.error("[SSE Relay] Warmup error: %s", exc)
			return {"status": "ok", "mode": "live", "warmed": False, "error": str(exc) or exc.__class__.__name__}
		if response.is_success:
			LOGGER.info("[SSE Relay] Warmup successful")
			return {"status": "ok", "mode": "live", "warmed": True}
		LOGGER.warning("[SSE Relay] Warmup request failed status=%d", response.status_code)
		return {"status": "ok", "mode": "live", "warmed": False, "statusCode": response.status_code}
