"""Lifecycle of one voice-call websocket: heartbeat, audio turns, history."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket

from models.voice_models import VoiceSession
from services.voice.heartbeat import Heartbeat
from services.voice.language import detect_language
from services.voice.prompts import voice_base_system_prompt, voice_persona_prompt
from services.voice.responder import VoiceResponder
from services.voice.transcriber import VoiceTranscriber
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

GOING_AWAY = 1001


def new_voice_session() -> VoiceSession:
	return VoiceSession(conversation_history=[{"role": "system", "content": voice_base_system_prompt()}])


class VoiceSessionManager:
	"""Drive a single voice websocket from ready to close.

	Binary messages are whole utterances. Only one processing pass runs at a
	time; audio that arrives meanwhile is dropped rather than queued, and
	audio smaller than ``settings.voice_min_audio_bytes`` is ignored. Closing
	the socket stops the heartbeat and discards buffered audio but lets an
	in-flight pass finish on its own.
	"""

	def __init__(
		self,
		websocket: WebSocket,
		settings: Settings,
		*,
		transcriber: VoiceTranscriber,
		responder: VoiceResponder,
		session: Optional[VoiceSession] = None,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	) -> None:
		self.websocket = websocket
		self.settings = settings
		self.transcriber = transcriber
		self.responder = responder
		self.session = session or new_voice_session()
		self.heartbeat = Heartbeat(settings.heartbeat_interval)
		self.closed = False
		self._sleep = sleep
		self._processing_task: Optional[asyncio.Task] = None

	async def run(self) -> None:
		"""Serve the connection until the peer leaves or misses a heartbeat."""
		LOGGER.info("[Voice Call] Client connected session=%s", self.session.session_id)
		await self._send({"type": "ready", "message": "Voice call connected"})
		receiver = asyncio.create_task(self._receive_loop())
		pinger = asyncio.create_task(self._heartbeat_loop())
		try:
			done, _ = await asyncio.wait({receiver, pinger}, return_when=asyncio.FIRST_COMPLETED)
			for task in done:
				if not task.cancelled() and task.exception() is not None:
					LOGGER.error("[Voice Call] WebSocket error: %s", task.exception())
		finally:
			for task in (receiver, pinger):
				task.cancel()
			await asyncio.gather(receiver, pinger, return_exceptions=True)
			self.close()
			if self._processing_task is not None and not self._processing_task.done():
				await self._processing_task

	def close(self) -> None:
		"""Mark the session closed and drop any buffered audio."""
		if self.closed:
			return
		self.closed = True
		self.session.audio_chunks = []
		LOGGER.info("[Voice Call] Client disconnected session=%s", self.session.session_id)

	async def _receive_loop(self) -> None:
		while True:
			message = await self.websocket.receive()
			if message.get("type") == "websocket.disconnect":
				return
			# Any inbound frame proves the peer is still there.
			self.heartbeat.touch()
			data = message.get("bytes")
			if data is not None:
				self.handle_audio(data)
				continue
			text = message.get("text")
			if text is not None:
				await self.handle_text(text)

	async def handle_text(self, text: str) -> None:
		"""Handle a control frame: ``pong`` refreshes liveness, ``ping`` is answered."""
		try:
			payload = json.loads(text)
		except ValueError:
			LOGGER.debug("[Voice Call] Ignoring non-JSON text frame")
			return
		kind = payload.get("type") if isinstance(payload, dict) else None
		if kind == "pong":
			self.heartbeat.touch()
		elif kind == "ping":
			self.heartbeat.touch()
			await self._send({"type": "pong"})
		else:
			LOGGER.debug("[Voice Call] Ignoring text frame %r", text[:100])

	def handle_audio(self, data: bytes) -> bool:
		"""Start a processing pass for ``data``; returns False if it was dropped."""
		if self.session.is_processing:
			LOGGER.info("[Voice Call] Busy, dropped %d bytes of audio", len(data))
			return False
		if len(data) < self.settings.voice_min_audio_bytes:
			LOGGER.debug("[Voice Call] Ignored %d-byte audio below threshold", len(data))
			return False
		self.session.is_processing = True
		self.session.audio_chunks.append(data)
		audio = self.session.take_audio()
		self._processing_task = asyncio.create_task(self._process(audio))
		return True

	async def _process(self, audio: bytes) -> None:
		session = self.session
		try:
			user_text = await self.transcriber.transcribe(audio)
			if not user_text:
				LOGGER.info("[Voice Call] Empty transcription, nothing to answer")
				return
			LOGGER.info("[Voice Call] User said: %s", user_text)

			if session.language is None:
				session.language = detect_language(user_text)
				self._apply_persona(session.language)

			user_entry = {"role": "user", "content": user_text}
			ai_text = await self.responder.complete(session.conversation_history + [user_entry])
			LOGGER.info("[Voice Call] AI response: %s", ai_text)
			session.conversation_history.append(user_entry)
			session.conversation_history.append({"role": "assistant", "content": ai_text})

			speech = await self.responder.synthesize(ai_text, session.language)
			await self._send(
				{
					"type": "transcription",
					"userText": user_text,
					"aiText": ai_text,
					"language": session.language,
				}
			)
			await self._send_bytes(speech)
		except Exception as exc:
			LOGGER.error("[Voice Call] Processing error: %s", exc)
			await self._send({"type": "error", "message": str(exc) or "Processing failed"})
		finally:
			session.is_processing = False
			session.last_process_time = time.time()

	def _apply_persona(self, language: str) -> None:
		# Folded into the leading system message so turns only add user/assistant pairs.
		history = self.session.conversation_history
		persona = voice_persona_prompt(language)
		if history and history[0].get("role") == "system":
			history[0] = {"role": "system", "content": f"{history[0]['content']}\n\n{persona}"}
		else:
			history.insert(0, {"role": "system", "content": persona})

	async def _heartbeat_loop(self) -> None:
		while True:
			await self._sleep(self.heartbeat.interval)
			if self.heartbeat.check_and_maybe_terminate():
				LOGGER.warning("[Voice Call] No frame from client since last ping, terminating session=%s", self.session.session_id)
				await self._terminate()
				return
			await self._send({"type": "ping"})

	async def _terminate(self) -> None:
		self.close()
		try:
			await self.websocket.close(code=GOING_AWAY)
		except Exception as exc:
			LOGGER.debug("[Voice Call] Close after heartbeat failure raised: %s", exc)

	async def _send(self, payload: Dict[str, Any]) -> None:
		if self.closed:
			LOGGER.debug("[Voice Call] Socket closed, not sending %s", payload.get("type"))
			return
		try:
			await self.websocket.send_text(json.dumps(payload, ensure_ascii=False))
		except Exception as exc:
			LOGGER.warning("[Voice Call] Failed to send %s: %s", payload.get("type"), exc)

	async def _send_bytes(self, data: bytes) -> None:
		if self.closed:
			LOGGER.debug("[Voice Call] Socket closed, dropping %d bytes of speech", len(data))
			return
		try:
			await self.websocket.send_bytes(data)
		except Exception as exc:
			LOGGER.warning("[Voice Call] Failed to send audio: %s", exc)
