"""WebSocket endpoint for voice calls."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket

from services.voice.responder import VoiceResponder
from services.voice.transcriber import VoiceTranscriber
from services.voice.voice_session import VoiceSessionManager

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/api/voice-call")
async def voice_call_socket(websocket: WebSocket):
	"""Run one voice call: binary utterances in, transcripts and mp3 speech out."""
	await websocket.accept()
	settings = websocket.app.state.settings
	client = getattr(websocket.app.state, "openai_client", None)
	if client is None:
		LOGGER.error("[Voice Call] OpenAI client unavailable, rejecting call")
		await websocket.send_text(json.dumps({"type": "error", "message": "Voice service unavailable"}))
		await websocket.close()
		return

	manager = VoiceSessionManager(
		websocket,
		settings,
		transcriber=VoiceTranscriber(client, settings.voice_tmp_dir),
		responder=VoiceResponder(client),
	)
	await manager.run()
	try:
		await websocket.close()
	except (RuntimeError, OSError) as exc:
		# Already closed by the peer or by the heartbeat.
		LOGGER.debug("[Voice Call] Socket already closed: %s", exc)
