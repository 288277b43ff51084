"""Chat completion and speech synthesis for voice turns."""

from __future__ import annotations

import logging
from typing import Dict, List

from openai import AsyncOpenAI

LOGGER = logging.getLogger(__name__)

COMPLETION_MODEL = "gpt-4"
SPEECH_MODEL = "tts-1"
VOICES = {"ar": "onyx", "en": "alloy"}


class VoiceResponder:
	"""Answer a voice conversation and render the answer as mp3 audio."""

	def __init__(self, client: AsyncOpenAI) -> None:
		if client is None:
			raise ValueError("AsyncOpenAI client is required.")
		self.client = client

	async def complete(self, history: List[Dict[str, str]]) -> str:
		"""Return the assistant reply for the conversation so far."""
		completion = await self.client.chat.completions.create(
			model=COMPLETION_MODEL,
			messages=history,
			max_tokens=150,
			temperature=0.7,
		)
		choices = getattr(completion, "choices", None) or []
		if not choices:
			return ""
		return (choices[0].message.content or "").strip()

	async def synthesize(self, text: str, language: str = "en") -> bytes:
		"""Return mp3 bytes speaking ``text`` with the voice for ``language``."""
		speech = await self.client.audio.speech.create(
			model=SPEECH_MODEL,
			voice=VOICES.get(language, VOICES["en"]),
			input=text,
			response_format="mp3",
			speed=1.0,
		)
		audio = speech.content
		if not audio:
			raise RuntimeError("Speech synthesis returned no audio.")
		return audio
