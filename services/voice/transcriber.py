"""Transcribe one voice turn via a temporary audio file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional
from uuid import uuid4

import aiofiles
import aiofiles.os
from openai import AsyncOpenAI

LOGGER = logging.getLogger(__name__)

TRANSCRIBE_MODEL = "whisper-1"


class VoiceTranscriber:
	"""Write buffered audio to a unique temp file and send it to Whisper."""

	def __init__(self, client: AsyncOpenAI, tmp_dir: Path, *, extension: str = "webm") -> None:
		if client is None:
			raise ValueError("AsyncOpenAI client is required.")
		self.client = client
		self.tmp_dir = Path(tmp_dir)
		self.extension = extension

	def _temp_path(self) -> Path:
		return self.tmp_dir / f"voice-{uuid4().hex}.{self.extension}"

	async def transcribe(self, audio: bytes) -> str:
		"""Return the whitespace-trimmed transcript for ``audio``.

		The temp file is removed whether or not transcription succeeds.

		Raises:
			RuntimeError: If the transcription request fails.
		"""
		await aiofiles.os.makedirs(self.tmp_dir, exist_ok=True)
		tmp_path: Optional[Path] = None
		try:
			tmp_path = self._temp_path()
			async with aiofiles.open(tmp_path, "wb") as fh:
				await fh.write(audio)

			# The SDK uploads from a real file handle so the multipart part
			# carries a filename with the right extension.
			with open(tmp_path, "rb") as fh:
				try:
					response = await self.client.audio.transcriptions.create(
						model=TRANSCRIBE_MODEL,
						file=fh,
						response_format="text",
					)
				except Exception as exc:
					raise RuntimeError(f"Transcription failed: {exc}") from exc
		finally:
			if tmp_path is not None:
				await self._remove(tmp_path)

		text = response if isinstance(response, str) else getattr(response, "text", "")
		return (text or "").strip()

	@staticmethod
	async def _remove(path: Path) -> None:
		try:
			await aiofiles.os.remove(path)
		except FileNotFoundError:
			LOGGER.warning("[Voice Call] Temp audio already gone: %s", os.fspath(path))
		except OSError as exc:
			LOGGER.warning("[Voice Call] Could not remove temp audio %s: %s", os.fspath(path), exc)
