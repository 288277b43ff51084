"""Per-connection state for voice calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from uuid import uuid4


@dataclass
class VoiceSession:
	"""Mutable state owned by exactly one voice websocket."""

	session_id: str = field(default_factory=lambda: uuid4().hex)
	conversation_history: List[Dict[str, str]] = field(default_factory=list)
	audio_chunks: List[bytes] = field(default_factory=list)
	is_processing: bool = False
	language: Optional[str] = None
	last_process_time: Optional[float] = None

	def take_audio(self) -> bytes:
		"""Return the buffered audio as one payload and clear the buffer."""
		audio = b"".join(self.audio_chunks)
		self.audio_chunks = []
		return audio
