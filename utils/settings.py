"""Process-wide configuration for the streaming relay and voice calls."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_UPSTREAM_URL = "https://api.thesys.dev/v1/embed/chat/completions"
DEFAULT_MODEL = "c1/anthropic/claude-sonnet-4/v-20250930"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
	return (os.getenv(name) or "").strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
	raw = (os.getenv(name) or "").strip()
	if not raw:
		return default
	try:
		return int(raw)
	except ValueError as exc:
		raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
	raw = (os.getenv(name) or "").strip()
	if not raw:
		return default
	try:
		return float(raw)
	except ValueError as exc:
		raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def _default_tmp_dir() -> Path:
	return Path(tempfile.gettempdir()) / "voice-call"


@dataclass(frozen=True)
class Settings:
	"""Resolved configuration, read once at startup and shared read-only.

	Attributes:
		thesys_api_key: Bearer token for the upstream generative UI API.
		force_mock: Serve the canned mock stream even when a key is present.
		upstream_url: Streaming chat completions endpoint.
		default_model: Model used when the request does not name one.
		request_timeout: Hard deadline in seconds for one relay invocation.
		retry_delay: Pause before the single cold-start retry.
		mock_frame_delay: Spacing between mock frames.
		warmup_timeout: Deadline for the warmup probe.
		voice_min_audio_bytes: Audio messages smaller than this are treated as noise.
		heartbeat_interval: Seconds between voice socket pings.
		voice_tmp_dir: Directory for per-turn temporary audio files.
		openai_api_key: Key for transcription, completion and speech calls.
	"""

	thesys_api_key: Optional[str] = None
	force_mock: bool = False
	upstream_url: str = DEFAULT_UPSTREAM_URL
	default_model: str = DEFAULT_MODEL
	request_timeout: float = 300.0
	retry_delay: float = 3.0
	mock_frame_delay: float = 0.1
	warmup_timeout: float = 10.0
	voice_min_audio_bytes: int = 50000
	heartbeat_interval: float = 30.0
	voice_tmp_dir: Path = field(default_factory=_default_tmp_dir)
	openai_api_key: Optional[str] = None

	@property
	def mock_mode(self) -> bool:
		"""True when the relay must not touch the network."""
		return self.force_mock or not self.thesys_api_key

	@classmethod
	def from_env(cls) -> "Settings":
		"""Build settings from environment variables."""
		tmp_dir = (os.getenv("VOICE_TMP_DIR") or "").strip()
		return cls(
			thesys_api_key=(os.getenv("THESYS_API_KEY") or "").strip() or None,
			force_mock=_env_flag("THESYS_MOCK_MODE"),
			upstream_url=(os.getenv("THESYS_API_URL") or "").strip() or DEFAULT_UPSTREAM_URL,
			default_model=(os.getenv("THESYS_MODEL") or "").strip() or DEFAULT_MODEL,
			voice_min_audio_bytes=_env_int("VOICE_MIN_AUDIO_BYTES", 50000),
			heartbeat_interval=_env_float("VOICE_HEARTBEAT_INTERVAL", 30.0),
			voice_tmp_dir=Path(tmp_dir).expanduser() if tmp_dir else _default_tmp_dir(),
			openai_api_key=(os.getenv("OPENAI_API_KEY") or "").strip() or None,
		)
