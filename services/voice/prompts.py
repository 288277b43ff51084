"""Prompt helpers for voice conversations."""

from __future__ import annotations


def voice_base_system_prompt() -> str:
	"""Return the system message every voice session starts with."""
	return (
		"You are a helpful AI assistant having a voice conversation. "
		"Keep your responses concise and natural for spoken dialogue. "
		"Support both Arabic and English languages."
	)


def voice_persona_prompt(language: str) -> str:
	"""Return the persona directive for the language detected on the first turn."""
	if language == "ar":
		return (
			"أنت مساعد صوتي ودود. تحدث باللغة العربية الفصحى المبسطة، "
			"واجعل إجاباتك قصيرة وطبيعية ومناسبة للاستماع."
		)
	return (
		"You are a friendly voice assistant. Reply in English with short, natural sentences "
		"that are easy to follow when spoken aloud."
	)
