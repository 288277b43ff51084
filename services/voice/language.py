"""Script-range language detection for voice transcripts."""

from __future__ import annotations

# Arabic, Arabic Supplement, Arabic Extended-A, and both presentation-form blocks.
ARABIC_RANGES = (
	(0x0600, 0x06FF),
	(0x0750, 0x077F),
	(0x08A0, 0x08FF),
	(0xFB50, 0xFDFF),
	(0xFE70, 0xFEFF),
)


def is_arabic_char(ch: str) -> bool:
	code = ord(ch)
	return any(low <= code <= high for low, high in ARABIC_RANGES)


def detect_language(text: str) -> str:
	"""Return ``"ar"`` if the text contains any Arabic script, else ``"en"``."""
	return "ar" if any(is_arabic_char(ch) for ch in text or "") else "en"
