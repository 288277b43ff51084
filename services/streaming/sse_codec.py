"""Server-sent event framing shared by the relay and the stream consumer.

Both directions use the same ``data: <payload>\\n\\n`` grammar. Decoding works
on raw bytes and splits on the newline byte, which never occurs inside a
multi-byte UTF-8 sequence, so a frame cut at any byte offset decodes the same
way once the rest of it arrives.
"""

from __future__ import annotations

import json
from typing import Any, List, Tuple, Union

DATA_PREFIX = "data: "
DONE = "[DONE]"


def decode(chunk: bytes, carry: bytes = b"") -> Tuple[List[str], bytes]:
	"""Split ``carry + chunk`` into complete ``data:`` payloads.

	Args:
		chunk: Bytes just read from the network.
		carry: Unterminated tail returned by the previous call.

	Returns:
		A tuple of ``(frames, carry)`` where ``frames`` holds the payload of
		every complete line that starts with ``data: `` (prefix stripped) in
		arrival order and ``carry`` is the trailing partial line to pass into
		the next call.
	"""
	lines = (carry + chunk).split(b"\n")
	carry = lines.pop()
	frames: List[str] = []
	for raw in lines:
		line = raw.decode("utf-8", errors="replace").rstrip("\r")
		if line.startswith(DATA_PREFIX):
			frames.append(line[len(DATA_PREFIX):])
	return frames, carry


def encode(payload: Union[str, Any]) -> bytes:
	"""Serialize one frame; ``DONE`` is written literally, anything else as JSON."""
	if payload == DONE:
		body = DONE
	else:
		body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
	return f"{DATA_PREFIX}{body}\n\n".encode("utf-8")


class SSEDecoder:
	"""Stateful wrapper around :func:`decode` that owns the carry-over fragment."""

	def __init__(self) -> None:
		self._carry = b""

	def feed(self, chunk: bytes) -> List[str]:
		frames, self._carry = decode(chunk, self._carry)
		return frames

	def flush(self) -> List[str]:
		"""Treat whatever is buffered as a final, newline-terminated line."""
		if not self._carry:
			return []
		frames, self._carry = decode(b"\n", self._carry)
		return frames
