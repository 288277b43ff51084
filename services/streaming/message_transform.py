"""Build provider message payloads, expanding attached images for vision input."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Tuple, Union

from models.stream_models import ChatMessage, ContentPart


def image_part(url: str) -> ContentPart:
	return {"type": "image", "source": {"type": "url", "url": url}}


def text_part(text: str) -> ContentPart:
	return {"type": "text", "text": text}


def expand_images(message: ChatMessage) -> Dict[str, Any]:
	"""Return the provider form of ``message``.

	Messages with images become a content-part array with every image in its
	original order followed by the text. The vision endpoint reads the parts
	in that order, so text must stay last.
	"""
	if not message.images:
		return {"role": message.role, "content": message.content}

	parts: List[ContentPart] = [image_part(url) for url in message.images]
	if isinstance(message.content, str):
		if message.content:
			parts.append(text_part(message.content))
	else:
		parts.extend(message.content)
	return {"role": message.role, "content": parts}


def collapse_content(content: Union[str, Sequence[ContentPart]]) -> Tuple[str, Tuple[str, ...]]:
	"""Recover ``(text, images)`` from an expanded content array."""
	if isinstance(content, str):
		return content, ()
	images: List[str] = []
	texts: List[str] = []
	for part in content:
		if part.get("type") == "image":
			images.append((part.get("source") or {}).get("url", ""))
		elif part.get("type") == "text":
			texts.append(part.get("text", ""))
	return "".join(texts), tuple(images)


def build_upstream_messages(system_prompt: str, messages: Iterable[ChatMessage]) -> List[Dict[str, Any]]:
	"""Prepend the system directive and expand every message, keeping order."""
	payload: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
	payload.extend(expand_images(message) for message in messages)
	return payload
