"""Domain models for the chat stream relay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

ContentPart = Dict[str, Any]


@dataclass(frozen=True)
class ChatMessage:
	"""One conversation entry as received from the browser."""

	role: str
	content: Union[str, List[ContentPart]] = ""
	images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionContext:
	"""Identifies an existing generated UI that the next turn should modify."""

	session_id: Optional[str] = None
	previous_state: Any = None
	message_id: Optional[str] = None


@dataclass(frozen=True)
class StreamRequest:
	"""Immutable description of one relay invocation."""

	messages: Tuple[ChatMessage, ...]
	model: str
	language: str = "en"
	session_context: Optional[SessionContext] = None
