"""Upstream failure types and their user-facing wording."""

from __future__ import annotations

from typing import Optional

RETRYABLE_STATUSES = frozenset({500, 503})

RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please wait a moment and try again."
UNAVAILABLE_MESSAGE = "API temporarily unavailable. Please try again in a moment."
AUTH_FAILED_MESSAGE = "API authentication failed. Please check configuration."
GENERIC_MESSAGE = "API request failed"
TIMEOUT_MESSAGE = "Request timed out. The response was too large or took too long."


class UpstreamStatusError(RuntimeError):
	"""The upstream API answered with a non-success HTTP status."""

	def __init__(self, status_code: int, detail: Optional[str] = None) -> None:
		self.status_code = status_code
		self.detail = detail
		super().__init__(f"Upstream returned HTTP {status_code}" + (f": {detail}" if detail else ""))

	@property
	def retryable(self) -> bool:
		return self.status_code in RETRYABLE_STATUSES


def classify_upstream_status(status_code: int, detail: Optional[str] = None) -> str:
	"""Map an upstream status code to the message shown to the end user."""
	if status_code == 429:
		return RATE_LIMITED_MESSAGE
	if status_code in RETRYABLE_STATUSES:
		return UNAVAILABLE_MESSAGE
	if status_code in (401, 403):
		return AUTH_FAILED_MESSAGE
	return detail or GENERIC_MESSAGE


def transport_error_message(exc: BaseException) -> str:
	reason = str(exc) or exc.__class__.__name__
	return f"Failed to reach upstream API: {reason}"
