"""Per-request cancellation handle for upstream streaming work."""

from __future__ import annotations

import asyncio
from typing import List, Optional


class CancelToken:
	"""Owned by one relay invocation; cancels the tasks bound to it exactly once."""

	def __init__(self) -> None:
		self._tasks: List[asyncio.Task] = []
		self._reason: Optional[str] = None

	@property
	def cancelled(self) -> bool:
		return self._reason is not None

	@property
	def reason(self) -> Optional[str]:
		return self._reason

	def bind(self, task: asyncio.Task) -> None:
		"""Attach a task; it is cancelled immediately if the token already fired."""
		self._tasks.append(task)
		if self.cancelled and not task.done():
			task.cancel()

	def cancel(self, reason: str = "cancelled") -> bool:
		"""Cancel bound tasks. Returns False when the token had already fired."""
		if self.cancelled:
			return False
		self._reason = reason
		for task in self._tasks:
			if not task.done():
				task.cancel()
		return True
