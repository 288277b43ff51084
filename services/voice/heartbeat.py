"""Liveness tracking for one voice websocket."""

from __future__ import annotations


class Heartbeat:
	"""Flag that must be refreshed by client traffic between two consecutive ticks."""

	def __init__(self, interval: float = 30.0) -> None:
		self.interval = interval
		self.is_alive = True

	def touch(self) -> None:
		self.is_alive = True

	def check_and_maybe_terminate(self) -> bool:
		"""Run one tick. Returns True when the peer missed the previous ping.

		Otherwise the flag is cleared so the next tick terminates unless a client frame
		arrives first; the caller sends a ping after a False result.
		"""
		if not self.is_alive:
			return True
		self.is_alive = False
		return False
