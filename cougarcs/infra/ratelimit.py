import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass(frozen=True)
class RateLimitDecision:
	allowed: bool
	limit: int
	remaining: int
	reset_after: float

	@property
	def retry_after_seconds(self) -> int:
		return max(1, math.ceil(self.reset_after))


class _Window:
	def __init__(self, started_at: float) -> None:
		self.started_at = started_at
		self.count = 0


class RateLimiter:
	"""
	Fixed window counter per client key. A key's window opens on its first hit
	and lasts window_ms; hits past max_requests inside the window are refused.
	"""

	def __init__(
		self,
		window_ms: int = 60_000,
		max_requests: int = 10,
		clock: Callable[[], float] = time.monotonic,
		capacity: int = 10_000,
	) -> None:
		self._window = max(1, window_ms) / 1000.0
		self._max = max(1, max_requests)
		self._clock = clock
		self._capacity = max(128, capacity)
		self._windows: Dict[str, _Window] = {}
		self._lock = threading.Lock()

	@property
	def max_requests(self) -> int:
		return self._max

	@property
	def window_seconds(self) -> float:
		return self._window

	def hit(self, key: str) -> RateLimitDecision:
		now = self._clock()
		with self._lock:
			if len(self._windows) > self._capacity:
				self._cleanup_locked(now)
			w = self._windows.get(key)
			if w is None or now - w.started_at >= self._window:
				w = _Window(now)
				self._windows[key] = w
			w.count += 1
			reset_after = max(0.0, w.started_at + self._window - now)
			return RateLimitDecision(
				allowed=w.count <= self._max,
				limit=self._max,
				remaining=max(0, self._max - w.count),
				reset_after=reset_after,
			)

	def reset(self, key: str) -> None:
		with self._lock:
			self._windows.pop(key, None)

	def reset_all(self) -> None:
		with self._lock:
			self._windows.clear()

	def __len__(self) -> int:
		with self._lock:
			return len(self._windows)

	def _cleanup_locked(self, now: float) -> None:
		for k, w in list(self._windows.items()):
			if now - w.started_at >= self._window:
				self._windows.pop(k, None)
