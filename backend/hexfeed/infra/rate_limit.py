"""Fixed-window request counters kept in Redis."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from hexfeed.infra.redis import redis_client

KEY_PREFIX = "hexfeed:rl"


@dataclass(frozen=True, slots=True)
class WindowCount:
	count: int
	limit: int
	reset_at: float

	@property
	def allowed(self) -> bool:
		return self.count <= self.limit

	def retry_after(self, now: Optional[float] = None) -> int:
		return max(1, math.ceil(self.reset_at - (now or time.time())))


def window_key(kind: str, actor_id: str, slot: int, window: int) -> str:
	return f"{KEY_PREFIX}:{kind}:{actor_id}:{slot}:{window}"


async def hit(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> WindowCount:
	"""Count one request for ``actor_id`` in the current window."""

	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	reset_at = float((slot + 1) * window)
	if limit <= 0:
		return WindowCount(count=1, limit=0, reset_at=reset_at)
	key = window_key(kind, actor_id, slot, window)
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return WindowCount(count=int(count), limit=limit, reset_at=reset_at)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the request is still within the budget."""

	result = await hit(kind, actor_id, limit=limit, window_seconds=window_seconds, now=now)
	return result.allowed
