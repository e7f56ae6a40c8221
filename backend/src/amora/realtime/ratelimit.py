"""Per-connection send windows and per-pair call cooldowns."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from redis.exceptions import RedisError

from app.monitoring.metrics import realtime_rejections_total

from .errors import CooldownActive, RateLimited

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Fixed window limiter
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class WindowState:
    started_at: float
    count: int = 0


class SlidingWindowLimiter:
    """Counts events per connection inside a window that restarts once it lapses.

    A window that has been open for longer than ``window`` seconds is reset
    on the next hit. Within a window the first ``max_events`` hits pass.
    """

    def __init__(
        self,
        window: float = 15.0,
        max_events: int = 8,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        if window <= 0 or max_events <= 0:
            raise ValueError("window and max_events must be positive")
        self.window = window
        self.max_events = max_events
        self._clock = clock

    def new_state(self) -> WindowState:
        return WindowState(started_at=self._clock())

    def hit(self, state: WindowState) -> bool:
        now = self._clock()
        if now - state.started_at > self.window:
            state.started_at = now
            state.count = 0
        state.count += 1
        if state.count > self.max_events:
            realtime_rejections_total.labels("rate_limited").inc()
            return False
        return True

    def check(self, state: WindowState) -> None:
        if not self.hit(state):
            raise RateLimited("Too many messages, slow down")


# ---------------------------------------------------------------------------
# Pair cooldowns
# ---------------------------------------------------------------------------


class CooldownStore(Protocol):
    async def acquire(self, key: str, cooldown: float) -> float | None:
        """Claim *key* for *cooldown* seconds.

        Returns ``None`` when the claim succeeded, otherwise the number of
        seconds until the existing claim lapses.
        """


class InMemoryCooldownStore:
    """Process-local cooldown bookkeeping with an atomic check-and-set."""

    def __init__(self, *, clock: Clock = time.monotonic, prune_threshold: int = 4096) -> None:
        self._clock = clock
        self._claims: dict[str, tuple[float, float]] = {}
        self._lock = threading.Lock()
        self._prune_threshold = prune_threshold

    async def acquire(self, key: str, cooldown: float) -> float | None:
        now = self._clock()
        with self._lock:
            claim = self._claims.get(key)
            if claim is not None:
                claimed_at, span = claim
                elapsed = now - claimed_at
                if elapsed < span:
                    return span - elapsed
            self._claims[key] = (now, cooldown)
            if len(self._claims) > self._prune_threshold:
                self._prune(now)
        return None

    def _prune(self, now: float) -> None:
        expired = [key for key, (at, span) in self._claims.items() if now - at >= span]
        for key in expired:
            del self._claims[key]

    def __len__(self) -> int:
        return len(self._claims)


class RedisCooldownStore:
    """Cooldown claims shared through Redis using ``SET NX PX``."""

    def __init__(self, client: Any, *, prefix: str = "amora:cooldown") -> None:
        self._client = client
        self._prefix = prefix

    async def acquire(self, key: str, cooldown: float) -> float | None:
        name = f"{self._prefix}:{key}"
        ttl_ms = max(int(cooldown * 1000), 1)
        try:
            created = await self._client.set(name, "1", nx=True, px=ttl_ms)
            if created:
                return None
            remaining = await self._client.pttl(name)
        except RedisError as exc:
            logger.warning("Cooldown store unavailable, allowing call: %s", exc)
            return None
        if remaining is None or remaining < 0:
            return cooldown
        return remaining / 1000

    async def close(self) -> None:
        await self._client.aclose()


class PairCooldown:
    """Directional ``caller -> callee`` cooldown backed by a :class:`CooldownStore`."""

    def __init__(self, store: CooldownStore, cooldown: float = 30 * 60, *, scope: str = "call") -> None:
        self.store = store
        self.cooldown = cooldown
        self.scope = scope

    def key(self, caller_id: int, callee_id: int) -> str:
        return f"{self.scope}:{caller_id}:{callee_id}"

    async def acquire(self, caller_id: int, callee_id: int) -> None:
        retry_after = await self.store.acquire(self.key(caller_id, callee_id), self.cooldown)
        if retry_after is not None:
            realtime_rejections_total.labels("cooldown").inc()
            raise CooldownActive(retry_after)


__all__ = [
    "Clock",
    "WindowState",
    "SlidingWindowLimiter",
    "CooldownStore",
    "InMemoryCooldownStore",
    "RedisCooldownStore",
    "PairCooldown",
]
