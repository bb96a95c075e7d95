"""In-memory fixed-window rate limiting."""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Mapping, Optional

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate limit check."""

    success: bool
    limit: int
    remaining: int
    reset: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass
class RateLimiter:
    """Thread-safe fixed-window counters keyed by client identity."""

    limit: int = DEFAULT_LIMIT
    window_seconds: float = DEFAULT_WINDOW_SECONDS
    enabled: bool = True
    clock: Callable[[], float] = field(default=time.time, repr=False)
    _lock: Lock = field(default_factory=Lock, repr=False)
    _windows: dict[str, _Window] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "RateLimiter":
        cfg = config or {}
        return cls(
            limit=max(1, int(cfg.get("limit", DEFAULT_LIMIT))),
            window_seconds=float(cfg.get("window_seconds", DEFAULT_WINDOW_SECONDS)),
            enabled=bool(cfg.get("enabled", False)),
        )

    def check(self, identifier: str) -> RateLimitResult:
        now = self.clock()
        if not self.enabled:
            return RateLimitResult(True, self.limit, self.limit, int(now + self.window_seconds))

        with self._lock:
            self._purge(now)
            window = self._windows.get(identifier)
            if window is None:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[identifier] = window

            if window.count >= self.limit:
                return RateLimitResult(False, self.limit, 0, int(window.reset_at))

            window.count += 1
            return RateLimitResult(
                True, self.limit, self.limit - window.count, int(window.reset_at)
            )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "enabled": self.enabled,
                "limit": self.limit,
                "window_seconds": self.window_seconds,
                "tracked_clients": len(self._windows),
            }

    def _purge(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]


def client_identifier(bearer: Optional[str], client_host: Optional[str]) -> str:
    """Identity used for rate limiting: hashed bearer token, else client host."""
    if bearer:
        return "bearer:" + hashlib.sha256(bearer.encode("utf-8")).hexdigest()[:16]
    return f"host:{client_host or 'unknown'}"
