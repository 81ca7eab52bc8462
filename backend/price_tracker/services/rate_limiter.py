"""
Rate Limiter - Coupang Partners API call budget

Published upstream limits:
- all APIs: 100 calls / minute
- search API: 50 calls / minute
- report API: 500 calls / hour

Three strikes on these limits gets the key suspended, so local ceilings sit
at roughly 70% of them. Every call consumes the general budget in addition
to its own category budget.
"""

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


class CallCategory(str, Enum):
    """Upstream call categories with separate budgets"""
    GENERAL = "general"
    SEARCH = "search"
    REPORTING = "reporting"


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int
    window_seconds: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a budget check"""
    category: str
    allowed: bool
    remaining: int
    reset_at: float
    retry_after_seconds: int = 0

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_at": self.reset_at,
            "retry_after_seconds": self.retry_after_seconds,
        }


DEFAULT_RATE_LIMITS: Dict[CallCategory, RateLimitConfig] = {
    CallCategory.GENERAL: RateLimitConfig(limit=70, window_seconds=60),
    CallCategory.SEARCH: RateLimitConfig(limit=35, window_seconds=60),
    CallCategory.REPORTING: RateLimitConfig(limit=350, window_seconds=60 * 60),
}


class RateLimitWindow:
    """Timestamps of permitted calls inside the trailing window"""

    def __init__(self, config: RateLimitConfig):
        self.config = config
        self.calls: Deque[float] = deque()

    def prune(self, now: float):
        horizon = now - self.config.window_seconds
        while self.calls and self.calls[0] <= horizon:
            self.calls.popleft()

    @property
    def count(self) -> int:
        return len(self.calls)

    def reset_at(self, now: float) -> float:
        if self.calls:
            return self.calls[0] + self.config.window_seconds
        return now + self.config.window_seconds


class RateLimiter:
    """
    Sliding-window call budget per category.

    check-then-increment runs under a lock so concurrent callers in one
    process cannot both take the last slot. State is process-local.
    """

    def __init__(
        self,
        limits: Optional[Dict[CallCategory, RateLimitConfig]] = None,
        clock: Callable[[], float] = time.time
    ):
        self.limits = dict(DEFAULT_RATE_LIMITS)
        if limits:
            self.limits.update({CallCategory(k): v for k, v in limits.items()})
        self._clock = clock
        self._windows: Dict[CallCategory, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def _window(self, category: CallCategory, now: float) -> RateLimitWindow:
        window = self._windows.get(category)
        if window is None:
            window = RateLimitWindow(self.limits[category])
            self._windows[category] = window
        window.prune(now)
        return window

    def _evaluate(self, category: CallCategory, now: float) -> RateLimitDecision:
        window = self._window(category, now)
        limit = window.config.limit
        reset_at = window.reset_at(now)

        if window.count >= limit:
            return RateLimitDecision(
                category=category.value,
                allowed=False,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=math.ceil(round(reset_at - now, 3))
            )

        return RateLimitDecision(
            category=category.value,
            allowed=True,
            remaining=limit - window.count,
            reset_at=reset_at
        )

    def _consume(self, category: CallCategory, now: float) -> RateLimitDecision:
        window = self._window(category, now)
        window.calls.append(now)
        return RateLimitDecision(
            category=category.value,
            allowed=True,
            remaining=window.config.limit - window.count,
            reset_at=window.reset_at(now)
        )

    def check(self, category=CallCategory.GENERAL) -> RateLimitDecision:
        """Check one category and consume a call if allowed"""
        category = CallCategory(category)
        with self._lock:
            now = self._clock()
            decision = self._evaluate(category, now)
            if not decision.allowed:
                return decision
            return self._consume(category, now)

    def acquire(self, category=CallCategory.GENERAL) -> RateLimitDecision:
        """
        Gate an upstream call on the general budget and its own category.

        Nothing is consumed unless every involved budget has room.

        Returns:
            The blocking decision when denied, otherwise the decision for
            the call's own category.
        """
        category = CallCategory(category)
        categories = [CallCategory.GENERAL]
        if category != CallCategory.GENERAL:
            categories.append(category)

        with self._lock:
            now = self._clock()
            for cat in categories:
                decision = self._evaluate(cat, now)
                if not decision.allowed:
                    logger.warning(
                        f"[Rate Limit] {cat.value} limit exceeded. "
                        f"Retry after {decision.retry_after_seconds}s"
                    )
                    return decision

            result = None
            for cat in categories:
                result = self._consume(cat, now)
            return result

    def status(self, category=CallCategory.GENERAL) -> dict:
        """Current usage without consuming a call"""
        category = CallCategory(category)
        with self._lock:
            now = self._clock()
            window = self._window(category, now)
            limit = window.config.limit
            return {
                "category": category.value,
                "count": window.count,
                "limit": limit,
                "remaining": max(0, limit - window.count),
                "reset_at": window.reset_at(now),
                "window_seconds": window.config.window_seconds,
            }

    def reset(self, category=None):
        """Drop recorded calls for one category or all of them"""
        with self._lock:
            if category is None:
                self._windows.clear()
            else:
                self._windows.pop(CallCategory(category), None)
