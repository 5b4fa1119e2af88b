"""Client-resident send-rate governor.

Two rules gate every send:

- a cooldown since the last accepted send (checked first, regardless of quota)
- a bounded quota, one unit spent per accepted send

Each successful send schedules a one-shot timer that gives back one unit,
capped at the ceiling. Timers are independent of each other and of later
sends. State lives in memory only; a new governor starts with a full quota.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from ..domain.errors import RateLimited


logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 10.0
DEFAULT_QUOTA = 10
DEFAULT_REPLENISH_SECONDS = 60.0


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, fn: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


@dataclass
class RateGovernorState:
    remaining: int
    last_send_at: Optional[float] = None
    # due times of replenishments still in flight
    pending: List[float] = field(default_factory=list)

    @property
    def pending_replenishments(self) -> int:
        return len(self.pending)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    reason: Optional[str] = None
    retry_after: Optional[int] = None


class RateGovernor:
    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        quota: int = DEFAULT_QUOTA,
        replenish_seconds: float = DEFAULT_REPLENISH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler = thread_timer,
    ) -> None:
        if quota < 1:
            raise ValueError("quota must be at least 1")
        self.cooldown_seconds = cooldown_seconds
        self.quota = quota
        self.replenish_seconds = replenish_seconds
        self.clock = clock
        self._scheduler = scheduler
        self._state = RateGovernorState(remaining=quota)
        self._timers: Dict[int, Optional[TimerHandle]] = {}
        self._timer_ids = itertools.count()
        self._lock = threading.Lock()

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._state.remaining

    @property
    def state(self) -> RateGovernorState:
        with self._lock:
            return RateGovernorState(
                remaining=self._state.remaining,
                last_send_at=self._state.last_send_at,
                pending=list(self._state.pending),
            )

    def can_send(self, now: Optional[float] = None) -> RateDecision:
        now = self.clock() if now is None else now
        with self._lock:
            last = self._state.last_send_at
            if last is not None:
                elapsed = now - last
                if elapsed < self.cooldown_seconds:
                    wait = max(math.ceil(self.cooldown_seconds - elapsed), 1)
                    return RateDecision(
                        allowed=False,
                        reason=f"Please wait {wait} seconds before sending another message",
                        retry_after=wait,
                    )
            if self._state.remaining <= 0:
                retry_after = None
                if self._state.pending:
                    retry_after = max(math.ceil(min(self._state.pending) - now), 1)
                return RateDecision(
                    allowed=False,
                    reason="You've reached the message limit. Please wait before sending more messages.",
                    retry_after=retry_after,
                )
        return RateDecision(allowed=True)

    def check(self, now: Optional[float] = None) -> None:
        """Raise ``RateLimited`` when a send would be denied."""
        decision = self.can_send(now)
        if not decision.allowed:
            raise RateLimited(decision.reason or "Rate limited", retry_after_seconds=decision.retry_after or 0)

    def record_send(self, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        with self._lock:
            self._state.last_send_at = now
            self._state.remaining = max(self._state.remaining - 1, 0)

    def schedule_replenish(self) -> None:
        due = self.clock() + self.replenish_seconds
        with self._lock:
            self._state.pending.append(due)
            key = next(self._timer_ids)
            # Placeholder until the handle exists; a timer may fire first
            self._timers[key] = None

        def _fire() -> None:
            with self._lock:
                self._timers.pop(key, None)
            self._replenish(due)

        handle = self._scheduler(self.replenish_seconds, _fire)
        with self._lock:
            if key in self._timers:
                self._timers[key] = handle

    def _replenish(self, due: float) -> None:
        with self._lock:
            if due in self._state.pending:
                self._state.pending.remove(due)
            self._state.remaining = min(self._state.remaining + 1, self.quota)
            logger.debug("Rate quota replenished to %d", self._state.remaining)

    @property
    def active_timers(self) -> int:
        with self._lock:
            return len(self._timers)

    def close(self) -> None:
        """Cancel replenishment timers still pending."""
        with self._lock:
            timers, self._timers = list(self._timers.values()), {}
            self._state.pending.clear()
        for handle in timers:
            if handle is not None:
                handle.cancel()
