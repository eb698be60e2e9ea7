"""
Per-source request pacing and concurrency admission.

Every request to a news source must be admitted here first. Admission
spaces consecutive requests by a randomized delay, caps the number of
requests in any trailing one-minute window, and bounds the number of
in-flight requests. Each source owns one state object behind one lock.
"""

import math
import random
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

from src.config.logging import get_logger
from src.config.models import PacingConfig, SourceProfile
from src.config.validation import ConfigurationError
from .errors import RateLimitExceeded


logger = get_logger(__name__)

WINDOW_MS = 60_000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class PacingState:
    """Mutable pacing counters for one source."""

    admitted_at: Deque[float] = field(default_factory=deque)
    last_request_at: Optional[float] = None
    in_flight: int = 0

    @property
    def request_count(self) -> int:
        """Requests admitted within the current window."""
        return len(self.admitted_at)

    @property
    def window_started_at(self) -> Optional[float]:
        """Admission time of the oldest request still inside the window."""
        return self.admitted_at[0] if self.admitted_at else None

    def expire(self, now: float) -> None:
        """Drop admissions that have left the trailing window."""
        while self.admitted_at and now - self.admitted_at[0] >= WINDOW_MS:
            self.admitted_at.popleft()


class _SourcePacer:
    """State, lock and concurrency slots for one source."""

    def __init__(self, source_id: str, pacing: PacingConfig):
        self.source_id = source_id
        self.pacing = pacing
        self.state = PacingState()
        self.lock = threading.Lock()
        self.slots = threading.BoundedSemaphore(pacing.max_concurrent_requests)


class PacingController:
    """
    Admission control for outbound requests, one pacer per source.

    Spacing between requests is drawn at random per request. The
    per-minute cap fails fast with ``RateLimitExceeded`` instead of blocking,
    while the concurrency cap blocks until a slot frees.
    """

    def __init__(
        self,
        clock: Callable[[], float] = _monotonic_ms,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize pacing controller.

        Args:
            clock: Function returning the current time in milliseconds
            sleep: Sleep function taking seconds
            rng: Random source for delay draws
        """
        self.clock = clock
        self.sleep = sleep
        self.rng = rng or random.Random()
        self._pacers: Dict[str, _SourcePacer] = {}
        self._registry_lock = threading.Lock()

    def register(self, profile: SourceProfile) -> None:
        """Register a source profile, keeping existing state if already known."""
        self.register_pacing(profile.source_id, profile.pacing)

    def register_pacing(self, source_id: str, pacing: PacingConfig) -> None:
        """Register pacing parameters for a source identifier."""
        with self._registry_lock:
            if source_id not in self._pacers:
                self._pacers[source_id] = _SourcePacer(source_id, pacing)

    def draw_delay_ms(self, pacing: PacingConfig) -> int:
        """
        Draw a request spacing delay.

        Args:
            pacing: Pacing parameters of the source

        Returns:
            Uniformly distributed integer in [min_delay_ms, max_delay_ms]
        """
        return self.rng.randint(pacing.min_delay_ms, pacing.max_delay_ms)

    def admit(self, source_id: str) -> None:
        """
        Wait until it is safe to issue the next request for a source.

        The request's send time is reserved under the source lock and the
        pacing wait happens after the lock is dropped, so ``release`` and
        ``get_state`` never queue behind a sleeping admission.

        Args:
            source_id: Identifier of a registered source

        Raises:
            RateLimitExceeded: If the per-minute budget is spent
            ConfigurationError: If the source was never registered
        """
        pacer = self._get_pacer(source_id)

        # Blocks until a concurrency slot frees
        pacer.slots.acquire()
        try:
            with pacer.lock:
                wait_ms = self._reserve_locked(pacer)
        except BaseException:
            pacer.slots.release()
            raise

        if wait_ms > 0:
            logger.debug("Pacing delay", source_id=source_id, wait_ms=round(wait_ms, 1))
            try:
                self.sleep(wait_ms / 1000.0)
            except BaseException:
                self.release(source_id)
                raise

    def _reserve_locked(self, pacer: _SourcePacer) -> float:
        """Check the budget, book the next send time and return the wait in ms."""
        state = pacer.state
        pacing = pacer.pacing
        now = self.clock()
        state.expire(now)

        if state.request_count >= pacing.max_requests_per_minute:
            retry_after_ms = int(math.ceil(state.window_started_at + WINDOW_MS - now))
            logger.warning(
                "Rate limit exceeded",
                source_id=pacer.source_id,
                request_count=state.request_count,
                max_requests_per_minute=pacing.max_requests_per_minute,
                retry_after_ms=retry_after_ms
            )
            raise RateLimitExceeded(pacer.source_id, retry_after_ms=max(retry_after_ms, 0))

        scheduled = now
        if state.last_request_at is not None:
            scheduled = max(now, state.last_request_at + self.draw_delay_ms(pacing))

        state.admitted_at.append(scheduled)
        state.last_request_at = scheduled
        state.in_flight += 1
        return scheduled - now

    def release(self, source_id: str) -> None:
        """Free the concurrency slot held by a finished request."""
        pacer = self._get_pacer(source_id)
        with pacer.lock:
            if pacer.state.in_flight <= 0:
                raise RuntimeError(f"release() without matching admit() for {source_id}")
            pacer.state.in_flight -= 1
        pacer.slots.release()

    @contextmanager
    def slot(self, source_id: str):
        """Context manager that admits a request and releases it afterwards."""
        self.admit(source_id)
        try:
            yield
        finally:
            self.release(source_id)

    def get_state(self, source_id: str) -> PacingState:
        """Snapshot of the pacing counters for a source."""
        pacer = self._get_pacer(source_id)
        with pacer.lock:
            return PacingState(
                admitted_at=deque(pacer.state.admitted_at),
                last_request_at=pacer.state.last_request_at,
                in_flight=pacer.state.in_flight
            )

    def _get_pacer(self, source_id: str) -> _SourcePacer:
        with self._registry_lock:
            pacer = self._pacers.get(source_id)
        if pacer is None:
            raise ConfigurationError(f"No pacing configuration registered for source '{source_id}'")
        return pacer
